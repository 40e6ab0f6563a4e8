"""OpenAI embedding provider implementation"""
from typing import List
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential
from .base import EmbeddingProvider

# text-embedding-3-small: 1536, text-embedding-3-large: 3072
_MODEL_DIMS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

BATCH_SIZE = 100


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings with batching and automatic retries"""

    def __init__(self, api_key: str, model: str, client: AsyncOpenAI = None):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self._embedding_dim = _MODEL_DIMS.get(model, 3072)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10))
    async def embed_query(self, text: str) -> List[float]:
        if not text or not text.strip():
            return []
        response = await self.client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10))
    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in batches of 100.

        Blank entries get [] in place so the output lines up with the input.
        """
        results: List[List[float]] = [[] for _ in texts]
        pending = [(i, t) for i, t in enumerate(texts) if t and t.strip()]

        for start in range(0, len(pending), BATCH_SIZE):
            batch = pending[start:start + BATCH_SIZE]
            response = await self.client.embeddings.create(
                model=self.model,
                input=[t for _, t in batch],
            )
            for (index, _), item in zip(batch, response.data):
                results[index] = list(item.embedding)

        return results

    def get_provider_name(self) -> str:
        return "openai"

    def get_embedding_dim(self) -> int:
        return self._embedding_dim
