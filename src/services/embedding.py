"""Time-bounded embedding generation for session indexing."""
import asyncio
from typing import List

from src.config import settings
from src.exceptions import EmbeddingTimeoutError
from src.logging_config import get_logger
from src.providers.embeddings.base import EmbeddingProvider
from src.providers.embeddings.factory import EmbeddingFactory

logger = get_logger(__name__)


class EmbeddingService:
    """Wraps an EmbeddingProvider with a per-call timeout."""

    def __init__(self, provider: EmbeddingProvider = None, timeout_seconds: float = None):
        self._provider = provider
        self.timeout_seconds = timeout_seconds or settings.embedding_timeout_seconds

    @property
    def provider(self) -> EmbeddingProvider:
        """Lazy-load embedding provider."""
        if self._provider is None:
            self._provider = EmbeddingFactory.create()
        return self._provider

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Embed text for the search index.

        Returns:
            Embedding vector; [] for blank text without calling the provider

        Raises:
            EmbeddingTimeoutError: If the provider does not answer in time
        """
        if not text or not text.strip():
            return []

        try:
            embedding = await asyncio.wait_for(
                self.provider.embed_query(text), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning("embedding_timed_out", timeout_seconds=self.timeout_seconds)
            raise EmbeddingTimeoutError(
                f"Embedding generation timed out after {self.timeout_seconds:g}s"
            ) from e

        logger.debug("embedding_generated", dimensions=len(embedding))
        return embedding
