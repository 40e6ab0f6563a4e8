"""Builds the embedding provider used for session search"""
from typing import Dict, Type

from src.config import settings

from .base import EmbeddingProvider
from .openai import OpenAIEmbeddingProvider

PROVIDERS: Dict[str, Type[EmbeddingProvider]] = {
    "openai": OpenAIEmbeddingProvider,
}


class EmbeddingFactory:

    @staticmethod
    def create(model: str = None) -> EmbeddingProvider:
        """
        Build the provider named by settings.embedding_provider.

        The completion key is reused when EMBEDDING_API_KEY is empty.

        Raises:
            ValueError: Unknown provider, or no model or key available
        """
        vendor = settings.embedding_provider.strip().lower()
        if vendor not in PROVIDERS:
            raise ValueError(
                f"Unsupported embedding provider: {vendor}. Choose one of: {', '.join(sorted(PROVIDERS))}"
            )

        model_name = model or settings.embedding_model
        if not model_name:
            raise ValueError("EMBEDDING_MODEL not configured")

        api_key = settings.embedding_api_key or settings.llm_api_key
        if not api_key:
            raise ValueError("No API key for session embeddings. Set EMBEDDING_API_KEY or LLM_API_KEY")

        return PROVIDERS[vendor](api_key=api_key, model=model_name)
