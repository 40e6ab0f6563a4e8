"""Builds completion providers for the pipeline's agents"""
from typing import Dict, Type

from src.config import settings
from src.logging_config import get_logger

from .anthropic import AnthropicProvider
from .base import LLMProvider
from .openai import OpenAIProvider

logger = get_logger(__name__)

PROVIDERS: Dict[str, Type[LLMProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


class LLMFactory:
    """
    Maps settings.llm_provider to a provider class.

    Every agent asks ModelRouter for its task's model and passes it here, so
    one API key and one vendor serve all stages of a run.
    """

    @staticmethod
    def create(model: str = None) -> LLMProvider:
        """
        Args:
            model: Model id for the calling stage; settings.llm_model when None

        Raises:
            ValueError: Unknown provider, or no model or API key configured
        """
        vendor = settings.llm_provider.strip().lower()
        provider_cls = PROVIDERS.get(vendor)
        if provider_cls is None:
            raise ValueError(
                f"Unsupported LLM provider: {vendor}. Choose one of: {', '.join(sorted(PROVIDERS))}"
            )

        model_name = model or settings.llm_model
        if not model_name:
            raise ValueError("LLM_MODEL not configured. Set it in .env or set a per-task model")
        if not settings.llm_api_key:
            raise ValueError("LLM_API_KEY not configured. Set it in .env")

        logger.debug("llm_provider_created", provider=vendor, model=model_name)
        return provider_cls(api_key=settings.llm_api_key, model=model_name)
