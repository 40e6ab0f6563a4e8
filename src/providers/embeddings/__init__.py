"""Session-search embeddings: interface, OpenAI implementation and factory"""
from .base import EmbeddingProvider
from .factory import PROVIDERS, EmbeddingFactory
from .openai import OpenAIEmbeddingProvider

__all__ = ["EmbeddingProvider", "EmbeddingFactory", "OpenAIEmbeddingProvider", "PROVIDERS"]
