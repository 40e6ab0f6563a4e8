"""Embedding provider interface"""
from abc import ABC, abstractmethod
from typing import List


class EmbeddingProvider(ABC):
    """
    Vectorizes session content and search queries.

    Blank text maps to an empty vector without a remote call; the indexer
    then stores the session without a vector and it stays keyword-searchable.
    """

    @abstractmethod
    async def embed_query(self, text: str) -> List[float]:
        ...

    @abstractmethod
    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Batch form of embed_query; output order matches `texts`."""
        ...

    @abstractmethod
    def get_provider_name(self) -> str:
        ...

    @abstractmethod
    def get_embedding_dim(self) -> int:
        """Vector width the search index must be built with."""
        ...
