"""FAISS-backed search index for processed therapy sessions"""
import asyncio
import pickle
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import faiss
import numpy as np

from src.config import settings
from src.exceptions import SearchIndexTimeoutError
from src.logging_config import get_logger

logger = get_logger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")


@dataclass
class SessionSearchDocument:
    """One indexed session; id is the session id."""
    id: str
    session_id: str
    patient_id: str
    session_date: Optional[date] = None
    session_type: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    primary_diagnosis: Optional[str] = None
    interventions: List[str] = field(default_factory=list)
    risk_level: Optional[str] = None
    mood_score: Optional[int] = None
    content_vector: List[float] = field(default_factory=list)


@dataclass
class SearchResult:
    document: SessionSearchDocument
    score: float


class SearchIndex(ABC):
    """Session search backend"""

    @abstractmethod
    async def upsert(self, document: SessionSearchDocument) -> None:
        """Add a document, replacing any existing document with the same id."""
        pass

    @abstractmethod
    async def search(
        self,
        query_text: str,
        query_vector: Optional[List[float]] = None,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
    ) -> List[SearchResult]:
        """Return up to `limit` results, best first."""
        pass


class FaissSearchIndex(SearchIndex):
    """
    Cosine-similarity index over session embeddings.

    Vectors are L2-normalized and stored in an inner-product IndexIDMap2 so
    documents can be replaced by id. Document attributes live alongside the
    index and are used for filtering and for keyword search when no query
    vector is given. With a persist_directory the index and documents are
    saved after every upsert.
    """

    def __init__(self, persist_directory: str = None, timeout_seconds: float = None):
        self.persist_directory = persist_directory if persist_directory is not None else settings.search_index_path
        self.timeout_seconds = timeout_seconds or settings.search_timeout_seconds

        self.index: Optional[faiss.IndexIDMap2] = None
        self.documents: Dict[int, SessionSearchDocument] = {}
        self._ids: Dict[str, int] = {}
        self._next_id = 1
        self._lock = threading.Lock()

        if self.persist_directory:
            Path(self.persist_directory).mkdir(parents=True, exist_ok=True)
            self._load()

    @property
    def index_path(self) -> Path:
        return Path(self.persist_directory) / "sessions.faiss"

    @property
    def metadata_path(self) -> Path:
        return Path(self.persist_directory) / "sessions.pkl"

    def __len__(self) -> int:
        return len(self.documents)

    async def upsert(self, document: SessionSearchDocument) -> None:
        await self._bounded(self._upsert_sync, document)

    async def search(
        self,
        query_text: str,
        query_vector: Optional[List[float]] = None,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
    ) -> List[SearchResult]:
        return await self._bounded(self._search_sync, query_text, query_vector, filter, limit)

    async def _bounded(self, func, *args):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise SearchIndexTimeoutError(
                f"Search index call timed out after {self.timeout_seconds:g}s"
            ) from e

    def _upsert_sync(self, document: SessionSearchDocument) -> None:
        with self._lock:
            int_id = self._ids.get(document.id)
            if int_id is None:
                int_id = self._next_id
                self._next_id += 1
                self._ids[document.id] = int_id
            elif self.index is not None:
                self.index.remove_ids(np.array([int_id], dtype="int64"))

            if document.content_vector:
                vector = self._normalize(document.content_vector)
                if self.index is None:
                    self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(vector.shape[1]))
                elif vector.shape[1] != self.index.d:
                    raise ValueError(
                        f"Embedding has {vector.shape[1]} dimensions; index expects {self.index.d}"
                    )
                self.index.add_with_ids(vector, np.array([int_id], dtype="int64"))

            self.documents[int_id] = document
            if self.persist_directory:
                self._save()

        logger.debug("search_document_upserted", document_id=document.id, has_vector=bool(document.content_vector))

    def _search_sync(
        self,
        query_text: str,
        query_vector: Optional[List[float]],
        filter: Optional[Dict[str, Any]],
        limit: int,
    ) -> List[SearchResult]:
        with self._lock:
            if query_vector and self.index is not None and self.index.ntotal > 0:
                results = self._vector_search(query_vector, filter)
            else:
                results = self._keyword_search(query_text or "", filter)
        return results[:limit]

    def _vector_search(self, query_vector: List[float], filter) -> List[SearchResult]:
        query = self._normalize(query_vector)
        if query.shape[1] != self.index.d:
            raise ValueError(f"Query has {query.shape[1]} dimensions; index expects {self.index.d}")

        # Search everything so filtering cannot starve the result list
        scores, ids = self.index.search(query, self.index.ntotal)
        results = []
        for score, int_id in zip(scores[0], ids[0]):
            if int_id < 0:
                continue
            document = self.documents.get(int(int_id))
            if document is not None and self._matches(document, filter):
                results.append(SearchResult(document=document, score=float(score)))
        return results

    def _keyword_search(self, query_text: str, filter) -> List[SearchResult]:
        terms = set(_TOKEN.findall(query_text.lower()))
        if not terms:
            return []

        results = []
        for document in self.documents.values():
            if not self._matches(document, filter):
                continue
            haystack = set(_TOKEN.findall(f"{document.content or ''} {document.summary or ''}".lower()))
            score = len(terms & haystack) / len(terms)
            if score > 0:
                results.append(SearchResult(document=document, score=score))
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    @staticmethod
    def _matches(document: SessionSearchDocument, filter: Optional[Dict[str, Any]]) -> bool:
        if not filter:
            return True
        for key, expected in filter.items():
            actual = getattr(document, key, None)
            if isinstance(actual, list):
                if expected not in actual:
                    return False
            elif actual != expected:
                return False
        return True

    @staticmethod
    def _normalize(vector: List[float]) -> np.ndarray:
        array = np.asarray(vector, dtype="float32").reshape(1, -1)
        faiss.normalize_L2(array)
        return array

    def _load(self):
        """Load index and documents from disk if they exist"""
        if not self.metadata_path.exists():
            return
        with open(self.metadata_path, "rb") as f:
            state = pickle.load(f)
        self.documents = state["documents"]
        self._next_id = state["next_id"]
        self._ids = {doc.id: int_id for int_id, doc in self.documents.items()}
        if self.index_path.exists():
            self.index = faiss.read_index(str(self.index_path))
        logger.info("search_index_loaded", documents=len(self.documents))

    def _save(self):
        if self.index is not None:
            faiss.write_index(self.index, str(self.index_path))
        with open(self.metadata_path, "wb") as f:
            pickle.dump({"documents": self.documents, "next_id": self._next_id}, f)
