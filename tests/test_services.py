"""
Service Tests

Covers:
1. Plain-text document parsing and limits
2. Embedding providers and the time-bounded embedding service
3. FAISS session search index (vector, keyword, filters, persistence)
4. Session indexing
"""
import asyncio
from datetime import date
from types import SimpleNamespace
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.agent.models import ClinicalExtraction
from src.agent.summarizer import SessionSummary
from src.exceptions import DocumentParseError, DocumentTooLargeError, EmbeddingTimeoutError
from src.models import TherapySession
from src.providers.embeddings import EmbeddingFactory, EmbeddingProvider, OpenAIEmbeddingProvider
from src.services.document_parser import PlainTextDocumentParser
from src.services.embedding import EmbeddingService
from src.services.indexing import SessionIndexingService, compose_embedding_text
from src.services.search_index import FaissSearchIndex, SessionSearchDocument


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic 4-dim embeddings keyed on a few topic words."""

    TOPICS = ("anxiety", "grief", "sleep", "anger")

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[str] = []

    async def embed_query(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        lowered = text.lower()
        return [1.0 if topic in lowered else 0.0 for topic in self.TOPICS]

    async def embed_documents(self, texts):
        return [await self.embed_query(t) for t in texts]

    def get_provider_name(self) -> str:
        return "fake"

    def get_embedding_dim(self) -> int:
        return len(self.TOPICS)


def make_doc(doc_id: str, vector=None, **fields) -> SessionSearchDocument:
    fields.setdefault("patient_id", "P-1")
    return SessionSearchDocument(id=doc_id, session_id=doc_id, content_vector=vector or [], **fields)


def make_session(**overrides) -> TherapySession:
    values = {"id": "sess-1", "patient_id": "P-1042", "session_date": date(2024, 3, 15)}
    values.update(overrides)
    return TherapySession(**values)


EXTRACTION = ClinicalExtraction.model_validate({
    "session_info": {"session_type": {"value": "individual", "confidence": 0.9}},
    "presenting_concerns": {
        "primary_concern": {"value": "Work-related anxiety", "confidence": 0.9},
        "secondary_concerns": {"value": ["poor sleep", "irritability"], "confidence": 0.8},
    },
    "mood_assessment": {"self_reported_mood": {"value": 4, "confidence": 0.9}},
    "interventions": {"techniques_used": {"value": ["CBT", "box breathing"], "confidence": 0.9}},
    "diagnoses": {"primary_diagnosis": {"value": "Generalized anxiety disorder", "confidence": 0.9}},
    "treatment_progress": {"progress_rating_overall": {"value": "some_improvement", "confidence": 0.8}},
    "risk_assessment": {"risk_level_overall": {"value": "moderate", "confidence": 0.92}},
})


# ============================================================================
# Document parser
# ============================================================================

class TestPlainTextDocumentParser:

    @pytest.mark.asyncio
    async def test_parses_sections_and_pages(self):
        data = "# Subjective\nFeeling anxious.\n\f# Plan\nFollow up in 1 week.\n".encode()
        parsed = await PlainTextDocumentParser().parse(data, "note.md")

        assert parsed.page_count == 2
        assert parsed.file_format == "md"
        assert parsed.sections == {"Subjective": "Feeling anxious.", "Plan": "Follow up in 1 week."}
        assert "\f" not in parsed.content

    @pytest.mark.asyncio
    async def test_utf8_bom_stripped(self):
        parsed = await PlainTextDocumentParser().parse("\ufeffSession note".encode("utf-8"), "note.txt")
        assert parsed.content == "Session note"

    @pytest.mark.asyncio
    async def test_too_many_bytes(self):
        with pytest.raises(DocumentTooLargeError):
            await PlainTextDocumentParser(max_bytes=10).parse(b"x" * 11, "note.txt")

    @pytest.mark.asyncio
    async def test_too_many_pages(self):
        with pytest.raises(DocumentTooLargeError, match="3 pages"):
            await PlainTextDocumentParser(max_pages=2).parse(b"a\fb\fc", "note.txt")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data,filename", [
        (b"note", "scan.pdf"),
        (b"\xff\xfe\x00bad", "note.txt"),
        (b"   \n\f  ", "note.txt"),
    ])
    async def test_unreadable_documents(self, data, filename):
        with pytest.raises(DocumentParseError):
            await PlainTextDocumentParser().parse(data, filename)


# ============================================================================
# Embeddings
# ============================================================================

class TestOpenAIEmbeddingProvider:

    @pytest.mark.asyncio
    async def test_embed_query(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.1, 0.2])]
        ))
        provider = OpenAIEmbeddingProvider(api_key="k", model="text-embedding-3-small", client=client)

        assert await provider.embed_query("anxiety") == [0.1, 0.2]
        assert await provider.embed_query("   ") == []
        client.embeddings.create.assert_awaited_once_with(model="text-embedding-3-small", input="anxiety")
        assert provider.get_embedding_dim() == 1536

    @pytest.mark.asyncio
    async def test_embed_documents_keeps_positions(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=SimpleNamespace(
            data=[SimpleNamespace(embedding=[1.0]), SimpleNamespace(embedding=[2.0])]
        ))
        provider = OpenAIEmbeddingProvider(api_key="k", model="text-embedding-3-large", client=client)

        assert await provider.embed_documents(["a", "", "b"]) == [[1.0], [], [2.0]]
        assert client.embeddings.create.call_args.kwargs["input"] == ["a", "b"]


class TestEmbeddingFactory:

    def test_creates_openai_provider(self):
        with patch("src.config.settings.embedding_provider", "openai"), \
             patch("src.config.settings.embedding_model", "text-embedding-3-small"), \
             patch("src.config.settings.embedding_api_key", "test-key"):
            provider = EmbeddingFactory.create()
        assert isinstance(provider, OpenAIEmbeddingProvider)
        assert provider.model == "text-embedding-3-small"

    def test_unsupported_provider(self):
        with patch("src.config.settings.embedding_provider", "word2vec"), \
             patch("src.config.settings.embedding_model", "m"), \
             patch("src.config.settings.embedding_api_key", "test-key"):
            with pytest.raises(ValueError, match="Unsupported embedding provider"):
                EmbeddingFactory.create()

    def test_missing_key(self):
        with patch("src.config.settings.embedding_model", "m"), \
             patch("src.config.settings.embedding_api_key", ""), \
             patch("src.config.settings.llm_api_key", ""):
            with pytest.raises(ValueError, match="No API key"):
                EmbeddingFactory.create()


class TestEmbeddingService:

    @pytest.mark.asyncio
    async def test_generates_embedding(self):
        service = EmbeddingService(FakeEmbeddingProvider(), timeout_seconds=1)
        assert await service.generate_embedding("grief and sleep") == [0.0, 1.0, 1.0, 0.0]

    @pytest.mark.asyncio
    async def test_blank_text_skips_provider(self):
        provider = FakeEmbeddingProvider()
        assert await EmbeddingService(provider, timeout_seconds=1).generate_embedding("  ") == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_timeout(self):
        service = EmbeddingService(FakeEmbeddingProvider(delay=1.0), timeout_seconds=0.05)
        with pytest.raises(EmbeddingTimeoutError, match="timed out after 0.05s"):
            await service.generate_embedding("anxiety")


# ============================================================================
# Search index
# ============================================================================

class TestFaissSearchIndex:

    @pytest.fixture
    def index(self):
        return FaissSearchIndex(persist_directory="", timeout_seconds=5)

    @pytest.mark.asyncio
    async def test_vector_search_ranks_by_similarity(self, index):
        await index.upsert(make_doc("a", [1, 0, 0, 0], content="anxiety"))
        await index.upsert(make_doc("b", [0, 1, 0, 0], content="grief"))
        await index.upsert(make_doc("c", [1, 0, 1, 0], content="anxiety and sleep"))

        results = await index.search("", query_vector=[1, 0, 0, 0], limit=2)

        assert [r.document.id for r in results] == ["a", "c"]
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_upsert_replaces_by_id(self, index):
        await index.upsert(make_doc("a", [1, 0, 0, 0], content="anxiety"))
        await index.upsert(make_doc("a", [0, 1, 0, 0], content="grief"))

        results = await index.search("", query_vector=[0, 1, 0, 0])

        assert len(index) == 1
        assert len(results) == 1
        assert results[0].document.content == "grief"
        assert index.index.ntotal == 1

    @pytest.mark.asyncio
    async def test_filters(self, index):
        await index.upsert(make_doc("a", [1, 0, 0, 0], patient_id="P-1", interventions=["CBT"]))
        await index.upsert(make_doc("b", [1, 0, 0, 0], patient_id="P-2", interventions=["DBT"]))

        by_patient = await index.search("", query_vector=[1, 0, 0, 0], filter={"patient_id": "P-2"})
        by_intervention = await index.search("", query_vector=[1, 0, 0, 0], filter={"interventions": "CBT"})

        assert [r.document.id for r in by_patient] == ["b"]
        assert [r.document.id for r in by_intervention] == ["a"]

    @pytest.mark.asyncio
    async def test_keyword_search_without_vector(self, index):
        await index.upsert(make_doc("a", content="Work anxiety", summary="Panic at meetings"))
        await index.upsert(make_doc("b", content="Grief after loss"))

        results = await index.search("anxiety panic")

        assert [r.document.id for r in results] == ["a"]
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_empty_query_returns_nothing(self, index):
        await index.upsert(make_doc("a", content="anxiety"))
        assert await index.search("   ") == []

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, index):
        await index.upsert(make_doc("a", [1, 0, 0, 0]))
        with pytest.raises(ValueError, match="dimensions"):
            await index.upsert(make_doc("b", [1, 0]))

    @pytest.mark.asyncio
    async def test_persists_between_instances(self, tmp_path):
        first = FaissSearchIndex(persist_directory=str(tmp_path), timeout_seconds=5)
        await first.upsert(make_doc("a", [0, 0, 1, 0], content="sleep"))

        second = FaissSearchIndex(persist_directory=str(tmp_path), timeout_seconds=5)
        results = await second.search("", query_vector=[0, 0, 1, 0])

        assert [r.document.id for r in results] == ["a"]
        await second.upsert(make_doc("b", [0, 0, 0, 1], content="anger"))
        assert len(second) == 2


# ============================================================================
# Indexing
# ============================================================================

class TestSessionIndexing:

    def test_compose_embedding_text(self):
        summary = SessionSummary(key_points="- Anxiety increased\n- Practiced breathing")
        text = compose_embedding_text(make_session(), EXTRACTION, summary)

        assert text.splitlines() == [
            "Session: individual on 2024-03-15",
            "Concerns: Work-related anxiety",
            "Additional concerns: poor sleep, irritability",
            "Interventions: CBT, box breathing",
            "Mood: 4/10",
            "Diagnoses: Generalized anxiety disorder",
            "Progress: some_improvement",
            "Summary: - Anxiety increased",
            "- Practiced breathing",
        ]

    def test_compose_empty_extraction(self):
        assert compose_embedding_text(make_session(session_date=None), ClinicalExtraction(), None) == ""

    @pytest.mark.asyncio
    async def test_index_session(self):
        provider = FakeEmbeddingProvider()
        index = FaissSearchIndex(persist_directory="", timeout_seconds=5)
        service = SessionIndexingService(EmbeddingService(provider, timeout_seconds=1), index)

        document = await service.index_session(make_session(), EXTRACTION)

        assert document.id == "sess-1"
        assert document.patient_id == "P-1042"
        assert document.session_type == "individual"
        assert document.risk_level == "moderate"
        assert document.mood_score == 4
        assert document.interventions == ["CBT", "box breathing"]
        assert document.content_vector == [1.0, 0.0, 1.0, 0.0]
        assert len(index) == 1

        results = await index.search("", query_vector=await provider.embed_query("anxiety"))
        assert results[0].document.session_id == "sess-1"

    @pytest.mark.asyncio
    async def test_nothing_to_index(self):
        provider = FakeEmbeddingProvider()
        index = FaissSearchIndex(persist_directory="", timeout_seconds=5)
        service = SessionIndexingService(EmbeddingService(provider, timeout_seconds=1), index)

        assert await service.index_session(make_session(session_date=None), ClinicalExtraction()) is None
        assert provider.calls == []
        assert len(index) == 0
