"""
Intake Agent - decides whether a parsed document is a therapy session note
and pulls basic metadata from it.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from src.agent.json_utils import parse_json_object
from src.agent.loop import AgentLoop
from src.agent.router import ModelRouter, ModelTask
from src.logging_config import get_logger
from src.providers.llm.base import LLMProvider, system_message, user_message
from src.providers.llm.factory import LLMFactory
from src.services.document_parser import ParsedDocument

logger = get_logger(__name__)

PREVIEW_CHARS = 8000

INTAKE_SYSTEM_PROMPT = '''You are a document intake specialist for a mental health clinical documentation system.
Determine whether the document is a valid therapy/counseling session note and extract basic metadata.

A valid therapy session note typically references a client session, contains clinical observations,
has a session date, and is written from the clinician's perspective. Administrative forms, billing
documents, generic health records without therapy content and personal correspondence are NOT valid.

Respond ONLY with a JSON object:
{
  "is_valid_therapy_note": true/false,
  "validation_error": "reason if not valid, otherwise null",
  "document_type": "Session Note|Progress Report|Assessment|Treatment Plan|Other",
  "session_date": "YYYY-MM-DD or null",
  "patient_id": "string or null",
  "therapist_name": "string or null",
  "language": "en|es|fr|...",
  "estimated_word_count": number
}'''

INTAKE_USER_PROMPT = '''Analyze the following document and extract metadata:

---
{preview}
---

Document metadata:
- Page count: {page_count}
- File format: {file_format}
- Extraction confidence: {confidence:.0f}%

Respond with JSON only.'''


@dataclass
class IntakeMetadata:
    document_type: str = ""
    session_date: Optional[date] = None
    patient_id: Optional[str] = None
    therapist_name: Optional[str] = None
    language: str = "en"
    estimated_word_count: int = 0


@dataclass
class IntakeResult:
    document: ParsedDocument
    is_valid_therapy_note: bool
    model_used: str
    validation_error: Optional[str] = None
    metadata: IntakeMetadata = field(default_factory=IntakeMetadata)


class IntakeAgent:
    """Validates a document before any extraction model sees it."""

    def __init__(self, llm: LLMProvider = None, router: ModelRouter = None):
        self._llm = llm
        self.router = router or ModelRouter()

    @property
    def llm(self) -> LLMProvider:
        """Lazy-load LLM provider."""
        if self._llm is None:
            self._llm = LLMFactory.create(self.router.select_model(ModelTask.DOCUMENT_INTAKE))
        return self._llm

    async def process(self, document: ParsedDocument, cancel_event=None) -> IntakeResult:
        """
        Classify a parsed document.

        Args:
            document: Parsed note text

        Returns:
            IntakeResult; is_valid_therapy_note is False with a reason when rejected
        """
        model = self.llm.get_model_name()
        preview = document.content
        if len(preview) > PREVIEW_CHARS:
            preview = preview[:PREVIEW_CHARS] + "\n[...truncated...]"

        messages = [
            system_message(INTAKE_SYSTEM_PROMPT),
            user_message(INTAKE_USER_PROMPT.format(
                preview=preview,
                page_count=document.page_count,
                file_format=document.file_format,
                confidence=document.confidence * 100,
            )),
        ]

        result = await AgentLoop(self.llm).run(messages, temperature=0.1, cancel_event=cancel_event)
        if not result.is_complete:
            return IntakeResult(document, False, model, f"Intake incomplete: {result.partial_reason}")

        try:
            data = parse_json_object(result.content or "")
        except ValueError:
            logger.warning("intake_parse_failed", model=model)
            return IntakeResult(document, False, model, "Failed to parse intake response")

        metadata = IntakeMetadata(
            document_type=data.get("document_type") or "",
            session_date=self._parse_date(data.get("session_date")),
            patient_id=data.get("patient_id"),
            therapist_name=data.get("therapist_name"),
            language=data.get("language") or "en",
            estimated_word_count=self._parse_int(data.get("estimated_word_count")),
        )

        is_valid = bool(data.get("is_valid_therapy_note"))
        logger.info("intake_completed", model=model, is_valid=is_valid, document_type=metadata.document_type)
        return IntakeResult(
            document=document,
            is_valid_therapy_note=is_valid,
            model_used=result.model or model,
            validation_error=None if is_valid else (data.get("validation_error") or "Not a therapy session note"),
            metadata=metadata,
        )

    @staticmethod
    def _parse_date(value) -> Optional[date]:
        if not value:
            return None
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            return None

    @staticmethod
    def _parse_int(value) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0
