"""Persistence boundary for sessions, documents and extraction results."""
import asyncio
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import selectinload, sessionmaker

from src.agent.models import ClinicalExtraction
from src.agent.summarizer import SessionSummary
from src.database import SessionLocal, get_db
from src.logging_config import get_logger
from src.models import (
    SCHEMA_VERSION,
    DocumentStatus,
    ExtractionRecord,
    SessionDocument,
    TherapySession,
    utcnow,
)
from src.risk.merger import RiskMergeResult

logger = get_logger(__name__)


@dataclass
class SessionExtractionResult:
    """Everything the pipeline persists for one session."""
    session_id: str
    extraction: ClinicalExtraction
    models_used: List[str]
    overall_confidence: float
    requires_review: bool
    low_confidence_fields: List[str] = field(default_factory=list)
    risk: Optional[RiskMergeResult] = None
    summary: Optional[SessionSummary] = None

    @property
    def model_used(self) -> str:
        # Distinct, in first-use order
        return ", ".join(dict.fromkeys(m for m in self.models_used if m))


class SessionRepository(ABC):
    """Session storage used by the pipeline. No retries at this boundary."""

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Optional[TherapySession]:
        pass

    @abstractmethod
    async def update_document_status(
        self, session_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def save_extraction_result(self, result: SessionExtractionResult) -> int:
        """
        Persist a result and mark the session's document Completed.

        Both writes commit together or not at all; any earlier result for the
        session is replaced. Returns the record id.
        """
        pass


class SqlAlchemySessionRepository(SessionRepository):
    """
    SessionRepository over the SQLAlchemy ORM models.

    The ORM calls block, so each operation runs in a worker thread. Calls
    through one repository are serialized.
    """

    def __init__(self, session_factory: sessionmaker = None):
        self.session_factory = session_factory or SessionLocal
        self._lock = threading.Lock()

    async def get_by_id(self, session_id: str) -> Optional[TherapySession]:
        return await self._run(self._get_by_id, session_id)

    async def update_document_status(
        self, session_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        await self._run(self._update_document_status, session_id, status, error_message)
        logger.debug("document_status_updated", session_id=session_id, status=status.value)

    async def save_extraction_result(self, result: SessionExtractionResult) -> int:
        record_id = await self._run(self._save_extraction_result, result)
        logger.info(
            "extraction_result_saved",
            session_id=result.session_id,
            extraction_id=record_id,
            requires_review=result.requires_review,
        )
        return record_id

    async def _run(self, func, *args):
        return await asyncio.to_thread(self._locked, func, *args)

    def _locked(self, func, *args):
        with self._lock:
            return func(*args)

    def _get_by_id(self, session_id: str) -> Optional[TherapySession]:
        with get_db(self.session_factory) as db:
            return (
                db.query(TherapySession)
                .options(selectinload(TherapySession.document), selectinload(TherapySession.extraction))
                .filter(TherapySession.id == session_id)
                .first()
            )

    def _update_document_status(
        self, session_id: str, status: DocumentStatus, error_message: Optional[str]
    ) -> None:
        with get_db(self.session_factory) as db:
            self._set_status(db, session_id, status, error_message)

    @staticmethod
    def _set_status(db, session_id: str, status: DocumentStatus, error_message: Optional[str] = None):
        document = db.query(SessionDocument).filter(SessionDocument.session_id == session_id).first()
        if document is None:
            raise LookupError(f"Session {session_id} has no document")
        document.status = status
        document.error_message = error_message
        if status in (DocumentStatus.COMPLETED, DocumentStatus.FAILED):
            document.processed_at = utcnow()

    def _save_extraction_result(self, result: SessionExtractionResult) -> int:
        with get_db(self.session_factory) as db:
            existing = db.query(ExtractionRecord).filter(ExtractionRecord.session_id == result.session_id).first()
            if existing is not None:
                db.delete(existing)
                db.flush()

            record = ExtractionRecord(
                session_id=result.session_id,
                schema_version=SCHEMA_VERSION,
                model_used=result.model_used,
                overall_confidence=result.overall_confidence,
                requires_review=result.requires_review,
                low_confidence_fields=list(result.low_confidence_fields),
                extraction_data=result.extraction.model_dump(mode="json"),
                summary_data=result.summary.model_dump(mode="json") if result.summary else None,
            )

            if result.risk is not None:
                diagnostics = result.risk.diagnostics
                record.review_reasons = list(result.risk.review_reasons)
                record.homicidal_guardrail_applied = diagnostics.homicidal_guardrail_applied
                record.homicidal_guardrail_reason = diagnostics.homicidal_guardrail_reason
                record.self_harm_guardrail_applied = diagnostics.self_harm_guardrail_applied
                record.self_harm_guardrail_reason = diagnostics.self_harm_guardrail_reason
                record.criteria_validation_attempts = diagnostics.criteria_validation_attempts
                record.risk_discrepancy_count = len(result.risk.discrepancies)
                record.risk_field_decisions = [f.to_dict() for f in diagnostics.fields]

            db.add(record)
            self._set_status(db, result.session_id, DocumentStatus.COMPLETED)
            db.flush()
            return record.id
