"""Makes processed sessions searchable."""
from typing import List, Optional

from src.agent.models import ClinicalExtraction
from src.agent.summarizer import SessionSummary
from src.logging_config import get_logger
from src.models import TherapySession
from src.services.embedding import EmbeddingService
from src.services.search_index import SearchIndex, SessionSearchDocument

logger = get_logger(__name__)


def _label(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", str(value))


def compose_embedding_text(
    session: TherapySession, extraction: ClinicalExtraction, summary: Optional[SessionSummary]
) -> str:
    """Text embedded for a session: the fields clinicians search by."""
    lines: List[str] = []

    session_type = _label(extraction.session_info.session_type.value) or "session"
    if session.session_date:
        lines.append(f"Session: {session_type} on {session.session_date:%Y-%m-%d}")

    concerns = extraction.presenting_concerns
    if concerns.primary_concern.value and concerns.primary_concern.value.strip():
        lines.append(f"Concerns: {concerns.primary_concern.value}")
    if concerns.secondary_concerns.value:
        lines.append(f"Additional concerns: {', '.join(concerns.secondary_concerns.value)}")

    techniques = extraction.interventions.techniques_used.value
    if techniques:
        lines.append(f"Interventions: {', '.join(techniques)}")

    mood = extraction.mood_assessment.self_reported_mood.value
    if mood:
        lines.append(f"Mood: {mood}/10")

    diagnosis = extraction.diagnoses.primary_diagnosis.value
    if diagnosis and diagnosis.strip():
        lines.append(f"Diagnoses: {diagnosis}")

    progress = extraction.treatment_progress.progress_rating_overall.value
    if progress is not None:
        lines.append(f"Progress: {_label(progress)}")

    if summary is not None and summary.key_points.strip():
        lines.append(f"Summary: {summary.key_points}")

    return "\n".join(lines).strip()


class SessionIndexingService:
    """Embeds a processed session and upserts it into the search index."""

    def __init__(self, embedding_service: EmbeddingService, search_index: SearchIndex):
        self.embedding_service = embedding_service
        self.search_index = search_index

    async def index_session(
        self,
        session: TherapySession,
        extraction: ClinicalExtraction,
        summary: Optional[SessionSummary] = None,
    ) -> Optional[SessionSearchDocument]:
        """
        Index one session.

        Returns:
            The indexed document, or None when there was nothing to index
        """
        text = compose_embedding_text(session, extraction, summary)
        if not text:
            logger.warning("session_index_skipped_empty", session_id=session.id)
            return None

        embedding = await self.embedding_service.generate_embedding(text)
        mood = extraction.mood_assessment.self_reported_mood.value

        document = SessionSearchDocument(
            id=str(session.id),
            session_id=str(session.id),
            patient_id=str(session.patient_id),
            session_date=session.session_date,
            session_type=_label(extraction.session_info.session_type.value),
            content=extraction.presenting_concerns.primary_concern.value,
            summary=summary.key_points if summary else None,
            primary_diagnosis=extraction.diagnoses.primary_diagnosis.value,
            interventions=list(extraction.interventions.techniques_used.value or []),
            risk_level=_label(extraction.risk_assessment.risk_level_overall.value),
            mood_score=mood if mood else None,
            content_vector=embedding,
        )
        await self.search_index.upsert(document)

        logger.info("session_indexed", session_id=session.id, dimensions=len(embedding))
        return document
