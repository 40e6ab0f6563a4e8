"""
Pipeline Orchestrator - runs one session's note through every stage.

Stages run strictly in order:
1. Parsing        - document bytes to text                      (fatal)
2. Validating     - intake decides it is a therapy note          (fatal)
3. Extracting     - nine-section clinical extraction             (fatal)
4. Assessing risk - re-extraction, conservative merge, guardrail (fatal)
5. Summarizing    - session summary                              (best-effort)
6. Indexing       - embedding + search index upsert              (best-effort)
7. Persisting     - extraction record saved, document Completed

A fatal failure marks the document Failed and persists nothing: a defaulted
extraction would show every risk field as none/low. Best-effort failures
are recorded on the result and the run still succeeds.
"""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from src.agent.extractor import ClinicalExtractionResult, ClinicalExtractorAgent
from src.agent.intake import IntakeAgent, IntakeResult
from src.agent.risk_assessor import RiskAssessmentOutcome, RiskAssessorAgent
from src.agent.summarizer import SessionSummary, SummarizerAgent
from src.agent.trajectory import Trajectory, TrajectoryLogger
from src.exceptions import DocumentValidationError, PipelineError
from src.logging_config import generate_run_id, get_logger, run_id_var
from src.models import DocumentStatus, TherapySession
from src.services.document_parser import DocumentParser, ParsedDocument, PlainTextDocumentParser
from src.services.embedding import EmbeddingService
from src.services.indexing import SessionIndexingService
from src.services.repository import SessionExtractionResult, SessionRepository, SqlAlchemySessionRepository
from src.services.search_index import FaissSearchIndex

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    LOADING = "loading"
    PARSING = "parsing"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    ASSESSING_RISK = "assessing_risk"
    SUMMARIZING = "summarizing"
    INDEXING = "indexing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class OrchestrationResult:
    """Outcome of process_session()."""
    success: bool
    session_id: str
    stage: PipelineStage
    extraction_id: Optional[int] = None
    requires_review: bool = False
    error_message: Optional[str] = None
    models_used: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    summary_error: Optional[str] = None
    indexing_error: Optional[str] = None
    trajectory: Optional[Trajectory] = None

    @property
    def model_used(self) -> str:
        return ", ".join(self.models_used)


@dataclass
class _PipelineRun:
    """Mutable state of one run; never shared between runs."""
    session_id: str
    trajectory: TrajectoryLogger
    started: float = field(default_factory=time.perf_counter)
    stage: PipelineStage = PipelineStage.LOADING
    models_used: List[str] = field(default_factory=list)
    summary_error: Optional[str] = None
    indexing_error: Optional[str] = None

    def add_model(self, model: Optional[str]):
        if model and model not in self.models_used:
            self.models_used.append(model)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


class StageFailure(Exception):
    """Wraps a fatal stage error with the stage it happened in."""

    def __init__(self, stage: PipelineStage, message: str):
        super().__init__(message)
        self.stage = stage


class PipelineOrchestrator:
    """
    Processes uploaded session notes end to end.

    Usage:
        orchestrator = PipelineOrchestrator()
        result = await orchestrator.process_session(session_id)

        if not result.success:
            print(result.stage, result.error_message)
    """

    def __init__(
        self,
        repository: SessionRepository = None,
        parser: DocumentParser = None,
        intake_agent: IntakeAgent = None,
        extractor: ClinicalExtractorAgent = None,
        risk_assessor: RiskAssessorAgent = None,
        summarizer: SummarizerAgent = None,
        indexing_service: SessionIndexingService = None,
    ):
        self.repository = repository or SqlAlchemySessionRepository()
        self.parser = parser or PlainTextDocumentParser()
        self.intake_agent = intake_agent or IntakeAgent()
        self.extractor = extractor or ClinicalExtractorAgent()
        self.risk_assessor = risk_assessor or RiskAssessorAgent()
        self.summarizer = summarizer or SummarizerAgent()
        self.indexing_service = indexing_service or SessionIndexingService(
            EmbeddingService(), FaissSearchIndex()
        )

    async def process_session(
        self, session_id: str, cancel_event: asyncio.Event = None
    ) -> OrchestrationResult:
        """
        Run the full pipeline for one session.

        Fatal stage failures are returned as success=False, never raised.
        Caller cancellation marks the document Failed and re-raises
        asyncio.CancelledError.
        """
        token = run_id_var.set(generate_run_id())
        run = _PipelineRun(
            session_id=session_id,
            trajectory=TrajectoryLogger("PipelineOrchestrator", input_summary=f"session {session_id}"),
        )
        logger.info("pipeline_started", session_id=session_id)

        try:
            session = await self.repository.get_by_id(session_id)
            if session is None:
                return self._failed(run, f"Session {session_id} not found")
            if session.document is None:
                return self._failed(run, "Session has no document uploaded")

            await self.repository.update_document_status(session_id, DocumentStatus.PROCESSING)
            try:
                return await self._run_stages(run, session, cancel_event)
            except asyncio.CancelledError:
                logger.warning("pipeline_cancelled", session_id=session_id, stage=run.stage.value)
                await self._mark_document_failed(session_id, f"Processing cancelled during {run.stage.value}")
                raise
            except StageFailure as e:
                await self._mark_document_failed(session_id, str(e))
                return self._failed(run, str(e), stage=e.stage)
        finally:
            run_id_var.reset(token)

    async def _run_stages(
        self, run: _PipelineRun, session: TherapySession, cancel_event: Optional[asyncio.Event]
    ) -> OrchestrationResult:
        document = await self._step_parse(run, session)
        intake = await self._step_validate(run, document, cancel_event)
        extracted = await self._step_extract(run, intake, cancel_event)

        note_text = document.markdown_content or document.content
        outcome = await self._step_assess_risk(run, extracted, note_text, cancel_event)
        self._apply_risk(extracted, outcome)

        summary = await self._step_summarize(run, extracted, cancel_event)
        await self._step_index(run, session, extracted, summary)

        extraction_id = await self._step_persist(run, extracted, outcome, summary)

        run.stage = PipelineStage.COMPLETED
        run.trajectory.complete(success=True)
        logger.info(
            "pipeline_completed",
            session_id=run.session_id,
            extraction_id=extraction_id,
            requires_review=extracted.requires_review,
            elapsed_ms=round(run.elapsed_ms, 1),
        )
        return OrchestrationResult(
            success=True,
            session_id=run.session_id,
            stage=PipelineStage.COMPLETED,
            extraction_id=extraction_id,
            requires_review=extracted.requires_review,
            models_used=list(run.models_used),
            elapsed_ms=run.elapsed_ms,
            summary_error=run.summary_error,
            indexing_error=run.indexing_error,
            trajectory=run.trajectory.get_trajectory(),
        )

    # =========================================================================
    # Fatal stages
    # =========================================================================

    async def _fatal_stage(self, run: _PipelineRun, stage: PipelineStage, work):
        """Run a fatal stage; any exception other than cancellation becomes StageFailure."""
        run.stage = stage
        step = run.trajectory.start_step(stage.value)
        try:
            result = await work()
        except asyncio.CancelledError:
            step.fail("cancelled", "CancelledError")
            raise
        except PipelineError as e:
            run.trajectory.fail_step(step, e)
            logger.error("pipeline_stage_failed", stage=stage.value, error=str(e), error_type=type(e).__name__)
            raise StageFailure(stage, str(e)) from e
        except Exception as e:
            run.trajectory.fail_step(step, e)
            logger.exception("pipeline_stage_crashed", stage=stage.value)
            raise StageFailure(stage, f"Unexpected error during {stage.value}: {e}") from e
        return step, result

    async def _step_parse(self, run: _PipelineRun, session: TherapySession) -> ParsedDocument:
        upload = session.document

        step, document = await self._fatal_stage(
            run, PipelineStage.PARSING, lambda: self.parser.parse(upload.file_data, upload.filename)
        )
        run.trajectory.complete_step(
            step, f"{len(document.content)} chars, {document.page_count} page(s)"
        )
        return document

    async def _step_validate(
        self, run: _PipelineRun, document: ParsedDocument, cancel_event
    ) -> IntakeResult:
        async def validate() -> IntakeResult:
            intake = await self.intake_agent.process(document, cancel_event=cancel_event)
            run.add_model(intake.model_used)
            if not intake.is_valid_therapy_note:
                raise DocumentValidationError(
                    f"Document validation failed: {intake.validation_error or 'not a therapy session note'}"
                )
            return intake

        step, intake = await self._fatal_stage(run, PipelineStage.VALIDATING, validate)
        run.trajectory.complete_step(step, intake.metadata.document_type or "therapy note")
        return intake

    async def _step_extract(
        self, run: _PipelineRun, intake: IntakeResult, cancel_event
    ) -> ClinicalExtractionResult:
        step, extracted = await self._fatal_stage(
            run, PipelineStage.EXTRACTING, lambda: self.extractor.extract(intake, cancel_event=cancel_event)
        )
        for model in extracted.models_used:
            run.add_model(model)
        run.trajectory.complete_step(
            step,
            f"confidence {extracted.overall_confidence:.2f}",
            tool_call_count=extracted.tool_call_count,
        )
        return extracted

    async def _step_assess_risk(
        self, run: _PipelineRun, extracted: ClinicalExtractionResult, note_text: str, cancel_event
    ) -> RiskAssessmentOutcome:
        step, outcome = await self._fatal_stage(
            run,
            PipelineStage.ASSESSING_RISK,
            lambda: self.risk_assessor.assess(extracted.extraction, note_text, cancel_event=cancel_event),
        )
        run.add_model(outcome.model_used)
        merge = outcome.merge
        run.trajectory.complete_step(
            step,
            f"final risk {merge.final.risk_level_overall.value.value}",
            discrepancies=len(merge.discrepancies),
            guardrail_applied=merge.diagnostics.guardrail_applied,
            requires_review=merge.requires_review,
        )
        return outcome

    @staticmethod
    def _apply_risk(extracted: ClinicalExtractionResult, outcome: RiskAssessmentOutcome):
        """Replace the risk section with the merged one and fold in its review flags."""
        merge = outcome.merge
        extraction = extracted.extraction

        extraction.risk_assessment = merge.final
        extracted.low_confidence_fields = list(extracted.low_confidence_fields) + [
            f"Risk: {reason}" for reason in merge.review_reasons
        ]
        extracted.requires_review = extracted.requires_review or merge.requires_review

        extraction.metadata.low_confidence_fields = list(extracted.low_confidence_fields)
        extraction.metadata.requires_review = extracted.requires_review

    # =========================================================================
    # Best-effort stages
    # =========================================================================

    async def _step_summarize(
        self, run: _PipelineRun, extracted: ClinicalExtractionResult, cancel_event
    ) -> Optional[SessionSummary]:
        run.stage = PipelineStage.SUMMARIZING
        step = run.trajectory.start_step(PipelineStage.SUMMARIZING.value)
        try:
            summary = await self.summarizer.summarize_session(extracted.extraction, cancel_event=cancel_event)
        except Exception as e:
            run.summary_error = str(e) or type(e).__name__
            run.trajectory.fail_step(step, e)
            logger.warning("summarization_failed", error=run.summary_error)
            return None

        run.add_model(summary.model_used)
        run.trajectory.complete_step(step, summary.one_liner[:80])
        return summary

    async def _step_index(
        self,
        run: _PipelineRun,
        session: TherapySession,
        extracted: ClinicalExtractionResult,
        summary: Optional[SessionSummary],
    ):
        run.stage = PipelineStage.INDEXING
        step = run.trajectory.start_step(PipelineStage.INDEXING.value)
        try:
            document = await self.indexing_service.index_session(session, extracted.extraction, summary)
        except Exception as e:
            run.indexing_error = str(e) or type(e).__name__
            run.trajectory.fail_step(step, e)
            logger.warning("indexing_failed", error=run.indexing_error)
            return

        if document is None:
            step.skip("nothing to index")
        else:
            run.trajectory.complete_step(step, f"indexed {document.id}")

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _step_persist(
        self,
        run: _PipelineRun,
        extracted: ClinicalExtractionResult,
        outcome: RiskAssessmentOutcome,
        summary: Optional[SessionSummary],
    ) -> int:
        result = SessionExtractionResult(
            session_id=run.session_id,
            extraction=extracted.extraction,
            models_used=list(run.models_used),
            overall_confidence=extracted.overall_confidence,
            requires_review=extracted.requires_review,
            low_confidence_fields=list(extracted.low_confidence_fields),
            risk=outcome.merge,
            summary=summary,
        )

        # Also marks the document Completed, in the same transaction
        step, extraction_id = await self._fatal_stage(
            run, PipelineStage.PERSISTING, lambda: self.repository.save_extraction_result(result)
        )
        run.trajectory.complete_step(step, f"extraction {extraction_id}")
        return extraction_id

    # =========================================================================
    # Failure handling
    # =========================================================================

    async def _mark_document_failed(self, session_id: str, error_message: str):
        try:
            await self.repository.update_document_status(session_id, DocumentStatus.FAILED, error_message)
        except Exception:
            # The run already failed; keep the original error as the result
            logger.exception("document_status_update_failed", session_id=session_id)

    @staticmethod
    def _failed(
        run: _PipelineRun, error_message: str, stage: PipelineStage = None
    ) -> OrchestrationResult:
        run.trajectory.complete(success=False, error=error_message)
        logger.error(
            "pipeline_failed",
            session_id=run.session_id,
            stage=(stage or run.stage).value,
            error=error_message,
        )
        return OrchestrationResult(
            success=False,
            session_id=run.session_id,
            stage=stage or run.stage,
            error_message=error_message,
            models_used=list(run.models_used),
            elapsed_ms=run.elapsed_ms,
            summary_error=run.summary_error,
            indexing_error=run.indexing_error,
            trajectory=run.trajectory.get_trajectory(),
        )
