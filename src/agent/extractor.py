"""
Clinical Extractor Agent - structured extraction of a therapy session note.

Runs the agent loop with the extraction tools so the model can scan for risk
keywords, look up diagnosis codes, and validate/score its draft before it
answers. The final answer must be a ClinicalExtraction JSON object; anything
else fails the stage rather than producing a defaulted extraction.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, List, Optional, get_args, get_origin

from pydantic import ValidationError

from src.agent.intake import IntakeResult
from src.agent.json_utils import parse_json_object
from src.agent.loop import AgentLoop
from src.agent.models import ClinicalExtraction, SECTION_NAMES
from src.agent.router import ModelRouter, ModelTask
from src.agent.tools import (
    CheckRiskKeywordsTool,
    LookupDiagnosisCodeTool,
    ScoreConfidenceTool,
    ToolExecutor,
    ValidateSchemaTool,
)
from src.exceptions import ExtractionError, ExtractionParseError
from src.logging_config import get_logger
from src.providers.llm.base import LLMProvider, system_message, user_message
from src.providers.llm.factory import LLMFactory
from src.validation.confidence import ConfidenceScorer
from src.validation.schema_validator import SchemaValidator

logger = get_logger(__name__)

EXTRACTION_VERSION = "1.0.0"

EXTRACTION_SYSTEM_PROMPT = '''You are a clinical extraction specialist for therapy session notes.
Extract structured data accurately and only from what the note states.

Tools:
- check_risk_keywords: scan the note before finalizing risk fields
- lookup_diagnosis_code: verify or find ICD-10 codes for diagnoses
- validate_schema / score_confidence: check your draft before answering

Every field is an object: {{"value": ..., "confidence": 0.0-1.0, "source": {{"text": "quoted span"}}}}.
Use null for values not present in the note. Never guess risk values: if risk is not discussed,
use "none" with a confidence reflecting that absence.

Return ONLY a JSON object with these sections and fields:
{schema}'''

EXTRACTION_USER_PROMPT = '''Therapy session note:

{note}'''


_TYPE_HINTS = {date: "YYYY-MM-DD", time: "HH:MM", int: "integer", bool: "true/false", str: "string"}


def _describe_type(field_model: Any) -> str:
    """Short type hint for the prompt, listing enum choices."""
    # value is Optional[X]; the first arg is X
    value_type = get_args(field_model.model_fields["value"].annotation)[0]
    if isinstance(value_type, type) and issubclass(value_type, Enum):
        return " | ".join(m.value for m in value_type)
    if value_type in _TYPE_HINTS:
        return _TYPE_HINTS[value_type]
    origin = get_origin(value_type)
    if origin is list:
        return "list of strings"
    if origin is dict:
        return "object of string to string"
    return str(value_type)


def build_schema_outline() -> str:
    """Render the section/field layout of ClinicalExtraction for the prompt."""
    outline = {}
    for attr in SECTION_NAMES:
        section_type = ClinicalExtraction.model_fields[attr].annotation
        outline[attr] = {
            name: _describe_type(info.annotation)
            for name, info in section_type.model_fields.items()
        }
    return json.dumps(outline, indent=2)


@dataclass
class ClinicalExtractionResult:
    extraction: ClinicalExtraction
    overall_confidence: float
    requires_review: bool
    low_confidence_fields: List[str] = field(default_factory=list)
    models_used: List[str] = field(default_factory=list)
    tool_call_count: int = 0


class ClinicalExtractorAgent:
    """Extracts the nine-section ClinicalExtraction from note text."""

    def __init__(
        self,
        llm: LLMProvider = None,
        router: ModelRouter = None,
        validator: SchemaValidator = None,
        scorer: ConfidenceScorer = None,
    ):
        self._llm = llm
        self.router = router or ModelRouter()
        self.validator = validator or SchemaValidator()
        self.scorer = scorer or ConfidenceScorer()

    @property
    def llm(self) -> LLMProvider:
        """Lazy-load LLM provider."""
        if self._llm is None:
            self._llm = LLMFactory.create(self.router.select_model(ModelTask.EXTRACTION))
        return self._llm

    async def extract(self, intake: IntakeResult, cancel_event=None) -> ClinicalExtractionResult:
        """
        Extract structured data from an accepted document.

        Raises:
            ExtractionError: If the agent loop ended without a final answer
            ExtractionParseError: If the final answer is not a valid extraction
        """
        note_text = intake.document.markdown_content or intake.document.content
        diagnosis_lookup = LookupDiagnosisCodeTool()
        executor = ToolExecutor([
            CheckRiskKeywordsTool(),
            ValidateSchemaTool(self.validator),
            ScoreConfidenceTool(self.scorer),
            diagnosis_lookup,
        ])

        messages = [
            system_message(EXTRACTION_SYSTEM_PROMPT.format(schema=build_schema_outline())),
            user_message(EXTRACTION_USER_PROMPT.format(note=note_text)),
        ]

        try:
            result = await AgentLoop(self.llm, executor).run(
                messages,
                response_format="json_object",
                temperature=0.1,
                cancel_event=cancel_event,
            )
        finally:
            await diagnosis_lookup.close()

        if not result.is_complete:
            raise ExtractionError(f"Extraction incomplete: {result.partial_reason}")

        extraction = self._parse(result.content)
        model = result.model or self.llm.get_model_name()

        validation = self.validator.validate(extraction)
        confidence = self.scorer.score(extraction)
        low_confidence = self.scorer.low_confidence_fields(extraction)
        has_low_confidence_risk = self.scorer.has_low_confidence_risk_fields(extraction)

        extraction.metadata.extraction_timestamp = datetime.now(timezone.utc)
        extraction.metadata.extraction_model = model
        extraction.metadata.extraction_version = EXTRACTION_VERSION
        extraction.metadata.overall_confidence = confidence
        extraction.metadata.low_confidence_fields = low_confidence
        extraction.metadata.requires_review = not validation.is_valid or has_low_confidence_risk

        logger.info(
            "clinical_extraction_completed",
            model=model,
            confidence=round(confidence, 3),
            requires_review=extraction.metadata.requires_review,
            validation_errors=len(validation.errors),
            tool_call_count=result.tool_call_count,
        )

        return ClinicalExtractionResult(
            extraction=extraction,
            overall_confidence=confidence,
            requires_review=extraction.metadata.requires_review,
            low_confidence_fields=low_confidence,
            models_used=[model],
            tool_call_count=result.tool_call_count,
        )

    @staticmethod
    def _parse(content: Optional[str]) -> ClinicalExtraction:
        if not content or not content.strip():
            raise ExtractionParseError("Extraction response was empty")
        try:
            data = parse_json_object(content)
            return ClinicalExtraction.model_validate(data)
        except ValidationError as e:
            raise ExtractionParseError(
                f"Extraction response did not match schema: {e.error_count()} error(s)"
            ) from e
        except ValueError as e:
            raise ExtractionParseError(f"Failed to parse extraction response as JSON: {e}") from e
