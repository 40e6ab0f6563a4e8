"""
Confidence Scoring Tool - lets the model check its own draft extraction.
"""
from typing import Any, Dict

from pydantic import ValidationError

from .base import Tool, ToolResult
from src.agent.json_utils import try_parse_confidence
from src.agent.models import ClinicalExtraction
from src.validation.confidence import ConfidenceScorer, DEFAULT_LOW_CONFIDENCE_THRESHOLD


class ScoreConfidenceTool(Tool):
    """Scores a draft extraction and lists its low-confidence fields."""

    def __init__(self, scorer: ConfidenceScorer = None):
        self._scorer = scorer or ConfidenceScorer()

    @property
    def name(self) -> str:
        return "score_confidence"

    @property
    def description(self) -> str:
        return (
            "Calculate confidence scores for a clinical extraction. Returns the overall "
            "confidence and the fields below the threshold."
        )

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "extraction": {"type": "object", "description": "The clinical extraction object to score"},
                "threshold": {
                    "type": "number",
                    "description": "Confidence threshold for flagging low-confidence fields (default 0.7)",
                },
            },
            "required": ["extraction"],
        }

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        raw = arguments.get("extraction")
        if not isinstance(raw, dict):
            return ToolResult.fail("Missing required 'extraction' parameter")

        try:
            extraction = ClinicalExtraction.model_validate(raw)
        except ValidationError as e:
            return ToolResult.fail(f"Invalid JSON input: {e.error_count()} schema error(s)")

        threshold = try_parse_confidence(arguments.get("threshold"))
        if threshold is None:
            threshold = DEFAULT_LOW_CONFIDENCE_THRESHOLD

        return ToolResult.ok(data={
            "overall_confidence": self._scorer.score(extraction),
            "low_confidence_fields": self._scorer.low_confidence_fields(extraction, threshold),
            "has_low_confidence_risk_fields": self._scorer.has_low_confidence_risk_fields(extraction),
            "threshold": threshold,
        })
