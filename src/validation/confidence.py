"""
Confidence scoring over a ClinicalExtraction.

Fields whose value is the type's default count as not extracted, and a
populated field with confidence 0 counts as unscored; neither contributes
to the aggregate.
"""
from typing import Iterator, List, Tuple

from src.agent.models import ClinicalExtraction, ExtractedField, RiskAssessment, RiskLevelOverall
from src.risk.severity import is_concerning

DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.7

# Fixed safety bar for risk fields; callers may only override it explicitly
RISK_CONFIDENCE_THRESHOLD = 0.9


class ConfidenceScorer:
    """Pure scoring functions over an extraction."""

    def score(self, extraction: ClinicalExtraction) -> float:
        """Mean confidence of every populated, scored field (0.0 if none)."""
        confidences = [
            field.confidence
            for _, field in self._iter_fields(extraction)
            if field.has_value() and field.confidence > 0
        ]
        if not confidences:
            return 0.0
        return sum(confidences) / len(confidences)

    def low_confidence_fields(
        self,
        extraction: ClinicalExtraction,
        threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD,
    ) -> List[str]:
        """Paths like RiskAssessment.self_harm for populated fields with 0 < confidence < threshold."""
        return [
            path
            for path, field in self._iter_fields(extraction)
            if field.has_value() and 0 < field.confidence < threshold
        ]

    def has_low_confidence_risk_fields(
        self,
        extraction: ClinicalExtraction,
        threshold: float = RISK_CONFIDENCE_THRESHOLD,
    ) -> bool:
        return self.has_low_confidence_risk(extraction.risk_assessment, threshold)

    def has_low_confidence_risk(
        self,
        risk: RiskAssessment,
        threshold: float = RISK_CONFIDENCE_THRESHOLD,
    ) -> bool:
        """
        Flag any concerning SI/SH/HI value, or a High/Imminent overall level,
        whose confidence is below the risk threshold.
        """
        for field in (risk.suicidal_ideation, risk.self_harm, risk.homicidal_ideation):
            if is_concerning(field.value) and field.confidence < threshold:
                return True

        if risk.risk_level_overall.value in (RiskLevelOverall.HIGH, RiskLevelOverall.IMMINENT):
            if risk.risk_level_overall.confidence < threshold:
                return True

        return False

    @staticmethod
    def _iter_fields(extraction: ClinicalExtraction) -> Iterator[Tuple[str, ExtractedField]]:
        for section_name, section in extraction.sections().items():
            for field_name, field in section.fields().items():
                yield f"{section_name}.{field_name}", field
