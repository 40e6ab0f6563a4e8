"""
Business-rule validation for a ClinicalExtraction.

Pydantic already enforces types; this validator checks what types cannot:
required fields, value ranges, time consistency, and risk confidence.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from src.agent.models import ClinicalExtraction, RiskAssessment, RiskLevelOverall
from src.risk.severity import is_concerning
from src.validation.confidence import RISK_CONFIDENCE_THRESHOLD

MIN_MOOD_SCORE = 1
MAX_MOOD_SCORE = 10


class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "severity": self.severity.value}


@dataclass
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Warnings do not invalidate an extraction."""
        return not self.errors

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class SchemaValidator:
    """Validates extracted clinical data against business rules."""

    def validate(self, extraction: ClinicalExtraction) -> ValidationResult:
        issues: List[ValidationIssue] = []

        self._check_required_fields(extraction, issues)
        self._check_risk_confidence(extraction.risk_assessment, issues)
        self._check_ranges(extraction, issues)
        self._check_consistency(extraction, issues)

        return ValidationResult(issues=issues)

    def _check_required_fields(self, extraction: ClinicalExtraction, issues: List[ValidationIssue]):
        if not extraction.session_info.session_date.has_value():
            issues.append(ValidationIssue("SessionInfo.session_date", "Session date is required"))

        risk = extraction.risk_assessment
        has_indicators = any(
            is_concerning(f.value)
            for f in (risk.suicidal_ideation, risk.self_harm, risk.homicidal_ideation)
        )
        # A baseline overall level the model never scored means it was not assessed
        level = risk.risk_level_overall
        if has_indicators and not level.has_value() and level.confidence == 0:
            issues.append(ValidationIssue(
                "RiskAssessment.risk_level_overall",
                "Overall risk level is required when risk indicators are present",
            ))

    def _check_risk_confidence(self, risk: RiskAssessment, issues: List[ValidationIssue]):
        for name in ("suicidal_ideation", "self_harm", "homicidal_ideation"):
            field_ = getattr(risk, name)
            if is_concerning(field_.value) and field_.confidence < RISK_CONFIDENCE_THRESHOLD:
                issues.append(ValidationIssue(
                    f"RiskAssessment.{name}",
                    f"Risk field confidence {field_.confidence:.2f} is below threshold {RISK_CONFIDENCE_THRESHOLD}",
                    ValidationSeverity.WARNING,
                ))

        level = risk.risk_level_overall
        if level.value in (RiskLevelOverall.HIGH, RiskLevelOverall.IMMINENT) and level.confidence < RISK_CONFIDENCE_THRESHOLD:
            issues.append(ValidationIssue(
                "RiskAssessment.risk_level_overall",
                f"High/imminent risk confidence {level.confidence:.2f} is below threshold {RISK_CONFIDENCE_THRESHOLD}",
                ValidationSeverity.WARNING,
            ))

    def _check_ranges(self, extraction: ClinicalExtraction, issues: List[ValidationIssue]):
        mood = extraction.mood_assessment.self_reported_mood.value
        if mood is not None and not MIN_MOOD_SCORE <= mood <= MAX_MOOD_SCORE:
            issues.append(ValidationIssue(
                "MoodAssessment.self_reported_mood",
                f"Self-reported mood {mood} is outside valid range {MIN_MOOD_SCORE}-{MAX_MOOD_SCORE}",
            ))

        duration = extraction.session_info.session_duration_minutes.value
        if duration is not None and duration <= 0:
            issues.append(ValidationIssue(
                "SessionInfo.session_duration_minutes", "Session duration must be positive"
            ))

        number = extraction.session_info.session_number.value
        if number is not None and number <= 0:
            issues.append(ValidationIssue(
                "SessionInfo.session_number", "Session number must be positive"
            ))

    def _check_consistency(self, extraction: ClinicalExtraction, issues: List[ValidationIssue]):
        start = extraction.session_info.session_start_time.value
        end = extraction.session_info.session_end_time.value
        if start is not None and end is not None and end < start:
            issues.append(ValidationIssue(
                "SessionInfo.session_end_time", "Session end time is before start time"
            ))
