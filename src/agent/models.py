"""
Pydantic models for structured therapy-session extraction.

A ClinicalExtraction has nine fixed sections. Every section field is an
ExtractedField carrying the extracted value, the model's confidence and an
optional source span in the note:

- SessionInfo → date, times, type, modality
- PresentingConcerns → primary/secondary concerns and severity
- MoodAssessment → self-reported mood, affect, energy
- RiskAssessment → suicidal/self-harm/homicidal ideation and overall risk
- MentalStatusExam → appearance, speech, thought process, insight
- Interventions → techniques, skills, homework, medications
- Diagnoses → primary/secondary diagnoses and ICD-10 codes
- TreatmentProgress → goals and progress rating
- NextSteps → follow-up plan, referrals, level of care
"""
import re
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from src.agent.json_utils import try_parse_confidence

T = TypeVar("T")


# ============================================================================
# Enums
# ============================================================================

class ClinicalEnum(str, Enum):
    """String enum that accepts the spelling variants models tend to emit."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = re.sub(r"[^a-z]", "", value.lower())
            for member in cls:
                if re.sub(r"[^a-z]", "", member.value) == key:
                    return member
        return None


class SuicidalIdeation(ClinicalEnum):
    NONE = "none"
    PASSIVE = "passive"
    ACTIVE_NO_PLAN = "active_no_plan"
    ACTIVE_WITH_PLAN = "active_with_plan"
    ACTIVE_WITH_INTENT = "active_with_intent"


class SelfHarm(ClinicalEnum):
    NONE = "none"
    HISTORICAL = "historical"
    CURRENT = "current"
    IMMINENT = "imminent"


class HomicidalIdeation(ClinicalEnum):
    NONE = "none"
    PASSIVE = "passive"
    ACTIVE_NO_PLAN = "active_no_plan"
    ACTIVE_WITH_PLAN = "active_with_plan"


class RiskLevelOverall(ClinicalEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    IMMINENT = "imminent"


class SiFrequency(ClinicalEnum):
    RARE = "rare"
    OCCASIONAL = "occasional"
    FREQUENT = "frequent"
    CONSTANT = "constant"


class SiIntensity(ClinicalEnum):
    FLEETING = "fleeting"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class SafetyPlanStatus(ClinicalEnum):
    NOT_NEEDED = "not_needed"
    IN_PLACE = "in_place"
    NEEDS_UPDATE = "needs_update"
    NEEDS_CREATION = "needs_creation"
    DECLINED = "declined"


class SessionType(ClinicalEnum):
    INTAKE = "intake"
    INDIVIDUAL = "individual"
    GROUP = "group"
    FAMILY = "family"
    COUPLES = "couples"
    CRISIS = "crisis"
    ASSESSMENT = "assessment"
    TERMINATION = "termination"


class SessionModality(ClinicalEnum):
    IN_PERSON = "in_person"
    TELEHEALTH_VIDEO = "telehealth_video"
    TELEHEALTH_PHONE = "telehealth_phone"


class ConcernSeverity(ClinicalEnum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    CRISIS = "crisis"


class ProgressRatingOverall(ClinicalEnum):
    SIGNIFICANT_IMPROVEMENT = "significant_improvement"
    SOME_IMPROVEMENT = "some_improvement"
    STABLE = "stable"
    SOME_REGRESSION = "some_regression"
    SIGNIFICANT_REGRESSION = "significant_regression"


class LevelOfCareRecommendation(ClinicalEnum):
    OUTPATIENT = "outpatient"
    INTENSIVE_OUTPATIENT = "intensive_outpatient"
    PARTIAL_HOSPITALIZATION = "partial_hospitalization"
    INPATIENT = "inpatient"
    RESIDENTIAL = "residential"


class InsightLevel(ClinicalEnum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    ABSENT = "absent"


class JudgmentLevel(ClinicalEnum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    IMPAIRED = "impaired"


# Enum members that mean "nothing was extracted" for that field type
ENUM_DEFAULTS: Dict[type, Enum] = {
    SuicidalIdeation: SuicidalIdeation.NONE,
    SelfHarm: SelfHarm.NONE,
    HomicidalIdeation: HomicidalIdeation.NONE,
    RiskLevelOverall: RiskLevelOverall.LOW,
}


# ============================================================================
# Field wrapper
# ============================================================================

class SourceMapping(BaseModel):
    """Span of the note that supports an extracted value."""
    text: str = ""
    start_char: int = 0
    end_char: int = 0
    section: Optional[str] = None


def is_default_value(value: Any) -> bool:
    """True when a value is its type's zero/default and so counts as not extracted."""
    if value is None or value is False:
        return True
    if isinstance(value, Enum):
        return ENUM_DEFAULTS.get(type(value)) is value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (str, list, dict, tuple, set)):
        return len(value) == 0
    return False


class ExtractedField(BaseModel, Generic[T]):
    """A single extracted value with confidence and provenance."""
    value: Optional[T] = None
    confidence: float = Field(0.0, description="Model confidence in [0, 1]")
    source: Optional[SourceMapping] = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_value(cls, data: Any) -> Any:
        # Models sometimes emit the bare value instead of {value, confidence}.
        # An empty dict is an unset field, not a bare value.
        if isinstance(data, dict) and (not data or data.keys() & {"value", "confidence", "source"}):
            return data
        if isinstance(data, BaseModel):
            return data
        return {"value": data, "confidence": 0.0}

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        parsed = try_parse_confidence(value)
        return parsed if parsed is not None else 0.0

    def has_value(self) -> bool:
        return not is_default_value(self.value)


def _field(value_type, default=None):
    model = ExtractedField[value_type]
    if default is None:
        return Field(default_factory=model)
    return Field(default_factory=lambda: model(value=default))


# ============================================================================
# Sections
# ============================================================================

class SectionModel(BaseModel):
    """Base for the nine extraction sections."""
    model_config = {"extra": "ignore"}

    def fields(self) -> Dict[str, ExtractedField]:
        """Field name → ExtractedField, in declaration order."""
        return {name: getattr(self, name) for name in type(self).model_fields}


class SessionInfo(SectionModel):
    patient_id: ExtractedField[str] = _field(str)
    session_date: ExtractedField[date] = _field(date)
    session_start_time: ExtractedField[time] = _field(time)
    session_end_time: ExtractedField[time] = _field(time)
    session_duration_minutes: ExtractedField[int] = _field(int)
    session_type: ExtractedField[SessionType] = _field(SessionType)
    session_number: ExtractedField[int] = _field(int)
    session_modality: ExtractedField[SessionModality] = _field(SessionModality)
    therapist_id: ExtractedField[str] = _field(str)


class PresentingConcerns(SectionModel):
    primary_concern: ExtractedField[str] = _field(str)
    primary_concern_category: ExtractedField[str] = _field(str)
    secondary_concerns: ExtractedField[List[str]] = _field(List[str])
    concern_severity: ExtractedField[ConcernSeverity] = _field(ConcernSeverity)
    concern_duration: ExtractedField[str] = _field(str)
    new_this_session: ExtractedField[bool] = _field(bool)
    trigger_events: ExtractedField[List[str]] = _field(List[str])


class MoodAssessment(SectionModel):
    self_reported_mood: ExtractedField[int] = _field(int)
    observed_affect: ExtractedField[str] = _field(str)
    affect_congruence: ExtractedField[str] = _field(str)
    mood_change_from_last: ExtractedField[str] = _field(str)
    mood_variability: ExtractedField[str] = _field(str)
    energy_level: ExtractedField[str] = _field(str)
    emotional_themes: ExtractedField[List[str]] = _field(List[str])


class RiskAssessment(SectionModel):
    """Risk section. The four ordered fields always hold a concrete member."""
    suicidal_ideation: ExtractedField[SuicidalIdeation] = _field(SuicidalIdeation, SuicidalIdeation.NONE)
    si_frequency: ExtractedField[SiFrequency] = _field(SiFrequency)
    si_intensity: ExtractedField[SiIntensity] = _field(SiIntensity)
    self_harm: ExtractedField[SelfHarm] = _field(SelfHarm, SelfHarm.NONE)
    sh_recency: ExtractedField[str] = _field(str)
    homicidal_ideation: ExtractedField[HomicidalIdeation] = _field(HomicidalIdeation, HomicidalIdeation.NONE)
    hi_target: ExtractedField[str] = _field(str)
    safety_plan_status: ExtractedField[SafetyPlanStatus] = _field(SafetyPlanStatus)
    protective_factors: ExtractedField[List[str]] = _field(List[str])
    risk_factors: ExtractedField[List[str]] = _field(List[str])
    means_restriction_discussed: ExtractedField[bool] = _field(bool)
    risk_level_overall: ExtractedField[RiskLevelOverall] = _field(RiskLevelOverall, RiskLevelOverall.LOW)

    @model_validator(mode="after")
    def _fill_ordered_defaults(self) -> "RiskAssessment":
        for name, default in (
            ("suicidal_ideation", SuicidalIdeation.NONE),
            ("self_harm", SelfHarm.NONE),
            ("homicidal_ideation", HomicidalIdeation.NONE),
            ("risk_level_overall", RiskLevelOverall.LOW),
        ):
            field = getattr(self, name)
            if field.value is None:
                field.value = default
        return self


class MentalStatusExam(SectionModel):
    appearance: ExtractedField[str] = _field(str)
    behavior: ExtractedField[str] = _field(str)
    speech: ExtractedField[str] = _field(str)
    thought_process: ExtractedField[str] = _field(str)
    thought_content: ExtractedField[List[str]] = _field(List[str])
    perception: ExtractedField[List[str]] = _field(List[str])
    cognition: ExtractedField[str] = _field(str)
    insight: ExtractedField[InsightLevel] = _field(InsightLevel)
    judgment: ExtractedField[JudgmentLevel] = _field(JudgmentLevel)


class Interventions(SectionModel):
    techniques_used: ExtractedField[List[str]] = _field(List[str])
    techniques_effectiveness: ExtractedField[str] = _field(str)
    skills_taught: ExtractedField[List[str]] = _field(List[str])
    skills_practiced: ExtractedField[List[str]] = _field(List[str])
    homework_assigned: ExtractedField[str] = _field(str)
    homework_completion: ExtractedField[str] = _field(str)
    medications_discussed: ExtractedField[List[str]] = _field(List[str])
    medication_changes: ExtractedField[str] = _field(str)
    medication_adherence: ExtractedField[str] = _field(str)


class Diagnoses(SectionModel):
    primary_diagnosis: ExtractedField[str] = _field(str)
    primary_diagnosis_code: ExtractedField[str] = _field(str)
    secondary_diagnoses: ExtractedField[List[str]] = _field(List[str])
    secondary_diagnosis_codes: ExtractedField[List[str]] = _field(List[str])
    rule_outs: ExtractedField[List[str]] = _field(List[str])
    diagnosis_changes: ExtractedField[str] = _field(str)


class TreatmentProgress(SectionModel):
    treatment_goals: ExtractedField[List[str]] = _field(List[str])
    goals_addressed: ExtractedField[List[str]] = _field(List[str])
    goal_progress: ExtractedField[Dict[str, str]] = _field(Dict[str, str])
    progress_rating_overall: ExtractedField[ProgressRatingOverall] = _field(ProgressRatingOverall)
    barriers_identified: ExtractedField[List[str]] = _field(List[str])
    strengths_observed: ExtractedField[List[str]] = _field(List[str])
    treatment_phase: ExtractedField[str] = _field(str)


class NextSteps(SectionModel):
    next_session_date: ExtractedField[date] = _field(date)
    next_session_frequency: ExtractedField[str] = _field(str)
    next_session_focus: ExtractedField[str] = _field(str)
    referrals_made: ExtractedField[List[str]] = _field(List[str])
    referral_types: ExtractedField[List[str]] = _field(List[str])
    coordination_needed: ExtractedField[List[str]] = _field(List[str])
    level_of_care_recommendation: ExtractedField[LevelOfCareRecommendation] = _field(LevelOfCareRecommendation)
    discharge_planning: ExtractedField[str] = _field(str)


class ExtractionMetadata(BaseModel):
    """Audit metadata attached to a completed extraction."""
    extraction_timestamp: Optional[datetime] = None
    extraction_model: str = ""
    extraction_version: str = "1.0.0"
    overall_confidence: float = 0.0
    low_confidence_fields: List[str] = Field(default_factory=list)
    requires_review: bool = False
    notes: Optional[str] = None


# Attribute name → display name used in "Section.field" paths
SECTION_NAMES: Dict[str, str] = {
    "session_info": "SessionInfo",
    "presenting_concerns": "PresentingConcerns",
    "mood_assessment": "MoodAssessment",
    "risk_assessment": "RiskAssessment",
    "mental_status_exam": "MentalStatusExam",
    "interventions": "Interventions",
    "diagnoses": "Diagnoses",
    "treatment_progress": "TreatmentProgress",
    "next_steps": "NextSteps",
}


class ClinicalExtraction(BaseModel):
    """Complete structured extraction of one therapy-session note."""
    session_info: SessionInfo = Field(default_factory=SessionInfo)
    presenting_concerns: PresentingConcerns = Field(default_factory=PresentingConcerns)
    mood_assessment: MoodAssessment = Field(default_factory=MoodAssessment)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    mental_status_exam: MentalStatusExam = Field(default_factory=MentalStatusExam)
    interventions: Interventions = Field(default_factory=Interventions)
    diagnoses: Diagnoses = Field(default_factory=Diagnoses)
    treatment_progress: TreatmentProgress = Field(default_factory=TreatmentProgress)
    next_steps: NextSteps = Field(default_factory=NextSteps)
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)

    model_config = {"extra": "ignore"}

    def sections(self) -> Dict[str, SectionModel]:
        """Display name → section, in fixed order."""
        return {display: getattr(self, attr) for attr, display in SECTION_NAMES.items()}
