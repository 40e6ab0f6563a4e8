"""
Risk Merger - reconciles two independent risk extractions with the keyword
safety net.

Inputs are the risk section from the general clinical extraction, the risk
section from a focused re-extraction of the same note, and the raw note
text. For each ordered field (suicidal ideation, self-harm, homicidal
ideation, overall risk level):

1. Conservative merge keeps the more severe value (ties keep the original).
   With conservative merge disabled the re-extraction wins outright.
2. Any disagreement is recorded as a FieldDiscrepancy.
3. The keyword guardrail escalates self-harm / homicidal ideation to their
   minimum concerning level when the merged value is the baseline but the
   note contains matching danger phrases. Guardrails only escalate.
4. Every decision is recorded in RiskDiagnostics.

When the re-extraction could not be obtained, fields are decided by the
insufficient_evidence rule: the original value is kept, the guardrail still
runs, and the result always requires review.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from src.agent.models import (
    ExtractedField,
    HomicidalIdeation,
    RiskAssessment,
    RiskLevelOverall,
    SelfHarm,
    SourceMapping,
    SuicidalIdeation,
)
from src.config import settings
from src.logging_config import get_logger
from src.risk.severity import is_concerning, minimum_concerning, more_severe, severity_rank
from src.validation.confidence import RISK_CONFIDENCE_THRESHOLD, ConfidenceScorer
from src.validation.keywords import KeywordMatches, KeywordSafetyNet

logger = get_logger(__name__)

ORDERED_FIELDS: Tuple[str, ...] = (
    "suicidal_ideation",
    "self_harm",
    "homicidal_ideation",
    "risk_level_overall",
)

# Fields whose decisions are written to the diagnostic trail
DIAGNOSTIC_FIELDS: Tuple[str, ...] = (
    "suicidal_ideation",
    "si_frequency",
    "self_harm",
    "homicidal_ideation",
    "risk_level_overall",
)

_HIGH_RISK_THRESHOLDS = {
    "suicidal_ideation": SuicidalIdeation.ACTIVE_WITH_PLAN,
    "self_harm": SelfHarm.CURRENT,
    "homicidal_ideation": HomicidalIdeation.ACTIVE_NO_PLAN,
    "risk_level_overall": RiskLevelOverall.HIGH,
}


class MergeRule(str, Enum):
    CONSERVATIVE_MERGE = "conservative_merge"
    KEYWORD_GUARDRAIL = "keyword_guardrail"
    RE_EXTRACTION_AUTHORITATIVE = "re_extraction_authoritative"
    INSUFFICIENT_EVIDENCE = "insufficient_evidence"


@dataclass(frozen=True)
class RiskMergeOptions:
    always_re_extract: bool = True
    enable_keyword_safety_net: bool = True
    use_conservative_merge: bool = True
    confidence_threshold: float = RISK_CONFIDENCE_THRESHOLD

    @classmethod
    def from_settings(cls) -> "RiskMergeOptions":
        return cls(
            always_re_extract=settings.risk_always_re_extract,
            enable_keyword_safety_net=settings.risk_enable_keyword_safety_net,
            use_conservative_merge=settings.risk_use_conservative_merge,
            confidence_threshold=settings.risk_confidence_threshold,
        )


@dataclass(frozen=True)
class ReExtractionEvidence:
    """What the re-extraction stage supplied alongside its risk values."""
    criteria: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    reasoning: Dict[str, str] = field(default_factory=dict)
    attempts: int = 1
    criteria_complete: bool = True
    failure: Optional[str] = None


@dataclass(frozen=True)
class FieldDiscrepancy:
    field_name: str
    original_value: Any
    re_extracted_value: Any
    original_confidence: float
    re_extracted_confidence: float
    resolved_value: Any
    resolution: str

    def to_dict(self) -> dict:
        return {
            "field_name": self.field_name,
            "original_value": _plain(self.original_value),
            "re_extracted_value": _plain(self.re_extracted_value),
            "original_confidence": self.original_confidence,
            "re_extracted_confidence": self.re_extracted_confidence,
            "resolved_value": _plain(self.resolved_value),
            "resolution": self.resolution,
        }


@dataclass(frozen=True)
class RiskFieldDiagnostic:
    field_name: str
    original_value: Any
    re_extracted_value: Any
    final_value: Any
    original_source: Optional[str]
    re_extracted_source: Optional[str]
    final_source: Optional[str]
    rule: MergeRule
    criteria: Tuple[str, ...] = ()
    reasoning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "field_name": self.field_name,
            "original_value": _plain(self.original_value),
            "re_extracted_value": _plain(self.re_extracted_value),
            "final_value": _plain(self.final_value),
            "original_source": self.original_source,
            "re_extracted_source": self.re_extracted_source,
            "final_source": self.final_source,
            "rule": self.rule.value,
            "criteria": list(self.criteria),
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class RiskDiagnostics:
    fields: Tuple[RiskFieldDiagnostic, ...]
    homicidal_guardrail_applied: bool = False
    homicidal_guardrail_reason: Optional[str] = None
    self_harm_guardrail_applied: bool = False
    self_harm_guardrail_reason: Optional[str] = None
    criteria_validation_attempts: int = 1
    re_extraction_succeeded: bool = True

    @property
    def guardrail_applied(self) -> bool:
        return self.homicidal_guardrail_applied or self.self_harm_guardrail_applied

    def to_dict(self) -> dict:
        return {
            "fields": [f.to_dict() for f in self.fields],
            "guardrail_applied": self.guardrail_applied,
            "homicidal_guardrail_applied": self.homicidal_guardrail_applied,
            "homicidal_guardrail_reason": self.homicidal_guardrail_reason,
            "self_harm_guardrail_applied": self.self_harm_guardrail_applied,
            "self_harm_guardrail_reason": self.self_harm_guardrail_reason,
            "criteria_validation_attempts": self.criteria_validation_attempts,
            "re_extraction_succeeded": self.re_extraction_succeeded,
        }


@dataclass(frozen=True)
class RiskMergeResult:
    original: RiskAssessment
    re_extracted: Optional[RiskAssessment]
    final: RiskAssessment
    requires_review: bool
    review_reasons: Tuple[str, ...]
    discrepancies: Tuple[FieldDiscrepancy, ...]
    diagnostics: RiskDiagnostics
    keyword_matches: KeywordMatches = field(default_factory=KeywordMatches)

    def to_dict(self) -> dict:
        return {
            "original": self.original.model_dump(mode="json"),
            "re_extracted": self.re_extracted.model_dump(mode="json") if self.re_extracted else None,
            "final": self.final.model_dump(mode="json"),
            "requires_review": self.requires_review,
            "review_reasons": list(self.review_reasons),
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "diagnostics": self.diagnostics.to_dict(),
            "keyword_matches": self.keyword_matches.to_dict(),
        }


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _source_text(extracted: Optional[ExtractedField]) -> Optional[str]:
    if extracted is None or extracted.source is None:
        return None
    return extracted.source.text or None


def is_high_risk(risk: RiskAssessment) -> bool:
    return any(
        severity_rank(getattr(risk, name).value) >= severity_rank(threshold)
        for name, threshold in _HIGH_RISK_THRESHOLDS.items()
    )


class RiskMerger:
    """Combines original and re-extracted risk assessments. Stateless."""

    def __init__(
        self,
        options: Optional[RiskMergeOptions] = None,
        safety_net: Optional[KeywordSafetyNet] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ):
        self.options = options or RiskMergeOptions.from_settings()
        self.safety_net = safety_net or KeywordSafetyNet()
        self.scorer = scorer or ConfidenceScorer()

    def merge(
        self,
        original: RiskAssessment,
        re_extracted: Optional[RiskAssessment],
        note_text: str,
        evidence: Optional[ReExtractionEvidence] = None,
    ) -> RiskMergeResult:
        """
        Merge two risk assessments into the final one.

        Args:
            original: Risk section from the clinical extraction
            re_extracted: Risk section from the focused re-extraction, or None
                when it could not be obtained
            note_text: Raw note text for the keyword safety net
            evidence: Criteria, reasoning and attempt count from re-extraction

        Returns:
            Immutable RiskMergeResult
        """
        evidence = evidence or ReExtractionEvidence()
        original = original.model_copy(deep=True)
        re_extracted = re_extracted.model_copy(deep=True) if re_extracted is not None else None
        final = original.model_copy(deep=True)

        rules: Dict[str, MergeRule] = {}
        discrepancies: List[FieldDiscrepancy] = []
        review_reasons: List[str] = []

        # Ordered fields
        for name in ORDERED_FIELDS:
            chosen, rule = self._merge_ordered(name, original, re_extracted)
            setattr(final, name, chosen)
            rules[name] = rule

            if re_extracted is not None:
                orig_field = getattr(original, name)
                re_field = getattr(re_extracted, name)
                if severity_rank(orig_field.value) != severity_rank(re_field.value):
                    discrepancies.append(FieldDiscrepancy(
                        field_name=name,
                        original_value=orig_field.value,
                        re_extracted_value=re_field.value,
                        original_confidence=orig_field.confidence,
                        re_extracted_confidence=re_field.confidence,
                        resolved_value=chosen.value,
                        resolution=self._resolution(rule, orig_field.value, re_field.value, chosen.value),
                    ))

        self._merge_supporting_fields(final, original, re_extracted, rules)

        # Keyword guardrail pass
        matches = self.safety_net.scan(note_text)
        self_harm_reason = self._apply_guardrail(
            final, "self_harm", SelfHarm, "Self-harm", matches.self_harm_matches, note_text, rules
        )
        homicidal_reason = self._apply_guardrail(
            final, "homicidal_ideation", HomicidalIdeation, "Homicidal", matches.homicidal_matches, note_text, rules
        )

        # Review determination
        if discrepancies:
            names = ", ".join(d.field_name for d in discrepancies)
            review_reasons.append(f"Discrepancies found in {len(discrepancies)} field(s): {names}")

        for reason in (self_harm_reason, homicidal_reason):
            if reason:
                review_reasons.append(reason)

        review_reasons.extend(self._keyword_mismatches(final, matches, rules))

        if self.scorer.has_low_confidence_risk(final, self.options.confidence_threshold):
            review_reasons.append(
                f"One or more risk fields have confidence below {self.options.confidence_threshold:g} threshold"
            )

        if is_high_risk(final):
            review_reasons.append("High-risk indicators detected")

        if re_extracted is not None and severity_rank(re_extracted.risk_level_overall.value) > severity_rank(
            original.risk_level_overall.value
        ):
            review_reasons.append("Re-extraction identified higher risk level than original extraction")

        if re_extracted is None:
            review_reasons.append(f"Re-extraction failed: {evidence.failure or 'no usable response'}")
        elif not evidence.criteria_complete:
            review_reasons.append(
                f"Re-extraction criteria incomplete after {evidence.attempts} attempt(s)"
            )

        diagnostics = RiskDiagnostics(
            fields=tuple(
                RiskFieldDiagnostic(
                    field_name=name,
                    original_value=getattr(original, name).value,
                    re_extracted_value=getattr(re_extracted, name).value if re_extracted else None,
                    final_value=getattr(final, name).value,
                    original_source=_source_text(getattr(original, name)),
                    re_extracted_source=_source_text(getattr(re_extracted, name)) if re_extracted else None,
                    final_source=_source_text(getattr(final, name)),
                    rule=rules[name],
                    criteria=tuple(evidence.criteria.get(name, ())),
                    reasoning=evidence.reasoning.get(name),
                )
                for name in DIAGNOSTIC_FIELDS
            ),
            homicidal_guardrail_applied=homicidal_reason is not None,
            homicidal_guardrail_reason=homicidal_reason,
            self_harm_guardrail_applied=self_harm_reason is not None,
            self_harm_guardrail_reason=self_harm_reason,
            criteria_validation_attempts=evidence.attempts,
            re_extraction_succeeded=re_extracted is not None,
        )

        result = RiskMergeResult(
            original=original,
            re_extracted=re_extracted,
            final=final,
            requires_review=bool(review_reasons),
            review_reasons=tuple(review_reasons),
            discrepancies=tuple(discrepancies),
            diagnostics=diagnostics,
            keyword_matches=matches,
        )

        logger.info(
            "risk_merge_completed",
            discrepancy_count=len(discrepancies),
            guardrail_applied=diagnostics.guardrail_applied,
            requires_review=result.requires_review,
            re_extraction_succeeded=diagnostics.re_extraction_succeeded,
        )
        return result

    # ------------------------------------------------------------------
    # Field merging
    # ------------------------------------------------------------------

    def _merge_ordered(
        self,
        name: str,
        original: RiskAssessment,
        re_extracted: Optional[RiskAssessment],
    ) -> Tuple[ExtractedField, MergeRule]:
        orig_field = getattr(original, name)
        if re_extracted is None:
            return orig_field.model_copy(deep=True), MergeRule.INSUFFICIENT_EVIDENCE

        re_field = getattr(re_extracted, name)
        if not self.options.use_conservative_merge:
            return re_field.model_copy(deep=True), MergeRule.RE_EXTRACTION_AUTHORITATIVE

        winner = more_severe(orig_field.value, re_field.value)
        chosen = orig_field if winner is orig_field.value else re_field
        return chosen.model_copy(deep=True), MergeRule.CONSERVATIVE_MERGE

    def _merge_supporting_fields(
        self,
        final: RiskAssessment,
        original: RiskAssessment,
        re_extracted: Optional[RiskAssessment],
        rules: Dict[str, MergeRule],
    ) -> None:
        if re_extracted is None:
            rules["si_frequency"] = MergeRule.INSUFFICIENT_EVIDENCE
            return

        if not self.options.use_conservative_merge:
            for name in type(final).model_fields:
                if name not in ORDERED_FIELDS:
                    setattr(final, name, getattr(re_extracted, name).model_copy(deep=True))
            rules["si_frequency"] = MergeRule.RE_EXTRACTION_AUTHORITATIVE
            return

        rules["si_frequency"] = MergeRule.CONSERVATIVE_MERGE

        for name in ("si_frequency", "si_intensity"):
            orig_field, re_field = getattr(original, name), getattr(re_extracted, name)
            winner = more_severe(orig_field.value, re_field.value)
            chosen = orig_field if winner is orig_field.value else re_field
            setattr(final, name, chosen.model_copy(deep=True))

        for name in ("sh_recency", "hi_target"):
            orig_field, re_field = getattr(original, name), getattr(re_extracted, name)
            chosen = orig_field if orig_field.has_value() else re_field
            setattr(final, name, chosen.model_copy(deep=True))

        if re_extracted.safety_plan_status.confidence > 0:
            final.safety_plan_status = re_extracted.safety_plan_status.model_copy(deep=True)

        for name in ("protective_factors", "risk_factors"):
            setattr(final, name, self._union(getattr(original, name), getattr(re_extracted, name)))

        orig_means, re_means = original.means_restriction_discussed, re_extracted.means_restriction_discussed
        final.means_restriction_discussed = ExtractedField[bool](
            value=bool(orig_means.value) or bool(re_means.value),
            confidence=max(orig_means.confidence, re_means.confidence),
            source=orig_means.source or re_means.source,
        )

    @staticmethod
    def _union(a: ExtractedField, b: ExtractedField) -> ExtractedField:
        """Case-insensitive union of two list fields, first spelling wins."""
        seen = set()
        values: List[str] = []
        for item in (a.value or []) + (b.value or []):
            key = item.strip().lower()
            if key and key not in seen:
                seen.add(key)
                values.append(item)
        return ExtractedField[List[str]](
            value=values,
            confidence=max(a.confidence, b.confidence),
            source=a.source or b.source,
        )

    @staticmethod
    def _resolution(rule: MergeRule, original: Any, re_extracted: Any, resolved: Any) -> str:
        if rule == MergeRule.RE_EXTRACTION_AUTHORITATIVE:
            return f"{rule.value}: changed from {_plain(original)} to {_plain(resolved)}"
        if severity_rank(resolved) > severity_rank(original):
            return f"{rule.value}: escalated from {_plain(original)} to {_plain(resolved)}"
        return f"{rule.value}: kept {_plain(original)} over re-extracted {_plain(re_extracted)}"

    # ------------------------------------------------------------------
    # Guardrails
    # ------------------------------------------------------------------

    def _apply_guardrail(
        self,
        final: RiskAssessment,
        name: str,
        enum_type: type,
        category: str,
        keyword_hits: List[str],
        note_text: str,
        rules: Dict[str, MergeRule],
    ) -> Optional[str]:
        """Escalate a baseline value when keywords matched. Returns the reason if applied."""
        if not self.options.enable_keyword_safety_net or not keyword_hits:
            return None

        current = getattr(final, name)
        if is_concerning(current.value):
            return None

        escalated = minimum_concerning(enum_type)
        setattr(final, name, ExtractedField[enum_type](
            value=escalated,
            confidence=0.0,
            source=self._keyword_source(note_text, keyword_hits[0]),
        ))
        rules[name] = MergeRule.KEYWORD_GUARDRAIL

        reason = (
            f"{category} keywords detected ({', '.join(keyword_hits)}) but extraction showed "
            f"'{_plain(current.value)}'; escalated to '{escalated.value}'"
        )
        logger.warning("keyword_guardrail_applied", field=name, escalated_to=escalated.value)
        return reason

    def _keyword_mismatches(
        self,
        final: RiskAssessment,
        matches: KeywordMatches,
        rules: Dict[str, MergeRule],
    ) -> List[str]:
        """Review reasons for keyword hits the guardrail did not resolve."""
        reasons = []
        checks = (
            ("suicidal_ideation", "Suicidal", matches.suicidal_matches),
            ("self_harm", "Self-harm", matches.self_harm_matches),
            ("homicidal_ideation", "Homicidal", matches.homicidal_matches),
        )
        for name, category, hits in checks:
            if hits and rules.get(name) != MergeRule.KEYWORD_GUARDRAIL and not is_concerning(getattr(final, name).value):
                reasons.append(
                    f"{category} keywords detected ({', '.join(hits)}) but extraction shows 'None'"
                )
        return reasons

    @staticmethod
    def _keyword_source(note_text: str, keyword: str) -> SourceMapping:
        match = re.search(r"\b" + re.escape(keyword) + r"\b", note_text, re.IGNORECASE)
        if match is None:
            return SourceMapping(text=keyword, section="keyword_safety_net")
        return SourceMapping(
            text=match.group(0),
            start_char=match.start(),
            end_char=match.end(),
            section="keyword_safety_net",
        )
