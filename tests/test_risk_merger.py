"""
Risk Merger Tests

Covers:
1. Conservative merge and discrepancy records
2. Keyword guardrail escalation (never de-escalation)
3. Insufficient evidence and re-extraction-authoritative modes
4. Review determination and diagnostics
"""
import itertools

import pytest

from src.agent.models import (
    HomicidalIdeation,
    RiskAssessment,
    RiskLevelOverall,
    SelfHarm,
    SuicidalIdeation,
)
from src.risk.merger import MergeRule, ReExtractionEvidence, RiskMergeOptions, RiskMerger
from src.risk.severity import severity_rank


def make_risk(**fields) -> RiskAssessment:
    data = {}
    for name, spec in fields.items():
        if isinstance(spec, tuple):
            value, confidence = spec
            data[name] = {"value": value, "confidence": confidence}
        else:
            data[name] = spec
    return RiskAssessment.model_validate(data)


@pytest.fixture
def merger():
    return RiskMerger(RiskMergeOptions())


QUIET_NOTE = "Client discussed sleep hygiene and work stress. Denied any safety concerns."

ORDERED_RISK_FIELDS = [
    ("suicidal_ideation", SuicidalIdeation),
    ("self_harm", SelfHarm),
    ("homicidal_ideation", HomicidalIdeation),
    ("risk_level_overall", RiskLevelOverall),
]


# ============================================================================
# Conservative merge
# ============================================================================

class TestConservativeMerge:

    def test_more_severe_value_wins(self, merger):
        original = make_risk(suicidal_ideation=("none", 0.95))
        re_extracted = make_risk(suicidal_ideation=("passive", 0.92))
        note = "She said sometimes she wishes she wouldn't wake up."

        result = merger.merge(original, re_extracted, note)

        final = result.final.suicidal_ideation
        assert final.value == SuicidalIdeation.PASSIVE
        assert final.confidence == 0.92
        assert len(result.discrepancies) == 1
        discrepancy = result.discrepancies[0]
        assert discrepancy.field_name == "suicidal_ideation"
        assert discrepancy.resolution == "conservative_merge: escalated from none to passive"
        assert result.requires_review
        assert result.review_reasons[0] == "Discrepancies found in 1 field(s): suicidal_ideation"

    def test_original_kept_when_more_severe(self, merger):
        original = make_risk(self_harm=("current", 0.95), risk_level_overall=("moderate", 0.9))
        re_extracted = make_risk(self_harm=("historical", 0.93), risk_level_overall=("moderate", 0.9))

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.final.self_harm.value == SelfHarm.CURRENT
        assert result.discrepancies[0].resolution == "conservative_merge: kept current over re-extracted historical"

    def test_agreement_has_no_discrepancies(self, merger):
        original = make_risk(suicidal_ideation=("none", 0.95))
        re_extracted = make_risk(suicidal_ideation=("none", 0.97))

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.discrepancies == ()
        assert result.requires_review is False
        assert result.review_reasons == ()
        # Tie keeps the original field
        assert result.final.suicidal_ideation.confidence == 0.95

    @pytest.mark.parametrize(
        "field_name,a,b",
        [
            (field_name, a, b)
            for field_name, enum_type in ORDERED_RISK_FIELDS
            for a, b in itertools.product(enum_type, repeat=2)
        ],
    )
    def test_merge_is_symmetric_max(self, merger, field_name, a, b):
        first = merger.merge(make_risk(**{field_name: (a.value, 0.95)}), make_risk(**{field_name: (b.value, 0.95)}), QUIET_NOTE)
        second = merger.merge(make_risk(**{field_name: (b.value, 0.95)}), make_risk(**{field_name: (a.value, 0.95)}), QUIET_NOTE)

        expected = max(a, b, key=severity_rank)
        assert getattr(first.final, field_name).value == expected
        assert getattr(second.final, field_name).value == expected

    def test_final_never_less_severe_than_either_input(self, merger):
        original = make_risk(
            suicidal_ideation=("active_no_plan", 0.95),
            homicidal_ideation=("none", 0.95),
            risk_level_overall=("moderate", 0.95),
        )
        re_extracted = make_risk(
            suicidal_ideation=("passive", 0.95),
            homicidal_ideation=("passive", 0.95),
            risk_level_overall=("high", 0.95),
        )
        result = merger.merge(original, re_extracted, QUIET_NOTE)

        for name in ("suicidal_ideation", "self_harm", "homicidal_ideation", "risk_level_overall"):
            final_rank = severity_rank(getattr(result.final, name).value)
            assert final_rank >= severity_rank(getattr(original, name).value)
            assert final_rank >= severity_rank(getattr(re_extracted, name).value)

    def test_inputs_not_mutated(self, merger):
        original = make_risk(homicidal_ideation=("none", 0.95))
        re_extracted = make_risk(homicidal_ideation=("none", 0.95))
        merger.merge(original, re_extracted, "He has violent thoughts about his neighbor.")
        assert original.homicidal_ideation.value == HomicidalIdeation.NONE
        assert re_extracted.homicidal_ideation.value == HomicidalIdeation.NONE

    def test_supporting_lists_are_unioned(self, merger):
        original = make_risk(protective_factors={"value": ["Family support", "Employment"], "confidence": 0.9})
        re_extracted = make_risk(protective_factors={"value": ["family support", "Faith"], "confidence": 0.95})

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.final.protective_factors.value == ["Family support", "Employment", "Faith"]
        assert result.final.protective_factors.confidence == 0.95


# ============================================================================
# Keyword guardrail
# ============================================================================

class TestKeywordGuardrail:

    def test_homicidal_guardrail_escalates(self, merger):
        note = "Client reported thoughts of hurting someone at work, a coworker who humiliated him."
        original = make_risk(homicidal_ideation=("none", 0.95))
        re_extracted = make_risk(homicidal_ideation=("none", 0.93))

        result = merger.merge(original, re_extracted, note)

        final = result.final.homicidal_ideation
        assert final.value == HomicidalIdeation.PASSIVE
        assert final.confidence == 0.0
        assert final.source.section == "keyword_safety_net"
        assert note[final.source.start_char:final.source.end_char] == "thoughts of hurting someone"

        diagnostics = result.diagnostics
        assert diagnostics.homicidal_guardrail_applied
        assert diagnostics.guardrail_applied
        assert not diagnostics.self_harm_guardrail_applied
        hi_diag = next(d for d in diagnostics.fields if d.field_name == "homicidal_ideation")
        assert hi_diag.rule == MergeRule.KEYWORD_GUARDRAIL
        assert (
            "Homicidal keywords detected (thoughts of hurting someone) but extraction showed 'none'; "
            "escalated to 'passive'"
        ) in result.review_reasons
        assert result.requires_review

    def test_self_harm_guardrail_escalates_to_historical(self, merger):
        note = "She mentioned cutting in high school."
        result = merger.merge(make_risk(), make_risk(), note)

        assert result.final.self_harm.value == SelfHarm.HISTORICAL
        assert result.diagnostics.self_harm_guardrail_applied
        assert "cutting" in result.diagnostics.self_harm_guardrail_reason

    def test_guardrail_never_downgrades(self, merger):
        note = "Client reported cutting last night."
        original = make_risk(self_harm=("current", 0.95), risk_level_overall=("high", 0.95))
        re_extracted = make_risk(self_harm=("current", 0.96), risk_level_overall=("high", 0.95))

        result = merger.merge(original, re_extracted, note)

        assert result.final.self_harm.value == SelfHarm.CURRENT
        assert result.final.self_harm.confidence == 0.95
        assert not result.diagnostics.self_harm_guardrail_applied

    def test_disabled_safety_net_reports_mismatch(self):
        merger = RiskMerger(RiskMergeOptions(enable_keyword_safety_net=False))
        note = "He admitted violent thoughts toward his brother."

        result = merger.merge(make_risk(), make_risk(), note)

        assert result.final.homicidal_ideation.value == HomicidalIdeation.NONE
        assert not result.diagnostics.guardrail_applied
        assert result.review_reasons == (
            "Homicidal keywords detected (violent thoughts) but extraction shows 'None'",
        )

    def test_suicidal_keywords_only_flag_review(self, merger):
        note = "Client said life is not worth living lately."
        result = merger.merge(make_risk(), make_risk(), note)

        assert result.final.suicidal_ideation.value == SuicidalIdeation.NONE
        assert "Suicidal keywords detected (not worth living) but extraction shows 'None'" in result.review_reasons

    def test_keyword_matches_exposed(self, merger):
        result = merger.merge(make_risk(), make_risk(), "Talked about self-harm urges.")
        assert result.keyword_matches.self_harm_matches == ["self-harm"]


# ============================================================================
# Re-extraction modes
# ============================================================================

class TestInsufficientEvidence:

    def test_failed_re_extraction_keeps_original(self, merger):
        original = make_risk(suicidal_ideation=("passive", 0.95), risk_level_overall=("moderate", 0.92))
        evidence = ReExtractionEvidence(attempts=2, criteria_complete=False, failure="Failed to parse risk re-extraction")

        result = merger.merge(original, None, QUIET_NOTE, evidence)

        assert result.final.suicidal_ideation.value == SuicidalIdeation.PASSIVE
        assert result.re_extracted is None
        assert result.discrepancies == ()
        assert result.requires_review
        assert "Re-extraction failed: Failed to parse risk re-extraction" in result.review_reasons
        assert result.diagnostics.re_extraction_succeeded is False
        assert result.diagnostics.criteria_validation_attempts == 2
        assert all(d.rule == MergeRule.INSUFFICIENT_EVIDENCE for d in result.diagnostics.fields)

    def test_guardrail_still_runs(self, merger):
        result = merger.merge(make_risk(), None, "He wants to hurt someone.", ReExtractionEvidence(failure="timeout"))
        assert result.final.homicidal_ideation.value == HomicidalIdeation.PASSIVE
        hi_diag = next(d for d in result.diagnostics.fields if d.field_name == "homicidal_ideation")
        assert hi_diag.rule == MergeRule.KEYWORD_GUARDRAIL

    def test_incomplete_criteria_requires_review(self, merger):
        evidence = ReExtractionEvidence(attempts=2, criteria_complete=False)
        result = merger.merge(make_risk(), make_risk(), QUIET_NOTE, evidence)
        assert result.review_reasons == ("Re-extraction criteria incomplete after 2 attempt(s)",)


class TestReExtractionAuthoritative:

    def test_re_extraction_wins_even_when_less_severe(self):
        merger = RiskMerger(RiskMergeOptions(use_conservative_merge=False))
        original = make_risk(suicidal_ideation=("passive", 0.95))
        re_extracted = make_risk(suicidal_ideation=("none", 0.95))

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.final.suicidal_ideation.value == SuicidalIdeation.NONE
        assert result.discrepancies[0].resolution == "re_extraction_authoritative: changed from passive to none"
        assert result.diagnostics.fields[0].rule == MergeRule.RE_EXTRACTION_AUTHORITATIVE


# ============================================================================
# Review determination
# ============================================================================

class TestReview:

    def test_low_confidence_risk(self, merger):
        original = make_risk(self_harm=("historical", 0.8), risk_level_overall=("moderate", 0.95))
        re_extracted = make_risk(self_harm=("historical", 0.85), risk_level_overall=("moderate", 0.95))

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.review_reasons == ("One or more risk fields have confidence below 0.9 threshold",)

    def test_high_risk_and_escalated_level(self, merger):
        original = make_risk(risk_level_overall=("moderate", 0.95))
        re_extracted = make_risk(risk_level_overall=("high", 0.95))

        result = merger.merge(original, re_extracted, QUIET_NOTE)

        assert result.final.risk_level_overall.value == RiskLevelOverall.HIGH
        assert "High-risk indicators detected" in result.review_reasons
        assert "Re-extraction identified higher risk level than original extraction" in result.review_reasons

    def test_diagnostics_carry_criteria_and_sources(self, merger):
        original = make_risk(suicidal_ideation={
            "value": "passive", "confidence": 0.95, "source": {"text": "wishes she could disappear"},
        })
        re_extracted = make_risk(suicidal_ideation=("passive", 0.96))
        evidence = ReExtractionEvidence(
            criteria={"suicidal_ideation": ("passive death wish without plan",)},
            reasoning={"suicidal_ideation": "Wish to disappear without plan or intent."},
        )

        result = merger.merge(original, re_extracted, QUIET_NOTE, evidence)

        si = result.diagnostics.fields[0]
        assert si.field_name == "suicidal_ideation"
        assert si.criteria == ("passive death wish without plan",)
        assert si.reasoning == "Wish to disappear without plan or intent."
        assert si.original_source == "wishes she could disappear"
        assert si.final_source == "wishes she could disappear"
        assert [d.field_name for d in result.diagnostics.fields] == [
            "suicidal_ideation", "si_frequency", "self_harm", "homicidal_ideation", "risk_level_overall",
        ]

    def test_to_dict_is_plain(self, merger):
        result = merger.merge(make_risk(), make_risk(suicidal_ideation=("passive", 0.95)), QUIET_NOTE)
        data = result.to_dict()
        assert data["discrepancies"][0]["resolved_value"] == "passive"
        assert data["diagnostics"]["fields"][0]["rule"] == "conservative_merge"
