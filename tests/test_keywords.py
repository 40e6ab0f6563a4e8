"""
Keyword Safety Net Tests

Covers:
1. Category detection (suicidal, self-harm, homicidal)
2. Word-boundary and case-insensitive matching
3. KeywordMatches serialization
"""
import pytest

from src.validation.keywords import KeywordMatches, KeywordSafetyNet


@pytest.fixture
def safety_net():
    return KeywordSafetyNet()


# ============================================================================
# Detection
# ============================================================================

class TestKeywordDetection:
    """Each category is detected from raw note text."""

    def test_detects_suicidal_phrase(self, safety_net):
        matches = safety_net.scan("Client stated she would be better off dead.")
        assert matches.suicidal_matches == ["better off dead"]
        assert matches.has_risk_indicators is True

    def test_detects_passive_language(self, safety_net):
        matches = safety_net.scan("He has been thinking about not being here anymore.")
        assert "not being here" in matches.suicidal_matches

    def test_detects_self_harm(self, safety_net):
        matches = safety_net.scan("History of cutting in adolescence, none in past year.")
        assert matches.self_harm_matches == ["cutting"]
        assert matches.suicidal_matches == []

    def test_detects_homicidal_thoughts(self, safety_net):
        matches = safety_net.scan("Client reports homicidal thoughts about a coworker.")
        assert matches.homicidal_matches == ["homicidal"]

    def test_multiword_phrase_and_its_parts(self, safety_net):
        matches = safety_net.scan("Sometimes I want to hurt someone when I'm angry.")
        assert "hurt someone" in matches.homicidal_matches
        assert "want to hurt someone" in matches.homicidal_matches

    def test_case_insensitive(self, safety_net):
        matches = safety_net.scan("Denies SUICIDAL ideation. Denies Self-Harm.")
        assert matches.suicidal_matches == ["suicidal"]
        assert "self-harm" in matches.self_harm_matches

    def test_clean_note_has_no_indicators(self, safety_net):
        matches = safety_net.scan("Client discussed work stress and practiced breathing exercises.")
        assert matches.has_risk_indicators is False
        assert matches.all_matches == []


# ============================================================================
# Word boundaries
# ============================================================================

class TestWordBoundaries:
    """Keywords never match inside other words."""

    def test_antisuicide_does_not_match(self, safety_net):
        matches = safety_net.scan("Staff reviewed antisuicide protocols with the team.")
        assert matches.suicidal_matches == []

    def test_suicidality_does_not_match_suicidal(self, safety_net):
        matches = safety_net.scan("Screened for suicidality.")
        assert matches.suicidal_matches == []

    def test_homicidally_not_matched(self, safety_net):
        assert safety_net.scan("nonhomicidal").homicidal_matches == []

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_text(self, safety_net, text):
        assert safety_net.scan(text) == KeywordMatches()


# ============================================================================
# Serialization
# ============================================================================

class TestKeywordMatches:

    def test_all_matches_prefixes_category(self):
        matches = KeywordMatches(
            suicidal_matches=["want to die"],
            self_harm_matches=["cutting"],
            homicidal_matches=["kill someone"],
        )
        assert matches.all_matches == [
            "suicidal:want to die",
            "self-harm:cutting",
            "homicidal:kill someone",
        ]

    def test_to_dict(self):
        matches = KeywordMatches(suicidal_matches=["suicide", "suicidal"])
        data = matches.to_dict()
        assert data["total_matches"] == 2
        assert data["has_risk_indicators"] is True
        assert data["homicidal_matches"] == []
