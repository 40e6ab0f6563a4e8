"""
Keyword safety net for risk detection.

Scans raw note text for known danger phrases independently of any model
output. Matching is case-insensitive and bounded by word boundaries, so
"suicide" does not match inside "antisuicide" and multi-word phrases only
match contiguously.
"""
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Sequence, Tuple

SUICIDAL_KEYWORDS: Tuple[str, ...] = (
    "suicide",
    "suicidal",
    "kill myself",
    "end my life",
    "not worth living",
    "want to die",
    "better off dead",
    "no reason to live",
    "end it all",
    "take my own life",
    "not be here",
    "not being here",
    "wouldn't wake up",
    "wish I was dead",
)

SELF_HARM_KEYWORDS: Tuple[str, ...] = (
    "self-harm",
    "self harm",
    "cutting",
    "hurt myself",
    "burning myself",
    "scratching",
    "self-injury",
    "hurting myself",
    "harming myself",
    "cut myself",
    "burned myself",
    "attempted overdose",
    "overdose attempt",
    "overdosed",
)

HOMICIDAL_KEYWORDS: Tuple[str, ...] = (
    "homicidal",
    "kill someone",
    "kill somebody",
    "hurt someone",
    "hurt somebody",
    "violent thoughts",
    "harm others",
    "harm other people",
    "kill them",
    "hurt them",
    "want to hurt others",
    "want to hurt someone",
    "want to hurt somebody",
    "thoughts of hurting others",
    "thoughts of hurting someone",
    "thoughts of hurting somebody",
    "thoughts of killing others",
    "thoughts of killing someone",
    "thoughts of killing somebody",
)


def _compile(keywords: Sequence[str]) -> List[Tuple[str, Pattern]]:
    return [
        (keyword, re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE))
        for keyword in keywords
    ]


_SUICIDAL_PATTERNS = _compile(SUICIDAL_KEYWORDS)
_SELF_HARM_PATTERNS = _compile(SELF_HARM_KEYWORDS)
_HOMICIDAL_PATTERNS = _compile(HOMICIDAL_KEYWORDS)


@dataclass(frozen=True)
class KeywordMatches:
    """Keywords found per risk category."""
    suicidal_matches: List[str] = field(default_factory=list)
    self_harm_matches: List[str] = field(default_factory=list)
    homicidal_matches: List[str] = field(default_factory=list)

    @property
    def has_risk_indicators(self) -> bool:
        return bool(self.suicidal_matches or self.self_harm_matches or self.homicidal_matches)

    @property
    def all_matches(self) -> List[str]:
        """Every match prefixed with its category, e.g. "suicidal:want to die"."""
        return (
            [f"suicidal:{m}" for m in self.suicidal_matches]
            + [f"self-harm:{m}" for m in self.self_harm_matches]
            + [f"homicidal:{m}" for m in self.homicidal_matches]
        )

    def to_dict(self) -> dict:
        return {
            "suicidal_matches": list(self.suicidal_matches),
            "self_harm_matches": list(self.self_harm_matches),
            "homicidal_matches": list(self.homicidal_matches),
            "has_risk_indicators": self.has_risk_indicators,
            "total_matches": len(self.all_matches),
        }


class KeywordSafetyNet:
    """Stateless danger-phrase scanner. Safe to share across concurrent runs."""

    def scan(self, text: str) -> KeywordMatches:
        if not text or not text.strip():
            return KeywordMatches()

        return KeywordMatches(
            suicidal_matches=self._find(text, _SUICIDAL_PATTERNS),
            self_harm_matches=self._find(text, _SELF_HARM_PATTERNS),
            homicidal_matches=self._find(text, _HOMICIDAL_PATTERNS),
        )

    @staticmethod
    def _find(text: str, patterns: List[Tuple[str, Pattern]]) -> List[str]:
        return [keyword for keyword, pattern in patterns if pattern.search(text)]
