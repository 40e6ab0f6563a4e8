"""
Deterministic checks over note text and extractions.

These run without any model call and are safe to share across runs.
"""
from .keywords import KeywordSafetyNet, KeywordMatches
from .confidence import ConfidenceScorer, RISK_CONFIDENCE_THRESHOLD
from .schema_validator import SchemaValidator, ValidationResult, ValidationIssue, ValidationSeverity

__all__ = [
    "KeywordSafetyNet",
    "KeywordMatches",
    "ConfidenceScorer",
    "RISK_CONFIDENCE_THRESHOLD",
    "SchemaValidator",
    "ValidationResult",
    "ValidationIssue",
    "ValidationSeverity",
]
