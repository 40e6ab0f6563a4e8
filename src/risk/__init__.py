"""
Risk severity ordering and the conservative risk merge.

Only the severity order is re-exported here. It is a leaf that the
validation modules depend on; the merger depends on validation in turn, so
import it from src.risk.merger.
"""
from .severity import SEVERITY_ORDER, severity_rank, more_severe, minimum_concerning, is_concerning

__all__ = [
    "SEVERITY_ORDER",
    "severity_rank",
    "more_severe",
    "minimum_concerning",
    "is_concerning",
]
