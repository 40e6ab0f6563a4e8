"""
Severity ordering for the ordered risk enums.

The order is data, not enum declaration order: merge and guardrail logic
compare values only through severity_rank().
"""
from enum import Enum
from typing import Dict, List, Optional, Type

from src.agent.models import (
    HomicidalIdeation,
    RiskLevelOverall,
    SelfHarm,
    SiFrequency,
    SiIntensity,
    SuicidalIdeation,
)

SEVERITY_ORDER: Dict[Type[Enum], List[Enum]] = {
    SuicidalIdeation: [
        SuicidalIdeation.NONE,
        SuicidalIdeation.PASSIVE,
        SuicidalIdeation.ACTIVE_NO_PLAN,
        SuicidalIdeation.ACTIVE_WITH_PLAN,
        SuicidalIdeation.ACTIVE_WITH_INTENT,
    ],
    SelfHarm: [
        SelfHarm.NONE,
        SelfHarm.HISTORICAL,
        SelfHarm.CURRENT,
        SelfHarm.IMMINENT,
    ],
    HomicidalIdeation: [
        HomicidalIdeation.NONE,
        HomicidalIdeation.PASSIVE,
        HomicidalIdeation.ACTIVE_NO_PLAN,
        HomicidalIdeation.ACTIVE_WITH_PLAN,
    ],
    RiskLevelOverall: [
        RiskLevelOverall.LOW,
        RiskLevelOverall.MODERATE,
        RiskLevelOverall.HIGH,
        RiskLevelOverall.IMMINENT,
    ],
    SiFrequency: [
        SiFrequency.RARE,
        SiFrequency.OCCASIONAL,
        SiFrequency.FREQUENT,
        SiFrequency.CONSTANT,
    ],
    SiIntensity: [
        SiIntensity.FLEETING,
        SiIntensity.MILD,
        SiIntensity.MODERATE,
        SiIntensity.SEVERE,
    ],
}


def severity_rank(value: Optional[Enum]) -> int:
    """
    Position of a value in its type's severity order.

    None ranks below every member (-1) so any extracted value outranks it.

    Raises:
        KeyError: If the value's type has no severity order
    """
    if value is None:
        return -1
    return SEVERITY_ORDER[type(value)].index(value)


def more_severe(a: Optional[Enum], b: Optional[Enum]) -> Optional[Enum]:
    """Return the more severe of two values; a tie keeps ``a``."""
    return b if severity_rank(b) > severity_rank(a) else a


def least_severe(enum_type: Type[Enum]) -> Enum:
    return SEVERITY_ORDER[enum_type][0]


def minimum_concerning(enum_type: Type[Enum]) -> Enum:
    """Lowest severity that is not the baseline (e.g. SelfHarm.HISTORICAL)."""
    return SEVERITY_ORDER[enum_type][1]


def is_concerning(value: Optional[Enum]) -> bool:
    """True when a value ranks above its type's baseline."""
    return severity_rank(value) > 0
