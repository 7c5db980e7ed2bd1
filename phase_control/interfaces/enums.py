"""
Phase control: enumerations.
Layer 0 (interfaces). Zero dependencies.
"""
from enum import IntEnum


class InvalidPhaseError(ValueError):
    """Unknown phase name or out-of-range phase ordinal."""


class Phase(IntEnum):
    """Portfolio growth tier. Ordering is significant: higher = larger book."""
    BOOTSTRAP = 0
    GROWTH    = 1
    SCALE     = 2
    MATURE    = 3

    def __str__(self) -> str:
        return self.name.lower()


class StrategyType(IntEnum):
    CONSERVATIVE = 0
    MODERATE     = 1
    AGGRESSIVE   = 2

    def __str__(self) -> str:
        return self.name.lower()


_PHASES_BY_NAME = {str(p): p for p in Phase}
_STRATEGY_TYPES_BY_NAME = {str(s): s for s in StrategyType}


def phase_name(value: int) -> str:
    """Lower-case name for *value*, ``"unknown"`` for ordinals outside the enum."""
    try:
        return str(Phase(value))
    except ValueError:
        return "unknown"


def parse_phase(name: str) -> Phase:
    """Inverse of ``str(phase)``. Names are matched exactly (lower-case)."""
    phase = _PHASES_BY_NAME.get(name)
    if phase is None:
        raise InvalidPhaseError(f"unknown phase: {name}")
    return phase


def parse_strategy_type(name: str) -> StrategyType:
    strategy_type = _STRATEGY_TYPES_BY_NAME.get(name)
    if strategy_type is None:
        raise ValueError(f"unknown strategy type: {name}")
    return strategy_type
