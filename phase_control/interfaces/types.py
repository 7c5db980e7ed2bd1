"""
Phase control: shared value types.
Layer 0. Depends only on interfaces.enums.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Tuple, Union

from phase_control.interfaces.enums import Phase, StrategyType, phase_name

Numeric = Union[Decimal, int, float, str]

_HUNDRED = Decimal(100)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_decimal(value: Numeric) -> Decimal:
    """Coerce a monetary input to Decimal. Floats go through ``str`` first."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _coerce_decimals(obj: Any, *names: str) -> None:
    for name in names:
        object.__setattr__(obj, name, as_decimal(getattr(obj, name)))


# ── Phase boundaries ─────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class PhaseThresholds:
    """Upper bounds (inclusive) of the three bounded phases. Mature is open-ended."""
    bootstrap_max: Decimal = Decimal("10000")
    growth_max: Decimal = Decimal("50000")
    scale_max: Decimal = Decimal("200000")

    def __post_init__(self):
        _coerce_decimals(self, "bootstrap_max", "growth_max", "scale_max")
        if not (self.bootstrap_max < self.growth_max < self.scale_max):
            raise ValueError(
                "phase thresholds must be strictly increasing, got "
                f"{self.bootstrap_max} / {self.growth_max} / {self.scale_max}"
            )

    def upper_bound(self, phase: Phase) -> Decimal | None:
        """Boundary between *phase* and the next phase up; None for Mature."""
        return {
            Phase.BOOTSTRAP: self.bootstrap_max,
            Phase.GROWTH: self.growth_max,
            Phase.SCALE: self.scale_max,
        }.get(phase)


# ── Transitions ──────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class PhaseTransitionEvent:
    from_phase: Phase = Phase.BOOTSTRAP
    to_phase: Phase = Phase.BOOTSTRAP
    portfolio_value: Decimal = Decimal(0)
    transitioned_at: datetime | None = None
    reason: str = ""

    @property
    def is_upward(self) -> bool:
        return self.to_phase > self.from_phase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_phase": phase_name(self.from_phase),
            "to_phase": phase_name(self.to_phase),
            "portfolio_value": str(self.portfolio_value),
            "transitioned_at": (
                self.transitioned_at.isoformat() if self.transitioned_at else None
            ),
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class PhaseState:
    """Persistable snapshot of a detector's state."""
    phase: Phase
    entered_at: datetime = field(default_factory=_utcnow)
    history: Tuple[PhaseTransitionEvent, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": str(self.phase),
            "entered_at": self.entered_at.isoformat(),
            "history": [e.to_dict() for e in self.history],
        }


# ── Per-phase configuration ──────────────────────────────────

@dataclass(frozen=True, slots=True)
class StrategyConfig:
    type: StrategyType = StrategyType.CONSERVATIVE
    name: str = ""
    max_positions: int = 0
    max_exposure_percent: Decimal = Decimal(0)
    min_signal_confidence: float = 0.0
    hold_time_max: timedelta = timedelta(0)
    rebalance_interval: timedelta = timedelta(0)

    def __post_init__(self):
        _coerce_decimals(self, "max_exposure_percent")


@dataclass(frozen=True, slots=True)
class RiskParameters:
    max_daily_loss_percent: Decimal = Decimal(0)
    max_position_loss_percent: Decimal = Decimal(0)
    max_drawdown_percent: Decimal = Decimal(0)
    stop_loss_percent: Decimal = Decimal(0)
    take_profit_percent: Decimal = Decimal(0)
    risk_per_trade_percent: Decimal = Decimal(0)

    def __post_init__(self):
        _coerce_decimals(
            self, "max_daily_loss_percent", "max_position_loss_percent",
            "max_drawdown_percent", "stop_loss_percent", "take_profit_percent",
            "risk_per_trade_percent",
        )


@dataclass(frozen=True, slots=True)
class PositionSizingRules:
    """
    confidence_weight in [0, 1] sets how much signal confidence moves the
    size away from the flat ``base_size * base_size_multiplier``.
    """
    base_size_multiplier: Decimal = Decimal(1)
    confidence_weight: Decimal = Decimal(0)
    volatility_adjustment: bool = False
    max_position_usd: Decimal = Decimal(0)
    min_position_usd: Decimal = Decimal(0)

    def __post_init__(self):
        _coerce_decimals(
            self, "base_size_multiplier", "confidence_weight",
            "max_position_usd", "min_position_usd",
        )
        if not (0 <= self.confidence_weight <= 1):
            raise ValueError(
                f"confidence_weight must be in [0, 1], got {self.confidence_weight}"
            )
        if self.min_position_usd > self.max_position_usd:
            raise ValueError(
                f"min_position_usd {self.min_position_usd} exceeds "
                f"max_position_usd {self.max_position_usd}"
            )


@dataclass(frozen=True, slots=True)
class AllocationConfig:
    """Capital split for a phase. The three percentages MUST sum to 100."""
    primary_strategy_percent: Decimal = Decimal(100)
    secondary_strategy_percent: Decimal = Decimal(0)
    reserve_percent: Decimal = Decimal(0)
    max_concurrent_positions: int = 1

    def __post_init__(self):
        _coerce_decimals(
            self, "primary_strategy_percent", "secondary_strategy_percent",
            "reserve_percent",
        )
        total = (
            self.primary_strategy_percent
            + self.secondary_strategy_percent
            + self.reserve_percent
        )
        if total != _HUNDRED:
            raise ValueError(f"allocation percentages must sum to 100, got {total}")
        if self.max_concurrent_positions < 1:
            raise ValueError(
                f"max_concurrent_positions must be >= 1, got {self.max_concurrent_positions}"
            )


@dataclass(frozen=True, slots=True)
class CapitalAllocation:
    """Absolute capital split produced by the scaler for one phase."""
    phase: Phase
    total_capital: Decimal
    primary_amount: Decimal
    secondary_amount: Decimal
    reserve_amount: Decimal
    primary_strategy_percent: Decimal
    secondary_strategy_percent: Decimal
    reserve_percent: Decimal
    max_concurrent_positions: int

    @property
    def per_position_ceiling(self) -> Decimal:
        return self.primary_amount / self.max_concurrent_positions
