"""
Phase control: capital scaler.

Layer 4 (capital). Depends on interfaces.* + capital.strategy_adapter.
Pure computation: (phase, capital, confidence, volatility) -> USD size.

Every sizing call returns a usable number clamped to the phase's
[min_position_usd, max_position_usd] window. Callers that want a hard
failure instead of a silent clamp call ``validate_position_size``.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from phase_control.interfaces.enums import Phase
from phase_control.interfaces.types import (
    CapitalAllocation, Numeric, PositionSizingRules, as_decimal,
)

from phase_control.capital.strategy_adapter import StrategyAdapter

logger = logging.getLogger("phase.scaler")

_ONE = Decimal(1)
_HUNDRED = Decimal(100)


class PositionSizeError(ValueError):
    """A position size outside the phase's allowed window."""

    def __init__(self, phase: Phase, size: Decimal, bound: str, limit: Decimal) -> None:
        self.phase = phase
        self.size = size
        self.bound = bound
        self.limit = limit
        relation = "below" if bound == "minimum" else "above"
        super().__init__(
            f"position size {size} {relation} {bound} {limit} for phase {phase!s}"
        )


def _clamp_confidence(confidence: float) -> Decimal:
    return Decimal(str(max(0.0, min(1.0, float(confidence)))))


class CapitalScaler:
    """
    Turns phase sizing rules into position sizes and capital splits.

    * ``calculate_position_size`` blends a confidence-driven size with a
      flat one: ``base * multiplier * (confidence * w + (1 - w))``.
    * ``calculate_scaled_position_size`` starts from the primary-strategy
      pool divided across the phase's position slots, scaled by confidence
      and, when enabled, shrunk by ``1 / (1 + volatility)``.
    """

    __slots__ = ("_adapter",)

    def __init__(self, adapter: StrategyAdapter) -> None:
        self._adapter = adapter

    # ── Sizing ───────────────────────────────────────────────

    def calculate_position_size(
        self, phase: Phase, base_size: Numeric, confidence: float,
    ) -> Decimal:
        rules = self._adapter.get_position_sizing_rules(phase)
        conf = _clamp_confidence(confidence)
        weight = rules.confidence_weight

        weighted = conf * weight + (_ONE - weight)
        size = as_decimal(base_size) * rules.base_size_multiplier * weighted
        return self._enforce_limits(phase, size, rules)

    def calculate_scaled_position_size(
        self,
        phase: Phase,
        total_capital: Numeric,
        confidence: float,
        volatility: float = 0.0,
    ) -> Decimal:
        alloc = self._adapter.get_allocation_config(phase)
        rules = self._adapter.get_position_sizing_rules(phase)

        available = as_decimal(total_capital) * alloc.primary_strategy_percent / _HUNDRED
        per_slot = available / alloc.max_concurrent_positions
        size = per_slot * _clamp_confidence(confidence) * rules.base_size_multiplier

        if rules.volatility_adjustment and volatility > 0:
            size = size / (_ONE + Decimal(str(volatility)))

        return self._enforce_limits(phase, size, rules)

    def _enforce_limits(
        self, phase: Phase, size: Decimal, rules: PositionSizingRules,
    ) -> Decimal:
        if size > rules.max_position_usd:
            logger.debug(
                "position size capped at maximum (phase=%s size=%s max=%s)",
                phase, size, rules.max_position_usd,
            )
            return rules.max_position_usd
        if size < rules.min_position_usd:
            logger.debug(
                "position size raised to minimum (phase=%s size=%s min=%s)",
                phase, size, rules.min_position_usd,
            )
            return rules.min_position_usd
        return size

    # ── Allocation ───────────────────────────────────────────

    def get_capital_allocation(self, phase: Phase, total_capital: Numeric) -> CapitalAllocation:
        alloc = self._adapter.get_allocation_config(phase)
        total = as_decimal(total_capital)

        result = CapitalAllocation(
            phase=phase,
            total_capital=total,
            primary_amount=total * alloc.primary_strategy_percent / _HUNDRED,
            secondary_amount=total * alloc.secondary_strategy_percent / _HUNDRED,
            reserve_amount=total * alloc.reserve_percent / _HUNDRED,
            primary_strategy_percent=alloc.primary_strategy_percent,
            secondary_strategy_percent=alloc.secondary_strategy_percent,
            reserve_percent=alloc.reserve_percent,
            max_concurrent_positions=alloc.max_concurrent_positions,
        )
        logger.debug(
            "capital allocation for %s: total=%s primary=%s secondary=%s reserve=%s",
            phase, total, result.primary_amount, result.secondary_amount,
            result.reserve_amount,
        )
        return result

    # ── Bounds ───────────────────────────────────────────────

    def get_max_position_size_for_phase(self, phase: Phase) -> Decimal:
        return self._adapter.get_position_sizing_rules(phase).max_position_usd

    def get_min_position_size_for_phase(self, phase: Phase) -> Decimal:
        return self._adapter.get_position_sizing_rules(phase).min_position_usd

    def validate_position_size(self, phase: Phase, size: Numeric) -> None:
        """Raise PositionSizeError if *size* lies strictly outside the phase window."""
        rules = self._adapter.get_position_sizing_rules(phase)
        value = as_decimal(size)
        if value < rules.min_position_usd:
            raise PositionSizeError(phase, value, "minimum", rules.min_position_usd)
        if value > rules.max_position_usd:
            raise PositionSizeError(phase, value, "maximum", rules.max_position_usd)
