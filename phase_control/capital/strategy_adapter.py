"""
Phase control: phase -> configuration lookup.

Layer 4 (capital). Depends only on interfaces.enums + interfaces.types.

Four parallel tables (strategy, risk, sizing, allocation) keyed by Phase,
filled from a StrategyAdapterConfig at construction. Lookups for a phase
with no entry fall back to the Bootstrap entry.

Not internally synchronised: the PhaseManager is the only writer and
serialises its own access.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Dict

from phase_control.interfaces.enums import Phase, StrategyType
from phase_control.interfaces.types import (
    AllocationConfig, PositionSizingRules, RiskParameters, StrategyConfig,
)

logger = logging.getLogger("phase.adapter")


def _d(value: str) -> Decimal:
    return Decimal(value)


# ── Default phase tables (overridable via config) ────────────

@dataclass
class StrategyAdapterConfig:
    bootstrap_strategy: StrategyConfig = field(default_factory=lambda: StrategyConfig(
        type=StrategyType.CONSERVATIVE, name="conservative_bootstrap",
        max_positions=3, max_exposure_percent=_d("20"), min_signal_confidence=0.75,
        hold_time_max=timedelta(hours=4), rebalance_interval=timedelta(hours=1),
    ))
    growth_strategy: StrategyConfig = field(default_factory=lambda: StrategyConfig(
        type=StrategyType.MODERATE, name="moderate_growth",
        max_positions=5, max_exposure_percent=_d("25"), min_signal_confidence=0.65,
        hold_time_max=timedelta(hours=6), rebalance_interval=timedelta(hours=2),
    ))
    scale_strategy: StrategyConfig = field(default_factory=lambda: StrategyConfig(
        type=StrategyType.MODERATE, name="moderate_scale",
        max_positions=8, max_exposure_percent=_d("20"), min_signal_confidence=0.60,
        hold_time_max=timedelta(hours=8), rebalance_interval=timedelta(hours=4),
    ))
    mature_strategy: StrategyConfig = field(default_factory=lambda: StrategyConfig(
        type=StrategyType.CONSERVATIVE, name="conservative_mature",
        max_positions=10, max_exposure_percent=_d("15"), min_signal_confidence=0.70,
        hold_time_max=timedelta(hours=12), rebalance_interval=timedelta(hours=6),
    ))

    bootstrap_risk: RiskParameters = field(default_factory=lambda: RiskParameters(
        max_daily_loss_percent=_d("2"), max_position_loss_percent=_d("3"),
        max_drawdown_percent=_d("5"), stop_loss_percent=_d("2"),
        take_profit_percent=_d("4"), risk_per_trade_percent=_d("1"),
    ))
    growth_risk: RiskParameters = field(default_factory=lambda: RiskParameters(
        max_daily_loss_percent=_d("3"), max_position_loss_percent=_d("5"),
        max_drawdown_percent=_d("10"), stop_loss_percent=_d("3"),
        take_profit_percent=_d("6"), risk_per_trade_percent=_d("1.5"),
    ))
    scale_risk: RiskParameters = field(default_factory=lambda: RiskParameters(
        max_daily_loss_percent=_d("2.5"), max_position_loss_percent=_d("4"),
        max_drawdown_percent=_d("8"), stop_loss_percent=_d("2.5"),
        take_profit_percent=_d("5"), risk_per_trade_percent=_d("1"),
    ))
    mature_risk: RiskParameters = field(default_factory=lambda: RiskParameters(
        max_daily_loss_percent=_d("1.5"), max_position_loss_percent=_d("2.5"),
        max_drawdown_percent=_d("5"), stop_loss_percent=_d("1.5"),
        take_profit_percent=_d("3"), risk_per_trade_percent=_d("0.75"),
    ))

    bootstrap_sizing: PositionSizingRules = field(default_factory=lambda: PositionSizingRules(
        base_size_multiplier=_d("0.5"), confidence_weight=_d("0.7"),
        volatility_adjustment=True,
        max_position_usd=_d("2000"), min_position_usd=_d("100"),
    ))
    growth_sizing: PositionSizingRules = field(default_factory=lambda: PositionSizingRules(
        base_size_multiplier=_d("0.75"), confidence_weight=_d("0.6"),
        volatility_adjustment=True,
        max_position_usd=_d("10000"), min_position_usd=_d("500"),
    ))
    scale_sizing: PositionSizingRules = field(default_factory=lambda: PositionSizingRules(
        base_size_multiplier=_d("1.0"), confidence_weight=_d("0.5"),
        volatility_adjustment=True,
        max_position_usd=_d("50000"), min_position_usd=_d("1000"),
    ))
    mature_sizing: PositionSizingRules = field(default_factory=lambda: PositionSizingRules(
        base_size_multiplier=_d("0.8"), confidence_weight=_d("0.4"),
        volatility_adjustment=True,
        max_position_usd=_d("100000"), min_position_usd=_d("2000"),
    ))

    bootstrap_alloc: AllocationConfig = field(default_factory=lambda: AllocationConfig(
        primary_strategy_percent=_d("80"), secondary_strategy_percent=_d("10"),
        reserve_percent=_d("10"), max_concurrent_positions=3,
    ))
    growth_alloc: AllocationConfig = field(default_factory=lambda: AllocationConfig(
        primary_strategy_percent=_d("70"), secondary_strategy_percent=_d("20"),
        reserve_percent=_d("10"), max_concurrent_positions=5,
    ))
    scale_alloc: AllocationConfig = field(default_factory=lambda: AllocationConfig(
        primary_strategy_percent=_d("60"), secondary_strategy_percent=_d("25"),
        reserve_percent=_d("15"), max_concurrent_positions=8,
    ))
    mature_alloc: AllocationConfig = field(default_factory=lambda: AllocationConfig(
        primary_strategy_percent=_d("50"), secondary_strategy_percent=_d("30"),
        reserve_percent=_d("20"), max_concurrent_positions=10,
    ))


def default_strategy_adapter_config() -> StrategyAdapterConfig:
    return StrategyAdapterConfig()


class StrategyAdapter:
    """Resolves strategy, risk, sizing and allocation settings for a Phase."""

    __slots__ = ("_strategies", "_risk", "_sizing", "_allocations")

    def __init__(self, config: StrategyAdapterConfig | None = None) -> None:
        cfg = config or default_strategy_adapter_config()
        self._strategies: Dict[Phase, StrategyConfig] = {
            Phase.BOOTSTRAP: cfg.bootstrap_strategy,
            Phase.GROWTH: cfg.growth_strategy,
            Phase.SCALE: cfg.scale_strategy,
            Phase.MATURE: cfg.mature_strategy,
        }
        self._risk: Dict[Phase, RiskParameters] = {
            Phase.BOOTSTRAP: cfg.bootstrap_risk,
            Phase.GROWTH: cfg.growth_risk,
            Phase.SCALE: cfg.scale_risk,
            Phase.MATURE: cfg.mature_risk,
        }
        self._sizing: Dict[Phase, PositionSizingRules] = {
            Phase.BOOTSTRAP: cfg.bootstrap_sizing,
            Phase.GROWTH: cfg.growth_sizing,
            Phase.SCALE: cfg.scale_sizing,
            Phase.MATURE: cfg.mature_sizing,
        }
        self._allocations: Dict[Phase, AllocationConfig] = {
            Phase.BOOTSTRAP: cfg.bootstrap_alloc,
            Phase.GROWTH: cfg.growth_alloc,
            Phase.SCALE: cfg.scale_alloc,
            Phase.MATURE: cfg.mature_alloc,
        }

    # ── Lookups ──────────────────────────────────────────────

    def select_strategy(self, phase: Phase) -> StrategyConfig:
        return self._strategies.get(phase, self._strategies[Phase.BOOTSTRAP])

    def get_risk_params(self, phase: Phase) -> RiskParameters:
        return self._risk.get(phase, self._risk[Phase.BOOTSTRAP])

    def get_position_sizing_rules(self, phase: Phase) -> PositionSizingRules:
        return self._sizing.get(phase, self._sizing[Phase.BOOTSTRAP])

    def get_allocation_config(self, phase: Phase) -> AllocationConfig:
        return self._allocations.get(phase, self._allocations[Phase.BOOTSTRAP])

    def get_all_strategies(self) -> Dict[Phase, StrategyConfig]:
        return dict(self._strategies)

    # ── Runtime overrides ────────────────────────────────────

    def update_strategy_config(self, phase: Phase, config: StrategyConfig) -> None:
        self._strategies[phase] = config
        logger.info("strategy for %s replaced with %s", phase, config.name)

    def update_risk_params(self, phase: Phase, params: RiskParameters) -> None:
        self._risk[phase] = params
        logger.info("risk parameters for %s replaced", phase)

    def update_position_sizing_rules(self, phase: Phase, rules: PositionSizingRules) -> None:
        self._sizing[phase] = rules
        logger.info("sizing rules for %s replaced", phase)

    def update_allocation_config(self, phase: Phase, alloc: AllocationConfig) -> None:
        self._allocations[phase] = alloc
        logger.info("allocation for %s replaced", phase)
