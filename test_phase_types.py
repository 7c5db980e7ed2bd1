"""
Tests for phase enums and value types.

Tests:
    - Phase / StrategyType names and parsing
    - Decimal coercion of monetary fields
    - Threshold, sizing and allocation validation
    - Event / state serialisation
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from phase_control.interfaces.enums import (
    InvalidPhaseError, Phase, StrategyType, parse_phase, parse_strategy_type, phase_name,
)
from phase_control.interfaces.types import (
    AllocationConfig, PhaseState, PhaseThresholds, PhaseTransitionEvent,
    PositionSizingRules, RiskParameters, as_decimal,
)


class TestPhaseEnum:
    def test_names_round_trip(self):
        for phase in Phase:
            assert parse_phase(str(phase)) is phase

    def test_names_are_lower_case(self):
        assert [str(p) for p in Phase] == ["bootstrap", "growth", "scale", "mature"]

    def test_ordering(self):
        assert Phase.BOOTSTRAP < Phase.GROWTH < Phase.SCALE < Phase.MATURE

    def test_parse_is_case_sensitive(self):
        with pytest.raises(InvalidPhaseError):
            parse_phase("Growth")

    def test_parse_unknown(self):
        with pytest.raises(InvalidPhaseError, match="unknown phase: hyper"):
            parse_phase("hyper")

    def test_invalid_phase_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_phase("")

    def test_out_of_range_name(self):
        assert phase_name(7) == "unknown"
        assert phase_name(-1) == "unknown"
        assert phase_name(2) == "scale"


class TestStrategyType:
    def test_round_trip(self):
        for st in StrategyType:
            assert parse_strategy_type(str(st)) is st

    def test_unknown(self):
        with pytest.raises(ValueError):
            parse_strategy_type("reckless")


class TestAsDecimal:
    def test_float_goes_through_str(self):
        assert as_decimal(0.1) == Decimal("0.1")

    def test_passthrough_and_parse(self):
        d = Decimal("12.5")
        assert as_decimal(d) is d
        assert as_decimal("12.5") == d
        assert as_decimal(12) == Decimal(12)


class TestThresholds:
    def test_defaults(self):
        t = PhaseThresholds()
        assert t.bootstrap_max == Decimal("10000")
        assert t.growth_max == Decimal("50000")
        assert t.scale_max == Decimal("200000")

    def test_coerces_numbers(self):
        t = PhaseThresholds(1000, 5000.5, "20000")
        assert t.growth_max == Decimal("5000.5")
        assert isinstance(t.scale_max, Decimal)

    def test_must_increase(self):
        with pytest.raises(ValueError):
            PhaseThresholds(bootstrap_max=50000, growth_max=10000, scale_max=200000)
        with pytest.raises(ValueError):
            PhaseThresholds(bootstrap_max=10000, growth_max=10000, scale_max=200000)

    def test_upper_bound(self):
        t = PhaseThresholds()
        assert t.upper_bound(Phase.GROWTH) == Decimal("50000")
        assert t.upper_bound(Phase.MATURE) is None


class TestSizingRules:
    def test_weight_out_of_range(self):
        with pytest.raises(ValueError):
            PositionSizingRules(confidence_weight=Decimal("1.5"), max_position_usd=10)

    def test_min_above_max(self):
        with pytest.raises(ValueError):
            PositionSizingRules(max_position_usd=100, min_position_usd=200)

    def test_equal_bounds_allowed(self):
        rules = PositionSizingRules(max_position_usd=100, min_position_usd=100)
        assert rules.max_position_usd == rules.min_position_usd


class TestAllocationConfig:
    def test_must_sum_to_100(self):
        with pytest.raises(ValueError, match="sum to 100"):
            AllocationConfig(primary_strategy_percent=80, secondary_strategy_percent=10,
                             reserve_percent=5, max_concurrent_positions=3)

    def test_fractional_percents(self):
        alloc = AllocationConfig(primary_strategy_percent=72.5, secondary_strategy_percent=17.5,
                                 reserve_percent=10, max_concurrent_positions=2)
        assert alloc.primary_strategy_percent == Decimal("72.5")

    def test_positions_at_least_one(self):
        with pytest.raises(ValueError):
            AllocationConfig(max_concurrent_positions=0)


class TestSerialisation:
    def test_empty_event(self):
        event = PhaseTransitionEvent()
        assert event.to_phase == Phase.BOOTSTRAP
        assert event.portfolio_value == Decimal(0)
        assert event.to_dict()["transitioned_at"] is None

    def test_event_to_dict(self):
        at = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        event = PhaseTransitionEvent(Phase.GROWTH, Phase.SCALE, 52500.25, at, "fill")
        d = event.to_dict()
        assert d == {
            "from_phase": "growth",
            "to_phase": "scale",
            "portfolio_value": "52500.25",
            "transitioned_at": "2026-01-02T03:04:05+00:00",
            "reason": "fill",
        }
        assert event.is_upward

    def test_state_to_dict(self):
        event = PhaseTransitionEvent(Phase.BOOTSTRAP, Phase.GROWTH, 12000)
        state = PhaseState(phase=Phase.GROWTH, history=(event,))
        d = state.to_dict()
        assert d["phase"] == "growth"
        assert len(d["history"]) == 1

    def test_risk_parameters_coerced(self):
        risk = RiskParameters(stop_loss_percent=2.5)
        assert risk.stop_loss_percent == Decimal("2.5")
