"""
Tests for CapitalScaler.

Tests:
    - Confidence-weighted sizing and clamping
    - Allocation-based scaled sizing with volatility dampening
    - Capital allocation split
    - Position size validation window
"""
from decimal import Decimal

import pytest

from phase_control.capital.scaler import CapitalScaler, PositionSizeError
from phase_control.capital.strategy_adapter import StrategyAdapter
from phase_control.interfaces.enums import Phase
from phase_control.interfaces.types import PositionSizingRules


def _scaler() -> CapitalScaler:
    return CapitalScaler(StrategyAdapter())


def _close(a: Decimal, b: str, tol: str = "0.01") -> bool:
    return abs(a - Decimal(b)) < Decimal(tol)


class TestPositionSize:
    def test_full_confidence(self):
        """1000 * 0.5 * (1.0 * 0.7 + 0.3) = 500."""
        assert _scaler().calculate_position_size(Phase.BOOTSTRAP, 1000, 1.0) == Decimal("500")

    def test_zero_confidence_keeps_flat_share(self):
        """1000 * 0.5 * 0.3 = 150."""
        assert _scaler().calculate_position_size(Phase.BOOTSTRAP, 1000, 0.0) == Decimal("150")

    def test_confidence_clamped(self):
        s = _scaler()
        assert s.calculate_position_size(Phase.BOOTSTRAP, 1000, 3.0) == \
            s.calculate_position_size(Phase.BOOTSTRAP, 1000, 1.0)
        assert s.calculate_position_size(Phase.BOOTSTRAP, 1000, -2.0) == \
            s.calculate_position_size(Phase.BOOTSTRAP, 1000, 0.0)

    def test_capped_at_maximum(self):
        assert _scaler().calculate_position_size(Phase.BOOTSTRAP, 10**7, 1.0) == Decimal("2000")

    def test_raised_to_minimum(self):
        assert _scaler().calculate_position_size(Phase.GROWTH, 1, 0.5) == Decimal("500")

    def test_always_within_window(self):
        s = _scaler()
        for phase in Phase:
            lo = s.get_min_position_size_for_phase(phase)
            hi = s.get_max_position_size_for_phase(phase)
            for base in (0, 1, 999, 10**4, 10**8):
                for conf in (0.0, 0.33, 1.0):
                    assert lo <= s.calculate_position_size(phase, base, conf) <= hi


class TestScaledPositionSize:
    def test_no_volatility(self):
        """10000 * 80% / 3 slots * 1.0 * 0.5 = 1333.33."""
        size = _scaler().calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0)
        assert _close(size, "1333.33")

    def test_volatility_dampens(self):
        s = _scaler()
        calm = s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0, volatility=0.0)
        wild = s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0, volatility=1.0)
        assert _close(wild, "666.67")
        assert wild < calm

    def test_negative_volatility_ignored(self):
        s = _scaler()
        assert s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0, -0.5) == \
            s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0)

    def test_volatility_adjustment_disabled(self):
        adapter = StrategyAdapter()
        adapter.update_position_sizing_rules(Phase.BOOTSTRAP, PositionSizingRules(
            base_size_multiplier=Decimal("0.5"), volatility_adjustment=False,
            max_position_usd=2000, min_position_usd=100))
        s = CapitalScaler(adapter)
        assert s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0, 2.0) == \
            s.calculate_scaled_position_size(Phase.BOOTSTRAP, 10000, 1.0, 0.0)

    def test_clamped(self):
        s = _scaler()
        assert s.calculate_scaled_position_size(Phase.GROWTH, 10**8, 1.0) == Decimal("10000")
        assert s.calculate_scaled_position_size(Phase.GROWTH, 100, 0.1) == Decimal("500")


class TestAllocation:
    def test_growth_split(self):
        alloc = _scaler().get_capital_allocation(Phase.GROWTH, 100000)
        assert alloc.phase == Phase.GROWTH
        assert alloc.total_capital == Decimal(100000)
        assert alloc.primary_amount == Decimal(70000)
        assert alloc.secondary_amount == Decimal(20000)
        assert alloc.reserve_amount == Decimal(10000)
        assert alloc.max_concurrent_positions == 5

    def test_amounts_sum_to_total(self):
        s = _scaler()
        for phase in Phase:
            a = s.get_capital_allocation(phase, "12345.67")
            assert a.primary_amount + a.secondary_amount + a.reserve_amount == a.total_capital

    def test_per_position_ceiling(self):
        alloc = _scaler().get_capital_allocation(Phase.MATURE, 1000000)
        assert alloc.per_position_ceiling == Decimal(50000)


class TestValidation:
    @pytest.mark.parametrize("size", [100, 1000, 2000])
    def test_inside_window(self, size):
        _scaler().validate_position_size(Phase.BOOTSTRAP, size)

    def test_below_minimum(self):
        with pytest.raises(PositionSizeError) as exc_info:
            _scaler().validate_position_size(Phase.BOOTSTRAP, "99.99")
        err = exc_info.value
        assert err.bound == "minimum"
        assert err.limit == Decimal(100)
        assert err.phase == Phase.BOOTSTRAP
        assert "below minimum" in str(err)

    def test_above_maximum(self):
        with pytest.raises(PositionSizeError) as exc_info:
            _scaler().validate_position_size(Phase.SCALE, 50001)
        assert exc_info.value.bound == "maximum"
        assert exc_info.value.size == Decimal(50001)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            _scaler().validate_position_size(Phase.MATURE, 1)

    def test_bounds_lookup(self):
        s = _scaler()
        assert s.get_max_position_size_for_phase(Phase.SCALE) == Decimal("50000")
        assert s.get_min_position_size_for_phase(Phase.SCALE) == Decimal("1000")
