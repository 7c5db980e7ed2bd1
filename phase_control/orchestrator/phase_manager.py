"""
Phase control: PhaseManager (orchestrator).

Wires PhaseDetector + StrategyAdapter + CapitalScaler and runs the
periodic phase check on a dedicated daemon thread:

    portfolio getter -> detector.attempt_transition -> [transition]
        -> adapter.select_strategy / get_risk_params -> cached snapshot

Lifecycle is stopped -> running -> stopped. ``start`` launches at most one
loop; ``stop`` is safe to call repeatedly and waits up to ``stop_timeout``
for the loop to notice the stop signal. A loop stuck inside the portfolio
getter past that point is abandoned with a warning.

Locking:
    The manager lock guards the getter reference and the cached
    strategy/risk snapshot. The getter itself is always called with no
    lock held. Lock order is manager -> detector, never the reverse.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from phase_control.capital.detector import (
    Clock, PhaseDetector, PhaseDetectorConfig, TransitionHandler,
    default_phase_detector_config,
)
from phase_control.capital.scaler import CapitalScaler
from phase_control.capital.strategy_adapter import (
    StrategyAdapter, StrategyAdapterConfig, default_strategy_adapter_config,
)
from phase_control.infra.state_store import PhaseStateStore
from phase_control.interfaces.enums import Phase
from phase_control.interfaces.types import (
    CapitalAllocation, Numeric, PhaseTransitionEvent, RiskParameters,
    StrategyConfig, as_decimal,
)
from phase_control.monitoring.phase_metrics import PhaseMetrics

logger = logging.getLogger("phase.manager")

PortfolioGetter = Callable[[], Numeric]

# Granularity at which a sleeping loop notices an external cancel event.
_CANCEL_POLL_SECONDS = 0.25


# ── Configuration ────────────────────────────────────────────

@dataclass
class PhaseManagerConfig:
    detector: PhaseDetectorConfig = field(default_factory=default_phase_detector_config)
    adapter: StrategyAdapterConfig = field(default_factory=default_strategy_adapter_config)
    check_interval: timedelta = timedelta(minutes=5)
    stop_timeout: timedelta = timedelta(seconds=30)

    def validate(self) -> List[str]:
        """Return list of validation errors (empty = valid)."""
        errors = list(self.detector.validate())
        if self.check_interval <= timedelta(0):
            errors.append("check_interval must be > 0")
        if self.stop_timeout < timedelta(0):
            errors.append("stop_timeout must be >= 0")
        return errors


def default_phase_manager_config() -> PhaseManagerConfig:
    return PhaseManagerConfig()


@dataclass(slots=True)
class ManagerStatus:
    running: bool
    phase: Phase
    strategy_name: str
    phase_duration: timedelta
    transitions: int


# ── Manager ──────────────────────────────────────────────────

class PhaseManager:
    """
    Single public surface of the phase subsystem.

    Parameters
    ----------
    config : PhaseManagerConfig, optional
    store : PhaseStateStore, optional
        Passed through to the detector for save/restore.
    metrics : PhaseMetrics, optional
        Updated on every check, transition and override when supplied.
    clock : callable, optional
        Monotonic seconds source for the detector's dwell timer.
    """

    def __init__(
        self,
        config: PhaseManagerConfig | None = None,
        store: PhaseStateStore | None = None,
        metrics: PhaseMetrics | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._config = config or default_phase_manager_config()
        errors = self._config.validate()
        if errors:
            raise ValueError("; ".join(errors))

        self._adapter = StrategyAdapter(self._config.adapter)
        self._detector = PhaseDetector(self._config.detector, store=store, clock=clock)
        self._scaler = CapitalScaler(self._adapter)
        self._metrics = metrics

        self._lock = threading.RLock()
        self._current_strategy = self._adapter.select_strategy(Phase.BOOTSTRAP)
        self._current_risk = self._adapter.get_risk_params(Phase.BOOTSTRAP)
        self._getter: Optional[PortfolioGetter] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

        if self._metrics is not None:
            self._metrics.record_phase(self._detector.current_phase())

    # ── Components ───────────────────────────────────────────

    @property
    def detector(self) -> PhaseDetector:
        return self._detector

    @property
    def adapter(self) -> StrategyAdapter:
        return self._adapter

    @property
    def scaler(self) -> CapitalScaler:
        return self._scaler

    # ── Lifecycle ────────────────────────────────────────────

    def start(self, cancel: threading.Event | None = None) -> bool:
        """
        Launch the periodic check loop. *cancel* is an optional caller-owned
        event; the loop exits when either it or ``stop()`` fires.
        """
        with self._lock:
            if self._stopped:
                logger.warning("phase manager already stopped; start ignored")
                return False
            if self._thread is not None and self._thread.is_alive():
                logger.warning("phase manager already running; start ignored")
                return False
            self._thread = threading.Thread(
                target=self._run, args=(cancel,), daemon=True, name="phase-manager",
            )
            self._thread.start()

        logger.info(
            "phase manager started",
            extra={"event": "phase_manager_started",
                   "check_interval_s": self._config.check_interval.total_seconds()},
        )
        return True

    def stop(self, timeout: float | None = None) -> bool:
        """
        Signal the loop and wait for it to exit. Returns False when the loop
        was still busy after *timeout* seconds (default ``stop_timeout``).
        """
        with self._lock:
            first = not self._stopped
            self._stopped = True
            self._stop_event.set()
            thread = self._thread

        if first:
            logger.info("stopping phase manager")

        wait_s = self._config.stop_timeout.total_seconds() if timeout is None else timeout
        exited = True
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=wait_s)
            exited = not thread.is_alive()
            if not exited:
                logger.warning(
                    "phase check loop did not exit within %.1fs; abandoning it", wait_s,
                    extra={"event": "phase_manager_stop_timeout"},
                )

        if first:
            self._detector.save()
        return exited

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive() and not self._stopped

    def restore(self, initial_portfolio_value: Numeric) -> Phase:
        """Load detector state and align the cached snapshot with it."""
        self._detector.load(initial_portfolio_value)
        with self._lock:
            phase = self._refresh_snapshot_locked()
        if self._metrics is not None:
            self._metrics.record_phase(phase)
        return phase

    # ── Loop ─────────────────────────────────────────────────

    def _run(self, cancel: threading.Event | None) -> None:
        try:
            while self._wait_for_tick(cancel):
                try:
                    self._check_phase_transition()
                except Exception:
                    logger.exception(
                        "phase check failed; skipping tick",
                        extra={"event": "phase_check_error"},
                    )
                    if self._metrics is not None:
                        self._metrics.record_check_failure("check_error")
        finally:
            logger.info("phase check loop exited")

    def _wait_for_tick(self, cancel: threading.Event | None) -> bool:
        """Sleep one check interval. False once stop or cancel has fired."""
        deadline = time.monotonic() + self._config.check_interval.total_seconds()
        while True:
            if self._stop_event.is_set() or (cancel is not None and cancel.is_set()):
                return False
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            wait_s = remaining if cancel is None else min(remaining, _CANCEL_POLL_SECONDS)
            self._stop_event.wait(wait_s)

    def _check_phase_transition(self) -> None:
        with self._lock:
            getter = self._getter

        if getter is None:
            logger.warning("no portfolio getter configured; phase check skipped")
            if self._metrics is not None:
                self._metrics.record_check_failure("no_getter")
            return

        try:
            value = as_decimal(getter())
            if not value.is_finite():
                raise ValueError(f"portfolio value is not finite: {value}")
        except Exception as exc:
            logger.error(
                "failed to get portfolio value for phase check: %s", exc,
                extra={"event": "phase_check_error"}, exc_info=True,
            )
            if self._metrics is not None:
                self._metrics.record_check_failure("getter_error")
            return

        self._apply_value(value, "periodic check")

    def _apply_value(self, value: Decimal, reason: str) -> PhaseTransitionEvent:
        if self._metrics is not None:
            self._metrics.record_value(value)

        event, transitioned = self._detector.attempt_transition(value, reason)
        if not transitioned:
            return event

        with self._lock:
            self._refresh_snapshot_locked()
            strategy_name = self._current_strategy.name
        if self._metrics is not None:
            self._metrics.record_transition(event)

        logger.info(
            "phase %s active, strategy %s (portfolio=%s, %s)",
            event.to_phase, strategy_name, value, reason,
            extra={"event": "phase_strategy_updated", "strategy": strategy_name},
        )
        return event

    def _refresh_snapshot_locked(self) -> Phase:
        phase = self._detector.current_phase()
        self._current_strategy = self._adapter.select_strategy(phase)
        self._current_risk = self._adapter.get_risk_params(phase)
        return phase

    # ── Inputs ───────────────────────────────────────────────

    def set_portfolio_getter(self, getter: PortfolioGetter | None) -> None:
        with self._lock:
            self._getter = getter

    def on_portfolio_value_update(
        self, portfolio_value: Numeric, reason: str,
    ) -> PhaseTransitionEvent:
        """Immediate phase check outside the timer cadence (e.g. after a fill)."""
        return self._apply_value(as_decimal(portfolio_value), reason)

    def force_phase(self, phase: Phase | int, reason: str) -> None:
        """Override the phase; InvalidPhaseError from the detector propagates unchanged."""
        with self._lock:
            self._detector.set_phase(phase, reason)
            current = self._refresh_snapshot_locked()
        if self._metrics is not None:
            self._metrics.record_forced(current)

    def update_strategy_config(self, phase: Phase, config: StrategyConfig) -> None:
        with self._lock:
            self._adapter.update_strategy_config(phase, config)
            self._refresh_snapshot_locked()

    def update_risk_params(self, phase: Phase, params: RiskParameters) -> None:
        with self._lock:
            self._adapter.update_risk_params(phase, params)
            self._refresh_snapshot_locked()

    def register_phase_transition_handler(self, handler: TransitionHandler) -> None:
        self._detector.register_transition_handler(handler)

    # ── Snapshot reads ───────────────────────────────────────

    def get_current_phase(self) -> Phase:
        return self._detector.current_phase()

    def get_current_strategy(self) -> StrategyConfig:
        with self._lock:
            return self._current_strategy

    def get_current_risk_params(self) -> RiskParameters:
        with self._lock:
            return self._current_risk

    def get_phase_for_value(self, portfolio_value: Numeric) -> Phase:
        return self._detector.get_phase_for_value(portfolio_value)

    def get_phase_duration(self) -> timedelta:
        return self._detector.phase_duration()

    def get_transition_history(self) -> List[PhaseTransitionEvent]:
        return self._detector.transition_history()

    def status(self) -> ManagerStatus:
        return ManagerStatus(
            running=self.is_running(),
            phase=self.get_current_phase(),
            strategy_name=self.get_current_strategy().name,
            phase_duration=self.get_phase_duration(),
            transitions=len(self.get_transition_history()),
        )

    # ── Sizing (current phase) ───────────────────────────────

    def calculate_position_size(self, base_size: Numeric, confidence: float) -> Decimal:
        return self._scaler.calculate_position_size(
            self._detector.current_phase(), base_size, confidence,
        )

    def calculate_scaled_position_size(
        self, total_capital: Numeric, confidence: float, volatility: float = 0.0,
    ) -> Decimal:
        return self._scaler.calculate_scaled_position_size(
            self._detector.current_phase(), total_capital, confidence, volatility,
        )

    def get_capital_allocation(self, total_capital: Numeric) -> CapitalAllocation:
        return self._scaler.get_capital_allocation(
            self._detector.current_phase(), total_capital,
        )
