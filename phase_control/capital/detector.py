"""
Phase control: hysteresis phase detector.

Layer 4 (capital). Depends on interfaces.* and infra.state_store.

Maps a portfolio value onto a growth Phase and owns the authoritative
current phase. Two independent guards stop the phase from flapping when
the value sits near a boundary:

    dwell time   no transition of any kind until ``min_phase_duration``
                 has elapsed since the current phase was entered
    hysteresis   the value must clear the boundary it crosses by
                 ``hysteresis_percent`` in the direction of travel:
                     up:   value >= threshold * (1 + h)
                     down: value <= threshold * (1 - h)

Observers registered with ``register_transition_handler`` are invoked
after the state lock is released, each on its own daemon thread. There is
no ordering or completion guarantee between them; an exception inside one
is logged and counted, never propagated.

Usage:
    detector = PhaseDetector(default_phase_detector_config())
    detector.register_transition_handler(on_phase_change)
    event, moved = detector.attempt_transition(portfolio_value, "fill")
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Tuple

from phase_control.infra.state_store import NullPhaseStore, PhaseStateStore
from phase_control.interfaces.enums import InvalidPhaseError, Phase, phase_name
from phase_control.interfaces.types import (
    Numeric, PhaseState, PhaseThresholds, PhaseTransitionEvent, as_decimal,
)

logger = logging.getLogger("phase.detector")

TransitionHandler = Callable[[PhaseTransitionEvent], None]
Clock = Callable[[], float]

_HUNDRED = Decimal(100)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Configuration ────────────────────────────────────────────

@dataclass
class PhaseDetectorConfig:
    thresholds: PhaseThresholds = field(default_factory=PhaseThresholds)
    hysteresis_percent: Decimal = Decimal(5)       # 5 means 5 %
    min_phase_duration: timedelta = timedelta(hours=24)
    persistence_enabled: bool = True

    def validate(self) -> List[str]:
        errors = []
        if as_decimal(self.hysteresis_percent) < 0:
            errors.append("hysteresis_percent must be >= 0")
        if self.min_phase_duration < timedelta(0):
            errors.append("min_phase_duration must be >= 0")
        return errors


def default_phase_detector_config() -> PhaseDetectorConfig:
    return PhaseDetectorConfig()


# ── Detector ─────────────────────────────────────────────────

class PhaseDetector:
    """
    Hysteresis-protected phase state machine.

    Parameters
    ----------
    config : PhaseDetectorConfig, optional
        Thresholds, hysteresis band and dwell time.
    store : PhaseStateStore, optional
        Backend used by ``save`` / ``load`` when persistence is enabled.
    clock : callable, optional
        Monotonic seconds source for dwell measurement.
    """

    def __init__(
        self,
        config: PhaseDetectorConfig | None = None,
        store: PhaseStateStore | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._config = config or default_phase_detector_config()
        errors = self._config.validate()
        if errors:
            raise ValueError("; ".join(errors))
        self._hysteresis = as_decimal(self._config.hysteresis_percent) / _HUNDRED
        self._min_dwell_s = self._config.min_phase_duration.total_seconds()
        self._store = store or NullPhaseStore()
        self._clock = clock

        self._lock = threading.RLock()
        self._current_phase = Phase.BOOTSTRAP
        self._phase_started = clock()
        self._entered_at = _utcnow()
        self._handlers: List[TransitionHandler] = []
        self._history: List[PhaseTransitionEvent] = []
        self._handler_errors = 0

    @property
    def config(self) -> PhaseDetectorConfig:
        return self._config

    @property
    def handler_error_count(self) -> int:
        with self._lock:
            return self._handler_errors

    # ── Classification ───────────────────────────────────────

    def detect_phase(self, portfolio_value: Numeric) -> Phase:
        """Nominal phase for *portfolio_value*. Boundaries belong to the lower phase."""
        value = as_decimal(portfolio_value)
        t = self._config.thresholds
        if value <= t.bootstrap_max:
            return Phase.BOOTSTRAP
        if value <= t.growth_max:
            return Phase.GROWTH
        if value <= t.scale_max:
            return Phase.SCALE
        return Phase.MATURE

    def get_phase_for_value(self, portfolio_value: Numeric) -> Phase:
        return self.detect_phase(portfolio_value)

    # ── Transition decision ──────────────────────────────────

    def should_transition(
        self, current: Phase, candidate: Phase, portfolio_value: Numeric,
    ) -> bool:
        with self._lock:
            return self._should_transition_locked(
                current, candidate, as_decimal(portfolio_value),
            )

    def _should_transition_locked(
        self, current: Phase, candidate: Phase, value: Decimal,
    ) -> bool:
        if current == candidate:
            return False

        elapsed = self._clock() - self._phase_started
        if elapsed < self._min_dwell_s:
            logger.debug(
                "phase transition delayed: minimum duration not met "
                "(phase=%s elapsed=%.1fs required=%.1fs)",
                phase_name(current), elapsed, self._min_dwell_s,
            )
            return False

        thresholds = self._config.thresholds
        if candidate > current:
            threshold = thresholds.upper_bound(current)
            if threshold is None:
                return False
            return value >= threshold * (1 + self._hysteresis)

        threshold = thresholds.upper_bound(Phase(current - 1))
        return value <= threshold * (1 - self._hysteresis)

    def attempt_transition(
        self, portfolio_value: Numeric, reason: str,
    ) -> Tuple[PhaseTransitionEvent, bool]:
        """
        Move to the phase *portfolio_value* belongs to, if both guards allow.

        Returns ``(event, True)`` on a transition and ``(empty event, False)``
        otherwise. Staying put is the normal outcome, not an error.
        """
        value = as_decimal(portfolio_value)
        with self._lock:
            candidate = self.detect_phase(value)
            if not self._should_transition_locked(self._current_phase, candidate, value):
                return PhaseTransitionEvent(), False

            event = PhaseTransitionEvent(
                from_phase=self._current_phase,
                to_phase=candidate,
                portfolio_value=value,
                transitioned_at=_utcnow(),
                reason=reason,
            )
            self._current_phase = candidate
            self._phase_started = self._clock()
            self._entered_at = event.transitioned_at
            self._history.append(event)
            handlers = list(self._handlers)

        logger.info(
            "phase transition %s -> %s at %s (%s)",
            event.from_phase, event.to_phase, value, reason,
            extra={"event": "phase_transition", **event.to_dict()},
        )
        self._notify_handlers(event, handlers)
        return event, True

    # ── Observers ────────────────────────────────────────────

    def register_transition_handler(self, handler: TransitionHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def _notify_handlers(
        self, event: PhaseTransitionEvent, handlers: List[TransitionHandler],
    ) -> None:
        for handler in handlers:
            t = threading.Thread(
                target=self._safe_call, args=(handler, event),
                daemon=True, name="phase-observer",
            )
            t.start()

    def _safe_call(self, handler: TransitionHandler, event: PhaseTransitionEvent) -> None:
        try:
            handler(event)
        except Exception:
            with self._lock:
                self._handler_errors += 1
            logger.exception(
                "phase transition handler %s failed on %s -> %s",
                getattr(handler, "__qualname__", repr(handler)),
                event.from_phase, event.to_phase,
            )

    # ── Accessors ────────────────────────────────────────────

    def current_phase(self) -> Phase:
        with self._lock:
            return self._current_phase

    def phase_duration(self) -> timedelta:
        with self._lock:
            return timedelta(seconds=self._clock() - self._phase_started)

    def transition_history(self) -> List[PhaseTransitionEvent]:
        with self._lock:
            return list(self._history)

    # ── Administrative override ──────────────────────────────

    def set_phase(self, phase: Phase | int, reason: str) -> None:
        """Force *phase*, bypassing hysteresis and dwell. Resets the dwell timer."""
        try:
            target = Phase(phase)
        except (ValueError, TypeError):
            raise InvalidPhaseError(f"invalid phase: {phase!r}") from None

        with self._lock:
            old = self._current_phase
            self._current_phase = target
            self._phase_started = self._clock()
            self._entered_at = _utcnow()

        logger.warning(
            "phase manually set %s -> %s (%s)", old, target, reason,
            extra={"event": "phase_forced", "from_phase": str(old),
                   "to_phase": str(target), "reason": reason},
        )

    # ── Persistence ──────────────────────────────────────────

    def snapshot(self) -> PhaseState:
        with self._lock:
            return PhaseState(
                phase=self._current_phase,
                entered_at=self._entered_at,
                history=tuple(self._history),
            )

    def save(self) -> None:
        if not self._config.persistence_enabled:
            return
        self._store.save(self.snapshot())

    def load(self, initial_portfolio_value: Numeric) -> None:
        """
        Restore state from the store. Without persistence, or with nothing
        stored, the phase is re-derived from *initial_portfolio_value* and
        the dwell timer restarts.

        Only a detector that has not transitioned yet can be loaded; once
        history exists the call is a logged no-op, so history never shrinks.
        """
        with self._lock:
            if self._history:
                logger.warning(
                    "phase state load skipped: %d transitions already recorded",
                    len(self._history),
                )
                return

        state = self._store.load() if self._config.persistence_enabled else None
        with self._lock:
            if self._history:
                logger.warning("phase state load skipped: transitioned during load")
                return
            if state is None:
                self._current_phase = self.detect_phase(initial_portfolio_value)
                self._phase_started = self._clock()
                self._entered_at = _utcnow()
                phase = self._current_phase
            else:
                elapsed = max((_utcnow() - state.entered_at).total_seconds(), 0.0)
                self._current_phase = state.phase
                self._phase_started = self._clock() - elapsed
                self._entered_at = state.entered_at
                self._history = list(state.history)
                phase = state.phase

        logger.info(
            "phase state loaded: %s (%s)", phase,
            "restored" if state is not None else "derived from initial value",
        )
