"""
Phase control: detector state persistence.

Layer 1 (infra). Implements the PhaseStateStore protocol consumed by
PhaseDetector.save() / PhaseDetector.load().

NullPhaseStore is the default and persists nothing. MemoryPhaseStore keeps
the last snapshot in process (hand-off between detector instances, tests).
A durable backend only needs ``save`` and ``load``.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, runtime_checkable

from phase_control.interfaces.types import PhaseState

logger = logging.getLogger("phase.store")


@runtime_checkable
class PhaseStateStore(Protocol):
    def save(self, state: PhaseState) -> None: ...

    def load(self) -> Optional[PhaseState]: ...


class NullPhaseStore:
    """Log-only store."""

    def save(self, state: PhaseState) -> None:
        logger.debug(
            "phase state saved (no backend configured)",
            extra={"event": "phase_state_save", "phase": str(state.phase)},
        )

    def load(self) -> Optional[PhaseState]:
        logger.debug("phase state load requested (no backend configured)")
        return None


class MemoryPhaseStore:
    """Keeps the most recent snapshot."""

    def __init__(self, initial: PhaseState | None = None) -> None:
        self._lock = threading.Lock()
        self._state = initial
        self.save_count = 0

    def save(self, state: PhaseState) -> None:
        with self._lock:
            self._state = state
            self.save_count += 1
        logger.debug("phase state saved in memory: %s", state.phase)

    def load(self) -> Optional[PhaseState]:
        with self._lock:
            return self._state
