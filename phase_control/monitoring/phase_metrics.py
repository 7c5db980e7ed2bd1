"""
Phase control: Prometheus collectors.

Pure observability. Does NOT influence phase decisions.

Collectors are created on the supplied registry (the process-wide default
when none is given). Re-creating PhaseMetrics on the default registry
reuses the existing collectors instead of failing on duplicate names.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge

from phase_control.interfaces.enums import Phase, phase_name
from phase_control.interfaces.types import PhaseTransitionEvent


def _collector(cls, name: str, help_text: str, registry: CollectorRegistry,
               labelnames: Sequence[str] = ()):
    try:
        return cls(name, help_text, labelnames=labelnames, registry=registry)
    except ValueError:
        return registry._names_to_collectors[name]


class PhaseMetrics:
    """Gauges and counters describing the phase state machine."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        reg = registry if registry is not None else REGISTRY
        self.current_phase = _collector(
            Gauge, "phase_current", "Current growth phase ordinal", reg)
        self.portfolio_value = _collector(
            Gauge, "phase_portfolio_value", "Last portfolio value seen by the phase check", reg)
        self.transitions = _collector(
            Counter, "phase_transitions", "Hysteresis-approved phase transitions", reg,
            ("from_phase", "to_phase"))
        self.forced = _collector(
            Counter, "phase_forced", "Manual phase overrides", reg, ("to_phase",))
        self.check_failures = _collector(
            Counter, "phase_check_failures", "Skipped periodic phase checks", reg, ("reason",))

    def record_value(self, value: Decimal) -> None:
        self.portfolio_value.set(float(value))

    def record_transition(self, event: PhaseTransitionEvent) -> None:
        self.transitions.labels(
            from_phase=phase_name(event.from_phase),
            to_phase=phase_name(event.to_phase),
        ).inc()
        self.current_phase.set(int(event.to_phase))

    def record_forced(self, phase: Phase) -> None:
        self.forced.labels(to_phase=phase_name(phase)).inc()
        self.current_phase.set(int(phase))

    def record_check_failure(self, reason: str) -> None:
        self.check_failures.labels(reason=reason).inc()

    def record_phase(self, phase: Phase) -> None:
        self.current_phase.set(int(phase))
