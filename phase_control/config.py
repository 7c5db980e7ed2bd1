"""
Phase control: configuration loader.

Loads a PhaseManagerConfig from a YAML file with environment variable
overrides. Anything the file omits keeps its default.

Usage:
    config = load_config("phase.yaml")
    config = load_config()  # defaults + env only

Layout:
    check_interval_seconds: 300
    stop_timeout_seconds: 30
    detector:
      thresholds: {bootstrap_max: 10000, growth_max: 50000, scale_max: 200000}
      hysteresis_percent: 5
      min_phase_duration_seconds: 86400
      persistence_enabled: true
    phases:
      growth:
        strategy: {name: moderate_growth, type: moderate, max_positions: 5,
                   hold_time_max_seconds: 21600}
        risk: {stop_loss_percent: 3}
        sizing: {max_position_usd: 10000}
        allocation: {primary_strategy_percent: 70, secondary_strategy_percent: 20,
                     reserve_percent: 10}
"""
from __future__ import annotations

import logging
import os
import sys
from dataclasses import fields, replace
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict

import yaml

from phase_control.capital.strategy_adapter import StrategyAdapterConfig
from phase_control.interfaces.enums import InvalidPhaseError, parse_phase, parse_strategy_type
from phase_control.interfaces.types import PhaseThresholds
from phase_control.orchestrator.phase_manager import (
    PhaseManagerConfig, default_phase_manager_config,
)

logger = logging.getLogger("phase.config")

# YAML section -> StrategyAdapterConfig field suffix
_PHASE_SECTIONS = {
    "strategy": "strategy",
    "risk": "risk",
    "sizing": "sizing",
    "allocation": "alloc",
}


def setup_logging(level: str, log_file: str | None = None):
    fmt = "%(asctime)s │ %(levelname)-5s │ %(name)-20s │ %(message)s"
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        handlers=handlers,
    )


# ═════════════════════════════════════════════════════════════
# Env helpers
# ═════════════════════════════════════════════════════════════

def _env_bool(name: str, default: bool) -> bool:
    raw_val = os.getenv(name)
    if raw_val is None or raw_val.strip() == "":
        return default
    return raw_val.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw_val = os.getenv(name)
    if raw_val is None or raw_val.strip() == "":
        return default
    try:
        return float(raw_val)
    except ValueError:
        logger.warning("invalid float in %s=%r; using default=%s", name, raw_val, default)
        return default


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw_val = os.getenv(name)
    if raw_val is None or raw_val.strip() == "":
        return default
    try:
        return Decimal(raw_val.strip())
    except InvalidOperation:
        logger.warning("invalid decimal in %s=%r; using default=%s", name, raw_val, default)
        return default


# ═════════════════════════════════════════════════════════════
# Section parsers
# ═════════════════════════════════════════════════════════════

def _yaml_float(section: Dict[str, Any], key: str, default: float) -> float:
    if key not in section:
        return default
    try:
        return float(section[key])
    except (TypeError, ValueError):
        logger.warning("invalid float for %s=%r; using default=%s", key, section[key], default)
        return default


def _yaml_decimal(section: Dict[str, Any], key: str, default: Decimal) -> Decimal:
    if key not in section:
        return default
    try:
        return Decimal(str(section[key]))
    except InvalidOperation:
        logger.warning("invalid decimal for %s=%r; using default=%s", key, section[key], default)
        return default


def _seconds(value: Any) -> timedelta:
    return timedelta(seconds=float(value))


def _override(current, section: Dict[str, Any]):
    """Copy of frozen dataclass *current* with the keys of *section* applied."""
    known = {f.name for f in fields(current)}
    changes: Dict[str, Any] = {}
    for key, value in section.items():
        if key in ("hold_time_max_seconds", "rebalance_interval_seconds"):
            changes[key[: -len("_seconds")]] = _seconds(value)
        elif key == "type" and isinstance(value, str):
            changes["type"] = parse_strategy_type(value)
        elif key in known:
            changes[key] = value
        else:
            logger.warning("unknown config key %r ignored", key)
    return replace(current, **changes) if changes else current


def _apply_phases(adapter: StrategyAdapterConfig, phases: Dict[str, Any]) -> None:
    for phase_key, sections in phases.items():
        try:
            phase = parse_phase(str(phase_key))
        except InvalidPhaseError:
            logger.warning("unknown phase %r in config ignored", phase_key)
            continue
        for section_name, suffix in _PHASE_SECTIONS.items():
            section = (sections or {}).get(section_name)
            if not section:
                continue
            attr = f"{phase!s}_{suffix}"
            try:
                setattr(adapter, attr, _override(getattr(adapter, attr), section))
            except (ValueError, TypeError, ArithmeticError) as exc:
                logger.warning(
                    "invalid %s.%s override ignored, keeping default: %s",
                    phase, section_name, exc,
                )


# ═════════════════════════════════════════════════════════════
# Loader
# ═════════════════════════════════════════════════════════════

def load_config(path: str | None = None) -> PhaseManagerConfig:
    """
    Load config from YAML file with env var overrides.

    Priority: env vars > YAML file > defaults
    """
    raw: Dict[str, Any] = {}

    if path and Path(path).exists():
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
            logger.info("loaded config from %s", path)
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("failed to load %s: %s, using defaults", path, exc)
        if not isinstance(raw, dict):
            logger.warning("config %s is not a mapping, using defaults", path)
            raw = {}

    config = default_phase_manager_config()

    # Loop timing
    config.check_interval = timedelta(seconds=_env_float(
        "PHASE_CHECK_INTERVAL_SECONDS",
        _yaml_float(raw, "check_interval_seconds", config.check_interval.total_seconds()),
    ))
    config.stop_timeout = timedelta(seconds=_env_float(
        "PHASE_STOP_TIMEOUT_SECONDS",
        _yaml_float(raw, "stop_timeout_seconds", config.stop_timeout.total_seconds()),
    ))

    # Detector
    det = raw.get("detector", {}) or {}
    thr = det.get("thresholds", {}) or {}
    defaults = config.detector.thresholds
    try:
        config.detector.thresholds = PhaseThresholds(
            bootstrap_max=_env_decimal(
                "PHASE_BOOTSTRAP_MAX", _yaml_decimal(thr, "bootstrap_max", defaults.bootstrap_max)),
            growth_max=_env_decimal(
                "PHASE_GROWTH_MAX", _yaml_decimal(thr, "growth_max", defaults.growth_max)),
            scale_max=_env_decimal(
                "PHASE_SCALE_MAX", _yaml_decimal(thr, "scale_max", defaults.scale_max)),
        )
    except ValueError as exc:
        logger.warning("invalid phase thresholds, using defaults: %s", exc)
    config.detector.hysteresis_percent = _env_decimal(
        "PHASE_HYSTERESIS_PERCENT",
        _yaml_decimal(det, "hysteresis_percent", config.detector.hysteresis_percent),
    )
    config.detector.min_phase_duration = timedelta(seconds=_env_float(
        "PHASE_MIN_DURATION_SECONDS",
        _yaml_float(det, "min_phase_duration_seconds",
                    config.detector.min_phase_duration.total_seconds()),
    ))
    config.detector.persistence_enabled = _env_bool(
        "PHASE_PERSISTENCE_ENABLED",
        bool(det.get("persistence_enabled", config.detector.persistence_enabled)),
    )

    # Per-phase tables
    phases = raw.get("phases", {}) or {}
    if phases:
        _apply_phases(config.adapter, phases)

    for problem in config.validate():
        logger.warning("config problem: %s", problem)

    return config
