"""Scheduler configuration - typed defaults with optional JSON overrides."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".colonysched"


@dataclass(frozen=True)
class SchedulerConfig:
    """Tunable scheduler parameters."""

    # Collaboration sweep cadence (seconds of simulated time)
    collaboration_update_interval: float = 1.0
    default_reservation_seconds: float = 300.0
    conflict_radius: float = 2.0
    # Groups whose targets are closer than this compete for the same ground
    spatial_conflict_distance: float = 5.0

    # Distance tolerances, as multiples of a task's work radius
    execute_radius_factor: float = 2.0
    warn_radius_factor: float = 3.0

    # Scoring
    max_scoring_distance: float = 100.0
    urgency_horizon_hours: float = 24.0
    max_recommendations: int = 5

    auto_start_assigned: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.collaboration_update_interval <= 0:
            raise ValueError("collaboration_update_interval must be positive")
        if self.default_reservation_seconds <= 0:
            raise ValueError("default_reservation_seconds must be positive")
        if self.max_scoring_distance <= 0:
            raise ValueError("max_scoring_distance must be positive")
        if self.urgency_horizon_hours <= 0:
            raise ValueError("urgency_horizon_hours must be positive")

    def with_overrides(self, **overrides: Any) -> SchedulerConfig:
        return replace(self, **overrides)


def _coerce(name: str, expected: type, value: Any) -> Any:
    if expected is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
        raise ValueError(f"{name} must be {expected.__name__}, got {value!r}")
    return value


def config_from_dict(data: dict[str, Any]) -> SchedulerConfig:
    """Build a config from a mapping. Unknown keys are ignored."""
    types = {"float": float, "int": int, "bool": bool, "str": str}
    overrides: dict[str, Any] = {}
    for f in fields(SchedulerConfig):
        if f.name in data:
            overrides[f.name] = _coerce(f.name, types[str(f.type)], data[f.name])
    return SchedulerConfig(**overrides)


def load_config(path: str | Path | None = None) -> SchedulerConfig:
    """
    Load configuration.

    Args:
        path: Explicit JSON file. When None, ``~/.colonysched/config.json`` is tried.

    Returns:
        SchedulerConfig, falling back to defaults when no readable file exists.
    """
    config_file = Path(path) if path is not None else DEFAULT_CONFIG_DIR / "config.json"
    if not config_file.exists():
        return SchedulerConfig()

    try:
        data = json.loads(config_file.read_text())
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable config file %s", config_file)
        return SchedulerConfig()

    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level must be an object", config_file)
        return SchedulerConfig()

    return config_from_dict(data)
