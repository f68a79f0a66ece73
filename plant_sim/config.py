"""Tunable simulation constants and YAML configuration loading."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from functools import cache
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

__all__ = [
    "SimulationConfig",
    "DEFAULT_CONFIG",
    "CONFIG_ENV",
    "config_from_mapping",
    "load_config",
    "clear_config_cache",
]

CONFIG_ENV = "PLANT_SIM_CONFIG"


@dataclass(frozen=True, slots=True)
class SimulationConfig:
    """Constants consumed by the models and both simulation drivers."""

    # moisture
    evaporation_rate: float = 0.1
    greenhouse_evaporation_factor: float = 0.5
    humidity_moisture_bonus: float = 20.0
    precipitation_moisture_rate: float = 5.0
    irrigation_rate: float = 0.05
    sprinkler_rate: float = 0.03
    watering_amount: float = 10.0
    # growth
    base_growth_rate: float = 5e-7
    default_max_scale: float = 0.5
    # fertilizer
    fertilizer_mismatch_penalty: float = 0.8
    light_reference: float = 1400.0
    greenhouse_depletion_factor: float = 0.5
    precipitation_depletion_factor: float = 1.2
    # disease
    disease_check_interval_seconds: float = 3600.0
    shade_cure_seconds: float = 7200.0
    # drivers
    scheduler_interval_seconds: float = 300.0
    idle_threshold_seconds: float = 120.0
    batch_size: int = 25
    max_workers: int = 4
    cache_ttl_seconds: float = 3600.0
    active_tick_seconds: float = 1.0
    hourly_replay: bool = False
    max_replay_hours: int = 24 * 14

    def as_dict(self) -> dict[str, Any]:
        """Return configuration as a regular dictionary."""
        return asdict(self)


DEFAULT_CONFIG = SimulationConfig()

_INT_FIELDS = {"batch_size", "max_workers", "max_replay_hours"}
_BOOL_FIELDS = {"hourly_replay"}


def _coerce(name: str, value: Any) -> Any:
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigError(f"{name}: expected a boolean, got {value!r}")
        return value
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ConfigError(f"{name}: expected a number, got {value!r}")
    if value < 0:
        raise ConfigError(f"{name}: must not be negative")
    if name in _INT_FIELDS:
        if value < 1 or int(value) != value:
            raise ConfigError(f"{name}: expected a positive integer, got {value!r}")
        return int(value)
    return float(value)


def config_from_mapping(data: dict[str, Any] | None) -> SimulationConfig:
    """Return :class:`SimulationConfig` with ``data`` merged over the defaults."""

    if not data:
        return DEFAULT_CONFIG
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")
    known = {f.name for f in fields(SimulationConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
    return replace(DEFAULT_CONFIG, **{k: _coerce(k, v) for k, v in data.items()})


@cache
def _load_config_file(path: str) -> SimulationConfig:
    with open(path, encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return config_from_mapping(data)


def load_config(path: str | Path | None = None) -> SimulationConfig:
    """Return configuration from ``path`` or the ``PLANT_SIM_CONFIG`` file.

    Without either, the built-in defaults are returned. Parsed files are
    cached by path.
    """

    target = path or os.getenv(CONFIG_ENV)
    if not target:
        return DEFAULT_CONFIG
    return _load_config_file(str(Path(target).expanduser()))


def clear_config_cache() -> None:
    """Forget parsed configuration files."""

    _load_config_file.cache_clear()
