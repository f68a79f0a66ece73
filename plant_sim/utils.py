"""Utility helpers for reading datasets and shared numeric helpers."""

from __future__ import annotations

import json
import logging
import math
import os
import time
from collections.abc import Mapping
from datetime import UTC, datetime
from functools import cache
from os import PathLike
from pathlib import Path
from typing import Any, TextIO, Union

import yaml

__all__ = [
    "UTC",
    "load_data",
    "load_dataset",
    "clear_dataset_cache",
    "dataset_paths",
    "get_data_dir",
    "get_extra_dirs",
    "overlay_dir",
    "normalize_key",
    "deep_update",
    "clamp",
    "lerp",
    "inverse_lerp",
    "to_float",
    "parse_timestamp",
    "format_timestamp",
    "utcnow",
    "warn_once",
]

PathType = Union[str, PathLike]


def _open_text(path: Path) -> TextIO:
    return open(path, encoding="utf-8")


def load_data(path: PathType) -> Any:
    """Return the parsed contents of ``path`` supporting JSON or YAML."""

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    try:
        with _open_text(p) as f:
            if p.suffix.lower() in {".yaml", ".yml"}:
                return yaml.safe_load(f) or {}
            return json.load(f)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {p}: {exc}") from exc


def deep_update(base: dict[str, Any], other: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``other`` into ``base`` and return ``base``."""

    for key, value in other.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, Mapping):
            deep_update(base[key], value)
        else:
            base[key] = value
    return base


# Bundled datasets live in the package ``data`` folder. ``PLANT_SIM_DATA_DIR``
# replaces it, ``PLANT_SIM_EXTRA_DATA_DIRS`` (an ``os.pathsep`` separated list)
# is merged after it and ``PLANT_SIM_OVERLAY_DIR`` is merged last so single
# species or disease tables can be overridden without copying the whole tree.
DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_ENV = "PLANT_SIM_DATA_DIR"
OVERLAY_ENV = "PLANT_SIM_OVERLAY_DIR"
EXTRA_ENV = "PLANT_SIM_EXTRA_DATA_DIRS"

_PATH_CACHE: tuple[Path, ...] | None = None
_ENV_STATE: tuple[str | None, str | None] | None = None


def get_data_dir() -> Path:
    """Return base dataset directory honoring the ``PLANT_SIM_DATA_DIR`` env."""

    env = os.getenv(DATA_ENV)
    return Path(env).expanduser() if env else DEFAULT_DATA_DIR


def overlay_dir() -> Path | None:
    """Return the overlay directory defined via ``PLANT_SIM_OVERLAY_DIR``."""

    env = os.getenv(OVERLAY_ENV)
    return Path(env).expanduser() if env else None


def get_extra_dirs() -> tuple[Path, ...]:
    """Return additional dataset directories from ``PLANT_SIM_EXTRA_DATA_DIRS``."""

    env = os.getenv(EXTRA_ENV)
    if not env:
        return ()
    dirs: list[Path] = []
    for part in env.split(os.pathsep):
        path = Path(part).expanduser()
        if path.is_dir():
            dirs.append(path)
    return tuple(dirs)


def dataset_paths() -> tuple[Path, ...]:
    """Return directories searched when loading datasets.

    Results are cached but refreshed automatically when the relevant
    environment variables change, so tests can point the loader at a
    temporary directory with ``monkeypatch.setenv``.
    """

    global _PATH_CACHE, _ENV_STATE
    env_state = (os.getenv(DATA_ENV), os.getenv(EXTRA_ENV))
    if _PATH_CACHE is None or _ENV_STATE != env_state:
        _PATH_CACHE = (get_data_dir(), *get_extra_dirs())
        _ENV_STATE = env_state
    return _PATH_CACHE


@cache
def load_dataset(filename: str) -> dict[str, Any]:
    """Return dataset ``filename`` merged across search paths and the overlay."""

    data: dict[str, Any] = {}
    candidates = [base / filename for base in dataset_paths()]
    overlay = overlay_dir()
    if overlay:
        candidates.append(overlay / filename)

    for path in candidates:
        if not path.exists():
            continue
        extra = load_data(path)
        if isinstance(extra, dict) and isinstance(data, dict):
            deep_update(data, extra)
        else:
            data = extra
    return data


def clear_dataset_cache() -> None:
    """Clear cached dataset results loaded via :func:`load_dataset`."""

    global _PATH_CACHE, _ENV_STATE
    load_dataset.cache_clear()
    _PATH_CACHE = None
    _ENV_STATE = None


def normalize_key(key: str) -> str:
    """Return ``key`` normalized for case-insensitive lookups.

    Whitespace, hyphens and underscores collapse to nothing so ``Elephant Ear``,
    ``elephant_ear`` and ``ElephantEar`` resolve to the same entry.
    """

    value = str(key).casefold()
    for sep in ("_", "-"):
        value = value.replace(sep, " ")
    return "".join(p for p in value.split() if p)


def clamp(value: float, low: float, high: float) -> float:
    """Return ``value`` limited to ``[low, high]``."""

    return max(low, min(high, value))


def lerp(start: float, end: float, t: float) -> float:
    """Linear interpolation with ``t`` clamped to ``[0, 1]``."""

    t = clamp(t, 0.0, 1.0)
    return start + (end - start) * t


def inverse_lerp(start: float, end: float, value: float) -> float:
    """Return the clamped position of ``value`` between ``start`` and ``end``."""

    if start == end:
        return 0.0
    return clamp((value - start) / (end - start), 0.0, 1.0)


def to_float(value: Any, default: float = 0.0) -> float:
    """Return ``value`` as a finite float or ``default``."""

    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Return an aware :class:`datetime` for ``value`` or ``None``.

    Accepts datetimes, ISO 8601 strings and epoch seconds. Naive values are
    assumed to be UTC. Anything unparseable yields ``None`` so callers treat
    the record as observed for the first time.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, int | float) and not isinstance(value, bool):
        try:
            result = datetime.fromtimestamp(float(value), tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if result.tzinfo is None:
        result = result.replace(tzinfo=UTC)
    return result


def format_timestamp(value: datetime | None) -> str | None:
    """Return ``value`` as an ISO 8601 UTC string."""

    if value is None:
        return None
    return value.astimezone(UTC).isoformat()


_LAST_WARNED: dict[str, float] = {}
_MAX_CODES = 1024


def warn_once(logger: logging.Logger, code: str, message: str, window: int = 600) -> None:
    """Log a warning once per time window for a given code.

    The cache is capped and the oldest entries are discarded so many unique
    codes cannot grow it without bound.
    """
    now = time.monotonic()
    last = _LAST_WARNED.get(code)
    if last is None or now - last > window:
        if len(_LAST_WARNED) >= _MAX_CODES:
            oldest = min(_LAST_WARNED, key=_LAST_WARNED.get)
            _LAST_WARNED.pop(oldest, None)
        _LAST_WARNED[code] = now
        logger.warning("%s: %s", code, message)
