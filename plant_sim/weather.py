"""Hourly weather series consumed by both simulation drivers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .environment import EnvironmentSample
from .utils import UTC, parse_timestamp, to_float
from .validators import validate_weather_entry

_LOGGER = logging.getLogger(__name__)

HOUR_FORMAT = "%Y-%m-%d %H:00"
ONE_HOUR = timedelta(hours=1)

__all__ = [
    "HOUR_FORMAT",
    "HourlyWeatherEntry",
    "WeatherSeries",
    "hour_key",
]


def hour_key(moment: datetime) -> str:
    """Return the ``YYYY-MM-DD HH:00`` key of ``moment`` in its own timezone."""

    return moment.strftime(HOUR_FORMAT)


def _parse_hour(text: str) -> datetime | None:
    try:
        value = datetime.fromisoformat(str(text).strip())
    except ValueError:
        return None
    return value.replace(minute=0, second=0, microsecond=0, tzinfo=None)


@dataclass(frozen=True, slots=True)
class HourlyWeatherEntry:
    """One hour of weather in the user's local time."""

    time: str
    temperature: float
    humidity: float
    precipitation: float = 0.0
    weather_code: int | None = None
    direct_radiation: float = 0.0
    diffuse_radiation: float = 0.0
    condition: Mapping[str, Any] = field(default_factory=dict)

    @property
    def hour(self) -> datetime | None:
        """Naive local datetime of the start of this hour."""
        return _parse_hour(self.time)

    @property
    def light(self) -> float:
        return self.direct_radiation + self.diffuse_radiation

    def to_sample(self) -> EnvironmentSample:
        return EnvironmentSample(
            temperature=self.temperature,
            humidity=self.humidity,
            light=self.light,
            precipitation=self.precipitation,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HourlyWeatherEntry:
        code = data.get("weatherCode")
        return cls(
            time=str(data["time"]),
            temperature=to_float(data.get("temperatureC")),
            humidity=to_float(data.get("humidity")),
            precipitation=max(0.0, to_float(data.get("precipitationMm"))),
            weather_code=int(code) if isinstance(code, int | float) else None,
            direct_radiation=max(0.0, to_float(data.get("directRadiationWm2"))),
            diffuse_radiation=max(0.0, to_float(data.get("diffuseRadiationWm2"))),
            condition=dict(data.get("condition") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "temperatureC": self.temperature,
            "humidity": self.humidity,
            "precipitationMm": self.precipitation,
            "weatherCode": self.weather_code,
            "directRadiationWm2": self.direct_radiation,
            "diffuseRadiationWm2": self.diffuse_radiation,
            "condition": dict(self.condition),
        }


class WeatherSeries:
    """Hourly weather entries keyed by local calendar hour.

    The user's timezone comes from an explicit IANA name when given, otherwise
    from the UTC offset of ``last_weather_update`` and finally UTC.
    """

    def __init__(
        self,
        entries: Iterable[HourlyWeatherEntry],
        *,
        last_weather_update: str | None = None,
        timezone_name: str | None = None,
    ) -> None:
        self._by_hour: dict[datetime, HourlyWeatherEntry] = {}
        for entry in entries:
            hour = entry.hour
            if hour is None:
                _LOGGER.debug("Skipping weather entry with bad time %s", entry.time)
                continue
            self._by_hour[hour] = entry
        self._hours = sorted(self._by_hour)
        self.last_weather_update = last_weather_update
        self.timezone_name = timezone_name
        self.tz = self._resolve_tz()

    def __len__(self) -> int:
        return len(self._hours)

    def __bool__(self) -> bool:
        return bool(self._hours)

    def __iter__(self) -> Iterator[HourlyWeatherEntry]:
        return (self._by_hour[h] for h in self._hours)

    def _resolve_tz(self) -> tzinfo:
        if self.timezone_name:
            try:
                return ZoneInfo(self.timezone_name)
            except (ZoneInfoNotFoundError, ValueError):
                _LOGGER.warning("Unknown timezone %s, falling back", self.timezone_name)
        stamp = parse_timestamp(self.last_weather_update)
        if stamp is not None and isinstance(self.last_weather_update, str):
            offset = stamp.utcoffset()
            if offset is not None:
                return timezone(offset)
        return UTC

    # ------------------------------------------------------------------
    def local_hour(self, moment: datetime) -> datetime:
        """Return the naive local start of the hour containing ``moment``."""

        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        local = moment.astimezone(self.tz)
        return local.replace(minute=0, second=0, microsecond=0, tzinfo=None)

    def entry_for(self, moment: datetime) -> HourlyWeatherEntry | None:
        """Return the entry of the local hour of ``moment``.

        Falls back to the nearest available hour and returns ``None`` only for
        an empty series.
        """

        if not self._hours:
            return None
        hour = self.local_hour(moment)
        entry = self._by_hour.get(hour)
        if entry is not None:
            return entry
        nearest = min(self._hours, key=lambda h: abs((h - hour).total_seconds()))
        return self._by_hour[nearest]

    def segments(self, start: datetime, end: datetime) -> Iterator[tuple[datetime, HourlyWeatherEntry]]:
        """Split ``[start, end]`` at local hour boundaries.

        Yields ``(segment_end, entry)`` pairs where ``entry`` is the weather of
        the hour the segment falls in. Nothing is yielded for an empty series
        or an empty interval.
        """

        if not self._hours or end <= start:
            return
        cursor = start
        while cursor < end:
            local = cursor.astimezone(self.tz).replace(minute=0, second=0, microsecond=0)
            boundary = (local + ONE_HOUR).astimezone(UTC)
            segment_end = min(boundary, end)
            entry = self.entry_for(cursor)
            if entry is None:
                return
            yield segment_end, entry
            cursor = segment_end

    # ------------------------------------------------------------------
    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]] | Mapping[str, Mapping[str, Any]],
        *,
        last_weather_update: str | None = None,
        timezone_name: str | None = None,
    ) -> WeatherSeries:
        """Build a series from stored entries, skipping invalid ones."""

        if isinstance(records, Mapping):
            records = [{"time": key, **value} for key, value in records.items()]
        entries: list[HourlyWeatherEntry] = []
        for record in records:
            issues = validate_weather_entry(record)
            if issues:
                _LOGGER.warning("Ignoring weather entry %s: %s", record.get("time"), "; ".join(issues))
                continue
            entries.append(HourlyWeatherEntry.from_dict(record))
        return cls(entries, last_weather_update=last_weather_update, timezone_name=timezone_name)

    def to_records(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self]
