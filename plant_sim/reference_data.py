"""Species and fertilizer reference data with a TTL refreshed cache."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from .disease import DiseaseTable, load_disease_table
from .errors import InvalidReferenceData, ReferenceDataNotFound
from .utils import clear_dataset_cache, load_dataset, normalize_key, to_float, utcnow, warn_once
from .validators import validate_fertilizer_record, validate_species_record

_LOGGER = logging.getLogger(__name__)

SPECIES_FILE = "species/species_profiles.json"
FERTILIZER_FILE = "fertilizers/fertilizer_types.json"

DEFAULT_TEMPERATURE = (15.0, 30.0)
DEFAULT_HUMIDITY = (40.0, 80.0)
DEFAULT_LIGHT = (200.0, 1000.0)
DEFAULT_PROGRESS_RATE = 0.03

__all__ = [
    "SPECIES_FILE",
    "FERTILIZER_FILE",
    "LocationRanges",
    "LocationOverride",
    "GrowthWeights",
    "SpeciesProfile",
    "FertilizerType",
    "ReferenceSource",
    "DatasetReferenceSource",
    "ReferenceCache",
]


@dataclass(frozen=True, slots=True)
class LocationRanges:
    """Resolved growth ranges of a species at one location."""

    temperature: tuple[float, float]
    humidity: tuple[float, float]
    light: tuple[float, float]
    max_scale: float


@dataclass(frozen=True, slots=True)
class LocationOverride:
    """Per-location bounds. ``None`` falls back to the species default."""

    min_temperature: float | None = None
    max_temperature: float | None = None
    min_humidity: float | None = None
    max_humidity: float | None = None
    min_light: float | None = None
    max_light: float | None = None
    max_scale: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LocationOverride:
        def opt(key: str) -> float | None:
            value = data.get(key)
            return None if value is None else to_float(value)

        return cls(
            min_temperature=opt("minTemperature"),
            max_temperature=opt("maxTemperature"),
            min_humidity=opt("minHumidity"),
            max_humidity=opt("maxHumidity"),
            min_light=opt("minLight"),
            max_light=opt("maxLight"),
            max_scale=opt("maxScale"),
        )


@dataclass(frozen=True, slots=True)
class GrowthWeights:
    temperature: float = 0.25
    humidity: float = 0.25
    light: float = 0.25
    moisture: float = 0.25


def _pick(value: float | None, default: float) -> float:
    return default if value is None else value


@dataclass(frozen=True, slots=True)
class SpeciesProfile:
    """Read-only growth and disease parameters for one species."""

    name: str
    optimal_moisture: float = 70.0
    moisture_range: float = 20.0
    temperature: tuple[float, float] = DEFAULT_TEMPERATURE
    humidity: tuple[float, float] = DEFAULT_HUMIDITY
    light: tuple[float, float] = DEFAULT_LIGHT
    locations: Mapping[str, LocationOverride] = field(default_factory=dict)
    weights: GrowthWeights = GrowthWeights()
    nutrient_depletion_rate: float = 0.1
    preferred_fertilizer: str | None = None
    fertilizer_boost: float = 1.5
    thresholds: Mapping[str, float] = field(default_factory=dict)
    default_max_scale: float = 0.5

    def ranges_for(self, location: str | None) -> LocationRanges:
        """Return growth ranges at ``location`` with species-wide fallbacks.

        Unknown locations use the ``Ground`` override when present, otherwise
        the species defaults.
        """

        override = None
        if location is not None:
            override = self.locations.get(normalize_key(location))
        if override is None:
            override = self.locations.get("ground", LocationOverride())
        return LocationRanges(
            temperature=(
                _pick(override.min_temperature, self.temperature[0]),
                _pick(override.max_temperature, self.temperature[1]),
            ),
            humidity=(
                _pick(override.min_humidity, self.humidity[0]),
                _pick(override.max_humidity, self.humidity[1]),
            ),
            light=(
                _pick(override.min_light, self.light[0]),
                _pick(override.max_light, self.light[1]),
            ),
            max_scale=_pick(override.max_scale, self.default_max_scale),
        )

    def threshold(self, name: str, default: float | None = None) -> float | None:
        """Return the named disease threshold or ``default``."""

        value = self.thresholds.get(name)
        return default if value is None else value

    @property
    def disease_progress_rate(self) -> float:
        return self.thresholds.get("diseaseProgressRate", DEFAULT_PROGRESS_RATE)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, default_max_scale: float = 0.5) -> SpeciesProfile:
        """Build a profile from a stored species record."""

        defaults = data.get("defaultValues") or {}

        def bounds(kind: str, fallback: tuple[float, float]) -> tuple[float, float]:
            return (
                to_float(defaults.get(f"min{kind}"), fallback[0]),
                to_float(defaults.get(f"max{kind}"), fallback[1]),
            )

        locations = {
            normalize_key(name): LocationOverride.from_dict(values)
            for name, values in (data.get("locationValues") or {}).items()
            if isinstance(values, Mapping)
        }

        return cls(
            name=str(data["plantName"]),
            optimal_moisture=to_float(data.get("optimalMoisture"), 70.0),
            moisture_range=to_float(data.get("moistureRange"), 20.0),
            temperature=bounds("Temperature", DEFAULT_TEMPERATURE),
            humidity=bounds("Humidity", DEFAULT_HUMIDITY),
            light=bounds("Light", DEFAULT_LIGHT),
            locations=locations,
            weights=GrowthWeights(
                temperature=to_float(data.get("temperatureWeight"), 0.25),
                humidity=to_float(data.get("humidityWeight"), 0.25),
                light=to_float(data.get("lightWeight"), 0.25),
                moisture=to_float(data.get("waterWeight"), 0.25),
            ),
            nutrient_depletion_rate=to_float(data.get("nutrientDepletionRate"), 0.1),
            preferred_fertilizer=data.get("preferredFertilizerType") or None,
            fertilizer_boost=to_float(data.get("fertilizerGrowthBoost"), 1.5),
            thresholds={k: to_float(v) for k, v in (data.get("diseaseThresholds") or {}).items()},
            default_max_scale=to_float(defaults.get("maxScale"), default_max_scale),
        )


@dataclass(frozen=True, slots=True)
class FertilizerType:
    name: str
    category: str
    base_nutrient_amount: float = 50.0
    duration_hours: float = 24.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FertilizerType:
        return cls(
            name=str(data["name"]),
            category=str(data["category"]),
            base_nutrient_amount=to_float(data.get("baseNutrientAmount"), 50.0),
            duration_hours=to_float(data.get("durationHours"), 24.0),
        )


class ReferenceSource(Protocol):
    """Anything able to return raw species and fertilizer records by name."""

    def get_species(self, name: str) -> Mapping[str, Any] | None: ...

    def get_fertilizer(self, name: str) -> Mapping[str, Any] | None: ...


def _lookup(dataset: Mapping[str, Any], name: str) -> tuple[str, Mapping[str, Any]] | None:
    key = normalize_key(name)
    for entry_name, entry in dataset.items():
        if normalize_key(entry_name) == key and isinstance(entry, Mapping):
            return entry_name, entry
    return None


class DatasetReferenceSource:
    """Reference records read from the bundled JSON/YAML datasets."""

    def get_species(self, name: str) -> Mapping[str, Any] | None:
        found = _lookup(load_dataset(SPECIES_FILE), name)
        if found is None:
            return None
        return {"plantName": found[0], **found[1]}

    def get_fertilizer(self, name: str) -> Mapping[str, Any] | None:
        found = _lookup(load_dataset(FERTILIZER_FILE), name)
        if found is None:
            return None
        return {"name": found[0], **found[1]}

    def list_species(self) -> list[str]:
        return sorted(load_dataset(SPECIES_FILE))

    def list_fertilizers(self) -> list[str]:
        return sorted(load_dataset(FERTILIZER_FILE))


class ReferenceCache:
    """Process-wide cache of parsed reference records.

    Entries are loaded lazily from ``source`` and kept until :meth:`refresh`
    runs. Stale entries remain usable between refreshes; the scheduler calls
    :meth:`refresh_if_stale` once per pass. The cache is safe to share across
    worker threads.
    """

    def __init__(
        self,
        source: ReferenceSource | None = None,
        *,
        ttl: timedelta = timedelta(hours=1),
        default_max_scale: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.source: ReferenceSource = source or DatasetReferenceSource()
        self.ttl = ttl
        self.default_max_scale = default_max_scale
        self._clock = clock
        self._lock = threading.Lock()
        self._species: dict[str, SpeciesProfile] = {}
        self._fertilizers: dict[str, FertilizerType] = {}
        self._diseases: dict[str, DiseaseTable] = {}
        self.loaded_at = clock()

    # ------------------------------------------------------------------
    def species(self, name: str) -> SpeciesProfile:
        """Return the profile for ``name`` or raise :class:`ReferenceDataNotFound`."""

        key = normalize_key(name)
        with self._lock:
            cached = self._species.get(key)
        if cached is not None:
            return cached
        record = self.source.get_species(name)
        if record is None:
            raise ReferenceDataNotFound("species", name)
        issues = validate_species_record(record)
        if issues:
            err = InvalidReferenceData("species", name, issues)
            warn_once(_LOGGER, f"invalid_species:{key}", str(err))
            raise ReferenceDataNotFound("species", name) from err
        profile = SpeciesProfile.from_dict(record, default_max_scale=self.default_max_scale)
        with self._lock:
            self._species[key] = profile
        return profile

    def fertilizer(self, name: str) -> FertilizerType:
        """Return the fertilizer type ``name`` or raise :class:`ReferenceDataNotFound`."""

        key = normalize_key(name)
        with self._lock:
            cached = self._fertilizers.get(key)
        if cached is not None:
            return cached
        record = self.source.get_fertilizer(name)
        if record is None:
            raise ReferenceDataNotFound("fertilizer", name)
        issues = validate_fertilizer_record(record)
        if issues:
            err = InvalidReferenceData("fertilizer", name, issues)
            warn_once(_LOGGER, f"invalid_fertilizer:{key}", str(err))
            raise ReferenceDataNotFound("fertilizer", name) from err
        fertilizer = FertilizerType.from_dict(record)
        with self._lock:
            self._fertilizers[key] = fertilizer
        return fertilizer

    def disease_table(self, species: str) -> DiseaseTable:
        """Return the disease table of ``species``; unknown species get an empty table."""

        key = normalize_key(species)
        with self._lock:
            cached = self._diseases.get(key)
        if cached is not None:
            return cached
        table = load_disease_table(species)
        if not table.diseases:
            warn_once(_LOGGER, f"no_disease_table:{key}", f"no disease table for species '{species}'")
        with self._lock:
            self._diseases[key] = table
        return table

    # ------------------------------------------------------------------
    def is_stale(self, now: datetime | None = None) -> bool:
        now = now or self._clock()
        return now - self.loaded_at >= self.ttl

    def refresh(self) -> None:
        """Drop every cached entry so records are reloaded on next access."""

        with self._lock:
            self._species.clear()
            self._fertilizers.clear()
            self._diseases.clear()
            self.loaded_at = self._clock()
        clear_dataset_cache()
        _LOGGER.debug("Reference cache refreshed")

    def refresh_if_stale(self, now: datetime | None = None) -> bool:
        if not self.is_stale(now):
            return False
        self.refresh()
        return True

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "species": len(self._species),
                "fertilizers": len(self._fertilizers),
                "disease_tables": len(self._diseases),
            }
