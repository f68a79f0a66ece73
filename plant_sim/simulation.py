"""The per-plant pipeline shared by the active session and the scheduler."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from .config import DEFAULT_CONFIG, SimulationConfig
from .disease import DiseaseReadings, RandomSource, check_for_disease, update_shade
from .environment import NO_FACILITIES, EnvironmentSample, FacilityState, sample_environment
from .fertilizer import fertilizer_boost, update_fertilizer
from .growth import apply_growth, mean_growth_modifier
from .models import PlantRecord
from .moisture import effective_moisture, effective_moisture_path, update_moisture
from .reference_data import ReferenceCache, SpeciesProfile
from .utils import utcnow
from .weather import WeatherSeries

_LOGGER = logging.getLogger(__name__)

__all__ = ["StepResult", "PlantSimulator"]


@dataclass(slots=True)
class StepResult:
    """What one or more pipeline runs did to a record."""

    elapsed: float = 0.0
    moisture_change: float = 0.0
    boosted_seconds: float = 0.0
    growth: float = 0.0
    contracted: str | None = None
    shade_cured: bool = False
    initialized: bool = False
    steps: int = 0
    skipped: str | None = None

    def merge(self, other: StepResult) -> StepResult:
        self.elapsed += other.elapsed
        self.moisture_change += other.moisture_change
        self.boosted_seconds += other.boosted_seconds
        self.growth += other.growth
        self.contracted = other.contracted or self.contracted
        self.shade_cured = self.shade_cured or other.shade_cured
        self.initialized = self.initialized or other.initialized
        self.steps += other.steps
        self.skipped = other.skipped or self.skipped
        return self

    def as_dict(self) -> dict:
        return asdict(self)


class PlantSimulator:
    """Run Moisture, Fertilizer, Growth, Disease and Shade for one plant.

    Every model consumes the elapsed time since the record's own timestamps,
    never a tick count, so a plant ticked every second and a plant caught up
    once after a day end in the same state under the same weather.
    """

    def __init__(
        self,
        cache: ReferenceCache,
        config: SimulationConfig = DEFAULT_CONFIG,
        *,
        rng: RandomSource | None = None,
    ) -> None:
        self.cache = cache
        self.config = config
        self.rng = rng

    def step(
        self,
        record: PlantRecord,
        sample: EnvironmentSample,
        now: datetime | None = None,
        facility: FacilityState | None = None,
        *,
        species: SpeciesProfile | None = None,
    ) -> StepResult:
        """Advance ``record`` to ``now`` under a constant ``sample``.

        Raises :class:`~plant_sim.errors.ReferenceDataNotFound` when the
        species is unknown; the record is left untouched in that case.
        """

        now = now or utcnow()
        species = species or self.cache.species(record.species)
        table = self.cache.disease_table(record.species)
        record.normalize()

        last = record.last_growth_update
        if last is None:
            record.last_growth_update = now
            if record.last_disease_check is None:
                record.last_disease_check = now
            return StepResult(initialized=True, steps=1)

        elapsed = (now - last).total_seconds()
        if elapsed <= 0:
            # clock skew is treated as no time passing
            return StepResult(steps=1)

        config = self.config
        env = sample_environment(sample, record.location, facility)
        result = StepResult(elapsed=elapsed, steps=1)

        facility = facility or NO_FACILITIES
        path = effective_moisture_path(record, species, env, facility, config)
        result.moisture_change = update_moisture(record, species, env, elapsed, facility, config)
        moisture = effective_moisture(record, species, env, config)

        boost = fertilizer_boost(record)
        result.boosted_seconds = update_fertilizer(record, species, env, elapsed, config)

        # growth integrates moisture along the interval, not its end value
        boosted = min(result.boosted_seconds, elapsed)
        result.growth = apply_growth(
            record,
            species,
            mean_growth_modifier(record, species, env, path, boosted, elapsed),
            elapsed,
            boost_seconds=boosted,
            boost=boost,
            boosted_modifier=mean_growth_modifier(record, species, env, path, 0.0, boosted),
            config=config,
        )

        readings = DiseaseReadings(
            moisture=moisture,
            humidity=env.humidity,
            light=env.light,
            temperature=env.temperature,
            location=env.location,
        )
        result.contracted = check_for_disease(
            record, species, table, readings, now, rng=self.rng, config=config
        )
        result.shade_cured = update_shade(record, elapsed, config)

        record.last_growth_update = now
        record.normalize()
        _LOGGER.debug(
            "Stepped %s/%s by %.0fs: scale %.6f (+%.6f), moisture %.2f",
            record.username,
            record.plant_id,
            elapsed,
            record.scale,
            result.growth,
            record.moisture,
        )
        return result

    def catch_up(
        self,
        record: PlantRecord,
        series: WeatherSeries,
        now: datetime | None = None,
        facility: FacilityState | None = None,
    ) -> StepResult:
        """Bring ``record`` up to ``now`` against a cached weather series.

        By default one step runs with the weather of the current local hour.
        With ``hourly_replay`` enabled each elapsed local hour is replayed
        with its own entry, bounded by ``max_replay_hours``; anything older
        than that window is applied in one step first.
        """

        now = now or utcnow()
        species = self.cache.species(record.species)
        current = series.entry_for(now)
        if current is None:
            return StepResult(skipped="no weather data")

        last = record.last_growth_update
        if not self.config.hourly_replay or last is None or last >= now:
            return self.step(record, current.to_sample(), now, facility, species=species)

        result = StepResult()
        cutoff = now - timedelta(hours=self.config.max_replay_hours)
        if last < cutoff:
            entry = series.entry_for(cutoff) or current
            result.merge(self.step(record, entry.to_sample(), cutoff, facility, species=species))
        for segment_end, entry in series.segments(record.last_growth_update, now):
            result.merge(self.step(record, entry.to_sample(), segment_end, facility, species=species))
        return result
