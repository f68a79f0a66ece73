"""Continuous simulation driver for a user who is currently playing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .environment import EnvironmentSample, FacilityState
from .errors import ReferenceDataNotFound
from .models import PlantRecord
from .simulation import PlantSimulator, StepResult
from .store import BatchWriteResult, PlantStore
from .utils import utcnow, warn_once
from .weather import WeatherSeries

LOGGER = logging.getLogger(__name__)

SampleProvider = Callable[[datetime], EnvironmentSample | None]

__all__ = ["ActivePlantSession"]


class ActivePlantSession:
    """Owns one user's plants while they play.

    Plants are stepped sequentially through the same :class:`PlantSimulator`
    the scheduler uses. Weather comes from ``sample_provider`` (a live feed)
    or else from the user's cached series.
    """

    def __init__(
        self,
        store: PlantStore,
        simulator: PlantSimulator,
        username: str,
        *,
        sample_provider: SampleProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.simulator = simulator
        self.username = username
        self.sample_provider = sample_provider
        self._clock = clock
        self.logger = logger or LOGGER
        self._plants: dict[str, PlantRecord] = {}
        self._weather: WeatherSeries | None = None
        self.facility = FacilityState()
        self.last_tick_at: datetime | None = None
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    @property
    def plants(self) -> list[PlantRecord]:
        return list(self._plants.values())

    def plant(self, plant_id: str) -> PlantRecord | None:
        return self._plants.get(plant_id)

    def start(self) -> list[PlantRecord]:
        """Load plants, weather and facilities and mark the user as playing."""

        self.heartbeat()
        self._plants = {p.plant_id: p for p in self.store.get_plants(self.username)}
        self._weather = self.store.get_weather(self.username)
        self.facility = self.store.get_facility_state(self.username)
        return self.plants

    def heartbeat(self, now: datetime | None = None) -> None:
        self.store.heartbeat(self.username, now or self._clock())

    def add_plant(self, record: PlantRecord) -> None:
        self._plants[record.plant_id] = record

    def remove_plant(self, plant_id: str) -> bool:
        removed = self._plants.pop(plant_id, None)
        if removed is None:
            return False
        self.store.delete_plant(self.username, plant_id)
        return True

    def set_facility(self, facility: FacilityState) -> None:
        self.facility = facility
        self.store.put_facility_state(self.username, facility)

    # ------------------------------------------------------------------
    def current_sample(self, now: datetime) -> EnvironmentSample | None:
        if self.sample_provider is not None:
            sample = self.sample_provider(now)
            if sample is not None:
                return sample
        if self._weather:
            entry = self._weather.entry_for(now)
            if entry is not None:
                return entry.to_sample()
        return None

    def tick(self, now: datetime | None = None) -> dict[str, StepResult]:
        """Step every plant to ``now``. Plants with unknown species are skipped."""

        now = now or self._clock()
        sample = self.current_sample(now)
        if sample is None:
            warn_once(self.logger, f"no_weather:{self.username}", "no weather sample available")
            return {}
        results: dict[str, StepResult] = {}
        for record in self.plants:
            try:
                results[record.plant_id] = self.simulator.step(record, sample, now, self.facility)
            except ReferenceDataNotFound as err:
                warn_once(self.logger, f"missing_species:{record.species}", str(err))
        self.last_tick_at = now
        return results

    def advance(self, seconds: float, now: datetime | None = None) -> dict[str, StepResult]:
        """Fast-forward every plant by ``seconds`` on top of real elapsed time."""

        if seconds > 0:
            shift = timedelta(seconds=seconds)
            for record in self.plants:
                if record.last_growth_update is not None:
                    record.last_growth_update -= shift
                if record.last_disease_check is not None:
                    record.last_disease_check -= shift
        return self.tick(now)

    def save(self) -> BatchWriteResult:
        return self.store.put_plants(self.plants, self.simulator.config.batch_size)

    def end(self) -> BatchWriteResult:
        """Persist plants and hand them back to the scheduler."""

        result = self.save()
        self.store.set_playing(self.username, False)
        return result

    async def run_forever(self, *, interval_seconds: float | None = None, save_every: int = 60) -> None:
        interval = interval_seconds or self.simulator.config.active_tick_seconds
        ticks = 0
        while True:
            try:
                self.tick()
                self.heartbeat()
                ticks += 1
                if save_every and ticks % save_every == 0:
                    self.save()
            except asyncio.CancelledError:
                raise
            except Exception as err:  # pragma: no cover
                self.logger.exception("Unexpected session error: %s", err)
                self.last_error = str(err)
            await asyncio.sleep(interval)

    def status(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "plants": len(self._plants),
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
        }
