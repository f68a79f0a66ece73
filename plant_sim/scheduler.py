"""Batch catch-up of plants belonging to users who are not playing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .config import DEFAULT_CONFIG, SimulationConfig
from .errors import ReferenceDataNotFound
from .models import PlantRecord, UserActivity
from .reference_data import ReferenceCache
from .simulation import PlantSimulator
from .store import PlantStore
from .utils import utcnow, warn_once

LOGGER = logging.getLogger(__name__)

__all__ = ["UserPassResult", "PassSummary", "CatchUpScheduler"]


@dataclass(slots=True)
class UserPassResult:
    username: str
    plants_updated: int = 0
    plants_skipped: int = 0
    failed_writes: int = 0
    skipped: str | None = None
    error: str | None = None


@dataclass(slots=True)
class PassSummary:
    """Totals of one scheduler pass."""

    started_at: datetime
    users_seen: int = 0
    users_active: int = 0
    users_flipped_inactive: int = 0
    users_processed: int = 0
    users_skipped: int = 0
    plants_updated: int = 0
    plants_skipped: int = 0
    failed_writes: int = 0
    cache_refreshed: bool = False
    errors: list[str] = field(default_factory=list)

    def add(self, result: UserPassResult) -> None:
        if result.error:
            self.errors.append(f"{result.username}: {result.error}")
            return
        if result.skipped:
            self.users_skipped += 1
            return
        self.users_processed += 1
        self.plants_updated += result.plants_updated
        self.plants_skipped += result.plants_skipped
        self.failed_writes += result.failed_writes

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class CatchUpScheduler:
    """Periodically re-synchronise plants of inactive users.

    Each pass refreshes the reference cache when its TTL has expired, flips
    idle users to inactive and hands every inactive user to a bounded worker
    pool. A worker steps the user's plants once, sequentially, and persists
    them in sub-batches. Failures stay contained to the plant, sub-batch or
    user they occur in.
    """

    def __init__(
        self,
        store: PlantStore,
        cache: ReferenceCache,
        config: SimulationConfig = DEFAULT_CONFIG,
        *,
        simulator: PlantSimulator | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.config = config
        self.simulator = simulator or PlantSimulator(cache, config)
        self._clock = clock
        self.logger = logger or LOGGER
        self._executor = ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="plant-sim-catch-up"
        )
        self.last_summary: PassSummary | None = None
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    def _is_active(self, user: UserActivity, now: datetime) -> bool:
        """Return whether ``user`` still owns their plants.

        Users idle beyond the threshold are flipped to inactive and the flag
        is persisted.
        """

        if not user.is_playing:
            return False
        idle = user.idle_seconds(now)
        if idle is not None and idle <= self.config.idle_threshold_seconds:
            return True
        self.store.set_playing(user.username, False)
        self.logger.info("User %s idle for %s seconds, marked inactive", user.username, idle)
        return False

    def process_user(self, username: str, now: datetime) -> UserPassResult:
        """Catch up every plant of ``username`` and persist the results."""

        result = UserPassResult(username)
        series = self.store.get_weather(username)
        if not series:
            warn_once(self.logger, f"no_weather:{username}", f"no weather series for {username}")
            result.skipped = "no weather data"
            return result
        facility = self.store.get_facility_state(username)

        updated: list[PlantRecord] = []
        for record in self.store.get_plants(username):
            try:
                self.simulator.catch_up(record, series, now, facility)
            except ReferenceDataNotFound as err:
                warn_once(self.logger, f"missing_{err.kind}:{err.name}", f"skipping {record.plant_id}: {err}")
                result.plants_skipped += 1
                continue
            updated.append(record)

        if updated:
            write = self.store.put_plants(updated, self.config.batch_size)
            result.plants_updated = write.written
            result.failed_writes = len(write.failed)
        return result

    def _process_user_logged(self, username: str, now: datetime) -> UserPassResult:
        try:
            return self.process_user(username, now)
        except Exception as err:  # pragma: no cover - retried on the next pass
            self.logger.exception("Catch-up failed for %s: %s", username, err)
            return UserPassResult(username, error=str(err))

    async def run_once(self, now: datetime | None = None) -> PassSummary:
        """Run one pass over every known user."""

        now = now or self._clock()
        summary = PassSummary(started_at=now)
        summary.cache_refreshed = self.cache.refresh_if_stale(now)

        loop = asyncio.get_running_loop()
        pending = []
        for user in self.store.list_users():
            summary.users_seen += 1
            was_playing = user.is_playing
            if self._is_active(user, now):
                summary.users_active += 1
                continue
            if was_playing:
                summary.users_flipped_inactive += 1
            pending.append(
                loop.run_in_executor(self._executor, self._process_user_logged, user.username, now)
            )

        for result in await asyncio.gather(*pending):
            summary.add(result)

        self.last_summary = summary
        self.logger.debug(
            "Catch-up pass: %d users processed, %d plants updated, %d failed writes",
            summary.users_processed,
            summary.plants_updated,
            summary.failed_writes,
        )
        return summary

    async def run_forever(
        self,
        *,
        interval_seconds: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        interval = interval_seconds or self.config.scheduler_interval_seconds
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as err:  # pragma: no cover
                self.logger.exception("Unexpected scheduler error: %s", err)
                self.last_error = str(err)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                continue

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def status(self) -> dict[str, Any]:
        return {
            "last_summary": self.last_summary.as_dict() if self.last_summary else None,
            "last_error": self.last_error,
            "reference_cache": self.cache.stats(),
        }
