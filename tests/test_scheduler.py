from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest
from conftest import NOW, FlakyStore, NeverTrigger, make_plant

from plant_sim.config import DEFAULT_CONFIG, SimulationConfig
from plant_sim.models import UserActivity
from plant_sim.reference_data import ReferenceCache
from plant_sim.scheduler import CatchUpScheduler
from plant_sim.simulation import PlantSimulator
from plant_sim.store import PlantStore

THREE_HOURS_AGO = NOW - timedelta(hours=3)


def _weather():
    return [
        {"time": f"2026-05-01T{hour:02d}:00", "temperatureC": 22.0, "humidity": 60.0, "directRadiationWm2": 400.0}
        for hour in range(24)
    ]


def _add_user(
    store: PlantStore,
    username: str,
    *,
    playing: bool = False,
    idle: timedelta = timedelta(days=1),
    weather: bool = True,
    plants=("p1",),
    species: str = "Monstera",
):
    store.upsert_user(UserActivity(username, playing, NOW - idle))
    if weather:
        store.put_weather(username, _weather())
    for plant_id in plants:
        store.put_plant(
            make_plant(
                username=username,
                plant_id=plant_id,
                species=species,
                last_growth_update=THREE_HOURS_AGO,
                last_disease_check=THREE_HOURS_AGO,
            )
        )


def _scheduler(store: PlantStore, config: SimulationConfig = DEFAULT_CONFIG) -> CatchUpScheduler:
    store.seed_reference_data()
    cache = ReferenceCache(store, clock=lambda: NOW)
    simulator = PlantSimulator(cache, config, rng=NeverTrigger())
    return CatchUpScheduler(store, cache, config, simulator=simulator, clock=lambda: NOW)


@pytest.fixture
def scheduler(store):
    sched = _scheduler(store)
    yield sched
    sched.shutdown()


async def test_inactive_users_are_caught_up(store, scheduler):
    _add_user(store, "bob", plants=("p1", "p2"))
    summary = await scheduler.run_once(NOW)
    assert summary.users_seen == 1
    assert summary.users_processed == 1
    assert summary.plants_updated == 2
    for plant in store.get_plants("bob"):
        assert plant.last_growth_update == NOW
        assert plant.scale > 0.1


async def test_active_users_are_left_alone(store, scheduler):
    _add_user(store, "alice", playing=True, idle=timedelta(seconds=30))
    summary = await scheduler.run_once(NOW)
    assert summary.users_active == 1
    assert summary.users_processed == 0
    assert store.get_plant("alice", "p1").last_growth_update == THREE_HOURS_AGO
    assert store.get_user("alice").is_playing is True


async def test_idle_players_are_flipped_and_processed(store, scheduler):
    _add_user(store, "carol", playing=True, idle=timedelta(minutes=10))
    summary = await scheduler.run_once(NOW)
    assert summary.users_flipped_inactive == 1
    assert summary.users_processed == 1
    assert store.get_user("carol").is_playing is False
    assert store.get_plant("carol", "p1").last_growth_update == NOW


async def test_missing_species_is_skipped(store, scheduler):
    _add_user(store, "dave", plants=("good",))
    store.put_plant(make_plant(username="dave", plant_id="odd", species="Cactus", last_growth_update=THREE_HOURS_AGO))
    summary = await scheduler.run_once(NOW)
    assert summary.plants_updated == 1
    assert summary.plants_skipped == 1
    assert store.get_plant("dave", "odd").last_growth_update == THREE_HOURS_AGO


async def test_users_without_weather_are_skipped(store, scheduler):
    _add_user(store, "erin", weather=False)
    _add_user(store, "frank")
    summary = await scheduler.run_once(NOW)
    assert summary.users_skipped == 1
    assert summary.users_processed == 1
    assert store.get_plant("erin", "p1").last_growth_update == THREE_HOURS_AGO


async def test_failed_writes_are_counted_and_leave_timestamps():
    store = FlakyStore(":memory:", poisoned=())
    scheduler = _scheduler(store, replace(DEFAULT_CONFIG, batch_size=1))
    try:
        _add_user(store, "gina", plants=("p1", "p2"))
        store.poisoned.add("p2")
        summary = await scheduler.run_once(NOW)
        committed = store.get_plant("gina", "p1")
        rejected = store.get_plant("gina", "p2")
    finally:
        scheduler.shutdown()
        store.close()
    assert summary.plants_updated == 1
    assert summary.failed_writes == 1
    assert summary.errors == []
    assert committed.last_growth_update == NOW
    assert committed.scale > 0.1
    assert rejected.last_growth_update == THREE_HOURS_AGO
    assert rejected.scale == 0.1


async def test_stale_cache_is_refreshed(store, scheduler):
    summary = await scheduler.run_once(NOW + timedelta(hours=2))
    assert summary.cache_refreshed is True
    assert (await scheduler.run_once(NOW)).cache_refreshed is False


async def test_run_forever_stops_on_event(store, scheduler):
    _add_user(store, "hank")
    stop = asyncio.Event()
    task = asyncio.create_task(scheduler.run_forever(interval_seconds=0.01, stop_event=stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=1)
    assert scheduler.status()["last_summary"]["users_processed"] == 1
