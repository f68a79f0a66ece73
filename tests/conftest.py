from __future__ import annotations

import sqlite3
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import pytest

from plant_sim import utils
from plant_sim.config import CONFIG_ENV, clear_config_cache
from plant_sim.models import PlantRecord
from plant_sim.reference_data import ReferenceCache, SpeciesProfile
from plant_sim.store import PlantStore
from plant_sim.utils import UTC, normalize_key

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


class AlwaysTrigger:
    """Random source whose draws always fall under any positive chance."""

    def random(self) -> float:
        return 0.0


class NeverTrigger:
    def random(self) -> float:
        return 1.0


class DictSource:
    """Reference source backed by plain dictionaries."""

    def __init__(
        self,
        species: Mapping[str, Mapping[str, Any]] | None = None,
        fertilizers: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self.species = {normalize_key(k): dict(v) for k, v in (species or {}).items()}
        self.fertilizers = {normalize_key(k): dict(v) for k, v in (fertilizers or {}).items()}
        self.species_calls = 0

    def get_species(self, name: str) -> Mapping[str, Any] | None:
        self.species_calls += 1
        return self.species.get(normalize_key(name))

    def get_fertilizer(self, name: str) -> Mapping[str, Any] | None:
        return self.fertilizers.get(normalize_key(name))


def make_species(**overrides: Any) -> SpeciesProfile:
    values: dict[str, Any] = {
        "name": "TestPlant",
        "optimal_moisture": 70.0,
        "moisture_range": 20.0,
        "temperature": (15.0, 30.0),
        "humidity": (40.0, 80.0),
        "light": (200.0, 1000.0),
        "nutrient_depletion_rate": 0.1,
        "preferred_fertilizer": "Balanced",
        "fertilizer_boost": 1.5,
        "default_max_scale": 0.5,
    }
    values.update(overrides)
    return SpeciesProfile(**values)


def make_plant(**overrides: Any) -> PlantRecord:
    values: dict[str, Any] = {
        "username": "alice",
        "plant_id": "p1",
        "species": "Monstera",
        "location": "Ground",
        "scale": 0.1,
        "moisture": 70.0,
    }
    values.update(overrides)
    return PlantRecord(**values)


class FlakyStore(PlantStore):
    """Store whose writes fail for any batch containing a poisoned plant."""

    def __init__(self, path, poisoned):
        self.poisoned = set(poisoned)
        super().__init__(path)

    def _write_batch(self, conn, records):
        if any(r.plant_id in self.poisoned for r in records):
            raise sqlite3.OperationalError("disk I/O error")
        super()._write_batch(conn, records)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    for env in (utils.DATA_ENV, utils.EXTRA_ENV, utils.OVERLAY_ENV, CONFIG_ENV):
        monkeypatch.delenv(env, raising=False)
    utils.clear_dataset_cache()
    clear_config_cache()
    utils._LAST_WARNED.clear()
    yield
    utils.clear_dataset_cache()
    clear_config_cache()


@pytest.fixture
def cache() -> ReferenceCache:
    return ReferenceCache(clock=lambda: NOW)


@pytest.fixture
def store():
    plant_store = PlantStore(":memory:")
    yield plant_store
    plant_store.close()
