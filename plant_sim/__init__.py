"""Elapsed-time driven simulation of virtual plants."""

from __future__ import annotations

from . import plant_actions
from .config import DEFAULT_CONFIG, SimulationConfig, load_config
from .environment import EnvironmentSample, FacilityState, sample_environment
from .errors import (ConfigError, InvalidReferenceData, PlantSimError,
                     ReferenceDataNotFound, StoreError)
from .models import LocationCategory, PlantRecord, UserActivity
from .reference_data import (DatasetReferenceSource, FertilizerType,
                             ReferenceCache, SpeciesProfile)
from .scheduler import CatchUpScheduler, PassSummary
from .session import ActivePlantSession
from .simulation import PlantSimulator, StepResult
from .store import PlantStore
from .weather import HourlyWeatherEntry, WeatherSeries

__version__ = "0.1.0"

__all__ = sorted(
    {
        "plant_actions",
        "DEFAULT_CONFIG",
        "SimulationConfig",
        "load_config",
        "EnvironmentSample",
        "FacilityState",
        "sample_environment",
        "ConfigError",
        "InvalidReferenceData",
        "PlantSimError",
        "ReferenceDataNotFound",
        "StoreError",
        "LocationCategory",
        "PlantRecord",
        "UserActivity",
        "DatasetReferenceSource",
        "FertilizerType",
        "ReferenceCache",
        "SpeciesProfile",
        "CatchUpScheduler",
        "PassSummary",
        "ActivePlantSession",
        "PlantSimulator",
        "StepResult",
        "PlantStore",
        "HourlyWeatherEntry",
        "WeatherSeries",
    }
)
