"""Soil moisture model."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .config import DEFAULT_CONFIG, SimulationConfig
from .environment import NO_FACILITIES, EffectiveEnvironment, FacilityState
from .models import LocationCategory, PlantRecord
from .reference_data import SpeciesProfile
from .utils import clamp, inverse_lerp

__all__ = [
    "MoisturePath",
    "humidity_loss_rate",
    "inflow_rate",
    "net_moisture_rate",
    "reduce_moisture_based_on_humidity",
    "update_moisture",
    "add_moisture",
    "reduce_moisture",
    "humidity_bonus",
    "effective_moisture",
    "effective_moisture_path",
    "initial_moisture",
]

# Starting moisture per location and its sensitivity to ambient humidity
# around a 60 % reference.
INITIAL_MOISTURE: dict[LocationCategory, tuple[float, float]] = {
    LocationCategory.GROUND: (70.0, 0.3),
    LocationCategory.HOUSE: (75.0, 0.15),
    LocationCategory.GREENHOUSE: (80.0, 0.1),
}
INITIAL_HUMIDITY_REFERENCE = 60.0


@dataclass(frozen=True, slots=True)
class MoisturePath:
    """Effective moisture over one interval: ``clamp(start + rate * t, floor, ceiling)``.

    ``t`` is seconds since the interval began. Stored moisture moves at a
    constant rate between its clamps and the humidity bonus is constant, so
    the effective value follows this shape exactly.
    """

    start: float
    rate: float
    floor: float = 0.0
    ceiling: float = 100.0

    def at(self, seconds: float) -> float:
        return clamp(self.start + self.rate * seconds, self.floor, self.ceiling)

    def crossings(self, values: Iterable[float], begin: float, end: float) -> list[float]:
        """Return the times in ``(begin, end)`` at which the unclamped path meets ``values``."""

        if not self.rate:
            return []
        times = ((value - self.start) / self.rate for value in values)
        return sorted(t for t in times if begin < t < end)


def humidity_loss_rate(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Return moisture lost per second from the humidity deficit."""

    minimum = species.ranges_for(record.location).humidity[0]
    if minimum <= 0 or env.humidity >= minimum:
        return 0.0
    deficit = (minimum - env.humidity) / minimum
    factor = config.greenhouse_evaporation_factor if env.location is LocationCategory.GREENHOUSE else 1.0
    return deficit * config.evaporation_rate * factor


def inflow_rate(
    env: EffectiveEnvironment,
    facility: FacilityState = NO_FACILITIES,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Return moisture gained per second from rain and irrigation equipment."""

    rate = 0.0
    if env.location is LocationCategory.GROUND:
        rate += env.precipitation * config.precipitation_moisture_rate
        if facility.ground_sprinklers_on:
            rate += config.sprinkler_rate
    elif env.location is LocationCategory.GREENHOUSE and facility.greenhouse_irrigation_on:
        rate += config.irrigation_rate
    return rate


def net_moisture_rate(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    facility: FacilityState = NO_FACILITIES,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    return inflow_rate(env, facility, config) - humidity_loss_rate(record, species, env, config)


def reduce_moisture_based_on_humidity(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    elapsed: float,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Apply humidity driven evaporation and return the amount removed."""

    if elapsed <= 0:
        return 0.0
    before = record.moisture
    loss = humidity_loss_rate(record, species, env, config) * elapsed
    record.moisture = clamp(before - loss, 0.0, 100.0)
    return before - record.moisture


def update_moisture(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    elapsed: float,
    facility: FacilityState = NO_FACILITIES,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Advance moisture by ``elapsed`` seconds and return the net change.

    Inflow and evaporation are combined into one constant rate before the
    clamp so that splitting an interval never changes the result.
    """

    if elapsed <= 0:
        return 0.0
    before = record.moisture
    net = net_moisture_rate(record, species, env, facility, config)
    record.moisture = clamp(before + net * elapsed, 0.0, 100.0)
    return record.moisture - before


def add_moisture(record: PlantRecord, amount: float = DEFAULT_CONFIG.watering_amount) -> float:
    """Watering event. Returns the new moisture level."""

    record.moisture = clamp(record.moisture + max(0.0, amount), 0.0, 100.0)
    return record.moisture


def reduce_moisture(record: PlantRecord, amount: float) -> float:
    record.moisture = clamp(record.moisture - max(0.0, amount), 0.0, 100.0)
    return record.moisture


def effective_moisture(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Return stored moisture plus the ambient humidity contribution.

    The bonus is recomputed on every call and never written to the record.
    """

    return clamp(record.moisture + humidity_bonus(record, species, env, config), 0.0, 100.0)


def humidity_bonus(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    low, high = species.ranges_for(record.location).humidity
    return inverse_lerp(low, high, env.humidity) * config.humidity_moisture_bonus


def effective_moisture_path(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    facility: FacilityState = NO_FACILITIES,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> MoisturePath:
    """Return the effective moisture path starting from the stored moisture.

    Call before :func:`update_moisture` advances the record. Stored moisture
    clamped to ``[0, 100]`` plus a bonus in ``[0, 100]`` and clamped again is
    the raw path clamped to ``[bonus, 100]``.
    """

    bonus = clamp(humidity_bonus(record, species, env, config), 0.0, 100.0)
    return MoisturePath(
        start=record.moisture + bonus,
        rate=net_moisture_rate(record, species, env, facility, config),
        floor=bonus,
        ceiling=100.0,
    )


def initial_moisture(location: LocationCategory | str | None, humidity: float) -> float:
    """Return the moisture a freshly planted plant starts with."""

    category = LocationCategory.parse(location) or LocationCategory.GROUND
    base, sensitivity = INITIAL_MOISTURE[category]
    return clamp(base + (humidity - INITIAL_HUMIDITY_REFERENCE) * sensitivity, 0.0, 100.0)
