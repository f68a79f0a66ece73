"""Location specific transforms from ambient weather to effective values."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .models import LocationCategory
from .utils import to_float

__all__ = [
    "FacilityState",
    "NO_FACILITIES",
    "EnvironmentSample",
    "EffectiveEnvironment",
    "effective_temperature",
    "effective_humidity",
    "effective_light",
    "sample_environment",
]

# House climate: indoor temperature sits around 22 C and follows half of the
# outdoor deviation from 20 C, humidity is compressed into 30-60 %.
HOUSE_BASE_TEMPERATURE = 22.0
HOUSE_OUTDOOR_REFERENCE = 20.0
HOUSE_TEMPERATURE_DAMPING = 0.5
HOUSE_AC_COOLING = 4.0
HOUSE_AC_HUMIDITY_FACTOR = 0.7
HOUSE_HUMIDITY_BASE = 30.0
HOUSE_HUMIDITY_SPAN = 30.0
HOUSE_LIGHT_FACTOR = 0.3
HOUSE_LAMP_LIGHT = 500.0

# Greenhouse climate: warmer, humidity compressed into 60-90 %.
GREENHOUSE_WARMING = 5.0
GREENHOUSE_FAN_COOLING = 5.0
GREENHOUSE_HUMIDITY_BASE = 60.0
GREENHOUSE_HUMIDITY_SPAN = 30.0
GREENHOUSE_LIGHT_FACTOR = 0.8
GREENHOUSE_LAMP_LIGHT = 500.0


@dataclass(frozen=True, slots=True)
class FacilityState:
    """Per-user toggles for the house and greenhouse equipment."""

    house_lights_on: bool = False
    house_air_conditioners_on: bool = False
    greenhouse_lights_on: bool = False
    greenhouse_fans_on: bool = False
    greenhouse_irrigation_on: bool = False
    ground_sprinklers_on: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FacilityState:
        if not data:
            return cls()
        return cls(
            house_lights_on=bool(data.get("houseLightsOn", False)),
            house_air_conditioners_on=bool(data.get("houseAirConditionersOn", False)),
            greenhouse_lights_on=bool(data.get("greenHouseLightsOn", False)),
            greenhouse_fans_on=bool(data.get("greenHouseFansOn", False)),
            greenhouse_irrigation_on=bool(data.get("greenHouseIrrigationOn", False)),
            ground_sprinklers_on=bool(data.get("groundSprinklersOn", False)),
        )

    def to_dict(self) -> dict[str, bool]:
        return {
            "houseLightsOn": self.house_lights_on,
            "houseAirConditionersOn": self.house_air_conditioners_on,
            "greenHouseLightsOn": self.greenhouse_lights_on,
            "greenHouseFansOn": self.greenhouse_fans_on,
            "greenHouseIrrigationOn": self.greenhouse_irrigation_on,
            "groundSprinklersOn": self.ground_sprinklers_on,
        }


NO_FACILITIES = FacilityState()


@dataclass(frozen=True, slots=True)
class EnvironmentSample:
    """Raw ambient conditions for one hour."""

    temperature: float
    humidity: float
    light: float = 0.0
    precipitation: float = 0.0

    @property
    def is_raining(self) -> bool:
        return self.precipitation > 0


@dataclass(frozen=True, slots=True)
class EffectiveEnvironment:
    """Conditions a plant actually experiences at its location."""

    temperature: float
    humidity: float
    light: float
    precipitation: float
    location: LocationCategory | None

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["location"] = self.location.value if self.location else None
        return data


def effective_temperature(
    temperature: float,
    location: LocationCategory | None,
    facility: FacilityState = NO_FACILITIES,
) -> float:
    """Return the temperature experienced at ``location``."""

    if location is LocationCategory.HOUSE:
        value = HOUSE_BASE_TEMPERATURE + (temperature - HOUSE_OUTDOOR_REFERENCE) * HOUSE_TEMPERATURE_DAMPING
        if facility.house_air_conditioners_on:
            value -= HOUSE_AC_COOLING
        return value
    if location is LocationCategory.GREENHOUSE:
        value = temperature + GREENHOUSE_WARMING
        if facility.greenhouse_fans_on:
            value -= GREENHOUSE_FAN_COOLING
        return value
    return temperature


def effective_humidity(
    humidity: float,
    location: LocationCategory | None,
    facility: FacilityState = NO_FACILITIES,
) -> float:
    """Return the relative humidity experienced at ``location``."""

    if location is LocationCategory.HOUSE:
        if facility.house_air_conditioners_on:
            humidity *= HOUSE_AC_HUMIDITY_FACTOR
        return HOUSE_HUMIDITY_BASE + (humidity / 100.0) * HOUSE_HUMIDITY_SPAN
    if location is LocationCategory.GREENHOUSE:
        return GREENHOUSE_HUMIDITY_BASE + (humidity / 100.0) * GREENHOUSE_HUMIDITY_SPAN
    return humidity


def effective_light(
    light: float,
    location: LocationCategory | None,
    facility: FacilityState = NO_FACILITIES,
) -> float:
    """Return the light intensity reaching a plant at ``location``."""

    if location is LocationCategory.HOUSE:
        lamps = HOUSE_LAMP_LIGHT if facility.house_lights_on else 0.0
        return lamps + light * HOUSE_LIGHT_FACTOR
    if location is LocationCategory.GREENHOUSE:
        lamps = GREENHOUSE_LAMP_LIGHT if facility.greenhouse_lights_on else 0.0
        return lamps + light * GREENHOUSE_LIGHT_FACTOR
    return light


def sample_environment(
    sample: EnvironmentSample,
    location: LocationCategory | str | None,
    facility: FacilityState | None = None,
) -> EffectiveEnvironment:
    """Return effective conditions for a plant at ``location``.

    Pure function of its arguments. Unknown locations pass values through
    unchanged like open ground.
    """

    category = LocationCategory.parse(location)
    facility = facility or NO_FACILITIES
    return EffectiveEnvironment(
        temperature=effective_temperature(to_float(sample.temperature), category, facility),
        humidity=effective_humidity(to_float(sample.humidity), category, facility),
        light=effective_light(max(0.0, to_float(sample.light)), category, facility),
        precipitation=max(0.0, to_float(sample.precipitation)),
        location=category,
    )
