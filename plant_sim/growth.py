"""Growth rate from weighted environmental suitability."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from .config import DEFAULT_CONFIG, SimulationConfig
from .environment import EffectiveEnvironment
from .models import PlantRecord
from .moisture import MoisturePath
from .reference_data import SpeciesProfile
from .utils import clamp

__all__ = [
    "SuitabilityBreakdown",
    "suitability_factor",
    "moisture_factor",
    "moisture_factor_integral",
    "suitability",
    "growth_modifier",
    "mean_growth_modifier",
    "growth_increment",
    "apply_growth",
]


@dataclass(frozen=True, slots=True)
class SuitabilityBreakdown:
    """Per-dimension factors and their weighted sum."""

    temperature: float
    humidity: float
    light: float
    moisture: float
    modifier: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def suitability_factor(value: float, minimum: float, maximum: float) -> float:
    """Return a ``[0, 1]`` score for ``value`` within ``[minimum, maximum]``.

    Inside the range the score is the normalised position. Outside it the
    score of the nearest bound is reduced by twice the overshoot in range
    widths, so it is continuous at both bounds, never exceeds the bound's
    own score and reaches 0 half a range width beyond it. Below the minimum
    that is always 0.
    """

    if maximum <= minimum:
        return 1.0 if value == minimum else 0.0
    position = (value - minimum) / (maximum - minimum)
    if 0.0 <= position <= 1.0:
        return position
    if position < 0.0:
        return 0.0
    return clamp(1.0 - 2.0 * (position - 1.0), 0.0, 1.0)


def moisture_factor(moisture: float, optimal: float, tolerance: float) -> float:
    return suitability_factor(moisture, optimal - tolerance, optimal + tolerance)


def moisture_factor_integral(path: MoisturePath, species: SpeciesProfile, begin: float, end: float) -> float:
    """Integrate the moisture factor along ``path`` over seconds ``[begin, end]``.

    The factor is piecewise linear in moisture and the clamped path is
    piecewise linear in time, so trapezoids between the kinks are exact.
    """

    if end <= begin:
        return 0.0
    optimal, tolerance = species.optimal_moisture, species.moisture_range
    low, high = optimal - tolerance, optimal + tolerance
    kinks = (path.floor, path.ceiling, low, high, high + (high - low) / 2.0)
    times = [begin, *path.crossings(kinks, begin, end), end]
    total = 0.0
    for t0, t1 in zip(times, times[1:]):
        f0 = moisture_factor(path.at(t0), optimal, tolerance)
        f1 = moisture_factor(path.at(t1), optimal, tolerance)
        total += (t1 - t0) * (f0 + f1) / 2.0
    return total


def suitability(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    effective_moisture: float,
) -> SuitabilityBreakdown:
    ranges = species.ranges_for(record.location)
    weights = species.weights
    temperature = suitability_factor(env.temperature, *ranges.temperature)
    humidity = suitability_factor(env.humidity, *ranges.humidity)
    light = suitability_factor(env.light, *ranges.light)
    moisture = moisture_factor(effective_moisture, species.optimal_moisture, species.moisture_range)
    modifier = (
        temperature * weights.temperature
        + humidity * weights.humidity
        + light * weights.light
        + moisture * weights.moisture
    )
    return SuitabilityBreakdown(temperature, humidity, light, moisture, max(0.0, modifier))


def growth_modifier(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    effective_moisture: float,
) -> float:
    return suitability(record, species, env, effective_moisture).modifier


def mean_growth_modifier(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    path: MoisturePath,
    begin: float,
    end: float,
) -> float:
    """Average modifier over seconds ``[begin, end]`` while moisture follows ``path``."""

    if end <= begin:
        return 0.0
    weights = species.weights
    factors = suitability(record, species, env, path.at(begin))
    fixed = (
        factors.temperature * weights.temperature
        + factors.humidity * weights.humidity
        + factors.light * weights.light
    )
    moisture = moisture_factor_integral(path, species, begin, end) / (end - begin)
    return max(0.0, fixed + moisture * weights.moisture)


def growth_increment(
    modifier: float,
    slowing_factor: float,
    boost: float,
    elapsed: float,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Scale gained over ``elapsed`` seconds."""

    if elapsed <= 0:
        return 0.0
    return config.base_growth_rate * modifier * slowing_factor * boost * elapsed


def apply_growth(
    record: PlantRecord,
    species: SpeciesProfile,
    modifier: float,
    elapsed: float,
    *,
    boost_seconds: float = 0.0,
    boost: float = 1.0,
    boosted_modifier: float | None = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Grow ``record`` and return the scale actually added.

    The fertilizer ``boost`` applies to the first ``boost_seconds`` of the
    interval, at ``boosted_modifier`` when given, and the remainder grows
    unboosted at ``modifier``. Growth stops for good once the location's
    maximum scale is reached.
    """

    if record.reached_max_scale or elapsed <= 0:
        return 0.0
    max_scale = species.ranges_for(record.location).max_scale
    boosted = clamp(boost_seconds, 0.0, elapsed)
    early = modifier if boosted_modifier is None else boosted_modifier
    increment = growth_increment(
        early, record.disease_slowing_factor, boost, boosted, config
    ) + growth_increment(modifier, record.disease_slowing_factor, 1.0, elapsed - boosted, config)

    before = record.scale
    record.scale = min(before + increment, max_scale) if before < max_scale else before
    if record.scale >= max_scale:
        record.reached_max_scale = True
    return record.scale - before
