"""Nutrient level and fertilizer effect model."""

from __future__ import annotations

import math

from .config import DEFAULT_CONFIG, SimulationConfig
from .environment import EffectiveEnvironment
from .models import LocationCategory, PlantRecord
from .reference_data import FertilizerType, SpeciesProfile
from .utils import clamp, lerp, normalize_key

__all__ = [
    "FERTILIZER_CATEGORIES",
    "boost_for",
    "apply_fertilizer",
    "depletion_rate",
    "update_fertilizer",
    "fertilizer_boost",
]

FERTILIZER_CATEGORIES = ("NitrogenRich", "Balanced", "OrchidSpecific")

LIGHT_SCALE_MIN = 0.8
LIGHT_SCALE_MAX = 1.2


def boost_for(
    species: SpeciesProfile,
    fertilizer: FertilizerType,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Return the growth multiplier ``fertilizer`` grants ``species``."""

    boost = species.fertilizer_boost
    preferred = species.preferred_fertilizer
    if preferred and normalize_key(preferred) != normalize_key(fertilizer.category):
        boost *= config.fertilizer_mismatch_penalty
    return boost


def apply_fertilizer(
    record: PlantRecord,
    species: SpeciesProfile,
    fertilizer: FertilizerType,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Apply ``fertilizer`` to ``record`` and return the cached boost."""

    record.nutrient = clamp(record.nutrient + fertilizer.base_nutrient_amount, 0.0, 100.0)
    record.remaining_effect_seconds = max(0.0, fertilizer.duration_hours * 3600.0)
    record.fertilizer_name = fertilizer.name
    record.fertilizer_boost = boost_for(species, fertilizer, config)
    return record.fertilizer_boost


def depletion_rate(
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Return nutrient units consumed per second under ``env``.

    Light scales the rate from 0.8 in darkness to 1.2 at the reference light,
    so it is 1.0 at half the reference.
    """

    rate = species.nutrient_depletion_rate / 3600.0
    reference = config.light_reference or 1.0
    rate *= lerp(LIGHT_SCALE_MIN, LIGHT_SCALE_MAX, env.light / reference)
    if env.location is LocationCategory.GREENHOUSE:
        rate *= config.greenhouse_depletion_factor
    if env.precipitation > 0:
        rate *= config.precipitation_depletion_factor
    return max(0.0, rate)


def update_fertilizer(
    record: PlantRecord,
    species: SpeciesProfile,
    env: EffectiveEnvironment,
    elapsed: float,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Deplete nutrients over ``elapsed`` seconds.

    Returns how many of those seconds the fertilizer was still active, which
    is the share of the interval the growth boost applies to.
    """

    if record.nutrient <= 0 or record.remaining_effect_seconds <= 0:
        record.clear_fertilizer()
        return 0.0
    if elapsed <= 0:
        return 0.0

    rate = depletion_rate(species, env, config)
    until_empty = record.nutrient / rate if rate > 0 else math.inf
    active = min(elapsed, record.remaining_effect_seconds, until_empty)

    record.nutrient = clamp(record.nutrient - rate * elapsed, 0.0, 100.0)
    record.remaining_effect_seconds = max(0.0, record.remaining_effect_seconds - elapsed)
    if record.nutrient <= 0 or record.remaining_effect_seconds <= 0:
        record.clear_fertilizer()
    return active


def fertilizer_boost(record: PlantRecord) -> float:
    """Return the active growth multiplier or 1.0 when no fertilizer is active."""

    if record.nutrient > 0 and record.remaining_effect_seconds > 0:
        return record.fertilizer_boost
    return 1.0
