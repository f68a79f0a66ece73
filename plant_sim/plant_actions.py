"""Operations exposed to the UI and tool collaborators."""

from __future__ import annotations

import uuid
from typing import Any

from . import disease as disease_model
from . import fertilizer as fertilizer_model
from . import growth as growth_model
from . import moisture as moisture_model
from .config import DEFAULT_CONFIG, SimulationConfig
from .environment import EnvironmentSample, FacilityState, sample_environment
from .models import LocationCategory, PlantRecord
from .reference_data import ReferenceCache
from .utils import normalize_key

__all__ = [
    "create_plant",
    "apply_fertilizer",
    "apply_cure",
    "add_moisture",
    "set_shade",
    "moisture_level",
    "nutrient_level",
    "disease_severity",
    "growth_scale",
    "plant_status",
]

SHADE_TENT = normalize_key("ShadeTent")


def create_plant(
    username: str,
    species: str,
    location: LocationCategory | str,
    *,
    cache: ReferenceCache | None = None,
    plant_id: str | None = None,
    position: tuple[float, float, float] = (0.0, 0.0, 0.0),
    plantable_area: str | None = None,
    humidity: float = 60.0,
    initial_scale: float = 0.1,
) -> PlantRecord:
    """Return the initial record for a freshly planted seed.

    Moisture starts from the location baseline adjusted by the current
    ambient ``humidity``. Timestamps stay unset so the first simulation step
    only initialises them. When ``cache`` is given the species must exist.
    """

    if cache is not None:
        profile = cache.species(species)
        species = profile.name
    category = LocationCategory.parse(location)
    return PlantRecord(
        username=username,
        plant_id=plant_id or uuid.uuid4().hex,
        species=species,
        location=category.value if category else str(location),
        position=tuple(float(v) for v in position),  # type: ignore[arg-type]
        plantable_area=plantable_area,
        scale=max(0.0, initial_scale),
        moisture=moisture_model.initial_moisture(category, humidity),
    )


def apply_fertilizer(
    record: PlantRecord,
    fertilizer: str,
    cache: ReferenceCache,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    """Apply the named fertilizer and return the growth boost it grants."""

    species = cache.species(record.species)
    fertilizer_type = cache.fertilizer(fertilizer)
    return fertilizer_model.apply_fertilizer(record, species, fertilizer_type, config)


def apply_cure(record: PlantRecord, item: str, cache: ReferenceCache) -> bool:
    """Use a treatment item on ``record``. Returns ``True`` if it had an effect.

    A shade tent also opens the shade structure over ground plants so the
    shade timer can force a cure later.
    """

    table = cache.disease_table(record.species)
    cured = disease_model.apply_cure(record, table, item)
    if not cured and normalize_key(item) == SHADE_TENT and record.is_diseased:
        disease_model.set_shade(record, True)
    return cured


def add_moisture(
    record: PlantRecord,
    amount: float | None = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> float:
    return moisture_model.add_moisture(record, config.watering_amount if amount is None else amount)


def set_shade(record: PlantRecord, active: bool) -> bool:
    return disease_model.set_shade(record, active)


def moisture_level(record: PlantRecord) -> float:
    return record.moisture


def nutrient_level(record: PlantRecord) -> float:
    return record.nutrient


def disease_severity(record: PlantRecord) -> str:
    return disease_model.disease_severity(record.disease_progress, record.disease)


def growth_scale(record: PlantRecord) -> float:
    return record.scale


def plant_status(
    record: PlantRecord,
    cache: ReferenceCache,
    sample: EnvironmentSample | None = None,
    facility: FacilityState | None = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> dict[str, Any]:
    """Return a display summary of ``record``.

    With an ambient ``sample`` the summary also carries the effective
    environment, effective moisture and the current growth modifier, all
    recomputed on each call.
    """

    species = cache.species(record.species)
    max_scale = species.ranges_for(record.location).max_scale
    status: dict[str, Any] = {
        "plant_id": record.plant_id,
        "species": species.name,
        "location": record.location,
        "scale": record.scale,
        "max_scale": max_scale,
        "growth_progress": min(1.0, record.scale / max_scale) if max_scale > 0 else 1.0,
        "reached_max_scale": record.reached_max_scale,
        "moisture": record.moisture,
        "nutrient": record.nutrient,
        "fertilizer": record.fertilizer_name,
        "fertilizer_boost": fertilizer_model.fertilizer_boost(record),
        "disease": record.disease,
        "disease_display": disease_model.display_name(record.disease),
        "disease_progress": record.disease_progress,
        "severity": disease_severity(record),
        "treatments": cache.disease_table(record.species).treatments_for(record.disease),
        "shade_active": record.shade_active,
    }
    if sample is not None:
        env = sample_environment(sample, record.location, facility)
        status["environment"] = env.as_dict()
        status["effective_moisture"] = moisture_model.effective_moisture(record, species, env, config)
        status["growth_modifier"] = growth_model.growth_modifier(
            record, species, env, status["effective_moisture"]
        )
    return status
