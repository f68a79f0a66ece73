"""Plant records and small value types shared across the engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .utils import clamp, format_timestamp, normalize_key, parse_timestamp, to_float

__all__ = [
    "NO_DISEASE",
    "LocationCategory",
    "PlantRecord",
    "UserActivity",
]

# Sentinel disease name for healthy plants.
NO_DISEASE = "None"


class LocationCategory(str, Enum):
    """Where a plant is planted."""

    GROUND = "Ground"
    HOUSE = "House"
    GREENHOUSE = "GreenHouse"

    @classmethod
    def parse(cls, value: Any) -> LocationCategory | None:
        """Return the category matching ``value`` or ``None`` when unknown."""

        if isinstance(value, cls):
            return value
        if value is None:
            return None
        key = normalize_key(value)
        for member in cls:
            if normalize_key(member.value) == key:
                return member
        return None


@dataclass(slots=True)
class PlantRecord:
    """Mutable state of one planted instance."""

    username: str
    plant_id: str
    species: str
    location: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    plantable_area: str | None = None
    scale: float = 0.0
    reached_max_scale: bool = False
    moisture: float = 0.0
    nutrient: float = 0.0
    remaining_effect_seconds: float = 0.0
    fertilizer_name: str | None = None
    fertilizer_boost: float = 1.0
    disease: str = NO_DISEASE
    disease_progress: float = 0.0
    disease_slowing_factor: float = 1.0
    last_growth_update: datetime | None = None
    last_disease_check: datetime | None = None
    shade_active: bool = False
    shade_counter: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.username, self.plant_id)

    @property
    def location_category(self) -> LocationCategory | None:
        return LocationCategory.parse(self.location)

    @property
    def is_diseased(self) -> bool:
        return self.disease != NO_DISEASE

    @property
    def is_ground(self) -> bool:
        return self.location_category is LocationCategory.GROUND

    def clear_disease(self) -> None:
        self.disease = NO_DISEASE
        self.disease_progress = 0.0
        self.disease_slowing_factor = 1.0

    def clear_fertilizer(self) -> None:
        self.nutrient = 0.0
        self.remaining_effect_seconds = 0.0
        self.fertilizer_name = None
        self.fertilizer_boost = 1.0

    def normalize(self) -> PlantRecord:
        """Clamp bounded values and restore the healthy-state invariant."""

        self.moisture = clamp(self.moisture, 0.0, 100.0)
        self.nutrient = clamp(self.nutrient, 0.0, 100.0)
        self.remaining_effect_seconds = max(0.0, self.remaining_effect_seconds)
        self.disease_progress = clamp(self.disease_progress, 0.0, 1.0)
        self.disease_slowing_factor = clamp(self.disease_slowing_factor, 0.0, 1.0)
        self.shade_counter = max(0.0, self.shade_counter)
        if not self.disease:
            self.disease = NO_DISEASE
        if not self.is_diseased:
            self.clear_disease()
        return self

    def copy(self) -> PlantRecord:
        return replace(self, position=tuple(self.position), extra=dict(self.extra))

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON compatible mapping of the record."""

        return {
            "username": self.username,
            "plantId": self.plant_id,
            "species": self.species,
            "location": self.location,
            "position": list(self.position),
            "plantableArea": self.plantable_area,
            "scale": self.scale,
            "reachedMaxScale": self.reached_max_scale,
            "moistureLevel": self.moisture,
            "nutrientLevel": self.nutrient,
            "remainingEffectTime": self.remaining_effect_seconds,
            "fertilizerName": self.fertilizer_name,
            "fertilizerBoost": self.fertilizer_boost,
            "disease": self.disease,
            "diseaseProgress": self.disease_progress,
            "diseaseSlowingGrowthFactor": self.disease_slowing_factor,
            "lastGrowthUpdate": format_timestamp(self.last_growth_update),
            "lastDiseaseCheck": format_timestamp(self.last_disease_check),
            "shadeActive": self.shade_active,
            "shadeTentCounter": self.shade_counter,
            **({"extra": dict(self.extra)} if self.extra else {}),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlantRecord:
        """Build a record from ``data`` tolerating missing or malformed values."""

        position = data.get("position") or (0.0, 0.0, 0.0)
        if isinstance(position, dict):
            position = (position.get("x"), position.get("y"), position.get("z"))
        coords = tuple(to_float(v) for v in list(position)[:3])
        coords = coords + (0.0,) * (3 - len(coords))
        fertilizer = data.get("fertilizerName") or None
        record = cls(
            username=str(data.get("username", "")),
            plant_id=str(data.get("plantId", "")),
            species=str(data.get("species", "")),
            location=str(data.get("location", "")),
            position=coords,  # type: ignore[arg-type]
            plantable_area=data.get("plantableArea"),
            scale=max(0.0, to_float(data.get("scale"))),
            reached_max_scale=bool(data.get("reachedMaxScale", False)),
            moisture=to_float(data.get("moistureLevel")),
            nutrient=to_float(data.get("nutrientLevel")),
            remaining_effect_seconds=to_float(data.get("remainingEffectTime")),
            fertilizer_name=str(fertilizer) if fertilizer else None,
            fertilizer_boost=to_float(data.get("fertilizerBoost"), 1.0),
            disease=str(data.get("disease") or NO_DISEASE),
            disease_progress=to_float(data.get("diseaseProgress")),
            disease_slowing_factor=to_float(data.get("diseaseSlowingGrowthFactor"), 1.0),
            last_growth_update=parse_timestamp(data.get("lastGrowthUpdate")),
            last_disease_check=parse_timestamp(data.get("lastDiseaseCheck")),
            shade_active=bool(data.get("shadeActive", False)),
            shade_counter=to_float(data.get("shadeTentCounter")),
            extra=dict(data.get("extra") or {}),
        )
        return record.normalize()


@dataclass(slots=True)
class UserActivity:
    """Activity flag used to decide which driver owns a user's plants."""

    username: str
    is_playing: bool = False
    last_active_time: datetime | None = None
    timezone: str | None = None

    def idle_seconds(self, now: datetime) -> float | None:
        if self.last_active_time is None:
            return None
        return (now - self.last_active_time).total_seconds()
