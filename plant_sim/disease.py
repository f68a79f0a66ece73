"""Table driven disease state machine.

Every species shares one state machine. What differs between species is the
table: which diseases exist, the predicates that trigger and sustain them,
how strongly they slow growth and which items cure them. Tables are read from
``diseases/disease_tables.json`` so adding a disease needs no code change.

A plant is either healthy (``"None"``) or carries exactly one disease. Onset
is only possible from the healthy state and is checked at most once per
simulated hour; the check count is derived from elapsed time so a single
catch-up over ``n`` hours is equivalent to ``n`` hourly checks.
"""

from __future__ import annotations

import logging
import operator
import random
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

from .config import DEFAULT_CONFIG, SimulationConfig
from .models import NO_DISEASE, LocationCategory, PlantRecord
from .utils import clamp, lerp, load_dataset, normalize_key, to_float
from .validators import validate_disease_table

if TYPE_CHECKING:
    from .reference_data import SpeciesProfile

_LOGGER = logging.getLogger(__name__)

DISEASE_FILE = "diseases/disease_tables.json"

METRICS = ("moisture", "humidity", "light", "temperature")

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

# (upper bound, label) pairs used for display severity.
SEVERITY_LEVELS: tuple[tuple[float, str], ...] = (
    (0.25, "Minor"),
    (0.5, "Moderate"),
    (0.75, "Severe"),
)

PLAYER_ITEMS = (
    "WateringCan",
    "DrainageShovel",
    "FungicideSpray",
    "PruningShears",
    "InsecticideSoap",
    "ShadeTent",
    "NeemOil",
    "Fertilizer",
)

__all__ = [
    "DISEASE_FILE",
    "PLAYER_ITEMS",
    "RandomSource",
    "DiseaseReadings",
    "DiseaseCondition",
    "Cure",
    "DiseaseDefinition",
    "DiseaseTable",
    "load_disease_table",
    "check_for_disease",
    "apply_cure",
    "set_shade",
    "update_shade",
    "disease_severity",
    "display_name",
]


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True, slots=True)
class DiseaseReadings:
    """Effective conditions a disease predicate is evaluated against."""

    moisture: float
    humidity: float
    light: float
    temperature: float
    location: LocationCategory | None = None


@dataclass(frozen=True, slots=True)
class DiseaseCondition:
    """``<metric> <op> <threshold>`` where the threshold may name a species value."""

    metric: str
    op: str
    threshold: float | str
    default: float | None = None

    def resolve(self, species: SpeciesProfile | None) -> float | None:
        if isinstance(self.threshold, str):
            if species is None:
                return self.default
            return species.threshold(self.threshold, self.default)
        return float(self.threshold)

    def holds(self, readings: DiseaseReadings, species: SpeciesProfile | None) -> bool:
        compare = _OPERATORS.get(self.op)
        threshold = self.resolve(species)
        if compare is None or threshold is None or self.metric not in METRICS:
            return False
        return compare(getattr(readings, self.metric), threshold)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DiseaseCondition:
        threshold = data["threshold"]
        default = data.get("default")
        return cls(
            metric=str(data["metric"]),
            op=str(data["op"]),
            threshold=threshold if isinstance(threshold, str) else to_float(threshold),
            default=None if default is None else to_float(default),
        )


@dataclass(frozen=True, slots=True)
class Cure:
    """Treatment item. ``decrement`` of ``None`` cures fully."""

    item: str
    decrement: float | None = None
    moisture_change: float = 0.0

    @property
    def is_full(self) -> bool:
        return self.decrement is None


@dataclass(frozen=True, slots=True)
class DiseaseDefinition:
    name: str
    conditions: tuple[DiseaseCondition, ...]
    onset_probability: float
    slowing_floor: float
    cures: tuple[Cure, ...] = ()
    locations: tuple[str, ...] = ()

    def applies_at(self, location: LocationCategory | None) -> bool:
        if not self.locations:
            return True
        if location is None:
            return False
        return normalize_key(location.value) in {normalize_key(loc) for loc in self.locations}

    def conditions_hold(self, readings: DiseaseReadings, species: SpeciesProfile | None) -> bool:
        if not self.applies_at(readings.location):
            return False
        return all(cond.holds(readings, species) for cond in self.conditions)

    def onset_chance(self, checks: int) -> float:
        """Probability of onset over ``checks`` independent hourly checks."""

        p = clamp(self.onset_probability, 0.0, 1.0)
        if checks <= 0:
            return 0.0
        return 1.0 - (1.0 - p) ** checks

    def slowing_factor(self, progress: float) -> float:
        return lerp(1.0, self.slowing_floor, progress)

    def cure_for(self, item: str) -> Cure | None:
        key = normalize_key(item)
        for cure in self.cures:
            if normalize_key(cure.item) == key:
                return cure
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DiseaseDefinition:
        cures = []
        for cure in data.get("cures", []):
            decrement = cure.get("decrement")
            cures.append(
                Cure(
                    item=str(cure["item"]),
                    decrement=None if decrement is None else to_float(decrement),
                    moisture_change=to_float(cure.get("moistureChange")),
                )
            )
        return cls(
            name=str(data["name"]),
            conditions=tuple(DiseaseCondition.from_dict(c) for c in data["conditions"]),
            onset_probability=to_float(data["onsetProbability"]),
            slowing_floor=clamp(to_float(data["slowingFloor"], 1.0), 0.0, 1.0),
            cures=tuple(cures),
            locations=tuple(str(loc) for loc in data.get("locations", [])),
        )


@dataclass(frozen=True, slots=True)
class DiseaseTable:
    """Diseases of one species in onset priority order."""

    species: str
    diseases: tuple[DiseaseDefinition, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str) -> DiseaseDefinition | None:
        key = normalize_key(name)
        for disease in self.diseases:
            if normalize_key(disease.name) == key:
                return disease
        return None

    @property
    def names(self) -> list[str]:
        return [d.name for d in self.diseases]

    def disease_for_label(self, label: str) -> str:
        """Map an image classifier label to this species' disease name."""

        key = normalize_key(label)
        for name, disease in self.labels.items():
            if normalize_key(name) == key:
                return disease if self.get(disease) else NO_DISEASE
        return NO_DISEASE

    def treatments_for(self, disease: str) -> list[str]:
        definition = self.get(disease)
        return [c.item for c in definition.cures] if definition else []

    @classmethod
    def from_dict(cls, species: str, data: Mapping[str, Any]) -> DiseaseTable:
        return cls(
            species=species,
            diseases=tuple(DiseaseDefinition.from_dict(d) for d in data.get("diseases", [])),
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
        )


def load_disease_table(species: str) -> DiseaseTable:
    """Return the disease table of ``species`` from the bundled dataset.

    Unknown species and invalid tables yield an empty table, which makes the
    state machine a no-op for that plant.
    """

    key = normalize_key(species)
    for name, entry in load_dataset(DISEASE_FILE).items():
        if normalize_key(name) != key or not isinstance(entry, Mapping):
            continue
        issues = validate_disease_table(entry)
        if issues:
            _LOGGER.warning("Invalid disease table for %s: %s", name, "; ".join(issues))
            return DiseaseTable(species=species)
        return DiseaseTable.from_dict(name, entry)
    return DiseaseTable(species=species)


# ----------------------------------------------------------------------
def check_for_disease(
    record: PlantRecord,
    species: SpeciesProfile | None,
    table: DiseaseTable,
    readings: DiseaseReadings,
    now: datetime,
    *,
    rng: RandomSource | None = None,
    config: SimulationConfig = DEFAULT_CONFIG,
) -> str | None:
    """Run the hourly disease checks due at ``now``.

    Returns the name of a newly contracted disease, otherwise ``None``. A
    missing ``last_disease_check`` is initialised without evaluating anything.
    The check timestamp advances by whole intervals so the remainder carries
    into the next call.
    """

    if record.last_disease_check is None:
        record.last_disease_check = now
        return None

    interval = config.disease_check_interval_seconds
    elapsed = (now - record.last_disease_check).total_seconds()
    if interval <= 0 or elapsed < interval:
        return None
    checks = int(elapsed // interval)
    record.last_disease_check += timedelta(seconds=checks * interval)

    if not record.is_diseased:
        rng = rng or random
        for disease in table.diseases:
            if not disease.conditions_hold(readings, species):
                continue
            if rng.random() < disease.onset_chance(checks):
                record.disease = disease.name
                record.disease_progress = 0.0
                record.disease_slowing_factor = 1.0
                _LOGGER.debug("%s/%s contracted %s", record.username, record.plant_id, disease.name)
                return disease.name
        return None

    definition = table.get(record.disease)
    if definition is None:
        return None
    if definition.conditions_hold(readings, species):
        rate = species.disease_progress_rate if species is not None else 0.0
        record.disease_progress = clamp(record.disease_progress + rate * checks, 0.0, 1.0)
        record.disease_slowing_factor = definition.slowing_factor(record.disease_progress)
    return None


def apply_cure(record: PlantRecord, table: DiseaseTable, item: str) -> bool:
    """Apply treatment ``item`` and return ``True`` if it affected the disease."""

    if not record.is_diseased:
        return False
    definition = table.get(record.disease)
    if definition is None:
        return False
    cure = definition.cure_for(item)
    if cure is None:
        return False

    if cure.is_full:
        record.clear_disease()
    else:
        record.disease_progress = clamp(record.disease_progress - cure.decrement, 0.0, 1.0)
        if record.disease_progress <= 0:
            record.clear_disease()
        else:
            record.disease_slowing_factor = definition.slowing_factor(record.disease_progress)
    if cure.moisture_change:
        record.moisture = clamp(record.moisture + cure.moisture_change, 0.0, 100.0)
    return True


def set_shade(record: PlantRecord, active: bool) -> bool:
    """Open or close a shade structure over a ground plant."""

    active = bool(active) and record.is_ground
    if not active:
        record.shade_counter = 0.0
    record.shade_active = active
    return active


def update_shade(record: PlantRecord, elapsed: float, config: SimulationConfig = DEFAULT_CONFIG) -> bool:
    """Advance the shade timer and return ``True`` when it cured the plant."""

    if not (record.shade_active and record.is_ground and record.is_diseased):
        record.shade_counter = 0.0
        return False
    if elapsed <= 0:
        return False
    record.shade_counter += elapsed
    if record.shade_counter >= config.shade_cure_seconds:
        _LOGGER.debug("%s/%s cured by shade", record.username, record.plant_id)
        record.clear_disease()
        record.shade_counter = 0.0
        return True
    return False


def disease_severity(progress: float, disease: str = "") -> str:
    """Return a display label for ``progress``."""

    if disease == NO_DISEASE or progress <= 0:
        return "None"
    for bound, label in SEVERITY_LEVELS:
        if progress < bound:
            return label
    return "Critical"


_CAMEL = re.compile(r"(?<=[a-z])(?=[A-Z])")


def display_name(name: str) -> str:
    """``"FungalLeafSpot"`` -> ``"Fungal Leaf Spot"``."""

    return _CAMEL.sub(" ", name)
