"""JSON schema validation for reference data and weather records."""

from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from .utils import DEFAULT_DATA_DIR, load_dataset

__all__ = [
    "SCHEMA_FILES",
    "load_schema",
    "validate_species_record",
    "validate_fertilizer_record",
    "validate_weather_entry",
    "validate_disease_table",
    "validate_bundled_datasets",
]

SCHEMA_DIR = DEFAULT_DATA_DIR / "schema"

SCHEMA_FILES: dict[str, str] = {
    "species": "species_profile.schema.json",
    "fertilizer": "fertilizer_type.schema.json",
    "weather": "weather_entry.schema.json",
    "disease_table": "disease_table.schema.json",
}


def _load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=None)
def load_schema(kind: str) -> dict[str, Any]:
    """Return the bundled JSON schema for ``kind``."""

    return _load_json(SCHEMA_DIR / SCHEMA_FILES[kind])


@lru_cache(maxsize=None)
def _validator(kind: str) -> Draft202012Validator:
    return Draft202012Validator(load_schema(kind))


def _format_errors(kind: str, payload: Mapping[str, Any]) -> list[str]:
    issues: list[str] = []
    for err in _validator(kind).iter_errors(payload):
        location = ".".join(str(part) for part in err.absolute_path) or "<root>"
        issues.append(f"{location}: {err.message}")
    return issues


def validate_species_record(record: Mapping[str, Any]) -> list[str]:
    """Return a list of human-readable errors (empty if valid)."""

    return _format_errors("species", record)


def validate_fertilizer_record(record: Mapping[str, Any]) -> list[str]:
    return _format_errors("fertilizer", record)


def validate_weather_entry(entry: Mapping[str, Any]) -> list[str]:
    return _format_errors("weather", entry)


def validate_disease_table(table: Mapping[str, Any]) -> list[str]:
    issues = _format_errors("disease_table", table)
    names = [d.get("name") for d in table.get("diseases", []) if isinstance(d, Mapping)]
    duplicates = sorted({n for n in names if names.count(n) > 1 and n})
    if duplicates:
        issues.append(f"diseases: duplicate names {', '.join(duplicates)}")
    return issues


def validate_bundled_datasets() -> dict[str, list[str]]:
    """Validate every species, fertilizer and disease table dataset entry.

    Returns a mapping of ``"<kind>:<name>"`` to the errors found. Valid
    entries are omitted so an empty mapping means all data is usable.
    """

    from .disease import DISEASE_FILE
    from .reference_data import FERTILIZER_FILE, SPECIES_FILE

    report: dict[str, list[str]] = {}
    checks = (
        ("species", SPECIES_FILE, "plantName", validate_species_record),
        ("fertilizer", FERTILIZER_FILE, "name", validate_fertilizer_record),
        ("disease_table", DISEASE_FILE, None, validate_disease_table),
    )
    for kind, filename, name_key, check in checks:
        for name, entry in load_dataset(filename).items():
            if not isinstance(entry, Mapping):
                report[f"{kind}:{name}"] = ["<root>: expected an object"]
                continue
            # dataset keys double as the record name
            if name_key is not None:
                entry = {name_key: name, **entry}
            issues = check(entry)
            if issues:
                report[f"{kind}:{name}"] = issues
    return report
