"""Exception hierarchy shared by the simulation engine."""

from __future__ import annotations

__all__ = [
    "PlantSimError",
    "ConfigError",
    "ReferenceDataNotFound",
    "InvalidReferenceData",
    "StoreError",
]


class PlantSimError(Exception):
    """Base class for simulation errors."""


class ConfigError(PlantSimError):
    """Raised when a configuration file contains invalid values."""


class ReferenceDataNotFound(PlantSimError, LookupError):
    """Raised when a species or fertilizer reference record is unavailable."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class InvalidReferenceData(PlantSimError, ValueError):
    """Raised when a reference record fails schema validation."""

    def __init__(self, kind: str, name: str, issues: list[str]) -> None:
        super().__init__(f"{kind} '{name}' is invalid: {'; '.join(issues)}")
        self.kind = kind
        self.name = name
        self.issues = issues


class StoreError(PlantSimError):
    """Raised when the plant store cannot complete a read or write."""
