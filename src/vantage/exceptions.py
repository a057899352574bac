from __future__ import annotations

from typing import Any


class VantageError(Exception):
    pass


class ConfigurationError(VantageError):
    """Configuration-related error (missing environment, bad spec, unknown adapter)."""
    pass


class NotFoundError(VantageError, LookupError):
    """
    Raised when a definition is absent after its registry has loaded.

    `identifier` holds the id that was looked up.
    """

    def __init__(self, message: str, identifier: Any = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class NoExperimentError(NotFoundError):
    pass


class NoMetricError(NotFoundError):
    pass


class DuplicateDefinitionError(VantageError):
    """Raised when an experiment or metric id is defined twice."""
    pass


class AdapterError(VantageError):
    """Opaque datastore failure surfaced from an adapter."""
    pass
