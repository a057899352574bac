try:
    from ._version import version as __version__  # populated by setuptools-scm
except ModuleNotFoundError:
    __version__ = "0.0.0"

from .connection import NamedEnvironment
from .context import get_context, set_context, use_context
from .exceptions import (
    AdapterError,
    ConfigurationError,
    DuplicateDefinitionError,
    NoExperimentError,
    NoMetricError,
    NotFoundError,
    VantageError,
)
from .playground import Playground, get_playground, reset_playground, set_playground

__all__ = [
    "__version__",
    "AdapterError",
    "ConfigurationError",
    "DuplicateDefinitionError",
    "NamedEnvironment",
    "NoExperimentError",
    "NoMetricError",
    "NotFoundError",
    "Playground",
    "VantageError",
    "get_context",
    "get_playground",
    "reset_playground",
    "set_context",
    "set_playground",
    "use_context",
]
