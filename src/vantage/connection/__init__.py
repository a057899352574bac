# src/vantage/connection/__init__.py
from .manager import ConnectionManager
from .spec import (
    ConnectionSpec,
    ConnectionSpecResolver,
    NamedEnvironment,
    canonical_options,
    parse_url,
)

__all__ = [
    "ConnectionManager",
    "ConnectionSpec",
    "ConnectionSpecResolver",
    "NamedEnvironment",
    "canonical_options",
    "parse_url",
]
