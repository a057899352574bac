# src/vantage/adapters/__init__.py
"""
Datastore adapters.

Adapters are looked up by the `adapter` option of the resolved connection
options. Built-in adapters:

- "mock": in-memory (MockAdapter)
- "redis", "rediss": Redis through redis-py (RedisAdapter)
- "sqlalchemy", "sqlite", "postgresql", "mysql": SQLAlchemy Core (SqlAdapter)

Custom adapters are added with `register_adapter(name, factory)`; a factory
receives the canonical options mapping and returns an Adapter.
"""

from __future__ import annotations

import logging
import threading
from importlib import import_module
from typing import Any, Callable, Mapping

from vantage.exceptions import ConfigurationError

from .base import Adapter, translate_errors

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[Mapping[str, Any]], Adapter]


def _lazy(module: str, attr: str) -> AdapterFactory:
    """Factory importing its adapter class on first use."""

    def _factory(options: Mapping[str, Any]) -> Adapter:
        cls = getattr(import_module(module, __name__), attr)
        return cls(options)

    _factory.__qualname__ = f"{module.lstrip('.')}.{attr}"
    return _factory


_BUILTIN_FACTORIES: dict[str, AdapterFactory] = {
    "mock": _lazy(".mock", "MockAdapter"),
    "redis": _lazy(".redis_adapter", "RedisAdapter"),
    "rediss": _lazy(".redis_adapter", "RedisAdapter"),
    "sqlalchemy": _lazy(".sql", "SqlAdapter"),
    "sqlite": _lazy(".sql", "SqlAdapter"),
    "postgresql": _lazy(".sql", "SqlAdapter"),
    "mysql": _lazy(".sql", "SqlAdapter"),
}

_factories: dict[str, AdapterFactory] = dict(_BUILTIN_FACTORIES)
_lock = threading.Lock()


def register_adapter(name: str, factory: AdapterFactory) -> None:
    """Register (or replace) the factory used for adapter `name`."""
    if not callable(factory):
        raise ValueError(f"Adapter factory for {name!r} must be callable")
    with _lock:
        _factories[str(name)] = factory
    logger.debug("Registered adapter factory: %s", name)


def unregister_adapter(name: str) -> None:
    """Remove adapter `name`; built-ins fall back to their default factory."""
    with _lock:
        if name in _BUILTIN_FACTORIES:
            _factories[name] = _BUILTIN_FACTORIES[name]
        else:
            _factories.pop(name, None)


def adapter_names() -> list[str]:
    return sorted(_factories)


def create_adapter(options: Mapping[str, Any]) -> Adapter:
    """Build an adapter from canonical options, keyed by options["adapter"]."""
    name = options.get("adapter")
    if not name:
        raise ConfigurationError(f"Connection options have no adapter (keys: {sorted(options)})")

    factory = _factories.get(str(name))
    if factory is None:
        available = ", ".join(adapter_names()) or "(none)"
        raise ConfigurationError(f"Unknown adapter {name!r}. Available: {available}")

    logger.debug("Creating %s adapter", name)
    return factory(options)


__all__ = [
    "Adapter",
    "AdapterFactory",
    "adapter_names",
    "create_adapter",
    "register_adapter",
    "translate_errors",
    "unregister_adapter",
]
