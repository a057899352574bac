# src/vantage/connection/manager.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Optional

from vantage.adapters import Adapter, create_adapter

from .spec import ConnectionSpec, ConnectionSpecResolver

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns at most one live Adapter and manages its lifecycle.

    States: disconnected (initial) and connected (adapter + the options that
    built it). `establish` tears the current adapter down before building the
    next one, so a single adapter is alive at any time.

    Typical usage:
        mgr = ConnectionManager(ConnectionSpecResolver(ConfigFiles()))
        mgr.establish("redis://localhost:6379/0")
        adapter = mgr.connection()
    """

    def __init__(
        self,
        resolver: ConnectionSpecResolver,
        factory: Callable[[Mapping[str, Any]], Adapter] = create_adapter,
    ) -> None:
        self._resolver = resolver
        self._factory = factory

        self._adapter: Optional[Adapter] = None
        self._options: Optional[dict[str, Any]] = None
        self._spec: ConnectionSpec = None

        self._lock = threading.RLock()

    @property
    def resolver(self) -> ConnectionSpecResolver:
        return self._resolver

    @property
    def adapter(self) -> Optional[Adapter]:
        """Current adapter without auto-connecting."""
        return self._adapter

    @property
    def options(self) -> Optional[dict[str, Any]]:
        """Options the current adapter was built from (None for adopted adapters)."""
        return self._options

    @property
    def last_spec(self) -> ConnectionSpec:
        return self._spec

    # --- lifecycle ---------------------------------------------------------

    def establish(self, spec: ConnectionSpec = None) -> Adapter:
        with self._lock:
            # Remembered before resolving so reconnect() retries the same input.
            self._spec = spec
            if self._adapter is not None:
                self._disconnect_locked()

            options = self._resolver.resolve(spec)
            adapter = self._factory(options)

            self._adapter = adapter
            self._options = options
            logger.info("Connected %s adapter", options.get("adapter"))
            return adapter

    def adopt(self, adapter: Adapter) -> Adapter:
        """Use an already-connected adapter, replacing the current one."""
        with self._lock:
            if self._adapter is not None and self._adapter is not adapter:
                self._disconnect_locked()
            self._adapter = adapter
            self._options = None
            return adapter

    def connection(self) -> Adapter:
        adapter = self._adapter
        if adapter is not None:
            return adapter

        with self._lock:
            if self._adapter is None:
                return self.establish()
            return self._adapter

    @property
    def connected(self) -> bool:
        adapter = self._adapter
        if adapter is None:
            return False
        try:
            return bool(adapter.is_active())
        except Exception as e:
            logger.warning("Adapter liveness check failed: %s", e)
            return False

    def disconnect(self) -> None:
        with self._lock:
            if self._adapter is not None:
                self._disconnect_locked()

    def reconnect(self) -> Adapter:
        with self._lock:
            return self.establish(self._spec)

    def _disconnect_locked(self) -> None:
        adapter = self._adapter
        self._adapter = None
        self._options = None
        if adapter is not None:
            adapter.disconnect()
            logger.info("Disconnected %s", type(adapter).__name__)

    def __repr__(self) -> str:
        state = "connected" if self._adapter is not None else "disconnected"
        return f"ConnectionManager({state})"
