from __future__ import annotations

from typing import Any, Mapping

import pytest

from vantage.adapters.mock import MockAdapter
from vantage.config import ConfigFiles
from vantage.connection import ConnectionManager, ConnectionSpecResolver, NamedEnvironment
from vantage.exceptions import ConfigurationError


class RecordingFactory:
    """Adapter factory building MockAdapters and remembering the options it saw."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.built: list[MockAdapter] = []

    def __call__(self, options: Mapping[str, Any]) -> MockAdapter:
        self.calls.append(dict(options))
        adapter = MockAdapter(options)
        self.built.append(adapter)
        return adapter


class BrokenAdapter(MockAdapter):
    def is_active(self) -> bool:
        raise RuntimeError("socket closed")


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()


@pytest.fixture
def manager(factory: RecordingFactory) -> ConnectionManager:
    return ConnectionManager(ConnectionSpecResolver(ConfigFiles(), "test"), factory=factory)


def test_starts_disconnected(manager: ConnectionManager) -> None:
    assert manager.adapter is None
    assert manager.options is None
    assert manager.connected is False


def test_establish_builds_adapter_from_config_entry(write_file, manager: ConnectionManager, factory) -> None:
    write_file("config/vantage.yml", "test:\n  adapter: redis\n  host: localhost\n  port: 6379\n")

    adapter = manager.establish()

    assert factory.calls == [{"adapter": "redis", "host": "localhost", "port": 6379}]
    assert manager.connection() is adapter
    assert manager.options == {"adapter": "redis", "host": "localhost", "port": 6379}
    assert manager.connected is True


def test_establish_keeps_exactly_one_adapter_alive(manager: ConnectionManager, factory) -> None:
    for n in range(4):
        manager.establish({"adapter": "mock", "n": n})

    assert [a.is_active() for a in factory.built] == [False, False, False, True]
    assert manager.adapter is factory.built[-1]


def test_connection_auto_establishes_default(manager: ConnectionManager, factory) -> None:
    adapter = manager.connection()

    assert factory.calls == [{"adapter": "redis"}]
    assert manager.connection() is adapter
    assert len(factory.calls) == 1


def test_disconnect_is_idempotent_and_keeps_last_spec(manager: ConnectionManager) -> None:
    manager.disconnect()

    spec = {"adapter": "mock"}
    adapter = manager.establish(spec)
    manager.disconnect()
    manager.disconnect()

    assert adapter.is_active() is False
    assert manager.adapter is None
    assert manager.connected is False
    assert manager.last_spec == spec


def test_reconnect_restores_equivalent_adapter(manager: ConnectionManager, factory) -> None:
    manager.establish("mock://cache.local:1234/5?db=5")
    first_options = manager.options
    manager.disconnect()

    adapter = manager.reconnect()

    assert adapter is not factory.built[0]
    assert adapter.is_active()
    assert manager.options == first_options
    assert factory.calls[0] == factory.calls[1]


def test_failed_establish_still_records_spec(write_file, manager: ConnectionManager) -> None:
    write_file("config/vantage.yml", "test: mock://\n")
    previous = manager.establish()

    with pytest.raises(ConfigurationError):
        manager.establish(NamedEnvironment("missing"))

    assert manager.last_spec == NamedEnvironment("missing")
    assert previous.is_active() is False
    assert manager.adapter is None

    with pytest.raises(ConfigurationError):
        manager.reconnect()


def test_adopt_replaces_current_adapter(manager: ConnectionManager) -> None:
    old = manager.establish({"adapter": "mock"})
    live = MockAdapter()

    assert manager.adopt(live) is live
    assert old.is_active() is False
    assert manager.connection() is live
    assert manager.options is None


def test_connected_never_raises(manager: ConnectionManager) -> None:
    manager.adopt(BrokenAdapter())
    assert manager.connected is False


def test_default_factory_uses_adapter_registry() -> None:
    manager = ConnectionManager(ConnectionSpecResolver(ConfigFiles()))

    assert isinstance(manager.establish("mock://"), MockAdapter)

    with pytest.raises(ConfigurationError, match="nosuch"):
        manager.establish("nosuch://host")
