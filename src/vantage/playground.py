# src/vantage/playground.py
from __future__ import annotations

import functools
import logging
import re
import threading
import warnings
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from vantage.adapters import Adapter
from vantage.config import (
    ConfigFiles,
    PlaygroundSettings,
    active_environment,
    detect_framework,
    framework_defaults,
    framework_logger,
    load_settings,
)
from vantage.connection import ConnectionManager, ConnectionSpec, ConnectionSpecResolver
from vantage.definitions import load_definition_file
from vantage.exceptions import AdapterError
from vantage.experiment import Alternative, Experiment
from vantage.hooks import (
    DatastoreErrorHook,
    RequestFilter,
    default_on_datastore_error,
    default_request_filter,
)
from vantage.metric import Metric
from vantage.registry import ExperimentRegistry, LoadingGuard, MetricRegistry, derive_id

DEFAULT_LOGGER_NAME = "vantage"
METRICS_SUBDIRECTORY = "metrics"

_HAS_SCHEME = re.compile(r"^[\w+.-]+://")


class Playground:
    """
    Composition root: settings, datastore connection and definition registries.

    Settings are merged from (lowest to highest) built-in defaults, framework
    defaults, the config file section of the active environment, `.env`
    files, `VANTAGE_*` environment variables and the keyword options passed
    here.

    With `autoconnect` on, a connection is made right away from the first of:
    `adapter` (a live Adapter), `redis` (a live redis client), `connection`
    (URL, option mapping or NamedEnvironment; a string without a scheme is
    taken as a redis host), the `connection` setting, or the config files.
    With `eager_load` on, metric and experiment definitions are loaded right
    away as well.
    """

    def __init__(
        self,
        connection: ConnectionSpec = None,
        *,
        adapter: Optional[Adapter] = None,
        redis: Any = None,
        logger: Optional[logging.Logger] = None,
        framework: Optional[str] = None,
        config_root: str | Path | None = None,
        environment: Optional[str] = None,
        **options: Any,
    ) -> None:
        self._config_files = ConfigFiles(config_root)
        self._environment = environment
        self._framework = framework

        env = self.environment
        overrides = {k: v for k, v in options.items() if v is not None}
        self._settings = load_settings(
            self._config_files,
            env,
            defaults=framework_defaults(framework, env),
            **overrides,
        )
        settings = self._settings

        self._logger = logger or framework_logger(framework) or self._default_logger(settings)
        self._load_path = Path(settings.load_path)
        self._add_participant_path = settings.add_participant_path
        self._collecting = bool(settings.collecting)
        self._failover = bool(settings.failover_on_datastore_error)
        self._use_js = bool(settings.use_js)
        self._on_datastore_error: Optional[DatastoreErrorHook] = None
        self._request_filter: Optional[RequestFilter] = None

        self._connections = ConnectionManager(ConnectionSpecResolver(self._config_files, environment))

        self._loading = LoadingGuard()
        loader = functools.partial(load_definition_file, self, self._loading)
        self.experiments_registry = ExperimentRegistry(
            lambda: self.load_path,
            loader,
            self._loading,
            log=lambda: self.logger,
        )
        self.metrics_registry = MetricRegistry(
            lambda: self.load_path / METRICS_SUBDIRECTORY,
            loader,
            self._loading,
            self._config_files,
            self._remote_metric,
            log=lambda: self.logger,
        )

        if settings.autoconnect:
            self._autoconnect(connection, adapter, redis)
        if settings.eager_load:
            self.load()

    @staticmethod
    def _default_logger(settings: PlaygroundSettings) -> logging.Logger:
        log = logging.getLogger(DEFAULT_LOGGER_NAME)
        log.setLevel(settings.logging.level)
        return log

    def _autoconnect(self, connection: ConnectionSpec, adapter: Optional[Adapter], client: Any) -> None:
        if adapter is not None:
            self._connections.adopt(adapter)
            return
        if client is not None:
            from vantage.adapters.redis_adapter import RedisAdapter

            self._connections.adopt(RedisAdapter({"adapter": "redis", "redis": client}))
            return

        spec = connection if connection is not None else self._settings.connection
        if isinstance(spec, str) and not _HAS_SCHEME.match(spec):
            spec = "redis://" + spec
        self._connections.establish(spec)

    def _remote_metric(self, metric_id: str, url: str) -> Metric:
        return Metric(self, metric_id, id=metric_id).remote(url)

    # --- settings ----------------------------------------------------------

    @property
    def settings(self) -> PlaygroundSettings:
        return self._settings

    @property
    def environment(self) -> str:
        return self._environment or active_environment()

    @property
    def framework(self) -> Optional[str]:
        return self._framework

    @property
    def config_files(self) -> ConfigFiles:
        return self._config_files

    @property
    def load_path(self) -> Path:
        return self._load_path

    @load_path.setter
    def load_path(self, value: str | Path) -> None:
        self._load_path = Path(value)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @logger.setter
    def logger(self, value: logging.Logger) -> None:
        self._logger = value

    @property
    def add_participant_path(self) -> str:
        return self._add_participant_path

    @add_participant_path.setter
    def add_participant_path(self, value: str) -> None:
        self._add_participant_path = str(value)

    @property
    def collecting(self) -> bool:
        """True while participants and metric data are recorded."""
        return self._collecting

    @collecting.setter
    def collecting(self, enabled: Any) -> None:
        self._collecting = bool(enabled)

    def use_js(self) -> None:
        """Add participants through the JS callback instead of on `choose`."""
        self._use_js = True

    @property
    def using_js(self) -> bool:
        return self._use_js

    # --- failure hooks -----------------------------------------------------

    def failover_on_datastore_error(self) -> None:
        self._failover = True

    @property
    def failover_on_datastore_error_enabled(self) -> bool:
        return self._failover

    @property
    def on_datastore_error(self) -> DatastoreErrorHook:
        if self._on_datastore_error is None:
            return default_on_datastore_error(lambda: self.logger)
        return self._on_datastore_error

    @on_datastore_error.setter
    def on_datastore_error(self, hook: Optional[DatastoreErrorHook]) -> None:
        self._on_datastore_error = hook

    @property
    def request_filter(self) -> RequestFilter:
        if self._request_filter is None:
            return default_request_filter
        return self._request_filter

    @request_filter.setter
    def request_filter(self, hook: Optional[RequestFilter]) -> None:
        self._request_filter = hook

    @contextmanager
    def datastore_failover(self, component: str, method: str, arguments: Sequence[Any] = ()) -> Iterator[None]:
        """
        Run a datastore operation. With failover on, an AdapterError is passed
        to `on_datastore_error` and suppressed; otherwise it propagates.
        """
        try:
            yield
        except AdapterError as e:
            if not self._failover:
                raise
            self.on_datastore_error(e, component, method, list(arguments))

    # --- definitions -------------------------------------------------------

    def experiments(self) -> dict[str, Experiment]:
        return self.experiments_registry.all()

    def experiment(self, name: str) -> Experiment:
        experiment_id = derive_id(name)
        if experiment_id != name:
            warnings.warn(
                f"Experiment {name!r} looked up by name; use its identifier {experiment_id!r}",
                DeprecationWarning,
                stacklevel=2,
            )
        return self.experiments_registry.get(experiment_id)

    def metrics(self) -> dict[str, Metric]:
        return self.metrics_registry.all()

    def metric(self, metric_id: str) -> Metric:
        return self.metrics_registry.get(str(metric_id))

    def track(self, metric_id: str, count: int = 1) -> None:
        self.metric(metric_id).track(count)

    def participant_info(self, participant_id: str) -> list[tuple[Experiment, Alternative]]:
        """
        (experiment, assigned alternative) pairs for every experiment the
        participant takes part in, ordered by experiment name.
        """
        connection = self.connection()
        info: list[tuple[Experiment, Alternative]] = []
        for experiment in sorted(self.experiments().values(), key=lambda e: (e.name, e.id)):
            index = connection.ab_assigned(experiment.id, participant_id)
            if index is not None:
                info.append((experiment, experiment.alternatives[int(index)]))
        return info

    def experiments_persisted(self) -> bool:
        connection = self.connection()
        return all(connection.experiment_persisted(experiment_id) for experiment_id in self.experiments())

    def load(self) -> None:
        self.experiments()
        self.metrics()

    def reload(self) -> None:
        if self.metrics_registry.loaded:
            for metric in self.metrics().values():
                metric.close()
        self.experiments_registry.reset()
        self.metrics_registry.reset()
        self.load()

    # --- connection --------------------------------------------------------

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._connections

    def establish_connection(self, spec: ConnectionSpec = None) -> Adapter:
        return self._connections.establish(spec)

    def connection(self) -> Adapter:
        return self._connections.connection()

    @property
    def connected(self) -> bool:
        return self._connections.connected

    def disconnect(self) -> None:
        self._connections.disconnect()

    def reconnect(self) -> Adapter:
        return self._connections.reconnect()

    def __repr__(self) -> str:
        return (
            f"Playground(environment={self.environment!r}, load_path={str(self.load_path)!r}, "
            f"collecting={self._collecting}, {self._connections!r})"
        )


# ---------------------------------------------------------------------------
# Default instance
# ---------------------------------------------------------------------------

_default: Optional[Playground] = None
_default_lock = threading.Lock()


def get_playground() -> Playground:
    """The default playground, created on first use."""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = Playground(framework=detect_framework())
    return _default


def set_playground(playground: Optional[Playground]) -> None:
    global _default
    with _default_lock:
        _default = playground


def reset_playground() -> None:
    """Drop the default playground, disconnecting it first."""
    global _default
    with _default_lock:
        playground, _default = _default, None
    if playground is not None:
        playground.disconnect()
