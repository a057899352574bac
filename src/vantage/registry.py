# src/vantage/registry.py
from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterator, Optional, TypeVar

from vantage.config import MAIN_CONFIG_FILE, ConfigFiles
from vantage.exceptions import (
    DuplicateDefinitionError,
    NoExperimentError,
    NoMetricError,
    NotFoundError,
)

if TYPE_CHECKING:
    from vantage.experiment import Experiment
    from vantage.metric import Metric

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFINITION_GLOB = "*.py"

_NON_WORD = re.compile(r"\W")


def derive_id(name: Any) -> str:
    """Symbolic identifier for a human name: lowercase, non-word characters -> "_"."""
    return _NON_WORD.sub("_", str(name).lower())


class LoadingGuard:
    """
    Set of definition files currently being loaded.

    Shared by the experiment and metric registries so a file is never loaded
    re-entrantly, even when loading it triggers another registry load.
    """

    def __init__(self) -> None:
        self._paths: set[Path] = set()
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: str | Path) -> Path:
        return Path(path).resolve()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        with self._lock:
            return self._key(path) in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def paths(self) -> list[Path]:
        with self._lock:
            return sorted(self._paths)

    @contextmanager
    def holding(self, path: str | Path) -> Iterator[Path]:
        """Mark `path` as loading for the duration of the block, even if it raises."""
        key = self._key(path)
        with self._lock:
            self._paths.add(key)
        try:
            yield key
        finally:
            with self._lock:
                self._paths.discard(key)


# loader(path) executes one definition file
DefinitionLoader = Callable[[Path], None]


class DefinitionRegistry(Generic[T]):
    """
    Lazily loaded mapping of id -> definition.

    The first call to `all()` (or `get()`) scans `directory()` for
    definition files and runs each through `loader`. Loading happens once:
    the mapping is created and the registry marked loaded *before* any file
    is read, so a definition that reaches back into the registry while
    loading sees the (partial) mapping instead of recursing. Other threads
    block on the registry lock until that first load has finished.

    A loader error propagates to the caller that triggered loading. The
    registry stays loaded with whatever was registered so far; the failing
    file is not retried until `reset()`.
    """

    not_found_error: type[NotFoundError] = NotFoundError

    def __init__(
        self,
        kind: str,
        directory: Callable[[], Path],
        loader: DefinitionLoader,
        guard: LoadingGuard,
        log: Callable[[], logging.Logger] = lambda: logger,
    ) -> None:
        self._kind = kind
        self._directory = directory
        self._loader = loader
        self._guard = guard
        self._logger = log

        self._definitions: Optional[dict[str, T]] = None
        self._complete = False
        self._lock = threading.RLock()

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def loaded(self) -> bool:
        return self._definitions is not None

    def directory(self) -> Path:
        return Path(self._directory())

    def all(self) -> dict[str, T]:
        definitions = self._definitions
        if self._complete and definitions is not None:
            return definitions

        # While a load runs, only the loading thread gets past the lock.
        with self._lock:
            if self._definitions is not None:
                return self._definitions
            definitions = {}
            self._definitions = definitions
            try:
                self._load(definitions)
            finally:
                self._complete = True
            return definitions

    def get(self, definition_id: str) -> T:
        definitions = self.all()
        try:
            return definitions[definition_id]
        except KeyError:
            raise self.not_found_error(
                f"No {self._kind} {definition_id}", identifier=definition_id
            ) from None

    def register(self, definition_id: str, definition: T) -> T:
        definitions = self.all()
        if definition_id in definitions:
            raise DuplicateDefinitionError(f"{self._kind.capitalize()} {definition_id} already defined")
        definitions[definition_id] = definition
        return definition

    def reset(self) -> None:
        with self._lock:
            self._complete = False
            self._definitions = None

    def files(self) -> list[Path]:
        directory = self.directory()
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob(DEFINITION_GLOB) if p.is_file())

    def _load(self, definitions: dict[str, T]) -> None:
        log = self._logger()
        log.info("Loading %ss from %s", self._kind, self.directory())

        for path in self.files():
            if path in self._guard:
                log.debug("Skipping %s, already loading", path)
                continue
            with self._guard.holding(path):
                self._loader(path)

        self._after_load(definitions)

    def _after_load(self, definitions: dict[str, T]) -> None:
        pass

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self.all()

    def __len__(self) -> int:
        return len(self.all())

    def __repr__(self) -> str:
        state = f"{len(self._definitions)} loaded" if self._definitions is not None else "unloaded"
        return f"{type(self).__name__}({self._kind}, {state})"


class ExperimentRegistry(DefinitionRegistry["Experiment"]):
    not_found_error = NoExperimentError

    def __init__(
        self,
        directory: Callable[[], Path],
        loader: DefinitionLoader,
        guard: LoadingGuard,
        log: Callable[[], logging.Logger] = lambda: logger,
    ) -> None:
        super().__init__("experiment", directory, loader, guard, log)


class MetricRegistry(DefinitionRegistry["Metric"]):
    """
    Metric registry; after the files are loaded, metrics declared remotely
    in the main config file (`metrics: {id: url}`) are added.
    """

    not_found_error = NoMetricError

    def __init__(
        self,
        directory: Callable[[], Path],
        loader: DefinitionLoader,
        guard: LoadingGuard,
        config_files: ConfigFiles,
        remote_factory: Callable[[str, str], "Metric"],
        log: Callable[[], logging.Logger] = lambda: logger,
    ) -> None:
        super().__init__("metric", directory, loader, guard, log)
        self._config_files = config_files
        self._remote_factory = remote_factory

    def remote_metrics(self) -> dict[str, str]:
        if not self._config_files.exists(MAIN_CONFIG_FILE):
            return {}
        remote = self._config_files.load(MAIN_CONFIG_FILE).get("metrics") or {}
        return {str(k): str(v) for k, v in remote.items()}

    def _after_load(self, definitions: dict[str, "Metric"]) -> None:
        for metric_id, url in self.remote_metrics().items():
            if metric_id in definitions:
                raise DuplicateDefinitionError(f"Metric {metric_id} already defined in playground")
            definitions[metric_id] = self._remote_factory(metric_id, url)
