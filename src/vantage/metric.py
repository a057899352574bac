# src/vantage/metric.py
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence

import httpx

from vantage.context import current_identity
from vantage.registry import derive_id

if TYPE_CHECKING:
    from vantage.playground import Playground

logger = logging.getLogger(__name__)

REMOTE_TIMEOUT_S = 5.0

# hook(metric_id, timestamp, identity, values)
MetricHook = Callable[[str, datetime, Optional[str], Sequence[int]], None]


class Metric:
    """
    A named counter.

    Local metrics write through the playground's datastore connection.
    Remote metrics (see `remote`) post each tracked event to a URL instead;
    delivery failures are logged and otherwise ignored.

    Hooks run after every tracked event, whether or not it was stored.
    """

    def __init__(
        self,
        playground: "Playground",
        name: str,
        *,
        id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        self._playground = playground
        self.name = str(name)
        self.id = id or derive_id(name)
        self.description = description
        self.remote_url: Optional[str] = None

        self._hooks: list[MetricHook] = []
        self._http: Optional[httpx.Client] = None
        self._http_lock = threading.Lock()

    @property
    def playground(self) -> "Playground":
        return self._playground

    def remote(self, url: str) -> "Metric":
        self.remote_url = str(url)
        return self

    def hook(self, callback: MetricHook) -> MetricHook:
        self._hooks.append(callback)
        return callback

    @property
    def hooks(self) -> list[MetricHook]:
        return list(self._hooks)

    # --- tracking ----------------------------------------------------------

    def track(
        self,
        count: int = 1,
        *,
        identity: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        values: Optional[Iterable[int]] = None,
    ) -> None:
        playground = self._playground
        if not playground.collecting:
            return

        timestamp = timestamp or datetime.now(timezone.utc)
        if identity is None:
            identity = current_identity()
        values = [int(v) for v in values] if values is not None else [int(count)]

        if self.remote_url:
            self._track_remote(timestamp, identity, values)
        else:
            arguments = [self.id, timestamp, identity, values]
            with playground.datastore_failover(type(self).__name__, "track", arguments):
                playground.connection().metric_track(self.id, timestamp, identity, values)
                playground.logger.info("vantage: %s with value %s", self.id, ", ".join(map(str, values)))

        for hook in self._hooks:
            hook(self.id, timestamp, identity, values)

    def _track_remote(self, timestamp: datetime, identity: Optional[str], values: list[int]) -> None:
        assert self.remote_url is not None
        data: dict[str, Any] = {
            "metric": self.id,
            "timestamp": timestamp.isoformat(),
            "values[]": [str(v) for v in values],
        }
        if identity is not None:
            data["identity"] = identity

        with self._http_lock:
            if self._http is None:
                self._http = httpx.Client(timeout=REMOTE_TIMEOUT_S)
            try:
                response = self._http.post(self.remote_url, data=data)
                response.raise_for_status()
            except httpx.HTTPError as e:
                self._playground.logger.error("Error sending data for metric %s: %s", self.name, e)
                self._http.close()
                self._http = None

    # --- reading -----------------------------------------------------------

    def values(self, since: date, until: date) -> list[int]:
        """First tracked value per day in [since, until], 0 for days without data."""
        rows = self._playground.connection().metric_values(self.id, since, until)
        return [row[0] if row else 0 for row in rows]

    @property
    def last_update_at(self) -> Optional[datetime]:
        return self._playground.connection().get_metric_last_update_at(self.id)

    def close(self) -> None:
        """Close the HTTP client of a remote metric, if one was opened."""
        with self._http_lock:
            client, self._http = self._http, None
        if client is not None:
            client.close()

    def destroy(self) -> None:
        self.close()
        self._playground.connection().destroy_metric(self.id)

    def __repr__(self) -> str:
        kind = f" remote={self.remote_url}" if self.remote_url else ""
        return f"<Metric {self.id}{kind}>"
