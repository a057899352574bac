# src/vantage/adapters/redis_adapter.py
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence

import redis

from vantage.exceptions import ConfigurationError

from .base import Adapter, as_date, days_between, translate_errors

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "vantage"


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _db_from_options(options: Mapping[str, Any]) -> int:
    """
    Pick the database number from, in order: the `db` query parameter, the
    `db` or `database` option, or a "/N" URL path.
    """
    params = options.get("params") or {}
    candidates = (
        _first(params.get("db")),
        options.get("db"),
        options.get("database"),
    )
    for candidate in candidates:
        if candidate not in (None, ""):
            return _db_number(candidate)

    path = (options.get("path") or "").strip("/")
    if path:
        return _db_number(path.split("/", 1)[0])
    return 0


def _db_number(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid redis database {value!r}: expected a number") from e


def redis_client_kwargs(options: Mapping[str, Any]) -> dict[str, Any]:
    """Translate canonical adapter options into redis.Redis keyword arguments."""
    kwargs: dict[str, Any] = dict(
        host=options.get("host") or "localhost",
        port=int(options.get("port") or 6379),
        db=_db_from_options(options),
        decode_responses=True,
    )
    if options.get("username"):
        kwargs["username"] = options["username"]
    if options.get("password"):
        kwargs["password"] = options["password"]
    if options.get("adapter") == "rediss" or options.get("ssl"):
        kwargs["ssl"] = True
    for key in ("socket_timeout", "socket_connect_timeout"):
        if options.get(key) is not None:
            kwargs[key] = float(options[key])
    return kwargs


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class RedisAdapter(Adapter):
    """
    Adapter storing experiments and metrics in Redis.

    Key layout (under the `namespace` prefix):
        metrics:<id>:last_update_at                  epoch seconds
        metrics:<id>:<yyyy-mm-dd>                    hash index -> value
        experiments:<id>:created_at                  epoch seconds
        experiments:<id>:assignments                 hash identity -> alternative
        experiments:<id>:alts:<n>:participants       set of identities
        experiments:<id>:alts:<n>:converted          set of identities
        experiments:<id>:alts:<n>:conversions        counter

    The client is created lazily by redis-py; constructing the adapter does
    not open a socket.
    """

    name = "redis"

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        self.options = dict(options or {})
        self._namespace = str(self.options.get("namespace") or DEFAULT_NAMESPACE)

        client = self.options.get("redis")
        if client is None:
            client = redis.Redis(**redis_client_kwargs(self.options))
        self._redis: Optional[redis.Redis] = client

    @property
    def client(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("RedisAdapter has been disconnected.")
        return self._redis

    def _key(self, *parts: Any) -> str:
        return ":".join([self._namespace, *(str(p) for p in parts)])

    def _errors(self):
        return translate_errors(self.name, redis.RedisError)

    # --- lifecycle ---------------------------------------------------------

    def is_active(self) -> bool:
        return self._redis is not None

    def disconnect(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            try:
                client.close()
            except redis.RedisError as e:
                logger.warning("Error closing redis connection: %s", e)

    def flushdb(self) -> None:
        with self._errors():
            keys = list(self.client.scan_iter(match=self._key("*")))
            if keys:
                self.client.delete(*keys)

    # --- metrics -----------------------------------------------------------

    def get_metric_last_update_at(self, metric_id: str) -> Optional[datetime]:
        with self._errors():
            return _to_datetime(self.client.get(self._key("metrics", metric_id, "last_update_at")))

    def metric_track(
        self,
        metric_id: str,
        timestamp: datetime,
        identity: Optional[str],
        values: Sequence[int],
    ) -> None:
        day_key = self._key("metrics", metric_id, as_date(timestamp).isoformat())
        with self._errors():
            pipe = self.client.pipeline()
            for index, value in enumerate(values):
                pipe.hincrby(day_key, str(index), int(value))
            pipe.set(
                self._key("metrics", metric_id, "last_update_at"),
                datetime.now(timezone.utc).timestamp(),
            )
            pipe.execute()

    def metric_values(self, metric_id: str, since: date, until: date) -> list[list[int]]:
        days = days_between(since, until)
        with self._errors():
            pipe = self.client.pipeline()
            for day in days:
                pipe.hgetall(self._key("metrics", metric_id, day.isoformat()))
            rows = pipe.execute()

        out: list[list[int]] = []
        for row in rows:
            by_index = {int(k): int(v) for k, v in (row or {}).items()}
            out.append([by_index.get(i, 0) for i in range(max(by_index) + 1)] if by_index else [])
        return out

    def destroy_metric(self, metric_id: str) -> None:
        with self._errors():
            keys = list(self.client.scan_iter(match=self._key("metrics", metric_id, "*")))
            if keys:
                self.client.delete(*keys)

    # --- experiments -------------------------------------------------------

    def experiment_persisted(self, experiment_id: str) -> bool:
        with self._errors():
            return bool(self.client.exists(self._key("experiments", experiment_id, "created_at")))

    def set_experiment_created_at(self, experiment_id: str, time: datetime) -> None:
        with self._errors():
            self.client.setnx(self._key("experiments", experiment_id, "created_at"), time.timestamp())

    def get_experiment_created_at(self, experiment_id: str) -> Optional[datetime]:
        with self._errors():
            return _to_datetime(self.client.get(self._key("experiments", experiment_id, "created_at")))

    def destroy_experiment(self, experiment_id: str) -> None:
        with self._errors():
            keys = list(self.client.scan_iter(match=self._key("experiments", experiment_id, "*")))
            if keys:
                self.client.delete(*keys)

    # --- A/B testing -------------------------------------------------------

    def ab_counts(self, experiment_id: str, alternative: int) -> dict[str, int]:
        with self._errors():
            pipe = self.client.pipeline()
            pipe.scard(self._key("experiments", experiment_id, "alts", alternative, "participants"))
            pipe.scard(self._key("experiments", experiment_id, "alts", alternative, "converted"))
            pipe.get(self._key("experiments", experiment_id, "alts", alternative, "conversions"))
            participants, converted, conversions = pipe.execute()
        return {
            "participants": int(participants or 0),
            "converted": int(converted or 0),
            "conversions": int(conversions or 0),
        }

    def ab_add_participant(self, experiment_id: str, alternative: int, identity: str) -> None:
        with self._errors():
            added = self.client.hsetnx(
                self._key("experiments", experiment_id, "assignments"), identity, alternative
            )
            if added:
                self.client.sadd(
                    self._key("experiments", experiment_id, "alts", alternative, "participants"),
                    identity,
                )

    def ab_assigned(self, experiment_id: str, identity: str) -> Optional[int]:
        with self._errors():
            value = self.client.hget(self._key("experiments", experiment_id, "assignments"), identity)
        return None if value is None else int(value)

    def ab_add_conversion(
        self,
        experiment_id: str,
        alternative: int,
        identity: str,
        count: int = 1,
    ) -> None:
        self.ab_add_participant(experiment_id, alternative, identity)
        with self._errors():
            pipe = self.client.pipeline()
            pipe.sadd(self._key("experiments", experiment_id, "alts", alternative, "converted"), identity)
            pipe.incrby(self._key("experiments", experiment_id, "alts", alternative, "conversions"), count)
            pipe.execute()
