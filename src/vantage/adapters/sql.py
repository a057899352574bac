# src/vantage/adapters/sql.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import (
    BigInteger,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    case,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from vantage.exceptions import ConfigurationError

from .base import Adapter, as_date, days_between, translate_errors

metadata = MetaData()

metrics = Table(
    "vantage_metrics",
    metadata,
    Column("metric_id", String(255), primary_key=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

metric_values = Table(
    "vantage_metric_values",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("metric_id", String(255), nullable=False, index=True),
    Column("day", Date, nullable=False),
    Column("position", Integer, nullable=False),
    Column("value", BigInteger, nullable=False, default=0),
    UniqueConstraint("metric_id", "day", "position", name="uq_vantage_metric_values"),
)

experiments = Table(
    "vantage_experiments",
    metadata,
    Column("experiment_id", String(255), primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

participants = Table(
    "vantage_participants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("experiment_id", String(255), nullable=False, index=True),
    Column("identity", String(255), nullable=False),
    Column("alternative", Integer, nullable=False),
    Column("conversions", BigInteger, nullable=False, default=0),
    UniqueConstraint("experiment_id", "identity", name="uq_vantage_participants"),
)

# Adapter names that map straight onto a SQLAlchemy dialect.
DIALECT_ADAPTERS = ("sqlite", "postgresql", "mysql")


def sqlalchemy_url(options: Mapping[str, Any]) -> URL:
    """
    Build a SQLAlchemy URL from canonical adapter options.

    Preference order:
    1) `url` option, used as-is.
    2) Components: adapter (dialect), optional `driver`, username, password,
       host, port and database (the `database` option or the URL path).
    """
    if options.get("url"):
        return make_url(str(options["url"]))

    dialect = options.get("adapter")
    if dialect not in DIALECT_ADAPTERS:
        raise ConfigurationError(
            f"SQL adapter needs a 'url' option or one of {', '.join(DIALECT_ADAPTERS)} as adapter"
        )

    database = options.get("database")
    if database is None:
        path = options.get("path") or ""
        # "/name" -> "name", "//abs/file.db" -> "/abs/file.db"
        database = path[1:] if path.startswith("/") else path
    database = database or None

    driver = options.get("driver")
    drivername = f"{dialect}+{driver}" if driver else str(dialect)
    if dialect == "sqlite":
        return URL.create(drivername, database=database)

    port = options.get("port")
    return URL.create(
        drivername=drivername,
        username=options.get("username"),
        password=options.get("password"),
        host=options.get("host"),
        port=int(port) if port is not None else None,
        database=database,
    )


def create_sql_engine(url: URL) -> Engine:
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every checkout sees a fresh database.
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, pool_pre_ping=True)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlAdapter(Adapter):
    """
    Adapter storing experiments and metrics through SQLAlchemy Core.

    Tables are created on construction when missing.
    """

    name = "sqlalchemy"

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        self.options = dict(options or {})
        engine = self.options.get("engine")
        with self._errors():
            self._engine: Optional[Engine] = engine or create_sql_engine(sqlalchemy_url(self.options))
            metadata.create_all(self._engine)

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("SqlAdapter has been disconnected.")
        return self._engine

    def _errors(self):
        return translate_errors(self.name, SQLAlchemyError)

    # --- lifecycle ---------------------------------------------------------

    def is_active(self) -> bool:
        return self._engine is not None

    def disconnect(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.dispose()

    def flushdb(self) -> None:
        with self._errors(), self.engine.begin() as conn:
            for table in reversed(metadata.sorted_tables):
                conn.execute(delete(table))

    # --- metrics -----------------------------------------------------------

    def get_metric_last_update_at(self, metric_id: str) -> Optional[datetime]:
        with self._errors(), self.engine.connect() as conn:
            value = conn.execute(
                select(metrics.c.updated_at).where(metrics.c.metric_id == metric_id)
            ).scalar_one_or_none()
        return _utc(value)

    def metric_track(
        self,
        metric_id: str,
        timestamp: datetime,
        identity: Optional[str],
        values: Sequence[int],
    ) -> None:
        day = as_date(timestamp)
        now = datetime.now(timezone.utc)
        with self._errors(), self.engine.begin() as conn:
            for index, value in enumerate(values):
                where = (
                    (metric_values.c.metric_id == metric_id)
                    & (metric_values.c.day == day)
                    & (metric_values.c.position == index)
                )
                updated = conn.execute(
                    update(metric_values).where(where).values(value=metric_values.c.value + int(value))
                )
                if updated.rowcount == 0:
                    conn.execute(
                        insert(metric_values).values(
                            metric_id=metric_id, day=day, position=index, value=int(value)
                        )
                    )

            updated = conn.execute(
                update(metrics).where(metrics.c.metric_id == metric_id).values(updated_at=now)
            )
            if updated.rowcount == 0:
                conn.execute(insert(metrics).values(metric_id=metric_id, updated_at=now))

    def metric_values(self, metric_id: str, since: date, until: date) -> list[list[int]]:
        with self._errors(), self.engine.connect() as conn:
            rows = conn.execute(
                select(metric_values.c.day, metric_values.c.position, metric_values.c.value)
                .where(metric_values.c.metric_id == metric_id)
                .where(metric_values.c.day >= since)
                .where(metric_values.c.day <= until)
            ).all()

        per_day: dict[date, dict[int, int]] = {}
        for day, index, value in rows:
            per_day.setdefault(day, {})[index] = int(value)

        out: list[list[int]] = []
        for day in days_between(since, until):
            by_index = per_day.get(day, {})
            out.append([by_index.get(i, 0) for i in range(max(by_index) + 1)] if by_index else [])
        return out

    def destroy_metric(self, metric_id: str) -> None:
        with self._errors(), self.engine.begin() as conn:
            conn.execute(delete(metric_values).where(metric_values.c.metric_id == metric_id))
            conn.execute(delete(metrics).where(metrics.c.metric_id == metric_id))

    # --- experiments -------------------------------------------------------

    def experiment_persisted(self, experiment_id: str) -> bool:
        return self.get_experiment_created_at(experiment_id) is not None

    def set_experiment_created_at(self, experiment_id: str, time: datetime) -> None:
        with self._errors(), self.engine.begin() as conn:
            exists = conn.execute(
                select(experiments.c.experiment_id).where(experiments.c.experiment_id == experiment_id)
            ).first()
            if exists is None:
                conn.execute(insert(experiments).values(experiment_id=experiment_id, created_at=time))

    def get_experiment_created_at(self, experiment_id: str) -> Optional[datetime]:
        with self._errors(), self.engine.connect() as conn:
            value = conn.execute(
                select(experiments.c.created_at).where(experiments.c.experiment_id == experiment_id)
            ).scalar_one_or_none()
        return _utc(value)

    def destroy_experiment(self, experiment_id: str) -> None:
        with self._errors(), self.engine.begin() as conn:
            conn.execute(delete(participants).where(participants.c.experiment_id == experiment_id))
            conn.execute(delete(experiments).where(experiments.c.experiment_id == experiment_id))

    # --- A/B testing -------------------------------------------------------

    def ab_counts(self, experiment_id: str, alternative: int) -> dict[str, int]:
        where = (participants.c.experiment_id == experiment_id) & (participants.c.alternative == alternative)
        with self._errors(), self.engine.connect() as conn:
            total, converted, conversions = conn.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(case((participants.c.conversions > 0, 1), else_=0)), 0),
                    func.coalesce(func.sum(participants.c.conversions), 0),
                )
                .select_from(participants)
                .where(where)
            ).one()
        return {
            "participants": int(total),
            "converted": int(converted),
            "conversions": int(conversions),
        }

    def ab_add_participant(self, experiment_id: str, alternative: int, identity: str) -> None:
        with self._errors(), self.engine.begin() as conn:
            self._ensure_participant(conn, experiment_id, alternative, identity)

    def ab_assigned(self, experiment_id: str, identity: str) -> Optional[int]:
        with self._errors(), self.engine.connect() as conn:
            return conn.execute(
                select(participants.c.alternative).where(
                    (participants.c.experiment_id == experiment_id) & (participants.c.identity == identity)
                )
            ).scalar_one_or_none()

    def ab_add_conversion(
        self,
        experiment_id: str,
        alternative: int,
        identity: str,
        count: int = 1,
    ) -> None:
        with self._errors(), self.engine.begin() as conn:
            self._ensure_participant(conn, experiment_id, alternative, identity)
            conn.execute(
                update(participants)
                .where(
                    (participants.c.experiment_id == experiment_id) & (participants.c.identity == identity)
                )
                .values(conversions=participants.c.conversions + count)
            )

    @staticmethod
    def _ensure_participant(conn, experiment_id: str, alternative: int, identity: str) -> None:
        exists = conn.execute(
            select(participants.c.id).where(
                (participants.c.experiment_id == experiment_id) & (participants.c.identity == identity)
            )
        ).first()
        if exists is None:
            conn.execute(
                insert(participants).values(
                    experiment_id=experiment_id,
                    identity=identity,
                    alternative=alternative,
                    conversions=0,
                )
            )
