# src/vantage/adapters/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Any, Iterator, Optional, Sequence

from vantage.exceptions import AdapterError


@contextmanager
def translate_errors(name: str, *error_types: type[BaseException]) -> Iterator[None]:
    """Re-raise backend-specific errors as AdapterError."""
    try:
        yield
    except error_types as e:
        raise AdapterError(f"{name}: {e}") from e


class Adapter(ABC):
    """
    Capability contract of a datastore connection.

    Only `is_active` and `disconnect` are used by the connection lifecycle;
    the remaining operations back experiments and metrics.

    Alternatives are addressed by their index within the experiment.
    """

    name: str = "adapter"

    # --- lifecycle ---------------------------------------------------------

    @abstractmethod
    def is_active(self) -> bool: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def flushdb(self) -> None:
        """Remove everything this adapter stored."""

    # --- metrics -----------------------------------------------------------

    @abstractmethod
    def get_metric_last_update_at(self, metric_id: str) -> Optional[datetime]: ...

    @abstractmethod
    def metric_track(
        self,
        metric_id: str,
        timestamp: datetime,
        identity: Optional[str],
        values: Sequence[int],
    ) -> None: ...

    @abstractmethod
    def metric_values(self, metric_id: str, since: date, until: date) -> list[list[int]]:
        """One list of values per day in [since, until]; empty list for days without data."""

    @abstractmethod
    def destroy_metric(self, metric_id: str) -> None: ...

    # --- experiments -------------------------------------------------------

    @abstractmethod
    def experiment_persisted(self, experiment_id: str) -> bool: ...

    @abstractmethod
    def set_experiment_created_at(self, experiment_id: str, time: datetime) -> None: ...

    @abstractmethod
    def get_experiment_created_at(self, experiment_id: str) -> Optional[datetime]: ...

    @abstractmethod
    def destroy_experiment(self, experiment_id: str) -> None: ...

    # --- A/B testing -------------------------------------------------------

    @abstractmethod
    def ab_counts(self, experiment_id: str, alternative: int) -> dict[str, int]:
        """Counts for one alternative: participants, converted, conversions."""

    @abstractmethod
    def ab_add_participant(self, experiment_id: str, alternative: int, identity: str) -> None: ...

    @abstractmethod
    def ab_assigned(self, experiment_id: str, identity: str) -> Optional[int]:
        """Index of the alternative `identity` participates in, or None."""

    @abstractmethod
    def ab_add_conversion(
        self,
        experiment_id: str,
        alternative: int,
        identity: str,
        count: int = 1,
    ) -> None: ...

    def __repr__(self) -> str:
        state = "active" if self.is_active() else "inactive"
        return f"<{type(self).__name__} {self.name} ({state})>"


def days_between(since: date, until: date) -> list[date]:
    if until < since:
        return []
    return [since + timedelta(days=i) for i in range((until - since).days + 1)]


def as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
