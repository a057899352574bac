# src/vantage/experiment.py
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Sequence

from vantage.context import current_identity
from vantage.registry import derive_id

if TYPE_CHECKING:
    from vantage.playground import Playground


@dataclass(frozen=True, slots=True)
class Alternative:
    experiment_id: str
    index: int
    value: Any

    def __str__(self) -> str:
        return str(self.value)


class Experiment:
    """
    A/B test over a fixed list of alternatives.

    A participant is assigned deterministically from its identity and the
    assignment is recorded in the datastore while collecting. Conversions
    are recorded through the metrics the experiment is hooked to.
    """

    def __init__(
        self,
        playground: "Playground",
        name: str,
        *,
        id: Optional[str] = None,
        alternatives: Sequence[Any] = (False, True),
        description: Optional[str] = None,
    ) -> None:
        values = list(alternatives)
        if len(values) < 2:
            raise ValueError(f"Experiment {name!r} needs at least two alternatives")

        self._playground = playground
        self.name = str(name)
        self.id = id or derive_id(name)
        self.description = description
        self.alternatives: tuple[Alternative, ...] = tuple(
            Alternative(self.id, index, value) for index, value in enumerate(values)
        )
        self.metric_ids: list[str] = []

    @property
    def playground(self) -> "Playground":
        return self._playground

    def _failover(self, method: str, *arguments: Any):
        return self._playground.datastore_failover(type(self).__name__, method, list(arguments))

    # --- persistence -------------------------------------------------------

    def save(self) -> None:
        if not self._playground.collecting:
            return
        with self._failover("save", self.id):
            connection = self._playground.connection()
            if not connection.experiment_persisted(self.id):
                connection.set_experiment_created_at(self.id, datetime.now(timezone.utc))

    @property
    def created_at(self) -> Optional[datetime]:
        return self._playground.connection().get_experiment_created_at(self.id)

    def destroy(self) -> None:
        self._playground.connection().destroy_experiment(self.id)

    # --- assignment --------------------------------------------------------

    def alternative_for(self, identity: str) -> int:
        digest = hashlib.md5(f"{self.id}/{identity}".encode("utf-8")).hexdigest()
        return int(digest, 16) % len(self.alternatives)

    def choose(self, identity: Optional[str] = None) -> Alternative:
        identity = self._identity(identity)
        if not self._playground.collecting:
            return self.alternatives[self.alternative_for(identity)]

        index: Optional[int] = None
        with self._failover("choose", self.id, identity):
            connection = self._playground.connection()
            index = connection.ab_assigned(self.id, identity)
            if index is None:
                index = self.alternative_for(identity)
                connection.ab_add_participant(self.id, index, identity)

        if index is None:
            index = self.alternative_for(identity)
        return self.alternatives[index]

    def track_conversion(
        self,
        metric_id: str,
        timestamp: datetime,
        identity: Optional[str],
        values: Sequence[int],
    ) -> None:
        """Metric hook: record a conversion for an assigned participant."""
        if identity is None or not self._playground.collecting:
            return
        count = int(values[0]) if values else 1
        with self._failover("track_conversion", self.id, identity, count):
            connection = self._playground.connection()
            index = connection.ab_assigned(self.id, identity)
            if index is not None:
                connection.ab_add_conversion(self.id, index, identity, count)

    def counts(self) -> list[dict[str, Any]]:
        connection = self._playground.connection()
        out: list[dict[str, Any]] = []
        for alternative in self.alternatives:
            counts = connection.ab_counts(self.id, alternative.index)
            out.append({"alternative": alternative.value, **counts})
        return out

    @staticmethod
    def _identity(identity: Optional[str]) -> str:
        if identity is None:
            identity = current_identity()
        if identity is None:
            raise ValueError("No participant identity given and none available from the current context")
        return str(identity)

    def __repr__(self) -> str:
        return f"<Experiment {self.id} alternatives={[a.value for a in self.alternatives]!r}>"
