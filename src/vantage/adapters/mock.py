# src/vantage/adapters/mock.py
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from .base import Adapter, as_date, days_between


class MockAdapter(Adapter):
    """
    In-memory adapter for tests and local development.

    All data lives on the instance and disappears with it.
    """

    name = "mock"

    def __init__(self, options: Mapping[str, Any] | None = None) -> None:
        self.options = dict(options or {})
        self._active = True
        self.flushdb()

    # --- lifecycle ---------------------------------------------------------

    def is_active(self) -> bool:
        return self._active

    def disconnect(self) -> None:
        self._active = False

    def flushdb(self) -> None:
        self._metric_updates: dict[str, datetime] = {}
        # metric_id -> day -> values
        self._metric_values: dict[str, dict[date, list[int]]] = defaultdict(dict)
        self._experiments: dict[str, datetime] = {}
        # experiment_id -> identity -> alternative index
        self._assignments: dict[str, dict[str, int]] = defaultdict(dict)
        # (experiment_id, alternative) -> identity -> conversions
        self._conversions: dict[tuple[str, int], dict[str, int]] = defaultdict(dict)

    # --- metrics -----------------------------------------------------------

    def get_metric_last_update_at(self, metric_id: str) -> Optional[datetime]:
        return self._metric_updates.get(metric_id)

    def metric_track(
        self,
        metric_id: str,
        timestamp: datetime,
        identity: Optional[str],
        values: Sequence[int],
    ) -> None:
        day = as_date(timestamp)
        current = self._metric_values[metric_id].setdefault(day, [])
        for index, value in enumerate(values):
            if index < len(current):
                current[index] += int(value)
            else:
                current.append(int(value))
        self._metric_updates[metric_id] = datetime.now(timezone.utc)

    def metric_values(self, metric_id: str, since: date, until: date) -> list[list[int]]:
        per_day = self._metric_values.get(metric_id, {})
        return [list(per_day.get(day, [])) for day in days_between(since, until)]

    def destroy_metric(self, metric_id: str) -> None:
        self._metric_updates.pop(metric_id, None)
        self._metric_values.pop(metric_id, None)

    # --- experiments -------------------------------------------------------

    def experiment_persisted(self, experiment_id: str) -> bool:
        return experiment_id in self._experiments

    def set_experiment_created_at(self, experiment_id: str, time: datetime) -> None:
        self._experiments.setdefault(experiment_id, time)

    def get_experiment_created_at(self, experiment_id: str) -> Optional[datetime]:
        return self._experiments.get(experiment_id)

    def destroy_experiment(self, experiment_id: str) -> None:
        self._experiments.pop(experiment_id, None)
        self._assignments.pop(experiment_id, None)
        for key in [k for k in self._conversions if k[0] == experiment_id]:
            del self._conversions[key]

    # --- A/B testing -------------------------------------------------------

    def ab_counts(self, experiment_id: str, alternative: int) -> dict[str, int]:
        assigned = self._assignments.get(experiment_id, {})
        converted = self._conversions.get((experiment_id, alternative), {})
        return {
            "participants": sum(1 for index in assigned.values() if index == alternative),
            "converted": len(converted),
            "conversions": sum(converted.values()),
        }

    def ab_add_participant(self, experiment_id: str, alternative: int, identity: str) -> None:
        self._assignments[experiment_id].setdefault(identity, alternative)

    def ab_assigned(self, experiment_id: str, identity: str) -> Optional[int]:
        return self._assignments.get(experiment_id, {}).get(identity)

    def ab_add_conversion(
        self,
        experiment_id: str,
        alternative: int,
        identity: str,
        count: int = 1,
    ) -> None:
        self.ab_add_participant(experiment_id, alternative, identity)
        converted = self._conversions[(experiment_id, alternative)]
        converted[identity] = converted.get(identity, 0) + count
