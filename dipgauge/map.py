"""An output that keeps the latest value of every metric in a dictionary."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes


class StatsMap(WithAttributes):
    """Input whose scopes collect the latest value written to each metric."""

    def metrics(self) -> StatsMapScope:
        """Open a new, empty collecting scope."""
        return StatsMapScope(self.attributes)


class StatsMapScope(InputScope):
    """Keeps the last value written to each metric, keyed by dotted name."""

    def __init__(self, attributes=None) -> None:
        super().__init__(attributes)
        self._values: dict[str, int] = {}
        self._lock = threading.Lock()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        full_name = self.prefix_append(name)
        key = full_name.join(".")
        values, lock = self._values, self._lock

        def write(value: int, labels) -> None:
            with lock:
                values[key] = value

        return InputMetric(MetricId("map", full_name), write)

    def into_map(self) -> dict[str, int]:
        """Return a copy of the collected values, ordered by key."""
        with self._lock:
            return dict(sorted(self._values.items()))