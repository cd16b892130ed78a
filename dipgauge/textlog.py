"""Metric output through the standard logging module."""

from __future__ import annotations

import copy
import io
import logging
import threading
from collections.abc import Iterable

from .format import LineFormat, SimpleFormat
from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)


def _coerce_level(level: int | str) -> int:
    if isinstance(level, bool):
        raise TypeError("log level must be an int or a level name")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level {level!r}")
        return resolved
    raise TypeError("log level must be an int or a level name")


class Log(WithAttributes):
    """An input that emits formatted metric lines as log records."""

    def __init__(
        self,
        attributes=None,
        format: LineFormat | None = None,
        level: int | str = logging.INFO,
        target: str | None = None,
    ) -> None:
        super().__init__(attributes)
        self._format: LineFormat = format if format is not None else SimpleFormat()
        self._level = _coerce_level(level)
        self._target = target

    @classmethod
    def to_log(cls) -> Log:
        """Log metric values at INFO level."""
        return cls()

    def level(self, level: int | str) -> Log:
        """Return a copy logging at ``level`` (a number or a level name)."""
        clone = copy.copy(self)
        clone._level = _coerce_level(level)
        return clone

    def target(self, target: str) -> Log:
        """Return a copy logging through the logger named ``target``."""
        clone = copy.copy(self)
        clone._target = target
        return clone

    def formatting(self, format: LineFormat) -> Log:
        """Return a copy that prints with ``format``."""
        clone = copy.copy(self)
        clone._format = format
        return clone

    def metrics(self) -> LogScope:
        """Open a new scope logging through this input."""
        return LogScope(self)

    def _emit(self, text: str) -> None:
        logger = logging.getLogger(self._target) if self._target else log
        logger.log(self._level, "%s", text)


class LogScope(InputScope):
    """A scope logging metric lines, at once or on flush when buffered."""

    def __init__(self, log_input: Log) -> None:
        super().__init__(log_input.attributes)
        self._log = log_input
        self._entries: list[bytes] = []
        self._lock = threading.Lock()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        full_name = self.prefix_append(name)
        template = self._log._format.template(full_name, kind)
        metric_id = MetricId("log", full_name)

        def render(value: int, labels) -> bytes:
            out = io.BytesIO()
            template.print(out, value, labels.get)
            return out.getvalue()

        if self.is_buffered():
            entries, lock = self._entries, self._lock

            def write_buffered(value: int, labels) -> None:
                line = render(value, labels)
                with lock:
                    entries.append(line)

            return InputMetric(metric_id, write_buffered)

        log_input = self._log

        def write_now(value: int, labels) -> None:
            log_input._emit(render(value, labels).decode("utf-8").rstrip("\n"))

        return InputMetric(metric_id, write_now)

    def flush(self) -> None:
        """Log any buffered lines as a single record."""
        super().flush()
        with self._lock:
            entries = self._entries.copy()
            self._entries.clear()
        if entries:
            text = "\n".join(entry.decode("utf-8").rstrip("\n") for entry in entries)
            self._log._emit(text)

    def __del__(self) -> None:
        if getattr(self, "_entries", None):
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush log metrics on collection. %s", err)