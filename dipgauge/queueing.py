"""Hand metric writes and flushes to a background thread through a bounded queue."""

from __future__ import annotations

import logging
import queue
import threading
import weakref
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .stats import InputKind
from .void import Attributes, InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class _Write:
    metric: InputMetric
    value: int
    labels: dict


@dataclass(frozen=True)
class _Flush:
    scope: InputScope


def _drain(commands: queue.Queue) -> None:
    while True:
        command = commands.get()
        if command is _STOP:
            log.debug("Async metrics receive loop terminated")
            return
        match command:
            case _Write(metric=metric, value=value, labels=labels):
                try:
                    metric.write(value, labels)
                except Exception as err:
                    log.debug("Could not write queued metric: %s", err)
            case _Flush(scope=scope):
                try:
                    scope.flush()
                except Exception as err:
                    log.debug("Could not asynchronously flush metrics: %s", err)


class _Channel:
    """A bounded command queue drained by a worker thread.

    Senders block while the queue is full. A length of 0 behaves as 1.
    The worker stops once the channel is no longer referenced.
    """

    def __init__(self, length: int) -> None:
        if length < 0:
            raise ValueError("queue length must not be negative")
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, length))
        self._thread = threading.Thread(
            target=_drain, args=(self._queue,), name="dipgauge-queue-in", daemon=True
        )
        self._thread.start()
        weakref.finalize(self, self._queue.put, _STOP)

    def send(self, command: Any) -> None:
        if not self._thread.is_alive():
            raise OSError("metrics queue worker is not running")
        self._queue.put(command)


class InputQueue(WithAttributes):
    """Wraps an input so its scopes write and flush on a background thread."""

    def __init__(self, target, queue_length: int, attributes: Attributes | None = None) -> None:
        super().__init__(attributes)
        self._target = target
        self._channel = _Channel(queue_length)

    def metrics(self) -> InputQueueScope:
        """Open a scope of the wrapped input behind the shared queue."""
        return InputQueueScope(self._target.metrics(), self._channel, self.attributes)


class InputQueueScope(InputScope):
    """A scope that sends writes and flushes to a worker thread.

    Metric definition stays synchronous; when the queue is full, writers block.
    """

    def __init__(
        self,
        target: InputScope,
        channel: _Channel,
        attributes: Attributes | None = None,
    ) -> None:
        super().__init__(attributes)
        self._target = target
        self._channel = channel

    @classmethod
    def wrap(cls, target_scope: InputScope, queue_length: int) -> InputQueueScope:
        """Put ``target_scope`` behind a new queue of ``queue_length`` commands."""
        return cls(target_scope, _Channel(queue_length))

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        full_name = self.prefix_append(name)
        target_metric = self._target.new_metric(full_name, kind)
        channel = self._channel

        def write(value: int, labels) -> None:
            # labels are copied now, the caller may change them afterwards
            try:
                channel.send(_Write(target_metric, value, dict(labels)))
            except OSError as err:
                log.debug("Failed to send async metrics: %s", err)

        return InputMetric(MetricId("queue", full_name), write)

    def flush(self) -> None:
        """Notify flush listeners and queue a flush of the target scope."""
        super().flush()
        try:
            self._channel.send(_Flush(self._target))
        except OSError as err:
            log.debug("Failed to flush async metrics: %s", err)
            raise