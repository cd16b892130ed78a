"""Periodic background tasks that can be cancelled."""

from __future__ import annotations

import functools
import heapq
import itertools
import logging
import threading
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

log = logging.getLogger(__name__)

MIN_DELAY = 0.05
"""Shortest time, in seconds, the scheduler thread sleeps between checks."""

Period = float | int | timedelta


def _seconds(period: Period) -> float:
    seconds = period.total_seconds() if isinstance(period, timedelta) else float(period)
    if seconds < 0:
        raise ValueError(f"period must not be negative, got {seconds}")
    return seconds


class CancelHandle:
    """A handle that stops a scheduled task when cancelled."""

    __slots__ = ("_cancelled", "_lock")

    def __init__(self) -> None:
        self._cancelled = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"CancelHandle(cancelled={self._cancelled})"

    def cancel(self) -> None:
        """Signal the task to stop."""
        with self._lock:
            already = self._cancelled
            self._cancelled = True
        if already:
            log.warning("Scheduled task was already cancelled.")

    def is_cancelled(self) -> bool:
        """True once the task has been told to stop."""
        return self._cancelled

    def into_guard(self) -> CancelGuard:
        """Wrap this handle in a guard that cancels it when it is done with."""
        return CancelGuard(self)


class CancelGuard:
    """Cancels its handle on leaving a ``with`` block or when collected,
    unless it has been disarmed."""

    __slots__ = ("_handle",)

    def __init__(self, handle: CancelHandle) -> None:
        self._handle: CancelHandle | None = handle

    def disarm(self) -> CancelHandle:
        """Give up the guard without cancelling, returning the handle."""
        handle = self._handle
        if handle is None:
            raise RuntimeError("guard is no longer armed")
        self._handle = None
        return handle

    def _fire(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def __enter__(self) -> CancelGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._fire()

    def __del__(self) -> None:
        try:
            self._fire()
        except Exception:  # pragma: no cover - interpreter shutdown
            pass


@dataclass(order=True)
class _Task:
    next_time: float
    seq: int
    period: float = field(compare=False)
    handle: CancelHandle = field(compare=False)
    operation: Callable[[float], None] = field(compare=False)


class _Shared:
    def __init__(self) -> None:
        self.condition = threading.Condition(threading.RLock())
        self.tasks: list[_Task] = []
        self.sequence = itertools.count()


def _run_due(tasks: list[_Task], wait_for: float) -> float:
    """Run every task that is due and return how long to wait next."""
    while tasks:
        now = time.monotonic()
        head = tasks[0]
        if head.next_time > now:
            return max(MIN_DELAY, head.next_time - now)
        task = heapq.heappop(tasks)
        if task.handle.is_cancelled():
            continue
        try:
            task.operation(now)
        except Exception:
            log.exception("Scheduled task failed")
        task.next_time = now + task.period
        heapq.heappush(tasks, task)
    return wait_for


def _scheduler_loop(shared_ref: weakref.ref) -> None:
    wait_for = MIN_DELAY
    while True:
        shared = shared_ref()
        if shared is None:
            return
        with shared.condition:
            shared.condition.wait(wait_for)
            wait_for = _run_due(shared.tasks, wait_for)
        del shared


class Scheduler:
    """Runs periodic tasks on a background thread.

    The thread ends once the scheduler itself is no longer referenced.
    """

    def __init__(self) -> None:
        self._shared = _Shared()
        thread = threading.Thread(
            target=_scheduler_loop,
            args=(weakref.ref(self._shared),),
            name="dipgauge-scheduler",
            daemon=True,
        )
        thread.start()

    def schedule(self, period: Period, operation: Callable[[float], None]) -> CancelHandle:
        """Run ``operation(now)`` every ``period`` seconds until cancelled."""
        seconds = _seconds(period)
        handle = CancelHandle()
        shared = self._shared
        with shared.condition:
            task = _Task(
                next_time=time.monotonic() + seconds,
                seq=next(shared.sequence),
                period=seconds,
                handle=handle,
                operation=operation,
            )
            heapq.heappush(shared.tasks, task)
            shared.condition.notify()
        return handle

    def task_count(self) -> int:
        """Number of tasks still held by the scheduler."""
        with self._shared.condition:
            return len(self._shared.tasks)


@functools.lru_cache(maxsize=None)
def _default_scheduler() -> Scheduler:
    return Scheduler()


def flush_every(scope, period: Period) -> CancelHandle:
    """Flush ``scope`` at regular intervals on the shared scheduler."""

    def flush(_now: float) -> None:
        try:
            scope.flush()
        except Exception as err:
            log.error("Could not flush metrics: %s", err)

    return _default_scheduler().schedule(period, flush)