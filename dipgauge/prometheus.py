"""Metric output to a Prometheus push gateway over HTTP."""

from __future__ import annotations

import logging
import threading
import urllib.error
import urllib.request
from collections.abc import Iterable

from .name import MetricName
from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)

BUFFER_FLUSH_THRESHOLD = 65_536
"""Buffered output is pushed early once it would grow beyond this many bytes."""

_TIMEOUT = 10.0


def _scaled(value: int, scale: int) -> int:
    quotient = abs(value) // scale
    return -quotient if value < 0 else quotient


class Prometheus(WithAttributes):
    """An input pushing metrics to a Prometheus push gateway URL.

    The URL path should include the ``job`` grouping label,
    e.g. ``http://localhost:9091/metrics/job/some_job``.
    """

    def __init__(self, push_url: str, attributes=None) -> None:
        super().__init__(attributes)
        self.push_url = push_url

    @classmethod
    def push_to(cls, url: str) -> Prometheus:
        """Push metrics to the gateway at ``url``."""
        log.debug("Pushing to Prometheus %r", url)
        return cls(url)

    def metrics(self) -> PrometheusScope:
        """Open a new scope pushing to this gateway."""
        return PrometheusScope(self)


class PrometheusScope(InputScope):
    """A scope rendering Prometheus text lines and pushing them by HTTP POST."""

    def __init__(self, prometheus: Prometheus) -> None:
        super().__init__(prometheus.attributes)
        self._push_url = prometheus.push_url
        self._data = bytearray()
        self._lock = threading.RLock()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        prefix = self.prefix_prepend(name).join("_")
        # timers are recorded in microseconds, Prometheus gets milliseconds
        scale = 1000 if kind is InputKind.TIMER else 1

        def write(value: int, labels) -> None:
            self._print(prefix, scale, value, labels)

        return InputMetric(MetricId("prometheus", MetricName(name)), write)

    def _print(self, prefix: str, scale: int, value: int, labels) -> None:
        if labels:
            pairs = ",".join(f'{key}="{labels[key]}"' for key in sorted(labels))
            line = f"{prefix}{{{pairs}}} {_scaled(value, scale)}\n"
        else:
            line = f"{prefix} {_scaled(value, scale)}\n"
        entry = line.encode("utf-8")

        with self._lock:
            if len(entry) + len(self._data) > BUFFER_FLUSH_THRESHOLD:
                log.warning("Prometheus Buffer Size Exceeded: %d", BUFFER_FLUSH_THRESHOLD)
                try:
                    self._flush_locked()
                except OSError:
                    pass
            self._data += entry
            if not self.is_buffered():
                try:
                    self._flush_locked()
                except OSError as err:
                    log.debug("Could not send to Prometheus %s", err)

    def _flush_locked(self) -> None:
        if not self._data:
            return
        body = bytes(self._data)
        request = urllib.request.Request(
            self._push_url,
            data=body,
            method="POST",
            headers={"Content-Type": "text/plain"},
        )
        try:
            with urllib.request.urlopen(request, timeout=_TIMEOUT) as response:
                status = response.status
        except urllib.error.HTTPError as err:
            # the server answered; the payload was delivered
            status = err.code
            err.close()
        except OSError as err:
            log.debug("Failed to send buffer to Prometheus: %s", err)
            raise
        log.debug("Sent %d bytes to Prometheus (resp status code: %d)", len(body), status)
        self._data.clear()

    def flush(self) -> None:
        """Push any buffered lines; raises OSError if the push fails."""
        super().flush()
        with self._lock:
            self._flush_locked()

    def __del__(self) -> None:
        if getattr(self, "_data", None):
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush Prometheus metrics upon collection: %s", err)