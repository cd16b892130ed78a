"""Metric output to a statsd server over UDP."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Iterable

from .format import _format_float
from .graphite import _udp_target
from .name import MetricName
from .sampling import accept_sample, to_int_rate
from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)

MAX_UDP_PAYLOAD = 576
"""Largest UDP datagram sent, small enough to avoid fragmentation."""

_TYPE_CODES = {
    InputKind.MARKER: "c",
    InputKind.COUNTER: "c",
    InputKind.GAUGE: "g",
    InputKind.LEVEL: "g",
    InputKind.TIMER: "ms",
}


def _scaled(value: int, scale: int) -> int:
    quotient = abs(value) // scale
    return -quotient if value < 0 else quotient


class Statsd(WithAttributes):
    """An input holding a UDP socket to a statsd server, shared by its scopes."""

    def __init__(self, sock: socket.socket, attributes=None) -> None:
        super().__init__(attributes)
        self._socket = sock

    @classmethod
    def send_to(cls, address) -> Statsd:
        """Send metrics to the statsd server at ``address`` (host:port or a tuple)."""
        family, sockaddr = _udp_target(address)
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.bind(("::", 0) if family == socket.AF_INET6 else ("0.0.0.0", 0))
            sock.setblocking(False)
            sock.connect(sockaddr)
        except OSError:
            sock.close()
            raise
        return cls(sock)

    def metrics(self) -> StatsdScope:
        """Open a new scope sending through this socket."""
        return StatsdScope(self)


class StatsdScope(InputScope):
    """A scope packing statsd lines into datagrams of at most 576 bytes."""

    def __init__(self, statsd: Statsd) -> None:
        super().__init__(statsd.attributes)
        self._statsd = statsd
        self._data = bytearray()
        self._lock = threading.RLock()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        prefix = self.prefix_prepend(name).join(".") + ":"
        suffix = "|" + _TYPE_CODES[kind]
        # timers are recorded in microseconds, statsd wants milliseconds
        scale = 1000 if kind is InputKind.TIMER else 1
        metric_id = MetricId("statsd", MetricName(name))

        rate = self.attributes.sampling
        if rate is not None:
            suffix += f"|@{_format_float(rate)}\n"
            int_rate = to_int_rate(rate)

            def write_sampled(value: int, labels) -> None:
                if accept_sample(int_rate):
                    self._print(prefix, suffix, scale, value)

            return InputMetric(metric_id, write_sampled)

        suffix += "\n"

        def write(value: int, labels) -> None:
            self._print(prefix, suffix, scale, value)

        return InputMetric(metric_id, write)

    def _print(self, prefix: str, suffix: str, scale: int, value: int) -> None:
        entry = f"{prefix}{_scaled(value, scale)}{suffix}".encode("utf-8")
        with self._lock:
            if len(entry) > MAX_UDP_PAYLOAD:
                # entry can never fit in a datagram
                return
            available = MAX_UDP_PAYLOAD - len(self._data)
            if len(entry) + 1 > available:
                # buffer nearly full: make room, this entry is lost
                try:
                    self._flush_locked()
                except OSError:
                    pass
            else:
                if self._data:
                    self._data += b"\n"
                self._data += entry
            if not self.is_buffered():
                try:
                    self._flush_locked()
                except OSError as err:
                    log.debug("Could not send to statsd %s", err)

    def _flush_locked(self) -> None:
        if not self._data:
            return
        sent = self._statsd._socket.send(bytes(self._data))
        log.debug("Sent %d bytes to statsd", sent)
        self._data.clear()

    def flush(self) -> None:
        """Send any buffered lines; raises OSError if sending fails."""
        super().flush()
        with self._lock:
            self._flush_locked()

    def __del__(self) -> None:
        if getattr(self, "_data", None):
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush statsd metrics upon collection: %s", err)