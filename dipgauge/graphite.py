"""Metric output to a graphite server over TCP or UDP."""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections.abc import Iterable

from .retry_socket import RetrySocket
from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)

BUFFER_FLUSH_THRESHOLD = 65_536
"""Buffered TCP output is sent early once it grows beyond this many bytes."""

MAX_UDP_PAYLOAD = 576
"""Largest UDP datagram sent, small enough to avoid fragmentation."""


def _scale_for(kind: InputKind) -> int:
    # timers are recorded in microseconds, graphite gets milliseconds
    return 1000 if kind is InputKind.TIMER else 1


def _scaled(value: int, scale: int) -> int:
    quotient = abs(value) // scale
    return -quotient if value < 0 else quotient


def _entry(prefix: str, value: int, scale: int) -> bytes:
    return f"{prefix}{_scaled(value, scale)} {int(time.time())}\n".encode("utf-8")


class _Buffer:
    __slots__ = ("data", "lock")

    def __init__(self) -> None:
        self.data = bytearray()
        self.lock = threading.RLock()


class Graphite(WithAttributes):
    """An input holding a TCP connection to a graphite server, shared by its scopes."""

    def __init__(self, sock: RetrySocket, attributes=None) -> None:
        super().__init__(attributes)
        self._socket = sock
        self._socket_lock = threading.Lock()

    @classmethod
    def send_to(cls, address) -> Graphite:
        """Send metrics to the graphite server at ``address`` (host:port or a tuple)."""
        log.debug("Connecting to graphite %r", address)
        return cls(RetrySocket(address))

    def metrics(self) -> GraphiteScope:
        """Open a new scope sending through this connection."""
        return GraphiteScope(self)

    def _send_all(self, data: bytes) -> None:
        with self._socket_lock:
            view = memoryview(data)
            while view:
                sent = self._socket.write(view)
                view = view[sent:]


class GraphiteScope(InputScope):
    """A scope writing graphite plaintext lines, immediately or on flush when buffered."""

    def __init__(self, graphite: Graphite) -> None:
        super().__init__(graphite.attributes)
        self._graphite = graphite
        self._buffer = _Buffer()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        prefix = self.prefix_prepend(name).join(".") + " "
        scale = _scale_for(kind)

        def write(value: int, labels) -> None:
            self._print(prefix, scale, value)

        return InputMetric(MetricId("graphite", _as_name(name)), write)

    def _print(self, prefix: str, scale: int, value: int) -> None:
        line = _entry(prefix, value, scale)
        buffer = self._buffer
        with buffer.lock:
            buffer.data += line
            if len(buffer.data) > BUFFER_FLUSH_THRESHOLD:
                log.warning("Graphite Buffer Size Exceeded: %d", BUFFER_FLUSH_THRESHOLD)
                try:
                    self._flush_locked()
                except OSError:
                    pass
            if not self.is_buffered():
                try:
                    self._flush_locked()
                except OSError as err:
                    log.debug("Could not send to graphite %s", err)

    def _flush_locked(self) -> None:
        data = self._buffer.data
        if not data:
            return
        try:
            self._graphite._send_all(bytes(data))
        except OSError as err:
            log.debug("Failed to send buffer to graphite: %s", err)
            raise
        log.debug("Sent %d bytes to graphite", len(data))
        data.clear()

    def flush(self) -> None:
        """Send any buffered lines; raises OSError if sending fails."""
        super().flush()
        with self._buffer.lock:
            self._flush_locked()

    def __del__(self) -> None:
        buffer = getattr(self, "_buffer", None)
        if buffer is not None and buffer.data:
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush graphite metrics upon collection: %s", err)


def _as_name(name):
    from .name import MetricName

    return MetricName(name)


def _udp_target(address) -> tuple[int, tuple]:
    if isinstance(address, tuple):
        host, port = address[0], address[1]
    elif isinstance(address, str):
        host, sep, port = address.rpartition(":")
        if not sep or not host or not port:
            raise ValueError(f"address must look like host:port, got {address!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
    else:
        raise TypeError(f"unsupported address {address!r}")
    infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    if not infos:
        raise OSError(f"could not resolve {address!r}")
    family, _type, _proto, _name, sockaddr = infos[0]
    return family, sockaddr


class GraphiteUdp(WithAttributes):
    """An input holding a UDP socket to a graphite server, shared by its scopes."""

    def __init__(self, sock: socket.socket, attributes=None) -> None:
        super().__init__(attributes)
        self._socket = sock

    @classmethod
    def send_to(cls, address) -> GraphiteUdp:
        """Send metrics to the graphite server at ``address`` (host:port or a tuple)."""
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

    def metrics(self) -> GraphiteUdpScope:
        """Open a new scope sending through this socket."""
        return GraphiteUdpScope(self)


class GraphiteUdpScope(InputScope):
    """A scope packing graphite lines into datagrams of at most 576 bytes."""

    def __init__(self, graphite: GraphiteUdp) -> None:
        super().__init__(graphite.attributes)
        self._graphite = graphite
        self._buffer = _Buffer()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        prefix = self.prefix_prepend(name).join(".") + " "
        scale = _scale_for(kind)

        def write(value: int, labels) -> None:
            self._print(prefix, scale, value)

        return InputMetric(MetricId("graphite", _as_name(name)), write)

    def _print(self, prefix: str, scale: int, value: int) -> None:
        entry = _entry(prefix, value, scale)
        buffer = self._buffer
        with buffer.lock:
            if len(entry) > MAX_UDP_PAYLOAD:
                # too big to ever fit in a datagram
                return
            if len(entry) > max(0, MAX_UDP_PAYLOAD - len(buffer.data)):
                try:
                    self._flush_locked()
                except OSError:
                    pass
            buffer.data += entry
            if not self.is_buffered():
                try:
                    self._flush_locked()
                except OSError as err:
                    log.debug("Could not send to graphite %s", err)

    def _flush_locked(self) -> None:
        data = self._buffer.data
        if not data:
            return
        try:
            sent = self._graphite._socket.send(bytes(data))
        except OSError as err:
            log.debug("Failed to send buffer to graphite: %s", err)
            raise
        log.debug("Sent %d bytes to graphite", sent)
        data.clear()

    def flush(self) -> None:
        """Send any buffered lines; raises OSError if sending fails."""
        super().flush()
        with self._buffer.lock:
            self._flush_locked()

    def __del__(self) -> None:
        buffer = getattr(self, "_buffer", None)
        if buffer is not None and buffer.data:
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush graphite metrics upon collection: %s", err)