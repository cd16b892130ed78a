"""A TCP socket that reconnects automatically with exponential backoff."""

from __future__ import annotations

import errno
import logging
import socket
import time
from collections.abc import Callable, Iterable
from typing import TypeVar, Union

log = logging.getLogger(__name__)

MIN_RECONNECT_DELAY_MS = 50
MAX_RECONNECT_DELAY_MS = 10_000

T = TypeVar("T")
Address = Union[str, tuple]


def _split(address: Address) -> tuple[str, int | str]:
    if isinstance(address, tuple):
        host, port = address[0], address[1]
        return host, port
    if isinstance(address, str):
        host, sep, port = address.rpartition(":")
        if not sep or not host or not port:
            raise ValueError(f"address must look like host:port, got {address!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        return host, port
    raise TypeError(f"unsupported address {address!r}")


def _resolve(addresses: Address | Iterable[Address]) -> list[tuple]:
    if isinstance(addresses, (str, tuple)):
        addresses = [addresses]
    resolved = []
    for address in addresses:
        host, port = _split(address)
        for family, _type, _proto, _name, sockaddr in socket.getaddrinfo(
            host, port, type=socket.SOCK_STREAM
        ):
            resolved.append((family, sockaddr))
    return resolved


class RetrySocket:
    """A TCP connection that is opened lazily and re-opened after failures.

    After each failure the next attempt is delayed, doubling from
    50 ms up to a ceiling of 10 s.
    """

    def __init__(self, addresses: Address | Iterable[Address]) -> None:
        self._addresses = _resolve(addresses)
        self._retries = 0
        self._next_try = time.monotonic() + MIN_RECONNECT_DELAY_MS / 1000
        self._socket: socket.socket | None = None
        try:
            self.flush()
        except OSError:
            pass

    def __repr__(self) -> str:
        state = "connected" if self._socket is not None else "disconnected"
        return f"RetrySocket({[addr for _, addr in self._addresses]!r}, {state})"

    def _connect(self) -> socket.socket:
        last_error: OSError | None = None
        for family, sockaddr in self._addresses:
            sock = socket.socket(family, socket.SOCK_STREAM)
            try:
                sock.connect(sockaddr)
            except OSError as err:
                sock.close()
                last_error = err
                continue
            sock.setblocking(False)
            return sock
        if last_error is not None:
            raise last_error
        raise OSError(errno.EINVAL, "no addresses to connect to")

    def _try_connect(self) -> None:
        if self._socket is None and time.monotonic() > self._next_try:
            self._socket = self._connect()
            self._retries = 0
            log.info("Connected to %s", [addr for _, addr in self._addresses])

    def _backoff(self, error: OSError) -> None:
        self._close()
        self._retries += 1
        exp_delay = MIN_RECONNECT_DELAY_MS << self._retries
        delay = min(MAX_RECONNECT_DELAY_MS, exp_delay)
        log.warning(
            "Could not connect to %s after %d trie(s). Backing off reconnection by %dms. %s",
            [addr for _, addr in self._addresses],
            self._retries,
            exp_delay,
            error,
        )
        self._next_try = time.monotonic() + delay / 1000

    def _with_socket(self, operation: Callable[[socket.socket], T]) -> T:
        try:
            self._try_connect()
        except OSError as err:
            self._backoff(err)
            raise
        sock = self._socket
        if sock is None:
            raise OSError(errno.ENOTCONN, "socket is not connected")
        try:
            return operation(sock)
        except OSError as err:
            self._backoff(err)
            raise

    def write(self, data: bytes) -> int:
        """Send some of ``data`` and return how many bytes went out."""
        return self._with_socket(lambda sock: sock.send(data))

    def flush(self) -> None:
        """Connect if due; raises if the socket is not usable."""
        self._with_socket(lambda sock: None)

    def _close(self) -> None:
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()

    def __enter__(self) -> RetrySocket:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._close()