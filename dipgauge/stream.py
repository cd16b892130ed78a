"""Metric output as text lines written to a file-like object."""

from __future__ import annotations

import copy
import io
import logging
import os
import sys
import threading
from collections.abc import Iterable
from typing import IO

from .format import LineFormat, SimpleFormat
from .stats import InputKind
from .void import InputMetric, InputScope, MetricId, WithAttributes

log = logging.getLogger(__name__)


class _Sink:
    """A writer shared between a stream and its scopes."""

    def __init__(self, writer: IO) -> None:
        self.writer = writer
        self.text = isinstance(writer, io.TextIOBase)
        self.lock = threading.Lock()

    def write_entries(self, entries: Iterable[bytes]) -> None:
        with self.lock:
            for entry in entries:
                self.writer.write(entry.decode("utf-8") if self.text else entry)
            self.writer.flush()


class Stream(WithAttributes):
    """An input that writes formatted metric lines to a file-like object.

    Binary and text writers are both accepted.
    """

    def __init__(self, write: IO, attributes=None) -> None:
        super().__init__(attributes)
        self._format: LineFormat = SimpleFormat()
        self._sink = _Sink(write)

    @classmethod
    def write_to(cls, write: IO) -> Stream:
        """Write metric values to the given writer."""
        return cls(write)

    @classmethod
    def write_to_file(cls, path: str | os.PathLike) -> Stream:
        """Append metric values to a file, creating it if needed."""
        return cls(open(path, "ab"))

    @classmethod
    def write_to_new_file(cls, path: str | os.PathLike, clobber: bool) -> Stream:
        """Write metric values to a file from its start.

        With ``clobber`` false, an existing file is an error.
        """
        flags = os.O_WRONLY | os.O_CREAT
        if not clobber:
            flags |= os.O_EXCL
        fd = os.open(path, flags, 0o666)
        return cls(os.fdopen(fd, "wb"))

    @classmethod
    def write_to_stderr(cls) -> Stream:
        """Write metric values to standard error."""
        return cls(sys.stderr)

    @classmethod
    def write_to_stdout(cls) -> Stream:
        """Write metric values to standard output."""
        return cls(sys.stdout)

    def formatting(self, format: LineFormat) -> Stream:
        """Return a copy that prints with ``format``."""
        clone = copy.copy(self)
        clone._format = format
        return clone

    def metrics(self) -> TextScope:
        """Open a new scope writing to this stream."""
        return TextScope(self)


class TextScope(InputScope):
    """A scope printing metric lines, either at once or on flush when buffered."""

    def __init__(self, stream: Stream) -> None:
        super().__init__(stream.attributes)
        self._stream = stream
        self._entries: list[bytes] = []
        self._lock = threading.Lock()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        full_name = self.prefix_append(name)
        template = self._stream._format.template(full_name, kind)
        metric_id = MetricId("stream", full_name)

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

        sink = self._stream._sink

        def write_now(value: int, labels) -> None:
            try:
                sink.write_entries([render(value, labels)])
            except (OSError, ValueError) as err:
                log.debug("Could not write text metrics: %s", err)

        return InputMetric(metric_id, write_now)

    def flush(self) -> None:
        """Write out any buffered lines."""
        super().flush()
        with self._lock:
            entries = self._entries.copy()
            self._entries.clear()
        if entries:
            self._stream._sink.write_entries(entries)

    def __del__(self) -> None:
        if getattr(self, "_entries", None):
            try:
                self.flush()
            except Exception as err:
                log.warning("Could not flush text metrics on collection. %s", err)