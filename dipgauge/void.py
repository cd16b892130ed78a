"""Core metric abstractions and the output that discards everything."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace

from .name import MetricName, NameParts
from .stats import InputKind

Labels = Mapping[str, str]
Writer = Callable[[int, Labels], None]


@dataclass(frozen=True)
class MetricId:
    """Identifies a metric by the output that defined it and its full name."""

    output: str
    name: MetricName

    def __str__(self) -> str:
        return f"{self.output}:{self.name.join('.')}"


class InputMetric:
    """A defined metric; writing a value hands it to the output."""

    __slots__ = ("metric_id", "_writer")

    def __init__(self, metric_id: MetricId, writer: Writer) -> None:
        self.metric_id = metric_id
        self._writer = writer

    def __repr__(self) -> str:
        return f"InputMetric({self.metric_id})"

    def write(self, value: int, labels: Labels | None = None) -> None:
        """Record a value with optional labels."""
        self._writer(value, {} if labels is None else labels)


@dataclass(frozen=True, eq=False)
class Attributes:
    """Settings shared by inputs and scopes: naming, buffering, sampling and flush listeners."""

    prefixes: NameParts = NameParts()
    buffering: bool | int = False
    sampling: float | None = None
    flush_listeners: list = field(default_factory=list)


class WithAttributes:
    """Builder-style configuration; each setter returns a modified copy."""

    def __init__(self, attributes: Attributes | None = None) -> None:
        self.attributes = attributes if attributes is not None else Attributes()

    def _with(self, **changes):
        clone = copy.copy(self)
        clone.attributes = replace(self.attributes, **changes)
        return clone

    def named(self, name: str | Iterable[str]):
        """Return a copy whose metric names are prefixed by ``name`` alone."""
        return self._with(prefixes=NameParts(name))

    def prefix_append(self, name: str | Iterable[str]) -> MetricName:
        """Insert the configured prefixes just before the name's leaf."""
        return MetricName(name).append(self.attributes.prefixes)

    def prefix_prepend(self, name: str | Iterable[str]) -> MetricName:
        """Put the configured prefixes in front of the name."""
        return MetricName(name).prepend(self.attributes.prefixes)

    def buffered(self, buffering: bool | int):
        """Return a copy with buffering set: False or 0 for none, True for
        unlimited, a positive integer for a buffer size."""
        if isinstance(buffering, bool):
            setting = buffering
        elif isinstance(buffering, int):
            if buffering < 0:
                raise ValueError("buffer size must not be negative")
            setting = buffering
        else:
            raise TypeError("buffering must be a bool or an int")
        return self._with(buffering=setting)

    def is_buffered(self) -> bool:
        """True if writes should be held until flush."""
        return bool(self.attributes.buffering)

    def sampled(self, rate: float):
        """Return a copy that keeps only a random fraction ``rate`` of values."""
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"sampling rate must be between 0.0 and 1.0, got {rate}")
        return self._with(sampling=float(rate))

    def on_flush(self, listener: Callable[[], None]) -> None:
        """Register a callable run whenever a flush is requested."""
        self.attributes.flush_listeners.append(listener)

    def _notify_flush_listeners(self) -> None:
        for listener in list(self.attributes.flush_listeners):
            listener()


class InputScope(WithAttributes, ABC):
    """A place where metrics are defined and values are written."""

    @abstractmethod
    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        """Define a metric of the given kind."""

    def named(self, name: str | Iterable[str]):
        """Return a copy of this scope whose metric names are prefixed by ``name``."""
        return super().named(name)

    def prefix_append(self, name: str | Iterable[str]) -> MetricName:
        """Insert this scope's prefixes just before the name's leaf."""
        return super().prefix_append(name)

    def prefix_prepend(self, name: str | Iterable[str]) -> MetricName:
        """Put this scope's prefixes in front of the name."""
        return super().prefix_prepend(name)

    def buffered(self, buffering: bool | int):
        """Return a copy of this scope with the given buffering."""
        return super().buffered(buffering)

    def is_buffered(self) -> bool:
        """True if this scope holds writes until flush."""
        return super().is_buffered()

    def sampled(self, rate: float):
        """Return a copy of this scope keeping a random fraction ``rate`` of values."""
        return super().sampled(rate)

    def on_flush(self, listener: Callable[[], None]) -> None:
        """Register a callable run whenever this scope is flushed."""
        super().on_flush(listener)

    def flush(self) -> None:
        """Send any buffered values; notifies flush listeners."""
        self._notify_flush_listeners()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.flush()


class VoidScope(InputScope):
    """A scope whose metrics discard every value."""

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        return InputMetric(MetricId("void", MetricName(name)), lambda value, labels: None)

    def flush(self) -> None:
        return None


class Void:
    """An input that discards all metrics."""

    def metrics(self) -> VoidScope:
        """Open a new discarding scope."""
        return VoidScope()


VOID_INPUT = Void()
NO_METRIC_SCOPE = VOID_INPUT.metrics()