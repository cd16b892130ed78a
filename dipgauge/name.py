"""Metric names and the namespaces they are defined in."""

from __future__ import annotations

from collections.abc import Iterable


class NameParts(tuple):
    """An immutable sequence of strings forming a metric name or part of one.

    Parts are stored in the order they appear in the final name.
    A single string becomes a one-part name; an empty string is rejected.
    """

    __slots__ = ()

    def __new__(cls, parts: str | Iterable[str] = ()):
        if isinstance(parts, str):
            if not parts:
                raise ValueError("name parts must not be empty")
            parts = (parts,)
        items = tuple(parts)
        for item in items:
            if not isinstance(item, str):
                raise TypeError(f"name parts must be strings, not {type(item).__name__}")
        return super().__new__(cls, items)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"

    def is_within(self, other: NameParts) -> bool:
        """True if this name equals ``other`` or is more specific than it.

        ``a.b.c`` is within ``a.b``; ``a.d.c`` is not.
        """
        if len(self) < len(other):
            return False
        return self[: len(other)] == tuple(other)

    def make_name(self, leaf: str) -> MetricName:
        """Make a metric name in this namespace."""
        return MetricName((*self, leaf))

    def short(self) -> MetricName:
        """Return the last part alone as a metric name."""
        if not self:
            raise IndexError("an empty name has no last part")
        return MetricName(self[-1])


class MetricName(NameParts):
    """The full name of a metric, including any namespaces it was defined in."""

    __slots__ = ()

    def __new__(cls, parts: str | Iterable[str] = ()):
        instance = super().__new__(cls, parts)
        if not instance:
            raise ValueError("a metric name needs at least one part")
        return instance

    def prepend(self, namespace: str | Iterable[str]) -> MetricName:
        """Return a copy with ``namespace`` placed before all existing parts."""
        return MetricName((*NameParts(namespace), *self))

    def append(self, namespace: str | Iterable[str]) -> MetricName:
        """Return a copy with ``namespace`` inserted just before the leaf name."""
        return MetricName((*self[:-1], *NameParts(namespace), self[-1]))

    def join(self, separator: str) -> str:
        """Combine the name parts into one string."""
        return separator.join(self)