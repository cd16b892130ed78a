"""Line templates describing how metric values are printed."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import BinaryIO, Union

from .name import MetricName
from .stats import InputKind


def _as_bytes(text: bytes | str) -> bytes:
    return text.encode("utf-8") if isinstance(text, str) else bytes(text)


def _format_float(value: float) -> str:
    """Format a float in plain positional notation, without a trailing ``.0``."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@dataclass(frozen=True)
class LabelLiteral:
    """Print fixed text inside a label block."""

    text: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _as_bytes(self.text))


@dataclass(frozen=True)
class LabelKey:
    """Print the label key."""


@dataclass(frozen=True)
class LabelValue:
    """Print the label value."""


LabelOp = Union[LabelLiteral, LabelKey, LabelValue]


@dataclass(frozen=True)
class Literal:
    """Print fixed text."""

    text: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _as_bytes(self.text))


@dataclass(frozen=True)
class LabelExists:
    """If the label ``key`` has a value, run the label ops."""

    key: str
    ops: tuple

    def __post_init__(self) -> None:
        object.__setattr__(self, "ops", tuple(self.ops))


@dataclass(frozen=True)
class ValueAsText:
    """Print the metric value."""


@dataclass(frozen=True)
class ScaledValueAsText:
    """Print the metric value divided by ``scale``."""

    scale: float


@dataclass(frozen=True)
class NewLine:
    """Print a newline."""


LineOp = Union[Literal, LabelExists, ValueAsText, ScaledValueAsText, NewLine]


class LineTemplate:
    """A sequence of print operations that renders one metric value."""

    def __init__(self, ops: Sequence[LineOp]) -> None:
        self.ops = tuple(ops)

    def print(
        self,
        output: BinaryIO,
        value: int,
        lookup: Callable[[str], str | None],
    ) -> None:
        """Write ``value`` to ``output`` following the template."""
        for op in self.ops:
            match op:
                case Literal(text=text):
                    output.write(text)
                case ValueAsText():
                    output.write(str(value).encode("utf-8"))
                case ScaledValueAsText(scale=scale):
                    output.write(_format_float(value / scale).encode("utf-8"))
                case NewLine():
                    output.write(b"\n")
                case LabelExists(key=key, ops=label_ops):
                    label_value = lookup(key)
                    if label_value is None:
                        continue
                    for label_op in label_ops:
                        match label_op:
                            case LabelValue():
                                output.write(label_value.encode("utf-8"))
                            case LabelKey():
                                output.write(key.encode("utf-8"))
                            case LabelLiteral(text=text):
                                output.write(text)
                            case _:
                                raise TypeError(f"unknown label op {label_op!r}")
                case _:
                    raise TypeError(f"unknown line op {op!r}")


class LineFormat(ABC):
    """Builds per-metric print templates."""

    @abstractmethod
    def template(self, name: MetricName, kind: InputKind) -> LineTemplate:
        """Prepare a template for printing values of the named metric."""


class SimpleFormat(LineFormat):
    """Prints ``dotted.name value`` lines."""

    def template(self, name: MetricName, kind: InputKind) -> LineTemplate:
        header = name.join(".") + " "
        return LineTemplate([Literal(header), ValueAsText(), NewLine()])