"""Standard aggregated statistic types and export strategies."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from .name import MetricName


class InputKind(Enum):
    """The kinds of metric that can be defined."""

    MARKER = "Marker"
    COUNTER = "Counter"
    GAUGE = "Gauge"
    LEVEL = "Level"
    TIMER = "Timer"


class ScoreType(Enum):
    """The kinds of aggregated score."""

    COUNT = "count"
    SUM = "sum"
    MAX = "max"
    MIN = "min"
    MEAN = "mean"
    RATE = "rate"


@dataclass(frozen=True)
class Score:
    """An aggregated score: integral for counts, sums and extremes, float for mean and rate."""

    score_type: ScoreType
    value: int | float


Stat = tuple[InputKind, MetricName, int]


def _round(value: float) -> int:
    """Round half away from zero."""
    whole = math.trunc(value)
    if abs(value - whole) >= 0.5:
        whole += 1 if value > 0 else -1
    return int(whole)


def stats_all(kind: InputKind, name: MetricName, score: Score) -> Stat | None:
    """Report every score, naming each by suffixing the metric's name."""
    score_type, value = score.score_type, score.value
    if score_type is ScoreType.COUNT:
        return InputKind.COUNTER, name.make_name("count"), int(value)
    if score_type is ScoreType.SUM:
        return kind, name.make_name("sum"), int(value)
    if score_type is ScoreType.MEAN:
        return kind, name.make_name("mean"), _round(value)
    if score_type is ScoreType.MAX:
        return InputKind.GAUGE, name.make_name("max"), int(value)
    if score_type is ScoreType.MIN:
        return InputKind.GAUGE, name.make_name("min"), int(value)
    return InputKind.GAUGE, name.make_name("rate"), _round(value)


def stats_average(kind: InputKind, name: MetricName, score: Score) -> Stat | None:
    """Report the mean of non-marker metrics and the hit count of markers."""
    if kind is InputKind.MARKER:
        if score.score_type is ScoreType.COUNT:
            return InputKind.COUNTER, name, int(score.value)
        return None
    if score.score_type is ScoreType.MEAN:
        return InputKind.GAUGE, name, _round(score.value)
    return None


def stats_summary(kind: InputKind, name: MetricName, score: Score) -> Stat | None:
    """Report one stat per metric: sums for counters and timers, counts for
    markers and means for gauges and levels."""
    score_type = score.score_type
    if kind is InputKind.MARKER:
        if score_type is ScoreType.COUNT:
            return InputKind.COUNTER, name, int(score.value)
        return None
    if kind in (InputKind.COUNTER, InputKind.TIMER):
        if score_type is ScoreType.SUM:
            return kind, name, int(score.value)
        return None
    if score_type is ScoreType.MEAN:
        return InputKind.GAUGE, name, _round(score.value)
    return None