"""Proxied metrics: define metrics first, choose where they go later."""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Iterable, Iterator

from .name import NameParts
from .stats import InputKind
from .void import NO_METRIC_SCOPE, Attributes, InputMetric, InputScope, MetricId

log = logging.getLogger(__name__)


class _ProxyMetric:
    """A proxied metric and the concrete metric it currently forwards to.

    ``target`` pairs the concrete metric with the length of the namespace
    whose target produced it (0 when nothing is targeted).
    """

    __slots__ = ("name", "kind", "target", "__weakref__")

    def __init__(self, name: NameParts, kind: InputKind, target: tuple[InputMetric, int]) -> None:
        self.name = name
        self.kind = kind
        self.target = target

    def write(self, value: int, labels) -> None:
        self.target[0].write(value, labels)


class _Inner:
    """State shared by a proxy tree: namespace targets and live proxied metrics."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.targets: dict[NameParts, InputScope] = {}
        self.metrics: dict[NameParts, weakref.ref] = {}

    def _affected(self, namespace: NameParts) -> Iterator[_ProxyMetric]:
        for key in sorted(key for key in self.metrics if key >= namespace):
            if not key.is_within(namespace):
                break
            ref = self.metrics.get(key)
            metric = ref() if ref is not None else None
            if metric is not None:
                yield metric

    def set_target(self, namespace: NameParts, scope: InputScope) -> None:
        self.targets[namespace] = scope
        depth = len(namespace)
        for metric in self._affected(namespace):
            # metrics targeted by a more specific namespace keep their target
            if metric.target[1] > depth:
                continue
            metric.target = (scope.new_metric(metric.name.short(), metric.kind), depth)

    def effective_target(self, namespace: NameParts) -> tuple[InputScope, int] | None:
        for depth in range(len(namespace), -1, -1):
            scope = self.targets.get(namespace[:depth])
            if scope is not None:
                return scope, depth
        return None

    def unset_target(self, namespace: NameParts) -> None:
        if self.targets.pop(namespace, None) is None:
            return
        up_scope, up_depth = self.effective_target(namespace) or (NO_METRIC_SCOPE, 0)
        depth = len(namespace)
        for metric in self._affected(namespace):
            if metric.target[1] > depth:
                continue
            metric.target = (up_scope.new_metric(metric.name.short(), metric.kind), up_depth)

    def forget(self, key: NameParts, ref: weakref.ref) -> None:
        with self.lock:
            if self.metrics.get(key) is ref:
                del self.metrics[key]


class Proxy(InputScope):
    """A scope whose metrics forward to a target that can be set or replaced at any time.

    Copies made with ``named`` share the same tree of targets and metrics.
    A target set on a namespace applies to every metric within it, unless a
    more specific namespace has a target of its own.
    """

    def __init__(self, name: str | Iterable[str] | None = None) -> None:
        attributes = Attributes(prefixes=NameParts(name)) if name is not None else Attributes()
        super().__init__(attributes)
        self._inner = _Inner()

    def __repr__(self) -> str:
        return f"Proxy({self.attributes.prefixes.join('.') if self.attributes.prefixes else ''!r})"

    def target(self, target: InputScope) -> None:
        """Send this proxy's metrics, and those of its sub-namespaces, to ``target``."""
        with self._inner.lock:
            self._inner.set_target(self.attributes.prefixes, target)

    def unset_target(self) -> None:
        """Remove this proxy's target; its metrics fall back to the nearest enclosing one."""
        with self._inner.lock:
            self._inner.unset_target(self.attributes.prefixes)

    @classmethod
    def default_target(cls, target: InputScope) -> None:
        """Install a target for the shared root proxy."""
        ROOT_PROXY.target(target)

    def unset_default_target(self) -> None:
        """Remove any target installed on the shared root proxy."""
        ROOT_PROXY.unset_target()

    def new_metric(self, name: str | Iterable[str], kind: InputKind) -> InputMetric:
        """Look up or create the proxied metric for ``name``."""
        full_name = self.prefix_append(name)
        key = NameParts(full_name)
        inner = self._inner
        with inner.lock:
            ref = inner.metrics.get(key)
            metric = ref() if ref is not None else None
            if metric is None:
                scope, depth = inner.effective_target(key) or (NO_METRIC_SCOPE, 0)
                metric = _ProxyMetric(key, kind, (scope.new_metric(key.short(), kind), depth))
                inner.metrics[key] = weakref.ref(
                    metric, lambda dead, key=key: inner.forget(key, dead)
                )
        return InputMetric(MetricId("proxy", full_name), metric.write)

    def flush(self) -> None:
        """Notify flush listeners and flush the effective target, if any."""
        super().flush()
        with self._inner.lock:
            found = self._inner.effective_target(self.attributes.prefixes)
        if found is not None:
            found[0].flush()


ROOT_PROXY = Proxy()
"""The shared root proxy; libraries define metrics under it, applications target it."""