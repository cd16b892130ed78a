import pytest

from dipgauge.name import MetricName, NameParts
from dipgauge.stats import InputKind
from dipgauge.void import (
    InputMetric,
    InputScope,
    MetricId,
    Void,
    VoidScope,
)


class RecordingScope(InputScope):
    def __init__(self):
        super().__init__()
        self.values = []

    def new_metric(self, name, kind):
        full = self.prefix_append(name)

        def write(value, labels):
            self.values.append((full, value, dict(labels)))

        return InputMetric(MetricId("rec", full), write)


def test_to_void():
    scope = Void().metrics()
    metric = scope.new_metric("test", InputKind.MARKER)
    assert metric.metric_id == MetricId("void", MetricName("test"))
    assert metric.write(33, {}) is None


def test_void_metrics_defines_void_metrics():
    scope = Void().metrics()
    metric = scope.new_metric(["a", "b"], InputKind.COUNTER)
    assert str(metric.metric_id) == "void:a.b"
    assert metric.metric_id.name == MetricName(["a", "b"])


def test_metric_id_str():
    assert str(MetricId("map", MetricName(["a", "b"]))) == "map:a.b"


def test_write_without_labels_passes_empty_mapping():
    scope = RecordingScope()
    scope.new_metric("m", InputKind.COUNTER).write(5)
    assert scope.values == [(MetricName("m"), 5, {})]


def test_named_replaces_prefix():
    scope = VoidScope().named("first").named("second")
    assert scope.attributes.prefixes == NameParts("second")


def test_named_does_not_modify_original():
    original = VoidScope()
    original.named("x")
    assert original.attributes.prefixes == NameParts()


def test_prefix_append_inserts_before_leaf():
    scope = VoidScope().named(["app", "db"])
    assert tuple(scope.prefix_append(["ns", "leaf"])) == ("ns", "app", "db", "leaf")


def test_prefix_prepend_goes_first():
    scope = VoidScope().named(["app", "db"])
    assert tuple(scope.prefix_prepend(["ns", "leaf"])) == ("app", "db", "ns", "leaf")


def test_buffering():
    scope = VoidScope()
    assert scope.is_buffered() is False
    assert scope.buffered(True).is_buffered() is True
    assert scope.buffered(1024).is_buffered() is True
    assert scope.buffered(False).is_buffered() is False


def test_negative_buffer_rejected():
    with pytest.raises(ValueError):
        VoidScope().buffered(-1)


def test_sampling():
    scope = VoidScope().sampled(0.5)
    assert scope.attributes.sampling == 0.5
    with pytest.raises(ValueError):
        scope.sampled(2.0)


def test_flush_notifies_listeners():
    scope = RecordingScope()
    calls = []
    InputScope.on_flush(scope, lambda: calls.append("flushed"))
    InputScope.flush(scope)
    InputScope.flush(scope)
    assert calls == ["flushed", "flushed"]


def test_context_manager_flushes_on_exit():
    scope = RecordingScope()
    calls = []
    InputScope.on_flush(scope, lambda: calls.append(1))
    entered = InputScope.__enter__(scope)
    assert entered is scope
    assert calls == []
    InputScope.__exit__(scope, None, None, None)
    assert calls == [1]