import io

import pytest

from dipgauge.format import (
    LabelExists,
    LabelKey,
    LabelLiteral,
    LabelValue,
    LineFormat,
    LineTemplate,
    Literal,
    NewLine,
    ValueAsText,
)
from dipgauge.stats import InputKind
from dipgauge.stream import Stream


class LabelFormat(LineFormat):
    def template(self, name, kind):
        return LineTemplate(
            [
                Literal(name.join("/") + " "),
                ValueAsText(),
                LabelExists("host", [LabelLiteral(" "), LabelKey(), LabelLiteral("="), LabelValue()]),
                NewLine(),
            ]
        )


def test_unbuffered_writes_immediately():
    out = io.BytesIO()
    scope = Stream.write_to(out).metrics()
    metric = scope.new_metric("test", InputKind.MARKER)
    metric.write(33)
    assert out.getvalue() == b"test 33\n"
    assert metric.metric_id.output == "stream"


def test_buffered_waits_for_flush():
    out = io.BytesIO()
    scope = Stream.write_to(out).buffered(True).metrics()
    scope.new_metric("a", InputKind.COUNTER).write(1)
    scope.new_metric("b", InputKind.GAUGE).write(2)
    assert out.getvalue() == b""
    scope.flush()
    assert out.getvalue() == b"a 1\nb 2\n"
    scope.flush()
    assert out.getvalue() == b"a 1\nb 2\n"


def test_named_prefix():
    out = io.BytesIO()
    scope = Stream.write_to(out).named("app").metrics()
    scope.new_metric("test", InputKind.TIMER).write(5)
    assert out.getvalue() == b"app.test 5\n"


def test_formatting_with_labels():
    out = io.BytesIO()
    stream = Stream.write_to(out)
    scope = stream.formatting(LabelFormat()).metrics()
    metric = scope.new_metric("req", InputKind.COUNTER)
    metric.write(7, {"host": "web"})
    metric.write(8)
    assert out.getvalue() == b"req 7 host=web\nreq 8\n"
    stream.metrics().new_metric("req", InputKind.COUNTER).write(9)
    assert out.getvalue().endswith(b"req 9\n")


def test_text_writer():
    out = io.StringIO()
    Stream.write_to(out).metrics().new_metric("t", InputKind.LEVEL).write(-3)
    assert out.getvalue() == "t -3\n"


def test_write_to_file_appends(tmp_path):
    path = tmp_path / "metrics.txt"
    Stream.write_to_file(path).metrics().new_metric("x", InputKind.COUNTER).write(1)
    Stream.write_to_file(path).metrics().new_metric("y", InputKind.COUNTER).write(2)
    assert path.read_bytes() == b"x 1\ny 2\n"


def test_write_to_new_file_refuses_existing(tmp_path):
    path = tmp_path / "exists.txt"
    path.write_bytes(b"old")
    with pytest.raises(FileExistsError):
        Stream.write_to_new_file(path, False)


def test_write_to_new_file_clobber_overwrites_from_start(tmp_path):
    path = tmp_path / "exists.txt"
    original = b"abcdefghijklmnop"
    path.write_bytes(original)
    Stream.write_to_new_file(path, True).metrics().new_metric("x", InputKind.COUNTER).write(1)
    content = path.read_bytes()
    assert content.startswith(b"x 1\n")
    assert len(content) == len(original)
    assert content[4:] == original[4:]


def test_write_to_new_file_creates(tmp_path):
    path = tmp_path / "fresh.txt"
    Stream.write_to_new_file(path, False).metrics().new_metric("z", InputKind.MARKER).write(4)
    assert path.read_bytes() == b"z 4\n"


def test_stdout_and_stderr(capsys):
    Stream.write_to_stdout().metrics().new_metric("out", InputKind.MARKER).write(1)
    Stream.write_to_stderr().metrics().new_metric("err", InputKind.MARKER).write(2)
    captured = capsys.readouterr()
    assert captured.out == "out 1\n"
    assert captured.err == "err 2\n"


def test_flush_notifies_listeners():
    calls = []
    scope = Stream.write_to(io.BytesIO()).metrics()
    scope.on_flush(lambda: calls.append("flushed"))
    scope.flush()
    assert calls == ["flushed"]


def test_context_manager_flushes():
    out = io.BytesIO()
    with Stream.write_to(out).buffered(True).metrics() as scope:
        scope.new_metric("m", InputKind.COUNTER).write(3)
        assert out.getvalue() == b""
    assert out.getvalue() == b"m 3\n"


def test_unbuffered_write_to_closed_writer_is_swallowed():
    out = io.BytesIO()
    metric = Stream.write_to(out).metrics().new_metric("m", InputKind.COUNTER)
    out.close()
    metric.write(1)
    assert out.closed