import socket
import time

import pytest

from dipgauge.graphite import MAX_UDP_PAYLOAD, Graphite, GraphiteUdp
from dipgauge.name import MetricName
from dipgauge.stats import InputKind


@pytest.fixture
def server():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(5)
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def receiver():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


def _connected_graphite(server):
    graphite = Graphite.send_to(server.getsockname())
    time.sleep(0.1)
    return graphite


def _read_lines(conn, count):
    conn.settimeout(2.0)
    data = b""
    while data.count(b"\n") < count:
        chunk = conn.recv(4096)
        if not chunk:
            break
        data += chunk
    return data.decode().splitlines()


def test_tcp_unbuffered_sends_line(server):
    scope = _connected_graphite(server).metrics()
    before = int(time.time())
    scope.new_metric("test", InputKind.MARKER).write(33)
    after = int(time.time())
    conn, _ = server.accept()
    with conn:
        (line,) = _read_lines(conn, 1)
    name, value, stamp = line.split(" ")
    assert (name, value) == ("test", "33")
    assert before <= int(stamp) <= after


def test_tcp_timer_scaled(server):
    scope = _connected_graphite(server).metrics()
    scope.new_metric("timer", InputKind.TIMER).write(5000)
    conn, _ = server.accept()
    with conn:
        (line,) = _read_lines(conn, 1)
    assert line.split(" ")[:2] == ["timer", "5"]


def test_tcp_named_prefix(server):
    scope = _connected_graphite(server).named("app").metrics()
    metric = scope.new_metric("test", InputKind.COUNTER)
    metric.write(4)
    conn, _ = server.accept()
    with conn:
        (line,) = _read_lines(conn, 1)
    assert line.split(" ")[:2] == ["app.test", "4"]
    assert metric.metric_id.output == "graphite"
    assert metric.metric_id.name == MetricName("test")


def test_tcp_buffered_sends_on_flush(server):
    scope = _connected_graphite(server).buffered(True).metrics()
    scope.new_metric("a", InputKind.COUNTER).write(1)
    scope.new_metric("b", InputKind.COUNTER).write(2)
    scope.flush()
    conn, _ = server.accept()
    with conn:
        lines = _read_lines(conn, 2)
    assert [line.split(" ")[:2] for line in lines] == [["a", "1"], ["b", "2"]]


def test_tcp_flush_to_closed_port_raises():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    address = probe.getsockname()
    probe.close()
    graphite = Graphite.send_to(address)
    time.sleep(0.1)
    scope = graphite.buffered(True).metrics()
    scope.new_metric("lost", InputKind.COUNTER).write(1)
    with pytest.raises(OSError):
        scope.flush()


def test_udp_unbuffered_sends_datagram(receiver):
    scope = GraphiteUdp.send_to(receiver.getsockname()).metrics()
    before = int(time.time())
    scope.new_metric("test", InputKind.GAUGE).write(33)
    after = int(time.time())
    data = receiver.recv(4096)
    name, value, stamp = data.decode().rstrip("\n").split(" ")
    assert (name, value) == ("test", "33")
    assert before <= int(stamp) <= after


def test_udp_string_address(receiver):
    host, port = receiver.getsockname()
    scope = GraphiteUdp.send_to(f"{host}:{port}").metrics()
    metric = scope.new_metric("s", InputKind.COUNTER)
    assert metric.metric_id.output == "graphite"
    assert metric.metric_id.name == MetricName("s")
    metric.write(8)
    assert receiver.recv(4096).startswith(b"s 8 ")


def test_udp_bad_address_rejected():
    with pytest.raises(ValueError):
        GraphiteUdp.send_to("nohostport")


def test_udp_buffered_batches_until_flush(receiver):
    scope = GraphiteUdp.send_to(receiver.getsockname()).buffered(True).metrics()
    scope.new_metric("a", InputKind.COUNTER).write(1)
    scope.new_metric("b", InputKind.COUNTER).write(2)
    receiver.settimeout(0.2)
    with pytest.raises(TimeoutError):
        receiver.recv(4096)
    scope.flush()
    receiver.settimeout(2.0)
    lines = receiver.recv(4096).decode().splitlines()
    assert [line.split(" ")[:2] for line in lines] == [["a", "1"], ["b", "2"]]


def test_udp_oversize_entry_dropped(receiver):
    scope = GraphiteUdp.send_to(receiver.getsockname()).metrics()
    scope.new_metric("x" * 600, InputKind.COUNTER).write(1)
    scope.new_metric("ok", InputKind.COUNTER).write(2)
    assert receiver.recv(4096).startswith(b"ok 2 ")


def test_udp_overflow_splits_datagrams(receiver):
    scope = GraphiteUdp.send_to(receiver.getsockname()).buffered(True).metrics()
    metric = scope.new_metric("m" * 100, InputKind.COUNTER)
    for value in range(6):
        metric.write(value)
    first = receiver.recv(4096)
    scope.flush()
    second = receiver.recv(4096)
    assert len(first) <= MAX_UDP_PAYLOAD
    assert len(second) <= MAX_UDP_PAYLOAD
    values = [line.split(" ")[1] for line in (first + second).decode().splitlines()]
    assert values == [str(v) for v in range(6)]


def test_udp_context_exit_flushes(receiver):
    with GraphiteUdp.send_to(receiver.getsockname()).buffered(True).metrics() as scope:
        scope.new_metric("ctx", InputKind.COUNTER).write(3)
    assert receiver.recv(4096).startswith(b"ctx 3 ")