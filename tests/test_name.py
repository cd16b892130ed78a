import pytest

from dipgauge.name import MetricName, NameParts


def test_string_deque_within_same():
    sd1 = NameParts(["b", "c"])
    assert sd1.is_within(sd1) is True


def test_string_deque_within_other():
    sd1 = NameParts(["a", "b"])
    sd2 = NameParts(["a", "b", "c"])
    assert sd2.is_within(sd1) is True
    assert sd1.is_within(sd2) is False


def test_within_different_branch():
    assert NameParts(["a", "d", "c"]).is_within(NameParts(["a", "b"])) is False


def test_everything_is_within_empty():
    assert NameParts(["x"]).is_within(NameParts()) is True


def test_single_string_is_one_part():
    assert tuple(NameParts("abc")) == ("abc",)


def test_empty_string_rejected():
    with pytest.raises(ValueError):
        NameParts("")


def test_non_string_part_rejected():
    with pytest.raises(TypeError):
        NameParts([1, 2])


def test_empty_metric_name_rejected():
    with pytest.raises(ValueError):
        MetricName(())


def test_make_name_adds_leaf():
    name = NameParts(["a", "b"]).make_name("leaf")
    assert isinstance(name, MetricName)
    assert tuple(name) == ("a", "b", "leaf")


def test_short_is_last_part():
    assert NameParts(["a", "b", "c"]).short() == MetricName("c")


def test_short_of_empty_raises():
    with pytest.raises(IndexError):
        NameParts().short()


def test_prepend_puts_namespace_first():
    name = MetricName("abc").prepend("xyz")
    assert tuple(name) == ("xyz", "abc")
    name = name.prepend(NameParts(["p", "q"]))
    assert tuple(name) == ("p", "q", "xyz", "abc")


def test_append_inserts_before_leaf():
    name = MetricName(["ns", "leaf"]).append(NameParts(["x", "y"]))
    assert tuple(name) == ("ns", "x", "y", "leaf")


def test_append_empty_namespace_is_identity():
    name = MetricName(["ns", "leaf"])
    assert name.append(NameParts()) == name


def test_join_uses_separator():
    name = MetricName(["xyz", "abc"])
    assert name.join("_") == "_".join(["xyz", "abc"])
    assert name.join(".").split(".") == ["xyz", "abc"]


def test_names_are_hashable_and_ordered():
    names = [NameParts(["b"]), NameParts(["a", "z"]), NameParts(["a"])]
    assert sorted(names) == [NameParts(["a"]), NameParts(["a", "z"]), NameParts(["b"])]
    assert {NameParts(["a"]): 1}[MetricName("a")] == 1