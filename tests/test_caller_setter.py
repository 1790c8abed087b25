from __future__ import annotations

from dataclasses import dataclass

import pytest

from swapdi.caller import call_by_name, call_provider, call_provider_by_name, call_wither_by_name
from swapdi.errors import CallError, FieldError, ProviderError
from swapdi.setter import set_field


class Counter:
    value: int

    def __init__(self) -> None:
        self.value = 0

    def add(self, n: int) -> None:
        self.value += n

    def with_value(self, n: int) -> Counter:
        c = Counter()
        c.value = n
        return c

    def fail(self) -> None:
        raise ValueError("nope")


@dataclass
class Point:
    x: int = 0
    y: int = 0


@dataclass(frozen=True)
class FrozenPoint:
    x: int = 0


class Slotted:
    __slots__ = ("name",)


def test_call_provider():
    assert call_provider(lambda a, b: a + b, [1, 2]) == 3
    assert call_provider(list) == []


def test_call_provider_wraps_exceptions():
    def broken() -> None:
        raise KeyError("missing")

    with pytest.raises(ProviderError) as exc_info:
        call_provider(broken)

    assert str(exc_info.value) == "provider returned error: 'missing'"
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_call_provider_rejects_bad_arguments():
    with pytest.raises(CallError, match="too many positional arguments"):
        call_provider(lambda: None, [1])
    with pytest.raises(CallError, match="must be callable"):
        call_provider(42)


def test_call_by_name():
    counter = Counter()
    call_by_name(counter, "add", [5])

    assert counter.value == 5


def test_call_by_name_errors():
    with pytest.raises(CallError, match=r'cannot call method \(Counter\)\."missing": invalid func'):
        call_by_name(Counter(), "missing")
    with pytest.raises(CallError, match=r'cannot call method \(Counter\)\."value": invalid func'):
        call_by_name(Counter(), "value")
    with pytest.raises(ProviderError, match="method returned error: nope"):
        call_by_name(Counter(), "fail")


def test_call_wither_by_name():
    counter = Counter()
    result = call_wither_by_name(counter, "with_value", [7])

    assert result is not counter
    assert result.value == 7
    assert counter.value == 0


def test_call_wither_must_return_receiver_type():
    with pytest.raises(CallError, match=r'wither \(Counter\)\."add" must return Counter, NoneType given'):
        call_wither_by_name(Counter(), "add", [1])


def test_call_provider_by_name():
    assert call_provider_by_name(Counter().with_value(3), "with_value", [4]).value == 4
    with pytest.raises(CallError, match=r'cannot call provider \(Counter\)\."nope": invalid func'):
        call_provider_by_name(Counter(), "nope")


def test_set_field_on_object():
    counter = Counter()

    assert set_field(counter, "value", 3) is counter
    assert counter.value == 3


def test_set_field_on_dataclasses():
    point = Point()
    assert set_field(point, "x", 1) is point
    assert point == Point(x=1)

    frozen = FrozenPoint()
    updated = set_field(frozen, "x", 2)
    assert updated == FrozenPoint(x=2)
    assert frozen == FrozenPoint()


def test_set_field_on_mapping():
    data: dict[str, int] = {}

    assert set_field(data, "x", 1) == {"x": 1}


def test_set_field_errors():
    with pytest.raises(FieldError, match=r'set \(Point\)\."z": field "z" does not exist'):
        set_field(Point(), "z", 1)
    with pytest.raises(FieldError, match=r'set \(Counter\)\."other": field "other" does not exist'):
        set_field(Counter(), "other", 1)
    with pytest.raises(FieldError, match=r'"_" is not supported'):
        set_field(Counter(), "_", 1)


def test_set_field_on_slots():
    obj = Slotted()
    set_field(obj, "name", "x")

    assert obj.name == "x"
