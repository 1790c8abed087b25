from __future__ import annotations

import pytest

from swapdi import Scope, Service, dependency
from swapdi.dependency import DependencyKind, split_refs
from swapdi.service import ServiceCall, ServiceField


def test_creation_methods_reset_each_other():
    svc = Service().set_value(1)
    assert svc.has_creation_method
    assert svc.value == 1

    svc.set_constructor(dict, dependency.value(()))
    assert svc.value is None
    assert svc.constructor is dict

    svc.set_factory("factory", "create")
    assert svc.constructor is None
    assert svc.constructor_deps == ()
    assert (svc.factory_service_id, svc.factory_method) == ("factory", "create")

    svc.set_value(2)
    assert svc.factory_method == ""
    assert svc.value == 2


def test_new_service_has_no_creation_method():
    assert not Service().has_creation_method


def test_set_constructor_rejects_non_callable():
    with pytest.raises(TypeError):
        Service().set_constructor("not callable")  # type: ignore[arg-type]


def test_set_factory_requires_id_and_method():
    with pytest.raises(ValueError):
        Service().set_factory("", "create")
    with pytest.raises(ValueError):
        Service().set_factory("factory", "")


def test_set_field_twice_keeps_position():
    svc = Service().set_value(None)
    svc.set_field("a", dependency.value(1))
    svc.set_field("b", dependency.value(2))
    svc.set_field("a", dependency.value(3))

    assert svc.fields == [
        ServiceField("a", dependency.value(3)),
        ServiceField("b", dependency.value(2)),
    ]


def test_set_fields_registers_in_sorted_order():
    svc = Service().set_value(None).set_fields(
        {"c": dependency.value(3), "a": dependency.value(1), "b": dependency.value(2)}
    )

    assert [f.name for f in svc.fields] == ["a", "b", "c"]


def test_calls_and_withers_keep_registration_order():
    svc = (
        Service()
        .set_value(None)
        .append_call("set_a", dependency.value(1))
        .append_wither("with_b")
        .append_call("set_c")
    )

    assert svc.calls == [
        ServiceCall("set_a", (dependency.value(1),)),
        ServiceCall("with_b", (), wither=True),
        ServiceCall("set_c", ()),
    ]


def test_tags_and_priorities():
    svc = Service().set_value(None).tag("a").tag("b", 5).tag("a", 2)

    assert svc.tags == {"a": 2, "b": 5}


@pytest.mark.parametrize(
    ("method", "scope"),
    [
        ("set_scope_default", Scope.DEFAULT),
        ("set_scope_shared", Scope.SHARED),
        ("set_scope_contextual", Scope.CONTEXTUAL),
        ("set_scope_non_shared", Scope.NON_SHARED),
    ],
)
def test_scopes(method, scope):
    svc = getattr(Service().set_value(None), method)()

    assert svc.scope is scope


def test_set_scope_rejects_invalid_values():
    with pytest.raises(ValueError):
        Service().set_scope(7)  # type: ignore[arg-type]


def test_all_deps_order():
    svc = (
        Service()
        .set_constructor(dict, dependency.service("ctor"))
        .append_call("m", dependency.param("call"))
        .set_field("f", dependency.tag("field"))
    )

    assert svc.all_deps() == [
        dependency.service("ctor"),
        dependency.param("call"),
        dependency.tag("field"),
    ]
    assert split_refs(svc.all_deps()) == (["ctor"], ["call"], ["field"])


def test_copy_is_independent():
    svc = Service().set_value(1).tag("t").set_field("f", dependency.value(1))
    clone = svc.copy()
    svc.tag("other")
    svc.set_field("g", dependency.value(2))
    svc.append_call("m")

    assert clone.tags == {"t": 0}
    assert [f.name for f in clone.fields] == ["f"]
    assert clone.calls == []


def test_dependency_helpers():
    assert dependency.value(1).kind is DependencyKind.VALUE
    assert dependency.service("s").ref == "s"
    assert dependency.param("p").kind is DependencyKind.PARAM
    assert dependency.tag("t").kind is DependencyKind.TAG
    assert dependency.provider(dict).provider is dict
    assert dependency.container().kind is DependencyKind.CONTAINER
    assert dependency.context().kind is DependencyKind.CONTEXT
    assert repr(dependency.service("s")) == "Dependency.service('s')"
