from __future__ import annotations

import threading

import pytest

from swapdi import (
    Canceled,
    Container,
    ContextDoneError,
    DeadlineExceeded,
    GroupError,
    Service,
    background,
    context_with_container,
    dependency,
    with_cancel,
    with_timeout,
)
from swapdi.context import GroupContext
from tests.di_test_services.helpers import Transaction, UserStorage


def _contextual_container() -> Container:
    c = Container()
    c.override_service("transaction", Service().set_constructor(Transaction).set_scope_contextual())
    c.override_service(
        "storage",
        Service().set_constructor(UserStorage, dependency.service("transaction")),
    )
    return c


def test_background_is_never_done():
    ctx = background()

    assert ctx.done is None
    assert not ctx.is_done()
    assert ctx.err is None


def test_cancel_propagates_to_children():
    parent = with_cancel(background())
    child = with_cancel(parent.with_value("key", "value"))

    parent.cancel()

    assert parent.is_done()
    assert child.is_done()
    assert isinstance(child.err, Canceled)
    assert child.value("key") == "value"


def test_cancelling_child_does_not_cancel_parent():
    parent = with_cancel(background())
    child = with_cancel(parent)

    child.cancel()

    assert child.is_done()
    assert not parent.is_done()


def test_context_manager_cancels_on_exit():
    with with_cancel(background()) as ctx:
        assert not ctx.is_done()
    assert ctx.is_done()
    assert str(ctx.err) == "context canceled"


def test_timeout():
    ctx = with_timeout(background(), 0.01)

    assert ctx.done is not None
    assert ctx.done.wait(timeout=5)
    assert isinstance(ctx.err, DeadlineExceeded)
    assert str(ctx.err) == "context deadline exceeded"


def test_with_value_rejects_none_key():
    with pytest.raises(ValueError):
        background().with_value(None, 1)


def test_group_context_waits_for_every_context():
    group = GroupContext()
    first = with_cancel(background())
    second = with_cancel(background())
    group.add(first)
    group.add(second)
    assert len(group) == 2

    done = threading.Event()

    def wait() -> None:
        group.wait()
        done.set()

    waiter = threading.Thread(target=wait)
    waiter.start()

    first.cancel()
    assert not done.wait(timeout=0.05)
    second.cancel()
    assert done.wait(timeout=5)
    waiter.join()
    assert len(group) == 0


def test_group_context_rejects_context_never_done():
    with pytest.raises(ValueError, match="never done"):
        GroupContext().add(background())


def test_contextual_services_are_shared_within_context():
    c = _contextual_container()

    with c.context() as ctx:
        tx = c.get_in_context(ctx, "transaction")
        storage = c.get_in_context(ctx, "storage")
        assert storage.transaction is tx
        assert c.get_in_context(ctx, "transaction") is tx

    with c.context() as other:
        assert c.get_in_context(other, "transaction") is not tx


def test_get_without_context_uses_fresh_bag():
    c = _contextual_container()

    assert c.get("transaction") is not c.get("transaction")
    assert c.get("storage").transaction is not c.get("storage").transaction


def test_shared_services_are_shared_across_contexts():
    c = Container()
    c.override_service("svc", Service().set_constructor(object).set_scope_shared())

    with c.context() as first, c.context() as second:
        assert c.get_in_context(first, "svc") is c.get_in_context(second, "svc")
    assert c.get("svc") is c.get("svc")


def test_get_tagged_by_in_context():
    c = Container()
    c.override_service("tx", Service().set_constructor(Transaction).set_scope_contextual().tag("tx"))

    with c.context() as ctx:
        first = c.get_tagged_by_in_context(ctx, "tx")
        second = c.get_tagged_by_in_context(ctx, "tx")
        assert first[0] is second[0]
        assert c.get_in_context(ctx, "tx") is first[0]


def test_context_dependency():
    c = Container()
    c.override_service(
        "ctx",
        Service().set_constructor(lambda ctx: ctx, dependency.context()).set_scope_non_shared(),
    )

    with c.context() as ctx:
        assert c.get_in_context(ctx, "ctx") is ctx


def test_context_with_container_returns_same_context_when_already_attached():
    c = Container()

    with with_cancel(background()) as parent:
        ctx = context_with_container(parent, c)
        assert context_with_container(ctx, c) is ctx
        child = ctx.with_value("request_id", 7)
        assert context_with_container(child, c) is child


def test_one_context_can_host_many_containers():
    first = _contextual_container()
    second = _contextual_container()

    with with_cancel(background()) as parent:
        ctx = context_with_container(context_with_container(parent, first), second)

        assert first.get_in_context(ctx, "transaction") is first.get_in_context(ctx, "transaction")
        assert first.get_in_context(ctx, "transaction") is not second.get_in_context(ctx, "transaction")


def test_context_with_container_rejects_invalid_arguments():
    c = Container()

    with pytest.raises(ValueError, match="nil context"):
        context_with_container(None, c)  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="nil container"):
        context_with_container(with_cancel(background()), None)  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="never done"):
        context_with_container(background(), c)


def test_get_in_context_requires_attached_context():
    c = _contextual_container()

    with with_cancel(background()) as ctx:
        with pytest.raises(RuntimeError, match="not attached"):
            c.get_in_context(ctx, "transaction")

    with _contextual_container().context() as foreign:
        with pytest.raises(RuntimeError, match="not attached"):
            c.get_in_context(foreign, "transaction")


def test_get_in_done_context_fails():
    c = _contextual_container()

    with c.context() as ctx:
        pass

    with pytest.raises(GroupError) as exc_info:
        c.get_in_context(ctx, "transaction")
    assert str(exc_info.value) == 'GetInContext("transaction"): ctx.Done() closed: context canceled'
    assert exc_info.value.has(ContextDoneError)

    with pytest.raises(GroupError) as exc_info:
        c.get_tagged_by_in_context(ctx, "t")
    assert str(exc_info.value) == 'GetTaggedByInContext("t"): ctx.Done() closed: context canceled'


def test_cancelled_children_release_parent_callbacks():
    parent = with_cancel(background())

    for _ in range(1000):
        with_cancel(parent).cancel()

    assert len(parent._state.callbacks) == 0

    live = [with_cancel(parent) for _ in range(3)]
    parent.cancel()

    assert all(child.is_done() for child in live)


def test_after_done_returns_unregister_function():
    ctx = with_cancel(background())
    calls: list[str] = []

    unregister = ctx.after_done(lambda: calls.append("removed"))
    ctx.after_done(lambda: calls.append("kept"))
    unregister()
    ctx.cancel()

    assert calls == ["kept"]
    # already done: runs immediately and unregistering is a no-op
    ctx.after_done(lambda: calls.append("late"))()
    assert calls == ["kept", "late"]


def test_contextual_value_is_copied_per_context():
    c = Container()
    c.override_service("tx", Service().set_value(Transaction()).set_scope_contextual())

    with c.context() as first, c.context() as second:
        tx = c.get_in_context(first, "tx")
        assert c.get_in_context(first, "tx") is tx
        assert c.get_in_context(second, "tx") is not tx


def test_get_in_context_finishes_when_cancelled_during_resolution():
    c = Container()
    parent = with_cancel(background())

    def build(ctx):
        parent.cancel()
        return Transaction()

    c.override_service("tx", Service().set_constructor(build, dependency.context()).set_scope_contextual())
    ctx = context_with_container(parent, c)

    assert isinstance(c.get_in_context(ctx, "tx"), Transaction)
    assert ctx.is_done()
    with pytest.raises(GroupError) as exc_info:
        c.get_in_context(ctx, "tx")
    assert exc_info.value.has(ContextDoneError)
