from __future__ import annotations

import threading
from collections.abc import Callable
from types import TracebackType

from loguru import logger


class Canceled(Exception):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(Canceled):
    def __init__(self) -> None:
        super().__init__("context deadline exceeded")


def _noop() -> None:
    return None


class _CancelState:
    """Shared cancellation state of a cancellable context and its value-children."""

    __slots__ = ("event", "cause", "callbacks", "lock")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.cause: BaseException | None = None
        self.callbacks: list[Callable[[], None]] = []
        self.lock = threading.Lock()

    def cancel(self, cause: BaseException) -> bool:
        with self.lock:
            if self.event.is_set():
                return False
            self.cause = cause
            self.event.set()
            callbacks, self.callbacks = self.callbacks, []
        for callback in callbacks:
            callback()
        return True

    def after_done(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self.lock:
            if not self.event.is_set():
                self.callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return _noop

    def _remove(self, callback: Callable[[], None]) -> None:
        with self.lock:
            if callback in self.callbacks:
                self.callbacks.remove(callback)


class Context:
    """
    Carrier of request-scoped values and of a cancellation signal.

    A context is immutable: ``with_value`` and ``with_cancel`` derive children.
    The root returned by ``background()`` is never done; its ``done`` is None.
    """

    __slots__ = ("_parent", "_key", "_value", "_state")

    def __init__(
        self,
        parent: Context | None = None,
        key: object = None,
        value: object = None,
        state: _CancelState | None = None,
    ) -> None:
        self._parent = parent
        self._key = key
        self._value = value
        if state is None and parent is not None:
            state = parent._state
        self._state = state

    @property
    def done(self) -> threading.Event | None:
        """Event set on cancellation, or None for a context that is never done."""
        return self._state.event if self._state is not None else None

    def is_done(self) -> bool:
        return self._state is not None and self._state.event.is_set()

    @property
    def err(self) -> BaseException | None:
        """Cause of the cancellation, None while the context is alive."""
        return self._state.cause if self._state is not None else None

    def value(self, key: object) -> object:
        ctx: Context | None = self
        while ctx is not None:
            if ctx._key is not None and ctx._key == key:
                return ctx._value
            ctx = ctx._parent
        return None

    def with_value(self, key: object, value: object) -> Context:
        if key is None:
            raise ValueError("nil key")
        return Context(self, key, value)

    def after_done(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run ``callback`` once the context is done (immediately if it already is).

        Returns a function that unregisters ``callback`` if it has not run yet.
        """
        if self._state is None:
            raise ValueError("context is never done")
        return self._state.after_done(callback)


class CancellableContext(Context):
    """
    A context that can be cancelled explicitly.

    Cancelling the parent cancels this context as well. Used as a context
    manager it is cancelled on exit:

        with with_cancel(background()) as ctx:
            ...
    """

    __slots__ = ("_timer", "_detach")

    def __init__(self, parent: Context) -> None:
        super().__init__(parent, state=_CancelState())
        self._timer: threading.Timer | None = None
        self._detach: Callable[[], None] = _noop
        if parent.done is not None:
            self._detach = parent.after_done(lambda: self.cancel(parent.err or Canceled()))

    def cancel(self, cause: BaseException | None = None) -> None:
        assert self._state is not None
        if self._state.cancel(cause if cause is not None else Canceled()):
            logger.debug(f"Context cancelled: {self._state.cause}")
        # drop the callback held by the parent
        self._detach()
        if self._timer is not None:
            self._timer.cancel()

    def __enter__(self) -> CancellableContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()


def background() -> Context:
    """An empty context that is never done."""
    return Context()


def with_cancel(parent: Context) -> CancellableContext:
    if parent is None:
        raise ValueError("nil context")
    return CancellableContext(parent)


def with_timeout(parent: Context, seconds: float) -> CancellableContext:
    ctx = with_cancel(parent)
    timer = threading.Timer(seconds, lambda: ctx.cancel(DeadlineExceeded()))
    timer.daemon = True
    ctx._timer = timer
    timer.start()
    return ctx


class GroupContext:
    """
    Waitable counter of live contexts.

    ``add`` counts a context until it is done; ``wait`` blocks until every
    added context is done.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._count = 0

    def add(self, ctx: Context) -> None:
        if ctx.done is None:
            msg = "ctx.done is None: waiting for a context that is never done blocks forever"
            logger.error(msg)
            raise ValueError(msg)
        with self._cond:
            self._count += 1
        ctx.after_done(self._release)

    def _release(self) -> None:
        with self._cond:
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self) -> None:
        with self._cond:
            while self._count > 0:
                self._cond.wait()

    def __len__(self) -> int:
        with self._cond:
            return self._count
