from __future__ import annotations

import inspect
from collections.abc import Callable, Sequence

from .errors import CallError, ProviderError


def _label(fn: object) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


def _bind(fn: Callable[..., object], args: Sequence[object], what: str) -> None:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # builtins without introspectable signatures
        return
    try:
        signature.bind(*args)
    except TypeError as exc:
        raise CallError(f"cannot call {what} {_label(fn)}: {exc}") from exc


def call_provider(fn: object, args: Sequence[object] = ()) -> object:
    """
    Invoke ``fn(*args)``.

    Arguments that do not fit the signature raise ``CallError``; an exception
    raised by ``fn`` itself is wrapped in ``ProviderError``.
    """
    if not callable(fn):
        raise CallError(f"provider must be callable, {type(fn).__name__} given")
    _bind(fn, args, "provider")
    try:
        return fn(*args)
    except Exception as exc:
        raise ProviderError(f"provider returned error: {exc}") from exc


def _method(obj: object, method: str, what: str) -> Callable[..., object]:
    fn = getattr(obj, method, None)
    if fn is None or not callable(fn):
        raise CallError(f'cannot call {what} ({type(obj).__name__})."{method}": invalid func')
    return fn


def call_provider_by_name(obj: object, method: str, args: Sequence[object] = ()) -> object:
    """Invoke the provider ``obj.method(*args)``, used by factory services."""
    return call_provider(_method(obj, method, "provider"), args)


def call_by_name(obj: object, method: str, args: Sequence[object] = ()) -> object:
    """Call ``obj.method(*args)`` in place (a setter); its return value is ignored by the container."""
    fn = _method(obj, method, "method")
    _bind(fn, args, "method")
    try:
        return fn(*args)
    except Exception as exc:
        raise ProviderError(f"method returned error: {exc}") from exc


def call_wither_by_name(obj: object, method: str, args: Sequence[object] = ()) -> object:
    """
    Call ``obj.method(*args)`` and return the new receiver.

    A wither must return an instance of the receiver's type.
    """
    fn = _method(obj, method, "wither")
    _bind(fn, args, "wither")
    try:
        result = fn(*args)
    except Exception as exc:
        raise ProviderError(f"wither returned error: {exc}") from exc
    if not isinstance(result, type(obj)):
        raise CallError(
            f'wither ({type(obj).__name__})."{method}" must return '
            f"{type(obj).__name__}, {type(result).__name__} given"
        )
    return result
