from __future__ import annotations

from collections.abc import Iterable


class ContainerError(Exception):
    """Base class for every error returned by the container."""


class ServiceNotFoundError(ContainerError):
    def __init__(self) -> None:
        super().__init__("service does not exist")


class ParamNotFoundError(ContainerError):
    def __init__(self) -> None:
        super().__init__("param does not exist")


class CircularDependencyError(ContainerError):
    """One dependency cycle, rendered as ``@a -> @b -> @a``."""


class ContextDoneError(ContainerError):
    def __init__(self, cause: BaseException | str) -> None:
        self.cause = cause
        super().__init__(f"ctx.Done() closed: {cause}")


class ProviderError(ContainerError):
    """Raised when a provider, a method or a decorator raised an exception."""


class CallError(ContainerError):
    """Raised when a callable cannot be invoked with the given arguments."""


class FieldError(ContainerError):
    """Raised when a field cannot be assigned."""


class PrefixedError(ContainerError):
    """A single error from a group, carrying the prefixes of its enclosing groups."""

    def __init__(self, prefix: str, error: BaseException) -> None:
        self.prefix = prefix
        self.error = error
        super().__init__(f"{prefix}{error}")
        self.__cause__ = error

    def root(self) -> BaseException:
        err: BaseException = self
        while isinstance(err, PrefixedError):
            err = err.error
        return err


class GroupError(ContainerError):
    """
    A group of errors sharing a common prefix.

    Nested groups are flattened by ``collection()``; every flattened error is
    wrapped in a ``PrefixedError`` carrying all prefixes on the way down.
    The string form is one line per flattened error.
    """

    def __init__(self, prefix: str, errors: Iterable[BaseException]) -> None:
        self.prefix = prefix
        self.errors: tuple[BaseException, ...] = tuple(errors)
        super().__init__("\n".join(str(e) for e in self.collection()))

    def collection(self) -> list[BaseException]:
        result: list[BaseException] = []
        for err in self.errors:
            if isinstance(err, GroupError):
                for nested in err.collection():
                    result.append(PrefixedError(self.prefix, nested))
                continue
            result.append(PrefixedError(self.prefix, err))
        return result

    def has(self, exc_type: type[BaseException]) -> bool:
        """Report whether any error in the tree is an instance of ``exc_type``."""
        for err in self.errors:
            if isinstance(err, exc_type):
                return True
            if isinstance(err, GroupError) and err.has(exc_type):
                return True
            if isinstance(err, PrefixedError) and isinstance(err.root(), exc_type):
                return True
        return False


def prefix(text: str, *errors: BaseException | None) -> GroupError | None:
    """Group the given errors under ``text``. Returns None when all of them are None."""
    filtered = [e for e in errors if e is not None]
    if not filtered:
        return None
    return GroupError(text, filtered)


def join(*errors: BaseException | None) -> GroupError | None:
    return prefix("", *errors)


def collection(error: BaseException | None) -> list[BaseException]:
    if error is None:
        return []
    if isinstance(error, GroupError):
        return error.collection()
    return [error]


def messages(error: BaseException | None) -> list[str]:
    """Flattened error lines, handy in assertions and logs."""
    return [str(e) for e in collection(error)]


def quote(value: str) -> str:
    """Double-quote an identifier the way error prefixes render it."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
