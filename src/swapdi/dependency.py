from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum


class DependencyKind(Enum):
    VALUE = "value"
    SERVICE = "service"
    PARAM = "param"
    TAG = "tag"
    PROVIDER = "provider"
    CONTAINER = "container"
    CONTEXT = "context"


@dataclass(frozen=True)
class Dependency:
    """
    One input of a service, a decorator or a parameter.

    Exactly one payload is meaningful, chosen by ``kind``:

    * VALUE      -> ``value``
    * SERVICE    -> ``ref`` (service id)
    * PARAM      -> ``ref`` (param id)
    * TAG        -> ``ref`` (tag id)
    * PROVIDER   -> ``provider``
    * CONTAINER  -> the owning container
    * CONTEXT    -> the context of the current resolution

    Use the module-level helpers (``value()``, ``service()`` ...) to build one.
    """

    kind: DependencyKind
    value: object = None
    ref: str = ""
    provider: Callable[[], object] | None = None

    def __repr__(self) -> str:
        if self.kind is DependencyKind.VALUE:
            return f"Dependency.value({self.value!r})"
        if self.kind is DependencyKind.PROVIDER:
            return f"Dependency.provider({self.provider!r})"
        if self.kind in (DependencyKind.CONTAINER, DependencyKind.CONTEXT):
            return f"Dependency.{self.kind.value}()"
        return f"Dependency.{self.kind.value}({self.ref!r})"


def value(v: object) -> Dependency:
    """A literal; it does not depend on anything in the container."""
    return Dependency(DependencyKind.VALUE, value=v)


def service(service_id: str) -> Dependency:
    return Dependency(DependencyKind.SERVICE, ref=service_id)


def param(param_id: str) -> Dependency:
    return Dependency(DependencyKind.PARAM, ref=param_id)


def tag(tag_id: str) -> Dependency:
    """Every service tagged by ``tag_id``, ordered by priority desc, then id asc."""
    return Dependency(DependencyKind.TAG, ref=tag_id)


def provider(fn: Callable[[], object]) -> Dependency:
    """The value returned by ``fn()``; an exception raised by ``fn`` becomes a resolution error."""
    return Dependency(DependencyKind.PROVIDER, provider=fn)


def container() -> Dependency:
    return Dependency(DependencyKind.CONTAINER)


def context() -> Dependency:
    return Dependency(DependencyKind.CONTEXT)


PARAM_KINDS = frozenset(
    {DependencyKind.VALUE, DependencyKind.PARAM, DependencyKind.PROVIDER}
)


def split_refs(deps: list[Dependency]) -> tuple[list[str], list[str], list[str]]:
    """Split dependencies into referenced service, param and tag ids."""
    services: list[str] = []
    params: list[str] = []
    tags: list[str] = []
    for dep in deps:
        if dep.kind is DependencyKind.SERVICE:
            services.append(dep.ref)
        elif dep.kind is DependencyKind.PARAM:
            params.append(dep.ref)
        elif dep.kind is DependencyKind.TAG:
            tags.append(dep.ref)
    return services, params, tags
