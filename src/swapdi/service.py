from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from loguru import logger

from .dependency import Dependency
from .scope import Scope


@dataclass(frozen=True)
class DecoratorPayload:
    """
    The first positional argument passed to every decorator.

    A decorator is called as ``fn(payload, *resolved_deps)`` and its return
    value replaces the service.
    """

    tag: str
    service_id: str
    service: object


@dataclass(frozen=True)
class ServiceCall:
    method: str
    deps: tuple[Dependency, ...]
    wither: bool = False


@dataclass(frozen=True)
class ServiceField:
    name: str
    dep: Dependency


@dataclass
class Service:
    """
    Recipe of a service.

    The creation method is exactly one of a static value, a constructor or a
    factory (a method of another service); setting one resets the others.
    Fields, calls and withers are applied in registration order, then
    decorators registered for any tag of the service.

        svc = Service()
        svc.set_constructor(Person, dependency.param("name"))
        svc.append_call("set_age", dependency.value(21))
        svc.tag("people", 1)
    """

    value: object = None
    constructor: Callable[..., object] | None = None
    constructor_deps: tuple[Dependency, ...] = ()
    factory_service_id: str = ""
    factory_method: str = ""
    factory_deps: tuple[Dependency, ...] = ()
    fields: list[ServiceField] = field(default_factory=list)
    calls: list[ServiceCall] = field(default_factory=list)
    tags: dict[str, int] = field(default_factory=dict)
    scope: Scope = Scope.DEFAULT
    has_creation_method: bool = False

    def _reset_creation_methods(self) -> None:
        self.value = None
        self.constructor = None
        self.constructor_deps = ()
        self.factory_service_id = ""
        self.factory_method = ""
        self.factory_deps = ()

    def set_value(self, value: object) -> Service:
        """
        Use a predefined value. Every build starts from a shallow copy of it
        when fields or calls are registered, so the recipe itself stays intact.
        """
        self._reset_creation_methods()
        self.value = value
        self.has_creation_method = True
        return self

    def set_constructor(self, fn: Callable[..., object], *deps: Dependency) -> Service:
        if not callable(fn):
            msg = f"Service.set_constructor: expected a callable, got {type(fn)!r}."
            logger.error(msg)
            raise TypeError(msg)
        self._reset_creation_methods()
        self.constructor = fn
        self.constructor_deps = deps
        self.has_creation_method = True
        return self

    def set_factory(self, service_id: str, method: str, *deps: Dependency) -> Service:
        """Build the service by calling ``method`` on the service ``service_id``."""
        if not service_id:
            raise ValueError('service_id == ""')
        if not method:
            raise ValueError('method == ""')
        self._reset_creation_methods()
        self.factory_service_id = service_id
        self.factory_method = method
        self.factory_deps = deps
        self.has_creation_method = True
        return self

    def append_call(self, method: str, *deps: Dependency) -> Service:
        """Call ``obj.method(*deps)`` on the service, in place."""
        self.calls.append(ServiceCall(method=method, deps=deps))
        return self

    def append_wither(self, method: str, *deps: Dependency) -> Service:
        """Replace the service with ``obj.method(*deps)``."""
        self.calls.append(ServiceCall(method=method, deps=deps, wither=True))
        return self

    def set_field(self, name: str, dep: Dependency) -> Service:
        """
        Assign a field. Setting the same name again replaces the dependency
        but keeps the original position.
        """
        for i, existing in enumerate(self.fields):
            if existing.name == name:
                self.fields[i] = ServiceField(name=name, dep=dep)
                return self
        self.fields.append(ServiceField(name=name, dep=dep))
        return self

    def set_fields(self, fields: Mapping[str, Dependency]) -> Service:
        # sorted, so the order of errors is always the same
        for name in sorted(fields):
            self.set_field(name, fields[name])
        return self

    def tag(self, tag: str, priority: int = 0) -> Service:
        self.tags[tag] = priority
        return self

    def set_scope(self, scope: Scope) -> Service:
        if not isinstance(scope, Scope):
            msg = f"Invalid scope: expected Scope, got {scope!r} ({type(scope)!r})."
            logger.error(msg)
            raise ValueError(msg)
        self.scope = scope
        return self

    def set_scope_default(self) -> Service:
        return self.set_scope(Scope.DEFAULT)

    def set_scope_shared(self) -> Service:
        return self.set_scope(Scope.SHARED)

    def set_scope_contextual(self) -> Service:
        return self.set_scope(Scope.CONTEXTUAL)

    def set_scope_non_shared(self) -> Service:
        return self.set_scope(Scope.NON_SHARED)

    def all_deps(self) -> list[Dependency]:
        """Every dependency of the recipe, decorators excluded."""
        deps = list(self.constructor_deps)
        deps.extend(self.factory_deps)
        for call in self.calls:
            deps.extend(call.deps)
        for f in self.fields:
            deps.append(f.dep)
        return deps

    def copy(self) -> Service:
        return Service(
            value=self.value,
            constructor=self.constructor,
            constructor_deps=tuple(self.constructor_deps),
            factory_service_id=self.factory_service_id,
            factory_method=self.factory_method,
            factory_deps=tuple(self.factory_deps),
            fields=list(self.fields),
            calls=list(self.calls),
            tags=dict(self.tags),
            scope=self.scope,
            has_creation_method=self.has_creation_method,
        )
