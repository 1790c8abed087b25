from __future__ import annotations

import copy
import itertools
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from .caller import call_by_name, call_provider, call_provider_by_name, call_wither_by_name
from .context import Context, GroupContext, background, with_cancel
from .dependency import PARAM_KINDS, Dependency, DependencyKind
from .errors import (
    ContainerError,
    ContextDoneError,
    GroupError,
    ParamNotFoundError,
    ServiceNotFoundError,
    join,
    prefix,
    quote,
)
from .graph_builder import GraphBuilder
from .rwlock import RWLock
from .safe_map import SafeMap
from .scope import Scope
from .service import DecoratorPayload, Service
from .setter import set_field

if TYPE_CHECKING:
    from .hot_swap import MutableContainer

_CONTAINER_IDS = itertools.count(1)


@dataclass(frozen=True)
class _ContextKey:
    container_id: int


@dataclass(frozen=True)
class _Decorator:
    tag: str
    fn: Callable[..., object]
    deps: tuple[Dependency, ...]


class Container:
    """
    Dependency injection container building services from ``Service`` recipes.

    Concurrency model
    -----------------
    * Every public operation is safe to call from many threads.
    * Reads (``get*``, ``get_param``, ``is_tagged_by``, ``circular_deps``) hold
      the global lock in shared mode; ``override_*``, ``add_decorator`` and the
      mutation phase of ``hot_swap`` hold it exclusively.
    * A per-service lock guarantees that a shared service is built at most
      once per container and a contextual one at most once per bag. A failed
      build is never cached.
    * ``hot_swap`` first blocks new contexts, waits until every context bound
      by ``context_with_container`` is done, then mutates the container.

    Errors
    ------
    Resolution failures raise ``GroupError`` with one line per failure, e.g.
    ``Container.get("db"): constructor args: arg #0: getParam("dsn"): param does not exist``.
    Programmer errors (invalid recipes, invalid contexts) raise built-in
    exceptions instead.

        c = Container()
        c.override_param("name", dependency.value("Jane"))
        c.override_service("jane", Service().set_constructor(Person, dependency.param("name")))
        jane = c.get("jane")
    """

    def __init__(self) -> None:
        self._services: dict[str, Service] = {}
        self._cache_shared = SafeMap()
        self._service_locks: dict[str, threading.Lock] = {}
        self._params: dict[str, Dependency] = {}
        self._cache_params = SafeMap()
        self._param_locks: dict[str, threading.Lock] = {}
        self._decorators: list[_Decorator] = []

        self._global_lock = RWLock()
        self._context_lock = RWLock()
        self._warm_up_lock = threading.Lock()
        self._group_context = GroupContext()
        self._graph_builder = GraphBuilder(self)

        # unique per container, so one context may host many containers
        self._key = _ContextKey(next(_CONTAINER_IDS))

    # --------------------------------------------------------------------- #
    # Graph                                                                 #
    # --------------------------------------------------------------------- #

    def _invalidate_graph(self) -> None:
        self._graph_builder.invalidate()

    def _warm_up_graph(self) -> None:
        if self._graph_builder.warm:
            return
        with self._warm_up_lock:
            if not self._graph_builder.warm:
                self._graph_builder.warm_up()

    def circular_deps(self) -> GroupError | None:
        """Return an error listing every dependency cycle, one line per cycle, or None."""
        with self._global_lock.read_lock():
            self._warm_up_graph()
            return prefix("CircularDeps(): ", self._graph_builder.circular_deps())

    # --------------------------------------------------------------------- #
    # Registration                                                          #
    # --------------------------------------------------------------------- #

    def override_service(self, service_id: str, service: Service) -> None:
        """Add a service, replacing any service registered under the same id."""
        with self._global_lock.write_lock():
            self._override_service(service_id, service)

    def override_services(self, services: Mapping[str, Service]) -> None:
        with self._global_lock.write_lock():
            for service_id in sorted(services):
                self._override_service(service_id, services[service_id])

    def override_param(self, param_id: str, dep: Dependency) -> None:
        """
        Add a parameter, replacing any parameter registered under the same id.
        Only value, provider and param dependencies are accepted.
        """
        with self._global_lock.write_lock():
            self._override_param(param_id, dep)

    def override_params(self, params: Mapping[str, Dependency]) -> None:
        with self._global_lock.write_lock():
            for param_id in sorted(params):
                self._override_param(param_id, params[param_id])

    def add_decorator(
        self,
        tag: str,
        decorator: Callable[..., object],
        *deps: Dependency,
    ) -> None:
        """
        Decorate every service tagged by ``tag``.

        The decorator is called as ``decorator(payload, *resolved_deps)`` where
        ``payload`` is a ``DecoratorPayload``; its return value replaces the
        service. Decorators run in registration order.
        """
        if not callable(decorator):
            msg = f"add_decorator({quote(tag)}): decorator must be callable, got {type(decorator)!r}."
            logger.error(msg)
            raise TypeError(msg)
        with self._global_lock.write_lock():
            self._invalidate_graph()
            self._decorators.append(_Decorator(tag=tag, fn=decorator, deps=tuple(deps)))

    def _override_service(self, service_id: str, service: Service) -> None:
        if not isinstance(service, Service):
            msg = f"overrideService({quote(service_id)}): expected Service, got {type(service)!r}"
            logger.error(msg)
            raise TypeError(msg)
        if not isinstance(service.scope, Scope):
            msg = f"overrideService({quote(service_id)}): invalid scope {service.scope!r}"
            logger.error(msg)
            raise ValueError(msg)
        if not service.has_creation_method:
            msg = (
                f"overrideService({quote(service_id)}): "
                "service has neither a constructor nor a factory nor a value"
            )
            logger.error(msg)
            raise ValueError(msg)

        self._invalidate_graph()
        self._services[service_id] = service.copy()
        self._cache_shared.delete(service_id)
        if service.scope is Scope.NON_SHARED:
            self._service_locks.pop(service_id, None)
        else:
            self._service_locks.setdefault(service_id, threading.Lock())
        logger.debug(f"Service registered: id={service_id}, scope={service.scope.name}")

    def _override_param(self, param_id: str, dep: Dependency) -> None:
        if not isinstance(dep, Dependency) or dep.kind not in PARAM_KINDS:
            kind = dep.kind.name if isinstance(dep, Dependency) else type(dep).__name__
            msg = f"overrideParam({quote(param_id)}): invalid dependency: {kind}"
            logger.error(msg)
            raise TypeError(msg)

        self._invalidate_graph()
        self._params[param_id] = dep
        self._cache_params.delete(param_id)
        self._param_locks.setdefault(param_id, threading.Lock())

    # --------------------------------------------------------------------- #
    # Public resolution API                                                 #
    # --------------------------------------------------------------------- #

    def get(self, service_id: str) -> object:
        """Return the service ``service_id``. Contextual services live for this call only."""
        with self._global_lock.read_lock():
            self._warm_up_graph()
            return self._get(background(), service_id, SafeMap())

    def get_in_context(self, ctx: Context, service_id: str) -> object:
        """
        Return the service ``service_id``, sharing contextual services with every
        other resolution in ``ctx``. See ``context_with_container``.

        ``ctx`` is checked once, when the call starts. A resolution already in
        progress runs to completion even if ``ctx`` is cancelled meanwhile.
        """
        with self._global_lock.read_lock():
            self._warm_up_graph()
            # validates the context, so it runs before the done check
            bag = self._context_bag(ctx)
            if ctx.is_done():
                raise prefix(
                    f"GetInContext({quote(service_id)}): ",
                    ContextDoneError(ctx.err or "context canceled"),
                )
            return self._get(ctx, service_id, bag)

    def get_tagged_by(self, tag: str) -> list[object]:
        """Return every service tagged by ``tag``, by priority (descending) then id (ascending)."""
        with self._global_lock.read_lock():
            self._warm_up_graph()
            return self._get_tagged_by(background(), tag, SafeMap())

    def get_tagged_by_in_context(self, ctx: Context, tag: str) -> list[object]:
        """Like ``get_in_context`` for every service tagged by ``tag``."""
        with self._global_lock.read_lock():
            self._warm_up_graph()
            bag = self._context_bag(ctx)
            if ctx.is_done():
                raise prefix(
                    f"GetTaggedByInContext({quote(tag)}): ",
                    ContextDoneError(ctx.err or "context canceled"),
                )
            return self._get_tagged_by(ctx, tag, bag)

    def get_param(self, param_id: str) -> object:
        with self._global_lock.read_lock():
            self._warm_up_graph()
            return self._get_param(param_id)

    def is_tagged_by(self, service_id: str, tag: str) -> bool:
        with self._global_lock.read_lock():
            svc = self._services.get(service_id)
            return svc is not None and tag in svc.tags

    @contextmanager
    def context(self, parent: Context | None = None) -> Iterator[Context]:
        """
        Bind a fresh cancellable context to this container for the ``with`` block.

            with c.context() as ctx:
                tx = c.get_in_context(ctx, "tx")
        """
        with with_cancel(parent if parent is not None else background()) as ctx:
            yield context_with_container(ctx, self)

    # --------------------------------------------------------------------- #
    # Hot swap                                                              #
    # --------------------------------------------------------------------- #

    def hot_swap(self, fn: Callable[[MutableContainer], None]) -> None:
        """
        Modify the container atomically with respect to contextual consumers.

        Blocks new ``context_with_container`` calls, waits until every bound
        context is done, then runs ``fn`` under the exclusive lock.

            c.hot_swap(lambda m: m.override_param("db.password", dependency.value("new")))
        """
        from .hot_swap import MutableContainer

        with self._context_lock.write_lock():
            logger.debug(f"Hot swap: waiting for {len(self._group_context)} context(s)")
            self._group_context.wait()
            with self._global_lock.write_lock():
                try:
                    fn(MutableContainer(self))
                finally:
                    self._graph_builder.warm_up()
            logger.debug("Hot swap: done")

    # --------------------------------------------------------------------- #
    # Contexts                                                              #
    # --------------------------------------------------------------------- #

    def _context_bag(self, ctx: Context) -> SafeMap:
        if ctx is None:
            msg = "nil context"
            logger.error(msg)
            raise ValueError(msg)
        bag = ctx.value(self._key)
        if bag is None:
            msg = (
                "the given context is not attached to the given container, "
                "call `ctx = context_with_container(ctx, container)`"
            )
            logger.error(msg)
            raise RuntimeError(msg)
        assert isinstance(bag, SafeMap)
        return bag

    # --------------------------------------------------------------------- #
    # Resolver                                                              #
    # --------------------------------------------------------------------- #

    def _get(self, ctx: Context, service_id: str, bag: SafeMap) -> object:
        try:
            return self._get_cached(ctx, service_id, bag)
        except ContainerError as exc:
            raise prefix(f"Container.get({quote(service_id)}): ", exc) from exc

    def _get_cached(self, ctx: Context, service_id: str, bag: SafeMap) -> object:
        cycles = self._graph_builder.service_circular_deps(service_id)
        if cycles is not None:
            raise prefix("circular dependencies: ", cycles)

        svc = self._services.get(service_id)
        if svc is None:
            raise ServiceNotFoundError()

        scope = svc.scope
        if scope is Scope.DEFAULT:
            scope = self._graph_builder.resolve_scope(service_id)

        if scope is Scope.NON_SHARED:
            return self._build(ctx, service_id, svc, scope, bag)

        cache = self._cache_shared if scope is Scope.SHARED else bag
        # do not build cached objects more than once in concurrent invocations
        with self._service_locks[service_id]:
            cached, found = cache.get(service_id)
            if found:
                return cached
            result = self._build(ctx, service_id, svc, scope, bag)
            cache.set(service_id, result)
            logger.debug(f"Service cached: id={service_id}, scope={scope.name}")
            return result

    def _build(
        self,
        ctx: Context,
        service_id: str,
        svc: Service,
        scope: Scope,
        bag: SafeMap,
    ) -> object:
        result = self._create_new_service(ctx, svc, scope, bag)
        result = self._set_service_fields(ctx, result, svc, bag)
        result = self._execute_service_calls(ctx, result, svc, bag)
        return self._decorate_service(ctx, service_id, result, svc, bag)

    def _create_new_service(
        self,
        ctx: Context,
        svc: Service,
        scope: Scope,
        bag: SafeMap,
    ) -> object:
        if svc.constructor is not None:
            try:
                args = self._resolve_deps(ctx, bag, svc.constructor_deps)
            except ContainerError as exc:
                raise prefix("constructor args: ", exc) from exc
            try:
                return call_provider(svc.constructor, args)
            except ContainerError as exc:
                raise prefix("constructor: ", exc) from exc

        if svc.factory_method:
            try:
                factory = self._get(ctx, svc.factory_service_id, bag)
            except ContainerError as exc:
                raise prefix("factory service: ", exc) from exc
            try:
                args = self._resolve_deps(ctx, bag, svc.factory_deps)
            except ContainerError as exc:
                raise prefix("factory args: ", exc) from exc
            try:
                return call_provider_by_name(factory, svc.factory_method, args)
            except ContainerError as exc:
                raise prefix(
                    f"factory @{svc.factory_service_id}.{svc.factory_method}: ", exc
                ) from exc

        if scope is Scope.SHARED and not svc.fields and not svc.calls:
            return svc.value
        # every instance that is not shared is a copy, and fields and calls
        # must not modify the registered value
        try:
            return copy.copy(svc.value)
        except (TypeError, copy.Error) as exc:
            raise ContainerError(f"value: cannot copy {type(svc.value).__name__}: {exc}") from exc

    def _set_service_fields(
        self,
        ctx: Context,
        result: object,
        svc: Service,
        bag: SafeMap,
    ) -> object:
        errors: list[BaseException | None] = []
        for f in svc.fields:
            try:
                value = self._resolve_dep(ctx, bag, f.dep)
            except ContainerError as exc:
                errors.append(prefix(f"field value {quote(f.name)}: ", exc))
                continue
            try:
                result = set_field(result, f.name, value)
            except ContainerError as exc:
                errors.append(prefix(f"set field {quote(f.name)}: ", exc))
        error = join(*errors)
        if error is not None:
            raise error
        return result

    def _execute_service_calls(
        self,
        ctx: Context,
        result: object,
        svc: Service,
        bag: SafeMap,
    ) -> object:
        errors: list[BaseException | None] = []
        for call in svc.calls:
            try:
                args = self._resolve_deps(ctx, bag, call.deps)
            except ContainerError as exc:
                errors.append(prefix(f"resolve args {quote(call.method)}: ", exc))
                continue

            if call.wither:
                try:
                    result = call_wither_by_name(result, call.method, args)
                except ContainerError as exc:
                    errors.append(prefix(f"wither {quote(call.method)}: ", exc))
                    # a failed wither leaves no valid receiver for the next calls
                    break
                continue

            try:
                call_by_name(result, call.method, args)
            except ContainerError as exc:
                errors.append(prefix(f"call {quote(call.method)}: ", exc))

        error = join(*errors)
        if error is not None:
            raise error
        return result

    def _decorate_service(
        self,
        ctx: Context,
        service_id: str,
        result: object,
        svc: Service,
        bag: SafeMap,
    ) -> object:
        # stop on the very first error, a failed decorator leaves no valid service
        for i, dec in enumerate(self._decorators):
            if dec.tag not in svc.tags:
                continue
            payload = DecoratorPayload(tag=dec.tag, service_id=service_id, service=result)
            try:
                args = self._resolve_deps(ctx, bag, dec.deps)
            except ContainerError as exc:
                raise prefix(f"resolve decorator args #{i}: ", exc) from exc
            try:
                result = call_provider(dec.fn, [payload, *args])
            except ContainerError as exc:
                raise prefix(f"decorator #{i}: ", exc) from exc
        return result

    def _get_tagged_by(self, ctx: Context, tag: str, bag: SafeMap) -> list[object]:
        tagged = sorted(
            (
                (-svc.tags[tag], service_id)
                for service_id, svc in self._services.items()
                if tag in svc.tags
            ),
        )
        results: list[object] = []
        errors: list[BaseException] = []
        for _, service_id in tagged:
            try:
                results.append(self._get(ctx, service_id, bag))
            except ContainerError as exc:
                errors.append(exc)
        if errors:
            raise prefix(f"Container.getTaggedBy({quote(tag)}): ", *errors)
        return results

    def _get_param(self, param_id: str) -> object:
        try:
            return self._get_param_cached(param_id)
        except ContainerError as exc:
            raise prefix(f"getParam({quote(param_id)}): ", exc) from exc

    def _get_param_cached(self, param_id: str) -> object:
        dep = self._params.get(param_id)
        if dep is None:
            raise ParamNotFoundError()

        with self._param_locks[param_id]:
            cached, found = self._cache_params.get(param_id)
            if found:
                return cached

            cycles = self._graph_builder.param_circular_deps(param_id)
            if cycles is not None:
                raise prefix("circular dependencies: ", cycles)

            result = self._resolve_dep(background(), None, dep)
            self._cache_params.set(param_id, result)
            return result

    def _resolve_deps(
        self,
        ctx: Context,
        bag: SafeMap | None,
        deps: Sequence[Dependency],
    ) -> list[object]:
        results: list[object] = []
        errors: list[BaseException | None] = []
        for i, dep in enumerate(deps):
            try:
                results.append(self._resolve_dep(ctx, bag, dep))
            except ContainerError as exc:
                results.append(None)
                errors.append(prefix(f"arg #{i}: ", exc))
        error = join(*errors)
        if error is not None:
            raise error
        return results

    def _resolve_dep(self, ctx: Context, bag: SafeMap | None, dep: Dependency) -> object:
        kind = dep.kind
        if kind is DependencyKind.VALUE:
            return dep.value
        if kind is DependencyKind.SERVICE:
            return self._get(ctx, dep.ref, bag if bag is not None else SafeMap())
        if kind is DependencyKind.PARAM:
            return self._get_param(dep.ref)
        if kind is DependencyKind.TAG:
            return self._get_tagged_by(ctx, dep.ref, bag if bag is not None else SafeMap())
        if kind is DependencyKind.PROVIDER:
            return call_provider(dep.provider)
        if kind is DependencyKind.CONTAINER:
            return self
        if kind is DependencyKind.CONTEXT:
            return ctx
        raise ContainerError(f"unknown dependency type {kind!r}")


def context_with_container(parent: Context, container: Container) -> Context:
    """
    Return a child of ``parent`` carrying a contextual bag of ``container``.

    ``parent`` must be cancellable: until it is done, ``container.hot_swap``
    waits. If ``parent`` is already bound to ``container`` it is returned as is.

        with with_cancel(background()) as ctx:
            ctx = context_with_container(ctx, c)
            c.get_in_context(ctx, "tx")
    """
    if parent is None:
        msg = "nil context"
        logger.error(msg)
        raise ValueError(msg)
    if container is None:
        msg = "nil container"
        logger.error(msg)
        raise ValueError(msg)

    with container._context_lock.read_lock():
        if parent.value(container._key) is not None:
            return parent
        if parent.done is None:
            msg = "ctx.done is None: waiting for a context that is never done blocks forever"
            logger.error(msg)
            raise ValueError(msg)
        ctx = parent.with_value(container._key, SafeMap())
        container._group_context.add(ctx)
        return ctx
