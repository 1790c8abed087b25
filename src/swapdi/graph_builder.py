from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from .dependency import DependencyKind, split_refs
from .errors import GroupError
from .graph import DependencyGraph, Node, cycles_to_error
from .scope import Scope

if TYPE_CHECKING:
    from .container import Container


class GraphBuilder:
    """
    Analyzes the dependencies of a container to detect circular dependencies
    and to resolve the effective scope of services with ``Scope.DEFAULT``.

    Results are cached by ``warm_up`` until ``invalidate``. It is not
    thread-safe; the container calls it under its global lock.
    """

    def __init__(self, container: Container) -> None:
        self._container = container
        self._services_cycles: dict[str, list[int]] = {}
        self._params_cycles: dict[str, list[int]] = {}
        self._scopes: dict[str, Scope] = {}
        self._cycles: list[list[Node]] = []
        self._warm = False

    @property
    def warm(self) -> bool:
        return self._warm

    def invalidate(self) -> None:
        self._services_cycles = {}
        self._params_cycles = {}
        self._scopes = {}
        self._cycles = []
        self._warm = False

    def warm_up(self) -> None:
        c = self._container
        graph = DependencyGraph()

        # sorted, so cycles are enumerated in the same order on every run
        for service_id in sorted(c._services):
            svc = c._services[service_id]
            graph.add_service(service_id, sorted(svc.tags))

            services, params, tags = split_refs(svc.all_deps())
            if svc.factory_service_id:
                services.insert(0, svc.factory_service_id)
            graph.service_depends_on_services(service_id, services)
            graph.service_depends_on_params(service_id, params)
            graph.service_depends_on_tags(service_id, tags)

        for index, decorator in enumerate(c._decorators):
            graph.add_decorator(index, decorator.tag)

            services, params, tags = split_refs(list(decorator.deps))
            graph.decorator_depends_on_services(index, services)
            graph.decorator_depends_on_params(index, params)
            graph.decorator_depends_on_tags(index, tags)

        for param_id in sorted(c._params):
            dep = c._params[param_id]
            if dep.kind is DependencyKind.PARAM:
                graph.param_depends_on_param(param_id, dep.ref)

        self._cycles = graph.circular_deps()
        self._warm_up_cycles()
        self._warm_up_scopes(graph)
        self._warm = True
        logger.debug(
            f"Dependency graph warmed up: {len(c._services)} services, "
            f"{len(c._params)} params, {len(self._cycles)} cycles"
        )

    def _warm_up_cycles(self) -> None:
        self._services_cycles = {}
        self._params_cycles = {}
        for cycle_id, cycle in enumerate(self._cycles):
            # the first and the last nodes are the same one
            for node in cycle[1:]:
                if node.is_service():
                    self._services_cycles.setdefault(node.resource, []).append(cycle_id)
                elif node.is_param():
                    self._params_cycles.setdefault(node.resource, []).append(cycle_id)

    def _warm_up_scopes(self, graph: DependencyGraph) -> None:
        services = self._container._services
        self._scopes = {}
        for service_id in sorted(services):
            if services[service_id].scope is not Scope.DEFAULT:
                continue
            contextual = any(
                node.is_service()
                and node.resource in services
                and services[node.resource].scope is Scope.CONTEXTUAL
                for node in graph.deps(service_id)
            )
            self._scopes[service_id] = Scope.CONTEXTUAL if contextual else Scope.SHARED

    def resolve_scope(self, service_id: str) -> Scope:
        """CONTEXTUAL when any dependency is contextual, otherwise SHARED."""
        scope = self._scopes.get(service_id)
        if scope is None:
            msg = f"scope for {service_id!r} does not exist in cache"
            logger.error(msg)
            raise RuntimeError(msg)
        return scope

    def circular_deps(self) -> GroupError | None:
        return cycles_to_error(self._cycles)

    def service_circular_deps(self, service_id: str) -> GroupError | None:
        return cycles_to_error(self._cycles[i] for i in self._services_cycles.get(service_id, ()))

    def param_circular_deps(self, param_id: str) -> GroupError | None:
        return cycles_to_error(self._cycles[i] for i in self._params_cycles.get(param_id, ()))
