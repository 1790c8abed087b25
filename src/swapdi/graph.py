from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

import networkx as nx

from .errors import CircularDependencyError, GroupError, join


class NodeKind(Enum):
    SERVICE = "service"
    PARAM = "param"
    TAG = "tag"
    DECORATED_BY_TAG = "decorate"
    DECORATOR = "decorator"


@dataclass(frozen=True)
class Node:
    kind: NodeKind
    resource: str

    @property
    def id(self) -> str:
        if self.kind is NodeKind.DECORATOR:
            return f"decorator(#{self.resource})"
        return f"{self.kind.value}({self.resource})"

    @property
    def pretty(self) -> str:
        if self.kind is NodeKind.SERVICE:
            return f"@{self.resource}"
        if self.kind is NodeKind.PARAM:
            return f"%{self.resource}%"
        if self.kind is NodeKind.TAG:
            return f"!tagged {self.resource}"
        if self.kind is NodeKind.DECORATED_BY_TAG:
            return f"decorate(!tagged {self.resource})"
        return f"decorator(#{self.resource})"

    def is_service(self) -> bool:
        return self.kind is NodeKind.SERVICE

    def is_param(self) -> bool:
        return self.kind is NodeKind.PARAM


def service_node(service_id: str) -> Node:
    return Node(NodeKind.SERVICE, service_id)


def param_node(param_id: str) -> Node:
    return Node(NodeKind.PARAM, param_id)


def tag_node(tag: str) -> Node:
    return Node(NodeKind.TAG, tag)


def decorated_by_tag_node(tag: str) -> Node:
    return Node(NodeKind.DECORATED_BY_TAG, tag)


def decorator_node(index: int) -> Node:
    return Node(NodeKind.DECORATOR, str(index))


class DependencyGraph:
    """
    Directed graph of services, params, tags, decorated-by-tag nodes and
    decorators. An edge ``a -> b`` means "a depends on b".

    Graph vertices are integers handed out in order of first use, and cycle
    enumeration is sorted by those integers, so the output depends only on
    the order in which edges were added. A self-dependency is stored through
    an anonymous helper vertex (``a -> h -> a``), which keeps that order
    stable as well; helper vertices never appear in the output.
    """

    def __init__(self) -> None:
        self._graph = nx.DiGraph()
        self._vertices: dict[str, int] = {}
        self._nodes: dict[int, Node] = {}
        self._next = 0

    def _next_vertex(self) -> int:
        vertex = self._next
        self._next += 1
        self._graph.add_node(vertex)
        return vertex

    def _vertex(self, node: Node) -> int:
        vertex = self._vertices.get(node.id)
        if vertex is None:
            vertex = self._next_vertex()
            self._vertices[node.id] = vertex
            self._nodes[vertex] = node
        return vertex

    def add_dep(self, src: Node, dst: Node) -> None:
        src_vertex = self._vertex(src)
        dst_vertex = self._vertex(dst)
        if src_vertex == dst_vertex:
            helper = self._next_vertex()
            self._graph.add_edge(src_vertex, helper)
            self._graph.add_edge(helper, dst_vertex)
            return
        self._graph.add_edge(src_vertex, dst_vertex)

    def add_service(self, service_id: str, tags: Iterable[str]) -> None:
        svc = service_node(service_id)
        for t in tags:
            self.add_dep(tag_node(t), svc)
            self.add_dep(svc, decorated_by_tag_node(t))

    def service_depends_on_services(self, service_id: str, ids: Iterable[str]) -> None:
        svc = service_node(service_id)
        for dep_id in ids:
            self.add_dep(svc, service_node(dep_id))

    def service_depends_on_params(self, service_id: str, ids: Iterable[str]) -> None:
        svc = service_node(service_id)
        for dep_id in ids:
            self.add_dep(svc, param_node(dep_id))

    def service_depends_on_tags(self, service_id: str, tags: Iterable[str]) -> None:
        svc = service_node(service_id)
        for t in tags:
            self.add_dep(svc, tag_node(t))

    def add_decorator(self, index: int, tag: str) -> None:
        self.add_dep(decorated_by_tag_node(tag), decorator_node(index))

    def decorator_depends_on_services(self, index: int, ids: Iterable[str]) -> None:
        dec = decorator_node(index)
        for dep_id in ids:
            self.add_dep(dec, service_node(dep_id))

    def decorator_depends_on_params(self, index: int, ids: Iterable[str]) -> None:
        dec = decorator_node(index)
        for dep_id in ids:
            self.add_dep(dec, param_node(dep_id))

    def decorator_depends_on_tags(self, index: int, tags: Iterable[str]) -> None:
        dec = decorator_node(index)
        for t in tags:
            self.add_dep(dec, tag_node(t))

    def param_depends_on_param(self, param_id: str, dep_id: str) -> None:
        self.add_dep(param_node(param_id), param_node(dep_id))

    def deps(self, service_id: str) -> list[Node]:
        """All direct and indirect dependencies of the service, itself excluded, sorted by node id."""
        vertex = self._vertices.get(service_node(service_id).id)
        if vertex is None:
            return []
        found = [
            self._nodes[v]
            for v in nx.descendants(self._graph, vertex)
            if v in self._nodes and v != vertex
        ]
        return sorted(found, key=lambda n: n.id)

    def circular_deps(self) -> list[list[Node]]:
        """
        Every directed cycle, closed (``[a, b, a]``) and normalized so that the
        service with the lowest id comes first.
        """
        cycles: list[list[int]] = []
        for cycle in nx.simple_cycles(self._graph):
            start = cycle.index(min(cycle))
            rotated = cycle[start:] + cycle[:start]
            rotated.append(rotated[0])
            cycles.append(rotated)
        cycles.sort()

        result: list[list[Node]] = []
        for cycle in cycles:
            nodes = [self._nodes[v] for v in cycle if v in self._nodes]
            result.append(normalize_cycle(nodes))
        return result


def normalize_cycle(cycle: list[Node]) -> list[Node]:
    """
    Rotate a closed cycle so that the service with the lowest id is first.

    [b, c, a, b] => [a, b, c, a]
    """
    lowest: int | None = None
    for i, node in enumerate(cycle[:-1]):
        if not node.is_service():
            continue
        if lowest is None or node.resource < cycle[lowest].resource:
            lowest = i
    if not lowest:
        return cycle
    opened = cycle[:-1]
    rotated = opened[lowest:] + opened[:lowest]
    return rotated + [rotated[0]]


def cycles_to_error(cycles: Iterable[list[Node]]) -> GroupError | None:
    errors = [
        CircularDependencyError(" -> ".join(node.pretty for node in cycle))
        for cycle in cycles
    ]
    return join(*errors)
