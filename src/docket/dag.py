from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field


@dataclass
class DAGNode:
    """A node in the dependency graph."""

    id: str
    depends_on: list[str] = field(default_factory=list)


class CycleError(Exception):
    """Raised when a dependency cycle is detected."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")


class DAG:
    def __init__(self) -> None:
        self._nodes: dict[str, DAGNode] = {}

    def add_node(self, node_id: str, depends_on: list[str] | None = None) -> None:
        """Add or update a node in the DAG."""
        self._nodes[node_id] = DAGNode(id=node_id, depends_on=list(depends_on or []))

    @property
    def nodes(self) -> list[DAGNode]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    def dependents(self, node_id: str) -> list[str]:
        """Nodes that depend on this node."""
        return [n.id for n in self._nodes.values() if node_id in n.depends_on]

    def missing(self) -> dict[str, list[str]]:
        """Dependencies that reference nodes not in the graph, keyed by node."""
        result: dict[str, list[str]] = {}
        for node in self._nodes.values():
            unknown = [d for d in node.depends_on if d not in self._nodes]
            if unknown:
                result[node.id] = unknown
        return result

    def is_blocked(self, node_id: str, completed: set[str] | None = None) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False
        resolved = completed or set()
        return any(d not in resolved for d in node.depends_on)

    def ready(self, completed: set[str] | None = None) -> list[DAGNode]:
        """Nodes whose dependencies are all resolved (or have none)."""
        resolved = completed or set()
        return [
            n
            for n in self.nodes
            if n.id not in resolved and not self.is_blocked(n.id, resolved)
        ]

    def topological_sort(self) -> list[str]:
        """Return node ids in dependency order. Raises CycleError on cycles."""
        in_degree: dict[str, int] = {n: 0 for n in self._nodes}
        for node in self._nodes.values():
            for dep in node.depends_on:
                if dep in self._nodes:
                    in_degree[node.id] += 1

        queue: deque[str] = deque(n for n, d in in_degree.items() if d == 0)
        result: list[str] = []

        while queue:
            current = queue.popleft()
            result.append(current)
            for dependent in self.dependents(current):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self._nodes):
            raise CycleError(self.find_cycle() or [])

        return result

    def find_cycle(self) -> list[str] | None:
        """Depth-first search for one cycle; returns it closed (first == last)."""
        visiting: list[str] = []
        on_path: set[str] = set()
        done: set[str] = set()

        def visit(node_id: str) -> list[str] | None:
            visiting.append(node_id)
            on_path.add(node_id)
            for dep in self._nodes[node_id].depends_on:
                if dep not in self._nodes or dep in done:
                    continue
                if dep in on_path:
                    start = visiting.index(dep)
                    return [*visiting[start:], dep]
                found = visit(dep)
                if found:
                    return found
            visiting.pop()
            on_path.discard(node_id)
            done.add(node_id)
            return None

        for node_id in self._nodes:
            if node_id not in done:
                found = visit(node_id)
                if found:
                    return found
        return None
