"""
Static dependency graph over declared resource nodes.

Edges are derived from the cells each node reads, so the graph can be
checked for cycles before any backend call is made.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Iterable

from funcstack.core.errors import CompositionError, CyclicDependencyError
from funcstack.core.resource import ResourceNode


@dataclass
class DAGNode:
    """Represents a resource in the dependency graph."""

    name: str
    resource: ResourceNode
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)


class DAG:
    """
    Directed graph of resource dependencies.

    Provides:
    1. Implicit edges from cell references
    2. Cycle detection
    3. Topological ordering and execution levels for display
    """

    def __init__(self):
        self.nodes: dict[str, DAGNode] = {}
        self._adjacency_list: dict[str, list[str]] = defaultdict(list)

    @classmethod
    def from_resources(cls, resources: Iterable[ResourceNode]) -> "DAG":
        """
        Build the graph implied by the cells in each resource's inputs.

        Raises:
            CompositionError: If an input references a resource that is not
                part of the graph
        """
        dag = cls()
        resources = list(resources)
        for resource in resources:
            dag.add_node(resource)

        for resource in resources:
            for dependency in sorted(resource.dependencies()):
                if dependency not in dag.nodes:
                    raise CompositionError(
                        f"Resource '{resource.name}' references undeclared resource '{dependency}'"
                    )
                dag.add_edge(dependency, resource.name)

        return dag

    def add_node(self, resource: ResourceNode) -> None:
        """Add a resource to the graph."""
        if resource.name not in self.nodes:
            self.nodes[resource.name] = DAGNode(name=resource.name, resource=resource)

    def add_edge(self, from_node: str, to_node: str) -> None:
        """
        Add a directed edge from one node to another.

        Args:
            from_node: The node that ``to_node`` depends on
            to_node: The dependent node
        """
        if from_node not in self.nodes or to_node not in self.nodes:
            raise ValueError("Both nodes must exist in DAG before adding edge")
        if to_node in self._adjacency_list[from_node]:
            return

        self._adjacency_list[from_node].append(to_node)
        self.nodes[to_node].dependencies.append(from_node)
        self.nodes[from_node].dependents.append(to_node)

    def get_dependencies(self, node_name: str) -> list[str]:
        """Get all nodes that this node depends on."""
        return self.nodes[node_name].dependencies if node_name in self.nodes else []

    def get_dependents(self, node_name: str) -> list[str]:
        """Get all nodes that depend on this node."""
        return self.nodes[node_name].dependents if node_name in self.nodes else []

    def detect_cycles(self) -> list[str] | None:
        """
        Find a dependency cycle.

        Returns:
            The cycle as a path that starts and ends on the same node,
            or None if the graph is acyclic
        """
        visited: set[str] = set()
        on_path: set[str] = set()
        path: list[str] = []

        def visit(node: str) -> list[str] | None:
            visited.add(node)
            on_path.add(node)
            path.append(node)

            for neighbor in self._adjacency_list[node]:
                if neighbor in on_path:
                    return path[path.index(neighbor):] + [neighbor]
                if neighbor not in visited:
                    cycle = visit(neighbor)
                    if cycle:
                        return cycle

            path.pop()
            on_path.remove(node)
            return None

        for node in self.nodes:
            if node not in visited:
                cycle = visit(node)
                if cycle:
                    return cycle

        return None

    def validate(self) -> None:
        """
        Raises:
            CyclicDependencyError: If the graph contains a cycle
        """
        cycle = self.detect_cycles()
        if cycle:
            raise CyclicDependencyError(cycle)

    def topological_sort(self) -> list[str]:
        """
        Return an order in which every node follows its dependencies.

        Ties keep declaration order.

        Raises:
            CyclicDependencyError: If the graph contains a cycle
        """
        in_degree = {node: len(self.nodes[node].dependencies) for node in self.nodes}
        queue = deque(node for node, degree in in_degree.items() if degree == 0)
        result = []

        while queue:
            node = queue.popleft()
            result.append(node)
            for dependent in self._adjacency_list[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self.nodes):
            self.validate()

        return result

    def get_execution_levels(self) -> list[list[str]]:
        """
        Group nodes into levels.

        Nodes in the same level have no dependencies on each other and can
        be in flight at the same time.
        """
        level_of: dict[str, int] = {}
        levels: list[list[str]] = []

        for node in self.topological_sort():
            level = max(
                (level_of[dep] + 1 for dep in self.get_dependencies(node)),
                default=0,
            )
            level_of[node] = level
            while len(levels) <= level:
                levels.append([])
            levels[level].append(node)

        return levels

    def to_dict(self) -> dict[str, Any]:
        """Convert the graph to a dictionary for serialization."""
        return {
            "nodes": [
                {
                    "name": node.name,
                    "kind": node.resource.kind.value,
                    "dependencies": node.dependencies,
                    "dependents": node.dependents,
                }
                for node in self.nodes.values()
            ],
            "edges": [
                {"from": from_node, "to": to_node}
                for from_node, to_nodes in self._adjacency_list.items()
                for to_node in to_nodes
            ],
        }

    def __repr__(self) -> str:
        edges = sum(len(targets) for targets in self._adjacency_list.values())
        return f"DAG(nodes={len(self.nodes)}, edges={edges})"
