"""
# DAG

A DAG, or directed acyclic graph, keeps track of the dependencies between a project's models so
that they can be built upstream first.
"""

from __future__ import annotations

import typing as t

from sqlunit.utils.errors import ConfigError

T = t.TypeVar("T", bound=t.Hashable)


class DAG(t.Generic[T]):
    def __init__(self, graph: t.Optional[t.Dict[T, t.Set[T]]] = None):
        self._dag: t.Dict[T, t.Set[T]] = {}
        self._sorted: t.Optional[t.List[T]] = None

        for node, dependencies in (graph or {}).items():
            self.add(node, dependencies)

    def add(self, node: T, dependencies: t.Optional[t.Iterable[T]] = None) -> None:
        """Add a node to the graph with an optional upstream dependency.

        Args:
            node: The node to add.
            dependencies: Optional dependencies to add to the node.
        """
        self._sorted = None
        if node not in self._dag:
            self._dag[node] = set()
        if dependencies:
            dependencies = list(dependencies)
            self._dag[node].update(dependencies)
            for d in dependencies:
                self.add(d)

    def subdag(self, *nodes: T) -> DAG[T]:
        """Create a new subdag given node(s).

        Args:
            nodes: The nodes of the new subdag.

        Returns:
            A new dag consisting of the specified nodes and upstream.
        """
        queue = set(nodes)
        dag: DAG[T] = DAG()

        while queue:
            node = queue.pop()
            deps = self._dag.get(node, set())
            dag.add(node, deps)
            queue.update(deps)

        return dag

    @property
    def graph(self) -> t.Dict[T, t.Set[T]]:
        return {node: deps.copy() for node, deps in self._dag.items()}

    @property
    def sorted(self) -> t.List[T]:
        """Returns a list of nodes sorted in topological order."""
        if self._sorted is None:
            self._sorted = []
            unprocessed_nodes = self.graph

            while unprocessed_nodes:
                next_nodes = {node for node, deps in unprocessed_nodes.items() if not deps}

                if not next_nodes:
                    raise ConfigError(
                        "Detected a cycle in the DAG. "
                        "Please make sure there are no circular references between models."
                        "\nPossible candidates to check for circular references: "
                        + ", ".join(str(node) for node in sorted(unprocessed_nodes, key=str))
                    )

                for node in next_nodes:
                    unprocessed_nodes.pop(node)

                for deps in unprocessed_nodes.values():
                    deps -= next_nodes

                # Sort to make the order deterministic
                self._sorted.extend(sorted(next_nodes, key=str))

        return self._sorted

    def __contains__(self, item: T) -> bool:
        return item in self._dag

    def __iter__(self) -> t.Iterator[T]:
        yield from self.sorted
