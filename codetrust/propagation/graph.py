"""
Dependency Graph Store
=======================

File-level dependency graph in an index-addressed arena. Edges point from
the dependent to its dependency; confidence changes travel the other way,
from a dependency to everything that depends on it.

Design Decisions:
    - Malformed edges (unknown endpoint, self-loop, weight outside (0, 1])
      are dropped with a warning instead of failing the whole refresh,
      since edges come from external static analysis
    - Cycles are allowed; the propagation sweep bounds itself
    - ``replace_dependencies`` swaps one file's outgoing edges in place so
      incremental re-analysis never rebuilds the graph

Usage:
    graph = DependencyGraph()
    graph.add_file("app.py", 0.9)
    graph.add_file("db.py", 0.8)
    graph.add_dependency("app.py", "db.py", DependencyKind.IMPORT)
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from pydantic import ValidationError

from codetrust.schemas.graph import DependencyEdge, DependencyKind, FileNode
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.propagation.graph")

EdgeSpec = Union[DependencyEdge, tuple]


class DependencyGraph:
    """Arena of FileNodes with dependent/dependency adjacency."""

    def __init__(self):
        self._index: dict[str, int] = {}
        self._paths: list[str] = []
        self._scores: list[float] = []
        self._dependencies: list[dict[int, DependencyEdge]] = []
        self._dependents: list[dict[int, DependencyEdge]] = []

    # ── Nodes ──────────────────────────────────────────────────────

    def add_file(self, path: str, score: float = 0.5) -> int:
        """Add a file (or update its score) and return its id."""
        node = FileNode(path=path, score=clamp01(score))
        if path in self._index:
            node_id = self._index[path]
            self._scores[node_id] = node.score
            return node_id
        node_id = len(self._paths)
        self._index[path] = node_id
        self._paths.append(path)
        self._scores.append(node.score)
        self._dependencies.append({})
        self._dependents.append({})
        return node_id

    def __contains__(self, path: object) -> bool:
        return path in self._index

    def __len__(self) -> int:
        return len(self._paths)

    @property
    def paths(self) -> list[str]:
        return list(self._paths)

    def node(self, path: str) -> FileNode:
        return FileNode(path=path, score=self.score(path))

    def score(self, path: str) -> float:
        return self._scores[self._id(path)]

    def set_score(self, path: str, score: float) -> float:
        value = clamp01(score)
        self._scores[self._id(path)] = value
        return value

    def scores(self) -> dict[str, float]:
        return dict(zip(self._paths, self._scores))

    def _id(self, path: str) -> int:
        try:
            return self._index[path]
        except KeyError:
            raise KeyError(f"Unknown file: {path!r}") from None

    # Id-based accessors for the propagation hot path.

    def id_of(self, path: str) -> int:
        return self._id(path)

    def path_of(self, node_id: int) -> str:
        return self._paths[node_id]

    def score_at(self, node_id: int) -> float:
        return self._scores[node_id]

    def set_score_at(self, node_id: int, score: float) -> None:
        self._scores[node_id] = clamp01(score)

    # ── Edges ──────────────────────────────────────────────────────

    def add_dependency(
        self,
        dependent: str,
        dependency: str,
        kind: DependencyKind = DependencyKind.IMPORT,
        weight: Optional[float] = None,
    ) -> Optional[DependencyEdge]:
        """
        Record that ``dependent`` relies on ``dependency``.

        Weight defaults to the kind's default weight. Returns the stored
        edge, or None if the edge was malformed and dropped.
        """
        try:
            kind = DependencyKind(kind)
            edge = DependencyEdge(
                dependent=dependent,
                dependency=dependency,
                kind=kind,
                weight=kind.default_weight if weight is None else weight,
            )
        except (ValidationError, ValueError) as e:
            logger.warning(f"Dropping malformed edge {dependent!r} -> {dependency!r}: {e}")
            return None
        return self.add_edge(edge)

    def add_edge(self, edge: DependencyEdge) -> Optional[DependencyEdge]:
        missing = [p for p in (edge.dependent, edge.dependency) if p not in self._index]
        if missing:
            logger.warning(
                f"Dropping edge {edge.dependent!r} -> {edge.dependency!r}: "
                f"unknown file(s) {missing}"
            )
            return None
        src, dst = self._index[edge.dependent], self._index[edge.dependency]
        self._dependencies[src][dst] = edge
        self._dependents[dst][src] = edge
        return edge

    def remove_dependency(self, dependent: str, dependency: str) -> bool:
        src, dst = self._id(dependent), self._id(dependency)
        if dst not in self._dependencies[src]:
            return False
        del self._dependencies[src][dst]
        del self._dependents[dst][src]
        return True

    def replace_dependencies(self, dependent: str, edges: Iterable[EdgeSpec]) -> int:
        """
        Replace all outgoing edges of ``dependent``.

        Each item is a DependencyEdge or a ``(dependency, kind[, weight])``
        tuple. Returns the number of edges kept after validation.
        """
        src = self._id(dependent)
        for dst in list(self._dependencies[src]):
            del self._dependents[dst][src]
        self._dependencies[src].clear()

        kept = 0
        for spec in edges:
            if isinstance(spec, DependencyEdge):
                if spec.dependent != dependent:
                    logger.warning(
                        f"Dropping edge for {spec.dependent!r} while refreshing {dependent!r}"
                    )
                    continue
                stored = self.add_edge(spec)
            else:
                dependency, kind, *rest = spec
                stored = self.add_dependency(dependent, dependency, kind, rest[0] if rest else None)
            kept += stored is not None
        return kept

    def dependents(self, path: str) -> list[DependencyEdge]:
        """Edges of files that depend on ``path``."""
        return list(self._dependents[self._id(path)].values())

    def dependencies(self, path: str) -> list[DependencyEdge]:
        return list(self._dependencies[self._id(path)].values())

    def dependent_ids(self, node_id: int) -> list[tuple[int, float]]:
        """(dependent id, edge weight) pairs; the propagation hot path."""
        return [(src, edge.weight) for src, edge in self._dependents[node_id].items()]

    def edge_count(self) -> int:
        return sum(len(d) for d in self._dependencies)

    # ── Partitioning ───────────────────────────────────────────────

    def components(self) -> list[list[str]]:
        """Weakly connected components, each sorted, in first-seen order."""
        parent = list(range(len(self._paths)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for src, deps in enumerate(self._dependencies):
            for dst in deps:
                ra, rb = find(src), find(dst)
                if ra != rb:
                    parent[ra] = rb

        groups: dict[int, list[str]] = {}
        for node_id, path in enumerate(self._paths):
            groups.setdefault(find(node_id), []).append(path)
        return [sorted(g) for g in groups.values()]

    def component_of(self) -> dict[str, int]:
        """Map each path to the index of its component in ``components()``."""
        return {path: i for i, group in enumerate(self.components()) for path in group}
