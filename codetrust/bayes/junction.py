"""
Junction Tree Inference
========================

Exact fallback for networks on which loopy belief propagation does not
converge.

Data Flow:
    factors → moral graph → min-fill triangulation → maximal cliques
            → maximum spanning tree on separator size
            → Shafer-Shenoy collect / distribute → variable marginals

Design Decisions:
    - The moral graph is read straight off the factor scopes: a CPT's scope
      is a node plus its parents, so connecting each scope marries parents
    - Min-fill picks the variable whose elimination adds the fewest edges,
      ties broken by lowest id
    - Shafer-Shenoy keeps clique potentials untouched and stores one message
      per directed tree edge, so no division is needed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Sequence

import numpy as np

from codetrust.bayes.elimination import interaction_graph
from codetrust.bayes.factor import Factor, multiply_all, normalize_vector

logger = logging.getLogger("codetrust.bayes.junction")


def moralize(factors: Sequence[Factor]) -> dict[int, set[int]]:
    return interaction_graph(factors)


def triangulate_min_fill(graph: dict[int, set[int]]) -> list[frozenset[int]]:
    """
    Eliminate variables by min-fill and return the maximal cliques formed.

    The input graph is not modified.
    """
    work = {v: set(n) for v, n in graph.items()}
    cliques: list[frozenset[int]] = []

    def fill_in(v: int) -> int:
        nbrs = list(work[v])
        return sum(1 for a, b in combinations(nbrs, 2) if b not in work[a])

    while work:
        var = min(work, key=lambda v: (fill_in(v), v))
        nbrs = work.pop(var)
        cliques.append(frozenset(nbrs | {var}))
        for a in nbrs:
            work[a].discard(var)
            work[a].update(n for n in nbrs if n != a)

    maximal = [c for c in cliques if not any(c < other for other in cliques)]
    unique: list[frozenset[int]] = []
    for clique in maximal:
        if clique not in unique:
            unique.append(clique)
    return unique


def maximum_spanning_tree(cliques: Sequence[frozenset[int]]) -> list[tuple[int, int]]:
    """
    Kruskal on separator size; edges of weight 0 join disconnected parts.

    Returns tree edges as (i, j) pairs of clique indices.
    """
    parent = list(range(len(cliques)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    candidates = sorted(
        combinations(range(len(cliques)), 2),
        key=lambda e: (-len(cliques[e[0]] & cliques[e[1]]), e),
    )
    edges: list[tuple[int, int]] = []
    for i, j in candidates:
        ri, rj = find(i), find(j)
        if ri != rj:
            parent[ri] = rj
            edges.append((i, j))
            if len(edges) == len(cliques) - 1:
                break
    return edges


@dataclass
class JunctionTree:
    """Cliques, tree edges and per-clique potentials."""
    cliques: list[frozenset[int]]
    edges: list[tuple[int, int]]
    potentials: list[Factor]
    adjacency: dict[int, list[int]] = field(default_factory=dict)

    def __post_init__(self):
        self.adjacency = {i: [] for i in range(len(self.cliques))}
        for i, j in self.edges:
            self.adjacency[i].append(j)
            self.adjacency[j].append(i)

    @classmethod
    def build(cls, factors: Sequence[Factor]) -> "JunctionTree":
        factors = [f for f in factors if f.variables]
        cards = {v: f.card_of(v) for f in factors for v in f.variables}
        cliques = triangulate_min_fill(moralize(factors))
        edges = maximum_spanning_tree(cliques)

        assigned: list[list[Factor]] = [[] for _ in cliques]
        for factor in factors:
            scope = set(factor.variables)
            home = next(i for i, c in enumerate(cliques) if scope <= c)
            assigned[home].append(factor)

        potentials = []
        for clique, members in zip(cliques, assigned):
            variables = tuple(sorted(clique))
            base = Factor(variables, np.ones(tuple(cards[v] for v in variables)))
            potentials.append(multiply_all([base, *members]))
        logger.debug(
            f"Junction tree: {len(cliques)} cliques, "
            f"max size {max((len(c) for c in cliques), default=0)}"
        )
        return cls(cliques=cliques, edges=edges, potentials=potentials)

    def _message(self, src: int, dst: int, messages: dict[tuple[int, int], Factor]) -> Factor:
        incoming = [messages[(k, src)] for k in self.adjacency[src] if k != dst]
        product = multiply_all([self.potentials[src], *incoming])
        separator = self.cliques[src] & self.cliques[dst]
        result = product.sum_out([v for v in product.variables if v not in separator])
        total = float(result.values.sum())
        return Factor(result.variables, result.values / total) if total > 0 else result

    def calibrate(self) -> dict[tuple[int, int], Factor]:
        """Shafer-Shenoy: collect towards clique 0, then distribute outwards."""
        messages: dict[tuple[int, int], Factor] = {}
        if not self.cliques:
            return messages

        order: list[tuple[int, int]] = []  # (node, parent) in DFS pre-order
        stack: list[tuple[int, int]] = [(0, -1)]
        while stack:
            node, par = stack.pop()
            order.append((node, par))
            for nxt in self.adjacency[node]:
                if nxt != par:
                    stack.append((nxt, node))

        for node, par in reversed(order):
            if par >= 0:
                messages[(node, par)] = self._message(node, par, messages)
        for node, par in order:
            if par >= 0:
                messages[(par, node)] = self._message(par, node, messages)
        return messages

    def marginals(self) -> dict[int, np.ndarray]:
        messages = self.calibrate()
        result: dict[int, np.ndarray] = {}
        for index in sorted(range(len(self.cliques)), key=lambda i: len(self.cliques[i])):
            pending = [v for v in self.cliques[index] if v not in result]
            if not pending:
                continue
            incoming = [messages[(k, index)] for k in self.adjacency[index]]
            belief = multiply_all([self.potentials[index], *incoming])
            for var in pending:
                result[var] = normalize_vector(belief.marginal(var))
        return result


def junction_tree_marginals(factors: Sequence[Factor]) -> dict[int, np.ndarray]:
    """Exact marginals of every unobserved variable."""
    return JunctionTree.build(factors).marginals()
