"""
Variable Elimination
=====================

Exact inference for acyclic networks. Variables other than the query are
summed out one at a time; the next variable to go is the one with the
fewest neighbours in the current interaction graph (min-degree), ties
broken by the lowest node id so the order is reproducible.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np

from codetrust.bayes.factor import Factor, multiply_all, normalize_vector

logger = logging.getLogger("codetrust.bayes.elimination")


def interaction_graph(factors: Iterable[Factor]) -> dict[int, set[int]]:
    """Undirected graph connecting every pair of variables that share a factor."""
    graph: dict[int, set[int]] = {}
    for factor in factors:
        for v in factor.variables:
            graph.setdefault(v, set()).update(u for u in factor.variables if u != v)
    return graph


def min_degree_order(factors: Sequence[Factor], keep: Iterable[int] = ()) -> list[int]:
    """
    Greedy min-degree elimination order over all variables except ``keep``.

    Degrees are recomputed after each elimination, since eliminating a
    variable connects all of its neighbours.
    """
    graph = interaction_graph(factors)
    keep = set(keep)
    remaining = sorted(v for v in graph if v not in keep)
    order: list[int] = []
    while remaining:
        var = min(remaining, key=lambda v: (len(graph[v]), v))
        neighbours = graph.pop(var)
        for u in neighbours:
            graph[u].discard(var)
            graph[u].update(n for n in neighbours if n != u)
        remaining.remove(var)
        order.append(var)
    return order


def variable_elimination(factors: Sequence[Factor], query: int) -> np.ndarray:
    """
    Posterior marginal of ``query`` given factors already reduced by evidence.

    Raises:
        InvalidNetwork: If the evidence has zero probability.
    """
    pool = list(factors)
    order = min_degree_order(pool, keep=[query])
    logger.debug(f"Eliminating {len(order)} variables for query {query}")

    for var in order:
        touching = [f for f in pool if var in f]
        if not touching:
            continue
        pool = [f for f in pool if var not in f]
        pool.append(multiply_all(touching).sum_out([var]))

    joint = multiply_all(pool)
    return normalize_vector(joint.marginal(query))
