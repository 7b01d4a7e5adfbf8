"""
Bayesian Network Engine
========================

Posterior marginals over a BayesNet, with automatic algorithm selection.

Selection:
    1. Acyclic network     → variable elimination (exact, min-degree order)
    2. Directed cycle      → loopy belief propagation (max_iter, tolerance)
    3. BP does not converge → junction tree (exact)

Evidence:
    - Hard evidence clamps a node: every factor is reduced to the observed
      state, so the node is never summed over
    - Soft evidence multiplies a likelihood vector into the model as a
      unary factor

Usage:
    engine = BayesNetEngine()
    result = engine.infer(net, "rain", evidence={"wet": "true"})
    result.probability("true")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union

import numpy as np

from codetrust.bayes.belief import loopy_belief_propagation
from codetrust.bayes.elimination import variable_elimination
from codetrust.bayes.factor import Factor
from codetrust.bayes.junction import junction_tree_marginals
from codetrust.bayes.network import BayesNet, NodeRef
from codetrust.config import InferenceConfig
from codetrust.errors import InvalidNetwork, NonConvergence, UnknownNode

logger = logging.getLogger("codetrust.bayes.engine")

StateRef = Union[int, str, bool]


class InferenceMethod(str, Enum):
    VARIABLE_ELIMINATION = "variable_elimination"
    BELIEF_PROPAGATION = "belief_propagation"
    JUNCTION_TREE = "junction_tree"
    OBSERVED = "observed"


@dataclass
class InferenceResult:
    """Posterior marginal of one node."""
    node: str
    states: tuple[str, ...]
    distribution: np.ndarray
    method: InferenceMethod
    iterations: int = 0
    converged: bool = True

    def probability(self, state: StateRef = 1) -> float:
        """P(node = state). Defaults to the second state (``true`` on binary nodes)."""
        if isinstance(state, bool):
            index = int(state)
        elif isinstance(state, str):
            if state not in self.states:
                raise UnknownNode(self.node, f"unknown state {state!r}")
            index = self.states.index(state)
        else:
            index = int(state)
            if not 0 <= index < len(self.states):
                raise UnknownNode(self.node, f"state index {state} out of range")
        return float(self.distribution[index])

    def as_dict(self) -> dict[str, Any]:
        return {
            "node": self.node,
            "distribution": dict(zip(self.states, (float(p) for p in self.distribution))),
            "method": self.method.value,
            "iterations": self.iterations,
            "converged": self.converged,
        }


class BayesNetEngine:
    """
    Stateless inference front end.

    Args:
        max_iter: Belief propagation iteration cap.
        tolerance: Belief propagation convergence threshold.
    """

    def __init__(self, max_iter: int = 50, tolerance: float = 1e-4):
        self.max_iter = max_iter
        self.tolerance = tolerance

    @classmethod
    def from_config(cls, config: InferenceConfig) -> "BayesNetEngine":
        return cls(max_iter=config.max_iter, tolerance=config.tolerance)

    # ── Factor preparation ─────────────────────────────────────────

    def _prepare(
        self,
        net: BayesNet,
        evidence: Optional[Mapping[NodeRef, StateRef]],
        soft_evidence: Optional[Mapping[NodeRef, Sequence[float]]],
    ) -> tuple[list[Factor], dict[int, int]]:
        net.validate()

        observed: dict[int, int] = {}
        for ref, state in (evidence or {}).items():
            node_id = net.resolve(ref)
            observed[node_id] = net.resolve_state(node_id, state)

        factors = [Factor(n.parents + (n.id,), n.cpt) for n in net.nodes]

        for ref, likelihood in (soft_evidence or {}).items():
            node_id = net.resolve(ref)
            vec = np.asarray(likelihood, dtype=np.float64)
            card = net.node(node_id).cardinality
            if vec.shape != (card,):
                raise InvalidNetwork(
                    f"Soft evidence for {net.node(node_id).name!r} has shape {vec.shape}, "
                    f"expected ({card},)"
                )
            if np.any(vec < 0.0) or not np.all(np.isfinite(vec)) or vec.sum() <= 0.0:
                raise InvalidNetwork(
                    f"Soft evidence for {net.node(node_id).name!r} must be non-negative "
                    f"with positive mass"
                )
            factors.append(Factor((node_id,), vec))

        for node_id, state in observed.items():
            factors = [f.reduce(node_id, state) for f in factors]

        # Evidence consistency: the product of scalar leftovers must be positive.
        for f in factors:
            if not f.variables and float(f.values) <= 0.0:
                raise InvalidNetwork("Evidence has zero probability under the network")
        return factors, observed

    def _select(self, net: BayesNet) -> InferenceMethod:
        if net.is_acyclic():
            return InferenceMethod.VARIABLE_ELIMINATION
        return InferenceMethod.BELIEF_PROPAGATION

    # ── Public API ─────────────────────────────────────────────────

    def infer(
        self,
        net: BayesNet,
        query: NodeRef,
        evidence: Optional[Mapping[NodeRef, StateRef]] = None,
        soft_evidence: Optional[Mapping[NodeRef, Sequence[float]]] = None,
        method: Optional[InferenceMethod] = None,
    ) -> InferenceResult:
        """
        Posterior marginal of ``query`` given evidence.

        Args:
            net: The network (validated on every call).
            query: Node id or name.
            evidence: Hard evidence, node → state (index, name, or bool).
            soft_evidence: Likelihood vectors, node → one weight per state.
            method: Force an algorithm instead of automatic selection.

        Raises:
            InvalidNetwork: Malformed CPT or impossible evidence.
            UnknownNode: Bad query / evidence node or state.
        """
        return self.infer_many(net, [query], evidence, soft_evidence, method)[0]

    def infer_many(
        self,
        net: BayesNet,
        queries: Sequence[NodeRef],
        evidence: Optional[Mapping[NodeRef, StateRef]] = None,
        soft_evidence: Optional[Mapping[NodeRef, Sequence[float]]] = None,
        method: Optional[InferenceMethod] = None,
    ) -> list[InferenceResult]:
        """Posterior marginals for several nodes, sharing one BP / JT run."""
        query_ids = [net.resolve(q) for q in queries]
        factors, observed = self._prepare(net, evidence, soft_evidence)
        chosen = method or self._select(net)

        results: dict[int, InferenceResult] = {}
        for qid in query_ids:
            if qid in observed:
                node = net.node(qid)
                dist = np.zeros(node.cardinality)
                dist[observed[qid]] = 1.0
                results[qid] = InferenceResult(
                    node.name, node.states, dist, InferenceMethod.OBSERVED
                )

        pending = [q for q in query_ids if q not in results]
        if pending:
            results.update(self._run(net, factors, pending, chosen))

        return [results[q] for q in query_ids]

    def _run(
        self,
        net: BayesNet,
        factors: list[Factor],
        queries: list[int],
        method: InferenceMethod,
    ) -> dict[int, InferenceResult]:
        def result(qid: int, dist: np.ndarray, used: InferenceMethod,
                   iterations: int = 0, converged: bool = True) -> InferenceResult:
            node = net.node(qid)
            return InferenceResult(
                node.name, node.states, np.clip(dist, 0.0, 1.0), used, iterations, converged
            )

        if method == InferenceMethod.VARIABLE_ELIMINATION:
            return {
                q: result(q, variable_elimination(factors, q), method) for q in queries
            }

        if method == InferenceMethod.BELIEF_PROPAGATION:
            try:
                state = loopy_belief_propagation(factors, self.max_iter, self.tolerance)
            except NonConvergence as e:
                logger.info(f"{e}; falling back to junction tree")
                marginals = junction_tree_marginals(factors)
                return {
                    q: result(q, marginals[q], InferenceMethod.JUNCTION_TREE,
                              iterations=e.iterations, converged=False)
                    for q in queries
                }
            return {
                q: result(q, state.beliefs[q], method, iterations=state.iterations)
                for q in queries
            }

        marginals = junction_tree_marginals(factors)
        return {q: result(q, marginals[q], InferenceMethod.JUNCTION_TREE) for q in queries}
