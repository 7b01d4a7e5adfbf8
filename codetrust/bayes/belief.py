"""
Loopy Belief Propagation
=========================

Sum-product message passing on the factor graph, used when the network
has directed cycles. Exact on trees; approximate (and not guaranteed to
converge) on loopy graphs.

Design Decisions:
    - Flooding schedule: every factor→variable message is recomputed from
      the previous round's variable→factor messages, then every
      variable→factor message from the new factor→variable messages
    - Messages are normalized after each update to avoid underflow
    - Convergence: the summed L1 change of all beliefs, and the largest
      message change, both fall below ``tolerance``
    - Failing to converge within ``max_iter`` raises NonConvergence, which
      the engine turns into a junction-tree fallback
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from codetrust.bayes.factor import Factor, normalize_vector
from codetrust.errors import NonConvergence

logger = logging.getLogger("codetrust.bayes.belief")


@dataclass
class BeliefState:
    """Converged beliefs for every unobserved variable."""
    beliefs: dict[int, np.ndarray]
    iterations: int
    residual: float


def _factor_to_variable(
    factor: Factor, target: int, incoming: dict[int, np.ndarray]
) -> np.ndarray:
    values = factor.values
    for axis, var in enumerate(factor.variables):
        if var == target:
            continue
        shape = [1] * values.ndim
        shape[axis] = values.shape[axis]
        values = values * incoming[var].reshape(shape)
    axes = tuple(i for i, v in enumerate(factor.variables) if v != target)
    return values.sum(axis=axes) if axes else values


def loopy_belief_propagation(
    factors: Sequence[Factor],
    max_iter: int = 50,
    tolerance: float = 1e-4,
) -> BeliefState:
    """
    Run sum-product until beliefs stabilise.

    Args:
        factors: Factors already reduced by hard evidence.
        max_iter: Iteration cap.
        tolerance: Threshold on the summed L1 belief change.

    Raises:
        NonConvergence: If ``max_iter`` rounds pass without converging.
        InvalidNetwork: If a message loses all mass (impossible evidence).
    """
    factors = [f for f in factors if f.variables]
    cards: dict[int, int] = {}
    neighbours: dict[int, list[int]] = {}
    for index, factor in enumerate(factors):
        for var in factor.variables:
            cards[var] = factor.card_of(var)
            neighbours.setdefault(var, []).append(index)

    var_to_factor = {
        (var, index): np.full(cards[var], 1.0 / cards[var])
        for var, indices in neighbours.items()
        for index in indices
    }
    factor_to_var = dict(var_to_factor)
    beliefs = {var: np.full(card, 1.0 / card) for var, card in cards.items()}

    residual = float("inf")
    for iteration in range(1, max_iter + 1):
        new_f2v: dict[tuple[int, int], np.ndarray] = {}
        for index, factor in enumerate(factors):
            incoming = {var: var_to_factor[(var, index)] for var in factor.variables}
            for var in factor.variables:
                msg = _factor_to_variable(factor, var, incoming)
                new_f2v[(var, index)] = normalize_vector(msg)

        new_v2f: dict[tuple[int, int], np.ndarray] = {}
        new_beliefs: dict[int, np.ndarray] = {}
        for var, indices in neighbours.items():
            full = np.ones(cards[var])
            for index in indices:
                full = full * new_f2v[(var, index)]
            new_beliefs[var] = normalize_vector(full)
            for index in indices:
                others = np.ones(cards[var])
                for other in indices:
                    if other != index:
                        others = others * new_f2v[(var, other)]
                new_v2f[(var, index)] = normalize_vector(others)

        residual = sum(float(np.abs(new_beliefs[v] - beliefs[v]).sum()) for v in cards)
        message_change = max(
            (float(np.abs(new_f2v[k] - factor_to_var[k]).max()) for k in new_f2v),
            default=0.0,
        )
        factor_to_var, var_to_factor, beliefs = new_f2v, new_v2f, new_beliefs

        if residual < tolerance and message_change < tolerance:
            logger.debug(f"Belief propagation converged in {iteration} iterations")
            return BeliefState(beliefs=beliefs, iterations=iteration, residual=residual)

    raise NonConvergence(max_iter, residual)
