"""
Discrete Factors
=================

A factor is a non-negative table over a tuple of variable ids. All three
inference algorithms are written in terms of the four operations here:
product, sum-out, reduce (clamp to observed state), and normalize.

Design Decisions:
    - Products broadcast instead of looping: each operand is transposed
      into the union's variable order and reshaped with singleton axes
    - A factor with no variables is a scalar (0-d array); it appears when
      every variable of a CPT is observed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from codetrust.errors import InvalidNetwork


@dataclass
class Factor:
    """Table ``values`` with one axis per entry of ``variables``."""
    variables: tuple[int, ...]
    values: np.ndarray

    def __post_init__(self):
        self.variables = tuple(int(v) for v in self.variables)
        self.values = np.asarray(self.values, dtype=np.float64)
        if self.values.ndim != len(self.variables):
            raise InvalidNetwork(
                f"Factor over {self.variables} has {self.values.ndim} axes"
            )

    @property
    def cards(self) -> tuple[int, ...]:
        return tuple(self.values.shape)

    def card_of(self, var: int) -> int:
        return self.values.shape[self.variables.index(var)]

    def __contains__(self, var: int) -> bool:
        return var in self.variables

    # ── Operations ─────────────────────────────────────────────────

    def expand_to(self, variables: Sequence[int]) -> np.ndarray:
        """
        View of ``values`` broadcastable against a table over ``variables``.

        ``variables`` must contain every variable of this factor.
        """
        if not self.variables:
            return self.values.reshape((1,) * len(variables))
        position = {v: i for i, v in enumerate(variables)}
        order = sorted(range(len(self.variables)), key=lambda i: position[self.variables[i]])
        data = np.transpose(self.values, order)
        shape = [1] * len(variables)
        for axis in order:
            shape[position[self.variables[axis]]] = self.values.shape[axis]
        return data.reshape(shape)

    def product(self, other: "Factor") -> "Factor":
        union = list(self.variables) + [v for v in other.variables if v not in self.variables]
        values = self.expand_to(union) * other.expand_to(union)
        return Factor(tuple(union), values)

    def sum_out(self, variables: Iterable[int]) -> "Factor":
        drop = set(variables) & set(self.variables)
        if not drop:
            return self
        axes = tuple(i for i, v in enumerate(self.variables) if v in drop)
        keep = tuple(v for v in self.variables if v not in drop)
        return Factor(keep, self.values.sum(axis=axes))

    def marginal(self, var: int) -> np.ndarray:
        """Unnormalized marginal table over a single variable."""
        others = [v for v in self.variables if v != var]
        return self.sum_out(others).values

    def reduce(self, var: int, state: int) -> "Factor":
        """Clamp ``var`` to ``state`` and drop its axis."""
        if var not in self.variables:
            return self
        axis = self.variables.index(var)
        keep = self.variables[:axis] + self.variables[axis + 1:]
        return Factor(keep, np.take(self.values, state, axis=axis))

    def normalize(self) -> "Factor":
        total = float(self.values.sum())
        if total <= 0.0 or not np.isfinite(total):
            raise InvalidNetwork(
                f"Factor over {self.variables} has zero mass; evidence is impossible"
            )
        return Factor(self.variables, self.values / total)


def multiply_all(factors: Iterable[Factor]) -> Factor:
    """Product of any number of factors (the empty product is the scalar 1)."""
    result = Factor((), np.array(1.0))
    for factor in factors:
        result = result.product(factor)
    return result


def normalize_vector(vec: np.ndarray) -> np.ndarray:
    total = float(vec.sum())
    if total <= 0.0 or not np.isfinite(total):
        raise InvalidNetwork("Distribution has zero mass; evidence is impossible")
    return vec / total
