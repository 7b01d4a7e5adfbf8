"""
ML weight cap.

ML-derived evidence (embedding similarity, bug prediction) may inform a
score but never dominate it: its combined weight is limited to a fixed
share of the total aggregation weight. The cap is applied from the
``ml_derived`` tag alone, before any posterior is seen, so it cannot be
gamed by the value the ML source reports.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from codetrust.config import ImmuneConfig
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.immune.ml_cap")


class MlCap:
    def __init__(self, cap: float = 0.25):
        if not 0.0 <= cap < 1.0:
            raise ValueError(f"ML cap must be in [0, 1), got {cap}")
        self.cap = cap

    @classmethod
    def from_config(cls, config: ImmuneConfig) -> "MlCap":
        return cls(config.ml_weight_cap)

    def enforce_limit(self, weights: Mapping[str, float], ml_keys: Iterable[str]) -> dict[str, float]:
        """
        Scale ML weights down so that they are at most ``cap`` of the total.

        Solving ml / (other + ml) <= cap gives ml <= other × cap / (1 − cap);
        ML weights are scaled proportionally to meet that bound. Non-ML
        weights are never touched. Returns a new dict.
        """
        ml_keys = set(ml_keys)
        result = dict(weights)
        ml_total = sum(w for k, w in result.items() if k in ml_keys)
        other = sum(w for k, w in result.items() if k not in ml_keys)
        if ml_total <= 0.0 or ml_total + other <= 0.0:
            return result

        limit = other * self.cap / (1.0 - self.cap)
        if ml_total > limit:
            scale = limit / ml_total
            for key in ml_keys & result.keys():
                result[key] = result[key] * scale
            logger.debug(f"ML weight capped from {ml_total:.3f} to {limit:.3f}")
        return result

    def ml_share(self, ml_weight: float, other_weight: float) -> float:
        """Share of the total weight ML evidence may carry after capping."""
        if ml_weight <= 0.0:
            return 0.0
        if other_weight <= 0.0:
            return self.cap
        limit = other_weight * self.cap / (1.0 - self.cap)
        capped = min(ml_weight, limit)
        return capped / (capped + other_weight)

    def blend(self, base: float, ml_value: float, ml_weight: float, other_weight: float) -> float:
        """Weighted blend of a non-ML value and an ML value under the cap."""
        share = self.ml_share(ml_weight, other_weight)
        return clamp01((1.0 - share) * clamp01(base) + share * clamp01(ml_value))
