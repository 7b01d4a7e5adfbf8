"""
Developer Confidence Model
===========================

C(developer, module): how much a change by this developer in this module
should be trusted, independent of the code's own evidence.

Seven normalized signals:
    commit_history       more commits in the module → higher (capped at 100)
    bug_introduction_rate bugs per commit → lower
    review_acceptance    share of reviews accepted → higher
    recency              linear decay over the recency horizon (30 days)
    domain_expertise     externally supplied, in [0, 1]
    flow_score           the FeedbackEngine's prior for the pair
    fatigue              0 fresh … 1 exhausted → lower

Design Decisions:
    - Negative signals are flipped (1 − x) before combination, so both
      combination rules are monotone in every positively-correlated signal
    - Default rule is the normalized weighted sum; CVaR is selectable for
      teams that want the developer score to be as tail-sensitive as the
      code score
    - An unknown (developer, module) pair gets ``unfamiliar_confidence``

Usage:
    model = DeveloperConfidenceModel(feedback=feedback)
    model.set_stats("ana", "billing", stats)
    model.compute("ana", "billing")
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Mapping, Optional

from codetrust.config import CodeTrustConfig, CombinationRule, DeveloperConfig
from codetrust.feedback.engine import FeedbackEngine
from codetrust.schemas.developer import DeveloperSignals, DeveloperStats
from codetrust.scoring.aggregator import cvar
from codetrust.utils import clamp01, ensure_utc, utc_now

logger = logging.getLogger("codetrust.developer.model")

COMMIT_CAP = 100


class DeveloperConfidenceModel:
    """
    Combines per-pair signals into C(developer, module).

    Args:
        weights: Signal weights for the weighted-sum rule.
        combination: WEIGHTED_SUM or CVAR.
        alpha: CVaR level when ``combination`` is CVAR.
        unfamiliar_confidence: Result for pairs with no recorded stats.
        recency_horizon_days: Days over which recency decays to zero.
        feedback: Source of the flow signal; 0.5 when absent.
    """

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        combination: CombinationRule = CombinationRule.WEIGHTED_SUM,
        alpha: float = 0.95,
        unfamiliar_confidence: float = 0.5,
        recency_horizon_days: float = 30.0,
        feedback: Optional[FeedbackEngine] = None,
    ):
        self.weights = dict(weights or DeveloperConfig().weights)
        unknown = set(self.weights) - set(DeveloperSignals.model_fields)
        if unknown:
            raise ValueError(f"Unknown developer signals: {sorted(unknown)}")
        if any(w < 0 for w in self.weights.values()) or sum(self.weights.values()) <= 0:
            raise ValueError("Signal weights must be non-negative with a positive sum")
        self.combination = CombinationRule(combination)
        self.alpha = alpha
        self.unfamiliar_confidence = unfamiliar_confidence
        self.recency_horizon_days = recency_horizon_days
        self.feedback = feedback
        self._stats: dict[tuple[str, str], DeveloperStats] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: CodeTrustConfig, feedback: Optional[FeedbackEngine] = None
    ) -> "DeveloperConfidenceModel":
        dev = config.developer
        return cls(
            weights=dev.weights,
            combination=dev.combination,
            alpha=config.aggregation.alpha,
            unfamiliar_confidence=dev.unfamiliar_confidence,
            recency_horizon_days=dev.recency_horizon_days,
            feedback=feedback,
        )

    # ── Stats ──────────────────────────────────────────────────────

    def set_stats(self, developer: str, module: str, stats: DeveloperStats) -> None:
        with self._lock:
            self._stats[(developer, module)] = stats

    def stats(self, developer: str, module: str) -> Optional[DeveloperStats]:
        return self._stats.get((developer, module))

    def pairs(self) -> list[tuple[str, str]]:
        return sorted(self._stats)

    # ── Signals ────────────────────────────────────────────────────

    def signals_from_stats(
        self,
        stats: DeveloperStats,
        flow_score: float = 0.5,
        now: Optional[datetime] = None,
    ) -> DeveloperSignals:
        """Normalize raw stats into the seven signals."""
        now = ensure_utc(now or utc_now())
        if stats.commit_count:
            bug_rate = stats.bug_count / stats.commit_count
        else:
            bug_rate = 1.0 if stats.bug_count else 0.0
        age_days = max(0.0, (now - ensure_utc(stats.last_edit)).total_seconds() / 86400.0)
        return DeveloperSignals(
            commit_history=min(stats.commit_count, COMMIT_CAP) / COMMIT_CAP,
            bug_introduction_rate=clamp01(bug_rate),
            review_acceptance=stats.review_acceptance_rate,
            recency=clamp01(1.0 - age_days / self.recency_horizon_days),
            domain_expertise=stats.domain_expertise,
            flow_score=clamp01(flow_score),
            fatigue=stats.fatigue,
        )

    def combine(self, signals: DeveloperSignals) -> float:
        oriented = signals.oriented()
        if self.combination == CombinationRule.CVAR:
            return cvar(oriented.values(), self.alpha)
        total = sum(self.weights.values())
        return clamp01(sum(self.weights.get(k, 0.0) * v for k, v in oriented.items()) / total)

    def signals(
        self, developer: str, module: str, now: Optional[datetime] = None
    ) -> Optional[DeveloperSignals]:
        stats = self.stats(developer, module)
        if stats is None:
            return None
        flow = self.feedback.flow_score(developer, module) if self.feedback else 0.5
        return self.signals_from_stats(stats, flow, now)

    def compute(self, developer: str, module: str, now: Optional[datetime] = None) -> float:
        """C(developer, module) in [0, 1]."""
        signals = self.signals(developer, module, now)
        if signals is None:
            logger.debug(f"No history for ({developer}, {module}); unfamiliar confidence")
            return self.unfamiliar_confidence
        return self.combine(signals)
