"""
Feedback Engine
================

Online personalization: every developer action nudges the prior for that
(developer, module) pair toward the action's evidence value with an
exponential moving average.

    prior_new = α × e + (1 − α) × prior_old

After n identical actions from prior_0 the closed form is

    prior_n = e + (prior_0 − e) × (1 − α)^n

so a share ``1 − (1 − α)^n`` of the gap has been absorbed; with α = 0.1,
50 actions absorb 99.5% of it.

Design Decisions:
    - Every action passes the AnomalyMonitor first; a flagged or suspended
      stream is logged and skipped, never applied
    - Priors are kept per pair and persisted only to the local store;
      ``forget`` removes them

Data Flow:
    DeveloperAction → AnomalyMonitor.check → EMA update → DeveloperPrior
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Optional

from codetrust.config import FeedbackConfig
from codetrust.errors import FeedbackPoisoningDetected
from codetrust.immune.anomaly import AnomalyMonitor
from codetrust.schemas.feedback import ActionKind, DeveloperAction, DeveloperPrior
from codetrust.utils import clamp01, utc_now

logger = logging.getLogger("codetrust.feedback.engine")


def absorption(n: int, alpha: float = 0.1) -> float:
    """Share of the gap to the evidence value absorbed after ``n`` actions."""
    return 1.0 - (1.0 - alpha) ** n


def expected_prior(n: int, evidence: float, prior_0: float = 0.5, alpha: float = 0.1) -> float:
    """Prior after ``n`` identical actions with evidence ``evidence``."""
    return evidence + (prior_0 - evidence) * (1.0 - alpha) ** n


class FeedbackEngine:
    """
    EMA priors per (developer, module).

    Args:
        alpha: EMA learning rate.
        initial_prior: Prior of a pair with no history.
        action_evidence: Evidence value per action kind.
        personalization_actions: Actions after which a pair is personalized.
        monitor: Anomaly monitor; a private one is created if omitted.
    """

    def __init__(
        self,
        alpha: float = 0.1,
        initial_prior: float = 0.5,
        action_evidence: Optional[Mapping[str, float]] = None,
        personalization_actions: int = 50,
        monitor: Optional[AnomalyMonitor] = None,
    ):
        self.alpha = alpha
        self.initial_prior = initial_prior
        self.action_evidence = {
            ActionKind(k): clamp01(v)
            for k, v in (action_evidence or FeedbackConfig().action_evidence).items()
        }
        missing = set(ActionKind) - set(self.action_evidence)
        if missing:
            raise ValueError(f"No evidence value for actions: {sorted(m.value for m in missing)}")
        self.personalization_actions = personalization_actions
        self.monitor = monitor or AnomalyMonitor()
        self._priors: dict[tuple[str, str], DeveloperPrior] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: FeedbackConfig, monitor: Optional[AnomalyMonitor] = None) -> "FeedbackEngine":
        return cls(
            alpha=config.alpha,
            initial_prior=config.initial_prior,
            action_evidence=config.action_evidence,
            personalization_actions=config.personalization_actions,
            monitor=monitor,
        )

    def evidence_for(self, kind: ActionKind) -> float:
        return self.action_evidence[ActionKind(kind)]

    # ── Updates ────────────────────────────────────────────────────

    def record(self, action: DeveloperAction) -> Optional[DeveloperPrior]:
        """
        Fold one action into its pair's prior.

        Returns:
            The updated prior, or None if the developer's stream is
            suspended for suspected poisoning.
        """
        try:
            self.monitor.check(action.developer, action.kind)
        except FeedbackPoisoningDetected as e:
            logger.warning(f"Feedback skipped: {e}")
            return None

        e = self.evidence_for(action.kind)
        key = (action.developer, action.module)
        with self._lock:
            current = self._priors.get(key)
            old = current.prior if current else self.initial_prior
            count = current.actions if current else 0
            updated = DeveloperPrior(
                developer=action.developer,
                module=action.module,
                prior=clamp01(self.alpha * e + (1.0 - self.alpha) * old),
                actions=count + 1,
                updated_at=utc_now(),
            )
            self._priors[key] = updated

        if updated.actions == self.personalization_actions:
            logger.info(f"Prior for ({action.developer}, {action.module}) is now personalized")
        return updated

    def record_many(self, actions: Iterable[DeveloperAction]) -> int:
        """Apply actions in order; returns how many were accepted."""
        return sum(1 for a in actions if self.record(a) is not None)

    # ── Queries ────────────────────────────────────────────────────

    def prior(self, developer: str, module: str) -> float:
        current = self._priors.get((developer, module))
        return current.prior if current else self.initial_prior

    def get(self, developer: str, module: str) -> Optional[DeveloperPrior]:
        return self._priors.get((developer, module))

    def actions(self, developer: str, module: str) -> int:
        current = self._priors.get((developer, module))
        return current.actions if current else 0

    def is_personalized(self, developer: str, module: str) -> bool:
        return self.actions(developer, module) >= self.personalization_actions

    def flow_score(self, developer: str, module: str) -> float:
        """How well the developer's habits in this module track the warnings."""
        return self.prior(developer, module)

    def priors(self, developer: Optional[str] = None) -> list[DeveloperPrior]:
        items = sorted(self._priors.values(), key=lambda p: (p.developer, p.module))
        if developer is not None:
            items = [p for p in items if p.developer == developer]
        return items

    def absorption(self, n: int) -> float:
        return absorption(n, self.alpha)

    def expected_prior(self, n: int, evidence: float, prior_0: Optional[float] = None) -> float:
        start = self.initial_prior if prior_0 is None else prior_0
        return expected_prior(n, evidence, start, self.alpha)

    # ── Privacy / persistence ──────────────────────────────────────

    def forget(self, developer: str, module: Optional[str] = None) -> int:
        """Delete a pair's prior (or all of a developer's). Returns how many."""
        with self._lock:
            keys = [
                k for k in self._priors
                if k[0] == developer and (module is None or k[1] == module)
            ]
            for key in keys:
                del self._priors[key]
        if keys:
            logger.info(f"Forgot {len(keys)} prior(s) for '{developer}'")
        return len(keys)

    def dump(self) -> list[dict[str, Any]]:
        return [p.model_dump(mode="json") for p in self.priors()]

    def load(self, records: Iterable[Mapping[str, Any]]) -> int:
        loaded = 0
        with self._lock:
            for raw in records:
                prior = DeveloperPrior.model_validate(raw)
                self._priors[(prior.developer, prior.module)] = prior
                loaded += 1
        return loaded
