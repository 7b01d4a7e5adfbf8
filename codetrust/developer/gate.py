"""
Ship Gate
==========

Deterministic ship / no-ship decision for a change:

    C(change) = C(code) × C(developer, module)
    allowed  ⇔ C(change) ≥ ship_threshold

CRITICAL INVARIANTS:
    1. A stale code score (older than the decay horizon) never gates a
       ship decision; it is re-verified first, and if it cannot be
       re-verified the change is not allowed
    2. C(code) is the unit's current confidence: a value that moved after
       scoring (propagation, edits) overrides the scored snapshot, and the
       calibrated score is used only while the snapshot is still current
    3. The same scores and threshold always give the same decision

This module contains no inference and no randomness; it only combines
scores that other components produced.

Data Flow:
    ConfidenceScore + DeveloperConfidenceModel → ShipGate → ShipDecision
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from codetrust.developer.model import DeveloperConfidenceModel
from codetrust.immune.temporal import TemporalDecay
from codetrust.schemas.developer import ShipDecision
from codetrust.schemas.score import ConfidenceScore
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.developer.gate")

Reverifier = Callable[[str], ConfidenceScore]

# A published value this close to the snapshot's overall counts as unchanged.
CURRENT_TOLERANCE = 1e-9


class ShipGate:
    """
    Ship gating policy.

    Usage:
        gate = ShipGate(model, TemporalDecay(), threshold=0.7,
                        reverify=service.score_unit)
        decision = gate.evaluate(score, "ana", "billing")

    Args:
        developer_model: Source of C(developer, module).
        decay: Staleness policy.
        threshold: Minimum C(change) to ship.
        reverify: Callable that re-queries evidence and rescores a unit.
    """

    def __init__(
        self,
        developer_model: DeveloperConfidenceModel,
        decay: Optional[TemporalDecay] = None,
        threshold: float = 0.7,
        reverify: Optional[Reverifier] = None,
    ):
        self.developer_model = developer_model
        self.decay = decay or TemporalDecay()
        self.threshold = threshold
        self.reverify = reverify

    def evaluate(
        self,
        score: ConfidenceScore,
        developer: str,
        module: str,
        now: Optional[datetime] = None,
        current: Optional[float] = None,
    ) -> ShipDecision:
        """
        Decide whether a change to ``score.unit`` may ship.

        Args:
            score: Last full score for the unit.
            developer: Author of the change.
            module: Module the change touches.
            now: Evaluation time (defaults to the current UTC time).
            current: The unit's confidence right now, when it has moved
                since ``score`` was computed.
        """
        reverified = False
        dev_conf = clamp01(self.developer_model.compute(developer, module, now))

        if self.decay.is_stale(score, now):
            if self.reverify is None:
                logger.warning(f"Stale score for '{score.unit}' and no re-verifier; blocking")
                return ShipDecision(
                    unit=score.unit, developer=developer, module=module, allowed=False,
                    change_confidence=0.0, code_confidence=score.effective,
                    developer_confidence=dev_conf, threshold=self.threshold,
                    reverified=False,
                    reason="Score is stale and could not be re-verified",
                )
            logger.info(f"Re-verifying stale score for '{score.unit}' before gating")
            score = self.reverify(score.unit)
            reverified = True
            current = None

        if current is not None and abs(current - score.overall) > CURRENT_TOLERANCE:
            code_conf = clamp01(current)
        else:
            code_conf = clamp01(score.effective)
        change = clamp01(code_conf * dev_conf)
        allowed = change >= self.threshold

        if allowed:
            reason = f"C(change) {change:.3f} >= threshold {self.threshold:.2f}"
        else:
            weaker = "code" if code_conf <= dev_conf else "developer familiarity"
            reason = (
                f"C(change) {change:.3f} < threshold {self.threshold:.2f} "
                f"(weakest factor: {weaker})"
            )

        logger.debug(f"Ship gate for '{score.unit}' by {developer}: {reason}")
        return ShipDecision(
            unit=score.unit,
            developer=developer,
            module=module,
            allowed=allowed,
            change_confidence=change,
            code_confidence=code_conf,
            developer_confidence=dev_conf,
            threshold=self.threshold,
            reverified=reverified,
            reason=reason,
        )
