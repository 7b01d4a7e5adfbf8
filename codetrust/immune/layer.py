"""
Immune Layer
=============

Single seam through which the rest of the core reaches its safety checks.

Components:
    - MutationValidator: test proofs must be backed by a mutation report
    - AnomalyMonitor:    feedback streams are vetted before priors move
    - MlCap:             ML evidence is capped at a share of total weight
    - TemporalDecay:     stale scores are re-verified before gating
    - AuditLog:          every score write is hash-chained

Design Decisions:
    - ``record_score_change`` is the only place a score value is written
      to the audit trail, and it clamps before writing, so no out-of-range
      value can be recorded
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional

from codetrust.config import ImmuneConfig
from codetrust.immune.anomaly import AnomalyMonitor
from codetrust.immune.audit import AuditLog
from codetrust.immune.ml_cap import MlCap
from codetrust.immune.mutation import MutationReport, MutationValidator
from codetrust.immune.temporal import TemporalDecay
from codetrust.schemas.evidence import EvidenceRecord
from codetrust.schemas.feedback import ActionKind
from codetrust.schemas.score import ConfidenceScore
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.immune.layer")


class ImmuneLayer:
    """
    Facade over the five safety components.

    Usage:
        immune = ImmuneLayer.from_config(cfg.immune, audit_path=store.audit_path)
        new = immune.record_score_change("db.py", 0.9, 0.3, cause="evidence")
    """

    def __init__(
        self,
        mutation: Optional[MutationValidator] = None,
        anomaly: Optional[AnomalyMonitor] = None,
        ml_cap: Optional[MlCap] = None,
        decay: Optional[TemporalDecay] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.mutation = mutation or MutationValidator()
        self.anomaly = anomaly or AnomalyMonitor()
        self.ml_cap = ml_cap or MlCap()
        self.decay = decay or TemporalDecay()
        self.audit = audit or AuditLog()

    @classmethod
    def from_config(cls, config: ImmuneConfig, audit_path: Optional[Path] = None) -> "ImmuneLayer":
        return cls(
            mutation=MutationValidator.from_config(config),
            anomaly=AnomalyMonitor.from_config(config),
            ml_cap=MlCap.from_config(config),
            decay=TemporalDecay.from_config(config),
            audit=AuditLog(audit_path),
        )

    def record_score_change(
        self, subject: str, old: Optional[float], new: float, cause: str
    ) -> float:
        """Clamp ``new`` to [0, 1], audit the write, and return the clamped value."""
        value = clamp01(new)
        if value != new:
            logger.warning(f"Clamped score for '{subject}' from {new} to {value}")
        self.audit.append(subject, old, value, cause)
        return value

    def check_feedback(self, developer: str, kind: ActionKind) -> None:
        """Raises FeedbackPoisoningDetected if the stream is suspended."""
        self.anomaly.check(developer, kind)

    def validate_test_proof(
        self, record: EvidenceRecord, report: Optional[MutationReport]
    ) -> EvidenceRecord:
        return self.mutation.apply(record, report)

    def cap_ml(self, weights: Mapping[str, float], ml_keys: Iterable[str]) -> dict[str, float]:
        return self.ml_cap.enforce_limit(weights, ml_keys)

    def is_stale(self, score: ConfidenceScore, now: Optional[datetime] = None) -> bool:
        return self.decay.is_stale(score, now)

    def verify_audit(self) -> int:
        return self.audit.verify_chain()
