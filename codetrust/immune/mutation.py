"""
Mutation Validation
====================

A green test suite only proves something if the tests would have failed on
broken code. Before a test runner's proof of 1.0 is accepted, the suite's
mutation report must show that it kills enough mutants.

Design Decisions:
    - Timed-out mutants count as killed (the suite did not pass on them)
    - A proof below the kill-rate threshold is downgraded to
      ``value × kill_rate`` and demoted to ESTIMATED
    - A missing report is fail-closed when ``require_report`` is set:
      the proof is treated as kill rate 0
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from codetrust.config import ImmuneConfig
from codetrust.schemas.evidence import EvidenceRecord, ProofClass, SourceKind
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.immune.mutation")


class MutationReport(BaseModel):
    """Outcome of running a mutation-testing tool against a test suite."""
    total: int = Field(ge=0, description="Mutants generated")
    killed: int = Field(default=0, ge=0)
    survived: int = Field(default=0, ge=0)
    timeout: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_counts(self) -> "MutationReport":
        if self.killed + self.survived + self.timeout > self.total:
            raise ValueError(
                f"killed + survived + timeout ({self.killed + self.survived + self.timeout}) "
                f"exceeds total ({self.total})"
            )
        return self

    @property
    def kill_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.killed + self.timeout) / self.total


class MutationValidator:
    """
    Gatekeeper for test-runner proofs.

    Args:
        threshold: Kill rate a proof must exceed to stand.
        require_report: Treat a missing report as kill rate 0.
    """

    def __init__(self, threshold: float = 0.8, require_report: bool = True):
        self.threshold = threshold
        self.require_report = require_report

    @classmethod
    def from_config(cls, config: ImmuneConfig) -> "MutationValidator":
        return cls(config.mutation_threshold, config.require_mutation_report)

    def kill_rate(self, report: Optional[MutationReport]) -> float:
        if report is None:
            return 0.0 if self.require_report else 1.0
        return report.kill_rate

    def validate(self, value: float, report: Optional[MutationReport]) -> tuple[float, bool]:
        """
        Check a test-runner reading against its mutation report.

        Returns:
            (accepted value, still proven). Readings below 1.0 are not
            proofs of correctness and pass through unchanged.
        """
        value = clamp01(value)
        if value < 1.0:
            return value, True
        rate = self.kill_rate(report)
        if rate > self.threshold:
            return value, True
        logger.info(
            f"Test proof downgraded: kill rate {rate:.2f} <= threshold {self.threshold:.2f}"
        )
        return clamp01(value * rate), False

    def apply(self, record: EvidenceRecord, report: Optional[MutationReport]) -> EvidenceRecord:
        """Validate a proven test-runner record; other records pass through."""
        if record.kind != SourceKind.TEST_RUNNER or record.proof_class != ProofClass.PROVEN:
            return record
        value, proven = self.validate(record.value, report)
        if proven:
            return record
        return record.model_copy(update={"value": value, "proof_class": ProofClass.ESTIMATED})
