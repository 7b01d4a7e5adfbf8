"""
Evidence Sources
=================

Adapters around the external tools that produce readings: parsers, type
checkers, linters, test runners, profilers, security scanners, and ML
services. The core never runs these tools; it only asks each source for
a scalar in [0, 1] for a code unit.

Design Decisions:
    - One concrete class with a closed ``SourceKind`` tag instead of a
      subclass per tool; the tag fixes the criterion the source informs,
      its proof class and whether the ML cap applies
    - ``value(unit)`` raises EvidenceUnavailable for any failure, including
      an out-of-range or NaN reading, so the collector has a single failure
      path to handle

Usage:
    mypy = EvidenceSource("mypy", SourceKind.TYPE_CHECKER, lambda unit: 1.0)
    mypy.value("src/app.py")
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from codetrust.errors import EvidenceUnavailable
from codetrust.immune.mutation import MutationReport
from codetrust.schemas.evidence import Criterion, EvidenceRecord, ProofClass, SourceKind

logger = logging.getLogger("codetrust.evidence.source")


@dataclass(frozen=True)
class KindProfile:
    criterion: Criterion
    proof_class: ProofClass
    ml_derived: bool


KIND_PROFILES: dict[SourceKind, KindProfile] = {
    SourceKind.SYNTAX_CHECKER: KindProfile(Criterion.SYNTAX, ProofClass.PROVEN, False),
    SourceKind.TYPE_CHECKER: KindProfile(Criterion.TYPE_SAFETY, ProofClass.PROVEN, False),
    SourceKind.LINTER: KindProfile(Criterion.LINT, ProofClass.PROVEN, False),
    SourceKind.TEST_RUNNER: KindProfile(Criterion.BEHAVIOR, ProofClass.PROVEN, False),
    SourceKind.RUNTIME_PROFILER: KindProfile(Criterion.RUNTIME, ProofClass.ESTIMATED, False),
    SourceKind.SECURITY_SCANNER: KindProfile(Criterion.SECURITY, ProofClass.ESTIMATED, False),
    SourceKind.EMBEDDING_SIMILARITY: KindProfile(Criterion.BEHAVIOR, ProofClass.ESTIMATED, True),
    SourceKind.BUG_PREDICTOR: KindProfile(Criterion.RUNTIME, ProofClass.ESTIMATED, True),
}

Query = Callable[[str], float]
ReportQuery = Callable[[str], Optional[MutationReport]]


class EvidenceSource:
    """
    A pluggable scalar evidence provider.

    Args:
        name: Unique source name (appears in provenance).
        kind: Closed-set tag; determines criterion, proof class, ML flag.
        query: Callable returning a reading in [0, 1] for a unit.
        reliability: P(reading agrees with the true criterion state);
            ``None`` uses the configured default.
        weight: Aggregation weight of this source's readings.
        mutation_report: For test runners, callable returning the suite's
            mutation report for a unit.
    """

    def __init__(
        self,
        name: str,
        kind: SourceKind,
        query: Query,
        reliability: Optional[float] = None,
        weight: float = 1.0,
        mutation_report: Optional[ReportQuery] = None,
    ):
        if not name:
            raise ValueError("Evidence source needs a name")
        if reliability is not None and not 0.5 < reliability <= 1.0:
            raise ValueError(f"reliability must be in (0.5, 1], got {reliability}")
        if weight <= 0.0:
            raise ValueError(f"weight must be positive, got {weight}")
        self._name = name
        self.kind = SourceKind(kind)
        self._query = query
        self.reliability = reliability
        self.weight = weight
        self._mutation_report = mutation_report

    def __repr__(self) -> str:
        return f"EvidenceSource({self._name!r}, {self.kind.value})"

    @property
    def profile(self) -> KindProfile:
        return KIND_PROFILES[self.kind]

    def name(self) -> str:
        return self._name

    def criterion(self) -> Criterion:
        return self.profile.criterion

    def proof_class(self) -> ProofClass:
        return self.profile.proof_class

    def ml_derived(self) -> bool:
        return self.profile.ml_derived

    def value(self, unit: str) -> float:
        """
        Query the reading for ``unit``.

        Raises:
            EvidenceUnavailable: The provider failed or returned an
                unusable value.
        """
        try:
            reading = float(self._query(unit))
        except EvidenceUnavailable:
            raise
        except Exception as e:
            raise EvidenceUnavailable(self._name, unit, f"{type(e).__name__}: {e}") from e
        if math.isnan(reading) or not 0.0 <= reading <= 1.0:
            raise EvidenceUnavailable(self._name, unit, f"reading {reading} outside [0, 1]")
        return reading

    def mutation_report(self, unit: str) -> Optional[MutationReport]:
        if self._mutation_report is None:
            return None
        try:
            return self._mutation_report(unit)
        except Exception as e:
            raise EvidenceUnavailable(self._name, unit, f"mutation report: {e}") from e

    def record(self, value: float, degraded: bool = False) -> EvidenceRecord:
        """Provenance entry for a reading from this source."""
        proof = ProofClass.ESTIMATED if degraded else self.proof_class()
        return EvidenceRecord(
            source=self._name,
            kind=self.kind,
            criterion=self.criterion(),
            proof_class=proof,
            ml_derived=self.ml_derived(),
            weight=self.weight,
            value=value,
            degraded=degraded,
        )
