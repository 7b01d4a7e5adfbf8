"""
Evidence Schema
================

Vocabulary shared by evidence sources, the scorer, and the audit trail:
- Criterion:     the six axes of a confidence score
- ProofClass:    whether a reading is a proof or an estimate
- SourceKind:    the closed set of evidence provider kinds
- EvidenceRecord: one provenance entry attached to a ConfidenceScore

Design Decisions:
    - The set of source kinds is closed; a kind fixes the criterion it
      informs, its proof class and whether it is ML-derived, so the ML cap
      is applied from the tag alone
    - Proof class is per reading, not per criterion: a degraded proven
      reading is demoted to ESTIMATED

Data Flow:
    EvidenceSource.value(unit) → EvidenceRecord → ConfidenceScore.evidence
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Criterion(str, Enum):
    """The six criteria of a CriteriaBreakdown, in canonical order."""
    SYNTAX = "syntax"
    TYPE_SAFETY = "type_safety"
    LINT = "lint"
    RUNTIME = "runtime"
    BEHAVIOR = "behavior"
    SECURITY = "security"

    @property
    def is_proven(self) -> bool:
        """Syntax, type safety and lint are decided by deterministic checkers."""
        return self in (Criterion.SYNTAX, Criterion.TYPE_SAFETY, Criterion.LINT)


class ProofClass(str, Enum):
    """
    Epistemic status of a reading.

    - PROVEN:    produced by a deterministic checker (parser, type checker)
    - ESTIMATED: statistical, heuristic, or stale
    """
    PROVEN = "proven"
    ESTIMATED = "estimated"


class SourceKind(str, Enum):
    """Closed set of evidence provider kinds."""
    SYNTAX_CHECKER = "syntax_checker"
    TYPE_CHECKER = "type_checker"
    LINTER = "linter"
    TEST_RUNNER = "test_runner"
    RUNTIME_PROFILER = "runtime_profiler"
    SECURITY_SCANNER = "security_scanner"
    EMBEDDING_SIMILARITY = "embedding_similarity"
    BUG_PREDICTOR = "bug_predictor"


class EvidenceRecord(BaseModel):
    """
    One reading that contributed to a score.

    Preserved on every ConfidenceScore so a gutter tooltip (or an
    auditor) can answer "why is this line yellow?".
    """
    source: str = Field(description="EvidenceSource name")
    kind: SourceKind = Field(description="Source kind tag")
    criterion: Criterion = Field(description="Criterion this reading informs")
    proof_class: ProofClass = Field(description="Proof class after degradation")
    ml_derived: bool = Field(default=False, description="Subject to the ML weight cap")
    weight: float = Field(default=1.0, gt=0.0, description="Aggregation weight")
    value: float = Field(ge=0.0, le=1.0, description="Reading in [0,1]")
    degraded: bool = Field(
        default=False,
        description="True if this is a cached value substituted for a failed query"
    )
