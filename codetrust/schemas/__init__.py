"""
codetrust Data Schemas
=======================

Pydantic v2 models implementing the data contracts of the confidence core:

1. EvidenceRecord: one provenance entry for a reading
2. ConfidenceScore: overall CVaR score + 6-criterion breakdown
3. FileNode / DependencyEdge: the dependency graph
4. DeveloperAction: feedback events
5. DeveloperSignals / ShipDecision: developer confidence and gating
6. AuditEntry: hash-chained mutation record

All schemas support runtime validation, JSON Schema export, and
serialization for the local store.
"""

from codetrust.schemas.evidence import (
    Criterion,
    EvidenceRecord,
    ProofClass,
    SourceKind,
)
from codetrust.schemas.score import (
    ConfidenceScore,
    CriteriaBreakdown,
    FileConfidence,
    LineConfidence,
    RgbaColor,
)
from codetrust.schemas.graph import (
    DependencyEdge,
    DependencyKind,
    FileNode,
)
from codetrust.schemas.feedback import (
    ActionKind,
    DeveloperAction,
    DeveloperPrior,
)
from codetrust.schemas.developer import (
    BusFactorReport,
    DeveloperSignals,
    DeveloperStats,
    ShipDecision,
)
from codetrust.schemas.audit import (
    GENESIS_HASH,
    AuditEntry,
)

__all__ = [
    # Evidence
    "Criterion",
    "EvidenceRecord",
    "ProofClass",
    "SourceKind",
    # Score
    "ConfidenceScore",
    "CriteriaBreakdown",
    "FileConfidence",
    "LineConfidence",
    "RgbaColor",
    # Graph
    "DependencyEdge",
    "DependencyKind",
    "FileNode",
    # Feedback
    "ActionKind",
    "DeveloperAction",
    "DeveloperPrior",
    # Developer
    "BusFactorReport",
    "DeveloperSignals",
    "DeveloperStats",
    "ShipDecision",
    # Audit
    "GENESIS_HASH",
    "AuditEntry",
]
