"""
codetrust Error Taxonomy
=========================

Every failure the confidence core can surface, grouped under a single
base class so callers can catch the whole family at a component seam.

Severity:
    - InvalidNetwork:            fatal to that inference
    - UnknownNode:               caller error (bad node id / state)
    - NonConvergence:            internal, triggers junction-tree fallback
    - EvidenceUnavailable:       degrades a criterion, never fails a score
    - AuditChainCorrupted:       fatal, surfaced to the user
    - FeedbackPoisoningDetected: non-fatal, suspends one feedback stream
"""

from __future__ import annotations

from typing import Optional


class CodeTrustError(Exception):
    """Base class for all codetrust errors."""


class InvalidNetwork(CodeTrustError, ValueError):
    """A Bayesian network is malformed (bad CPT shape, row sums, or evidence)."""


class UnknownNode(CodeTrustError, KeyError):
    """A query or evidence references a node (or state) that does not exist."""

    def __init__(self, node: object, detail: str = ""):
        self.node = node
        message = f"Unknown node: {node!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class NonConvergence(CodeTrustError):
    """Loopy belief propagation exhausted max_iter without converging."""

    def __init__(self, iterations: int, residual: float):
        self.iterations = iterations
        self.residual = residual
        super().__init__(
            f"Belief propagation did not converge after {iterations} iterations "
            f"(residual={residual:.2e})"
        )


class EvidenceUnavailable(CodeTrustError):
    """An evidence source failed, timed out, or returned an unusable value."""

    def __init__(self, source: str, unit: str, reason: str = ""):
        self.source = source
        self.unit = unit
        self.reason = reason
        super().__init__(
            f"Evidence source '{source}' unavailable for '{unit}'"
            + (f": {reason}" if reason else "")
        )


class AuditChainCorrupted(CodeTrustError):
    """The audit log's hash chain is broken; score history cannot be trusted."""

    def __init__(self, index: int, reason: str, entry_hash: Optional[str] = None):
        self.index = index
        self.reason = reason
        self.entry_hash = entry_hash
        super().__init__(f"Audit chain corrupted at entry {index}: {reason}")


class FeedbackPoisoningDetected(CodeTrustError):
    """A developer's feedback stream looks adversarial (dismiss-rate spike)."""

    def __init__(self, developer: str, dismiss_rate: float):
        self.developer = developer
        self.dismiss_rate = dismiss_rate
        super().__init__(
            f"Feedback poisoning suspected for '{developer}': "
            f"dismiss rate {dismiss_rate:.0%} in the rolling window"
        )
