"""
Developer Confidence Schema
============================

Inputs and outputs of the DeveloperConfidenceModel and the ship gate:
- DeveloperStats:   raw history for one (developer, module) pair
- DeveloperSignals: the 7 normalized signals the model combines
- BusFactorReport:  knowledge-risk summary for a module
- ShipDecision:     the ship/no-ship verdict for a change

Design Decisions:
    - bug_introduction_rate and fatigue are negatively correlated with
      confidence; ``oriented()`` flips them so every signal reads
      "higher is better" before combination
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# Signals whose raw value lowers confidence.
NEGATIVE_SIGNALS = frozenset({"bug_introduction_rate", "fatigue"})


class DeveloperStats(BaseModel):
    """Raw per-(developer, module) history, before normalization."""
    commit_count: int = Field(default=0, ge=0)
    bug_count: int = Field(default=0, ge=0)
    review_acceptance_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    last_edit: datetime
    domain_expertise: float = Field(default=0.0, ge=0.0, le=1.0)
    fatigue: float = Field(default=0.0, ge=0.0, le=1.0, description="0 fresh, 1 exhausted")


class DeveloperSignals(BaseModel):
    """Seven normalized signals, each in [0, 1]."""
    commit_history: float = Field(ge=0.0, le=1.0)
    bug_introduction_rate: float = Field(ge=0.0, le=1.0)
    review_acceptance: float = Field(ge=0.0, le=1.0)
    recency: float = Field(ge=0.0, le=1.0)
    domain_expertise: float = Field(ge=0.0, le=1.0)
    flow_score: float = Field(ge=0.0, le=1.0)
    fatigue: float = Field(ge=0.0, le=1.0)

    def oriented(self) -> dict[str, float]:
        """All signals mapped so that higher means more confidence."""
        values = self.model_dump()
        return {
            name: (1.0 - value) if name in NEGATIVE_SIGNALS else value
            for name, value in values.items()
        }


class BusFactorReport(BaseModel):
    """How many developers could carry a module alone."""
    module: str
    bus_factor: int = Field(ge=0)
    experts: list[str] = Field(default_factory=list)
    threshold: float = Field(ge=0.0, le=1.0)

    @property
    def at_risk(self) -> bool:
        """Bus factor of one or zero is a knowledge risk."""
        return self.bus_factor <= 1


class ShipDecision(BaseModel):
    """
    Ship-gate verdict for a change.

    Deterministic: the same scores and threshold always produce the same
    decision.
    """
    unit: str
    developer: str
    module: str
    allowed: bool
    change_confidence: float = Field(ge=0.0, le=1.0, description="C(code) × C(developer, module)")
    code_confidence: float = Field(ge=0.0, le=1.0)
    developer_confidence: float = Field(ge=0.0, le=1.0)
    threshold: float = Field(ge=0.0, le=1.0)
    reverified: bool = Field(default=False, description="True if a stale score was recomputed")
    reason: str
