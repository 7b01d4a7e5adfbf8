"""
Confidence Score Schema
========================

Defines the per-unit confidence score and its file-level rollup:
- CriteriaBreakdown: six criteria, each in [0, 1]
- ConfidenceScore:   overall CVaR score + breakdown + provenance
- LineConfidence:    a score pinned to a line number
- FileConfidence:    a file badge dominated by its worst lines
- RgbaColor:         continuous gutter colour

Design Decisions:
    - Scores are immutable snapshots; engines produce new ones instead of
      mutating fields in place
    - ``overall`` is validated to lie between the worst criterion and the
      criterion mean, which holds for CVaR at any alpha
    - Colours use float channels so the gradient has no 8-bit banding

Data Flow:
    EvidenceRecords → ConfidenceScorer → ConfidenceScore → ConfidenceField
"""

from __future__ import annotations

import colorsys
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from codetrust.schemas.evidence import Criterion, EvidenceRecord
from codetrust.utils import utc_now

_TOLERANCE = 1e-9


class CriteriaBreakdown(BaseModel):
    """
    Six-criterion breakdown of a confidence score.

    syntax, type_safety and lint are proven ({0, 1}, lint 0.9 when only
    warnings remain); runtime, behavior and security are estimated.
    """
    model_config = ConfigDict(frozen=True)

    syntax: float = Field(default=0.0, ge=0.0, le=1.0)
    type_safety: float = Field(default=0.0, ge=0.0, le=1.0)
    lint: float = Field(default=0.0, ge=0.0, le=1.0)
    runtime: float = Field(default=0.5, ge=0.0, le=1.0)
    behavior: float = Field(default=0.5, ge=0.0, le=1.0)
    security: float = Field(default=0.5, ge=0.0, le=1.0)

    def values(self) -> list[float]:
        """Criterion values in canonical order."""
        return [getattr(self, c.value) for c in Criterion]

    def as_dict(self) -> dict[Criterion, float]:
        return {c: getattr(self, c.value) for c in Criterion}

    @property
    def worst(self) -> Criterion:
        """The lowest-scoring criterion (first in canonical order on ties)."""
        return min(Criterion, key=lambda c: getattr(self, c.value))


class ConfidenceScore(BaseModel):
    """
    Confidence for a single code unit.

    Schema:
        {
          "unit": "src/app.py:42",
          "overall": 0.61,
          "criteria": {"syntax": 1.0, "type_safety": 1.0, "lint": 0.9,
                       "runtime": 0.74, "behavior": 0.61, "security": 0.8},
          "evidence": [{"source": "pytest", "kind": "test_runner", ...}],
          "degraded": [],
          "prior": 0.5,
          "computed_at": "2026-10-19T09:00:00Z"
        }
    """
    model_config = ConfigDict(frozen=True)

    unit: str = Field(description="Code unit identifier (file, function, or line)")
    overall: float = Field(ge=0.0, le=1.0, description="CVaR of the criteria")
    criteria: CriteriaBreakdown = Field(default_factory=CriteriaBreakdown)
    evidence: list[EvidenceRecord] = Field(
        default_factory=list,
        description="Provenance: every reading that contributed"
    )
    degraded: list[Criterion] = Field(
        default_factory=list,
        description="Criteria computed from cached values after a source failure"
    )
    prior: float = Field(default=0.5, ge=0.0, le=1.0, description="Prior used for inference")
    alpha: float = Field(default=0.95, ge=0.0, lt=1.0, description="CVaR level used")
    computed_at: datetime = Field(default_factory=utc_now)
    calibrated: Optional[float] = Field(
        default=None, ge=0.0, le=1.0,
        description="Outcome-calibrated overall score, when a calibrator is fitted"
    )

    @model_validator(mode="after")
    def validate_overall_is_tail_mean(self) -> "ConfidenceScore":
        """overall must lie in [min(criteria), mean(criteria)]."""
        values = self.criteria.values()
        lo = min(values)
        hi = sum(values) / len(values)
        if not (lo - _TOLERANCE <= self.overall <= hi + _TOLERANCE):
            raise ValueError(
                f"overall={self.overall:.4f} is not a tail mean of the criteria "
                f"(expected within [{lo:.4f}, {hi:.4f}])"
            )
        return self

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded)

    @property
    def effective(self) -> float:
        """Calibrated score when available, else the raw overall score."""
        return self.calibrated if self.calibrated is not None else self.overall


class LineConfidence(BaseModel):
    """A ConfidenceScore pinned to a 1-based line number."""
    line: int = Field(ge=1)
    score: ConfidenceScore


class RgbaColor(BaseModel):
    """RGBA colour with float channels in [0, 1]."""
    model_config = ConfigDict(frozen=True)

    r: float = Field(ge=0.0, le=1.0)
    g: float = Field(ge=0.0, le=1.0)
    b: float = Field(ge=0.0, le=1.0)
    a: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def hue(self) -> float:
        """Hue in degrees [0, 360)."""
        h, _, _ = colorsys.rgb_to_hsv(self.r, self.g, self.b)
        return h * 360.0

    def to_rgba8(self) -> tuple[int, int, int, int]:
        """Quantize for renderers that need 8-bit channels."""
        return tuple(int(round(ch * 255)) for ch in (self.r, self.g, self.b, self.a))

    def to_hex(self) -> str:
        r, g, b, _ = self.to_rgba8()
        return f"#{r:02x}{g:02x}{b:02x}"


class FileConfidence(BaseModel):
    """
    File-level badge.

    ``overall`` is the CVaR over per-line overall scores, so a file is
    only as trustworthy as its worst lines.
    """
    path: str
    overall: float = Field(ge=0.0, le=1.0)
    line_count: int = Field(ge=0)
    worst_lines: list[int] = Field(
        default_factory=list,
        description="Lines in the CVaR tail, worst first"
    )
    color: RgbaColor
