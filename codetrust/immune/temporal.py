"""
Temporal decay of confidence.

A score is evidence about the code as it was when computed. After
``max_age`` it is stale and must be re-verified before it gates a ship
decision; for display, confidence fades linearly to zero over the same
horizon.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from codetrust.config import ImmuneConfig
from codetrust.schemas.score import ConfidenceScore
from codetrust.utils import clamp01, ensure_utc, utc_now


class TemporalDecay:
    def __init__(self, max_age: timedelta = timedelta(days=30)):
        if max_age.total_seconds() <= 0:
            raise ValueError("max_age must be positive")
        self.max_age = max_age

    @classmethod
    def from_config(cls, config: ImmuneConfig) -> "TemporalDecay":
        return cls(timedelta(days=config.max_age_days))

    def age(self, computed_at: datetime, now: Optional[datetime] = None) -> timedelta:
        now = ensure_utc(now or utc_now())
        return now - ensure_utc(computed_at)

    def is_stale(self, score: ConfidenceScore, now: Optional[datetime] = None) -> bool:
        """True once the score is older than ``max_age``."""
        return self.age(score.computed_at, now) > self.max_age

    def decay(self, confidence: float, computed_at: datetime, now: Optional[datetime] = None) -> float:
        """
        Linearly faded confidence: full at age 0, zero at ``max_age``.

        Timestamps in the future (clock skew) leave confidence unchanged.
        """
        age = self.age(computed_at, now)
        if age <= timedelta(0):
            return clamp01(confidence)
        if age >= self.max_age:
            return 0.0
        remaining = 1.0 - age.total_seconds() / self.max_age.total_seconds()
        return clamp01(confidence * remaining)
