"""
Developer Feedback Schema
==========================

Developer actions observed by the IDE. Each action kind maps to an
evidence value e ∈ [0, 1] that the FeedbackEngine folds into the
(developer, module) prior.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from codetrust.utils import utc_now


class ActionKind(str, Enum):
    """Closed set of feedback actions."""
    IGNORE_WARNING = "ignore_warning"
    FIX_FLAGGED_LINE = "fix_flagged_line"
    DISMISS_SUGGESTION = "dismiss_suggestion"
    ADD_TEST = "add_test"
    COMMIT_LOW_CONFIDENCE_CODE = "commit_low_confidence_code"

    @property
    def is_dismissal(self) -> bool:
        """Dismissals are what the anomaly detector counts."""
        return self in (ActionKind.IGNORE_WARNING, ActionKind.DISMISS_SUGGESTION)


class DeveloperAction(BaseModel):
    """One observed action by a developer inside a module."""
    developer: str = Field(min_length=1)
    module: str = Field(min_length=1)
    kind: ActionKind
    timestamp: datetime = Field(default_factory=utc_now)


class DeveloperPrior(BaseModel):
    """
    Personalized prior for one (developer, module) pair.

    Only the FeedbackEngine's EMA update writes ``prior``.
    """
    developer: str = Field(min_length=1)
    module: str = Field(min_length=1)
    prior: float = Field(ge=0.0, le=1.0)
    actions: int = Field(default=0, ge=0, description="Actions folded into the prior")
    updated_at: datetime = Field(default_factory=utc_now)
