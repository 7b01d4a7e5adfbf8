"""Online personalization: EMA priors and file-transition statistics."""

from codetrust.feedback.engine import FeedbackEngine, absorption, expected_prior
from codetrust.feedback.transitions import TransitionStats

__all__ = ["FeedbackEngine", "TransitionStats", "absorption", "expected_prior"]
