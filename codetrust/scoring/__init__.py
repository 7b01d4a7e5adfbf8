"""Score assembly: CVaR aggregation, colour mapping, scoring and calibration."""

from codetrust.scoring.aggregator import aggregate, aggregate_file_confidence, cvar, tail_size
from codetrust.scoring.calibrator import ConfidenceCalibrator
from codetrust.scoring.color import color_from_confidence
from codetrust.scoring.scorer import ConfidenceScorer, snap_proven

__all__ = [
    "ConfidenceCalibrator",
    "ConfidenceScorer",
    "aggregate",
    "aggregate_file_confidence",
    "color_from_confidence",
    "cvar",
    "snap_proven",
    "tail_size",
]
