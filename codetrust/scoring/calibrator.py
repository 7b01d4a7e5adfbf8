"""
Confidence Calibration
=======================

Maps raw overall scores to outcome frequencies, so that code scored 0.8
actually turns out fine about 80% of the time.

Outcomes come from the field: a unit that later needed a bug fix is
labelled 0, one that survived review and release is labelled 1. The
fitted calibrator then fills ``ConfidenceScore.calibrated``.

Methods:
    - Temperature scaling (single parameter, scipy ``minimize_scalar``)
    - Isotonic regression (non-parametric, sklearn)

Outputs:
    - Calibrated score mapping
    - Expected Calibration Error (ECE) before/after
    - Reliability-diagram data

Data Flow:
    (overall, outcome) history → ConfidenceCalibrator.fit → calibrate(score)
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger("codetrust.scoring.calibrator")

_EPS = 1e-7


class ConfidenceCalibrator:
    """
    Post-hoc calibration of overall confidence scores.

    Usage:
        calibrator = ConfidenceCalibrator(method="isotonic")
        calibrator.fit(overall_scores, outcomes)
        calibrated = calibrator.calibrate_single(0.83)

    Args:
        method: "temperature", "isotonic", or "none".
        n_bins: Number of bins for ECE.
    """

    METHODS = ("temperature", "isotonic", "none")

    def __init__(self, method: str = "isotonic", n_bins: int = 10):
        if method not in self.METHODS:
            raise ValueError(f"Unknown calibration method: {method}")
        self.method = method
        self.n_bins = n_bins
        self._isotonic = None
        self._temperature: float = 1.0
        self._is_fitted: bool = False

    @property
    def is_fitted(self) -> bool:
        return self._is_fitted

    @property
    def temperature(self) -> float:
        return self._temperature

    def fit(self, scores, outcomes) -> "ConfidenceCalibrator":
        """
        Fit on historical (score, outcome) pairs.

        Args:
            scores: Raw overall scores in [0, 1].
            outcomes: Binary outcomes (1 = the code held up).
        """
        scores = np.asarray(scores, dtype=np.float64)
        outcomes = np.asarray(outcomes, dtype=np.float64)
        if len(scores) != len(outcomes):
            raise ValueError("scores and outcomes must have the same length")
        if len(scores) == 0:
            raise ValueError("Cannot calibrate on an empty history")

        if self.method == "temperature":
            self._fit_temperature(scores, outcomes)
        elif self.method == "isotonic":
            self._fit_isotonic(scores, outcomes)

        self._is_fitted = True
        logger.info(f"Calibrator fitted with {self.method} on {len(scores)} outcomes")
        return self

    def _fit_temperature(self, scores: np.ndarray, outcomes: np.ndarray) -> None:
        """Learn T minimizing NLL of sigmoid(logit(score) / T)."""
        from scipy.optimize import minimize_scalar

        logits = _logit(scores)

        def nll(t):
            calibrated = np.clip(_sigmoid(logits / max(t, _EPS)), _EPS, 1 - _EPS)
            return float(np.mean(
                -(outcomes * np.log(calibrated) + (1 - outcomes) * np.log(1 - calibrated))
            ))

        result = minimize_scalar(nll, bounds=(0.1, 10.0), method="bounded")
        self._temperature = float(result.x)
        logger.info(f"Temperature scaling: T = {self._temperature:.4f}")

    def _fit_isotonic(self, scores: np.ndarray, outcomes: np.ndarray) -> None:
        from sklearn.isotonic import IsotonicRegression

        self._isotonic = IsotonicRegression(y_min=0.0, y_max=1.0, out_of_bounds="clip")
        self._isotonic.fit(scores, outcomes)

    def calibrate(self, scores) -> np.ndarray:
        """Calibrated scores; identity until fitted."""
        scores = np.asarray(scores, dtype=np.float64)
        if self.method == "none" or not self._is_fitted:
            return scores
        if self.method == "temperature":
            out = _sigmoid(_logit(scores) / self._temperature)
        else:
            out = self._isotonic.predict(scores)
        return np.clip(out, 0.0, 1.0)

    def calibrate_single(self, score: float) -> float:
        return float(self.calibrate(np.array([score]))[0])

    def compute_ece(self, scores, outcomes, n_bins: Optional[int] = None) -> float:
        """
        Expected Calibration Error: Σ (|B_k| / N) × |accuracy(B_k) − confidence(B_k)|.

        Scores of exactly 0 fall into the first bin.
        """
        return self.reliability_data(scores, outcomes, n_bins)["ece"]

    def reliability_data(self, scores, outcomes, n_bins: Optional[int] = None) -> dict:
        """Per-bin accuracy and confidence for a reliability diagram, plus ECE."""
        n_bins = n_bins or self.n_bins
        scores = np.asarray(scores, dtype=np.float64)
        outcomes = np.asarray(outcomes, dtype=np.float64)

        edges = np.linspace(0, 1, n_bins + 1)
        data = {"bin_centers": [], "bin_accuracies": [], "bin_confidences": [],
                "bin_counts": [], "ece": 0.0}
        if len(scores) == 0:
            return data

        ece = 0.0
        for i in range(n_bins):
            lower, upper = edges[i], edges[i + 1]
            mask = (scores > lower) & (scores <= upper)
            if i == 0:
                mask |= scores == lower
            count = int(mask.sum())
            if count == 0:
                continue
            accuracy = float(outcomes[mask].mean())
            confidence = float(scores[mask].mean())
            ece += (count / len(scores)) * abs(accuracy - confidence)
            data["bin_centers"].append(float((lower + upper) / 2))
            data["bin_accuracies"].append(accuracy)
            data["bin_confidences"].append(confidence)
            data["bin_counts"].append(count)
        data["ece"] = float(ece)
        return data


def _logit(p: np.ndarray) -> np.ndarray:
    p = np.clip(p, _EPS, 1 - _EPS)
    return np.log(p / (1 - p))


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))
