"""
Feedback Anomaly Monitoring
============================

Personalized priors learn from what developers do, which makes them a
target: a stream of dismissals can talk the system into trusting bad code.
Each developer's recent actions are kept in a rolling window; when the
share of dismissals in it spikes, the stream is flagged and that
developer's prior updates are suspended until someone reviews them.

Design Decisions:
    - A window is only judged once it is at least half full
    - The rate must strictly exceed the threshold (0.8 by default)
    - Suspension is sticky: it survives the window recovering, and is
      lifted only by ``review()``

Data Flow:
    DeveloperAction → AnomalyMonitor.check → (ok | FeedbackPoisoningDetected)
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from codetrust.config import ImmuneConfig
from codetrust.errors import FeedbackPoisoningDetected
from codetrust.schemas.feedback import ActionKind

logger = logging.getLogger("codetrust.immune.anomaly")


class AnomalyDetector:
    """Rolling dismiss-rate window for a single developer."""

    def __init__(self, window_size: int = 20, threshold: float = 0.8):
        self.window_size = window_size
        self.threshold = threshold
        self._history: deque[bool] = deque(maxlen=window_size)

    def record(self, kind: ActionKind) -> None:
        self._history.append(kind.is_dismissal)

    @property
    def dismiss_rate(self) -> float:
        if not self._history:
            return 0.0
        return sum(self._history) / len(self._history)

    def is_anomalous(self) -> bool:
        if len(self._history) < self.window_size // 2:
            return False
        return self.dismiss_rate > self.threshold

    def __len__(self) -> int:
        return len(self._history)


class AnomalyMonitor:
    """
    Per-developer detectors plus the suspension list.

    Usage:
        monitor = AnomalyMonitor()
        monitor.check(action.developer, action.kind)   # may raise
        ...
        monitor.review("mallory")                      # lift suspension
    """

    def __init__(self, window_size: int = 20, threshold: float = 0.8):
        self.window_size = window_size
        self.threshold = threshold
        self._detectors: dict[str, AnomalyDetector] = {}
        self._suspended: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ImmuneConfig) -> "AnomalyMonitor":
        return cls(config.anomaly_window, config.dismiss_rate_threshold)

    def check(self, developer: str, kind: ActionKind) -> None:
        """
        Record an action and vet the developer's stream.

        Raises:
            FeedbackPoisoningDetected: If the stream is (or was) flagged.
        """
        with self._lock:
            detector = self._detectors.setdefault(
                developer, AnomalyDetector(self.window_size, self.threshold)
            )
            detector.record(kind)
            if developer in self._suspended:
                raise FeedbackPoisoningDetected(developer, detector.dismiss_rate)
            if detector.is_anomalous():
                self._suspended.add(developer)
                logger.warning(
                    f"Suspending feedback from '{developer}': dismiss rate "
                    f"{detector.dismiss_rate:.0%} over {len(detector)} actions"
                )
                raise FeedbackPoisoningDetected(developer, detector.dismiss_rate)

    def is_suspended(self, developer: str) -> bool:
        return developer in self._suspended

    def suspended(self) -> list[str]:
        return sorted(self._suspended)

    def review(self, developer: str) -> bool:
        """Clear a suspension and its window. Returns True if one was lifted."""
        with self._lock:
            self._detectors.pop(developer, None)
            if developer in self._suspended:
                self._suspended.discard(developer)
                logger.info(f"Feedback stream for '{developer}' reviewed and resumed")
                return True
            return False
