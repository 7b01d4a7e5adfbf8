"""
Confidence Field
=================

Read-only view of the latest overall confidence per code unit, for the
editor layer (gutters, file tree badges, triage lists).

Design Decisions:
    - Only the service that owns the field calls ``publish``; everything
      else gets ``view()``, a live read-only ``Mapping``
    - Subscribers are called synchronously after each publish with
      ``(unit, overall)``; a failing subscriber is logged and skipped so
      it cannot block the others
    - The field stores scalars (plus the last full score for tooltips),
      so propagated updates do not have to fabricate a ConfidenceScore
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType
from typing import Callable, Iterator, Optional

from codetrust.schemas.score import ConfidenceScore, RgbaColor
from codetrust.scoring.color import color_from_confidence
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.surface.field")

Subscriber = Callable[[str, float], None]


class ConfidenceField(Mapping):
    """Mapping of unit → overall confidence with change notifications."""

    def __init__(self):
        self._values: dict[str, float] = {}
        self._details: dict[str, ConfidenceScore] = {}
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    # ── Mapping protocol ───────────────────────────────────────────

    def __getitem__(self, unit: str) -> float:
        return self._values[unit]

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    # ── Queries ────────────────────────────────────────────────────

    def view(self) -> Mapping[str, float]:
        """Live read-only view of unit → overall, for consumers."""
        return MappingProxyType(self._values)

    def detail(self, unit: str) -> Optional[ConfidenceScore]:
        """Last full score computed for the unit (None if only propagated)."""
        return self._details.get(unit)

    def worst(self, n: int = 10) -> list[tuple[str, float]]:
        """Triage list: the ``n`` least trusted units, worst first."""
        ranked = sorted(self._values.items(), key=lambda kv: (kv[1], kv[0]))
        return ranked[:n]

    def color(self, unit: str) -> RgbaColor:
        return color_from_confidence(self._values[unit])

    # ── Subscriptions ──────────────────────────────────────────────

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ── Publishing ─────────────────────────────────────────────────

    def publish(self, unit: str, overall: float, score: Optional[ConfidenceScore] = None) -> None:
        value = clamp01(overall)
        with self._lock:
            self._values[unit] = value
            if score is not None:
                self._details[unit] = score
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(unit, value)
            except Exception:
                logger.exception(f"Confidence subscriber failed for '{unit}'")

