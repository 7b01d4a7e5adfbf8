"""
File-transition statistics.

First-order Markov chain over file opens: counts of "opened B right after
A". Used to predict which files a developer will visit next, so their
confidence can be computed ahead of time. Refocusing the same file is not
a transition.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Mapping


class TransitionStats:
    def __init__(self):
        self._counts: dict[str, dict[str, int]] = defaultdict(dict)
        self._lock = threading.Lock()

    def record_transition(self, source: str, target: str) -> None:
        if source == target:
            return
        with self._lock:
            row = self._counts[source]
            row[target] = row.get(target, 0) + 1

    def predict(self, current: str, top_n: int = 3) -> list[tuple[str, float]]:
        """Most likely next files with their probabilities, best first."""
        row = self._counts.get(current)
        if not row:
            return []
        total = sum(row.values())
        ranked = sorted(row.items(), key=lambda kv: (-kv[1], kv[0]))
        return [(path, count / total) for path, count in ranked[:top_n]]

    def __len__(self) -> int:
        return sum(len(row) for row in self._counts.values())

    def dump(self) -> dict[str, dict[str, int]]:
        return {src: dict(row) for src, row in self._counts.items() if row}

    def load(self, data: Mapping[str, Mapping[str, Any]]) -> None:
        with self._lock:
            self._counts.clear()
            for source, row in data.items():
                self._counts[source] = {t: int(c) for t, c in row.items() if int(c) > 0}
