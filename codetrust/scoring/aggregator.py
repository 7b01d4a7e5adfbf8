"""
CVaR Confidence Aggregation
============================

Folds criterion scores (or line scores) into one number using the
Conditional Value at Risk: the mean of the worst ``ceil(n × (1 − α))``
values, never fewer than one.

Design Decisions:
    - Tail-risk instead of a mean: one failing criterion must dominate
      five perfect ones, so ``aggregate([1, 1, 1, 1, 1, 0]) == 0``
    - The tail size is rounded at 9 decimals before ``ceil`` so that
      e.g. 20 × 0.05 is 1, not 2 after float error

Data Flow:
    CriteriaBreakdown → aggregate() → ConfidenceScore.overall
    [LineConfidence]  → aggregate_file_confidence() → FileConfidence
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence, Union

from codetrust.schemas.score import CriteriaBreakdown, FileConfidence, LineConfidence
from codetrust.scoring.color import color_from_confidence
from codetrust.utils import clamp01

DEFAULT_ALPHA = 0.95


def tail_size(n: int, alpha: float = DEFAULT_ALPHA) -> int:
    """Number of worst values averaged by CVaR at level ``alpha``."""
    if not 0.0 <= alpha < 1.0:
        raise ValueError(f"alpha must be in [0, 1), got {alpha}")
    return max(1, math.ceil(round(n * (1.0 - alpha), 9)))


def cvar(values: Iterable[float], alpha: float = DEFAULT_ALPHA) -> float:
    """
    Conditional Value at Risk of ``values``.

    Args:
        values: Scores in [0, 1] (clamped).
        alpha: Confidence level; higher focuses on fewer, worse values.

    Returns:
        Mean of the worst tail, in [0, 1].

    Raises:
        ValueError: If ``values`` is empty.
    """
    ordered = sorted(clamp01(v) for v in values)
    if not ordered:
        raise ValueError("CVaR of an empty sequence is undefined")
    k = tail_size(len(ordered), alpha)
    return clamp01(sum(ordered[:k]) / k)


def aggregate(
    criteria: Union[CriteriaBreakdown, Sequence[float]],
    alpha: float = DEFAULT_ALPHA,
) -> float:
    """CVaR over the six criterion values."""
    values = criteria.values() if isinstance(criteria, CriteriaBreakdown) else list(criteria)
    return cvar(values, alpha)


def aggregate_file_confidence(
    path: str,
    lines: Sequence[LineConfidence],
    alpha: float = DEFAULT_ALPHA,
) -> FileConfidence:
    """
    File badge from per-line scores.

    An empty file has nothing to distrust and reports 1.0. The worst-lines
    list is the CVaR tail, worst first (lower line number on ties).
    """
    if not lines:
        return FileConfidence(
            path=path, overall=1.0, line_count=0, worst_lines=[],
            color=color_from_confidence(1.0),
        )
    ranked = sorted(lines, key=lambda lc: (lc.score.overall, lc.line))
    k = tail_size(len(ranked), alpha)
    overall = cvar((lc.score.overall for lc in ranked), alpha)
    return FileConfidence(
        path=path,
        overall=overall,
        line_count=len(ranked),
        worst_lines=[lc.line for lc in ranked[:k]],
        color=color_from_confidence(overall),
    )
