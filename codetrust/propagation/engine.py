"""
Confidence Propagation
=======================

When a file's confidence changes, everything that depends on it becomes
less (or more) trustworthy too. A sweep walks dependents breadth-first and
applies a damped share of the change at each hop:

    effective(d) = Δ × damping^d × Π w(edge on the BFS path)
    C(dependent) ← clamp(C(dependent) + effective(d))

Design Decisions:
    - One visited set per sweep, so cycles cannot loop and each node is
      changed at most once by a sweep; later sweeps may change it again
    - Hard bounds: ``max_depth`` hops, and a dependent whose effective
      change is below ``epsilon`` is neither updated nor expanded
    - ``propagate_many`` partitions changes by weakly connected component;
      each component is owned by exactly one worker, so every node has a
      single writer

Data Flow:
    (source, Δ) → PropagationEngine.propagate → score writes (via recorder)
                                              → PropagationResult
"""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional, Union

from codetrust.config import PropagationConfig
from codetrust.propagation.graph import DependencyGraph
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.propagation.engine")

# (subject, old, new, cause) -> value actually written
Recorder = Callable[[str, Optional[float], float, str], float]

Changes = Union[Mapping[str, float], Iterable[tuple[str, float]]]


@dataclass
class Ripple:
    """One dependent touched by a sweep."""
    path: str
    delta: float
    old: float
    new: float
    depth: int


@dataclass
class PropagationResult:
    source: str
    delta: float
    ripples: list[Ripple] = field(default_factory=list)

    def delta_for(self, path: str) -> float:
        """Effective change applied to ``path`` by this sweep (0 if untouched)."""
        for ripple in self.ripples:
            if ripple.path == path:
                return ripple.delta
        return 0.0

    @property
    def affected(self) -> list[str]:
        return [r.path for r in self.ripples]


class PropagationEngine:
    """
    Damped, bounded BFS over dependents.

    Args:
        damping: Per-hop damping factor.
        max_depth: Hop cap.
        epsilon: Minimum |effective| worth applying.
        max_workers: Threads for ``propagate_many``.
        recorder: Called for every score write (e.g. the audit log); its
            return value is the score stored.
    """

    def __init__(
        self,
        damping: float = 0.7,
        max_depth: int = 5,
        epsilon: float = 1e-3,
        max_workers: int = 4,
        recorder: Optional[Recorder] = None,
    ):
        self.damping = damping
        self.max_depth = max_depth
        self.epsilon = epsilon
        self.max_workers = max_workers
        self.recorder = recorder

    @classmethod
    def from_config(cls, config: PropagationConfig, recorder: Optional[Recorder] = None) -> "PropagationEngine":
        return cls(
            damping=config.damping,
            max_depth=config.max_depth,
            epsilon=config.epsilon,
            max_workers=config.max_workers,
            recorder=recorder,
        )

    def propagate(self, graph: DependencyGraph, source: str, delta: float) -> PropagationResult:
        """
        Ripple a change of ``delta`` at ``source`` to its dependents.

        The source's own score is not modified; the caller has already
        applied its change.
        """
        result = PropagationResult(source=source, delta=delta)
        if source not in graph:
            logger.warning(f"Propagation from unknown file {source!r} ignored")
            return result

        start = graph.id_of(source)
        visited = {start}
        queue = deque([(start, delta, 0)])
        cause = f"propagation:{source}"

        while queue:
            node_id, carried, depth = queue.popleft()
            if depth >= self.max_depth:
                continue
            for dep_id, weight in graph.dependent_ids(node_id):
                if dep_id in visited:
                    continue
                effective = carried * self.damping * weight
                if abs(effective) < self.epsilon:
                    continue
                visited.add(dep_id)

                path = graph.path_of(dep_id)
                old = graph.score_at(dep_id)
                new = clamp01(old + effective)
                if self.recorder is not None:
                    new = self.recorder(path, old, new, cause)
                graph.set_score_at(dep_id, new)

                result.ripples.append(Ripple(path, effective, old, new, depth + 1))
                queue.append((dep_id, effective, depth + 1))

        logger.debug(
            f"Propagated {delta:+.3f} from {source!r} to {len(result.ripples)} dependents"
        )
        return result

    def propagate_many(
        self,
        graph: DependencyGraph,
        changes: Changes,
        max_workers: Optional[int] = None,
    ) -> list[PropagationResult]:
        """
        Run several sweeps, one worker per connected component.

        Sweeps within a component run in the order given. Results are
        returned in the order of ``changes``.
        """
        items = list(changes.items()) if isinstance(changes, Mapping) else list(changes)
        if not items:
            return []

        component = graph.component_of()
        groups: dict[int, list[int]] = {}
        for position, (path, _) in enumerate(items):
            groups.setdefault(component.get(path, -1 - position), []).append(position)

        results: list[Optional[PropagationResult]] = [None] * len(items)

        def run(positions: list[int]) -> None:
            for pos in positions:
                path, delta = items[pos]
                results[pos] = self.propagate(graph, path, delta)

        workers = min(max_workers or self.max_workers, len(groups))
        if workers <= 1:
            for positions in groups.values():
                run(positions)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="codetrust-ripple") as pool:
                for future in [pool.submit(run, p) for p in groups.values()]:
                    future.result()

        logger.info(f"Propagated {len(items)} changes across {len(groups)} components")
        return results  # type: ignore[return-value]
