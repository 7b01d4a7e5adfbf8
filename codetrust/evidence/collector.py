"""
Evidence Collection
====================

Queries every registered EvidenceSource for a unit in parallel, each with
its own deadline, and turns the answers into EvidenceRecords.

Design Decisions:
    - A source that fails or misses its deadline is replaced by its last
      good value for that unit, marked degraded and ESTIMATED, so one slow
      tool degrades a criterion instead of failing the whole score
    - With nothing cached the source is simply absent from the result
    - The thread pool lives as long as the collector; ``close()`` shuts it
      down without waiting for stragglers

Data Flow:
    unit → [EvidenceSource.value] (thread pool, timeout) → CollectedEvidence
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Iterable, Optional

from codetrust.config import EvidenceConfig
from codetrust.errors import EvidenceUnavailable
from codetrust.evidence.source import EvidenceSource
from codetrust.immune.mutation import MutationReport
from codetrust.schemas.evidence import EvidenceRecord

logger = logging.getLogger("codetrust.evidence.collector")


@dataclass
class CollectedEvidence:
    """Readings for one unit, plus what went wrong collecting them."""
    unit: str
    records: list[EvidenceRecord] = field(default_factory=list)
    reports: dict[str, Optional[MutationReport]] = field(default_factory=dict)
    reliabilities: dict[str, Optional[float]] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> list[EvidenceRecord]:
        return [r for r in self.records if r.degraded]


class EvidenceCollector:
    """
    Parallel, deadline-bounded evidence queries with a last-good cache.

    Args:
        sources: Initial sources (more can be registered later).
        timeout_s: Per-source deadline.
        max_workers: Thread pool size.
    """

    def __init__(
        self,
        sources: Iterable[EvidenceSource] = (),
        timeout_s: float = 0.5,
        max_workers: int = 8,
    ):
        self.timeout_s = timeout_s
        self._sources: dict[str, EvidenceSource] = {}
        self._cache: dict[tuple[str, str], tuple[float, Optional[MutationReport]]] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="codetrust-evidence"
        )
        for source in sources:
            self.register(source)

    @classmethod
    def from_config(cls, config: EvidenceConfig, sources: Iterable[EvidenceSource] = ()) -> "EvidenceCollector":
        return cls(sources, timeout_s=config.timeout_s, max_workers=config.max_workers)

    def register(self, source: EvidenceSource) -> None:
        if source.name() in self._sources:
            raise ValueError(f"Evidence source '{source.name()}' already registered")
        self._sources[source.name()] = source
        logger.debug(f"Registered {source!r}")

    @property
    def sources(self) -> list[EvidenceSource]:
        return list(self._sources.values())

    @staticmethod
    def _query(source: EvidenceSource, unit: str) -> tuple[float, Optional[MutationReport]]:
        return source.value(unit), source.mutation_report(unit)

    def collect(self, unit: str) -> CollectedEvidence:
        """Query every source for ``unit``; never raises for a failing source."""
        result = CollectedEvidence(unit=unit)
        sources = list(self._sources.values())
        if not sources:
            return result

        futures = {self._executor.submit(self._query, s, unit): s for s in sources}
        done, _ = wait(futures, timeout=self.timeout_s)

        for future, source in futures.items():
            name = source.name()
            result.reliabilities[name] = source.reliability
            if future in done:
                try:
                    value, report = future.result()
                except EvidenceUnavailable as e:
                    self._fallback(source, unit, str(e), result)
                    continue
                with self._lock:
                    self._cache[(name, unit)] = (value, report)
                result.records.append(source.record(value))
                result.reports[name] = report
            else:
                future.cancel()
                self._fallback(source, unit, f"timed out after {self.timeout_s}s", result)
        return result

    def _fallback(
        self, source: EvidenceSource, unit: str, reason: str, result: CollectedEvidence
    ) -> None:
        name = source.name()
        result.failures[name] = reason
        with self._lock:
            cached = self._cache.get((name, unit))
        if cached is None:
            logger.warning(f"Source '{name}' unavailable for '{unit}' with no cached value: {reason}")
            return
        value, report = cached
        logger.warning(f"Source '{name}' unavailable for '{unit}', using cached {value:.3f}: {reason}")
        result.records.append(source.record(value, degraded=True))
        result.reports[name] = report

    def forget(self, unit: str) -> None:
        """Drop cached readings for a unit."""
        with self._lock:
            for key in [k for k in self._cache if k[1] == unit]:
                del self._cache[key]

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
