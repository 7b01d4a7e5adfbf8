"""
Knowledge graph: developer → module → confidence, and bus factor.

The bus factor of a module is how many developers could carry it alone,
i.e. whose confidence in it strictly exceeds the expertise threshold.
A bus factor of one or zero is a knowledge risk.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Optional

from codetrust.developer.model import DeveloperConfidenceModel
from codetrust.schemas.developer import BusFactorReport
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.developer.knowledge")


class KnowledgeGraph:
    def __init__(self, threshold: float = 0.8):
        self.threshold = threshold
        self._by_developer: dict[str, dict[str, float]] = defaultdict(dict)

    def set_confidence(self, developer: str, module: str, confidence: float) -> None:
        self._by_developer[developer][module] = clamp01(confidence)

    def confidence(self, developer: str, module: str) -> Optional[float]:
        return self._by_developer.get(developer, {}).get(module)

    def modules_for(self, developer: str) -> dict[str, float]:
        return dict(self._by_developer.get(developer, {}))

    def developers_for(self, module: str) -> dict[str, float]:
        return {
            dev: modules[module]
            for dev, modules in self._by_developer.items()
            if module in modules
        }

    def modules(self) -> list[str]:
        return sorted({m for modules in self._by_developer.values() for m in modules})

    def bus_factor(self, module: str, threshold: Optional[float] = None) -> BusFactorReport:
        cutoff = self.threshold if threshold is None else threshold
        experts = sorted(d for d, c in self.developers_for(module).items() if c > cutoff)
        return BusFactorReport(
            module=module, bus_factor=len(experts), experts=experts, threshold=cutoff
        )

    def at_risk(self, threshold: Optional[float] = None) -> list[BusFactorReport]:
        """Bus-factor reports for every module at risk, lowest factor first."""
        reports = [self.bus_factor(m, threshold) for m in self.modules()]
        risky = [r for r in reports if r.at_risk]
        return sorted(risky, key=lambda r: (r.bus_factor, r.module))

    def refresh(self, model: DeveloperConfidenceModel, now: Optional[datetime] = None) -> int:
        """Recompute confidence for every pair the model has stats for."""
        pairs = model.pairs()
        for developer, module in pairs:
            self.set_confidence(developer, module, model.compute(developer, module, now))
        logger.debug(f"Knowledge graph refreshed for {len(pairs)} pairs")
        return len(pairs)
