"""
codetrust Confidence Service
=============================

Wires the confidence core together and is the single entry point for the
editor layer:

    EvidenceSources → EvidenceCollector → ConfidenceScorer (BayesNetEngine,
    CVaR) → ConfidenceField → PropagationEngine (on delta) → ImmuneLayer
    (validates, caps, audits every write) → FeedbackEngine (priors for the
    next inference)

It owns the component instances, the LocalStore handle and the order in
which things happen; each component stays usable on its own.

Usage:
    from codetrust.pipeline import ConfidenceService

    with ConfidenceService() as service:
        service.register_source(EvidenceSource("mypy", SourceKind.TYPE_CHECKER, run_mypy))
        score = service.score_unit("src/app.py", developer="ana")
        service.record_action(DeveloperAction(developer="ana", module="src",
                                              kind=ActionKind.ADD_TEST))
        decision = service.ship_gate("src/app.py", "ana", "src")
"""

from __future__ import annotations

import logging
import time
from typing import Mapping, Optional, Sequence

from codetrust.config import CodeTrustConfig, get_config
from codetrust.developer.gate import ShipGate
from codetrust.developer.knowledge import KnowledgeGraph
from codetrust.developer.model import DeveloperConfidenceModel
from codetrust.evidence.collector import EvidenceCollector
from codetrust.evidence.source import EvidenceSource
from codetrust.feedback.engine import FeedbackEngine
from codetrust.feedback.transitions import TransitionStats
from codetrust.immune.layer import ImmuneLayer
from codetrust.propagation.engine import PropagationEngine, PropagationResult
from codetrust.propagation.graph import DependencyGraph
from codetrust.schemas.developer import BusFactorReport, DeveloperStats, ShipDecision
from codetrust.schemas.evidence import Criterion
from codetrust.schemas.feedback import DeveloperAction, DeveloperPrior
from codetrust.schemas.graph import DependencyEdge, DependencyKind
from codetrust.schemas.score import ConfidenceScore, CriteriaBreakdown
from codetrust.scoring.calibrator import ConfidenceCalibrator
from codetrust.scoring.scorer import ConfidenceScorer
from codetrust.store import LocalStore
from codetrust.surface.field import ConfidenceField

logger = logging.getLogger("codetrust.pipeline")


def module_of(unit: str) -> str:
    """Module a unit belongs to: its directory, or the file for top-level units."""
    path = unit.split(":", 1)[0]
    head, sep, _ = path.rpartition("/")
    return head if sep else path


class ConfidenceService:
    """
    Orchestrator for the confidence core.

    Args:
        config: Configuration (env / .env / defaults when omitted).
        store: Local state handle; defaults to ``config.store_dir``.
    """

    def __init__(
        self,
        config: Optional[CodeTrustConfig] = None,
        store: Optional[LocalStore] = None,
    ):
        self.config = config or get_config()
        self.store = store or LocalStore(self.config.store_dir)

        self.immune = ImmuneLayer.from_config(self.config.immune, audit_path=self.store.audit_path)
        self.feedback = FeedbackEngine.from_config(self.config.feedback, monitor=self.immune.anomaly)
        self.feedback.load(self.store.priors)
        self.transitions = TransitionStats()
        self.transitions.load(self.store.transitions)

        self.collector = EvidenceCollector.from_config(self.config.evidence)
        self.scorer = ConfidenceScorer.from_config(self.config, self.immune)
        self.graph = DependencyGraph()
        self.propagation = PropagationEngine.from_config(
            self.config.propagation, recorder=self.immune.record_score_change
        )
        self.developers = DeveloperConfidenceModel.from_config(self.config, self.feedback)
        self.knowledge = KnowledgeGraph(self.config.developer.bus_factor_threshold)
        self.gate = ShipGate(
            self.developers,
            decay=self.immune.decay,
            threshold=self.config.developer.ship_threshold,
            reverify=self._reverify,
        )
        self.field = ConfidenceField()
        self.timings: dict[str, float] = {}

        logger.info(
            f"ConfidenceService ready (config {self.config.config_hash()}, "
            f"store {self.store.root}, {len(self.immune.audit)} audit entries)"
        )

    @classmethod
    def from_config(cls, config_path: Optional[str] = None) -> "ConfidenceService":
        return cls(get_config(config_path))

    @property
    def confidence(self) -> Mapping[str, float]:
        """Read-only unit → overall view for the editor layer."""
        return self.field.view()

    # ── Evidence & scoring ─────────────────────────────────────────

    def register_source(self, source: EvidenceSource) -> None:
        self.collector.register(source)

    def score_unit(
        self,
        unit: str,
        developer: Optional[str] = None,
        module: Optional[str] = None,
        prior: Optional[float] = None,
        cause: str = "evidence",
    ) -> ConfidenceScore:
        """
        Collect evidence for ``unit``, score it, publish it, and ripple the
        change to dependents when the unit is a file in the graph.
        """
        module = module or module_of(unit)
        if prior is None:
            prior = (
                self.feedback.prior(developer, module)
                if developer else self.feedback.initial_prior
            )

        t0 = time.perf_counter()
        collected = self.collector.collect(unit)
        t1 = time.perf_counter()
        score = self.scorer.score_collected(collected, prior)
        t2 = time.perf_counter()
        self.timings["collect"] = t1 - t0
        self.timings["score"] = t2 - t1

        old = self.field.get(unit)
        value = self.immune.record_score_change(unit, old, score.overall, cause)
        self.field.publish(unit, value, score)

        if unit in self.graph:
            self._set_file_score(unit, value)
        return score

    def _reverify(self, unit: str) -> ConfidenceScore:
        previous = self.field.detail(unit)
        return self.score_unit(
            unit, prior=previous.prior if previous else None, cause="reverify"
        )

    # ── Dependency graph & propagation ─────────────────────────────

    def add_file(self, path: str, score: float = 0.5) -> None:
        self.graph.add_file(path, score)
        if path not in self.field:
            self.field.publish(path, self.graph.score(path))

    def add_dependency(
        self,
        dependent: str,
        dependency: str,
        kind: DependencyKind = DependencyKind.IMPORT,
        weight: Optional[float] = None,
    ) -> Optional[DependencyEdge]:
        return self.graph.add_dependency(dependent, dependency, kind, weight)

    def _set_file_score(self, path: str, value: float) -> PropagationResult:
        old = self.graph.score(path)
        self.graph.set_score(path, value)
        result = self.propagation.propagate(self.graph, path, value - old)
        for ripple in result.ripples:
            self.field.publish(ripple.path, ripple.new)
        return result

    def update_file_score(self, path: str, score: float, cause: str = "edit") -> PropagationResult:
        """Set a file's score (audited) and propagate the delta to dependents."""
        if path not in self.graph:
            self.add_file(path, score)
        old = self.graph.score(path)
        value = self.immune.record_score_change(path, old, score, cause)
        self.field.publish(path, value)
        return self._set_file_score(path, value)

    def update_file_scores(self, scores: Mapping[str, float], cause: str = "edit") -> list[PropagationResult]:
        """Batch form of ``update_file_score``; sweeps run per component in parallel."""
        deltas = []
        for path, score in scores.items():
            if path not in self.graph:
                self.add_file(path, score)
            old = self.graph.score(path)
            value = self.immune.record_score_change(path, old, score, cause)
            self.graph.set_score(path, value)
            self.field.publish(path, value)
            deltas.append((path, value - old))
        results = self.propagation.propagate_many(self.graph, deltas)
        for result in results:
            for ripple in result.ripples:
                self.field.publish(ripple.path, ripple.new)
        return results

    # ── Feedback ───────────────────────────────────────────────────

    def record_action(self, action: DeveloperAction) -> Optional[DeveloperPrior]:
        return self.feedback.record(action)

    def record_file_open(self, previous: Optional[str], current: str) -> None:
        if previous:
            self.transitions.record_transition(previous, current)

    def predict_next(self, current: str, top_n: int = 3) -> list[tuple[str, float]]:
        return self.transitions.predict(current, top_n)

    def forget(self, developer: str, module: Optional[str] = None) -> int:
        """Delete priors and persist the deletion immediately."""
        removed = self.feedback.forget(developer, module)
        self.flush()
        return removed

    # ── Developers & gating ────────────────────────────────────────

    def set_developer_stats(self, developer: str, module: str, stats: DeveloperStats) -> None:
        self.developers.set_stats(developer, module, stats)

    def developer_confidence(self, developer: str, module: str) -> float:
        return self.developers.compute(developer, module)

    def bus_factor(self, module: str) -> BusFactorReport:
        self.knowledge.refresh(self.developers)
        return self.knowledge.bus_factor(module)

    def ship_gate(self, unit: str, developer: str, module: Optional[str] = None) -> ShipDecision:
        """
        Gate a change against the unit's current confidence.

        A unit that has never been published is scored first. A unit known
        only through the dependency graph is gated on its graph score
        without collecting evidence, so a read never triggers a ripple.
        """
        module = module or module_of(unit)
        current = self.field.get(unit)
        score = self.field.detail(unit)
        if score is None and current is None:
            score = self.score_unit(unit, developer=developer, module=module)
            current = score.overall
        elif score is None:
            score = ConfidenceScore(
                unit=unit,
                overall=current,
                criteria=CriteriaBreakdown(**{c.value: current for c in Criterion}),
            )
        return self.gate.evaluate(score, developer, module, current=current)

    # ── Safety & calibration ───────────────────────────────────────

    def verify_audit(self) -> int:
        return self.immune.verify_audit()

    def fit_calibration(
        self,
        scores: Sequence[float],
        outcomes: Sequence[int],
        method: str = "isotonic",
    ) -> dict[str, float]:
        """
        Fit a calibrator on outcome history and use it for future scores.

        Returns:
            ECE before and after calibration.
        """
        calibrator = ConfidenceCalibrator(method=method).fit(scores, outcomes)
        ece_before = calibrator.compute_ece(scores, outcomes)
        ece_after = calibrator.compute_ece(calibrator.calibrate(scores), outcomes)
        self.scorer.calibrator = calibrator
        logger.info(f"Calibration ({method}): ECE {ece_before:.4f} -> {ece_after:.4f}")
        return {"ece_before": ece_before, "ece_after": ece_after}

    # ── Lifecycle ──────────────────────────────────────────────────

    def flush(self) -> None:
        self.store.priors = self.feedback.dump()
        self.store.transitions = self.transitions.dump()
        self.store.flush()

    def close(self) -> None:
        self.flush()
        self.collector.close()

    def __enter__(self) -> "ConfidenceService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
