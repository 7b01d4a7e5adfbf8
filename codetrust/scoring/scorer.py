"""
Confidence Scoring
===================

Turns the evidence collected for a code unit into a ConfidenceScore.

Per criterion:
    1. Test-runner proofs are vetted by the MutationValidator; proven
       syntax / type / lint readings are snapped to their discrete values
    2. Proven, non-degraded, non-ML readings decide the criterion outright
       (the minimum, so one failing checker wins)
    3. Otherwise the criterion is the posterior of a latent binary node in
       a small Bayesian network: one child per non-ML reading with a
       symmetric reliability CPT, readings as soft evidence, and the
       developer prior as a prior factor
    4. ML-derived readings are blended in afterwards under the MlCap

    overall = CVaR_α(criteria)

Design Decisions:
    - Networks are cached per (criterion, reliabilities); readings and the
      prior enter as soft evidence, so a new value never rebuilds a net
    - A criterion with no readings at all is 0.0 when it is a proven
      criterion (nothing was proven) and the developer prior otherwise
    - Reliabilities are capped just below 1 so contradicting certain
      readings cannot produce a zero-mass posterior

Data Flow:
    CollectedEvidence + prior → ConfidenceScorer.score → ConfidenceScore
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Mapping, Optional, Sequence

from codetrust.bayes.engine import BayesNetEngine
from codetrust.bayes.network import BayesNet
from codetrust.config import CodeTrustConfig
from codetrust.evidence.collector import CollectedEvidence
from codetrust.immune.layer import ImmuneLayer
from codetrust.immune.mutation import MutationReport
from codetrust.schemas.evidence import Criterion, EvidenceRecord, ProofClass
from codetrust.schemas.score import ConfidenceScore, CriteriaBreakdown
from codetrust.scoring.aggregator import aggregate
from codetrust.scoring.calibrator import ConfidenceCalibrator
from codetrust.utils import clamp01

logger = logging.getLogger("codetrust.scoring.scorer")

LATENT = "criterion"
_MAX_RELIABILITY = 1.0 - 1e-9
_PRIOR_EPS = 1e-9


def snap_proven(criterion: Criterion, value: float) -> float:
    """
    Discretize a proven reading.

    Syntax and type safety are pass/fail; lint distinguishes clean (1.0),
    warnings only (0.9) and errors (0.0).
    """
    passed = value >= 1.0 - 1e-9
    if criterion == Criterion.LINT:
        if passed:
            return 1.0
        return 0.9 if value > 0.0 else 0.0
    if criterion in (Criterion.SYNTAX, Criterion.TYPE_SAFETY):
        return 1.0 if passed else 0.0
    return value


class ConfidenceScorer:
    """
    Assembles per-criterion values and the CVaR overall score.

    Args:
        engine: Bayesian inference engine.
        immune: Safety layer (mutation validation and ML cap).
        alpha: CVaR level.
        default_reliability: Reliability for sources that declare none.
        calibrator: Optional fitted calibrator for ``calibrated``.
    """

    def __init__(
        self,
        engine: Optional[BayesNetEngine] = None,
        immune: Optional[ImmuneLayer] = None,
        alpha: float = 0.95,
        default_reliability: float = 0.9,
        calibrator: Optional[ConfidenceCalibrator] = None,
    ):
        self.engine = engine or BayesNetEngine()
        self.immune = immune or ImmuneLayer()
        self.alpha = alpha
        self.default_reliability = default_reliability
        self.calibrator = calibrator
        self._networks: dict[tuple, BayesNet] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: CodeTrustConfig, immune: ImmuneLayer) -> "ConfidenceScorer":
        return cls(
            engine=BayesNetEngine.from_config(config.inference),
            immune=immune,
            alpha=config.aggregation.alpha,
            default_reliability=config.inference.default_reliability,
        )

    # ── Network cache ──────────────────────────────────────────────

    def _network(self, criterion: Criterion, reliabilities: tuple[float, ...]) -> BayesNet:
        key = (criterion, reliabilities)
        with self._lock:
            net = self._networks.get(key)
            if net is None:
                net = BayesNet()
                net.add_node(LATENT, cpt=[0.5, 0.5])
                for i, r in enumerate(reliabilities):
                    net.add_node(f"reading_{i}", parents=[LATENT], cpt=[[r, 1.0 - r], [1.0 - r, r]])
                self._networks[key] = net
                logger.debug(
                    f"Built {criterion.value} network with {len(reliabilities)} readings"
                )
            return net

    @property
    def cached_networks(self) -> int:
        return len(self._networks)

    def infer_criterion(
        self,
        criterion: Criterion,
        readings: Sequence[tuple[float, float]],
        prior: float,
    ) -> float:
        """
        Posterior P(criterion holds) from (value, reliability) readings.

        With no readings the posterior is the prior.
        """
        if not readings:
            return clamp01(prior)
        reliabilities = tuple(min(max(r, 0.5), _MAX_RELIABILITY) for _, r in readings)
        net = self._network(criterion, reliabilities)
        p = min(max(prior, _PRIOR_EPS), 1.0 - _PRIOR_EPS)
        soft = {LATENT: [1.0 - p, p]}
        for i, (value, _) in enumerate(readings):
            soft[f"reading_{i}"] = [1.0 - value, value]
        return clamp01(self.engine.infer(net, LATENT, soft_evidence=soft).probability(1))

    # ── Scoring ────────────────────────────────────────────────────

    def _vet(
        self, records: Sequence[EvidenceRecord], reports: Mapping[str, Optional[MutationReport]]
    ) -> list[EvidenceRecord]:
        vetted = []
        for record in records:
            record = self.immune.validate_test_proof(record, reports.get(record.source))
            if record.proof_class == ProofClass.PROVEN:
                snapped = snap_proven(record.criterion, record.value)
                if snapped != record.value:
                    record = record.model_copy(update={"value": snapped})
            vetted.append(record)
        return vetted

    def _criterion_value(
        self,
        criterion: Criterion,
        records: list[EvidenceRecord],
        prior: float,
        reliabilities: Mapping[str, Optional[float]],
    ) -> float:
        proven = [
            r for r in records
            if r.proof_class == ProofClass.PROVEN and not r.degraded and not r.ml_derived
        ]
        if proven:
            return min(r.value for r in proven)

        non_ml = [r for r in records if not r.ml_derived]
        ml = [r for r in records if r.ml_derived]
        if not non_ml and not ml and criterion.is_proven:
            return 0.0

        readings = [
            (r.value, reliabilities.get(r.source) or self.default_reliability) for r in non_ml
        ]
        base = self.infer_criterion(criterion, readings, prior)
        if not ml:
            return base

        ml_weight = sum(r.weight for r in ml)
        ml_value = sum(r.weight * r.value for r in ml) / ml_weight
        other_weight = sum(r.weight for r in non_ml) if non_ml else 1.0
        return self.immune.ml_cap.blend(base, ml_value, ml_weight, other_weight)

    def score(
        self,
        unit: str,
        records: Sequence[EvidenceRecord],
        prior: float = 0.5,
        reports: Optional[Mapping[str, Optional[MutationReport]]] = None,
        reliabilities: Optional[Mapping[str, Optional[float]]] = None,
    ) -> ConfidenceScore:
        """
        Score one unit.

        Args:
            unit: Code unit identifier.
            records: Readings (possibly degraded) for the unit.
            prior: Developer prior for this module, from the FeedbackEngine.
            reports: Mutation reports keyed by source name.
            reliabilities: Source reliabilities keyed by source name.
        """
        prior = clamp01(prior)
        vetted = self._vet(records, reports or {})

        by_criterion: dict[Criterion, list[EvidenceRecord]] = defaultdict(list)
        for record in vetted:
            by_criterion[record.criterion].append(record)

        values = {
            c.value: self._criterion_value(c, by_criterion[c], prior, reliabilities or {})
            for c in Criterion
        }
        criteria = CriteriaBreakdown(**values)
        overall = aggregate(criteria, self.alpha)
        degraded = [c for c in Criterion if any(r.degraded for r in by_criterion[c])]

        calibrated = None
        if self.calibrator is not None and self.calibrator.is_fitted:
            calibrated = self.calibrator.calibrate_single(overall)

        logger.debug(f"Scored '{unit}': overall={overall:.3f}, worst={criteria.worst.value}")
        return ConfidenceScore(
            unit=unit,
            overall=overall,
            criteria=criteria,
            evidence=vetted,
            degraded=degraded,
            prior=prior,
            alpha=self.alpha,
            calibrated=calibrated,
        )

    def score_collected(self, collected: CollectedEvidence, prior: float = 0.5) -> ConfidenceScore:
        return self.score(
            collected.unit,
            collected.records,
            prior=prior,
            reports=collected.reports,
            reliabilities=collected.reliabilities,
        )
