"""
codetrust Test Configuration
==============================

Shared fixtures, factories, and helpers for the entire test suite.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from codetrust.bayes.network import BayesNet
from codetrust.config import CodeTrustConfig
from codetrust.evidence.source import EvidenceSource
from codetrust.immune.mutation import MutationReport
from codetrust.schemas.developer import DeveloperStats
from codetrust.schemas.evidence import Criterion, EvidenceRecord, SourceKind
from codetrust.schemas.feedback import ActionKind, DeveloperAction
from codetrust.schemas.score import ConfidenceScore, CriteriaBreakdown
from codetrust.scoring.aggregator import aggregate
from codetrust.utils import utc_now


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")
    config.addinivalue_line("markers", "benchmark: performance bounds")
    config.addinivalue_line("markers", "slow: tests that take >5s")


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config(tmp_path) -> CodeTrustConfig:
    """Default config with the store under a temp directory."""
    return CodeTrustConfig(store_dir=tmp_path / "store", log_level="DEBUG")


@pytest.fixture
def service(config):
    """A ConfidenceService backed by a throwaway store."""
    from codetrust.pipeline import ConfidenceService

    svc = ConfidenceService(config)
    yield svc
    svc.close()


@pytest.fixture
def sprinkler_net() -> BayesNet:
    """
    The textbook rain / sprinkler / wet-grass network.

    P(rain | grass_wet) = 0.35769 (to 5 d.p.).
    """
    net = BayesNet()
    net.add_node("rain", cpt=[0.8, 0.2])
    net.add_node("sprinkler", parents=["rain"], cpt=[[0.6, 0.4], [0.99, 0.01]])
    net.add_node(
        "grass_wet",
        parents=["sprinkler", "rain"],
        cpt=[
            [[1.0, 0.0], [0.2, 0.8]],
            [[0.1, 0.9], [0.01, 0.99]],
        ],
    )
    return net


@pytest.fixture
def polytree_net() -> BayesNet:
    """a → c ← b, c → d: singly connected, so belief propagation is exact."""
    net = BayesNet()
    net.add_node("a", cpt=[0.3, 0.7])
    net.add_node("b", cpt=[0.6, 0.4])
    net.add_node(
        "c",
        parents=["a", "b"],
        cpt=[
            [[0.9, 0.1], [0.4, 0.6]],
            [[0.3, 0.7], [0.05, 0.95]],
        ],
    )
    net.add_node("d", parents=["c"], cpt=[[0.8, 0.2], [0.25, 0.75]])
    return net


@pytest.fixture
def cyclic_net() -> BayesNet:
    """x → y → z → x: a directed cycle, only expressible via set_cpt."""
    net = BayesNet()
    for name in ("x", "y", "z"):
        net.add_node(name)
    net.set_cpt("y", ["x"], [[0.9, 0.1], [0.2, 0.8]])
    net.set_cpt("z", ["y"], [[0.7, 0.3], [0.1, 0.9]])
    net.set_cpt("x", ["z"], [[0.6, 0.4], [0.3, 0.7]])
    return net


# ── Factories ───────────────────────────────────────────────────

def make_record(
    value: float = 1.0,
    kind: SourceKind = SourceKind.SYNTAX_CHECKER,
    source: Optional[str] = None,
    weight: float = 1.0,
    degraded: bool = False,
) -> EvidenceRecord:
    """Build an EvidenceRecord using the kind's profile."""
    src = EvidenceSource(source or kind.value, kind, lambda unit: value, weight=weight)
    return src.record(value, degraded=degraded)


def make_source(
    name: str = "checker",
    kind: SourceKind = SourceKind.SYNTAX_CHECKER,
    value: Any = 1.0,
    reliability: Optional[float] = None,
    weight: float = 1.0,
    report: Optional[MutationReport] = None,
) -> EvidenceSource:
    """
    Build an EvidenceSource.

    ``value`` may be a float, a callable ``unit -> float``, or an exception
    instance to raise on every query.
    """
    if isinstance(value, BaseException):
        def query(unit):
            raise value
    elif callable(value):
        query = value
    else:
        def query(unit):
            return value
    mutation = (lambda unit: report) if report is not None else None
    return EvidenceSource(
        name, kind, query, reliability=reliability, weight=weight, mutation_report=mutation
    )


def make_score(
    unit: str = "src/app.py",
    overall: Optional[float] = None,
    computed_at: Optional[datetime] = None,
    **criteria: float,
) -> ConfidenceScore:
    """Build a valid ConfidenceScore; ``overall`` defaults to CVaR of the criteria."""
    breakdown = CriteriaBreakdown(**{
        "syntax": 1.0, "type_safety": 1.0, "lint": 1.0,
        "runtime": 0.9, "behavior": 0.9, "security": 0.9,
        **criteria,
    })
    kwargs: dict[str, Any] = {}
    if computed_at is not None:
        kwargs["computed_at"] = computed_at
    return ConfidenceScore(
        unit=unit,
        overall=aggregate(breakdown) if overall is None else overall,
        criteria=breakdown,
        **kwargs,
    )


def make_uniform_score(unit: str, value: float, **kwargs) -> ConfidenceScore:
    """A score whose six criteria (and overall) all equal ``value``."""
    return make_score(unit, **{c.value: value for c in Criterion}, **kwargs)


def make_stats(
    commit_count: int = 50,
    bug_count: int = 2,
    review_acceptance_rate: float = 0.9,
    days_ago: float = 1.0,
    domain_expertise: float = 0.8,
    fatigue: float = 0.1,
    now: Optional[datetime] = None,
) -> DeveloperStats:
    now = now or utc_now()
    return DeveloperStats(
        commit_count=commit_count,
        bug_count=bug_count,
        review_acceptance_rate=review_acceptance_rate,
        last_edit=now - timedelta(days=days_ago),
        domain_expertise=domain_expertise,
        fatigue=fatigue,
    )


def make_action(
    kind: ActionKind = ActionKind.FIX_FLAGGED_LINE,
    developer: str = "ana",
    module: str = "billing",
) -> DeveloperAction:
    return DeveloperAction(developer=developer, module=module, kind=kind)
