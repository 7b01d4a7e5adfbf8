"""
Performance Benchmarks for the Confidence Core
================================================

Loose wall-clock bounds that catch accidental quadratic behaviour:

    - propagation sweep over a 1,000-file dependency graph
    - scoring a unit with cached criterion networks
    - inference on a loopy 5×5 grid network

Bounds are generous so the suite stays stable on slow CI machines.
"""

from __future__ import annotations

import random
import time

import pytest

from codetrust.bayes import BayesNet, BayesNetEngine
from codetrust.immune import MutationReport
from codetrust.propagation import DependencyGraph, PropagationEngine
from codetrust.schemas.evidence import SourceKind
from codetrust.schemas.graph import DependencyKind
from codetrust.scoring import ConfidenceScorer
from tests.conftest import make_record


def random_graph(n: int, edges_per_file: int = 3, seed: int = 13) -> DependencyGraph:
    rng = random.Random(seed)
    graph = DependencyGraph()
    for i in range(n):
        graph.add_file(f"pkg/mod_{i}.py", 0.8)
    kinds = list(DependencyKind)
    for i in range(1, n):
        for _ in range(edges_per_file):
            j = rng.randrange(0, i)
            graph.add_dependency(f"pkg/mod_{i}.py", f"pkg/mod_{j}.py", rng.choice(kinds))
    return graph


class TestPropagationBenchmark:
    """Ripple latency on large graphs."""

    @pytest.mark.benchmark
    def test_thousand_file_sweep(self):
        graph = random_graph(1000)
        engine = PropagationEngine()
        start = time.perf_counter()
        result = engine.propagate(graph, "pkg/mod_0.py", -0.5)
        elapsed = time.perf_counter() - start
        print(f"\n  1,000 files: {len(result.ripples)} ripples in {elapsed * 1000:.1f}ms")
        assert elapsed < 1.0
        assert all(0.0 <= s <= 1.0 for s in graph.scores().values())

    @pytest.mark.benchmark
    @pytest.mark.slow
    def test_many_sweeps(self):
        graph = random_graph(1000)
        engine = PropagationEngine()
        rng = random.Random(5)
        changes = [(f"pkg/mod_{rng.randrange(1000)}.py", rng.uniform(-0.3, 0.3))
                   for _ in range(200)]
        start = time.perf_counter()
        engine.propagate_many(graph, changes)
        elapsed = time.perf_counter() - start
        print(f"\n  200 sweeps: {elapsed:.2f}s")
        assert elapsed < 20.0


class TestScoringBenchmark:
    """Per-unit scoring latency with warm network cache."""

    @pytest.mark.benchmark
    def test_score_latency(self):
        scorer = ConfidenceScorer()
        records = [
            make_record(1.0, SourceKind.SYNTAX_CHECKER),
            make_record(1.0, SourceKind.TYPE_CHECKER),
            make_record(0.95, SourceKind.LINTER),
            make_record(1.0, SourceKind.TEST_RUNNER),
            make_record(0.7, SourceKind.RUNTIME_PROFILER),
            make_record(0.6, SourceKind.BUG_PREDICTOR),
            make_record(0.9, SourceKind.SECURITY_SCANNER),
            make_record(0.8, SourceKind.EMBEDDING_SIMILARITY),
        ]
        reports = {"test_runner": MutationReport(total=50, killed=45)}
        scorer.score("warmup.py", records, reports=reports)
        networks = scorer.cached_networks

        start = time.perf_counter()
        for i in range(200):
            scorer.score(f"src/unit_{i}.py", records, prior=0.6, reports=reports)
        per_unit = (time.perf_counter() - start) / 200
        print(f"\n  scoring: {per_unit * 1000:.2f}ms per unit")
        assert per_unit < 0.05
        assert scorer.cached_networks == networks


class TestInferenceBenchmark:
    """Message passing on a loopy network."""

    @pytest.mark.benchmark
    def test_grid_network(self):
        size = 5
        net = BayesNet()
        for r in range(size):
            for c in range(size):
                net.add_node(f"n{r}{c}")
        for r in range(size):
            for c in range(size):
                parents = [f"n{r}{(c + 1) % size}"]
                if r > 0:
                    parents.append(f"n{r - 1}{c}")
                shape_rows = [[0.7, 0.3], [0.2, 0.8]]
                cpt = shape_rows if len(parents) == 1 else [
                    [[0.8, 0.2], [0.5, 0.5]], [[0.4, 0.6], [0.1, 0.9]]
                ]
                net.set_cpt(f"n{r}{c}", parents, cpt)
        assert not net.is_acyclic()

        start = time.perf_counter()
        result = BayesNetEngine().infer(net, "n22", evidence={"n00": True})
        elapsed = time.perf_counter() - start
        print(f"\n  5×5 loopy grid: {result.method.value} in {elapsed * 1000:.1f}ms")
        assert result.distribution.sum() == pytest.approx(1.0)
        assert elapsed < 10.0
