"""
Unit tests for the dependency graph and delta propagation.

Coverage:
- Graph construction, default edge weights, malformed edges dropped
- Edge replacement and weakly connected components
- Damped ripple along a chain, depth cap, epsilon cut-off
- Cycles and diamonds visit each file once per sweep
- Scores stay in [0, 1]; every write goes through the recorder
- Concurrent sweeps over disjoint components
"""

from __future__ import annotations

import pytest

from codetrust.propagation import DependencyGraph, PropagationEngine
from codetrust.schemas.graph import DependencyEdge, DependencyKind


def chain(length: int, score: float = 0.8, weight: float = 1.0) -> DependencyGraph:
    """f0 ← f1 ← f2 ...: each file depends on the previous one."""
    graph = DependencyGraph()
    for i in range(length):
        graph.add_file(f"f{i}.py", score)
    for i in range(1, length):
        graph.add_dependency(f"f{i}.py", f"f{i - 1}.py", DependencyKind.CALL, weight)
    return graph


class TestDependencyGraph:
    """Graph store."""

    def test_add_file_is_idempotent(self):
        graph = DependencyGraph()
        first = graph.add_file("a.py", 0.4)
        assert graph.add_file("a.py", 0.9) == first
        assert len(graph) == 1
        assert graph.score("a.py") == 0.9

    def test_default_weight_by_kind(self):
        graph = DependencyGraph()
        graph.add_file("app.py")
        graph.add_file("db.py")
        edge = graph.add_dependency("app.py", "db.py", DependencyKind.INHERIT)
        assert edge.weight == pytest.approx(0.7)
        assert graph.dependents("db.py") == [edge]
        assert graph.dependencies("app.py") == [edge]

    @pytest.mark.parametrize("dependent,dependency,weight", [
        ("a.py", "b.py", 1.5),
        ("a.py", "b.py", 0.0),
        ("a.py", "a.py", None),
        ("a.py", "missing.py", None),
    ])
    def test_malformed_edges_dropped(self, dependent, dependency, weight):
        graph = DependencyGraph()
        graph.add_file("a.py")
        graph.add_file("b.py")
        assert graph.add_dependency(dependent, dependency, weight=weight) is None
        assert graph.edge_count() == 0

    def test_unknown_file_raises(self):
        with pytest.raises(KeyError):
            DependencyGraph().score("ghost.py")

    def test_replace_dependencies(self):
        graph = DependencyGraph()
        for path in ("app.py", "db.py", "cache.py", "log.py"):
            graph.add_file(path)
        graph.add_dependency("app.py", "db.py")
        kept = graph.replace_dependencies("app.py", [
            ("cache.py", DependencyKind.CALL),
            ("log.py", "import", 0.2),
            ("app.py", DependencyKind.CALL),
            DependencyEdge(dependent="app.py", dependency="db.py", weight=0.9),
        ])
        assert kept == 3
        assert graph.dependents("db.py")[0].weight == 0.9
        assert {e.dependency for e in graph.dependencies("app.py")} == {
            "cache.py", "log.py", "db.py"
        }

    def test_remove_dependency(self):
        graph = chain(2)
        assert graph.remove_dependency("f1.py", "f0.py")
        assert not graph.remove_dependency("f1.py", "f0.py")
        assert graph.dependents("f0.py") == []

    def test_components(self):
        graph = chain(3)
        graph.add_file("lonely.py")
        graph.add_file("x.py")
        graph.add_file("y.py")
        graph.add_dependency("y.py", "x.py")
        assert graph.components() == [["f0.py", "f1.py", "f2.py"], ["lonely.py"], ["x.py", "y.py"]]


class TestPropagation:
    """Damped breadth-first ripple."""

    def test_chain_ripple(self):
        graph = chain(3)
        graph.add_file("d.py", 0.8)
        result = PropagationEngine().propagate(graph, "f0.py", -0.3)
        assert result.delta_for("f1.py") == pytest.approx(-0.21)
        assert result.delta_for("f2.py") == pytest.approx(-0.147)
        assert graph.score("f1.py") == pytest.approx(0.59)
        assert graph.score("f2.py") == pytest.approx(0.653)
        assert graph.score("f0.py") == 0.8
        assert result.delta_for("d.py") == 0.0
        assert graph.score("d.py") == 0.8
        assert "d.py" not in result.affected

    def test_edge_weight_scales_delta(self):
        graph = chain(2, weight=0.5)
        result = PropagationEngine(damping=0.7).propagate(graph, "f0.py", 0.2)
        assert result.delta_for("f1.py") == pytest.approx(0.07)

    def test_depth_cap(self):
        graph = chain(8, score=1.0)
        result = PropagationEngine(max_depth=5).propagate(graph, "f0.py", -1.0)
        assert result.affected == [f"f{i}.py" for i in range(1, 6)]
        assert graph.score("f6.py") == 1.0
        assert max(r.depth for r in result.ripples) == 5

    def test_epsilon_stops_small_ripples(self):
        graph = DependencyGraph()
        graph.add_file("a.py")
        graph.add_file("b.py")
        graph.add_dependency("b.py", "a.py", DependencyKind.IMPORT)
        result = PropagationEngine(epsilon=1e-3).propagate(graph, "a.py", 0.001)
        assert result.ripples == []
        assert graph.score("b.py") == 0.5

    def test_cycle_terminates(self):
        graph = DependencyGraph()
        graph.add_file("a.py", 0.8)
        graph.add_file("b.py", 0.8)
        graph.add_dependency("a.py", "b.py", DependencyKind.CALL, 1.0)
        graph.add_dependency("b.py", "a.py", DependencyKind.CALL, 1.0)
        result = PropagationEngine().propagate(graph, "a.py", -0.2)
        assert result.affected == ["b.py"]
        assert graph.score("a.py") == 0.8

    def test_diamond_visits_once(self):
        graph = DependencyGraph()
        for path in ("top.py", "left.py", "right.py", "base.py"):
            graph.add_file(path, 0.9)
        graph.add_dependency("left.py", "base.py", DependencyKind.CALL, 1.0)
        graph.add_dependency("right.py", "base.py", DependencyKind.CALL, 1.0)
        graph.add_dependency("top.py", "left.py", DependencyKind.CALL, 1.0)
        graph.add_dependency("top.py", "right.py", DependencyKind.CALL, 1.0)
        result = PropagationEngine().propagate(graph, "base.py", -0.5)
        assert sorted(result.affected) == ["left.py", "right.py", "top.py"]
        assert result.delta_for("top.py") == pytest.approx(-0.245)

    def test_scores_are_clamped(self):
        graph = chain(2, score=0.1)
        result = PropagationEngine().propagate(graph, "f0.py", -0.9)
        assert graph.score("f1.py") == 0.0
        assert result.ripples[0].new == 0.0
        graph = chain(2, score=0.95)
        PropagationEngine().propagate(graph, "f0.py", 0.9)
        assert graph.score("f1.py") == 1.0

    def test_unknown_source_is_noop(self):
        result = PropagationEngine().propagate(chain(2), "ghost.py", -0.5)
        assert result.ripples == []

    def test_recorder_sees_every_write(self):
        writes = []

        def recorder(path, old, new, cause):
            writes.append((path, cause))
            return new

        graph = chain(4)
        PropagationEngine(recorder=recorder).propagate(graph, "f0.py", -0.2)
        assert writes == [
            ("f1.py", "propagation:f0.py"),
            ("f2.py", "propagation:f0.py"),
            ("f3.py", "propagation:f0.py"),
        ]

    def test_recorder_value_is_stored(self):
        graph = chain(2)
        PropagationEngine(recorder=lambda path, old, new, cause: 0.42).propagate(
            graph, "f0.py", -0.2
        )
        assert graph.score("f1.py") == 0.42


class TestPropagateMany:
    """Per-component concurrency."""

    def test_disjoint_components(self):
        graph = DependencyGraph()
        for name in ("a", "b", "c", "d"):
            graph.add_file(f"{name}0.py", 0.8)
            graph.add_file(f"{name}1.py", 0.8)
            graph.add_dependency(f"{name}1.py", f"{name}0.py", DependencyKind.CALL, 1.0)
        changes = {f"{name}0.py": -0.1 for name in ("a", "b", "c", "d")}
        results = PropagationEngine(max_workers=4).propagate_many(graph, changes)
        assert [r.source for r in results] == list(changes)
        for name in ("a", "b", "c", "d"):
            assert graph.score(f"{name}1.py") == pytest.approx(0.73)

    def test_same_component_runs_in_order(self):
        graph = chain(3)
        results = PropagationEngine().propagate_many(
            graph, [("f0.py", -0.1), ("f1.py", 0.2)]
        )
        assert results[0].delta_for("f1.py") == pytest.approx(-0.07)
        assert results[1].delta_for("f2.py") == pytest.approx(0.14)
        assert graph.score("f2.py") == pytest.approx(0.8 - 0.049 + 0.14)

    def test_empty(self):
        assert PropagationEngine().propagate_many(DependencyGraph(), {}) == []
