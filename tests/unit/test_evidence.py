"""
Unit tests for evidence sources, the collector and the confidence field.

Coverage:
- Kind profiles fix criterion, proof class and ML flag
- Source failures and unusable readings become EvidenceUnavailable
- Parallel collection with per-source deadlines
- Cached fallback marked degraded; no cache means the source is skipped
- ConfidenceField mapping, triage and subscriptions
"""

from __future__ import annotations

import math
import threading

import pytest

from codetrust.errors import EvidenceUnavailable
from codetrust.evidence import KIND_PROFILES, EvidenceCollector
from codetrust.immune import MutationReport
from codetrust.schemas.evidence import Criterion, ProofClass, SourceKind
from codetrust.surface import ConfidenceField
from tests.conftest import make_source, make_uniform_score


class TestEvidenceSource:
    """Single-source behaviour."""

    def test_every_kind_has_a_profile(self):
        assert set(KIND_PROFILES) == set(SourceKind)

    def test_profile(self):
        source = make_source("embed", SourceKind.EMBEDDING_SIMILARITY, 0.7)
        assert source.criterion() == Criterion.BEHAVIOR
        assert source.proof_class() == ProofClass.ESTIMATED
        assert source.ml_derived()

    def test_value(self):
        assert make_source(value=0.25).value("a.py") == 0.25

    @pytest.mark.parametrize("bad", [1.5, -0.1, math.nan])
    def test_unusable_reading(self, bad):
        with pytest.raises(EvidenceUnavailable):
            make_source(value=bad).value("a.py")

    def test_provider_exception_wrapped(self):
        source = make_source("mypy", SourceKind.TYPE_CHECKER, RuntimeError("daemon died"))
        with pytest.raises(EvidenceUnavailable, match="daemon died") as excinfo:
            source.value("a.py")
        assert excinfo.value.source == "mypy"

    def test_reliability_range(self):
        with pytest.raises(ValueError):
            make_source(reliability=0.5)
        with pytest.raises(ValueError):
            make_source(weight=0.0)

    def test_degraded_record_is_estimated(self):
        record = make_source().record(1.0, degraded=True)
        assert record.proof_class == ProofClass.ESTIMATED
        assert record.degraded


class TestEvidenceCollector:
    """Parallel collection with fallback."""

    def test_collects_all_sources(self):
        report = MutationReport(total=10, killed=10)
        collector = EvidenceCollector([
            make_source("parser", SourceKind.SYNTAX_CHECKER, 1.0),
            make_source("pytest", SourceKind.TEST_RUNNER, 1.0, reliability=0.95, report=report),
        ])
        try:
            collected = collector.collect("a.py")
        finally:
            collector.close()
        assert sorted(r.source for r in collected.records) == ["parser", "pytest"]
        assert collected.reports["pytest"] == report
        assert collected.reliabilities == {"parser": None, "pytest": 0.95}
        assert collected.failures == {}

    def test_duplicate_name_rejected(self):
        collector = EvidenceCollector([make_source("parser")])
        try:
            with pytest.raises(ValueError):
                collector.register(make_source("parser"))
        finally:
            collector.close()

    def test_failure_without_cache_skips_source(self):
        collector = EvidenceCollector([
            make_source("parser", value=1.0),
            make_source("bandit", SourceKind.SECURITY_SCANNER, OSError("no binary")),
        ])
        try:
            collected = collector.collect("a.py")
        finally:
            collector.close()
        assert [r.source for r in collected.records] == ["parser"]
        assert "bandit" in collected.failures

    def test_failure_uses_cached_value(self):
        state = {"fail": False}

        def flaky(unit):
            if state["fail"]:
                raise ConnectionError("scanner offline")
            return 0.8

        collector = EvidenceCollector([make_source("bandit", SourceKind.SECURITY_SCANNER, flaky)])
        try:
            first = collector.collect("a.py")
            state["fail"] = True
            second = collector.collect("a.py")
        finally:
            collector.close()
        assert not first.degraded
        [record] = second.records
        assert record.value == 0.8
        assert record.degraded
        assert second.degraded == [record]

    def test_timeout_falls_back(self):
        release = threading.Event()
        calls = {"n": 0}

        def slow(unit):
            calls["n"] += 1
            if calls["n"] > 1:
                release.wait(5.0)
            return 0.6

        collector = EvidenceCollector(
            [make_source("profiler", SourceKind.RUNTIME_PROFILER, slow)], timeout_s=0.2
        )
        try:
            collector.collect("a.py")
            collected = collector.collect("a.py")
        finally:
            release.set()
            collector.close()
        assert "timed out" in collected.failures["profiler"]
        assert collected.records[0].degraded
        assert collected.records[0].value == 0.6

    def test_forget_drops_cache(self):
        state = {"fail": False}

        def flaky(unit):
            if state["fail"]:
                raise ConnectionError("offline")
            return 0.8

        collector = EvidenceCollector([make_source("bandit", SourceKind.SECURITY_SCANNER, flaky)])
        try:
            collector.collect("a.py")
            collector.forget("a.py")
            state["fail"] = True
            assert collector.collect("a.py").records == []
        finally:
            collector.close()


class TestConfidenceField:
    """Read-only surface for the editor."""

    def test_mapping(self):
        field = ConfidenceField()
        field.publish("a.py", 0.9, make_uniform_score("a.py", 0.9))
        field.publish("b.py", 0.3)
        assert dict(field) == {"a.py": 0.9, "b.py": 0.3}
        assert field.detail("a.py").overall == 0.9
        assert field.detail("b.py") is None
        assert "c.py" not in field

    def test_worst(self):
        field = ConfidenceField()
        for unit, value in [("a.py", 0.9), ("b.py", 0.2), ("c.py", 0.2), ("d.py", 0.5)]:
            field.publish(unit, value)
        assert field.worst(3) == [("b.py", 0.2), ("c.py", 0.2), ("d.py", 0.5)]

    def test_color(self):
        field = ConfidenceField()
        field.publish("a.py", 0.0)
        assert field.color("a.py").to_hex() == "#ff0000"

    def test_subscribe_and_unsubscribe(self):
        field = ConfidenceField()
        seen = []
        unsubscribe = field.subscribe(lambda unit, value: seen.append((unit, value)))
        field.publish("a.py", 0.4)
        unsubscribe()
        field.publish("a.py", 0.5)
        assert seen == [("a.py", 0.4)]

    def test_failing_subscriber_isolated(self):
        field = ConfidenceField()
        seen = []

        def broken(unit, value):
            raise RuntimeError("renderer crashed")

        field.subscribe(broken)
        field.subscribe(lambda unit, value: seen.append(unit))
        field.publish("a.py", 0.4)
        assert seen == ["a.py"]
        assert field["a.py"] == 0.4

    def test_view_is_live_and_read_only(self):
        field = ConfidenceField()
        view = field.view()
        field.publish("a.py", 0.4)
        assert view["a.py"] == 0.4
        with pytest.raises(TypeError):
            view["a.py"] = 1.0
        field.publish("a.py", 0.7)
        assert dict(view) == {"a.py": 0.7}
