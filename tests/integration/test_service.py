"""
Integration Tests for the ConfidenceService
============================================

Drives the whole confidence core through the service facade with fake
evidence sources and a temp-directory store:

    sources → collector → scorer → audit → field → propagation
    actions → feedback (+ anomaly monitor) → priors → store
    stats   → developer model → ship gate (+ re-verification)
"""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from codetrust.errors import AuditChainCorrupted
from codetrust.immune import MutationReport
from codetrust.pipeline import ConfidenceService, module_of
from codetrust.schemas.evidence import Criterion, SourceKind
from codetrust.schemas.feedback import ActionKind
from codetrust.schemas.graph import DependencyKind
from codetrust.store import LocalStore
from codetrust.utils import utc_now
from tests.conftest import make_action, make_source, make_stats

FULL_REPORT = MutationReport(total=20, killed=19)


def register_good_sources(service: ConfidenceService, runtime=0.9, security=0.8) -> None:
    service.register_source(make_source("parser", SourceKind.SYNTAX_CHECKER, 1.0))
    service.register_source(make_source("mypy", SourceKind.TYPE_CHECKER, 1.0))
    service.register_source(make_source("ruff", SourceKind.LINTER, 1.0))
    service.register_source(make_source("pytest", SourceKind.TEST_RUNNER, 1.0, report=FULL_REPORT))
    service.register_source(make_source("profiler", SourceKind.RUNTIME_PROFILER, runtime))
    service.register_source(make_source("bandit", SourceKind.SECURITY_SCANNER, security))


def test_module_of():
    assert module_of("billing/pay.py:42") == "billing"
    assert module_of("src/billing/pay.py") == "src/billing"
    assert module_of("setup.py") == "setup.py"


@pytest.mark.integration
class TestScoring:
    """Evidence to published, audited scores."""

    def test_score_unit(self, service):
        register_good_sources(service)
        score = service.score_unit("billing/pay.py")
        assert score.overall == pytest.approx(0.74)
        assert score.criteria.worst == Criterion.SECURITY
        assert service.field["billing/pay.py"] == pytest.approx(0.74)
        assert service.field.detail("billing/pay.py") == score
        assert service.verify_audit() == 1
        assert "collect" in service.timings and "score" in service.timings

    def test_failing_source_degrades_not_fails(self, service):
        state = {"fail": False}

        def scanner(unit):
            if state["fail"]:
                raise TimeoutError("scanner hung")
            return 0.8

        for source in (
            make_source("parser", SourceKind.SYNTAX_CHECKER, 1.0),
            make_source("bandit", SourceKind.SECURITY_SCANNER, scanner),
        ):
            service.register_source(source)
        service.score_unit("a.py")
        state["fail"] = True
        score = service.score_unit("a.py")
        assert score.degraded == [Criterion.SECURITY]
        assert score.criteria.security == pytest.approx(0.74)

    def test_ml_evidence_capped_end_to_end(self, service):
        service.register_source(
            make_source("embed", SourceKind.EMBEDDING_SIMILARITY, 0.35, weight=10.0)
        )
        score = service.score_unit("search/rank.py")
        assert score.criteria.behavior == pytest.approx(0.4625)

    def test_developer_prior_feeds_estimates(self, service):
        register_good_sources(service)
        baseline = service.score_unit("billing/pay.py")
        for _ in range(30):
            service.record_action(make_action(ActionKind.FIX_FLAGGED_LINE))
        personalised = service.score_unit("billing/pay.py", developer="ana")
        assert personalised.prior > baseline.prior
        assert personalised.criteria.runtime > baseline.criteria.runtime

    def test_calibration_applies_to_new_scores(self, service):
        register_good_sources(service)
        result = service.fit_calibration(
            [0.9] * 10 + [0.2] * 10, [1] * 6 + [0] * 4 + [0] * 8 + [1] * 2, method="isotonic"
        )
        assert result["ece_after"] <= result["ece_before"]
        assert service.score_unit("billing/pay.py").calibrated is not None


@pytest.mark.integration
class TestPropagationThroughService:
    """Edits ripple to dependents, and every write is audited."""

    def _graph(self, service):
        service.add_file("core/db.py", 0.9)
        service.add_file("core/models.py", 0.9)
        service.add_file("api/views.py", 0.9)
        service.add_dependency("core/models.py", "core/db.py", DependencyKind.CALL, 1.0)
        service.add_dependency("api/views.py", "core/models.py", DependencyKind.CALL, 1.0)

    def test_update_ripples(self, service):
        self._graph(service)
        result = service.update_file_score("core/db.py", 0.6)
        assert result.delta_for("core/models.py") == pytest.approx(-0.21)
        assert service.field["core/models.py"] == pytest.approx(0.69)
        assert service.field["api/views.py"] == pytest.approx(0.753)
        assert service.verify_audit() == 3
        causes = [e.cause for e in service.immune.audit.entries]
        assert causes == ["edit", "propagation:core/db.py", "propagation:core/db.py"]

    def test_rescoring_a_file_propagates(self, service):
        self._graph(service)
        register_good_sources(service)
        score = service.score_unit("core/db.py")
        assert score.overall == pytest.approx(0.74)
        assert service.graph.score("core/db.py") == pytest.approx(0.74)
        assert service.field["core/models.py"] == pytest.approx(0.788)
        assert service.field["api/views.py"] == pytest.approx(0.8216)

    def test_batch_updates(self, service):
        self._graph(service)
        service.add_file("other/a.py", 0.5)
        service.add_file("other/b.py", 0.5)
        service.add_dependency("other/b.py", "other/a.py", DependencyKind.CALL, 1.0)
        results = service.update_file_scores({"core/db.py": 0.7, "other/a.py": 0.9})
        assert [r.source for r in results] == ["core/db.py", "other/a.py"]
        assert service.field["other/b.py"] == pytest.approx(0.78)
        assert service.field["core/models.py"] == pytest.approx(0.76)

    def test_out_of_range_score_clamped(self, service):
        self._graph(service)
        service.update_file_score("core/db.py", 1.4)
        assert service.field["core/db.py"] == 1.0
        assert service.graph.score("core/db.py") == 1.0


@pytest.mark.integration
class TestFeedbackAndPersistence:
    """Local store survives restarts and honours forget."""

    def test_priors_survive_restart(self, config):
        with ConfidenceService(config) as service:
            for _ in range(50):
                service.record_action(make_action(ActionKind.FIX_FLAGGED_LINE))
            service.record_file_open("a.py", "b.py")
            service.update_file_score("a.py", 0.4)
        with ConfidenceService(config) as restarted:
            assert restarted.feedback.prior("ana", "billing") >= 0.995
            assert restarted.feedback.is_personalized("ana", "billing")
            assert restarted.predict_next("a.py") == [("b.py", 1.0)]
            assert restarted.verify_audit() == 1

    def test_forget_is_persisted_immediately(self, service, config):
        service.record_action(make_action(module="billing"))
        service.record_action(make_action(module="search"))
        service.flush()
        assert service.forget("ana", "billing") == 1
        stored = LocalStore(config.store_dir).priors
        assert [p["module"] for p in stored] == ["search"]

    def test_poisoned_feedback_is_ignored(self, service):
        results = [
            service.record_action(make_action(ActionKind.DISMISS_SUGGESTION, developer="mallory"))
            for _ in range(20)
        ]
        assert results[-1] is None
        assert service.immune.anomaly.is_suspended("mallory")
        # Other developers are unaffected.
        assert service.record_action(make_action(developer="ana")) is not None

    def test_tampered_audit_detected_on_disk(self, config):
        with ConfidenceService(config) as service:
            service.update_file_score("a.py", 0.4)
            service.update_file_score("a.py", 0.7)
        path = LocalStore(config.store_dir).audit_path
        lines = path.read_text(encoding="utf-8").splitlines()
        entry = json.loads(lines[1])
        entry["new"] = 0.99
        lines[1] = json.dumps(entry)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        with ConfidenceService(config) as reopened:
            with pytest.raises(AuditChainCorrupted) as excinfo:
                reopened.verify_audit()
        assert excinfo.value.index == 1


@pytest.mark.integration
class TestShipGateThroughService:
    """Developer confidence × code confidence."""

    def _expert(self, service):
        service.set_developer_stats("ana", "billing", make_stats(
            commit_count=150, bug_count=0, review_acceptance_rate=1.0,
            days_ago=0, domain_expertise=1.0, fatigue=0.0,
        ))

    def test_gate_scores_unscored_unit(self, service):
        register_good_sources(service, runtime=1.0, security=1.0)
        self._expert(service)
        decision = service.ship_gate("billing/pay.py", "ana")
        assert decision.module == "billing"
        assert decision.code_confidence == pytest.approx(0.9)
        assert decision.allowed

    def test_unfamiliar_developer_blocked(self, service):
        register_good_sources(service, runtime=1.0, security=1.0)
        decision = service.ship_gate("billing/pay.py", "bo")
        assert decision.developer_confidence == 0.5
        assert not decision.allowed

    def test_stale_score_reverified(self, service):
        register_good_sources(service, runtime=1.0, security=1.0)
        self._expert(service)
        score = service.score_unit("billing/pay.py")
        later = utc_now() + timedelta(days=45)
        decision = service.gate.evaluate(score, "ana", "billing", now=later)
        assert decision.reverified
        assert service.immune.audit.entries[-1].cause == "reverify"

    def test_bus_factor(self, service):
        self._expert(service)
        service.set_developer_stats("bo", "billing", make_stats(
            commit_count=5, bug_count=3, review_acceptance_rate=0.4,
            days_ago=60, domain_expertise=0.2, fatigue=0.8,
        ))
        report = service.bus_factor("billing")
        assert report.experts == ["ana"]
        assert report.at_risk

    def test_gate_sees_propagated_collapse(self, service):
        register_good_sources(service, runtime=1.0, security=1.0)
        self._expert(service)
        service.add_file("billing/app.py", 0.9)
        service.add_file("billing/db.py", 0.9)
        service.add_dependency("billing/app.py", "billing/db.py", DependencyKind.CALL, 1.0)
        service.score_unit("billing/app.py")
        assert service.ship_gate("billing/app.py", "ana").allowed

        service.update_file_score("billing/db.py", 0.0)
        decision = service.ship_gate("billing/app.py", "ana")
        assert service.field["billing/app.py"] == pytest.approx(0.27)
        assert decision.code_confidence == pytest.approx(0.27)
        assert not decision.allowed
        assert "weakest factor: code" in decision.reason

    def test_gate_does_not_rescore_graph_only_file(self, service):
        register_good_sources(service, runtime=1.0, security=1.0)
        self._expert(service)
        service.add_file("billing/legacy.py", 0.3)
        decision = service.ship_gate("billing/legacy.py", "ana")
        assert decision.code_confidence == pytest.approx(0.3)
        assert not decision.allowed
        assert service.graph.score("billing/legacy.py") == 0.3
        assert service.field.detail("billing/legacy.py") is None
        assert len(service.immune.audit) == 0

    def test_confidence_view_is_read_only(self, service):
        service.update_file_score("a.py", 0.4)
        view = service.confidence
        assert view["a.py"] == 0.4
        with pytest.raises(TypeError):
            view["a.py"] = 1.0
        service.update_file_score("a.py", 0.6)
        assert view["a.py"] == 0.6
