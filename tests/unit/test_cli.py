"""
Unit tests for the command-line interface.

Coverage:
- infer: JSON marginals, evidence parsing, unknown nodes
- verify-audit: missing, intact and tampered logs
- priors / forget against a populated store
- export-schemas
"""

from __future__ import annotations

import json

import pytest

from codetrust.cli import main
from codetrust.pipeline import ConfidenceService
from codetrust.schemas.feedback import ActionKind
from codetrust.store import LocalStore
from tests.conftest import make_action


@pytest.fixture
def net_file(tmp_path, sprinkler_net):
    path = tmp_path / "sprinkler.json"
    path.write_text(json.dumps(sprinkler_net.to_dict()), encoding="utf-8")
    return path


@pytest.fixture
def populated(config):
    with ConfidenceService(config) as service:
        for _ in range(3):
            service.record_action(make_action(ActionKind.FIX_FLAGGED_LINE, module="billing"))
        service.record_action(make_action(module="search"))
        service.record_action(make_action(developer="bo"))
        service.update_file_score("a.py", 0.4)
        service.update_file_score("a.py", 0.8)
    return config.store_dir


def run(store, *args) -> int:
    return main(["--store", str(store), *args])


class TestInfer:
    """Network queries from a file."""

    def test_posterior(self, tmp_path, net_file, capsys):
        code = run(tmp_path / "store", "infer", str(net_file),
                   "--query", "rain", "--evidence", "grass_wet=true")
        assert code == 0
        [result] = json.loads(capsys.readouterr().out)
        assert result["node"] == "rain"
        assert result["distribution"]["true"] == pytest.approx(0.35769, abs=1e-4)
        assert result["method"] == "variable_elimination"

    def test_several_queries_and_forced_method(self, tmp_path, net_file, capsys):
        code = run(tmp_path / "store", "infer", str(net_file), "--query", "rain",
                   "--query", "sprinkler", "--method", "junction_tree")
        assert code == 0
        results = json.loads(capsys.readouterr().out)
        assert [r["node"] for r in results] == ["rain", "sprinkler"]
        assert results[0]["distribution"]["true"] == pytest.approx(0.2)

    def test_yaml_network(self, tmp_path, capsys):
        path = tmp_path / "coin.yaml"
        path.write_text("nodes:\n  - name: coin\n    cpt: [0.3, 0.7]\n", encoding="utf-8")
        assert run(tmp_path / "store", "infer", str(path), "--query", "coin") == 0
        [result] = json.loads(capsys.readouterr().out)
        assert result["distribution"]["true"] == pytest.approx(0.7)

    def test_unknown_node_is_an_error(self, tmp_path, net_file, capsys):
        code = run(tmp_path / "store", "infer", str(net_file), "--query", "fog")
        assert code == 2
        assert "Error" in capsys.readouterr().err

    def test_malformed_evidence(self, tmp_path, net_file):
        code = run(tmp_path / "store", "infer", str(net_file),
                   "--query", "rain", "--evidence", "grass_wet")
        assert code == 1


class TestVerifyAudit:
    """Audit chain checks."""

    def test_missing_log(self, tmp_path, capsys):
        assert run(tmp_path / "empty", "verify-audit") == 0
        assert "No audit log" in capsys.readouterr().out

    def test_intact_log(self, populated, capsys):
        assert run(populated, "verify-audit") == 0
        assert "2 entries verified" in capsys.readouterr().out

    def test_tampered_log(self, populated, capsys):
        path = LocalStore(populated).audit_path
        lines = path.read_text(encoding="utf-8").splitlines()
        entry = json.loads(lines[0])
        entry["cause"] = "nothing to see"
        lines[0] = json.dumps(entry)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        assert run(populated, "verify-audit") == 3
        assert "CORRUPTED" in capsys.readouterr().out


class TestPriors:
    """Inspecting and deleting personalization state."""

    def test_priors_json(self, populated, capsys):
        assert run(populated, "priors", "--json", "--developer", "ana") == 0
        priors = json.loads(capsys.readouterr().out)
        assert [(p["module"], p["actions"]) for p in priors] == [("billing", 3), ("search", 1)]

    def test_priors_table(self, populated, capsys):
        assert run(populated, "priors") == 0
        out = capsys.readouterr().out
        assert "billing" in out and "bo" in out

    def test_empty_store(self, tmp_path, capsys):
        assert run(tmp_path / "empty", "priors") == 0
        assert "No priors stored." in capsys.readouterr().out

    def test_forget(self, populated, capsys):
        assert run(populated, "forget", "ana", "--module", "billing") == 0
        assert "Removed 1 prior(s)" in capsys.readouterr().out
        remaining = [(p["developer"], p["module"]) for p in LocalStore(populated).priors]
        assert remaining == [("ana", "search"), ("bo", "billing")]


def test_export_schemas(tmp_path, capsys):
    out_dir = tmp_path / "schemas"
    assert run(tmp_path / "store", "export-schemas", "--output-dir", str(out_dir)) == 0
    assert len(list(out_dir.glob("*_schema.json"))) == 9


def test_no_command_prints_help(tmp_path, capsys):
    assert run(tmp_path / "store") == 1
    assert "usage" in capsys.readouterr().out.lower()
