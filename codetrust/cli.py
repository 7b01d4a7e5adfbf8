"""
codetrust CLI
==============

Command-line interface for inspecting and maintaining the local
confidence state.

Usage:
    python -m codetrust infer network.yaml --query rain --evidence wet=true
    python -m codetrust verify-audit
    python -m codetrust priors --developer ana
    python -m codetrust forget ana --module billing
    python -m codetrust export-schemas --output-dir schemas/
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from codetrust.config import get_config
from codetrust.errors import AuditChainCorrupted, CodeTrustError
from codetrust.utils import setup_logging


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="codetrust",
        description="codetrust: probabilistic confidence for code",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--store", type=str, default=None, help="Override the store directory")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── infer ───────────────────────────────────────────────────
    infer_parser = subparsers.add_parser("infer", help="Query a Bayesian network file")
    infer_parser.add_argument("network", help="Network description (YAML or JSON)")
    infer_parser.add_argument("--query", required=True, action="append", help="Node to query")
    infer_parser.add_argument("--evidence", action="append", default=[],
                              help="Hard evidence as node=state (repeatable)")
    infer_parser.add_argument("--method", choices=["variable_elimination",
                                                   "belief_propagation", "junction_tree"])

    # ── verify-audit ────────────────────────────────────────────
    audit_parser = subparsers.add_parser("verify-audit", help="Verify the audit hash chain")
    audit_parser.add_argument("--path", type=str, default=None, help="Audit JSONL file")

    # ── priors ──────────────────────────────────────────────────
    priors_parser = subparsers.add_parser("priors", help="List personalized priors")
    priors_parser.add_argument("--developer", type=str, default=None)
    priors_parser.add_argument("--json", action="store_true", help="Print JSON")

    # ── forget ──────────────────────────────────────────────────
    forget_parser = subparsers.add_parser("forget", help="Delete a developer's priors")
    forget_parser.add_argument("developer")
    forget_parser.add_argument("--module", type=str, default=None)

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(level="DEBUG" if args.verbose else config.log_level,
                  format_style=config.log_format)
    if args.store:
        config.store_dir = Path(args.store)
    args.config_obj = config

    commands = {
        "infer": cmd_infer,
        "verify-audit": cmd_verify_audit,
        "priors": cmd_priors,
        "forget": cmd_forget,
        "export-schemas": cmd_export_schemas,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except CodeTrustError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


def _load_document(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            import yaml
            return yaml.safe_load(f) or {}
        return json.load(f)


def _parse_state(raw: str):
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if raw.isdigit():
        return int(raw)
    return raw


def cmd_infer(args) -> int:
    """Posterior marginals for one or more nodes."""
    from codetrust.bayes import BayesNet, BayesNetEngine, InferenceMethod

    config = args.config_obj
    net = BayesNet.from_dict(_load_document(Path(args.network)), epsilon=config.inference.cpt_epsilon)

    evidence = {}
    for item in args.evidence:
        node, sep, state = item.partition("=")
        if not sep:
            print(f"Error: evidence must be node=state, got {item!r}", file=sys.stderr)
            return 1
        evidence[node] = _parse_state(state)

    engine = BayesNetEngine.from_config(config.inference)
    method = InferenceMethod(args.method) if args.method else None
    results = engine.infer_many(net, args.query, evidence=evidence, method=method)
    print(json.dumps([r.as_dict() for r in results], indent=2))
    return 0


def cmd_verify_audit(args) -> int:
    """Recompute every hash in the audit log."""
    from codetrust.immune.audit import AuditLog
    from codetrust.store import AUDIT_FILE

    path = Path(args.path) if args.path else args.config_obj.store_dir / AUDIT_FILE
    if not path.exists():
        print(f"No audit log at {path}")
        return 0
    try:
        count = AuditLog.verify_file(path)
    except AuditChainCorrupted as e:
        print(f"Audit chain CORRUPTED: {e}")
        return 3
    print(f"Audit chain intact: {count} entries verified")
    return 0


def cmd_priors(args) -> int:
    """List priors from the local store."""
    from codetrust.feedback.engine import FeedbackEngine
    from codetrust.store import LocalStore

    config = args.config_obj
    engine = FeedbackEngine.from_config(config.feedback)
    engine.load(LocalStore(config.store_dir).priors)
    priors = engine.priors(args.developer)

    if args.json:
        print(json.dumps([p.model_dump(mode="json") for p in priors], indent=2))
        return 0
    if not priors:
        print("No priors stored.")
        return 0
    for p in priors:
        mark = "personalized" if p.actions >= engine.personalization_actions else ""
        print(f"  {p.developer:<20} {p.module:<30} {p.prior:.3f}  ({p.actions} actions) {mark}")
    return 0


def cmd_forget(args) -> int:
    """Delete priors for a developer (optionally one module) from the store."""
    from codetrust.feedback.engine import FeedbackEngine
    from codetrust.store import LocalStore

    config = args.config_obj
    with LocalStore(config.store_dir) as store:
        engine = FeedbackEngine.from_config(config.feedback)
        engine.load(store.priors)
        removed = engine.forget(args.developer, args.module)
        store.priors = engine.dump()
    print(f"Removed {removed} prior(s) for {args.developer}")
    return 0


def cmd_export_schemas(args) -> int:
    """Export JSON schemas for all data contracts."""
    from codetrust.schemas.export import export_all_schemas

    paths = export_all_schemas(args.output_dir)
    for path in paths:
        print(f"Exported: {path}")
    print(f"\n{len(paths)} schemas exported to {args.output_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
