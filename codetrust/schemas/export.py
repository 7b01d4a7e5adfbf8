"""
JSON Schema export for the codetrust data contracts.

Editor plugins written in other languages validate what they receive
against these files.

Usage:
    from codetrust.schemas.export import export_all_schemas
    export_all_schemas("schemas/")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from codetrust.schemas.audit import AuditEntry
from codetrust.schemas.developer import DeveloperSignals, ShipDecision
from codetrust.schemas.evidence import EvidenceRecord
from codetrust.schemas.feedback import DeveloperAction, DeveloperPrior
from codetrust.schemas.graph import DependencyEdge
from codetrust.schemas.score import ConfidenceScore, FileConfidence

logger = logging.getLogger("codetrust.schemas.export")

SCHEMAS = {
    "evidence": EvidenceRecord,
    "confidence_score": ConfidenceScore,
    "file_confidence": FileConfidence,
    "dependency_edge": DependencyEdge,
    "developer_action": DeveloperAction,
    "developer_prior": DeveloperPrior,
    "developer_signals": DeveloperSignals,
    "ship_decision": ShipDecision,
    "audit_entry": AuditEntry,
}


def get_json_schema(schema_name: str) -> dict[str, Any]:
    if schema_name not in SCHEMAS:
        raise ValueError(f"Unknown schema: {schema_name}. Use: {list(SCHEMAS)}")
    return SCHEMAS[schema_name].model_json_schema()


def export_all_schemas(output_dir: str | Path) -> list[Path]:
    """Write one ``<name>_schema.json`` per contract; returns the paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for name in SCHEMAS:
        path = output_dir / f"{name}_schema.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(get_json_schema(name), f, indent=2, ensure_ascii=False)
        logger.info(f"Exported schema: {path}")
        written.append(path)
    return written
