"""
Local Store
============

The only place personalization state touches disk. A single directory,
owned by the user and safe to delete:

    <root>/priors.json       EMA priors per (developer, module)
    <root>/transitions.json  file-transition counts
    <root>/audit.jsonl       hash-chained audit log (append-only)

Nothing here is ever transmitted.

Design Decisions:
    - Explicit handle passed to the service, not a process-wide singleton
    - Load on construction, flush on ``close()`` / context exit; JSON files
      are replaced atomically so a crash mid-flush keeps the old copy
    - The audit log writes itself line by line; the store only owns its path

Usage:
    with LocalStore(".codetrust") as store:
        store.priors = feedback.dump()
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from codetrust.utils import load_json, save_json

logger = logging.getLogger("codetrust.store")

PRIORS_FILE = "priors.json"
TRANSITIONS_FILE = "transitions.json"
AUDIT_FILE = "audit.jsonl"


class LocalStore:
    """
    Handle on the local state directory.

    Args:
        root: Directory to keep state in (created on first flush).
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()
        self.priors: list[dict[str, Any]] = []
        self.transitions: dict[str, dict[str, int]] = {}
        self.load()

    @property
    def priors_path(self) -> Path:
        return self.root / PRIORS_FILE

    @property
    def transitions_path(self) -> Path:
        return self.root / TRANSITIONS_FILE

    @property
    def audit_path(self) -> Path:
        return self.root / AUDIT_FILE

    def load(self) -> None:
        self.priors = load_json(self.priors_path, default=[]) or []
        self.transitions = load_json(self.transitions_path, default={}) or {}
        if self.priors or self.transitions:
            logger.info(
                f"Loaded {len(self.priors)} priors and {len(self.transitions)} "
                f"transition rows from {self.root}"
            )

    def flush(self) -> None:
        save_json(self.priors, self.priors_path)
        save_json(self.transitions, self.transitions_path)
        logger.debug(f"Flushed local store to {self.root}")

    def wipe(self) -> None:
        """Delete every file in the store and reset in-memory state."""
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.info(f"Wiped local store at {self.root}")
        self.priors = []
        self.transitions = {}

    def close(self) -> None:
        self.flush()

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
