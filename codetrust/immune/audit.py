"""
Hash-Chained Audit Log
=======================

Every score mutation is appended as an AuditEntry whose hash covers its
fields and the previous entry's hash. ``verify_chain`` recomputes every
hash from genesis; altering, reordering or deleting any past entry breaks
the chain from that point on.

Design Decisions:
    - Single-writer: appends are serialized through a lock, so ``seq`` and
      ``prev_hash`` are always taken from the true chain head
    - Persistence is append-only JSONL, one sealed entry per line; the file
      is never rewritten
    - Loading a file does not trust it: ``verify_chain`` re-derives every
      hash from the loaded fields

Usage:
    log = AuditLog(Path(".codetrust/audit.jsonl"))
    log.append("src/db.py", old=0.9, new=0.3, cause="evidence")
    log.verify_chain()   # raises AuditChainCorrupted on tampering
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from codetrust.errors import AuditChainCorrupted
from codetrust.schemas.audit import GENESIS_HASH, AuditEntry
from codetrust.utils import clamp01, utc_now

logger = logging.getLogger("codetrust.immune.audit")


class AuditLog:
    """
    Append-only, tamper-evident record of score changes.

    Args:
        path: JSONL file to persist to. ``None`` keeps the log in memory.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        if self.path is not None and self.path.exists():
            self._entries = self._read(self.path)
            logger.info(f"Loaded {len(self._entries)} audit entries from {self.path}")

    @staticmethod
    def _read(path: Path) -> list[AuditEntry]:
        entries = []
        with open(path, "r", encoding="utf-8") as f:
            for index, line in enumerate(f):
                if not line.strip():
                    continue
                try:
                    entries.append(AuditEntry.model_validate_json(line))
                except ValidationError as e:
                    raise AuditChainCorrupted(index, f"unreadable entry: {e.error_count()} errors")
        return entries

    # ── Writing ────────────────────────────────────────────────────

    def append(self, subject: str, old: Optional[float], new: float, cause: str) -> AuditEntry:
        """Seal and append one entry; returns it."""
        with self._lock:
            entry = AuditEntry(
                seq=len(self._entries),
                ts=utc_now().isoformat(),
                subject=subject,
                old=None if old is None else clamp01(old),
                new=clamp01(new),
                cause=cause,
                prev_hash=self.head_hash,
            ).seal()
            self._entries.append(entry)
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json() + "\n")
        return entry

    # ── Reading ────────────────────────────────────────────────────

    @property
    def head_hash(self) -> str:
        return self._entries[-1].hash if self._entries else GENESIS_HASH

    @property
    def entries(self) -> list[AuditEntry]:
        """Copies of all entries, oldest first."""
        return [e.model_copy() for e in self._entries]

    def history(self, subject: str) -> list[AuditEntry]:
        return [e.model_copy() for e in self._entries if e.subject == subject]

    def __len__(self) -> int:
        return len(self._entries)

    # ── Verification ───────────────────────────────────────────────

    def verify_chain(self) -> int:
        """
        Recompute every hash from genesis.

        Returns:
            Number of entries verified.

        Raises:
            AuditChainCorrupted: At the first broken link.
        """
        with self._lock:
            return verify_entries(self._entries)

    @classmethod
    def verify_file(cls, path: Path) -> int:
        """Verify a persisted log without keeping it open."""
        return verify_entries(cls._read(Path(path)))


def verify_entries(entries: list[AuditEntry]) -> int:
    prev = GENESIS_HASH
    for index, entry in enumerate(entries):
        if entry.seq != index:
            raise AuditChainCorrupted(index, f"sequence {entry.seq} out of order", entry.hash)
        if entry.prev_hash != prev:
            raise AuditChainCorrupted(index, "previous-hash link broken", entry.hash)
        if not entry.verify_hash():
            raise AuditChainCorrupted(index, "entry hash mismatch", entry.hash)
        prev = entry.hash
    return len(entries)
