"""
Audit Entry Schema
===================

One link in the hash-chained audit log. Every score mutation (evidence
rescore, propagation ripple, re-verification) is recorded as an entry
whose hash covers its own fields and the previous entry's hash, so
altering any past entry breaks every hash after it.

    hash = SHA-256(prev_hash ‖ canonical_json(seq, ts, subject, old, new, cause))
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from codetrust.utils import compute_content_hash

GENESIS_HASH = "0" * 64


class AuditEntry(BaseModel):
    """
    Append-only record of one score mutation.

    Schema:
        {
          "seq": 12,
          "ts": "2026-10-19T09:00:00.123456+00:00",
          "subject": "src/db.py",
          "old": 0.9,
          "new": 0.3,
          "cause": "evidence",
          "prev_hash": "5f1c…",
          "hash": "a93e…"
        }
    """
    seq: int = Field(ge=0, description="Position in the chain")
    ts: str = Field(description="ISO 8601 timestamp")
    subject: str = Field(description="Code unit whose score changed")
    old: Optional[float] = Field(default=None, description="Score before (None if first)")
    new: float = Field(ge=0.0, le=1.0, description="Score after")
    cause: str = Field(description="Why the score changed")
    prev_hash: str = Field(default=GENESIS_HASH)
    hash: str = Field(default="")

    def payload(self) -> dict[str, Any]:
        """The fields covered by the hash."""
        return self.model_dump(exclude={"prev_hash", "hash"})

    def compute_hash(self) -> str:
        return compute_content_hash(self.payload(), prefix=self.prev_hash)

    def seal(self) -> "AuditEntry":
        """Compute and store the hash. Call once all fields are set."""
        self.hash = self.compute_hash()
        return self

    def verify_hash(self) -> bool:
        return bool(self.hash) and self.hash == self.compute_hash()
