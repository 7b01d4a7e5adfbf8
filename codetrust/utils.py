"""
codetrust Utilities
====================

Shared helper functions for logging, hashing, clamping, time,
and JSON file I/O used across all modules.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ── Numerics ───────────────────────────────────────────────────────

def clamp01(value: float) -> float:
    """
    Clamp a number to [0, 1].

    Applied at every component boundary. NaN collapses to 0.0 so a
    broken upstream value can never read as confidence.
    """
    if value is None or math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


# ── Time ───────────────────────────────────────────────────────────

def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never raise."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


# ── Hashing ────────────────────────────────────────────────────────

def compute_content_hash(obj: Any, prefix: str = "") -> str:
    """
    Compute a content-addressable hash for any JSON-serializable object.

    The audit log chains entries by passing the previous entry's hash
    as ``prefix``: hash = SHA-256(prefix ‖ canonical_json(obj)).
    """
    canonical = json.dumps(obj, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256((prefix + canonical).encode("utf-8")).hexdigest()


# ── Logging ────────────────────────────────────────────────────────

class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, for editors that tail the log."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = "INFO", format_style: str = "text") -> logging.Logger:
    """
    Configure the ``codetrust`` logger hierarchy.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format_style: "json" for structured logs, "text" for human-readable.

    Returns:
        The configured ``codetrust`` logger.
    """
    logger = logging.getLogger("codetrust")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if format_style == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        # Worker threads (evidence collection, ripple sweeps) log too.
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        ))
    logger.addHandler(handler)
    return logger


# ── File I/O Helpers ───────────────────────────────────────────────

def save_json(data: Any, path: str | Path, indent: int = 2) -> Path:
    """Save data as formatted JSON file with UTF-8 encoding."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)
    tmp.replace(path)
    return path


def load_json(path: str | Path, default: Any = None) -> Any:
    """Load a JSON file, returning ``default`` if it does not exist."""
    path = Path(path)
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
