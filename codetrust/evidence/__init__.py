"""Evidence sources and their parallel collector."""

from codetrust.evidence.collector import CollectedEvidence, EvidenceCollector
from codetrust.evidence.source import KIND_PROFILES, EvidenceSource

__all__ = ["CollectedEvidence", "EvidenceCollector", "EvidenceSource", "KIND_PROFILES"]
