"""Developer confidence, knowledge graph and ship gating."""

from codetrust.developer.gate import ShipGate
from codetrust.developer.knowledge import KnowledgeGraph
from codetrust.developer.model import DeveloperConfidenceModel

__all__ = ["DeveloperConfidenceModel", "KnowledgeGraph", "ShipGate"]
