"""Dependency graph and damped confidence propagation."""

from codetrust.propagation.engine import PropagationEngine, PropagationResult, Ripple
from codetrust.propagation.graph import DependencyGraph

__all__ = ["DependencyGraph", "PropagationEngine", "PropagationResult", "Ripple"]
