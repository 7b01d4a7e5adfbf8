"""Bayesian network engine: arena, factors, and three inference algorithms."""

from codetrust.bayes.engine import BayesNetEngine, InferenceMethod, InferenceResult
from codetrust.bayes.factor import Factor
from codetrust.bayes.network import BayesNet, Node

__all__ = [
    "BayesNet",
    "BayesNetEngine",
    "Factor",
    "InferenceMethod",
    "InferenceResult",
    "Node",
]
