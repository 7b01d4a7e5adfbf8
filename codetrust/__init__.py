"""
codetrust: Probabilistic Confidence for Code
==============================================

codetrust computes, propagates and calibrates a confidence score for each
unit of code, for an editor to turn into gutter colours, file triage and
ship / no-ship gates.

Architecture Overview:
    Evidence → Bayesian network → CVaR → Propagation → Immune layer → Feedback

Modules:
    - evidence:    pluggable scalar evidence sources and their collector
    - bayes:       discrete Bayesian network with VE / loopy BP / junction tree
    - scoring:     CVaR aggregation, colour mapping, scoring, calibration
    - propagation: dependency graph and damped delta propagation
    - feedback:    EMA developer priors and file-transition statistics
    - immune:      mutation validation, anomaly monitoring, ML cap, decay, audit
    - developer:   developer confidence, bus factor and ship gating
    - surface:     read-only confidence field for the editor
    - pipeline:    ConfidenceService orchestrator
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
