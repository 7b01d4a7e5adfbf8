"""Safety layer: mutation validation, anomaly monitoring, ML cap, decay, audit."""

from codetrust.immune.anomaly import AnomalyDetector, AnomalyMonitor
from codetrust.immune.audit import AuditLog
from codetrust.immune.layer import ImmuneLayer
from codetrust.immune.ml_cap import MlCap
from codetrust.immune.mutation import MutationReport, MutationValidator
from codetrust.immune.temporal import TemporalDecay

__all__ = [
    "AnomalyDetector",
    "AnomalyMonitor",
    "AuditLog",
    "ImmuneLayer",
    "MlCap",
    "MutationReport",
    "MutationValidator",
    "TemporalDecay",
]
