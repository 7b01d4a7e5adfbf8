"""
codetrust Configuration System
================================

Central configuration using Pydantic Settings. Supports:
- Environment variables (CODETRUST_ prefix, ``__`` for nested fields)
- .env file loading
- YAML config file overrides

The config produces a deterministic hash for reproducibility tracking;
the service stamps it into its startup log line.

Usage:
    from codetrust.config import get_config
    cfg = get_config()                       # loads from env / .env
    cfg = get_config("configs/strict.yaml")  # loads with YAML overrides
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ── Combination Rule ───────────────────────────────────────────────
class CombinationRule(str, Enum):
    """
    How DeveloperConfidenceModel folds its 7 signals into one value.

    - WEIGHTED_SUM: normalized weighted mean of positively-oriented signals
    - CVAR:         tail-risk mean, consistent with code-score aggregation
    """
    WEIGHTED_SUM = "weighted_sum"
    CVAR = "cvar"


# ── Sub-configs ────────────────────────────────────────────────────
class InferenceConfig(BaseModel):
    """Configuration for the Bayesian network engine."""
    max_iter: int = Field(default=50, ge=1, description="Belief propagation iteration cap")
    tolerance: float = Field(
        default=1e-4, gt=0.0,
        description="Convergence threshold on summed L1 belief change"
    )
    cpt_epsilon: float = Field(default=1e-6, gt=0.0, description="Allowed CPT row-sum deviation")
    default_reliability: float = Field(
        default=0.9, gt=0.5, le=1.0,
        description="P(source agrees with the latent criterion) when a source declares none"
    )


class AggregationConfig(BaseModel):
    """Configuration for CVaR aggregation."""
    alpha: float = Field(default=0.95, ge=0.0, lt=1.0, description="CVaR confidence level")


class PropagationConfig(BaseModel):
    """Configuration for dependency-graph propagation."""
    damping: float = Field(default=0.7, gt=0.0, le=1.0, description="Per-hop damping factor")
    max_depth: int = Field(default=5, ge=1, description="Hop cap for one sweep")
    epsilon: float = Field(
        default=1e-3, ge=0.0,
        description="Branches stop expanding below this effective delta"
    )
    max_workers: int = Field(default=4, ge=1, description="Workers for per-component sweeps")


class FeedbackConfig(BaseModel):
    """Configuration for the EMA personalization loop."""
    alpha: float = Field(default=0.1, gt=0.0, le=1.0, description="EMA learning rate")
    initial_prior: float = Field(default=0.5, ge=0.0, le=1.0)
    personalization_actions: int = Field(
        default=50, ge=1,
        description="Actions after which a (developer, module) prior counts as personalized"
    )
    action_evidence: dict[str, float] = Field(
        default_factory=lambda: {
            "ignore_warning": 0.2,
            "fix_flagged_line": 1.0,
            "dismiss_suggestion": 0.3,
            "add_test": 0.9,
            "commit_low_confidence_code": 0.0,
        },
        description="Evidence value e in [0,1] per developer action kind",
    )

    @field_validator("action_evidence")
    @classmethod
    def validate_evidence_range(cls, v: dict[str, float]) -> dict[str, float]:
        for kind, value in v.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Evidence for '{kind}' must be in [0,1], got {value}")
        return v


class ImmuneConfig(BaseModel):
    """Configuration for the safety layer."""
    mutation_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0,
        description="Kill rate required before a test-runner proof of 1.0 is accepted"
    )
    require_mutation_report: bool = Field(
        default=True,
        description="Treat a missing mutation report as kill rate 0 (fail-closed)"
    )
    ml_weight_cap: float = Field(
        default=0.25, ge=0.0, lt=1.0,
        description="Max share of total aggregation weight for ML-derived evidence"
    )
    anomaly_window: int = Field(default=20, ge=2, description="Rolling window per developer")
    dismiss_rate_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_age_days: float = Field(default=30.0, gt=0.0, description="Score staleness horizon")


class DeveloperConfig(BaseModel):
    """Configuration for developer confidence and ship gating."""
    combination: CombinationRule = Field(default=CombinationRule.WEIGHTED_SUM)
    weights: dict[str, float] = Field(
        default_factory=lambda: {
            "commit_history": 0.15,
            "bug_introduction_rate": 0.15,
            "review_acceptance": 0.15,
            "recency": 0.10,
            "domain_expertise": 0.20,
            "flow_score": 0.15,
            "fatigue": 0.10,
        },
        description="Signal weights for the weighted-sum rule (normalized on use)",
    )
    unfamiliar_confidence: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="C(developer, module) when nothing is known about the pair"
    )
    bus_factor_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    ship_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum C(change)")
    recency_horizon_days: float = Field(default=30.0, gt=0.0)


class EvidenceConfig(BaseModel):
    """Configuration for querying external evidence sources."""
    timeout_s: float = Field(default=0.5, gt=0.0, description="Per-source query timeout")
    max_workers: int = Field(default=8, ge=1)


# ── Main Config ────────────────────────────────────────────────────
class CodeTrustConfig(BaseSettings):
    """
    Root configuration for the codetrust confidence core.

    Loads from environment variables (CODETRUST_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export CODETRUST_STORE_DIR=~/.codetrust
        export CODETRUST_PROPAGATION__DAMPING=0.6
    """
    model_config = SettingsConfigDict(
        env_prefix="CODETRUST_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    store_dir: Path = Field(
        default=Path("./.codetrust"),
        description="Local, deletable directory for priors, transitions and the audit log"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── Sub-configs ────────────────────────────────────────────────
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    immune: ImmuneConfig = Field(default_factory=ImmuneConfig)
    developer: DeveloperConfig = Field(default_factory=DeveloperConfig)
    evidence: EvidenceConfig = Field(default_factory=EvidenceConfig)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        Excludes the store location, which does not affect any score.
        """
        config_dict = self.model_dump(mode="json", exclude={"store_dir"})
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]

    def ensure_dirs(self) -> None:
        """Create the store directory if it doesn't exist."""
        self.store_dir.mkdir(parents=True, exist_ok=True)


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> CodeTrustConfig:
    """
    Load codetrust configuration.

    Priority (highest to lowest):
        1. Init kwargs (YAML config file, if provided)
        2. Environment variables (CODETRUST_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved CodeTrustConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return CodeTrustConfig(**overrides)
    return CodeTrustConfig()
