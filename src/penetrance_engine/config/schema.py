"""Pydantic models for engine configuration."""

import hashlib
import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class EMSettings(BaseModel):
    """Tuning of the empirical prior, Beta conversion and EM loop."""

    max_iterations: int = Field(
        default=25,
        ge=1,
        description="Iteration cap before the loop is declared exhausted",
    )
    delta_threshold: float = Field(
        default=1.0,
        ge=0.0,
        description="Summed absolute change in posterior means below which the loop has converged",
    )
    degenerate_floor: float = Field(
        default=0.01,
        gt=0.0,
        description="Shape parameters below this fall back to the global empirical prior",
    )
    tuning_constant: float = Field(
        default=10.0,
        gt=0.0,
        description="Equivalent observations the covariate-derived prior is worth in the final pass",
    )
    weight_epsilon: float = Field(
        default=0.01,
        gt=0.0,
        description="Epsilon in the reliability weight 1 - 1/(epsilon + total)",
    )
    fallback_alpha: float = Field(
        default=1.0,
        gt=0.0,
        description="Prior alpha used when the empirical prior is degenerate",
    )
    fallback_beta: float = Field(
        default=1.0,
        gt=0.0,
        description="Prior beta used when the empirical prior is degenerate",
    )


class CovariateSettings(BaseModel):
    """Covariate columns used by the regression step.

    Records missing any ``required`` covariate are outside the EM working
    set. ``optional`` covariates enter a record's model only when present.
    """

    required: list[str] = Field(default_factory=list)
    optional: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_disjoint(self) -> "CovariateSettings":
        overlap = set(self.required) & set(self.optional)
        if overlap:
            raise ValueError(
                f"Covariates listed as both required and optional: {sorted(overlap)}"
            )
        return self

    @property
    def all(self) -> list[str]:
        """Required covariates followed by optional ones."""
        return [*self.required, *self.optional]


class EvaluationSettings(BaseModel):
    """Cross-validation and correlation settings."""

    n_folds: int = Field(default=10, ge=2, description="Number of cross-validation folds")
    n_permutations: int = Field(
        default=1000,
        ge=1,
        description="Shuffles used for permutation p-values",
    )
    correlation_method: Literal["spearman", "pearson"] = Field(default="spearman")
    seed: int = Field(default=42)


class CoverageSettings(BaseModel):
    """Bootstrap credible-interval coverage settings."""

    n_trials: int = Field(default=1000, ge=1)
    n_carriers: int = Field(default=10, ge=1)
    interval_step: float = Field(
        default=0.05,
        ge=0.0,
        lt=1.0,
        description="Reporting granularity intervals are rounded outward to (0 disables)",
    )
    level: float = Field(default=0.95, gt=0.0, lt=1.0)
    seed: int = Field(default=42)


class SmoothingSettings(BaseModel):
    """Parameters forwarded to the distance smoothing service."""

    covariate: str = Field(
        default="smoothed_penetrance",
        description="Covariate column refreshed from the current posterior each iteration",
    )
    kernel: str = Field(default="sigmoid")
    bandwidth: float = Field(default=7.0, gt=0.0)


class EngineConfig(BaseModel):
    """Main engine configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory for run outputs and provenance sidecars",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB checkpoint database",
    )
    gene: str = Field(default="KCNH2")
    phenotype: str = Field(default="LQT2")
    em: EMSettings = Field(default_factory=EMSettings)
    covariates: CovariateSettings = Field(default_factory=CovariateSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    coverage: CoverageSettings = Field(default_factory=CoverageSettings)
    smoothing: SmoothingSettings = Field(default_factory=SmoothingSettings)

    @field_validator("data_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Deterministic over all values, so two runs with the same hash used
        the same engine settings.
        """
        config_json = json.dumps(
            self.model_dump(mode="python"),
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
