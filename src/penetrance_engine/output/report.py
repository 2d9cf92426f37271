"""Run summary for an estimation run."""

import json
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import duckdb
import numpy as np
import polars as pl
import scipy
import statsmodels

from penetrance_engine.config.schema import EngineConfig
from penetrance_engine.engine.em import EMResult
from penetrance_engine.persistence.provenance import ProvenanceTracker


@dataclass
class RunSummary:
    """
    Everything needed to judge and reproduce one EM run.

    Attributes:
        run_id: Random identifier for this run
        timestamp: UTC creation time (ISO 8601)
        engine_version: penetrance_engine version
        config_hash: SHA-256 of the engine configuration
        target: Gene and phenotype
        parameters: EM settings used
        prior: Global empirical prior (alpha0, beta0, p, v, degenerate flag)
        state: Terminal EM state ("converged" or "exhausted")
        iterations: Iterations performed
        deltas: L1 change in posterior means per iteration
        record_counts: Total, eligible, fallback and carried-forward records
        software_environment: Versions of python and the numeric stack
        steps: Provenance steps recorded during the run
        evaluation: Optional cross-validation / coverage metrics
    """

    run_id: str
    timestamp: str
    engine_version: str
    config_hash: str
    target: dict
    parameters: dict
    prior: dict
    state: str
    iterations: int
    deltas: list[float]
    record_counts: dict
    software_environment: dict
    steps: list[dict] = field(default_factory=list)
    evaluation: dict = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return self.state == "converged"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "engine_version": self.engine_version,
            "config_hash": self.config_hash,
            "target": self.target,
            "parameters": self.parameters,
            "prior": self.prior,
            "state": self.state,
            "converged": self.converged,
            "iterations": self.iterations,
            "deltas": self.deltas,
            "record_counts": self.record_counts,
            "software_environment": self.software_environment,
            "steps": self.steps,
            "evaluation": self.evaluation,
        }

    def to_json(self, path: Path) -> Path:
        """Write the summary as JSON and return the path."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        return path

    def to_markdown(self, path: Path) -> Path:
        """Write a human-readable Markdown summary and return the path."""
        path.parent.mkdir(parents=True, exist_ok=True)

        prior = self.prior
        lines = [
            f"# Penetrance Run Summary: {self.target.get('gene')} / {self.target.get('phenotype')}",
            "",
            f"**Run ID:** `{self.run_id}`",
            f"**Timestamp:** {self.timestamp}",
            f"**Engine Version:** {self.engine_version}",
            f"**Config Hash:** `{self.config_hash[:16]}`",
            "",
            "## Empirical Prior",
            "",
            f"- **alpha0:** {prior['alpha']:.4f}",
            f"- **beta0:** {prior['beta']:.4f}",
            f"- **Missense variants used:** {prior['n_variants']}",
        ]
        if prior.get("degenerate"):
            lines.append(f"- **Degenerate, fallback used:** {prior.get('reason')}")
        lines.append("")

        lines.extend([
            "## Convergence",
            "",
            f"- **State:** {self.state}",
            f"- **Iterations:** {self.iterations}",
            "",
            "| Iteration | Delta |",
            "|-----------|-------|",
        ])
        for i, delta in enumerate(self.deltas, start=1):
            lines.append(f"| {i} | {delta:.5f} |")
        lines.append("")

        lines.extend(["## Records", ""])
        for key, value in self.record_counts.items():
            lines.append(f"- **{key}:** {value}")
        lines.append("")

        if self.evaluation:
            lines.extend(["## Evaluation", ""])
            for key, value in self.evaluation.items():
                if isinstance(value, float):
                    lines.append(f"- **{key}:** {value:.4f}")
                else:
                    lines.append(f"- **{key}:** {value}")
            lines.append("")

        lines.extend(["## Software Environment", ""])
        for key, value in self.software_environment.items():
            lines.append(f"- **{key}:** {value}")
        lines.append("")

        with open(path, "w") as f:
            f.write("\n".join(lines))

        return path


def build_run_summary(
    config: EngineConfig,
    result: EMResult,
    provenance: ProvenanceTracker,
    evaluation: dict | None = None,
) -> RunSummary:
    """
    Collect a RunSummary from a finished EM run.

    Args:
        config: Engine configuration the run used
        result: Output of estimate_penetrance
        provenance: Tracker holding the recorded steps
        evaluation: Optional extra metrics (cross-validation, coverage)
    """
    prior = result.prior
    record_counts = {
        "total": result.table.height,
        "with_carriers": result.table.filter(pl.col("total") > 0).height,
        "eligible": result.eligible_count,
        "prior_fallback": result.fallback_count,
        "carried_forward": result.carried_forward_count,
    }

    return RunSummary(
        run_id=str(uuid.uuid4()),
        timestamp=datetime.now(timezone.utc).isoformat(),
        engine_version=provenance.engine_version,
        config_hash=provenance.config_hash,
        target={"gene": config.gene, "phenotype": config.phenotype},
        parameters=config.em.model_dump(),
        prior={
            "alpha": prior.alpha,
            "beta": prior.beta,
            "weighted_mean": prior.weighted_mean,
            "weighted_variance": prior.weighted_variance,
            "n_variants": prior.n_variants,
            "degenerate": prior.degenerate,
            "reason": prior.reason,
        },
        state=result.state.value,
        iterations=result.iterations,
        deltas=[float(d) for d in result.deltas],
        record_counts=record_counts,
        software_environment={
            "python": sys.version.split()[0],
            "polars": pl.__version__,
            "numpy": np.__version__,
            "scipy": scipy.__version__,
            "statsmodels": statsmodels.__version__,
            "duckdb": duckdb.__version__,
        },
        steps=provenance.get_steps(),
        evaluation=evaluation or {},
    )
