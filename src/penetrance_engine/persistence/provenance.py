"""Provenance tracking for reproducible estimation runs."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ProvenanceTracker:
    """
    Records what produced a set of penetrance estimates.

    Captures the engine version, config hash, gene/phenotype, the EM and
    covariate settings, and every processing step with its details.
    """

    def __init__(self, engine_version: str, config: "EngineConfig"):
        self.engine_version = engine_version
        self.config_hash = config.config_hash()
        self.target = {"gene": config.gene, "phenotype": config.phenotype}
        self.settings = {
            "em": config.em.model_dump(),
            "covariates": config.covariates.model_dump(),
        }
        self.processing_steps: list[dict] = []
        self.created_at = datetime.now(timezone.utc)

    def record_step(self, step_name: str, details: Optional[dict] = None) -> None:
        """
        Record a processing step.

        Args:
            step_name: Name of the step, e.g. "estimate_penetrance"
            details: Optional JSON-serialisable details (counts, deltas, ...)
        """
        step = {
            "step_name": step_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            step["details"] = details
        self.processing_steps.append(step)

    def get_steps(self) -> list[dict]:
        return self.processing_steps

    def create_metadata(self) -> dict:
        return {
            "engine_version": self.engine_version,
            "config_hash": self.config_hash,
            "target": self.target,
            "settings": self.settings,
            "created_at": self.created_at.isoformat(),
            "processing_steps": self.processing_steps,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """
        Write metadata as ``{output_path}`` with suffix ``.provenance.json``.

        Returns:
            Path of the sidecar file
        """
        sidecar_path = Path(output_path).with_suffix(".provenance.json")
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)

        with open(sidecar_path, "w") as f:
            json.dump(self.create_metadata(), f, indent=2, default=str)
        return sidecar_path

    def save_to_store(self, store: "EngineStore") -> None:
        """Append this run's metadata to the store's ``_provenance`` table."""
        metadata = self.create_metadata()

        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance (
                version VARCHAR,
                config_hash VARCHAR,
                created_at TIMESTAMP,
                steps_json VARCHAR
            )
        """)
        store.conn.execute("""
            INSERT INTO _provenance (version, config_hash, created_at, steps_json)
            VALUES (?, ?, ?, ?)
        """, [
            metadata["engine_version"],
            metadata["config_hash"],
            metadata["created_at"],
            json.dumps(metadata["processing_steps"], default=str),
        ])

    @staticmethod
    def load_sidecar(sidecar_path: Path) -> dict:
        with open(sidecar_path) as f:
            return json.load(f)

    @classmethod
    def from_config(
        cls,
        config: "EngineConfig",
        version: Optional[str] = None
    ) -> "ProvenanceTracker":
        """
        Create a tracker for ``config``.

        Args:
            config: EngineConfig instance
            version: Engine version; defaults to penetrance_engine.__version__
        """
        if version is None:
            from penetrance_engine import __version__
            version = __version__

        return cls(version, config)
