"""Shared synthetic variant tables for engine and evaluation tests."""

from pathlib import Path

import numpy as np
import polars as pl
import pytest

from penetrance_engine.config.schema import CovariateSettings, EngineConfig
from penetrance_engine.dataset import prepare_variant_table

COVARIATES = ["smoothed_penetrance", "revel_score"]


def make_variant_frame(n_missense: int = 40, seed: int = 7) -> pl.DataFrame:
    """
    Raw variant table resembling a sparse LQT2 carrier cohort.

    - n_missense missense variants, two per residue position
    - affected counts drawn from the smoothed penetrance covariate
    - every 7th missense variant has no carriers
    - every 5th missense variant is missing revel_score
    - 5 nonsense variants with high penetrance, 3 synonymous without carriers
    """
    rng = np.random.default_rng(seed)

    positions = 400 + (np.arange(n_missense) // 2) * 5
    smoothed = rng.uniform(0.05, 0.6, n_missense)
    revel = np.clip(smoothed + rng.normal(0.0, 0.1, n_missense), 0.0, 1.0)
    total = rng.integers(1, 25, n_missense)
    total[::7] = 0
    affected = rng.binomial(total, smoothed)

    missense = pl.DataFrame({
        "variant_id": [f"A{p}V{i}" for i, p in enumerate(positions)],
        "position": positions.tolist(),
        "category": ["missense"] * n_missense,
        "affected": affected.tolist(),
        "unaffected": (total - affected).tolist(),
        "total": total.tolist(),
        "smoothed_penetrance": smoothed.tolist(),
        "revel_score": [None if i % 5 == 0 else float(v) for i, v in enumerate(revel)],
    })

    other = pl.DataFrame({
        "variant_id": [f"R{900 + i}X" for i in range(5)] + [f"L{950 + i}L" for i in range(3)],
        "position": [900 + i for i in range(5)] + [950 + i for i in range(3)],
        "category": ["nonsense"] * 5 + ["synonymous"] * 3,
        "affected": [4, 6, 3, 8, 5, 0, 0, 0],
        "unaffected": [1, 2, 1, 1, 2, 0, 0, 0],
        "total": [5, 8, 4, 9, 7, 0, 0, 0],
        "smoothed_penetrance": [None] * 8,
        "revel_score": [None] * 8,
    }, schema_overrides={"smoothed_penetrance": pl.Float64, "revel_score": pl.Float64})

    return pl.concat([missense, other])


@pytest.fixture
def raw_variants():
    return make_variant_frame()


@pytest.fixture
def variants(raw_variants):
    """Validated table with penetrance and weight columns."""
    return prepare_variant_table(raw_variants, COVARIATES)


@pytest.fixture
def engine_config(tmp_path):
    return EngineConfig(
        data_dir=tmp_path / "data",
        duckdb_path=tmp_path / "test.duckdb",
        covariates=CovariateSettings(required=["smoothed_penetrance"], optional=["revel_score"]),
    )


@pytest.fixture
def config_file(tmp_path):
    """Minimal YAML config pointing into tmp_path."""
    config_path = tmp_path / "test_config.yaml"
    config_path.write_text(f"""
data_dir: {tmp_path}/data
duckdb_path: {tmp_path}/test.duckdb
gene: KCNH2
phenotype: LQT2

em:
  max_iterations: 25
  delta_threshold: 1.0

covariates:
  required:
    - smoothed_penetrance
  optional:
    - revel_score

evaluation:
  n_folds: 4
  n_permutations: 50
  seed: 42

coverage:
  n_trials: 100
  n_carriers: 10
  interval_step: 0.05
""")
    return config_path


@pytest.fixture
def variant_tsv(tmp_path, raw_variants) -> Path:
    path = tmp_path / "variants.tsv"
    raw_variants.write_csv(path, separator="\t", null_value="NA")
    return path
