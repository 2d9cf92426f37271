"""Tests for the DuckDB checkpoint store and provenance tracking."""

import json

import polars as pl
import pytest

from penetrance_engine.config.loader import load_config
from penetrance_engine.persistence import ESTIMATES_TABLE, EngineStore, ProvenanceTracker


@pytest.fixture
def test_config(config_file):
    return load_config(config_file)


# ============================================================================
# DuckDB Store Tests
# ============================================================================

def test_store_creates_database(tmp_path):
    db_path = tmp_path / "nested" / "engine.duckdb"
    assert not db_path.exists()

    store = EngineStore(db_path)
    store.close()

    assert db_path.exists()


def test_save_and_load_variant_table(tmp_path, variants):
    """Types and nulls of a prepared variant table survive a round trip."""
    with EngineStore(tmp_path / "test.duckdb") as store:
        store.save_dataframe(variants, "variant_table", "prepared input")
        loaded = store.load_dataframe("variant_table")

    assert loaded.columns == variants.columns
    assert loaded.height == variants.height
    assert loaded["total"].dtype == pl.Int64
    assert loaded["revel_score"].null_count() == variants["revel_score"].null_count()
    assert loaded["penetrance"].null_count() == variants["penetrance"].null_count()
    assert loaded["variant_id"].to_list() == variants["variant_id"].to_list()


def test_save_rejects_non_polars(tmp_path):
    with EngineStore(tmp_path / "test.duckdb") as store:
        with pytest.raises(TypeError):
            store.save_dataframe({"col": [1, 2]}, "bad")


def test_save_replaces_existing(tmp_path):
    with EngineStore(tmp_path / "test.duckdb") as store:
        store.save_dataframe(pl.DataFrame({"val": [1, 2, 3]}), "t", "first")
        store.save_dataframe(pl.DataFrame({"val": [9]}), "t", "second")

        assert store.load_dataframe("t")["val"].to_list() == [9]
        checkpoint = store.list_checkpoints()[0]
        assert checkpoint["row_count"] == 1
        assert checkpoint["description"] == "second"


def test_checkpoint_lifecycle(tmp_path):
    """save -> has -> delete -> not has."""
    store = EngineStore(tmp_path / "test.duckdb")
    df = pl.DataFrame({"posterior_mean": [0.2, 0.3]})

    assert not store.has_checkpoint(ESTIMATES_TABLE)

    store.save_dataframe(df, ESTIMATES_TABLE, "test")
    assert store.has_checkpoint(ESTIMATES_TABLE)

    store.delete_checkpoint(ESTIMATES_TABLE)
    assert not store.has_checkpoint(ESTIMATES_TABLE)
    assert store.load_dataframe(ESTIMATES_TABLE) is None

    store.close()


def test_list_checkpoints(tmp_path):
    store = EngineStore(tmp_path / "test.duckdb")

    for i in range(3):
        store.save_dataframe(pl.DataFrame({"val": list(range(i + 1))}), f"table_{i}", f"description {i}")

    checkpoints = store.list_checkpoints()
    assert len(checkpoints) == 3
    for ckpt in checkpoints:
        assert set(ckpt) == {"table_name", "created_at", "row_count", "description"}

    table_0 = [c for c in checkpoints if c["table_name"] == "table_0"][0]
    assert table_0["row_count"] == 1
    assert table_0["description"] == "description 0"

    store.close()


def test_load_nonexistent_returns_none(tmp_path):
    with EngineStore(tmp_path / "test.duckdb") as store:
        assert store.load_dataframe("nonexistent_table") is None


def test_context_manager_persists(tmp_path):
    db_path = tmp_path / "test.duckdb"
    df = pl.DataFrame({"col": [1, 2, 3]})

    with EngineStore(db_path) as store:
        store.save_dataframe(df, "test_table", "test")

    with EngineStore(db_path) as store:
        loaded = store.load_dataframe("test_table")
        assert loaded is not None
        assert loaded.shape == df.shape


def test_store_from_config(test_config):
    with EngineStore.from_config(test_config) as store:
        assert store.db_path == test_config.duckdb_path


# ============================================================================
# Provenance Tests
# ============================================================================

def test_provenance_metadata_structure(test_config):
    tracker = ProvenanceTracker("0.1.0", test_config)
    metadata = tracker.create_metadata()

    assert metadata["engine_version"] == "0.1.0"
    assert metadata["config_hash"] == test_config.config_hash()
    assert metadata["target"] == {"gene": "KCNH2", "phenotype": "LQT2"}
    assert metadata["settings"]["em"]["max_iterations"] == 25
    assert metadata["settings"]["covariates"]["optional"] == ["revel_score"]
    assert metadata["processing_steps"] == []


def test_provenance_records_steps(test_config):
    tracker = ProvenanceTracker("0.1.0", test_config)

    tracker.record_step("read_variant_table")
    tracker.record_step("estimate_penetrance", {"iterations": 4, "state": "converged"})

    steps = tracker.get_steps()
    assert [s["step_name"] for s in steps] == ["read_variant_table", "estimate_penetrance"]
    assert "details" not in steps[0]
    assert steps[1]["details"]["iterations"] == 4
    assert all("timestamp" in s for s in steps)


def test_provenance_sidecar_roundtrip(test_config, tmp_path):
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("estimate_penetrance", {"deltas": [3.2, 0.4]})

    sidecar_path = tracker.save_sidecar(tmp_path / "out" / ESTIMATES_TABLE)

    assert sidecar_path == tmp_path / "out" / f"{ESTIMATES_TABLE}.provenance.json"
    loaded = ProvenanceTracker.load_sidecar(sidecar_path)
    assert loaded["engine_version"] == "0.1.0"
    assert loaded["processing_steps"][0]["details"]["deltas"] == [3.2, 0.4]


def test_provenance_default_version(test_config):
    from penetrance_engine import __version__

    assert ProvenanceTracker.from_config(test_config).engine_version == __version__


def test_provenance_save_to_store(test_config, tmp_path):
    store = EngineStore(tmp_path / "test.duckdb")
    tracker = ProvenanceTracker("0.1.0", test_config)
    tracker.record_step("estimate_penetrance")

    tracker.save_to_store(store)
    tracker.save_to_store(store)

    rows = store.conn.execute("SELECT * FROM _provenance").fetchall()
    assert len(rows) == 2
    assert rows[0][0] == "0.1.0"
    assert rows[0][1] == test_config.config_hash()
    steps = json.loads(rows[0][3])
    assert steps[0]["step_name"] == "estimate_penetrance"

    store.close()
