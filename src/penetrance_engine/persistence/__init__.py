"""Checkpoint storage and provenance tracking."""

from penetrance_engine.persistence.duckdb_store import ESTIMATES_TABLE, EngineStore
from penetrance_engine.persistence.provenance import ProvenanceTracker

__all__ = ["ESTIMATES_TABLE", "EngineStore", "ProvenanceTracker"]
