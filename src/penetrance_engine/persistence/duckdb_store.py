"""DuckDB checkpoint store for variant tables and EM results."""

from pathlib import Path
from typing import Optional

import duckdb
import polars as pl
import structlog

logger = structlog.get_logger(__name__)

# Table written by `penetrance estimate`; its presence short-circuits re-runs
ESTIMATES_TABLE = "posterior_estimates"


class EngineStore:
    """
    DuckDB-backed storage for intermediate and final engine tables.

    Every saved table is registered in ``_checkpoints`` so an expensive step
    (estimation, cross-validation) can be skipped when its output already
    exists.
    """

    def __init__(self, db_path: Path):
        """
        Open (or create) the checkpoint database.

        Args:
            db_path: Path to DuckDB database file. Parent directories
                     are created automatically.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = duckdb.connect(str(self.db_path))

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS _checkpoints (
                table_name VARCHAR PRIMARY KEY,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                row_count INTEGER,
                description VARCHAR
            )
        """)

    def save_dataframe(
        self,
        df: pl.DataFrame,
        table_name: str,
        description: str = "",
    ) -> None:
        """
        Save a polars DataFrame as a checkpoint table, replacing any previous one.

        Args:
            df: Table to persist
            table_name: Name for the DuckDB table
            description: Free-text note kept in the checkpoint metadata
        """
        if not isinstance(df, pl.DataFrame):
            raise TypeError(f"expected polars.DataFrame, got {type(df).__name__}")

        self.conn.register("_incoming", df.to_arrow())
        try:
            self.conn.execute(f"CREATE OR REPLACE TABLE {table_name} AS SELECT * FROM _incoming")
        finally:
            self.conn.unregister("_incoming")

        self.conn.execute("""
            INSERT OR REPLACE INTO _checkpoints (table_name, row_count, description, created_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
        """, [table_name, df.height, description])

        logger.debug("checkpoint_saved", table=table_name, rows=df.height)

    def load_dataframe(self, table_name: str) -> Optional[pl.DataFrame]:
        """
        Load a checkpoint table.

        Returns:
            polars DataFrame, or None if the table doesn't exist
        """
        try:
            return self.conn.execute(f"SELECT * FROM {table_name}").pl()
        except duckdb.CatalogException:
            return None

    def has_checkpoint(self, table_name: str) -> bool:
        result = self.conn.execute(
            "SELECT COUNT(*) FROM _checkpoints WHERE table_name = ?",
            [table_name]
        ).fetchone()
        return result[0] > 0

    def list_checkpoints(self) -> list[dict]:
        """
        List all checkpoints, newest first.

        Returns:
            List of dicts with keys table_name, created_at, row_count, description
        """
        rows = self.conn.execute("""
            SELECT table_name, created_at, row_count, description
            FROM _checkpoints
            ORDER BY created_at DESC
        """).fetchall()

        return [
            {
                "table_name": row[0],
                "created_at": row[1],
                "row_count": row[2],
                "description": row[3],
            }
            for row in rows
        ]

    def delete_checkpoint(self, table_name: str) -> None:
        """Drop a checkpoint table and its metadata row."""
        self.conn.execute(f"DROP TABLE IF EXISTS {table_name}")
        self.conn.execute(
            "DELETE FROM _checkpoints WHERE table_name = ?",
            [table_name]
        )

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @classmethod
    def from_config(cls, config: "EngineConfig") -> "EngineStore":
        return cls(config.duckdb_path)
