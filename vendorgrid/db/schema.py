"""DuckDB schema definitions."""

from __future__ import annotations

from pathlib import Path

import duckdb


def get_connection(path: str = ":memory:") -> duckdb.DuckDBPyConnection:
    """Get a DuckDB connection, creating the parent directory of file paths."""
    if path != ":memory:":
        db_path = Path(path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        path = str(db_path)
    return duckdb.connect(path)


def create_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the local cache table."""

    # Key-value store for the scorecard list and the auto-save backup slot
    conn.execute("""
        CREATE TABLE IF NOT EXISTS local_cache (
            key VARCHAR PRIMARY KEY,
            value JSON,
            updated_at TIMESTAMP DEFAULT current_timestamp
        )
    """)


def create_master_tables(conn: duckdb.DuckDBPyConnection) -> None:
    """Create scratch tables for the master scorecard aggregation."""

    # One row per (scorecard row, item column); item is NULL for rows of
    # scorecards without item columns
    conn.execute("""
        CREATE OR REPLACE TEMP TABLE master_entries (
            seq INTEGER NOT NULL,
            retailer VARCHAR NOT NULL,
            item VARCHAR,
            status VARCHAR
        )
    """)

    conn.execute("""
        CREATE OR REPLACE TEMP TABLE master_items (
            seq INTEGER NOT NULL,
            item VARCHAR NOT NULL
        )
    """)
