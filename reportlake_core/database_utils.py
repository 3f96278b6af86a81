"""Database utility functions for DuckDB operations."""
from __future__ import annotations
import duckdb
from typing import Optional, List


def get_table_columns(conn: duckdb.DuckDBPyConnection, table_name: str) -> List[str]:
    """Column names of a table in declaration order, or [] if it does not exist."""
    result = conn.execute(
        "SELECT column_name FROM information_schema.columns WHERE table_name = ? ORDER BY ordinal_position",
        [table_name]
    ).fetchall()
    return [row[0] for row in result]


def safe_scalar(conn: duckdb.DuckDBPyConnection, sql: str, params: Optional[List] = None):
    """Execute SQL and return first scalar value, or None if the query fails."""
    try:
        row = conn.execute(sql, params or []).fetchone()
        return row[0] if row and len(row) else None
    except duckdb.Error:
        return None


def table_exists(conn: duckdb.DuckDBPyConnection, table_name: str) -> bool:
    """Check if a table or view exists."""
    result = safe_scalar(
        conn,
        "SELECT 1 FROM information_schema.tables WHERE table_name = ?",
        [table_name]
    )
    return result == 1
