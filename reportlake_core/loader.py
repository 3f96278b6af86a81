"""Destinations for extracted report rows.

Rows land in two places:
- data/raw/<source>/dt=<date>/<filename>.csv  (one raw partition per report date)
- raw_<source> table in DuckDB, one load per report date, tracked in processed_files
"""
from __future__ import annotations
import hashlib
import logging
import pathlib
from typing import IO, List, Optional

import duckdb

from .database_utils import get_table_columns, table_exists
from .exceptions import DatabaseOperationError, DataIngestionError
from .utils import _col_ref, _sql_str, table_name_for

logger = logging.getLogger(__name__)

DATE_COLUMN = 'report_dt'


def ensure_core_tables(conn: duckdb.DuckDBPyConnection):
    conn.execute(
        "CREATE TABLE IF NOT EXISTS processed_files ("
        "source TEXT, dt TEXT, path TEXT, file_id TEXT PRIMARY KEY, rows BIGINT, ingested_at TIMESTAMP)"
    )


def file_id(path: pathlib.Path) -> str:
    """SHA-256 of the file content."""
    h = hashlib.sha256()
    with path.open('rb') as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def partition_path(raw_dir: pathlib.Path, source: str, date_key: str, filename: str) -> pathlib.Path:
    safe_date = date_key.replace('/', '-')
    return pathlib.Path(raw_dir) / source / f"dt={safe_date}" / f"{filename}.csv"


class RawPartitionWriter:
    """Field and line sink that writes one report date's raw CSV partition.

    Content goes to a temporary file that only replaces the partition on a
    clean close, so a failed download never leaves a truncated partition.
    """

    def __init__(self, raw_dir: pathlib.Path, source: str, date_key: str, filename: str,
                 overwrite: bool = False):
        self.path = partition_path(raw_dir, source, date_key, filename)
        self.tmp_path = self.path.with_name(self.path.name + '.tmp')
        self.overwrite = overwrite
        self.fields: List[str] = []
        self.rows = 0
        self.published: Optional[pathlib.Path] = None
        self._fh: Optional[IO[str]] = None

    @property
    def should_skip(self) -> bool:
        return self.path.exists() and not self.overwrite

    def open(self) -> "RawPartitionWriter":
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.tmp_path.open('w', encoding='utf-8', newline='')
        except OSError as e:
            raise DataIngestionError(f"Cannot open partition {self.tmp_path}: {e}") from e
        return self

    def _write(self, text: str) -> None:
        if self._fh is None:
            raise DataIngestionError(f"Partition writer for {self.path} is not open")
        self._fh.write(text + '\n')

    def handle_fields(self, names: List[str]) -> None:
        self.fields = list(names)
        self._write(','.join(names))

    def push_line(self, line: str) -> None:
        self._write(line)
        self.rows += 1

    def close(self) -> Optional[pathlib.Path]:
        """Publish the partition; an empty report (no header) publishes nothing."""
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if not self.fields:
            self.abort()
            logger.warning("Report for %s was empty, no partition written", self.path)
            return None
        self.tmp_path.replace(self.path)
        self.published = self.path
        logger.info("Wrote %d row(s) to %s", self.rows, self.path)
        return self.path

    def abort(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self.tmp_path.exists():
            self.tmp_path.unlink()

    def __enter__(self) -> "RawPartitionWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


def _csv_select(path: pathlib.Path) -> str:
    # dt=<date> directories must not turn into a hive partition column
    return (f"SELECT * FROM read_csv_auto('{_sql_str(str(path))}', "
            "header=true, all_varchar=true, hive_partitioning=false)")


def load_partition(conn: duckdb.DuckDBPyConnection, source: str, date_key: str,
                   path: pathlib.Path) -> dict:
    """Load one raw partition into raw_<source>, replacing earlier rows for the same date."""
    ensure_core_tables(conn)
    table = table_name_for(source)
    fid = file_id(path)
    if conn.execute("SELECT 1 FROM processed_files WHERE file_id=?", [fid]).fetchone():
        logger.info("Skipping %s: already loaded", path)
        return {'table': table, 'rows': 0, 'loaded': False}

    csv_sql = _csv_select(path)
    date_lit = f"'{_sql_str(date_key)}'"
    try:
        csv_cols = [r[0] for r in conn.execute(f"DESCRIBE {csv_sql}").fetchall()]
        if not table_exists(conn, table):
            conn.execute(f"CREATE TABLE {table} AS SELECT {date_lit} AS {DATE_COLUMN}, * FROM ({csv_sql})")
        else:
            existing = get_table_columns(conn, table)
            for col in csv_cols:
                if col not in existing:
                    conn.execute(f"ALTER TABLE {table} ADD COLUMN {_col_ref(col)} VARCHAR")
                    existing.append(col)
            csv_set = set(csv_cols)
            select_new = ", ".join(
                _col_ref(c) if c in csv_set else f"NULL AS {_col_ref(c)}"
                for c in existing if c != DATE_COLUMN
            )
            conn.execute(f"DELETE FROM {table} WHERE {DATE_COLUMN} = ?", [date_key])
            conn.execute(f"INSERT INTO {table} SELECT {date_lit} AS {DATE_COLUMN}, {select_new} FROM ({csv_sql})")
        rows = conn.execute(f"SELECT COUNT(*) FROM ({csv_sql})").fetchone()[0]
        conn.execute(
            "INSERT INTO processed_files VALUES (?,?,?,?,?,current_timestamp)",
            [source, date_key, str(path), fid, rows],
        )
    except duckdb.Error as e:
        raise DatabaseOperationError(f"Failed loading {path} into {table}: {e}") from e
    logger.info("Loaded %d row(s) for %s into %s", rows, date_key, table)
    return {'table': table, 'rows': rows, 'loaded': True}
