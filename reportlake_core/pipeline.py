"""Ingestion jobs: report listing -> raw CSV partitions -> DuckDB.

`ingest_reports` covers a set of required dates (bounded by a lookback
window); `ingest_latest_report` takes only the most recent available report.
Both return a JSON-serialisable summary.
"""
from __future__ import annotations
import logging
import pathlib
import time
from contextlib import closing
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional

import duckdb

from .config import DEFAULT_DATE_FORMAT, RAW_DIR
from .csv_extractor import CsvExtractor
from .dates import format_date_key
from .exceptions import ReportNotFoundError
from .fetch_reports import ReportingClient
from .loader import RawPartitionWriter, ensure_core_tables, load_partition
from .reports import ReportFile, find_report, resolve_reports
from .storage_location import extract_filename

logger = logging.getLogger(__name__)


def ingest_report_file(client: ReportingClient, conn: duckdb.DuckDBPyConnection, source: str,
                       date_key: str, report: ReportFile, raw_dir: pathlib.Path = RAW_DIR,
                       overwrite: bool = False) -> dict:
    """Download one report, write its raw partition and load it."""
    filename = extract_filename(report.url)
    writer = RawPartitionWriter(raw_dir, source, date_key, filename, overwrite=overwrite)
    out = {'file': report.file, 'filename': filename}
    if writer.should_skip:
        logger.info("Partition %s exists, skipping download", writer.path)
        out.update(rows=None, downloaded=False)
        path = writer.path
    else:
        with writer:
            extractor = CsvExtractor(writer.handle_fields, writer.push_line)
            with closing(client.iter_report_lines(report.url)) as lines:
                extractor.run(lines)
        out.update(rows=writer.rows, downloaded=True)
        path = writer.published
    out['path'] = str(path) if path else None
    if path is None:
        out.update(loaded=False, table=None)
        return out
    load = load_partition(conn, source, date_key, path)
    out.update(loaded=load['loaded'], table=load['table'])
    return out


def ingest_reports(client: ReportingClient, conn: duckdb.DuckDBPyConnection, source: str,
                   report_id: str, required_dates: Iterable[str], lookback_days: float,
                   date_format: str = DEFAULT_DATE_FORMAT, tz: tzinfo = timezone.utc,
                   raw_dir: pathlib.Path = RAW_DIR, overwrite: bool = False,
                   now: Optional[datetime] = None) -> dict:
    """Resolve the required dates against the listing and ingest every matched report.

    Dates that could not be resolved inside the lookback window are listed
    under `missing`; they do not fail the job.
    """
    required = sorted(set(required_dates))
    ensure_core_tables(conn)
    t0 = time.time()
    phases = {}

    p0 = time.time()
    records = client.list_reports(report_id)
    resolved = resolve_reports(records, required, lookback_days, date_format, tz, now=now)
    phases['resolve_s'] = round(time.time() - p0, 3)
    if resolved.missing:
        logger.warning("No report found for %s within %s day(s)", ', '.join(sorted(resolved.missing)), lookback_days)

    p0 = time.time()
    ingested = {}
    for date_key in sorted(resolved.matched):
        ingested[date_key] = ingest_report_file(
            client, conn, source, date_key, resolved.matched[date_key], raw_dir, overwrite,
        )
    phases['ingest_s'] = round(time.time() - p0, 3)
    phases['total_s'] = round(time.time() - t0, 3)

    return {
        'source': source,
        'report_id': report_id,
        'required_dates': required,
        'matched_dates': sorted(resolved.matched),
        'missing_dates': sorted(resolved.missing),
        'scanned': resolved.scanned,
        'stop_reason': resolved.stop_reason.value,
        'reports': ingested,
        'timings': phases,
    }


def ingest_latest_report(client: ReportingClient, conn: duckdb.DuckDBPyConnection, source: str,
                         report_id: str, date_format: str = DEFAULT_DATE_FORMAT,
                         tz: tzinfo = timezone.utc, raw_dir: pathlib.Path = RAW_DIR,
                         overwrite: bool = False) -> dict:
    """Ingest the most recent available report of a query, whatever its date."""
    ensure_core_tables(conn)
    t0 = time.time()
    latest = find_report(client.list_reports(report_id))
    if latest is None:
        raise ReportNotFoundError(f"No available report for query {report_id}")
    date_key = format_date_key(latest.data_end, date_format, tz)
    result = ingest_report_file(
        client, conn, source, date_key, ReportFile(url=latest.storage_location, file=latest.file_key),
        raw_dir, overwrite,
    )
    return {
        'source': source,
        'report_id': report_id,
        'date': date_key,
        'report': result,
        'timings': {'total_s': round(time.time() - t0, 3)},
    }
