#!/usr/bin/env python
"""Command-line interface for reportlake ingestion.

Usage examples:
  # Which reports cover the last 3 days? (no download)
  python run_ingest.py resolve --report-id 123456 --days 3

  # Ingest the last 3 days of a configured source into DuckDB
  python run_ingest.py --db reportlake.duckdb fetch --source dv360_daily --config reports.yml --days 3

  # Ingest specific dates, failing (exit 2) if any of them has no report yet
  python run_ingest.py fetch --source dv360_daily --report-id 123456 \
      --dates 2021-06-01 2021-06-02 --lookback-days 14 --strict

  # Ingest only the most recent available report
  python run_ingest.py latest --source dv360_daily --report-id 123456

Exit codes:
  0 success
  1 unexpected failure
  2 --strict and some required dates were not found
"""
from __future__ import annotations
import argparse
import json
import logging
import os
import pathlib
import sys
from dataclasses import replace
from typing import List, Optional

import duckdb

from reportlake_core.config import (
    RAW_DIR,
    REPORTLAKE_ENV_LOG_LEVEL,
    ReportSource,
    default_db_path,
    load_report_sources,
)
from reportlake_core.dates import recent_date_keys
from reportlake_core.exceptions import ConfigError
from reportlake_core.fetch_reports import ReportingClient
from reportlake_core.pipeline import ingest_latest_report, ingest_reports
from reportlake_core.reports import get_report_name, get_reports

logger = logging.getLogger("reportlake")


def print_result(obj: dict, use_json: bool):
    """Uniform output printer. Nested dicts are indented in text mode."""
    if use_json:
        print(json.dumps(obj, indent=2, default=str))
        return
    for k, v in obj.items():
        if isinstance(v, dict):
            print(f"{k}:")
            for sk, sv in v.items():
                print(f"  {sk}: {sv}")
        else:
            print(f"{k}: {v}")


def _progress(msg: str):
    print(f"[progress] {msg}", file=sys.stderr, flush=True)


def _configure_logging(level: Optional[str]):
    level = (level or os.getenv(REPORTLAKE_ENV_LOG_LEVEL) or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _source_settings(args: argparse.Namespace) -> ReportSource:
    """Merge the config file entry (if any) with command-line overrides."""
    source = None
    if args.config:
        sources = load_report_sources(pathlib.Path(args.config))
        source = sources.get(args.source)
        if source is None:
            raise ConfigError(f"Source {args.source!r} not found in {args.config}")
    if source is None:
        if not args.report_id:
            raise ConfigError("Either --config with a known --source or --report-id is required")
        source = ReportSource(name=args.source, report_id=args.report_id)
    overrides = {}
    if args.report_id:
        overrides['report_id'] = args.report_id
    for key in ('lookback_days', 'days', 'date_format', 'timezone'):
        val = getattr(args, key, None)
        if val is not None:
            overrides[key] = val
    return replace(source, **overrides)


def _required_dates(args: argparse.Namespace, source: ReportSource) -> List[str]:
    if args.dates:
        return list(args.dates)
    return recent_date_keys(source.days, source.date_format, source.tz)


def _client(args: argparse.Namespace) -> ReportingClient:
    return ReportingClient(base_url=args.api_url, token=args.token)


def cmd_resolve(args: argparse.Namespace) -> int:
    source = _source_settings(args)
    required = _required_dates(args, source)
    _progress(f"Resolving {len(required)} date(s) for query {source.report_id}...")
    with _client(args) as client:
        resolved = get_reports(client, source.report_id, required, source.lookback_days,
                               source.date_format, source.tz)
    print_result(resolved.to_dict(), args.json)
    return 2 if args.strict and resolved.missing else 0


def cmd_fetch(args: argparse.Namespace) -> int:
    source = _source_settings(args)
    required = _required_dates(args, source)
    _progress(f"Ingesting {len(required)} date(s) for source {source.name}...")
    con = duckdb.connect(args.db)
    try:
        with _client(args) as client:
            result = ingest_reports(
                client, con, source.name, source.report_id, required, source.lookback_days,
                source.date_format, source.tz, raw_dir=pathlib.Path(args.raw_dir),
                overwrite=args.overwrite,
            )
    finally:
        con.close()
    print_result(result, args.json)
    if result['missing_dates']:
        _progress(f"Missing reports for: {', '.join(result['missing_dates'])}")
        if args.strict:
            return 2
    return 0


def cmd_latest(args: argparse.Namespace) -> int:
    source = _source_settings(args)
    _progress(f"Ingesting latest report for source {source.name}...")
    con = duckdb.connect(args.db)
    try:
        with _client(args) as client:
            result = ingest_latest_report(
                client, con, source.name, source.report_id, source.date_format, source.tz,
                raw_dir=pathlib.Path(args.raw_dir), overwrite=args.overwrite,
            )
    finally:
        con.close()
    print_result(result, args.json)
    return 0


def cmd_name(args: argparse.Namespace) -> int:
    source = _source_settings(args)
    with _client(args) as client:
        name = get_report_name(client, source.report_id)
    print_result({'report_id': source.report_id, 'filename': name}, args.json)
    return 0


def _add_source_args(p: argparse.ArgumentParser, with_dates: bool = True):
    p.add_argument("--source", default="report", help="Source name (config key, raw directory and table suffix)")
    p.add_argument("--config", help="YAML file with a 'reports:' mapping of sources")
    p.add_argument("--report-id", help="Reporting API query id (overrides config)")
    p.add_argument("--date-format", help="strftime format of report date keys (default %%Y-%%m-%%d)")
    p.add_argument("--timezone", help="Timezone used to turn report timestamps into dates (default UTC)")
    p.add_argument("--json", action="store_true", default=argparse.SUPPRESS, help="JSON output (same as the top-level flag)")
    if with_dates:
        g = p.add_mutually_exclusive_group()
        g.add_argument("--days", type=int, help="Require the last N days, today included")
        g.add_argument("--dates", nargs="+", help="Explicit required date keys")
        p.add_argument("--lookback-days", type=float, help="Stop scanning reports older than N days")
        p.add_argument("--strict", action="store_true", help="Exit with code 2 when any required date is missing")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="reportlake report ingestion")
    p.add_argument("--db", default=default_db_path(), help="DuckDB database file path")
    p.add_argument("--raw-dir", default=str(RAW_DIR), help="Root directory of raw CSV partitions")
    p.add_argument("--api-url", help="Override REPORTING_API_URL")
    p.add_argument("--token", help="Bearer token for the reporting API (default REPORTING_API_TOKEN)")
    p.add_argument("--log-level", help="Logging level (default REPORTLAKE_LOG_LEVEL or WARNING)")
    p.add_argument("--json", action="store_true", help="Print machine-readable JSON output")
    sub = p.add_subparsers(dest="command", required=True)

    rp = sub.add_parser("resolve", help="Show which reports cover the required dates (no download)")
    _add_source_args(rp)
    rp.set_defaults(func=cmd_resolve)

    fp = sub.add_parser("fetch", help="Download, extract and load reports for the required dates")
    _add_source_args(fp)
    fp.add_argument("--overwrite", action="store_true", help="Re-download dates whose raw partition already exists")
    fp.set_defaults(func=cmd_fetch)

    lp = sub.add_parser("latest", help="Download, extract and load the most recent available report")
    _add_source_args(lp, with_dates=False)
    lp.add_argument("--overwrite", action="store_true", help="Re-download if the raw partition already exists")
    lp.set_defaults(func=cmd_latest)

    np_ = sub.add_parser("name", help="Print the filename of the most recent available report")
    _add_source_args(np_, with_dates=False)
    np_.set_defaults(func=cmd_name)
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 1
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
