"""reportlake core: report discovery, row extraction and DuckDB loading."""

from .dates import convert_date, report_date_key, recent_date_keys
from .storage_location import extract_filename
from .reports import (
    ReportMetadata,
    ReportFile,
    ResolvedReports,
    find_report_location,
    resolve_reports,
    get_report_name,
    get_reports,
)
from .csv_extractor import CsvExtractor, StreamState
from .fetch_reports import ReportingClient
from .pipeline import ingest_reports, ingest_latest_report

__all__ = [
    "convert_date",
    "report_date_key",
    "recent_date_keys",
    "extract_filename",
    "ReportMetadata",
    "ReportFile",
    "ResolvedReports",
    "find_report_location",
    "resolve_reports",
    "get_report_name",
    "get_reports",
    "CsvExtractor",
    "StreamState",
    "ReportingClient",
    "ingest_reports",
    "ingest_latest_report",
]
