"""Configuration constants and utilities for reportlake."""
from __future__ import annotations
import os
import pathlib
import yaml
from dataclasses import dataclass
from datetime import timezone, tzinfo
from enum import Enum
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .exceptions import ConfigError

load_dotenv()

ROOT = pathlib.Path(__file__).resolve().parent.parent
RAW_DIR = ROOT / 'data' / 'raw'

REPORTING_ENV_URL = 'REPORTING_API_URL'
REPORTING_ENV_TOKEN = 'REPORTING_API_TOKEN'  # Optional bearer token
REPORTLAKE_ENV_DB = 'REPORTLAKE_DB'
REPORTLAKE_ENV_LOG_LEVEL = 'REPORTLAKE_LOG_LEVEL'

DEFAULT_REPORTING_BASE_URL = 'https://www.googleapis.com/doubleclickbidmanager/v1'
DEFAULT_DB = 'reportlake.duckdb'
DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_DAYS = 1
DEFAULT_DATE_FORMAT = '%Y-%m-%d'
DEFAULT_TIMEZONE = 'UTC'

# Seconds before the API is considered unresponsive (requests timeout)
HTTP_TIMEOUT_S = 60


class ReportState(Enum):
    """Lifecycle states reported in a listing's metadata.status.state."""
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


# Only reports in this state have a downloadable file
REPORT_AVAILABLE = ReportState.DONE.value


class StopReason(Enum):
    """Why a report-set resolution stopped scanning the listing."""
    ALL_RESOLVED = "all_resolved"
    NO_AVAILABLE_REPORTS = "no_available_reports"
    LOOKBACK_EXCEEDED = "lookback_exceeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ReportSource:
    """One configured report feed."""
    name: str
    report_id: str
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    days: int = DEFAULT_DAYS
    date_format: str = DEFAULT_DATE_FORMAT
    timezone: str = DEFAULT_TIMEZONE

    @property
    def tz(self) -> tzinfo:
        return resolve_timezone(self.timezone)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == 'UTC':
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ConfigError(f"Unknown timezone: {name}") from e


def reporting_base_url(override: Optional[str] = None) -> str:
    return override or os.getenv(REPORTING_ENV_URL) or DEFAULT_REPORTING_BASE_URL


def reporting_token(override: Optional[str] = None) -> Optional[str]:
    return override or os.getenv(REPORTING_ENV_TOKEN)


def default_db_path() -> str:
    return os.getenv(REPORTLAKE_ENV_DB) or DEFAULT_DB


def load_sources_config(cfg_path: pathlib.Path) -> Dict:
    with cfg_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_report_sources(cfg: Dict) -> Dict[str, ReportSource]:
    """Build ReportSource entries from the `reports:` mapping of a config dict."""
    reports = cfg.get('reports') or {}
    if not isinstance(reports, dict):
        raise ConfigError("'reports' must be a mapping of source name to settings")
    sources = {}
    for name, entry in reports.items():
        entry = entry or {}
        report_id = entry.get('report_id')
        if not report_id:
            raise ConfigError(f"Source {name!r} is missing report_id")
        try:
            sources[name] = ReportSource(
                name=name,
                report_id=str(report_id),
                lookback_days=int(entry.get('lookback_days', DEFAULT_LOOKBACK_DAYS)),
                days=int(entry.get('days', DEFAULT_DAYS)),
                date_format=str(entry.get('date_format', DEFAULT_DATE_FORMAT)),
                timezone=str(entry.get('timezone', DEFAULT_TIMEZONE)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid settings for source {name!r}: {e}") from e
    return sources


def load_report_sources(cfg_path: pathlib.Path) -> Dict[str, ReportSource]:
    if not cfg_path.exists():
        raise ConfigError(f"Config file not found: {cfg_path}")
    return parse_report_sources(load_sources_config(cfg_path))
