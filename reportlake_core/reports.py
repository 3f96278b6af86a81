"""Report discovery over a reporting API listing.

A listing is the list of report metadata records returned for one query,
ordered newest first. Two lookups are supported:

- `find_report_location`: storage location of the most recent report in a
  given state (used when only the latest file is needed).
- `resolve_reports`: locate files for a set of required calendar dates,
  scanning back no further than a lookback window.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Protocol, Sequence

from .config import DEFAULT_DATE_FORMAT, REPORT_AVAILABLE, StopReason
from .dates import format_date_key, report_timestamp
from .exceptions import InvalidApiResponseError
from .storage_location import extract_filename

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ReportMetadata:
    """One entry of a report listing."""
    state: str
    data_end_ms: int
    storage_location: str
    file_key: str

    @property
    def data_end(self) -> datetime:
        return report_timestamp(self.data_end_ms)

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "ReportMetadata":
        """Build from a raw listing entry ({"key": {...}, "metadata": {...}})."""
        try:
            metadata = payload['metadata']
            return cls(
                state=str(metadata['status']['state']),
                data_end_ms=int(metadata['reportDataEndTimeMs']),
                storage_location=metadata.get('googleCloudStoragePath') or '',
                file_key=str(payload['key']['reportId']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidApiResponseError(f"Malformed report metadata entry: {e!r}") from e


@dataclass(frozen=True)
class ReportFile:
    url: str
    file: str


@dataclass
class ResolvedReports:
    """Outcome of a report-set resolution.

    `missing` holds the required dates that were not found; an incomplete
    resolution is a normal result, not an error.
    """
    matched: Dict[str, ReportFile] = field(default_factory=dict)
    missing: FrozenSet[str] = frozenset()
    scanned: int = 0
    stop_reason: StopReason = StopReason.EXHAUSTED

    @property
    def complete(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {
            'matched': {k: {'url': v.url, 'file': v.file} for k, v in sorted(self.matched.items())},
            'missing': sorted(self.missing),
            'scanned': self.scanned,
            'stop_reason': self.stop_reason.value,
        }


class ReportListingProvider(Protocol):
    def list_reports(self, report_id: str) -> List[ReportMetadata]: ...


def parse_report_listing(body: Any) -> List[ReportMetadata]:
    """Parse a listing response body; empty or malformed listings are fatal."""
    if not isinstance(body, Mapping):
        raise InvalidApiResponseError('Invalid or empty API response.')
    reports = body.get('reports')
    if not isinstance(reports, list) or len(reports) == 0:
        raise InvalidApiResponseError('Invalid or empty API response.')
    return [ReportMetadata.from_api(r) for r in reports]


def find_report(records: Iterable[ReportMetadata], state: str = REPORT_AVAILABLE) -> Optional[ReportMetadata]:
    """First (most recent) record in `state`, or None."""
    for record in records:
        if record.state == state:
            return record
    return None


def find_report_location(records: Iterable[ReportMetadata], state: str = REPORT_AVAILABLE) -> Optional[str]:
    """Storage location of the first record in `state`, or None when there is none."""
    record = find_report(records, state)
    return record.storage_location if record else None


def resolve_reports(
    records: Sequence[ReportMetadata],
    required_dates: Iterable[str],
    lookback_days: float,
    date_format: str = DEFAULT_DATE_FORMAT,
    tz: tzinfo = timezone.utc,
    now: Optional[datetime] = None,
) -> ResolvedReports:
    """Find report files for the required dates in a newest-first listing.

    After each record the scan stops when every date is resolved, when no
    available (DONE) report has been seen yet, or when the latest available
    report seen is older than `lookback_days`. The caller's collection of
    dates is left untouched. `now` must be timezone-aware.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.utcoffset() is None:
        raise ValueError('now must be a timezone-aware datetime')
    remaining = set(required_dates)
    matched: Dict[str, ReportFile] = {}
    latest_seen: Optional[datetime] = None
    scanned = 0
    stop_reason = StopReason.EXHAUSTED

    for record in records:
        scanned += 1
        if record.state == REPORT_AVAILABLE:
            report_ts = record.data_end
            report_date = format_date_key(report_ts, date_format, tz)
            if report_date in remaining:
                remaining.discard(report_date)
                matched[report_date] = ReportFile(url=record.storage_location, file=record.file_key)
                logger.debug("Matched %s to report %s", report_date, record.file_key)
            latest_seen = report_ts

        if not remaining:
            stop_reason = StopReason.ALL_RESOLVED
            break
        if latest_seen is None:
            stop_reason = StopReason.NO_AVAILABLE_REPORTS
            break
        if (now - latest_seen).total_seconds() / SECONDS_PER_DAY > lookback_days:
            stop_reason = StopReason.LOOKBACK_EXCEEDED
            break

    result = ResolvedReports(
        matched=matched,
        missing=frozenset(remaining),
        scanned=scanned,
        stop_reason=stop_reason,
    )
    logger.info(
        "Resolved %d/%d required date(s) after scanning %d report(s) (%s)",
        len(matched), len(matched) + len(remaining), scanned, stop_reason.value,
    )
    return result


def get_report_name(client: ReportListingProvider, report_id: str) -> str:
    """Filename of the most recent available report for a query.

    A listing without any available report fails filename extraction.
    """
    records = client.list_reports(report_id)
    location = find_report_location(records) or ''
    return extract_filename(location)


def get_reports(
    client: ReportListingProvider,
    report_id: str,
    required_dates: Iterable[str],
    lookback_days: float,
    date_format: str = DEFAULT_DATE_FORMAT,
    tz: tzinfo = timezone.utc,
) -> ResolvedReports:
    """Fetch a query's listing and resolve the required dates against it."""
    records = client.list_reports(report_id)
    return resolve_reports(records, required_dates, lookback_days, date_format, tz)
