"""Date helpers: in-line date rewriting and calendar-date keys for reports."""
from __future__ import annotations
import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Union

from .config import DEFAULT_DATE_FORMAT

DATE_PATTERN = re.compile(r'(\d{4})/(\d{2})/(\d{2})')


def convert_date(line: str) -> str:
    """Rewrite every YYYY/MM/DD in the line as YYYY-MM-DD."""
    return DATE_PATTERN.sub(r'\1-\2-\3', line)


def report_timestamp(timestamp_ms: Union[int, str]) -> datetime:
    """Convert milliseconds since epoch (int or numeric string) to an aware UTC datetime."""
    return datetime.fromtimestamp(int(timestamp_ms) / 1000, tz=timezone.utc)


def format_date_key(ts: datetime, date_format: str = DEFAULT_DATE_FORMAT, tz: tzinfo = timezone.utc) -> str:
    return ts.astimezone(tz).strftime(date_format)


def report_date_key(timestamp_ms: Union[int, str], date_format: str = DEFAULT_DATE_FORMAT,
                    tz: tzinfo = timezone.utc) -> str:
    """Calendar-date key for a report's data-end timestamp."""
    return format_date_key(report_timestamp(timestamp_ms), date_format, tz)


def recent_date_keys(days: int, date_format: str = DEFAULT_DATE_FORMAT, tz: tzinfo = timezone.utc,
                     today: Optional[date] = None) -> List[str]:
    """Last `days` calendar-date keys ending at today (inclusive), oldest first."""
    if days <= 0:
        return []
    today = today or datetime.now(tz).date()
    return [
        (today - timedelta(days=i)).strftime(date_format)
        for i in range(days - 1, -1, -1)
    ]
