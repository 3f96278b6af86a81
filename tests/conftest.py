import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to sys.path for local package imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reportlake_core.reports import ReportMetadata


def ms(year, month, day, hour=0):
    """Milliseconds since epoch for a UTC wall-clock time."""
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


def gcs_url(name, day='20210601'):
    return f"https://storage.googleapis.com/reports-bucket/{name}_4567_{day}_0912_8910.csv?GoogleAccessId=x&Signature=abc"


def record(state, year, month, day, name='daily', key=None, hour=6):
    return ReportMetadata(
        state=state,
        data_end_ms=ms(year, month, day, hour),
        storage_location=gcs_url(name, f"{year}{month:02d}{day:02d}"),
        file_key=key or f"F-{year}{month:02d}{day:02d}",
    )


def api_entry(state, timestamp_ms, url, report_id):
    """One listing entry as the reporting API returns it."""
    return {
        'key': {'queryId': '42', 'reportId': report_id},
        'metadata': {
            'status': {'state': state},
            'reportDataEndTimeMs': str(timestamp_ms),
            'googleCloudStoragePath': url,
        },
    }


class FakeResponse:
    def __init__(self, status_code=200, body=None, chunks=None):
        self.status_code = status_code
        self._body = body
        self._chunks = chunks or []
        self.closed = False
        self.chunks_read = 0

    def raise_for_status(self):
        import requests
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    def iter_content(self, chunk_size=1, decode_unicode=False):
        for chunk in self._chunks:
            self.chunks_read += 1
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """Stands in for requests.Session: maps URL prefixes to canned responses."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.headers = {}
        self.calls = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        for prefix, response in self.routes.items():
            if url.startswith(prefix):
                return response
        return FakeResponse(status_code=404)

    def close(self):
        self.closed = True


@pytest.fixture
def now():
    return datetime(2021, 6, 3, 12, tzinfo=timezone.utc)
