"""Reporting API client: report listings and report file content."""
from __future__ import annotations
import logging
from typing import Iterable, Iterator, List, Optional

import requests

from .config import HTTP_TIMEOUT_S, reporting_base_url, reporting_token
from .exceptions import InvalidApiResponseError
from .reports import ReportMetadata, parse_report_listing

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _line_text(raw: bytes) -> str:
    if raw.endswith(b'\r'):
        raw = raw[:-1]
    return raw.decode('utf-8')


def split_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Reassemble byte chunks into UTF-8 lines, whatever the chunk boundaries."""
    pending = b''
    for chunk in chunks:
        pending += chunk
        *complete, pending = pending.split(b'\n')
        for raw in complete:
            yield _line_text(raw)
    if pending:
        yield _line_text(pending)


class ReportingClient:
    """Thin wrapper over a requests session for the reporting API.

    Authentication is handled elsewhere: pass an already issued access token
    (or set REPORTING_API_TOKEN) and it is sent as a bearer token.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT_S,
                 chunk_size: int = CHUNK_SIZE):
        self.base_url = reporting_base_url(base_url).rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size
        token = reporting_token(token)
        if token:
            self.session.headers['Authorization'] = f"Bearer {token}"

    def listing_url(self, report_id: str) -> str:
        return f"{self.base_url}/queries/{report_id}/reports"

    def list_reports(self, report_id: str) -> List[ReportMetadata]:
        """Fetch the report listing for a query, newest first."""
        url = self.listing_url(report_id)
        logger.info("Requesting report listing for query %s", report_id)
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        try:
            body = resp.json()
        except ValueError as e:
            raise InvalidApiResponseError('Invalid or empty API response.') from e
        records = parse_report_listing(body)
        logger.debug("Listing for query %s has %d report(s)", report_id, len(records))
        return records

    def iter_report_lines(self, url: str) -> Iterator[str]:
        """Stream a report file line by line; the response is closed when iteration stops.

        Content is always UTF-8, whatever the Content-Type says. Lines end at
        `\\n` only; one trailing `\\r` is dropped with it.
        """
        logger.info("Downloading report file %s", url.split('?', 1)[0])
        resp = self.session.get(url, stream=True, timeout=self.timeout)
        try:
            resp.raise_for_status()
            yield from split_lines(resp.iter_content(chunk_size=self.chunk_size))
        finally:
            resp.close()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "ReportingClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
