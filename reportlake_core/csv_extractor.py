"""Row-oriented extraction of report CSV content.

Report files have three regions: a single header row, the data rows, and a
trailing summary block that starts at the first blank line (or the first
line beginning with a comma). `CsvExtractor` walks a stream of line chunks
once, in order, with no lookahead:

    SCANNING_HEADER --header--> STREAMING_DATA --summary marker--> SUMMARY_REACHED

The header's field names go to `handle_fields`, which must return before any
data line is forwarded. Data lines have their YYYY/MM/DD dates rewritten and
go to `push_line`. Nothing after the summary marker is forwarded.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .dates import convert_date
from .exceptions import StreamStateError

logger = logging.getLogger(__name__)

DELIMITER = ','

Chunk = Union[str, bytes]


class StreamState(Enum):
    SCANNING_HEADER = "scanning_header"
    STREAMING_DATA = "streaming_data"
    SUMMARY_REACHED = "summary_reached"


class StreamEvent(Enum):
    HEADER = "header"
    SUMMARY_MARKER = "summary_marker"


TRANSITIONS: Dict[Tuple[StreamState, StreamEvent], StreamState] = {
    (StreamState.SCANNING_HEADER, StreamEvent.HEADER): StreamState.STREAMING_DATA,
    (StreamState.STREAMING_DATA, StreamEvent.SUMMARY_MARKER): StreamState.SUMMARY_REACHED,
}


def _decode(chunk: Chunk) -> str:
    return chunk.decode('utf-8') if isinstance(chunk, (bytes, bytearray)) else chunk


def is_summary_marker(line: str) -> bool:
    """True for the line that opens the trailing summary block."""
    return len(line) == 0 or line[0] == DELIMITER


class CsvExtractor:
    """Stateful header/data/summary classifier for one report stream."""

    def __init__(self, handle_fields: Callable[[List[str]], object],
                 push_line: Optional[Callable[[str], object]] = None):
        self.handle_fields = handle_fields
        self.push_line = push_line
        self.state = StreamState.SCANNING_HEADER
        self.fields: List[str] = []
        self.chunks_seen = 0
        self.lines_emitted = 0

    @property
    def finished(self) -> bool:
        return self.state is StreamState.SUMMARY_REACHED

    def _advance(self, event: StreamEvent) -> None:
        try:
            self.state = TRANSITIONS[(self.state, event)]
        except KeyError:
            raise StreamStateError(f"No transition from {self.state.value} on {event.value}") from None

    def feed(self, chunk: Chunk) -> Optional[str]:
        """Consume one chunk; return the transformed data line, if it produced one."""
        if self.finished:
            return None
        self.chunks_seen += 1
        line = _decode(chunk)

        if self.state is StreamState.SCANNING_HEADER:
            names = line.split(DELIMITER)
            self.handle_fields(names)
            self.fields = names
            self._advance(StreamEvent.HEADER)
            return None

        if is_summary_marker(line):
            self._advance(StreamEvent.SUMMARY_MARKER)
            logger.debug("Summary block reached after %d data line(s)", self.lines_emitted)
            return None

        converted = convert_date(line)
        self.lines_emitted += 1
        if self.push_line is not None:
            self.push_line(converted)
        return converted

    def transform(self, chunks: Iterable[Chunk]) -> Iterator[str]:
        """Yield transformed data lines; stops pulling chunks at the summary block."""
        for chunk in chunks:
            line = self.feed(chunk)
            if line is not None:
                yield line
            if self.finished:
                return

    def run(self, chunks: Iterable[Chunk]) -> int:
        """Drain `chunks` through the extractor; returns the number of data lines."""
        for _ in self.transform(chunks):
            pass
        return self.lines_emitted
