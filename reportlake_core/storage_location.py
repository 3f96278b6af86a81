"""Storage location parsing for report file URLs."""
from __future__ import annotations
import re

from .exceptions import StorageLocationError

# <prefix>/<filename>_<seg>_<seg>_<seg>_<seg>.csv?<suffix>
STORAGE_URL_PATTERN = re.compile(r'(.*)/(?P<filename>.*)_(.*)_(.*)_(.*)_(.*)\.csv\?(.*)')


def extract_filename(url: str) -> str:
    """Return the report filename token embedded in a storage location URL.

    Raises StorageLocationError when the URL does not have the expected shape.
    """
    match = STORAGE_URL_PATTERN.search(url or '')
    if not match or not match.group('filename'):
        raise StorageLocationError(f"Unable to extract filename from URL: {url!r}")
    return match.group('filename')
