"""Content encoding applied to unzipped entries before upload."""

import gzip
import logging
from enum import Enum
from typing import Optional

import brotli

logger = logging.getLogger(__name__)


class ContentEncoding(str, Enum):
    """Byte transforms available for uploaded entries."""

    NONE = "NONE"
    """Upload bytes unchanged"""

    GZIP = "GZIP"
    """Compress with gzip at maximum level"""

    BROTLI = "BROTLI"
    """Compress with brotli at maximum quality"""

    @property
    def header(self) -> Optional[str]:
        """Value of the Content-Encoding header, if any."""
        return _HEADERS[self]

    @classmethod
    def from_string(cls, value: str) -> "ContentEncoding":
        """Parse an encoding name (case-insensitive).

        Raises:
            ValueError: If the name is not a known encoding
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid = ", ".join(e.value for e in cls)
            raise ValueError(
                f"Invalid encoding: {value}. Must be one of: {valid}"
            ) from None


_HEADERS = {
    ContentEncoding.NONE: None,
    ContentEncoding.GZIP: "gzip",
    ContentEncoding.BROTLI: "br",
}


def determine_encoding(filename: str, option: Optional[str]) -> ContentEncoding:
    """Select the encoding for an entry.

    Args:
        filename: Entry path, used for logging
        option: Encoding option from the request; ``None`` or empty means NONE

    Returns:
        The selected encoding; unrecognized options fall back to NONE
    """
    if not option:
        return ContentEncoding.NONE
    try:
        return ContentEncoding.from_string(option)
    except ValueError:
        logger.warning(f"Unrecognized compression type {option} for {filename}")
        return ContentEncoding.NONE


def encode(data: bytes, encoding: ContentEncoding) -> bytes:
    """Apply ``encoding`` to ``data``.

    The gzip header timestamp is fixed so that identical input always
    produces identical output.
    """
    if encoding is ContentEncoding.GZIP:
        return gzip.compress(data, compresslevel=9, mtime=0)
    if encoding is ContentEncoding.BROTLI:
        return brotli.compress(data, quality=11)
    return data
