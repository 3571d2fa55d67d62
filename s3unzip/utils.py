"""Utility functions for s3unzip."""

from collections.abc import Iterable, Iterator
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Maximum number of keys accepted by a single S3 DeleteObjects request
MAX_BATCH_DELETE_OBJECTS: int = 1000

# Name of the single entry inside a manifest archive
MANIFEST_ENTRY_NAME: str = "manifest.txt"

# Prefix of the physical resource id returned to CloudFormation
PHYSICAL_ID_PREFIX: str = "s3unzip"


# =============================================================================
# Path utilities
# =============================================================================


def normalize_path(path: str) -> str:
    """Convert backslashes to forward slashes.

    Args:
        path: Archive entry path or object key

    Returns:
        Path using forward slashes only

    Examples:
        >>> normalize_path("docs\\\\index.html")
        'docs/index.html'
    """
    return path.replace("\\", "/")


def join_key(prefix: Optional[str], path: str) -> str:
    """Join a destination key prefix and an entry path into an object key.

    An empty prefix yields the entry path unchanged. A rooted path replaces
    the prefix, matching the behavior of a path combine.

    Args:
        prefix: Destination key prefix (may be empty)
        path: Entry path relative to the prefix

    Returns:
        Object key using forward slashes

    Examples:
        >>> join_key("site", "css/main.css")
        'site/css/main.css'
        >>> join_key("site/", "index.html")
        'site/index.html'
        >>> join_key("", "index.html")
        'index.html'
    """
    prefix = normalize_path(prefix or "")
    path = normalize_path(path)
    if not prefix or path.startswith("/"):
        return path
    if prefix.endswith("/"):
        return prefix + path
    return f"{prefix}/{path}"


def bucket_name_from_arn(value: Optional[str]) -> Optional[str]:
    """Extract a bucket name from an S3 bucket ARN.

    Plain bucket names are returned unchanged.

    Examples:
        >>> bucket_name_from_arn("arn:aws:s3:::my-bucket")
        'my-bucket'
        >>> bucket_name_from_arn("my-bucket")
        'my-bucket'
    """
    if value and value.startswith("arn:"):
        return value.split(":", 5)[-1]
    return value


def chunked(items: Iterable[str], size: int) -> Iterator[list[str]]:
    """Split items into consecutive lists of at most ``size`` elements.

    Args:
        items: Items to split
        size: Maximum batch size (must be positive)

    Yields:
        Lists of items in their original order
    """
    if size <= 0:
        raise ValueError("Batch size must be positive")
    batch: list[str] = []
    for item in items:
        batch.append(item)
        if len(batch) == size:
            yield batch
            batch = []
    if batch:
        yield batch


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
