"""Fingerprints used to detect changed entries between reconciliations."""

import base64
import hashlib

from ..utils import normalize_path
from .encoding import ContentEncoding


def compute_entry_hash(path: str, data: bytes, encoding: ContentEncoding) -> str:
    """Compute the fingerprint of an entry.

    The digest covers the normalized path followed by the raw (unencoded)
    contents, so it changes when the path, the contents or the encoding
    changes.

    Args:
        path: Entry path inside the package
        data: Uncompressed entry contents
        encoding: Encoding chosen for the upload

    Returns:
        Upper-case hex MD5 digest, a dash and the encoding name
    """
    md5 = hashlib.md5()  # noqa: S324
    md5.update(normalize_path(path).encode("utf-8"))
    md5.update(data)
    return f"{md5.hexdigest().upper()}-{encoding.value}"


def compute_content_md5(data: bytes) -> str:
    """Base64 MD5 of the bytes sent to S3, used as the ContentMD5 header."""
    digest = hashlib.md5(data).digest()  # noqa: S324
    return base64.b64encode(digest).decode("ascii")
