"""Destination bucket operations: uploading entries and deleting objects."""

import logging
import threading
from collections.abc import Sequence
from typing import Optional

from ..api import StorageClient
from ..exceptions import ReconcileCancelledError
from ..models import PackageRequest
from ..utils import MAX_BATCH_DELETE_OBJECTS, chunked, join_key, normalize_path
from .encoding import ContentEncoding, encode
from .fingerprint import compute_content_md5

logger = logging.getLogger(__name__)


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    """Raise ReconcileCancelledError if ``cancel_event`` is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise ReconcileCancelledError("Reconciliation cancelled")


class UnzipOperations:
    """Writes unzipped entries to and removes them from the destination."""

    def __init__(self, storage: StorageClient, batch_size: int = MAX_BATCH_DELETE_OBJECTS):
        """Initialize unzip operations.

        Args:
            storage: S3 storage client
            batch_size: Maximum number of keys per delete request
        """
        self.storage = storage
        self.batch_size = batch_size

    def upload_entry(
        self,
        path: str,
        data: bytes,
        request: PackageRequest,
        encoding: ContentEncoding,
    ) -> int:
        """Encode an entry and upload it below the destination key.

        Args:
            path: Entry path inside the package
            data: Uncompressed entry contents
            request: Package request naming the destination
            encoding: Encoding to apply before upload

        Returns:
            Number of bytes uploaded

        Raises:
            UploadError: If the upload fails
        """
        body = encode(data, encoding)
        destination = join_key(request.destination_key, path)
        logger.info(
            f"Uploading file: {destination} [encoding: {encoding.value.lower()}]"
        )
        self.storage.put_object(
            bucket=request.destination_bucket,
            key=destination,
            body=body,
            content_md5=compute_content_md5(body),
            content_encoding=encoding.header,
        )
        return len(body)

    def batch_delete(
        self,
        bucket: str,
        keys: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Delete objects in batches of at most ``batch_size`` keys.

        Args:
            bucket: Bucket to delete from
            keys: Object keys to delete
            cancel_event: Optional event checked before each batch

        Returns:
            Number of delete requests issued
        """
        if not keys:
            return 0
        logger.info(f"Deleting {len(keys):,} files")

        batches = 0
        for batch in chunked((normalize_path(key) for key in keys), self.batch_size):
            check_cancelled(cancel_event)
            logger.debug(f"Deleting files: {', '.join(batch)}")
            self.storage.delete_objects(bucket, batch)
            batches += 1
        return batches
