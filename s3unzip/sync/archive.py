"""Reading zip packages stored in S3."""

import logging
import os
import tempfile
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import Callable

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from ..api import StorageClient
from ..models import Entry

logger = logging.getLogger(__name__)


def iter_entries(archive: zipfile.ZipFile) -> Iterator[Entry]:
    """Lazily yield the file entries of an open zip archive.

    Directory entries carry no content and are skipped. The returned
    entries can only be read while ``archive`` is open.

    Args:
        archive: Open zip archive

    Yields:
        Entry objects in archive order
    """
    for info in archive.infolist():
        if info.is_dir():
            continue
        yield Entry(
            path=info.filename,
            opener=lambda info=info: archive.read(info),
            size=info.file_size,
        )


class PackageReader:
    """Downloads zip packages and feeds their entries to a callback."""

    def __init__(self, storage: StorageClient):
        """Initialize package reader.

        Args:
            storage: S3 storage client
        """
        self.storage = storage

    def process_archive(
        self,
        bucket: str,
        key: str,
        callback: Callable[[Entry], None],
    ) -> bool:
        """Download a package and invoke ``callback`` once per entry.

        Entries are processed one at a time; the callback must finish before
        the next entry is read. The temporary copy of the package is always
        removed.

        Args:
            bucket: Bucket holding the package
            key: Key of the package
            callback: Function called with each Entry

        Returns:
            False if the package could not be downloaded, True otherwise

        Raises:
            zipfile.BadZipFile: If the downloaded file is not a zip archive
            Exception: Any exception raised by ``callback``
        """
        fd, tmp_name = tempfile.mkstemp(suffix=".zip")
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            logger.info(f"Downloading s3://{bucket}/{key}")
            try:
                self.storage.download_file(bucket, key, tmp_path)
            except (ClientError, BotoCoreError, Boto3Error, OSError) as e:
                logger.warning(f"S3 download of s3://{bucket}/{key} failed: {e}")
                return False

            with zipfile.ZipFile(tmp_path, "r") as archive:
                for entry in iter_entries(archive):
                    callback(entry)
            return True
        finally:
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.debug(f"Failed to remove temporary file {tmp_path}: {e}")
