"""Manifest persistence for tracking unzipped objects.

This module stores, for every (destination bucket, source key) pair, the
list of entries written by the last reconciliation together with their
fingerprints. The manifest enables incremental updates and lets deletes
remove exactly the objects that were created, leaving everything else in
the destination bucket alone.
"""

import io
import logging
import zipfile
from typing import Optional

from ..api import StorageClient
from ..exceptions import ManifestDeleteFailedError, ManifestFormatError
from ..models import Entry, Manifest, PackageRequest
from ..utils import MANIFEST_ENTRY_NAME
from .archive import PackageReader
from .fingerprint import compute_content_md5

logger = logging.getLogger(__name__)


def serialize_manifest(manifest: Manifest) -> str:
    """Serialize a manifest to newline-separated ``path<TAB>fingerprint`` records."""
    return "\n".join(f"{path}\t{fingerprint}" for path, fingerprint in manifest.items())


def parse_manifest(text: str) -> Manifest:
    """Parse manifest records.

    Blank lines are ignored.

    Args:
        text: Manifest text

    Returns:
        Manifest preserving record order

    Raises:
        ManifestFormatError: If a record has no fingerprint column
    """
    entries: dict[str, str] = {}
    for number, line in enumerate(text.split("\n"), start=1):
        line = line.rstrip("\r")
        if not line.strip():
            continue
        path, sep, fingerprint = line.partition("\t")
        if not sep:
            raise ManifestFormatError(f"Malformed manifest record on line {number}")
        entries[path] = fingerprint
    return Manifest(entries)


def pack_manifest(manifest: Manifest) -> bytes:
    """Pack a manifest into a single-entry zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(MANIFEST_ENTRY_NAME, serialize_manifest(manifest).encode("utf-8"))
    return buffer.getvalue()


class ManifestStore:
    """Reads and writes package manifests in the manifest bucket."""

    def __init__(
        self,
        storage: StorageClient,
        manifest_bucket: str,
        reader: Optional[PackageReader] = None,
    ):
        """Initialize manifest store.

        Args:
            storage: S3 storage client
            manifest_bucket: Bucket holding the manifests
            reader: Package reader used to download manifests
        """
        self.storage = storage
        self.manifest_bucket = manifest_bucket
        self.reader = reader or PackageReader(storage)

    def write_manifest(self, request: PackageRequest, manifest: Manifest) -> None:
        """Store ``manifest`` for the request's destination bucket and source key."""
        body = pack_manifest(manifest)
        key = request.manifest_key
        logger.debug(
            f"Writing manifest with {len(manifest)} entries "
            f"to s3://{self.manifest_bucket}/{key}"
        )
        self.storage.put_object(
            bucket=self.manifest_bucket,
            key=key,
            body=body,
            content_md5=compute_content_md5(body),
        )

    def read_manifest(self, request: PackageRequest) -> Optional[Manifest]:
        """Download and parse the manifest for a request.

        Returns:
            Manifest if found, None if it could not be downloaded
        """
        key = request.manifest_key
        parsed: list[Manifest] = []

        def _collect(entry: Entry) -> None:
            text = entry.read().decode("utf-8")
            if text.strip():
                parsed.append(parse_manifest(text))

        if not self.reader.process_archive(self.manifest_bucket, key, _collect):
            logger.warning(
                f"Unable to download manifest from s3://{self.manifest_bucket}/{key}"
            )
            return None

        entries: dict[str, str] = {}
        for manifest in parsed:
            entries.update(manifest)
        return Manifest(entries)

    def delete_manifest(self, request: PackageRequest) -> None:
        """Remove the manifest object for a request.

        A failure to delete the manifest object is logged and otherwise
        ignored.
        """
        key = request.manifest_key
        try:
            self.storage.delete_object(self.manifest_bucket, key)
        except ManifestDeleteFailedError as e:
            logger.warning(
                f"Unable to delete manifest file at s3://{self.manifest_bucket}/{key}: {e}"
            )
