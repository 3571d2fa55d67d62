"""Reconciliation engine for unzipped packages.

The :class:`Reconciler` implements the Create, Update and Delete lifecycle
operations of the custom resource. Each operation returns a
:class:`~s3unzip.models.ReconcileResult` instead of raising, so callers
handle every failure explicitly.
"""

import logging
import threading
from collections.abc import Iterable
from typing import Callable, Optional

from ..api import StorageClient
from ..config import config
from ..exceptions import S3UnzipError, SourceNotFoundError
from ..models import (
    Entry,
    FingerprintedEntry,
    Manifest,
    PackageRequest,
    ReconcileResult,
    ReconcileStats,
    ResourceResponse,
)
from ..utils import join_key
from .archive import PackageReader
from .comparator import EntryComparator, SyncAction, stale_paths
from .encoding import determine_encoding
from .fingerprint import compute_entry_hash
from .manifest import ManifestStore
from .operations import UnzipOperations, check_cancelled

logger = logging.getLogger(__name__)

CREATE_PARAMETERS = (
    "source_bucket",
    "source_key",
    "destination_bucket",
    "destination_key",
)
DELETE_PARAMETERS = ("source_key", "destination_bucket", "destination_key")


class Reconciler:
    """Brings a destination bucket in line with a zip package."""

    def __init__(
        self,
        storage: StorageClient,
        manifest_bucket: Optional[str] = None,
    ):
        """Initialize reconciler.

        Args:
            storage: S3 storage client
            manifest_bucket: Bucket holding manifests (uses config if not provided)

        Raises:
            S3UnzipConfigError: If no manifest bucket is configured
        """
        self.storage = storage
        self.manifest_bucket = manifest_bucket or config.require_manifest_bucket()
        self.reader = PackageReader(storage)
        self.operations = UnzipOperations(storage)
        self.manifests = ManifestStore(storage, self.manifest_bucket, self.reader)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    def create(
        self,
        request: PackageRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        """Unzip a package into the destination and record a manifest."""
        return self._run(lambda stats: self._create(request, stats, cancel_event))

    def update(
        self,
        old_request: PackageRequest,
        request: PackageRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        """Upload changed entries and remove entries no longer in the package."""
        return self._run(
            lambda stats: self._update(old_request, request, stats, cancel_event)
        )

    def delete(
        self,
        request: PackageRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconcileResult:
        """Remove every object recorded in the package manifest."""
        return self._run(lambda stats: self._delete(request, stats, cancel_event))

    def _run(
        self, operation: Callable[[ReconcileStats], ResourceResponse]
    ) -> ReconcileResult:
        stats = ReconcileStats()
        try:
            response = operation(stats)
        except S3UnzipError as e:
            logger.error(f"Reconciliation failed: {e}")
            return ReconcileResult.failure(e, stats)
        return ReconcileResult.success(response, stats)

    # ------------------------------------------------------------------
    # Implementation
    # ------------------------------------------------------------------

    def _create(
        self,
        request: PackageRequest,
        stats: ReconcileStats,
        cancel_event: Optional[threading.Event],
    ) -> ResourceResponse:
        request.require(*CREATE_PARAMETERS)
        logger.info(
            f"Copying package s3://{request.source_bucket}/{request.source_key} "
            f"to S3 bucket {request.destination_bucket}"
        )

        manifest = self._apply_package(request, EntryComparator(), stats, cancel_event)

        logger.info(f"Uploaded {stats.uploaded:,} files")
        self.manifests.write_manifest(request, manifest)
        return ResourceResponse.for_request(request)

    def _update(
        self,
        old_request: PackageRequest,
        request: PackageRequest,
        stats: ReconcileStats,
        cancel_event: Optional[threading.Event],
    ) -> ResourceResponse:
        request.require(*CREATE_PARAMETERS)

        if not old_request.same_destination(request):
            # destination changed: replace everything instead of computing a diff
            logger.info(
                f"Replacing package s3://{request.source_bucket}/{request.source_key} "
                f"in S3 bucket {request.destination_bucket}"
            )
            self._delete(old_request, stats, cancel_event)
            return self._create(request, stats, cancel_event)

        logger.info(
            f"Updating package {request.source_key} "
            f"in S3 bucket {request.destination_bucket}"
        )
        previous = self.manifests.read_manifest(old_request)
        if previous is None:
            logger.warning(
                "Previous manifest unavailable, uploading all files of "
                f"s3://{request.source_bucket}/{request.source_key}"
            )
            return self._create(request, stats, cancel_event)

        manifest = self._apply_package(
            request, EntryComparator(previous), stats, cancel_event
        )
        logger.info(f"Uploaded {stats.uploaded:,} files")
        logger.info(f"Skipped {stats.skipped:,} unchanged files")

        stale = [
            join_key(request.destination_key, path)
            for path in stale_paths(previous, manifest)
        ]
        self.operations.batch_delete(request.destination_bucket, stale, cancel_event)
        stats.deleted += len(stale)

        self.manifests.write_manifest(request, manifest)
        if old_request.manifest_key != request.manifest_key:
            self.manifests.delete_manifest(old_request)
        return ResourceResponse.for_request(request)

    def _delete(
        self,
        request: PackageRequest,
        stats: ReconcileStats,
        cancel_event: Optional[threading.Event],
    ) -> ResourceResponse:
        request.require(*DELETE_PARAMETERS)
        logger.info(
            f"Deleting package {request.source_key} "
            f"from S3 bucket {request.destination_bucket}"
        )

        manifest = self.manifests.read_manifest(request)
        if manifest is None:
            return ResourceResponse()

        keys = [join_key(request.destination_key, path) for path in manifest]
        self.operations.batch_delete(request.destination_bucket, keys, cancel_event)
        stats.deleted += len(keys)
        self.manifests.delete_manifest(request)
        return ResourceResponse()

    def _apply_package(
        self,
        request: PackageRequest,
        comparator: EntryComparator,
        stats: ReconcileStats,
        cancel_event: Optional[threading.Event],
    ) -> Manifest:
        """Download the package and upload entries the comparator selects.

        Raises:
            SourceNotFoundError: If the package cannot be downloaded
        """
        processed: list[FingerprintedEntry] = []

        def _process(entry: Entry) -> None:
            processed.append(
                self.apply_entry(entry, request, comparator, stats, cancel_event)
            )

        if not self.reader.process_archive(
            request.source_bucket, request.source_key, _process
        ):
            raise SourceNotFoundError(request.source_bucket, request.source_key)
        return Manifest.from_entries(processed)

    def apply_entries(
        self,
        entries: Iterable[Entry],
        request: PackageRequest,
        comparator: EntryComparator,
        stats: Optional[ReconcileStats] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Manifest:
        """Apply a sequence of entries and fold them into a manifest.

        Useful for packages that are already available locally.
        """
        stats = stats if stats is not None else ReconcileStats()
        return Manifest.from_entries(
            [
                self.apply_entry(entry, request, comparator, stats, cancel_event)
                for entry in entries
            ]
        )

    def apply_entry(
        self,
        entry: Entry,
        request: PackageRequest,
        comparator: EntryComparator,
        stats: ReconcileStats,
        cancel_event: Optional[threading.Event] = None,
    ) -> FingerprintedEntry:
        """Upload a single entry if the comparator says so."""
        check_cancelled(cancel_event)
        data = entry.read()
        encoding = determine_encoding(entry.path, request.encoding)
        fingerprinted = FingerprintedEntry(
            entry.path, compute_entry_hash(entry.path, data, encoding)
        )
        decision = comparator.compare(fingerprinted)

        if decision.action == SyncAction.UPLOAD:
            stats.bytes_uploaded += self.operations.upload_entry(
                entry.path, data, request, encoding
            )
            stats.uploaded += 1
        else:
            logger.debug(f"Skipping {entry.path}: {decision.reason}")
            stats.skipped += 1
        return fingerprinted
