"""Sync engine for s3unzip - incremental unzip into S3 with manifests."""

from .archive import PackageReader, iter_entries
from .comparator import EntryComparator, SyncAction, SyncDecision, stale_paths
from .encoding import ContentEncoding, determine_encoding, encode
from .engine import Reconciler
from .fingerprint import compute_content_md5, compute_entry_hash
from .manifest import ManifestStore, pack_manifest, parse_manifest, serialize_manifest
from .operations import UnzipOperations

__all__ = [
    "Reconciler",
    "PackageReader",
    "iter_entries",
    "EntryComparator",
    "SyncAction",
    "SyncDecision",
    "stale_paths",
    "ContentEncoding",
    "determine_encoding",
    "encode",
    "compute_content_md5",
    "compute_entry_hash",
    "ManifestStore",
    "pack_manifest",
    "parse_manifest",
    "serialize_manifest",
    "UnzipOperations",
]
