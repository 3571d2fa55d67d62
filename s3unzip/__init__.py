"""s3unzip - unzip packages into S3 buckets as a CloudFormation custom resource."""

from .api import StorageClient
from .exceptions import (
    ManifestDeleteFailedError,
    ManifestFormatError,
    MissingParameterError,
    ReconcileCancelledError,
    S3UnzipConfigError,
    S3UnzipError,
    SourceNotFoundError,
    UploadError,
)
from .models import (
    Manifest,
    PackageRequest,
    ReconcileResult,
    ReconcileStats,
    ResourceResponse,
)
from .sync import Reconciler

__all__ = [
    "StorageClient",
    "Reconciler",
    "Manifest",
    "PackageRequest",
    "ReconcileResult",
    "ReconcileStats",
    "ResourceResponse",
    "S3UnzipError",
    "S3UnzipConfigError",
    "MissingParameterError",
    "SourceNotFoundError",
    "ManifestDeleteFailedError",
    "ManifestFormatError",
    "UploadError",
    "ReconcileCancelledError",
]
