"""Exceptions raised by s3unzip."""

from typing import Optional


class S3UnzipError(Exception):
    """Base exception for all s3unzip errors."""


class S3UnzipConfigError(S3UnzipError):
    """Raised when required configuration is missing."""


class MissingParameterError(S3UnzipError):
    """Raised when a required resource property is absent."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__(f"Missing required parameter: {parameter}")


class SourceNotFoundError(S3UnzipError):
    """Raised when the source package could not be downloaded."""

    def __init__(self, bucket: Optional[str], key: Optional[str]):
        self.bucket = bucket
        self.key = key
        super().__init__(f"Unable to download source package s3://{bucket}/{key}")


class ManifestDeleteFailedError(S3UnzipError):
    """Raised when a manifest object could not be removed after reading it."""


class ManifestFormatError(S3UnzipError):
    """Raised when a manifest file contains a malformed record."""


class UploadError(S3UnzipError):
    """Raised when an entry could not be written to the destination bucket."""


class ReconcileCancelledError(S3UnzipError):
    """Raised when a reconciliation observes a cancellation request."""
