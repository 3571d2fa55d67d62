"""Configuration for s3unzip read from environment variables."""

import os
from typing import Optional

from .exceptions import S3UnzipConfigError

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TIMEOUT_MARGIN = 10.0
DEFAULT_RESPONSE_TIMEOUT = 30.0


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise S3UnzipConfigError(f"{name} must be a number, got {value!r}") from e


class Config:
    """Environment-backed configuration.

    Values are read on every access so that Lambda environment changes and
    test patches of ``os.environ`` are always honored.
    """

    @property
    def manifest_bucket(self) -> Optional[str]:
        """Bucket holding the package manifests."""
        return os.environ.get("S3UNZIP_MANIFEST_BUCKET") or os.environ.get(
            "MANIFEST_BUCKET"
        )

    @property
    def region(self) -> Optional[str]:
        """AWS region for the S3 client."""
        return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")

    @property
    def log_level(self) -> str:
        """Log level name for the Lambda entry point."""
        return os.environ.get("S3UNZIP_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()

    @property
    def timeout_margin(self) -> float:
        """Seconds before the Lambda deadline at which work is cancelled."""
        return _float_env("S3UNZIP_TIMEOUT_MARGIN", DEFAULT_TIMEOUT_MARGIN)

    @property
    def response_timeout(self) -> float:
        """Timeout in seconds for sending the CloudFormation response."""
        return _float_env("S3UNZIP_RESPONSE_TIMEOUT", DEFAULT_RESPONSE_TIMEOUT)

    def require_manifest_bucket(self) -> str:
        """Return the manifest bucket or raise if it is not configured."""
        bucket = self.manifest_bucket
        if not bucket:
            raise S3UnzipConfigError(
                "Manifest bucket not configured. "
                "Please set S3UNZIP_MANIFEST_BUCKET environment variable."
            )
        return bucket


config = Config()
