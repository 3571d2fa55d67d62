"""S3 storage client used by s3unzip."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import config
from .exceptions import ManifestDeleteFailedError, UploadError

logger = logging.getLogger(__name__)


class StorageClient:
    """Thin wrapper around the boto3 S3 client.

    Only the handful of calls needed to unzip packages are exposed, which
    keeps the sync components easy to test against an in-memory fake.
    """

    def __init__(
        self,
        s3_client: Any | None = None,
        region: str | None = None,
        max_retries: int = 3,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
    ):
        """Initialize the storage client.

        Args:
            s3_client: Optional pre-built boto3 S3 client
            region: Optional AWS region (uses config if not provided)
            max_retries: Maximum retry attempts of the botocore retry handler
            connect_timeout: Connection timeout in seconds
            read_timeout: Read timeout in seconds
        """
        self.region = region or config.region
        if s3_client is None:
            boto_config = BotoConfig(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_retries, "mode": "standard"},
            )
            kwargs: dict[str, Any] = {"config": boto_config}
            if self.region:
                kwargs["region_name"] = self.region
            s3_client = boto3.client("s3", **kwargs)
        self._s3 = s3_client

    def download_file(self, bucket: str, key: str, file_path: Path) -> None:
        """Download an object to a local file.

        Raises:
            botocore.exceptions.ClientError: If the object cannot be read
        """
        logger.debug(f"Downloading s3://{bucket}/{key} to {file_path}")
        self._s3.download_file(bucket, key, str(file_path))

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_md5: str | None = None,
        content_encoding: str | None = None,
    ) -> Any:
        """Upload an in-memory buffer as an object.

        Args:
            bucket: Destination bucket
            key: Destination key
            body: Object contents
            content_md5: Base64 MD5 digest checked by S3 on receipt
            content_encoding: Optional Content-Encoding header value

        Raises:
            UploadError: If the upload fails
        """
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_md5:
            params["ContentMD5"] = content_md5
        if content_encoding:
            params["ContentEncoding"] = content_encoding
        try:
            return self._s3.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise UploadError(f"Upload of s3://{bucket}/{key} failed: {e}") from e

    def delete_object(self, bucket: str, key: str) -> None:
        """Delete a single object.

        Raises:
            ManifestDeleteFailedError: If the delete request fails
        """
        try:
            self._s3.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise ManifestDeleteFailedError(
                f"Unable to delete s3://{bucket}/{key}: {e}"
            ) from e

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> Any:
        """Delete up to 1000 objects with one quiet DeleteObjects request."""
        return self._s3.delete_objects(
            Bucket=bucket,
            Delete={
                "Objects": [{"Key": key} for key in keys],
                "Quiet": True,
            },
        )
