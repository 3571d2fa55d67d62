"""Shared fixtures for s3unzip tests."""

import io
import zipfile
from pathlib import Path
from typing import Optional

import pytest
from botocore.exceptions import ClientError

from s3unzip.exceptions import ManifestDeleteFailedError
from s3unzip.sync import Reconciler

MANIFEST_BUCKET = "manifests"


def make_zip(files: dict[str, bytes]) -> bytes:
    """Build a zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def read_zip(data: bytes) -> dict[str, bytes]:
    """Read every entry of an in-memory zip archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


def not_found(operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


class FakeStorage:
    """In-memory stand-in for StorageClient."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.headers: dict[tuple[str, str], dict[str, Optional[str]]] = {}
        self.puts: list[tuple[str, str]] = []
        self.delete_batches: list[tuple[str, list[str]]] = []
        self.deleted_single: list[tuple[str, str]] = []
        self.fail_single_delete = False

    def add(self, bucket: str, key: str, data: bytes) -> None:
        self.objects[(bucket, key)] = data

    def keys(self, bucket: str) -> set[str]:
        return {key for b, key in self.objects if b == bucket}

    def download_file(self, bucket: str, key: str, file_path: Path) -> None:
        if (bucket, key) not in self.objects:
            raise not_found()
        Path(file_path).write_bytes(self.objects[(bucket, key)])

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_md5: Optional[str] = None,
        content_encoding: Optional[str] = None,
    ) -> dict:
        self.objects[(bucket, key)] = body
        self.headers[(bucket, key)] = {
            "ContentMD5": content_md5,
            "ContentEncoding": content_encoding,
        }
        self.puts.append((bucket, key))
        return {}

    def delete_object(self, bucket: str, key: str) -> None:
        if self.fail_single_delete:
            raise ManifestDeleteFailedError(f"Unable to delete s3://{bucket}/{key}")
        self.deleted_single.append((bucket, key))
        self.objects.pop((bucket, key), None)

    def delete_objects(self, bucket: str, keys: list[str]) -> dict:
        self.delete_batches.append((bucket, list(keys)))
        for key in keys:
            self.objects.pop((bucket, key), None)
        return {}


@pytest.fixture
def storage():
    """Provide an empty in-memory storage."""
    return FakeStorage()


@pytest.fixture
def reconciler(storage):
    """Provide a reconciler backed by the in-memory storage."""
    return Reconciler(storage, manifest_bucket=MANIFEST_BUCKET)
