"""Data models for s3unzip."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .exceptions import MissingParameterError, S3UnzipError
from .utils import PHYSICAL_ID_PREFIX, bucket_name_from_arn, normalize_path


@dataclass(frozen=True)
class PackageRequest:
    """Maps one zip package to a destination bucket and key prefix."""

    source_bucket: Optional[str] = None
    """Bucket holding the zip package"""

    source_key: Optional[str] = None
    """Key of the zip package"""

    destination_bucket: Optional[str] = None
    """Bucket receiving the unzipped objects"""

    destination_key: Optional[str] = None
    """Key prefix for the unzipped objects"""

    encoding: Optional[str] = None
    """Content encoding option (NONE, GZIP, BROTLI)"""

    @classmethod
    def from_properties(cls, properties: Optional[Mapping[str, Any]]) -> "PackageRequest":
        """Create a request from CloudFormation resource properties.

        ``SourceBucketName``/``DestinationBucketName`` take precedence over
        ``SourceBucket``/``DestinationBucket``, which may be bucket ARNs.
        """
        properties = properties or {}
        return cls(
            source_bucket=properties.get("SourceBucketName")
            or bucket_name_from_arn(properties.get("SourceBucket")),
            source_key=properties.get("SourceKey"),
            destination_bucket=properties.get("DestinationBucketName")
            or bucket_name_from_arn(properties.get("DestinationBucket")),
            destination_key=properties.get("DestinationKey"),
            encoding=properties.get("Encoding"),
        )

    def to_properties(self) -> dict[str, str]:
        """Convert the request back to resource properties."""
        values = {
            "SourceBucketName": self.source_bucket,
            "SourceKey": self.source_key,
            "DestinationBucketName": self.destination_bucket,
            "DestinationKey": self.destination_key,
            "Encoding": self.encoding,
        }
        return {name: value for name, value in values.items() if value is not None}

    def require(self, *names: str) -> None:
        """Ensure the named fields are set.

        Raises:
            MissingParameterError: For the first field that is ``None``
        """
        for name in names:
            if getattr(self, name) is None:
                raise MissingParameterError(name)

    @property
    def physical_resource_id(self) -> str:
        return f"{PHYSICAL_ID_PREFIX}:{self.destination_bucket}:{self.destination_key}"

    @property
    def url(self) -> str:
        return f"s3://{self.destination_bucket}/{self.destination_key}"

    @property
    def manifest_key(self) -> str:
        """Key of the manifest object inside the manifest bucket."""
        return f"{self.destination_bucket}/{self.source_key}"

    def same_destination(self, other: "PackageRequest") -> bool:
        return (
            self.destination_bucket == other.destination_bucket
            and self.destination_key == other.destination_key
        )


@dataclass
class Entry:
    """A file entry read from a zip package."""

    path: str
    """Entry path (using forward slashes)"""

    opener: Callable[[], bytes]
    """Callable returning the entry's uncompressed bytes"""

    size: int = 0
    """Uncompressed size in bytes"""

    def __post_init__(self) -> None:
        self.path = normalize_path(self.path)

    def read(self) -> bytes:
        return self.opener()

    @classmethod
    def from_bytes(cls, path: str, data: bytes) -> "Entry":
        """Create an in-memory entry (used for testing and local packages)."""
        return cls(path=path, opener=lambda: data, size=len(data))


@dataclass(frozen=True)
class FingerprintedEntry:
    """An entry path together with its content fingerprint."""

    path: str
    fingerprint: str


class Manifest(Mapping[str, str]):
    """Immutable, ordered mapping of entry path to fingerprint.

    A manifest records which destination objects were written for one
    (destination bucket, source key) pair.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: dict[str, str] = dict(entries or {})

    def __getitem__(self, path: str) -> str:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Manifest({self._entries!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._entries) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._entries.items()))

    @classmethod
    def from_entries(cls, entries: "list[FingerprintedEntry]") -> "Manifest":
        return cls({entry.path: entry.fingerprint for entry in entries})


@dataclass
class ResourceResponse:
    """Response of a reconciliation, reported back to CloudFormation."""

    physical_resource_id: Optional[str] = None
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_request(cls, request: PackageRequest) -> "ResourceResponse":
        return cls(
            physical_resource_id=request.physical_resource_id,
            attributes={"Url": request.url},
        )

    @property
    def is_empty(self) -> bool:
        return self.physical_resource_id is None and not self.attributes


@dataclass
class ReconcileStats:
    """Counters collected during one reconciliation."""

    uploaded: int = 0
    skipped: int = 0
    deleted: int = 0
    bytes_uploaded: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "uploaded": self.uploaded,
            "skipped": self.skipped,
            "deleted": self.deleted,
            "bytes_uploaded": self.bytes_uploaded,
        }


@dataclass
class ReconcileResult:
    """Outcome of a Create, Update or Delete reconciliation.

    Exactly one of ``response`` and ``error`` is set.
    """

    response: Optional[ResourceResponse] = None
    error: Optional[S3UnzipError] = None
    stats: ReconcileStats = field(default_factory=ReconcileStats)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ResourceResponse:
        """Return the response or raise the error."""
        if self.error is not None:
            raise self.error
        return self.response or ResourceResponse()

    @classmethod
    def success(
        cls, response: ResourceResponse, stats: Optional[ReconcileStats] = None
    ) -> "ReconcileResult":
        return cls(response=response, stats=stats or ReconcileStats())

    @classmethod
    def failure(
        cls, error: S3UnzipError, stats: Optional[ReconcileStats] = None
    ) -> "ReconcileResult":
        return cls(error=error, stats=stats or ReconcileStats())
