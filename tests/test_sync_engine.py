"""Tests for the reconciliation engine."""

import threading
import zipfile
from unittest.mock import patch

import pytest
from boto3.exceptions import RetriesExceededError
from conftest import MANIFEST_BUCKET, FakeStorage, make_zip, read_zip

from s3unzip.exceptions import (
    MissingParameterError,
    ReconcileCancelledError,
    S3UnzipConfigError,
    SourceNotFoundError,
    UploadError,
)
from s3unzip.models import Entry, PackageRequest
from s3unzip.sync import Reconciler
from s3unzip.sync.comparator import EntryComparator
from s3unzip.sync.encoding import ContentEncoding
from s3unzip.sync.fingerprint import compute_entry_hash
from s3unzip.sync.manifest import pack_manifest, parse_manifest

FILES = {
    "index.html": b"<html>home</html>",
    "css/site.css": b"body { color: red; }",
    "js/app.js": b"console.log('hi');",
}


def _request(**overrides) -> PackageRequest:
    values = {
        "source_bucket": "source",
        "source_key": "packages/site.zip",
        "destination_bucket": "www",
        "destination_key": "site",
        "encoding": None,
    }
    values.update(overrides)
    return PackageRequest(**values)


def _stored_manifest(storage: FakeStorage, request: PackageRequest) -> dict[str, str]:
    data = storage.objects[(MANIFEST_BUCKET, request.manifest_key)]
    return dict(parse_manifest(read_zip(data)["manifest.txt"].decode("utf-8")))


def _expected_manifest(files: dict[str, bytes], encoding=ContentEncoding.NONE):
    return {
        path: compute_entry_hash(path, data, encoding) for path, data in files.items()
    }


class TestReconcilerInit:
    """Test Reconciler construction."""

    def test_uses_configured_manifest_bucket(self, storage):
        """Test that the manifest bucket falls back to the configuration."""
        with patch.dict("os.environ", {"S3UNZIP_MANIFEST_BUCKET": "from-env"}):
            reconciler = Reconciler(storage)
        assert reconciler.manifest_bucket == "from-env"

    def test_missing_manifest_bucket_raises(self, storage):
        """Test that a missing manifest bucket is a configuration error."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(S3UnzipConfigError):
                Reconciler(storage)


class TestCreate:
    """Tests for Reconciler.create."""

    def test_create_uploads_every_entry(self, storage, reconciler):
        """Create writes one object per entry and one manifest."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))

        result = reconciler.create(request)

        assert result.ok
        assert storage.keys("www") == {f"site/{path}" for path in FILES}
        for path, data in FILES.items():
            assert storage.objects[("www", f"site/{path}")] == data
        assert storage.keys(MANIFEST_BUCKET) == {"www/packages/site.zip"}
        assert _stored_manifest(storage, request) == _expected_manifest(FILES)
        assert result.stats.uploaded == 3
        assert result.stats.skipped == 0

    def test_create_response(self, storage, reconciler):
        """Create returns the physical id and destination URL."""
        storage.add("source", "packages/site.zip", make_zip(FILES))

        response = reconciler.create(_request()).unwrap()

        assert response.physical_resource_id == "s3unzip:www:site"
        assert response.attributes == {"Url": "s3://www/site"}

    def test_create_with_gzip_encoding(self, storage, reconciler):
        """Entries are compressed and tagged with a content encoding."""
        request = _request(encoding="gzip")
        storage.add("source", "packages/site.zip", make_zip(FILES))

        result = reconciler.create(request)

        assert result.ok
        headers = storage.headers[("www", "site/index.html")]
        assert headers["ContentEncoding"] == "gzip"
        assert headers["ContentMD5"]
        assert storage.objects[("www", "site/index.html")] != FILES["index.html"]
        assert _stored_manifest(storage, request) == _expected_manifest(
            FILES, ContentEncoding.GZIP
        )

    def test_create_missing_source(self, reconciler):
        """A package that cannot be downloaded is a SourceNotFoundError."""
        result = reconciler.create(_request())

        assert not result.ok
        assert isinstance(result.error, SourceNotFoundError)
        with pytest.raises(SourceNotFoundError):
            result.unwrap()

    @pytest.mark.parametrize(
        "field",
        ["source_bucket", "source_key", "destination_bucket", "destination_key"],
    )
    def test_create_missing_parameter(self, storage, reconciler, field):
        """Every destination and source field is required before any I/O."""
        result = reconciler.create(_request(**{field: None}))

        assert isinstance(result.error, MissingParameterError)
        assert result.error.parameter == field
        assert storage.puts == []

    def test_create_upload_failure(self, storage, reconciler):
        """Upload failures abort the reconciliation without a manifest."""
        storage.add("source", "packages/site.zip", make_zip(FILES))

        with patch.object(storage, "put_object", side_effect=UploadError("denied")):
            result = reconciler.create(_request())

        assert isinstance(result.error, UploadError)
        assert (MANIFEST_BUCKET, "www/packages/site.zip") not in storage.objects

    def test_create_cancelled(self, storage, reconciler):
        """A set cancel event stops processing before the first entry."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        cancel_event = threading.Event()
        cancel_event.set()

        result = reconciler.create(_request(), cancel_event)

        assert isinstance(result.error, ReconcileCancelledError)
        assert storage.puts == []

    def test_create_corrupt_package_propagates(self, storage, reconciler):
        """A download that is not a zip archive is not a soft failure."""
        storage.add("source", "packages/site.zip", b"not a zip")

        with pytest.raises(zipfile.BadZipFile):
            reconciler.create(_request())


class TestUpdate:
    """Tests for Reconciler.update."""

    def test_unchanged_update_skips_everything(self, storage, reconciler):
        """Updating with the same package uploads and deletes nothing."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(request)
        before = _stored_manifest(storage, request)
        storage.puts.clear()

        result = reconciler.update(request, request)

        assert result.ok
        assert result.stats.uploaded == 0
        assert result.stats.skipped == 3
        assert storage.delete_batches == []
        assert storage.puts == [(MANIFEST_BUCKET, "www/packages/site.zip")]
        assert _stored_manifest(storage, request) == before

    def test_update_uploads_new_and_deletes_stale(self, storage, reconciler):
        """Only new or changed entries are uploaded, only removed ones deleted."""
        request = _request()
        old_files = {"a.txt": b"one", "b.txt": b"two"}
        new_files = {"a.txt": b"one", "c.txt": b"three"}
        storage.add("source", "packages/site.zip", make_zip(old_files))
        reconciler.create(request)
        storage.puts.clear()
        storage.add("source", "packages/site.zip", make_zip(new_files))

        result = reconciler.update(request, request)

        assert result.ok
        assert ("www", "site/c.txt") in storage.puts
        assert ("www", "site/a.txt") not in storage.puts
        assert storage.delete_batches == [("www", ["site/b.txt"])]
        assert storage.keys("www") == {"site/a.txt", "site/c.txt"}
        assert _stored_manifest(storage, request) == _expected_manifest(new_files)
        assert result.stats.uploaded == 1
        assert result.stats.skipped == 1
        assert result.stats.deleted == 1

    def test_update_uploads_changed_content(self, storage, reconciler):
        """An entry with the same path but new content is re-uploaded."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip({"a.txt": b"one"}))
        reconciler.create(request)
        storage.puts.clear()
        storage.add("source", "packages/site.zip", make_zip({"a.txt": b"uno"}))

        result = reconciler.update(request, request)

        assert result.stats.uploaded == 1
        assert storage.objects[("www", "site/a.txt")] == b"uno"
        assert storage.delete_batches == []

    def test_update_encoding_change_reuploads(self, storage, reconciler):
        """Changing the encoding changes every fingerprint."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(_request())

        result = reconciler.update(_request(), _request(encoding="BROTLI"))

        assert result.stats.uploaded == 3
        assert storage.headers[("www", "site/index.html")]["ContentEncoding"] == "br"

    def test_update_with_seeded_manifest(self, storage, reconciler):
        """Diff against a manifest {a:h1, b:h2} with new entries {a, c}."""
        request = _request()
        new_files = {"a": b"alpha", "c": b"gamma"}
        h1 = compute_entry_hash("a", b"alpha", ContentEncoding.NONE)
        previous = parse_manifest(f"a\t{h1}\nb\tH2-NONE")
        storage.add(MANIFEST_BUCKET, request.manifest_key, pack_manifest(previous))
        storage.add("source", "packages/site.zip", make_zip(new_files))

        result = reconciler.update(request, request)

        assert result.ok
        assert storage.puts[0] == ("www", "site/c")
        assert ("www", "site/a") not in storage.puts
        assert storage.delete_batches == [("www", ["site/b"])]
        assert _stored_manifest(storage, request) == _expected_manifest(new_files)

    def test_update_without_manifest_falls_back_to_create(self, storage, reconciler):
        """A missing previous manifest uploads the whole package."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))

        result = reconciler.update(request, request)

        assert result.ok
        assert result.stats.uploaded == 3
        assert storage.delete_batches == []
        assert _stored_manifest(storage, request) == _expected_manifest(FILES)

    def test_update_manifest_transfer_error_falls_back_to_create(
        self, storage, reconciler
    ):
        """A manifest download that exhausts its retries triggers a full upload."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(request)
        storage.puts.clear()
        download_file = storage.download_file

        def _flaky_download(bucket, key, file_path):
            if bucket == MANIFEST_BUCKET:
                raise RetriesExceededError(ConnectionError("reset"))
            download_file(bucket, key, file_path)

        with patch.object(storage, "download_file", side_effect=_flaky_download):
            result = reconciler.update(request, request)

        assert result.ok
        assert result.stats.uploaded == 3

    def test_update_destination_change_replaces(self, storage, reconciler):
        """A new destination deletes the old objects and creates new ones."""
        old_request = _request()
        new_request = _request(destination_bucket="www2", destination_key="v2")
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(old_request)

        result = reconciler.update(old_request, new_request)

        assert result.ok
        assert storage.keys("www") == set()
        assert storage.keys("www2") == {f"v2/{path}" for path in FILES}
        assert storage.keys(MANIFEST_BUCKET) == {"www2/packages/site.zip"}
        assert result.unwrap().physical_resource_id == "s3unzip:www2:v2"

    def test_update_destination_key_change_replaces(self, storage, reconciler):
        """Changing only the destination key is also a replacement."""
        old_request = _request()
        new_request = _request(destination_key="v2")
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(old_request)

        result = reconciler.update(old_request, new_request)

        assert result.ok
        assert storage.keys("www") == {f"v2/{path}" for path in FILES}

    def test_update_requires_new_parameters(self, reconciler):
        """The new request is validated like a create."""
        result = reconciler.update(_request(), _request(destination_key=None))

        assert isinstance(result.error, MissingParameterError)

    def test_update_missing_new_package(self, storage, reconciler):
        """A new package that cannot be downloaded is a hard failure."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(request)
        del storage.objects[("source", "packages/site.zip")]

        result = reconciler.update(request, request)

        assert isinstance(result.error, SourceNotFoundError)
        assert _stored_manifest(storage, request) == _expected_manifest(FILES)

    def test_cancelled_update_keeps_previous_manifest(self, storage, reconciler):
        """Objects stay tracked when an update stops before writing."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip({"a": b"1", "b": b"2"}))
        reconciler.create(request)
        storage.add("source", "packages/site.zip", make_zip({"a": b"1", "c": b"3"}))
        cancel_event = threading.Event()
        cancel_event.set()

        result = reconciler.update(request, request, cancel_event)

        assert isinstance(result.error, ReconcileCancelledError)
        assert storage.keys("www") == {"site/a", "site/b"}
        assert _stored_manifest(storage, request) == _expected_manifest(
            {"a": b"1", "b": b"2"}
        )

    def test_failed_upload_keeps_previous_manifest(self, storage, reconciler):
        request = _request()
        storage.add("source", "packages/site.zip", make_zip({"a": b"1"}))
        reconciler.create(request)
        storage.add("source", "packages/site.zip", make_zip({"a": b"2"}))

        with patch.object(storage, "put_object", side_effect=UploadError("denied")):
            result = reconciler.update(request, request)

        assert isinstance(result.error, UploadError)
        assert _stored_manifest(storage, request) == _expected_manifest({"a": b"1"})

    def test_update_source_key_change_moves_manifest(self, storage, reconciler):
        """The manifest of the previous source key is removed after the write."""
        old_request = _request()
        new_request = _request(source_key="packages/site-v2.zip")
        storage.add("source", "packages/site.zip", make_zip(FILES))
        storage.add("source", "packages/site-v2.zip", make_zip(FILES))
        reconciler.create(old_request)

        result = reconciler.update(old_request, new_request)

        assert result.ok
        assert result.stats.skipped == 3
        assert storage.keys(MANIFEST_BUCKET) == {"www/packages/site-v2.zip"}
        assert storage.deleted_single == [(MANIFEST_BUCKET, "www/packages/site.zip")]

    def test_update_same_manifest_key_is_overwritten(self, storage, reconciler):
        """An in-place update replaces the manifest without a separate delete."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(request)

        reconciler.update(request, request)

        assert storage.deleted_single == []
        assert storage.keys(MANIFEST_BUCKET) == {"www/packages/site.zip"}


class TestDelete:
    """Tests for Reconciler.delete."""

    def test_delete_removes_manifest_entries(self, storage, reconciler):
        """Delete removes exactly the objects listed in the manifest."""
        request = _request()
        storage.add("source", "packages/site.zip", make_zip(FILES))
        storage.add("www", "other/keep.txt", b"unrelated")
        reconciler.create(request)

        result = reconciler.delete(request)

        assert result.ok
        assert result.response.is_empty
        assert storage.keys("www") == {"other/keep.txt"}
        assert storage.keys(MANIFEST_BUCKET) == set()
        assert result.stats.deleted == 3

    def test_delete_does_not_need_source_bucket(self, storage, reconciler):
        """Deleting only needs the manifest location."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(_request())

        result = reconciler.delete(_request(source_bucket=None))

        assert result.ok
        assert storage.keys("www") == set()

    def test_delete_twice_is_idempotent(self, storage, reconciler):
        """Deleting a pair without a manifest succeeds without mutations."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(_request())
        reconciler.delete(_request())
        storage.delete_batches.clear()

        result = reconciler.delete(_request())

        assert result.ok
        assert result.response.is_empty
        assert storage.delete_batches == []

    def test_delete_missing_parameter(self, reconciler):
        """A missing destination key fails before any I/O."""
        result = reconciler.delete(_request(destination_key=None))

        assert isinstance(result.error, MissingParameterError)

    def test_delete_manifest_delete_failure_is_not_fatal(self, storage, reconciler):
        """A manifest that cannot be removed does not fail the delete."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(_request())
        storage.fail_single_delete = True

        result = reconciler.delete(_request())

        assert result.ok
        assert storage.keys("www") == set()

    def test_cancelled_delete_keeps_manifest(self, storage, reconciler):
        """The manifest is removed only after its objects are gone."""
        storage.add("source", "packages/site.zip", make_zip(FILES))
        reconciler.create(_request())
        cancel_event = threading.Event()
        cancel_event.set()

        result = reconciler.delete(_request(), cancel_event)

        assert isinstance(result.error, ReconcileCancelledError)
        assert storage.keys("www") == {f"site/{path}" for path in FILES}
        assert storage.keys(MANIFEST_BUCKET) == {"www/packages/site.zip"}


class TestApplyEntries:
    """Tests for folding local entries into a manifest."""

    def test_apply_entries_builds_manifest(self, storage, reconciler):
        """Entries without a previous manifest are all uploaded."""
        request = _request()
        entries = [Entry.from_bytes(path, data) for path, data in FILES.items()]

        manifest = reconciler.apply_entries(entries, request, EntryComparator())

        assert dict(manifest) == _expected_manifest(FILES)
        assert list(manifest) == list(FILES)
        assert len(storage.puts) == 3

    def test_apply_entries_normalizes_backslashes(self, storage, reconciler):
        """Windows-style entry paths become forward-slash keys."""
        entries = [Entry.from_bytes("docs\\readme.txt", b"hello")]

        manifest = reconciler.apply_entries(entries, _request(), EntryComparator())

        assert list(manifest) == ["docs/readme.txt"]
        assert ("www", "site/docs/readme.txt") in storage.puts
