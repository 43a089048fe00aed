"""
Unit tests for the R2 backend.

boto3 is patched out; these tests check how the store drives the S3
API and how S3 errors map onto the storage error taxonomy.
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from mediavault.core.storage.errors import BackendInitError, ObjectNotFound, StorageError
from mediavault.core.storage.models import BackendKind
from mediavault.infrastructure.storage.client import RemoteObjectStore, StorageConfig


def _config(**overrides) -> StorageConfig:
    values = dict(
        access_key_id="key",
        secret_access_key="secret",
        bucket_name="videos",
        endpoint_url="https://account.r2.cloudflarestorage.com",
        key_prefix="",
    )
    values.update(overrides)
    return StorageConfig(**values)


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3():
    with patch("mediavault.infrastructure.storage.client.boto3.client") as client_factory:
        client = MagicMock()
        client_factory.return_value = client
        yield client


@pytest.fixture
def store(s3):
    return RemoteObjectStore(_config())


class TestConstruction:
    """Broken configuration is detected up front."""

    def test_missing_credentials_raise(self):
        with pytest.raises(BackendInitError, match="access_key_id"):
            RemoteObjectStore(_config(access_key_id=""))

    def test_unreachable_bucket_raises(self, s3):
        s3.head_bucket.side_effect = _client_error("403", "HeadBucket")
        with pytest.raises(BackendInitError):
            RemoteObjectStore(_config())

    def test_client_construction_failure_raises(self):
        with patch(
            "mediavault.infrastructure.storage.client.boto3.client",
            side_effect=ValueError("bad endpoint"),
        ):
            with pytest.raises(BackendInitError, match="bad endpoint"):
                RemoteObjectStore(_config())

    def test_verifies_bucket(self, s3, store):
        s3.head_bucket.assert_called_with(Bucket="videos")
        assert store.kind == BackendKind.REMOTE


class TestObjects:
    """Object operations against the mocked S3 client."""

    @pytest.mark.asyncio
    async def test_put_uploads_bytes_and_metadata(self, s3, store):
        stored = await store.put(b"video", "clip.mp4")

        keys = [call.kwargs["Key"] for call in s3.put_object.call_args_list]
        assert keys == [stored.id, f"metadata/{stored.id}.json"]
        assert s3.put_object.call_args_list[0].kwargs["Body"] == b"video"

    @pytest.mark.asyncio
    async def test_key_prefix_applied(self, s3):
        store = RemoteObjectStore(_config(key_prefix="production"))
        stored = await store.put(b"video", "clip.mp4")
        assert s3.put_object.call_args_list[0].kwargs["Key"] == f"production/{stored.id}"
        assert store.location_of(stored.id) == f"s3://videos/production/{stored.id}"

    @pytest.mark.asyncio
    async def test_get_returns_body(self, s3, store):
        s3.get_object.return_value = {"Body": io.BytesIO(b"video")}
        assert await store.get("video_1_a.mp4") == b"video"

    @pytest.mark.asyncio
    async def test_missing_key_maps_to_not_found(self, s3, store):
        s3.get_object.side_effect = _client_error("NoSuchKey")
        with pytest.raises(ObjectNotFound):
            await store.get("video_1_a.mp4")

    @pytest.mark.asyncio
    async def test_other_errors_are_storage_errors(self, s3, store):
        s3.get_object.side_effect = _client_error("InternalError")
        with pytest.raises(StorageError) as exc_info:
            await store.get("video_1_a.mp4")
        assert not isinstance(exc_info.value, ObjectNotFound)

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, s3, store):
        s3.head_object.side_effect = _client_error("404", "HeadObject")
        assert await store.delete("video_1_a.mp4") is False
        s3.delete_objects.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_removes_object_and_metadata(self, s3, store):
        assert await store.delete("video_1_a.mp4") is True
        deleted = s3.delete_objects.call_args.kwargs["Delete"]["Objects"]
        assert deleted == [{"Key": "video_1_a.mp4"}, {"Key": "metadata/video_1_a.mp4.json"}]


class TestListing:

    @pytest.mark.asyncio
    async def test_list_skips_metadata_keys(self, s3, store):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [
                {"Key": "video_1_a.mp4", "Size": 10},
                {"Key": "metadata/video_1_a.mp4.json", "Size": 99},
            ]},
            {"Contents": [{"Key": "video_2_b.mp4", "Size": 5}]},
        ]
        s3.get_paginator.return_value = paginator

        listing = await store.list()
        info = await store.info()

        assert [item.id for item in listing] == ["video_1_a.mp4", "video_2_b.mp4"]
        assert info.object_count == 2
        assert info.total_size_bytes == 15
        assert info.bucket == "videos"
