"""
Unit tests for the local filesystem backend.

The local store must behave exactly like the remote one, so these
tests double as the contract for the StorageBackend protocol.
"""

import json
import os

import pytest

from mediavault.core.storage.errors import ObjectNotFound, WriteError
from mediavault.core.storage.models import BackendKind
from mediavault.infrastructure.storage.client import (
    BaseStorageBackend,
    LocalFilesystemStore,
    create_storage_backend,
)


@pytest.fixture
def store(tmp_path):
    return LocalFilesystemStore(tmp_path / "primary")


# ---------------------------------------------------------------------------
# Round Trip Tests
# ---------------------------------------------------------------------------

class TestPutGet:
    """Bytes read back are the bytes that were stored."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [b"", b"\x00", os.urandom(3 * 1024 * 1024)],
        ids=["empty", "one-byte", "multi-megabyte"],
    )
    async def test_round_trip(self, store, data):
        stored = await store.put(data, "clip.mp4")
        assert stored.size_bytes == len(data)
        assert await store.get(stored.id) == data

    @pytest.mark.asyncio
    async def test_writes_metadata_record(self, store):
        stored = await store.put(b"hello", "clip.mp4")
        record = json.loads((store.metadata_root / f"{stored.id}.json").read_text())
        assert record["originalName"] == "clip.mp4"
        assert record["size"] == 5
        assert record["type"] == "video"

    @pytest.mark.asyncio
    async def test_ids_are_distinct(self, store):
        """Same name, same bytes, still two objects."""
        first = await store.put(b"same", "clip.mp4")
        second = await store.put(b"same", "clip.mp4")
        assert first.id != second.id
        assert len(await store.list()) == 2

    @pytest.mark.asyncio
    async def test_metadata_failure_keeps_data(self, store, monkeypatch):
        """A failed side record does not roll back the stored bytes."""
        async def broken_metadata(stored):
            raise OSError("metadata disk full")

        monkeypatch.setattr(store, "_write_metadata", broken_metadata)

        stored = await store.put(b"payload", "clip.mp4")

        assert await store.get(stored.id) == b"payload"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, store):
        with pytest.raises(ObjectNotFound):
            await store.get("video_1_missing.mp4")

    @pytest.mark.asyncio
    async def test_get_rejects_path_escape(self, store, tmp_path):
        (tmp_path / "secret.txt").write_bytes(b"secret")
        with pytest.raises(ObjectNotFound):
            await store.get("../secret.txt")

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, store):
        await store.put(b"x" * 1000, "clip.mp4")
        assert not [p for p in store.root.rglob("*") if p.name.endswith(".partial")]


class TestPutFile:
    """Ingesting an existing file."""

    @pytest.mark.asyncio
    async def test_put_file(self, store, tmp_path):
        source = tmp_path / "clip.mp4"
        source.write_bytes(b"from disk")
        stored = await store.put_file(source, "clip.mp4")
        assert await store.get(stored.id) == b"from disk"

    @pytest.mark.asyncio
    async def test_missing_source_raises_write_error(self, store, tmp_path):
        with pytest.raises(WriteError):
            await store.put_file(tmp_path / "nope.mp4", "nope.mp4")
        assert await store.list() == []


# ---------------------------------------------------------------------------
# Delete / List / Info Tests
# ---------------------------------------------------------------------------

class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_object_and_metadata(self, store):
        stored = await store.put(b"bye", "clip.mp4")

        assert await store.delete(stored.id) is True

        assert not await store.exists(stored.id)
        assert not (store.metadata_root / f"{stored.id}.json").exists()
        with pytest.raises(ObjectNotFound):
            await store.get(stored.id)

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store):
        """Deleting something that is not there is not an error."""
        assert await store.delete("video_1_missing.mp4") is False


class TestListAndInfo:

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        info = await store.info()
        assert info.object_count == 0
        assert info.total_size_bytes == 0
        assert info.backend_kind == BackendKind.LOCAL
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_info_counts_objects_not_metadata(self, store):
        await store.put(b"a" * 10, "a.mp4")
        await store.put(b"b" * 20, "b.mp4")

        info = await store.info()

        assert info.object_count == 2
        assert info.total_size_bytes == 30

    @pytest.mark.asyncio
    async def test_list_entries_have_urls(self, store):
        stored = await store.put(b"a", "a.mp4")
        listing = await store.list()
        assert [(item.id, item.url) for item in listing] == [(stored.id, stored.url)]

    @pytest.mark.asyncio
    async def test_probe_fails_when_root_removed(self, store):
        await store.probe()
        store.root.rmdir()
        with pytest.raises(Exception):
            await store.probe()


class TestFactory:

    def test_mock_mode_returns_local_store(self, tmp_path):
        backend = create_storage_backend(local_root=tmp_path, mock_mode=True)
        assert backend.kind == BackendKind.LOCAL

    def test_mock_mode_requires_root(self):
        with pytest.raises(ValueError):
            create_storage_backend(mock_mode=True)

    def test_remote_requires_config(self):
        with pytest.raises(ValueError):
            create_storage_backend()

    def test_base_backend_is_abstract(self):
        with pytest.raises(TypeError):
            BaseStorageBackend()
