"""
Unit tests for replication fan-out.

A destination is broken by putting a regular file where its directory
should be, which makes every write to it fail with an OSError.
"""

import pytest

from mediavault.core.storage.models import ReplicaStatus
from mediavault.core.storage.registry import ReplicaRegistry
from mediavault.core.storage.replication import ReplicationManager


@pytest.fixture
def registry():
    return ReplicaRegistry()


def _manager(tmp_path, registry, names=("primary", "backup", "distributed"), **kwargs):
    locations = [(name, tmp_path / "storage" / name) for name in names]
    kwargs.setdefault("backoff_seconds", 0)
    kwargs.setdefault("max_attempts", 2)
    return ReplicationManager(locations, registry, **kwargs)


class TestDistribute:

    @pytest.mark.asyncio
    async def test_copies_to_every_location(self, tmp_path, registry):
        source = tmp_path / "video_1_a.mp4"
        source.write_bytes(b"frames")
        manager = _manager(tmp_path, registry)

        result = await manager.distribute(source)

        assert result.confirmed == ["primary", "backup", "distributed"]
        assert not result.is_partial
        for name in manager.location_names:
            assert manager.destination(name, "video_1_a.mp4").read_bytes() == b"frames"
        assert all(
            loc.status == ReplicaStatus.CONFIRMED
            for loc in registry.locations("video_1_a.mp4")
        )

    @pytest.mark.asyncio
    async def test_partial_failure_does_not_abort_others(self, tmp_path, registry):
        """One broken destination leaves the other copies in place."""
        (tmp_path / "storage").mkdir()
        (tmp_path / "storage" / "backup").write_text("not a directory")
        source = tmp_path / "video_1_a.mp4"
        source.write_bytes(b"frames")
        manager = _manager(tmp_path, registry)

        result = await manager.distribute(source)

        assert result.is_partial
        assert result.failed == ["backup"]
        assert result.confirmed == ["primary", "distributed"]
        assert (tmp_path / "storage" / "distributed" / "video_1_a.mp4").read_bytes() == b"frames"

        failed = next(loc for loc in registry.locations("video_1_a.mp4") if loc.name == "backup")
        assert failed.status == ReplicaStatus.FAILED
        assert failed.attempts == 2
        assert failed.last_error

    @pytest.mark.asyncio
    async def test_source_already_at_destination(self, tmp_path, registry):
        """The canonical local copy counts as its own replica."""
        primary = tmp_path / "storage" / "primary"
        primary.mkdir(parents=True)
        source = primary / "video_1_a.mp4"
        source.write_bytes(b"frames")
        manager = _manager(tmp_path, registry)

        result = await manager.distribute(source)

        assert result.confirmed == ["primary", "backup", "distributed"]
        assert source.read_bytes() == b"frames"

    @pytest.mark.asyncio
    async def test_unreadable_source_fails_everywhere(self, tmp_path, registry):
        manager = _manager(tmp_path, registry)
        result = await manager.distribute(tmp_path / "missing.mp4")
        assert result.failed == manager.location_names
        assert result.confirmed == []

    @pytest.mark.asyncio
    async def test_replicate_bytes(self, tmp_path, registry):
        manager = _manager(tmp_path, registry, names=("backup",))
        result = await manager.replicate_bytes("video_1_a.mp4", b"in memory")
        assert result.confirmed == ["backup"]
        assert manager.destination("backup", "video_1_a.mp4").read_bytes() == b"in memory"


class TestThreshold:

    def test_threshold_is_inclusive(self, tmp_path, registry):
        manager = _manager(tmp_path, registry, min_size_bytes=100)
        assert not manager.should_replicate(99)
        assert manager.should_replicate(100)
        assert manager.should_replicate(101)


class TestQueue:

    @pytest.mark.asyncio
    async def test_enqueue_marks_pending_then_drain_confirms(self, tmp_path, registry):
        source = tmp_path / "video_1_a.mp4"
        source.write_bytes(b"frames")
        manager = _manager(tmp_path, registry)

        await manager.enqueue(source=source)

        assert manager.pending_tasks == 1
        assert {loc.status for loc in registry.locations("video_1_a.mp4")} == {ReplicaStatus.PENDING}

        await manager.drain()

        assert manager.pending_tasks == 0
        assert {loc.status for loc in registry.locations("video_1_a.mp4")} == {ReplicaStatus.CONFIRMED}

    @pytest.mark.asyncio
    async def test_enqueue_bytes_requires_id(self, tmp_path, registry):
        manager = _manager(tmp_path, registry)
        with pytest.raises(ValueError):
            await manager.enqueue(data=b"x")
        with pytest.raises(ValueError):
            await manager.enqueue()

    @pytest.mark.asyncio
    async def test_enqueue_writes_registry_once(self, tmp_path, monkeypatch):
        writes = []
        monkeypatch.setattr(
            "mediavault.core.storage.registry.atomic_write_bytes",
            lambda path, data: writes.append(path),
        )
        registry = ReplicaRegistry(tmp_path / "replicas.json")
        manager = _manager(tmp_path, registry)

        await manager.enqueue(object_id="video_1_a.mp4", data=b"x")

        assert len(writes) == 1
        assert len(registry.locations("video_1_a.mp4")) == 3
