"""
Unit tests for restoring lost canonical copies.

The canonical backend is a LocalFilesystemStore under tmp_path; the
candidate locations are plain directories beside it.
"""

import pytest

from mediavault.core.storage.errors import ObjectNotFound
from mediavault.core.storage.registry import ReplicaRegistry
from mediavault.core.storage.restore import RestoreResolver
from mediavault.infrastructure.storage.client import LocalFilesystemStore


@pytest.fixture
def backend(tmp_path):
    return LocalFilesystemStore(tmp_path / "canonical")


@pytest.fixture
def locations(tmp_path):
    names = ["primary", "backup", "cloud_backup"]
    dirs = [(name, tmp_path / name) for name in names]
    for _, directory in dirs:
        directory.mkdir()
    return dirs


def _resolver(locations, backend, registry=None):
    return RestoreResolver(locations, backend_provider=lambda: backend, registry=registry)


class TestRestore:

    @pytest.mark.asyncio
    async def test_restores_from_backup(self, tmp_path, locations, backend):
        """Present only in backup -> restored, then readable from the backend."""
        (tmp_path / "backup" / "video_1_a.mp4").write_bytes(b"saved")
        resolver = _resolver(locations, backend)

        result = await resolver.restore("video_1_a.mp4")

        assert result.location == "backup"
        assert await backend.get("video_1_a.mp4") == b"saved"

    @pytest.mark.asyncio
    async def test_first_hit_wins(self, tmp_path, locations, backend):
        """Search order decides, even if a later copy differs."""
        (tmp_path / "primary" / "video_1_a.mp4").write_bytes(b"primary copy")
        (tmp_path / "cloud_backup" / "video_1_a.mp4").write_bytes(b"newer cloud copy")
        resolver = _resolver(locations, backend)

        result = await resolver.restore("video_1_a.mp4")

        assert result.location == "primary"
        assert await backend.get("video_1_a.mp4") == b"primary copy"

    @pytest.mark.asyncio
    async def test_not_anywhere_raises(self, locations, backend):
        resolver = _resolver(locations, backend)
        with pytest.raises(ObjectNotFound):
            await resolver.restore("video_1_a.mp4")

    @pytest.mark.asyncio
    async def test_already_canonical(self, locations, backend):
        await backend.store("video_1_a.mp4", b"live")
        resolver = _resolver(locations, backend)

        result = await resolver.restore("video_1_a.mp4")

        assert result.location == "canonical"

    @pytest.mark.asyncio
    async def test_rejects_path_escape(self, tmp_path, locations, backend):
        (tmp_path / "secret.txt").write_bytes(b"secret")
        resolver = _resolver(locations, backend)
        with pytest.raises(ObjectNotFound):
            await resolver.restore("../secret.txt")


class TestRegistryCandidates:

    @pytest.mark.asyncio
    async def test_registry_locations_tried_first(self, tmp_path, locations, backend):
        elsewhere = tmp_path / "offsite"
        elsewhere.mkdir()
        (elsewhere / "video_1_a.mp4").write_bytes(b"offsite copy")
        (tmp_path / "primary" / "video_1_a.mp4").write_bytes(b"primary copy")
        registry = ReplicaRegistry()
        registry.mark_confirmed("video_1_a.mp4", "offsite", str(elsewhere / "video_1_a.mp4"))
        resolver = _resolver(locations, backend, registry)

        result = await resolver.restore("video_1_a.mp4")

        assert result.location == "offsite"
        assert await backend.get("video_1_a.mp4") == b"offsite copy"
        canonical = [loc.name for loc in registry.confirmed_locations("video_1_a.mp4")]
        assert "canonical" in canonical

    def test_candidates_skip_remote_uris_and_duplicates(self, tmp_path, locations, backend):
        registry = ReplicaRegistry()
        registry.mark_confirmed("video_1_a.mp4", "canonical", "s3://videos/video_1_a.mp4")
        registry.mark_confirmed("video_1_a.mp4", "backup", str(tmp_path / "backup" / "video_1_a.mp4"))
        resolver = _resolver(locations, backend, registry)

        names = [name for name, _ in resolver.candidates("video_1_a.mp4")]

        assert names == ["backup", "primary", "cloud_backup"]
