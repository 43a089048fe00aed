"""
Unit tests for the storage domain models.

These tests verify the value objects and helpers without touching
any backend (no boto3, no API, and only tmp_path on disk where needed).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
- Prefer real objects over mocks where practical
"""

import re
from datetime import datetime, timezone

import pytest

from mediavault.core.storage.models import (
    BackendInfo,
    BackendKind,
    HealthReport,
    NodeHealth,
    ReplicaLocation,
    ReplicaStatus,
    StoredObject,
    SyncRunSummary,
    UsageReport,
    format_file_size,
    generate_object_id,
    is_object_id,
    is_safe_object_id,
    object_url,
)


# ---------------------------------------------------------------------------
# Object Id Tests
# ---------------------------------------------------------------------------

class TestObjectId:
    """Tests for object id generation and validation."""

    def test_id_keeps_extension(self):
        """clip.mp4 should produce video_<millis>_<random>.mp4"""
        object_id = generate_object_id("clip.mp4")
        assert re.fullmatch(r"video_\d+_[a-z0-9]+\.mp4", object_id)

    def test_id_uses_supplied_timestamp(self):
        """The millisecond timestamp is embedded verbatim."""
        object_id = generate_object_id("clip.mp4", now_ms=1700000000123)
        assert object_id.startswith("video_1700000000123_")

    def test_ids_are_unique_within_same_millisecond(self):
        """The random suffix separates uploads in the same millisecond."""
        ids = {generate_object_id("clip.mp4", now_ms=42) for _ in range(200)}
        assert len(ids) == 200

    def test_name_without_extension(self):
        """No extension in the original name means none in the id."""
        object_id = generate_object_id("README")
        assert re.fullmatch(r"video_\d+_[a-z0-9]+", object_id)

    def test_odd_extension_is_dropped(self):
        """Extensions that are not plain alphanumerics are not carried over."""
        object_id = generate_object_id("clip.m p4")
        assert is_object_id(object_id)
        assert " " not in object_id

    def test_generated_ids_are_recognized(self):
        assert is_object_id(generate_object_id("a.mov"))
        assert not is_object_id("holiday.mp4")

    @pytest.mark.parametrize("object_id", ["", ".", "..", "../etc/passwd", "a/b", "a\\b"])
    def test_unsafe_ids_rejected(self, object_id):
        """Ids that could escape a storage root are never accepted."""
        assert not is_safe_object_id(object_id)

    def test_plain_id_is_safe(self):
        assert is_safe_object_id("video_1_abc.mp4")

    def test_object_url(self):
        assert object_url("video_1_abc.mp4") == "/api/object-storage/video/video_1_abc.mp4"


# ---------------------------------------------------------------------------
# Formatting Tests
# ---------------------------------------------------------------------------

class TestFormatFileSize:
    """Tests for human-readable sizes."""

    @pytest.mark.parametrize(
        "size_bytes,expected",
        [
            (0, "0 B"),
            (10, "10 B"),
            (1023, "1023 B"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (1024 * 1024, "1 MB"),
            (5 * 1024 ** 3, "5 GB"),
        ],
    )
    def test_formats(self, size_bytes, expected):
        assert format_file_size(size_bytes) == expected


# ---------------------------------------------------------------------------
# Value Object Tests
# ---------------------------------------------------------------------------

class TestStoredObject:
    """Tests for the StoredObject value object."""

    def test_rejects_negative_size(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            StoredObject(id="video_1_a.mp4", original_name="a.mp4", size_bytes=-1)

    def test_rejects_empty_id(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            StoredObject(id="", original_name="a.mp4", size_bytes=0)

    def test_metadata_record_shape(self):
        """The side record uses the persisted field names."""
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        stored = StoredObject(
            id="video_1_a.mp4", original_name="clip.mp4", size_bytes=10, created_at=created
        )
        assert stored.metadata_record() == {
            "id": "video_1_a.mp4",
            "uploadDate": "2024-01-02T03:04:05+00:00",
            "size": 10,
            "type": "video",
            "originalName": "clip.mp4",
        }
        assert stored.url.endswith("/video_1_a.mp4")

    def test_is_immutable(self):
        stored = StoredObject(id="video_1_a.mp4", original_name="a.mp4", size_bytes=1)
        with pytest.raises(Exception):
            stored.size_bytes = 2


class TestReplicaLocation:
    """Tests for replica records as persisted in replicas.json."""

    def test_dict_round_trip_keeps_status_and_error(self):
        location = ReplicaLocation(
            name="backup",
            path="/data/backup/video_1_a.mp4",
            status=ReplicaStatus.FAILED,
            attempts=3,
            last_error="disk full",
        )
        restored = ReplicaLocation.from_dict(location.to_dict())
        assert restored.status == ReplicaStatus.FAILED
        assert restored.attempts == 3
        assert restored.last_error == "disk full"

    def test_missing_fields_default(self):
        restored = ReplicaLocation.from_dict({"name": "backup", "path": "/x"})
        assert restored.status == ReplicaStatus.PENDING
        assert restored.attempts == 0


class TestReports:
    """Tests for the summary and report objects."""

    def test_backend_info_dict(self):
        info = BackendInfo(
            enabled=True,
            backend_kind=BackendKind.LOCAL,
            object_count=2,
            total_size_bytes=2048,
        )
        data = info.to_dict()
        assert data["backend_kind"] == "local-filesystem"
        assert data["total_size_formatted"] == "2 KB"

    def test_sync_summary_dict(self):
        summary = SyncRunSummary(synced_files=2, total_size=1536)
        data = summary.to_dict()
        assert data["status"] == "completed"
        assert data["total_size_formatted"] == "1.5 KB"
        assert isinstance(data["timestamp"], str)

    def test_usage_report_formats_size(self):
        assert UsageReport(total_size_bytes=0, object_count=0).formatted_size == "0 B"

    def test_health_status_all_healthy(self):
        report = HealthReport(nodes=[
            NodeHealth(id="node-1", location="primary", path="/p", healthy=True),
            NodeHealth(id="node-2", location="backup", path="/b", healthy=True),
        ])
        assert report.status == "optimal"

    def test_health_status_some_unhealthy(self):
        report = HealthReport(nodes=[
            NodeHealth(id="node-1", location="primary", path="/p", healthy=True),
            NodeHealth(id="node-2", location="backup", path="/b", healthy=False),
        ])
        assert report.status == "degraded"
        assert report.to_dict()["nodes"][1]["status"] == "unhealthy"

    def test_health_status_no_healthy_nodes(self):
        assert HealthReport(nodes=[]).status == "unavailable"
        report = HealthReport(nodes=[
            NodeHealth(id="node-1", location="primary", path="/p", healthy=False),
        ])
        assert report.status == "unavailable"
