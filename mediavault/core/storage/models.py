"""
Domain models for stored media objects.

These models describe what is stored and where copies live. They carry
no knowledge of boto3, FastAPI, or the filesystem layout; backends and
services translate to and from them.
"""

import re
import secrets
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath
from typing import Any, Optional


OBJECT_ID_PREFIX = "video"
OBJECT_ID_PATTERN = re.compile(r"^video_\d+_[a-z0-9]+(\.[A-Za-z0-9]+)?$")
OBJECT_URL_PREFIX = "/api/object-storage/video"


class BackendKind(Enum):
    """Physical medium behind the active storage backend."""
    REMOTE = "remote-object-storage"
    LOCAL = "local-filesystem"


class BackendState(Enum):
    """
    Selection state for the process-wide backend.

    UNINITIALIZED only exists between construction and initialize().
    LOCAL_ACTIVE may later move to REMOTE_ACTIVE through a re-probe.
    """
    UNINITIALIZED = "uninitialized"
    REMOTE_ACTIVE = "remote_active"
    LOCAL_ACTIVE = "local_active"


class ReplicaStatus(Enum):
    """Lifecycle of one copy of an object at one location."""
    PENDING = "pending"      # queued, not yet written
    CONFIRMED = "confirmed"  # bytes written and replaced atomically
    FAILED = "failed"        # every retry attempt failed


def generate_object_id(original_name: str, now_ms: Optional[int] = None) -> str:
    """
    Build a fresh object id: video_<epoch-millis>_<random><extension>.

    The random suffix is what keeps two uploads in the same millisecond
    apart; ids are never derived from content.
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = secrets.token_hex(6)
    extension = PurePath(original_name or "").suffix
    if extension and not re.fullmatch(r"\.[A-Za-z0-9]+", extension):
        extension = ""
    return f"{OBJECT_ID_PREFIX}_{timestamp}_{suffix}{extension}"


def is_object_id(name: str) -> bool:
    """True if a file or key name looks like a generated object id."""
    return bool(OBJECT_ID_PATTERN.match(name))


def is_safe_object_id(object_id: str) -> bool:
    """Reject ids that could escape a storage root."""
    if not object_id or object_id in (".", ".."):
        return False
    return "/" not in object_id and "\\" not in object_id and ".." not in object_id


def object_url(object_id: str) -> str:
    return f"{OBJECT_URL_PREFIX}/{object_id}"


def format_file_size(size_bytes: int) -> str:
    """Human-readable size: 0 B, 1.5 KB, 2.25 MB ..."""
    if size_bytes <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    index = 0
    while size_bytes >= 1024 ** (index + 1) and index < len(units) - 1:
        index += 1
    value = round(size_bytes / 1024 ** index, 2)
    return f"{value:g} {units[index]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredObject:
    """
    One stored binary object.

    Frozen because an object's identity and size are fixed at write
    time. A rewrite produces a new StoredObject with a new id.
    """
    id: str
    original_name: str
    size_bytes: int
    created_at: datetime = field(default_factory=utc_now)
    kind: str = "video"

    def __post_init__(self) -> None:
        if self.size_bytes < 0:
            raise ValueError("Object size cannot be negative")
        if not self.id:
            raise ValueError("Object id cannot be empty")

    @property
    def url(self) -> str:
        return object_url(self.id)

    def metadata_record(self) -> dict[str, Any]:
        """Side record persisted next to the bytes."""
        return {
            "id": self.id,
            "uploadDate": self.created_at.isoformat(),
            "size": self.size_bytes,
            "type": self.kind,
            "originalName": self.original_name,
        }


@dataclass(frozen=True)
class ObjectListing:
    """Entry returned by a backend listing."""
    id: str
    url: str


@dataclass
class BackendInfo:
    """Summary of the active backend for admin views."""
    enabled: bool
    backend_kind: BackendKind
    object_count: int
    total_size_bytes: int
    bucket: Optional[str] = None

    @property
    def total_size_formatted(self) -> str:
        return format_file_size(self.total_size_bytes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "backend_kind": self.backend_kind.value,
            "object_count": self.object_count,
            "total_size_bytes": self.total_size_bytes,
            "total_size_formatted": self.total_size_formatted,
            "bucket": self.bucket,
        }


@dataclass
class ReplicaLocation:
    """
    Where one copy of an object lives.

    `name` is the logical location (primary, backup, cloud_backup, ...)
    and `path` is the concrete file path or object key.
    """
    name: str
    path: str
    status: ReplicaStatus = ReplicaStatus.PENDING
    attempts: int = 0
    updated_at: datetime = field(default_factory=utc_now)
    last_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "status": self.status.value,
            "attempts": self.attempts,
            "updated_at": self.updated_at.isoformat(),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReplicaLocation":
        return cls(
            name=data["name"],
            path=data["path"],
            status=ReplicaStatus(data.get("status", ReplicaStatus.PENDING.value)),
            attempts=int(data.get("attempts", 0)),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else utc_now(),
            last_error=data.get("last_error"),
        )


@dataclass
class ReplicationResult:
    """Outcome of fanning one object out to every replica location."""
    object_id: str
    confirmed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed)


@dataclass
class SyncRunSummary:
    """Record of one cloud-backup reconciliation pass."""
    timestamp: datetime = field(default_factory=utc_now)
    synced_files: int = 0
    total_size: int = 0
    failed_files: int = 0
    status: str = "completed"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["total_size_formatted"] = format_file_size(self.total_size)
        return data


@dataclass(frozen=True)
class RestoreResult:
    """Where a restored object was found."""
    object_id: str
    location: str
    path: str


@dataclass
class UsageReport:
    total_size_bytes: int
    object_count: int

    @property
    def formatted_size(self) -> str:
        return format_file_size(self.total_size_bytes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_size_bytes": self.total_size_bytes,
            "formatted_size": self.formatted_size,
            "object_count": self.object_count,
        }


@dataclass
class NodeHealth:
    """Probe result for one storage location."""
    id: str
    location: str
    path: str
    healthy: bool
    object_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "location": self.location,
            "path": self.path,
            "status": "healthy" if self.healthy else "unhealthy",
            "object_count": self.object_count,
            "error": self.error,
        }


@dataclass
class HealthReport:
    nodes: list[NodeHealth]
    checked_at: datetime = field(default_factory=utc_now)

    @property
    def status(self) -> str:
        healthy = sum(1 for node in self.nodes if node.healthy)
        if self.nodes and healthy == len(self.nodes):
            return "optimal"
        if healthy:
            return "degraded"
        return "unavailable"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
            "nodes": [node.to_dict() for node in self.nodes],
        }


@dataclass
class CleanupReport:
    temp_files_removed: int = 0
    logs_removed: int = 0
