"""
Durable object storage for uploaded videos.

Contains the domain models and errors, the replica registry, replication,
cloud sync, restore, usage/health reporting and the StorageSystem that
ties them together.
"""

from .errors import (
    BackendInitError,
    BackendUnavailableError,
    ObjectNotFound,
    PartialReplicationFailure,
    StorageError,
    SyncRunFailure,
    WriteError,
)
from .models import (
    BackendInfo,
    BackendKind,
    BackendState,
    HealthReport,
    ObjectListing,
    ReplicaStatus,
    RestoreResult,
    StoredObject,
    SyncRunSummary,
    UsageReport,
)
from .registry import ReplicaRegistry
from .replication import ReplicationManager
from .system import StorageSystem

__all__ = [
    "BackendInitError",
    "BackendUnavailableError",
    "ObjectNotFound",
    "PartialReplicationFailure",
    "StorageError",
    "SyncRunFailure",
    "WriteError",
    "BackendInfo",
    "BackendKind",
    "BackendState",
    "HealthReport",
    "ObjectListing",
    "ReplicaStatus",
    "RestoreResult",
    "StoredObject",
    "SyncRunSummary",
    "UsageReport",
    "ReplicaRegistry",
    "ReplicationManager",
    "StorageSystem",
]
