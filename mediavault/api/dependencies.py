"""
FastAPI dependency injection.

Dependencies provide the storage system and configuration to route
handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be swapped for testing
- Configuration is centralized

The StorageSystem is built once in the application lifespan and
registered here with set_storage_system(); routes only ever see it
through get_storage_system().
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status

from ..config.settings import Settings, get_settings
from ..core.storage.maintenance import StorageMaintenance
from ..core.storage.models import BackendKind
from ..core.storage.monitor import FileChangeMonitor
from ..core.storage.registry import ReplicaRegistry
from ..core.storage.replication import ReplicationManager
from ..core.storage.restore import RestoreResolver
from ..core.storage.sync import CLOUD_BACKUP_LOCATION, SyncScheduler
from ..core.storage.system import StorageSystem
from ..core.storage.usage import HealthReporter, UsageCalculator
from ..infrastructure.storage.client import StorageConfig
from ..infrastructure.storage.selector import BackendSelector

logger = logging.getLogger(__name__)

# Process-wide storage system, set by the application lifespan
_storage_system: Optional[StorageSystem] = None


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def _location_path(settings: Settings, name: str):
    if name == CLOUD_BACKUP_LOCATION:
        return settings.cloud_backup_path
    return settings.storage_root / name


def build_storage_system(settings: Settings) -> StorageSystem:
    """
    Wire every storage component from settings.

    Nothing touches the network here; the backend is chosen when
    StorageSystem.initialize() runs.
    """
    remote_config = None
    if not settings.r2_mock_mode:
        remote_config = StorageConfig(
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            bucket_name=settings.r2_bucket_name,
            endpoint_url=settings.r2_endpoint,
            key_prefix=settings.r2_key_prefix,
        )

    selector = BackendSelector(
        local_root=settings.local_store_path,
        remote_config=remote_config,
        remote_enabled=not settings.r2_mock_mode,
        reprobe_initial_seconds=settings.reprobe_initial_seconds,
        reprobe_max_seconds=settings.reprobe_max_seconds,
    )

    registry = ReplicaRegistry(settings.storage_root / "replicas.json")

    replication_locations = [
        (name, _location_path(settings, name))
        for name in settings.replication_locations_list
    ]
    canonical_root = settings.local_store_path.resolve()
    for name, path in replication_locations:
        if path.resolve() == canonical_root:
            raise ValueError(
                f"Replication location '{name}' must not be the local store root {canonical_root}"
            )
    restore_locations = [
        (name, _location_path(settings, name))
        for name in settings.restore_locations_list
    ]
    watch_dirs = [settings.uploads_dir, settings.thumbnails_dir]
    replica_roots = [path for _, path in replication_locations]
    # Canonical objects and watched files feed backup-all; replicas never do
    backup_roots = [settings.local_store_path] + watch_dirs
    tracked_roots = backup_roots + replica_roots

    replication = ReplicationManager(
        replication_locations,
        registry,
        min_size_bytes=settings.replication_min_size_bytes,
        max_attempts=settings.replication_max_attempts,
        backoff_seconds=settings.replication_backoff_seconds,
    )
    sync = SyncScheduler(
        tracked_roots,
        cloud_root=settings.cloud_backup_path,
        log_path=settings.storage_root / "sync-log.json",
        registry=registry,
        interval_seconds=settings.sync_interval_seconds,
    )

    def remote_backend():
        if selector.backend_kind == BackendKind.REMOTE:
            return selector.backend
        return None

    return StorageSystem(
        selector=selector,
        registry=registry,
        replication=replication,
        sync=sync,
        restorer=RestoreResolver(
            restore_locations,
            backend_provider=lambda: selector.backend,
            registry=registry,
        ),
        usage_calculator=UsageCalculator(tracked_roots + [settings.cloud_backup_path]),
        health_reporter=HealthReporter(
            replication_locations + [(CLOUD_BACKUP_LOCATION, settings.cloud_backup_path)],
            report_path=settings.storage_root / "health-check.json",
            remote_provider=remote_backend,
        ),
        monitor=FileChangeMonitor(
            watch_dirs,
            replication,
            sync,
            interval_seconds=settings.monitor_interval_seconds,
        ),
        maintenance=StorageMaintenance(
            settings.storage_root,
            settings.storage_root / "tmp",
            log_retention_days=settings.log_retention_days,
            interval_seconds=settings.cleanup_interval_seconds,
        ),
        backup_roots=backup_roots,
        background_tasks_enabled=settings.background_tasks_enabled,
        health_interval_seconds=settings.health_interval_seconds,
        reprobe_interval_seconds=settings.reprobe_initial_seconds,
    )


def prepare_directories(settings: Settings) -> None:
    """Create every directory the storage layer writes into."""
    directories = [
        settings.storage_root,
        settings.storage_root / "tmp",
        settings.local_store_path,
        settings.cloud_backup_path,
        settings.uploads_dir,
        settings.thumbnails_dir,
    ]
    directories += [_location_path(settings, name) for name in settings.replication_locations_list]
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def set_storage_system(system: Optional[StorageSystem]) -> None:
    """Register the storage system (or clear it on shutdown)."""
    global _storage_system
    _storage_system = system


def current_storage_system() -> Optional[StorageSystem]:
    """The registered storage system, or None. Never raises."""
    return _storage_system


def get_storage_system() -> StorageSystem:
    """
    Provide the process-wide StorageSystem.

    Raises 503 until the lifespan has initialized storage.
    """
    if _storage_system is None or not _storage_system.selector.is_initialized:
        logger.warning("Storage requested before initialization")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage not initialized",
        )
    return _storage_system


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
StorageSystemDep = Annotated[StorageSystem, Depends(get_storage_system)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
