"""
The storage system as the API sees it.

StorageSystem ties the canonical backend (through the selector) to the
durability machinery: replica registry, replication, cloud sync,
restore, usage/health and maintenance. It also owns the background
loops that keep replicas and the cloud backup current.

Uploads and deletes wait for the canonical backend only. Fan-out and
sync run in the background and their failures never fail the request.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from .fileops import iter_files
from .maintenance import StorageMaintenance
from .models import (
    BackendInfo,
    BackendKind,
    BackendState,
    HealthReport,
    ObjectListing,
    RestoreResult,
    StoredObject,
    UsageReport,
    is_safe_object_id,
    utc_now,
)
from .monitor import FileChangeMonitor
from .registry import ReplicaRegistry
from .replication import ReplicationManager
from .restore import RestoreResolver
from .sync import CLOUD_BACKUP_LOCATION, SyncScheduler
from .usage import HealthReporter, UsageCalculator

logger = logging.getLogger(__name__)

CANONICAL_LOCATION = "canonical"


class StorageSystem:

    def __init__(
        self,
        selector: Any,
        registry: ReplicaRegistry,
        replication: ReplicationManager,
        sync: SyncScheduler,
        restorer: RestoreResolver,
        usage_calculator: UsageCalculator,
        health_reporter: HealthReporter,
        monitor: FileChangeMonitor,
        maintenance: StorageMaintenance,
        backup_roots: Optional[list[Path]] = None,
        background_tasks_enabled: bool = True,
        health_interval_seconds: float = 120.0,
        reprobe_interval_seconds: float = 30.0,
    ) -> None:
        self.selector = selector
        self.registry = registry
        self.replication = replication
        self.sync = sync
        self.restorer = restorer
        self.usage_calculator = usage_calculator
        self.health_reporter = health_reporter
        self.monitor = monitor
        self.maintenance = maintenance
        self.backup_roots = [Path(root) for root in backup_roots or []]
        self.background_tasks_enabled = background_tasks_enabled
        self.health_interval_seconds = health_interval_seconds
        self.reprobe_interval_seconds = reprobe_interval_seconds
        self._tasks: list[asyncio.Task] = []
        self._backup_tasks: set[asyncio.Task] = set()

    @property
    def backend(self):
        return self.selector.backend

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        self.selector.initialize()

    async def start(self) -> None:
        """Start the background loops (no-op when disabled)."""
        if not self.background_tasks_enabled or self._tasks:
            return

        loops: list[Awaitable[None]] = [
            self.replication.process_queue(),
            self.monitor.run_forever(),
            self.sync.run_forever(),
            self.maintenance.run_forever(),
            self._every(self.health_interval_seconds, self.health_reporter.record),
        ]
        if self.selector.remote_configured:
            loops.append(self._every(self.reprobe_interval_seconds, self._reprobe_tick))

        self._tasks = [asyncio.create_task(loop) for loop in loops]
        logger.info("Storage background loops started", extra={"loops": len(self._tasks)})

    async def stop(self) -> None:
        self.replication.stop()
        self.monitor.stop()
        self.sync.stop()
        self.maintenance.stop()

        tasks = self._tasks + list(self._backup_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._backup_tasks.clear()
        logger.info("Storage background loops stopped")

    async def _every(self, interval: float, action: Callable[[], Awaitable[Any]]) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            try:
                await action()
            except Exception as e:
                logger.error("Periodic storage task failed", extra={"error": str(e)})

    async def _reprobe_tick(self) -> None:
        await asyncio.to_thread(self.selector.reprobe)

    # ------------------------------------------------------------------
    # Object operations
    # ------------------------------------------------------------------

    async def upload(self, data: bytes, original_name: str) -> StoredObject:
        """Write to the canonical backend, then queue fan-out without waiting for it."""
        backend = self.backend
        stored = await backend.put(data, original_name)
        await asyncio.to_thread(
            self.registry.mark_confirmed,
            stored.id, CANONICAL_LOCATION, backend.location_of(stored.id),
        )

        if self.replication.should_replicate(stored.size_bytes):
            if backend.kind == BackendKind.LOCAL:
                await self.replication.enqueue(
                    object_id=stored.id, source=Path(backend.location_of(stored.id))
                )
            else:
                await self.replication.enqueue(object_id=stored.id, data=data)
        return stored

    async def get(self, object_id: str) -> bytes:
        return await self.backend.get(object_id)

    async def delete(self, object_id: str, purge_replicas: bool = False) -> bool:
        """
        Remove the canonical copy.

        With purge_replicas, every replica and the cloud-backup copy are
        removed as well. Returns True if anything was deleted.
        """
        deleted = await self.backend.delete(object_id)
        await asyncio.to_thread(self.registry.remove_location, object_id, CANONICAL_LOCATION)

        if purge_replicas and is_safe_object_id(object_id):
            removed = await asyncio.to_thread(self._purge_replicas, object_id)
            await asyncio.to_thread(self.registry.remove_object, object_id)
            deleted = deleted or removed > 0
            logger.info("Purged replicas", extra={"object_id": object_id, "removed": removed})

        return deleted

    def _purge_replicas(self, object_id: str) -> int:
        paths = [directory / object_id for _, directory in self.replication.locations]
        paths.append(self.sync.cloud_root / object_id)
        removed = 0
        for path in paths:
            if path.is_file():
                path.unlink()
                removed += 1
        return removed

    async def list_objects(self) -> list[ObjectListing]:
        return await self.backend.list()

    async def info(self) -> BackendInfo:
        return await self.backend.info()

    async def restore(self, object_id: str) -> RestoreResult:
        return await self.restorer.restore(object_id)

    # ------------------------------------------------------------------
    # Durability and reporting
    # ------------------------------------------------------------------

    async def backup_all(self) -> int:
        """
        Fan out canonical and watched files, then run a cloud sync, in the background.

        Returns the number of files scheduled. The size threshold does
        not apply here. Only files under the backup roots (the canonical
        store and the watched directories) are fanned out; replica copies
        are never sources.
        """
        files = await asyncio.to_thread(self.backup_sources)
        task = asyncio.create_task(self._backup_files(files))
        self._backup_tasks.add(task)
        task.add_done_callback(self._backup_tasks.discard)
        logger.info("Backup of all files initiated", extra={"files": len(files)})
        return len(files)

    def backup_sources(self) -> list[Path]:
        files: list[Path] = []
        seen: set[Path] = set()
        for root in self.backup_roots:
            for path in iter_files(root):
                resolved = path.resolve()
                if resolved not in seen:
                    seen.add(resolved)
                    files.append(path)
        return files

    async def _backup_files(self, files: list[Path]) -> None:
        failed = 0
        for path in files:
            result = await self.replication.distribute(path)
            if result.is_partial:
                failed += 1
        await self.sync.run_once()
        logger.info(
            "Backup of all files completed",
            extra={"files": len(files), "partial_failures": failed}
        )

    async def usage(self) -> UsageReport:
        return await asyncio.to_thread(self.usage_calculator.usage)

    async def health(self) -> HealthReport:
        return await self.health_reporter.health()

    async def reprobe(self, force: bool = True) -> BackendState:
        return await asyncio.to_thread(self.selector.reprobe, force)

    async def status(self) -> dict[str, Any]:
        usage = await self.usage()
        last_sync = self.sync.last_summary
        kind: Optional[BackendKind] = self.selector.backend_kind
        return {
            "backend_kind": kind.value if kind else None,
            "backend_state": self.selector.state.value,
            "total_stored": usage.formatted_size,
            "total_size_bytes": usage.total_size_bytes,
            "object_count": usage.object_count,
            "replication_locations": self.replication.location_names,
            "cloud_backup": str(self.sync.cloud_root),
            "pending_replications": self.replication.pending_tasks,
            "replicas": self.registry.summary(),
            "last_sync": last_sync.to_dict() if last_sync else None,
            "features": {
                "auto_backup": True,
                "cloud_sync": True,
                "distribution": True,
                "background_tasks": self.background_tasks_enabled,
            },
            "checked_at": utc_now().isoformat(),
        }


__all__ = ["StorageSystem", "CANONICAL_LOCATION", "CLOUD_BACKUP_LOCATION"]
