"""
Periodic reconciliation of local files with the cloud-backup location.

Each run rescans every tracked root and rewrites every file into
cloud_backup/, whether or not it changed since the last run. A failure
on one file is logged and counted; the run continues and its summary is
always written to sync-log.json.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from .errors import SyncRunFailure
from .fileops import atomic_copy, atomic_write_bytes, iter_files, same_file
from .models import SyncRunSummary, format_file_size, is_object_id
from .registry import ReplicaRegistry

logger = logging.getLogger(__name__)

CLOUD_BACKUP_LOCATION = "cloud_backup"


class SyncScheduler:
    """Copies every tracked file to the cloud-backup directory on an interval."""

    def __init__(
        self,
        tracked_roots: list[Path],
        cloud_root: Path,
        log_path: Path,
        registry: Optional[ReplicaRegistry] = None,
        interval_seconds: float = 300.0,
    ) -> None:
        self.tracked_roots = [Path(root) for root in tracked_roots]
        self.cloud_root = Path(cloud_root)
        self.log_path = Path(log_path)
        self._registry = registry
        self.interval_seconds = interval_seconds
        self.last_summary: Optional[SyncRunSummary] = None
        self._running = False

    def tracked_files(self) -> list[Path]:
        """Every file under the tracked roots, excluding the cloud root itself."""
        files: list[Path] = []
        seen: set[Path] = set()
        for root in self.tracked_roots:
            if same_file(root, self.cloud_root):
                continue
            for path in iter_files(root):
                resolved = path.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                files.append(path)
        return files

    def destination(self, path: Path) -> Path:
        return self.cloud_root / path.name

    def _copy(self, path: Path) -> int:
        return atomic_copy(path, self.destination(path))

    async def sync_file(self, path: Path) -> bool:
        """Copy one file to cloud_backup. Returns False on failure."""
        path = Path(path)
        try:
            await asyncio.to_thread(self._copy, path)
        except Exception as e:
            failure = SyncRunFailure(str(path), str(e))
            logger.warning(str(failure), extra={"path": str(path)})
            return False
        if self._registry is not None and is_object_id(path.name):
            await asyncio.to_thread(
                self._registry.mark_confirmed,
                path.name, CLOUD_BACKUP_LOCATION, str(self.destination(path)),
            )
        logger.debug("Synced to cloud backup", extra={"path": str(path)})
        return True

    async def run_once(self) -> SyncRunSummary:
        summary = SyncRunSummary()
        files = await asyncio.to_thread(self.tracked_files)
        confirmed: list[tuple[str, str]] = []

        for path in files:
            try:
                size = await asyncio.to_thread(self._copy, path)
            except Exception as e:
                summary.failed_files += 1
                failure = SyncRunFailure(str(path), str(e))
                logger.warning(str(failure), extra={"path": str(path)})
                continue
            summary.synced_files += 1
            summary.total_size += size
            if is_object_id(path.name):
                confirmed.append((path.name, str(self.destination(path))))

        if self._registry is not None and confirmed:
            # One registry write per run
            await asyncio.to_thread(
                self._registry.mark_confirmed_many, CLOUD_BACKUP_LOCATION, confirmed
            )

        if summary.failed_files:
            summary.status = "partial"

        await asyncio.to_thread(self._write_summary, summary)
        self.last_summary = summary

        if summary.synced_files or summary.failed_files:
            logger.info(
                "Cloud sync completed",
                extra={
                    "synced_files": summary.synced_files,
                    "failed_files": summary.failed_files,
                    "total_size": format_file_size(summary.total_size),
                }
            )
        return summary

    def _write_summary(self, summary: SyncRunSummary) -> None:
        try:
            atomic_write_bytes(
                self.log_path,
                json.dumps(summary.to_dict(), indent=2).encode("utf-8"),
            )
        except OSError as e:
            logger.error(
                "Failed to write sync log",
                extra={"path": str(self.log_path), "error": str(e)}
            )

    async def run_forever(self) -> None:
        """Background task: one reconciliation run per interval."""
        self._running = True
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Cloud sync run failed", extra={"error": str(e)}, exc_info=e)
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    def stop(self) -> None:
        self._running = False
