"""
Reaction to new or changed files in the watched directories.

The watched directories are polled on a short interval and compared
against the previous snapshot of (mtime, size) per file. The first scan
only establishes the baseline. Large files are queued for replication;
every change is synced to cloud_backup.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .fileops import iter_files
from .replication import ReplicationManager
from .sync import SyncScheduler

logger = logging.getLogger(__name__)

Snapshot = dict[Path, tuple[int, int]]


class FileChangeMonitor:

    def __init__(
        self,
        watch_dirs: list[Path],
        replication: ReplicationManager,
        sync: SyncScheduler,
        interval_seconds: float = 10.0,
    ) -> None:
        self.watch_dirs = [Path(d) for d in watch_dirs]
        self._replication = replication
        self._sync = sync
        self.interval_seconds = interval_seconds
        self._snapshot: Optional[Snapshot] = None
        self._running = False

    def _scan(self) -> Snapshot:
        snapshot: Snapshot = {}
        for directory in self.watch_dirs:
            for path in iter_files(directory):
                try:
                    stat = path.stat()
                except FileNotFoundError:
                    continue
                snapshot[path] = (stat.st_mtime_ns, stat.st_size)
        return snapshot

    async def poll(self) -> list[Path]:
        """
        Scan once and handle every new or changed file.

        Returns the paths that were handled. The first call returns an
        empty list.
        """
        current = await asyncio.to_thread(self._scan)
        previous = self._snapshot
        self._snapshot = current
        if previous is None:
            return []

        changed = [path for path, state in current.items() if previous.get(path) != state]
        for path in changed:
            await self._handle(path, current[path][1])
        return changed

    async def _handle(self, path: Path, size_bytes: int) -> None:
        try:
            if self._replication.should_replicate(size_bytes):
                await self._replication.enqueue(source=path)
            await self._sync.sync_file(path)
            logger.debug("File processed", extra={"path": str(path), "size_bytes": size_bytes})
        except Exception as e:
            logger.error("Error handling file change", extra={"path": str(path), "error": str(e)})

    async def run_forever(self) -> None:
        self._running = True
        while self._running:
            try:
                await self.poll()
            except Exception as e:
                logger.error("File monitor scan failed", extra={"error": str(e)})
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    def stop(self) -> None:
        self._running = False
