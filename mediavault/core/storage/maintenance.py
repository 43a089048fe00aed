"""Scheduled cleanup of scratch space and stale bookkeeping logs."""

import asyncio
import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from .models import CleanupReport

logger = logging.getLogger(__name__)

LOG_SUFFIX = "-log.json"


class StorageMaintenance:

    def __init__(
        self,
        storage_root: Path,
        temp_dir: Path,
        log_retention_days: int = 7,
        interval_seconds: float = 3600.0,
    ) -> None:
        self.storage_root = Path(storage_root)
        self.temp_dir = Path(temp_dir)
        self.log_retention_seconds = log_retention_days * 24 * 60 * 60
        self.interval_seconds = interval_seconds
        self._running = False

    def _clear_temp(self) -> int:
        removed = 0
        if self.temp_dir.is_dir():
            removed = sum(1 for p in self.temp_dir.rglob("*") if p.is_file())
            shutil.rmtree(self.temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return removed

    def _clean_old_logs(self, now: float) -> int:
        removed = 0
        if not self.storage_root.is_dir():
            return removed
        for path in self.storage_root.iterdir():
            if not path.is_file() or not path.name.endswith(LOG_SUFFIX):
                continue
            if now - path.stat().st_mtime > self.log_retention_seconds:
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    def run_cleanup(self, now: Optional[float] = None) -> CleanupReport:
        now = time.time() if now is None else now
        report = CleanupReport(
            temp_files_removed=self._clear_temp(),
            logs_removed=self._clean_old_logs(now),
        )
        logger.info(
            "Storage cleanup completed",
            extra={"temp_files_removed": report.temp_files_removed, "logs_removed": report.logs_removed}
        )
        return report

    async def run_forever(self) -> None:
        self._running = True
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            try:
                await asyncio.to_thread(self.run_cleanup)
            except Exception as e:
                logger.error("Storage cleanup failed", extra={"error": str(e)})

    def stop(self) -> None:
        self._running = False
