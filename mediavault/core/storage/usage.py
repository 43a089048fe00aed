"""
Usage and health reporting across every storage location.

Both reports are computed on demand by walking the filesystem. They
back admin endpoints, not request hot paths, so nothing is cached.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from .fileops import atomic_write_bytes, iter_files
from .models import HealthReport, NodeHealth, UsageReport

logger = logging.getLogger(__name__)

# Bookkeeping files written by the storage layer itself
_BOOKKEEPING_FILES = {
    "replicas.json",
    "sync-log.json",
    "health-check.json",
}


def _is_bookkeeping(path: Path) -> bool:
    return path.name in _BOOKKEEPING_FILES


class UsageCalculator:
    """Sums file sizes across a set of roots."""

    def __init__(self, roots: list[Path]) -> None:
        unique: list[Path] = []
        seen: set[Path] = set()
        for root in roots:
            resolved = Path(root).resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            unique.append(Path(root))
        self.roots = unique

    def usage(self) -> UsageReport:
        total = 0
        count = 0
        for root in self.roots:
            for path in iter_files(root):
                if _is_bookkeeping(path):
                    continue
                try:
                    total += path.stat().st_size
                except FileNotFoundError:
                    # Removed between listing and stat
                    continue
                count += 1
        return UsageReport(total_size_bytes=total, object_count=count)


class HealthReporter:
    """
    Probes every storage node.

    A local node is healthy when its directory exists and is readable
    and writable by this process. The remote node, if one is active, is
    healthy when its probe() call succeeds.
    """

    def __init__(
        self,
        nodes: list[tuple[str, Path]],
        report_path: Optional[Path] = None,
        remote_provider: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.nodes = [(name, Path(path)) for name, path in nodes]
        self.report_path = Path(report_path) if report_path is not None else None
        self._remote_provider = remote_provider

    def _probe_local(self, index: int, name: str, path: Path) -> NodeHealth:
        node = NodeHealth(id=f"node-{index}", location=name, path=str(path), healthy=False)
        if not path.is_dir():
            node.error = "directory missing"
            return node
        if not os.access(path, os.R_OK | os.W_OK | os.X_OK):
            node.error = "directory not readable and writable"
            return node
        try:
            node.object_count = sum(1 for _ in iter_files(path))
        except OSError as e:
            node.error = str(e)
            return node
        node.healthy = True
        return node

    async def health(self) -> HealthReport:
        nodes = [
            await asyncio.to_thread(self._probe_local, index, name, path)
            for index, (name, path) in enumerate(self.nodes, start=1)
        ]

        remote = self._remote_provider() if self._remote_provider is not None else None
        if remote is not None:
            node = NodeHealth(
                id=f"node-{len(nodes) + 1}",
                location="remote",
                path=remote.location_of(""),
                healthy=False,
            )
            try:
                await remote.probe()
                node.healthy = True
            except Exception as e:
                node.error = str(e)
            nodes.append(node)

        return HealthReport(nodes=nodes)

    async def record(self) -> HealthReport:
        """Run a health check and write it to the report file."""
        report = await self.health()
        if self.report_path is not None:
            try:
                await asyncio.to_thread(
                    atomic_write_bytes,
                    self.report_path,
                    json.dumps(report.to_dict(), indent=2).encode("utf-8"),
                )
            except OSError as e:
                logger.error("Failed to write health report", extra={"error": str(e)})
        if report.status != "optimal":
            logger.warning(
                "Storage health degraded",
                extra={
                    "status": report.status,
                    "unhealthy": [n.location for n in report.nodes if not n.healthy],
                }
            )
        return report
