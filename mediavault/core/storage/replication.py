"""
Fan-out of stored objects to additional local locations.

Every destination is written independently: one failing destination
never aborts the others and never rolls back the ones already written.
Each destination gets its own retry/backoff, and every outcome lands in
the replica registry as confirmed or failed.

Uploads enqueue work and return immediately; a single background
consumer drains the queue. The queue is unbounded.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import PartialReplicationFailure
from .fileops import atomic_write_bytes, same_file
from .models import ReplicationResult
from .registry import ReplicaRegistry

logger = logging.getLogger(__name__)


@dataclass
class ReplicationTask:
    """One queued fan-out. Exactly one of source/data is set."""
    object_id: str
    source: Optional[Path] = None
    data: Optional[bytes] = None


class ReplicationManager:
    """Copies objects to a fixed, ordered list of named locations."""

    def __init__(
        self,
        locations: list[tuple[str, Path]],
        registry: ReplicaRegistry,
        min_size_bytes: int = 10 * 1024 * 1024,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.locations = [(name, Path(directory)) for name, directory in locations]
        self._registry = registry
        self._min_size_bytes = min_size_bytes
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._queue: asyncio.Queue[ReplicationTask] = asyncio.Queue()
        self._running = False

    @property
    def pending_tasks(self) -> int:
        return self._queue.qsize()

    @property
    def location_names(self) -> list[str]:
        return [name for name, _ in self.locations]

    def should_replicate(self, size_bytes: int) -> bool:
        return size_bytes >= self._min_size_bytes

    def destination(self, name: str, object_id: str) -> Path:
        for location_name, directory in self.locations:
            if location_name == name:
                return directory / object_id
        raise KeyError(name)

    # ------------------------------------------------------------------
    # Direct fan-out
    # ------------------------------------------------------------------

    async def distribute(self, path: Path, object_id: Optional[str] = None) -> ReplicationResult:
        """
        Read a file once and write it to every location.

        The object id defaults to the file name, which matches the
        <location>/<id> layout used everywhere else.
        """
        path = Path(path)
        object_id = object_id or path.name
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.error(
                "Distribution source unreadable",
                extra={"path": str(path), "error": str(e)}
            )
            return ReplicationResult(object_id=object_id, failed=self.location_names)

        return await self._fan_out(object_id, data, source=path)

    async def replicate_bytes(self, object_id: str, data: bytes) -> ReplicationResult:
        """Fan out bytes that are already in memory (remote uploads, restores)."""
        return await self._fan_out(object_id, data, source=None)

    async def _fan_out(
        self, object_id: str, data: bytes, source: Optional[Path]
    ) -> ReplicationResult:
        result = ReplicationResult(object_id=object_id)

        for name, directory in self.locations:
            destination = directory / object_id

            if source is not None and same_file(source, destination):
                await asyncio.to_thread(
                    self._registry.mark_confirmed, object_id, name, str(destination)
                )
                result.confirmed.append(name)
                continue

            attempts = 0
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._max_attempts),
                    wait=wait_exponential(multiplier=self._backoff_seconds, max=30),
                    retry=retry_if_exception_type(OSError),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        await asyncio.to_thread(atomic_write_bytes, destination, data)
            except Exception as e:
                await asyncio.to_thread(
                    self._registry.mark_failed,
                    object_id, name, str(destination), str(e), attempts=attempts,
                )
                result.failed.append(name)
                continue

            await asyncio.to_thread(
                self._registry.mark_confirmed,
                object_id, name, str(destination), attempts=attempts,
            )
            result.confirmed.append(name)

        if result.is_partial:
            failure = PartialReplicationFailure(object_id, result.failed)
            logger.warning(
                str(failure),
                extra={"object_id": object_id, "failed": result.failed, "confirmed": result.confirmed}
            )
        else:
            logger.debug(
                "Object distributed",
                extra={"object_id": object_id, "locations": result.confirmed}
            )

        return result

    # ------------------------------------------------------------------
    # Background queue
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        object_id: Optional[str] = None,
        source: Optional[Path] = None,
        data: Optional[bytes] = None,
    ) -> ReplicationTask:
        """Queue a fan-out and mark every destination pending."""
        if source is None and data is None:
            raise ValueError("enqueue needs a source path or data")
        if object_id is None:
            if source is None:
                raise ValueError("object_id is required when enqueuing bytes")
            object_id = Path(source).name

        task = ReplicationTask(
            object_id=object_id,
            source=Path(source) if source is not None else None,
            data=data,
        )
        await asyncio.to_thread(
            self._registry.mark_pending_many,
            object_id,
            [(name, str(directory / object_id)) for name, directory in self.locations],
        )

        self._queue.put_nowait(task)
        logger.debug("Replication queued", extra={"object_id": object_id})
        return task

    async def run_task(self, task: ReplicationTask) -> ReplicationResult:
        if task.data is not None:
            return await self.replicate_bytes(task.object_id, task.data)
        return await self.distribute(task.source, object_id=task.object_id)

    async def process_queue(self) -> None:
        """Background task that drains the replication queue."""
        self._running = True

        while self._running:
            try:
                # Timeout lets the loop notice stop()
                task = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self.run_task(task)
            except Exception as e:
                logger.error(
                    "Replication task crashed",
                    extra={"object_id": task.object_id, "error": str(e)},
                    exc_info=e,
                )
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Run every queued task inline. Used by shutdown and tests."""
        while not self._queue.empty():
            task = self._queue.get_nowait()
            try:
                await self.run_task(task)
            finally:
                self._queue.task_done()

    def stop(self) -> None:
        self._running = False
