"""
Explicit record of where every copy of an object lives.

The registry maps object id -> ordered list of ReplicaLocation. It is
updated whenever a copy is queued, written, fails, or is removed, and
the whole mapping is rewritten atomically after each change (bulk
updates write once). Methods block on file I/O; async callers run them
through asyncio.to_thread.

The bytes on disk remain the source of truth: losing replicas.json
costs observability (and the registry-first restore order), never data.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from .fileops import atomic_write_bytes
from .models import ReplicaLocation, ReplicaStatus, utc_now

logger = logging.getLogger(__name__)


class ReplicaRegistry:
    """Thread-safe, file-backed replica map."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._replicas: dict[str, list[ReplicaLocation]] = {}
        self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.is_file():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._replicas = {
                object_id: [ReplicaLocation.from_dict(item) for item in locations]
                for object_id, locations in raw.get("objects", {}).items()
            }
        except (OSError, ValueError, KeyError) as e:
            # Start empty; copies on disk are still found by directory convention
            logger.warning(
                "Replica registry unreadable, starting empty",
                extra={"path": str(self._path), "error": str(e)}
            )
            self._replicas = {}

    def _persist(self) -> None:
        if self._path is None:
            return
        payload = {
            "updated_at": utc_now().isoformat(),
            "objects": {
                object_id: [location.to_dict() for location in locations]
                for object_id, locations in self._replicas.items()
            },
        }
        try:
            atomic_write_bytes(self._path, json.dumps(payload, indent=2).encode("utf-8"))
        except OSError as e:
            logger.error(
                "Failed to persist replica registry",
                extra={"path": str(self._path), "error": str(e)}
            )

    def _apply(
        self,
        object_id: str,
        name: str,
        path: str,
        status: ReplicaStatus,
        error: Optional[str] = None,
        attempts: int = 0,
    ) -> ReplicaLocation:
        # Caller holds the lock
        locations = self._replicas.setdefault(object_id, [])
        location = next((loc for loc in locations if loc.name == name), None)
        if location is None:
            location = ReplicaLocation(name=name, path=path)
            locations.append(location)
        location.path = path
        location.status = status
        location.updated_at = utc_now()
        location.last_error = error
        location.attempts += attempts
        return location

    def _upsert(
        self,
        object_id: str,
        name: str,
        path: str,
        status: ReplicaStatus,
        error: Optional[str] = None,
        attempts: int = 0,
    ) -> ReplicaLocation:
        with self._lock:
            location = self._apply(object_id, name, path, status, error, attempts)
            self._persist()
            return location

    def mark_pending(self, object_id: str, name: str, path: str) -> ReplicaLocation:
        return self._upsert(object_id, name, path, ReplicaStatus.PENDING)

    def mark_pending_many(self, object_id: str, locations: list[tuple[str, str]]) -> None:
        """Mark several (name, path) locations of one object pending with a single write."""
        with self._lock:
            for name, path in locations:
                self._apply(object_id, name, path, ReplicaStatus.PENDING)
            self._persist()

    def mark_confirmed(
        self, object_id: str, name: str, path: str, attempts: int = 1
    ) -> ReplicaLocation:
        return self._upsert(object_id, name, path, ReplicaStatus.CONFIRMED, attempts=attempts)

    def mark_confirmed_many(self, name: str, entries: list[tuple[str, str]]) -> None:
        """
        Confirm one named location for many objects with a single write.

        entries are (object_id, path) pairs. Used by the cloud sync, which
        touches every object on each run.
        """
        if not entries:
            return
        with self._lock:
            for object_id, path in entries:
                self._apply(object_id, name, path, ReplicaStatus.CONFIRMED, attempts=1)
            self._persist()

    def mark_failed(
        self, object_id: str, name: str, path: str, error: str, attempts: int = 1
    ) -> ReplicaLocation:
        return self._upsert(
            object_id, name, path, ReplicaStatus.FAILED, error=error, attempts=attempts
        )

    def remove_location(self, object_id: str, name: str) -> bool:
        """Drop one location. Returns True if it was recorded."""
        with self._lock:
            locations = self._replicas.get(object_id, [])
            remaining = [loc for loc in locations if loc.name != name]
            if len(remaining) == len(locations):
                return False
            if remaining:
                self._replicas[object_id] = remaining
            else:
                self._replicas.pop(object_id, None)
            self._persist()
            return True

    def remove_object(self, object_id: str) -> bool:
        with self._lock:
            if self._replicas.pop(object_id, None) is None:
                return False
            self._persist()
            return True

    def locations(self, object_id: str) -> list[ReplicaLocation]:
        """Copy of every recorded location for an object, in insertion order."""
        with self._lock:
            return [
                ReplicaLocation.from_dict(loc.to_dict())
                for loc in self._replicas.get(object_id, [])
            ]

    def confirmed_locations(self, object_id: str) -> list[ReplicaLocation]:
        return [
            loc for loc in self.locations(object_id)
            if loc.status == ReplicaStatus.CONFIRMED
        ]

    def object_ids(self) -> list[str]:
        with self._lock:
            return list(self._replicas)

    def summary(self) -> dict[str, int]:
        """Count of locations per status across all objects."""
        counts = {status.value: 0 for status in ReplicaStatus}
        with self._lock:
            for locations in self._replicas.values():
                for location in locations:
                    counts[location.status.value] += 1
        return counts
