"""
Recovery of objects missing from the canonical backend.

Candidates are tried in a fixed order: confirmed registry locations
first (in the order they were recorded), then the directory convention
(<storage_root>/<location>/<id>) for each configured restore location.
The first readable hit is written back through the active backend and
the search stops there, even if a later location holds a newer copy.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import ObjectNotFound
from .models import RestoreResult, is_safe_object_id
from .registry import ReplicaRegistry

logger = logging.getLogger(__name__)


class RestoreResolver:

    def __init__(
        self,
        locations: list[tuple[str, Path]],
        backend_provider: Callable[[], Any],
        registry: Optional[ReplicaRegistry] = None,
    ) -> None:
        """
        Args:
            locations: Ordered (name, directory) candidates
            backend_provider: Returns the active StorageBackend at call time,
                so a backend switch after a re-probe is honoured
            registry: Replica registry consulted before the directory convention
        """
        self.locations = [(name, Path(directory)) for name, directory in locations]
        self._backend_provider = backend_provider
        self._registry = registry

    def candidates(self, object_id: str) -> list[tuple[str, Path]]:
        """Ordered, de-duplicated (location, path) pairs to try."""
        ordered: list[tuple[str, Path]] = []
        seen: set[str] = set()

        if self._registry is not None:
            for location in self._registry.confirmed_locations(object_id):
                # Remote URIs are not readable here; the backend itself is checked first
                if "://" in location.path:
                    continue
                ordered.append((location.name, Path(location.path)))

        for name, directory in self.locations:
            ordered.append((name, directory / object_id))

        unique = []
        for name, path in ordered:
            key = str(path.resolve())
            if key in seen:
                continue
            seen.add(key)
            unique.append((name, path))
        return unique

    async def restore(self, object_id: str) -> RestoreResult:
        """
        Materialize object_id into the canonical backend.

        Raises:
            ObjectNotFound: no candidate location holds the object
        """
        if not is_safe_object_id(object_id):
            raise ObjectNotFound(object_id)

        backend = self._backend_provider()
        if await backend.exists(object_id):
            return RestoreResult(
                object_id=object_id,
                location="canonical",
                path=backend.location_of(object_id),
            )

        for name, path in self.candidates(object_id):
            if not path.is_file():
                continue
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                logger.warning(
                    "Restore candidate unreadable",
                    extra={"object_id": object_id, "path": str(path), "error": str(e)}
                )
                continue

            await backend.store(object_id, data)
            if self._registry is not None:
                await asyncio.to_thread(
                    self._registry.mark_confirmed,
                    object_id, "canonical", backend.location_of(object_id),
                )
            logger.info(
                "Restored object",
                extra={"object_id": object_id, "location": name, "path": str(path)}
            )
            return RestoreResult(object_id=object_id, location=name, path=str(path))

        logger.info("Restore failed, object not in any backup location", extra={"object_id": object_id})
        raise ObjectNotFound(object_id, f"{object_id} not found in any backup location")
