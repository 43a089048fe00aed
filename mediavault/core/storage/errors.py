"""
Storage error taxonomy.

Only WriteError, ObjectNotFound and BackendUnavailableError ever reach
an HTTP caller. The rest are raised and caught inside the storage layer
so they can be logged with a precise type.
"""


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class BackendInitError(StorageError):
    """The remote object store could not be constructed or reached."""
    pass


class BackendUnavailableError(StorageError):
    """No backend has been initialized for this process."""
    pass


class WriteError(StorageError):
    """Source bytes could not be read or the destination could not be written."""
    pass


class ObjectNotFound(StorageError):
    """Object is absent from the canonical backend (and every backup, for restores)."""

    def __init__(self, object_id: str, message: str = "") -> None:
        self.object_id = object_id
        super().__init__(message or f"Object not found: {object_id}")


class PartialReplicationFailure(StorageError):
    """One or more fan-out destinations failed after every retry."""

    def __init__(self, object_id: str, failed_locations: list[str]) -> None:
        self.object_id = object_id
        self.failed_locations = failed_locations
        super().__init__(
            f"Replication of {object_id} failed for: {', '.join(failed_locations)}"
        )


class SyncRunFailure(StorageError):
    """A single file could not be copied during a cloud-sync run."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Cloud sync failed for {path}: {reason}")
