"""
Backend selection with deterministic fallback.

The selector owns the process-wide canonical backend. It tries the
remote store first and falls back to the local filesystem store on any
construction failure, so storage stays available even when the remote
service is misconfigured or down.

While running on the fallback it re-probes the remote store on an
exponential backoff schedule (or immediately via reprobe(force=True))
and switches over once the remote store answers.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from ...core.storage.errors import BackendInitError, BackendUnavailableError
from ...core.storage.models import BackendKind, BackendState
from .client import (
    LocalFilesystemStore,
    RemoteObjectStore,
    StorageBackend,
    StorageConfig,
)

logger = logging.getLogger(__name__)

RemoteFactory = Callable[[StorageConfig], StorageBackend]


class BackendSelector:
    """
    Chooses and holds exactly one active StorageBackend.

    States: UNINITIALIZED -> REMOTE_ACTIVE | LOCAL_ACTIVE, with a
    LOCAL_ACTIVE -> REMOTE_ACTIVE transition when a re-probe succeeds.
    """

    def __init__(
        self,
        local_root: Path,
        remote_config: Optional[StorageConfig] = None,
        remote_enabled: bool = True,
        reprobe_initial_seconds: float = 30.0,
        reprobe_max_seconds: float = 1800.0,
        remote_factory: RemoteFactory = RemoteObjectStore,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._local_root = Path(local_root)
        self._remote_config = remote_config
        self._remote_enabled = remote_enabled and remote_config is not None
        self._remote_factory = remote_factory
        self._clock = clock

        self._reprobe_initial = reprobe_initial_seconds
        self._reprobe_max = max(reprobe_max_seconds, reprobe_initial_seconds)
        self._reprobe_delay = reprobe_initial_seconds
        self._next_probe_at = 0.0

        self._backend: Optional[StorageBackend] = None
        self._local: Optional[LocalFilesystemStore] = None
        self.state = BackendState.UNINITIALIZED
        self.last_error: Optional[str] = None

    @property
    def backend(self) -> StorageBackend:
        """The active backend. Raises BackendUnavailableError before initialize()."""
        if self._backend is None:
            raise BackendUnavailableError("Storage backend not initialized")
        return self._backend

    @property
    def is_initialized(self) -> bool:
        return self._backend is not None

    @property
    def backend_kind(self) -> Optional[BackendKind]:
        return self._backend.kind if self._backend is not None else None

    @property
    def remote_configured(self) -> bool:
        return self._remote_enabled

    @property
    def local_store(self) -> LocalFilesystemStore:
        """The filesystem store, created on first use even while remote is active."""
        if self._local is None:
            self._local = LocalFilesystemStore(self._local_root)
        return self._local

    def initialize(self) -> BackendState:
        """
        Pick the backend for this process.

        Calling it again after a successful initialization is a no-op.
        """
        if self._backend is not None:
            return self.state

        if self._remote_enabled and self._try_remote():
            return self.state

        self._activate_local()
        return self.state

    def reprobe(self, force: bool = False) -> BackendState:
        """
        Retry the remote store while the fallback is active.

        Without force, the attempt is skipped until the backoff deadline
        has passed. Each failure doubles the delay up to the maximum.
        """
        if self.state != BackendState.LOCAL_ACTIVE or not self._remote_enabled:
            return self.state
        if not force and self._clock() < self._next_probe_at:
            return self.state

        if self._try_remote():
            logger.info("Remote storage recovered, switching canonical backend")
            return self.state

        self._reprobe_delay = min(self._reprobe_delay * 2, self._reprobe_max)
        self._schedule_next_probe()
        return self.state

    def _try_remote(self) -> bool:
        try:
            self._backend = self._remote_factory(self._remote_config)
        except Exception as e:
            error = e if isinstance(e, BackendInitError) else BackendInitError(str(e))
            self.last_error = str(error)
            logger.warning(
                "Remote storage unavailable, using local filesystem",
                extra={"error": self.last_error}
            )
            return False

        self.state = BackendState.REMOTE_ACTIVE
        self.last_error = None
        self._reprobe_delay = self._reprobe_initial
        logger.info("Remote object storage active")
        return True

    def _activate_local(self) -> None:
        self._backend = self.local_store
        self.state = BackendState.LOCAL_ACTIVE
        self._schedule_next_probe()
        logger.info(
            "Local filesystem storage active",
            extra={"root": str(self._local_root), "remote_configured": self._remote_enabled}
        )

    def _schedule_next_probe(self) -> None:
        self._next_probe_at = self._clock() + self._reprobe_delay
