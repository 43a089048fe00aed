"""
Canonical object storage for uploaded videos.

Supports Cloudflare R2 via the S3-compatible API, with a local
filesystem store that takes over whenever R2 is not available.
"""

from .client import (
    LocalFilesystemStore,
    RemoteObjectStore,
    StorageBackend,
    StorageConfig,
    create_storage_backend,
)
from .selector import BackendSelector

__all__ = [
    "BackendSelector",
    "LocalFilesystemStore",
    "RemoteObjectStore",
    "StorageBackend",
    "StorageConfig",
    "create_storage_backend",
]
