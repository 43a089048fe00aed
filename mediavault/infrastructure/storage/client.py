"""
Object storage backends for uploaded videos.

Two variants share one contract:
- RemoteObjectStore: Cloudflare R2 through its S3-compatible API (boto3)
- LocalFilesystemStore: plain files under a dedicated root, used when
  the remote store is not configured or cannot be reached

Callers never branch on the variant; they ask `backend.kind` when they
need to report which one is active.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ...core.storage.errors import (
    BackendInitError,
    ObjectNotFound,
    StorageError,
    WriteError,
)
from ...core.storage.fileops import atomic_write_bytes
from ...core.storage.models import (
    BackendInfo,
    BackendKind,
    ObjectListing,
    StoredObject,
    generate_object_id,
    is_safe_object_id,
    object_url,
)

logger = logging.getLogger(__name__)

METADATA_DIR = "metadata"
_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"  # R2 uses 'auto' for region
    key_prefix: str = ""


class StorageBackend(Protocol):
    """
    Protocol for canonical object storage.

    Both variants implement it with identical semantics, so tests and
    services can run against the local store and production can run
    against R2 without code changes.
    """

    kind: BackendKind

    async def put(self, data: bytes, original_name: str) -> StoredObject:
        """Store bytes under a newly generated id."""
        ...

    async def put_file(self, path: Path, original_name: str) -> StoredObject:
        """Read a local file and store its bytes under a new id."""
        ...

    async def store(self, object_id: str, data: bytes) -> None:
        """Write bytes under an existing id (restore path)."""
        ...

    async def get(self, object_id: str) -> bytes:
        """Return the object's bytes or raise ObjectNotFound."""
        ...

    async def exists(self, object_id: str) -> bool:
        ...

    async def delete(self, object_id: str) -> bool:
        """Delete the object. Returns False if it did not exist."""
        ...

    async def list(self) -> list[ObjectListing]:
        ...

    async def info(self) -> BackendInfo:
        ...

    async def probe(self) -> None:
        """Raise if the medium is not currently usable."""
        ...

    def location_of(self, object_id: str) -> str:
        """Concrete path or URI of the canonical copy."""
        ...


class BaseStorageBackend(ABC):
    """
    Behaviour shared by every variant.

    Id generation, metadata side records and file ingestion live here
    so the variants only differ in how bytes reach their medium.
    """

    kind: BackendKind

    async def put(self, data: bytes, original_name: str) -> StoredObject:
        stored = StoredObject(
            id=generate_object_id(original_name),
            original_name=original_name,
            size_bytes=len(data),
        )
        await self.store(stored.id, data)

        # Metadata is observability only; the data write stands regardless
        try:
            await self._write_metadata(stored)
        except Exception as e:
            logger.warning(
                "Metadata write failed",
                extra={"object_id": stored.id, "error": str(e)}
            )

        logger.info(
            "Stored object",
            extra={
                "object_id": stored.id,
                "size_bytes": stored.size_bytes,
                "backend": self.kind.value,
            }
        )
        return stored

    async def put_file(self, path: Path, original_name: str) -> StoredObject:
        path = Path(path)
        if not path.is_file():
            raise WriteError(f"Source file not found: {path}")
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise WriteError(f"Could not read source file {path}: {e}")
        return await self.put(data, original_name)

    @abstractmethod
    async def store(self, object_id: str, data: bytes) -> None:
        """Write bytes under an existing id."""

    @abstractmethod
    async def _write_metadata(self, stored: StoredObject) -> None:
        """Persist the metadata record next to the object."""


class RemoteObjectStore(BaseStorageBackend):
    """
    Cloudflare R2 object storage.

    Uses boto3 because R2 is S3-compatible. Construction verifies the
    credentials and the bucket up front so a broken configuration is
    detected by the backend selector instead of by the first upload.
    """

    kind = BackendKind.REMOTE

    def __init__(self, config: StorageConfig) -> None:
        missing = [
            name for name, value in (
                ("access_key_id", config.access_key_id),
                ("secret_access_key", config.secret_access_key),
                ("bucket_name", config.bucket_name),
                ("endpoint_url", config.endpoint_url),
            ) if not value
        ]
        if missing:
            raise BackendInitError(
                f"Remote storage not configured, missing: {', '.join(missing)}"
            )

        self._config = config
        self._prefix = config.key_prefix.rstrip("/") + "/" if config.key_prefix else ""

        # R2 requires v4 signatures and path-style addressing
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        try:
            self._s3_client = boto3.client(
                's3',
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
                config=boto_config,
            )
            self._s3_client.head_bucket(Bucket=config.bucket_name)
        except Exception as e:
            raise BackendInitError(f"Remote storage unavailable: {e}") from e

        logger.info(
            "Initialized R2 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    @property
    def bucket(self) -> str:
        return self._config.bucket_name

    def _key(self, object_id: str) -> str:
        return f"{self._prefix}{object_id}"

    def _metadata_key(self, object_id: str) -> str:
        return f"{self._prefix}{METADATA_DIR}/{object_id}.json"

    def location_of(self, object_id: str) -> str:
        return f"s3://{self.bucket}/{self._key(object_id)}"

    async def store(self, object_id: str, data: bytes) -> None:
        if not is_safe_object_id(object_id):
            raise WriteError(f"Invalid object id: {object_id}")
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self.bucket,
                Key=self._key(object_id),
                Body=data,
                ContentType='video/mp4',
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"object_id": object_id, "error": str(e)}
            )
            raise WriteError(f"Upload failed: {e}")

    async def _write_metadata(self, stored: StoredObject) -> None:
        await asyncio.to_thread(
            self._s3_client.put_object,
            Bucket=self.bucket,
            Key=self._metadata_key(stored.id),
            Body=json.dumps(stored.metadata_record()).encode("utf-8"),
            ContentType='application/json',
        )

    async def get(self, object_id: str) -> bytes:
        if not is_safe_object_id(object_id):
            raise ObjectNotFound(object_id)
        try:
            response = await asyncio.to_thread(
                self._s3_client.get_object,
                Bucket=self.bucket,
                Key=self._key(object_id),
            )
            return response['Body'].read()
        except ClientError as e:
            if _is_missing(e):
                raise ObjectNotFound(object_id)
            logger.error(
                "Failed to download object",
                extra={"object_id": object_id, "error": str(e)}
            )
            raise StorageError(f"Download failed: {e}")

    async def exists(self, object_id: str) -> bool:
        if not is_safe_object_id(object_id):
            return False
        try:
            await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self.bucket,
                Key=self._key(object_id),
            )
            return True
        except ClientError as e:
            if _is_missing(e):
                return False
            raise StorageError(f"Existence check failed: {e}")

    async def delete(self, object_id: str) -> bool:
        # S3 deletes succeed for missing keys, so check first to report accurately
        if not await self.exists(object_id):
            return False
        try:
            await asyncio.to_thread(
                self._s3_client.delete_objects,
                Bucket=self.bucket,
                Delete={'Objects': [
                    {'Key': self._key(object_id)},
                    {'Key': self._metadata_key(object_id)},
                ]},
            )
        except ClientError as e:
            logger.error(
                "Failed to delete object",
                extra={"object_id": object_id, "error": str(e)}
            )
            raise StorageError(f"Delete failed: {e}")

        logger.info("Deleted object", extra={"object_id": object_id})
        return True

    def _iter_objects(self) -> Iterator[tuple[str, int]]:
        """Yield (object_id, size) for every object under the prefix."""
        paginator = self._s3_client.get_paginator('list_objects_v2')
        metadata_prefix = f"{self._prefix}{METADATA_DIR}/"
        for page in paginator.paginate(Bucket=self.bucket, Prefix=self._prefix):
            for obj in page.get('Contents', []):
                key = obj['Key']
                if key.startswith(metadata_prefix):
                    continue
                object_id = key[len(self._prefix):]
                if "/" in object_id:
                    continue
                yield object_id, int(obj.get('Size', 0))

    async def list(self) -> list[ObjectListing]:
        objects = await asyncio.to_thread(lambda: list(self._iter_objects()))
        return [ObjectListing(id=object_id, url=object_url(object_id)) for object_id, _ in objects]

    async def info(self) -> BackendInfo:
        objects = await asyncio.to_thread(lambda: list(self._iter_objects()))
        return BackendInfo(
            enabled=True,
            backend_kind=self.kind,
            object_count=len(objects),
            total_size_bytes=sum(size for _, size in objects),
            bucket=self.bucket,
        )

    async def probe(self) -> None:
        await asyncio.to_thread(self._s3_client.head_bucket, Bucket=self.bucket)


class LocalFilesystemStore(BaseStorageBackend):
    """
    Filesystem-backed store with the same contract as RemoteObjectStore.

    Layout:
        <root>/<id>
        <root>/metadata/<id>.json
    """

    kind = BackendKind.LOCAL

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.metadata_root = self.root / METADATA_DIR
        logger.info("Initialized local filesystem storage", extra={"root": str(self.root)})

    def _path(self, object_id: str) -> Path:
        return self.root / object_id

    def _metadata_path(self, object_id: str) -> Path:
        return self.metadata_root / f"{object_id}.json"

    def location_of(self, object_id: str) -> str:
        return str(self._path(object_id))

    async def store(self, object_id: str, data: bytes) -> None:
        if not is_safe_object_id(object_id):
            raise WriteError(f"Invalid object id: {object_id}")
        try:
            await asyncio.to_thread(atomic_write_bytes, self._path(object_id), data)
        except OSError as e:
            logger.error(
                "Failed to write object",
                extra={"object_id": object_id, "error": str(e)}
            )
            raise WriteError(f"Could not write {object_id}: {e}")

    async def _write_metadata(self, stored: StoredObject) -> None:
        payload = json.dumps(stored.metadata_record(), indent=2).encode("utf-8")
        await asyncio.to_thread(atomic_write_bytes, self._metadata_path(stored.id), payload)

    async def get(self, object_id: str) -> bytes:
        if not is_safe_object_id(object_id):
            raise ObjectNotFound(object_id)
        path = self._path(object_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError):
            raise ObjectNotFound(object_id)

    async def exists(self, object_id: str) -> bool:
        return is_safe_object_id(object_id) and self._path(object_id).is_file()

    async def delete(self, object_id: str) -> bool:
        if not await self.exists(object_id):
            return False
        self._path(object_id).unlink(missing_ok=True)
        self._metadata_path(object_id).unlink(missing_ok=True)
        logger.info("Deleted object", extra={"object_id": object_id})
        return True

    def _object_files(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(
            path for path in self.root.iterdir()
            if path.is_file() and path.name.startswith("video_") and not path.name.endswith(".json")
        )

    async def list(self) -> list[ObjectListing]:
        files = await asyncio.to_thread(self._object_files)
        return [ObjectListing(id=path.name, url=object_url(path.name)) for path in files]

    async def info(self) -> BackendInfo:
        files = await asyncio.to_thread(self._object_files)
        return BackendInfo(
            enabled=True,
            backend_kind=self.kind,
            object_count=len(files),
            total_size_bytes=sum(path.stat().st_size for path in files),
        )

    async def probe(self) -> None:
        if not self.root.is_dir():
            raise StorageError(f"Local storage root missing: {self.root}")


def _is_missing(error: ClientError) -> bool:
    code = str(error.response.get('Error', {}).get('Code', ''))
    return code in _MISSING_KEY_CODES


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_backend(
    config: Optional[StorageConfig] = None,
    local_root: Optional[Path] = None,
    mock_mode: bool = False,
) -> StorageBackend:
    """
    Create a storage backend.

    Args:
        config: Remote storage configuration (required unless mock_mode)
        local_root: Root directory for the local store (required in mock_mode)
        mock_mode: If True, return the local filesystem store

    Raises:
        BackendInitError: remote construction failed
        ValueError: required argument missing
    """
    if mock_mode:
        if local_root is None:
            raise ValueError("local_root is required in mock mode")
        return LocalFilesystemStore(local_root)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return RemoteObjectStore(config)
