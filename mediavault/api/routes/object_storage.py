"""
Object storage API endpoints.

These routes talk to the canonical backend only (R2 when available,
the local filesystem otherwise). Replication and cloud sync happen
behind them and never change a response:
1. Upload writes the canonical copy and returns the new object id
2. Large uploads are queued for fan-out to the replica locations
3. Reads and deletes go straight to the canonical backend
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, File, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...core.storage.errors import BackendUnavailableError, ObjectNotFound, WriteError
from ...core.storage.models import is_safe_object_id
from ..dependencies import SettingsDep, StorageSystemDep

logger = logging.getLogger(__name__)

router = APIRouter()

VIDEO_CACHE_CONTROL = "public, max-age=31536000"


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class StoredObjectResponse(BaseModel):
    """Metadata of a freshly stored object."""
    id: str = Field(description="Generated object id")
    url: str = Field(description="Path the object can be fetched from")
    size: int = Field(description="Size in bytes")
    type: str = Field(description="Object kind")
    originalName: str = Field(description="File name supplied by the client")
    uploadDate: str = Field(description="ISO-8601 creation time")


class UploadResponse(BaseModel):
    success: bool = True
    object: StoredObjectResponse


class DeleteResponse(BaseModel):
    success: bool
    message: str


class ObjectEntry(BaseModel):
    id: str
    url: str


class ObjectListResponse(BaseModel):
    success: bool = True
    videos: list[ObjectEntry]


class StorageInfoResponse(BaseModel):
    success: bool = True
    storage: dict[str, Any]


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _require_safe_id(filename: str) -> None:
    if not is_safe_object_id(filename):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )


def _unavailable(error: BackendUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(error) or "Storage not available",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a video",
    description="Store a video in the canonical backend and queue it for replication",
)
async def upload_object(
    file: Annotated[UploadFile, File(description="Video file to store")],
    storage: StorageSystemDep,
    settings: SettingsDep,
) -> UploadResponse:
    """
    Store an uploaded file.

    The response waits for the canonical write only. Files at or above
    the replication threshold are fanned out in the background.
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file must have a filename",
        )

    data = await file.read()
    if len(data) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size: {settings.max_upload_size_mb}MB",
        )

    try:
        stored = await storage.upload(data, file.filename)
    except WriteError as e:
        logger.error("Failed to store upload", extra={"upload_name": file.filename, "error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store video",
        )
    except BackendUnavailableError as e:
        raise _unavailable(e)

    logger.info(
        "Video stored",
        extra={"object_id": stored.id, "size_bytes": stored.size_bytes}
    )

    record = stored.metadata_record()
    return UploadResponse(
        object=StoredObjectResponse(
            id=stored.id,
            url=stored.url,
            size=record["size"],
            type=record["type"],
            originalName=record["originalName"],
            uploadDate=record["uploadDate"],
        )
    )


@router.get(
    "/video/{filename}",
    summary="Stream a stored video",
    responses={404: {"description": "Video not found"}},
)
async def get_object(filename: str, storage: StorageSystemDep) -> Response:
    _require_safe_id(filename)

    try:
        data = await storage.get(filename)
    except ObjectNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Video not found",
        )
    except BackendUnavailableError as e:
        raise _unavailable(e)

    return Response(
        content=data,
        media_type="video/mp4",
        headers={
            "Accept-Ranges": "bytes",
            "Cache-Control": VIDEO_CACHE_CONTROL,
        },
    )


@router.delete(
    "/video/{filename}",
    response_model=DeleteResponse,
    summary="Delete a stored video",
    responses={404: {"model": DeleteResponse}},
)
async def delete_object(
    filename: str,
    storage: StorageSystemDep,
    purge_replicas: Annotated[
        Optional[bool],
        Query(description="Also delete every replica and the cloud-backup copy"),
    ] = False,
):
    if not is_safe_object_id(filename):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "Video not found"},
        )

    try:
        deleted = await storage.delete(filename, purge_replicas=bool(purge_replicas))
    except BackendUnavailableError as e:
        raise _unavailable(e)

    if not deleted:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "Video not found"},
        )

    logger.info("Video deleted", extra={"object_id": filename, "purge_replicas": purge_replicas})
    return DeleteResponse(success=True, message="Video deleted successfully")


@router.get(
    "/info",
    response_model=StorageInfoResponse,
    summary="Active backend summary",
)
async def storage_info(storage: StorageSystemDep) -> StorageInfoResponse:
    info = await storage.info()
    return StorageInfoResponse(storage=info.to_dict())


@router.get(
    "/videos",
    response_model=ObjectListResponse,
    summary="List stored videos",
)
async def list_objects(storage: StorageSystemDep) -> ObjectListResponse:
    listings = await storage.list_objects()
    return ObjectListResponse(
        videos=[ObjectEntry(id=item.id, url=item.url) for item in listings]
    )
