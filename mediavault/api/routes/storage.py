"""
Storage administration endpoints.

Status, usage and health reports across every storage location, plus
the operations an operator triggers by hand: backing up everything,
restoring a lost object and re-probing the remote backend.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...core.storage.errors import ObjectNotFound
from ...core.storage.models import utc_now
from ..dependencies import StorageSystemDep

logger = logging.getLogger(__name__)

router = APIRouter()


class StatusResponse(BaseModel):
    success: bool = True
    storage: dict[str, Any]
    timestamp: str


class UsageResponse(BaseModel):
    success: bool = True
    usage: dict[str, Any]


class HealthReportResponse(BaseModel):
    success: bool = True
    health: dict[str, Any]


class BackupResponse(BaseModel):
    success: bool = True
    message: str
    scheduled_files: int


class RestoreResponse(BaseModel):
    success: bool = True
    message: str
    location: str


class ReprobeResponse(BaseModel):
    success: bool = True
    state: str
    backend_kind: Optional[str] = None
    last_error: Optional[str] = None


@router.get("/status", response_model=StatusResponse, summary="Storage status")
async def storage_status(storage: StorageSystemDep) -> StatusResponse:
    return StatusResponse(
        storage=await storage.status(),
        timestamp=utc_now().isoformat(),
    )


@router.get("/usage", response_model=UsageResponse, summary="Storage usage")
async def storage_usage(storage: StorageSystemDep) -> UsageResponse:
    report = await storage.usage()
    return UsageResponse(usage=report.to_dict())


@router.get("/health", response_model=HealthReportResponse, summary="Storage node health")
async def storage_health(storage: StorageSystemDep) -> HealthReportResponse:
    """
    Probe every storage node now.

    Local nodes are healthy when their directory is readable and
    writable; the remote node, if active, when the bucket answers.
    """
    report = await storage.health()
    return HealthReportResponse(health=report.to_dict())


@router.post(
    "/backup-all",
    response_model=BackupResponse,
    status_code=status.HTTP_200_OK,
    summary="Back up every tracked file",
)
async def backup_all(storage: StorageSystemDep) -> BackupResponse:
    """Schedule fan-out and a cloud sync for every tracked file. Returns immediately."""
    scheduled = await storage.backup_all()
    return BackupResponse(
        message="Backup of all files initiated",
        scheduled_files=scheduled,
    )


@router.post(
    "/restore/{filename}",
    response_model=RestoreResponse,
    summary="Restore a video into the canonical backend",
    responses={404: {"description": "Not found in any backup location"}},
)
async def restore_object(filename: str, storage: StorageSystemDep):
    try:
        result = await storage.restore(filename)
    except ObjectNotFound:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "File not found in any backup location"},
        )

    return RestoreResponse(
        message=f"{filename} restored",
        location=result.location,
    )


@router.post("/reprobe", response_model=ReprobeResponse, summary="Re-probe the remote backend")
async def reprobe_backend(storage: StorageSystemDep) -> ReprobeResponse:
    """Retry the remote backend now, ignoring the backoff schedule."""
    state = await storage.reprobe(force=True)
    kind = storage.selector.backend_kind
    logger.info("Backend re-probe requested", extra={"state": state.value})
    return ReprobeResponse(
        state=state.value,
        backend_kind=kind.value if kind else None,
        last_error=storage.selector.last_error,
    )
