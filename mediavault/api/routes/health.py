"""
Health check endpoints.

We provide two endpoints:
- /health: Basic liveness check (is the process running?)
- /health/ready: Readiness check (is a storage backend active?)

The distinction matters in orchestration systems like Kubernetes
where liveness and readiness have different behaviors.
"""

import logging
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ... import __version__
from ..dependencies import SettingsDep, current_storage_system

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """
    Health check response.

    Standardized format makes it easy for monitoring tools to parse.
    """
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    """Individual readiness check result."""
    name: str
    status: str  # "ok" or "error"
    error: str | None = None
    detail: str | None = None


class ReadinessResponse(BaseModel):
    """Readiness check response with details."""
    status: str  # "ready" or "not_ready"
    version: str
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the service is running. Does not check storage.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """
    Liveness check - is the process alive?

    This endpoint should be very fast and not touch storage.
    """
    return HealthResponse(
        status="ok",
        version=__version__,
        details={"mock_mode": {"r2": settings.r2_mock_mode}},
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 200 once a storage backend is active.",
    responses={
        503: {
            "description": "Service not ready",
            "model": ReadinessResponse,
        }
    },
)
async def readiness_check(settings: SettingsDep):
    """
    Readiness check - can we serve traffic?

    Storage must be initialized. Missing R2 configuration is reported
    but does not fail readiness, since the local backend takes over.
    """
    checks: list[ReadinessCheck] = []
    all_ok = True

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        checks.append(ReadinessCheck(
            name="configuration",
            status="ok",
            detail=f"Remote storage not configured ({', '.join(missing_fields)}); using local filesystem"
        ))
    else:
        checks.append(ReadinessCheck(name="configuration", status="ok"))

    system = current_storage_system()
    if system is None or not system.selector.is_initialized:
        checks.append(ReadinessCheck(
            name="storage",
            status="error",
            error="Storage not initialized"
        ))
        all_ok = False
    else:
        selector = system.selector
        checks.append(ReadinessCheck(
            name="storage",
            status="ok",
            detail=selector.last_error,
        ))
        checks.append(ReadinessCheck(
            name="backend",
            status="ok",
            detail=f"{selector.backend_kind.value} ({selector.state.value})",
        ))

    response = ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        version=__version__,
        checks=checks
    )

    if not all_ok:
        logger.warning(
            "Readiness check failed",
            extra={
                "checks": [
                    {"name": c.name, "status": c.status, "error": c.error}
                    for c in checks
                ]
            }
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
