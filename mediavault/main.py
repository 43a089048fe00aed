"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn mediavault.main:app --reload

For production (one process; the background loops are per-process):
    uvicorn mediavault.main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import build_storage_system, prepare_directories, set_storage_system
from .api.routes import health, object_storage, storage
from .config.settings import Settings, get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup picks the canonical backend (R2 or local filesystem) and
    starts the replication, sync, monitor, health and cleanup loops.
    Shutdown stops the loops between iterations.
    """
    # Startup
    settings: Settings = app.state.settings
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "MediaVault API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {"r2": settings.r2_mock_mode},
            "storage_root": str(settings.storage_root),
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Not fatal: the selector falls back to the local filesystem
        logger.warning(
            "Remote storage not fully configured",
            extra={"missing_fields": missing_fields}
        )

    prepare_directories(settings)
    system = build_storage_system(settings)
    await asyncio.to_thread(system.initialize)
    set_storage_system(system)
    await system.start()

    yield

    # Shutdown
    logger.info("MediaVault API shutting down")
    await system.stop()
    set_storage_system(None)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application. Tests pass their
    own Settings; the same instance is then served to every route.
    """
    explicit_settings = settings is not None
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Durable storage for uploaded videos.

        ## Features

        - Canonical storage in Cloudflare R2, with a local filesystem
          fallback that behaves identically
        - Automatic replication of large objects to backup locations
        - Periodic sync to a cloud-backup location
        - Restore of lost objects from the backup locations

        ## Endpoints

        - **Objects**: `/api/object-storage/...` upload, fetch, delete, list
        - **Administration**: `/api/storage/...` status, usage, health,
          backup-all, restore, reprobe
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    if explicit_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        object_storage.router,
        prefix="/api/object-storage",
        tags=["Object Storage"],
    )

    app.include_router(
        storage.router,
        prefix="/api/storage",
        tags=["Storage"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "MediaVault Storage API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "mediavault.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
