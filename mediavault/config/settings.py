"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and an optional
.env file) with defaults that run the whole service on the local
filesystem. Setting the R2 credentials switches the canonical store to
Cloudflare R2; leaving them empty, or turning on r2_mock_mode, keeps
everything local.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like replication_locations), use comma-separated values.
    """

    # API Configuration
    api_title: str = "MediaVault Storage API"
    api_version: str = "v1"

    # R2/S3 Storage Configuration
    r2_account_id: str = Field(
        default="",
        description="Cloudflare account ID for R2"
    )
    r2_access_key_id: str = Field(
        default="",
        description="R2 access key ID"
    )
    r2_secret_access_key: str = Field(
        default="",
        description="R2 secret access key"
    )
    r2_bucket_name: str = Field(
        default="mediavault-videos",
        description="R2 bucket name for video storage"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="R2 endpoint URL. Auto-constructed from account_id if not provided."
    )
    r2_key_prefix: str = Field(
        default="",
        description="Optional prefix for every object key, e.g. 'production/'"
    )
    r2_mock_mode: bool = Field(
        default=False,
        description="Skip the remote store entirely and use the local filesystem backend."
    )

    # Filesystem layout
    storage_root: Path = Field(
        default=Path("storage"),
        description="Root holding objects/, primary/, backup/, distributed/ and cloud_backup/"
    )
    local_store_root: Optional[Path] = Field(
        default=None,
        description="Canonical root for the local backend. Defaults to <storage_root>/objects. Must not be a replication location."
    )
    uploads_dir: Path = Field(
        default=Path("uploads"),
        description="Directory for raw uploads, watched and synced"
    )
    thumbnails_dir: Path = Field(
        default=Path("thumbnails"),
        description="Directory for generated thumbnails, watched and synced"
    )

    # Replication and restore
    replication_locations: str = Field(
        default="primary,backup,distributed",
        description="Comma-separated location names (under storage_root) each object is copied to."
    )
    restore_locations: str = Field(
        default="primary,backup,cloud_backup",
        description="Comma-separated location names searched, in order, by restore."
    )
    replication_min_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Objects at or above this size are fanned out automatically."
    )
    replication_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per destination before a replica is marked failed."
    )
    replication_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for exponential backoff between replica attempts."
    )

    # Background loops
    background_tasks_enabled: bool = Field(
        default=True,
        description="Run replication, sync, monitor, health and cleanup loops."
    )
    monitor_interval_seconds: float = Field(default=10.0, gt=0)
    sync_interval_seconds: float = Field(default=300.0, gt=0)
    health_interval_seconds: float = Field(default=120.0, gt=0)
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    reprobe_initial_seconds: float = Field(
        default=30.0,
        gt=0,
        description="First delay before re-trying the remote backend after a fallback."
    )
    reprobe_max_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Upper bound for the re-probe backoff."
    )
    log_retention_days: int = Field(
        default=7,
        ge=1,
        description="Sync/health logs older than this are removed by cleanup."
    )

    # Application Behavior
    max_upload_size_mb: int = Field(
        default=500,
        description="Maximum upload size in MB."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def replication_locations_list(self) -> list[str]:
        return [name.strip() for name in self.replication_locations.split(",") if name.strip()]

    @property
    def restore_locations_list(self) -> list[str]:
        return [name.strip() for name in self.restore_locations.split(",") if name.strip()]

    @property
    def local_store_path(self) -> Path:
        """Canonical root for the local backend."""
        if self.local_store_root is not None:
            return self.local_store_root
        return self.storage_root / "objects"

    @property
    def cloud_backup_path(self) -> Path:
        return self.storage_root / "cloud_backup"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def r2_endpoint(self) -> str:
        """
        Construct R2 endpoint URL from account ID.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    def validate_required_fields(self) -> list[str]:
        """
        Return the R2 fields that are missing while mock mode is off.

        Missing fields are not fatal: the backend selector falls back to
        the local store. The list is reported at startup and by the
        readiness check.
        """
        missing = []

        if not self.r2_mock_mode:
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID or R2_ENDPOINT_URL")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. For tests, call
    get_settings.cache_clear() to reset.
    """
    return Settings()
