"""
MediaVault - durable storage for uploaded video.

This package contains the complete application:
- core: Framework-agnostic storage logic
- infrastructure: Object storage backends (R2 and local filesystem)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
