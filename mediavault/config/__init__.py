"""
Application configuration using Pydantic settings.

Configuration comes from environment variables with defaults that keep
every byte on the local filesystem.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
