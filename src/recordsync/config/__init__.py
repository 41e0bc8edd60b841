"""Configuration module for recordsync.

Provides Pydantic Settings-based configuration with environment variable support.

Usage:
    from recordsync.config import ClientSettings

    settings = ClientSettings()  # Loads from RECORDSYNC_* env vars
"""

from recordsync.config.settings import ClientSettings

__all__ = ["ClientSettings"]
