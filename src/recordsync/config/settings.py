"""Configuration settings using Pydantic Settings.

Provides typed client configuration with environment variable support.

Usage:
    from recordsync.config import ClientSettings

    # Load from environment variables (RECORDSYNC_*)
    settings = ClientSettings()

    # Or override with explicit values
    settings = ClientSettings(server_url="https://api.example.com/parse", request_batch_size=50)
"""

from __future__ import annotations

from typing import Literal
from urllib.parse import urlsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from recordsync.core.identity import IdentityPolicy
from recordsync.scheduling import RetryPolicy


class ClientSettings(BaseSettings):  # type: ignore[misc]
    """Configuration for a recordsync client.

    Attributes:
        server_url: Base URL of the backend. Its path prefixes batch sub-requests.
        application_id: Application id header sent with every request.
        request_batch_size: Records per batch request for save_all/destroy_all.
        identity_policy: Whether handles to one record share state.
        timeout: Request timeout in seconds.
        max_retries: Attempts per request on connection failures.
        retry_backoff: Backoff between attempts (none, linear, exponential).
        retry_base_delay: Base delay in seconds for the backoff.

    Environment Variables:
        RECORDSYNC_SERVER_URL
        RECORDSYNC_APPLICATION_ID
        RECORDSYNC_REQUEST_BATCH_SIZE
        RECORDSYNC_IDENTITY_POLICY
        RECORDSYNC_TIMEOUT
        RECORDSYNC_MAX_RETRIES
        RECORDSYNC_RETRY_BACKOFF
        RECORDSYNC_RETRY_BASE_DELAY
    """

    model_config = SettingsConfigDict(
        env_prefix="RECORDSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server_url: str = "http://localhost:1337/parse"
    application_id: str | None = None
    request_batch_size: int = Field(default=20, ge=1)
    identity_policy: IdentityPolicy = IdentityPolicy.SHARED
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: Literal["none", "linear", "exponential"] = "exponential"
    retry_base_delay: float = Field(default=0.2, ge=0)

    @property
    def server_path(self) -> str:
        """Path component of ``server_url`` with a trailing slash."""
        path = urlsplit(self.server_url).path
        return path if path.endswith("/") else f"{path}/"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            backoff=self.retry_backoff,
            base_delay=self.retry_base_delay,
        )
