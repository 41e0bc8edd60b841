"""REST transport implementing the Transport protocol over httpx.

Connection failures and timeouts are retried with tenacity according to a
RetryPolicy; server rejections are never retried.

Usage:
    from recordsync.adapters.rest import RestTransport

    transport = RestTransport("https://api.example.com/parse", application_id="app")
    transport = RestTransport.from_settings(ClientSettings())

    async with transport:
        response = await transport.send("GET", "classes/Post/abc123")
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
import tenacity

from recordsync.core.errors import ErrorCode, ServerError, TransportError
from recordsync.scheduling import RetryPolicy

if TYPE_CHECKING:
    from recordsync.config import ClientSettings

logger = logging.getLogger(__name__)

STATUS_KEY = "_status"


class RestTransport:
    """Sends JSON requests to a REST backend.

    Args:
        server_url: Base URL; request paths are resolved against it.
        application_id: Sent as ``X-Parse-Application-Id`` when set.
        timeout: Per-request timeout in seconds.
        retry_policy: Attempts and backoff for connection-level failures.
        client: Pre-built httpx client (for custom transports or tests).
    """

    def __init__(
        self,
        server_url: str,
        *,
        application_id: str | None = None,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = server_url if server_url.endswith("/") else f"{server_url}/"
        self._application_id = application_id
        self._retry_policy = retry_policy or RetryPolicy()
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> RestTransport:
        return cls(
            settings.server_url,
            application_id=settings.application_id,
            timeout=settings.timeout,
            retry_policy=settings.retry_policy(),
        )

    async def __aenter__(self) -> RestTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, options: dict[str, Any]) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._application_id:
            headers["X-Parse-Application-Id"] = self._application_id
        if token := options.get("session_token"):
            headers["X-Parse-Session-Token"] = token
        if context := options.get("context"):
            headers["X-Parse-Cloud-Context"] = json.dumps(context)
        if options.get("installation_id"):
            headers["X-Parse-Installation-Id"] = options["installation_id"]
        return headers

    async def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request, retrying connection failures.

        Returns:
            Decoded JSON. Dict responses carry the HTTP status under ``_status``.

        Raises:
            ServerError: The server answered with an error status.
            TransportError: No usable response after every attempt.
        """
        url = f"{self._base_url}{path}"
        headers = self._headers(options or {})
        content = json.dumps(body) if body is not None and method != "GET" else None
        policy = self._retry_policy

        if policy.max_attempts <= 1:
            try:
                response = await self._client.request(method, url, content=content, headers=headers)
            except httpx.TransportError as e:
                raise TransportError(f"{method} {path} failed: {e}", _error_code(e)) from e
            return self._parse(response)

        retryer = self._build_retryer(policy)
        try:
            async for attempt in retryer:
                with attempt:
                    response = await self._client.request(
                        method, url, content=content, headers=headers
                    )
        except tenacity.RetryError as e:
            cause = e.last_attempt.exception()
            msg = f"{method} {path} failed after {policy.max_attempts} attempts"
            raise TransportError(msg, _error_code(cause)) from cause
        return self._parse(response)

    def _build_retryer(self, policy: RetryPolicy) -> tenacity.AsyncRetrying:
        """Build a tenacity retryer from RetryPolicy configuration."""
        stop = tenacity.stop_after_attempt(policy.max_attempts)

        wait: tenacity.wait.wait_base
        if policy.backoff == "exponential":
            wait = tenacity.wait_exponential(multiplier=policy.base_delay, min=policy.base_delay)
        elif policy.backoff == "linear":
            wait = tenacity.wait_incrementing(start=policy.base_delay, increment=policy.base_delay)
        else:
            wait = tenacity.wait_none()

        return tenacity.AsyncRetrying(
            stop=stop,
            wait=wait,
            retry=tenacity.retry_if_exception_type(httpx.TransportError),
            before_sleep=lambda state: logger.warning(
                "Request failed (attempt %d), retrying: %r",
                state.attempt_number,
                state.outcome.exception() if state.outcome else None,
            ),
            reraise=False,
        )

    def _parse(self, response: httpx.Response) -> Any:
        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            if response.is_error:
                raise ServerError(response.text or response.reason_phrase, _status_code(response)) from e
            raise TransportError("Received an error with invalid JSON", ErrorCode.INVALID_JSON) from e

        if response.is_error:
            if isinstance(data, dict) and "code" in data:
                raise ServerError(data.get("error", ""), data["code"])
            raise ServerError(response.reason_phrase, _status_code(response))
        if isinstance(data, dict):
            data[STATUS_KEY] = response.status_code
        return data


def _error_code(error: BaseException | None) -> ErrorCode:
    if isinstance(error, httpx.TimeoutException):
        return ErrorCode.TIMEOUT
    return ErrorCode.CONNECTION_FAILED


def _status_code(response: httpx.Response) -> ErrorCode:
    if response.status_code == 404:
        return ErrorCode.OBJECT_NOT_FOUND
    if response.status_code == 429:
        return ErrorCode.REQUEST_LIMIT_EXCEEDED
    return ErrorCode.INTERNAL_SERVER_ERROR
