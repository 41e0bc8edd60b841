"""Tests for the httpx REST transport.

Critical Invariants:
- Error statuses become ServerError with the backend's code
- Connection failures are retried, server rejections are not
- Dict responses carry the HTTP status
"""

import json

import httpx
import pytest

from recordsync import ClientSettings
from recordsync.adapters.rest import RestTransport
from recordsync.core.errors import ErrorCode, ServerError, TransportError
from recordsync.scheduling import RetryPolicy


def make_transport(handler, **kwargs) -> RestTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RestTransport("http://backend.test/parse", application_id="app", client=client, **kwargs)


@pytest.mark.asyncio
async def test_sends_json_with_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"objectId": "p1", "createdAt": "2024-01-01T00:00:00.000Z"})

    async with make_transport(handler) as transport:
        response = await transport.send(
            "POST", "classes/Post", {"title": "t"}, {"session_token": "r:abc", "context": {"a": 1}}
        )

    assert response == {"objectId": "p1", "createdAt": "2024-01-01T00:00:00.000Z", "_status": 201}
    request = seen[0]
    assert str(request.url) == "http://backend.test/parse/classes/Post"
    assert json.loads(request.content) == {"title": "t"}
    assert request.headers["X-Parse-Application-Id"] == "app"
    assert request.headers["X-Parse-Session-Token"] == "r:abc"
    assert json.loads(request.headers["X-Parse-Cloud-Context"]) == {"a": 1}


@pytest.mark.asyncio
async def test_get_sends_no_body():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"objectId": "p1"})

    transport = make_transport(handler)
    await transport.send("GET", "classes/Post/p1", {})
    assert seen[0].content == b""


@pytest.mark.asyncio
async def test_batch_list_response_is_returned_as_is():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"success": {"objectId": "a"}}])

    assert await make_transport(handler).send("POST", "batch", {"requests": []}) == [
        {"success": {"objectId": "a"}}
    ]


@pytest.mark.asyncio
async def test_error_body_maps_to_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": 137, "error": "duplicate"})

    with pytest.raises(ServerError) as exc:
        await make_transport(handler).send("POST", "classes/Post", {})
    assert exc.value.code == ErrorCode.DUPLICATE_VALUE
    assert exc.value.message == "duplicate"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "code"),
    [
        (404, ErrorCode.OBJECT_NOT_FOUND),
        (429, ErrorCode.REQUEST_LIMIT_EXCEEDED),
        (502, ErrorCode.INTERNAL_SERVER_ERROR),
    ],
)
async def test_bare_error_status_maps_to_code(status, code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="<html>down</html>")

    with pytest.raises(ServerError) as exc:
        await make_transport(handler).send("GET", "classes/Post/p1")
    assert exc.value.code == code


@pytest.mark.asyncio
async def test_invalid_json_on_success_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with pytest.raises(TransportError) as exc:
        await make_transport(handler).send("GET", "classes/Post/p1")
    assert exc.value.code == ErrorCode.INVALID_JSON


@pytest.mark.asyncio
async def test_timeout_without_retry():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransportError) as exc:
        await make_transport(handler).send("GET", "classes/Post/p1")
    assert exc.value.code == ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_connection_failures_are_retried():
    """Connect errors are retried up to max_attempts.

    Why: Transient network failures should not surface as save errors.
    """
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"objectId": "p1"})

    transport = make_transport(handler, retry_policy=RetryPolicy(max_attempts=3, backoff="none"))
    assert (await transport.send("GET", "classes/Post/p1"))["objectId"] == "p1"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retries_exhausted_raise_transport_error():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    transport = make_transport(handler, retry_policy=RetryPolicy(max_attempts=2, backoff="linear", base_delay=0))
    with pytest.raises(TransportError) as exc:
        await transport.send("GET", "classes/Post/p1")
    assert len(attempts) == 2
    assert exc.value.code == ErrorCode.CONNECTION_FAILED
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_server_errors_are_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(400, json={"code": 142, "error": "invalid"})

    transport = make_transport(handler, retry_policy=RetryPolicy(max_attempts=3))
    with pytest.raises(ServerError):
        await transport.send("POST", "classes/Post", {})
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_from_settings():
    settings = ClientSettings(server_url="http://backend.test/parse", application_id="app", max_retries=2)
    transport = RestTransport.from_settings(settings)
    assert transport._retry_policy.max_attempts == 2
    await transport.aclose()
