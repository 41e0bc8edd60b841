"""Shared test fixtures."""

import sys

import pytest

# Ensure src is in path
sys.path.insert(0, "src")

from recordsync import Client, ClientSettings, IdentityPolicy, InMemoryTransport
from recordsync.storage import ObjectStateStore


@pytest.fixture
def settings() -> ClientSettings:
    """Settings independent of the environment."""
    return ClientSettings(
        server_url="http://localhost:1337/parse",
        application_id="test-app",
        request_batch_size=20,
        identity_policy=IdentityPolicy.SHARED,
        max_retries=1,
    )


@pytest.fixture
def transport() -> InMemoryTransport:
    """Fresh in-memory backend."""
    return InMemoryTransport()


@pytest.fixture
def store() -> ObjectStateStore:
    """Fresh shared-identity state store."""
    return ObjectStateStore()


@pytest.fixture
def client(settings: ClientSettings, transport: InMemoryTransport, store: ObjectStateStore) -> Client:
    """Client wired to the in-memory backend."""
    return Client(settings, transport=transport, store=store)
