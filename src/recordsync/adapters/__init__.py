"""Transport adapters.

Provides implementations of the controller's Transport protocol:
- InMemoryTransport: process-local fake backend for tests and examples
- RestTransport: JSON over HTTP (httpx, with tenacity retries)

Usage:
    from recordsync.adapters import InMemoryTransport

    # HTTP transport imports httpx on demand
    from recordsync.adapters.rest import RestTransport
"""

from recordsync.adapters.memory import InMemoryTransport
from recordsync.adapters.models import RejectHook, TransportCall

__all__ = [
    "InMemoryTransport",
    "TransportCall",
    "RejectHook",
]
