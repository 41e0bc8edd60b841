"""Application-facing client and record handles."""

from recordsync.client.client import Client
from recordsync.client.record import Record

__all__ = ["Client", "Record"]
