"""Data models for transport adapters."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias


@dataclass(frozen=True, slots=True)
class TransportCall:
    """One request as a transport received it."""

    method: str
    path: str
    body: Any = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_batch(self) -> bool:
        return self.path == "batch"

    @property
    def sub_requests(self) -> list[dict[str, Any]]:
        """Sub-requests of a batch call, empty otherwise."""
        if not self.is_batch or not isinstance(self.body, dict):
            return []
        return list(self.body.get("requests", []))


RejectHook: TypeAlias = Callable[[str, str, dict[str, Any]], tuple[int, str] | None]
"""(method, path, body) -> (error code, message) to reject the request, or None."""
