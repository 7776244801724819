"""Port: abstraction for a delivered queue message. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol


class IncomingMessage(Protocol):
    """Transport-agnostic delivery. Application uses this; broker adapters implement it."""

    @property
    def body(self) -> bytes: ...

    async def ack(self) -> None:
        """Single (non-multiple) acknowledgment of this delivery."""
        ...
