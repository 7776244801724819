"""Port: queue gateway for publishing and consuming. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol

from pipecat.app.ports.incoming_message import IncomingMessage


class DeliveryStream(Protocol):
    """Infinite stream of deliveries; not restartable once the channel closes."""

    async def next(self, timeout: float | None = None) -> IncomingMessage | None:
        """Return the next delivery, or None once `timeout` seconds pass without one."""
        ...


class QueueGateway(Protocol):
    async def connect(self) -> None:
        """Open connection and channel; declare the queue unless creation is disabled."""
        ...

    async def publish(self, body: bytes) -> None: ...

    async def consume(self) -> DeliveryStream:
        """Register a consumer on the session queue."""
        ...

    async def close(self) -> None:
        """Release channel and connection. Safe to call after a failed connect()."""
        ...
