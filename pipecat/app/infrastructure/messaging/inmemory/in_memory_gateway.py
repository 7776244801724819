"""In-memory queue gateway for tests and local mode.

Messages published on a gateway are delivered by the same gateway, so a single
instance can stand in for a broker queue. Nothing survives the process.
"""
from __future__ import annotations

import asyncio

from pipecat.app.core.errors import ConsumeRegistrationError, PublishError
from pipecat.app.domain.models import SessionConfig


class InMemoryDelivery:
    def __init__(self, body: bytes, gateway: "InMemoryGateway") -> None:
        self._body = body
        self._gateway = gateway
        self.ack_count = 0

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def acked(self) -> bool:
        return self.ack_count > 0

    async def ack(self) -> None:
        self.ack_count += 1
        self._gateway.acked.append(self._body)


class _InMemoryStream:
    def __init__(self, buffer: asyncio.Queue[InMemoryDelivery]) -> None:
        self._buffer = buffer

    async def next(self, timeout: float | None = None) -> InMemoryDelivery | None:
        try:
            return await asyncio.wait_for(self._buffer.get(), timeout)
        except asyncio.TimeoutError:
            return None


class InMemoryGateway:
    def __init__(self, config: SessionConfig, *, fail_publish_after: int | None = None) -> None:
        self._config = config
        self._fail_publish_after = fail_publish_after
        self._pending: list[bytes] = []
        self._buffer: asyncio.Queue[InMemoryDelivery] | None = None
        self.published: list[tuple[str, str, bytes, bool]] = []
        self.deliveries: list[InMemoryDelivery] = []
        self.acked: list[bytes] = []
        self.connected = False
        self.closed = False

    def enqueue(self, *bodies: bytes) -> None:
        """Make bodies available for delivery, as if another producer published them."""
        for body in bodies:
            self._deliver(body)

    def _deliver(self, body: bytes) -> None:
        if self._buffer is None:
            self._pending.append(body)
            return
        delivery = InMemoryDelivery(body, self)
        if self._config.auto_ack:
            self.acked.append(body)
        self.deliveries.append(delivery)
        self._buffer.put_nowait(delivery)

    async def connect(self) -> None:
        self.connected = True

    async def publish(self, body: bytes) -> None:
        if not self.connected:
            raise PublishError("gateway not connected")
        if self._fail_publish_after is not None and len(self.published) >= self._fail_publish_after:
            raise PublishError("in-memory publish failure")
        self.published.append((self._config.exchange, self._config.queue_name, body, self._config.durable))
        self._deliver(body)

    async def consume(self) -> _InMemoryStream:
        if not self.connected:
            raise ConsumeRegistrationError("gateway not connected")
        if self._buffer is None:
            self._buffer = asyncio.Queue()
            pending, self._pending = self._pending, []
            for body in pending:
                self._deliver(body)
        return _InMemoryStream(self._buffer)

    async def close(self) -> None:
        self.connected = False
        self.closed = True
