"""Adapter: wrap aio_pika.IncomingMessage to implement ports.IncomingMessage."""
from __future__ import annotations

from aio_pika.abc import AbstractIncomingMessage

from pipecat.app.core.errors import ChannelError


class AioPikaMessageAdapter:
    """Implements pipecat.app.ports.incoming_message.IncomingMessage for aio_pika."""

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def delivery_tag(self) -> int | None:
        return self._message.delivery_tag

    async def ack(self) -> None:
        try:
            await self._message.ack(multiple=False)
        except Exception as exc:
            raise ChannelError(f"failed to ack delivery {self.delivery_tag}: {exc}") from exc
