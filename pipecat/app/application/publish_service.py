from __future__ import annotations

from typing import Any

from loguru import logger

from pipecat.app.core import SERVICE_NAME
from pipecat.app.ports.line_io import LineSink, LineSource
from pipecat.app.ports.queue_gateway import QueueGateway


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PublishService:
    """
    Publishes every input line as one message and echoes it once the broker took it.

    A publish failure propagates as PublishError and ends the run: a failed publish
    means the channel is gone, and the lines after it must not be echoed.
    """

    def __init__(self, gateway: QueueGateway) -> None:
        self._gateway = gateway

    async def run(self, source: LineSource, sink: LineSink) -> int:
        published = 0
        async for line in source.lines():
            await self._gateway.publish(line)
            sink.write_line(line)
            published += 1
        _log("publish_finished", published=published)
        return published
