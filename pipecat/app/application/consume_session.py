"""Consume session: runs the consume loop and the acknowledgment listener side by side."""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from pipecat.app.application.ack_listener import AcknowledgmentListener
from pipecat.app.application.consume_loop import ConsumeLoop
from pipecat.app.core import SERVICE_NAME
from pipecat.app.domain.ledger import PendingDeliveryLedger
from pipecat.app.domain.models import SessionConfig, SessionSummary
from pipecat.app.ports.line_io import LineSink, LineSource
from pipecat.app.ports.queue_gateway import QueueGateway


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumeSession:
    """
    One task runs the consume loop; in manual-ack mode a second task runs the
    acknowledgment listener. Both share only the ledger.

    The session ends when the consume loop stops (non-blocking idle timeout) or
    when either task fails. The listener ending on its own (ack stream closed)
    does not end the session. Whatever is still pending at the end is
    abandoned explicitly; the broker redelivers it after the connection closes.
    """

    def __init__(
        self,
        config: SessionConfig,
        gateway: QueueGateway,
        ledger: PendingDeliveryLedger,
        *,
        sink: LineSink,
        ack_source: LineSource | None = None,
    ) -> None:
        if not config.auto_ack and ack_source is None:
            raise ValueError("ack_source is required unless auto_ack is enabled")
        self._config = config
        self._gateway = gateway
        self._ledger = ledger
        self._sink = sink
        self._ack_source = ack_source

    async def run(self) -> SessionSummary:
        stream = await self._gateway.consume()
        loop = ConsumeLoop(self._config, stream, self._ledger, self._sink)
        listener: AcknowledgmentListener | None = None

        consume_task = asyncio.create_task(loop.run(), name="pipecat-consume-loop")
        tasks: set[asyncio.Task[None]] = {consume_task}
        ack_source = None if self._config.auto_ack else self._ack_source
        if ack_source is not None:
            listener = AcknowledgmentListener(self._ledger, ack_source)
            tasks.add(asyncio.create_task(listener.run(), name="pipecat-ack-listener"))

        _log("session_started", queue=self._config.queue_name, auto_ack=self._config.auto_ack)
        try:
            pending = set(tasks)
            while consume_task in pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        abandoned = await self._ledger.abandon_all()
        summary = SessionSummary(
            delivered=loop.delivered,
            acknowledged=listener.matched if listener is not None else 0,
            abandoned=len(abandoned),
            abandoned_bodies=tuple(entry.body for entry in abandoned),
        )
        _log(
            "session_stopped",
            delivered=summary.delivered,
            acknowledged=summary.acknowledged,
            abandoned=summary.abandoned,
        )
        return summary
