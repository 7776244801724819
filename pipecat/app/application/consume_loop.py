"""
Consume loop: deliveries -> output lines (+ ledger entries in manual-ack mode).

States:
  RUNNING -> DRAINING -> STOPPED.
  Each iteration races the next delivery against the idle timeout; the timer
  starts over on every iteration. A timeout only leaves RUNNING in
  non-blocking mode; in blocking mode the loop waits again.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from loguru import logger

from pipecat.app.core import SERVICE_NAME
from pipecat.app.domain.ledger import PendingDeliveryLedger
from pipecat.app.domain.models import SessionConfig
from pipecat.app.ports.line_io import LineSink
from pipecat.app.ports.queue_gateway import DeliveryStream


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumeLoopState(str, Enum):
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"


class ConsumeLoop:
    def __init__(
        self,
        config: SessionConfig,
        stream: DeliveryStream,
        ledger: PendingDeliveryLedger,
        sink: LineSink,
    ) -> None:
        self._config = config
        self._stream = stream
        self._ledger = ledger
        self._sink = sink
        self._state = ConsumeLoopState.RUNNING
        self.delivered = 0

    @property
    def state(self) -> ConsumeLoopState:
        return self._state

    async def run(self) -> None:
        timeout = self._config.idle_timeout_seconds
        while self._state == ConsumeLoopState.RUNNING:
            delivery = await self._stream.next(timeout)
            if delivery is None:
                if self._config.non_blocking:
                    self._state = ConsumeLoopState.DRAINING
                    _log("idle_timeout", timeout=timeout, delivered=self.delivered)
                continue
            if not self._config.auto_ack:
                await self._ledger.add(delivery)
            self._sink.write_line(delivery.body)
            self.delivered += 1
        self._state = ConsumeLoopState.STOPPED
