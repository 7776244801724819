"""Acknowledgment listener: turns ack lines into broker acks via the ledger."""
from __future__ import annotations

from typing import Any

from loguru import logger

from pipecat.app.core import SERVICE_NAME
from pipecat.app.domain.ledger import PendingDeliveryLedger
from pipecat.app.ports.line_io import LineSource


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).debug("")


class AcknowledgmentListener:
    """Reads ack lines and acknowledges the oldest pending delivery with the same body.

    Lines with no pending match are dropped: they may belong to a delivery that
    was already acknowledged, or to one never tracked because of auto-ack.
    End of the ack stream ends the listener; consuming goes on without it.
    """

    def __init__(self, ledger: PendingDeliveryLedger, source: LineSource) -> None:
        self._ledger = ledger
        self._source = source
        self.matched = 0
        self.unmatched = 0

    async def run(self) -> None:
        async for line in self._source.lines():
            if await self._ledger.acknowledge(line):
                self.matched += 1
            else:
                self.unmatched += 1
                _log("ack_line_unmatched", pending=len(self._ledger))
        _log("ack_stream_closed", matched=self.matched, unmatched=self.unmatched)
