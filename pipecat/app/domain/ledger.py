"""Pending-delivery ledger: deliveries awaiting a matching acknowledgment line.

Matching is by message body, byte for byte, so the acknowledging side can be a
stateless process that only ever sees message text. When several pending
deliveries share a body the oldest one (arrival order) is matched first.

Each operation holds the ledger's own lock for exactly one insert or one
scan-and-maybe-remove, and never awaits while holding it. The broker ack
happens after the entry has left the ledger and the lock is released.

Two implementations with the same observable behaviour:
  - LinearLedger: list scan, O(n) per acknowledgment.
  - IndexedLedger: body -> FIFO of entries, O(1) per acknowledgment.
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict, deque
from typing import Any, Protocol

from loguru import logger

from pipecat.app.core import SERVICE_NAME
from pipecat.app.domain.models import DeliveryState, PendingDelivery
from pipecat.app.ports.incoming_message import IncomingMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).debug("")


class PendingDeliveryLedger(Protocol):
    async def add(self, delivery: IncomingMessage) -> PendingDelivery: ...

    async def acknowledge(self, body: bytes) -> bool:
        """Ack and remove the oldest pending delivery with this body. False if none matched."""
        ...

    async def abandon_all(self) -> list[PendingDelivery]: ...

    async def pending(self) -> list[PendingDelivery]: ...

    def __len__(self) -> int: ...


class _LedgerBase:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sequence = 0
        self.acknowledged = 0

    def _next_entry(self, delivery: IncomingMessage) -> PendingDelivery:
        self._sequence += 1
        return PendingDelivery(delivery=delivery, sequence=self._sequence)

    async def _ack(self, entry: PendingDelivery) -> None:
        entry.state = DeliveryState.ACKNOWLEDGED
        self.acknowledged += 1
        await entry.delivery.ack()
        _log("delivery_acknowledged", sequence=entry.sequence)

    @staticmethod
    def _abandon(entries: list[PendingDelivery]) -> list[PendingDelivery]:
        for entry in entries:
            entry.state = DeliveryState.ABANDONED
        return entries


class LinearLedger(_LedgerBase):
    """Insertion-ordered list, scanned front to back on every acknowledgment."""

    def __init__(self) -> None:
        super().__init__()
        self._entries: list[PendingDelivery] = []

    def __len__(self) -> int:
        return len(self._entries)

    async def add(self, delivery: IncomingMessage) -> PendingDelivery:
        async with self._lock:
            entry = self._next_entry(delivery)
            self._entries.append(entry)
            return entry

    async def acknowledge(self, body: bytes) -> bool:
        matched: PendingDelivery | None = None
        async with self._lock:
            for i, entry in enumerate(self._entries):
                if entry.body == body:
                    matched = self._entries.pop(i)
                    break
        if matched is None:
            return False
        await self._ack(matched)
        return True

    async def abandon_all(self) -> list[PendingDelivery]:
        async with self._lock:
            entries, self._entries = self._entries, []
        return self._abandon(entries)

    async def pending(self) -> list[PendingDelivery]:
        async with self._lock:
            return list(self._entries)


class IndexedLedger(_LedgerBase):
    """Entries grouped by body; each group keeps arrival order."""

    def __init__(self) -> None:
        super().__init__()
        self._by_body: OrderedDict[bytes, deque[PendingDelivery]] = OrderedDict()
        self._count = 0

    def __len__(self) -> int:
        return self._count

    async def add(self, delivery: IncomingMessage) -> PendingDelivery:
        async with self._lock:
            entry = self._next_entry(delivery)
            self._by_body.setdefault(entry.body, deque()).append(entry)
            self._count += 1
            return entry

    async def acknowledge(self, body: bytes) -> bool:
        async with self._lock:
            group = self._by_body.get(body)
            if not group:
                return False
            matched = group.popleft()
            if not group:
                del self._by_body[body]
            self._count -= 1
        await self._ack(matched)
        return True

    def _ordered(self) -> list[PendingDelivery]:
        entries = [entry for group in self._by_body.values() for entry in group]
        entries.sort(key=lambda e: e.sequence)
        return entries

    async def abandon_all(self) -> list[PendingDelivery]:
        async with self._lock:
            entries = self._ordered()
            self._by_body.clear()
            self._count = 0
        return self._abandon(entries)

    async def pending(self) -> list[PendingDelivery]:
        async with self._lock:
            return self._ordered()


def create_ledger(backend: str) -> PendingDeliveryLedger:
    backend = backend.strip().lower()

    if backend == "linear":
        return LinearLedger()

    if backend == "indexed":
        return IndexedLedger()

    raise ValueError(f"Unsupported ledger backend: {backend}")
