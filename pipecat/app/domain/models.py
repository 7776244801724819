"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pipecat.app.ports.incoming_message import IncomingMessage


class DeliveryState(str, Enum):
    DELIVERED = "DELIVERED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    ABANDONED = "ABANDONED"


@dataclass(frozen=True)
class SessionConfig:
    """Per-process session options. Built once at startup."""

    queue_name: str
    auto_ack: bool = False
    non_blocking: bool = False
    idle_timeout_seconds: float = 1.0
    exchange: str = ""
    durable: bool = True
    create_queue: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.queue_name, str) or not self.queue_name:
            raise ValueError("queue_name must be a non-empty str")
        if self.idle_timeout_seconds <= 0:
            raise ValueError("idle_timeout_seconds must be positive")


@dataclass
class PendingDelivery:
    """Ledger entry: one delivery awaiting an acknowledgment line."""

    delivery: IncomingMessage
    sequence: int
    state: DeliveryState = DeliveryState.DELIVERED

    @property
    def body(self) -> bytes:
        return self.delivery.body


@dataclass(frozen=True)
class SessionSummary:
    """Counts reported when a consume session ends."""

    delivered: int
    acknowledged: int
    abandoned: int
    abandoned_bodies: tuple[bytes, ...] = field(default_factory=tuple)
