"""Consume session: consume loop + acknowledgment listener sharing one ledger."""
from __future__ import annotations

import asyncio

import pytest

from pipecat.app.application.consume_session import ConsumeSession
from pipecat.app.core.errors import ConsumeRegistrationError, InputStreamError
from pipecat.app.domain.ledger import IndexedLedger, LinearLedger
from pipecat.app.domain.models import SessionConfig
from pipecat.app.infrastructure.messaging.inmemory.in_memory_gateway import InMemoryGateway


class AfterDeliveriesSource:
    """Ack source that only starts once `expected` deliveries are pending."""

    def __init__(self, ledger, expected: int, lines: list[bytes]) -> None:
        self._ledger = ledger
        self._expected = expected
        self._lines = lines

    async def lines(self):
        while len(self._ledger) < self._expected:
            await asyncio.sleep(0.001)
        for line in self._lines:
            yield line


def _config(**kwargs) -> SessionConfig:
    kwargs.setdefault("idle_timeout_seconds", 0.1)
    kwargs.setdefault("non_blocking", True)
    return SessionConfig(queue_name="jobs", **kwargs)


async def _gateway(config: SessionConfig, *bodies: bytes) -> InMemoryGateway:
    gateway = InMemoryGateway(config)
    gateway.enqueue(*bodies)
    await gateway.connect()
    return gateway


@pytest.mark.asyncio
@pytest.mark.parametrize("ledger_cls", [LinearLedger, IndexedLedger])
async def test_ack_lines_ack_matching_deliveries_and_rest_is_abandoned(ledger_cls, sink):
    config = _config()
    gateway = await _gateway(config, b"a", b"b", b"c")
    ledger = ledger_cls()
    source = AfterDeliveriesSource(ledger, 3, [b"b", b"nope"])

    summary = await ConsumeSession(config, gateway, ledger, sink=sink, ack_source=source).run()

    assert sink.lines == [b"a", b"b", b"c"]
    assert gateway.acked == [b"b"]
    assert summary.delivered == 3
    assert summary.acknowledged == 1
    assert summary.abandoned == 2
    assert summary.abandoned_bodies == (b"a", b"c")
    assert len(ledger) == 0


@pytest.mark.asyncio
async def test_duplicate_bodies_first_delivery_is_acked(sink):
    config = _config()
    gateway = await _gateway(config, b"x", b"x")
    ledger = LinearLedger()

    summary = await ConsumeSession(
        config, gateway, ledger, sink=sink, ack_source=AfterDeliveriesSource(ledger, 2, [b"x"])
    ).run()

    first, second = gateway.deliveries
    assert first.acked is True
    assert second.acked is False
    assert summary.abandoned_bodies == (b"x",)


@pytest.mark.asyncio
async def test_auto_ack_session_runs_without_listener(sink):
    config = _config(auto_ack=True)
    gateway = await _gateway(config, b"a", b"b")
    ledger = LinearLedger()

    summary = await ConsumeSession(config, gateway, ledger, sink=sink).run()

    assert sink.lines == [b"a", b"b"]
    assert gateway.acked == [b"a", b"b"]
    assert summary.acknowledged == 0
    assert summary.abandoned == 0


@pytest.mark.asyncio
async def test_auto_ack_session_ignores_a_supplied_ack_source(sink, make_source):
    config = _config(auto_ack=True)
    gateway = await _gateway(config, b"a")
    source = make_source([b"a"], raise_after=InputStreamError("must not be read"))

    summary = await ConsumeSession(config, gateway, LinearLedger(), sink=sink, ack_source=source).run()

    assert sink.lines == [b"a"]
    assert summary.acknowledged == 0


@pytest.mark.asyncio
async def test_manual_ack_requires_an_ack_source():
    config = _config()
    with pytest.raises(ValueError, match="ack_source"):
        ConsumeSession(config, InMemoryGateway(config), LinearLedger(), sink=None)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_closed_ack_stream_does_not_end_the_session(sink, make_source):
    config = _config(idle_timeout_seconds=0.05)
    gateway = await _gateway(config)
    ledger = LinearLedger()

    async def publish_later() -> None:
        await asyncio.sleep(0.02)
        gateway.enqueue(b"late")

    publisher = asyncio.create_task(publish_later())
    summary = await ConsumeSession(config, gateway, ledger, sink=sink, ack_source=make_source([])).run()
    await publisher

    assert sink.lines == [b"late"]
    assert summary.abandoned_bodies == (b"late",)


@pytest.mark.asyncio
async def test_listener_failure_ends_session_with_error(sink, make_source):
    config = _config(non_blocking=False)
    gateway = await _gateway(config, b"a")
    source = make_source([], raise_after=InputStreamError("failed to read from stdin"))

    with pytest.raises(InputStreamError):
        await asyncio.wait_for(
            ConsumeSession(config, gateway, LinearLedger(), sink=sink, ack_source=source).run(),
            timeout=2.0,
        )


@pytest.mark.asyncio
async def test_consumer_registration_failure_propagates(sink, make_source):
    config = _config()
    gateway = InMemoryGateway(config)

    with pytest.raises(ConsumeRegistrationError):
        await ConsumeSession(config, gateway, LinearLedger(), sink=sink, ack_source=make_source([])).run()
