from __future__ import annotations

import asyncio
import sys
from typing import AsyncIterator, Iterable

import pytest
from loguru import logger


class FakeDelivery:
    """Implements IncomingMessage for tests; records acks."""

    def __init__(self, body: bytes, *, ack_raises: Exception | None = None) -> None:
        self.body = body
        self.ack_count = 0
        self._ack_raises = ack_raises

    @property
    def acked(self) -> bool:
        return self.ack_count > 0

    async def ack(self) -> None:
        if self._ack_raises is not None:
            raise self._ack_raises
        self.ack_count += 1


class ListLineSource:
    """LineSource yielding fixed lines, optionally failing after them."""

    def __init__(self, lines: Iterable[bytes], *, raise_after: Exception | None = None) -> None:
        self._lines = list(lines)
        self._raise_after = raise_after

    async def lines(self) -> AsyncIterator[bytes]:
        for line in self._lines:
            await asyncio.sleep(0)
            yield line
        if self._raise_after is not None:
            raise self._raise_after


class ListLineSink:
    def __init__(self) -> None:
        self.lines: list[bytes] = []

    def write_line(self, line: bytes) -> None:
        self.lines.append(line)


@pytest.fixture()
def sink() -> ListLineSink:
    return ListLineSink()


@pytest.fixture()
def make_delivery():
    return FakeDelivery


@pytest.fixture()
def make_source():
    return ListLineSource


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
