"""Port: line-oriented input and output streams."""
from __future__ import annotations

from typing import AsyncIterator, Protocol


class LineSource(Protocol):
    def lines(self) -> AsyncIterator[bytes]:
        """Yield lines without their terminator until end of stream."""
        ...


class LineSink(Protocol):
    def write_line(self, line: bytes) -> None: ...
