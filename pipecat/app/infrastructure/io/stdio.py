"""Standard input/output line adapters.

Blocking reads run on a daemon thread that hands lines to the event loop, so a
consumer sitting on an idle stdin never keeps the process alive once the
session is over. The hand-off queue is bounded: a fast producer on stdin waits
for the publisher instead of buffering the whole input in memory.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import sys
import threading
from typing import Any, AsyncIterator, BinaryIO

from pipecat.app.core.errors import InputStreamError

READ_AHEAD_LINES = 256

_EOF = object()


def strip_line_terminator(raw: bytes) -> bytes:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw


class StdinLineSource:
    """LineSource over a binary stream, standard input by default."""

    def __init__(self, stream: BinaryIO | None = None, *, name: str = "stdin") -> None:
        self._stream = stream
        self._name = name

    def _resolve_stream(self) -> BinaryIO:
        if self._stream is not None:
            return self._stream
        return sys.stdin.buffer

    async def lines(self) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=READ_AHEAD_LINES)
        stream = self._resolve_stream()
        stopped = threading.Event()

        def post(item: Any) -> bool:
            if stopped.is_set():
                return False
            put = queue.put(item)
            try:
                future = asyncio.run_coroutine_threadsafe(put, loop)
            except RuntimeError:
                # loop already closed
                put.close()
                return False
            try:
                future.result()
            except concurrent.futures.CancelledError:
                # loop shut down while the queue was full
                return False
            return True

        def read() -> None:
            try:
                for raw in iter(stream.readline, b""):
                    if not post(raw):
                        return
            except (OSError, ValueError) as exc:
                post(exc)
                return
            post(_EOF)

        threading.Thread(target=read, name=f"pipecat-{self._name}-reader", daemon=True).start()

        try:
            while True:
                item = await queue.get()
                if item is _EOF:
                    return
                if isinstance(item, Exception):
                    raise InputStreamError(f"failed to read from {self._name}: {item}") from item
                yield strip_line_terminator(item)
        finally:
            stopped.set()
            # unblock a reader parked on a full queue
            while not queue.empty():
                queue.get_nowait()


class StdoutLineSink:
    """LineSink writing newline-terminated lines to standard output (or a given stream)."""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream

    def write_line(self, line: bytes) -> None:
        stream = self._stream if self._stream is not None else sys.stdout.buffer
        stream.write(line + b"\n")
        stream.flush()
