"""A small asyncio duplex stream with a bounded read buffer.

Producers call ``push()`` to queue items for the reader; ``push()`` returns
False once the buffer reaches ``high_water_mark`` so the producer can pause.
``push(None)`` marks the end of the data. Readers use ``read()`` or
``async for``; every read that leaves free room in the buffer invokes the
``_read()`` pull hook so subclasses can fetch more. Errors and the end of the
stream are delivered to handlers registered with ``on_error()`` / ``on_end()``.
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Optional

from .errors import TelegramLogError

logger = logging.getLogger("telegram_log.stream")

ErrorHandler = Callable[[TelegramLogError], None]
EndHandler = Callable[[], None]


class StreamState(str, Enum):
    """Lifecycle of a stream, only ever moving forward."""

    OPEN = "open"            # Accepting reads and writes
    DRAINING = "draining"    # close() called, waiting for in-flight work
    CLOSED = "closed"        # Terminal, resources released


class DuplexStream:
    """Readable/writable stream base class."""

    def __init__(self, high_water_mark: int = 16):
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be at least 1")
        self.high_water_mark = high_water_mark
        self.state = StreamState.OPEN
        self._buffer: deque[str] = deque()
        self._ended = False
        self._changed = asyncio.Event()
        self._error_handlers: list[ErrorHandler] = []
        self._end_handlers: list[EndHandler] = []

    @property
    def ended(self) -> bool:
        """True once the end of the data has been pushed."""
        return self._ended

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def free_capacity(self) -> int:
        """Number of items the reader is still willing to buffer."""
        return max(self.high_water_mark - len(self._buffer), 0)

    def on_error(self, handler: ErrorHandler) -> ErrorHandler:
        """Register a handler for error events. Usable as a decorator."""
        self._error_handlers.append(handler)
        return handler

    def on_end(self, handler: EndHandler) -> EndHandler:
        """Register a handler called once when the data ends."""
        self._end_handlers.append(handler)
        if self._ended:
            handler()
        return handler

    def push(self, chunk: Optional[str]) -> bool:
        """Queue an item for the reader, or end the data with None.

        Returns:
            False when the producer should stop pushing
        """
        if self._ended:
            if chunk is not None:
                logger.warning("Dropping data pushed after the end of the stream")
            return False

        if chunk is None:
            self._ended = True
            self._changed.set()
            for handler in list(self._end_handlers):
                handler()
            return False

        self._buffer.append(chunk)
        self._changed.set()
        return len(self._buffer) < self.high_water_mark

    def emit_error(self, error: TelegramLogError) -> None:
        """Deliver an error event to the registered handlers."""
        if not self._error_handlers:
            logger.debug(f"Unhandled stream error: {error}")
        for handler in list(self._error_handlers):
            handler(error)

    async def read(self) -> Optional[str]:
        """Return the next item, or None once the stream has ended."""
        while True:
            if self._buffer:
                chunk = self._buffer.popleft()
                self._maybe_read_more()
                return chunk
            if self._ended:
                return None

            self._changed.clear()
            self._maybe_read_more()
            if self._buffer or self._ended:
                continue
            await self._changed.wait()

    def __aiter__(self) -> "DuplexStream":
        return self

    async def __anext__(self) -> str:
        chunk = await self.read()
        if chunk is None:
            raise StopAsyncIteration
        return chunk

    async def write(self, chunk: Any) -> None:
        """Write an item; returns once it has been handled by ``_write``."""
        await self._write(chunk)

    def _maybe_read_more(self) -> None:
        if not self._ended and self.free_capacity:
            self._read()

    def _read(self) -> None:
        """Pull hook, called when the reader wants more data."""

    async def _write(self, chunk: Any) -> None:
        raise NotImplementedError
