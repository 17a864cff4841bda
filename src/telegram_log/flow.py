"""Polling cadence and backpressure gating for ``getUpdates``."""

import asyncio
import logging
from typing import Any, Callable, Optional

from .errors import TelegramLogError, TransportError
from .offset import OffsetTracker
from .stream import DuplexStream

logger = logging.getLogger("telegram_log.flow")

# Seconds to wait before polling again after a batch was fully accepted
DEFAULT_POLL_INTERVAL = 1.0


class FlowController:
    """Issues one ``getUpdates`` request at a time, when the reader has room.

    A batch is processed update by update, in the order Telegram returned it.
    When every update of the batch was pushed without the reader signalling
    backpressure, another request is scheduled after ``poll_interval``
    seconds. Otherwise polling resumes only when the reader pulls again.
    """

    def __init__(
        self,
        client: Any,
        tracker: OffsetTracker,
        stream: DuplexStream,
        process_update: Callable[[dict[str, Any]], bool],
        report_error: Callable[[TelegramLogError], None],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """Initialize the flow controller.

        Args:
            client: Bot API client providing ``get_updates``
            tracker: Offset of the next update to request
            stream: Stream whose free buffer capacity limits each request
            process_update: Handles one update, returns True if it was pushed
                without backpressure
            report_error: Receives fetch failures
            poll_interval: Delay before re-polling after an accepted batch
        """
        self._client = client
        self._tracker = tracker
        self._stream = stream
        self._process_update = process_update
        self._report_error = report_error
        self.poll_interval = poll_interval
        self.in_flight = False
        self.stopped = False
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def request_more(self) -> None:
        """Fetch more updates unless a request is pending or the reader is full."""
        limit = self._stream.free_capacity
        if self.in_flight or self.stopped or self._stream.ended or not limit:
            return

        self.in_flight = True
        self._task = asyncio.get_running_loop().create_task(self._fetch(limit))

    async def _fetch(self, limit: int) -> None:
        offset = self._tracker.offset
        logger.debug(f"Requesting up to {limit} update(s) from offset {offset}")

        try:
            updates = await self._client.get_updates(offset=offset, limit=limit, timeout=0)
        except Exception as e:
            self.in_flight = False
            error = TransportError(
                f"Failed to fetch updates: {e}",
                data={"offset": offset, "limit": limit},
            )
            error.__cause__ = e
            self._report_error(error)
            return

        self.in_flight = False

        # Every update is processed even once backpressure was signalled
        fetch_more = True
        for update in updates:
            fetch_more = self._process_update(update) and fetch_more

        if fetch_more:
            self._schedule()
        else:
            logger.debug("Pausing polling until the reader pulls again")

    def _schedule(self) -> None:
        if self.stopped:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.poll_interval, self.request_more)

    def stop(self) -> None:
        """Stop polling. A pending request is left to settle."""
        self.stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait_idle(self) -> None:
        """Wait for the pending request, if any, to settle."""
        if self._task is not None and not self._task.done():
            await self._task
