"""Delivery transports: where raw Telegram updates come from."""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from .config import WebhookMode
from .errors import TelegramLogError, TransportError
from .flow import FlowController
from .webhook_server import WebhookListener

logger = logging.getLogger("telegram_log.transports")

ListenerFactory = Callable[..., Any]


class WebhookState(str, Enum):
    """Registration state of the webhook of a stream."""

    ACTIVE = "active"                  # Listener running, webhook registered or registering
    CLOSED_LOCALLY = "closed_locally"  # Shutdown started, no more unregistration needed
    NOT_USED = "not_used"              # Stream is polling


class Transport:
    """Base class of the update sources owned by a stream."""

    state = WebhookState.NOT_USED

    async def start(self) -> None:
        """Begin delivering updates."""

    def pull(self) -> None:
        """The reader wants more data."""

    async def shutdown(self) -> None:
        """Release the transport and wait for pending work to settle."""


class PollingTransport(Transport):
    """Fetches updates on demand through a ``FlowController``."""

    def __init__(self, flow: FlowController):
        self.flow = flow

    def pull(self) -> None:
        self.flow.request_more()

    async def shutdown(self) -> None:
        self.flow.stop()
        await self.flow.wait_idle()


class WebhookTransport(Transport):
    """Receives updates pushed by Telegram to a listener owned by the stream.

    The public URL is registered with ``setWebhook`` once the listener is
    bound. When the listener stops without the stream asking for it, the
    registration is removed and the stream ends. Deliveries arrive on their
    own, so ``pull()`` does nothing.
    """

    def __init__(
        self,
        mode: WebhookMode,
        client: Any,
        on_update: Callable[[bytes], None],
        report_error: Callable[[TelegramLogError], None],
        finish: Callable[[], None],
        listener_factory: Optional[ListenerFactory] = None,
    ):
        self.mode = mode
        self.state = WebhookState.ACTIVE
        self._client = client
        self._report_error = report_error
        self._finish = finish
        self._tasks: set[asyncio.Task] = set()
        self._registration: Optional[asyncio.Task] = None
        self._registration_failed = False

        factory = listener_factory or WebhookListener
        self.listener = factory(
            mode,
            on_open=self._on_open,
            on_data=on_update,
            on_error=self._on_listener_error,
            on_end=self._on_listener_end,
        )

    @property
    def certificate(self) -> str:
        return self.mode.certificate

    async def start(self) -> None:
        await self.listener.start()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_open(self, url: str) -> None:
        if self.state is not WebhookState.ACTIVE:
            return
        self._registration = self._spawn(self._register(url))

    async def _register(self, url: str) -> None:
        try:
            await self._client.set_webhook(url=url, certificate=self.certificate)
        except Exception as e:
            error = TransportError(f"Failed to register webhook: {e}", data={"url": url}, fatal=True)
            error.__cause__ = e
            self._registration_failed = True
            self._report_error(error)

            self.state = WebhookState.CLOSED_LOCALLY
            self._finish()
            await self.listener.close()
            return

        logger.info(f"Webhook registered at {url}")

    def _on_listener_error(self, exc: BaseException) -> None:
        error = TransportError(f"Webhook listener error: {exc}", data={"url": self.mode.public_url})
        error.__cause__ = exc
        self._report_error(error)

    def _on_listener_end(self) -> None:
        if self.state is not WebhookState.ACTIVE:
            self._finish()
            return

        # The listener went away on its own
        logger.warning("Webhook listener stopped unexpectedly, removing the webhook")
        self.state = WebhookState.CLOSED_LOCALLY
        self._spawn(self._unregister_and_finish())

    async def _unregister(self) -> None:
        try:
            await self._client.set_webhook(certificate=self.certificate)
        except Exception as e:
            logger.warning(f"Failed to remove webhook: {e}")

    async def _unregister_and_finish(self) -> None:
        await self._unregister()
        self._finish()

    async def shutdown(self) -> None:
        if self.state is WebhookState.ACTIVE:
            self.state = WebhookState.CLOSED_LOCALLY

            # Never leave a registration behind that finished after the removal
            if self._registration is not None and not self._registration.done():
                await self._registration
            if not self._registration_failed:
                await self._unregister()

        await self.listener.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
