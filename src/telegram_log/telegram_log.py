"""Duplex stream bound to a single Telegram chat.

Reading yields the text of messages sent to the chat, writing sends
messages to it. Updates come either from polling ``getUpdates`` or from a
webhook listener, chosen once when the stream is created.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Union

from .config import PollingMode, Settings, WebhookMode, WebhookOption, resolve_transport
from .errors import (
    ConfigurationError,
    ErrorCategory,
    RejectKind,
    StreamClosedError,
    TelegramLogError,
    UpdateRejected,
    log_error,
)
from .flow import DEFAULT_POLL_INTERVAL, FlowController
from .offset import OffsetTracker
from .stream import DuplexStream, StreamState
from .telegram_client import TelegramClient
from .transports import ListenerFactory, PollingTransport, Transport, WebhookState, WebhookTransport
from .validation import validate_single_id, validate_update

logger = logging.getLogger("telegram_log.telegram_log")


class TelegramLog(DuplexStream):
    """Send data as messages to a Telegram chat and read the chat back.

    Errors (rejected updates, failed requests) are delivered to the handlers
    registered with ``on_error()``; most of them are not fatal and the stream
    keeps going. ``read()`` returns None once no more data will ever arrive.
    Writes are refused with ``StreamClosedError`` as soon as ``close()`` has
    begun, while pending sends are drained.
    """

    def __init__(
        self,
        token: str,
        chat_id: Union[int, str],
        webhook: WebhookOption = None,
        certificate: str = "",
        *,
        high_water_mark: int = 16,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        api_base_url: str = "https://api.telegram.org",
        client: Optional[Any] = None,
        listener_factory: Optional[ListenerFactory] = None,
    ):
        """Create the stream without touching the network.

        Args:
            token: The Telegram bot token
            chat_id: The only chat this stream reads and writes
            webhook: None to poll, otherwise the webhook listener options
                (hostname, port, mapping or ``WebhookMode``)
            certificate: TLS certificate uploaded when registering the webhook
            high_water_mark: Number of messages buffered before polling pauses
            poll_interval: Delay before polling again after an accepted batch
            api_base_url: The base URL for Telegram API
            client: Bot API client to use instead of a new ``TelegramClient``
            listener_factory: Webhook listener class to use instead of
                ``WebhookListener``

        Raises:
            ConfigurationError: On a missing token or chat, or a webhook port
                Telegram does not deliver to
        """
        if not token:
            raise ConfigurationError("Missing token")
        if chat_id is None or chat_id == "":
            raise ConfigurationError("Missing chat_id")
        validated_chat_id, error_msg = validate_single_id(chat_id, "chat_id")
        if error_msg:
            raise ConfigurationError(error_msg, data=chat_id)

        self.mode = resolve_transport(webhook, certificate)

        super().__init__(high_water_mark)

        self.chat_id = validated_chat_id
        self.tracker = OffsetTracker()
        self._owns_client = client is None
        self.client = client if client is not None else TelegramClient(token, base_url=api_base_url)
        self._sends: set[asyncio.Future] = set()
        self._started = False

        self.transport: Transport
        if isinstance(self.mode, WebhookMode):
            self.transport = WebhookTransport(
                self.mode,
                self.client,
                on_update=self._handle_webhook_body,
                report_error=self._report,
                finish=self._end,
                listener_factory=listener_factory,
            )
        else:
            self.transport = PollingTransport(
                FlowController(
                    self.client,
                    self.tracker,
                    self,
                    process_update=self._process_update,
                    report_error=self._report,
                    poll_interval=poll_interval,
                )
            )

    @classmethod
    def from_settings(cls, settings: Settings, **options: Any) -> "TelegramLog":
        """Create a stream from ``Settings``."""
        options.setdefault("high_water_mark", settings.high_water_mark)
        options.setdefault("poll_interval", settings.poll_interval)
        options.setdefault("api_base_url", settings.api_base_url)
        return cls(
            settings.bot_token,
            settings.chat_id,
            settings.webhook_option(),
            settings.certificate,
            **options,
        )

    @property
    def offset(self) -> int:
        """Smallest update id not processed yet."""
        return self.tracker.offset

    @property
    def webhook_state(self) -> WebhookState:
        return self.transport.state

    @property
    def polling(self) -> bool:
        return isinstance(self.mode, PollingMode)

    async def start(self) -> None:
        """Start the transport. Polling starts lazily on the first read."""
        if self._started:
            return
        self._started = True
        await self.transport.start()

    async def __aenter__(self) -> "TelegramLog":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _report(self, error: TelegramLogError, **context: Any) -> None:
        if isinstance(error, UpdateRejected):
            category = ErrorCategory.UPDATE
        elif self.polling:
            category = ErrorCategory.POLL
        else:
            category = ErrorCategory.WEBHOOK
        log_error(type(error).__name__, error, category=category, chat_id=self.chat_id, **context)
        self.emit_error(error)

    def _process_update(self, update: dict[str, Any]) -> bool:
        """Run one update through offset tracking and validation.

        Returns:
            True if its text was pushed and the reader wants more
        """
        update_id = update.get("update_id")
        if isinstance(update_id, bool) or not isinstance(update_id, int):
            self._report(UpdateRejected(RejectKind.MALFORMED_UPDATE, "Update without update_id", data=update))
            return False

        if not self.tracker.observe(update_id):
            return False

        text, rejection = validate_update(update, self.chat_id)
        if rejection is not None:
            self._report(rejection, update_id=update_id)
            return False

        return self.push(text)

    def _handle_webhook_body(self, body: bytes) -> None:
        if self.ended:
            return
        try:
            update = json.loads(body)
        except ValueError:
            update = None
        if not isinstance(update, dict):
            self._report(UpdateRejected(RejectKind.MALFORMED_UPDATE, "Malformed webhook update", data=body))
            return
        self._process_update(update)

    def _end(self) -> None:
        if not self.ended:
            self.push(None)

    def _read(self) -> None:
        self.transport.pull()

    async def _write(self, chunk: Any) -> None:
        if chunk is None or chunk == "":
            return
        # DRAINING refuses writes too
        if self.state is not StreamState.OPEN:
            raise StreamClosedError("Cannot write to a closed stream", data=chunk)

        text = json.dumps(chunk, ensure_ascii=False)
        send = asyncio.ensure_future(self.client.send_message(self.chat_id, text))
        self._sends.add(send)
        try:
            await send
        except Exception as e:
            log_error("send_message", e, category=ErrorCategory.SEND, chat_id=self.chat_id)
            raise
        finally:
            self._sends.discard(send)

    async def close(self) -> None:
        """Stop receiving updates, end the stream and release resources.

        Pending requests are left to settle. Calling it again does nothing.
        """
        if self.state is not StreamState.OPEN:
            return
        self.state = StreamState.DRAINING
        logger.info(f"Closing stream for chat {self.chat_id}")

        await self.transport.shutdown()
        self._end()

        if self._sends:
            await asyncio.gather(*self._sends, return_exceptions=True)
        if self._owns_client:
            await self.client.close()

        self.state = StreamState.CLOSED
        logger.info(f"Stream for chat {self.chat_id} closed")


async def open_telegram_log(
    token: str,
    chat_id: Union[int, str],
    webhook: WebhookOption = None,
    certificate: str = "",
    **options: Any,
) -> TelegramLog:
    """Create a ``TelegramLog`` and start its transport.

    Configuration errors are raised before any network activity.
    """
    stream = TelegramLog(token, chat_id, webhook, certificate, **options)
    await stream.start()
    return stream
