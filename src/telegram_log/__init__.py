"""telegram-log - use a Telegram chat as an asyncio duplex stream."""

from .config import PollingMode, Settings, WebhookMode, get_settings, resolve_transport
from .errors import (
    ConfigurationError,
    RejectKind,
    StreamClosedError,
    TelegramAPIError,
    TelegramLogError,
    TransportError,
    UpdateRejected,
)
from .offset import OffsetTracker
from .stream import DuplexStream, StreamState
from .telegram_client import TelegramClient
from .telegram_log import TelegramLog, open_telegram_log
from .transports import WebhookState

__all__ = [
    "TelegramLog",
    "open_telegram_log",
    "DuplexStream",
    "StreamState",
    "WebhookState",
    "OffsetTracker",
    "TelegramClient",
    "Settings",
    "get_settings",
    "PollingMode",
    "WebhookMode",
    "resolve_transport",
    "TelegramLogError",
    "ConfigurationError",
    "UpdateRejected",
    "RejectKind",
    "TransportError",
    "TelegramAPIError",
    "StreamClosedError",
]
