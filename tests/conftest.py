"""Test configuration for pytest."""

import asyncio
import json
from typing import Any, Optional

import pytest


class FakeTelegramClient:
    """In-memory stand-in for TelegramClient."""

    def __init__(self):
        # Results returned by successive get_updates calls (list or exception)
        self.batches: list[Any] = []
        self.get_updates_calls: list[dict[str, Any]] = []
        self.sent: list[tuple[Any, str]] = []
        self.webhook_calls: list[dict[str, Any]] = []
        self.send_error: Optional[Exception] = None
        # Raised by the next send_message calls, one per call
        self.send_errors: list[Exception] = []
        self.set_webhook_error: Optional[Exception] = None
        # When set, get_updates blocks until the event is set
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def get_me(self):
        return {"id": 4242, "is_bot": True, "username": "log_bot"}

    async def get_updates(self, offset=None, limit=100, timeout=0, allowed_updates=None):
        self.get_updates_calls.append({"offset": offset, "limit": limit, "timeout": timeout})
        if self.gate is not None:
            await self.gate.wait()
        result = self.batches.pop(0) if self.batches else []
        if isinstance(result, Exception):
            raise result
        return result

    async def send_message(self, chat_id, text, parse_mode=None, disable_notification=False):
        self.sent.append((chat_id, text))
        if self.send_errors:
            raise self.send_errors.pop(0)
        if self.send_error is not None:
            raise self.send_error
        return {"message_id": len(self.sent), "chat": {"id": chat_id}, "text": text}

    async def set_webhook(self, url=None, certificate=None):
        self.webhook_calls.append({"url": url, "certificate": certificate})
        if url and self.set_webhook_error is not None:
            raise self.set_webhook_error
        return True

    async def delete_webhook(self, drop_pending_updates=False):
        return True

    async def close(self):
        self.closed = True


class FakeListener:
    """In-memory stand-in for WebhookListener."""

    def __init__(self, mode, on_open, on_data, on_error, on_end):
        self.mode = mode
        self.on_open = on_open
        self.on_data = on_data
        self.on_error = on_error
        self.on_end = on_end
        self.started = False
        self.closed = False
        self.ended = False

    async def start(self):
        self.started = True
        self.on_open(self.mode.public_url)

    def deliver(self, update: Any) -> None:
        body = update if isinstance(update, bytes) else json.dumps(update).encode()
        self.on_data(body)

    def stop_externally(self) -> None:
        self._end()

    def _end(self) -> None:
        if not self.ended:
            self.ended = True
            self.on_end()

    async def close(self):
        self.closed = True
        self._end()


def make_update(update_id: int, text: Optional[str] = "hello", chat_id: int = 42) -> dict[str, Any]:
    """Build a Telegram update carrying a message."""
    message: dict[str, Any] = {
        "message_id": update_id,
        "chat": {"id": chat_id, "type": "private"},
        "from": {"id": 987654321, "username": "testuser"},
        "date": 1234567890,
    }
    if text is not None:
        message["text"] = text
    return {"update_id": update_id, "message": message}


async def settle(rounds: int = 10) -> None:
    """Let pending tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_client():
    return FakeTelegramClient()


@pytest.fixture
def listeners():
    """Listeners created through the ``listener_factory`` fixture."""
    return []


@pytest.fixture
def listener_factory(listeners):
    def factory(mode, **callbacks):
        listener = FakeListener(mode, **callbacks)
        listeners.append(listener)
        return listener

    return factory


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock environment variables for settings."""
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_bot_token")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "123456789")
    monkeypatch.setenv("TELEGRAM_API_BASE_URL", "https://api.telegram.org")
    return None


@pytest.fixture
def sample_update():
    """Sample update for the chat the tests listen to."""
    return make_update(1, "Hello, world!")
