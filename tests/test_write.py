"""Tests for the write side of TelegramLog."""

import asyncio

import pytest

from telegram_log.errors import StreamClosedError, TelegramAPIError
from telegram_log.stream import StreamState
from telegram_log.telegram_log import TelegramLog


@pytest.fixture
def stream(fake_client):
    return TelegramLog("token", 42, client=fake_client)


class TestWrite:
    """Tests for writing messages to the chat."""

    async def test_empty_payload_sends_nothing(self, stream, fake_client):
        await stream.write("")
        await stream.write(None)
        assert fake_client.sent == []

    async def test_text_is_json_encoded(self, stream, fake_client):
        await stream.write("hello")
        assert fake_client.sent == [(42, '"hello"')]

    async def test_objects_are_json_encoded(self, stream, fake_client):
        await stream.write({"level": "error", "msg": "disk full"})
        await stream.write(0)
        assert fake_client.sent == [
            (42, '{"level": "error", "msg": "disk full"}'),
            (42, "0"),
        ]

    async def test_unicode_is_kept(self, stream, fake_client):
        await stream.write("привет")
        assert fake_client.sent == [(42, '"привет"')]

    async def test_send_failure_fails_the_write(self, stream, fake_client):
        fake_client.send_error = TelegramAPIError("Bad Request: chat not found", error_code=400)
        with pytest.raises(TelegramAPIError, match="chat not found"):
            await stream.write("lost")
        # Sending failures are not stream errors
        assert not stream.ended

    async def test_write_after_close(self, stream, fake_client):
        await stream.close()
        with pytest.raises(StreamClosedError):
            await stream.write("too late")
        # Empty writes still complete
        await stream.write("")
        assert fake_client.sent == []

    async def test_close_waits_for_pending_send(self, fake_client):
        release = asyncio.Event()
        sent = []

        async def slow_send(chat_id, text, parse_mode=None, disable_notification=False):
            await release.wait()
            sent.append(text)

        fake_client.send_message = slow_send
        stream = TelegramLog("token", 42, client=fake_client)

        writing = asyncio.create_task(stream.write("in flight"))
        await asyncio.sleep(0)
        closing = asyncio.create_task(stream.close())
        await asyncio.sleep(0)
        assert not closing.done()

        release.set()
        await asyncio.gather(writing, closing)
        assert sent == ['"in flight"']

    async def test_write_while_closing_is_refused(self, fake_client):
        release = asyncio.Event()

        async def slow_send(chat_id, text, parse_mode=None, disable_notification=False):
            await release.wait()

        fake_client.send_message = slow_send
        stream = TelegramLog("token", 42, client=fake_client)

        writing = asyncio.create_task(stream.write("in flight"))
        await asyncio.sleep(0)
        closing = asyncio.create_task(stream.close())
        await asyncio.sleep(0)
        assert stream.state is StreamState.DRAINING

        with pytest.raises(StreamClosedError):
            await stream.write("while draining")

        release.set()
        await asyncio.gather(writing, closing)
        assert stream.state is StreamState.CLOSED
