"""Tests for validation module."""

from telegram_log.errors import RejectKind, UpdateRejected
from telegram_log.validation import (
    validate_single_id,
    validate_update,
    validate_webhook_port,
)

from conftest import make_update


class TestValidateSingleId:
    """Tests for validate_single_id function."""

    def test_valid_integer_id(self):
        """Test valid integer IDs."""
        result, error = validate_single_id(123456, "chat_id")
        assert result == 123456
        assert error is None

        result, error = validate_single_id(-1001234567890, "chat_id")
        assert result == -1001234567890
        assert error is None

    def test_valid_string_integer_id(self):
        """Test string representations of integer IDs."""
        result, error = validate_single_id("123456", "chat_id")
        assert result == 123456
        assert error is None

    def test_valid_username(self):
        """Test valid usernames."""
        result, error = validate_single_id("@testchannel", "chat_id")
        assert result == "@testchannel"
        assert error is None

        result, error = validate_single_id("testchannel", "chat_id")
        assert result == "@testchannel"
        assert error is None

    def test_invalid_username(self):
        """Test usernames that are too short or use invalid characters."""
        for value in ("usr", "test-user!"):
            result, error = validate_single_id(value, "chat_id")
            assert result is None
            assert "Must be an integer ID or valid username" in error

    def test_invalid_type(self):
        """Test invalid types."""
        for value in (None, 4.2, True):
            result, error = validate_single_id(value, "chat_id")
            assert result is None
            assert "Type must be int or string" in error

    def test_empty_string(self):
        """Test empty string."""
        result, error = validate_single_id("  ", "chat_id")
        assert result is None
        assert "Empty string" in error


class TestValidateWebhookPort:
    """Tests for validate_webhook_port function."""

    def test_telegram_ports(self):
        for port in (80, 88, 443, 8443):
            assert validate_webhook_port(port) == (port, None)

    def test_other_ports(self):
        for port in (8080, 0, None, "443", True):
            result, error = validate_webhook_port(port)
            assert result is None
            assert error == "Port must be one of 80, 88, 443 or 8443"


class TestValidateUpdate:
    """Tests for validate_update function."""

    def test_text_message_for_our_chat(self):
        text, rejection = validate_update(make_update(1, "hi"), 42)
        assert text == "hi"
        assert rejection is None

    def test_empty_text_is_still_text(self):
        text, rejection = validate_update(make_update(1, ""), 42)
        assert text == ""
        assert rejection is None

    def test_update_without_message(self):
        update = {"update_id": 3, "inline_query": {"id": "q", "query": "cats"}}
        text, rejection = validate_update(update, 42)
        assert text is None
        assert isinstance(rejection, UpdateRejected)
        assert rejection.kind is RejectKind.INLINE_QUERY_UNSUPPORTED
        assert rejection.data is update

    def test_message_for_other_chat(self):
        update = make_update(1, "hi", chat_id=7)
        text, rejection = validate_update(update, 42)
        assert text is None
        assert rejection.kind is RejectKind.WRONG_CHAT
        assert rejection.data is update["message"]
        assert not rejection.fatal

    def test_non_text_message(self):
        update = make_update(1, None)
        update["message"]["sticker"] = {"file_id": "abc"}
        text, rejection = validate_update(update, 42)
        assert text is None
        assert rejection.kind is RejectKind.NON_TEXT_MESSAGE
        assert rejection.data is update["message"]

    def test_chat_checked_before_text(self):
        _, rejection = validate_update(make_update(1, None, chat_id=7), 42)
        assert rejection.kind is RejectKind.WRONG_CHAT

    def test_chat_configured_by_username(self):
        update = make_update(1, "news", chat_id=-100123)
        update["message"]["chat"]["username"] = "TestChannel"
        text, rejection = validate_update(update, "@testchannel")
        assert text == "news"
        assert rejection is None

        _, rejection = validate_update(make_update(2, "news", chat_id=-100123), "@testchannel")
        assert rejection.kind is RejectKind.WRONG_CHAT
