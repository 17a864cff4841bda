"""Validation of configuration values and inbound Telegram updates."""

import re
from typing import Any, Optional, Tuple, Union

from .errors import RejectKind, UpdateRejected

# Telegram only delivers webhooks to these ports
WEBHOOK_PORTS = (80, 88, 443, 8443)


def validate_single_id(
    value: Any, param_name: str
) -> Tuple[Union[int, str, None], Optional[str]]:
    """Validate a single chat_id value.

    Supports:
    - Integer IDs (positive or negative for groups/channels)
    - String representations of integer IDs
    - Usernames (with or without @ prefix)

    Args:
        value: The value to validate
        param_name: Name of the parameter (for error messages)

    Returns:
        Tuple of (validated_value, error_message)
        If validation succeeds, error_message is None
    """
    # bool is an int subclass but never a chat
    if isinstance(value, bool):
        return None, f"Invalid {param_name}: Type must be int or string, got bool"

    # Handle integer IDs
    if isinstance(value, int):
        # Telegram IDs should be within int64 range
        if not (-(2**63) <= value <= 2**63 - 1):
            return None, f"Invalid {param_name}: ID out of valid range"
        return value, None

    # Handle string values
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None, f"Invalid {param_name}: Empty string"

        # Try to parse as integer
        try:
            int_value = int(value)
            if not (-(2**63) <= int_value <= 2**63 - 1):
                return None, f"Invalid {param_name}: ID out of valid range"
            return int_value, None
        except ValueError:
            pass

        # Check if it's a valid username (5+ chars, alphanumeric + underscore)
        username = value.lstrip("@")
        if re.match(r"^[a-zA-Z][a-zA-Z0-9_]{4,31}$", username):
            return f"@{username}" if not value.startswith("@") else value, None

        return None, f"Invalid {param_name}: Must be an integer ID or valid username"

    return None, f"Invalid {param_name}: Type must be int or string, got {type(value).__name__}"


def validate_webhook_port(port: Any) -> Tuple[Optional[int], Optional[str]]:
    """Validate a webhook listener port.

    Args:
        port: The configured port

    Returns:
        Tuple of (validated_port, error_message)
    """
    if isinstance(port, bool) or not isinstance(port, int) or port not in WEBHOOK_PORTS:
        return None, "Port must be one of 80, 88, 443 or 8443"
    return port, None


def _is_chat(chat: dict[str, Any], chat_id: Union[int, str]) -> bool:
    # Public chats configured by @username
    if isinstance(chat_id, str) and chat_id.startswith("@"):
        username = chat.get("username")
        return username is not None and f"@{username}".lower() == chat_id.lower()
    return chat.get("id") == chat_id


def validate_update(
    update: dict[str, Any], chat_id: Union[int, str]
) -> Tuple[Optional[str], Optional[UpdateRejected]]:
    """Extract the text of an update sent to our chat.

    Args:
        update: A Telegram ``Update`` object
        chat_id: The chat the stream is bound to

    Returns:
        Tuple of (text, rejection); exactly one of them is None
    """
    message = update.get("message")
    if message is None:
        return None, UpdateRejected(
            RejectKind.INLINE_QUERY_UNSUPPORTED,
            "Inline queries are not supported",
            data=update,
        )

    if not _is_chat(message.get("chat") or {}, chat_id):
        return None, UpdateRejected(
            RejectKind.WRONG_CHAT,
            "Received message for not-listening chat",
            data=message,
        )

    text = message.get("text")
    if text is None:
        return None, UpdateRejected(
            RejectKind.NON_TEXT_MESSAGE,
            "Only text messages are supported",
            data=message,
        )

    return text, None
