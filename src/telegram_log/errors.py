"""Error types and logging utilities for telegram-log."""

import logging
import zlib
from enum import Enum
from typing import Any, Optional, Union

from pythonjsonlogger import jsonlogger


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    CONFIG = "CONFIG"
    UPDATE = "UPDATE"
    POLL = "POLL"
    WEBHOOK = "WEBHOOK"
    SEND = "SEND"
    GENERAL = "GEN"


class RejectKind(str, Enum):
    """Reasons an inbound update is not turned into stream data."""

    INLINE_QUERY_UNSUPPORTED = "InlineQueryUnsupported"
    WRONG_CHAT = "WrongChat"
    NON_TEXT_MESSAGE = "NonTextMessage"
    MALFORMED_UPDATE = "MalformedUpdate"


class TelegramLogError(Exception):
    """Base class for every error reported by a telegram-log stream.

    ``data`` holds the object that caused the error (an update, a message,
    a raw webhook body...). ``fatal`` is True when the stream ends because
    of it.
    """

    fatal = False

    def __init__(self, message: str, data: Any = None, fatal: Optional[bool] = None):
        super().__init__(message)
        self.data = data
        if fatal is not None:
            self.fatal = fatal


class ConfigurationError(TelegramLogError, ValueError):
    """Raised at construction time for invalid options."""

    fatal = True

    def __init__(self, message: str, port: Any = None, data: Any = None):
        super().__init__(message, data=data)
        self.port = port


class UpdateRejected(TelegramLogError):
    """An inbound update that can not be delivered as text."""

    def __init__(self, kind: RejectKind, message: str, data: Any = None):
        super().__init__(message, data=data)
        self.kind = kind


class TransportError(TelegramLogError):
    """Fetching updates or registering the webhook failed."""


class TelegramAPIError(TelegramLogError):
    """The Bot API answered with ``ok: false``."""

    def __init__(
        self,
        description: str,
        error_code: Optional[int] = None,
        method: Optional[str] = None,
    ):
        super().__init__(f"Telegram API error: {description}")
        self.description = description
        self.error_code = error_code
        self.method = method


class StreamClosedError(TelegramLogError):
    """Raised when writing to a closed stream."""


def setup_logger(
    name: str = "telegram_log", log_file: Optional[str] = None
) -> logging.Logger:
    """Set up and configure the logger with optional JSON file logging.

    Args:
        name: Logger name
        log_file: Path of a file receiving ERROR records as JSON lines

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding the console handler multiple times
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # Console handler with standard format
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if log_file is None:
        return logger

    # File handler with JSON format for structured error logging
    try:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.ERROR)
        json_formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        file_handler.setFormatter(json_formatter)
        logger.addHandler(file_handler)
    except (OSError, PermissionError):
        # If we can't write to the log file, just use console
        logger.warning(f"Cannot open log file {log_file}, logging to console only")

    return logger


# Global logger instance
logger = setup_logger()


def error_code(function_name: str, category: Optional[Union[ErrorCategory, str]] = None) -> str:
    """Build the stable error code for a failing function."""
    if category is None:
        prefix_str = ErrorCategory.GENERAL.value
    elif isinstance(category, ErrorCategory):
        prefix_str = category.value
    else:
        prefix_str = str(category)

    return f"{prefix_str}-ERR-{zlib.crc32(function_name.encode()) % 1000:03d}"


def log_error(
    function_name: str,
    error: Exception,
    category: Optional[Union[ErrorCategory, str]] = None,
    **context: Any,
) -> str:
    """Centralized error logging.

    Logs the error with its context and returns the error code.

    Args:
        function_name: Name of the function where error occurred
        error: The exception being reported
        category: Error category for the error code
        **context: Additional context to log (e.g., update_id=123)

    Returns:
        The error code
    """
    code = error_code(function_name, category)

    # Format context parameters
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())

    log_message = f"Error in {function_name}: {error}"
    if context_str:
        log_message += f" ({context_str})"
    log_message += f" - Code: {code}"

    # Content rejections are routine, keep tracebacks for real failures
    if isinstance(error, UpdateRejected):
        logger.warning(log_message)
    else:
        logger.error(log_message, exc_info=error if error.__traceback__ else None)

    return code


def format_telegram_error(error: Exception) -> str:
    """Format a Telegram API error into a user-friendly message.

    Args:
        error: The exception from Telegram API

    Returns:
        User-friendly error message
    """
    error_str = str(error).lower()

    # Common Telegram API errors
    if "chat not found" in error_str:
        return "Chat not found. Please verify the chat ID."
    elif "bot was blocked" in error_str:
        return "Bot was blocked by the user."
    elif "not enough rights" in error_str or "permission" in error_str:
        return "Bot doesn't have permission to perform this action."
    elif "too many requests" in error_str:
        return "Rate limited by Telegram. Please try again later."
    elif "unauthorized" in error_str:
        return "Bot token is invalid or expired."
    elif "conflict" in error_str and "webhook" in error_str:
        return "A webhook is active for this bot; polling is not possible until it is removed."
    elif "bad request" in error_str:
        return f"Invalid request: {error}"

    return str(error)
