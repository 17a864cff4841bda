"""Telegram Bot API client with retry logic."""

import asyncio
import logging
import os
from typing import Any, Optional

import httpx

from .errors import TelegramAPIError

logger = logging.getLogger("telegram_log.telegram_client")

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 0.1
MAX_RETRY_DELAY = 5.0


class TelegramClient:
    """Client for the parts of the Telegram Bot API a stream needs."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        max_retries: int = MAX_RETRIES,
        retry_delay: float = INITIAL_RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Telegram client.

        Args:
            bot_token: The Telegram bot token from @BotFather
            base_url: The base URL for Telegram API
            max_retries: Maximum number of retry attempts
            retry_delay: Initial retry delay in seconds (exponential backoff)
            transport: Optional httpx transport, mainly for tests
        """
        self.bot_token = bot_token
        self.base_url = f"{base_url}/bot{bot_token}"
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        # Use 60s timeout to leave room for server-side long polling
        self._client = httpx.AsyncClient(
            timeout=60.0,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        is_read: bool = True,
        files: dict[str, Any] | None = None,
    ) -> Any:
        """Make a request to the Telegram API with retry logic.

        Network errors are only retried for read operations, so a message
        is never sent twice because its response got lost.

        Args:
            method: The API method to call
            params: Optional parameters for the method
            is_read: Whether this is a read-only operation
            files: Optional files, sent as multipart form data

        Returns:
            The ``result`` field of the API response
        """
        url = f"{self.base_url}/{method}"
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries + 1):
            try:
                if files:
                    response = await self._client.post(url, data=params or {}, files=files)
                else:
                    response = await self._client.post(url, json=params or {})

                # Handle rate limiting with Retry-After header
                if response.status_code == 429:
                    retry_after = float(response.headers.get("Retry-After", self._retry_delay))
                    if attempt < self._max_retries:
                        logger.warning(
                            f"Rate limited. Retrying after {retry_after}s (attempt {attempt + 1}/{self._max_retries})"
                        )
                        await asyncio.sleep(retry_after)
                        continue

                if response.status_code not in RETRYABLE_STATUS_CODES:
                    result = _decode(response)
                    if result is not None and not result.get("ok"):
                        raise TelegramAPIError(
                            result.get("description", "Unknown error"),
                            error_code=result.get("error_code"),
                            method=method,
                        )

                response.raise_for_status()
                result = response.json()
                return result.get("result", {})

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code in RETRYABLE_STATUS_CODES:
                    if attempt < self._max_retries:
                        delay = min(self._retry_delay * (2**attempt), MAX_RETRY_DELAY)
                        logger.warning(
                            f"HTTP {e.response.status_code}. Retrying after {delay:.1f}s "
                            f"(attempt {attempt + 1}/{self._max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue
                else:
                    break

            except (httpx.NetworkError, httpx.TimeoutException) as e:
                last_error = e
                if is_read and attempt < self._max_retries:
                    delay = min(self._retry_delay * (2**attempt), MAX_RETRY_DELAY)
                    logger.warning(
                        f"Network error. Retrying after {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                else:
                    break

        raise last_error or TelegramAPIError("Unknown error occurred", method=method)

    async def get_me(self) -> dict[str, Any]:
        """Get information about the bot.

        Returns:
            Bot information dictionary
        """
        return await self._request_with_retry("getMe")

    async def get_updates(
        self,
        offset: int | None = None,
        limit: int = 100,
        timeout: int = 0,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get updates (new messages) from Telegram.

        Args:
            offset: Identifier of the first update to return
            limit: Maximum number of updates (1-100)
            timeout: Long polling timeout in seconds, 0 returns immediately
            allowed_updates: List of update types to receive

        Returns:
            List of updates
        """
        params: dict[str, Any] = {
            "limit": max(1, min(limit, 100)),
            "timeout": timeout,
        }
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates

        result = await self._request_with_retry("getUpdates", params)
        return result if isinstance(result, list) else []

    async def send_message(
        self,
        chat_id: str | int,
        text: str,
        parse_mode: str | None = None,
        disable_notification: bool = False,
    ) -> dict[str, Any]:
        """Send a text message to a chat.

        Args:
            chat_id: The chat ID to send to
            text: The message text
            parse_mode: Parse mode (Markdown, HTML, or None for plain text)
            disable_notification: Send silently

        Returns:
            The sent message information
        """
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_notification": disable_notification,
        }
        if parse_mode:
            params["parse_mode"] = parse_mode

        return await self._request_with_retry("sendMessage", params, is_read=False)

    async def set_webhook(
        self,
        url: str | None = None,
        certificate: str | None = None,
    ) -> Any:
        """Register a webhook, or remove it when ``url`` is None.

        Args:
            url: HTTPS URL Telegram should deliver updates to
            certificate: Path of the public certificate of a self-signed
                listener; uploaded when the file exists

        Returns:
            API response (True on success)
        """
        params: dict[str, Any] = {"url": url or ""}

        files = None
        if certificate and os.path.isfile(certificate):
            with open(certificate, "rb") as f:
                files = {"certificate": (os.path.basename(certificate), f.read())}

        if url:
            logger.info(f"Registering webhook {url}")
        else:
            logger.info("Removing webhook")
        return await self._request_with_retry("setWebhook", params, is_read=False, files=files)

    async def delete_webhook(self, drop_pending_updates: bool = False) -> Any:
        """Remove the webhook so updates can be polled again.

        Args:
            drop_pending_updates: Discard updates queued while the webhook was set

        Returns:
            API response (True on success)
        """
        return await self._request_with_retry(
            "deleteWebhook",
            {"drop_pending_updates": drop_pending_updates},
            is_read=False,
        )


def _decode(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        result = response.json()
    except ValueError:
        return None
    return result if isinstance(result, dict) else None
