"""Configuration management for telegram-log."""

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .validation import validate_webhook_port

DEFAULT_WEBHOOK_HOSTNAME = "0.0.0.0"
DEFAULT_WEBHOOK_PORT = 8443
DEFAULT_WEBHOOK_PATH = "/telegram-log"


@dataclass(frozen=True)
class PollingMode:
    """Updates are fetched with ``getUpdates``."""


@dataclass(frozen=True)
class WebhookMode:
    """Updates are pushed by Telegram to a listener owned by the stream."""

    hostname: str = DEFAULT_WEBHOOK_HOSTNAME
    port: int = DEFAULT_WEBHOOK_PORT
    certificate: str = ""
    private_key: Optional[str] = None
    # Public URL registered with Telegram, derived from hostname/port/path when unset
    url: Optional[str] = None
    path: str = DEFAULT_WEBHOOK_PATH

    @property
    def public_url(self) -> str:
        if self.url:
            return self.url
        return f"https://{self.hostname}:{self.port}{self.path}"


TransportMode = Union[PollingMode, WebhookMode]

WebhookOption = Union[None, str, int, Mapping[str, Any], WebhookMode]


def resolve_transport(webhook: WebhookOption, certificate: str = "") -> TransportMode:
    """Turn the loose ``webhook`` option into a transport mode.

    Args:
        webhook: None for polling, a hostname, a port number, a mapping with
            ``hostname``/``port``/``certificate``/``url``/``path`` keys or a
            ready ``WebhookMode``
        certificate: Fallback certificate when the webhook option has none

    Returns:
        PollingMode or WebhookMode

    Raises:
        ConfigurationError: If the port is not one Telegram accepts
    """
    if webhook is None or webhook is False:
        return PollingMode()

    if isinstance(webhook, WebhookMode):
        _check_port(webhook.port)
        if not webhook.certificate and certificate:
            return WebhookMode(
                hostname=webhook.hostname,
                port=webhook.port,
                certificate=certificate,
                private_key=webhook.private_key,
                url=webhook.url,
                path=webhook.path,
            )
        return webhook

    # A bare hostname keeps the listener's default port
    if isinstance(webhook, str):
        return WebhookMode(hostname=webhook, certificate=certificate)

    if isinstance(webhook, Mapping):
        port = webhook.get("port")
        _check_port(port)
        return WebhookMode(
            hostname=webhook.get("hostname") or DEFAULT_WEBHOOK_HOSTNAME,
            port=port,
            certificate=webhook.get("certificate") or certificate,
            private_key=webhook.get("private_key"),
            url=webhook.get("url"),
            path=webhook.get("path") or DEFAULT_WEBHOOK_PATH,
        )

    _check_port(webhook)
    return WebhookMode(port=webhook, certificate=certificate)


def _check_port(port: Any) -> None:
    _, error_msg = validate_webhook_port(port)
    if error_msg:
        raise ConfigurationError(error_msg, port=port)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TELEGRAM_",
        extra="ignore",
    )

    bot_token: str = Field(
        ...,
        description="Telegram Bot API token from @BotFather",
    )
    chat_id: Union[int, str] = Field(
        ...,
        description="The chat this stream reads from and writes to (user, group or channel ID)",
    )
    api_base_url: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL",
    )
    webhook_hostname: Optional[str] = Field(
        default=None,
        description="Interface the webhook listener binds to. Unset means polling.",
    )
    webhook_port: Optional[int] = Field(
        default=None,
        description="Webhook listener port, one of 80, 88, 443 or 8443",
    )
    webhook_url: Optional[str] = Field(
        default=None,
        description="Public URL registered with Telegram (default: https://<hostname>:<port><path>)",
    )
    webhook_path: str = Field(
        default=DEFAULT_WEBHOOK_PATH,
        description="HTTP path the webhook listener accepts updates on",
    )
    certificate: str = Field(
        default="",
        description="Path of the public TLS certificate uploaded with setWebhook",
    )
    private_key: Optional[str] = Field(
        default=None,
        description="Path of the TLS private key used by the webhook listener",
    )
    high_water_mark: int = Field(
        default=16,
        ge=1,
        description="Number of inbound messages buffered before polling pauses",
    )
    poll_interval: float = Field(
        default=1.0,
        ge=0,
        description="Delay in seconds before polling again after an accepted batch",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="File receiving error records as JSON lines",
    )

    def webhook_option(self) -> Optional[dict[str, Any]]:
        """Webhook option as accepted by ``resolve_transport``, None for polling."""
        if self.webhook_hostname is None and self.webhook_port is None and self.webhook_url is None:
            return None
        return {
            "hostname": self.webhook_hostname,
            "port": self.webhook_port if self.webhook_port is not None else DEFAULT_WEBHOOK_PORT,
            "certificate": self.certificate,
            "private_key": self.private_key,
            "url": self.webhook_url,
            "path": self.webhook_path,
        }

    def transport_mode(self) -> TransportMode:
        """Resolve the configured transport mode."""
        return resolve_transport(self.webhook_option(), self.certificate)


def get_settings(**overrides: Any) -> Settings:
    """Get application settings, loading from environment.

    Keyword overrides with a None value are ignored so CLI flags that were
    not given fall back to the environment.
    """
    env_file = ".env"
    if not os.path.exists(env_file):
        env_file = None
    return Settings(_env_file=env_file, **{k: v for k, v in overrides.items() if v is not None})
