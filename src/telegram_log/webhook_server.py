"""HTTP listener receiving Telegram webhook deliveries."""

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request

from .config import WebhookMode

logger = logging.getLogger("telegram_log.webhook_server")

# How often start() checks whether uvicorn finished binding
STARTUP_POLL_INTERVAL = 0.05


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the application."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class WebhookListener:
    """Serves one POST route and hands every request body to ``on_data``.

    Callbacks:
        on_open(url): the server is bound, ``url`` is the public webhook URL
        on_data(body): one delivery, raw request body
        on_error(exc): the server failed
        on_end(): the server stopped, called exactly once
    """

    def __init__(
        self,
        mode: WebhookMode,
        on_open: Callable[[str], None],
        on_data: Callable[[bytes], None],
        on_error: Callable[[BaseException], None],
        on_end: Callable[[], None],
    ):
        self.mode = mode
        self._on_open = on_open
        self._on_data = on_data
        self._on_error = on_error
        self._on_end = on_end
        self._server: Optional[_EmbeddedServer] = None
        self._task: Optional[asyncio.Task] = None
        self._ended = False

        self.app = FastAPI(title="telegram-log webhook", docs_url=None, redoc_url=None, openapi_url=None)
        self.app.add_api_route(mode.path, self._receive, methods=["POST"])

    @property
    def url(self) -> str:
        return self.mode.public_url

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _receive(self, request: Request) -> dict[str, Any]:
        body = await request.body()
        self._on_data(body)
        return {"ok": True}

    def _config(self) -> uvicorn.Config:
        options: dict[str, Any] = {}
        # TLS needs both halves of the key pair
        if self.mode.certificate and self.mode.private_key:
            options["ssl_certfile"] = self.mode.certificate
            options["ssl_keyfile"] = self.mode.private_key
        return uvicorn.Config(
            self.app,
            host=self.mode.hostname,
            port=self.mode.port,
            lifespan="off",
            log_level="warning",
            **options,
        )

    async def start(self) -> None:
        """Start serving and report the public URL once bound."""
        if self._task is not None:
            return

        self._server = _EmbeddedServer(self._config())
        self._task = asyncio.get_running_loop().create_task(self._serve())

        while not self._server.started:
            if self._task.done():
                return
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        logger.info(f"Webhook listener bound to {self.mode.hostname}:{self.mode.port}")
        self._on_open(self.url)

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        # uvicorn exits the process when it can not bind
        except (OSError, SystemExit) as e:
            logger.error(f"Webhook listener failed: {e!r}")
            self._on_error(e if isinstance(e, OSError) else OSError(f"Cannot bind {self.mode.hostname}:{self.mode.port}"))
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._ended:
            return
        self._ended = True
        logger.info("Webhook listener stopped")
        self._on_end()

    async def close(self) -> None:
        """Stop serving and wait for the server to exit."""
        if self._task is None:
            self._finish()
            return
        if self._server is not None:
            self._server.should_exit = True
        await self._task
