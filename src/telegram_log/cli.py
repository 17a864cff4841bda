"""Command line bridge between stdin/stdout and a Telegram chat."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import IO, Any, Optional

from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import StreamClosedError, TelegramLogError, format_telegram_error, setup_logger
from .telegram_client import TelegramClient
from .telegram_log import TelegramLog

logger = logging.getLogger("telegram_log.cli")


async def print_messages(stream: TelegramLog) -> None:
    """Print every message received from the chat, one per line."""
    async for text in stream:
        print(text, flush=True)


async def send_lines(stream: TelegramLog, source: Optional[IO] = None) -> None:
    """Send every line of ``source`` (stdin by default) to the chat until EOF.

    A failed send is logged and the next line is still sent. Forwarding stops
    once the stream no longer accepts writes.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), source or sys.stdin)

    while True:
        line = await reader.readline()
        if not line:
            break
        try:
            await stream.write(line.decode("utf-8", errors="replace").rstrip("\n"))
        except StreamClosedError:
            break
        except Exception as e:
            logger.error(f"Failed to send message: {format_telegram_error(e)}")


async def check_token(settings: Settings, client: Optional[Any] = None) -> int:
    """Verify the bot token with getMe and print the bot it belongs to."""
    owns_client = client is None
    if owns_client:
        client = TelegramClient(settings.bot_token, base_url=settings.api_base_url)
    try:
        me = await client.get_me()
    finally:
        if owns_client:
            await client.close()

    print(f"@{me.get('username')} (id {me.get('id')})", flush=True)
    return 0


async def async_main(args: argparse.Namespace, source: Optional[IO] = None, **options: Any) -> int:
    """Async entry point.

    Args:
        args: Parsed command line
        source: Where lines to send are read from, stdin by default
        **options: Extra ``TelegramLog`` options such as ``client``
    """
    settings = get_settings(
        bot_token=args.bot_token,
        chat_id=args.chat_id,
        webhook_hostname=args.webhook,
        webhook_port=args.port,
        webhook_url=args.url,
        certificate=args.certificate,
        private_key=args.private_key,
        log_file=args.log_file,
    )
    setup_logger(log_file=settings.log_file)

    if args.check:
        return await check_token(settings, options.get("client"))

    stream = TelegramLog.from_settings(settings, **options)

    @stream.on_error
    def _on_error(error: TelegramLogError) -> None:
        if error.fatal:
            logger.error(f"Stream stopped: {format_telegram_error(error)}")

    if args.reset_webhook and stream.polling:
        await stream.client.delete_webhook()
        logger.info("Removed existing webhook before polling")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    await stream.start()
    logger.info(f"Bridging chat {stream.chat_id} ({'polling' if stream.polling else 'webhook'})")

    reader = asyncio.create_task(print_messages(stream))
    waiters = {reader, asyncio.create_task(stop.wait())}
    if not args.read_only:
        waiters.add(asyncio.create_task(send_lines(stream, source)))

    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        logger.info("Shutting down")
        await stream.close()
        await reader
        for task in waiters:
            task.cancel()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Read and write a Telegram chat from the command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print messages sent to the chat, send stdin lines to it
  telegram-log

  # Only listen, using a webhook on port 8443
  telegram-log --read-only --webhook 0.0.0.0 --port 8443 \\
      --url https://bot.example.org:8443/telegram-log --certificate cert.pem --private-key key.pem

Environment variables:
  TELEGRAM_BOT_TOKEN  - Bot token (or use --bot-token)
  TELEGRAM_CHAT_ID    - Chat to bridge (or use --chat-id)
        """,
    )
    parser.add_argument("--bot-token", default=None, help="Telegram bot token")
    parser.add_argument("--chat-id", default=None, help="Chat ID or @username")
    parser.add_argument(
        "--webhook",
        default=None,
        metavar="HOST",
        help="Receive updates with a webhook listener bound to HOST instead of polling",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Webhook listener port: 80, 88, 443 or 8443 (default: 8443)",
    )
    parser.add_argument("--url", default=None, help="Public webhook URL registered with Telegram")
    parser.add_argument("--certificate", default=None, help="Public TLS certificate file")
    parser.add_argument("--private-key", default=None, help="TLS private key file for the listener")
    parser.add_argument("--log-file", default=None, help="Write errors as JSON lines to this file")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Do not forward stdin to the chat",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Verify the bot token with getMe and exit",
    )
    parser.add_argument(
        "--reset-webhook",
        action="store_true",
        help="Remove a webhook left by another process before polling",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        for handler in setup_logger().handlers:
            handler.setLevel(logging.DEBUG)

    try:
        sys.exit(asyncio.run(async_main(args)))
    except (TelegramLogError, ValidationError) as e:
        # Configuration errors surface before anything started
        logger.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
