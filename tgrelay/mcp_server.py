"""MCP stdio server exposing the Telegram relay as agent tools."""

from __future__ import annotations

import json

from loguru import logger
from mcp.server import FastMCP

from tgrelay.channels.errors import ConfigurationError, OutboundDeliveryError
from tgrelay.config.loader import load_config
from tgrelay.config.schema import Config
from tgrelay.relay.service import PollingActiveError, RelayService


def create_server(service: RelayService | None = None, config: Config | None = None) -> FastMCP:
    """Build the FastMCP app. Tool errors come back as ``Error: ...`` text."""
    if service is None:
        service = RelayService(config or load_config())
    app = FastMCP("tgrelay")

    @app.tool()
    async def telegram_send_message(message: str) -> str:
        """Send a text message to the configured Telegram chat. Use this to communicate with the user via Telegram."""
        try:
            result = await service.send_message(message)
        except (OutboundDeliveryError, ConfigurationError) as e:
            return f"Error: {e}"
        return f"Message sent successfully. Message ID: {result.get('message_id')}"

    @app.tool()
    async def telegram_get_messages(limit: int = 10) -> str:
        """Get messages received since the last read from the configured Telegram chat."""
        try:
            messages = await service.get_messages(limit)
        except (OutboundDeliveryError, ConfigurationError, PollingActiveError) as e:
            return f"Error: {e}"
        if not messages:
            return "No new messages"
        return json.dumps([m.to_dict() for m in messages], indent=2, ensure_ascii=False)

    @app.tool()
    async def telegram_check_new() -> str:
        """Check (without waiting) whether a new message has arrived."""
        try:
            latest = await service.check_new()
        except (OutboundDeliveryError, ConfigurationError, PollingActiveError) as e:
            return f"Error: {e}"
        if latest is None:
            return "No new messages"
        return f"New message from {latest.sender}: {latest.text}"

    @app.tool()
    async def telegram_send_photo(photo_path: str, caption: str = "") -> str:
        """Send a local image file to the configured Telegram chat."""
        try:
            result = await service.send_photo(photo_path, caption)
        except (OutboundDeliveryError, ConfigurationError) as e:
            return f"Error: {e}"
        return f"Photo sent successfully. Message ID: {result.get('message_id')}"

    @app.tool()
    async def telegram_start_polling(interval: int = 2000) -> str:
        """Start auto-polling. New chat messages are typed into the terminal as user input."""
        result = await service.start_polling(interval)
        return result.message

    @app.tool()
    async def telegram_stop_polling() -> str:
        """Stop auto-polling for Telegram messages."""
        result = await service.stop_polling()
        return result.message

    return app


def run(config: Config | None = None) -> None:
    """Serve over stdio until the client disconnects."""
    logger.info("tgrelay MCP server running on stdio")
    create_server(config=config).run()
