"""Post-tool notification hook. Writes nothing to stdout."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from tgrelay.approval.formatting import format_tool_result
from tgrelay.channels.telegram import TelegramClient
from tgrelay.config.schema import Config
from tgrelay.hooks._io import MalformedEvent, prepare, read_event


def has_error(event: dict[str, Any]) -> bool:
    if event.get("error"):
        return True
    output = event.get("tool_output")
    return output is not None and "Error" in str(output)


def should_notify(event: dict[str, Any], config: Config) -> bool:
    return config.notify.notify_all or has_error(event)


async def notify(
    event: dict[str, Any],
    config: Config,
    client: TelegramClient | None = None,
) -> bool:
    """Send the notification for one PostToolUse event. True if one was sent."""
    if not config.is_configured or not should_notify(event, config):
        return False

    tool_output = event.get("tool_output")
    text = format_tool_result(
        str(event.get("tool_name") or "unknown"),
        tool_output=str(tool_output) if tool_output is not None else None,
        error=event.get("error"),
        is_error=has_error(event),
    )

    owns_client = client is None
    client = client or TelegramClient(config.telegram)
    try:
        await client.send_text(text, parse_mode="HTML")
        return True
    except Exception as e:
        logger.warning(f"Post-tool notification not sent: {e}")
        return False
    finally:
        if owns_client:
            await client.aclose()


def run(raw: str | None = None) -> bool:
    try:
        event = read_event(raw)
    except MalformedEvent as e:
        logger.debug(f"Post-tool hook input ignored: {e}")
        return False
    try:
        return asyncio.run(notify(event, prepare()))
    except Exception as e:
        logger.exception(f"Post-tool hook failed: {e}")
        return False


def main() -> None:
    run()


if __name__ == "__main__":
    main()
