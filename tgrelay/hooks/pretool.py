"""Pre-tool approval hook.

Sensitive tool calls are held until the operator answers in the Telegram
chat. Anything that prevents asking (no config, unreadable input) approves,
so a broken setup never blocks the agent.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

from loguru import logger

from tgrelay.approval.coordinator import ApprovalCoordinator, FailPolicy
from tgrelay.approval.formatting import format_tool_info
from tgrelay.approval.tokens import TokenSets
from tgrelay.channels.telegram import TelegramClient
from tgrelay.config.schema import Config
from tgrelay.hooks._io import MalformedEvent, prepare, read_event
from tgrelay.relay.events import ApprovalDecision
from tgrelay.relay.lock import PollLock
from tgrelay.relay.poller import Poller, PollMode

POLLER_ACTIVE_ELSEWHERE = "poller active elsewhere"


async def decide(
    event: dict[str, Any],
    config: Config,
    client: TelegramClient | None = None,
) -> ApprovalDecision:
    """Return the decision for one PreToolUse event.

    Replies are read by an approval-mode poller under the shared poll lock.
    While a relay poller holds that lock the request is not sent, and the
    outcome follows the configured fail policy.
    """
    tool_name = event.get("tool_name")
    if not isinstance(tool_name, str) or not tool_name:
        return ApprovalDecision.approve(reason="malformed input")
    if tool_name not in config.approval.sensitive_tools:
        return ApprovalDecision.approve()
    if not config.is_configured:
        logger.debug("Telegram not configured; approving")
        return ApprovalDecision.approve(reason="not configured")

    owns_client = client is None
    client = client or TelegramClient(config.telegram)
    interval = config.approval.poll_interval_ms / 1000
    coordinator = ApprovalCoordinator(
        client,
        TokenSets.build(config.approval.affirmative, config.approval.negative),
        allow_from=config.telegram.allow_from,
        poll_interval=interval,
        limit=config.polling.limit,
        self_poll=False,
    )
    poller = Poller(
        client,
        config.telegram.chat_id,
        PollLock(config.lock_path, ttl_ms=config.polling.lock_ttl_ms),
        coordinator.handle_update,
        mode=PollMode.APPROVAL,
        limit=config.polling.limit,
        command_prefix=config.polling.command_prefix,
        allow_from=config.telegram.allow_from,
    )
    policy = FailPolicy.OPEN if config.approval.fail_open else FailPolicy.CLOSED
    try:
        started = await poller.start(interval=interval)
        if not started.ok:
            logger.warning(f"Approval for {tool_name} not requested: {started.message}")
            return policy.decide(POLLER_ACTIVE_ELSEWHERE)
        try:
            return await coordinator.request_approval(
                format_tool_info(tool_name, event.get("tool_input")),
                timeout=config.approval.timeout_ms / 1000,
                policy=policy,
                subject=tool_name,
            )
        finally:
            await poller.stop()
    except Exception as e:
        logger.exception(f"Approval for {tool_name} failed: {e}")
        return ApprovalDecision.approve(reason=f"error: {e}")
    finally:
        if owns_client:
            await client.aclose()


def run(raw: str | None = None) -> dict[str, str]:
    """Full hook run: parse, decide, and return the stdout document."""
    try:
        event = read_event(raw)
    except MalformedEvent as e:
        logger.warning(f"Pre-tool hook input ignored: {e}")
        return ApprovalDecision.approve().to_hook_output()

    try:
        config = prepare()
        decision = asyncio.run(decide(event, config))
    except Exception as e:
        logger.exception(f"Pre-tool hook failed: {e}")
        decision = ApprovalDecision.approve(reason=f"error: {e}")
    return decision.to_hook_output()


def main() -> None:
    sys.stdout.write(json.dumps(run()) + "\n")
    sys.stdout.flush()


if __name__ == "__main__":
    main()
