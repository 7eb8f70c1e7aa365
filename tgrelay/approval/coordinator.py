"""Remote approval: send a prompt, wait for one correlated yes/no reply.

The prompt's message id is the correlation anchor. Only replies from the
authorised chat (and sender, when an allowlist is set) with a message id
above the anchor count, and of those only the newest one seen in a polling
round is considered. Resolution always happens, at the latest when the
deadline passes.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from loguru import logger

from tgrelay.approval.formatting import format_approval_prompt
from tgrelay.approval.tokens import TokenSets
from tgrelay.channels.errors import TemporaryDeliveryError
from tgrelay.relay.cursor import UpdateCursor, fetch_since
from tgrelay.relay.events import ApprovalDecision, Update
from tgrelay.utils.helpers import truncate_string


class ApprovalChannel(Protocol):
    chat_id: str

    async def send_text(self, text: str, parse_mode: str | None = None) -> dict[str, Any]:
        ...

    async def get_updates(self, offset: int, limit: int = 10, timeout: int = 0) -> list[dict[str, Any]]:
        ...


class FailPolicy(str, Enum):
    """What an error during the exchange resolves to."""

    OPEN = "open"  # approve; for flows where blocking is worse than allowing
    CLOSED = "closed"  # deny; for gating sensitive actions

    def decide(self, message: str) -> ApprovalDecision:
        if self == FailPolicy.OPEN:
            return ApprovalDecision.approve(reason=message)
        return ApprovalDecision.deny(f"error: {message}")


@dataclass
class PendingApproval:
    prompt_id: int
    deadline: float
    outcome: ApprovalDecision | None = None
    latest: Update | None = field(default=None, repr=False)
    evaluated_id: int = 0

    def resolve(self, decision: ApprovalDecision) -> bool:
        if self.outcome is not None:
            return False
        self.outcome = decision
        return True


class ApprovalCoordinator:
    """
    Correlates an outbound permission prompt with one inbound human answer.

    By default it polls Telegram itself through its own cursor. When a
    Poller in approval mode is already draining the chat, construct it with
    ``self_poll=False`` and register :meth:`handle_update` as the poller's
    handler instead.
    """

    def __init__(
        self,
        channel: ApprovalChannel,
        tokens: TokenSets | None = None,
        *,
        allow_from: Iterable[str] | None = None,
        poll_interval: float = 1.0,
        limit: int = 100,
        self_poll: bool = True,
        cursor: UpdateCursor | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.tokens = tokens or TokenSets.build()
        self.allow_from = {a.strip().lstrip("@") for a in (allow_from or []) if a.strip()}
        self.poll_interval = poll_interval
        self.limit = limit
        self.self_poll = self_poll
        self.cursor = cursor or UpdateCursor()
        self._clock = clock
        self._pending: PendingApproval | None = None
        self._unclaimed: list[Update] = []

    @property
    def pending(self) -> PendingApproval | None:
        return self._pending

    async def request_approval(
        self,
        description: str,
        timeout: float,
        policy: FailPolicy = FailPolicy.CLOSED,
        subject: str | None = None,
    ) -> ApprovalDecision:
        """Ask the operator and wait at most ``timeout`` seconds for the answer.

        ``description`` is HTML. ``subject`` names the action in the follow-up
        confirmation (defaults to the first line of the description).
        """
        subject = subject or truncate_string(description.splitlines()[0] if description else "action", 80)
        prompt = format_approval_prompt(description, timeout)

        try:
            message = await self.channel.send_text(prompt, parse_mode="HTML")
            anchor = int(message["message_id"])
        except Exception as e:
            logger.error(f"Approval prompt not sent: {e}")
            return policy.decide(f"prompt not sent: {e}")

        pending = PendingApproval(prompt_id=anchor, deadline=self._clock() + timeout)
        self._pending = pending
        unclaimed, self._unclaimed = self._unclaimed, []
        for update in unclaimed:
            self.offer(update)
        try:
            decision = await self._wait(pending, policy)
        finally:
            self._pending = None

        logger.info(
            f"Approval for {subject!r}: {'approved' if decision.approved else 'denied'}"
            + (f" ({decision.reason})" if decision.reason else "")
        )
        await self._confirm(subject, decision)
        return decision

    async def handle_update(self, update: Update) -> None:
        """Poller handler for approval mode."""
        self.offer(update)

    def offer(self, update: Update) -> None:
        """Record an inbound message as a candidate answer for the pending prompt."""
        pending = self._pending
        if pending is None:
            # A fed reply can arrive while the prompt is still being sent.
            if not self.self_poll:
                self._unclaimed = (self._unclaimed + [update])[-self.limit:]
            return
        if pending.outcome is not None:
            return
        if not self._authorised(update):
            return
        if update.message_id <= pending.prompt_id:
            return
        if pending.latest is None or update.message_id > pending.latest.message_id:
            pending.latest = update

    def _authorised(self, update: Update) -> bool:
        chat_id = str(getattr(self.channel, "chat_id", "") or "").strip()
        if not chat_id or update.channel_id != chat_id:
            return False
        if self.allow_from and not (
            update.sender_id in self.allow_from or update.sender_username in self.allow_from
        ):
            return False
        return True

    def _evaluate(self, pending: PendingApproval) -> None:
        candidate = pending.latest
        if candidate is None or candidate.message_id <= pending.evaluated_id:
            return
        pending.evaluated_id = candidate.message_id
        verdict = self.tokens.classify(candidate.text)
        if verdict is None:
            logger.debug(f"Ignoring non-verdict reply: {truncate_string(candidate.text, 40)}")
            return
        if verdict:
            pending.resolve(ApprovalDecision.approve(response=candidate.text))
        else:
            pending.resolve(ApprovalDecision.deny(f"user denied: {candidate.text.strip()}", response=candidate.text))

    async def _poll_once(self, pending: PendingApproval, policy: FailPolicy) -> None:
        remaining = max(0.05, pending.deadline - self._clock())
        try:
            updates = await asyncio.wait_for(
                fetch_since(self.channel, self.cursor, self.limit),
                timeout=remaining,
            )
        except (TemporaryDeliveryError, asyncio.TimeoutError) as e:
            logger.debug(f"Approval poll failed, retrying: {e or 'timeout'}")
            return
        except Exception as e:
            logger.error(f"Approval poll error: {e}")
            pending.resolve(policy.decide(f"poll failed: {e}"))
            return
        for update in updates:
            self.offer(update)

    async def _wait(self, pending: PendingApproval, policy: FailPolicy) -> ApprovalDecision:
        while True:
            if self.self_poll and pending.outcome is None:
                await self._poll_once(pending, policy)
            self._evaluate(pending)
            if pending.outcome is not None:
                return pending.outcome

            remaining = pending.deadline - self._clock()
            if remaining <= 0:
                pending.resolve(ApprovalDecision.deny("timeout"))
                return pending.outcome
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def _confirm(self, subject: str, decision: ApprovalDecision) -> None:
        if decision.approved:
            text = f"✅ Approved: {subject}"
        else:
            text = f"❌ Denied: {subject}\nReason: {decision.reason}"
        try:
            await self.channel.send_text(text)
        except Exception as e:
            logger.warning(f"Approval confirmation not sent: {e}")
