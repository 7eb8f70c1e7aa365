from __future__ import annotations

import asyncio
import time

import pytest

from tgrelay.approval.coordinator import ApprovalCoordinator, FailPolicy
from tgrelay.approval.tokens import TokenSets
from tgrelay.channels.errors import PermanentDeliveryError, TemporaryDeliveryError
from tgrelay.relay.events import Update

CHAT_ID = "42"
PROMPT_ID = 500


class _FakeChat:
    """Stub Bot API: the prompt gets message id 500, replies are scripted per poll."""

    def __init__(self, rounds: list[list[tuple[int, str]]] | None = None, chat_id: str = CHAT_ID) -> None:
        self.chat_id = chat_id
        self.rounds = list(rounds or [])
        self.sent: list[tuple[str, str | None]] = []
        self.polls = 0
        self.send_error: Exception | None = None
        self.poll_error: Exception | None = None
        self._next_message_id = PROMPT_ID
        self._next_update_id = 1

    async def send_text(self, text: str, parse_mode: str | None = None) -> dict:
        if self.send_error is not None and not self.sent:
            raise self.send_error
        self.sent.append((text, parse_mode))
        message_id = self._next_message_id
        self._next_message_id += 100
        return {"message_id": message_id}

    async def get_updates(self, offset: int, limit: int = 10, timeout: int = 0) -> list[dict]:
        self.polls += 1
        if self.poll_error is not None:
            raise self.poll_error
        if not self.rounds:
            return []
        batch = []
        for message_id, text in self.rounds.pop(0):
            batch.append(_raw(self._next_update_id, message_id, text))
            self._next_update_id += 1
        return batch


def _raw(update_id: int, message_id: int, text: str, chat_id: str = CHAT_ID, username: str = "ada") -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": message_id,
            "date": 1700000000,
            "chat": {"id": int(chat_id)},
            "from": {"id": 7, "first_name": "Ada", "username": username},
            "text": text,
        },
    }


def _coordinator(chat: _FakeChat, **kwargs) -> ApprovalCoordinator:
    tokens = TokenSets.build(["是", "好", "可以"], ["否", "不", "拒绝"])
    kwargs.setdefault("poll_interval", 0.01)
    return ApprovalCoordinator(chat, tokens, **kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["Y", " yes ", "1", "approve", "是", "好", "可以"])
async def test_affirmative_replies_approve(reply: str) -> None:
    chat = _FakeChat([[(501, reply)]])
    decision = await _coordinator(chat).request_approval("run tests", timeout=2.0, subject="Bash")

    assert decision.approved is True
    assert decision.response == reply
    assert chat.sent[-1] == ("✅ Approved: Bash", None)


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["N", "no", "0", "deny", "否", "不", "拒绝"])
async def test_negative_replies_deny(reply: str) -> None:
    chat = _FakeChat([[(501, reply)]])
    decision = await _coordinator(chat).request_approval("run tests", timeout=2.0, subject="Bash")

    assert decision.approved is False
    assert decision.reason == f"user denied: {reply.strip()}"
    assert chat.sent[-1][0] == f"❌ Denied: Bash\nReason: user denied: {reply.strip()}"


@pytest.mark.asyncio
async def test_prompt_is_sent_as_html_with_timeout() -> None:
    chat = _FakeChat([[(501, "y")]])
    await _coordinator(chat).request_approval("🔧 <b>Tool:</b> Bash", timeout=60)

    text, parse_mode = chat.sent[0]
    assert parse_mode == "HTML"
    assert text.startswith("⚠️ <b>Permission Request</b>")
    assert "🔧 <b>Tool:</b> Bash" in text
    assert "(Timeout: 60s)" in text


@pytest.mark.asyncio
async def test_unrecognised_reply_is_ignored_until_a_verdict_arrives() -> None:
    chat = _FakeChat([[(501, "maybe")], [], [(502, "sure?")], [(503, "yes")]])
    decision = await _coordinator(chat).request_approval("x", timeout=2.0)

    assert decision.approved is True
    assert chat.polls == 4


@pytest.mark.asyncio
async def test_newest_reply_in_a_round_wins() -> None:
    chat = _FakeChat([[(501, "y"), (502, "n")]])
    decision = await _coordinator(chat).request_approval("x", timeout=2.0)

    assert decision.approved is False
    assert decision.reason == "user denied: n"


@pytest.mark.asyncio
async def test_messages_older_than_prompt_or_from_other_chats_are_ignored() -> None:
    chat = _FakeChat([[(499, "y")]])
    chat.rounds[0].append((501, "y"))
    coordinator = _coordinator(chat)

    # Rewrite the second reply so it comes from another chat.
    upstream = chat.get_updates

    async def _foreign(offset: int, limit: int = 10, timeout: int = 0) -> list[dict]:
        batch = await upstream(offset, limit, timeout)
        for raw in batch:
            if raw["message"]["message_id"] == 501:
                raw["message"]["chat"]["id"] = 99
        return batch

    chat.get_updates = _foreign
    decision = await coordinator.request_approval("x", timeout=0.2)

    assert decision.approved is False
    assert decision.timed_out is True


@pytest.mark.asyncio
async def test_allow_from_ignores_other_senders() -> None:
    chat = _FakeChat([[(501, "y")]])
    decision = await _coordinator(chat, allow_from=["someone_else"]).request_approval("x", timeout=0.2)

    assert decision.reason == "timeout"


@pytest.mark.asyncio
async def test_timeout_resolves_within_one_poll_interval_of_deadline() -> None:
    chat = _FakeChat()
    coordinator = _coordinator(chat, poll_interval=0.05)

    started = time.monotonic()
    decision = await coordinator.request_approval("x", timeout=1.0, subject="Bash")
    elapsed = time.monotonic() - started

    assert decision.approved is False
    assert decision.reason == "timeout"
    assert 1.0 <= elapsed < 1.0 + 0.05 + 0.25
    assert chat.sent[-1][0] == "❌ Denied: Bash\nReason: timeout"
    assert coordinator.pending is None


@pytest.mark.asyncio
async def test_send_failure_resolves_per_policy() -> None:
    closed_chat = _FakeChat()
    closed_chat.send_error = PermanentDeliveryError("chat not found")
    closed = await _coordinator(closed_chat).request_approval("x", timeout=1.0, policy=FailPolicy.CLOSED)

    open_chat = _FakeChat()
    open_chat.send_error = PermanentDeliveryError("chat not found")
    opened = await _coordinator(open_chat).request_approval("x", timeout=1.0, policy=FailPolicy.OPEN)

    assert closed.approved is False
    assert closed.reason.startswith("error: ")
    assert "chat not found" in closed.reason
    assert opened.approved is True
    assert closed_chat.polls == 0


@pytest.mark.asyncio
async def test_transient_poll_errors_keep_waiting_until_deadline() -> None:
    chat = _FakeChat()
    chat.poll_error = TemporaryDeliveryError("connection reset")
    decision = await _coordinator(chat).request_approval("x", timeout=0.2, policy=FailPolicy.OPEN)

    assert decision.reason == "timeout"
    assert chat.polls > 1


@pytest.mark.asyncio
async def test_permanent_poll_error_resolves_per_policy() -> None:
    chat = _FakeChat()
    chat.poll_error = PermanentDeliveryError("Unauthorized")
    decision = await _coordinator(chat).request_approval("x", timeout=2.0, policy=FailPolicy.CLOSED)

    assert decision.approved is False
    assert decision.reason.startswith("error: poll failed")
    assert chat.polls == 1


@pytest.mark.asyncio
async def test_offered_updates_resolve_when_a_poller_feeds_replies() -> None:
    chat = _FakeChat()
    coordinator = _coordinator(chat, self_poll=False)

    task = asyncio.create_task(coordinator.request_approval("x", timeout=2.0))
    for _ in range(100):
        if coordinator.pending is not None:
            break
        await asyncio.sleep(0.01)
    update = Update.from_telegram(_raw(1, PROMPT_ID + 1, "yes"))
    await coordinator.handle_update(update)
    decision = await task

    assert decision.approved is True
    assert chat.polls == 0


@pytest.mark.asyncio
async def test_fed_reply_that_beats_the_pending_state_is_not_lost() -> None:
    chat = _FakeChat()
    coordinator = _coordinator(chat, self_poll=False)

    await coordinator.handle_update(Update.from_telegram(_raw(1, PROMPT_ID - 10, "no")))
    await coordinator.handle_update(Update.from_telegram(_raw(2, PROMPT_ID + 1, "yes")))
    decision = await coordinator.request_approval("x", timeout=2.0)

    assert decision.approved is True
    assert decision.response == "yes"


def test_fail_policy_decides_errors() -> None:
    assert FailPolicy.OPEN.decide("poller active elsewhere").approved is True
    closed = FailPolicy.CLOSED.decide("poller active elsewhere")
    assert closed.approved is False
    assert closed.reason == "error: poller active elsewhere"


def test_token_in_both_sets_counts_as_negative() -> None:
    tokens = TokenSets.build(["ok"], ["ok"])
    assert tokens.classify("OK") is False
    assert tokens.classify("maybe") is None
    assert tokens.classify("") is None
