from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import pytest

from tgrelay.channels.errors import TemporaryDeliveryError
from tgrelay.relay import lock as lock_mod
from tgrelay.relay.events import Update
from tgrelay.relay.lock import PollLock
from tgrelay.relay.poller import Poller, PollerState

CHAT_ID = "42"


def _raw(update_id: int, text: str = "hello", chat_id: str = CHAT_ID, username: str = "ada") -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "date": 1700000000,
            "chat": {"id": int(chat_id)},
            "from": {"id": 7, "first_name": "Ada", "username": username},
            "text": text,
        },
    }


class _FakeTelegram:
    def __init__(self, updates: list[dict] | None = None) -> None:
        self.updates = list(updates or [])
        self.calls = 0
        self.fail_with: Exception | None = None

    async def get_updates(self, offset: int, limit: int = 10, timeout: int = 0) -> list[dict]:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return [u for u in self.updates if u["update_id"] >= offset][:limit]


class _Recorder:
    def __init__(self) -> None:
        self.seen: list[Update] = []

    async def __call__(self, update: Update) -> None:
        self.seen.append(update)


def _poller(tmp_path: Path, source: _FakeTelegram, handler, **kwargs) -> Poller:
    return Poller(source, CHAT_ID, PollLock(tmp_path / "poll.lock"), handler, **kwargs)


@pytest.mark.asyncio
async def test_three_updates_are_dispatched_in_order_and_cursor_ends_at_last(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(101, "one"), _raw(102, "two"), _raw(103, "three")])
    handler = _Recorder()
    poller = _poller(tmp_path, source, handler)

    result = await poller.start(interval=0.01)
    assert result.ok is True
    for _ in range(100):
        if len(handler.seen) >= 3:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.05)
    await result.handle.stop()

    assert [u.text for u in handler.seen] == ["one", "two", "three"]
    assert poller.cursor.last_seen_id == 103
    assert poller.state == PollerState.STOPPED
    assert PollLock(tmp_path / "poll.lock").read() is None


@pytest.mark.asyncio
async def test_overlapping_tick_is_dropped_without_fetching(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1)])
    release = asyncio.Event()

    async def _slow_handler(update: Update) -> None:
        await release.wait()

    poller = _poller(tmp_path, source, _slow_handler)
    first = asyncio.create_task(poller.tick())
    await asyncio.sleep(0.01)

    assert await poller.tick() is False
    assert source.calls == 1

    release.set()
    assert await first is True


@pytest.mark.asyncio
async def test_tick_filters_foreign_chat_commands_and_blank_text(tmp_path: Path) -> None:
    source = _FakeTelegram(
        [
            _raw(1, "from elsewhere", chat_id="99"),
            _raw(2, "/status"),
            _raw(3, "   "),
            _raw(4, "run the tests"),
        ]
    )
    handler = _Recorder()
    poller = _poller(tmp_path, source, handler)

    await poller.tick()

    assert [u.text for u in handler.seen] == ["run the tests"]
    assert poller.cursor.last_seen_id == 4


@pytest.mark.asyncio
async def test_allow_from_limits_senders(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1, "hi", username="mallory"), _raw(2, "hi", username="ada")])
    handler = _Recorder()
    poller = _poller(tmp_path, source, handler, allow_from=["@ada"])

    await poller.tick()

    assert [u.sender_username for u in handler.seen] == ["ada"]


@pytest.mark.asyncio
async def test_transient_fetch_error_is_swallowed(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1)])
    source.fail_with = TemporaryDeliveryError("connection reset")
    handler = _Recorder()
    poller = _poller(tmp_path, source, handler)

    assert await poller.tick() is True
    assert handler.seen == []

    source.fail_with = None
    await poller.tick()
    assert len(handler.seen) == 1


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_later_updates(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1, "bad"), _raw(2, "good")])
    seen: list[str] = []

    async def _handler(update: Update) -> None:
        if update.text == "bad":
            raise RuntimeError("boom")
        seen.append(update.text)

    await _poller(tmp_path, source, _handler).tick()
    assert seen == ["good"]


@pytest.mark.asyncio
async def test_start_is_refused_when_another_process_holds_the_lock(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(lock_mod, "pid_alive", lambda pid: True)
    path = tmp_path / "poll.lock"
    path.write_text(json.dumps({"owner": os.getpid() + 100000, "timestamp": lock_mod._now_ms()}), encoding="utf-8")
    source = _FakeTelegram([_raw(1)])
    poller = _poller(tmp_path, source, _Recorder())

    result = await poller.start(interval=0.01)
    await asyncio.sleep(0.03)

    assert result.ok is False
    assert "already active elsewhere" in result.message
    assert result.handle is None
    assert poller.state == PollerState.STOPPED
    assert source.calls == 0


@pytest.mark.asyncio
async def test_second_start_on_running_poller_is_refused(tmp_path: Path) -> None:
    poller = _poller(tmp_path, _FakeTelegram(), _Recorder())
    first = await poller.start(interval=10)
    second = await poller.start(interval=10)

    assert first.ok is True
    assert second.ok is False
    assert second.message == "Polling already running"
    assert await poller.stop() is True
    assert await poller.stop() is False


@pytest.mark.asyncio
async def test_poller_stops_when_lock_is_taken_over(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(lock_mod, "pid_alive", lambda pid: True)
    path = tmp_path / "poll.lock"
    poller = _poller(tmp_path, _FakeTelegram(), _Recorder())

    result = await poller.start(interval=10)
    await asyncio.sleep(0.02)
    path.write_text(json.dumps({"owner": 424242, "timestamp": lock_mod._now_ms()}), encoding="utf-8")
    await poller.tick()

    assert poller.state == PollerState.STOPPED
    assert result.handle.running is False
    assert json.loads(path.read_text(encoding="utf-8"))["owner"] == 424242


@pytest.mark.asyncio
async def test_start_without_chat_is_refused(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1)])
    poller = Poller(source, "", PollLock(tmp_path / "poll.lock"), _Recorder())

    result = await poller.start(interval=0.01)

    assert result.ok is False
    assert result.message == "Telegram chat not configured"
    assert poller.state == PollerState.STOPPED
    assert not (tmp_path / "poll.lock").exists()
    assert source.calls == 0


@pytest.mark.asyncio
async def test_tick_without_chat_dispatches_nothing(tmp_path: Path) -> None:
    source = _FakeTelegram([_raw(1, "rm -rf ~", chat_id="666")])
    handler = _Recorder()
    poller = Poller(source, "", PollLock(tmp_path / "poll.lock"), handler)

    await poller.tick()

    assert handler.seen == []
    assert poller.cursor.last_seen_id == 1


@pytest.mark.asyncio
async def test_failed_fetch_still_refreshes_the_lock(tmp_path: Path) -> None:
    path = tmp_path / "poll.lock"
    source = _FakeTelegram()
    poller = _poller(tmp_path, source, _Recorder())
    result = await poller.start(interval=10)
    await asyncio.sleep(0.02)

    aged = lock_mod._now_ms() - 20_000
    path.write_text(json.dumps({"owner": os.getpid(), "timestamp": aged}), encoding="utf-8")
    source.fail_with = RuntimeError("bad gateway")
    await poller.tick()

    record = PollLock(path).read()
    assert record.owner == os.getpid()
    assert record.timestamp > aged + 10_000
    assert poller.state == PollerState.RUNNING
    await result.handle.stop()
