"""Relay poller: drains Telegram on a fixed interval under the poll lock."""

from __future__ import annotations

import asyncio
import os
from enum import Enum
from typing import Awaitable, Callable, Iterable

from loguru import logger

from tgrelay.channels.errors import ConfigurationError, TemporaryDeliveryError
from tgrelay.relay.cursor import UpdateCursor, UpdateSource, fetch_since
from tgrelay.relay.events import StartResult, Update
from tgrelay.relay.lock import PollLock

UpdateHandler = Callable[[Update], Awaitable[None]]

ALREADY_ACTIVE_ELSEWHERE = "already active elsewhere"
CHAT_NOT_CONFIGURED = "Telegram chat not configured"


class PollMode(str, Enum):
    RELAY = "relay"  # forward chat text into the terminal
    APPROVAL = "approval"  # feed replies to a waiting approval request


class PollerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PollHandle:
    """Handle returned by a successful start; stopping it stops the poller."""

    def __init__(self, poller: "Poller", task: asyncio.Task):
        self._poller = poller
        self.task = task

    @property
    def running(self) -> bool:
        return self._poller.state == PollerState.RUNNING and not self.task.done()

    async def stop(self) -> bool:
        return await self._poller.stop()


class Poller:
    """
    Periodically fetches new updates and hands each accepted one to a handler.

    All poll state (cursor, running flag, in-progress guard) lives on the
    instance. A tick that comes due while the previous one is still running
    is dropped, so handlers never overlap.
    """

    def __init__(
        self,
        source: UpdateSource,
        chat_id: str,
        lock: PollLock,
        handler: UpdateHandler,
        *,
        mode: PollMode = PollMode.RELAY,
        limit: int = 10,
        command_prefix: str = "/",
        allow_from: Iterable[str] | None = None,
        owner_id: int | None = None,
        cursor: UpdateCursor | None = None,
    ):
        self.source = source
        self.chat_id = str(chat_id or "").strip()
        self.lock = lock
        self.handler = handler
        self.mode = mode
        self.limit = limit
        self.command_prefix = command_prefix
        self.allow_from = {a.strip().lstrip("@") for a in (allow_from or []) if a.strip()}
        self.owner_id = owner_id if owner_id is not None else os.getpid()
        self.cursor = cursor or UpdateCursor()
        self.state = PollerState.STOPPED
        self._in_progress = False
        self._task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self.state == PollerState.RUNNING

    # ── lifecycle ──

    async def start(self, interval: float = 2.0) -> StartResult:
        """Acquire the lock and schedule ticks every ``interval`` seconds."""
        if self.is_running:
            return StartResult(False, "Polling already running")
        if not self.chat_id:
            logger.warning(f"Poller not started: {CHAT_NOT_CONFIGURED}")
            return StartResult(False, CHAT_NOT_CONFIGURED)
        if not self.lock.try_acquire(self.owner_id):
            holder = self.lock.holder()
            who = f" (pid {holder.owner})" if holder else ""
            logger.warning(f"Poller not started: {ALREADY_ACTIVE_ELSEWHERE}{who}")
            return StartResult(False, f"Polling {ALREADY_ACTIVE_ELSEWHERE}{who}")

        self.state = PollerState.RUNNING
        self._task = asyncio.create_task(self._schedule(interval))
        logger.info(f"Poller started in {self.mode.value} mode (every {interval:.1f}s)")
        return StartResult(True, "Polling started", handle=PollHandle(self, self._task))

    async def stop(self) -> bool:
        """Cancel the schedule and release the lock. False if it was not running."""
        if not self.is_running:
            return False
        self.state = PollerState.STOPPED
        await self._cancel_schedule()
        self.lock.release(self.owner_id)
        logger.info("Poller stopped")
        return True

    async def _cancel_schedule(self) -> None:
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _schedule(self, interval: float) -> None:
        while self.is_running:
            if self._in_progress:
                logger.debug("Previous tick still running; skipping this one")
            else:
                self._tick_task = asyncio.create_task(self.tick())
            await asyncio.sleep(interval)

    # ── work ──

    def authorised(self, update: Update) -> bool:
        """True if the update comes from the configured chat and an allowed sender.

        With no chat configured nothing is authorised.
        """
        if not self.chat_id or update.channel_id != self.chat_id:
            return False
        if self.allow_from and not (
            update.sender_id in self.allow_from or update.sender_username in self.allow_from
        ):
            return False
        return True

    def accepts(self, update: Update) -> bool:
        """Filter applied to every fetched update before dispatch."""
        if not self.authorised(update):
            return False
        text = update.text.strip()
        if not text:
            return False
        if self.command_prefix and text.startswith(self.command_prefix):
            return False
        return True

    async def tick(self) -> bool:
        """Run one poll cycle. Returns False if skipped because one is in flight."""
        if self._in_progress:
            return False
        self._in_progress = True
        try:
            try:
                updates = await fetch_since(self.source, self.cursor, self.limit)
            except TemporaryDeliveryError as e:
                logger.debug(f"Poll fetch failed (will retry next tick): {e}")
                updates = []
            except ConfigurationError as e:
                logger.error(f"Poll fetch impossible: {e}")
                updates = []
            except Exception as e:
                logger.error(f"Poll fetch error: {e}")
                updates = []

            for update in updates:
                if not self.accepts(update):
                    logger.debug(f"Dropped update {update.id} from chat {update.channel_id}")
                    continue
                try:
                    await self.handler(update)
                except Exception as e:
                    logger.error(f"Handler failed for update {update.id}: {e}")
        finally:
            try:
                await self._heartbeat()
            finally:
                self._in_progress = False
        return True

    async def _heartbeat(self) -> None:
        if not self.is_running:
            return
        if self.lock.heartbeat(self.owner_id):
            return
        logger.warning("Poll lock lost to another process; stopping poller")
        self.state = PollerState.STOPPED
        await self._cancel_schedule()
