"""Update cursor: the highest update id this process has consumed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from tgrelay.relay.events import Update


class UpdateSource(Protocol):
    async def get_updates(self, offset: int, limit: int = 10, timeout: int = 0) -> list[dict[str, Any]]:
        ...


@dataclass
class UpdateCursor:
    """Monotonic high-water mark over Telegram update ids.

    Lives for one process only; a fresh cursor (0) asks Telegram for whatever
    it still considers unacknowledged.
    """

    last_seen_id: int = 0

    @property
    def next_offset(self) -> int:
        return self.last_seen_id + 1

    def advance(self, update_id: int) -> None:
        if update_id > self.last_seen_id:
            self.last_seen_id = update_id


async def fetch_since(
    source: UpdateSource,
    cursor: UpdateCursor,
    limit: int = 10,
    timeout: int = 0,
) -> list[Update]:
    """Fetch updates newer than the cursor and advance it.

    The cursor moves to the largest update id in the response, including
    updates that are not text messages, so nothing is ever fetched twice by
    the same cursor. Returned updates are sorted by id.
    """
    raw_updates = await source.get_updates(offset=cursor.next_offset, limit=limit, timeout=timeout)

    baseline = cursor.last_seen_id
    updates: list[Update] = []
    for raw in raw_updates:
        try:
            update_id = int(raw["update_id"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Skipping update without a usable update_id: {str(raw)[:100]}")
            continue
        if update_id <= baseline:
            # Already consumed; Telegram should not resend these, but never hand them out twice.
            continue
        cursor.advance(update_id)
        update = Update.from_telegram(raw)
        if update is not None:
            updates.append(update)

    updates.sort(key=lambda u: u.id)
    return updates
