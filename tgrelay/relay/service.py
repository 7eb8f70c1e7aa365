"""Relay service: one Telegram client, one cursor, one poller per process.

The MCP server and ``tgrelay poll`` both drive this object. Reads through
``get_messages``/``check_new`` share the poller's cursor, and are refused
while the poller runs so it stays the only consumer of the update queue.
"""

from __future__ import annotations

from loguru import logger

from tgrelay.channels.errors import ConfigurationError, OutboundDeliveryError
from tgrelay.channels.telegram import TelegramClient
from tgrelay.config.schema import Config
from tgrelay.inject.gateway import InjectionGateway
from tgrelay.relay.cursor import UpdateCursor, fetch_since
from tgrelay.relay.events import InjectionResult, StartResult, Update
from tgrelay.relay.lock import PollLock
from tgrelay.relay.poller import Poller, PollMode
from tgrelay.utils.helpers import truncate_string

STARTED_ANNOUNCEMENT = "📡 Remote control started. Messages sent here will be typed into the terminal."
STOPPED_ANNOUNCEMENT = "📡 Remote control stopped."


class PollingActiveError(RuntimeError):
    """Raised when a direct read is attempted while the poller owns the queue."""


class RelayService:
    """Telegram ↔ terminal relay for a single configured chat."""

    def __init__(
        self,
        config: Config,
        client: TelegramClient | None = None,
        gateway: InjectionGateway | None = None,
        lock: PollLock | None = None,
    ):
        self.config = config
        self.client = client or TelegramClient(config.telegram)
        self._gateway = gateway
        self.cursor = UpdateCursor()
        self.poller = Poller(
            self.client,
            config.telegram.chat_id,
            lock or PollLock(config.lock_path, ttl_ms=config.polling.lock_ttl_ms),
            self.relay_update,
            mode=PollMode.RELAY,
            limit=config.polling.limit,
            command_prefix=config.polling.command_prefix,
            allow_from=config.telegram.allow_from,
            cursor=self.cursor,
        )

    @property
    def gateway(self) -> InjectionGateway:
        if self._gateway is None:
            from tgrelay.inject import create_gateway

            self._gateway = create_gateway(self.config.inject)
        return self._gateway

    @property
    def polling(self) -> bool:
        return self.poller.is_running

    async def aclose(self) -> None:
        await self.poller.stop()
        await self.client.aclose()

    # ── outbound ──

    async def send_message(self, text: str) -> dict:
        return await self.client.send_text(text)

    async def send_photo(self, photo_path: str, caption: str = "") -> dict:
        return await self.client.send_media("photo", photo_path, caption)

    async def _notify(self, text: str) -> None:
        """Best-effort message to the operator."""
        try:
            await self.client.send_text(text)
        except (OutboundDeliveryError, ConfigurationError) as e:
            logger.warning(f"Operator notification not sent: {e}")

    # ── relay mode ──

    async def relay_update(self, update: Update) -> InjectionResult:
        """Poller handler: type the message into the terminal."""
        logger.info(f"Relaying message {update.message_id} from {update.sender or update.sender_id}")
        result = await self.gateway.inject(update.text)
        if not result.ok:
            preview = truncate_string(update.text.strip(), self.config.notify.preview_chars)
            await self._notify(f"⚠️ Could not deliver to the terminal: {preview}\nReason: {result.reason}")
        return result

    async def start_polling(self, interval_ms: int | None = None) -> StartResult:
        interval_ms = interval_ms or self.config.polling.interval_ms
        result = await self.poller.start(interval=max(interval_ms, 100) / 1000)
        if result.ok:
            await self._notify(STARTED_ANNOUNCEMENT)
        return result

    async def stop_polling(self) -> StartResult:
        if not await self.poller.stop():
            return StartResult(False, "Polling not active")
        await self._notify(STOPPED_ANNOUNCEMENT)
        return StartResult(True, "Polling stopped")

    # ── direct reads ──

    async def _read(self, limit: int) -> list[Update]:
        if self.polling:
            raise PollingActiveError("Polling is active; messages are being relayed to the terminal")
        updates = await fetch_since(self.client, self.cursor, limit)
        return [u for u in updates if self.poller.authorised(u)]

    async def get_messages(self, limit: int = 10) -> list[Update]:
        """Messages received since the last read, oldest first."""
        return await self._read(limit)

    async def check_new(self) -> Update | None:
        """Drain pending updates and return the newest message, if any."""
        updates = await self._read(100)
        return updates[-1] if updates else None
