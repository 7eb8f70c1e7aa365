"""Telegram Bot API client using httpx.

Only the handful of calls the relay needs: getUpdates, sendMessage, the
sendPhoto/sendDocument family and getMe. Every call returns the decoded
``result`` field or raises an :class:`OutboundDeliveryError` subclass.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from tgrelay.channels.errors import (
    ConfigurationError,
    PermanentDeliveryError,
    TemporaryDeliveryError,
)
from tgrelay.config.schema import TelegramConfig

# kind -> (Bot API method, multipart field name)
MEDIA_METHODS: dict[str, tuple[str, str]] = {
    "photo": ("sendPhoto", "photo"),
    "document": ("sendDocument", "document"),
    "audio": ("sendAudio", "audio"),
    "video": ("sendVideo", "video"),
}


class TelegramClient:
    """Thin async wrapper over the Bot API for a single configured chat."""

    def __init__(
        self,
        config: TelegramConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def chat_id(self) -> str:
        return (self.config.chat_id or "").strip()

    @property
    def is_configured(self) -> bool:
        return bool((self.config.token or "").strip() and self.chat_id)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            kwargs: dict[str, Any] = {"timeout": self.config.http_timeout}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            elif self.config.proxy:
                kwargs["proxy"] = self.config.proxy
            self._http = httpx.AsyncClient(**kwargs)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "TelegramClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def _url(self, method: str) -> str:
        token = (self.config.token or "").strip()
        if not token:
            raise ConfigurationError("Telegram bot token not configured")
        return f"{self.config.api_base.rstrip('/')}/bot{token}/{method}"

    def _require_chat(self) -> str:
        if not self.chat_id:
            raise ConfigurationError("Telegram chat id not configured")
        return self.chat_id

    async def _call(
        self,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = self._url(method)
        # Passing timeout=None to httpx disables it; only override when given.
        extra: dict[str, Any] = {} if timeout is None else {"timeout": timeout}
        try:
            if payload is None and data is None and files is None:
                response = await self._client().get(url, params=params, **extra)
            else:
                response = await self._client().post(
                    url, json=payload, data=data, files=files, **extra
                )
        except httpx.TimeoutException as e:
            raise TemporaryDeliveryError(f"{method} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TemporaryDeliveryError(f"{method} transport error: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        description = ""
        if isinstance(body, dict):
            description = str(body.get("description") or "")

        if response.status_code == 429 or response.status_code >= 500:
            raise TemporaryDeliveryError(
                f"{method} failed with HTTP {response.status_code}: {description or response.text[:200]}"
            )
        if response.status_code >= 400:
            raise PermanentDeliveryError(
                f"{method} failed with HTTP {response.status_code}: {description or response.text[:200]}"
            )
        if not isinstance(body, dict):
            raise PermanentDeliveryError(f"{method} returned a non-JSON body")
        if not body.get("ok"):
            raise PermanentDeliveryError(f"{method} rejected: {description or 'ok=false'}")
        return body.get("result")

    async def get_me(self) -> dict[str, Any]:
        """Return the bot's own user object."""
        return await self._call("getMe")

    async def get_updates(self, offset: int, limit: int = 10, timeout: int = 0) -> list[dict[str, Any]]:
        """Fetch raw updates starting at ``offset``.

        ``timeout`` is the Bot API long-poll wait in seconds; the HTTP timeout
        is stretched by the same amount so long polls are not cut short.
        """
        result = await self._call(
            "getUpdates",
            params={"offset": offset, "limit": limit, "timeout": timeout},
            timeout=self.config.http_timeout + max(0, timeout),
        )
        if not isinstance(result, list):
            raise PermanentDeliveryError("getUpdates returned a non-list result")
        return result

    async def send_text(self, text: str, parse_mode: str | None = None) -> dict[str, Any]:
        """Send a text message to the configured chat and return the message."""
        payload: dict[str, Any] = {"chat_id": self._require_chat(), "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._call("sendMessage", payload=payload)

    async def send_media(self, kind: str, file_path: str | Path, caption: str = "") -> dict[str, Any]:
        """Upload a local file as photo/document/audio/video."""
        if kind not in MEDIA_METHODS:
            raise PermanentDeliveryError(f"Unsupported media kind: {kind}")
        method, field = MEDIA_METHODS[kind]
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise PermanentDeliveryError(f"File not found: {path}")

        data: dict[str, Any] = {"chat_id": self._require_chat()}
        if caption:
            data["caption"] = caption
        with open(path, "rb") as fh:
            logger.debug(f"Uploading {path.name} via {method}")
            return await self._call(
                method,
                data=data,
                files={field: (path.name, fh)},
                timeout=self.config.media_timeout,
            )
