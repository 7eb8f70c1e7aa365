"""Value types shared by the relay, injection and approval layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Update:
    """One inbound text message from Telegram."""

    id: int  # Telegram update_id; drives the cursor
    channel_id: str  # chat id
    sender: str  # display name (first name, falling back to username)
    text: str
    timestamp: datetime
    message_id: int = 0  # Telegram message_id; drives approval correlation
    sender_id: str = ""
    sender_username: str = ""

    @classmethod
    def from_telegram(cls, raw: dict[str, Any]) -> "Update | None":
        """Build an Update from a raw getUpdates entry.

        Returns None for updates that carry no text message (edits, callback
        queries, stickers, ...). The caller still advances its cursor past them.
        """
        message = raw.get("message")
        if not isinstance(message, dict):
            return None
        text = message.get("text")
        if not isinstance(text, str):
            return None
        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        return cls(
            id=int(raw["update_id"]),
            channel_id=str(chat.get("id", "")),
            sender=str(sender.get("first_name") or sender.get("username") or ""),
            text=text,
            timestamp=datetime.fromtimestamp(int(message.get("date") or 0), tz=timezone.utc),
            message_id=int(message.get("message_id") or 0),
            sender_id=str(sender.get("id", "")),
            sender_username=str(sender.get("username") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "from": self.sender,
            "text": self.text,
            "date": self.timestamp.isoformat(),
        }


class InjectionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class InjectionResult:
    """Outcome of a single injection attempt. Never partial."""

    status: InjectionStatus
    method: str
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == InjectionStatus.SUCCESS

    @classmethod
    def success(cls, method: str) -> "InjectionResult":
        return cls(InjectionStatus.SUCCESS, method)

    @classmethod
    def failure(cls, method: str, reason: str) -> "InjectionResult":
        return cls(InjectionStatus.FAILURE, method, reason)


@dataclass(frozen=True)
class ApprovalDecision:
    """Resolved outcome of an approval request."""

    approved: bool
    reason: str | None = None
    response: str | None = None  # raw reply text, when a human answered

    @classmethod
    def approve(cls, response: str | None = None, reason: str | None = None) -> "ApprovalDecision":
        return cls(True, reason, response)

    @classmethod
    def deny(cls, reason: str, response: str | None = None) -> "ApprovalDecision":
        return cls(False, reason, response)

    @property
    def timed_out(self) -> bool:
        return not self.approved and self.reason == "timeout"

    def to_hook_output(self) -> dict[str, str]:
        if self.approved:
            return {"decision": "approve"}
        return {"decision": "deny", "reason": self.reason or "denied"}


@dataclass
class StartResult:
    """Result of Poller.start(); a refusal is reported, never raised."""

    ok: bool
    message: str
    handle: Any = field(default=None, repr=False)
