"""Telegram channel access."""

from tgrelay.channels.errors import (
    ConfigurationError,
    OutboundDeliveryError,
    PermanentDeliveryError,
    TemporaryDeliveryError,
)
from tgrelay.channels.telegram import TelegramClient

__all__ = [
    "ConfigurationError",
    "OutboundDeliveryError",
    "PermanentDeliveryError",
    "TelegramClient",
    "TemporaryDeliveryError",
]
