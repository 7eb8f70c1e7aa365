"""Delivery errors for Telegram Bot API calls.

The client raises these so callers can decide whether a failure is worth
waiting out (next poll tick) or should be surfaced immediately.
"""


class ConfigurationError(RuntimeError):
    """Bot token or chat id missing; the channel cannot be used at all."""


class OutboundDeliveryError(RuntimeError):
    """Base class for Bot API call errors."""


class TemporaryDeliveryError(OutboundDeliveryError):
    """A transient failure (network, timeout, rate limit, 5xx). Safe to retry."""


class PermanentDeliveryError(OutboundDeliveryError):
    """A permanent failure (bad chat id, bad token, rejected payload). Do not retry."""
