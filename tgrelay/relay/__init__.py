"""Polling core: update cursor, poll lock and the poller loop."""

from tgrelay.relay.cursor import UpdateCursor, fetch_since
from tgrelay.relay.events import ApprovalDecision, InjectionResult, InjectionStatus, StartResult, Update
from tgrelay.relay.lock import LockRecord, PollLock
from tgrelay.relay.poller import PollHandle, Poller, PollMode, PollerState

__all__ = [
    "ApprovalDecision",
    "InjectionResult",
    "InjectionStatus",
    "LockRecord",
    "PollHandle",
    "PollLock",
    "PollMode",
    "Poller",
    "PollerState",
    "StartResult",
    "Update",
    "UpdateCursor",
    "fetch_since",
]
