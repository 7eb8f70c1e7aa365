"""Shared stdin/config plumbing for the hook entry points."""

from __future__ import annotations

import json
import sys
from typing import Any

from tgrelay.config.loader import load_config
from tgrelay.config.schema import Config
from tgrelay.logging import init_error_store, setup_logging
from tgrelay.utils.helpers import get_logs_path


class MalformedEvent(ValueError):
    """The hook payload is not a JSON object."""


def read_event(raw: str | None = None) -> dict[str, Any]:
    """Parse the hook payload from ``raw`` or stdin."""
    if raw is None:
        raw = sys.stdin.read()
    try:
        event = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedEvent(f"invalid JSON: {e}") from e
    if not isinstance(event, dict):
        raise MalformedEvent("payload is not an object")
    return event


def prepare() -> Config:
    """Quiet stderr logging plus the persistent error log, then load config."""
    setup_logging(quiet=True)
    init_error_store(get_logs_path() / "errors.jsonl")
    return load_config()
