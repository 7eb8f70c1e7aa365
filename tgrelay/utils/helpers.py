"""Utility functions for tgrelay."""

import os
import re
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the tgrelay data directory (~/.tgrelay)."""
    return ensure_dir(Path.home() / ".tgrelay")


def get_logs_path() -> Path:
    """Get the log directory (~/.tgrelay/logs)."""
    return ensure_dir(get_data_path() / "logs")


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """Truncate a string to max length, adding suffix if truncated."""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def collapse_whitespace(text: str) -> str:
    """Collapse line breaks into single spaces so text fits on one input line."""
    return re.sub(r"[\r\n]+", " ", text or "").strip()


def expand_path(raw: str) -> Path:
    """Expand ``~`` and environment variables in a configured path."""
    return Path(os.path.expandvars(raw)).expanduser()
