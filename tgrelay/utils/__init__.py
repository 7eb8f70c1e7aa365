"""Utility functions for tgrelay."""

from tgrelay.utils.helpers import collapse_whitespace, ensure_dir, get_data_path, truncate_string

__all__ = ["collapse_whitespace", "ensure_dir", "get_data_path", "truncate_string"]
