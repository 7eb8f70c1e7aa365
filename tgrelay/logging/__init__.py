"""Logging helpers for tgrelay."""

import sys

from loguru import logger

from tgrelay.logging.error_store import clear_errors, get_errors, init_error_store, reset_error_store

_CONSOLE_SINK_ID: int | None = 0  # loguru's default stderr handler


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route console logging to stderr; stdout stays clean for hook and MCP protocols.

    Only the console sink is replaced, so an error store sink survives.
    """
    global _CONSOLE_SINK_ID
    if _CONSOLE_SINK_ID is not None:
        try:
            logger.remove(_CONSOLE_SINK_ID)
        except ValueError:
            pass
    if quiet:
        level = "ERROR"
    else:
        level = "DEBUG" if verbose else "INFO"
    _CONSOLE_SINK_ID = logger.add(sys.stderr, level=level)


__all__ = ["clear_errors", "get_errors", "init_error_store", "reset_error_store", "setup_logging"]
