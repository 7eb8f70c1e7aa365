"""Injection backend interface.

A backend knows how to find, focus and type into one kind of input consumer
(a tmux pane, a Windows console window). The gateway drives it through the
verified handoff; backends never decide whether it is safe to commit.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass


class InjectionBackendError(RuntimeError):
    """A backend step could not be carried out."""


@dataclass(frozen=True)
class Target:
    """A candidate input consumer.

    ``key`` is the stable identifier used for focus checks (pane id, pid),
    never a window title.
    """

    key: str
    label: str
    scope: str = ""  # backend-specific context, e.g. the tmux session name


class TargetBackend(ABC):
    """Capabilities the injection state machine needs from a platform."""

    name: str = "backend"

    @abstractmethod
    async def locate(self) -> list[Target]:
        """Enumerate candidates in a deterministic order."""

    @abstractmethod
    async def activate(self, target: Target) -> None:
        """Bring the target to the foreground."""

    @abstractmethod
    async def focused(self, target: Target) -> str | None:
        """Return the key of whatever currently holds input focus."""

    @abstractmethod
    async def deliver(self, target: Target, text: str) -> None:
        """Type ``text`` into the target without submitting it."""

    @abstractmethod
    async def commit(self, target: Target) -> None:
        """Send the terminating action (Enter)."""


async def _reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await asyncio.shield(process.wait())


async def run_command(
    args: list[str],
    timeout: float = 10.0,
    stdin_text: str | None = None,
) -> str:
    """Run a subprocess and return stdout; raise InjectionBackendError on failure."""
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE if stdin_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise InjectionBackendError(f"{args[0]} not available: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(stdin_text.encode("utf-8") if stdin_text is not None else None),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _reap(process)
        raise InjectionBackendError(f"{args[0]} timed out after {timeout:.0f}s")
    except asyncio.CancelledError:
        # A cancelled step must not keep typing after the caller gave up.
        await _reap(process)
        raise

    if process.returncode != 0:
        err = stderr.decode("utf-8", errors="replace").strip()
        raise InjectionBackendError(f"{args[0]} exited with {process.returncode}: {err[:200]}")
    return stdout.decode("utf-8", errors="replace")
