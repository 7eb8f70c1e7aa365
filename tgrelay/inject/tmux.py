"""tmux injection backend (Linux/macOS).

Panes are found by the command running in them and addressed by pane id
(``%7``), which stays stable for the life of the pane.
"""

from __future__ import annotations

from tgrelay.inject.base import InjectionBackendError, Target, TargetBackend, run_command

PANE_FORMAT = "#{pane_id}\t#{session_name}\t#{window_index}.#{pane_index}\t#{pane_current_command}"


def _pane_sort_key(pane_id: str) -> int:
    try:
        return int(pane_id.lstrip("%"))
    except ValueError:
        return 1 << 30


class TmuxBackend(TargetBackend):
    """Types into a tmux pane running one of the configured commands."""

    name = "tmux"

    def __init__(self, commands: list[str] | None = None, tmux_bin: str = "tmux", step_timeout: float = 5.0):
        self.commands = [c.strip() for c in (commands or ["claude", "node"]) if c.strip()]
        self.tmux_bin = tmux_bin
        self.step_timeout = step_timeout

    async def _tmux(self, *args: str) -> str:
        return await run_command([self.tmux_bin, *args], timeout=self.step_timeout)

    async def locate(self) -> list[Target]:
        try:
            out = await self._tmux("list-panes", "-a", "-F", PANE_FORMAT)
        except InjectionBackendError as e:
            # No server running means there is nothing to type into.
            if "no server running" in str(e) or "error connecting" in str(e):
                return []
            raise

        ranked: list[tuple[int, int, Target]] = []
        for line in out.splitlines():
            parts = line.split("\t")
            if len(parts) != 4:
                continue
            pane_id, session, position, command = parts
            if command not in self.commands:
                continue
            target = Target(key=pane_id, label=f"{session}:{position} ({command})", scope=session)
            ranked.append((self.commands.index(command), _pane_sort_key(pane_id), target))

        ranked.sort(key=lambda r: (r[0], r[1]))
        return [t for _, _, t in ranked]

    async def activate(self, target: Target) -> None:
        await self._tmux("select-window", "-t", target.key)
        await self._tmux("select-pane", "-t", target.key)

    async def focused(self, target: Target) -> str | None:
        out = await self._tmux("display-message", "-p", "-t", target.scope or target.key, "#{pane_id}")
        return out.strip() or None

    async def deliver(self, target: Target, text: str) -> None:
        await self._tmux("send-keys", "-t", target.key, "-l", "--", text)

    async def commit(self, target: Target) -> None:
        await self._tmux("send-keys", "-t", target.key, "Enter")
