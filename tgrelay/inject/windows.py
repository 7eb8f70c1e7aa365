"""Windows console injection backend (PowerShell, clipboard paste, SendKeys).

Candidate windows are found by process name and addressed by pid; focus is
checked by resolving the foreground window back to its owning pid.
"""

from __future__ import annotations

import os
import tempfile

from tgrelay.inject.base import InjectionBackendError, Target, TargetBackend, run_command

_FOREGROUND_PID_SCRIPT = r"""
Add-Type @"
using System;
using System.Runtime.InteropServices;
public static class TgRelayFg {
    [DllImport("user32.dll")] public static extern IntPtr GetForegroundWindow();
    [DllImport("user32.dll")] public static extern uint GetWindowThreadProcessId(IntPtr hWnd, out uint pid);
}
"@
$fgPid = 0
[void][TgRelayFg]::GetWindowThreadProcessId([TgRelayFg]::GetForegroundWindow(), [ref]$fgPid)
Write-Output $fgPid
"""


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class WindowsConsoleBackend(TargetBackend):
    """Pastes into the first console-like window found, then presses Enter."""

    name = "windows"

    def __init__(
        self,
        processes: list[str] | None = None,
        powershell: str = "powershell",
        step_timeout: float = 10.0,
    ):
        self.processes = [p.strip() for p in (processes or ["WindowsTerminal", "cmd", "powershell", "Code"]) if p.strip()]
        self.powershell = powershell
        self.step_timeout = step_timeout

    async def _ps(self, script: str) -> str:
        return await run_command(
            [self.powershell, "-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass", "-Command", "-"],
            timeout=self.step_timeout,
            stdin_text=script,
        )

    async def locate(self) -> list[Target]:
        names = ",".join(_ps_quote(p) for p in self.processes)
        script = (
            f"Get-Process -Name {names} -ErrorAction SilentlyContinue | "
            "Where-Object { $_.MainWindowHandle -ne 0 } | "
            "ForEach-Object { \"$($_.ProcessName)`t$($_.Id)\" }"
        )
        out = await self._ps(script)

        lowered = [p.lower() for p in self.processes]
        ranked: list[tuple[int, int, Target]] = []
        for line in out.splitlines():
            parts = line.strip().split("\t")
            if len(parts) != 2 or not parts[1].isdigit():
                continue
            proc, pid = parts
            if proc.lower() not in lowered:
                continue
            ranked.append((lowered.index(proc.lower()), int(pid), Target(key=pid, label=f"{proc} ({pid})")))

        ranked.sort(key=lambda r: (r[0], r[1]))
        return [t for _, _, t in ranked]

    async def activate(self, target: Target) -> None:
        out = await self._ps(
            f"$ok = (New-Object -ComObject wscript.shell).AppActivate({int(target.key)}); Write-Output $ok"
        )
        if out.strip().lower() != "true":
            raise InjectionBackendError(f"AppActivate refused pid {target.key}")

    async def focused(self, target: Target) -> str | None:
        out = await self._ps(_FOREGROUND_PID_SCRIPT)
        pid = out.strip()
        return pid if pid and pid != "0" else None

    async def deliver(self, target: Target, text: str) -> None:
        # The clipboard keeps non-ASCII text intact where SendKeys would not.
        fd, path = tempfile.mkstemp(prefix="tgrelay-cmd-", suffix=".txt")
        try:
            with os.fdopen(fd, "w", encoding="utf-8-sig") as f:
                f.write(text)
            await self._ps(
                f"$text = Get-Content -Path {_ps_quote(path)} -Raw -Encoding UTF8; "
                "Set-Clipboard -Value $text; "
                "Add-Type -AssemblyName System.Windows.Forms; "
                "[System.Windows.Forms.SendKeys]::SendWait('^v')"
            )
        finally:
            try:
                os.unlink(path)
            except OSError:
                pass

    async def commit(self, target: Target) -> None:
        await self._ps(
            "Add-Type -AssemblyName System.Windows.Forms; "
            "[System.Windows.Forms.SendKeys]::SendWait('{ENTER}')"
        )
