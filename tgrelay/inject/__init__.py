"""Terminal injection: verified handoff plus per-platform backends."""

import sys

from tgrelay.config.schema import InjectConfig
from tgrelay.inject.base import InjectionBackendError, Target, TargetBackend
from tgrelay.inject.gateway import InjectionGateway, InjectionStage
from tgrelay.inject.tmux import TmuxBackend
from tgrelay.inject.windows import WindowsConsoleBackend


def create_backend(config: InjectConfig) -> TargetBackend:
    """Pick the backend named in config; ``auto`` follows the platform."""
    choice = (config.backend or "auto").strip().lower()
    if choice == "auto":
        choice = "windows" if sys.platform == "win32" else "tmux"
    if choice == "tmux":
        return TmuxBackend(commands=config.tmux_commands)
    if choice == "windows":
        return WindowsConsoleBackend(processes=config.windows_processes)
    raise ValueError(f"Unknown injection backend: {config.backend}")


def create_gateway(config: InjectConfig) -> InjectionGateway:
    return InjectionGateway(create_backend(config), settle_ms=config.settle_ms, timeout=config.timeout)


__all__ = [
    "InjectionBackendError",
    "InjectionGateway",
    "InjectionStage",
    "Target",
    "TargetBackend",
    "TmuxBackend",
    "WindowsConsoleBackend",
    "create_backend",
    "create_gateway",
]
