"""
tgrelay - Telegram remote control for terminal coding agents
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tgrelay")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
__logo__ = "📡"
