"""Agent tool-use hooks: JSON event on stdin, decision (if any) on stdout."""

from tgrelay.hooks.posttool import notify, should_notify
from tgrelay.hooks.pretool import decide

__all__ = ["decide", "notify", "should_notify"]
