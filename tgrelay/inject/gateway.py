"""Verified terminal injection.

    IDLE -> LOCATE_TARGET -> ACTIVATE_TARGET -> VERIFY_FOCUS -> DELIVER_TEXT
         -> REVERIFY_FOCUS -> COMMIT | ABORT

Text is only typed into a target that was confirmed to hold focus, and Enter
is only sent after focus is confirmed a second time. Any doubt aborts.
"""

from __future__ import annotations

import asyncio
from enum import Enum

from loguru import logger

from tgrelay.inject.base import Target, TargetBackend
from tgrelay.relay.events import InjectionResult
from tgrelay.utils.helpers import collapse_whitespace, truncate_string


class InjectionStage(str, Enum):
    IDLE = "idle"
    LOCATE_TARGET = "locate_target"
    ACTIVATE_TARGET = "activate_target"
    VERIFY_FOCUS = "verify_focus"
    DELIVER_TEXT = "deliver_text"
    REVERIFY_FOCUS = "reverify_focus"
    COMMIT = "commit"
    ABORT = "abort"


class _Abort(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InjectionGateway:
    """Drives a TargetBackend through the verified handoff, one call at a time."""

    def __init__(self, backend: TargetBackend, settle_ms: int = 500, timeout: float = 15.0):
        self.backend = backend
        self.settle_ms = settle_ms
        self.timeout = timeout
        self.stage = InjectionStage.IDLE

    async def inject(self, text: str) -> InjectionResult:
        """Deliver ``text`` as one line plus Enter. Never raises.

        The overall timeout covers every stage up to the second focus check.
        Once Enter is being sent the commit is allowed to finish, so a slow
        commit is reported by its own outcome rather than as a timeout.
        """
        line = collapse_whitespace(text)
        if not line:
            # Sending a bare Enter would submit whatever is already typed.
            return self._fail("empty text")

        try:
            target = await asyncio.wait_for(self._prepare(line), timeout=self.timeout)
        except _Abort as e:
            return self._fail(e.reason)
        except asyncio.TimeoutError:
            return self._fail(f"timed out during {self.stage.value}")

        self.stage = InjectionStage.COMMIT
        try:
            await self.backend.commit(target)
        except Exception as e:
            return self._fail(f"commit failed: {e}")

        logger.info(f"Injected via {self.backend.name}: {truncate_string(line, 60)}")
        self.stage = InjectionStage.IDLE
        return InjectionResult.success(self.backend.name)

    def _fail(self, reason: str) -> InjectionResult:
        logger.warning(f"Injection aborted at {self.stage.value}: {reason}")
        self.stage = InjectionStage.ABORT
        return InjectionResult.failure(self.backend.name, reason)

    async def _prepare(self, line: str) -> Target:
        """Run every stage before COMMIT; return the verified target."""
        self.stage = InjectionStage.LOCATE_TARGET
        try:
            candidates = await self.backend.locate()
        except Exception as e:
            raise _Abort(f"no target: {e}") from e
        if not candidates:
            raise _Abort("no target")
        target = candidates[0]
        logger.debug(f"Injection target: {target.label} ({target.key})")

        self.stage = InjectionStage.ACTIVATE_TARGET
        try:
            await self.backend.activate(target)
        except Exception as e:
            raise _Abort(f"activation failed: {e}") from e
        if self.settle_ms > 0:
            await asyncio.sleep(self.settle_ms / 1000)

        self.stage = InjectionStage.VERIFY_FOCUS
        await self._verify(target, "activation failed")

        self.stage = InjectionStage.DELIVER_TEXT
        try:
            await self.backend.deliver(target, line)
        except Exception as e:
            raise _Abort(f"delivery failed: {e}") from e

        self.stage = InjectionStage.REVERIFY_FOCUS
        await self._verify(target, "focus lost")
        return target

    async def _verify(self, target: Target, reason: str) -> None:
        try:
            current = await self.backend.focused(target)
        except Exception as e:
            raise _Abort(f"{reason}: {e}") from e
        if current != target.key:
            logger.debug(f"Focus check: expected {target.key}, found {current}")
            raise _Abort(reason)
