from __future__ import annotations

import asyncio

import pytest

from tgrelay.inject.base import InjectionBackendError, Target, TargetBackend
from tgrelay.inject.gateway import InjectionGateway, InjectionStage
from tgrelay.relay.events import InjectionStatus

PANE = Target(key="%3", label="work:1.0 (claude)", scope="work")


class _FakeBackend(TargetBackend):
    name = "fake"

    def __init__(self, focus: list[str | None] | None = None, targets: list[Target] | None = None) -> None:
        self.focus = list(focus if focus is not None else ["%3", "%3"])
        self.targets = [PANE] if targets is None else targets
        self.calls: list[str] = []
        self.delivered: list[str] = []
        self.fail_on: str | None = None
        self.hang_on: str | None = None
        self.slow_on: str | None = None

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise InjectionBackendError(f"{name} broke")
        if self.hang_on == name:
            await asyncio.sleep(60)
        if self.slow_on == name:
            await asyncio.sleep(0.3)

    async def locate(self) -> list[Target]:
        await self._step("locate")
        return list(self.targets)

    async def activate(self, target: Target) -> None:
        await self._step("activate")

    async def focused(self, target: Target) -> str | None:
        await self._step("focused")
        return self.focus.pop(0) if self.focus else None

    async def deliver(self, target: Target, text: str) -> None:
        await self._step("deliver")
        self.delivered.append(text)

    async def commit(self, target: Target) -> None:
        await self._step("commit")


def _gateway(backend: _FakeBackend, timeout: float = 5.0) -> InjectionGateway:
    return InjectionGateway(backend, settle_ms=0, timeout=timeout)


@pytest.mark.asyncio
async def test_verified_handoff_types_single_line_then_commits() -> None:
    backend = _FakeBackend()
    result = await _gateway(backend).inject("fix the\r\nfailing\n\ntest  ")

    assert result.ok is True
    assert result.status == InjectionStatus.SUCCESS
    assert result.method == "fake"
    assert backend.delivered == ["fix the failing test"]
    assert backend.calls == ["locate", "activate", "focused", "deliver", "focused", "commit"]


@pytest.mark.asyncio
async def test_focus_lost_after_delivery_never_commits() -> None:
    backend = _FakeBackend(focus=["%3", "%9"])
    gateway = _gateway(backend)
    result = await gateway.inject("rm -rf build")

    assert result.ok is False
    assert result.reason == "focus lost"
    assert "commit" not in backend.calls
    assert gateway.stage == InjectionStage.ABORT


@pytest.mark.asyncio
async def test_focus_check_failure_after_activation_aborts_before_typing() -> None:
    backend = _FakeBackend(focus=[None])
    result = await _gateway(backend).inject("hello")

    assert result.reason == "activation failed"
    assert backend.delivered == []
    assert "commit" not in backend.calls


@pytest.mark.asyncio
async def test_empty_text_touches_no_backend() -> None:
    backend = _FakeBackend()
    result = await _gateway(backend).inject(" \r\n ")

    assert result.ok is False
    assert result.reason == "empty text"
    assert backend.calls == []


@pytest.mark.asyncio
async def test_no_candidates_reports_no_target() -> None:
    backend = _FakeBackend(targets=[])
    result = await _gateway(backend).inject("hello")

    assert result.reason == "no target"
    assert backend.calls == ["locate"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("step", "prefix"),
    [
        ("activate", "activation failed: "),
        ("deliver", "delivery failed: "),
        ("commit", "commit failed: "),
        ("locate", "no target: "),
    ],
)
async def test_backend_errors_name_the_failed_stage(step: str, prefix: str) -> None:
    backend = _FakeBackend()
    backend.fail_on = step
    result = await _gateway(backend).inject("hello")

    assert result.ok is False
    assert result.reason.startswith(prefix)
    if step != "commit":
        assert "commit" not in backend.calls


@pytest.mark.asyncio
async def test_stuck_step_times_out_with_stage_in_reason() -> None:
    backend = _FakeBackend()
    backend.hang_on = "deliver"
    result = await _gateway(backend, timeout=0.1).inject("hello")

    assert result.ok is False
    assert result.reason == "timed out during deliver_text"
    assert "commit" not in backend.calls


@pytest.mark.asyncio
async def test_commit_in_flight_is_not_cut_off_by_overall_timeout() -> None:
    backend = _FakeBackend()
    backend.slow_on = "commit"
    gateway = _gateway(backend, timeout=0.1)

    result = await gateway.inject("hello")

    assert result.ok is True
    assert backend.calls[-1] == "commit"
    assert gateway.stage == InjectionStage.IDLE
