from __future__ import annotations

import threading
from typing import Any

import pytest

from deck_capture.channel import AgentChannel
from deck_capture.errors import AgentNotPresent, TargetUnreachable
from deck_capture.policy import CapturePolicy
from deck_capture.target import TargetInfo

FAST = CapturePolicy(
    channel_timeout_s=0.2,
    ping_timeout_s=0.2,
    verify_timeout_s=0.5,
    verify_attempts=2,
    verify_gap_s=0.0,
    inject_settle_s=0.0,
    reinject_settle_s=0.0,
)


class DummyTarget:
    target_id = "tab-1"

    def __init__(self) -> None:
        self.closed = False
        self.validations = 0

    def validate(self) -> TargetInfo:
        self.validations += 1
        if self.closed:
            raise TargetUnreachable("Tab tab-1 no longer exists")
        return TargetInfo(target_id="tab-1", url="https://docsend.com/view/abc")


class DummyAgent:
    def __init__(self, *, present: bool = True, inject_ok: bool = True) -> None:
        self.present = present
        self.inject_ok = inject_ok
        self.injections = 0
        self.messages: list[str] = []
        self.release = threading.Event()
        self.wedged: set[str] = set()

    def inject(self) -> bool:
        self.injections += 1
        if self.inject_ok:
            self.present = True
        return self.inject_ok

    def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        mtype = message["type"]
        self.messages.append(mtype)
        if mtype in self.wedged:
            self.release.wait(5.0)
            return {"success": False, "error": "late"}
        if not self.present:
            raise AgentNotPresent("helper missing")
        if mtype == "PING":
            return {"success": True, "alive": True}
        return {"success": True, "moved": True, "method": "dummy"}


@pytest.fixture
def rig():
    target = DummyTarget()
    agent = DummyAgent()
    channel = AgentChannel(target, agent, policy=FAST, sleep=lambda _s: None)
    yield target, agent, channel
    agent.release.set()
    channel.close()


def test_send_returns_agent_response(rig) -> None:
    _target, agent, channel = rig
    res = channel.send({"type": "NEXT_SLIDE"})
    assert res["success"] is True
    assert agent.messages == ["NEXT_SLIDE"]


def test_unreachable_target_fails_fast_without_touching_agent(rig) -> None:
    target, agent, channel = rig
    target.closed = True
    res = channel.send({"type": "NEXT_SLIDE"})
    assert res["success"] is False
    assert res["kind"] == "target_unreachable"
    assert agent.messages == []
    with pytest.raises(TargetUnreachable):
        channel.ensure_agent()


def test_missing_agent_is_reinjected_and_request_retried_once(rig) -> None:
    _target, agent, channel = rig
    agent.present = False
    res = channel.send({"type": "NEXT_SLIDE"})
    assert res["success"] is True
    assert agent.injections == 1
    assert channel.reinjections == 1
    assert agent.messages == ["NEXT_SLIDE", "NEXT_SLIDE"]


def test_failed_reinjection_reports_agent_unavailable(rig) -> None:
    _target, agent, channel = rig
    agent.present = False
    agent.inject_ok = False
    res = channel.send({"type": "PREPARE"})
    assert res["success"] is False
    assert res["kind"] == "agent_unavailable"
    assert res["suggestion"]
    assert agent.injections == 1


def test_reinjection_failure_on_closed_tab_reports_target_unreachable(rig) -> None:
    target, agent, channel = rig
    agent.present = False

    def inject_and_close() -> bool:
        target.closed = True
        return False

    agent.inject = inject_and_close  # type: ignore[method-assign]
    res = channel.send({"type": "PREPARE"})
    assert res["kind"] == "target_unreachable"


def test_wedged_agent_gets_one_reinjection_then_unavailable(rig) -> None:
    _target, agent, channel = rig
    agent.wedged = {"NEXT_SLIDE", "PING"}
    res = channel.send({"type": "NEXT_SLIDE"}, timeout=0.2)
    assert res["success"] is False
    assert res["kind"] == "agent_unavailable"
    assert agent.injections == 1
    assert agent.messages == ["NEXT_SLIDE", "PING", "NEXT_SLIDE"]


def test_slow_request_on_live_agent_is_a_channel_timeout(rig) -> None:
    _target, agent, channel = rig
    agent.wedged = {"NEXT_SLIDE"}
    res = channel.send({"type": "NEXT_SLIDE"}, timeout=0.2)
    assert res["success"] is False
    assert res["kind"] == "channel_timeout"
    assert agent.injections == 0


def test_channel_recovers_after_abandoning_a_worker(rig) -> None:
    _target, agent, channel = rig
    agent.wedged = {"NEXT_SLIDE"}
    channel.send({"type": "NEXT_SLIDE"}, timeout=0.2)
    agent.wedged = set()
    res = channel.send({"type": "PREPARE"})
    assert res["success"] is True


def test_ensure_agent_is_idempotent_for_live_agent(rig) -> None:
    _target, agent, channel = rig
    assert channel.ensure_agent() is True
    assert channel.ensure_agent() is True
    assert agent.messages == ["PING", "PING"]
    assert agent.injections == 0


def test_ensure_agent_injects_when_missing(rig) -> None:
    _target, agent, channel = rig
    agent.present = False
    assert channel.ensure_agent() is True
    assert agent.injections == 1
    assert agent.messages == ["PING", "PING"]


def test_ensure_agent_gives_up_after_verification_attempts(rig) -> None:
    _target, agent, channel = rig
    agent.present = False
    agent.inject_ok = False
    assert channel.ensure_agent() is False
    assert agent.messages == ["PING", "PING", "PING"]


def test_unexpected_agent_exception_is_internal(rig) -> None:
    _target, agent, channel = rig

    def explode(message: dict[str, Any]) -> dict[str, Any]:
        raise KeyError("boom")

    agent.handle = explode  # type: ignore[method-assign]
    res = channel.send({"type": "PREPARE"})
    assert res["success"] is False
    assert res["kind"] == "internal"
