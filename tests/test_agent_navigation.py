from __future__ import annotations

from typing import Any

import pytest

from deck_capture.errors import AgentNotPresent, HttpClientError
from deck_capture.navigation.agent import DeckAgent, MessageType, StrategyResult
from deck_capture.navigation.platforms import Platform
from deck_capture.navigation.surface import ScrollState
from deck_capture.policy import CapturePolicy


class FakeSurface:
    """In-memory page: records every primitive call."""

    def __init__(
        self,
        *,
        url: str = "https://example.com/deck",
        controls: int = 0,
        indicators: bool = False,
        content: str | None = None,
        swipe: bool = False,
        hook: str | None = None,
        url_param: str | None = None,
        height: int = 800,
        viewport: int = 800,
    ) -> None:
        self.url = url
        self.controls = controls
        self.indicators = indicators
        self.content = content
        self.swipe_ok = swipe
        self.hook = hook
        self.url_param = url_param
        self.top = 0
        self.height = height
        self.viewport = viewport
        self.present = True
        self.installs = 0
        self.calls: list[tuple[str, Any]] = []
        self.on_key = None
        self.on_click = None

    def installed(self) -> bool:
        return self.present

    def install(self) -> bool:
        self.installs += 1
        self.present = True
        return True

    def _require(self) -> None:
        if not self.present:
            raise AgentNotPresent("helper missing")

    def _state(self) -> ScrollState:
        return ScrollState(self.top, self.viewport, self.height, self.top + self.viewport >= self.height - 2)

    def find_controls(self, selectors: tuple[str, ...], limit: int) -> list[dict[str, Any]]:
        self._require()
        self.calls.append(("find_controls", limit))
        return [{"index": i, "selector": f"#next{i}"} for i in range(min(self.controls, limit))]

    def click_control(self, index: int) -> bool:
        self.calls.append(("click_control", index))
        if self.on_click is not None:
            self.on_click(index)
        return True

    def press_key(self, key: str) -> None:
        self.calls.append(("press_key", key))
        if self.on_key is not None:
            self.on_key(key)

    def click_content(self, selectors: tuple[str, ...]) -> str | None:
        self.calls.append(("click_content", None))
        return self.content

    def swipe(self, selectors: tuple[str, ...]) -> bool:
        self.calls.append(("swipe", None))
        return self.swipe_ok

    def call_hook(self, names: tuple[str, ...]) -> str | None:
        self.calls.append(("call_hook", None))
        return self.hook

    def bump_url_param(self, params: tuple[str, ...]) -> str | None:
        self.calls.append(("bump_url_param", None))
        return self.url_param

    def location(self) -> str:
        self._require()
        return self.url

    def scroll_state(self, containers: tuple[str, ...]) -> ScrollState:
        return self._state()

    def scroll_by(self, fraction: float, containers: tuple[str, ...]) -> ScrollState:
        self.calls.append(("scroll_by", fraction))
        self.top = min(self.top + int(self.viewport * fraction), max(0, self.height - self.viewport))
        return self._state()

    def block_scroll(self, block_selector: str, lookahead: int, containers: tuple[str, ...]) -> bool:
        self.calls.append(("block_scroll", lookahead))
        return False

    def prepare(self, containers: tuple[str, ...]) -> None:
        self.calls.append(("prepare", containers))
        self.top = 0

    def unlock(self, gate: dict[str, str]) -> dict[str, Any]:
        self.calls.append(("unlock", gate))
        return {"attempted": True, "submitted": True}

    def has_slide_indicators(self) -> bool:
        return self.indicators

    def page_info(self) -> dict[str, Any]:
        self._require()
        return {"url": self.url, "title": "Deck", "hasNavigation": True, "estimatedUnitCount": 12}

    def kinds(self) -> list[str]:
        return [name for name, _ in self.calls]


def _agent(surface: FakeSurface, platform: Platform = Platform.UNKNOWN, **policy: Any) -> DeckAgent:
    agent = DeckAgent(surface, policy=CapturePolicy(**policy), sleep=lambda _s: None)
    agent.use_platform(platform)
    return agent


def test_control_click_is_presumptive_motion() -> None:
    surface = FakeSurface(controls=1)
    outcome = _agent(surface, Platform.DOCSEND).next_slide()
    assert outcome.moved
    assert outcome.method == "docsend_button"
    assert outcome.attempts == 1
    assert "press_key" not in surface.kinds()


def test_docsend_falls_through_to_keys_without_controls() -> None:
    surface = FakeSurface()
    outcome = _agent(surface, Platform.DOCSEND).next_slide()
    assert outcome.moved
    assert outcome.method == "docsend_keys"
    assert surface.calls[-1] == ("press_key", "ArrowRight")


def test_figma_deck_button_that_does_not_change_location_falls_through_to_keys() -> None:
    surface = FakeSurface(url="https://www.figma.com/deck/AbC?node-id=1", controls=1)

    def advance(key: str) -> None:
        if key == "Space":
            surface.url = "https://www.figma.com/deck/AbC?node-id=2"

    surface.on_key = advance
    agent = _agent(surface, Platform.FIGMA_DECK)
    result = agent.run_chain()
    assert result.result is StrategyResult.VERIFIED
    assert result.method == "figma_deck_keys"
    assert result.detail == "Space"
    assert [c for c in surface.calls if c[0] == "press_key"] == [("press_key", "ArrowRight"), ("press_key", "Space")]


def test_figma_location_unchanged_exhausts_retries() -> None:
    surface = FakeSurface(url="https://www.figma.com/deck/AbC", controls=1)
    outcome = _agent(surface, Platform.FIGMA_DECK, navigate_attempts=3).next_slide()
    assert not outcome.moved
    assert outcome.attempts_exhausted
    assert outcome.method == "retry_exhausted"
    assert outcome.attempts == 3
    assert surface.kinds().count("click_control") == 3


def test_outer_retry_backs_off_progressively() -> None:
    sleeps: list[float] = []
    surface = FakeSurface(url="https://www.figma.com/file/AbC")
    agent = DeckAgent(
        surface,
        policy=CapturePolicy(navigate_attempts=3, navigate_backoff_s=0.5),
        sleep=sleeps.append,
    )
    agent.use_platform(Platform.FIGMA)
    agent.next_slide()
    settle = agent.chain[0].settle_s
    assert sleeps == [settle, 0.5, settle, 1.0, settle]


def test_notion_scrolls_until_the_bottom_then_reports_no_motion() -> None:
    surface = FakeSurface(url="https://www.notion.so/acme/Deck", height=2400, viewport=800)
    agent = _agent(surface, Platform.NOTION, navigate_attempts=1)
    first = agent.next_slide()
    assert first.moved
    assert first.method == "notion_progressive_scroll"
    while not surface._state().at_bottom:
        assert agent.next_slide().moved
    surface.calls.clear()
    end = agent.next_slide()
    assert not end.moved
    assert end.attempts_exhausted
    assert "scroll_by" not in surface.kinds()
    assert "press_key" not in surface.kinds()


def test_universal_keys_need_slide_indicators() -> None:
    surface = FakeSurface(hook="nextSlide")
    outcome = _agent(surface).run_chain()
    assert outcome.method == "universal_hook"
    assert "press_key" not in surface.kinds()
    assert surface.kinds().index("click_content") < surface.kinds().index("swipe")
    assert surface.kinds().index("swipe") < surface.kinds().index("call_hook")


def test_universal_keys_apply_on_slide_like_pages() -> None:
    surface = FakeSurface(indicators=True)
    outcome = _agent(surface).run_chain()
    assert outcome.method == "universal_keys"
    assert outcome.detail == "ArrowRight"


def test_universal_scroll_is_last_resort() -> None:
    surface = FakeSurface(height=4000)
    outcome = _agent(surface).run_chain()
    assert outcome.result is StrategyResult.VERIFIED
    assert outcome.method == "universal_scroll_down"
    assert surface.kinds()[-1] == "scroll_by"


def test_strategy_transport_error_moves_on_to_next_strategy() -> None:
    surface = FakeSurface()

    def broken(selectors: tuple[str, ...], limit: int) -> list[dict[str, Any]]:
        raise HttpClientError("Runtime.evaluate failed: SyntaxError")

    surface.find_controls = broken  # type: ignore[method-assign]
    outcome = _agent(surface, Platform.DOCSEND).run_chain()
    assert outcome.method == "docsend_keys"


def test_missing_helper_propagates_from_navigation() -> None:
    surface = FakeSurface()
    surface.present = False
    agent = _agent(surface, Platform.DOCSEND)
    with pytest.raises(AgentNotPresent):
        agent.handle({"type": MessageType.NEXT_SLIDE.value})


def test_ping_reports_version_or_raises_when_missing() -> None:
    surface = FakeSurface()
    agent = _agent(surface)
    res = agent.handle({"type": "PING"})
    assert res["success"] is True
    assert res["alive"] is True
    surface.present = False
    with pytest.raises(AgentNotPresent):
        agent.handle({"type": "PING"})


def test_unknown_message_type_is_an_error_response() -> None:
    res = _agent(FakeSurface()).handle({"type": "SELF_DESTRUCT"})
    assert res["success"] is False
    assert "SELF_DESTRUCT" in res["error"]


def test_page_info_resolves_platform_and_switches_chain() -> None:
    surface = FakeSurface(url="https://docsend.com/view/abc")
    agent = DeckAgent(surface, sleep=lambda _s: None)
    res = agent.handle({"type": "GET_PAGE_INFO", "platformHint": None})
    assert res["success"] is True
    assert res["platformGuess"] == "docsend"
    assert res["estimatedUnitCount"] == 12
    assert agent.platform is Platform.DOCSEND
    assert agent.chain[0].name == "docsend_button"


def test_next_slide_message_switches_to_requested_platform() -> None:
    surface = FakeSurface()
    agent = _agent(surface, navigate_attempts=1)
    res = agent.handle({"type": MessageType.NEXT_SLIDE.value, "platform": "notion"})
    assert res["success"] is True
    assert agent.platform is Platform.NOTION
    assert agent.chain == agent.registry.chain_for(Platform.NOTION)


def test_next_slide_message_keeps_platform_on_unrecognized_value() -> None:
    agent = _agent(FakeSurface(), Platform.DOCSEND, navigate_attempts=1)
    agent.handle({"type": MessageType.NEXT_SLIDE.value, "platform": "geocities"})
    assert agent.platform is Platform.DOCSEND
    agent.handle({"type": MessageType.NEXT_SLIDE.value})
    assert agent.platform is Platform.DOCSEND


def test_prepare_passes_scroll_containers() -> None:
    surface = FakeSurface()
    agent = _agent(surface, Platform.NOTION)
    assert agent.handle({"type": "PREPARE"}) == {"success": True}
    name, containers = surface.calls[-1]
    assert name == "prepare"
    assert ".notion-scroller" in containers


def test_unlock_only_sends_known_credentials() -> None:
    surface = FakeSurface()
    agent = _agent(surface)
    res = agent.handle({"type": "UNLOCK", "gate": {"email": "a@b.co", "passcode": "", "extra": "x"}})
    assert res == {"success": True, "attempted": True, "submitted": True}
    assert surface.calls[-1] == ("unlock", {"email": "a@b.co"})

    surface.calls.clear()
    res = agent.handle({"type": "UNLOCK", "gate": {}})
    assert res["attempted"] is False
    assert surface.calls == []


def test_unexpected_primitive_failure_is_reported_not_raised() -> None:
    surface = FakeSurface()

    def boom(gate: dict[str, str]) -> dict[str, Any]:
        raise HttpClientError("CDP response timed out")

    surface.unlock = boom  # type: ignore[method-assign]
    res = _agent(surface).handle({"type": "UNLOCK", "gate": {"email": "a@b.co"}})
    assert res["success"] is False
    assert "timed out" in res["error"]
