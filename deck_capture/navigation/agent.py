"""In-tab agent: answers channel requests and drives navigation strategies."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import AgentNotPresent, HttpClientError
from ..models import NavigationOutcome
from ..policy import CapturePolicy
from .agent_js import AGENT_SCRIPT_VERSION
from .platforms import Platform, normalize_platform, resolve_platform
from .strategies import Strategy, StrategyKind, StrategyRegistry, Verify, default_registry
from .surface import PageSurface

_LOGGER = logging.getLogger("deck_capture.agent")

_UNLOCK_SETTLE_S = 1.2
_SCROLL_KINDS = {StrategyKind.BLOCK_SCROLL, StrategyKind.PROGRESSIVE_SCROLL, StrategyKind.SCROLL_BY}


class MessageType(str, Enum):
    PING = "PING"
    PREPARE = "PREPARE"
    NEXT_SLIDE = "NEXT_SLIDE"
    UNLOCK = "UNLOCK"
    GET_PAGE_INFO = "GET_PAGE_INFO"


class StrategyResult(str, Enum):
    APPLIED = "applied"
    VERIFIED = "verified"
    NOT_MOVED = "not_moved"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class AttemptOutcome:
    result: StrategyResult
    method: str
    detail: str = ""

    @property
    def moved(self) -> bool:
        return self.result in (StrategyResult.APPLIED, StrategyResult.VERIFIED)


class DeckAgent:
    """Executes the platform's strategy chain against a PageSurface.

    Every request first touches the in-page helper; a missing helper raises
    AgentNotPresent so the channel can re-inject. Any other failure is
    reported in the response instead of raised.
    """

    def __init__(
        self,
        surface: PageSurface,
        *,
        registry: StrategyRegistry | None = None,
        policy: CapturePolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.surface = surface
        self.registry = registry or default_registry()
        self.policy = policy or CapturePolicy()
        self._sleep = sleep
        self.platform = Platform.UNKNOWN
        self.chain: tuple[Strategy, ...] = self.registry.chain_for(Platform.UNKNOWN)

    def use_platform(self, platform: Platform) -> None:
        if platform is self.platform:
            return
        self.platform = platform
        self.chain = self.registry.chain_for(platform)
        _LOGGER.info("platform=%s chain=%s", platform.value, [s.name for s in self.chain])

    def inject(self) -> bool:
        return self.surface.install()

    # ─────────────────────────────────────────────────────────────────────────
    # Request handling
    # ─────────────────────────────────────────────────────────────────────────

    def handle(self, message: dict[str, Any]) -> dict[str, Any]:
        raw_type = message.get("type") if isinstance(message, dict) else None
        try:
            kind = MessageType(str(raw_type))
        except ValueError:
            return {"success": False, "error": f"Unknown message type: {raw_type}"}

        try:
            if kind is MessageType.PING:
                return self._ping()
            if kind is MessageType.PREPARE:
                self.surface.prepare(self._scroll_containers())
                return {"success": True}
            if kind is MessageType.NEXT_SLIDE:
                self._apply_platform(message.get("platform"))
                return self.next_slide().to_response()
            if kind is MessageType.UNLOCK:
                return self._unlock(message.get("gate"))
            return self._page_info(message.get("platformHint"))
        except AgentNotPresent:
            raise
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("%s failed: %s", kind.value, exc)
            return {"success": False, "error": str(exc)}

    def _apply_platform(self, raw: Any) -> None:
        platform = normalize_platform(raw if isinstance(raw, str) else None)
        if platform is not None:
            self.use_platform(platform)

    def _ping(self) -> dict[str, Any]:
        if not self.surface.installed():
            raise AgentNotPresent("agent helper not installed")
        return {"success": True, "alive": True, "version": AGENT_SCRIPT_VERSION}

    def _unlock(self, gate: Any) -> dict[str, Any]:
        creds = {k: str(v) for k, v in (gate or {}).items() if k in ("email", "passcode") and v}
        if not creds:
            return {"success": True, "attempted": False, "submitted": False}
        res = self.surface.unlock(creds)
        submitted = bool(res.get("submitted"))
        if submitted:
            self._sleep(_UNLOCK_SETTLE_S)
        return {"success": True, "attempted": bool(res.get("attempted")), "submitted": submitted}

    def _page_info(self, hint: Any) -> dict[str, Any]:
        info = self.surface.page_info()
        platform = resolve_platform(str(info.get("url") or ""), hint if isinstance(hint, str) else None)
        self.use_platform(platform)
        return {
            "success": True,
            "platformGuess": platform.value,
            "hasNavigationAffordance": bool(info.get("hasNavigation")),
            "estimatedUnitCount": info.get("estimatedUnitCount"),
            "hasNextButtons": bool(info.get("hasNextButtons")),
            "hasSlideIndicators": bool(info.get("hasSlideIndicators")),
            "url": info.get("url"),
            "title": info.get("title"),
        }

    def _scroll_containers(self) -> tuple[str, ...]:
        out: list[str] = []
        for s in self.chain:
            if s.kind in _SCROLL_KINDS:
                out.extend(sel for sel in s.selectors if sel not in out)
        return tuple(out)

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def next_slide(self) -> NavigationOutcome:
        """Run the chain with an outer retry loop and progressive backoff."""
        attempts = max(1, int(self.policy.navigate_attempts))
        for attempt in range(1, attempts + 1):
            outcome = self.run_chain()
            if outcome.moved:
                return NavigationOutcome(moved=True, method=outcome.method, attempts=attempt)
            _LOGGER.debug("navigation attempt %s/%s did not move (%s)", attempt, attempts, outcome.method)
            if attempt < attempts:
                self._sleep(attempt * self.policy.navigate_backoff_s)
        return NavigationOutcome(moved=False, method="retry_exhausted", attempts_exhausted=True, attempts=attempts)

    def run_chain(self) -> AttemptOutcome:
        last = AttemptOutcome(StrategyResult.SKIPPED, "chain_exhausted")
        for strategy in self.chain:
            try:
                outcome = self.attempt(strategy)
            except AgentNotPresent:
                raise
            except HttpClientError as exc:
                _LOGGER.debug("strategy %s failed: %s", strategy.name, exc)
                continue
            if outcome.moved:
                _LOGGER.debug("strategy %s -> %s %s", strategy.name, outcome.result.value, outcome.detail)
                return outcome
            if outcome.result is StrategyResult.NOT_MOVED:
                last = outcome
        return AttemptOutcome(last.result, "chain_exhausted", last.method)

    def attempt(self, strategy: Strategy) -> AttemptOutcome:
        handler = getattr(self, f"_try_{strategy.kind.value}")
        return handler(strategy)

    def _baseline(self, s: Strategy) -> Any:
        if s.verify is Verify.LOCATION:
            return self.surface.location()
        if s.verify is Verify.SCROLL:
            return self.surface.scroll_state(s.selectors).top
        return None

    def _settle_and_verify(self, s: Strategy, before: Any, detail: str = "") -> AttemptOutcome:
        self._sleep(s.settle_s)
        if s.verify is Verify.NONE:
            return AttemptOutcome(StrategyResult.APPLIED, s.name, detail)
        after = self._baseline(s)
        result = StrategyResult.VERIFIED if after != before else StrategyResult.NOT_MOVED
        return AttemptOutcome(result, s.name, detail)

    def _at_bottom(self, s: Strategy) -> bool:
        return s.verify is Verify.SCROLL and self.surface.scroll_state(s.selectors).at_bottom

    def _try_control(self, s: Strategy) -> AttemptOutcome:
        candidates = self.surface.find_controls(s.selectors, max(1, s.max_targets))
        if not candidates:
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        before = self._baseline(s)
        clicked = False
        for cand in candidates:
            if not self.surface.click_control(int(cand.get("index", 0))):
                continue
            clicked = True
            outcome = self._settle_and_verify(s, before, str(cand.get("selector") or ""))
            if outcome.moved:
                return outcome
        return AttemptOutcome(StrategyResult.NOT_MOVED if clicked else StrategyResult.SKIPPED, s.name)

    def _try_keys(self, s: Strategy) -> AttemptOutcome:
        if not s.keys:
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        if s.needs_indicators and not self.surface.has_slide_indicators():
            return AttemptOutcome(StrategyResult.SKIPPED, s.name, "no_indicators")
        if self._at_bottom(s):
            return AttemptOutcome(StrategyResult.NOT_MOVED, s.name, "at_bottom")
        before = self._baseline(s)
        for key in s.keys:
            self.surface.press_key(key)
            outcome = self._settle_and_verify(s, before, key)
            if outcome.moved:
                return outcome
        return AttemptOutcome(StrategyResult.NOT_MOVED, s.name)

    def _try_content_click(self, s: Strategy) -> AttemptOutcome:
        before = self._baseline(s)
        selector = self.surface.click_content(s.selectors)
        if not selector:
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        return self._settle_and_verify(s, before, selector)

    def _try_gesture(self, s: Strategy) -> AttemptOutcome:
        before = self._baseline(s)
        if not self.surface.swipe(s.selectors):
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        return self._settle_and_verify(s, before)

    def _try_hook(self, s: Strategy) -> AttemptOutcome:
        before = self._baseline(s)
        name = self.surface.call_hook(s.names)
        if not name:
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        return self._settle_and_verify(s, before, name)

    def _try_url_param(self, s: Strategy) -> AttemptOutcome:
        before = self._baseline(s)
        bumped = self.surface.bump_url_param(s.names)
        if not bumped:
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        return self._settle_and_verify(s, before, bumped)

    def _try_block_scroll(self, s: Strategy) -> AttemptOutcome:
        if self._at_bottom(s):
            return AttemptOutcome(StrategyResult.NOT_MOVED, s.name, "at_bottom")
        before = self._baseline(s)
        block_selector = s.names[0] if s.names else "[data-block-id]"
        if not self.surface.block_scroll(block_selector, max(1, s.max_targets), s.selectors):
            return AttemptOutcome(StrategyResult.SKIPPED, s.name)
        return self._settle_and_verify(s, before)

    def _try_progressive_scroll(self, s: Strategy) -> AttemptOutcome:
        if self._at_bottom(s):
            return AttemptOutcome(StrategyResult.NOT_MOVED, s.name, "at_bottom")
        before = self._baseline(s)
        for fraction in s.fractions or (0.8,):
            self.surface.scroll_by(fraction, s.selectors)
            outcome = self._settle_and_verify(s, before, f"{fraction:g}")
            if outcome.moved:
                return outcome
        return AttemptOutcome(StrategyResult.NOT_MOVED, s.name)

    def _try_scroll_by(self, s: Strategy) -> AttemptOutcome:
        if self._at_bottom(s):
            return AttemptOutcome(StrategyResult.NOT_MOVED, s.name, "at_bottom")
        before = self._baseline(s)
        fraction = s.fractions[0] if s.fractions else 0.8
        self.surface.scroll_by(fraction, s.selectors)
        return self._settle_and_verify(s, before, f"{fraction:g}")


__all__ = ["AttemptOutcome", "DeckAgent", "MessageType", "StrategyResult"]
