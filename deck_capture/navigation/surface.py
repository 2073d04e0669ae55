"""Agent-side view of the page: DOM primitives plus trusted input."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ..browser_session import BrowserSession
from ..errors import AgentNotPresent, HttpClientError
from .agent_js import AGENT_SCRIPT_SOURCE, AGENT_SCRIPT_VERSION

_LOGGER = logging.getLogger("deck_capture.surface")

_CONTEXT_LOST_MARKERS = (
    "execution context was destroyed",
    "cannot find context with specified id",
    "inspected target navigated or closed",
)


@dataclass(frozen=True, slots=True)
class ScrollState:
    top: int
    viewport: int
    height: int
    at_bottom: bool

    @classmethod
    def from_dict(cls, raw: Any) -> ScrollState:
        data = raw if isinstance(raw, dict) else {}
        return cls(
            top=int(data.get("top") or 0),
            viewport=int(data.get("viewport") or 0),
            height=int(data.get("height") or 0),
            at_bottom=bool(data.get("atBottom")),
        )


class PageSurface(Protocol):
    def installed(self) -> bool: ...

    def install(self) -> bool: ...

    def find_controls(self, selectors: tuple[str, ...], limit: int) -> list[dict[str, Any]]: ...

    def click_control(self, index: int) -> bool: ...

    def press_key(self, key: str) -> None: ...

    def click_content(self, selectors: tuple[str, ...]) -> str | None: ...

    def swipe(self, selectors: tuple[str, ...]) -> bool: ...

    def call_hook(self, names: tuple[str, ...]) -> str | None: ...

    def bump_url_param(self, params: tuple[str, ...]) -> str | None: ...

    def location(self) -> str: ...

    def scroll_state(self, containers: tuple[str, ...]) -> ScrollState: ...

    def scroll_by(self, fraction: float, containers: tuple[str, ...]) -> ScrollState: ...

    def block_scroll(self, block_selector: str, lookahead: int, containers: tuple[str, ...]) -> bool: ...

    def prepare(self, containers: tuple[str, ...]) -> None: ...

    def unlock(self, gate: dict[str, str]) -> dict[str, Any]: ...

    def has_slide_indicators(self) -> bool: ...

    def page_info(self) -> dict[str, Any]: ...


class CdpPageSurface:
    """PageSurface backed by a dedicated CDP connection to the tab."""

    def __init__(self, session: BrowserSession, *, eval_timeout: float = 3.0) -> None:
        self.session = session
        self.eval_timeout = eval_timeout
        self._bootstrap_id: str | None = None

    def _call(self, method: str, *args: Any) -> Any:
        expr = (
            "(() => {"
            "const a = globalThis.__deckAgent;"
            f"if (!a || a.__version !== {json.dumps(AGENT_SCRIPT_VERSION)}) return {{__deckAgentMissing: true}};"
            f"return a[{json.dumps(method)}](...{json.dumps(list(args))});"
            "})()"
        )
        try:
            result = self.session.eval_js(expr, timeout=self.eval_timeout)
        except HttpClientError as exc:
            msg = str(exc).lower()
            if any(marker in msg for marker in _CONTEXT_LOST_MARKERS):
                raise AgentNotPresent(str(exc)) from exc
            raise
        if isinstance(result, dict) and result.get("__deckAgentMissing") is True:
            raise AgentNotPresent(f"agent helper missing for {method}")
        return result

    def installed(self) -> bool:
        check_expr = (
            "("
            "globalThis.__deckAgent && "
            f"globalThis.__deckAgent.__version === {json.dumps(AGENT_SCRIPT_VERSION)} && "
            "typeof globalThis.__deckAgent.findControls === 'function'"
            ") === true"
        )
        return self.session.eval_js(check_expr, timeout=self.eval_timeout) is True

    def install(self) -> bool:
        """Install the helper in the current document and every future one."""
        if self._bootstrap_id is None:
            try:
                self._bootstrap_id = self.session.add_script_on_new_document(AGENT_SCRIPT_SOURCE)
            except HttpClientError as exc:
                _LOGGER.warning("addScriptToEvaluateOnNewDocument failed: %s", exc)
        self.session.eval_js(AGENT_SCRIPT_SOURCE, timeout=self.eval_timeout)
        return self.installed()

    def find_controls(self, selectors: tuple[str, ...], limit: int) -> list[dict[str, Any]]:
        found = self._call("findControls", list(selectors), int(limit))
        return [c for c in found or [] if isinstance(c, dict)]

    def click_control(self, index: int) -> bool:
        return self._call("clickControl", int(index)) is True

    def press_key(self, key: str) -> None:
        self.session.press_key(key)

    def click_content(self, selectors: tuple[str, ...]) -> str | None:
        return self._call("clickContent", list(selectors))

    def swipe(self, selectors: tuple[str, ...]) -> bool:
        return self._call("swipe", list(selectors)) is True

    def call_hook(self, names: tuple[str, ...]) -> str | None:
        return self._call("callHook", list(names))

    def bump_url_param(self, params: tuple[str, ...]) -> str | None:
        return self._call("bumpUrlParam", list(params))

    def location(self) -> str:
        return str(self._call("location") or "")

    def scroll_state(self, containers: tuple[str, ...]) -> ScrollState:
        return ScrollState.from_dict(self._call("scrollState", list(containers)))

    def scroll_by(self, fraction: float, containers: tuple[str, ...]) -> ScrollState:
        return ScrollState.from_dict(self._call("scrollBy", float(fraction), list(containers)))

    def block_scroll(self, block_selector: str, lookahead: int, containers: tuple[str, ...]) -> bool:
        return self._call("blockScroll", block_selector, int(lookahead), list(containers)) is True

    def prepare(self, containers: tuple[str, ...]) -> None:
        self._call("prepare", list(containers))

    def unlock(self, gate: dict[str, str]) -> dict[str, Any]:
        res = self._call("unlock", dict(gate))
        return res if isinstance(res, dict) else {"attempted": False, "submitted": False}

    def has_slide_indicators(self) -> bool:
        return self._call("hasSlideIndicators") is True

    def page_info(self) -> dict[str, Any]:
        res = self._call("pageInfo")
        return res if isinstance(res, dict) else {}


__all__ = ["CdpPageSurface", "PageSurface", "ScrollState"]
