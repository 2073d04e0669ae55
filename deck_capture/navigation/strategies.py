"""Navigation strategies and the per-platform chains that order them.

A chain is an immutable tuple resolved once per capture session. The agent
walks it front to back and stops at the first strategy that reports motion;
order therefore encodes preference (cheap, platform-native controls first,
blind fallbacks last).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .platforms import Platform


class StrategyKind(str, Enum):
    CONTROL = "control"
    KEYS = "keys"
    CONTENT_CLICK = "content_click"
    HOOK = "hook"
    GESTURE = "gesture"
    BLOCK_SCROLL = "block_scroll"
    PROGRESSIVE_SCROLL = "progressive_scroll"
    SCROLL_BY = "scroll_by"
    URL_PARAM = "url_param"


class Verify(str, Enum):
    NONE = "none"  # presumptive: acting counts as motion
    LOCATION = "location"  # motion iff location.href changed
    SCROLL = "scroll"  # motion iff the scroll offset changed


@dataclass(frozen=True, slots=True)
class Strategy:
    kind: StrategyKind
    name: str
    selectors: tuple[str, ...] = ()
    keys: tuple[str, ...] = ()
    names: tuple[str, ...] = ()
    fractions: tuple[float, ...] = ()
    verify: Verify = Verify.NONE
    settle_s: float = 0.5
    max_targets: int = 1
    # Only applicable when the page shows slide-like elements.
    needs_indicators: bool = False


CONTENT_SELECTORS: tuple[str, ...] = (
    ".slide",
    ".page",
    ".presentation",
    ".deck",
    ".content",
    ".main",
    ".container",
    '[class*="slide"]',
    '[class*="page"]',
    '[class*="presentation"]',
    '[class*="deck"]',
)

GESTURE_SELECTORS: tuple[str, ...] = (".slide", ".page", ".presentation", ".deck", ".content", ".main")

HOOK_NAMES: tuple[str, ...] = ("nextSlide", "nextPage", "next", "advance", "goNext", "navigateNext")

URL_PARAMS: tuple[str, ...] = ("slide", "page", "step", "index", "pos")

DOCSEND_KEYS: tuple[str, ...] = ("ArrowRight", "ArrowDown", "Space", "PageDown")
PITCH_KEYS: tuple[str, ...] = (*DOCSEND_KEYS, "n", "N")
UNIVERSAL_KEYS: tuple[str, ...] = (*PITCH_KEYS, "Enter", "Tab")

DOCSEND_NEXT: tuple[str, ...] = (
    '[data-testid="next"]',
    'button[aria-label="Next"]',
    'button[aria-label="next"]',
    ".next-button",
    'button[title="Next"]',
    'button[title="next"]',
    '.navigation-button[data-direction="next"]',
    ".slide-nav-next",
    ".presentation-next",
    '[role="button"][aria-label*="next"]',
    '[role="button"][aria-label*="Next"]',
    '[class*="next"]',
    '[class*="Next"]',
)

PITCH_NEXT: tuple[str, ...] = (
    '[data-test="player-next-button"]',
    '[data-testid="next"]',
    ".next-button",
    'button[aria-label="Next"]',
    'button[aria-label="next"]',
    'button[title="Next"]',
    'button[title="next"]',
    ".presentation-next",
    ".slide-next",
    ".deck-next",
    ".pitch-next",
    '[role="button"][aria-label*="next"]',
    '[role="button"][aria-label*="Next"]',
    ".navigation-next",
    ".control-next",
    ".arrow-right",
    ".arrow-next",
    '[class*="next"]',
    '[class*="Next"]',
)

GOOGLE_SLIDES_NEXT: tuple[str, ...] = ('[aria-label="Next slide"]', ".next-slide")

FIGMA_DECK_NEXT: tuple[str, ...] = (
    '[data-testid="next"]',
    '[aria-label*="next"]',
    '[aria-label*="Next"]',
    ".next",
    '[class*="next"]',
)

UNIVERSAL_NEXT: tuple[str, ...] = (
    'button[aria-label*="next"]',
    'button[aria-label*="Next"]',
    'button[title*="next"]',
    'button[title*="Next"]',
    ".next",
    '[data-test*="next"]',
    '[data-testid*="next"]',
    '[data-testid*="Next"]',
    '[role="button"][aria-label*="next"]',
    '[role="button"][aria-label*="Next"]',
    ".arrow-right",
    ".arrow-next",
    ".navigation-next",
    ".control-next",
    ".slide-next",
    ".page-next",
    ".presentation-next",
    '[class*="next"]',
    '[class*="Next"]',
)

NOTION_CONTAINERS: tuple[str, ...] = (".notion-scroller", ".notion-page-content", ".notion-frame")


def _docsend_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(StrategyKind.CONTROL, "docsend_button", selectors=DOCSEND_NEXT, settle_s=0.6),
        Strategy(StrategyKind.KEYS, "docsend_keys", keys=DOCSEND_KEYS, settle_s=0.3),
        Strategy(StrategyKind.CONTENT_CLICK, "docsend_content_click", selectors=CONTENT_SELECTORS, settle_s=0.4),
    )


def _pitch_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(StrategyKind.CONTROL, "pitch_button", selectors=PITCH_NEXT, settle_s=0.5),
        Strategy(StrategyKind.KEYS, "pitch_keys", keys=PITCH_KEYS, settle_s=0.3),
        Strategy(StrategyKind.CONTENT_CLICK, "pitch_content_click", selectors=CONTENT_SELECTORS, settle_s=0.4),
    )


def _google_slides_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(StrategyKind.CONTROL, "google_slides_button", selectors=GOOGLE_SLIDES_NEXT, settle_s=0.4),
        Strategy(StrategyKind.KEYS, "google_slides_arrow", keys=("ArrowRight",), settle_s=0.4),
    )


def _figma_deck_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(
            StrategyKind.CONTROL,
            "figma_deck_button",
            selectors=FIGMA_DECK_NEXT,
            verify=Verify.LOCATION,
            settle_s=0.5,
        ),
        Strategy(
            StrategyKind.KEYS,
            "figma_deck_keys",
            keys=("ArrowRight", "Space"),
            verify=Verify.LOCATION,
            settle_s=0.5,
        ),
    )


def _figma_chain() -> tuple[Strategy, ...]:
    return (Strategy(StrategyKind.KEYS, "figma_arrow", keys=("ArrowRight",), verify=Verify.LOCATION, settle_s=0.6),)


def _notion_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(
            StrategyKind.BLOCK_SCROLL,
            "notion_block_scroll",
            selectors=NOTION_CONTAINERS,
            names=("[data-block-id]",),
            verify=Verify.SCROLL,
            settle_s=0.8,
            max_targets=3,
        ),
        Strategy(
            StrategyKind.PROGRESSIVE_SCROLL,
            "notion_progressive_scroll",
            selectors=NOTION_CONTAINERS,
            fractions=(0.3, 0.5, 0.7, 0.9),
            verify=Verify.SCROLL,
            settle_s=0.4,
        ),
        Strategy(
            StrategyKind.KEYS,
            "notion_keys",
            selectors=NOTION_CONTAINERS,
            keys=("PageDown", "ArrowDown", "Space"),
            verify=Verify.SCROLL,
            settle_s=0.3,
        ),
        Strategy(
            StrategyKind.SCROLL_BY,
            "notion_fallback_scroll",
            selectors=NOTION_CONTAINERS,
            fractions=(0.9,),
            verify=Verify.SCROLL,
            settle_s=0.8,
        ),
    )


def _universal_chain() -> tuple[Strategy, ...]:
    return (
        Strategy(StrategyKind.CONTROL, "universal_button", selectors=UNIVERSAL_NEXT, settle_s=0.5, max_targets=3),
        Strategy(StrategyKind.KEYS, "universal_keys", keys=UNIVERSAL_KEYS, settle_s=0.3, needs_indicators=True),
        Strategy(StrategyKind.CONTENT_CLICK, "universal_content_click", selectors=CONTENT_SELECTORS, settle_s=0.4),
        Strategy(StrategyKind.GESTURE, "universal_touch_swipe", selectors=GESTURE_SELECTORS, settle_s=0.5),
        Strategy(StrategyKind.HOOK, "universal_hook", names=HOOK_NAMES, settle_s=0.4),
        Strategy(StrategyKind.URL_PARAM, "universal_url", names=URL_PARAMS, settle_s=0.4),
        Strategy(StrategyKind.SCROLL_BY, "universal_scroll_down", fractions=(0.8,), verify=Verify.SCROLL, settle_s=0.6),
    )


class StrategyRegistry:
    """Platform -> strategy chain. Unregistered platforms get the UNKNOWN chain."""

    def __init__(self) -> None:
        self._chains: dict[Platform, tuple[Strategy, ...]] = {}

    def register(self, platform: Platform, chain: Iterable[Strategy]) -> None:
        frozen = tuple(chain)
        if not frozen:
            raise ValueError(f"empty strategy chain for {platform.value}")
        self._chains[platform] = frozen

    def available(self) -> list[str]:
        return sorted(p.value for p in self._chains)

    def chain_for(self, platform: Platform) -> tuple[Strategy, ...]:
        chain = self._chains.get(platform)
        if chain is not None:
            return chain
        fallback = self._chains.get(Platform.UNKNOWN)
        if fallback is None:
            raise KeyError("no fallback chain registered")
        return fallback


def default_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(Platform.DOCSEND, _docsend_chain())
    registry.register(Platform.PITCH, _pitch_chain())
    registry.register(Platform.GOOGLE_SLIDES, _google_slides_chain())
    registry.register(Platform.FIGMA_DECK, _figma_deck_chain())
    registry.register(Platform.FIGMA, _figma_chain())
    registry.register(Platform.NOTION, _notion_chain())
    registry.register(Platform.UNKNOWN, _universal_chain())
    return registry


__all__ = [
    "Strategy",
    "StrategyKind",
    "StrategyRegistry",
    "Verify",
    "default_registry",
]
