"""Navigation: platform detection, strategy chains and the in-tab agent."""

from .agent import AttemptOutcome, DeckAgent, MessageType, StrategyResult
from .platforms import Platform, detect_platform, normalize_platform, resolve_platform
from .strategies import Strategy, StrategyKind, StrategyRegistry, Verify, default_registry
from .surface import CdpPageSurface, PageSurface, ScrollState

__all__ = [
    "AttemptOutcome",
    "CdpPageSurface",
    "DeckAgent",
    "MessageType",
    "PageSurface",
    "Platform",
    "ScrollState",
    "Strategy",
    "StrategyKind",
    "StrategyRegistry",
    "StrategyResult",
    "Verify",
    "default_registry",
    "detect_platform",
    "normalize_platform",
    "resolve_platform",
]
