"""Platform classification from page URLs and caller hints."""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlsplit


class Platform(str, Enum):
    DOCSEND = "docsend"
    PITCH = "pitch"
    GOOGLE_SLIDES = "google_slides"
    FIGMA_DECK = "figma_deck"
    FIGMA = "figma"
    NOTION = "notion"
    UNKNOWN = "unknown"

    @property
    def transition_delay(self) -> float:
        """Seconds to let the page animate after a successful navigation."""
        return _TRANSITION_DELAYS.get(self, 0.4)


_TRANSITION_DELAYS: dict[Platform, float] = {
    Platform.FIGMA_DECK: 0.3,
    Platform.DOCSEND: 0.6,
    Platform.PITCH: 0.4,
}

# Hint spellings accepted from callers (upper/lower, with separators).
_HINT_ALIASES: dict[str, Platform] = {
    "docsend": Platform.DOCSEND,
    "pitch": Platform.PITCH,
    "google_slides": Platform.GOOGLE_SLIDES,
    "googleslides": Platform.GOOGLE_SLIDES,
    "gslides": Platform.GOOGLE_SLIDES,
    "figma_deck": Platform.FIGMA_DECK,
    "figmadeck": Platform.FIGMA_DECK,
    "figma": Platform.FIGMA,
    "notion": Platform.NOTION,
    "universal": Platform.UNKNOWN,
    "unknown": Platform.UNKNOWN,
    "other": Platform.UNKNOWN,
}


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def detect_platform(url: str) -> Platform:
    try:
        parts = urlsplit(str(url or ""))
    except ValueError:
        return Platform.UNKNOWN
    host = (parts.hostname or "").lower().rstrip(".")
    path = parts.path or ""
    if not host:
        return Platform.UNKNOWN
    if _host_matches(host, "docsend.com"):
        return Platform.DOCSEND
    if _host_matches(host, "pitch.com"):
        return Platform.PITCH
    if host == "docs.google.com" and "/presentation/" in path:
        return Platform.GOOGLE_SLIDES
    if _host_matches(host, "figma.com"):
        return Platform.FIGMA_DECK if "/deck/" in path else Platform.FIGMA
    if _host_matches(host, "notion.so") or _host_matches(host, "notion.site"):
        return Platform.NOTION
    return Platform.UNKNOWN


def normalize_platform(hint: str | None) -> Platform | None:
    """Map a caller-supplied hint to a Platform; None when the hint is empty or unrecognized."""
    key = str(hint or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return None
    return _HINT_ALIASES.get(key)


def resolve_platform(url: str, hint: str | None = None) -> Platform:
    """Pick the platform for a session.

    A recognized hint wins over URL detection, except that a detected Figma
    deck always wins (deck URLs need URL-verified navigation).
    """
    detected = detect_platform(url)
    if detected is Platform.FIGMA_DECK:
        return detected
    hinted = normalize_platform(hint)
    if hinted is not None and hinted is not Platform.UNKNOWN:
        return hinted
    return detected


__all__ = ["Platform", "detect_platform", "normalize_platform", "resolve_platform"]
