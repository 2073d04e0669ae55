"""Orchestrator-side operations on the tab: validate, activate, capture."""

from __future__ import annotations

import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Protocol

from .browser_session import BrowserSession
from .config import BrowserConfig
from .errors import CaptureError, CaptureFailed, HttpClientError, TargetUnreachable
from .http_client import activate_target, find_target

_LOGGER = logging.getLogger("deck_capture.target")

RESTRICTED_PREFIXES: tuple[str, ...] = (
    "chrome://",
    "chrome-extension://",
    "chrome-search://",
    "chrome-untrusted://",
    "devtools://",
    "edge://",
    "view-source:",
)

_UNREACHABLE_MARKERS = (
    "target closed",
    "no target with given id",
    "session closed",
    "session with given id not found",
    "detached",
    "connection is already closed",
    "socket is already closed",
    "broken pipe",
    "connection reset",
)

_TRANSIENT_MARKERS = (
    "timed out",
    "not visible",
    "not active",
    "quota",
    "rate limit",
    "devtools",
    "cannot access contents",
    "unable to capture",
    "failed to capture",
    "internal error",
)


def is_restricted_url(url: str) -> bool:
    u = str(url or "").strip().lower()
    return any(u.startswith(prefix) for prefix in RESTRICTED_PREFIXES)


def classify_capture_error(message: str) -> CaptureError:
    """Map a raw screenshot failure to the taxonomy."""
    msg = str(message or "").lower()
    if any(marker in msg for marker in _UNREACHABLE_MARKERS):
        return TargetUnreachable(
            f"Tab is gone: {message}",
            suggestion="Reopen the deck and start a new capture",
        )
    if any(marker in msg for marker in _TRANSIENT_MARKERS):
        return CaptureFailed(f"Capture failed: {message}", transient=True)
    return CaptureFailed(f"Capture failed: {message}", transient=False)


@dataclass(frozen=True, slots=True)
class TargetInfo:
    target_id: str
    url: str
    title: str = ""
    type: str = "page"


@dataclass(frozen=True, slots=True)
class CaptureOptions:
    format: str = "jpeg"
    quality: int = 40


def capture_options(width: int, height: int, *, first_frame: bool = False) -> CaptureOptions:
    """JPEG quality tiers by viewport size; larger viewports need less quality per pixel."""
    width = max(1, int(width))
    height = max(1, int(height))
    aspect = width / height

    if width >= 1920 and height >= 1080:
        quality = 40
    elif width >= 1366 and height >= 768:
        quality = 35
    else:
        quality = 30

    if aspect > 2.0:
        quality = max(quality - 5, 25)
    if first_frame:
        quality = max(quality, 45)
    if width >= 1440 and aspect > 1.3:
        quality = 50
    return CaptureOptions(format="jpeg", quality=quality)


class TargetSurface(Protocol):
    target_id: str

    def validate(self) -> TargetInfo: ...

    def is_active(self) -> bool: ...

    def activate(self) -> None: ...

    def viewport(self) -> tuple[int, int]: ...

    def capture(self, options: CaptureOptions) -> str: ...


class CdpTarget:
    """TargetSurface over the DevTools HTTP endpoints plus the orchestrator's own CDP connection."""

    def __init__(self, config: BrowserConfig, session: BrowserSession) -> None:
        self.config = config
        self.session = session
        self.target_id = session.tab_id

    def validate(self) -> TargetInfo:
        try:
            target = find_target(self.config, self.target_id)
        except HttpClientError as exc:
            raise TargetUnreachable(
                f"DevTools endpoint unreachable: {exc}",
                suggestion=f"Check that Chrome is running with --remote-debugging-port={self.config.cdp_port}",
            ) from exc
        if target is None:
            raise TargetUnreachable(f"Tab {self.target_id} no longer exists", suggestion="Reopen the deck")
        url = str(target.get("url") or "")
        if target.get("type") != "page":
            raise TargetUnreachable(f"Target {self.target_id} is a {target.get('type')}, not a page")
        if is_restricted_url(url):
            raise TargetUnreachable(
                f"Cannot capture restricted page: {url}",
                suggestion="Navigate the tab to the deck (chrome:// and devtools:// pages cannot be scripted)",
                details={"url": url},
            )
        return TargetInfo(target_id=self.target_id, url=url, title=str(target.get("title") or ""))

    def is_active(self) -> bool:
        try:
            return self.session.eval_js("document.visibilityState", timeout=1.0) == "visible"
        except HttpClientError:
            return False

    def activate(self) -> None:
        try:
            activate_target(self.config, self.target_id)
        except HttpClientError as exc:
            _LOGGER.debug("json/activate failed: %s", exc)
        with suppress(HttpClientError):
            self.session.bring_to_front()

    def viewport(self) -> tuple[int, int]:
        return self.session.viewport_size()

    def capture(self, options: CaptureOptions) -> str:
        try:
            data = self.session.screenshot(options.format, quality=options.quality)
        except HttpClientError as exc:
            raise classify_capture_error(str(exc)) from exc
        if not data:
            raise CaptureFailed("No image data returned", transient=True)
        return data


__all__ = [
    "RESTRICTED_PREFIXES",
    "CaptureOptions",
    "CdpTarget",
    "TargetInfo",
    "TargetSurface",
    "capture_options",
    "classify_capture_error",
    "is_restricted_url",
]
