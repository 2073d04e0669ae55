from __future__ import annotations

from contextlib import suppress
from typing import Any

from .config import BrowserConfig
from .errors import HttpClientError
from .session_cdp import CdpConnection

# key -> (code, windowsVirtualKeyCode, text)
_KEY_DEFS: dict[str, tuple[str, int, str]] = {
    "Enter": ("Enter", 13, "\r"),
    "Tab": ("Tab", 9, ""),
    "Escape": ("Escape", 27, ""),
    "Space": ("Space", 32, " "),
    " ": ("Space", 32, " "),
    "ArrowUp": ("ArrowUp", 38, ""),
    "ArrowDown": ("ArrowDown", 40, ""),
    "ArrowLeft": ("ArrowLeft", 37, ""),
    "ArrowRight": ("ArrowRight", 39, ""),
    "Home": ("Home", 36, ""),
    "End": ("End", 35, ""),
    "PageUp": ("PageUp", 33, ""),
    "PageDown": ("PageDown", 34, ""),
}


class BrowserSession:
    """
    High-level session for one tab.

    Wraps CdpConnection with the handful of page operations capture needs.
    Use as context manager for automatic cleanup.
    """

    def __init__(self, connection: CdpConnection, tab_id: str, tab_url: str = ""):
        self.conn = connection
        self.tab_id = tab_id
        self.tab_url = tab_url
        self._page_enabled = False
        self._runtime_enabled = False

    @classmethod
    def connect(cls, config: BrowserConfig, target: dict[str, Any]) -> BrowserSession:
        ws_url = target.get("webSocketDebuggerUrl")
        if not isinstance(ws_url, str) or not ws_url:
            raise HttpClientError(
                f"Target {target.get('id')} exposes no webSocketDebuggerUrl (another client may be attached)"
            )
        conn = CdpConnection(ws_url, timeout=config.cdp_timeout)
        return cls(conn, tab_id=str(target.get("id") or ""), tab_url=str(target.get("url") or ""))

    def __enter__(self) -> BrowserSession:
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        self.conn.close()

    def enable_page(self) -> None:
        if not self._page_enabled:
            self.conn.send("Page.enable")
            self._page_enabled = True

    def enable_runtime(self) -> None:
        if not self._runtime_enabled:
            self.conn.send("Runtime.enable")
            self._runtime_enabled = True

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def eval_js(self, expression: str, *, timeout: float | None = None) -> Any:
        """Evaluate JavaScript and return the by-value result.

        Page exceptions raise HttpClientError. CDP reports `undefined` as
        {"type": "undefined"} with no value field; it is normalized (with null)
        to None so callers can rely on Python truthiness.
        """
        self.enable_runtime()

        old_timeout: float | None = None
        if timeout is not None:
            old_timeout = float(self.conn.timeout)
            self.conn.timeout = float(timeout)
        try:
            result = self.conn.send(
                "Runtime.evaluate",
                {
                    "expression": expression,
                    "returnByValue": True,
                    "awaitPromise": True,
                },
            )
        finally:
            if old_timeout is not None:
                self.conn.timeout = old_timeout

        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
            text = exc.get("description") or details.get("text") or "Uncaught exception"
            raise HttpClientError(f"Runtime.evaluate failed: {text}")

        value = result.get("result")
        if not isinstance(value, dict):
            return None
        if value.get("type") == "undefined":
            return None
        if value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value", value)

    def add_script_on_new_document(self, source: str) -> str | None:
        self.enable_page()
        res = self.conn.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        identifier = res.get("identifier")
        return identifier if isinstance(identifier, str) and identifier else None

    # ─────────────────────────────────────────────────────────────────────────
    # Input
    # ─────────────────────────────────────────────────────────────────────────

    def press_key(self, key: str, modifiers: int = 0) -> None:
        """Press a key as a trusted keyDown/keyUp pair."""
        if key in _KEY_DEFS:
            code, key_code, text = _KEY_DEFS[key]
            dom_key = " " if code == "Space" else key
        elif len(key) == 1:
            code, key_code, text = f"Key{key.upper()}", ord(key.upper()), key
            dom_key = key
        else:
            raise HttpClientError(f"Unsupported key: {key!r}")

        down: dict[str, Any] = {
            "type": "keyDown",
            "key": dom_key,
            "code": code,
            "windowsVirtualKeyCode": key_code,
            "modifiers": modifiers,
        }
        if text:
            down["text"] = text
        self.conn.send("Input.dispatchKeyEvent", down)
        self.conn.send(
            "Input.dispatchKeyEvent",
            {
                "type": "keyUp",
                "key": dom_key,
                "code": code,
                "windowsVirtualKeyCode": key_code,
                "modifiers": modifiers,
            },
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Page / target
    # ─────────────────────────────────────────────────────────────────────────

    def screenshot(self, format: str = "png", quality: int | None = None) -> str:
        """Capture the visible viewport, return base64 data."""
        params: dict[str, Any] = {"format": format, "fromSurface": True}
        if quality is not None and format == "jpeg":
            params["quality"] = int(quality)
        result = self.conn.send("Page.captureScreenshot", params)
        return result.get("data", "")

    def bring_to_front(self) -> None:
        self.conn.send("Page.bringToFront")

    def viewport_size(self) -> tuple[int, int]:
        """Return the CSS viewport size (falls back to 1280x800 when metrics are missing)."""
        width, height = 1280, 800
        with suppress(HttpClientError):
            metrics = self.conn.send("Page.getLayoutMetrics")
            vp = metrics.get("cssLayoutViewport") or metrics.get("layoutViewport") or {}
            width = int(vp.get("clientWidth") or width)
            height = int(vp.get("clientHeight") or height)
        return width, height


__all__ = ["BrowserSession"]
