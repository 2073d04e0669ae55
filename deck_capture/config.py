from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    # Snap builds ignore --user-data-dir; last resort only.
    "/snap/bin/chromium",
]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _float_env(name: str, default: float, lo: float, hi: float) -> float:
    try:
        value = float(os.environ.get(name) or default)
    except ValueError:
        value = default
    return max(lo, min(value, hi))


def _int_env(name: str, default: int, lo: int, hi: int) -> int:
    try:
        value = int(os.environ.get(name) or default)
    except ValueError:
        value = default
    return max(lo, min(value, hi))


@dataclass
class BrowserConfig:
    binary_path: str
    profile_path: str
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    mode: str = "attach"
    headless: bool = True
    extra_flags: list[str] = field(default_factory=list)
    http_timeout: float = 2.0
    cdp_timeout: float = 5.0

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        if mode in {"launch", "spawn", "start"}:
            return "launch"
        # Capturing a deck means driving the user's tab; attach is the default.
        return "attach"

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("DECK_BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        return "google-chrome"

    @classmethod
    def from_env(cls) -> BrowserConfig:
        flags_raw = os.environ.get("DECK_BROWSER_FLAGS", "")
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(os.environ.get("DECK_BROWSER_PROFILE", "~/.cache/deck-capture/profile")),
            cdp_host=(os.environ.get("DECK_BROWSER_HOST") or "127.0.0.1").strip(),
            cdp_port=_int_env("DECK_BROWSER_PORT", 9222, 1, 65535),
            mode=cls.normalize_mode(os.environ.get("DECK_BROWSER_MODE")),
            headless=_bool_env("DECK_HEADLESS", True),
            extra_flags=[flag.strip() for flag in flags_raw.split(",") if flag.strip()],
            http_timeout=_float_env("DECK_HTTP_TIMEOUT", 2.0, 0.2, 30.0),
            cdp_timeout=_float_env("DECK_CDP_TIMEOUT", 5.0, 0.5, 60.0),
        )

    @property
    def http_base(self) -> str:
        return f"http://{self.cdp_host}:{self.cdp_port}"
