"""DevTools HTTP endpoints (/json/*) used for tab discovery."""

from __future__ import annotations

import json
import urllib.parse
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen

from .config import BrowserConfig
from .errors import HttpClientError


def http_get_json(url: str, timeout: float = 2.0, *, method: str = "GET") -> Any:
    """Fetch JSON from a DevTools endpoint."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    req = Request(url, headers={"User-Agent": "deck-capture/1.0"}, method=method)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (TimeoutError, URLError, OSError) as exc:
        raise HttpClientError(str(exc)) from exc
    except json.JSONDecodeError as exc:
        raise HttpClientError(f"Invalid JSON from {url}: {exc}") from exc


def list_targets(config: BrowserConfig) -> list[dict[str, Any]]:
    payload = http_get_json(f"{config.http_base}/json/list", timeout=config.http_timeout)
    if not isinstance(payload, list):
        raise HttpClientError("Unexpected /json/list payload")
    return [t for t in payload if isinstance(t, dict)]


def list_pages(config: BrowserConfig) -> list[dict[str, Any]]:
    return [t for t in list_targets(config) if t.get("type") == "page"]


def find_target(config: BrowserConfig, target_id: str) -> dict[str, Any] | None:
    for target in list_targets(config):
        if target.get("id") == target_id:
            return target
    return None


def open_target(config: BrowserConfig, url: str) -> dict[str, Any]:
    """Open a new tab via /json/new (PUT on current Chrome, GET on older builds)."""
    endpoint = f"{config.http_base}/json/new?{urllib.parse.quote(url, safe=':/?&=%#')}"
    try:
        payload = http_get_json(endpoint, timeout=config.http_timeout, method="PUT")
    except HttpClientError:
        payload = http_get_json(endpoint, timeout=config.http_timeout)
    if not isinstance(payload, dict) or not payload.get("id"):
        raise HttpClientError("Chrome did not return a target for /json/new")
    return payload


def activate_target(config: BrowserConfig, target_id: str) -> None:
    endpoint = f"{config.http_base}/json/activate/{urllib.parse.quote(target_id)}"
    req = Request(endpoint, headers={"User-Agent": "deck-capture/1.0"})
    try:
        with urlopen(req, timeout=config.http_timeout) as resp:
            resp.read()
    except (TimeoutError, URLError, OSError) as exc:
        raise HttpClientError(str(exc)) from exc


__all__ = ["activate_target", "find_target", "http_get_json", "list_pages", "list_targets", "open_target"]
