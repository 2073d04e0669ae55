"""Raw CDP WebSocket connection to a single page target."""

from __future__ import annotations

import json
import socket
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .errors import HttpClientError


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)):
        return True
    return "timed out" in str(exc).lower()


class CdpConnection:
    """Blocking CDP client: one command in flight per socket."""

    def __init__(
        self,
        ws_url: str,
        timeout: float = 5.0,
        *,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        factory = connect or websocket.create_connection
        try:
            self.ws = factory(ws_url, timeout=timeout, suppress_origin=True)
        except Exception as exc:  # noqa: BLE001
            raise HttpClientError(f"CDP connect failed: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        # Abandoned agent workers may still be mid-command; one command in flight per socket.
        self._lock = threading.RLock()

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a CDP command and wait for its response."""
        with self._lock:
            msg_id = self._next_id
            self._next_id += 1
            msg: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params
            try:
                with suppress(Exception):
                    self.ws.settimeout(min(2.0, max(0.5, float(self.timeout))))
                self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                raise HttpClientError(str(exc)) from exc

            return self._recv_until(msg_id)

    def _recv_raw(self, remaining: float) -> dict[str, Any] | None:
        try:
            self.ws.settimeout(min(0.5, remaining))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            raise HttpClientError(str(exc)) from exc
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _recv_until(self, expected_id: int) -> dict[str, Any]:
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise HttpClientError("CDP response timed out")
            data = self._recv_raw(remaining)
            if data is None:
                continue
            # Events (Page/Runtime notifications) carry no id and are dropped.
            if data.get("id") == expected_id:
                if "error" in data:
                    raise HttpClientError(str(data["error"]))
                result = data.get("result")
                return result if isinstance(result, dict) else {}

    def close(self) -> None:
        # websocket-client close() can block on the closing handshake; break the socket instead.
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(Exception):
                sock.close()


__all__ = ["CdpConnection"]
