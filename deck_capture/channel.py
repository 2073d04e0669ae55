"""Request/response channel between the capture controller and the in-tab agent.

The agent runs on its own worker thread (its own execution context with its
own CDP connection). Every request is awaited with an explicit timeout; a
worker that misses its deadline is abandoned and replaced so one wedged
request cannot block the next.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any

from .errors import (
    AgentNotPresent,
    AgentUnavailable,
    CaptureError,
    ChannelTimeout,
    FailureKind,
    HttpClientError,
)
from .navigation.agent import DeckAgent, MessageType
from .policy import CapturePolicy
from .target import TargetSurface

_LOGGER = logging.getLogger("deck_capture.channel")


class AgentChannel:
    def __init__(
        self,
        target: TargetSurface,
        agent: DeckAgent,
        *,
        policy: CapturePolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.agent = agent
        self.policy = policy or CapturePolicy()
        self._sleep = sleep
        self._lock = threading.Lock()
        self._executor = self._new_executor()
        self.reinjections = 0

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="deck-agent")

    def close(self) -> None:
        with self._lock:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _abandon_worker(self) -> None:
        with self._lock:
            stale = self._executor
            self._executor = self._new_executor()
        stale.shutdown(wait=False, cancel_futures=True)

    def _dispatch(self, fn: Callable[[], Any], timeout: float) -> Any:
        with self._lock:
            fut = self._executor.submit(fn)
        try:
            return fut.result(timeout=timeout)
        except FuturesTimeout:
            fut.cancel()
            self._abandon_worker()
            raise ChannelTimeout(f"Agent did not respond within {timeout:.1f}s") from None

    def _send_once(self, message: dict[str, Any], timeout: float) -> dict[str, Any]:
        res = self._dispatch(lambda: self.agent.handle(message), timeout)
        if not isinstance(res, dict):
            return {"success": False, "error": "Malformed agent response"}
        return res

    def _ping(self, timeout: float) -> bool:
        try:
            res = self._send_once({"type": MessageType.PING.value}, timeout)
        except (AgentNotPresent, ChannelTimeout):
            return False
        return res.get("alive") is True

    def _reinject(self) -> bool:
        self.reinjections += 1
        try:
            return self._dispatch(self.agent.inject, self.policy.verify_timeout_s) is True
        except (ChannelTimeout, HttpClientError) as exc:
            _LOGGER.warning("agent injection failed: %s", exc)
            return False

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    def ensure_agent(self) -> bool:
        """Make the agent reachable. Idempotent: a live agent costs one PING."""
        self.target.validate()
        if self._ping(self.policy.ping_timeout_s):
            return True

        _LOGGER.info("agent not responding; injecting")
        if not self._reinject():
            _LOGGER.warning("injection did not report success; verifying anyway")
        self._sleep(self.policy.inject_settle_s)

        attempts = max(1, int(self.policy.verify_attempts))
        for attempt in range(1, attempts + 1):
            if self._ping(self.policy.verify_timeout_s):
                _LOGGER.info("agent ready after %s verification attempt(s)", attempt)
                return True
            if attempt < attempts:
                self._sleep(self.policy.verify_gap_s)
        return False

    def send(self, message: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        """Send one request. Never raises; failures come back as {success: False, error, kind}."""
        timeout = float(timeout if timeout is not None else self.policy.channel_timeout_s)
        mtype = str(message.get("type") or "")
        try:
            self.target.validate()
            return self._send_with_recovery(message, timeout)
        except CaptureError as exc:
            _LOGGER.warning("%s failed: %s", mtype, exc.reason)
            return self._failure(exc)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("%s failed unexpectedly", mtype)
            return {"success": False, "error": str(exc), "kind": FailureKind.INTERNAL.value}

    def _send_with_recovery(self, message: dict[str, Any], timeout: float) -> dict[str, Any]:
        try:
            return self._send_once(message, timeout)
        except AgentNotPresent as exc:
            reason = str(exc)
        except ChannelTimeout as exc:
            if message.get("type") == MessageType.PING.value or self._ping(self.policy.ping_timeout_s):
                raise
            reason = str(exc)

        _LOGGER.warning("agent lost (%s); re-injecting once", reason)
        if not self._reinject():
            self.target.validate()
            raise AgentUnavailable(
                "Agent could not be re-injected",
                suggestion="Reload the tab and retry the capture",
                details={"cause": reason},
            )
        self._sleep(self.policy.reinject_settle_s)
        try:
            return self._send_once(message, timeout)
        except (AgentNotPresent, ChannelTimeout) as exc:
            raise AgentUnavailable(
                f"Agent unresponsive after re-injection: {exc}",
                suggestion="Reload the tab and retry the capture",
                details={"cause": reason},
            ) from exc

    @staticmethod
    def _failure(exc: CaptureError) -> dict[str, Any]:
        out: dict[str, Any] = {"success": False, "error": exc.reason, "kind": exc.kind.value}
        if exc.suggestion:
            out["suggestion"] = exc.suggestion
        return out


__all__ = ["AgentChannel"]
