"""Failure taxonomy shared by the controller, the channel and the agent."""

from __future__ import annotations

from enum import Enum
from typing import Any


class HttpClientError(Exception):
    """CDP / DevTools HTTP transport failure."""


class FailureKind(str, Enum):
    TARGET_UNREACHABLE = "target_unreachable"
    AGENT_UNAVAILABLE = "agent_unavailable"
    CHANNEL_TIMEOUT = "channel_timeout"
    CAPTURE_FAILED = "capture_failed"
    NAVIGATION_EXHAUSTED = "navigation_exhausted"
    DUPLICATE_CONFIRMED = "duplicate_confirmed"
    SESSION_BUSY = "session_busy"
    INTERNAL = "internal"


class AgentNotPresent(RuntimeError):
    """The in-page agent helper is missing (reload, hard navigation, new document)."""


class CaptureError(RuntimeError):
    """Structured capture failure (kind + reason + actionable suggestion)."""

    kind: FailureKind = FailureKind.INTERNAL

    def __init__(
        self,
        reason: str,
        *,
        suggestion: str = "",
        details: dict[str, Any] | None = None,
        kind: FailureKind | None = None,
    ) -> None:
        super().__init__(reason)
        if kind is not None:
            self.kind = kind
        self.reason = reason
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        parts = [f"[{self.kind.value}] {self.reason}"]
        if self.suggestion:
            parts.append(f"Suggestion: {self.suggestion}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind.value, "reason": self.reason}
        if self.suggestion:
            out["suggestion"] = self.suggestion
        if self.details:
            out["details"] = self.details
        return out


class TargetUnreachable(CaptureError):
    kind = FailureKind.TARGET_UNREACHABLE


class AgentUnavailable(CaptureError):
    kind = FailureKind.AGENT_UNAVAILABLE


class ChannelTimeout(CaptureError):
    kind = FailureKind.CHANNEL_TIMEOUT


class CaptureFailed(CaptureError):
    """Frame capture failed; `transient` failures are worth retrying in place."""

    kind = FailureKind.CAPTURE_FAILED

    def __init__(self, reason: str, *, transient: bool = False, **kwargs: Any) -> None:
        super().__init__(reason, **kwargs)
        self.transient = bool(transient)


__all__ = [
    "AgentNotPresent",
    "AgentUnavailable",
    "CaptureError",
    "CaptureFailed",
    "ChannelTimeout",
    "FailureKind",
    "HttpClientError",
    "TargetUnreachable",
]
