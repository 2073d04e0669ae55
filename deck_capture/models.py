from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import CaptureError, FailureKind
from .fingerprint import Fingerprint
from .policy import DEFAULT_MAX_FRAMES, clamp_max_frames


@dataclass(frozen=True, slots=True)
class Gate:
    """Credentials for an access gate in front of the deck."""

    email: str | None = None
    passcode: str | None = None

    def is_empty(self) -> bool:
        return not (self.email or self.passcode)

    def to_message(self) -> dict[str, str]:
        out: dict[str, str] = {}
        if self.email:
            out["email"] = self.email
        if self.passcode:
            out["passcode"] = self.passcode
        return out


@dataclass(frozen=True)
class CaptureRequest:
    max_frames: int = DEFAULT_MAX_FRAMES
    gate: Gate | None = None
    platform_hint: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_frames", clamp_max_frames(self.max_frames))


@dataclass(frozen=True, slots=True)
class FrameRecord:
    index: int
    image_data: str
    captured_at: float
    success: bool = True
    error: str | None = None
    image_format: str = "jpeg"

    @property
    def size_bytes(self) -> int:
        """Decoded payload size, derived from the base64 length."""
        data = self.image_data or ""
        if not data:
            return 0
        return (len(data) * 3) // 4 - data[-2:].count("=")

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.image_data) if self.image_data else b""

    def dimensions(self) -> tuple[int, int] | None:
        from .imaging import frame_size

        return frame_size(self.image_data)

    def to_dict(self, *, include_data: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "index": self.index,
            "success": self.success,
            "capturedAt": self.captured_at,
            "format": self.image_format,
            "sizeBytes": self.size_bytes,
        }
        if self.error:
            out["error"] = self.error
        if include_data and self.image_data:
            out["dataUrl"] = f"data:image/{self.image_format};base64,{self.image_data}"
        return out


@dataclass(frozen=True, slots=True)
class NavigationOutcome:
    moved: bool
    method: str
    attempts_exhausted: bool = False
    attempts: int = 0

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> NavigationOutcome:
        return cls(
            moved=response.get("moved") is True,
            method=str(response.get("method") or "unknown"),
            attempts_exhausted=bool(response.get("attemptsExhausted")),
            attempts=int(response.get("attempts") or 0),
        )

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "moved": self.moved,
            "method": self.method,
            "attemptsExhausted": self.attempts_exhausted,
            "attempts": self.attempts,
        }


@dataclass
class CaptureSession:
    """Mutable state of one capture loop. Discarded when the loop terminates."""

    target_id: str
    max_frames: int
    platform: str = "unknown"
    phase: str = "init"
    frames: list[FrameRecord] = field(default_factory=list)
    last_fingerprint: Fingerprint | None = None
    reached_end: bool = False
    in_progress: bool = False
    agent_ready: bool = False
    consecutive_failures: int = 0
    end_reason: FailureKind | None = None
    error: CaptureError | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def next_index(self) -> int:
        return len(self.frames) + 1

    @property
    def full(self) -> bool:
        return len(self.frames) >= self.max_frames

    @property
    def successful_frames(self) -> list[FrameRecord]:
        return [f for f in self.frames if f.success]

    def record(self, frame: FrameRecord) -> None:
        if self.full:
            raise ValueError("frame budget exhausted")
        if frame.index != self.next_index:
            raise ValueError(f"frame index {frame.index} out of order (expected {self.next_index})")
        self.frames.append(frame)


class CaptureStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class CaptureResult:
    success: bool
    status: CaptureStatus
    frames: tuple[FrameRecord, ...] = ()
    reached_end: bool = False
    end_reason: FailureKind | None = None
    error: CaptureError | None = None
    platform: str = "unknown"
    max_frames: int = DEFAULT_MAX_FRAMES
    elapsed_s: float = 0.0

    @classmethod
    def from_session(cls, session: CaptureSession, *, elapsed_s: float) -> CaptureResult:
        captured = session.successful_frames
        if not captured:
            status = CaptureStatus.FAILED
        elif session.error is not None:
            status = CaptureStatus.PARTIAL
        else:
            status = CaptureStatus.COMPLETE
        error = session.error
        if not captured and error is None:
            error = CaptureError("No slides captured", kind=FailureKind.CAPTURE_FAILED)
        return cls(
            success=bool(captured),
            status=status,
            frames=tuple(session.frames),
            reached_end=session.reached_end,
            end_reason=session.end_reason,
            error=error,
            platform=session.platform,
            max_frames=session.max_frames,
            elapsed_s=elapsed_s,
        )

    @classmethod
    def rejected(cls, error: CaptureError) -> CaptureResult:
        return cls(success=False, status=CaptureStatus.FAILED, error=error)

    @property
    def frame_count(self) -> int:
        return sum(1 for f in self.frames if f.success)

    def to_dict(self, *, include_data: bool = False) -> dict[str, Any]:
        count = self.frame_count
        out: dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "slideCount": count,
            "totalSlides": len(self.frames),
            "reachedEnd": self.reached_end,
            "frames": [f.to_dict(include_data=include_data) for f in self.frames],
            "details": {
                "provider": self.platform,
                "maxSlides": self.max_frames,
                "totalTime": round(self.elapsed_s, 3),
                "avgTimePerSlide": round(self.elapsed_s / count, 3) if count else None,
            },
        }
        if self.end_reason is not None:
            out["endReason"] = self.end_reason.value
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out


__all__ = [
    "CaptureRequest",
    "CaptureResult",
    "CaptureSession",
    "CaptureStatus",
    "FrameRecord",
    "Gate",
    "NavigationOutcome",
]
