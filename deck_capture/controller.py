"""Capture orchestration: capture, dedup, navigate, repeat.

    INIT -> VALIDATE_TARGET -> ENSURE_AGENT -> PAGE_INFO -> (UNLOCK) -> PREPARE
         -> [VALIDATE_TARGET -> CAPTURE -> DEDUP_CHECK -> NAVIGATE]* -> TERMINATE

The loop ends when the frame budget is used up, when the end of the deck is
confirmed (navigation reports no motion, or a duplicate frame survives every
re-capture plus one last-resort navigation), or on a hard failure. Frames
captured before a hard failure are still returned.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from .channel import AgentChannel
from .errors import AgentUnavailable, CaptureError, CaptureFailed, FailureKind, TargetUnreachable
from .fingerprint import Fingerprint, equal, fingerprint
from .models import CaptureRequest, CaptureResult, CaptureSession, FrameRecord, NavigationOutcome
from .navigation.agent import MessageType
from .navigation.platforms import Platform, resolve_platform
from .policy import CapturePolicy
from .rate_limiter import RateLimiter
from .target import TargetSurface, capture_options

_LOGGER = logging.getLogger("deck_capture.controller")


class Phase(str, Enum):
    INIT = "init"
    VALIDATE_TARGET = "validate_target"
    ENSURE_AGENT = "ensure_agent"
    PAGE_INFO = "page_info"
    UNLOCK = "unlock"
    PREPARE = "prepare"
    CAPTURE = "capture"
    DEDUP_CHECK = "dedup_check"
    NAVIGATE = "navigate"
    TERMINATE = "terminate"


def _hard_failure(response: dict[str, Any]) -> CaptureError | None:
    kind = response.get("kind")
    reason = str(response.get("error") or "agent request failed")
    suggestion = str(response.get("suggestion") or "")
    if kind == FailureKind.TARGET_UNREACHABLE.value:
        return TargetUnreachable(reason, suggestion=suggestion)
    if kind == FailureKind.AGENT_UNAVAILABLE.value:
        return AgentUnavailable(reason, suggestion=suggestion)
    return None


class CaptureController:
    """Runs one capture session at a time against a single tab."""

    def __init__(
        self,
        target: TargetSurface,
        channel: AgentChannel,
        *,
        policy: CapturePolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.channel = channel
        self.policy = policy or CapturePolicy()
        self.rate_limiter = rate_limiter or RateLimiter(
            self.policy.max_captures_per_second, clock=clock, sleep=sleep
        )
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._guard = threading.Lock()
        self._active: CaptureSession | None = None

    @property
    def busy(self) -> bool:
        with self._guard:
            return self._active is not None

    def capture(self, request: CaptureRequest | None = None) -> CaptureResult:
        """Run a full capture session. Never raises."""
        request = request or CaptureRequest()
        with self._guard:
            if self._active is not None:
                _LOGGER.warning("capture rejected: session for %s still in progress", self._active.target_id)
                return CaptureResult.rejected(
                    CaptureError(
                        "A capture is already in progress",
                        kind=FailureKind.SESSION_BUSY,
                        suggestion="Wait for the running capture to finish",
                    )
                )
            session = CaptureSession(
                target_id=self.target.target_id,
                max_frames=request.max_frames,
                started_at=self._clock(),
            )
            session.in_progress = True
            self._active = session

        try:
            self._run(session, request)
        except CaptureError as exc:
            _LOGGER.warning("capture stopped in %s: %s", session.phase, exc.reason)
            session.error = exc
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("capture loop crashed in %s", session.phase)
            session.error = CaptureError(f"Unexpected error: {exc}", kind=FailureKind.INTERNAL)
        finally:
            session.phase = Phase.TERMINATE.value
            session.in_progress = False
            with self._guard:
                self._active = None

        result = CaptureResult.from_session(session, elapsed_s=self._clock() - session.started_at)
        _LOGGER.info(
            "capture %s: %s/%s frames, reached_end=%s, platform=%s, %.1fs",
            result.status.value,
            result.frame_count,
            session.max_frames,
            result.reached_end,
            result.platform,
            result.elapsed_s,
        )
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Session phases
    # ─────────────────────────────────────────────────────────────────────────

    def _enter(self, session: CaptureSession, phase: Phase) -> None:
        session.phase = phase.value
        _LOGGER.debug("phase=%s frames=%s", phase.value, len(session.frames))

    def _run(self, session: CaptureSession, request: CaptureRequest) -> None:
        self._enter(session, Phase.VALIDATE_TARGET)
        info = self.target.validate()

        self._enter(session, Phase.ENSURE_AGENT)
        session.agent_ready = self.channel.ensure_agent()
        platform = resolve_platform(info.url, request.platform_hint)

        if session.agent_ready:
            platform = self._setup_page(session, request, platform)
        else:
            _LOGGER.warning("agent unavailable on %s; capturing the current view only", info.url)
        session.platform = platform.value

        while not session.full and not session.reached_end:
            self._enter(session, Phase.VALIDATE_TARGET)
            self.target.validate()

            self._enter(session, Phase.CAPTURE)
            data = self._capture_step(session)
            if data is None:
                continue

            self._enter(session, Phase.DEDUP_CHECK)
            fp = fingerprint(data)
            if equal(fp, session.last_fingerprint):
                resolved = self._resolve_duplicate(session, platform)
                if resolved is None:
                    _LOGGER.info("duplicate frame confirmed after %s frames; end of deck", len(session.frames))
                    session.reached_end = True
                    session.end_reason = FailureKind.DUPLICATE_CONFIRMED
                    break
                data, fp = resolved

            session.record(
                FrameRecord(index=session.next_index, image_data=data, captured_at=self._wall_clock())
            )
            session.last_fingerprint = fp
            session.consecutive_failures = 0
            _LOGGER.info("frame %s/%s captured", session.next_index - 1, session.max_frames)

            if not session.agent_ready:
                raise AgentUnavailable(
                    "Agent could not be made ready; only the current view was captured",
                    suggestion="Reload the tab and retry the capture",
                )

            self._enter(session, Phase.NAVIGATE)
            self._navigate(session, platform)

    def _setup_page(self, session: CaptureSession, request: CaptureRequest, platform: Platform) -> Platform:
        self._enter(session, Phase.PAGE_INFO)
        res = self.channel.send(
            {"type": MessageType.GET_PAGE_INFO.value, "platformHint": request.platform_hint},
            timeout=self.policy.page_info_timeout_s,
        )
        if res.get("success"):
            try:
                platform = Platform(str(res.get("platformGuess")))
            except ValueError:
                pass
            _LOGGER.info(
                "page info: platform=%s navigation=%s units=%s",
                platform.value,
                res.get("hasNavigationAffordance"),
                res.get("estimatedUnitCount"),
            )
        else:
            self._raise_if_hard(res)
            _LOGGER.warning("page info unavailable: %s", res.get("error"))

        if request.gate is not None and not request.gate.is_empty():
            self._enter(session, Phase.UNLOCK)
            res = self.channel.send(
                {"type": MessageType.UNLOCK.value, "gate": request.gate.to_message()},
                timeout=self.policy.unlock_timeout_s,
            )
            if not res.get("success"):
                self._raise_if_hard(res)
                _LOGGER.warning("unlock failed: %s", res.get("error"))

        self._enter(session, Phase.PREPARE)
        res = self.channel.send({"type": MessageType.PREPARE.value}, timeout=self.policy.prepare_timeout_s)
        if not res.get("success"):
            self._raise_if_hard(res)
            _LOGGER.warning("prepare failed: %s", res.get("error"))
        return platform

    @staticmethod
    def _raise_if_hard(response: dict[str, Any]) -> None:
        err = _hard_failure(response)
        if err is not None:
            raise err

    # ─────────────────────────────────────────────────────────────────────────
    # Capture
    # ─────────────────────────────────────────────────────────────────────────

    def _grab(self, *, first_frame: bool) -> str:
        if not self.target.is_active():
            self.target.activate()
            self._sleep(self.policy.activation_delay_s)
        width, height = self.target.viewport()
        options = capture_options(width, height, first_frame=first_frame)
        self.rate_limiter.acquire()
        return self.target.capture(options)

    def _capture_step(self, session: CaptureSession) -> str | None:
        """Capture with in-place retries; None means a soft failure was recorded."""
        first_frame = not session.successful_frames
        attempts = 1 + max(0, int(self.policy.capture_retries))
        attempt = 1
        while True:
            try:
                return self._grab(first_frame=first_frame)
            except CaptureFailed as exc:
                failure = exc
            if not failure.transient or attempt >= attempts:
                break
            _LOGGER.info("transient capture failure (%s/%s): %s", attempt, attempts, failure.reason)
            attempt += 1
            self.target.validate()
            self.target.activate()
            self._sleep(self.policy.activation_delay_s)

        session.record(
            FrameRecord(
                index=session.next_index,
                image_data="",
                captured_at=self._wall_clock(),
                success=False,
                error=failure.reason,
            )
        )
        session.consecutive_failures += 1
        if not failure.transient:
            raise failure
        if session.consecutive_failures >= self.policy.max_consecutive_failures:
            raise CaptureFailed(
                f"{session.consecutive_failures} consecutive capture failures",
                suggestion="Keep the tab visible and retry",
                details={"last_error": failure.reason},
            )
        return None

    def _recapture(self) -> str | None:
        self.target.validate()
        try:
            return self._grab(first_frame=False)
        except CaptureFailed as exc:
            if not exc.transient:
                raise
            _LOGGER.debug("re-capture failed: %s", exc.reason)
            return None

    def _resolve_duplicate(self, session: CaptureSession, platform: Platform) -> tuple[str, Fingerprint] | None:
        """Re-capture a frame identical to its predecessor; None confirms the end."""
        previous = session.last_fingerprint
        retries = max(0, int(self.policy.duplicate_retries))
        for attempt in range(1, retries + 1):
            self._sleep(attempt * self.policy.duplicate_retry_delay_s)
            data = self._recapture()
            if data is None:
                continue
            fp = fingerprint(data)
            if not equal(fp, previous):
                _LOGGER.info("duplicate resolved on re-capture %s/%s", attempt, retries)
                return data, fp

        if not session.agent_ready:
            return None

        _LOGGER.info("frame unchanged after %s re-captures; trying one more navigation", retries)
        outcome = self._request_navigation(platform)
        if outcome is None or not outcome.moved:
            return None
        self._sleep(self.policy.final_settle_s)
        data = self._recapture()
        if data is None:
            return None
        fp = fingerprint(data)
        if equal(fp, previous):
            return None
        _LOGGER.info("last-resort navigation (%s) produced new content", outcome.method)
        return data, fp

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def _request_navigation(self, platform: Platform) -> NavigationOutcome | None:
        """Ask the agent for the next slide; None on a soft channel failure."""
        timeout = self.policy.channel_timeout_s * max(1, int(self.policy.navigate_attempts))
        res = self.channel.send(
            {"type": MessageType.NEXT_SLIDE.value, "platform": platform.value},
            timeout=timeout,
        )
        if not res.get("success"):
            self._raise_if_hard(res)
            _LOGGER.warning("navigation request failed: %s", res.get("error"))
            return None
        return NavigationOutcome.from_response(res)

    def _navigate(self, session: CaptureSession, platform: Platform) -> None:
        outcome = self._request_navigation(platform)
        if outcome is None:
            session.reached_end = True
            session.end_reason = FailureKind.NAVIGATION_EXHAUSTED
            return
        if not outcome.moved:
            _LOGGER.info("navigation reported no motion (%s); end of deck", outcome.method)
            session.reached_end = True
            session.end_reason = FailureKind.NAVIGATION_EXHAUSTED
            return
        _LOGGER.debug("navigated via %s (attempt %s)", outcome.method, outcome.attempts)
        self._sleep(platform.transition_delay + self.policy.render_delay_s)


__all__ = ["CaptureController", "Phase"]
