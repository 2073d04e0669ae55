from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from deck_capture.errors import CaptureError, FailureKind, TargetUnreachable
from deck_capture.imaging import frame_size
from deck_capture.models import (
    CaptureRequest,
    CaptureResult,
    CaptureSession,
    CaptureStatus,
    FrameRecord,
    Gate,
    NavigationOutcome,
)


def _jpeg(width: int, height: int) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format="JPEG", quality=40)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def test_frame_size_reads_jpeg_dimensions() -> None:
    data = _jpeg(64, 36)
    assert frame_size(data) == (64, 36)
    assert frame_size(f"data:image/jpeg;base64,{data}") == (64, 36)


@pytest.mark.parametrize("bad", [None, "", "not-base64!!", base64.b64encode(b"plain text").decode()])
def test_frame_size_rejects_undecodable_frames(bad: str | None) -> None:
    assert frame_size(bad) is None


def test_frame_record_size_and_payload() -> None:
    data = _jpeg(8, 8)
    record = FrameRecord(index=1, image_data=data, captured_at=1.0)
    assert record.size_bytes == len(record.image_bytes())
    assert record.dimensions() == (8, 8)
    payload = record.to_dict(include_data=True)
    assert payload["dataUrl"].startswith("data:image/jpeg;base64,")
    assert "dataUrl" not in record.to_dict()


def test_failed_record_has_no_payload() -> None:
    record = FrameRecord(index=2, image_data="", captured_at=1.0, success=False, error="not visible")
    assert record.size_bytes == 0
    assert record.image_bytes() == b""
    assert record.to_dict(include_data=True) == {
        "index": 2,
        "success": False,
        "capturedAt": 1.0,
        "format": "jpeg",
        "sizeBytes": 0,
        "error": "not visible",
    }


def test_session_enforces_gapless_indices_and_budget() -> None:
    session = CaptureSession(target_id="t", max_frames=2)
    session.record(FrameRecord(index=1, image_data="AAAA", captured_at=0.0))
    with pytest.raises(ValueError):
        session.record(FrameRecord(index=3, image_data="AAAA", captured_at=0.0))
    session.record(FrameRecord(index=2, image_data="", captured_at=0.0, success=False))
    assert session.full
    assert len(session.successful_frames) == 1
    with pytest.raises(ValueError):
        session.record(FrameRecord(index=3, image_data="AAAA", captured_at=0.0))


def test_request_clamps_budget() -> None:
    assert CaptureRequest(max_frames=1000).max_frames == 200
    assert CaptureRequest().max_frames == 50


def test_gate_message() -> None:
    assert Gate().is_empty()
    assert Gate(passcode="1234").to_message() == {"passcode": "1234"}


def test_navigation_outcome_round_trip_of_wire_fields() -> None:
    outcome = NavigationOutcome.from_response(
        {"success": True, "moved": False, "method": "retry_exhausted", "attemptsExhausted": True, "attempts": 3}
    )
    assert outcome == NavigationOutcome(moved=False, method="retry_exhausted", attempts_exhausted=True, attempts=3)
    assert NavigationOutcome.from_response({"moved": "yes"}).moved is False


def _session(frames: list[FrameRecord], error: CaptureError | None = None) -> CaptureSession:
    session = CaptureSession(target_id="t", max_frames=5, platform="pitch")
    for f in frames:
        session.record(f)
    session.error = error
    return session


def test_result_status_complete_partial_failed() -> None:
    ok = FrameRecord(index=1, image_data="AAAA", captured_at=0.0)
    complete = CaptureResult.from_session(_session([ok]), elapsed_s=2.0)
    assert complete.status is CaptureStatus.COMPLETE
    assert complete.error is None

    partial = CaptureResult.from_session(_session([ok], TargetUnreachable("gone")), elapsed_s=2.0)
    assert partial.status is CaptureStatus.PARTIAL
    assert partial.success

    failed = CaptureResult.from_session(_session([]), elapsed_s=2.0)
    assert failed.status is CaptureStatus.FAILED
    assert failed.error is not None
    assert failed.error.kind is FailureKind.CAPTURE_FAILED


def test_result_details_average_time() -> None:
    frames = [FrameRecord(index=i, image_data="AAAA", captured_at=0.0) for i in (1, 2)]
    payload = CaptureResult.from_session(_session(frames), elapsed_s=3.0).to_dict()
    assert payload["details"] == {"provider": "pitch", "maxSlides": 5, "totalTime": 3.0, "avgTimePerSlide": 1.5}


def test_error_rendering() -> None:
    err = TargetUnreachable("Tab gone", suggestion="Reopen the deck", details={"url": "x"})
    assert str(err) == "[target_unreachable] Tab gone\nSuggestion: Reopen the deck"
    assert err.to_dict() == {
        "kind": "target_unreachable",
        "reason": "Tab gone",
        "suggestion": "Reopen the deck",
        "details": {"url": "x"},
    }
    assert CaptureError("x", kind=FailureKind.SESSION_BUSY).kind is FailureKind.SESSION_BUSY
