from __future__ import annotations

import json
from typing import Any

import pytest

from deck_capture import main as cli
from deck_capture.config import BrowserConfig
from deck_capture.errors import HttpClientError
from deck_capture.launcher import LaunchResult
from deck_capture.models import CaptureResult, CaptureStatus, FrameRecord

PAGES = [
    {"id": "a", "type": "page", "url": "chrome://newtab"},
    {"id": "b", "type": "page", "url": "https://docsend.com/view/abc"},
    {"id": "c", "type": "page", "url": "https://pitch.com/v/deck"},
]


def _config() -> BrowserConfig:
    return BrowserConfig(binary_path="chrome", profile_path="/tmp/p")


def test_parser_rejects_conflicting_target_flags() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--tab", "a", "--open", "https://x"])


def test_select_target_skips_restricted_pages(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "list_pages", lambda config: PAGES)
    args = cli.build_parser().parse_args([])
    assert cli.select_target(_config(), args)["id"] == "b"

    args = cli.build_parser().parse_args(["--url-contains", "pitch.com"])
    assert cli.select_target(_config(), args)["id"] == "c"

    args = cli.build_parser().parse_args(["--url-contains", "figma"])
    with pytest.raises(HttpClientError):
        cli.select_target(_config(), args)


def test_select_target_by_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "find_target", lambda config, tid: None)
    args = cli.build_parser().parse_args(["--tab", "zzz"])
    with pytest.raises(HttpClientError, match="zzz"):
        cli.select_target(_config(), args)


class DummyLauncher:
    def __init__(self, config: BrowserConfig, *, ready: bool = True) -> None:
        self.ready = ready

    def ensure_running(self) -> LaunchResult:
        return LaunchResult([], False, "attached" if self.ready else "no chrome", ready=self.ready)

    def stop(self) -> bool:
        return False


def test_main_prints_json_and_exit_code(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    seen: dict[str, Any] = {}

    def fake_run(config, policy, target, request, *, wait_load=False) -> CaptureResult:
        seen["request"] = request
        seen["policy"] = policy
        frame = FrameRecord(index=1, image_data="AAAA", captured_at=0.0)
        return CaptureResult(success=True, status=CaptureStatus.COMPLETE, frames=(frame,), reached_end=True)

    monkeypatch.setattr(cli, "BrowserLauncher", DummyLauncher)
    monkeypatch.setattr(cli, "list_pages", lambda config: PAGES)
    monkeypatch.setattr(cli, "run_capture", fake_run)
    code = cli.main(["--json", "--max-frames", "3", "--platform", "docsend", "--passcode", "1234", "--profile", "fast"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["slideCount"] == 1
    assert seen["request"].max_frames == 3
    assert seen["request"].gate.passcode == "1234"
    assert seen["request"].platform_hint == "docsend"
    assert seen["policy"].navigate_attempts == 2


def test_main_reports_unreachable_browser(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "BrowserLauncher", lambda config: DummyLauncher(config, ready=False))
    assert cli.main([]) == 2


def test_main_failed_capture_exit_code(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(cli, "BrowserLauncher", DummyLauncher)
    monkeypatch.setattr(cli, "list_pages", lambda config: PAGES)
    monkeypatch.setattr(
        cli,
        "run_capture",
        lambda *a, **k: CaptureResult(success=False, status=CaptureStatus.FAILED),
    )
    assert cli.main([]) == 1
    assert "status: failed" in capsys.readouterr().out


def test_main_rejects_strict_policy_errors_before_launch(monkeypatch: pytest.MonkeyPatch) -> None:
    launched: list[BrowserConfig] = []

    def launcher(config: BrowserConfig) -> DummyLauncher:
        launched.append(config)
        return DummyLauncher(config)

    monkeypatch.setenv("DECK_STRICT_PARAMS", "1")
    monkeypatch.setenv("DECK_NAVIGATE_ATTEMPTS", "0")
    monkeypatch.setattr(cli, "BrowserLauncher", launcher)
    assert cli.main([]) == 2
    assert launched == []
