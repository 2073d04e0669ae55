"""
Command-line entry point: capture a deck from a Chrome tab over CDP.

Attaches to (or launches) Chrome, picks the tab, runs one capture session and
prints a summary. Frames are not written anywhere; use --json --include-data
to hand them to another tool.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any

from .browser_session import BrowserSession
from .channel import AgentChannel
from .config import BrowserConfig
from .controller import CaptureController
from .errors import HttpClientError
from .http_client import find_target, list_pages, open_target
from .launcher import BrowserLauncher
from .models import CaptureRequest, CaptureResult, Gate
from .navigation import CdpPageSurface, DeckAgent
from .policy import CapturePolicy, parse_policy_args, policy_args_from_env
from .target import CdpTarget, is_restricted_url

logger = logging.getLogger("deck_capture")

__all__ = ["build_parser", "main", "run_capture", "select_target"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deck-capture", description=__doc__.strip().splitlines()[0])
    pick = parser.add_mutually_exclusive_group()
    pick.add_argument("--tab", metavar="ID", help="DevTools target id of the tab to capture")
    pick.add_argument("--url-contains", metavar="TEXT", help="capture the first tab whose URL contains TEXT")
    pick.add_argument("--open", metavar="URL", help="open URL in a new tab and capture it")
    parser.add_argument("--max-frames", type=int, default=None, help="frame budget (1-200, default 50)")
    parser.add_argument("--platform", metavar="HINT", help="platform hint (docsend, pitch, figma_deck, notion, ...)")
    parser.add_argument("--email", help="email for an access gate")
    parser.add_argument("--passcode", help="passcode for an access gate")
    parser.add_argument("--profile", choices=["fast", "default", "patient"], help="retry/backoff profile")
    parser.add_argument("--json", action="store_true", help="print the result as JSON")
    parser.add_argument("--include-data", action="store_true", help="include frame data URLs in --json output")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def _wait_ready(session: BrowserSession, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if session.eval_js("document.readyState", timeout=1.0) == "complete":
                return
        except HttpClientError:
            pass
        time.sleep(0.25)
    logger.warning("page did not finish loading within %.0fs; capturing anyway", timeout)


def select_target(config: BrowserConfig, args: argparse.Namespace) -> dict[str, Any]:
    if args.open:
        return open_target(config, args.open)
    if args.tab:
        target = find_target(config, args.tab)
        if target is None:
            raise HttpClientError(f"No tab with id {args.tab}")
        return target
    pages = [p for p in list_pages(config) if not is_restricted_url(str(p.get("url") or ""))]
    if args.url_contains:
        pages = [p for p in pages if args.url_contains in str(p.get("url") or "")]
    if not pages:
        raise HttpClientError("No capturable tab found")
    return pages[0]


def run_capture(
    config: BrowserConfig,
    policy: CapturePolicy,
    target: dict[str, Any],
    request: CaptureRequest,
    *,
    wait_load: bool = False,
) -> CaptureResult:
    """Wire two CDP connections (controller + agent) to the tab and capture it."""
    main_session = BrowserSession.connect(config, target)
    agent_session: BrowserSession | None = None
    channel: AgentChannel | None = None
    try:
        if wait_load:
            _wait_ready(main_session)
        agent_session = BrowserSession.connect(config, target)
        surface = CdpPageSurface(agent_session, eval_timeout=policy.verify_timeout_s)
        agent = DeckAgent(surface, policy=policy)
        cdp_target = CdpTarget(config, main_session)
        channel = AgentChannel(cdp_target, agent, policy=policy)
        controller = CaptureController(cdp_target, channel, policy=policy)
        return controller.capture(request)
    finally:
        if channel is not None:
            channel.close()
        if agent_session is not None:
            agent_session.close()
        main_session.close()


def _print_summary(result: CaptureResult) -> None:
    print(f"status: {result.status.value}  platform: {result.platform}")
    print(f"frames: {result.frame_count}/{len(result.frames)}  reached end: {result.reached_end}")
    for frame in result.frames:
        if not frame.success:
            print(f"  #{frame.index}: failed ({frame.error})")
            continue
        size = frame.dimensions()
        dims = f"{size[0]}x{size[1]}" if size else "?"
        print(f"  #{frame.index}: {dims} {frame.size_bytes // 1024} KiB")
    if result.end_reason is not None:
        print(f"end reason: {result.end_reason.value}")
    if result.error is not None:
        print(f"error: {result.error}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    policy_args = policy_args_from_env()
    if args.profile:
        policy_args["profile"] = args.profile
    policy, warnings, errors = parse_policy_args(policy_args)
    for warning in warnings:
        logger.warning("policy %s", warning)
    if errors:
        for error in errors:
            logger.error("policy %s", error)
        return 2

    config = BrowserConfig.from_env()
    launcher = BrowserLauncher(config)
    launch = launcher.ensure_running()
    if not launch.ready:
        logger.error("%s", launch.message)
        return 2

    gate = Gate(email=args.email, passcode=args.passcode)
    request = CaptureRequest(
        max_frames=args.max_frames,
        gate=None if gate.is_empty() else gate,
        platform_hint=args.platform,
    )

    try:
        target = select_target(config, args)
        logger.info("capturing tab %s (%s)", target.get("id"), target.get("url"))
        result = run_capture(config, policy, target, request, wait_load=bool(args.open))
    except HttpClientError as exc:
        logger.error("%s", exc)
        return 2
    finally:
        if launch.started:
            launcher.stop()

    if args.json:
        print(json.dumps(result.to_dict(include_data=args.include_data), ensure_ascii=False, indent=2))
    else:
        _print_summary(result)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
