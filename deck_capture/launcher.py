from __future__ import annotations

import contextlib
import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from .config import BrowserConfig, expand_path
from .errors import HttpClientError
from .http_client import http_get_json

_LOGGER = logging.getLogger("deck_capture.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str
    ready: bool = False


class BrowserLauncher:
    """Attach to a running Chrome or launch an owned one with CDP enabled."""

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig.from_env()
        self.process: subprocess.Popen | None = None

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={expand_path(self.config.profile_path)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
            # Captures must keep rendering when the window is occluded or in the background.
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-backgrounding-occluded-windows",
        ]
        if self.config.headless:
            flags.extend(["--headless=new", "--window-size=1920,1080"])
        else:
            flags.append("--start-maximized")
        flags.extend(self.config.extra_flags)
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    def _port_available(self, timeout: float = 0.2) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            try:
                return sock.connect_ex((self.config.cdp_host, self.config.cdp_port)) != 0
            except OSError:
                return False

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the CDP HTTP endpoint responds."""
        try:
            http_get_json(f"{self.config.http_base}/json/version", timeout=timeout)
        except HttpClientError:
            return False
        return True

    def ensure_running(self, timeout: float = 10.0) -> LaunchResult:
        if self.cdp_ready():
            return LaunchResult([], False, "Attached to Chrome on CDP port", ready=True)

        if self.config.mode == "attach":
            if self._port_available():
                return LaunchResult(
                    [],
                    False,
                    f"No Chrome listening on CDP port {self.config.cdp_port} "
                    "(start Chrome with --remote-debugging-port or set DECK_BROWSER_MODE=launch)",
                )
            return LaunchResult(
                [],
                False,
                f"Port {self.config.cdp_port} is in use but CDP is not reachable",
            )

        if not self._port_available():
            return LaunchResult([], False, f"Port {self.config.cdp_port} already in use")

        with contextlib.suppress(OSError):
            Path(expand_path(self.config.profile_path)).mkdir(parents=True, exist_ok=True)
        cmd = self.build_launch_command()
        try:
            self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc))

        _LOGGER.info("launched %s", self.config.binary_path)
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.cdp_ready():
                return LaunchResult(cmd, True, "Chrome launched", ready=True)
            time.sleep(0.1)
        return LaunchResult(cmd, True, "Chrome launch timed out")

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned Chrome process."""
        proc = self.process
        if proc is None:
            return False
        if proc.poll() is not None:
            return True
        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
        except subprocess.TimeoutExpired:
            with contextlib.suppress(OSError):
                proc.kill()
        return True


__all__ = ["BrowserLauncher", "LaunchResult"]
