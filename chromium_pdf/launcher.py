"""Start, attach to and stop the Chromium process the converter talks to.

In launch mode the browser is spawned with remote debugging on the configured
port and owned by the launcher; in attach mode an already running browser is
used as is and never spawned or stopped.
"""

from __future__ import annotations

import contextlib
import json
import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

from .config import ConverterConfig, expand_path
from .errors import ChromiumConnectionError

_LOGGER = logging.getLogger("chromium_pdf.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str


class BrowserLauncher:
    def __init__(self, config: ConverterConfig | None = None) -> None:
        self.config = config or ConverterConfig.from_env()
        self.process: subprocess.Popen | None = None

    @property
    def owns_process(self) -> bool:
        return self.process is not None

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the DevTools HTTP endpoint responds."""
        endpoint = f"http://127.0.0.1:{self.config.cdp_port}/json/version"
        try:
            with urlopen(endpoint, timeout=timeout) as resp:
                return resp.status == 200
        except (OSError, TimeoutError, URLError):
            return False

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned browser process."""
        proc = self.process
        if proc is None:
            return False
        self.process = None
        if proc.poll() is not None:
            return True

        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
            return True
        except subprocess.TimeoutExpired:
            pass

        # Escalate to kill.
        with contextlib.suppress(OSError):
            proc.kill()
        with contextlib.suppress(subprocess.TimeoutExpired):
            proc.wait(timeout=1.0)
        return True

    def _build_common_flags(self) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.config.cdp_port}",
            f"--user-data-dir={expand_path(self.config.profile_path)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-gpu",
            "--disable-dev-shm-usage",
            "--disable-extensions",
            "--disable-background-networking",
            "--disable-sync",
            "--hide-scrollbars",
            "--mute-audio",
            "--run-all-compositor-stages-before-draw",
        ]
        if self.config.headless:
            flags.append("--headless=new")
        return flags

    def build_launch_command(self, extra: list[str] | None = None) -> list[str]:
        flags = self._build_common_flags() + self.config.extra_flags
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    def _port_available(self, timeout: float = 0.2) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            try:
                return sock.connect_ex(("127.0.0.1", self.config.cdp_port)) != 0
            except OSError:
                return False

    def ensure_running(self, timeout: float | None = None) -> LaunchResult:
        timeout = self.config.launch_timeout if timeout is None else timeout

        if self.config.mode == "attach":
            if self.cdp_ready():
                return LaunchResult([], False, "Attached to existing browser on CDP port")
            return LaunchResult(
                [],
                False,
                f"Attach mode: no browser listening on CDP port {self.config.cdp_port} "
                "(start it with --remote-debugging-port)",
            )

        if self.cdp_ready():
            return LaunchResult([], False, "Browser already listening on CDP port")

        if not self._port_available():
            return LaunchResult([], False, f"Port {self.config.cdp_port} already in use")

        with contextlib.suppress(OSError):
            Path(expand_path(self.config.profile_path)).mkdir(parents=True, exist_ok=True)

        cmd = self.build_launch_command()
        _LOGGER.info("Launching browser: %s", " ".join(cmd))
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc))

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.cdp_ready():
                return LaunchResult(cmd, True, "Browser launched")
            if self.process.poll() is not None:
                code = self.process.returncode
                self.process = None
                return LaunchResult(cmd, False, f"Browser exited during startup with code {code}")
            time.sleep(0.1)
        self.stop()
        return LaunchResult(cmd, False, "Browser launch timed out")

    def cdp_version(self, timeout: float = 0.8) -> dict:
        endpoint = f"http://127.0.0.1:{self.config.cdp_port}/json/version"
        try:
            req = Request(endpoint, headers={"User-Agent": "chromium-pdf"})
            with urlopen(req, timeout=timeout) as resp:
                return json.loads(resp.read().decode())
        except (URLError, OSError, ValueError) as exc:
            raise ChromiumConnectionError(f"CDP not reachable on port {self.config.cdp_port}: {exc}") from exc

    def browser_ws_url(self, timeout: float = 0.8) -> str:
        """Return the browser-level websocket endpoint (`webSocketDebuggerUrl`)."""
        url = self.cdp_version(timeout=timeout).get("webSocketDebuggerUrl")
        if not isinstance(url, str) or not url:
            raise ChromiumConnectionError(f"CDP on port {self.config.cdp_port} did not report a webSocketDebuggerUrl")
        return url

    @staticmethod
    def find_free_port() -> int:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]


__all__ = ["BrowserLauncher", "LaunchResult"]
