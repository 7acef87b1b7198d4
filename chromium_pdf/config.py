"""Converter settings, read from `CHROMIUM_PDF_*` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Searched in order; the first executable hit wins.
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    # Chromium-based Edge prints through the same commands.
    "/usr/bin/microsoft-edge",
    "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
    "C:\\Program Files (x86)\\Microsoft\\Edge\\Application\\msedge.exe",
    "C:\\Program Files\\Microsoft\\Edge\\Application\\msedge.exe",
    # Snap build; it only accepts a profile under $HOME.
    "/snap/bin/chromium",
]


ENV_PREFIX = "CHROMIUM_PDF_"
ATTACH_MODES = frozenset({"attach", "connect", "external"})


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env(name: str, default: str = "") -> str:
    return os.environ.get(ENV_PREFIX + name, default)


@dataclass
class ConverterConfig:
    """Where the browser lives and how the converter reaches it.

    `mode` is "launch" (spawn and own a browser) or "attach" (use one that is
    already listening on `cdp_port`). Timeouts are in seconds.
    """

    binary_path: str
    profile_path: str
    cdp_port: int = 9222
    mode: str = "launch"
    extra_flags: list[str] = field(default_factory=list)
    headless: bool = True
    connect_timeout: float = 30.0
    launch_timeout: float = 10.0

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        return "attach" if (raw or "").strip().lower() in ATTACH_MODES else "launch"

    @classmethod
    def detect_binary(cls) -> str:
        """Explicit CHROMIUM_PDF_BINARY, else the first installed candidate, else PATH."""
        explicit = _env("BINARY")
        if explicit:
            return expand_path(explicit)
        installed = (c for c in DEFAULT_BINARY_CANDIDATES if os.access(c, os.X_OK) and Path(c).is_file())
        return next(installed, "chromium")

    @classmethod
    def from_env(cls) -> ConverterConfig:
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(_env("PROFILE", "~/.cache/chromium-pdf/profile")),
            cdp_port=int(_env("PORT", "9222")),
            mode=cls.normalize_mode(_env("MODE")),
            extra_flags=[flag.strip() for flag in _env("FLAGS").split(",") if flag.strip()],
            headless=_env("HEADLESS", "1") != "0",
            connect_timeout=float(_env("CONNECT_TIMEOUT", "30")),
            launch_timeout=float(_env("LAUNCH_TIMEOUT", "10")),
        )


__all__ = ["DEFAULT_BINARY_CANDIDATES", "ConverterConfig", "expand_path"]
