"""
High-level conversions built on the protocol driver.

Provides:
- Converter.convert_to_pdf: page -> PDF (streamed from the browser)
- Converter.convert_to_image: page -> PNG screenshot
- Converter.convert_to_mhtml: page -> MHTML snapshot

One CountdownTimer spans navigate, the optional script/window-status steps and
the export call, so a conversion never exceeds the caller's overall timeout.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Union
from urllib.parse import urlparse

from .browser import Browser, ConnectionFactory
from .config import ConverterConfig
from .connection import Connection
from .countdown import CountdownTimer
from .errors import ChromiumConnectionError
from .launcher import BrowserLauncher
from .log import InstanceLogger
from .navigation import NavigationRequest
from .page_settings import PageSettings

_LOGGER = logging.getLogger("chromium_pdf.converter")

URL_SCHEMES = ("http", "https", "file", "about", "data")

Output = Union[str, Path, IO[bytes]]


@dataclass
class LoadOptions:
    """How the page is loaded before it is exported."""

    request_headers: dict[str, str] = field(default_factory=dict)
    use_cache: bool = False
    safe_urls: list[str] = field(default_factory=list)
    url_blacklist: list[str] = field(default_factory=list)
    log_network_traffic: bool = False
    media_load_timeout: int | None = None
    run_javascript: str = ""
    wait_for_window_status: str = ""
    window_status_timeout: int = 60000


def to_url(source: str | Path) -> str:
    """Turn a URL or a local file path into something Page.navigate accepts."""
    raw = str(source)
    if not raw.strip():
        raise ValueError("The input is empty, give a url or a file path")
    scheme = urlparse(raw).scheme.lower()
    if scheme in URL_SCHEMES:
        return raw
    path = Path(raw).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Input file '{raw}' does not exist")
    return path.resolve().as_uri()


def _has_source(source: str | Path | None) -> bool:
    return source is not None and bool(str(source).strip())


@contextmanager
def _open_output(output: Output) -> Iterator[IO[bytes]]:
    if isinstance(output, (str, Path)):
        path = Path(output).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as fh:
            yield fh
    else:
        yield output


class Converter:
    """Converts pages with a (launched or attached) browser.

    Conversions are serialized: the driver controls a single page target.
    """

    def __init__(
        self,
        config: ConverterConfig | None = None,
        launcher: BrowserLauncher | None = None,
        *,
        instance_id: str | None = None,
        logger: logging.Logger | None = None,
        connection_factory: ConnectionFactory = Connection,
    ) -> None:
        self.config = config or ConverterConfig.from_env()
        self.launcher = launcher or BrowserLauncher(self.config)
        self._logger = logger
        self._log = InstanceLogger(logger or _LOGGER, instance_id or uuid.uuid4().hex)
        self._connection_factory = connection_factory
        self._browser: Browser | None = None
        self._lock = threading.Lock()

    @property
    def instance_id(self) -> str:
        return self._log.instance_id

    @instance_id.setter
    def instance_id(self, value: str) -> None:
        self._log.instance_id = value or ""
        if self._browser is not None:
            self._browser.instance_id = value or ""

    def _ensure_browser(self) -> Browser:
        if self._browser is not None and not self._browser.disposed:
            return self._browser

        if self.config.cdp_port == 0:
            self.config.cdp_port = BrowserLauncher.find_free_port()
        result = self.launcher.ensure_running()
        self._log.info("%s", result.message)
        if not self.launcher.cdp_ready():
            raise ChromiumConnectionError(result.message)

        self._browser = Browser(
            self.launcher.browser_ws_url(),
            instance_id=self.instance_id,
            timeout=self.config.connect_timeout,
            logger=self._logger,
            connection_factory=self._connection_factory,
        )
        return self._browser

    def _load(
        self,
        source: str | Path | None,
        html: str | None,
        options: LoadOptions | None,
        timeout: int | None,
    ) -> tuple[Browser, CountdownTimer | None]:
        options = options or LoadOptions()
        timer = CountdownTimer(timeout) if timeout is not None else None
        request = NavigationRequest(
            url=to_url(source) if _has_source(source) else None,
            html=html,
            request_headers=dict(options.request_headers),
            use_cache=options.use_cache,
            safe_urls=list(options.safe_urls),
            url_blacklist=list(options.url_blacklist),
            log_network_traffic=options.log_network_traffic,
            countdown_timer=timer,
            media_load_timeout=options.media_load_timeout,
        )
        request.validate()
        browser = self._ensure_browser()
        self._log.info("Loading %s", request.url or "inline html")
        browser.navigate(request)

        if options.run_javascript:
            self._log.info("Running javascript")
            browser.run_javascript(options.run_javascript, countdown_timer=timer)

        if options.wait_for_window_status:
            status_timeout = options.window_status_timeout
            if timer is not None:
                status_timeout = min(status_timeout, timer.milliseconds_left)
            self._log.info("Waiting for window.status '%s'", options.wait_for_window_status)
            if not browser.wait_for_window_status(options.wait_for_window_status, status_timeout):
                self._log.warning(
                    "Waiting for window.status '%s' timed out after %d milliseconds",
                    options.wait_for_window_status,
                    status_timeout,
                )
        return browser, timer

    def convert_to_pdf(
        self,
        source: str | Path | None,
        output: Output,
        page_settings: PageSettings | None = None,
        *,
        html: str | None = None,
        options: LoadOptions | None = None,
        timeout: int | None = None,
    ) -> None:
        """Load `source` (URL or file) or `html` and write it to `output` as PDF.

        `timeout` is the overall budget in milliseconds.
        """
        with self._lock:
            browser, timer = self._load(source, html, options, timeout)
            with _open_output(output) as fh:
                browser.print_to_pdf(fh, page_settings, timer)
            self._log.info("PDF written")

    def convert_to_image(
        self,
        source: str | Path | None,
        output: Output,
        *,
        html: str | None = None,
        options: LoadOptions | None = None,
        timeout: int | None = None,
    ) -> None:
        with self._lock:
            browser, timer = self._load(source, html, options, timeout)
            data = browser.capture_screenshot(timer)
            with _open_output(output) as fh:
                fh.write(data)
            self._log.info("Screenshot written (%d bytes)", len(data))

    def convert_to_mhtml(
        self,
        source: str | Path | None,
        output: Output,
        *,
        html: str | None = None,
        options: LoadOptions | None = None,
        timeout: int | None = None,
    ) -> None:
        with self._lock:
            browser, timer = self._load(source, html, options, timeout)
            snapshot = browser.capture_snapshot(timer)
            with _open_output(output) as fh:
                fh.write(snapshot.encode("utf-8"))
            self._log.info("Snapshot written")

    def close(self) -> None:
        browser, self._browser = self._browser, None
        if browser is not None:
            browser.dispose()
        if self.launcher.owns_process:
            self.launcher.stop()

    def __enter__(self) -> Converter:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["Converter", "LoadOptions", "to_url"]
