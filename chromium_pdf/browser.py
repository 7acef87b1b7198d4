"""Protocol driver for one headless browser target.

Handles all communication with the Chromium remote debugging endpoint:
- session setup: browser channel -> `Target.createTarget` -> page channel
- navigate (URL or inline HTML) with request blocking and load detection
- script execution and window-status polling
- PDF export (streamed), screenshot and MHTML snapshot
- idempotent disposal (sync and asyncio entry points)

See https://chromedevtools.github.io/devtools-protocol/
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import threading
import time
from collections.abc import Callable
from typing import IO, Any

from . import protocol
from .connection import Connection
from .countdown import CountdownTimer
from .errors import (
    ChromiumConnectionError,
    ChromiumError,
    ConversionError,
    ConversionTimedOutError,
    NavigationError,
    OperationCancelledError,
    ProtocolError,
    ScriptError,
)
from .log import InstanceLogger
from .navigation import NavigationEventHandler, NavigationOutcome, NavigationRequest, NavigationState
from .page_settings import PageSettings
from .protocol import IO_READ_CHUNK_SIZE, IoChunk, Message

_LOGGER = logging.getLogger("chromium_pdf.browser")

ConnectionFactory = Callable[..., Connection]

WINDOW_STATUS_EXPRESSION = "window.status;"
CONDITION_POLL_INTERVAL = 0.01


class Browser:
    """Drives one page target of a running browser.

    Use as context manager for automatic cleanup.
    """

    def __init__(
        self,
        browser_url: str,
        *,
        instance_id: str = "",
        timeout: float = 30.0,
        logger: logging.Logger | None = None,
        connection_factory: ConnectionFactory = Connection,
    ) -> None:
        self.browser_url = browser_url
        self.timeout = timeout
        self._log = InstanceLogger(logger or _LOGGER, instance_id)
        self._dispose_lock = threading.Lock()
        self._disposed = False
        self._page_connection: Connection | None = None

        self._browser_connection: Connection | None = connection_factory(
            browser_url, timeout=timeout, instance_id=instance_id, logger=logger
        )
        self._browser_connection.add_error_handler(self._on_error)
        page_target: str | None = None
        try:
            result = self._browser_connection.send_for_response(
                Message("Target.createTarget", {"url": "about:blank"}), timeout=timeout
            )
            page_target = protocol.target_id(result)
            page_url = protocol.page_endpoint(browser_url, page_target)
            self._log.info("Created page target, connecting to '%s'", page_url)
            self._page_connection = connection_factory(
                page_url, timeout=timeout, instance_id=instance_id, logger=logger
            )
            self._page_connection.add_error_handler(self._on_error)
        except BaseException:
            if page_target is not None:
                self._close_target(page_target)
            self._browser_connection.close()
            self._browser_connection = None
            raise

    # ─────────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def instance_id(self) -> str:
        """Correlates the log lines of one conversion when many run side by side."""
        return self._log.instance_id

    @instance_id.setter
    def instance_id(self, value: str) -> None:
        self._log.instance_id = value or ""
        for conn in (self._browser_connection, self._page_connection):
            if conn is not None:
                conn.instance_id = value or ""

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def page_connection(self) -> Connection:
        if self._page_connection is None:
            raise ChromiumConnectionError("The page connection is closed")
        return self._page_connection

    def _on_error(self, error: str) -> None:
        self._log.error("An error occurred: '%s'", error)

    def _close_target(self, page_target: str) -> None:
        # An attached browser outlives us; do not leave the tab behind.
        assert self._browser_connection is not None
        try:
            self._browser_connection.send_for_response(
                Message("Target.closeTarget", {"targetId": page_target}), timeout=self.timeout
            )
        except ChromiumError as exc:
            self._log.warning("Could not close page target '%s': %s", page_target, exc)

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, request: NavigationRequest) -> None:
        """Load `request.url` or `request.html` and block until the page has settled.

        Raises:
            ValueError: both or neither of url/html set (nothing is sent).
            ConversionTimedOutError: the countdown timer ran out first.
            NavigationError: the navigation response carried an error text.
        """
        request.validate()
        timer = request.countdown_timer
        if timer is not None and timer.expired:
            raise ConversionTimedOutError("The navigate method timed out")

        conn = self.page_connection
        state = NavigationState(self._log, request.media_load_timeout)
        handler = NavigationEventHandler(conn, state, request, self._log)
        fetch_enabled = False
        network_enabled = False
        lifecycle_enabled = False
        page_enabled = False
        attached = False

        def send(message: Message) -> dict[str, Any]:
            return self._send(conn, message, timer, request.cancel)

        try:
            if request.request_headers:
                self._log.info("Setting request headers")
                send(Message("Network.setExtraHTTPHeaders", {"headers": dict(request.request_headers)}))

            if request.log_network_traffic:
                self._log.info("Enabling network traffic logging")
                send(Message("Network.enable"))
                network_enabled = True

            self._log.info("Enabling caching" if request.use_cache else "Disabling caching")
            send(Message("Network.setCacheDisabled", {"cacheDisabled": not request.use_cache}))

            # Paused requests wait until we answer with continueRequest/failRequest.
            if request.intercepts_requests:
                self._log.info("Enabling Fetch to block url's that are in the url blacklist")
                send(Message("Fetch.enable"))
                fetch_enabled = True

            send(Message("Page.enable"))
            page_enabled = True
            send(Message("Page.setLifecycleEventsEnabled", {"enabled": True}))
            lifecycle_enabled = True

            # Attach before the navigation command so no event can be missed.
            conn.add_message_handler(handler)
            conn.add_closed_handler(state.channel_closed)
            attached = True

            if timer is not None and timer.expired:
                raise ConversionTimedOutError("The navigate method timed out")

            if request.url:
                self._log.info("Navigating to '%s'", request.url)
                # The response is observed by the handler (errorText or error), not awaited here.
                state.navigate_sent(conn.send(Message("Page.navigate", {"url": request.url})))
            else:
                self._log.info("Getting page frame tree")
                frame_tree = send(Message("Page.getFrameTree"))
                self._log.info("Setting document content")
                frame = protocol.frame_id(frame_tree)
                send(Message("Page.setDocumentContent", {"frameId": frame, "html": request.html}))
                state.content_set()
                self._log.info("Document content set")

            outcome = state.wait(None if timer is None else timer.milliseconds_left, request.cancel)
        finally:
            state.cancel_media_timer()
            self._teardown_navigation(
                conn,
                lifecycle_enabled=lifecycle_enabled,
                page_enabled=page_enabled,
                fetch_enabled=fetch_enabled,
                network_enabled=network_enabled,
            )
            if attached:
                conn.remove_message_handler(handler)
                conn.remove_closed_handler(state.channel_closed)

        if outcome is NavigationOutcome.NAVIGATION_FAILED:
            self._log.error("%s", state.error_text)
            raise NavigationError(state.error_text, url=request.url, error_text=state.error_text)
        if outcome is NavigationOutcome.TIMED_OUT:
            raise ConversionTimedOutError("The navigate method timed out")
        if outcome is NavigationOutcome.CONNECTION_CLOSED:
            raise ChromiumConnectionError("The page connection closed while waiting for the page to load")
        if outcome is NavigationOutcome.CANCELLED:
            raise OperationCancelledError("The navigate method was cancelled")
        if outcome is NavigationOutcome.PROTOCOL_ERROR:
            self._log.error("%s", state.error_text)
            raise ProtocolError(state.error_text)

    def _teardown_navigation(
        self,
        conn: Connection,
        *,
        lifecycle_enabled: bool,
        page_enabled: bool,
        fetch_enabled: bool,
        network_enabled: bool,
    ) -> None:
        steps: list[tuple[str, Message]] = []
        if lifecycle_enabled:
            steps.append(("lifecycle events", Message("Page.setLifecycleEventsEnabled", {"enabled": False})))
        if page_enabled:
            steps.append(("page events", Message("Page.disable")))
        if fetch_enabled:
            self._log.info("Disabling Fetch")
            steps.append(("fetch", Message("Fetch.disable")))
        if network_enabled:
            self._log.info("Disabling network traffic logging")
            steps.append(("network events", Message("Network.disable")))

        for label, message in steps:
            try:
                conn.send_for_response(message, timeout=self.timeout)
            except ChromiumError as exc:
                # Teardown must not mask the outcome of the navigation itself.
                self._log.warning("Could not disable %s: %s", label, exc)

    def _send(
        self,
        conn: Connection,
        message: Message,
        timer: CountdownTimer | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Round trip bounded by the timer's *current* remaining budget."""
        if timer is None:
            return conn.send_for_response(message, cancel=cancel)
        if timer.expired:
            raise ConversionTimedOutError(f"'{message.method}' timed out, the conversion deadline has passed")
        return conn.send_for_response(message, timeout=timer.seconds_left, cancel=cancel)

    # ─────────────────────────────────────────────────────────────────────────
    # JavaScript
    # ─────────────────────────────────────────────────────────────────────────

    def run_javascript(self, script: str, *, countdown_timer: CountdownTimer | None = None) -> None:
        """Run `script` in the loaded page; raises ScriptError when it throws."""
        message = Message("Runtime.evaluate", {"expression": script, "silent": False, "returnByValue": False})
        result = self._send(self.page_connection, message, countdown_timer)
        description = protocol.exception_description(result)
        if description:
            raise ScriptError(description)

    def wait_for_condition(
        self,
        expression: str,
        expected: Any,
        timeout: int = 60000,
        *,
        poll_interval: float = CONDITION_POLL_INTERVAL,
    ) -> bool:
        """Poll `expression` until it evaluates to `expected` (exact match).

        Returns True on the first match, False once `timeout` milliseconds passed.
        """
        conn = self.page_connection
        message = Message("Runtime.evaluate", {"expression": expression, "silent": True, "returnByValue": True})
        started = time.monotonic()
        deadline = started + timeout / 1000.0
        while True:
            remaining = deadline - time.monotonic()
            try:
                result = conn.send_for_response(message, timeout=max(remaining, poll_interval))
            except ConversionTimedOutError:
                result = {}
            if protocol.evaluate_value(result) == expected:
                elapsed_ms = (time.monotonic() - started) * 1000
                self._log.info("'%s' returned the expected value after %.0f ms", expression, elapsed_ms)
                return True
            if time.monotonic() >= deadline:
                self._log.info("'%s' did not return the expected value within %d ms", expression, timeout)
                return False
            time.sleep(poll_interval)

    def wait_for_window_status(self, status: str, timeout: int = 60000) -> bool:
        """Wait until `window.status` equals `status` (case sensitive)."""
        return self.wait_for_condition(WINDOW_STATUS_EXPRESSION, status, timeout)

    # ─────────────────────────────────────────────────────────────────────────
    # Export
    # ─────────────────────────────────────────────────────────────────────────

    def print_to_pdf(
        self,
        output: IO[bytes],
        page_settings: PageSettings | None = None,
        countdown_timer: CountdownTimer | None = None,
    ) -> None:
        """Print the page and stream the generated PDF into `output`."""
        conn = self.page_connection
        settings = page_settings or PageSettings()
        result = self._send(conn, Message("Page.printToPDF", settings.to_print_params()), countdown_timer)

        handle = protocol.stream_handle(result)
        if not handle:
            raise ConversionError(
                f"Conversion failed ... did not get the expected response from Chromium, response '{result}'"
            )

        writable = getattr(output, "writable", None)
        if writable is not None and not writable():
            raise ConversionError("The output stream is not writable, please provide a writable stream")

        if getattr(output, "seekable", lambda: False)():
            self._log.info("Resetting output stream to position 0")
            output.seek(0)
            try:
                output.truncate()
            except (OSError, ValueError) as exc:
                raise ConversionError(f"Could not truncate the output stream: {exc}") from exc

        self._log.info("Reading generated PDF from IO stream with handle id %s", handle)
        read = Message("IO.read", {"handle": handle, "size": IO_READ_CHUNK_SIZE})
        while True:
            chunk = IoChunk.from_result(self._send(conn, read, countdown_timer))
            if chunk.data:
                self._log.info("PDF chunk received with length %d, writing it to output stream", len(chunk.data))
                try:
                    output.write(chunk.data)
                except (OSError, ValueError) as exc:
                    raise ConversionError(f"Could not write to the output stream: {exc}") from exc
            if chunk.eof:
                break

        self._log.info("Last chunk received, closing stream with id %s", handle)
        self._send(conn, Message("IO.close", {"handle": handle}), countdown_timer)
        self._log.info("Stream closed")

    def capture_screenshot(self, countdown_timer: CountdownTimer | None = None) -> bytes:
        """Capture the viewport as PNG bytes."""
        result = self._send(self.page_connection, Message("Page.captureScreenshot"), countdown_timer)
        data = result.get("data")
        if not isinstance(data, str) or not data:
            raise ConversionError("Screenshot capture failed")
        try:
            return base64.b64decode(data)
        except (binascii.Error, ValueError) as exc:
            raise ConversionError(f"Screenshot capture returned invalid data: {exc}") from exc

    def capture_snapshot(self, countdown_timer: CountdownTimer | None = None) -> str:
        """Capture the page as an MHTML snapshot."""
        result = self._send(self.page_connection, Message("Page.captureSnapshot"), countdown_timer)
        data = result.get("data")
        return data if isinstance(data, str) else ""

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Instruct the browser to close."""
        if self._browser_connection is None:
            return
        self._browser_connection.send_for_response(Message("Browser.close"), timeout=self.timeout)

    def dispose(self) -> None:
        """Close the browser and release both channels; safe to call repeatedly."""
        with self._dispose_lock:
            if self._disposed:
                return
            self._disposed = True

        browser_conn, page_conn = self._browser_connection, self._page_connection
        for conn in (page_conn, browser_conn):
            if conn is not None:
                conn.remove_error_handler(self._on_error)

        try:
            self.close()
        except ChromiumError as exc:
            # Closing the browser usually drops the socket before the response arrives.
            self._log.info("Browser.close did not complete cleanly: %s", exc)

        if page_conn is not None:
            page_conn.close()
            self._page_connection = None
        if browser_conn is not None:
            browser_conn.close()
            self._browser_connection = None

    async def aclose(self) -> None:
        """asyncio entry point over the same disposal routine."""
        await asyncio.to_thread(self.dispose)

    def __enter__(self) -> Browser:
        return self

    def __exit__(self, *args: Any) -> None:
        self.dispose()

    async def __aenter__(self) -> Browser:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


__all__ = ["Browser", "ConnectionFactory", "WINDOW_STATUS_EXPRESSION"]
