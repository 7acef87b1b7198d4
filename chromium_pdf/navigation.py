"""Navigation-completion state machine.

Completion of a navigation is never a single response: it is inferred from the
page channel's notification stream. `NavigationEventHandler` runs on the
channel reader thread and feeds `NavigationState`; the caller thread blocks in
`NavigationState.wait()` until the first terminal outcome is recorded.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Any

from . import protocol
from .connection import Connection
from .countdown import CountdownTimer
from .errors import ChromiumConnectionError
from .interception import SAFE_URL, SAME_DIRECTORY_FILE, RequestInterceptionPolicy
from .log import InstanceLogger
from .protocol import Message

_CANCEL_POLL = 0.05


@dataclass
class NavigationRequest:
    """What to load and how to police the load.

    Exactly one of `url` and `html` must be set.
    """

    url: str | None = None
    html: str | None = None
    request_headers: dict[str, str] = field(default_factory=dict)
    use_cache: bool = False
    safe_urls: list[str] = field(default_factory=list)
    url_blacklist: list[str] = field(default_factory=list)
    log_network_traffic: bool = False
    countdown_timer: CountdownTimer | None = None
    # Milliseconds after DOMContentLoaded after which the page counts as loaded.
    media_load_timeout: int | None = None
    cancel: threading.Event | None = None

    def validate(self) -> None:
        has_url = bool(self.url and self.url.strip())
        has_html = bool(self.html and self.html.strip())
        if has_url and has_html:
            raise ValueError("Set either url or html, not both")
        if not has_url and not has_html:
            raise ValueError("Url and html are both empty")
        if self.media_load_timeout is not None and self.media_load_timeout < 0:
            raise ValueError("media_load_timeout must be >= 0")

    @property
    def intercepts_requests(self) -> bool:
        return any(self.url_blacklist)


class NavigationOutcome(enum.Enum):
    COMPLETED = "completed"
    NAVIGATION_FAILED = "navigation_failed"
    TIMED_OUT = "timed_out"
    CONNECTION_CLOSED = "connection_closed"
    CANCELLED = "cancelled"
    PROTOCOL_ERROR = "protocol_error"


class NavigationState:
    """Synchronized flags of one navigate call; the first outcome wins."""

    def __init__(self, log: InstanceLogger, media_load_timeout: int | None = None) -> None:
        self._log = log
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._media_load_timeout = media_load_timeout
        self._media_timer: threading.Timer | None = None
        self.waiting_for_network_idle = False
        self.outcome: NavigationOutcome | None = None
        self.error_text = ""
        self._navigate_id: int | None = None
        self._failed_responses: dict[int, str] = {}

    @property
    def media_timer_started(self) -> bool:
        return self._media_timer is not None

    def _finish(self, outcome: NavigationOutcome, error_text: str = "") -> bool:
        with self._lock:
            if self.outcome is not None:
                return False
            self.outcome = outcome
            self.error_text = error_text
        self._done.set()
        return True

    def dom_content_loaded(self) -> None:
        timeout = self._media_load_timeout
        if timeout is None:
            return
        with self._lock:
            if self._media_timer is not None or self.outcome is not None:
                return
            self._log.info(
                "Media load timeout has a value of %d milliseconds, setting media load timeout task", timeout
            )
            timer = threading.Timer(timeout / 1000.0, self._media_load_elapsed)
            timer.daemon = True
            self._media_timer = timer
        timer.start()

    def _media_load_elapsed(self) -> None:
        self._log.info("Media load timeout task timed out after %d milliseconds", self._media_load_timeout or 0)
        self._finish(NavigationOutcome.COMPLETED)

    def frame_navigated(self) -> None:
        with self._lock:
            self.waiting_for_network_idle = True

    def content_set(self) -> None:
        # setDocumentContent never fires Page.frameNavigated.
        with self._lock:
            self.waiting_for_network_idle = True

    def network_idle(self) -> bool:
        with self._lock:
            waiting = self.waiting_for_network_idle
        if not waiting:
            return False
        return self._finish(NavigationOutcome.COMPLETED)

    def navigation_failed(self, error_text: str) -> None:
        self._finish(NavigationOutcome.NAVIGATION_FAILED, error_text)

    def channel_closed(self) -> None:
        self._finish(NavigationOutcome.CONNECTION_CLOSED)

    def navigate_sent(self, msg_id: int) -> None:
        """Bind the state to the id of the fire-and-forget navigation command."""
        with self._lock:
            self._navigate_id = msg_id
            error = self._failed_responses.pop(msg_id, None)
            self._failed_responses.clear()
        if error is not None:
            self._finish(NavigationOutcome.PROTOCOL_ERROR, error)

    def response_error(self, msg_id: int, error: str) -> None:
        # The reply can overtake send() returning its id, so early errors are parked.
        with self._lock:
            if self._navigate_id is None:
                self._failed_responses[msg_id] = error
                return
            if msg_id != self._navigate_id:
                return
        self._finish(NavigationOutcome.PROTOCOL_ERROR, error)

    def wait(self, timeout_ms: int | None = None, cancel: threading.Event | None = None) -> NavigationOutcome:
        """Block until an outcome is recorded, the budget elapses, or `cancel` is set."""
        if cancel is None:
            finished = self._done.wait(None if timeout_ms is None else timeout_ms / 1000.0)
        else:
            finished = self._wait_cancellable(timeout_ms, cancel)
        if not finished:
            if cancel is not None and cancel.is_set():
                self._finish(NavigationOutcome.CANCELLED)
            else:
                self._finish(NavigationOutcome.TIMED_OUT)
        assert self.outcome is not None
        return self.outcome

    def _wait_cancellable(self, timeout_ms: int | None, cancel: threading.Event) -> bool:
        remaining = None if timeout_ms is None else timeout_ms / 1000.0
        while not cancel.is_set():
            step = _CANCEL_POLL if remaining is None else min(_CANCEL_POLL, remaining)
            if self._done.wait(step):
                return True
            if remaining is not None:
                remaining -= step
                if remaining <= 0:
                    return self._done.is_set()
        return self._done.is_set()

    def cancel_media_timer(self) -> None:
        with self._lock:
            timer = self._media_timer
        if timer is not None:
            timer.cancel()


class NavigationEventHandler:
    """Per-navigation notification handler for the page channel."""

    def __init__(
        self,
        connection: Connection,
        state: NavigationState,
        request: NavigationRequest,
        log: InstanceLogger,
    ) -> None:
        self.connection = connection
        self.state = state
        self.request = request
        self.policy = RequestInterceptionPolicy(request.safe_urls, request.url_blacklist, request.url)
        self._log = log

    def __call__(self, data: dict[str, Any]) -> None:
        method = protocol.method_of(data)
        params = protocol.params_of(data)

        if method.startswith("Network."):
            self._log_network_event(method, params)
        elif method == "Fetch.requestPaused":
            self._on_request_paused(params)
        elif method == "Page.lifecycleEvent":
            self._on_lifecycle_event(protocol.lifecycle_name(data))
        elif method == "Page.frameNavigated":
            self._log.info(
                "The 'Page.frameNavigated' event has been fired, "
                "waiting for the 'Page.lifecycleEvent' with name 'networkIdle'"
            )
            self.state.frame_navigated()
        elif not method:
            self._on_response(data)

    def _on_lifecycle_event(self, name: str) -> None:
        if name == "DOMContentLoaded":
            self._log.info(
                "The 'Page.lifecycleEvent' with param name 'DOMContentLoaded' has been fired, the dom content is now "
                "loaded and parsed, waiting for stylesheets, images and sub frames to finish loading"
            )
            self.state.dom_content_loaded()
        elif name == "networkIdle":
            if self.state.network_idle():
                self._log.info(
                    "The 'Page.lifecycleEvent' event with name 'networkIdle' has been fired, "
                    "the page is now fully loaded"
                )

    def _on_response(self, data: dict[str, Any]) -> None:
        error = protocol.error_of(data)
        if error and isinstance(data.get("id"), int):
            self.state.response_error(data["id"], f"'Page.navigate' failed: {error}")
            return
        error_text = protocol.navigate_error_text(data)
        if not error_text or protocol.is_blocked_by_client(error_text):
            return
        target = self.request.url or "<inline html>"
        self.state.navigation_failed(f"{error_text} occurred when navigating to the page '{target}'")

    def _on_request_paused(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        request = params.get("request") if isinstance(params.get("request"), dict) else {}
        url = str(request.get("url") or "")
        decision = self.policy.decide(url)

        if decision.allow:
            if decision.reason == SAFE_URL:
                self._log.info("The url '%s' has been allowed because it is on the safe url list", url)
            elif decision.reason == SAME_DIRECTORY_FILE:
                self._log.info(
                    "The file url '%s' has been allowed because it starts with the absolute uri '%s'",
                    url,
                    self.policy.target_prefix,
                )
            else:
                self._log.info(
                    "The url '%s' has been allowed because it did not match anything on the url blacklist", url
                )
            message = Message("Fetch.continueRequest", {"requestId": request_id})
        else:
            self._log.info("The url '%s' has been blocked by url blacklist pattern '%s'", url, decision.matched_pattern)
            message = Message("Fetch.failRequest", {"requestId": request_id, "errorReason": "BlockedByClient"})

        try:
            self.connection.send(message)
        except ChromiumConnectionError as exc:
            self._log.warning("Could not answer paused request '%s': %s", request_id, exc)

    def _log_network_event(self, method: str, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if method == "Network.requestWillBeSent":
            request = params.get("request") if isinstance(params.get("request"), dict) else {}
            self._log.info(
                "Request sent with request id '%s' for url '%s' with method '%s' and type '%s'",
                request_id,
                request.get("url"),
                request.get("method"),
                params.get("type"),
            )
        elif method == "Network.dataReceived":
            self._log.info("Data received for request id '%s' with length '%s'", request_id, params.get("dataLength"))
        elif method == "Network.responseReceived":
            response = params.get("response") if isinstance(params.get("response"), dict) else {}
            kind = "Cached response" if response.get("fromDiskCache") else "Response"
            line = f"{kind} received for request id '{request_id}' and url '{response.get('url')}'"
            if response.get("remoteIPAddress"):
                status_text = f" ({response['statusText']})" if response.get("statusText") else ""
                line += (
                    f" from ip '{response.get('remoteIPAddress')}' on port '{response.get('remotePort')}'"
                    f" with status '{response.get('status')}{status_text}'"
                )
            self._log.info("%s", line)
        elif method == "Network.loadingFinished":
            length = params.get("encodedDataLength") or 0
            suffix = f" with encoded data length '{length}'" if length else ""
            self._log.info("Loading finished for request id '%s'%s", request_id, suffix)
        elif method == "Network.loadingFailed":
            self._log.info(
                "Loading failed for request id '%s' and type '%s' with error '%s'",
                request_id,
                params.get("type"),
                params.get("errorText"),
            )
        elif method == "Network.requestServedFromCache":
            self._log.info("The request with id '%s' is served from cache", request_id)


__all__ = ["NavigationEventHandler", "NavigationOutcome", "NavigationRequest", "NavigationState"]
