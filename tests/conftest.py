from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

import pytest

from chromium_pdf.browser import Browser
from chromium_pdf.protocol import Message

BROWSER_WS_URL = "ws://127.0.0.1:9222/devtools/browser/b-1"


class FakeConnection:
    """In-memory stand-in for `Connection`.

    - `respond(method, *results)` queues results for send_for_response (the
      last one repeats; an Exception instance is raised instead of returned).
    - `react(method, fn)` runs `fn(conn, params)` whenever `method` is sent,
      which is how tests push notifications through the attached handlers.
    """

    def __init__(self, url: str = "", **kwargs: Any) -> None:
        self.url = url
        self.kwargs = kwargs
        self.instance_id = kwargs.get("instance_id", "")
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.timeouts: list[tuple[str, float | None]] = []
        self.fire_and_forget: list[str] = []
        self._responses: dict[str, list[Any]] = defaultdict(list)
        self._reactions: dict[str, Callable[[FakeConnection, dict[str, Any]], None]] = {}
        self.handlers: list[Callable[[dict[str, Any]], None]] = []
        self.closed_handlers: list[Callable[[], None]] = []
        self.error_handlers: list[Callable[[str], None]] = []
        self.closed = False
        self.close_calls = 0
        self._next_id = 0

    # scripting
    def respond(self, method: str, *results: Any) -> None:
        self._responses[method].extend(results)

    def react(self, method: str, fn: Callable[[FakeConnection, dict[str, Any]], None]) -> None:
        self._reactions[method] = fn

    def emit(self, data: dict[str, Any]) -> None:
        for handler in list(self.handlers):
            handler(data)

    def event(self, method: str, **params: Any) -> None:
        self.emit({"method": method, "params": params})

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]

    def params(self, method: str) -> list[dict[str, Any]]:
        return [p for m, p in self.calls if m == method]

    # Connection API
    def _record(self, message: Message | str, params: dict[str, Any] | None) -> Message:
        if isinstance(message, str):
            message = Message(message, dict(params or {}))
        self._next_id += 1
        self.calls.append((message.method, dict(message.params)))
        reaction = self._reactions.get(message.method)
        if reaction is not None:
            reaction(self, message.params)
        return message

    def send(self, message: Message | str, params: dict[str, Any] | None = None) -> int:
        message = self._record(message, params)
        self.fire_and_forget.append(message.method)
        return self._next_id

    def send_for_response(
        self,
        message: Message | str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel: Any = None,
    ) -> dict[str, Any]:
        message = self._record(message, params)
        self.timeouts.append((message.method, timeout))
        queued = self._responses.get(message.method)
        result: Any = {}
        if queued:
            result = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(result, Exception):
            raise result
        return result

    def add_message_handler(self, handler: Callable[[dict[str, Any]], None]) -> None:
        self.handlers.append(handler)

    def remove_message_handler(self, handler: Callable[[dict[str, Any]], None]) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def add_closed_handler(self, handler: Callable[[], None]) -> None:
        self.closed_handlers.append(handler)

    def remove_closed_handler(self, handler: Callable[[], None]) -> None:
        if handler in self.closed_handlers:
            self.closed_handlers.remove(handler)

    def add_error_handler(self, handler: Callable[[str], None]) -> None:
        self.error_handlers.append(handler)

    def remove_error_handler(self, handler: Callable[[str], None]) -> None:
        if handler in self.error_handlers:
            self.error_handlers.remove(handler)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeConnectionFactory:
    """Hands out the browser channel first, then the page channel."""

    def __init__(self, browser_conn: FakeConnection, page_conn: FakeConnection) -> None:
        self.queue = [browser_conn, page_conn]
        self.opened: list[FakeConnection] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeConnection:
        conn = self.queue.pop(0)
        conn.url = url
        conn.kwargs = kwargs
        conn.instance_id = kwargs.get("instance_id", "")
        self.opened.append(conn)
        return conn


@pytest.fixture
def browser_conn() -> FakeConnection:
    conn = FakeConnection()
    conn.respond("Target.createTarget", {"targetId": "T-1"})
    return conn


@pytest.fixture
def page_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def factory(browser_conn: FakeConnection, page_conn: FakeConnection) -> FakeConnectionFactory:
    return FakeConnectionFactory(browser_conn, page_conn)


@pytest.fixture
def browser(factory: FakeConnectionFactory) -> Browser:
    return Browser(BROWSER_WS_URL, instance_id="conv-1", timeout=5.0, connection_factory=factory)


def finish_on_navigate(conn: FakeConnection, params: dict[str, Any]) -> None:
    """Reaction that plays a normal page load after Page.navigate."""
    conn.event("Page.lifecycleEvent", name="DOMContentLoaded")
    conn.event("Page.frameNavigated", frame={"id": "F-1"})
    conn.event("Page.lifecycleEvent", name="networkIdle")
