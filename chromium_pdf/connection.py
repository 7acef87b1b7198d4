"""Transport channel: one DevTools WebSocket endpoint.

A `Connection` owns a websocket-client socket plus a background reader thread.
The reader resolves command responses by id and then hands *every* decoded
message (responses included) to the registered message handlers, so code that
awaits an asynchronous event attaches its handler first and sends second.
"""

from __future__ import annotations

import itertools
import logging
import socket
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from . import protocol
from .errors import ChromiumConnectionError, ConversionTimedOutError, OperationCancelledError, ProtocolError
from .log import InstanceLogger
from .protocol import Message

_LOGGER = logging.getLogger("chromium_pdf.connection")

MessageHandler = Callable[[dict[str, Any]], None]

# recv() granularity; bounds how long close() waits for the reader to notice.
_READ_POLL = 0.5
_CANCEL_POLL = 0.05


class _PendingResponse:
    __slots__ = ("data", "event", "method")

    def __init__(self, method: str) -> None:
        self.method = method
        self.event = threading.Event()
        self.data: dict[str, Any] | None = None


class Connection:
    """Bidirectional message channel to one protocol endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        instance_id: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._log = InstanceLogger(logger or _LOGGER, instance_id)
        self._ids = itertools.count(1)
        self._send_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._pending: dict[int, _PendingResponse] = {}
        self._message_handlers: list[MessageHandler] = []
        self._closed_handlers: list[Callable[[], None]] = []
        self._error_handlers: list[Callable[[str], None]] = []
        self._stop = threading.Event()
        self._closed = False

        self._log.info("Opening websocket to '%s'", url)
        try:
            self.ws = websocket.create_connection(url, timeout=timeout)
        except (websocket.WebSocketException, OSError) as exc:
            raise ChromiumConnectionError(f"Could not open websocket to '{url}': {exc}") from exc
        with suppress(Exception):
            self.ws.settimeout(_READ_POLL)

        self._reader = threading.Thread(target=self._read_loop, name=f"cdp-reader:{url}", daemon=True)
        self._reader.start()

    # ─────────────────────────────────────────────────────────────────────────
    # Properties / subscriptions
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def instance_id(self) -> str:
        return self._log.instance_id

    @instance_id.setter
    def instance_id(self, value: str) -> None:
        self._log.instance_id = value or ""

    @property
    def closed(self) -> bool:
        return self._closed

    def add_message_handler(self, handler: MessageHandler) -> None:
        with self._state_lock:
            self._message_handlers.append(handler)

    def remove_message_handler(self, handler: MessageHandler) -> None:
        with self._state_lock:
            with suppress(ValueError):
                self._message_handlers.remove(handler)

    def add_closed_handler(self, handler: Callable[[], None]) -> None:
        with self._state_lock:
            self._closed_handlers.append(handler)

    def remove_closed_handler(self, handler: Callable[[], None]) -> None:
        with self._state_lock:
            with suppress(ValueError):
                self._closed_handlers.remove(handler)

    def add_error_handler(self, handler: Callable[[str], None]) -> None:
        with self._state_lock:
            self._error_handlers.append(handler)

    def remove_error_handler(self, handler: Callable[[str], None]) -> None:
        with self._state_lock:
            with suppress(ValueError):
                self._error_handlers.remove(handler)

    # ─────────────────────────────────────────────────────────────────────────
    # Sending
    # ─────────────────────────────────────────────────────────────────────────

    def send(self, message: Message | str, params: dict[str, Any] | None = None) -> int:
        """Send a command without waiting for its response; returns the message id."""
        if isinstance(message, str):
            message = Message(message, dict(params or {}))
        msg_id = next(self._ids)
        self._write(message, msg_id)
        return msg_id

    def send_for_response(
        self,
        message: Message | str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        """Send a command and block until its response arrives.

        `timeout` is in seconds; None waits for as long as the channel stays open.
        """
        if isinstance(message, str):
            message = Message(message, dict(params or {}))
        msg_id = next(self._ids)
        pending = _PendingResponse(message.method)
        # Register before sending so a fast response cannot slip past us.
        with self._state_lock:
            self._pending[msg_id] = pending
        try:
            self._write(message, msg_id)
            self._await(pending, timeout=timeout, cancel=cancel)
        finally:
            with self._state_lock:
                self._pending.pop(msg_id, None)

        data = pending.data
        if data is None:
            raise ChromiumConnectionError(f"Websocket '{self.url}' closed while waiting for '{message.method}'")
        if "error" in data:
            raise ProtocolError(f"'{message.method}' failed: {data['error']}")
        return protocol.result_of(data)

    def _write(self, message: Message, msg_id: int) -> None:
        if self._closed:
            raise ChromiumConnectionError(f"Websocket '{self.url}' is closed")
        payload = message.to_json(msg_id)
        try:
            with self._send_lock:
                self.ws.send(payload)
        except (websocket.WebSocketException, OSError) as exc:
            raise ChromiumConnectionError(f"Sending '{message.method}' failed: {exc}") from exc

    def _await(self, pending: _PendingResponse, *, timeout: float | None, cancel: threading.Event | None) -> None:
        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
        while True:
            wait_for: float | None = None
            if deadline is not None:
                wait_for = max(0.0, deadline - time.monotonic())
            if cancel is not None:
                wait_for = _CANCEL_POLL if wait_for is None else min(wait_for, _CANCEL_POLL)
            if pending.event.wait(wait_for):
                return
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(f"'{pending.method}' was cancelled")
            if deadline is not None and time.monotonic() >= deadline:
                raise ConversionTimedOutError(f"'{pending.method}' timed out after {timeout:.3f} seconds")

    # ─────────────────────────────────────────────────────────────────────────
    # Receiving
    # ─────────────────────────────────────────────────────────────────────────

    def _read_loop(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    raw = self.ws.recv()
                except (websocket.WebSocketTimeoutException, TimeoutError):
                    continue
                except websocket.WebSocketConnectionClosedException:
                    break
                except (websocket.WebSocketException, OSError) as exc:
                    if not self._stop.is_set():
                        self._emit_error(str(exc))
                    break

                if not raw:
                    if not getattr(self.ws, "connected", True):
                        break
                    continue

                data = protocol.decode(raw)
                if data is None:
                    continue
                self._dispatch(data)
        finally:
            self._mark_closed()

    def _dispatch(self, data: dict[str, Any]) -> None:
        msg_id = data.get("id")
        if isinstance(msg_id, int) and not protocol.method_of(data):
            with self._state_lock:
                pending = self._pending.get(msg_id)
            if pending is not None:
                pending.data = data
                pending.event.set()

        with self._state_lock:
            handlers = list(self._message_handlers)
        for handler in handlers:
            try:
                handler(data)
            except Exception:  # noqa: BLE001
                # A broken handler must not take the reader thread down with it.
                self._log.exception("Message handler failed for '%s'", protocol.method_of(data) or msg_id)

    def _emit_error(self, error: str) -> None:
        self._log.error("An error occurred: '%s'", error)
        with self._state_lock:
            handlers = list(self._error_handlers)
        for handler in handlers:
            with suppress(Exception):
                handler(error)

    def _mark_closed(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
            handlers = list(self._closed_handlers)
        for item in pending:
            item.event.set()
        for handler in handlers:
            with suppress(Exception):
                handler()
        self._log.info("Websocket to '%s' closed", self.url)

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Close the channel (idempotent)."""
        if self._stop.is_set():
            return
        self._stop.set()
        # Prefer a raw-socket shutdown; websocket-client close() can block on
        # its own locks while the reader thread sits in recv().
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(Exception):
                sock.shutdown(socket.SHUT_RDWR)
        with suppress(Exception):
            self.ws.shutdown()
        if self._reader is not threading.current_thread():
            self._reader.join(timeout=_READ_POLL * 4)
        self._mark_closed()

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["Connection", "MessageHandler"]
