"""Wire codec for the DevTools protocol subset the driver consumes.

Inbound payloads are kept as plain dicts; the helpers below pull the typed
bits out of them and tolerate the missing/odd members a real browser sends.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from .errors import ProtocolError

BLOCKED_BY_CLIENT = "net::ERR_BLOCKED_BY_CLIENT"
IO_READ_CHUNK_SIZE = 1_048_576


@dataclass
class Message:
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def add_parameter(self, name: str, value: Any) -> Message:
        self.params[name] = value
        return self

    def to_json(self, message_id: int) -> str:
        payload: dict[str, Any] = {"id": message_id, "method": self.method}
        if self.params:
            payload["params"] = self.params
        return json.dumps(payload)


def decode(raw: str | bytes) -> dict[str, Any] | None:
    """Decode one inbound frame; anything that is not a JSON object yields None."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def method_of(data: dict[str, Any]) -> str:
    method = data.get("method")
    return method if isinstance(method, str) else ""


def params_of(data: dict[str, Any]) -> dict[str, Any]:
    params = data.get("params")
    return params if isinstance(params, dict) else {}


def result_of(data: dict[str, Any]) -> dict[str, Any]:
    result = data.get("result")
    return result if isinstance(result, dict) else {}


def error_of(data: dict[str, Any]) -> str:
    """Return the `error` member of a response as text (empty when absent)."""
    if method_of(data) or "error" not in data:
        return ""
    return str(data["error"])


def lifecycle_name(data: dict[str, Any]) -> str:
    name = params_of(data).get("name")
    return name if isinstance(name, str) else ""


def navigate_error_text(data: dict[str, Any]) -> str:
    """Return `errorText` of a `Page.navigate` response (empty when absent)."""
    if method_of(data):
        return ""
    text = result_of(data).get("errorText")
    return text if isinstance(text, str) else ""


def is_blocked_by_client(error_text: str) -> bool:
    return BLOCKED_BY_CLIENT in (error_text or "")


def target_id(result: dict[str, Any]) -> str:
    value = result.get("targetId") if isinstance(result, dict) else None
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"Target.createTarget returned no targetId, response '{result}'")
    return value


def frame_id(result: dict[str, Any]) -> str:
    frame_tree = result.get("frameTree") if isinstance(result, dict) else None
    frame = frame_tree.get("frame") if isinstance(frame_tree, dict) else None
    value = frame.get("id") if isinstance(frame, dict) else None
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"Page.getFrameTree returned no frame id, response '{result}'")
    return value


def evaluate_value(result: dict[str, Any]) -> Any:
    remote = result.get("result") if isinstance(result, dict) else None
    if not isinstance(remote, dict):
        return None
    return remote.get("value")


def exception_description(result: dict[str, Any]) -> str:
    details = result.get("exceptionDetails") if isinstance(result, dict) else None
    if not isinstance(details, dict):
        return ""
    exception = details.get("exception")
    if isinstance(exception, dict) and isinstance(exception.get("description"), str):
        return exception["description"]
    # Syntax errors carry no exception object, only the text.
    text = details.get("text")
    return text if isinstance(text, str) else ""


def stream_handle(result: dict[str, Any]) -> str:
    value = result.get("stream") if isinstance(result, dict) else None
    return value if isinstance(value, str) else ""


@dataclass(frozen=True)
class IoChunk:
    data: bytes
    eof: bool

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> IoChunk:
        if not isinstance(result, dict) or "eof" not in result:
            raise ProtocolError(f"IO.read returned an unexpected response '{result}'")
        raw = result.get("data") or ""
        if result.get("base64Encoded"):
            try:
                data = base64.b64decode(raw)
            except ValueError as exc:
                raise ProtocolError(f"IO.read returned invalid base64 data: {exc}") from exc
        else:
            data = str(raw).encode("utf-8")
        return cls(data=data, eof=bool(result.get("eof")))


def page_endpoint(browser_url: str, page_target_id: str) -> str:
    parsed = urlsplit(browser_url)
    if not parsed.scheme or not parsed.hostname:
        raise ProtocolError(f"Cannot derive a page endpoint from '{browser_url}'")
    host = parsed.hostname
    if ":" in host:
        host = f"[{host}]"
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{host}{port}/devtools/page/{page_target_id}"


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a blacklist glob where `*` is the only wildcard."""
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{body}$", re.IGNORECASE | re.DOTALL)


__all__ = [
    "BLOCKED_BY_CLIENT",
    "IO_READ_CHUNK_SIZE",
    "IoChunk",
    "Message",
    "decode",
    "error_of",
    "evaluate_value",
    "exception_description",
    "frame_id",
    "glob_to_regex",
    "is_blocked_by_client",
    "lifecycle_name",
    "method_of",
    "navigate_error_text",
    "page_endpoint",
    "params_of",
    "result_of",
    "stream_handle",
    "target_id",
]
