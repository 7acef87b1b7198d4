from __future__ import annotations

import json

import pytest

from chromium_pdf import protocol
from chromium_pdf.errors import ProtocolError
from chromium_pdf.protocol import IoChunk, Message


def test_message_serialization_omits_empty_params() -> None:
    assert json.loads(Message("Page.enable").to_json(7)) == {"id": 7, "method": "Page.enable"}


def test_message_add_parameter_chains() -> None:
    message = Message("Page.navigate").add_parameter("url", "http://x/").add_parameter("referrer", "")
    assert json.loads(message.to_json(1))["params"] == {"url": "http://x/", "referrer": ""}


def test_decode_rejects_non_objects() -> None:
    assert protocol.decode('{"id": 1}') == {"id": 1}
    assert protocol.decode(b'{"id": 2}') == {"id": 2}
    assert protocol.decode("[]") is None
    assert protocol.decode("nope") is None


def test_navigate_error_text_only_from_responses() -> None:
    response = {"id": 3, "result": {"frameId": "F", "errorText": "net::ERR_NAME_NOT_RESOLVED"}}
    event = {"method": "Page.frameNavigated", "params": {}, "result": {"errorText": "x"}}
    assert protocol.navigate_error_text(response) == "net::ERR_NAME_NOT_RESOLVED"
    assert protocol.navigate_error_text(event) == ""
    assert protocol.navigate_error_text({"id": 4, "result": {"frameId": "F"}}) == ""


def test_error_of_reads_only_response_errors() -> None:
    error = {"code": -32000, "message": "Cannot navigate to invalid URL"}
    assert "Cannot navigate to invalid URL" in protocol.error_of({"id": 5, "error": error})
    assert protocol.error_of({"id": 5, "result": {}}) == ""
    assert protocol.error_of({"method": "Inspector.detached", "error": error}) == ""


def test_blocked_by_client_detection() -> None:
    assert protocol.is_blocked_by_client("net::ERR_BLOCKED_BY_CLIENT")
    assert not protocol.is_blocked_by_client("net::ERR_ABORTED")
    assert not protocol.is_blocked_by_client("")


def test_lifecycle_name() -> None:
    assert protocol.lifecycle_name({"method": "Page.lifecycleEvent", "params": {"name": "networkIdle"}}) == "networkIdle"
    assert protocol.lifecycle_name({"method": "Page.lifecycleEvent"}) == ""


@pytest.mark.parametrize("result", [{}, {"targetId": ""}, {"targetId": 5}, None])
def test_target_id_requires_a_string(result) -> None:
    with pytest.raises(ProtocolError):
        protocol.target_id(result)


def test_frame_id_from_frame_tree() -> None:
    assert protocol.frame_id({"frameTree": {"frame": {"id": "F-9"}}}) == "F-9"
    with pytest.raises(ProtocolError):
        protocol.frame_id({"frameTree": {}})


def test_exception_description_falls_back_to_text() -> None:
    assert protocol.exception_description({"exceptionDetails": {"text": "SyntaxError: x"}}) == "SyntaxError: x"
    assert protocol.exception_description({"result": {"type": "number", "value": 1}}) == ""


def test_io_chunk_decodes_base64_and_plain_text() -> None:
    assert IoChunk.from_result({"base64Encoded": True, "data": "qrs=", "eof": False}) == IoChunk(b"\xaa\xbb", False)
    assert IoChunk.from_result({"data": "%PDF", "eof": True}) == IoChunk(b"%PDF", True)


def test_io_chunk_requires_eof_flag() -> None:
    with pytest.raises(ProtocolError):
        IoChunk.from_result({"data": "qrs="})


@pytest.mark.parametrize(
    ("browser_url", "expected"),
    [
        ("ws://127.0.0.1:9222/devtools/browser/abc", "ws://127.0.0.1:9222/devtools/page/T"),
        ("wss://example.org/devtools/browser/abc", "wss://example.org/devtools/page/T"),
        ("ws://[::1]:9333/devtools/browser/abc", "ws://[::1]:9333/devtools/page/T"),
    ],
)
def test_page_endpoint(browser_url: str, expected: str) -> None:
    assert protocol.page_endpoint(browser_url, "T") == expected


def test_page_endpoint_rejects_relative_url() -> None:
    with pytest.raises(ProtocolError):
        protocol.page_endpoint("/devtools/browser/abc", "T")


def test_glob_only_star_is_a_wildcard() -> None:
    regex = protocol.glob_to_regex("*.example.com/a.b?c")
    assert regex.match("http://cdn.example.com/a.b?c")
    assert regex.match("HTTP://CDN.EXAMPLE.COM/A.B?C")
    assert not regex.match("http://cdn.example.com/aXbc")
    assert not regex.match("http://cdn.example.com/a.b?c/more")
