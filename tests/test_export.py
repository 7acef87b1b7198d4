from __future__ import annotations

import base64
import io

import pytest
from conftest import FakeConnection

from chromium_pdf.browser import Browser
from chromium_pdf.countdown import CountdownTimer
from chromium_pdf.errors import ConversionError, ConversionTimedOutError, ProtocolError
from chromium_pdf.page_settings import PageSettings


def _chunk(data: bytes, eof: bool) -> dict:
    return {"base64Encoded": True, "data": base64.b64encode(data).decode(), "eof": eof}


def test_pdf_is_streamed_in_chunks_and_handle_closed_once(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"data": "", "stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"\xaa\xbb", False), _chunk(b"\xcc", True))
    out = io.BytesIO()

    browser.print_to_pdf(out, PageSettings())

    assert out.getvalue() == b"\xaa\xbb\xcc"
    assert page_conn.methods() == ["Page.printToPDF", "IO.read", "IO.read", "IO.close"]
    assert page_conn.params("IO.read")[0] == {"handle": "S-1", "size": 1048576}
    assert page_conn.params("IO.close") == [{"handle": "S-1"}]


def test_pdf_print_parameters(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"%PDF", True))
    settings = PageSettings.for_paper(
        "a4", landscape=True, print_background=True, footer_template="<span class=pageNumber></span>"
    )

    browser.print_to_pdf(io.BytesIO(), settings)

    params = page_conn.params("Page.printToPDF")[0]
    assert params["landscape"] is True
    assert params["printBackground"] is True
    assert params["paperWidth"] == 8.27
    assert params["paperHeight"] == 11.7
    assert params["footerTemplate"] == "<span class=pageNumber></span>"
    assert "headerTemplate" not in params
    assert params["pageRanges"] == ""
    assert params["transferMode"] == "ReturnAsStream"


def test_empty_chunks_are_skipped(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"", False), _chunk(b"ab", False), {"data": "", "eof": True})
    out = io.BytesIO()
    browser.print_to_pdf(out)
    assert out.getvalue() == b"ab"


def test_output_is_rewound_before_writing(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"NEW", True))
    out = io.BytesIO(b"OLD")
    out.seek(3)
    browser.print_to_pdf(out)
    assert out.getvalue() == b"NEW"


def test_longer_previous_content_is_truncated(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"NEW", True))
    out = io.BytesIO(b"OLD PDF WITH MORE BYTES")
    browser.print_to_pdf(out)
    assert out.getvalue() == b"NEW"


def test_missing_stream_handle_is_conversion_error(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"data": ""})
    with pytest.raises(ConversionError) as excinfo:
        browser.print_to_pdf(io.BytesIO())
    assert "did not get the expected response" in str(excinfo.value)
    assert "IO.read" not in page_conn.methods()


def test_unwritable_output_is_conversion_error(browser: Browser, page_conn: FakeConnection, tmp_path) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    path = tmp_path / "out.pdf"
    path.write_bytes(b"")
    with path.open("rb") as read_only:
        with pytest.raises(ConversionError):
            browser.print_to_pdf(read_only)
    assert "IO.read" not in page_conn.methods()


def test_malformed_chunk_is_protocol_error(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", {"data": "x"})
    with pytest.raises(ProtocolError):
        browser.print_to_pdf(io.BytesIO())


def test_every_round_trip_uses_the_timer_budget(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    page_conn.respond("IO.read", _chunk(b"a", False), _chunk(b"b", True))
    browser.print_to_pdf(io.BytesIO(), countdown_timer=CountdownTimer(20_000))

    timeouts = [t for _m, t in page_conn.timeouts]
    assert len(timeouts) == 4
    assert all(t is not None and 0 < t <= 20.0 for t in timeouts)
    # Budget only ever shrinks.
    assert timeouts == sorted(timeouts, reverse=True)


def test_expired_timer_stops_streaming(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.printToPDF", {"stream": "S-1"})
    with pytest.raises(ConversionTimedOutError):
        browser.print_to_pdf(io.BytesIO(), countdown_timer=CountdownTimer(0))
    assert page_conn.calls == []


def test_screenshot_returns_decoded_png(browser: Browser, page_conn: FakeConnection) -> None:
    png = b"\x89PNG\r\n\x1a\n"
    page_conn.respond("Page.captureScreenshot", {"data": base64.b64encode(png).decode()})
    assert browser.capture_screenshot() == png


def test_screenshot_without_payload_is_conversion_error(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.captureScreenshot", {})
    with pytest.raises(ConversionError):
        browser.capture_screenshot()


def test_snapshot_returns_mhtml(browser: Browser, page_conn: FakeConnection) -> None:
    page_conn.respond("Page.captureSnapshot", {"data": "MIME-Version: 1.0\r\n"})
    assert browser.capture_snapshot(CountdownTimer(1000)).startswith("MIME-Version")
