"""
Command-line entry point: convert a URL, file or inline HTML with headless Chromium.

Examples:
    chromium-pdf https://example.com out.pdf --paper-format a4 --print-background
    chromium-pdf page.html out.png --format png --timeout 30000
    chromium-pdf --html "<h1>Hi</h1>" out.pdf
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import ConverterConfig
from .converter import Converter, LoadOptions
from .errors import ChromiumError
from .page_settings import PageSettings

logger = logging.getLogger("chromium_pdf")

__all__ = ["build_parser", "main", "parse_headers"]


def parse_headers(raw: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for item in raw or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Invalid header '{item}', expected NAME=VALUE")
        headers[name.strip()] = value.strip()
    return headers


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chromium-pdf", description=__doc__.strip().splitlines()[0])
    parser.add_argument("input", nargs="?", help="URL or local file to convert (omit when --html is used)")
    parser.add_argument("output", help="Output file")
    parser.add_argument("--html", help="Inline HTML to convert instead of input")
    parser.add_argument("--format", choices=("pdf", "png", "mhtml"), default="pdf")

    pdf = parser.add_argument_group("pdf")
    pdf.add_argument("--paper-format", default="letter")
    pdf.add_argument("--landscape", action="store_true")
    pdf.add_argument("--print-background", action="store_true")
    pdf.add_argument("--scale", type=float, default=1.0)
    pdf.add_argument("--page-ranges", default="")
    pdf.add_argument("--header-template", default="")
    pdf.add_argument("--footer-template", default="")
    pdf.add_argument("--prefer-css-page-size", action="store_true")

    load = parser.add_argument_group("loading")
    load.add_argument("--timeout", type=int, default=None, help="Overall timeout in milliseconds")
    load.add_argument(
        "--media-load-timeout", type=int, default=None, help="Milliseconds to wait after DOMContentLoaded"
    )
    load.add_argument("--wait-for-window-status", default="")
    load.add_argument("--window-status-timeout", type=int, default=60000)
    load.add_argument("--run-javascript", default="")
    load.add_argument("--url-blacklist", action="append", default=[], help="Glob pattern (* wildcard), repeatable")
    load.add_argument("--safe-url", action="append", default=[], help="URL exempt from the blacklist, repeatable")
    load.add_argument("--header", action="append", default=[], help="Extra request header NAME=VALUE, repeatable")
    load.add_argument("--use-cache", action="store_true")
    load.add_argument("--log-network-traffic", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log driver progress")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if bool(args.input) == bool(args.html):
        parser.error("give exactly one of input or --html")
    try:
        headers = parse_headers(args.header)
        settings = PageSettings.for_paper(
            args.paper_format,
            landscape=args.landscape,
            print_background=args.print_background,
            scale=args.scale,
            page_ranges=args.page_ranges,
            header_template=args.header_template,
            footer_template=args.footer_template,
            display_header_footer=bool(args.header_template or args.footer_template),
            prefer_css_page_size=args.prefer_css_page_size,
        )
    except ValueError as exc:
        parser.error(str(exc))

    options = LoadOptions(
        request_headers=headers,
        use_cache=args.use_cache,
        safe_urls=args.safe_url,
        url_blacklist=args.url_blacklist,
        log_network_traffic=args.log_network_traffic,
        media_load_timeout=args.media_load_timeout,
        run_javascript=args.run_javascript,
        wait_for_window_status=args.wait_for_window_status,
        window_status_timeout=args.window_status_timeout,
    )

    try:
        with Converter(ConverterConfig.from_env()) as converter:
            common = {"html": args.html, "options": options, "timeout": args.timeout}
            if args.format == "png":
                converter.convert_to_image(args.input, args.output, **common)
            elif args.format == "mhtml":
                converter.convert_to_mhtml(args.input, args.output, **common)
            else:
                converter.convert_to_pdf(args.input, args.output, settings, **common)
    except (ChromiumError, FileNotFoundError) as exc:
        logger.error("conversion_failed: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
