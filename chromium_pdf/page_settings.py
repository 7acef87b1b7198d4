from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Width x height in inches.
PAPER_FORMATS: dict[str, tuple[float, float]] = {
    "letter": (8.5, 11.0),
    "legal": (8.5, 14.0),
    "tabloid": (11.0, 17.0),
    "ledger": (17.0, 11.0),
    "a0": (33.1, 46.8),
    "a1": (23.4, 33.1),
    "a2": (16.54, 23.4),
    "a3": (11.7, 16.54),
    "a4": (8.27, 11.7),
    "a5": (5.83, 8.27),
    "a6": (4.13, 5.83),
}


@dataclass
class PageSettings:
    """Layout options forwarded to `Page.printToPDF`.

    Sizes and margins are inches, as the protocol expects. Defaults match
    Chromium's own print defaults (US Letter, ~1cm margins).
    """

    landscape: bool = False
    display_header_footer: bool = False
    print_background: bool = False
    scale: float = 1.0
    paper_width: float = 8.5
    paper_height: float = 11.0
    margin_top: float = 0.4
    margin_bottom: float = 0.4
    margin_left: float = 0.4
    margin_right: float = 0.4
    page_ranges: str = ""
    ignore_invalid_page_ranges: bool = False
    header_template: str = ""
    footer_template: str = ""
    prefer_css_page_size: bool = False

    @classmethod
    def for_paper(cls, name: str, **overrides: Any) -> PageSettings:
        key = (name or "").strip().lower()
        if key not in PAPER_FORMATS:
            raise ValueError(f"Unknown paper format '{name}' (known: {', '.join(sorted(PAPER_FORMATS))})")
        width, height = PAPER_FORMATS[key]
        return cls(paper_width=width, paper_height=height, **overrides)

    def to_print_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "landscape": self.landscape,
            "displayHeaderFooter": self.display_header_footer,
            "printBackground": self.print_background,
            "scale": self.scale,
            "paperWidth": self.paper_width,
            "paperHeight": self.paper_height,
            "marginTop": self.margin_top,
            "marginBottom": self.margin_bottom,
            "marginLeft": self.margin_left,
            "marginRight": self.margin_right,
            "pageRanges": self.page_ranges or "",
            "ignoreInvalidPageRanges": self.ignore_invalid_page_ranges,
        }
        if self.header_template:
            params["headerTemplate"] = self.header_template
        if self.footer_template:
            params["footerTemplate"] = self.footer_template
        params["preferCSSPageSize"] = self.prefer_css_page_size
        params["transferMode"] = "ReturnAsStream"
        return params


__all__ = ["PAPER_FORMATS", "PageSettings"]
