"""Allow/block policy for requests paused by the Fetch domain."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from .protocol import glob_to_regex

SAFE_URL = "safe-url"
SAME_DIRECTORY_FILE = "same-directory-file"
NOT_BLACKLISTED = "not-blacklisted"
BLACKLISTED = "blacklisted"


@dataclass(frozen=True)
class InterceptionDecision:
    allow: bool
    reason: str
    matched_pattern: str | None = None


def directory_prefix(url: str | None) -> str | None:
    """Return `url` up to and including its last '/' (None when there is none)."""
    if not url:
        return None
    cut = url.rfind("/")
    if cut < 0:
        return None
    return url[: cut + 1]


class RequestInterceptionPolicy:
    """Decide whether an intercepted request may continue.

    A blacklist match blocks by default; the match is overridden only when the
    URL is on the safe list (exact match) or is a file:// resource at or below
    the directory of the page being converted.
    """

    def __init__(
        self,
        safe_urls: Iterable[str] | None = None,
        url_blacklist: Iterable[str] | None = None,
        target_url: str | None = None,
    ) -> None:
        self.safe_urls = set(safe_urls or ())
        self.url_blacklist = [p for p in (url_blacklist or ()) if p]
        self._compiled: list[tuple[str, re.Pattern[str]]] = [(p, glob_to_regex(p)) for p in self.url_blacklist]
        self.target_prefix = directory_prefix(target_url)

    def match_blacklist(self, url: str) -> str | None:
        for pattern, regex in self._compiled:
            if regex.match(url):
                return pattern
        return None

    def is_same_directory_file(self, url: str) -> bool:
        if not self.target_prefix:
            return False
        lowered = url.lower()
        return lowered.startswith("file://") and lowered.startswith(self.target_prefix.lower())

    def decide(self, url: str) -> InterceptionDecision:
        matched = self.match_blacklist(url)
        if url in self.safe_urls:
            return InterceptionDecision(True, SAFE_URL, matched)
        if self.is_same_directory_file(url):
            return InterceptionDecision(True, SAME_DIRECTORY_FILE, matched)
        if matched is None:
            return InterceptionDecision(True, NOT_BLACKLISTED)
        return InterceptionDecision(False, BLACKLISTED, matched)


__all__ = [
    "BLACKLISTED",
    "NOT_BLACKLISTED",
    "SAFE_URL",
    "SAME_DIRECTORY_FILE",
    "InterceptionDecision",
    "RequestInterceptionPolicy",
    "directory_prefix",
]
