from __future__ import annotations

from chromium_pdf.interception import (
    BLACKLISTED,
    NOT_BLACKLISTED,
    SAFE_URL,
    SAME_DIRECTORY_FILE,
    RequestInterceptionPolicy,
    directory_prefix,
)


def test_blacklisted_url_is_blocked_with_matched_pattern() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*.gif", "*.png"], target_url="http://x/index.html")
    decision = policy.decide("http://x/a.png")
    assert decision.allow is False
    assert decision.reason == BLACKLISTED
    assert decision.matched_pattern == "*.png"


def test_safe_url_overrides_blacklist_match() -> None:
    policy = RequestInterceptionPolicy(safe_urls=["http://x/a.png"], url_blacklist=["*.png"])
    decision = policy.decide("http://x/a.png")
    assert decision.allow is True
    assert decision.reason == SAFE_URL


def test_safe_list_is_exact_match_only() -> None:
    policy = RequestInterceptionPolicy(safe_urls=["http://x/a.png"], url_blacklist=["*.png"])
    assert policy.decide("http://x/a.png?v=2").allow is False
    assert policy.decide("HTTP://X/A.PNG").allow is False


def test_same_directory_file_is_allowed_even_when_blacklisted() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*.jpg"], target_url="file:///d/page.html")
    decision = policy.decide("file:///d/img/a.jpg")
    assert decision.allow is True
    assert decision.reason == SAME_DIRECTORY_FILE


def test_same_directory_file_without_blacklist_match() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*.png"], target_url="file:///d/page.html")
    decision = policy.decide("file:///d/img/a.jpg")
    assert decision.allow is True


def test_file_outside_target_directory_is_not_exempt() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["file://*"], target_url="file:///d/page.html")
    decision = policy.decide("file:///etc/passwd")
    assert decision.allow is False
    assert decision.matched_pattern == "file://*"


def test_same_directory_check_is_case_insensitive() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*"], target_url="file:///C:/Docs/page.html")
    assert policy.decide("FILE:///c:/docs/style.css").allow is True


def test_http_target_gives_no_file_exemption() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*"], target_url="http://x/d/page.html")
    assert policy.decide("http://x/d/a.css").allow is False


def test_unmatched_url_is_allowed() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["*.png"])
    decision = policy.decide("http://x/app.js")
    assert decision.allow is True
    assert decision.reason == NOT_BLACKLISTED
    assert decision.matched_pattern is None


def test_pattern_matching_is_case_insensitive_and_anchored() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["https://ads.*"])
    assert policy.decide("HTTPS://ADS.example.com/x.js").allow is False
    assert policy.decide("https://cdn.example.com/?u=https://ads.example.com").allow is True


def test_regex_metacharacters_in_patterns_are_literal() -> None:
    policy = RequestInterceptionPolicy(url_blacklist=["http://x/a?b=(1)*"])
    assert policy.decide("http://x/a?b=(1)&c=2").allow is False
    assert policy.decide("http://x/ab=(1)").allow is True


def test_directory_prefix() -> None:
    assert directory_prefix("file:///d/page.html") == "file:///d/"
    assert directory_prefix("http://x/") == "http://x/"
    assert directory_prefix(None) is None
    assert directory_prefix("page.html") is None
