"""Error taxonomy for the protocol driver.

Every failure surfaced by the driver is a `ChromiumError`. Callers that only
care about "did the conversion work" can catch the base class; callers that
need to tell a slow page from a broken one catch the subclasses.
"""

from __future__ import annotations


class ChromiumError(Exception):
    pass


class ChromiumConnectionError(ChromiumError):
    """A channel failed to open or closed while a call was waiting on it."""


class ProtocolError(ChromiumError):
    """Malformed or unexpected response shape (surfaced verbatim)."""


class NavigationError(ChromiumError):
    def __init__(self, message: str, *, url: str | None = None, error_text: str = "") -> None:
        super().__init__(message)
        self.url = url
        self.error_text = error_text


class ConversionTimedOutError(ChromiumError):
    pass


class ConversionError(ChromiumError):
    pass


class ScriptError(ChromiumError):
    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description


class OperationCancelledError(ChromiumError):
    pass


__all__ = [
    "ChromiumConnectionError",
    "ChromiumError",
    "ConversionError",
    "ConversionTimedOutError",
    "NavigationError",
    "OperationCancelledError",
    "ProtocolError",
    "ScriptError",
]
