"""Headless page export (PDF, PNG, MHTML) over the Chromium DevTools protocol."""

from .browser import Browser
from .config import ConverterConfig
from .connection import Connection
from .converter import Converter, LoadOptions
from .countdown import CountdownTimer
from .errors import (
    ChromiumConnectionError,
    ChromiumError,
    ConversionError,
    ConversionTimedOutError,
    NavigationError,
    OperationCancelledError,
    ProtocolError,
    ScriptError,
)
from .interception import InterceptionDecision, RequestInterceptionPolicy
from .launcher import BrowserLauncher, LaunchResult
from .navigation import NavigationOutcome, NavigationRequest
from .page_settings import PageSettings

__all__ = [
    "Browser",
    "BrowserLauncher",
    "ChromiumConnectionError",
    "ChromiumError",
    "Connection",
    "ConversionError",
    "ConversionTimedOutError",
    "Converter",
    "ConverterConfig",
    "CountdownTimer",
    "InterceptionDecision",
    "LaunchResult",
    "LoadOptions",
    "NavigationError",
    "NavigationOutcome",
    "NavigationRequest",
    "OperationCancelledError",
    "PageSettings",
    "ProtocolError",
    "RequestInterceptionPolicy",
    "ScriptError",
]
