"""Instance-scoped logging shared by the driver and its channels."""

from __future__ import annotations

import logging
import threading
from collections.abc import MutableMapping
from contextlib import suppress
from typing import Any


class InstanceLogger(logging.LoggerAdapter):
    """Logger adapter that tags records with an instance id.

    The notification handler runs on a channel reader thread while the caller
    thread logs its own progress, so writes are serialized. Logging must never
    break a conversion: failures inside the logging machinery (for example a
    handler whose stream was already closed) are dropped.
    """

    def __init__(self, logger: logging.Logger, instance_id: str = "") -> None:
        super().__init__(logger, {})
        self.instance_id = instance_id
        self._lock = threading.Lock()

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        if self.instance_id:
            return f"[{self.instance_id}] {msg}", kwargs
        return msg, kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            with suppress(Exception):
                super().log(level, msg, *args, **kwargs)


__all__ = ["InstanceLogger"]
