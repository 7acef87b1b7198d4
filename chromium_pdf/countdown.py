from __future__ import annotations

import time


class CountdownTimer:
    """Deadline shared by every driver call of one conversion.

    The budget only starts draining after `start()`; before that (and after
    `stop()` froze it) `milliseconds_left` reports what is left of it.
    """

    def __init__(self, timeout_ms: int, *, start: bool = True) -> None:
        if timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")
        self.timeout_ms = int(timeout_ms)
        self._started_at: float | None = None
        self._frozen_ms: int | None = None
        if start:
            self.start()

    def start(self) -> None:
        self._started_at = time.monotonic()
        self._frozen_ms = None

    def stop(self) -> None:
        self._frozen_ms = self.milliseconds_left
        self._started_at = None

    @property
    def milliseconds_left(self) -> int:
        if self._frozen_ms is not None:
            return self._frozen_ms
        if self._started_at is None:
            return self.timeout_ms
        elapsed_ms = (time.monotonic() - self._started_at) * 1000.0
        return max(0, int(self.timeout_ms - elapsed_ms))

    @property
    def seconds_left(self) -> float:
        return self.milliseconds_left / 1000.0

    @property
    def expired(self) -> bool:
        return self.milliseconds_left == 0

    def __repr__(self) -> str:
        return f"CountdownTimer(timeout_ms={self.timeout_ms}, left={self.milliseconds_left})"


__all__ = ["CountdownTimer"]
