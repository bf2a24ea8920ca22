from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger


class TrailingDebouncer:
    """Coalesce bursts of ``trigger()`` calls into one callback after a quiet period.

    Owned by a single query attempt and cancelled with it.
    """

    def __init__(self, callback: Callable[[], None], delay_s: float):
        self._callback = callback
        self._delay_s = max(delay_s, 0.0)
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        if self._cancelled:
            return
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay_s, self._fire)

    def flush(self) -> None:
        """Run a pending callback now."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Debounced callback failed: {e}")
