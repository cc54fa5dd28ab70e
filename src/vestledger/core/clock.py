"""
Time sources for the vesting ledger.

The ledger never reads the wall clock directly: every operation asks an
injected clock for ``now()``. Schedules are expressed in whatever unit the
clock counts, so the same ledger works with Unix seconds or with a
discrete block height.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Clock(Protocol):
    """Anything with an integer ``now()``."""

    def now(self) -> int:
        ...


class SystemClock:
    """Wall-clock time in whole Unix seconds."""

    def __init__(self, time_provider: Callable[[], float] | None = None):
        self._time_provider = time_provider or time.time

    def now(self) -> int:
        timestamp = self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return a numeric timestamp") from exc


class BlockClock:
    """
    Discrete counter advanced explicitly, like a block height.

    Thread-safe: producers call ``advance()`` while readers call ``now()``.
    """

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Block height cannot be negative")
        self._height = height
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._height

    def advance(self, blocks: int = 1) -> int:
        """Move the height forward and return the new height."""
        if blocks < 0:
            raise ValueError("Block height cannot move backwards")
        with self._lock:
            self._height += blocks
            height = self._height
        logger.debug("Block clock advanced", extra={"event": "clock.advance", "height": height})
        return height


class ManualClock:
    """Settable clock for tests and replays."""

    def __init__(self, current: int = 0):
        self.current = current

    def now(self) -> int:
        return self.current

    def set(self, value: int) -> None:
        self.current = value

    def advance(self, delta: int) -> int:
        self.current += delta
        return self.current
