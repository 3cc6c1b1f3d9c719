"""Fixed-window admission control for outbound deliveries.

The window is process-wide: one counter gates every tenant and recipient.
Admission (``admit``) and accounting (``record``) are separate calls so that
requests short-circuited after the check do not consume budget.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

from .errors import RateLimitExceeded
from .models import RateLimitWindow

LOGGER = logging.getLogger(__name__)


class RateLimiter(ABC):
    @abstractmethod
    def admit(self) -> None:
        """Raise ``RateLimitExceeded`` if the current window is exhausted."""

    @abstractmethod
    def record(self) -> None:
        """Account for one successfully dispatched message."""

    @abstractmethod
    def snapshot(self) -> RateLimitWindow:
        ...


class FixedWindowRateLimiter(RateLimiter):
    def __init__(
        self,
        limit: int = 20,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 0:
            raise ValueError("limit must be non-negative")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._window = RateLimitWindow(count=0, window_start=clock())
        self._lock = threading.Lock()

    def _roll(self, now: float) -> None:
        if now >= self._window.window_start + self.window_seconds:
            self._window.count = 0
            self._window.window_start = now

    def admit(self) -> None:
        with self._lock:
            self._roll(self._clock())
            count = self._window.count
        if count >= self.limit:
            LOGGER.warning("Rate limit reached: %d/%d in current window", count, self.limit)
            raise RateLimitExceeded(self.limit)

    def record(self) -> None:
        with self._lock:
            self._roll(self._clock())
            self._window.count += 1

    def snapshot(self) -> RateLimitWindow:
        with self._lock:
            return RateLimitWindow(count=self._window.count, window_start=self._window.window_start)
