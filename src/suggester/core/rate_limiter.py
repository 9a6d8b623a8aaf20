# Author: Bradley R. Kinnard — the bouncer

"""
In-process rate limiter for model calls. Sliding window of recent calls per caller key,
plus a minimum gap between two calls on the same key.

The wait is computed once under the lock and the slot is reserved right there,
so concurrent callers queue up behind each other instead of all waking at the same instant.
The actual sleep happens outside the lock.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Awaitable, Callable

log = logging.getLogger(__name__)


class SlidingWindowLimiter:
    def __init__(self, window_size: int = 10, min_interval_ms: int = 5000,
                 clock: Callable[[], float] = time.monotonic):
        self.window_size = max(1, window_size)
        self.min_interval = min_interval_ms / 1000
        self.window_span = self.window_size * self.min_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._slots: dict[str, deque[float]] = {}

    def reserve(self, key: str) -> float:
        """claim the next free slot for key, return seconds to wait before using it"""
        with self._lock:
            now = self._clock()
            slots = self._slots.setdefault(key, deque())
            slot = now
            if slots:
                slot = max(slot, slots[-1] + self.min_interval)
            if len(slots) >= self.window_size:
                # the oldest call in the window has to age out first
                slot = max(slot, slots[-self.window_size] + self.window_span)
            slots.append(slot)
            while len(slots) > self.window_size:
                slots.popleft()
            return max(0.0, slot - now)

    async def acquire(self, key: str, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> float:
        wait = self.reserve(key)
        if wait > 0:
            log.info(f"rate limiting {key}: waiting {int(wait * 1000)}ms")
            await sleep(wait)
        return wait

    def reset(self) -> None:
        with self._lock:
            self._slots.clear()
