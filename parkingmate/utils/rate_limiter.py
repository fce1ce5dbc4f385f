# parkingmate/utils/rate_limiter.py
"""
Sliding-window request limiter, keyed by client IP.
In-memory and per process; used as a FastAPI dependency on public endpoints.
Keys whose hits have all left the window are dropped, at most once per window.
"""

import time
from collections import deque
from threading import Lock

from fastapi import Request

from parkingmate.errors import RateLimitExceededError
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


class SlidingWindowLimiter:
    def __init__(self, max_requests: int, window_seconds: float, timer=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._timer = timer
        self._hits: dict[str, deque] = {}
        self._lock = Lock()
        self._last_purge = timer()

    def _purge(self, now: float) -> None:
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._last_purge = now

    def hit(self, key: str) -> None:
        """Record one request for `key`; raises RateLimitExceededError when over the limit."""
        now = self._timer()
        with self._lock:
            if now - self._last_purge >= self.window_seconds:
                self._purge(now)
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self.window_seconds:
                hits.popleft()
            if len(hits) >= self.max_requests:
                retry_after = int(hits[0] + self.window_seconds - now) + 1
                logger.warning(f"[RATE] Limit exceeded for {key} (retry in {retry_after}s)")
                raise RateLimitExceededError(retry_after)
            hits.append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self):
        return len(self._hits)

    def dependency(self, request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        self.hit(client_ip)
