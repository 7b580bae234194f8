"""
Fixed-window request counter keyed by caller (usually the client IP).

Each key gets ``max_requests`` hits per ``window_seconds``. The window
starts at the first hit and is not extended by later ones.

Example:
    limiter = RateLimiter(max_requests=10, window_seconds=900)

    retry_after = limiter.hit(client_ip)
    if retry_after is not None:
        raise RateLimitException(retry_after=retry_after)
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class RateLimiter:
    """In-process counter; each worker process keeps its own windows."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}

    def hit(self, key: str) -> Optional[int]:
        """
        Count one request for ``key``.

        Returns:
            None when the request is allowed, otherwise the seconds until
            the current window closes (at least 1)
        """
        now = self._clock()
        count, resets_at = self._windows.get(key, (0, now + self._window))
        if now >= resets_at:
            count, resets_at = 0, now + self._window

        if count >= self._max_requests:
            return max(1, math.ceil(resets_at - now))

        self._windows[key] = (count + 1, resets_at)
        if len(self._windows) > 10_000:
            self._prune(now)
        return None

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, resets_at) in self._windows.items() if now >= resets_at]
        for key in expired:
            del self._windows[key]
        logger.debug(f"Pruned {len(expired)} expired rate-limit windows")
