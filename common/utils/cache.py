"""
Read-through cache with a fixed TTL and an explicit fallback value.

Holds one value per key for ``ttl_seconds``. When an entry is missing or
stale the async loader is called; if the loader raises, the fallback is
cached for the same TTL so a failing backend is not hammered on every read.

Example:
    cache = TTLCache(ttl_seconds=60)

    enabled = await cache.get_or_load(
        "maintenance_mode",
        loader=load_flag_from_db,
        fallback=False,
    )
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TTLCache:
    """Process-wide key/value cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or stale."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None

        return value

    def set(self, key: str, value: Any) -> None:
        """Store a value and restart its TTL."""
        self._entries[key] = (value, self._clock() + self._ttl)

    def invalidate(self, key: str) -> None:
        """Drop a single entry."""
        self._entries.pop(key, None)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        fallback: Any,
    ) -> Any:
        """
        Return the cached value, refreshing it through ``loader`` when stale.

        Args:
            key: Cache key
            loader: Coroutine factory that fetches the fresh value
            fallback: Value cached and returned when the loader fails

        Returns:
            The cached, freshly loaded, or fallback value
        """
        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry[1]:
            return entry[0]

        try:
            value = await loader()
        except Exception as e:
            logger.warning(f"Cache loader for '{key}' failed, using fallback: {e}")
            value = fallback

        self.set(key, value)
        return value
