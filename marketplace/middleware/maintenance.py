"""
Maintenance mode middleware.

Short-circuits requests with 503 while the maintenance flag is on. The
flag lives in the systemConfig collection and is read through a TTL cache;
when the store cannot be read, the configured default applies.
"""

import logging
from typing import Awaitable, Callable, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from common.utils.cache import TTLCache
from common.utils.responses import error_response

logger = logging.getLogger(__name__)

MAINTENANCE_CONFIG_KEY = "maintenance_mode"
DEFAULT_BYPASS_PREFIXES = ("/health", "/docs", "/openapi.json")


class MaintenanceModeMiddleware(BaseHTTPMiddleware):
    """
    Rejects traffic during maintenance, except for bypassed paths.
    """

    def __init__(
        self,
        app,
        flag_loader: Callable[[], Awaitable[bool]],
        cache: TTLCache,
        default_enabled: bool = False,
        bypass_prefixes: Sequence[str] = DEFAULT_BYPASS_PREFIXES,
    ):
        """
        Args:
            app: ASGI app
            flag_loader: Coroutine factory returning the current flag from the store
            cache: Cache holding the flag between loads
            default_enabled: Value used when the loader fails
            bypass_prefixes: Path prefixes that are always served
        """
        super().__init__(app)
        self._flag_loader = flag_loader
        self._cache = cache
        self._default_enabled = default_enabled
        self._bypass_prefixes = tuple(bypass_prefixes)

    async def is_enabled(self) -> bool:
        value = await self._cache.get_or_load(
            MAINTENANCE_CONFIG_KEY,
            loader=self._flag_loader,
            fallback=self._default_enabled,
        )
        return bool(value)

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(self._bypass_prefixes):
            return await call_next(request)

        if await self.is_enabled():
            logger.debug(f"Maintenance mode: rejected {request.method} {request.url.path}")
            return JSONResponse(
                status_code=503,
                content=error_response(
                    "Service is under maintenance. Please try again later.",
                    code="MAINTENANCE_MODE",
                ),
                headers={"Retry-After": "60"},
            )

        return await call_next(request)
