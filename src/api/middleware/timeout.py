"""
Request timeout middleware.

Bounds each HTTP request with ``asyncio.timeout`` and answers 504 when the
bound is exceeded. WebSocket upgrades and health probes are never bounded.
"""

import asyncio

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUDED_PREFIXES: tuple[str, ...] = ("/health", "/ws/")


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Return 504 for requests running longer than ``timeout_seconds``."""

    def __init__(
        self,
        app,
        timeout_seconds: float = 30.0,
        excluded_prefixes: tuple[str, ...] = DEFAULT_EXCLUDED_PREFIXES,
    ):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.excluded_prefixes = excluded_prefixes

    def _is_excluded(self, request: Request) -> bool:
        if request.headers.get("upgrade", "").lower() == "websocket":
            return True
        return request.url.path.startswith(self.excluded_prefixes)

    async def dispatch(self, request: Request, call_next):
        if self._is_excluded(request):
            return await call_next(request)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "Request timed out",
                path=request.url.path,
                method=request.method,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content={
                    "detail": "Request timed out",
                    "error_type": "timeout",
                    "timeout_seconds": self.timeout_seconds,
                },
            )
