"""In-process fixed-window rate limiting for the /api routes.

Counters live in this process only, so limits are per worker. Good enough to
blunt request floods; nothing in the business logic depends on it.
"""
import logging
import os
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from errors import RateLimited

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.environ.get("RATE_LIMIT_ENABLED", "true").strip().lower() not in {"0", "false", "no"}
RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", 10))
RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", 10))


class FixedWindowRateLimiter:
    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> Optional[int]:
        """Count a request for ``key``; return seconds to wait if it is over the limit."""
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            if len(self._windows) > 10000:
                self._prune(now)
        if count > self.max_requests:
            return max(int(started + self.window_seconds - now + 0.999), 1)
        return None

    def _prune(self, now: float) -> None:
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return request.client.host if request.client else "anonymous"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowRateLimiter, prefix: str = "/api", enabled: bool = True):
        super().__init__(app)
        self.limiter = limiter
        self.prefix = prefix
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        if self.enabled and request.url.path.startswith(self.prefix):
            key = client_key(request)
            retry_after = self.limiter.hit(key)
            if retry_after is not None:
                logger.warning(f"Rate limit exceeded for {key} on {request.method} {request.url.path}")
                error = RateLimited(extra={"retry_after_seconds": retry_after})
                return JSONResponse(
                    status_code=error.status_code,
                    content=error.to_payload(),
                    headers={"Retry-After": str(retry_after)},
                )
        return await call_next(request)
