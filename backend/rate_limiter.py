"""
Inbound rate limiting for the model-backed endpoints.

In-memory per-IP counters over a rolling hour; nothing is persisted.
"""
import asyncio
import hashlib
import logging
import time
from typing import Dict, List

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 3600.0
DEFAULT_LIMIT = 30

# Only these POST paths call the model
LIMITED_PATHS = {"/analyze", "/token-intel"}


def hash_ip(ip: str) -> str:
    return hashlib.sha256(f"radar-rl-{ip}".encode()).hexdigest()[:16]


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limit: int = DEFAULT_LIMIT, window: float = WINDOW_SECONDS, clock=time.time):
        super().__init__(app)
        self.limit = limit
        self.window = window
        self._clock = clock
        self._counters: Dict[str, List[float]] = {}
        self._lock = asyncio.Lock()

    def _prune_and_count(self, key: str, now: float) -> int:
        """Prune old entries and return current count. Idle keys are dropped."""
        timestamps = [t for t in self._counters.get(key, ()) if now - t < self.window]
        if timestamps:
            self._counters[key] = timestamps
        else:
            self._counters.pop(key, None)
        return len(timestamps)

    def _reset_in(self, key: str, now: float) -> int:
        """Seconds until the oldest counted request leaves the window."""
        timestamps = self._counters.get(key, ())
        if not timestamps:
            return int(self.window)
        return max(1, int(self.window - (now - timestamps[0])))

    def _sweep(self, now: float) -> None:
        for key in [k for k, stamps in self._counters.items() if not stamps or now - stamps[-1] >= self.window]:
            del self._counters[key]

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path not in LIMITED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "0.0.0.0"
        key = hash_ip(client_ip)

        async with self._lock:
            now = self._clock()
            self._sweep(now)
            count = self._prune_and_count(key, now)
            if count >= self.limit:
                reset = self._reset_in(key, now)
                logger.warning("Rate limit hit on %s (%d/%d)", request.url.path, count, self.limit)
                resp = JSONResponse(
                    {"detail": "Rate limit exceeded", "retry_after": reset},
                    status_code=429,
                )
                resp.headers["Access-Control-Allow-Origin"] = "*"
                resp.headers["Retry-After"] = str(reset)
                resp.headers["X-RateLimit-Limit"] = str(self.limit)
                resp.headers["X-RateLimit-Remaining"] = "0"
                resp.headers["X-RateLimit-Reset"] = str(reset)
                return resp
            self._counters.setdefault(key, []).append(now)
            remaining = self.limit - count - 1
            reset = self._reset_in(key, now)

        response: Response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))
        response.headers["X-RateLimit-Reset"] = str(reset)
        return response
