"""
In-memory cache and rate gate for upstream sources.

Each upstream source gets a ``SourceGate``: a TTL cache plus a min-interval
gate and exponential backoff after failures. ``TickInterval`` widens the
feed tick when an upstream answers 429. ``SnapshotCell`` holds a value that
is only ever replaced as a whole.

Nothing here survives a restart.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

from collectors.http_client import SourceResult
from engine.errors import UpstreamError, UpstreamThrottled, UpstreamTimeout

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 10


@dataclass(frozen=True)
class GateResult:
    source: str
    records: Tuple[Dict, ...]
    from_cache: bool = False
    stale: bool = False
    error: Optional[UpstreamError] = None

    @property
    def throttled(self) -> bool:
        return isinstance(self.error, UpstreamThrottled)


class SourceGate:
    """
    Cache-and-backoff wrapper around one upstream source.

    - Within ``min_interval`` of the last good fetch the cached records are
      returned without touching the network.
    - After a failure the next attempt waits ``2**retries * 10`` seconds,
      with ``retries`` capped at ``max_retries``; meanwhile the last cached
      records are served, flagged stale once older than ``ttl``.
    """

    def __init__(self, source: str, ttl_ms: int = 120_000, min_interval_ms: int = 60_000,
                 max_retries: int = 2, deadline: float = 8.0, clock: Callable[[], float] = time.monotonic):
        self.source = source
        self.ttl = ttl_ms / 1000
        self.min_interval = min_interval_ms / 1000
        self.max_retries = max_retries
        self.deadline = deadline
        self._clock = clock
        self._lock = asyncio.Lock()

        self._records: Optional[Tuple[Dict, ...]] = None
        self._fetched_at = 0.0
        self.last_attempt: Optional[float] = None
        self.retries = 0
        self.next_attempt_at = 0.0

        # Stats
        self.hits = 0
        self.misses = 0
        self.failures = 0

    @property
    def has_cache(self) -> bool:
        return self._records is not None

    async def fetch(self, fetcher: Callable[[], Awaitable[SourceResult]]) -> GateResult:
        async with self._lock:
            now = self._clock()
            if self._records is not None and now - self._fetched_at < self.min_interval:
                self.hits += 1
                return GateResult(self.source, self._records, from_cache=True)

            if now < self.next_attempt_at:
                logger.debug("%s in backoff for %.0fs more", self.source, self.next_attempt_at - now)
                return self._fallback(now, None)

            self.misses += 1
            self.last_attempt = now
            try:
                result = await asyncio.wait_for(fetcher(), timeout=self.deadline)
            except asyncio.TimeoutError:
                result = SourceResult(self.source, error=UpstreamTimeout(self.source, "deadline exceeded"))

            if result.ok:
                self._records = result.records
                self._fetched_at = self._clock()
                self.retries = 0
                self.next_attempt_at = 0.0
                return GateResult(self.source, self._records)

            self.failures += 1
            self.retries = min(self.retries + 1, self.max_retries)
            delay = (2 ** self.retries) * BACKOFF_BASE_SECONDS
            self.next_attempt_at = now + delay
            logger.warning("%s failed (%s), retry %d in %ds", self.source, result.error.kind, self.retries, delay)
            return self._fallback(now, result.error)

    def _fallback(self, now: float, error: Optional[UpstreamError]) -> GateResult:
        if self._records is None:
            return GateResult(self.source, (), stale=True, error=error)
        return GateResult(
            self.source, self._records, from_cache=True,
            stale=now - self._fetched_at >= self.ttl, error=error,
        )

    def stats(self) -> Dict:
        return {
            "source": self.source,
            "hits": self.hits,
            "misses": self.misses,
            "failures": self.failures,
            "retries": self.retries,
            "cached": self.has_cache,
        }


class TickInterval:
    """Feed tick length: doubles on 429 up to ``ceiling_ms``, halves back to ``default_ms``."""

    def __init__(self, default_ms: int = 120_000, ceiling_ms: int = 300_000):
        self.default_ms = default_ms
        self.ceiling_ms = max(ceiling_ms, default_ms)
        self.current_ms = default_ms

    @property
    def seconds(self) -> float:
        return self.current_ms / 1000

    def widen(self) -> int:
        self.current_ms = min(self.current_ms * 2, self.ceiling_ms)
        logger.warning("Upstream throttled, tick interval now %dms", self.current_ms)
        return self.current_ms

    def relax(self) -> int:
        if self.current_ms > self.default_ms:
            self.current_ms = max(self.current_ms // 2, self.default_ms)
            logger.info("Tick interval relaxed to %dms", self.current_ms)
        return self.current_ms


class SnapshotCell:
    """Holds one value; the only mutation is whole replacement."""

    def __init__(self, value=None):
        self._value = value

    def get(self):
        return self._value

    def set(self, value):
        self._value = value
