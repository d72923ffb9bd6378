"""Shared upstream fetch helpers.

``fetch_json`` raises one of the ``Upstream*`` error kinds; ``run_source``
absorbs them into an empty ``SourceResult`` so callers never see an upstream
exception.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from engine.errors import (
    UpstreamError,
    UpstreamShapeMismatch,
    UpstreamThrottled,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Accept": "application/json"}


@dataclass(frozen=True)
class SourceResult:
    source: str
    records: Tuple[Dict, ...] = ()
    error: Optional[UpstreamError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def throttled(self) -> bool:
        return isinstance(self.error, UpstreamThrottled)


async def fetch_json(client: httpx.AsyncClient, url: str, source: str, params: Dict = None,
                     headers: Dict = None) -> Any:
    try:
        resp = await client.get(url, params=params, headers=headers or DEFAULT_HEADERS)
    except httpx.TimeoutException:
        raise UpstreamTimeout(source, url)
    except httpx.HTTPError as e:
        raise UpstreamUnavailable(source, f"{url}: {e}")

    if resp.status_code == 429:
        raise UpstreamThrottled(source, f"{url} returned 429")
    if resp.status_code >= 400:
        raise UpstreamUnavailable(source, f"{url} returned {resp.status_code}")
    try:
        return resp.json()
    except ValueError:
        raise UpstreamShapeMismatch(source, f"{url} returned invalid JSON")


def expect_list(data: Any, source: str, key: str = None) -> list:
    """Unwrap ``data[key]`` (or ``data`` itself) and insist on a list."""
    if key is not None:
        if not isinstance(data, dict):
            raise UpstreamShapeMismatch(source, f"expected object with '{key}'")
        data = data.get(key)
        if data is None:
            return []
    if not isinstance(data, list):
        raise UpstreamShapeMismatch(source, f"expected list, got {type(data).__name__}")
    return [item for item in data if isinstance(item, dict)]


async def run_source(source: str, fetch: Callable[..., Awaitable], *args) -> SourceResult:
    try:
        records = await fetch(*args)
    except UpstreamError as e:
        logger.warning("%s failed (%s): %s", source, e.kind, e)
        return SourceResult(source=source, error=e)
    return SourceResult(source=source, records=tuple(records))
