from fastapi import APIRouter, Depends, HTTPException, Request, Query
from fastapi.responses import JSONResponse
from typing import Optional
import logging
import math

from engine.errors import (
    ConfigMissing, InputValidationFailed, ModelInvocationFailed, ModelResponseUnparseable,
)
from engine.intel import analyze, token_intel
from engine.market_pulse import compute_pulse
from engine.narrative_engine import sample_narratives
from engine.pipeline import FeedAssembler
from engine.watchlist import filter_by_addresses, parse_addresses
from settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

SOCIAL_MAX_AGE = 300
TRENCH_MAX_AGE = 45
PULSE_MAX_AGE = 30

_assembler: Optional[FeedAssembler] = None


def get_settings() -> Settings:
    return Settings.from_env()


def get_feed() -> FeedAssembler:
    """The process-wide feed assembler, created on first use."""
    global _assembler
    if _assembler is None:
        _assembler = FeedAssembler(get_settings())
    return _assembler


def jsonable(value):
    """Plain JSON types only; non-finite floats become null."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(jsonable(v) for v in value)
    return value


def _cached(body: dict, max_age: int) -> JSONResponse:
    return JSONResponse(
        content=jsonable(body),
        headers={**CORS_HEADERS, "Cache-Control": f"public, max-age={max_age}"},
    )


def _ttl_seconds(feed: FeedAssembler) -> int:
    return feed.settings.cache_ttl_ms // 1000


async def _read_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


async def _run_model(handler, body, settings: Settings) -> JSONResponse:
    try:
        result = await handler(body, settings)
    except InputValidationFailed as e:
        raise HTTPException(status_code=400, detail=str(e), headers=CORS_HEADERS)
    except ConfigMissing as e:
        logger.error("Model endpoint called without %s", e.name)
        raise HTTPException(status_code=500, detail="API key not configured", headers=CORS_HEADERS)
    except ModelInvocationFailed:
        raise HTTPException(status_code=502, detail="AI request failed", headers=CORS_HEADERS)
    except ModelResponseUnparseable:
        raise HTTPException(status_code=500, detail="Failed to parse AI response", headers=CORS_HEADERS)
    return JSONResponse(content=jsonable(result), headers=CORS_HEADERS)


@router.post("/analyze")
async def analyze_narrative(request: Request, settings: Settings = Depends(get_settings)):
    """Narrative analysis for a free-text query, optionally grounded in live tokens"""
    return await _run_model(analyze, await _read_body(request), settings)


@router.post("/token-intel")
async def get_token_intel(request: Request, settings: Settings = Depends(get_settings)):
    """Narrative read on a single token"""
    return await _run_model(token_intel, await _read_body(request), settings)


@router.get("/narrative-radar")
async def narrative_radar(feed: FeedAssembler = Depends(get_feed)):
    snapshot = feed.feed.get()
    if snapshot is None or not snapshot.narratives:
        return _cached({
            "narratives": sample_narratives(),
            "lastUpdated": snapshot.last_updated if snapshot else None,
            "sources": [],
            "cached": False,
            "isSample": True,
        }, _ttl_seconds(feed))

    sources = sorted({s for n in snapshot.narratives for s in n["sources"]})
    return _cached({
        "narratives": snapshot.narratives,
        "lastUpdated": snapshot.last_updated,
        "sources": sources,
        "cached": True,
        "stale": snapshot.stale,
    }, _ttl_seconds(feed))


@router.get("/social-trends")
async def social_trends(feed: FeedAssembler = Depends(get_feed)):
    social = feed.social.get()
    if social is None:
        return _cached({
            "coingeckoTrending": [],
            "dexscreenerTrending": [],
            "hotCategories": [],
            "aggregatedTrends": [],
            "lastUpdated": None,
            "cached": False,
        }, SOCIAL_MAX_AGE)
    snapshot = feed.feed.get()
    return _cached({**social, "cached": True, "stale": bool(snapshot and snapshot.stale)}, SOCIAL_MAX_AGE)


@router.get("/trench-agent")
async def trench_agent(feed: FeedAssembler = Depends(get_feed)):
    result = feed.trench.get()
    if result is None:
        return _cached({
            "freshGems": [],
            "watchlist": [],
            "risky": [],
            "scanStats": {"totalScanned": 0, "bundlesDetected": 0, "highRisk": 0, "avgSafetyScore": 0},
            "lastUpdated": None,
            "error": "Scan temporarily unavailable",
        }, TRENCH_MAX_AGE)
    return _cached(result, TRENCH_MAX_AGE)


@router.get("/signals")
async def get_signals(watchlist: Optional[str] = Query(None), feed: FeedAssembler = Depends(get_feed)):
    """Ranked token feed. Never filled with placeholder rows."""
    snapshot = feed.feed.get()
    if snapshot is None or not snapshot.tokens:
        return _cached({"tokens": [], "lastUpdated": None, "error": "Live data unavailable"}, _ttl_seconds(feed))

    tokens = list(snapshot.tokens)
    if watchlist is not None:
        tokens = filter_by_addresses(tokens, parse_addresses(watchlist))
    return _cached({
        "tokens": tokens,
        "lastUpdated": snapshot.last_updated,
        "stale": snapshot.stale,
        "sourceErrors": snapshot.source_errors,
    }, _ttl_seconds(feed))


@router.get("/market-pulse")
async def market_pulse(feed: FeedAssembler = Depends(get_feed)):
    pulse = feed.pulse.get()
    if pulse is None:
        snapshot = feed.feed.get()
        if snapshot is None:
            return _cached({"lastUpdated": None, "error": "Live data unavailable"}, PULSE_MAX_AGE)
        pulse = compute_pulse(list(snapshot.tokens), list(snapshot.narratives), feed.settings.pulse_split_other)
    return _cached({**pulse, "lastUpdated": pulse["updated_at"]}, PULSE_MAX_AGE)
