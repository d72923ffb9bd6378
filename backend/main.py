from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from api.routes import router, get_feed, get_settings
from contextlib import asynccontextmanager
import asyncio
import logging
import os
import time
import sentry_sdk

from engine.pipeline import FeedAssembler
from logging_config import setup_logging
from rate_limiter import RateLimitMiddleware

setup_logging()
logger = logging.getLogger(__name__)


class CORSHeaderMiddleware(BaseHTTPMiddleware):
    """Every response is readable cross-origin, error responses included."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response


# Initialize Sentry if DSN is configured
_sentry_dsn = os.getenv("SENTRY_DSN", "")
if _sentry_dsn:
    sentry_sdk.init(
        dsn=_sentry_dsn,
        traces_sample_rate=0.1,
        environment=os.getenv("ENVIRONMENT", "production"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    feed = get_feed()
    logger.info("Signal engine starting (tick every %ds)", feed.interval.seconds)

    # First tick runs immediately in the background, timers follow
    tasks = [asyncio.create_task(feed.run_tick())]
    tasks += [asyncio.create_task(loop) for loop in feed.loops()]
    logger.info("Started feed, metrics, narrative and trench loops")

    yield

    for task in tasks:
        task.cancel()
    logger.info("Signal engine shutting down")


app = FastAPI(
    title="Solana Signal & Narrative Engine",
    description="Ranked memecoin signals, scam checks and narrative radar for Solana",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(CORSHeaderMiddleware)
app.add_middleware(RateLimitMiddleware, limit=get_settings().model_rate_limit_per_hour)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round(time.time() - start, 3)
    logger.info("request | %s %s | %s | %.3fs", request.method, request.url.path, response.status_code, duration)
    return response


app.include_router(router)


@app.get("/health")
async def health(feed: FeedAssembler = Depends(get_feed)):
    snapshot = feed.feed.get()
    return {
        "status": "ok",
        "service": "solana-signal-engine",
        "has_snapshot": snapshot is not None,
        "last_updated": snapshot.last_updated if snapshot else None,
    }


@app.get("/status")
async def status(feed: FeedAssembler = Depends(get_feed)):
    """Tick status: current interval, last tick, last error and per-source gate stats."""
    return feed.status()
