"""Collect recent launches from the Pump.fun front-end API as narrative mentions"""
import logging
import time
from typing import Dict, List

import httpx

from collectors.http_client import SourceResult, expect_list, fetch_json, run_source
from engine.normalizer import to_number
from engine.sanitize import clean_text, is_valid_solana_address

logger = logging.getLogger(__name__)

BASE_URL = "https://frontend-api.pump.fun"
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
}
SORTS = ["last_trade_timestamp", "market_cap"]
PER_SORT = 10
MAX_COINS = 8


def _engagement(reply_count: int, market_cap: float) -> str:
    if reply_count > 50 or market_cap > 100_000:
        return "viral"
    if reply_count > 10 or market_cap > 20_000:
        return "high"
    return "medium"


def coin_to_mention(coin: Dict, now_ms: int = None) -> Dict:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    created = to_number(coin.get("created_timestamp"))
    age_hours = (now_ms - created) / 3.6e6 if created else 0.0
    market_cap = to_number(coin.get("usd_market_cap") or coin.get("market_cap"))
    reply_count = int(to_number(coin.get("reply_count")))
    return {
        "address": coin.get("mint"),
        "symbol": clean_text(coin.get("symbol"), 20),
        "name": clean_text(coin.get("name"), 100),
        "description": clean_text(coin.get("description"), 500),
        "market_cap": market_cap,
        "age_hours": round(age_hours, 1),
        "reply_count": reply_count,
        "is_new": age_hours < 1,
        "is_fresh": age_hours < 24,
        "engagement": _engagement(reply_count, market_cap),
        "source": "pumpfun",
    }


async def recent_coins(client: httpx.AsyncClient) -> List[Dict]:
    mentions: List[Dict] = []
    seen_mints = set()
    for sort in SORTS:
        data = await fetch_json(
            client, f"{BASE_URL}/coins", "pumpfun_coins", headers=HEADERS,
            params={"offset": 0, "limit": 20, "sort": sort, "order": "DESC", "includeNsfw": "false"},
        )
        for coin in expect_list(data, "pumpfun_coins")[:PER_SORT]:
            mint = coin.get("mint")
            if not is_valid_solana_address(mint) or mint in seen_mints:
                continue
            seen_mints.add(mint)
            mentions.append(coin_to_mention(coin))
    return mentions[:MAX_COINS]


async def collect(deadline: float) -> SourceResult:
    """Recent Pump.fun coins, deduplicated by mint."""
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            coins = await recent_coins(client)
            logger.info("Pump.fun: %d recent coins", len(coins))
            return coins
    return await run_source("pumpfun_coins", fetch)
