"""Collect trending coins and hot categories from CoinGecko (no API key needed)"""
import logging
from typing import Dict, List

import httpx

from collectors.http_client import SourceResult, expect_list, fetch_json, run_source
from engine.normalizer import to_number
from engine.sanitize import clean_text, sanitize_url

logger = logging.getLogger(__name__)

TRENDING_URL = "https://api.coingecko.com/api/v3/search/trending"
CATEGORIES_URL = "https://api.coingecko.com/api/v3/coins/categories"

TRENDING_LIMIT = 7
CATEGORY_KEYWORDS = ["meme", "ai", "gaming", "defi", "dog", "cat", "solana"]
CATEGORY_MOVE_PCT = 5


async def trending_coins(client: httpx.AsyncClient) -> List[Dict]:
    data = await fetch_json(client, TRENDING_URL, "coingecko_trending")
    coins = []
    for index, entry in enumerate(expect_list(data, "coingecko_trending", key="coins")[:TRENDING_LIMIT]):
        coin = entry.get("item") or {}
        price_data = (coin.get("data") or {}).get("price_change_percentage_24h") or {}
        coins.append({
            "rank": index + 1,
            "name": clean_text(coin.get("name"), 100) or "Unknown",
            "symbol": clean_text(coin.get("symbol"), 20).upper(),
            "market_cap_rank": coin.get("market_cap_rank"),
            "price_change_24h": to_number(price_data.get("usd")),
            "thumb": sanitize_url(coin.get("thumb")),
            "source": "coingecko",
        })
    return coins


def is_hot_category(category: Dict) -> bool:
    name = (category.get("name") or "").lower()
    if any(kw in name for kw in CATEGORY_KEYWORDS):
        return True
    return abs(to_number(category.get("market_cap_change_24h"))) > CATEGORY_MOVE_PCT


async def hot_categories(client: httpx.AsyncClient) -> List[Dict]:
    data = await fetch_json(
        client, CATEGORIES_URL, "coingecko_categories", params={"order": "market_cap_change_24h_desc"},
    )
    categories = []
    for cat in expect_list(data, "coingecko_categories"):
        if not is_hot_category(cat):
            continue
        categories.append({
            "name": clean_text(cat.get("name"), 100),
            "change_24h": to_number(cat.get("market_cap_change_24h")),
            "volume_24h": to_number(cat.get("volume_24h")),
            "market_cap": to_number(cat.get("market_cap")),
            "source": "coingecko",
        })
    return categories


async def collect_trending(deadline: float) -> SourceResult:
    """CoinGeckoTrending"""
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            coins = await trending_coins(client)
            logger.info("CoinGecko: %d trending coins", len(coins))
            return coins
    return await run_source("coingecko_trending", fetch)


async def collect_categories(deadline: float) -> SourceResult:
    """CoinGeckoCategories"""
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            return await hot_categories(client)
    return await run_source("coingecko_categories", fetch)
