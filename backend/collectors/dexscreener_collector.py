"""Collect Solana token pairs from the DexScreener public API (free, no auth)."""
import logging
import time
from typing import Dict, List

import httpx

from collectors.http_client import SourceResult, expect_list, fetch_json, run_source
from engine.normalizer import to_number

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.dexscreener.com/latest/dex/search"
TOKEN_PROFILES_URL = "https://api.dexscreener.com/token-profiles/latest/v1"
BOOSTED_URL = "https://api.dexscreener.com/token-boosts/top/v1"
TOKENS_URL = "https://api.dexscreener.com/tokens/v1/solana"

BATCH_SIZE = 30
PROFILE_LIMIT = 20
BOOST_LIMIT = 10

DEX_SEARCH_TERMS = ["pepe", "doge", "shib", "wojak", "chad", "mog", "cat", "dog", "ai", "trump"]
PUMP_SEARCH_TERMS = ["pump", "fun", "moon", "inu", "elon", "bonk", "wif", "popcat", "meme"]

ECOSYSTEMS = {
    "bonk": {"query": "letsbonk", "keyword": "bonk", "website": "letsbonk"},
    "bags": {"query": "bags.fm", "keyword": "bags", "website": None},
}

# Launchpad-style post-filter for PumpFunStyle search results
PUMP_MAX_AGE_HOURS = 168
PUMP_MIN_MCAP = 1_000
PUMP_MAX_MCAP = 10_000_000
PUMP_MIN_LIQUIDITY = 1_000


def _solana_only(pairs: List[Dict]) -> List[Dict]:
    return [p for p in pairs if p.get("chainId") == "solana"]


async def search_pairs(client: httpx.AsyncClient, term: str, source: str = "dex_search") -> List[Dict]:
    """DexSearch: pairs matching a free-text query, Solana only."""
    data = await fetch_json(client, SEARCH_URL, source, params={"q": term})
    return _solana_only(expect_list(data, source, key="pairs"))


async def latest_profile_addresses(client: httpx.AsyncClient, limit: int = PROFILE_LIMIT) -> List[str]:
    """TokenProfilesLatest: recently listed Solana token addresses."""
    data = await fetch_json(client, TOKEN_PROFILES_URL, "dex_profiles")
    profiles = expect_list(data, "dex_profiles")
    addresses = [p.get("tokenAddress") for p in profiles if p.get("chainId") == "solana" and p.get("tokenAddress")]
    return list(dict.fromkeys(addresses))[:limit]


async def top_boost_addresses(client: httpx.AsyncClient, limit: int = BOOST_LIMIT) -> List[str]:
    """TokenBoostsTop: paid-promoted Solana token addresses."""
    data = await fetch_json(client, BOOSTED_URL, "dex_boosts")
    boosts = expect_list(data, "dex_boosts")
    addresses = [b.get("tokenAddress") for b in boosts if b.get("chainId") == "solana" and b.get("tokenAddress")]
    return list(dict.fromkeys(addresses))[:limit]


async def tokens_batch(client: httpx.AsyncClient, addresses: List[str], source: str = "dex_tokens") -> List[Dict]:
    """TokensBatch: pair data for addresses, 30 per request.

    Keeps the highest-volume pair per base token, in first-seen order.
    """
    best_by_token: Dict[str, Dict] = {}
    for start in range(0, len(addresses), BATCH_SIZE):
        chunk = addresses[start:start + BATCH_SIZE]
        data = await fetch_json(client, f"{TOKENS_URL}/{','.join(chunk)}", source)
        pairs = expect_list(data, source, key="pairs" if isinstance(data, dict) else None)
        for p in _solana_only(pairs):
            base = (p.get("baseToken") or {}).get("address", "")
            vol = to_number((p.get("volume") or {}).get("h24"))
            current = best_by_token.get(base)
            if current is None or vol > to_number((current.get("volume") or {}).get("h24")):
                best_by_token[base] = p
    return list(best_by_token.values())


def is_pump_fun_candidate(pair: Dict, now_ms: int = None) -> bool:
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    created = to_number(pair.get("pairCreatedAt"))
    if not created:
        return False
    age_hours = (now_ms - created) / 3.6e6
    mcap = to_number(pair.get("marketCap") or pair.get("fdv"))
    liquidity = to_number((pair.get("liquidity") or {}).get("usd"))
    return (
        age_hours < PUMP_MAX_AGE_HOURS
        and PUMP_MIN_MCAP < mcap < PUMP_MAX_MCAP
        and liquidity > PUMP_MIN_LIQUIDITY
    )


async def pump_fun_style(client: httpx.AsyncClient, term: str, now_ms: int = None) -> List[Dict]:
    """PumpFunStyle: DexSearch narrowed to young, low-cap launches."""
    pairs = await search_pairs(client, term, source="pumpfun_style")
    return [p for p in pairs if is_pump_fun_candidate(p, now_ms)]


def _in_ecosystem(pair: Dict, keyword: str, website: str = None) -> bool:
    base = pair.get("baseToken") or {}
    name = (base.get("name") or "").lower()
    symbol = (base.get("symbol") or "").lower()
    if keyword in name or keyword in symbol:
        return True
    if website:
        sites = (pair.get("info") or {}).get("websites") or []
        return any(website in (w.get("url") or "") for w in sites if isinstance(w, dict))
    return False


async def ecosystem_search(client: httpx.AsyncClient, ecosystem: str) -> List[Dict]:
    """EcosystemSearch: pairs whose name, symbol or website place them in ``ecosystem``."""
    eco = ECOSYSTEMS[ecosystem]
    pairs = await search_pairs(client, eco["query"], source=ecosystem)
    return [p for p in pairs if _in_ecosystem(p, eco["keyword"], eco["website"])]


# Source entrypoints used by the feed. Each opens its own client bounded by
# the HTTP deadline and never raises.

async def collect_profiles(deadline: float) -> SourceResult:
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            addresses = await latest_profile_addresses(client)
            logger.info("DexScreener: %d new Solana profiles", len(addresses))
            return await tokens_batch(client, addresses, source="dex_profiles")
    return await run_source("dex_profiles", fetch)


async def collect_boosts(deadline: float) -> SourceResult:
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            addresses = await top_boost_addresses(client)
            logger.info("DexScreener: %d boosted Solana tokens", len(addresses))
            return await tokens_batch(client, addresses, source="dex_boosts")
    return await run_source("dex_boosts", fetch)


async def collect_search(term: str, deadline: float) -> SourceResult:
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            return await search_pairs(client, term)
    return await run_source("dex_search", fetch)


async def collect_pump_fun_style(term: str, deadline: float) -> SourceResult:
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            return await pump_fun_style(client, term)
    return await run_source("pumpfun_style", fetch)


async def collect_ecosystem(ecosystem: str, deadline: float) -> SourceResult:
    async def fetch():
        async with httpx.AsyncClient(timeout=deadline) as client:
            pairs = await ecosystem_search(client, ecosystem)
            logger.info("DexScreener: %d %s ecosystem pairs", len(pairs), ecosystem)
            return pairs
    return await run_source(ecosystem, fetch)
