"""Flatten DexScreener pair records (or already-normalized tokens) into one canonical token dict."""
import logging
import math
import re
import time
from typing import Dict, Iterable, List, Optional

from engine.sanitize import clean_text, is_valid_solana_address, sanitize_url

logger = logging.getLogger(__name__)

BONDING_CURVE_DEXES = {"pumpfun", "pumpswap"}
GRADUATED_MAX_AGE_HOURS = 168
GRADUATED_MAX_LIQUIDITY = 500_000

PERIODS = ("5m", "1h", "6h", "24h")
_RAW_PERIOD_KEYS = {"5m": "m5", "1h": "h1", "6h": "h6", "24h": "h24"}


def now_ms() -> int:
    return int(time.time() * 1000)


_LEADING_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(value) -> float:
    """Coerce anything to a finite float; garbage becomes 0.

    Strings are read up to the first non-numeric character, so ``"12abc"``
    is 12.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        match = _LEADING_NUMBER_RE.match(value)
        if match is None:
            return 0.0
        value = match.group()
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _count(value) -> int:
    return max(0, int(to_number(value)))


def _ratio(buys: int, sells: int, fallback) -> float:
    total = buys + sells
    if total > 0:
        return buys / total
    ratio = to_number(fallback) if fallback is not None else 0.5
    return min(1.0, max(0.0, ratio))


def _age_hours(created_at: Optional[int], fallback, now: int) -> float:
    if created_at:
        return max(0.0, (now - created_at) / 3.6e6)
    if isinstance(fallback, (int, float)) and not isinstance(fallback, bool) and math.isfinite(fallback):
        return max(0.0, float(fallback))
    return math.inf


def classify_provenance(dex_id: str, address: str, url: str, age_hours: float, liquidity: float) -> str:
    """``bonding_curve`` for launchpad curves, ``graduated`` for young Raydium pools, else ``dex``."""
    if dex_id in BONDING_CURVE_DEXES or address.endswith("pump") or "pump.fun" in (url or ""):
        return "bonding_curve"
    if dex_id == "raydium" and age_hours < GRADUATED_MAX_AGE_HOURS and liquidity < GRADUATED_MAX_LIQUIDITY:
        return "graduated"
    return "dex"


def _finish(token: Dict, now: int) -> Dict:
    token["buy_ratio"] = _ratio(token["buys_24h"], token["sells_24h"], token.pop("_ratio_hint", None))
    token["age_hours"] = _age_hours(token["created_at"], token.pop("_age_hint", None), now)
    token["provenance"] = classify_provenance(
        token["dex_id"], token["address"], token["url"] or "", token["age_hours"], token["liquidity"],
    )
    token["is_pump_fun_style"] = token["provenance"] != "dex"
    return token


def _from_pair(pair: Dict, source: str, now: int) -> Optional[Dict]:
    base = pair.get("baseToken") or {}
    address = base.get("address") or ""
    if pair.get("chainId") != "solana" or not is_valid_solana_address(address):
        return None

    price_change = pair.get("priceChange") or {}
    volume = pair.get("volume") or {}
    txns = pair.get("txns") or {}
    info = pair.get("info") or {}
    h24 = txns.get("h24") or {}
    h1 = txns.get("h1") or {}
    m5 = txns.get("m5") or {}

    buys_24h, sells_24h = _count(h24.get("buys")), _count(h24.get("sells"))
    buys_1h, sells_1h = _count(h1.get("buys")), _count(h1.get("sells"))
    created_at = _count(pair.get("pairCreatedAt")) or None

    token = {
        "address": address,
        "symbol": clean_text(base.get("symbol"), 20) or "???",
        "name": clean_text(base.get("name"), 100) or "Unknown",
        "description": clean_text(info.get("description"), 500),
        "pair_address": str(pair.get("pairAddress") or ""),
        "dex_id": str(pair.get("dexId") or "").lower(),
        "chain_id": "solana",
        "url": sanitize_url(pair.get("url")),
        "image_url": sanitize_url(info.get("imageUrl")),
        "websites": [u for u in (sanitize_url(w.get("url")) for w in info.get("websites") or [] if isinstance(w, dict)) if u],
        "price": to_number(pair.get("priceUsd")),
        "liquidity": to_number((pair.get("liquidity") or {}).get("usd")),
        "market_cap": to_number(pair.get("marketCap") or pair.get("fdv")),
        "buys_24h": buys_24h,
        "sells_24h": sells_24h,
        "buys_1h": buys_1h,
        "sells_1h": sells_1h,
        "buys_5m": _count(m5.get("buys")),
        "sells_5m": _count(m5.get("sells")),
        "txns_24h": buys_24h + sells_24h,
        "txns_1h": buys_1h + sells_1h,
        "created_at": created_at,
        "is_boosted": to_number((pair.get("boosts") or {}).get("active")) > 0,
        "has_socials": bool(info.get("socials")),
        "source": source,
        "sources": [source],
    }
    for period in PERIODS:
        raw_key = _RAW_PERIOD_KEYS[period]
        token[f"price_change_{period}"] = to_number(price_change.get(raw_key))
        token[f"volume_{period}"] = to_number(volume.get(raw_key))
    return _finish(token, now)


def _from_token(record: Dict, source: str, now: int) -> Optional[Dict]:
    address = record.get("address") or ""
    if record.get("chain_id", "solana") != "solana" or not is_valid_solana_address(address):
        return None

    buys_24h, sells_24h = _count(record.get("buys_24h")), _count(record.get("sells_24h"))
    buys_1h, sells_1h = _count(record.get("buys_1h")), _count(record.get("sells_1h"))
    record_source = record.get("source") or source

    token = {
        "address": address,
        "symbol": clean_text(record.get("symbol"), 20) or "???",
        "name": clean_text(record.get("name"), 100) or "Unknown",
        "description": clean_text(record.get("description"), 500),
        "pair_address": str(record.get("pair_address") or ""),
        "dex_id": str(record.get("dex_id") or "").lower(),
        "chain_id": "solana",
        "url": sanitize_url(record.get("url")),
        "image_url": sanitize_url(record.get("image_url")),
        "websites": [u for u in (sanitize_url(w) for w in record.get("websites") or []) if u],
        "price": to_number(record.get("price")),
        "liquidity": to_number(record.get("liquidity")),
        "market_cap": to_number(record.get("market_cap")),
        "buys_24h": buys_24h,
        "sells_24h": sells_24h,
        "buys_1h": buys_1h,
        "sells_1h": sells_1h,
        "buys_5m": _count(record.get("buys_5m")),
        "sells_5m": _count(record.get("sells_5m")),
        "txns_24h": buys_24h + sells_24h if buys_24h + sells_24h else _count(record.get("txns_24h")),
        "txns_1h": buys_1h + sells_1h if buys_1h + sells_1h else _count(record.get("txns_1h")),
        "created_at": _count(record.get("created_at")) or None,
        "is_boosted": bool(record.get("is_boosted")),
        "has_socials": bool(record.get("has_socials")),
        "source": record_source,
        "sources": list(record.get("sources") or [record_source]),
        "_ratio_hint": record.get("buy_ratio"),
        "_age_hint": record.get("age_hours"),
    }
    for period in PERIODS:
        token[f"price_change_{period}"] = to_number(record.get(f"price_change_{period}"))
        token[f"volume_{period}"] = to_number(record.get(f"volume_{period}"))
    return _finish(token, now)


def normalize(record: Dict, source: str = "dexscreener", now: Optional[int] = None) -> Optional[Dict]:
    """Return the canonical token for ``record`` or ``None`` when it must be dropped.

    Accepts both raw DexScreener pairs and tokens produced by this function,
    so normalizing twice with the same ``now`` is a no-op.
    """
    if not isinstance(record, dict):
        return None
    now = now_ms() if now is None else now
    if "baseToken" in record:
        return _from_pair(record, source, now)
    return _from_token(record, source, now)


def normalize_all(records: Iterable[Dict], source: str = "dexscreener", now: Optional[int] = None) -> List[Dict]:
    now = now_ms() if now is None else now
    tokens = []
    dropped = 0
    for record in records:
        token = normalize(record, source, now)
        if token is None:
            dropped += 1
            continue
        tokens.append(token)
    if dropped:
        logger.debug("Normalizer dropped %d %s records", dropped, source)
    return tokens
