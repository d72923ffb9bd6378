"""Market pulse: cheap derived metrics over the published feed (no upstream calls)."""
from datetime import datetime, timezone
from typing import Dict, List, Optional

PLATFORMS = ("pumpfun", "raydium", "meteora", "orca", "other")
DEX_PLATFORM = {
    "pumpfun": "pumpfun",
    "pumpswap": "pumpfun",
    "raydium": "raydium",
    "meteora": "meteora",
    "orca": "orca",
}
# Attribution of the unlabelled bucket when split_other is enabled
OTHER_SPLIT = {"meteora": 0.6, "orca": 0.4}


def platform_volumes(tokens: List[Dict], split_other: bool = False) -> Dict[str, float]:
    volumes = {p: 0.0 for p in PLATFORMS}
    for token in tokens:
        platform = DEX_PLATFORM.get(token.get("dex_id", ""), "other")
        volumes[platform] += token.get("volume_24h", 0)
    if split_other and volumes["other"] > 0 and volumes["meteora"] == 0 and volumes["orca"] == 0:
        for platform, share in OTHER_SPLIT.items():
            volumes[platform] = volumes["other"] * share
        volumes["other"] = 0.0
    return {p: round(v, 2) for p, v in volumes.items()}


def momentum(token: Dict) -> float:
    return (
        token.get("price_change_5m", 0) * 4
        + token.get("price_change_1h", 0) * 2
        + token.get("price_change_24h", 0) * 0.5
    )


def compute_pulse(tokens: List[Dict], narratives: List[Dict] = (), split_other: bool = False,
                  now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now(timezone.utc)
    top = max(tokens, key=momentum) if tokens else None
    return {
        "platform_volumes": platform_volumes(tokens, split_other),
        "other_split_applied": split_other,
        "token_count": len(tokens),
        "hot_movers": sum(1 for t in tokens if t.get("price_change_1h", 0) > 20),
        "urgent_count": sum(1 for t in tokens if t.get("is_urgent")),
        "new_launches": sum(1 for t in tokens if t.get("age_hours", float("inf")) < 24),
        "total_volume_1h": round(sum(t.get("volume_1h", 0) for t in tokens), 2),
        "avg_market_cap": round(sum(t.get("market_cap", 0) for t in tokens) / len(tokens), 2) if tokens else 0,
        "top_gainer": {
            "address": top["address"],
            "symbol": top.get("symbol"),
            "momentum": round(momentum(top), 2),
        } if top else None,
        "hot_narrative": narratives[0]["category"] if narratives else None,
        "updated_at": now.isoformat(),
    }
