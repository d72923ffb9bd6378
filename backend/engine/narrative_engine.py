"""Narrative detection: keyword taxonomy -> category buckets -> relevance score.

Feed tokens, Pump.fun launches and CoinGecko trending items are all treated
as *mentions*. Mentions are bucketed by category and each bucket is scored
on cross-source attention, engagement and freshness.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

MAX_NARRATIVES = 12
MIN_RELEVANCE = 20

# Declaration order is match priority
NARRATIVE_CATEGORIES: Dict[str, List[str]] = {
    "AI_TECH": ["ai", "artificial intelligence", "gpt", "chatgpt", "agent", "bot", "llm",
                "machine learning", "virtual", "neural", "sentient", "autonomous"],
    "POLITICAL": ["trump", "biden", "election", "politics", "government", "maga", "vote",
                  "president", "political", "melania"],
    "CELEBRITY": ["elon", "musk", "kanye", "drake", "celebrity", "famous", "influencer", "snoop"],
    "MEME_CULTURE": ["meme", "viral", "funny", "lol", "based", "cope", "wojak", "pepe", "npc",
                     "degen", "moon", "pump", "chad", "sigma"],
    "ANIMAL": ["dog", "cat", "frog", "shiba", "doge", "animal", "pet", "inu", "wif", "bonk",
               "popcat", "kitty", "puppy"],
    "GAMING": ["game", "gaming", "esports", "twitch", "streamer", "play", "nft", "pixel"],
    "NEWS_EVENT": ["breaking", "just in", "happening", "news", "announcement", "revealed"],
    "DEFI": ["swap", "yield", "stake", "farm", "lend", "vault", "protocol", "bridge", "defi"],
    "SOLANA_META": ["sol", "solana", "raydium", "jupiter", "jup", "jito", "marinade", "orca", "phantom"],
    "FOOD_OBJECT": ["pizza", "burger", "banana", "taco", "coffee", "beer", "rock", "hat"],
}
DEFAULT_CATEGORY = "EMERGING"

CATEGORY_LABELS = {
    "AI_TECH": "AI / Tech",
    "POLITICAL": "Political",
    "CELEBRITY": "Celebrity",
    "MEME_CULTURE": "Meme culture",
    "ANIMAL": "Animal coins",
    "GAMING": "Gaming",
    "NEWS_EVENT": "News event",
    "DEFI": "DeFi",
    "SOLANA_META": "SOL meta",
    "FOOD_OBJECT": "Food / Object",
    "EMERGING": "Emerging",
}

ACTIONABLE_CATEGORIES = {"AI_TECH", "CELEBRITY", "POLITICAL", "NEWS_EVENT"}

ENGAGEMENT_BONUS = {"viral": 30, "high": 20, "trending": 15, "medium": 10}
_ENGAGEMENT_RANK = {"medium": 0, "trending": 1, "high": 2, "viral": 3}


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Short keywords ("ai", "sol", "cat") only match whole words
    if len(keyword) <= 3:
        return re.compile(rf"\b{re.escape(keyword)}\b")
    return re.compile(re.escape(keyword))


_PATTERNS = {
    category: [_keyword_pattern(kw) for kw in keywords]
    for category, keywords in NARRATIVE_CATEGORIES.items()
}


def categorize(text: str) -> str:
    lower = (text or "").lower()
    for category, patterns in _PATTERNS.items():
        if any(p.search(lower) for p in patterns):
            return category
    return DEFAULT_CATEGORY


def _mention_text(item: Dict) -> str:
    return " ".join(str(item.get(k) or "") for k in ("name", "symbol", "description"))


def token_engagement(token: Dict) -> str:
    change_1h = token.get("price_change_1h", 0)
    volume_24h = token.get("volume_24h", 0)
    if change_1h > 30 or volume_24h > 500_000:
        return "viral"
    if change_1h > 10 or volume_24h > 100_000:
        return "high"
    return "medium"


def _new_bucket(category: str) -> Dict:
    return {
        "category": category,
        "sources": set(),
        "mentions": 0,
        "engagement": "medium",
        "tokens": [],
        "launches": [],
        "trending": [],
    }


def _raise_engagement(bucket: Dict, level: str):
    if _ENGAGEMENT_RANK[level] > _ENGAGEMENT_RANK[bucket["engagement"]]:
        bucket["engagement"] = level


def bucket_mentions(tokens: Iterable[Dict], launches: Iterable[Dict] = (),
                    trending: Iterable[Dict] = (), categories: Iterable[Dict] = ()) -> Dict[str, Dict]:
    buckets: Dict[str, Dict] = {}

    def bucket_for(text: str) -> Dict:
        category = categorize(text)
        if category not in buckets:
            buckets[category] = _new_bucket(category)
        return buckets[category]

    for token in tokens:
        bucket = bucket_for(_mention_text(token))
        bucket["mentions"] += 1
        bucket["sources"].update(token.get("sources") or [token.get("source", "dexscreener")])
        bucket["tokens"].append(token)
        _raise_engagement(bucket, token_engagement(token))

    for launch in launches:
        bucket = bucket_for(_mention_text(launch))
        bucket["mentions"] += 1
        bucket["sources"].add("pumpfun")
        bucket["launches"].append(launch)
        _raise_engagement(bucket, launch.get("engagement", "medium"))

    for coin in trending:
        bucket = bucket_for(_mention_text(coin))
        bucket["mentions"] += 1
        bucket["sources"].add("coingecko")
        bucket["trending"].append(coin)
        _raise_engagement(bucket, "trending")

    for cat in categories:
        category = categorize(cat.get("name", ""))
        # categories only reinforce buckets that already have mentions
        if category == DEFAULT_CATEGORY or category not in buckets:
            continue
        bucket = buckets[category]
        bucket["mentions"] += 1
        bucket["sources"].add("coingecko")
        _raise_engagement(bucket, "trending")

    return buckets


def _source_bonus(bucket: Dict) -> int:
    bonus = 0
    launches = bucket["launches"]
    if launches:
        if any(l.get("is_new") for l in launches):
            bonus += 20
        elif any(l.get("is_fresh") for l in launches):
            bonus += 10
        if any(l.get("reply_count", 0) > 20 for l in launches):
            bonus += 10
        if any(l.get("market_cap", 0) > 50_000 for l in launches):
            bonus += 10
    dex_tokens = [t for t in bucket["tokens"] if t.get("source") != "pumpfun"]
    if any(t.get("is_boosted") for t in dex_tokens):
        bonus += 15
    if any(t.get("price_change_1h", 0) > 20 for t in dex_tokens):
        bonus += 10
    return bonus


def relevance_score(bucket: Dict) -> int:
    score = 25 * len(bucket["sources"])
    score += min(10 * bucket["mentions"], 30)
    score += ENGAGEMENT_BONUS[bucket["engagement"]]
    score += _source_bonus(bucket)
    if bucket["category"] in ACTIONABLE_CATEGORIES:
        score += 10
    if bucket["tokens"] or bucket["launches"]:
        score += 5
    return min(score, 100)


def _token_ref(bucket: Dict) -> Optional[Dict]:
    if bucket["tokens"]:
        top = max(bucket["tokens"], key=lambda t: t.get("heat_score", 0))
        return {"address": top["address"], "symbol": top.get("symbol", "")}
    if bucket["launches"]:
        top = bucket["launches"][0]
        return {"address": top.get("address"), "symbol": top.get("symbol", "")}
    return None


def _narrative_text(bucket: Dict) -> str:
    ranked = sorted(bucket["tokens"], key=lambda t: -t.get("heat_score", 0))
    symbols = [t.get("symbol", "") for t in ranked]
    symbols += [l.get("symbol", "") for l in bucket["launches"]]
    symbols += [c.get("symbol", "") for c in bucket["trending"]]
    unique = [s for s in dict.fromkeys(symbols) if s][:3]
    label = CATEGORY_LABELS[bucket["category"]]
    if not unique:
        return f"{label} narrative"
    return f"{label}: " + ", ".join(f"${s}" for s in unique)


def score_narratives(buckets: Dict[str, Dict], limit: int = MAX_NARRATIVES) -> List[Dict]:
    narratives = []
    for bucket in buckets.values():
        score = relevance_score(bucket)
        if score <= MIN_RELEVANCE:
            continue
        narratives.append({
            "category": bucket["category"],
            "label": CATEGORY_LABELS[bucket["category"]],
            "text": _narrative_text(bucket),
            "sources": sorted(bucket["sources"]),
            "mentions": bucket["mentions"],
            "engagement": bucket["engagement"],
            "relevance_score": score,
            "token_ref": _token_ref(bucket),
        })
    narratives.sort(key=lambda n: (-n["relevance_score"], -n["mentions"], n["category"]))
    return narratives[:limit]


def build_narratives(tokens: Iterable[Dict], launches: Iterable[Dict] = (), trending: Iterable[Dict] = (),
                     categories: Iterable[Dict] = (), limit: int = MAX_NARRATIVES) -> List[Dict]:
    """Categorize every mention and return the top narratives by relevance."""
    buckets = bucket_mentions(tokens, launches, trending, categories)
    narratives = score_narratives(buckets, limit)
    logger.info("Narratives: %d buckets -> %d narratives", len(buckets), len(narratives))
    return narratives


def sample_narratives() -> List[Dict]:
    """Placeholder set served only before any live data exists. Always flagged."""
    samples = [
        ("New PumpFun launch trending", "MEME_CULTURE", "viral", 85, ["pumpfun", "dexscreener"],
         "Check recent PumpFun launches"),
        ("AI agent narratives heating up", "AI_TECH", "high", 78, ["coingecko", "dexscreener"],
         "Watch for new AI agent tokens"),
        ("Solana memecoin meta strong", "MEME_CULTURE", "high", 72, ["dexscreener"],
         "Volume flowing to SOL memes"),
        ("Political tokens seeing action", "POLITICAL", "medium", 55, ["dexscreener"],
         "Check election-related tokens"),
        ("Animal coin rotation starting", "ANIMAL", "medium", 48, ["pumpfun"],
         "Watch for new animal memes"),
    ]
    return [
        {
            "category": category,
            "label": CATEGORY_LABELS[category],
            "text": text,
            "sources": sources,
            "mentions": 0,
            "engagement": engagement,
            "relevance_score": score,
            "token_ref": None,
            "suggestion": suggestion,
            "is_sample": True,
        }
        for text, category, engagement, score, sources, suggestion in samples
    ]


def build_social_trends(trending: List[Dict], categories: List[Dict], tokens: List[Dict]) -> Dict:
    """CoinGecko trending + top feed tokens + hot categories, deduplicated by symbol."""
    dex_trending = [
        {
            "rank": index + 1,
            "name": t.get("name", "Unknown"),
            "symbol": t.get("symbol", "???"),
            "address": t.get("address"),
            "price_change_24h": t.get("price_change_24h", 0),
            "price_change_1h": t.get("price_change_1h", 0),
            "volume_24h": t.get("volume_24h", 0),
            "source": "dexscreener",
        }
        for index, t in enumerate(tokens[:7])
    ]
    cg_trending = list(trending[:7])

    seen = set()
    aggregated = []
    for item in sorted(cg_trending + dex_trending, key=lambda i: i["rank"]):
        key = (item.get("symbol") or "").upper()
        if not key or key in seen:
            continue
        seen.add(key)
        aggregated.append(item)

    return {
        "coingeckoTrending": cg_trending,
        "dexscreenerTrending": dex_trending,
        "hotCategories": list(categories[:5]),
        "aggregatedTrends": aggregated[:10],
    }
