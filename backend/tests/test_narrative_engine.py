"""Tests for narrative detection: taxonomy, buckets, relevance"""
import pytest
from engine.narrative_engine import (
    bucket_mentions,
    build_narratives,
    build_social_trends,
    categorize,
    relevance_score,
    sample_narratives,
    score_narratives,
    token_engagement,
)


def _token(address, name, symbol, **fields):
    token = {
        "address": address, "name": name, "symbol": symbol, "description": "",
        "price_change_1h": 0, "volume_24h": 10_000, "heat_score": 10,
        "source": "dexscreener", "sources": ["dexscreener"], "is_boosted": False,
    }
    token.update(fields)
    return token


def _bucket(category, sources=(), mentions=1, engagement="medium", tokens=(), launches=(), trending=()):
    return {
        "category": category,
        "sources": set(sources),
        "mentions": mentions,
        "engagement": engagement,
        "tokens": list(tokens),
        "launches": list(launches),
        "trending": list(trending),
    }


class TestCategorize:
    def test_keyword_match(self):
        assert categorize("Autonomous AI agent coin") == "AI_TECH"
        assert categorize("Trump 2028") == "POLITICAL"
        assert categorize("Dog wif hat") == "ANIMAL"

    def test_declaration_order_wins(self):
        assert categorize("AI dog") == "AI_TECH"

    def test_short_keywords_match_whole_words(self):
        assert categorize("Raiden") == "EMERGING"
        assert categorize("said the cat") == "ANIMAL"

    def test_case_insensitive(self):
        assert categorize("PEPE") == "MEME_CULTURE"

    def test_default(self):
        assert categorize("zzqx") == "EMERGING"
        assert categorize("") == "EMERGING"
        assert categorize(None) == "EMERGING"


class TestEngagement:
    def test_tiers(self):
        assert token_engagement({"price_change_1h": 35}) == "viral"
        assert token_engagement({"volume_24h": 600_000}) == "viral"
        assert token_engagement({"price_change_1h": 15}) == "high"
        assert token_engagement({"volume_24h": 150_000}) == "high"
        assert token_engagement({}) == "medium"


class TestBucketMentions:
    def test_sources_are_unioned(self):
        tokens = [_token("A", "Doge Killer", "DK"), _token("B", "Cat Coin", "CAT")]
        trending = [{"rank": 1, "name": "Shiba", "symbol": "SHIB", "source": "coingecko"}]
        launches = [{"address": "C", "name": "Puppy", "symbol": "PUP", "engagement": "high"}]
        buckets = bucket_mentions(tokens, launches, trending)
        animal = buckets["ANIMAL"]
        assert animal["mentions"] == 4
        assert animal["sources"] == {"dexscreener", "coingecko", "pumpfun"}
        assert animal["engagement"] == "high"

    def test_engagement_only_rises(self):
        tokens = [_token("A", "Frog", "FRG", price_change_1h=40), _token("B", "Frog Two", "FRG2")]
        buckets = bucket_mentions(tokens)
        assert buckets["ANIMAL"]["engagement"] == "viral"

    def test_categories_only_reinforce(self):
        tokens = [_token("A", "Pepe", "PEPE")]
        categories = [{"name": "Meme", "change_24h": 8}, {"name": "Gaming", "change_24h": 12}]
        buckets = bucket_mentions(tokens, categories=categories)
        assert buckets["MEME_CULTURE"]["mentions"] == 2
        assert "coingecko" in buckets["MEME_CULTURE"]["sources"]
        assert "GAMING" not in buckets


class TestRelevanceScore:
    def test_formula(self):
        bucket = _bucket("ANIMAL", sources={"dexscreener"}, mentions=2,
                         tokens=[_token("A", "Dog", "DOG")])
        # 25 sources + 20 mentions + 10 engagement + 5 token present
        assert relevance_score(bucket) == 60

    def test_mentions_capped(self):
        low = _bucket("ANIMAL", sources={"dexscreener"}, mentions=3)
        high = _bucket("ANIMAL", sources={"dexscreener"}, mentions=30)
        assert relevance_score(low) == relevance_score(high)

    def test_actionable_category_bonus(self):
        plain = _bucket("ANIMAL", sources={"dexscreener"})
        actionable = _bucket("AI_TECH", sources={"dexscreener"})
        assert relevance_score(actionable) - relevance_score(plain) == 10

    def test_source_bonus(self):
        launches = [{"is_new": True, "reply_count": 30, "market_cap": 60_000}]
        tokens = [_token("A", "Dog", "DOG", is_boosted=True, price_change_1h=25)]
        bucket = _bucket("ANIMAL", sources={"pumpfun"}, launches=launches)
        # 25 + 10 + 10 + (20 + 10 + 10) + 5
        assert relevance_score(bucket) == 90
        bucket = _bucket("ANIMAL", sources={"dexscreener"}, tokens=tokens)
        # 25 + 10 + 10 + (15 + 10) + 5
        assert relevance_score(bucket) == 75

    def test_clamped_to_100(self):
        bucket = _bucket("AI_TECH", sources={"dexscreener", "coingecko", "pumpfun"}, mentions=5,
                         engagement="viral", tokens=[_token("A", "AI", "AI", is_boosted=True)])
        assert relevance_score(bucket) == 100


class TestScoreNarratives:
    def test_threshold_is_exclusive(self):
        buckets = {"ANIMAL": _bucket("ANIMAL", sources=(), mentions=1)}
        assert score_narratives(buckets) == []

    def test_order_and_shape(self):
        buckets = {
            "ANIMAL": _bucket("ANIMAL", sources={"dexscreener"}, mentions=2,
                              tokens=[_token("A", "Dog", "DOG", heat_score=5), _token("B", "Wif", "WIF", heat_score=50)]),
            "AI_TECH": _bucket("AI_TECH", sources={"dexscreener", "coingecko"}, mentions=1,
                               trending=[{"symbol": "GPT"}]),
        }
        narratives = score_narratives(buckets)
        assert [n["category"] for n in narratives] == ["AI_TECH", "ANIMAL"]
        animal = narratives[1]
        assert animal["text"] == "Animal coins: $WIF, $DOG"
        assert animal["token_ref"] == {"address": "B", "symbol": "WIF"}
        assert animal["sources"] == ["dexscreener"]
        assert narratives[0]["token_ref"] is None

    def test_ties_break_on_mentions_then_category(self):
        buckets = {
            "GAMING": _bucket("GAMING", sources={"coingecko"}, mentions=2),
            "DEFI": _bucket("DEFI", sources={"coingecko"}, mentions=2),
            "ANIMAL": _bucket("ANIMAL", sources={"coingecko"}, mentions=1, engagement="high"),
        }
        narratives = score_narratives(buckets)
        assert [n["category"] for n in narratives] == ["DEFI", "GAMING", "ANIMAL"]

    def test_limit(self):
        tokens = [_token(str(i), name, name) for i, name in enumerate(
            ["ai", "trump", "elon", "pepe", "dog", "game", "news", "swap", "solana", "pizza", "zzz"])]
        assert len(build_narratives(tokens, limit=3)) == 3
        assert len(build_narratives(tokens)) == 11


class TestSamples:
    def test_samples_are_flagged(self):
        samples = sample_narratives()
        assert len(samples) == 5
        assert all(s["is_sample"] for s in samples)
        assert all(s["token_ref"] is None for s in samples)


class TestSocialTrends:
    def test_dedup_by_symbol(self):
        trending = [{"rank": 1, "name": "Bonk", "symbol": "BONK"}, {"rank": 2, "name": "Wif", "symbol": "WIF"}]
        tokens = [_token("A", "Bonk", "bonk"), _token("B", "Popcat", "POPCAT")]
        result = build_social_trends(trending, [{"name": "Meme"}], tokens)
        symbols = [t["symbol"] for t in result["aggregatedTrends"]]
        assert symbols == ["BONK", "WIF", "POPCAT"]
        assert len(result["dexscreenerTrending"]) == 2
        assert result["hotCategories"] == [{"name": "Meme"}]

    def test_empty(self):
        result = build_social_trends([], [], [])
        assert result["aggregatedTrends"] == []
