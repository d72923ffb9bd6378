"""Tests for all collectors: mocked upstream APIs, parsing and error mapping"""
import time

import httpx
import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from collectors.http_client import SourceResult, expect_list, fetch_json, run_source
from engine.errors import (
    UpstreamShapeMismatch,
    UpstreamThrottled,
    UpstreamTimeout,
    UpstreamUnavailable,
)

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _addr(i):
    return (ALPHABET[i % 58] + ALPHABET[i // 58 % 58]) * 22


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


def _client(mock_get):
    instance = AsyncMock()
    instance.get = mock_get
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    return instance


def _pair(address, chain="solana", volume_24h=1_000, **overrides):
    pair = {
        "chainId": chain,
        "dexId": "raydium",
        "baseToken": {"address": address, "name": "Test", "symbol": "TST"},
        "volume": {"h24": volume_24h},
        "liquidity": {"usd": 20_000},
        "marketCap": 200_000,
        "pairCreatedAt": int(time.time() * 1000) - 5 * 3_600_000,
        "info": {},
    }
    pair.update(overrides)
    return pair


# ── Shared HTTP helpers ──

class TestFetchJson:
    @pytest.mark.asyncio
    async def test_ok(self):
        async def mock_get(url, **kwargs):
            return _response(payload={"pairs": []})
        assert await fetch_json(_client(mock_get), "https://x", "src") == {"pairs": []}

    @pytest.mark.asyncio
    async def test_429_is_throttled(self):
        async def mock_get(url, **kwargs):
            return _response(429)
        with pytest.raises(UpstreamThrottled):
            await fetch_json(_client(mock_get), "https://x", "src")

    @pytest.mark.asyncio
    async def test_5xx_is_unavailable(self):
        async def mock_get(url, **kwargs):
            return _response(503)
        with pytest.raises(UpstreamUnavailable):
            await fetch_json(_client(mock_get), "https://x", "src")

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def mock_get(url, **kwargs):
            raise httpx.ConnectTimeout("slow")
        with pytest.raises(UpstreamTimeout):
            await fetch_json(_client(mock_get), "https://x", "src")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        async def mock_get(url, **kwargs):
            raise httpx.ConnectError("refused")
        with pytest.raises(UpstreamUnavailable):
            await fetch_json(_client(mock_get), "https://x", "src")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async def mock_get(url, **kwargs):
            resp = _response()
            resp.json.side_effect = ValueError("bad json")
            return resp
        with pytest.raises(UpstreamShapeMismatch):
            await fetch_json(_client(mock_get), "https://x", "src")


class TestExpectList:
    def test_unwraps_key(self):
        assert expect_list({"pairs": [{"a": 1}, "junk"]}, "src", key="pairs") == [{"a": 1}]

    def test_missing_key_is_empty(self):
        assert expect_list({"pairs": None}, "src", key="pairs") == []

    def test_wrong_shape(self):
        with pytest.raises(UpstreamShapeMismatch):
            expect_list({"pairs": {}}, "src", key="pairs")
        with pytest.raises(UpstreamShapeMismatch):
            expect_list([], "src", key="pairs")
        with pytest.raises(UpstreamShapeMismatch):
            expect_list("text", "src")


class TestRunSource:
    @pytest.mark.asyncio
    async def test_absorbs_upstream_errors(self):
        async def fetch():
            raise UpstreamThrottled("src", "429")
        result = await run_source("src", fetch)
        assert result.records == ()
        assert result.throttled is True
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_records_become_tuple(self):
        async def fetch(n):
            return [{"i": i} for i in range(n)]
        result = await run_source("src", fetch, 2)
        assert result == SourceResult("src", records=({"i": 0}, {"i": 1}))


# ── DexScreener collector tests ──

class TestDexScreenerCollector:
    @pytest.mark.asyncio
    async def test_search_keeps_solana_only(self):
        from collectors.dexscreener_collector import search_pairs

        calls = []

        async def mock_get(url, **kwargs):
            calls.append(kwargs.get("params"))
            return _response(payload={"pairs": [_pair(_addr(1)), _pair("0xabc", chain="ethereum")]})

        pairs = await search_pairs(_client(mock_get), "pepe")
        assert [p["baseToken"]["address"] for p in pairs] == [_addr(1)]
        assert calls == [{"q": "pepe"}]

    @pytest.mark.asyncio
    async def test_profile_addresses_deduped(self):
        from collectors.dexscreener_collector import latest_profile_addresses

        profiles = [
            {"chainId": "solana", "tokenAddress": _addr(1)},
            {"chainId": "solana", "tokenAddress": _addr(1)},
            {"chainId": "base", "tokenAddress": "0xdef"},
            {"chainId": "solana", "tokenAddress": _addr(2)},
        ]

        async def mock_get(url, **kwargs):
            return _response(payload=profiles)

        assert await latest_profile_addresses(_client(mock_get)) == [_addr(1), _addr(2)]

    @pytest.mark.asyncio
    async def test_tokens_batch_chunks_and_keeps_best_pair(self):
        from collectors.dexscreener_collector import BATCH_SIZE, tokens_batch

        addresses = [_addr(i) for i in range(65)]
        urls = []

        async def mock_get(url, **kwargs):
            urls.append(url)
            chunk = url.rsplit("/", 1)[1].split(",")
            pairs = [_pair(a) for a in chunk]
            if _addr(0) in chunk:
                pairs.append(_pair(_addr(0), volume_24h=9_999, dexId="orca"))
            return _response(payload=pairs)

        pairs = await tokens_batch(_client(mock_get), addresses)
        assert len(urls) == 3
        assert all(len(u.rsplit("/", 1)[1].split(",")) <= BATCH_SIZE for u in urls)
        assert len(pairs) == 65
        assert pairs[0]["dexId"] == "orca"

    def test_pump_fun_candidate(self):
        from collectors.dexscreener_collector import is_pump_fun_candidate

        now = 1_700_000_000_000
        young = _pair(_addr(1), pairCreatedAt=now - 10 * 3_600_000)
        assert is_pump_fun_candidate(young, now)
        assert not is_pump_fun_candidate(_pair(_addr(1), pairCreatedAt=now - 200 * 3_600_000), now)
        assert not is_pump_fun_candidate(dict(young, marketCap=20_000_000), now)
        assert not is_pump_fun_candidate(dict(young, liquidity={"usd": 500}), now)
        assert not is_pump_fun_candidate(dict(young, pairCreatedAt=None), now)

    @pytest.mark.asyncio
    async def test_ecosystem_filter(self):
        from collectors.dexscreener_collector import ecosystem_search

        bonk_named = _pair(_addr(1), baseToken={"address": _addr(1), "name": "Bonk Dog", "symbol": "BDOG"})
        bonk_site = _pair(_addr(2), info={"websites": [{"url": "https://letsbonk.fun/x"}]})
        unrelated = _pair(_addr(3))

        async def mock_get(url, **kwargs):
            assert kwargs["params"] == {"q": "letsbonk"}
            return _response(payload={"pairs": [bonk_named, bonk_site, unrelated]})

        pairs = await ecosystem_search(_client(mock_get), "bonk")
        assert [p["baseToken"]["address"] for p in pairs] == [_addr(1), _addr(2)]

    @pytest.mark.asyncio
    async def test_collect_search_throttled(self):
        from collectors.dexscreener_collector import collect_search

        async def mock_get(url, **kwargs):
            return _response(429)

        with patch("collectors.dexscreener_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect_search("pepe", 1.0)

        assert result.source == "dex_search"
        assert result.throttled is True
        assert result.records == ()

    @pytest.mark.asyncio
    async def test_collect_profiles(self):
        from collectors.dexscreener_collector import collect_profiles

        async def mock_get(url, **kwargs):
            if "token-profiles" in url:
                return _response(payload=[{"chainId": "solana", "tokenAddress": _addr(1)}])
            return _response(payload=[_pair(_addr(1))])

        with patch("collectors.dexscreener_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect_profiles(1.0)

        assert result.ok
        assert result.records[0]["baseToken"]["address"] == _addr(1)


# ── CoinGecko collector tests ──

class TestCoinGeckoCollector:
    @pytest.mark.asyncio
    async def test_trending_top_seven(self):
        from collectors.coingecko_collector import collect_trending

        coins = [{"item": {"name": f"Coin {i}", "symbol": f"c{i}", "market_cap_rank": i,
                           "data": {"price_change_percentage_24h": {"usd": i * 1.5}}}} for i in range(10)]

        async def mock_get(url, **kwargs):
            return _response(payload={"coins": coins})

        with patch("collectors.coingecko_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect_trending(1.0)

        assert len(result.records) == 7
        first = result.records[0]
        assert first["rank"] == 1
        assert first["symbol"] == "C0"
        assert result.records[2]["price_change_24h"] == 3.0
        assert first["source"] == "coingecko"

    @pytest.mark.asyncio
    async def test_hot_categories(self):
        from collectors.coingecko_collector import collect_categories

        categories = [
            {"name": "Meme", "market_cap_change_24h": 1.0},
            {"name": "Real World Assets", "market_cap_change_24h": 7.5},
            {"name": "Layer 2", "market_cap_change_24h": -2.0},
        ]

        async def mock_get(url, **kwargs):
            return _response(payload=categories)

        with patch("collectors.coingecko_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect_categories(1.0)

        assert [c["name"] for c in result.records] == ["Meme", "Real World Assets"]

    @pytest.mark.asyncio
    async def test_shape_mismatch(self):
        from collectors.coingecko_collector import collect_trending

        async def mock_get(url, **kwargs):
            return _response(payload=["not", "an", "object"])

        with patch("collectors.coingecko_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect_trending(1.0)

        assert isinstance(result.error, UpstreamShapeMismatch)


# ── Pump.fun collector tests ──

class TestPumpFunCollector:
    def test_coin_to_mention(self):
        from collectors.pump_fun_collector import coin_to_mention

        now = 1_700_000_000_000
        mention = coin_to_mention({
            "mint": _addr(1), "symbol": "NEW", "name": "New\nCoin", "reply_count": 60,
            "usd_market_cap": 5_000, "created_timestamp": now - 1_800_000,
        }, now)
        assert mention["name"] == "New Coin"
        assert mention["age_hours"] == 0.5
        assert mention["is_new"] is True
        assert mention["engagement"] == "viral"
        assert mention["source"] == "pumpfun"

    def test_engagement_tiers(self):
        from collectors.pump_fun_collector import coin_to_mention

        assert coin_to_mention({"reply_count": 11})["engagement"] == "high"
        assert coin_to_mention({"usd_market_cap": 25_000})["engagement"] == "high"
        assert coin_to_mention({})["engagement"] == "medium"

    @pytest.mark.asyncio
    async def test_collect_dedups_by_mint(self):
        from collectors.pump_fun_collector import MAX_COINS, collect

        sorts = []

        async def mock_get(url, **kwargs):
            sorts.append(kwargs["params"]["sort"])
            coins = [{"mint": _addr(i), "symbol": f"C{i}", "name": f"Coin {i}"} for i in range(6)]
            if kwargs["params"]["sort"] == "market_cap":
                coins = coins[3:] + [{"mint": _addr(20 + i)} for i in range(5)] + [{"mint": "bad"}]
            return _response(payload=coins)

        with patch("collectors.pump_fun_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect(1.0)

        assert sorts == ["last_trade_timestamp", "market_cap"]
        addresses = [m["address"] for m in result.records]
        assert len(addresses) == MAX_COINS
        assert len(set(addresses)) == len(addresses)
        assert addresses[:6] == [_addr(i) for i in range(6)]

    @pytest.mark.asyncio
    async def test_collect_unavailable(self):
        from collectors.pump_fun_collector import collect

        async def mock_get(url, **kwargs):
            return _response(503)

        with patch("collectors.pump_fun_collector.httpx.AsyncClient") as MockClient:
            MockClient.return_value = _client(mock_get)
            result = await collect(1.0)

        assert result.source == "pumpfun_coins"
        assert isinstance(result.error, UpstreamUnavailable)
