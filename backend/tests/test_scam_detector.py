"""Tests for scam / honeypot scoring"""
import pytest

from engine.scam_detector import adjust_confidence, detect_scam


def _clean_token(**overrides):
    token = {
        "liquidity": 50_000,
        "market_cap": 500_000,
        "buy_ratio": 0.55,
        "price_change_1h": 4,
        "price_change_6h": 8,
        "price_change_24h": 12,
        "txns_24h": 300,
        "txns_1h": 20,
        "volume_1h": 3_000,
        "volume_24h": 40_000,
        "age_hours": 30,
    }
    token.update(overrides)
    return token


def _types(check):
    return [w["type"] for w in check["warnings"]]


class TestCleanToken:
    def test_no_indicators(self):
        check = detect_scam(_clean_token())
        assert check["scam_score"] == 0
        assert check["warnings"] == []
        assert check["is_potential_honeypot"] is False
        assert check["is_high_risk"] is False
        assert check["should_filter"] is False

    def test_deterministic(self):
        token = _clean_token(buy_ratio=0.97, price_change_1h=1, txns_24h=500)
        assert detect_scam(token) == detect_scam(dict(token))


class TestIndicators:
    def test_sell_blocked_honeypot_is_filtered(self):
        token = {
            "buy_ratio": 0.98, "price_change_1h": 0.5, "txns_24h": 500,
            "volume_24h": 50_000, "liquidity": 10_000, "market_cap": 200_000,
        }
        check = detect_scam(token)
        assert check["scam_score"] >= 70
        assert check["should_filter"] is True
        assert check["is_potential_honeypot"] is True
        assert "HONEYPOT_PATTERN" in _types(check)
        assert "SELL_BLOCKED" in _types(check)

    def test_sell_blocked_threshold_inclusive(self):
        check = detect_scam(_clean_token(buy_ratio=0.98, price_change_1h=-4))
        assert "SELL_BLOCKED" in _types(check)
        check = detect_scam(_clean_token(buy_ratio=0.979, price_change_1h=-4))
        assert "SELL_BLOCKED" not in _types(check)

    def test_extreme_mcap_liquidity(self):
        check = detect_scam({"liquidity": 500, "market_cap": 500_000})
        assert "EXTREME_MCAP_LIQ" in _types(check)
        assert check["is_high_risk"] is True
        warning = check["warnings"][0]
        assert warning["severity"] == "critical"
        assert warning["message"].startswith("MC/Liq 1000x")

    def test_high_mcap_liquidity(self):
        check = detect_scam(_clean_token(market_cap=3_000_000))
        assert _types(check) == ["HIGH_MCAP_LIQ"]
        assert check["scam_score"] == 20
        assert check["is_high_risk"] is False

    def test_zero_activity(self):
        check = detect_scam(_clean_token(txns_1h=0, volume_1h=0))
        assert _types(check) == ["ZERO_ACTIVITY"]
        assert check["scam_score"] == 15

    def test_fake_market_cap(self):
        check = detect_scam(_clean_token(liquidity=900, market_cap=80_000))
        assert "FAKE_MCAP" not in _types(check)
        check = detect_scam(_clean_token(liquidity=900, market_cap=150_000))
        assert "FAKE_MCAP" in _types(check)
        assert check["is_high_risk"] is True

    def test_coordinated_pump(self):
        check = detect_scam(_clean_token(age_hours=0.2, price_change_1h=600, buy_ratio=0.92))
        assert "COORDINATED_PUMP" in _types(check)

    def test_slow_bleed_flags_honeypot(self):
        check = detect_scam(_clean_token(
            buy_ratio=0.6, price_change_1h=-6, price_change_6h=-11, price_change_24h=-16,
        ))
        assert _types(check) == ["SLOW_BLEED"]
        assert check["scam_score"] == 25
        assert check["is_potential_honeypot"] is True
        assert check["should_filter"] is False

    def test_sell_tax(self):
        check = detect_scam(_clean_token(buy_ratio=0.8, price_change_1h=-12, price_change_6h=5))
        assert "SELL_TAX" in _types(check)

    def test_score_capped_at_100(self):
        token = {
            "liquidity": 500, "market_cap": 500_000, "buy_ratio": 0.99, "price_change_1h": 0,
            "txns_24h": 1000, "volume_24h": 50_000,
        }
        assert detect_scam(token)["scam_score"] == 100

    def test_high_risk_from_total(self):
        # zero activity (15) + slow bleed (25) = 40
        check = detect_scam(_clean_token(
            txns_1h=0, volume_1h=0, buy_ratio=0.6,
            price_change_1h=-6, price_change_6h=-11, price_change_24h=-16,
        ))
        assert check["scam_score"] == 40
        assert check["is_high_risk"] is True
        assert check["should_filter"] is False


class TestAdjustConfidence:
    @pytest.mark.parametrize("score,expected", [
        (0, 70),
        (5, 60),
        (20, 50),
        (39, 50),
        (40, 35),
        (45, 35),
        (60, 20),
        (100, 20),
    ])
    def test_tiers(self, score, expected):
        assert adjust_confidence(70, score) == expected

    def test_floor(self):
        assert adjust_confidence(15, 65) == 10
        assert adjust_confidence(10, 5) == 10
