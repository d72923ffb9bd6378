"""Tests for the heat score and feed ordering"""
import pytest
from engine.scorer import age_bonus, heat_score, rank_tokens, sort_key


class TestAgeBonus:
    def test_tiers(self):
        assert age_bonus(0.5) == 40
        assert age_bonus(23.9) == 40
        assert age_bonus(24) == 20
        assert age_bonus(71) == 20
        assert age_bonus(72) == 0

    def test_unknown_age(self):
        assert age_bonus(float("inf")) == 0


class TestHeatScore:
    def test_launch_pump(self):
        token = {
            "price_change_5m": 25, "price_change_1h": 30, "price_change_6h": 0,
            "volume_24h": 120_000, "txns_24h": 0, "age_hours": 0.5, "is_urgent": True,
        }
        score = heat_score(token)
        assert score == pytest.approx(422.0)
        assert score > 300

    def test_uses_absolute_moves(self):
        up = {"price_change_5m": 10, "price_change_1h": -20, "price_change_6h": 4}
        down = {"price_change_5m": -10, "price_change_1h": 20, "price_change_6h": -4}
        assert heat_score(up) == heat_score(down) == pytest.approx(80 + 80 + 6)

    def test_volume_and_txns(self):
        assert heat_score({"volume_24h": 50_000, "txns_24h": 300}) == pytest.approx(8.0)

    def test_urgent_bonus(self):
        base = {"price_change_1h": 5, "age_hours": 50}
        assert heat_score({**base, "is_urgent": True}) - heat_score(base) == pytest.approx(50)

    def test_empty_token(self):
        assert heat_score({}) == 0


class TestRankTokens:
    def test_sorts_by_heat_descending(self):
        tokens = [
            {"address": "A", "heat_score": 10, "confidence": 50},
            {"address": "B", "heat_score": 30, "confidence": 50},
            {"address": "C", "heat_score": 20, "confidence": 50},
        ]
        assert [t["address"] for t in rank_tokens(tokens)] == ["B", "C", "A"]

    def test_tie_break_confidence_then_address(self):
        tokens = [
            {"address": "Z", "heat_score": 10, "confidence": 40},
            {"address": "Y", "heat_score": 10, "confidence": 60},
            {"address": "X", "heat_score": 10, "confidence": 40},
        ]
        assert [t["address"] for t in rank_tokens(tokens)] == ["Y", "X", "Z"]

    def test_total_order(self):
        tokens = [{"address": a, "heat_score": h, "confidence": c}
                  for a, h, c in [("D", 5, 10), ("B", 5, 10), ("C", 9, 20), ("A", 5, 30)]]
        keys = [sort_key(t) for t in rank_tokens(tokens)]
        assert all(a < b for a, b in zip(keys, keys[1:]))

    def test_limit(self):
        tokens = [{"address": str(i), "heat_score": i, "confidence": 10} for i in range(60)]
        ranked = rank_tokens(tokens, limit=50)
        assert len(ranked) == 50
        assert ranked[0]["heat_score"] == 59

    def test_does_not_mutate_input(self):
        tokens = [{"address": "A", "heat_score": 1}, {"address": "B", "heat_score": 2}]
        rank_tokens(tokens)
        assert [t["address"] for t in tokens] == ["A", "B"]
