"""Rule-based scam and honeypot scoring for normalized tokens.

Every indicator reads only numeric token fields, so the same token always
yields the same check. Thresholds are fixed constants.
"""
from typing import Dict, List

from engine.formatting import fixed, format_compact, pct

EXTREME_MCAP_LIQ = 100
HIGH_MCAP_LIQ = 50
FILTER_SCORE = 70
HIGH_RISK_SCORE = 40

# (minimum scam score, confidence penalty), checked top down
CONFIDENCE_PENALTIES = [
    (60, 50),
    (40, 35),
    (20, 20),
]
MIN_CONFIDENCE = 10


def _warning(kind: str, severity: str, message: str) -> Dict:
    return {"type": kind, "severity": severity, "message": message}


def detect_scam(token: Dict) -> Dict:
    liquidity = token.get("liquidity", 0)
    market_cap = token.get("market_cap", 0)
    buy_ratio = token.get("buy_ratio", 0.5)
    change_1h = token.get("price_change_1h", 0)
    change_6h = token.get("price_change_6h", 0)
    change_24h = token.get("price_change_24h", 0)
    txns_24h = token.get("txns_24h", 0)
    txns_1h = token.get("txns_1h", 0)
    volume_1h = token.get("volume_1h", 0)
    volume_24h = token.get("volume_24h", 0)
    age_hours = token.get("age_hours", float("inf"))
    buy_pct = pct(buy_ratio * 100)

    score = 0
    warnings: List[Dict] = []
    honeypot = False
    high_risk = False

    mcap_liq = market_cap / liquidity if liquidity > 0 else 0
    if mcap_liq > EXTREME_MCAP_LIQ:
        score += 40
        high_risk = True
        warnings.append(_warning("EXTREME_MCAP_LIQ", "critical", f"MC/Liq {fixed(mcap_liq, 0)}x - EXIT IMPOSSIBLE"))
    elif mcap_liq > HIGH_MCAP_LIQ:
        score += 20
        warnings.append(_warning("HIGH_MCAP_LIQ", "high", f"MC/Liq {fixed(mcap_liq, 0)}x - thin liquidity"))

    if buy_ratio > 0.95 and abs(change_1h) < 2 and txns_24h > 100:
        score += 50
        honeypot = True
        warnings.append(_warning("HONEYPOT_PATTERN", "critical", f"{buy_pct}% buys but price flat - HONEYPOT"))

    if txns_1h == 0 and volume_1h == 0 and market_cap > 10_000:
        score += 15
        warnings.append(_warning("ZERO_ACTIVITY", "medium", "No transactions in last hour"))

    # inclusive: exactly 0.98 fires
    if buy_ratio >= 0.98 and volume_24h > 10_000:
        score += 35
        honeypot = True
        warnings.append(_warning("SELL_BLOCKED", "critical", f"{buy_pct}% buys - sells blocked"))

    if liquidity < 1_000 and market_cap > 100_000:
        score += 45
        high_risk = True
        warnings.append(_warning(
            "FAKE_MCAP", "critical",
            f"${format_compact(market_cap)} MC but ${format_compact(liquidity)} liq",
        ))

    if age_hours < 0.5 and change_1h > 500 and buy_ratio > 0.9:
        score += 25
        warnings.append(_warning("COORDINATED_PUMP", "high", "Coordinated launch pump"))

    if buy_ratio > 0.55 and change_1h < -5 and change_6h < -10 and change_24h < -15:
        score += 25
        honeypot = True
        warnings.append(_warning(
            "SLOW_BLEED", "high", f"{buy_pct}% buys but {pct(change_24h)}% 24h - sell tax likely",
        ))

    if buy_ratio > 0.75 and change_1h < -10 and txns_24h > 50:
        score += 20
        warnings.append(_warning(
            "SELL_TAX", "high", f"{buy_pct}% buys but {pct(change_1h)}% 1h - potential sell tax",
        ))

    score = min(score, 100)
    is_scam = score >= FILTER_SCORE
    return {
        "scam_score": score,
        "warnings": warnings,
        "is_potential_honeypot": honeypot,
        "is_high_risk": high_risk or score >= HIGH_RISK_SCORE,
        "is_scam": is_scam,
        "should_filter": is_scam,
    }


def adjust_confidence(confidence: float, scam_score: int) -> int:
    """Penalize confidence by scam score tier, never below 10.

    The tiers are stepwise: a score of 39 costs 20 points while 40 costs 35.
    """
    if scam_score <= 0:
        return int(round(confidence))
    penalty = 10
    for threshold, tier_penalty in CONFIDENCE_PENALTIES:
        if scam_score >= threshold:
            penalty = tier_penalty
            break
    return max(MIN_CONFIDENCE, int(round(confidence - penalty)))
