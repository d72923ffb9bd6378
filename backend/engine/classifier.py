"""Rule-based signal classification for normalized tokens.

``classify`` walks an ordered rule list and returns the first matching tag
with a short edge string. The companion functions compute the remaining
per-token annotations: base confidence, bullish/bearish signal type,
urgency and volume velocity.
"""
from typing import Dict, Optional, Tuple

from engine.formatting import fixed, format_compact, pct, signed_pct

TAGS = (
    "NEW LAUNCH", "EARLY MOVER", "PUMPING", "MOONING", "RUNNER", "REVERSAL", "DIP BUY",
    "ACCUMULATING", "COILING", "VOL SURGE", "WHALES", "DISTRIBUTION", "SELLING", "DUMPING",
    "HOLDING", "ACTIVE", "WATCHING", "DEAD", "LOW ACTIVITY", "VERIFY",
)

POSITIVE_TAGS = frozenset({
    "PUMPING", "MOONING", "RUNNER", "REVERSAL", "DIP BUY", "ACCUMULATING",
    "VOL SURGE", "WHALES", "NEW LAUNCH", "EARLY MOVER",
})

MAX_CONFIDENCE = 95
MAX_MCAP_LIQ = 500


def _fields(token: Dict) -> Tuple:
    return (
        token.get("price_change_5m", 0),
        token.get("price_change_1h", 0),
        token.get("price_change_24h", 0),
        token.get("volume_1h", 0),
        token.get("volume_24h", 0),
        token.get("txns_1h", 0),
        token.get("buy_ratio", 0.5),
    )


def passes_prefilter(token: Dict) -> bool:
    """Drop dust and structurally broken pools before they are classified."""
    liquidity = token.get("liquidity", 0)
    market_cap = token.get("market_cap", 0)
    volume_24h = token.get("volume_24h", 0)
    if liquidity > 0 and market_cap / liquidity > MAX_MCAP_LIQ:
        return False
    if token.get("provenance") == "bonding_curve":
        return not (volume_24h < 500 and token.get("volume_1h", 0) < 100)
    return liquidity >= 1_000 and volume_24h >= 500


def base_confidence(token: Dict) -> int:
    liquidity = token.get("liquidity", 0)
    volume_24h = token.get("volume_24h", 0)
    market_cap = token.get("market_cap", 0)
    txns_24h = token.get("txns_24h", 0)

    confidence = 45
    if liquidity > 500_000:
        confidence += 25
    elif liquidity > 100_000:
        confidence += 18
    elif liquidity > 50_000:
        confidence += 10

    if volume_24h > 500_000:
        confidence += 15
    elif volume_24h > 100_000:
        confidence += 10
    elif volume_24h > 50_000:
        confidence += 5

    if market_cap > 10_000_000:
        confidence += 10
    elif market_cap > 1_000_000:
        confidence += 5

    if txns_24h > 5_000:
        confidence += 5
    elif txns_24h > 1_000:
        confidence += 3

    if token.get("buy_ratio", 0.5) > 0.6:
        confidence += 5
    if token.get("age_hours", float("inf")) < 24:
        confidence += 5
    return min(confidence, MAX_CONFIDENCE)


def validate_activity(token: Dict, confidence: int) -> Dict:
    """Flag dead or illiquid tokens and price moves the order flow does not support."""
    _, change_1h, _, volume_1h, _, txns_1h, buy_ratio = _fields(token)
    result = {
        "is_dead": False,
        "is_low_activity": False,
        "mismatch": None,
        "adjusted_confidence": confidence,
    }
    if volume_1h < 500 or txns_1h < 5:
        result["is_dead"] = True
        result["adjusted_confidence"] = max(10, confidence - 40)
    elif volume_1h < 1_000 or txns_1h < 10:
        result["is_low_activity"] = True
        result["adjusted_confidence"] = max(20, confidence - 20)

    if change_1h > 20 and buy_ratio < 0.4:
        result["mismatch"] = "BUY_PRICE_MISMATCH"
    elif change_1h < -20 and buy_ratio > 0.7:
        result["mismatch"] = "SELL_PRICE_MISMATCH"
    if result["mismatch"]:
        result["adjusted_confidence"] = max(15, result["adjusted_confidence"] - 25)
    return result


def signal_type(token: Dict) -> Tuple[str, bool]:
    """Return ``(signal_type, is_urgent)``; only bullish tokens can be urgent."""
    change_5m, change_1h, change_24h, volume_1h, volume_24h, _, buy_ratio = _fields(token)

    bullish = (
        (change_24h > 10 and volume_24h > 50_000 and buy_ratio > 0.45)
        or (change_1h > 20 and buy_ratio > 0.5)
    )
    if bullish:
        urgent = (
            (change_24h > 50 and change_1h > 5)
            or volume_24h > 500_000
            or (change_5m > 10 and (volume_1h > 50_000 or change_1h > 20))
            or change_1h > 50
        )
        return "bullish", urgent
    if change_24h < -15 or (change_24h < -5 and buy_ratio < 0.35):
        return "bearish", False
    return "neutral", False


def velocity(token: Dict) -> float:
    liquidity = token.get("liquidity", 0)
    if liquidity <= 0:
        return 0.0
    change_1h = token.get("price_change_1h", 0)
    momentum = 1 + change_1h / 100 if change_1h > 0 else 1
    value = token.get("volume_24h", 0) / liquidity * momentum * 2
    return round(min(max(value, 0.0), 10.0), 1)


def _result(tag: str, edge: str) -> Dict:
    return {"tag": tag, "edge": edge}


def classify(token: Dict, confidence: Optional[int] = None) -> Dict:
    """Pick one tag for ``token`` and attach the activity-validated confidence.

    DEAD and LOW ACTIVITY tokens and price/flow mismatches are marked down
    from ``confidence`` (the base confidence when omitted).
    """
    validation = validate_activity(token, base_confidence(token) if confidence is None else confidence)
    result = _pick_tag(token, validation)
    result["confidence"] = validation["adjusted_confidence"]
    return result


def _pick_tag(token: Dict, validation: Dict) -> Dict:
    change_5m, change_1h, change_24h, volume_1h, volume_24h, txns_1h, buy_ratio = _fields(token)
    liquidity = token.get("liquidity", 0)
    txns_24h = token.get("txns_24h", 0)
    age_hours = token.get("age_hours", float("inf"))
    buy_pct = pct(buy_ratio * 100)

    if validation["is_dead"]:
        if abs(change_1h) > 10:
            edge = f"{signed_pct(change_1h)}% but no volume (${format_compact(volume_1h)} 1h) - suspicious"
        else:
            edge = f"Dead: ${format_compact(volume_1h)} vol, {txns_1h} txns - no activity"
        return _result("DEAD", edge)

    if validation["is_low_activity"] and abs(change_1h) < 20:
        edge = f"Low activity: ${format_compact(volume_1h)} vol, {txns_1h} txns/h - illiquid"
        return _result("LOW ACTIVITY", edge)

    pumping = change_5m > 15 and change_1h > 20
    pump_confirmed = pumping and volume_1h > 5_000 and txns_1h > 20 and buy_ratio > 0.45

    # a launch already confirmed as a pump by volume and flow is tagged PUMPING
    if age_hours < 1 and not pump_confirmed:
        if change_5m > 20 and volume_1h > 1_000:
            return _result("NEW LAUNCH", f"Just launched {signed_pct(change_5m)}% in 5m")
        if liquidity > 50_000:
            return _result("NEW LAUNCH", f"Fresh launch, ${format_compact(liquidity)} liquidity")
        return _result("NEW LAUNCH", f"{fixed(age_hours * 60, 0)}m old - early entry")

    if age_hours < 6 and change_1h > 30:
        return _result("EARLY MOVER", f"Young token {signed_pct(change_1h)}% 1h - still early")

    if pumping:
        if pump_confirmed:
            edge = (f"Accelerating {signed_pct(change_5m)}% 5m, {signed_pct(change_1h)}% 1h"
                    f" | ${format_compact(volume_1h)} vol")
            return _result("PUMPING", edge)
        return _result("VERIFY", f"{signed_pct(change_1h)}% but weak vol (${format_compact(volume_1h)}) - verify")

    if change_1h > 50:
        if volume_1h > 10_000 and txns_1h > 30:
            return _result("MOONING", f"Parabolic {signed_pct(change_1h)}% 1h | ${format_compact(volume_1h)} vol")
        return _result("VERIFY", f"{signed_pct(change_1h)}% spike, low vol (${format_compact(volume_1h)}) - verify")

    if change_24h > 100 and change_1h > 5:
        return _result("RUNNER", f"Runner {signed_pct(change_24h)}% day, {signed_pct(change_1h)}% 1h")

    if change_24h < -25 and change_1h > 10 and buy_ratio > 0.55:
        return _result("REVERSAL", f"Bouncing {signed_pct(change_1h)}% off {pct(change_24h)}% drop")

    if change_24h < -20 and change_5m > 5 and buy_ratio > 0.6:
        return _result("DIP BUY", f"Dip buying: {buy_pct}% buys after {pct(change_24h)}% drop")

    if buy_ratio > 0.65 and -5 < change_1h < 5:
        return _result("ACCUMULATING", f"{buy_pct}% buys, price flat - accumulation")

    rotation = volume_24h / liquidity if liquidity > 0 else 0
    if rotation > 5 and -10 < change_1h < 10:
        return _result("COILING", f"High rotation {fixed(rotation, 1)}x vol/liq - consolidating")

    if volume_1h > 100_000 and change_1h > 10:
        return _result("VOL SURGE", f"Volume spike ${format_compact(volume_1h)} 1h, {signed_pct(change_1h)}%")

    avg_tx = volume_24h / txns_24h if txns_24h > 0 else 0
    if avg_tx > 5_000 and change_1h > 5:
        return _result("WHALES", f"Large buys: ${format_compact(avg_tx)} avg tx, {signed_pct(change_1h)}%")

    if change_24h > 50 and change_1h < -10:
        return _result("DISTRIBUTION", f"Profit taking: -{pct(abs(change_1h))}% 1h after {signed_pct(change_24h)}% run")

    if buy_ratio < 0.35 and change_1h < -5:
        return _result("SELLING", f"Sell pressure: {buy_pct}% buys, down {pct(abs(change_1h))}%")

    if change_1h < -15:
        return _result("DUMPING", f"Dumping {pct(change_1h)}% 1h")

    if change_24h > 30 and abs(change_1h) < 5:
        return _result("HOLDING", f"Holding gains: {signed_pct(change_24h)}% 24h, consolidating")

    summary = f"{buy_pct}% buys | ${format_compact(volume_24h)} vol"
    if change_1h > 0:
        return _result("ACTIVE", f"{signed_pct(change_1h)}% 1h | {summary}")
    return _result("WATCHING", f"{pct(change_1h)}% 1h | {summary}")


def apply_scam_gate(classification: Dict, scam_check: Dict) -> Dict:
    """Demote tags the scam check contradicts and prefix the first warning."""
    tag = classification["tag"]
    honeypot = scam_check.get("is_potential_honeypot", False)
    high_risk = scam_check.get("is_high_risk", False)
    if not (honeypot or (high_risk and tag in POSITIVE_TAGS)):
        return classification
    warnings = scam_check.get("warnings") or []
    first = warnings[0]["message"] if warnings else ("Honeypot pattern detected" if honeypot else "High risk token")
    gated = dict(classification)
    gated["tag"] = "VERIFY"
    gated["edge"] = f"{first} | {classification['edge']}"
    return gated
