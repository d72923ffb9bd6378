"""Trench scan: deep risk read on fresh launches.

Works only from DEX flow numbers, so every holder/bundle/dev check here is a
heuristic over buy/sell counts and volume, not on-chain truth.
"""
import logging
from typing import Dict, List

from engine.formatting import fixed

logger = logging.getLogger(__name__)

RISK_WEIGHTS = {
    "BUNDLE_DETECTED": 35,
    "HIGH_HOLDER_CONCENTRATION": 25,
    "DEV_DUMPING": 30,
    "FRESH_WALLET_BUYS": 15,
    "ONE_SIDED_BUYS": 20,
    "LOW_LIQUIDITY_RATIO": 15,
    "RAPID_PUMP": 10,
}

LEGIT_SIGNALS = {
    "ORGANIC_DISTRIBUTION": 20,
    "HEALTHY_TRADING": 15,
    "GROWING_COMMUNITY": 15,
    "HAS_SOCIALS": 10,
    "GOOD_LIQUIDITY": 15,
    "STABLE_GROWTH": 10,
    "DEV_HOLDING": 15,
}

MIN_MCAP = 1_000
MAX_MCAP = 50_000_000
MIN_LIQUIDITY = 500
MAX_AGE_HOURS = 72
GROUP_LIMIT = 6
SCAN_LIMIT = 30


def is_trench_candidate(token: Dict) -> bool:
    return (
        MIN_MCAP <= token.get("market_cap", 0) <= MAX_MCAP
        and token.get("liquidity", 0) >= MIN_LIQUIDITY
        and token.get("age_hours", float("inf")) < MAX_AGE_HOURS
    )


def detect_bundle(token: Dict) -> Dict:
    """Coordinated-launch patterns: one-sided early flow, few large buys, 5m bursts."""
    age = token.get("age_hours", float("inf"))
    buys = token.get("buys_24h", 0)
    sells = token.get("sells_24h", 0)
    mcap = token.get("market_cap", 0) or 1
    likelihood = "LOW"
    indicators = []

    if age < 2 and buys / max(1, buys + sells) > 0.95 and buys > 10:
        indicators.append("Near-100% buy ratio")
        likelihood = "HIGH"

    avg_txn_pct = token.get("volume_24h", 0) / max(1, buys + sells) / mcap * 100
    if avg_txn_pct > 2 and buys < 50:
        indicators.append(f"Avg txn {fixed(avg_txn_pct, 1)}% of mcap")
        if likelihood != "HIGH":
            likelihood = "MEDIUM"

    buys_5m = token.get("buys_5m", 0)
    if buys_5m > 5 and token.get("sells_5m", 0) == 0 and age < 0.5:
        indicators.append(f"{buys_5m} buys, 0 sells in 5m")
        likelihood = "HIGH"

    if age < 1 and token.get("market_cap", 0) > 500_000 and buys < 30:
        indicators.append("High MC with few buyers")
        if likelihood != "HIGH":
            likelihood = "MEDIUM"

    return {"likelihood": likelihood, "reason": " | ".join(indicators), "indicators": indicators}


def fresh_wallet_activity(token: Dict) -> Dict:
    buys = token.get("buys_24h", 0)
    sells = token.get("sells_24h", 0)
    mcap = token.get("market_cap", 0) or 1
    result = {"suspicious": False, "reason": ""}

    avg_buy_pct = token.get("volume_24h", 0) / max(1, buys) / mcap * 100
    if buys > 20 and 0.5 < avg_buy_pct < 3 and sells < buys * 0.1:
        result = {"suspicious": True, "reason": "Uniform buy sizes, minimal sells"}
    if token.get("age_hours", float("inf")) < 1 and buys > 50 and sells < 5:
        result = {"suspicious": True, "reason": "50+ buys in first hour, minimal sells"}
    return result


def holder_concentration(token: Dict) -> Dict:
    txn_count = token.get("buys_24h", 0) + token.get("sells_24h", 0)
    mcap = token.get("market_cap", 0) or 1
    avg_txn_pct = token.get("volume_24h", 0) / max(1, txn_count) / mcap * 100
    result = {"high": False, "moderate": False, "reason": ""}

    if avg_txn_pct > 10:
        result["high"] = True
        result["reason"] = f"Large avg txn ({fixed(avg_txn_pct, 0)}% of MC) suggests top holder concentration"
    elif avg_txn_pct > 5:
        result["moderate"] = True
        result["reason"] = "Moderate holder concentration indicated"

    if token.get("age_hours", float("inf")) > 6 and txn_count < 50:
        result["moderate"] = True
        result["reason"] = "Low trader count for token age"
    return result


def dev_behavior(token: Dict) -> Dict:
    buys = token.get("buys_24h", 0)
    sells = token.get("sells_24h", 0)
    result = {"dumping": False, "holding": True, "reason": ""}

    if token.get("age_hours", float("inf")) < 6:
        sell_ratio = sells / max(1, buys + sells)
        if sell_ratio > 0.4 and token.get("price_change_1h", 0) < -30:
            result = {"dumping": True, "holding": False, "reason": "High early sells with price drop"}
        elif sell_ratio < 0.15:
            result["reason"] = "Minimal selling, devs likely holding"

    if token.get("price_change_24h", 0) < -50 and buys > sells * 2:
        result = {"dumping": True, "holding": False, "reason": "Price dumped despite more buys (large insider sell)"}
    return result


def _risk_level(risk_score: int, bundle: bool) -> str:
    if bundle or risk_score >= 50:
        return "CRITICAL"
    if risk_score >= 35:
        return "HIGH"
    if risk_score >= 20:
        return "MEDIUM"
    return "LOW"


def _verdict(safety: int, risk_level: str) -> str:
    if safety >= 70 and risk_level == "LOW":
        return "GEM"
    if safety >= 55 and risk_level != "CRITICAL":
        return "PROMISING"
    if safety >= 40:
        return "WATCH"
    if risk_level == "CRITICAL":
        return "AVOID"
    return "RISKY"


def analyze_token(token: Dict) -> Dict:
    risk = 0
    safety = 50
    risks: List[Dict] = []
    positives: List[str] = []

    bundle = detect_bundle(token)
    bundle_detected = bundle["likelihood"] == "HIGH"
    if bundle_detected:
        risk += RISK_WEIGHTS["BUNDLE_DETECTED"]
        risks.append({"type": "BUNDLE", "severity": "CRITICAL", "detail": bundle["reason"]})
    elif bundle["likelihood"] == "MEDIUM":
        risk += round(RISK_WEIGHTS["BUNDLE_DETECTED"] * 0.5)
        risks.append({"type": "BUNDLE_SUSPECT", "severity": "HIGH", "detail": bundle["reason"]})

    fresh = fresh_wallet_activity(token)
    if fresh["suspicious"]:
        risk += RISK_WEIGHTS["FRESH_WALLET_BUYS"]
        risks.append({"type": "FRESH_WALLETS", "severity": "MEDIUM", "detail": fresh["reason"]})

    concentration = holder_concentration(token)
    if concentration["high"]:
        risk += RISK_WEIGHTS["HIGH_HOLDER_CONCENTRATION"]
        risks.append({"type": "CONCENTRATION", "severity": "HIGH", "detail": concentration["reason"]})
    elif concentration["moderate"]:
        risk += round(RISK_WEIGHTS["HIGH_HOLDER_CONCENTRATION"] * 0.4)
        risks.append({"type": "CONCENTRATION", "severity": "MEDIUM", "detail": concentration["reason"]})
    else:
        safety += LEGIT_SIGNALS["ORGANIC_DISTRIBUTION"]
        positives.append("Good distribution")

    dev = dev_behavior(token)
    if dev["dumping"]:
        risk += RISK_WEIGHTS["DEV_DUMPING"]
        risks.append({"type": "DEV_DUMP", "severity": "CRITICAL", "detail": dev["reason"]})
    elif dev["holding"]:
        safety += LEGIT_SIGNALS["DEV_HOLDING"]
        positives.append("Dev holding")

    buys = token.get("buys_24h", 0)
    total_txns = buys + token.get("sells_24h", 0) or 1
    buy_ratio = buys / total_txns
    if buy_ratio > 0.92:
        risk += RISK_WEIGHTS["ONE_SIDED_BUYS"]
        risks.append({"type": "ONE_SIDED", "severity": "HIGH",
                      "detail": f"{fixed(buy_ratio * 100, 0)}% buys - potential dump setup"})
    elif 0.3 <= buy_ratio <= 0.75:
        safety += LEGIT_SIGNALS["HEALTHY_TRADING"]
        positives.append("Healthy trading")
    elif buy_ratio < 0.2:
        risks.append({"type": "HEAVY_SELLS", "severity": "MEDIUM", "detail": "Heavy sell pressure"})

    liquidity = token.get("liquidity", 0)
    mc_liq = token.get("market_cap", 0) / liquidity if liquidity > 0 else 999
    if mc_liq > 100:
        risk += RISK_WEIGHTS["LOW_LIQUIDITY_RATIO"]
        risks.append({"type": "LOW_LIQ", "severity": "MEDIUM", "detail": f"MC/Liq: {fixed(mc_liq, 0)}x"})
    elif mc_liq < 30:
        safety += LEGIT_SIGNALS["GOOD_LIQUIDITY"]
        positives.append("Good liquidity")

    change_1h = token.get("price_change_1h", 0)
    if change_1h > 500:
        risk += RISK_WEIGHTS["RAPID_PUMP"]
        risks.append({"type": "RAPID_PUMP", "severity": "MEDIUM",
                      "detail": f"+{fixed(change_1h, 0)}% 1h - manipulation risk"})
    elif -20 <= change_1h <= 100:
        safety += LEGIT_SIGNALS["STABLE_GROWTH"]
        positives.append("Stable growth")

    if token.get("has_socials") or token.get("websites"):
        safety += LEGIT_SIGNALS["HAS_SOCIALS"]
        positives.append("Has socials")
    elif token.get("age_hours", 0) > 6:
        risks.append({"type": "NO_SOCIALS", "severity": "LOW", "detail": "No social presence"})

    recent = token.get("txns_1h", 0)
    if recent > 20 and token.get("volume_1h", 0) > 1_000:
        safety += LEGIT_SIGNALS["GROWING_COMMUNITY"]
        positives.append("Active community")

    safety = max(0, min(100, safety - risk))
    level = _risk_level(risk, bundle_detected)
    return {
        "address": token.get("address"),
        "symbol": token.get("symbol"),
        "name": token.get("name"),
        "url": token.get("url"),
        "image_url": token.get("image_url"),
        "market_cap": token.get("market_cap", 0),
        "liquidity": liquidity,
        "volume_24h": token.get("volume_24h", 0),
        "price_change_1h": change_1h,
        "age_hours": round(token.get("age_hours", 0), 1),
        "is_pump_fun_style": token.get("is_pump_fun_style", False),
        "safety_score": safety,
        "risk_score": risk,
        "risk_level": level,
        "verdict": _verdict(safety, level),
        "bundle_detected": bundle_detected,
        "bundle_risk": bundle,
        "risks": risks,
        "positives": positives,
        "metrics": {
            "buy_ratio": int(fixed(buy_ratio * 100, 0)),
            "mc_liq_ratio": int(fixed(mc_liq, 0)),
            "total_txns": total_txns,
            "recent_activity": recent,
        },
    }


def scan(tokens: List[Dict]) -> Dict:
    """Analyze candidate tokens and split them into fresh gems, watchlist and risky."""
    candidates = [t for t in tokens if is_trench_candidate(t)][:SCAN_LIMIT]
    analyzed = sorted((analyze_token(t) for t in candidates), key=lambda a: -a["safety_score"])

    gems = [
        a for a in analyzed
        if a["safety_score"] >= 65 and a["risk_level"] != "CRITICAL"
        and not a["bundle_detected"] and a["age_hours"] < 12
    ]
    watchlist = [a for a in analyzed if 40 <= a["safety_score"] < 65 and a["risk_level"] != "CRITICAL"]
    risky = [a for a in analyzed if a["safety_score"] < 40 or a["risk_level"] == "CRITICAL" or a["bundle_detected"]]

    avg_safety = round(sum(a["safety_score"] for a in analyzed) / len(analyzed)) if analyzed else 0
    logger.info("Trench scan: %d candidates, %d gems, %d risky", len(candidates), len(gems), len(risky))
    return {
        "freshGems": gems[:GROUP_LIMIT],
        "watchlist": watchlist[:GROUP_LIMIT],
        "risky": risky[:GROUP_LIMIT],
        "scanStats": {
            "totalScanned": len(candidates),
            "bundlesDetected": sum(1 for a in analyzed if a["bundle_detected"]),
            "highRisk": sum(1 for a in analyzed if a["risk_level"] in ("CRITICAL", "HIGH")),
            "avgSafetyScore": avg_safety,
        },
    }
