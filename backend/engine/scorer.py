"""Heat score: the ranking scalar for the published feed"""
from typing import Dict, List, Tuple


def age_bonus(age_hours: float) -> int:
    if age_hours < 24:
        return 40
    if age_hours < 72:
        return 20
    return 0


def heat_score(token: Dict) -> float:
    """Weighted momentum + activity composite. Not a price prediction."""
    score = (
        8 * abs(token.get("price_change_5m", 0))
        + 4 * abs(token.get("price_change_1h", 0))
        + 1.5 * abs(token.get("price_change_6h", 0))
        + token.get("volume_24h", 0) / 10_000
        + token.get("txns_24h", 0) / 100
        + age_bonus(token.get("age_hours", float("inf")))
    )
    if token.get("is_urgent"):
        score += 50
    return round(score, 2)


def sort_key(token: Dict) -> Tuple:
    # heat desc, confidence desc, address asc
    return (-token.get("heat_score", 0), -token.get("confidence", 0), token.get("address", ""))


def rank_tokens(tokens: List[Dict], limit: int = None) -> List[Dict]:
    ranked = sorted(tokens, key=sort_key)
    return ranked[:limit] if limit is not None else ranked
