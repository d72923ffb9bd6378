"""Number formatting for edge strings and API summaries.

Rounding is half-up on the decimal representation so ``12.5`` renders as
``13`` the same way on every platform.
"""
import math
from decimal import Decimal, ROUND_HALF_UP


def fixed(value: float, digits: int = 0) -> str:
    if value is None or not math.isfinite(value):
        value = 0.0
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    return f"{rounded:f}"


def format_compact(value: float) -> str:
    """1234 -> "1.23K", 2_500_000 -> "2.50M", 3_210_000_000 -> "3.2B"."""
    if value is None or not math.isfinite(value):
        return "0"
    if value >= 1e9:
        return f"{fixed(value / 1e9, 1)}B"
    if value >= 1e6:
        return f"{fixed(value / 1e6, 2)}M"
    if value >= 1e3:
        return f"{fixed(value / 1e3, 2)}K"
    return fixed(value, 0)


def format_price(price: float) -> str:
    if price is None or not math.isfinite(price) or price == 0:
        return "0"
    magnitude = abs(price)
    if magnitude < 1e-6:
        mantissa, exponent = f"{price:.2e}".split("e")
        return f"{mantissa}e{int(exponent)}"
    if magnitude < 0.01:
        return fixed(price, 6)
    if magnitude < 1:
        return fixed(price, 4)
    if magnitude < 100:
        return fixed(price, 2)
    whole, _, frac = fixed(price, 2).partition(".")
    sign = "-" if whole.startswith("-") else ""
    return f"{sign}{int(whole.lstrip('-')):,}.{frac}"


def pct(value: float) -> str:
    """Whole-number percent, no sign handling."""
    return fixed(value, 0)


def signed_pct(value: float) -> str:
    text = fixed(value, 0)
    return text if text.startswith("-") else f"+{text}"
