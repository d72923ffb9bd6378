"""Environment-driven configuration for the signal engine."""
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %d", name, raw, default)
        return default


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_model_api_key() -> str:
    """Read the model key at call time so a missing key only fails the request."""
    raw = os.getenv("MODEL_API_KEY") or os.getenv("ANTHROPIC_API_KEY", "")
    # Keys pasted into dashboards sometimes pick up stray whitespace
    return "".join(raw.split())


@dataclass(frozen=True)
class Settings:
    model_name: str = DEFAULT_MODEL
    default_tick_ms: int = 120_000
    max_tick_ms: int = 300_000
    min_fetch_interval_ms: int = 60_000
    cache_ttl_ms: int = 120_000
    max_retries: int = 2
    http_deadline_ms: int = 8_000
    metrics_tick_ms: int = 30_000
    narrative_tick_ms: int = 120_000
    trench_tick_ms: int = 90_000
    pulse_split_other: bool = False
    model_rate_limit_per_hour: int = 30

    @property
    def http_deadline(self) -> float:
        return self.http_deadline_ms / 1000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            model_name=os.getenv("MODEL_NAME", DEFAULT_MODEL) or DEFAULT_MODEL,
            default_tick_ms=_int_env("DEFAULT_TICK_MS", 120_000),
            max_tick_ms=_int_env("MAX_TICK_MS", 300_000),
            min_fetch_interval_ms=_int_env("MIN_FETCH_INTERVAL_MS", 60_000),
            cache_ttl_ms=_int_env("CACHE_TTL_MS", 120_000),
            max_retries=_int_env("MAX_RETRIES", 2),
            http_deadline_ms=_int_env("HTTP_DEADLINE_MS", 8_000),
            metrics_tick_ms=_int_env("METRICS_TICK_MS", 30_000),
            narrative_tick_ms=_int_env("NARRATIVE_TICK_MS", 120_000),
            trench_tick_ms=_int_env("TRENCH_TICK_MS", 90_000),
            pulse_split_other=_bool_env("PULSE_SPLIT_OTHER", False),
            model_rate_limit_per_hour=_int_env("MODEL_RATE_LIMIT_PER_HOUR", 30),
        )
