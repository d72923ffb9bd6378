"""Feed assembler: collect -> normalize -> scam check and classify -> dedup -> rank -> narratives -> publish"""
import asyncio
import dataclasses
import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from collectors import coingecko_collector, dexscreener_collector, pump_fun_collector
from engine.cache import GateResult, SnapshotCell, SourceGate, TickInterval
from engine.classifier import apply_scam_gate, classify, passes_prefilter, signal_type, velocity
from engine.market_pulse import compute_pulse
from engine.narrative_engine import build_narratives, build_social_trends
from engine.normalizer import normalize_all, now_ms
from engine.scam_detector import adjust_confidence, detect_scam
from engine.scorer import heat_score, rank_tokens
from engine.trench import scan
from settings import Settings

logger = logging.getLogger(__name__)

FEED_LIMIT = 50
MIN_CONFIDENCE = 10
MAX_CONFIDENCE = 95

FEED_SOURCES = ("dex_profiles", "dex_boosts", "dex_search", "pumpfun_style", "bonk", "bags")
SIGNAL_SOURCES = ("coingecko_trending", "coingecko_categories", "pumpfun_coins")
ECOSYSTEM_SOURCES = {"bonk", "bags"}

# Gate id -> source id carried on the token
SOURCE_KIND = {
    "dex_profiles": "dexscreener",
    "dex_boosts": "dexscreener",
    "dex_search": "dexscreener",
    "pumpfun_style": "pumpfun",
    "bonk": "dexscreener",
    "bags": "dexscreener",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class FeedSnapshot:
    tokens: Tuple[Dict, ...]
    narratives: Tuple[Dict, ...]
    last_updated: str
    # scam-filtered, pre-cap token pool used by the trench scan
    pool: Tuple[Dict, ...] = ()
    stale: bool = False
    source_errors: Tuple[Dict, ...] = ()


def merge_records(batches: Iterable[Tuple[str, Iterable[Dict]]], now: Optional[int] = None,
                  screen: Optional[Callable[[Dict], Optional[Dict]]] = None) -> List[Dict]:
    """Normalize every batch and dedup by address, first seen wins.

    With ``screen`` each sighting is screened before the dedup, so a rejected
    pool never shadows a later pool of the same token. Later surviving
    sightings of an address only add their source to ``sources``.
    """
    now = now_ms() if now is None else now
    merged: Dict[str, Dict] = {}
    filtered = 0
    for gate_id, records in batches:
        kind = SOURCE_KIND.get(gate_id, gate_id)
        for token in normalize_all(records, kind, now):
            if screen is not None:
                token = screen(token)
                if token is None:
                    filtered += 1
                    continue
            existing = merged.get(token["address"])
            if existing is None:
                if gate_id in ECOSYSTEM_SOURCES:
                    token["ecosystem"] = gate_id
                merged[token["address"]] = token
                continue
            for source in token["sources"]:
                if source not in existing["sources"]:
                    existing["sources"].append(source)
            if gate_id in ECOSYSTEM_SOURCES:
                existing.setdefault("ecosystem", gate_id)
    if filtered:
        logger.debug("Filtered %d sightings (scam or dust)", filtered)
    return list(merged.values())


def annotate(token: Dict) -> Optional[Dict]:
    """Scam check, classify and score one token; ``None`` when it must not be published."""
    scam_check = detect_scam(token)
    if scam_check["should_filter"]:
        return None
    if not passes_prefilter(token):
        return None

    classification = apply_scam_gate(classify(token), scam_check)
    confidence = adjust_confidence(classification["confidence"], scam_check["scam_score"])
    kind, urgent = signal_type(token)

    annotated = dict(token)
    annotated.update({
        "tag": classification["tag"],
        "edge": classification["edge"],
        "confidence": min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence)),
        "signal_type": kind,
        "is_urgent": urgent,
        "velocity": velocity(token),
        "scam_check": scam_check,
    })
    annotated["heat_score"] = heat_score(annotated)
    return annotated


def build_feed(batches: Iterable[Tuple[str, Iterable[Dict]]], now: Optional[int] = None,
               limit: int = FEED_LIMIT) -> List[Dict]:
    """Merged, annotated and heat-ranked feed capped at ``limit``."""
    return rank_tokens(merge_records(batches, now, screen=annotate), limit)


def narrative_tokens(feed: List[Dict], pool: List[Dict]) -> List[Dict]:
    """The capped feed plus ecosystem tokens that did not make the cap."""
    seen = {t["address"] for t in feed}
    extras = [t for t in pool if t.get("ecosystem") and t["address"] not in seen]
    return list(feed) + extras


def _records(result) -> Tuple[Dict, ...]:
    return result.records if isinstance(result, GateResult) else ()


class FeedAssembler:
    """Owns the source gates, the adaptive tick and the published snapshots.

    Every published value lives in a ``SnapshotCell`` and is replaced whole.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        s = self.settings
        self.gates: Dict[str, SourceGate] = {
            source: SourceGate(
                source,
                ttl_ms=s.cache_ttl_ms,
                min_interval_ms=s.min_fetch_interval_ms,
                max_retries=s.max_retries,
                deadline=s.http_deadline,
            )
            for source in FEED_SOURCES + SIGNAL_SOURCES
        }
        self.interval = TickInterval(s.default_tick_ms, s.max_tick_ms)

        self.feed = SnapshotCell()
        self.social = SnapshotCell()
        self.pulse = SnapshotCell()
        self.trench = SnapshotCell()

        self._search_terms = itertools.cycle(dexscreener_collector.DEX_SEARCH_TERMS)
        self._pump_terms = itertools.cycle(dexscreener_collector.PUMP_SEARCH_TERMS)
        self._tick_lock = asyncio.Lock()

        self.running = False
        self.tick_count = 0
        self.last_tick: Optional[str] = None
        self.last_duration: Optional[float] = None
        self.last_error: Optional[str] = None

    def _feed_fetchers(self) -> Dict:
        deadline = self.settings.http_deadline
        search_term = next(self._search_terms)
        pump_term = next(self._pump_terms)
        return {
            "dex_profiles": lambda: dexscreener_collector.collect_profiles(deadline),
            "dex_boosts": lambda: dexscreener_collector.collect_boosts(deadline),
            "dex_search": lambda: dexscreener_collector.collect_search(search_term, deadline),
            "pumpfun_style": lambda: dexscreener_collector.collect_pump_fun_style(pump_term, deadline),
            "bonk": lambda: dexscreener_collector.collect_ecosystem("bonk", deadline),
            "bags": lambda: dexscreener_collector.collect_ecosystem("bags", deadline),
        }

    def _signal_fetchers(self) -> Dict:
        deadline = self.settings.http_deadline
        return {
            "coingecko_trending": lambda: coingecko_collector.collect_trending(deadline),
            "coingecko_categories": lambda: coingecko_collector.collect_categories(deadline),
            "pumpfun_coins": lambda: pump_fun_collector.collect(deadline),
        }

    async def _fetch_all(self, fetchers: Dict) -> Dict[str, object]:
        names = list(fetchers)
        results = await asyncio.gather(
            *(self.gates[name].fetch(fetchers[name]) for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("%s fetch crashed: %s", name, result)
        return dict(zip(names, results))

    def _adjust_interval(self, results: Iterable) -> None:
        gate_results = [r for r in results if isinstance(r, GateResult)]
        if any(r.throttled for r in gate_results):
            self.interval.widen()
        elif any(not r.from_cache and r.error is None for r in gate_results):
            self.interval.relax()

    def _narratives(self, tokens: List[Dict], signals: Dict[str, object]) -> List[Dict]:
        trending = list(_records(signals.get("coingecko_trending")))
        categories = list(_records(signals.get("coingecko_categories")))
        launches = list(_records(signals.get("pumpfun_coins")))

        social = build_social_trends(trending, categories, tokens)
        social["lastUpdated"] = utc_now_iso()
        self.social.set(social)
        return build_narratives(tokens, launches, trending, categories)

    async def _tick(self) -> FeedSnapshot:
        results = await self._fetch_all({**self._feed_fetchers(), **self._signal_fetchers()})
        self._adjust_interval(results.values())

        source_errors = tuple(
            {"source": name, "kind": r.error.kind}
            for name, r in results.items()
            if isinstance(r, GateResult) and r.error is not None
        )
        batches = [(name, _records(results[name])) for name in FEED_SOURCES]
        pool = merge_records(batches, screen=annotate)
        feed = rank_tokens(pool, FEED_LIMIT)

        previous = self.feed.get()
        if not feed and previous is not None:
            logger.warning("No live tokens this tick, keeping previous snapshot as stale")
            snapshot = dataclasses.replace(previous, stale=True, source_errors=source_errors)
            self.feed.set(snapshot)
            return snapshot

        narratives = self._narratives(narrative_tokens(feed, pool), results)
        stale = any(
            isinstance(results[name], GateResult) and results[name].stale and results[name].records
            for name in FEED_SOURCES
        )
        snapshot = FeedSnapshot(
            tokens=tuple(feed),
            narratives=tuple(narratives),
            last_updated=utc_now_iso(),
            pool=tuple(pool),
            stale=stale,
            source_errors=source_errors,
        )
        self.feed.set(snapshot)
        return snapshot

    async def run_tick(self) -> Optional[FeedSnapshot]:
        """Run one tick unless one is already in flight."""
        if self._tick_lock.locked():
            logger.info("Tick already running, skipping")
            return None

        async with self._tick_lock:
            self.running = True
            start = time.time()
            try:
                snapshot = await self._tick()
                self.last_duration = round(time.time() - start, 1)
                self.last_error = None
                logger.info("Tick done in %.1fs: %d tokens, %d narratives",
                            self.last_duration, len(snapshot.tokens), len(snapshot.narratives))
                return snapshot
            except Exception as e:
                self.last_duration = round(time.time() - start, 1)
                self.last_error = str(e)
                logger.error("Tick error after %.1fs: %s", self.last_duration, e, exc_info=True)
                return None
            finally:
                self.tick_count += 1
                self.last_tick = utc_now_iso()
                self.running = False
                self.refresh_metrics()
                if self.trench.get() is None:
                    self.refresh_trench()

    async def refresh_narratives(self) -> None:
        """Rebuild narratives over the current snapshot without refetching the feed."""
        snapshot = self.feed.get()
        if snapshot is None or self._tick_lock.locked():
            return
        tokens = narrative_tokens(list(snapshot.tokens), list(snapshot.pool))
        signals = await self._fetch_all(self._signal_fetchers())
        narratives = self._narratives(tokens, signals)
        # a tick may have published meanwhile
        if self.feed.get() is snapshot:
            self.feed.set(dataclasses.replace(snapshot, narratives=tuple(narratives)))

    def refresh_metrics(self) -> None:
        snapshot = self.feed.get()
        if snapshot is None:
            return
        self.pulse.set(compute_pulse(
            list(snapshot.tokens), list(snapshot.narratives), self.settings.pulse_split_other,
        ))

    def refresh_trench(self) -> None:
        snapshot = self.feed.get()
        if snapshot is None:
            return
        result = scan(list(snapshot.pool))
        result["lastUpdated"] = utc_now_iso()
        self.trench.set(result)

    async def feed_loop(self):
        """Feed tick; the sleep follows the adaptive interval."""
        while True:
            await asyncio.sleep(self.interval.seconds)
            await self.run_tick()

    async def timer_loop(self, name: str, interval_ms: int, job):
        while True:
            await asyncio.sleep(interval_ms / 1000)
            try:
                result = job()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error("%s refresh error: %s", name, e, exc_info=True)

    def loops(self) -> List:
        s = self.settings
        return [
            self.feed_loop(),
            self.timer_loop("metrics", s.metrics_tick_ms, self.refresh_metrics),
            self.timer_loop("narratives", s.narrative_tick_ms, self.refresh_narratives),
            self.timer_loop("trench", s.trench_tick_ms, self.refresh_trench),
        ]

    def status(self) -> Dict:
        snapshot = self.feed.get()
        return {
            "running": self.running,
            "tick_interval_ms": self.interval.current_ms,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick,
            "last_duration_seconds": self.last_duration,
            "last_error": self.last_error,
            "last_updated": snapshot.last_updated if snapshot else None,
            "token_count": len(snapshot.tokens) if snapshot else 0,
            "stale": snapshot.stale if snapshot else None,
            "sources": [gate.stats() for gate in self.gates.values()],
        }
