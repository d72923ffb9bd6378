"""User watchlist persisted through an opaque key/value store.

The store only needs ``get(key)`` and ``put(key, value)``; values are JSON
strings. ``Watchlist`` and ``InMemoryKV`` are client-side helpers: the server
keeps no watchlist and only filters ``/signals`` by the addresses a client
sends (``parse_addresses`` + ``filter_by_addresses``). The feed never depends
on the watchlist beyond ``filter_tokens``.
"""
import json
import logging
import time
from typing import Dict, List, Optional

from engine.sanitize import clean_text, is_valid_solana_address

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "na_watchlist"
MAX_ENTRIES = 100


def parse_addresses(raw: str) -> List[str]:
    """Comma-separated addresses from a query string, invalid ones dropped."""
    addresses = (a.strip() for a in (raw or "").split(","))
    return list(dict.fromkeys(a for a in addresses if is_valid_solana_address(a)))


def filter_by_addresses(tokens: List[Dict], addresses) -> List[Dict]:
    watched = set(addresses)
    return [t for t in tokens if t.get("address") in watched]


class InMemoryKV:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value


class Watchlist:
    def __init__(self, kv, key: str = WATCHLIST_KEY):
        self.kv = kv
        self.key = key

    def load(self) -> List[Dict]:
        raw = self.kv.get(self.key)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError:
            logger.warning("Corrupt watchlist under %s, starting empty", self.key)
            return []
        if not isinstance(entries, list):
            return []
        return [e for e in entries if isinstance(e, dict) and is_valid_solana_address(e.get("address"))]

    def _save(self, entries: List[Dict]) -> None:
        self.kv.put(self.key, json.dumps(entries))

    def contains(self, address: str) -> bool:
        return any(e["address"] == address for e in self.load())

    def add(self, address: str, symbol: str = "", name: str = "", added_at: Optional[int] = None) -> bool:
        """Add an entry; returns False for invalid or already watched addresses."""
        if not is_valid_solana_address(address):
            return False
        entries = self.load()
        if any(e["address"] == address for e in entries):
            return False
        if len(entries) >= MAX_ENTRIES:
            logger.info("Watchlist full (%d), dropping oldest entry", MAX_ENTRIES)
            entries = entries[1:]
        entries.append({
            "address": address,
            "symbol": clean_text(symbol, 20),
            "name": clean_text(name, 100),
            "addedAt": int(time.time() * 1000) if added_at is None else added_at,
        })
        self._save(entries)
        return True

    def remove(self, address: str) -> bool:
        entries = self.load()
        kept = [e for e in entries if e["address"] != address]
        if len(kept) == len(entries):
            return False
        self._save(kept)
        return True

    def filter_tokens(self, tokens: List[Dict]) -> List[Dict]:
        return filter_by_addresses(tokens, (e["address"] for e in self.load()))
