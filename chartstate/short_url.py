"""
Chart State - Short URLs

Deterministic share links: the same chart configuration always hashes
to the same 12-character id, so short links need no server round trip.

  normalize → sorted keys, empty tokens dropped
  hash      → first 12 hex chars of SHA-256 over the compact JSON
  url       → {base_url}/s/{hash}

ShortUrlCache memoizes hash → URL for one session or process. It is an
injected collaborator, never a module-level singleton.

Usage:
    from chartstate.short_url import ShortUrlCache

    cache = ShortUrlCache(base_url="https://www.mortality.watch")
    link = cache.get_short_url({"c": ["USA", "SWE"], "cs": "bar"})
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import unquote

DEFAULT_BASE_URL = "https://www.mortality.watch"
HASH_LENGTH = 12


def extract_params(query: Mapping[str, Any]) -> dict[str, str]:
    """
    Flatten a parsed query into decoded values: repeated keys are
    joined with commas.
    """
    params: dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = ",".join(unquote(str(v)) for v in value if v is not None)
        else:
            value = unquote(str(value))
        params[key] = value
    return params


def normalize_config(params: Mapping[str, Any]) -> dict[str, str]:
    """
    Canonical form of an encoded query. Input is expected to be minimal
    already (StateResolver.encode omits defaults), so nothing but empty
    tokens is dropped: default values depend on the active view.
    """
    normalized: dict[str, str] = {}
    for key in sorted(params):
        value = params[key]
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value if v is not None)
        if value is None or value == "":
            continue
        normalized[key] = str(value)
    return normalized


def compute_config_hash(params: Mapping[str, Any]) -> str:
    payload = json.dumps(normalize_config(params), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def build_short_url(config_hash: str, base_url: str = DEFAULT_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/s/{config_hash}"


# ═══════════════════════════════════════════════════════════════════
# Cache
# ═══════════════════════════════════════════════════════════════════

@dataclass
class ShortUrlStats:
    gets: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        if self.gets == 0:
            return 0.0
        return self.hits / self.gets

    def to_dict(self) -> dict[str, Any]:
        return {
            "gets": self.gets,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 3),
        }


class ShortUrlCache:
    """Bounded, thread-safe LRU of config hash → short URL."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, max_entries: int = 1000):
        self.base_url = base_url
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._stats = ShortUrlStats()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, config_hash: object) -> bool:
        with self._lock:
            return config_hash in self._entries

    def get_short_url(self, query: Mapping[str, Any]) -> str:
        config_hash = compute_config_hash(extract_params(query))
        with self._lock:
            self._stats.gets += 1
            cached = self._entries.get(config_hash)
            if cached is not None:
                self._entries.move_to_end(config_hash)
                self._stats.hits += 1
                return cached

            self._stats.misses += 1
            url = build_short_url(config_hash, self.base_url)
            self._entries[config_hash] = url
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
            return url

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def stats(self) -> ShortUrlStats:
        return self._stats
