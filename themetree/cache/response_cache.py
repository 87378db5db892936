"""
In-memory response cache with per-kind TTL and a global byte budget.

Entries are immutable once written. When the budget is exceeded the oldest
inserted entries are evicted first (least recently used first when `lru` is
enabled). All bookkeeping happens under one lock, and the lock is never held
while a producer runs.
"""

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from themetree.config.analysis_config import CacheConfig
from themetree.gateway.clock import SYSTEM_CLOCK, Clock

from .keys import key_kind


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    ttl: float
    size: int
    kind: str

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0
    hits_by_kind: Dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


def estimate_size(key: str, value: Any) -> int:
    try:
        body = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        body = repr(value)
    return len(key.encode("utf-8")) + len(body.encode("utf-8"))


class ResponseCache:
    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or CacheConfig()
        self.clock = clock or SYSTEM_CLOCK
        self.logger = logger or logging.getLogger(__name__)
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._bytes = 0
        self._lock = threading.RLock()
        self.stats = CacheMetrics()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            return self._get_locked(key)

    def get_batch(self, keys: Iterable[str]) -> List[Optional[Any]]:
        with self._lock:
            return [self._get_locked(key) for key in keys]

    def _get_locked(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None
        if entry.is_expired(self.clock.monotonic()):
            self._remove(key)
            self.stats.expirations += 1
            self.stats.misses += 1
            return None
        if self.config.lru:
            self._entries.move_to_end(key)
        self.stats.hits += 1
        self.stats.hits_by_kind[entry.kind] = self.stats.hits_by_kind.get(entry.kind, 0) + 1
        return entry.value

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self.clock.monotonic())

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        if not self.config.enabled or value is None:
            return
        kind = key_kind(key)
        ttl = ttl if ttl is not None else self.config.ttl_for(kind)
        size = estimate_size(key, value)
        if size > self.config.max_bytes:
            self.logger.warning(
                f"[ResponseCache] Skipping {kind} entry of {size} bytes, larger than the whole budget"
            )
            return
        with self._lock:
            if key in self._entries:
                self._remove(key)
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=self.clock.monotonic(),
                ttl=ttl,
                size=size,
                kind=kind,
            )
            self._bytes += size
            self.stats.sets += 1
            self._evict_over_budget()

    def clear(self, scope: Optional[str] = None) -> int:
        """Drop every entry, or only the entries of one request kind."""
        with self._lock:
            if scope is None:
                removed = len(self._entries)
                self._entries.clear()
                self._bytes = 0
            else:
                doomed = [k for k, e in self._entries.items() if e.kind == scope]
                for key in doomed:
                    self._remove(key)
                removed = len(doomed)
        self.logger.info(f"[ResponseCache] Cleared {removed} entries" + (f" of kind {scope}" if scope else ""))
        return removed

    def purge_expired(self) -> int:
        now = self.clock.monotonic()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in doomed:
                self._remove(key)
            self.stats.expirations += len(doomed)
        if doomed:
            self.logger.debug(f"[ResponseCache] Purged {len(doomed)} expired entries")
        return len(doomed)

    async def warm(
        self,
        keys: Iterable[str],
        producer: Callable[[str], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> int:
        """Fill misses by awaiting `producer(key)`; returns how many entries were added."""
        added = 0
        for key in keys:
            if key in self:
                continue
            value = await producer(key)
            if value is not None:
                self.set(key, value, ttl)
                if key in self:
                    added += 1
        return added

    def _remove(self, key: str):
        entry = self._entries.pop(key)
        self._bytes -= entry.size

    def _evict_over_budget(self):
        while self._bytes > self.config.max_bytes and self._entries:
            key, entry = self._entries.popitem(last=False)
            self._bytes -= entry.size
            self.stats.evictions += 1
            self.logger.debug(f"[ResponseCache] Evicted {entry.kind} entry ({entry.size} bytes)")

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------
    @property
    def memory_usage(self) -> int:
        return self._bytes

    def metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "hits": self.stats.hits,
                "misses": self.stats.misses,
                "sets": self.stats.sets,
                "evictions": self.stats.evictions,
                "expirations": self.stats.expirations,
                "hit_rate": self.stats.hit_rate,
                "hits_by_kind": dict(self.stats.hits_by_kind),
                "entries": len(self._entries),
                "memory_usage": self._bytes,
                "memory_budget": self.config.max_bytes,
            }

    def efficiency_report(self) -> str:
        m = self.metrics()
        lines = [
            "Response cache",
            f"  hit rate:     {m['hit_rate'] * 100:.1f}% ({m['hits']} hits / {m['misses']} misses)",
            f"  entries:      {m['entries']}",
            f"  memory:       {m['memory_usage'] / 1024:.1f} KiB of {m['memory_budget'] / 1024 / 1024:.0f} MiB",
            f"  evictions:    {m['evictions']}  expirations: {m['expirations']}",
        ]
        for kind, hits in sorted(m["hits_by_kind"].items()):
            lines.append(f"  {kind}: {hits} hits")
        return "\n".join(lines)
