"""Namespaced in-memory TTL cache shared between the refresh tick and read-side handlers."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from constants import CACHE_DEFAULT_MAX_SIZE, CACHE_DEFAULT_TTL, CACHE_NAMESPACES

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheEntry:
    namespace: str
    key: str
    payload: Any
    inserted_at: float
    last_accessed_at: float


class OpportunityCache:
    """
    Four namespaces, each with its own TTL and capacity.

    Reads never take a namespace lock. Writes, evictions and sweeps take the
    namespace's lock; counters sit behind a separate lock.
    """

    def __init__(
        self,
        ttls: Optional[Mapping[str, float]] = None,
        max_sizes: Optional[Mapping[str, int]] = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttls: Dict[str, float] = dict(CACHE_DEFAULT_TTL)
        self._ttls.update(ttls or {})
        self._max_sizes: Dict[str, int] = dict(CACHE_DEFAULT_MAX_SIZE)
        self._max_sizes.update(max_sizes or {})
        self._entries: Dict[str, Dict[str, CacheEntry]] = {ns: {} for ns in CACHE_NAMESPACES}
        self._locks: Dict[str, threading.Lock] = {ns: threading.Lock() for ns in CACHE_NAMESPACES}
        self._stats_lock = threading.Lock()
        self._counters = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0, 'expirations': 0}
        self._clock = clock
        self.enabled = enabled

    def _namespace(self, namespace: str) -> Dict[str, CacheEntry]:
        try:
            return self._entries[namespace]
        except KeyError:
            raise KeyError(f"Unknown cache namespace: {namespace}") from None

    def _bump(self, counter: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._counters[counter] += amount

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at < self._ttls[entry.namespace]

    def get(self, namespace: str, key: str) -> Any:
        """Returns the payload if present and unexpired, else None. Expired entries are dropped."""
        entries = self._namespace(namespace)
        if not self.enabled:
            self._bump('misses')
            return None

        entry = entries.get(key)
        now = self._clock()
        if entry is None:
            self._bump('misses')
            return None
        if not self._is_fresh(entry, now):
            with self._locks[namespace]:
                if entries.get(key) is entry:
                    del entries[key]
                    self._bump('expirations')
            self._bump('misses')
            return None

        entry.last_accessed_at = now
        self._bump('hits')
        return entry.payload

    def set(self, namespace: str, key: str, payload: Any) -> None:
        entries = self._namespace(namespace)
        if not self.enabled:
            return

        with self._locks[namespace]:
            now = self._clock()
            if key not in entries and len(entries) >= self._max_sizes[namespace]:
                self._evict_oldest(namespace, entries)
            entries[key] = CacheEntry(namespace, key, payload, now, now)
        self._bump('sets')

    def _evict_oldest(self, namespace: str, entries: Dict[str, CacheEntry]) -> None:
        if not entries:
            return
        oldest_key = min(entries, key=lambda k: entries[k].last_accessed_at)
        del entries[oldest_key]
        self._bump('evictions')
        logger.debug("Evicted %s/%s at capacity", namespace, oldest_key)

    def sweep(self) -> int:
        """Removes every expired entry in every namespace and returns how many were removed."""
        removed = 0
        now = self._clock()
        for namespace, entries in self._entries.items():
            with self._locks[namespace]:
                expired = [key for key, entry in entries.items() if not self._is_fresh(entry, now)]
                for key in expired:
                    del entries[key]
            removed += len(expired)
        if removed:
            self._bump('expirations', removed)
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    def invalidate(self, namespace: Optional[str] = None) -> None:
        namespaces = [namespace] if namespace else list(self._entries)
        for ns in namespaces:
            entries = self._namespace(ns)
            with self._locks[ns]:
                entries.clear()

    def set_ttl(self, namespace: str, ttl: float) -> None:
        self._namespace(namespace)
        if ttl <= 0:
            raise ValueError("TTL must be positive")
        self._ttls[namespace] = float(ttl)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.invalidate()

    def size(self, namespace: str) -> int:
        return len(self._namespace(namespace))

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            counters = dict(self._counters)
        lookups = counters['hits'] + counters['misses']
        counters['hit_rate'] = round(counters['hits'] / lookups * 100, 2) if lookups else 0.0
        counters['enabled'] = self.enabled
        counters['sizes'] = {ns: len(entries) for ns, entries in self._entries.items()}
        counters['ttls'] = dict(self._ttls)
        return counters
