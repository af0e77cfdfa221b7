#!/usr/bin/env python3
"""
Performance Cache for Context Engineering Operations

TTL + LRU key/value cache with byte-size accounting, dependency-based
invalidation and a background expiry sweep. Specialized caches key semantic
analysis results by file path and cross-domain mappings by file list.
"""

import base64
import hashlib
import json
import logging
import threading
import time
import zlib
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..events import EventBus, CacheEvent

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def json_default(obj: Any) -> Any:
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def calculate_size(value: Any) -> int:
    """Approximate footprint as the UTF-8 length of the JSON encoding."""
    return len(json.dumps(value, default=json_default).encode('utf-8'))


@dataclass
class CacheConfig:
    """Capacity and expiry settings. Times are in seconds."""
    max_size: int = 100 * MB
    max_entries: int = 10000
    default_ttl: float = 30 * 60
    cleanup_interval: float = 5 * 60
    enable_metrics: bool = True


@dataclass
class CacheEntry:
    """Represents a cached entry with metadata."""
    value: Any
    timestamp: float
    last_accessed: float
    size: int
    access_count: int = 1
    ttl: Optional[float] = None
    dependencies: List[str] = field(default_factory=list)
    compressed: bool = False

    def is_expired(self, default_ttl: float, now: Optional[float] = None) -> bool:
        ttl = self.ttl if self.ttl is not None else default_ttl
        return (now or time.time()) - self.timestamp > ttl

    def touch(self):
        self.last_accessed = time.time()
        self.access_count += 1


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'evictions': self.evictions,
            'totalSize': self.total_size,
            'hitRate': self.hit_rate
        }


@dataclass
class WarmingStrategy:
    """A key to pre-populate and the coroutine function that produces its value."""
    pattern: str
    loader: Callable[[], Awaitable[Any]]
    dependencies: List[str] = field(default_factory=list)


class PerformanceCache:
    """
    Size- and count-bounded LRU cache with per-entry TTL.

    The entry map, the dependency index and the counters are guarded by one
    re-entrant lock because the expiry sweep runs on its own thread.
    """

    cache_name = "performance"

    def __init__(self, config: Optional[CacheConfig] = None,
                 event_bus: Optional[EventBus] = None,
                 start_cleanup: bool = True):
        self.config = config or CacheConfig()
        self.event_bus = event_bus

        self._lock = threading.RLock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._dependency_graph: Dict[str, Set[str]] = defaultdict(set)
        self._metrics = CacheMetrics()

        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None
        if start_cleanup and self.config.cleanup_interval > 0:
            self._start_cleanup_thread()

        self._emit('initialized', details={
            'maxSize': self.config.max_size,
            'maxEntries': self.config.max_entries,
            'defaultTtl': self.config.default_ttl
        })
        logger.debug(f"{self.__class__.__name__} initialized: max_size={self.config.max_size}, "
                     f"max_entries={self.config.max_entries}, default_ttl={self.config.default_ttl}s")

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._record_miss()
                return None

            if entry.is_expired(self.config.default_ttl):
                self._remove(key)
                self._record_miss()
                logger.debug(f"Cache entry expired: {key}")
                return None

            entry.touch()
            self._entries.move_to_end(key)
            self._record_hit()
            value = entry.value

        if entry.compressed:
            return json.loads(zlib.decompress(base64.b64decode(value)).decode('utf-8'))
        return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None,
                  dependencies: Optional[List[str]] = None, compress: bool = False):
        """
        Store ``value`` under ``key``.

        Args:
            ttl: Seconds this entry lives; ``config.default_ttl`` when omitted
            dependencies: Tags that ``invalidate_by_dependency`` can target
            compress: Store the JSON encoding zlib-compressed
        """
        stored = value
        if compress:
            raw = json.dumps(value, default=json_default).encode('utf-8')
            stored = base64.b64encode(zlib.compress(raw)).decode('ascii')
            size = len(stored)
        else:
            size = calculate_size(value)

        now = time.time()
        with self._lock:
            if key in self._entries:
                self._remove(key)
            self._ensure_space(size)

            self._entries[key] = CacheEntry(
                value=stored,
                timestamp=now,
                last_accessed=now,
                size=size,
                ttl=ttl,
                dependencies=list(dependencies or []),
                compressed=compress
            )
            self._metrics.total_size += size

            for dependency in dependencies or []:
                self._dependency_graph[dependency].add(key)

        self._emit('set', key, {'size': size, 'dependencies': list(dependencies or [])})

    def delete(self, key: str) -> bool:
        with self._lock:
            entry = self._remove(key)
        if entry is None:
            return False
        self._emit('delete', key, {'size': entry.size})
        return True

    def has(self, key: str) -> bool:
        """Presence check that does not touch recency or metrics."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self.config.default_ttl)

    async def invalidate_by_dependency(self, dependency: str) -> int:
        """Delete every entry registered under ``dependency`` and drop the tag."""
        with self._lock:
            keys = list(self._dependency_graph.pop(dependency, ()))
            count = sum(1 for key in keys if self._remove(key) is not None)

        if keys:
            logger.debug(f"Invalidated {count} cache entries for dependency {dependency}")
            self._emit('invalidated', details={'dependency': dependency, 'count': count})
        return count

    async def set_many(self, entries: List[Dict[str, Any]]):
        """Store several ``{'key', 'value', 'dependencies'?}`` entries."""
        total_size = sum(calculate_size(e['value']) for e in entries)
        with self._lock:
            self._ensure_space(total_size)
        for entry in entries:
            await self.set(entry['key'], entry['value'], dependencies=entry.get('dependencies'))
        self._emit('bulk_set', details={'count': len(entries), 'totalSize': total_size})

    async def get_many(self, keys: List[str]) -> Dict[str, Any]:
        results = {}
        for key in keys:
            value = await self.get(key)
            if value is not None:
                results[key] = value
        self._emit('bulk_get', details={'requested': len(keys), 'found': len(results)})
        return results

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return self._metrics.to_dict()

    def get_detailed_metrics(self) -> Dict[str, Any]:
        with self._lock:
            metrics = self._metrics.to_dict()
            count = len(self._entries)
            total = self._metrics.total_size
            metrics.update({
                'entryCount': count,
                'averageEntrySize': total / count if count else 0,
                'memoryUsage': {
                    'totalBytes': total,
                    'totalMB': total / MB,
                    'utilizationPercent': total / self.config.max_size * 100 if self.config.max_size else 0
                },
                'topKeys': self._top_accessed_keys(10)
            })
            return metrics

    async def warm_cache(self, strategies: List[WarmingStrategy]):
        """Populate keys from loaders; a failing loader is reported and skipped."""
        self._emit('warming_started', details={'strategies': len(strategies)})

        for strategy in strategies:
            try:
                value = await strategy.loader()
            except Exception as e:
                logger.warning(f"Cache warming failed for {strategy.pattern}: {e}")
                self._emit('warming_error', strategy.pattern, {'error': str(e)})
                continue
            await self.set(strategy.pattern, value, dependencies=strategy.dependencies)

        with self._lock:
            size = len(self._entries)
        self._emit('warming_completed', details={'strategies': len(strategies), 'cacheSize': size})

    def perform_cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = time.time()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(self.config.default_ttl, now)]
            for key in expired:
                self._remove(key)
            remaining = len(self._entries)

        if expired:
            logger.debug(f"Cache cleanup removed {len(expired)} expired entries")
            self._emit('cleanup', details={'cleanedCount': len(expired), 'remainingCount': remaining})
        return len(expired)

    async def dispose(self):
        self._stop_event.set()
        if self._cleanup_thread and self._cleanup_thread.is_alive():
            self._cleanup_thread.join(timeout=1.0)

        with self._lock:
            self._entries.clear()
            self._dependency_graph.clear()
            self._metrics.total_size = 0
        self._emit('disposed')

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # Internal helpers, called with the lock held

    def _ensure_space(self, required_size: int):
        while (self._metrics.total_size + required_size > self.config.max_size
               or len(self._entries) >= self.config.max_entries):
            if not self._evict_lru():
                break

    def _evict_lru(self) -> bool:
        if not self._entries:
            return False
        oldest_key = next(iter(self._entries))
        self._remove(oldest_key)
        self._metrics.evictions += 1
        self._emit('evicted', oldest_key, {'reason': 'LRU'})
        return True

    def _remove(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        self._metrics.total_size -= entry.size
        for dependency in entry.dependencies:
            keys = self._dependency_graph.get(dependency)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._dependency_graph[dependency]
        return entry

    def _record_hit(self):
        if self.config.enable_metrics:
            self._metrics.hits += 1

    def _record_miss(self):
        if self.config.enable_metrics:
            self._metrics.misses += 1

    def _top_accessed_keys(self, limit: int) -> List[Dict[str, Any]]:
        ranked = sorted(self._entries.items(), key=lambda item: item[1].access_count, reverse=True)
        return [{'key': k, 'accessCount': e.access_count} for k, e in ranked[:limit]]

    def _start_cleanup_thread(self):
        self._cleanup_thread = threading.Thread(target=self._cleanup_loop, daemon=True)
        self._cleanup_thread.start()

    def _cleanup_loop(self):
        while not self._stop_event.wait(self.config.cleanup_interval):
            try:
                self.perform_cleanup()
            except Exception as e:
                logger.error(f"Error in cache cleanup loop: {e}")

    def _emit(self, operation: str, key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        if self.event_bus is None:
            return
        self.event_bus.publish(CacheEvent(
            source=self.__class__.__name__,
            operation=operation,
            cache_key=key,
            cache_name=self.cache_name,
            details=details or {}
        ))


def _md5(text: str) -> str:
    return hashlib.md5(text.encode('utf-8')).hexdigest()


class SemanticAnalysisCache(PerformanceCache):
    """Per-file semantic analysis results."""

    cache_name = "semantic-analysis"

    def __init__(self, config: Optional[CacheConfig] = None,
                 event_bus: Optional[EventBus] = None, start_cleanup: bool = True):
        super().__init__(config or CacheConfig(max_size=50 * MB, default_ttl=60 * 60, max_entries=5000),
                         event_bus, start_cleanup)

    @staticmethod
    def analysis_key(file_path: str) -> str:
        return f"analysis:{_md5(file_path)}"

    async def cache_analysis_result(self, file_path: str, analysis_result: Any):
        await self.set(self.analysis_key(file_path), analysis_result,
                       dependencies=[file_path, 'analysis-results'])

    async def get_cached_analysis(self, file_path: str) -> Optional[Any]:
        return await self.get(self.analysis_key(file_path))


class CrossDomainCache(PerformanceCache):
    """Domain mappings keyed by an order-independent hash of the source file list."""

    cache_name = "cross-domain"

    def __init__(self, config: Optional[CacheConfig] = None,
                 event_bus: Optional[EventBus] = None, start_cleanup: bool = True):
        super().__init__(config or CacheConfig(max_size=30 * MB, default_ttl=45 * 60, max_entries=3000),
                         event_bus, start_cleanup)

    @staticmethod
    def domain_mapping_key(source_files: List[str]) -> str:
        return f"domain-mapping:{_md5('|'.join(sorted(source_files)))}"

    async def cache_domain_mapping(self, source_files: List[str], mapping_result: Any):
        await self.set(self.domain_mapping_key(source_files), mapping_result,
                       dependencies=list(source_files) + ['domain-mappings'])

    async def get_cached_domain_mapping(self, source_files: List[str]) -> Optional[Any]:
        return await self.get(self.domain_mapping_key(source_files))


async def cached_call(cache: PerformanceCache, key: str,
                      loader: Callable[[], Awaitable[Any]],
                      ttl: Optional[float] = None,
                      dependencies: Optional[List[str]] = None) -> Tuple[Any, bool]:
    """
    Wrap-and-call caching: return ``(value, hit)``, computing and storing the
    value through ``loader`` on a miss. ``None`` results are not cached.
    """
    cached = await cache.get(key)
    if cached is not None:
        return cached, True

    value = await loader()
    if value is not None:
        await cache.set(key, value, ttl=ttl, dependencies=dependencies)
    return value, False
