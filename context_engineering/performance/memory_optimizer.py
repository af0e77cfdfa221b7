#!/usr/bin/env python3
"""
Memory Optimization for Context Engineering Operations

Samples process memory through psutil, triggers garbage collection under
memory pressure, and slims semantic analysis payloads before they are cached
or returned.
"""

import base64
import gc
import json
import logging
import threading
import time
import zlib
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import psutil

from .performance_cache import json_default

logger = logging.getLogger(__name__)

MB = 1024 * 1024
COMPRESSION_THRESHOLD = 1000  # characters
MIN_GC_INTERVAL = 10.0  # seconds

VERBOSE_FIELDS = ('debug', 'intermediate', 'raw_tokens', 'rawTokens')
SOURCE_FIELDS = ('source_code', 'sourceCode')
DEDUPLICATED_FIELDS = ('concepts', 'businessConcepts', 'business_concepts')


@dataclass
class MemoryConfig:
    max_memory_usage: int = 500 * MB
    gc_threshold: float = 0.8  # fraction of max_memory_usage
    monitoring_interval: float = 30.0
    compression_enabled: bool = True


@dataclass
class MemoryStats:
    """Memory usage statistics."""

    process_memory_mb: float = 0.0
    process_memory_percent: float = 0.0
    system_memory_percent: float = 0.0
    gc_objects: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'process_memory_mb': self.process_memory_mb,
            'process_memory_percent': self.process_memory_percent,
            'system_memory_percent': self.system_memory_percent,
            'gc_objects': self.gc_objects,
            'timestamp': self.timestamp
        }


def compress_text(text: str) -> str:
    return base64.b64encode(zlib.compress(text.encode('utf-8'))).decode('ascii')


def decompress_text(data: str) -> str:
    return zlib.decompress(base64.b64decode(data)).decode('utf-8')


def _deduplicate(items: List[Any]) -> List[Any]:
    seen = set()
    unique = []
    for item in items:
        marker = json.dumps(item, sort_keys=True, default=str) if isinstance(item, (dict, list)) else item
        if marker not in seen:
            seen.add(marker)
            unique.append(item)
    return unique


class MemoryOptimizer:
    """
    Tracks process memory and reduces the footprint of analysis results.
    """

    def __init__(self, config: Optional[MemoryConfig] = None):
        self.config = config or MemoryConfig()
        self.process = psutil.Process()

        self._lock = threading.Lock()
        self.current_usage = 0
        self.peak_usage = 0
        self.gc_triggered = 0
        self.objects_freed = 0
        self.optimizations = 0
        self.bytes_saved = 0
        self.stats_history: deque = deque(maxlen=100)
        self._last_gc_time = 0.0

        self._stop_event = threading.Event()
        self._monitor_thread: Optional[threading.Thread] = None

        self.update_memory_metrics()
        logger.info(f"Memory optimizer initialized (max {self.config.max_memory_usage / MB:.0f}MB, "
                    f"gc threshold {self.config.gc_threshold:.0%})")

    def get_current_stats(self) -> MemoryStats:
        memory_info = self.process.memory_info()
        return MemoryStats(
            process_memory_mb=memory_info.rss / MB,
            process_memory_percent=self.process.memory_percent(),
            system_memory_percent=psutil.virtual_memory().percent,
            gc_objects=len(gc.get_objects())
        )

    def get_current_memory_usage(self) -> int:
        """Resident set size of this process in bytes."""
        return self.process.memory_info().rss

    def update_memory_metrics(self) -> int:
        usage = self.get_current_memory_usage()
        with self._lock:
            self.current_usage = usage
            self.peak_usage = max(self.peak_usage, usage)
        return usage

    @staticmethod
    def estimate_size(value: Any) -> int:
        """Rough in-memory footprint: two bytes per character of the JSON encoding."""
        return len(json.dumps(value, default=json_default)) * 2

    @property
    def memory_pressure(self) -> float:
        return self.current_usage / self.config.max_memory_usage if self.config.max_memory_usage else 0.0

    def should_trigger_gc(self) -> bool:
        enough_time_passed = time.time() - self._last_gc_time > MIN_GC_INTERVAL
        return self.memory_pressure >= self.config.gc_threshold and enough_time_passed

    def perform_garbage_collection(self) -> int:
        """Collect every generation; returns the number of unreachable objects found."""
        start_time = time.time()
        collected = sum(gc.collect(generation) for generation in range(3))
        with self._lock:
            self.gc_triggered += 1
            self.objects_freed += collected
            self._last_gc_time = time.time()
        self.update_memory_metrics()
        logger.debug(f"Garbage collection freed {collected} objects in {time.time() - start_time:.3f}s")
        return collected

    def optimize_memory(self, force: bool = False) -> Dict[str, Any]:
        """Run garbage collection when under pressure, or always with ``force``."""
        before = self.update_memory_metrics()
        results = {
            'gc_collected': 0,
            'memory_before_mb': before / MB,
            'memory_after_mb': before / MB,
            'memory_freed_mb': 0.0
        }
        if not force and not self.should_trigger_gc():
            logger.debug("Memory optimization skipped - below threshold")
            return results

        results['gc_collected'] = self.perform_garbage_collection()
        after = self.current_usage
        results['memory_after_mb'] = after / MB
        results['memory_freed_mb'] = (before - after) / MB
        return results

    def optimize_semantic_data(self, analysis_data: List[Any]) -> List[Dict[str, Any]]:
        """
        Return slimmed copies of analysis payloads.

        Verbose fields are dropped, ``None`` values removed, concept lists
        de-duplicated, and source text longer than 1000 characters is
        zlib-compressed and flagged with ``_compressed``.
        """
        optimized_items = []
        for data in analysis_data:
            item = data.to_dict() if hasattr(data, 'to_dict') else dict(data)
            before = len(json.dumps(item, default=str))

            optimized = {k: v for k, v in item.items() if v is not None and k not in VERBOSE_FIELDS}

            if self.config.compression_enabled:
                for name in SOURCE_FIELDS:
                    text = optimized.get(name)
                    if isinstance(text, str) and len(text) > COMPRESSION_THRESHOLD:
                        optimized[name] = compress_text(text)
                        optimized['_compressed'] = True

            for name in DEDUPLICATED_FIELDS:
                if isinstance(optimized.get(name), list):
                    optimized[name] = _deduplicate(optimized[name])

            with self._lock:
                self.optimizations += 1
                self.bytes_saved += max(0, before - len(json.dumps(optimized, default=str)))
            optimized_items.append(optimized)

        return optimized_items

    def start_monitoring(self):
        if self._monitor_thread and self._monitor_thread.is_alive():
            return
        self._stop_event.clear()
        self._monitor_thread = threading.Thread(target=self._monitor_loop, daemon=True)
        self._monitor_thread.start()
        logger.info("Memory monitoring started")

    def stop_monitoring(self):
        self._stop_event.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5.0)
            self._monitor_thread = None

    def _monitor_loop(self):
        while not self._stop_event.wait(self.config.monitoring_interval):
            try:
                stats = self.get_current_stats()
                self.stats_history.append(stats)
                self.update_memory_metrics()
                if self.memory_pressure > 0.9:
                    logger.warning(f"High memory pressure: {stats.process_memory_mb:.1f}MB "
                                   f"of {self.config.max_memory_usage / MB:.0f}MB")
                if self.should_trigger_gc():
                    self.perform_garbage_collection()
            except psutil.Error as e:
                logger.error(f"Memory monitoring error: {e}")

    def get_metrics(self) -> Dict[str, Any]:
        self.update_memory_metrics()
        with self._lock:
            return {
                'current_usage': self.current_usage,
                'peak_usage': self.peak_usage,
                'gc_triggered': self.gc_triggered,
                'objects_freed': self.objects_freed,
                'optimizations': self.optimizations,
                'bytes_saved': self.bytes_saved,
                'memory_pressure': self.memory_pressure
            }

    def dispose(self):
        self.stop_monitoring()
        self.stats_history.clear()
        logger.debug("Memory optimizer disposed")
