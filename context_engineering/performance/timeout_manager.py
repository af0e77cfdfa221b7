#!/usr/bin/env python3
"""
Timeout Manager

Wraps awaitables with dynamically scaled deadlines, keeps a registry of
in-flight operations for introspection, and supports bulk cancellation of
every pending caller.

On timeout the caller is rejected. The wrapped work keeps running in the
background (its result is discarded) unless the manager was created with
``cancel_on_timeout=True``.
"""

import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Awaitable, Dict, List, Optional

from ..exceptions import OperationTimeoutError, OperationCancelledError

logger = logging.getLogger(__name__)

MAX_SCALE_FACTOR = 3.0

TIMEOUT_SUGGESTIONS = {
    'semantic_analysis': 'Consider reducing the number of files analyzed or increasing timeout for large codebases',
    'domain_analysis': 'Domain analysis timeout - may need to optimize domain detection algorithms',
    'context_generation': 'Context generation taking too long - consider chunked processing',
    'file_operations': 'File operations timeout - check disk I/O performance or reduce batch size',
    'full_reindex': 'Full reindex timeout - consider processing files in smaller batches',
    'single_file_analysis': 'Single file analysis should be fast - investigate file size or complexity',
}


@dataclass
class TimeoutConfig:
    """Per-operation default budgets in milliseconds."""
    semantic_analysis: float = 60000
    domain_analysis: float = 30000
    context_generation: float = 45000
    file_operations: float = 30000
    full_reindex: float = 300000
    single_file_analysis: float = 10000
    default: float = 30000

    def timeout_for(self, operation_name: str) -> float:
        if operation_name in {f.name for f in fields(self)}:
            return getattr(self, operation_name)
        return self.default

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class OperationRecord:
    """Registry entry for one wrapped operation."""
    operation_id: str
    operation_name: str
    start_time: float
    timeout_ms: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    completed: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def elapsed_ms(self) -> float:
        return (time.time() - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'operationId': self.operation_id,
            'operationName': self.operation_name,
            'startTime': self.start_time,
            'timeoutMs': self.timeout_ms,
            'metadata': dict(self.metadata),
            'completed': self.completed,
            'timedOut': self.timed_out,
            'error': self.error
        }


def _hint(metadata: Dict[str, Any], *names: str) -> int:
    for name in names:
        value = metadata.get(name)
        if isinstance(value, (list, tuple, set)):
            return len(value)
        if isinstance(value, (int, float)):
            return int(value)
    return 0


def _discard_result(task: "asyncio.Future"):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned operation finished with error: {error}")


class TimeoutManager:
    """Runs awaitables against scaled deadlines and tracks what is in flight."""

    def __init__(self, config: Optional[TimeoutConfig] = None, cancel_on_timeout: bool = False):
        self.config = config or TimeoutConfig()
        self.cancel_on_timeout = cancel_on_timeout
        self._active: Dict[str, OperationRecord] = {}
        self._cancel_futures: Dict[str, asyncio.Future] = {}
        logger.info(f"TimeoutManager initialized with config: {self.config.to_dict()}")

    def calculate_timeout(self, operation_name: str, metadata: Optional[Dict[str, Any]] = None) -> float:
        """
        Default budget for ``operation_name`` scaled by size hints.

        ``file_count`` above 10 adds 1% per extra file, ``domain_count`` above
        3 adds 20% per extra domain. The factor is capped at 3x.
        """
        metadata = metadata or {}
        base = self.config.timeout_for(operation_name)
        scale = 1.0

        file_count = _hint(metadata, 'file_count', 'fileCount', 'changed_files')
        if file_count > 10:
            scale *= 1 + (file_count - 10) / 100

        domain_count = _hint(metadata, 'domain_count', 'domainCount', 'affected_domains')
        if domain_count > 3:
            scale *= 1 + (domain_count - 3) * 0.2

        scale = min(scale, MAX_SCALE_FACTOR)
        scaled = round(base * scale)
        if scale > 1:
            logger.debug(f"Applied timeout scaling for {operation_name}: {base}ms x {scale:.2f} = {scaled}ms")
        return scaled

    async def execute_with_timeout(self, operation: Awaitable, operation_name: str,
                                   metadata: Optional[Dict[str, Any]] = None,
                                   timeout_ms: Optional[float] = None) -> Any:
        """
        Await ``operation`` with a deadline.

        Raises:
            OperationTimeoutError: the deadline passed first
            OperationCancelledError: ``cancel_all_operations`` ran first
        """
        metadata = dict(metadata or {})
        budget = timeout_ms if timeout_ms is not None else self.calculate_timeout(operation_name, metadata)
        loop = asyncio.get_running_loop()

        record = OperationRecord(
            operation_id=f"{operation_name}_{uuid.uuid4().hex[:8]}",
            operation_name=operation_name,
            start_time=time.time(),
            timeout_ms=budget,
            metadata=metadata
        )
        cancel_future = loop.create_future()
        self._active[record.operation_id] = record
        self._cancel_futures[record.operation_id] = cancel_future

        logger.debug(f"Starting operation {operation_name} with timeout {budget}ms")
        task = asyncio.ensure_future(operation)
        warning = loop.call_later(budget / 1000 * 0.5, self._warn_slow, record)

        try:
            done, _ = await asyncio.wait({task, cancel_future}, timeout=budget / 1000,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            warning.cancel()
            self._active.pop(record.operation_id, None)
            self._cancel_futures.pop(record.operation_id, None)

        if task in done:
            record.completed = True
            if not cancel_future.done():
                cancel_future.cancel()
            try:
                result = task.result()
            except Exception as e:
                record.error = str(e)
                logger.error(f"Operation {operation_name} failed after {record.elapsed_ms:.0f}ms: {e}")
                raise
            logger.debug(f"Operation {operation_name} completed in {record.elapsed_ms:.0f}ms "
                         f"({record.elapsed_ms / budget * 100:.1f}% of budget)")
            return result

        self._abandon(task)

        if cancel_future in done:
            error = cancel_future.exception()
            record.error = str(error)
            raise error

        cancel_future.cancel()
        record.timed_out = True
        error = OperationTimeoutError(operation_name, budget, record.elapsed_ms)
        record.error = str(error)
        logger.error(f"Operation {operation_name} timed out: {error}. "
                     f"{self.get_timeout_suggestion(operation_name, metadata)}")
        raise error

    def _abandon(self, task: "asyncio.Future"):
        if self.cancel_on_timeout:
            task.cancel()
        else:
            task.add_done_callback(_discard_result)

    @staticmethod
    def _warn_slow(record: OperationRecord):
        logger.warning(f"Operation {record.operation_name} is taking longer than expected: "
                       f"{record.elapsed_ms:.0f}ms of {record.timeout_ms}ms")

    @staticmethod
    def get_timeout_suggestion(operation_name: str, metadata: Dict[str, Any]) -> str:
        suggestion = TIMEOUT_SUGGESTIONS.get(operation_name, 'Consider increasing timeout or optimizing operation')
        if _hint(metadata, 'file_count', 'fileCount') > 50:
            suggestion += '. Large file count detected - consider parallel processing.'
        if _hint(metadata, 'total_files', 'totalFiles') > 1000:
            suggestion += '. Very large project detected - consider incremental processing.'
        return suggestion

    def get_active_operations(self) -> List[OperationRecord]:
        return list(self._active.values())

    def cancel_all_operations(self, reason: str = "Manual cancellation") -> int:
        """Reject every pending caller with OperationCancelledError and clear the registry."""
        records = list(self._active.values())
        futures = dict(self._cancel_futures)

        for record in records:
            logger.warning(f"Cancelling active operation: {record.operation_name} "
                           f"after {record.elapsed_ms:.0f}ms ({reason})")
            future = futures.get(record.operation_id)
            if future is not None and not future.done():
                self._reject(future, OperationCancelledError(record.operation_name, reason))

        self._active.clear()
        self._cancel_futures.clear()

        if records:
            logger.info(f"Cancelled {len(records)} active operations: {reason}")
        return len(records)

    @staticmethod
    def _reject(future: asyncio.Future, error: Exception):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is future.get_loop():
            future.set_exception(error)
        else:
            future.get_loop().call_soon_threadsafe(
                lambda: future.done() or future.set_exception(error)
            )

    def get_config(self) -> TimeoutConfig:
        return TimeoutConfig(**self.config.to_dict())

    def update_config(self, **updates: float):
        known = {f.name for f in fields(TimeoutConfig)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown timeout settings: {sorted(unknown)}")
        for name, value in updates.items():
            setattr(self.config, name, value)
        logger.info(f"Timeout configuration updated: {updates}")

    def get_performance_stats(self) -> Dict[str, Any]:
        active = self.get_active_operations()
        return {
            'activeOperations': len(active),
            'longestRunningOperation': max((op.elapsed_ms for op in active), default=0),
            'operationsByType': dict(Counter(op.operation_name for op in active)),
            'currentConfig': self.config.to_dict(),
            'recommendations': self._performance_recommendations(active)
        }

    @staticmethod
    def _performance_recommendations(active: List[OperationRecord]) -> List[str]:
        recommendations = []
        if len(active) > 5:
            recommendations.append('High number of concurrent operations - consider implementing operation queuing')

        near_timeout = [op for op in active if op.elapsed_ms > op.timeout_ms * 0.8]
        if near_timeout:
            recommendations.append(f"{len(near_timeout)} operations are near timeout - "
                                   f"consider increasing timeouts or optimizing performance")

        if sum(1 for op in active if op.operation_name == 'semantic_analysis') > 2:
            recommendations.append('Multiple semantic analysis operations running - consider batching files together')
        return recommendations
