#!/usr/bin/env python3
"""
Exception hierarchy for the context engineering core.

Low-level components (ImpactMapper, TimeoutManager, ParallelProcessor) raise
these; the PerformanceOrchestrator converts them into failed results.
"""

from typing import Optional


class ContextEngineeringError(Exception):
    """Base class for all context engineering errors."""


class ImpactAnalysisTimeoutError(ContextEngineeringError):
    """Raised when an impact prediction phase exceeds its time budget."""

    def __init__(self, elapsed_ms: float, timeout_ms: float, context: str):
        self.elapsed_ms = elapsed_ms
        self.timeout_ms = timeout_ms
        self.context = context
        super().__init__(
            f"Impact mapping timeout exceeded after {elapsed_ms:.0f}ms during {context}. "
            f"Timeout limit: {timeout_ms}ms"
        )


class OperationTimeoutError(ContextEngineeringError):
    """Raised by TimeoutManager when a wrapped operation misses its deadline."""

    def __init__(self, operation_name: str, timeout_ms: float, elapsed_ms: float):
        self.operation_name = operation_name
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            f"Operation {operation_name} timed out after {timeout_ms:.0f}ms "
            f"(elapsed {elapsed_ms:.0f}ms)"
        )


class OperationCancelledError(ContextEngineeringError):
    """Raised to callers whose pending operation was cancelled in bulk."""

    def __init__(self, operation_name: str, reason: Optional[str] = None):
        self.operation_name = operation_name
        self.reason = reason or "Operation cancelled"
        super().__init__(f"Operation {operation_name} cancelled: {self.reason}")


class ConfigurationError(ContextEngineeringError):
    """Raised for invalid or unusable configuration."""


class QueueFullError(ContextEngineeringError):
    """Raised when the parallel processor cannot accept more tasks."""


class TaskDependencyError(ContextEngineeringError):
    """Raised when a task depends on a task that failed or is unknown."""
