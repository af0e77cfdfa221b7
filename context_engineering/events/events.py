#!/usr/bin/env python3
"""
Event Definitions for the Context Engineering Core

Events form an observability side channel: caches, the timeout manager and
the orchestrator publish them, and nothing in the core depends on them being
delivered.
"""

import time
import uuid
from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from abc import ABC, abstractmethod


@dataclass
class Event(ABC):
    """Base class for all events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)
    event_type: str = field(init=False)
    source: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Set event type based on class name."""
        self.event_type = self.__class__.__name__

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel name such as ``cache:set`` or ``performance:alert``."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return {
            'event_id': self.event_id,
            'event_type': self.event_type,
            'name': self.name,
            'timestamp': self.timestamp,
            'source': self.source,
            'correlation_id': self.correlation_id,
            'metadata': self.metadata,
            'data': self._get_event_data()
        }

    @abstractmethod
    def _get_event_data(self) -> Dict[str, Any]:
        """Get event-specific data."""
        pass


@dataclass
class CacheEvent(Event):
    """Event fired for cache operations."""

    operation: str = ""  # initialized, set, delete, invalidated, evicted, cleanup, ...
    cache_key: Optional[str] = None
    cache_name: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"cache:{self.operation}"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            'operation': self.operation,
            'cache_key': self.cache_key,
            'cache_name': self.cache_name,
            'details': self.details
        }


@dataclass
class PerformanceMetricsEvent(Event):
    """Periodic snapshot of orchestrator metrics."""

    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return "performance:metrics"

    def _get_event_data(self) -> Dict[str, Any]:
        return {'metrics': self.metrics}


@dataclass
class PerformanceAlertEvent(Event):
    """A metric crossed its configured alert threshold."""

    alert_type: str = ""  # high_response_time, high_memory_usage, high_queue_size
    value: float = 0.0
    threshold: float = 0.0

    @property
    def name(self) -> str:
        return "performance:alert"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            'alert_type': self.alert_type,
            'value': self.value,
            'threshold': self.threshold
        }


@dataclass
class TimeoutWarningEvent(Event):
    """An operation finished but ran past its soft time budget."""

    request_id: str = ""
    operation: str = ""
    total_time_ms: float = 0.0
    timeout_ms: float = 0.0

    @property
    def name(self) -> str:
        return "performance:timeout_warning"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            'request_id': self.request_id,
            'operation': self.operation,
            'total_time_ms': self.total_time_ms,
            'timeout_ms': self.timeout_ms
        }


@dataclass
class OrchestratorEvent(Event):
    """Orchestrator lifecycle transitions."""

    action: str = ""  # initialized, shutdown
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"orchestrator:{self.action}"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            'action': self.action,
            'details': self.details
        }
