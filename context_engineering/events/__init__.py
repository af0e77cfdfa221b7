"""
Explicit publish/subscribe side channel for cache, timeout and orchestrator
observability events.
"""

from .event_bus import EventBus, EventSubscription
from .events import (
    Event,
    CacheEvent,
    PerformanceMetricsEvent,
    PerformanceAlertEvent,
    TimeoutWarningEvent,
    OrchestratorEvent,
)
from .handlers import EventHandler, LoggingEventHandler, CollectingEventHandler

__all__ = [
    'EventBus',
    'EventSubscription',
    'Event',
    'CacheEvent',
    'PerformanceMetricsEvent',
    'PerformanceAlertEvent',
    'TimeoutWarningEvent',
    'OrchestratorEvent',
    'EventHandler',
    'LoggingEventHandler',
    'CollectingEventHandler',
]
