#!/usr/bin/env python3
"""
Event Handlers

Ready-made subscribers for logging and collecting side-channel events.
"""

import logging
from collections import defaultdict, deque
from typing import Dict, List, Optional, Set
from abc import ABC, abstractmethod

from .events import Event

logger = logging.getLogger(__name__)


class EventHandler(ABC):
    """Abstract base class for event handlers."""

    @abstractmethod
    def handle(self, event: Event) -> None:
        """Handle an event."""
        pass

    def __call__(self, event: Event) -> None:
        self.handle(event)


class LoggingEventHandler(EventHandler):
    """Logs every event it receives, optionally restricted to some channel names."""

    def __init__(self, log_level: int = logging.INFO, name_filters: Optional[Set[str]] = None):
        self.log_level = log_level
        self.name_filters = name_filters
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def handle(self, event: Event) -> None:
        if self.name_filters and event.name not in self.name_filters:
            return
        self.logger.log(self.log_level, f"Event: {event.name} {event.to_dict()['data']}")


class CollectingEventHandler(EventHandler):
    """Keeps the most recent events per channel name."""

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self.events: deque = deque(maxlen=max_events)
        self.counts: Dict[str, int] = defaultdict(int)

    def handle(self, event: Event) -> None:
        self.events.append(event)
        self.counts[event.name] += 1

    def names(self) -> List[str]:
        return [e.name for e in self.events]
