#!/usr/bin/env python3
"""
Event Bus for the Context Engineering Core

Explicit publish/subscribe side channel. Components receive an EventBus
through their constructor; there is no process-wide default instance.
Subscribers register by event class or by channel-name pattern
(``cache:*``, ``performance:alert``).
"""

import fnmatch
import logging
import threading
import time
import uuid
from typing import Dict, List, Optional, Any, Callable, Set, Type, Union
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor, Future
from collections import deque

from .events import Event

logger = logging.getLogger(__name__)


@dataclass
class EventSubscription:
    """Represents a subscription to events."""

    subscription_id: str
    event_types: Set[Type[Event]]
    handler: Callable[[Event], None]
    name_pattern: Optional[str] = None
    priority: int = 0
    is_async: bool = False
    filter_func: Optional[Callable[[Event], bool]] = None
    created_at: float = field(default_factory=time.time)

    def matches_event(self, event: Event) -> bool:
        """Check if this subscription matches the given event."""
        if not any(isinstance(event, event_type) for event_type in self.event_types):
            return False

        if self.name_pattern and not fnmatch.fnmatchcase(event.name, self.name_pattern):
            return False

        if self.filter_func and not self.filter_func(event):
            return False

        return True


@dataclass
class EventMetrics:
    """Metrics for event processing."""

    events_published: int = 0
    events_processed: int = 0
    subscriptions_active: int = 0
    processing_errors: int = 0
    average_processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'events_published': self.events_published,
            'events_processed': self.events_processed,
            'subscriptions_active': self.subscriptions_active,
            'processing_errors': self.processing_errors,
            'average_processing_time': self.average_processing_time
        }


class EventBus:
    """
    Thread-safe observer list with priority ordering.

    Handler failures are logged and counted; they never propagate to the
    publisher.
    """

    def __init__(self, max_workers: int = 2, enable_async: bool = False):
        self.enable_async = enable_async
        self._lock = threading.RLock()
        self._subscriptions: Dict[str, EventSubscription] = {}
        self._thread_pool = ThreadPoolExecutor(max_workers=max_workers) if enable_async else None
        self._pending: List[Future] = []
        self._metrics = EventMetrics()
        self._processing_times: deque = deque(maxlen=100)
        self._shutdown = False

        logger.debug(f"Event bus initialized, async={enable_async}")

    def subscribe(self,
                  target: Union[str, Type[Event], List[Type[Event]]],
                  handler: Callable[[Event], None],
                  priority: int = 0,
                  is_async: bool = False,
                  filter_func: Optional[Callable[[Event], bool]] = None) -> str:
        """
        Subscribe to events.

        Args:
            target: Event class(es), or a channel-name pattern such as ``cache:*``
            handler: Callable receiving the event
            priority: Higher runs first
            is_async: Run the handler on the bus thread pool
            filter_func: Optional extra predicate

        Returns:
            Subscription ID
        """
        if isinstance(target, str):
            event_types, name_pattern = {Event}, target
        elif isinstance(target, list):
            event_types, name_pattern = set(target), None
        else:
            event_types, name_pattern = {target}, None

        subscription = EventSubscription(
            subscription_id=f"sub_{uuid.uuid4().hex[:12]}",
            event_types=event_types,
            handler=handler,
            name_pattern=name_pattern,
            priority=priority,
            is_async=is_async and self.enable_async,
            filter_func=filter_func
        )

        with self._lock:
            self._subscriptions[subscription.subscription_id] = subscription
            self._metrics.subscriptions_active = len(self._subscriptions)

        logger.debug(f"Subscribed {subscription.subscription_id} to {name_pattern or event_types}")
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(subscription_id, None) is not None
            self._metrics.subscriptions_active = len(self._subscriptions)
        if removed:
            logger.debug(f"Unsubscribed {subscription_id}")
        return removed

    def publish(self, event: Event) -> int:
        """Deliver ``event`` to every matching subscriber, returning how many handled it."""
        if self._shutdown:
            logger.warning(f"Event bus is shutdown, ignoring event {event.name}")
            return 0

        with self._lock:
            matching = sorted(
                (s for s in self._subscriptions.values() if s.matches_event(event)),
                key=lambda s: s.priority, reverse=True
            )
            self._metrics.events_published += 1

        processed = 0
        for subscription in matching:
            if subscription.is_async:
                self._process_async(event, subscription)
                processed += 1
            elif self._process_sync(event, subscription):
                processed += 1

        with self._lock:
            self._metrics.events_processed += processed
        return processed

    def emit(self, event: Event) -> int:
        return self.publish(event)

    def _process_sync(self, event: Event, subscription: EventSubscription) -> bool:
        start_time = time.time()
        try:
            subscription.handler(event)
        except Exception as e:
            logger.error(f"Handler {subscription.subscription_id} failed for event {event.name}: {e}")
            with self._lock:
                self._metrics.processing_errors += 1
            return False

        self._update_processing_time(time.time() - start_time)
        return True

    def _process_async(self, event: Event, subscription: EventSubscription):
        future = self._thread_pool.submit(self._process_sync, event, subscription)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

    def _update_processing_time(self, processing_time: float):
        with self._lock:
            self._processing_times.append(processing_time)
            self._metrics.average_processing_time = sum(self._processing_times) / len(self._processing_times)

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Wait for async handlers; returns False if ``timeout`` elapsed first."""
        start_time = time.time()
        while True:
            with self._lock:
                self._pending = [f for f in self._pending if not f.done()]
                if not self._pending:
                    return True
            if timeout is not None and time.time() - start_time > timeout:
                return False
            time.sleep(0.01)

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return self._metrics.to_dict()

    def clear_subscriptions(self):
        with self._lock:
            self._subscriptions.clear()
            self._metrics.subscriptions_active = 0
        logger.debug("All subscriptions cleared")

    def shutdown(self, timeout: float = 5.0):
        logger.debug("Shutting down event bus")
        if not self.wait_for_completion(timeout):
            logger.warning(f"Event bus shutdown timeout after {timeout}s")
        self._shutdown = True
        if self._thread_pool:
            self._thread_pool.shutdown(wait=True)
