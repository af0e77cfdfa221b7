"""
Tests for the EventBus side channel.
"""

import logging

import pytest

from context_engineering.events import (
    CacheEvent,
    CollectingEventHandler,
    EventBus,
    LoggingEventHandler,
    OrchestratorEvent,
    PerformanceAlertEvent,
)


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.shutdown()


def test_subscriptions_by_class_pattern_and_list(bus):
    by_class, by_pattern, by_list = CollectingEventHandler(), CollectingEventHandler(), CollectingEventHandler()
    bus.subscribe(CacheEvent, by_class)
    bus.subscribe('orchestrator:*', by_pattern)
    bus.subscribe([CacheEvent, PerformanceAlertEvent], by_list)

    assert bus.publish(CacheEvent(operation='set', cache_key='k')) == 2
    assert bus.publish(OrchestratorEvent(action='initialized')) == 1
    assert bus.publish(PerformanceAlertEvent(alert_type='high_queue_size', value=600, threshold=500)) == 1

    assert by_class.names() == ['cache:set']
    assert by_pattern.names() == ['orchestrator:initialized']
    assert by_list.names() == ['cache:set', 'performance:alert']


def test_handlers_run_in_priority_order(bus):
    calls = []
    bus.subscribe('*', lambda e: calls.append('low'), priority=1)
    bus.subscribe('*', lambda e: calls.append('high'), priority=10)

    bus.publish(OrchestratorEvent(action='shutdown'))

    assert calls == ['high', 'low']


def test_failing_handler_does_not_reach_publisher(bus):
    def broken(event):
        raise RuntimeError('handler bug')

    collector = CollectingEventHandler()
    bus.subscribe('*', broken)
    bus.subscribe('*', collector)

    assert bus.publish(CacheEvent(operation='delete')) == 1
    assert collector.counts['cache:delete'] == 1
    assert bus.get_metrics()['processing_errors'] == 1


def test_filter_and_unsubscribe(bus):
    collector = CollectingEventHandler()
    subscription = bus.subscribe(CacheEvent, collector, filter_func=lambda e: e.cache_name == 'semantic-analysis')

    bus.publish(CacheEvent(operation='set', cache_name='cross-domain'))
    bus.publish(CacheEvent(operation='set', cache_name='semantic-analysis'))
    assert bus.unsubscribe(subscription)
    bus.publish(CacheEvent(operation='set', cache_name='semantic-analysis'))

    assert len(collector.events) == 1
    assert not bus.unsubscribe(subscription)


def test_async_handlers_complete_before_shutdown():
    bus = EventBus(enable_async=True)
    collector = CollectingEventHandler()
    bus.subscribe('cache:*', collector, is_async=True)

    for _ in range(5):
        bus.publish(CacheEvent(operation='set'))

    assert bus.wait_for_completion(timeout=2.0)
    assert collector.counts['cache:set'] == 5
    bus.shutdown()
    assert bus.publish(CacheEvent(operation='set')) == 0


def test_logging_handler_respects_name_filter(caplog):
    handler = LoggingEventHandler(logging.INFO, name_filters={'performance:alert'})

    with caplog.at_level(logging.INFO):
        handler(CacheEvent(operation='set'))
        handler(PerformanceAlertEvent(alert_type='high_memory_usage', value=2.0, threshold=1.0))

    assert len(caplog.records) == 1
    assert 'performance:alert' in caplog.records[0].getMessage()


def test_event_serialization():
    event = CacheEvent(source='PerformanceCache', operation='evicted', cache_key='k', details={'reason': 'LRU'})
    data = event.to_dict()

    assert data['name'] == 'cache:evicted'
    assert data['event_type'] == 'CacheEvent'
    assert data['source'] == 'PerformanceCache'
    assert data['data']['details'] == {'reason': 'LRU'}
