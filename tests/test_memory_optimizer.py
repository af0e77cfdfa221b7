"""
Tests for MemoryOptimizer payload slimming and bookkeeping.
"""

import pytest

from context_engineering.domain import BusinessConcept, SemanticAnalysisResult
from context_engineering.performance.memory_optimizer import (
    MB,
    MemoryConfig,
    MemoryOptimizer,
    decompress_text,
)


@pytest.fixture
def optimizer():
    optimizer = MemoryOptimizer(MemoryConfig(max_memory_usage=10 * 1024 * MB))
    yield optimizer
    optimizer.dispose()


def test_verbose_and_empty_fields_are_dropped(optimizer):
    [optimized] = optimizer.optimize_semantic_data([{
        'filePath': 'a.cs',
        'debug': {'tokens': 120},
        'rawTokens': ['public', 'class'],
        'domainContext': None,
    }])

    assert optimized == {'filePath': 'a.cs'}


def test_long_source_text_is_compressed(optimizer):
    source = 'public class Order { }\n' * 100
    [optimized] = optimizer.optimize_semantic_data([{'filePath': 'a.cs', 'sourceCode': source}])

    assert optimized['_compressed'] is True
    assert decompress_text(optimized['sourceCode']) == source
    assert optimizer.get_metrics()['bytes_saved'] > 0


def test_short_source_text_is_kept(optimizer):
    [optimized] = optimizer.optimize_semantic_data([{'sourceCode': 'class A {}'}])
    assert optimized == {'sourceCode': 'class A {}'}


def test_duplicate_concepts_are_removed(optimizer):
    concept = {'name': 'Order', 'type': 'Entity'}
    [optimized] = optimizer.optimize_semantic_data([{'businessConcepts': [concept, dict(concept), {'name': 'Line'}]}])
    assert optimized['businessConcepts'] == [concept, {'name': 'Line'}]


def test_analysis_results_are_converted_to_dicts(optimizer):
    result = SemanticAnalysisResult(
        file_path='Order.cs',
        language='C#',
        business_concepts=[BusinessConcept('Order', 'Entity', 'Data', 0.85)] * 2
    )

    [optimized] = optimizer.optimize_semantic_data([result])

    assert optimized['filePath'] == 'Order.cs'
    assert len(optimized['businessConcepts']) == 1
    assert optimizer.get_metrics()['optimizations'] == 1


def test_estimate_size_counts_two_bytes_per_character():
    assert MemoryOptimizer.estimate_size({'a': 1}) == len('{"a": 1}') * 2


def test_forced_optimization_runs_garbage_collection(optimizer):
    outcome = optimizer.optimize_memory(force=True)

    assert outcome['memory_before_mb'] > 0
    metrics = optimizer.get_metrics()
    assert metrics['gc_triggered'] == 1
    assert metrics['peak_usage'] >= metrics['current_usage'] > 0


def test_optimization_below_threshold_is_skipped(optimizer):
    outcome = optimizer.optimize_memory()

    assert outcome['gc_collected'] == 0
    assert optimizer.get_metrics()['gc_triggered'] == 0


def test_high_pressure_triggers_gc():
    optimizer = MemoryOptimizer(MemoryConfig(max_memory_usage=1, gc_threshold=0.5))
    assert optimizer.memory_pressure > 1
    assert optimizer.should_trigger_gc()

    optimizer.optimize_memory()
    assert optimizer.get_metrics()['gc_triggered'] == 1
    assert not optimizer.should_trigger_gc()
    optimizer.dispose()


def test_monitoring_thread_starts_and_stops(optimizer):
    optimizer.start_monitoring()
    assert optimizer._monitor_thread.is_alive()

    optimizer.stop_monitoring()
    assert optimizer._monitor_thread is None
