"""
Tests for PerformanceOrchestrator request pipelines, metrics and health.
"""

import time

import pytest

from context_engineering.domain import DomainAnalyzer, ImpactMapper, SemanticAnalysisService
from context_engineering.events import CollectingEventHandler, EventBus
from context_engineering.exceptions import ConfigurationError
from context_engineering.performance import PerformanceOrchestrator, TimeoutManager
from context_engineering.performance.orchestrator import (
    AlertThresholds,
    CachingConfig,
    MemoryOptimizationConfig,
    OrchestrationConfig,
    ParallelProcessingConfig,
    PerformanceSettings,
)
from context_engineering.performance.timeout_manager import TimeoutConfig


@pytest.fixture
async def make_orchestrator():
    created = []

    def factory(config=None, **kwargs):
        kwargs.setdefault('start_monitoring', False)
        orchestrator = PerformanceOrchestrator(config, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        await orchestrator.shutdown()


@pytest.fixture
def changed_files(source_tree):
    return [str(source_tree / 'Analysis' / 'TrendAnalyzer.cs'), str(source_tree / 'Data' / 'PriceRepository.cs')]


def sequential_config(**overrides):
    return OrchestrationConfig(parallel_processing=ParallelProcessingConfig(enabled=False), **overrides)


def project_mapper(root):
    service = SemanticAnalysisService()
    return ImpactMapper(DomainAnalyzer(str(root), service), semantic_service=service, project_root=str(root))


class SlowSemanticService(SemanticAnalysisService):

    def analyze_file(self, file_path):
        time.sleep(0.2)
        return super().analyze_file(file_path)


async def test_semantic_results_are_served_from_cache_on_repeat(make_orchestrator, changed_files):
    orchestrator = make_orchestrator()

    first = await orchestrator.process_semantic_analysis(changed_files)
    second = await orchestrator.process_semantic_analysis(changed_files)

    assert first.success
    assert first.metrics.optimizations_applied == ['parallel-processing', 'memory-optimization', 'result-caching']
    assert first.metrics.parallel_tasks == 2
    assert first.result['totalFiles'] == 2
    assert set(first.result['aggregatedConcepts']) == {'TrendAnalyzer', 'PriceRepository', 'IPriceRepository'}
    assert 'Trends need at least three price points' in first.result['aggregatedBusinessRules']

    assert second.success
    assert second.metrics.cache_hit is True
    assert second.metrics.optimizations_applied == ['cache-hit']
    assert second.result['aggregatedConcepts'] == first.result['aggregatedConcepts']


async def test_single_file_is_processed_sequentially(make_orchestrator, changed_files):
    result = await make_orchestrator().process_semantic_analysis(changed_files[:1], include_business_rules=False)

    assert result.success
    assert result.metrics.optimizations_applied[0] == 'sequential-processing'
    assert result.result['aggregatedBusinessRules'] == []
    assert result.result['aggregatedConcepts'] == ['TrendAnalyzer']


async def test_empty_request_is_not_a_cache_hit(make_orchestrator):
    result = await make_orchestrator().process_semantic_analysis([])

    assert result.success
    assert result.metrics.cache_hit is False
    assert result.result['totalFiles'] == 0
    assert result.result['averageConfidence'] == 0.0


async def test_semantic_timeout_becomes_failed_result(make_orchestrator, changed_files):
    orchestrator = make_orchestrator(
        semantic_service=SlowSemanticService(),
        timeout_manager=TimeoutManager(TimeoutConfig(semantic_analysis=50))
    )

    result = await orchestrator.process_semantic_analysis(changed_files)

    assert not result.success
    assert 'Operation semantic_analysis timed out after 50ms' in result.error
    assert result.metrics.optimizations_applied == ['parallel-processing']
    assert orchestrator.get_performance_metrics()['requests']['failed'] == 1


async def test_cross_domain_request_coordinates_with_impact_prediction(make_orchestrator, changed_files,
                                                                       source_tree):
    orchestrator = make_orchestrator(impact_mapper=project_mapper(source_tree))

    result = await orchestrator.process_cross_domain_analysis(changed_files, include_risk_analysis=True,
                                                              request_id='req-1')

    assert result.success, result.error
    assert result.request_id == 'req-1'
    assert result.metrics.optimizations_applied == [
        'domain-grouping', 'parallel-domain-processing', 'coordination-analysis',
        'risk-analysis', 'domain-mapping-cached'
    ]
    coordination = result.result
    assert coordination['coordinationPlan'] == 'plan-req-1'
    assert coordination['affectedDomains'] == ['Analysis', 'Data']
    assert coordination['crossDomainImpacts']['Analysis']['businessRuleCount'] == 2
    assert sorted(coordination['updateSequence']) == ['Analysis', 'Data']
    assert coordination['estimatedDuration'] > 0
    assert 0.0 <= coordination['reliabilityScore'] <= 1.0
    assert coordination['riskAnalysis']['riskLevel'] in {'low', 'medium', 'high', 'critical'}

    repeat = await orchestrator.process_cross_domain_analysis(list(reversed(changed_files)))
    assert repeat.metrics.optimizations_applied == ['cross-domain-cache-hit']
    assert repeat.result == coordination


async def test_cross_domain_analysis_without_parallel_processing(make_orchestrator, changed_files):
    orchestrator = make_orchestrator(sequential_config())

    result = await orchestrator.process_cross_domain_analysis(changed_files, target_domains=['Analysis', 'Data',
                                                                                            'Messaging'],
                                                              include_risk_analysis=True)

    assert result.success
    assert 'sequential-domain-processing' in result.metrics.optimizations_applied
    assert result.result['affectedDomains'] == ['Analysis', 'Data']
    assert result.result['prediction'] is None
    assert result.result['reliabilityScore'] is None
    assert result.result['riskAnalysis'] == {
        'riskLevel': 'medium',
        'riskFactors': ['Cross-domain dependencies'],
        'mitigationStrategies': ['Incremental deployment']
    }


async def test_cross_domain_impact_timeout_fails_the_request(make_orchestrator, make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.9)], delay=0.2, timeout_ms=100)
    orchestrator = make_orchestrator(impact_mapper=mapper)

    result = await orchestrator.process_cross_domain_analysis(['src/Analysis/foo.cs'])

    assert result.success is False
    assert 'Impact mapping timeout exceeded' in result.error
    assert result.result is None
    assert len(orchestrator.cross_domain_cache) == 0
    assert orchestrator.get_performance_metrics()['requests']['failed'] == 1


async def test_holistic_update_requires_parallel_processing(make_orchestrator):
    orchestrator = make_orchestrator(sequential_config())

    result = await orchestrator.process_holistic_context_update(['src/Analysis/Trend.cs'], 'git-commit')

    assert result.success is False
    assert result.error == "Holistic context updates require parallel processing to be enabled"
    assert result.metrics.optimizations_applied == ['domain-inference']


async def test_holistic_update_generates_context_for_inferred_domains(make_orchestrator, changed_files):
    orchestrator = make_orchestrator()

    result = await orchestrator.process_holistic_context_update(changed_files, 'git-commit',
                                                                git_commit_hash='abc123', request_id='h-1')

    assert result.success, result.error
    assert result.metrics.optimizations_applied == [
        'domain-inference', 'holistic-parallel-processing', 'holistic-memory-optimization', 'rollback-preparation'
    ]
    assert result.metrics.parallel_tasks == 2
    update = result.result
    assert update['gitCommitHash'] == 'abc123'
    assert update['updateType'] == 'git-commit'
    assert set(update['generationResults']) == {'Analysis', 'Data'}
    assert update['rollbackInfo'] == {'rollbackId': 'rollback-h-1', 'snapshotSaved': True, 'rollbackCapable': True}
    assert update['optimizedMemoryUsage'] > 0


async def test_holistic_update_over_budget_emits_timeout_warning(make_orchestrator, changed_files):
    bus = EventBus()
    collector = CollectingEventHandler()
    bus.subscribe('performance:timeout_warning', collector)
    orchestrator = make_orchestrator(event_bus=bus)

    result = await orchestrator.process_holistic_context_update(changed_files, 'file-save', performance_timeout=0.001)

    assert result.success
    [warning] = collector.events
    assert warning.request_id == result.request_id
    assert warning.operation == 'holistic_context_update'
    assert warning.source == 'performance-orchestrator'


async def test_predict_impact_is_cached(make_orchestrator, make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.9)])
    orchestrator = make_orchestrator(impact_mapper=mapper)

    first = await orchestrator.predict_impact(['Analysis/foo.cs'])
    second = await orchestrator.predict_impact(['Analysis/foo.cs'])

    assert first.update_sequence == ['Analysis', 'Data']
    assert second is first
    assert orchestrator.cache.get_metrics()['hits'] == 1


async def test_predict_impact_without_mapper_raises(make_orchestrator):
    with pytest.raises(ConfigurationError):
        await make_orchestrator().predict_impact(['Analysis/foo.cs'])


async def test_request_metrics_are_tracked(make_orchestrator, changed_files):
    orchestrator = make_orchestrator(sequential_config())

    await orchestrator.process_semantic_analysis(changed_files)
    await orchestrator.process_semantic_analysis(changed_files)
    await orchestrator.process_holistic_context_update(changed_files, 'manual')

    metrics = orchestrator.get_performance_metrics()
    assert metrics['requests']['total'] == 3
    assert metrics['requests']['successful'] == 2
    assert metrics['requests']['failed'] == 1
    assert metrics['caching']['hitRate'] > 0
    assert metrics['performance']['p99ResponseTime'] >= metrics['performance']['p95ResponseTime'] >= 0
    assert metrics['performance']['throughputPerSecond'] > 0
    assert metrics['memory']['currentUsage'] > 0


async def test_health_check_reports_threshold_breaches(make_orchestrator):
    generous = AlertThresholds(memory_usage=10 ** 12)
    healthy = make_orchestrator(OrchestrationConfig(performance=PerformanceSettings(alert_thresholds=generous)))
    report = await healthy.perform_health_check()
    assert report['healthy'] is True
    assert report['warnings'] == []
    assert report['components'] == {'caching': True, 'parallelProcessing': True, 'memoryOptimization': True}

    strict = AlertThresholds(memory_usage=1)
    unhealthy = make_orchestrator(OrchestrationConfig(performance=PerformanceSettings(alert_thresholds=strict)))
    report = await unhealthy.perform_health_check()
    assert report['healthy'] is False
    assert any('Memory usage' in w for w in report['warnings'])


async def test_publish_metrics_emits_snapshot_and_alerts(make_orchestrator):
    bus = EventBus()
    collector = CollectingEventHandler()
    bus.subscribe('performance:*', collector)
    strict = AlertThresholds(memory_usage=1)
    orchestrator = make_orchestrator(OrchestrationConfig(performance=PerformanceSettings(alert_thresholds=strict)),
                                     event_bus=bus)

    orchestrator.publish_metrics()

    assert collector.names() == ['performance:metrics', 'performance:alert']
    assert collector.events[1].alert_type == 'high_memory_usage'


async def test_disabled_components_are_not_created(make_orchestrator, changed_files):
    config = OrchestrationConfig(
        caching=CachingConfig(enabled=False),
        parallel_processing=ParallelProcessingConfig(enabled=False),
        memory_optimization=MemoryOptimizationConfig(enabled=False)
    )
    orchestrator = make_orchestrator(config)

    assert orchestrator.cache is None
    assert orchestrator.parallel_processor is None
    assert orchestrator.memory_optimizer is None

    result = await orchestrator.process_semantic_analysis(changed_files)
    assert result.success
    assert result.metrics.optimizations_applied == ['sequential-processing']
    assert orchestrator.get_performance_metrics()['memory']['currentUsage'] == 0


async def test_lifecycle_events(make_orchestrator):
    bus = EventBus()
    collector = CollectingEventHandler()
    bus.subscribe('orchestrator:*', collector)

    orchestrator = make_orchestrator(event_bus=bus)
    await orchestrator.shutdown()

    assert collector.names() == ['orchestrator:initialized', 'orchestrator:shutdown']
    assert collector.events[0].details['caching'] is True


def test_files_are_grouped_by_known_domains():
    orchestrator = PerformanceOrchestrator(sequential_config(caching=CachingConfig(enabled=False)),
                                           start_monitoring=False)
    files = ['src/Analysis/a.cs', 'src/Data/b.cs', 'src/Data/c.cs', 'README.md']

    assert orchestrator.group_files_by_domain(files) == {
        'Analysis': ['src/Analysis/a.cs'],
        'Data': ['src/Data/b.cs', 'src/Data/c.cs']
    }
    assert orchestrator.group_files_by_domain(files, ['Data', 'Messaging']) == {'Data': ['src/Data/b.cs',
                                                                                         'src/Data/c.cs']}
    assert orchestrator.infer_domains_from_files(files) == ['Analysis', 'Data']
    orchestrator.memory_optimizer.dispose()


async def test_monitoring_starts_memory_sampling(make_orchestrator):
    orchestrator = make_orchestrator(start_monitoring=True)
    optimizer = orchestrator.memory_optimizer

    assert orchestrator._metrics_thread.is_alive()
    assert optimizer._monitor_thread.is_alive()

    await orchestrator.shutdown()
    assert optimizer._monitor_thread is None
