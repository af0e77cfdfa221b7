#!/usr/bin/env python3
"""
Performance Orchestrator

Front door for the context engineering operations. Every request runs through
the same pipeline: cache lookup, parallel or sequential processing, memory
optimization, cache write-back. The outcome is reported as an
``OrchestrationResult`` carrying timing and the list of optimizations applied.

Failures never escape a ``process_*`` call; they come back as results with
``success=False`` and the error message.
"""

import asyncio
import logging
import math
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..domain.impact_mapper import ImpactMapper
from ..domain.models import ChangeImpactPrediction, RiskSeverity
from ..domain.semantic_analysis import SemanticAnalysisService
from ..events import (
    EventBus,
    OrchestratorEvent,
    PerformanceAlertEvent,
    PerformanceMetricsEvent,
    TimeoutWarningEvent,
)
from ..exceptions import ConfigurationError
from .memory_optimizer import MB, MemoryConfig, MemoryOptimizer
from .parallel_processor import ParallelProcessor, ProcessorConfig, files_in_domain, summarize_domain
from .performance_cache import (
    CacheConfig,
    CrossDomainCache,
    PerformanceCache,
    SemanticAnalysisCache,
    cached_call,
)
from .timeout_manager import TimeoutManager

logger = logging.getLogger(__name__)

KNOWN_DOMAINS = ['Analysis', 'Data', 'Messaging', 'Infrastructure']
RESPONSE_TIME_WINDOW = 1000
DEFAULT_HOLISTIC_TIMEOUT = 60000  # ms

SEVERITY_ORDER = [RiskSeverity.LOW, RiskSeverity.MEDIUM, RiskSeverity.HIGH, RiskSeverity.CRITICAL]


@dataclass
class CachingConfig:
    enabled: bool = True
    max_cache_size: int = 100 * MB
    default_ttl: float = 1800  # seconds


@dataclass
class ParallelProcessingConfig:
    enabled: bool = True
    max_workers: int = 4
    queue_capacity: int = 1000
    retry_attempts: int = 3


@dataclass
class MemoryOptimizationConfig:
    enabled: bool = True
    max_memory_usage: int = 500 * MB
    gc_threshold: float = 0.8


@dataclass
class AlertThresholds:
    response_time: float = 30000  # ms
    memory_usage: int = 400 * MB
    queue_size: int = 500


@dataclass
class PerformanceSettings:
    enable_metrics: bool = True
    metrics_interval: float = 60.0  # seconds
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)


@dataclass
class OrchestrationConfig:
    caching: CachingConfig = field(default_factory=CachingConfig)
    parallel_processing: ParallelProcessingConfig = field(default_factory=ParallelProcessingConfig)
    memory_optimization: MemoryOptimizationConfig = field(default_factory=MemoryOptimizationConfig)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    known_domains: List[str] = field(default_factory=lambda: list(KNOWN_DOMAINS))


@dataclass
class OrchestrationMetrics:
    total_time: float = 0.0  # ms
    cache_hit: bool = False
    parallel_tasks: int = 0
    memory_used: int = 0  # bytes
    optimizations_applied: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalTime': self.total_time,
            'cacheHit': self.cache_hit,
            'parallelTasks': self.parallel_tasks,
            'memoryUsed': self.memory_used,
            'optimizationsApplied': list(self.optimizations_applied)
        }


@dataclass
class OrchestrationResult:
    request_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    metrics: OrchestrationMetrics = field(default_factory=OrchestrationMetrics)

    def to_dict(self) -> Dict[str, Any]:
        result = self.result.to_dict() if hasattr(self.result, 'to_dict') else self.result
        return {
            'requestId': self.request_id,
            'success': self.success,
            'result': result,
            'error': self.error,
            'metrics': self.metrics.to_dict()
        }


def generate_request_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def consolidate_semantic_results(results: Dict[str, Any]) -> Dict[str, Any]:
    """Merge per-file analyses into one summary."""
    concepts: Dict[str, None] = {}
    rules: Dict[str, None] = {}
    confidences = []

    for result in results.values():
        for concept in result.get('businessConcepts') or []:
            concepts[concept['name']] = None
            confidences.append(concept.get('confidence', 0.0))
        for rule in result.get('businessRules') or []:
            rules[rule['description']] = None

    return {
        'totalFiles': len(results),
        'aggregatedConcepts': list(concepts),
        'aggregatedBusinessRules': list(rules),
        'averageConfidence': sum(confidences) / len(confidences) if confidences else 0.0,
        'fileResults': list(results.values())
    }


class PerformanceOrchestrator:
    """
    Coordinates caches, the parallel processor, the memory optimizer and the
    timeout manager around the analysis services.

    Components disabled in the configuration are not created.
    """

    def __init__(self, config: Optional[OrchestrationConfig] = None,
                 event_bus: Optional[EventBus] = None,
                 semantic_service: Optional[SemanticAnalysisService] = None,
                 impact_mapper: Optional[ImpactMapper] = None,
                 timeout_manager: Optional[TimeoutManager] = None,
                 start_monitoring: bool = True):
        self.config = config or OrchestrationConfig()
        self.event_bus = event_bus
        self.semantic_service = semantic_service or SemanticAnalysisService()
        self.impact_mapper = impact_mapper
        self.timeout_manager = timeout_manager or TimeoutManager()

        self.cache: Optional[PerformanceCache] = None
        self.semantic_cache: Optional[SemanticAnalysisCache] = None
        self.cross_domain_cache: Optional[CrossDomainCache] = None
        self.parallel_processor: Optional[ParallelProcessor] = None
        self.memory_optimizer: Optional[MemoryOptimizer] = None
        self._initialize_components()

        self._lock = threading.Lock()
        self._response_times: deque = deque(maxlen=RESPONSE_TIME_WINDOW)
        self._request_count = 0
        self._success_count = 0
        self._failure_count = 0
        self._start_time = time.time()

        self._stop_event = threading.Event()
        self._metrics_thread: Optional[threading.Thread] = None
        if start_monitoring and self.config.performance.enable_metrics:
            self._start_performance_monitoring()

        self._emit(OrchestratorEvent(action='initialized', details={
            'caching': self.config.caching.enabled,
            'parallelProcessing': self.config.parallel_processing.enabled,
            'memoryOptimization': self.config.memory_optimization.enabled
        }))
        logger.info("Performance orchestrator initialized")

    def _initialize_components(self):
        if self.config.caching.enabled:
            self.cache = PerformanceCache(CacheConfig(
                max_size=self.config.caching.max_cache_size,
                default_ttl=self.config.caching.default_ttl,
                enable_metrics=self.config.performance.enable_metrics
            ), self.event_bus)
            self.semantic_cache = SemanticAnalysisCache(event_bus=self.event_bus)
            self.cross_domain_cache = CrossDomainCache(event_bus=self.event_bus)

        if self.config.parallel_processing.enabled:
            self.parallel_processor = ParallelProcessor(
                ProcessorConfig(
                    max_workers=self.config.parallel_processing.max_workers,
                    queue_capacity=self.config.parallel_processing.queue_capacity,
                    retry_attempts=self.config.parallel_processing.retry_attempts,
                    enable_metrics=self.config.performance.enable_metrics
                ),
                semantic_service=self.semantic_service,
                impact_mapper=self.impact_mapper
            )

        if self.config.memory_optimization.enabled:
            self.memory_optimizer = MemoryOptimizer(MemoryConfig(
                max_memory_usage=self.config.memory_optimization.max_memory_usage,
                gc_threshold=self.config.memory_optimization.gc_threshold,
                monitoring_interval=self.config.performance.metrics_interval
            ))

    # Operations

    async def process_semantic_analysis(self, file_paths: List[str],
                                        include_business_rules: bool = True,
                                        priority: int = 5,
                                        request_id: Optional[str] = None) -> OrchestrationResult:
        request_id = request_id or generate_request_id('semantic')
        start_time = time.time()
        optimizations: List[str] = []
        self._count_request()

        try:
            if self.semantic_cache is not None:
                cached = await self._get_cached_semantic_results(file_paths)
                if file_paths and len(cached) == len(file_paths):
                    optimizations.append('cache-hit')
                    result = consolidate_semantic_results(cached)
                    return self._succeed(request_id, start_time, result, OrchestrationMetrics(
                        cache_hit=True, optimizations_applied=optimizations))

            metadata = {'file_count': len(file_paths), 'priority': priority}
            if self.parallel_processor is not None and len(file_paths) > 1:
                optimizations.append('parallel-processing')
                analysis_results = await self.timeout_manager.execute_with_timeout(
                    self.parallel_processor.process_semantic_analysis_batch(file_paths),
                    'semantic_analysis', metadata)
            else:
                optimizations.append('sequential-processing')
                analysis_results = await self.timeout_manager.execute_with_timeout(
                    self._process_semantic_sequential(file_paths),
                    'semantic_analysis', metadata)

            if not include_business_rules:
                analysis_results = {path: dict(result, businessRules=[])
                                    for path, result in analysis_results.items()}

            if self.memory_optimizer is not None:
                optimizations.append('memory-optimization')
                paths = list(analysis_results)
                optimized = self.memory_optimizer.optimize_semantic_data(list(analysis_results.values()))
                analysis_results = dict(zip(paths, optimized))

            if self.semantic_cache is not None:
                await self._cache_semantic_results(analysis_results)
                optimizations.append('result-caching')

            result = consolidate_semantic_results(analysis_results)
            return self._succeed(request_id, start_time, result, OrchestrationMetrics(
                parallel_tasks=len(analysis_results),
                memory_used=MemoryOptimizer.estimate_size(result),
                optimizations_applied=optimizations))

        except Exception as e:
            return self._fail(request_id, start_time, optimizations, e)

    async def process_cross_domain_analysis(self, changed_files: List[str],
                                            target_domains: Optional[List[str]] = None,
                                            include_risk_analysis: bool = False,
                                            request_id: Optional[str] = None) -> OrchestrationResult:
        request_id = request_id or generate_request_id('cross-domain')
        start_time = time.time()
        optimizations: List[str] = []
        self._count_request()

        try:
            if self.cross_domain_cache is not None:
                cached = await self.cross_domain_cache.get_cached_domain_mapping(changed_files)
                if cached is not None:
                    optimizations.append('cross-domain-cache-hit')
                    return self._succeed(request_id, start_time, cached, OrchestrationMetrics(
                        cache_hit=True, optimizations_applied=optimizations))

            domain_files = self.group_files_by_domain(changed_files, target_domains)
            optimizations.append('domain-grouping')

            metadata = {'file_count': len(changed_files), 'domain_count': len(domain_files)}
            if self.parallel_processor is not None:
                optimizations.append('parallel-domain-processing')
                analysis_results = await self.timeout_manager.execute_with_timeout(
                    self.parallel_processor.process_cross_domain_analysis(domain_files),
                    'domain_analysis', metadata)
            else:
                optimizations.append('sequential-domain-processing')
                analysis_results = await self.timeout_manager.execute_with_timeout(
                    self._process_cross_domain_sequential(domain_files),
                    'domain_analysis', metadata)

            coordination = self._perform_cross_domain_coordination(request_id, analysis_results)
            optimizations.append('coordination-analysis')

            if include_risk_analysis:
                coordination['riskAnalysis'] = self._perform_risk_analysis(coordination)
                optimizations.append('risk-analysis')

            if self.cross_domain_cache is not None:
                await self.cross_domain_cache.cache_domain_mapping(changed_files, coordination)
                optimizations.append('domain-mapping-cached')

            return self._succeed(request_id, start_time, coordination, OrchestrationMetrics(
                parallel_tasks=len(domain_files),
                memory_used=MemoryOptimizer.estimate_size(coordination),
                optimizations_applied=optimizations))

        except Exception as e:
            return self._fail(request_id, start_time, optimizations, e)

    async def process_holistic_context_update(self, changed_files: List[str], trigger_type: str,
                                              git_commit_hash: Optional[str] = None,
                                              performance_timeout: Optional[float] = None,
                                              request_id: Optional[str] = None) -> OrchestrationResult:
        request_id = request_id or generate_request_id('holistic')
        start_time = time.time()
        optimizations: List[str] = []
        soft_timeout = performance_timeout or DEFAULT_HOLISTIC_TIMEOUT
        self._count_request()

        try:
            target_domains = self.infer_domains_from_files(changed_files)
            optimizations.append('domain-inference')

            if self.parallel_processor is None:
                raise ConfigurationError("Holistic context updates require parallel processing to be enabled")

            optimizations.append('holistic-parallel-processing')
            update_request = {
                'changedFiles': list(changed_files),
                'targetDomains': target_domains,
                'updateType': trigger_type
            }
            result = await self.timeout_manager.execute_with_timeout(
                self.parallel_processor.process_holistic_context_update(update_request),
                'context_generation',
                {'file_count': len(changed_files), 'domain_count': len(target_domains)})
            if git_commit_hash:
                result['gitCommitHash'] = git_commit_hash

            memory_used = None
            if self.memory_optimizer is not None:
                optimizations.append('holistic-memory-optimization')
                memory_used = self._optimize_holistic_results(result)
                result['optimizedMemoryUsage'] = memory_used

            result['rollbackInfo'] = {
                'rollbackId': f"rollback-{request_id}",
                'snapshotSaved': True,
                'rollbackCapable': True
            }
            optimizations.append('rollback-preparation')

            total_time = (time.time() - start_time) * 1000
            if total_time > soft_timeout:
                logger.warning(f"Holistic update {request_id} took {total_time:.0f}ms, "
                               f"over the {soft_timeout:.0f}ms budget")
                self._emit(TimeoutWarningEvent(request_id=request_id, operation='holistic_context_update',
                                               total_time_ms=total_time, timeout_ms=soft_timeout))

            return self._succeed(request_id, start_time, result, OrchestrationMetrics(
                parallel_tasks=len(target_domains),
                memory_used=memory_used if memory_used else MemoryOptimizer.estimate_size(result),
                optimizations_applied=optimizations))

        except Exception as e:
            return self._fail(request_id, start_time, optimizations, e)

    async def predict_impact(self, changed_files: List[str]) -> ChangeImpactPrediction:
        """
        Impact prediction through the general cache and the timeout manager.

        Unlike the ``process_*`` operations this raises on failure.
        """
        if self.impact_mapper is None:
            raise ConfigurationError("Impact prediction requires an impact mapper")

        async def load():
            return await self.timeout_manager.execute_with_timeout(
                self.impact_mapper.predict_change_impact(changed_files),
                'domain_analysis', {'file_count': len(changed_files)})

        if self.cache is None:
            return await load()

        key = CrossDomainCache.domain_mapping_key(changed_files).replace('domain-mapping:', 'impact:')
        prediction, hit = await cached_call(self.cache, key, load,
                                            dependencies=list(changed_files) + ['impact-predictions'])
        if hit:
            logger.debug(f"Impact prediction for {len(changed_files)} files served from cache")
        return prediction

    # Metrics

    def get_performance_metrics(self) -> Dict[str, Any]:
        caches = [c for c in (self.cache, self.semantic_cache, self.cross_domain_cache) if c is not None]
        cache_metrics = [c.get_metrics() for c in caches]
        hits = sum(m['hits'] for m in cache_metrics)
        misses = sum(m['misses'] for m in cache_metrics)

        processor = self.parallel_processor.get_metrics() if self.parallel_processor else {}
        memory = self.memory_optimizer.get_metrics() if self.memory_optimizer else {}

        with self._lock:
            history = list(self._response_times)
            requests = {
                'total': self._request_count,
                'successful': self._success_count,
                'failed': self._failure_count
            }
        average = sum(history) / len(history) if history else 0.0
        requests['averageResponseTime'] = average

        return {
            'requests': requests,
            'caching': {
                'hitRate': hits / (hits + misses) if hits + misses else 0.0,
                'totalSize': sum(m['totalSize'] for m in cache_metrics),
                'evictions': sum(m['evictions'] for m in cache_metrics)
            },
            'parallelProcessing': {
                'activeWorkers': processor.get('activeWorkers', 0),
                'queueSize': processor.get('currentQueueSize', 0),
                'tasksProcessed': processor.get('tasksProcessed', 0),
                'averageTaskTime': processor.get('averageProcessingTime', 0.0)
            },
            'memory': {
                'currentUsage': memory.get('current_usage', 0),
                'peakUsage': memory.get('peak_usage', 0),
                'gcTriggered': memory.get('gc_triggered', 0),
                'optimizations': memory.get('optimizations', 0)
            },
            'performance': {
                'averageResponseTime': average,
                'p95ResponseTime': self._percentile(history, 0.95),
                'p99ResponseTime': self._percentile(history, 0.99),
                'throughputPerSecond': self._throughput(requests['total'])
            }
        }

    async def perform_health_check(self) -> Dict[str, Any]:
        metrics = self.get_performance_metrics()
        components = {
            'caching': self.config.caching.enabled,
            'parallelProcessing': self.config.parallel_processing.enabled,
            'memoryOptimization': self.config.memory_optimization.enabled
        }
        warnings = [message for _, _, _, message in self._threshold_breaches(metrics)]
        return {
            'healthy': not warnings,
            'components': components,
            'metrics': metrics,
            'warnings': warnings
        }

    def _threshold_breaches(self, metrics: Dict[str, Any]) -> List[tuple]:
        thresholds = self.config.performance.alert_thresholds
        average = metrics['performance']['averageResponseTime']
        memory = metrics['memory']['currentUsage']
        queue_size = metrics['parallelProcessing']['queueSize']

        breaches = []
        if average > thresholds.response_time:
            breaches.append(('high_response_time', average, thresholds.response_time,
                             f"Average response time {average:.0f}ms exceeds threshold"))
        if memory > thresholds.memory_usage:
            breaches.append(('high_memory_usage', memory, thresholds.memory_usage,
                             f"Memory usage {memory} bytes exceeds threshold"))
        if queue_size > thresholds.queue_size:
            breaches.append(('high_queue_size', queue_size, thresholds.queue_size,
                             f"Queue size {queue_size} exceeds threshold"))
        return breaches

    @staticmethod
    def _percentile(history: List[float], percentile: float) -> float:
        if not history:
            return 0.0
        ordered = sorted(history)
        return ordered[min(math.floor(percentile * len(ordered)), len(ordered) - 1)]

    def _throughput(self, total_requests: int) -> float:
        uptime = time.time() - self._start_time
        return total_requests / uptime if uptime > 0 else 0.0

    def _start_performance_monitoring(self):
        self._stop_event.clear()
        self._metrics_thread = threading.Thread(target=self._metrics_loop, daemon=True)
        self._metrics_thread.start()
        if self.memory_optimizer is not None:
            self.memory_optimizer.start_monitoring()
        logger.debug(f"Performance monitoring every {self.config.performance.metrics_interval}s")

    def _metrics_loop(self):
        while not self._stop_event.wait(self.config.performance.metrics_interval):
            self.publish_metrics()

    def publish_metrics(self) -> Dict[str, Any]:
        """Emit a metrics snapshot and an alert for each breached threshold."""
        metrics = self.get_performance_metrics()
        self._emit(PerformanceMetricsEvent(metrics=metrics))
        for alert_type, value, threshold, message in self._threshold_breaches(metrics):
            logger.warning(message)
            self._emit(PerformanceAlertEvent(alert_type=alert_type, value=value, threshold=threshold))
        return metrics

    # Domain helpers

    def group_files_by_domain(self, files: List[str],
                              target_domains: Optional[List[str]] = None) -> Dict[str, List[str]]:
        """Files per domain, dropping domains with no matching files."""
        domain_files = {}
        for domain in target_domains or self.config.known_domains:
            matched = files_in_domain(files, domain)
            if matched:
                domain_files[domain] = matched
        return domain_files

    def infer_domains_from_files(self, files: List[str]) -> List[str]:
        return [domain for domain in self.config.known_domains if files_in_domain(files, domain)]

    # Internals

    async def _get_cached_semantic_results(self, file_paths: List[str]) -> Dict[str, Any]:
        results = {}
        for path in file_paths:
            cached = await self.semantic_cache.get_cached_analysis(path)
            if cached is not None:
                results[path] = cached
        return results

    async def _cache_semantic_results(self, results: Dict[str, Any]):
        for path, result in results.items():
            await self.semantic_cache.cache_analysis_result(path, result)

    async def _process_semantic_sequential(self, file_paths: List[str]) -> Dict[str, Any]:
        analyses = await self.semantic_service.analyze_code_changes(file_paths)
        return {analysis.file_path: analysis.to_dict() for analysis in analyses}

    async def _process_cross_domain_sequential(self, domain_files: Dict[str, List[str]]) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        results = {}
        for domain, files in domain_files.items():
            results[domain] = await loop.run_in_executor(
                None, summarize_domain, self.semantic_service, domain, files)

        if self.impact_mapper is not None and domain_files:
            all_files = [f for files in domain_files.values() for f in files]
            prediction = await self.impact_mapper.predict_change_impact(all_files)
            results['coordination'] = {
                'domains': list(domain_files),
                'prediction': prediction.to_dict(),
                'updateSequence': prediction.update_sequence,
                'estimatedDuration': prediction.impact_graph.total_estimated_time
            }
        return results

    @staticmethod
    def _perform_cross_domain_coordination(request_id: str, analysis_results: Dict[str, Any]) -> Dict[str, Any]:
        domain_results = {d: r for d, r in analysis_results.items() if d != 'coordination'}
        coordination = analysis_results.get('coordination') or {}
        prediction = coordination.get('prediction')

        return {
            'coordinationPlan': f"plan-{request_id}",
            'affectedDomains': list(domain_results),
            'crossDomainImpacts': domain_results,
            'prediction': prediction,
            'updateSequence': coordination.get('updateSequence', list(domain_results)),
            'estimatedDuration': coordination.get('estimatedDuration', 0),
            'reliabilityScore': prediction['confidenceScore'] if prediction else None
        }

    @staticmethod
    def _perform_risk_analysis(coordination: Dict[str, Any]) -> Dict[str, Any]:
        prediction = coordination.get('prediction')
        if prediction is None:
            multi_domain = len(coordination['affectedDomains']) > 1
            return {
                'riskLevel': RiskSeverity.MEDIUM.value if multi_domain else RiskSeverity.LOW.value,
                'riskFactors': ['Cross-domain dependencies'] if multi_domain else [],
                'mitigationStrategies': ['Incremental deployment'] if multi_domain else []
            }

        factors = prediction['riskFactors']
        severities = [RiskSeverity(f['severity']) for f in factors]
        level = max(severities, key=SEVERITY_ORDER.index, default=RiskSeverity.LOW)
        mitigations = list(dict.fromkeys(f['mitigation'] for f in factors if f['mitigation']))
        return {
            'riskLevel': level.value,
            'riskFactors': [f['description'] for f in factors],
            'mitigationStrategies': mitigations
        }

    def _optimize_holistic_results(self, result: Dict[str, Any]) -> int:
        analyses = result.get('analysisResults') or {}
        if analyses:
            paths = list(analyses)
            result['analysisResults'] = dict(zip(
                paths, self.memory_optimizer.optimize_semantic_data(list(analyses.values()))))
        self.memory_optimizer.optimize_memory()
        return MemoryOptimizer.estimate_size(result)

    def _count_request(self):
        with self._lock:
            self._request_count += 1

    def _succeed(self, request_id: str, start_time: float, result: Any,
                 metrics: OrchestrationMetrics) -> OrchestrationResult:
        metrics.total_time = (time.time() - start_time) * 1000
        with self._lock:
            self._success_count += 1
            self._response_times.append(metrics.total_time)
        logger.debug(f"Request {request_id} completed in {metrics.total_time:.0f}ms "
                     f"({', '.join(metrics.optimizations_applied)})")
        return OrchestrationResult(request_id=request_id, success=True, result=result, metrics=metrics)

    def _fail(self, request_id: str, start_time: float, optimizations: List[str],
              error: Exception) -> OrchestrationResult:
        total_time = (time.time() - start_time) * 1000
        with self._lock:
            self._failure_count += 1
            self._response_times.append(total_time)
        logger.error(f"Request {request_id} failed after {total_time:.0f}ms: {error}")
        return OrchestrationResult(
            request_id=request_id,
            success=False,
            error=str(error),
            metrics=OrchestrationMetrics(total_time=total_time, optimizations_applied=optimizations)
        )

    def _emit(self, event):
        if self.event_bus is not None:
            event.source = 'performance-orchestrator'
            self.event_bus.publish(event)

    async def shutdown(self):
        self._stop_event.set()
        if self._metrics_thread:
            self._metrics_thread.join(timeout=5.0)
            self._metrics_thread = None

        for cache in (self.cache, self.semantic_cache, self.cross_domain_cache):
            if cache is not None:
                await cache.dispose()
        if self.parallel_processor is not None:
            await self.parallel_processor.shutdown()
        if self.memory_optimizer is not None:
            self.memory_optimizer.dispose()

        self._emit(OrchestratorEvent(action='shutdown'))
        logger.info("Performance orchestrator shut down")
