#!/usr/bin/env python3
"""
Parallel Processing for Context Engineering Operations

Priority task queue with a bounded worker count, dependency ordering between
tasks, retries with backoff and per-task timeouts. Handlers are registered per
task type; coroutine handlers run on the event loop and plain callables run on
a thread pool so file reads and regex scans do not block it.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections import Counter, OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..domain.domain_analyzer import DEFAULT_DOMAIN_PATTERNS
from ..domain.impact_mapper import ImpactMapper
from ..domain.semantic_analysis import SemanticAnalysisService
from ..exceptions import (
    ContextEngineeringError,
    ImpactAnalysisTimeoutError,
    OperationTimeoutError,
    QueueFullError,
    TaskDependencyError,
)

logger = logging.getLogger(__name__)

SEMANTIC_ANALYSIS = 'semantic-analysis'
DOMAIN_ANALYSIS = 'domain-analysis'
CROSS_DOMAIN_COORDINATION = 'cross-domain-coordination'
CONTEXT_GENERATION = 'context-generation'

MAX_RETAINED_RESULTS = 10000


@dataclass
class ProcessorConfig:
    max_workers: int = 4
    queue_capacity: int = 1000
    default_timeout: float = 30000  # ms
    retry_attempts: int = 3
    retry_backoff: float = 0.1  # seconds, doubled per attempt
    enable_metrics: bool = True


@dataclass
class ProcessingTask:
    """A unit of work routed to the handler registered for ``type``."""
    id: str
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: int = 5  # higher runs first
    timeout: Optional[float] = None  # ms, falls back to ProcessorConfig.default_timeout
    retries: Optional[int] = None  # falls back to ProcessorConfig.retry_attempts
    dependencies: List[str] = field(default_factory=list)


@dataclass
class TaskResult:
    """Result of a processed task."""
    task_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    processing_time: float = 0.0  # ms
    worker_id: Optional[str] = None
    attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskId': self.task_id,
            'success': self.success,
            'result': self.result,
            'error': self.error,
            'processingTime': self.processing_time,
            'workerId': self.worker_id,
            'attempts': self.attempts
        }


@dataclass
class ProcessorMetrics:
    tasks_processed: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    average_processing_time: float = 0.0
    current_queue_size: int = 0
    active_workers: int = 0
    total_processing_time: float = 0.0

    def update(self, result: TaskResult):
        self.tasks_processed += 1
        if result.success:
            self.tasks_succeeded += 1
        else:
            self.tasks_failed += 1
        self.total_processing_time += result.processing_time
        self.average_processing_time = self.total_processing_time / self.tasks_processed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tasksProcessed': self.tasks_processed,
            'tasksSucceeded': self.tasks_succeeded,
            'tasksFailed': self.tasks_failed,
            'averageProcessingTime': self.average_processing_time,
            'currentQueueSize': self.current_queue_size,
            'activeWorkers': self.active_workers,
            'totalProcessingTime': self.total_processing_time
        }


def _batch_stamp() -> str:
    # Millisecond clock plus a random suffix so concurrent batches never share task ids
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def files_in_domain(files: List[str], domain: str) -> List[str]:
    """Files whose path contains ``domain`` as a whole directory segment."""
    return [f for f in files if f'/{domain}/' in f or f'\\{domain}\\' in f]


def summarize_domain(semantic_service: SemanticAnalysisService, domain: str, files: List[str]) -> Dict[str, Any]:
    """Concept, rule and cross-reference summary for the changed files of one domain."""
    concepts, rules, cross_references = set(), 0, 0
    other_domains = [d for d in DEFAULT_DOMAIN_PATTERNS if d != domain]

    for path in files:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping {path} in {domain} analysis: {e}")
            continue
        analysis = semantic_service.analyze_content(content, path)
        concepts.update(c.name for c in analysis.business_concepts)
        rules += len(analysis.business_rules)
        cross_references += sum(1 for other in other_domains if other in content)

    return {
        'domain': domain,
        'files': list(files),
        'concepts': sorted(concepts),
        'businessRuleCount': rules,
        'crossReferences': cross_references
    }


class ParallelProcessor:
    """
    Runs prioritized tasks with at most ``max_workers`` in flight.

    A task is dispatched only once all of its dependencies have succeeded; a
    failed dependency fails the dependent task without running it.
    """

    def __init__(self, config: Optional[ProcessorConfig] = None,
                 semantic_service: Optional[SemanticAnalysisService] = None,
                 impact_mapper: Optional[ImpactMapper] = None,
                 handlers: Optional[Dict[str, Callable[[Dict[str, Any]], Any]]] = None):
        self.config = config or ProcessorConfig()
        self.semantic_service = semantic_service or SemanticAnalysisService()
        self.impact_mapper = impact_mapper

        self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers,
                                            thread_name_prefix='context-worker')
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            SEMANTIC_ANALYSIS: self._handle_semantic_analysis,
            DOMAIN_ANALYSIS: self._handle_domain_analysis,
            CROSS_DOMAIN_COORDINATION: self._handle_coordination,
            CONTEXT_GENERATION: self._handle_context_generation,
        }
        self._handlers.update(handlers or {})

        self._queue: List[ProcessingTask] = []
        self._running: Dict[str, asyncio.Task] = {}
        self._futures: Dict[str, asyncio.Future] = {}
        self._results: "OrderedDict[str, TaskResult]" = OrderedDict()
        self._task_types: Dict[str, str] = {}
        self._queued_at: Dict[str, float] = {}
        self._queue_times: List[float] = []

        self._lock = threading.Lock()
        self._metrics = ProcessorMetrics()
        self._tasks_by_type: Counter = Counter()
        self._shutting_down = False

        logger.info(f"Parallel processor initialized with {self.config.max_workers} workers, "
                    f"queue capacity {self.config.queue_capacity}")

    def register_handler(self, task_type: str, handler: Callable[[Dict[str, Any]], Any]):
        self._handlers[task_type] = handler

    async def submit_task(self, task: ProcessingTask) -> str:
        """
        Queue ``task`` and return its id.

        Raises:
            ContextEngineeringError: the processor is shutting down
            QueueFullError: queued plus running tasks reached ``queue_capacity``
            TaskDependencyError: a dependency is unknown or already failed
        """
        if self._shutting_down:
            raise ContextEngineeringError("Processor is shutting down")
        if len(self._queue) + len(self._running) >= self.config.queue_capacity:
            raise QueueFullError("Task queue is full")

        for dependency in task.dependencies:
            if self._is_pending(dependency):
                continue
            result = self._results.get(dependency)
            if result is None:
                raise TaskDependencyError(f"Dependency {dependency} not found")
            if not result.success:
                raise TaskDependencyError(f"Dependency {dependency} failed")

        self._futures[task.id] = asyncio.get_running_loop().create_future()
        self._queued_at[task.id] = time.time()
        self._task_types[task.id] = task.type
        self._queue.append(task)
        # stable sort keeps submission order within a priority
        self._queue.sort(key=lambda t: -t.priority)
        self._update_gauges()

        logger.debug(f"Task {task.id} submitted ({task.type}, priority {task.priority}), "
                     f"queue position {self._queue.index(task) + 1}")
        self._dispatch()
        return task.id

    async def get_result(self, task_id: str, timeout: float = 60000) -> TaskResult:
        """Wait up to ``timeout`` ms for ``task_id`` to finish."""
        if task_id in self._results:
            return self._results[task_id]

        future = self._futures.get(task_id)
        if future is None:
            raise ContextEngineeringError(f"Task {task_id} not found")

        start_time = time.time()
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout / 1000)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(f"task {task_id}", timeout, (time.time() - start_time) * 1000)

    async def submit_batch(self, tasks: List[ProcessingTask]) -> Dict[str, TaskResult]:
        """Submit every task, then wait for all of them. Lookup failures become failed results."""
        task_ids = [await self.submit_task(task) for task in tasks]

        async def collect(task_id: str) -> TaskResult:
            try:
                return await self.get_result(task_id)
            except ContextEngineeringError as e:
                logger.warning(f"Could not collect result for task {task_id}: {e}")
                return TaskResult(task_id=task_id, success=False, error=str(e))

        results = await asyncio.gather(*(collect(task_id) for task_id in task_ids))
        logger.debug(f"Batch of {len(tasks)} tasks completed")
        return dict(zip(task_ids, results))

    # Context engineering workflows

    async def process_semantic_analysis_batch(self, file_paths: List[str]) -> Dict[str, Any]:
        """Analyse every file in parallel; failed files are left out of the result."""
        stamp = _batch_stamp()
        tasks = [
            ProcessingTask(
                id=f"semantic:{path}:{stamp}:{index}",
                type=SEMANTIC_ANALYSIS,
                payload={'filePath': path},
                priority=5,
                timeout=30000
            )
            for index, path in enumerate(file_paths)
        ]
        results = await self.submit_batch(tasks)

        analysis_results = {}
        for task in tasks:
            result = results[task.id]
            if result.success and result.result is not None:
                analysis_results[task.payload['filePath']] = result.result
        return analysis_results

    async def process_cross_domain_analysis(self, domain_files: Dict[str, List[str]]) -> Dict[str, Any]:
        """
        Analyse each domain in parallel, then run one coordination task that
        depends on all of them. Its result is stored under ``'coordination'``.

        Raises:
            ContextEngineeringError: the coordination task failed, including
                when impact prediction ran out of time
        """
        stamp = _batch_stamp()
        domain_task_ids = {}
        tasks = []
        for domain, files in domain_files.items():
            task_id = f"domain-analysis:{domain}:{stamp}"
            domain_task_ids[domain] = task_id
            tasks.append(ProcessingTask(
                id=task_id,
                type=DOMAIN_ANALYSIS,
                payload={'domain': domain, 'files': list(files)},
                priority=7,
                timeout=45000
            ))

        coordination_id = f"cross-domain-coord:{stamp}"
        tasks.append(ProcessingTask(
            id=coordination_id,
            type=CROSS_DOMAIN_COORDINATION,
            payload={
                'domains': list(domain_files),
                'files': [f for files in domain_files.values() for f in files]
            },
            priority=8,
            timeout=60000,
            dependencies=list(domain_task_ids.values())
        ))

        results = await self.submit_batch(tasks)

        analysis_results = {}
        for domain, task_id in domain_task_ids.items():
            if results[task_id].success:
                analysis_results[domain] = results[task_id].result
        coordination = results[coordination_id]
        if not coordination.success:
            logger.error(f"Cross-domain coordination failed: {coordination.error}")
            raise ContextEngineeringError(f"Cross-domain coordination failed: {coordination.error}")
        analysis_results['coordination'] = coordination.result
        return analysis_results

    async def process_holistic_context_update(self, update_request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Three phases: per-file analysis, per-domain analysis with coordination,
        then context generation per target domain.

        ``update_request`` carries ``changedFiles``, ``targetDomains`` and
        ``updateType``.
        """
        start_time = time.time()
        changed_files = list(update_request.get('changedFiles', []))
        target_domains = list(update_request.get('targetDomains', []))

        analysis_results = await self.process_semantic_analysis_batch(changed_files)

        domain_files = {domain: files_in_domain(changed_files, domain) for domain in target_domains}
        domain_results = await self.process_cross_domain_analysis(domain_files)

        stamp = _batch_stamp()
        generation_tasks = [
            ProcessingTask(
                id=f"context-gen:{domain}:{stamp}",
                type=CONTEXT_GENERATION,
                payload={
                    'domain': domain,
                    'updateType': update_request.get('updateType'),
                    'analysisResults': {path: analysis_results[path]
                                        for path in domain_files[domain] if path in analysis_results},
                    'domainResult': domain_results.get(domain)
                },
                priority=9,
                timeout=30000
            )
            for domain in target_domains
        ]
        generation_results = await self.submit_batch(generation_tasks)

        return {
            'success': True,
            'processingTime': (time.time() - start_time) * 1000,
            'updateType': update_request.get('updateType'),
            'analysisResults': analysis_results,
            'domainResults': domain_results,
            'generationResults': {
                task.payload['domain']: generation_results[task.id].result
                for task in generation_tasks if generation_results[task.id].success
            }
        }

    # Metrics

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return self._metrics.to_dict()

    def get_detailed_metrics(self) -> Dict[str, Any]:
        with self._lock:
            metrics = self._metrics.to_dict()
            processed = self._metrics.tasks_processed
            metrics.update({
                'successRate': self._metrics.tasks_succeeded / processed if processed else 0.0,
                'queueUtilization': self._metrics.current_queue_size / self.config.queue_capacity,
                'workerUtilization': self._metrics.active_workers / self.config.max_workers,
                'tasksByType': dict(self._tasks_by_type),
                'averageQueueTime': (sum(self._queue_times) / len(self._queue_times)
                                     if self._queue_times else 0.0)
            })
        return metrics

    async def shutdown(self, timeout: float = 30.0):
        """Stop accepting tasks, drop the queue and wait up to ``timeout`` seconds for running ones."""
        self._shutting_down = True

        for task in self._queue:
            self._finish(task.id, TaskResult(task_id=task.id, success=False,
                                             error="Processor is shutting down"))
        self._queue.clear()

        running = list(self._running.values())
        if running:
            logger.info(f"Waiting for {len(running)} running tasks to finish")
            _, pending = await asyncio.wait(running, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} tasks still running after {timeout}s")

        self._executor.shutdown(wait=False)
        self._update_gauges()
        logger.info("Parallel processor shut down")

    # Scheduling internals

    def _is_pending(self, task_id: str) -> bool:
        future = self._futures.get(task_id)
        return future is not None and not future.done()

    def _failed_dependency(self, task: ProcessingTask) -> Optional[str]:
        for dependency in task.dependencies:
            result = self._results.get(dependency)
            if result is not None and not result.success:
                return dependency
        return None

    def _dependencies_met(self, task: ProcessingTask) -> bool:
        return all(dep in self._results for dep in task.dependencies)

    def _dispatch(self):
        progressed = True
        while progressed:
            progressed = False
            for task in list(self._queue):
                failed = self._failed_dependency(task)
                if failed:
                    self._queue.remove(task)
                    logger.warning(f"Task {task.id} skipped: dependency {failed} failed")
                    self._finish(task.id, TaskResult(task_id=task.id, success=False,
                                                     error=f"Dependency {failed} failed"))
                    progressed = True
                    continue

                if len(self._running) >= self.config.max_workers:
                    continue
                if not self._dependencies_met(task):
                    continue

                self._queue.remove(task)
                with self._lock:
                    self._queue_times.append((time.time() - self._queued_at.pop(task.id, time.time())) * 1000)
                    del self._queue_times[:-1000]
                self._running[task.id] = asyncio.ensure_future(self._run(task))
        self._update_gauges()

    async def _run(self, task: ProcessingTask):
        try:
            result = await self._execute(task)
        except asyncio.CancelledError:
            self._running.pop(task.id, None)
            future = self._futures.pop(task.id, None)
            if future is not None and not future.done():
                future.cancel()
            raise

        self._running.pop(task.id, None)
        self._finish(task.id, result)
        if not self._shutting_down:
            self._dispatch()

    async def _execute(self, task: ProcessingTask) -> TaskResult:
        start_time = time.time()
        handler = self._handlers.get(task.type)
        if handler is None:
            logger.error(f"No handler registered for task type {task.type}")
            return TaskResult(task_id=task.id, success=False,
                              error=f"No handler registered for task type {task.type}")

        timeout = task.timeout if task.timeout is not None else self.config.default_timeout
        max_attempts = 1 + (task.retries if task.retries is not None else self.config.retry_attempts)

        attempt = 0
        while True:
            attempt += 1
            try:
                value, worker_id = await asyncio.wait_for(self._invoke(handler, task.payload),
                                                          timeout=timeout / 1000)
                return TaskResult(task_id=task.id, success=True, result=value,
                                  processing_time=(time.time() - start_time) * 1000,
                                  worker_id=worker_id, attempts=attempt)
            except asyncio.TimeoutError:
                error = f"Task {task.id} timed out after {timeout:.0f}ms"
                fatal = True
            except (ImpactAnalysisTimeoutError, OperationTimeoutError) as e:
                error = str(e)
                fatal = True
            except Exception as e:
                error = str(e) or e.__class__.__name__
                fatal = False

            # Timeouts are never retried
            if fatal or attempt >= max_attempts:
                logger.error(f"Task {task.id} failed after {attempt} attempts: {error}")
                return TaskResult(task_id=task.id, success=False, error=error,
                                  processing_time=(time.time() - start_time) * 1000,
                                  attempts=attempt)

            backoff = self.config.retry_backoff * (2 ** (attempt - 1))
            logger.warning(f"Task {task.id} attempt {attempt} failed ({error}), retrying in {backoff:.2f}s")
            await asyncio.sleep(backoff)

    async def _invoke(self, handler: Callable[[Dict[str, Any]], Any], payload: Dict[str, Any]):
        if asyncio.iscoroutinefunction(handler):
            return await handler(payload), 'event-loop'

        def call():
            return handler(payload), threading.current_thread().name

        return await asyncio.get_running_loop().run_in_executor(self._executor, call)

    def _finish(self, task_id: str, result: TaskResult):
        self._results[task_id] = result
        while len(self._results) > MAX_RETAINED_RESULTS:
            self._results.popitem(last=False)

        future = self._futures.pop(task_id, None)
        if future is not None and not future.done():
            future.set_result(result)
        self._queued_at.pop(task_id, None)

        if self.config.enable_metrics:
            with self._lock:
                self._metrics.update(result)
                self._tasks_by_type[self._task_types.get(task_id, 'unknown')] += 1
        self._task_types.pop(task_id, None)

    def _update_gauges(self):
        with self._lock:
            self._metrics.current_queue_size = len(self._queue)
            self._metrics.active_workers = len(self._running)

    # Built-in handlers

    def _handle_semantic_analysis(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = self.semantic_service.analyze_file(payload['filePath'])
        return result.to_dict()

    def _handle_domain_analysis(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return summarize_domain(self.semantic_service, payload['domain'], payload.get('files', []))

    async def _handle_coordination(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        domains = payload.get('domains', [])
        coordination = {'domains': domains, 'prediction': None, 'estimatedDuration': 0}
        if self.impact_mapper is not None and payload.get('files'):
            prediction = await self.impact_mapper.predict_change_impact(payload['files'])
            coordination['prediction'] = prediction.to_dict()
            coordination['updateSequence'] = prediction.update_sequence
            coordination['estimatedDuration'] = prediction.impact_graph.total_estimated_time
        else:
            coordination['updateSequence'] = list(domains)
        return coordination

    @staticmethod
    def _handle_context_generation(payload: Dict[str, Any]) -> Dict[str, Any]:
        domain = payload['domain']
        analyses = payload.get('analysisResults') or {}
        domain_result = payload.get('domainResult') or {}

        lines = [f"# {domain} Domain Context", ""]
        if payload.get('updateType'):
            lines += [f"Update trigger: {payload['updateType']}", ""]
        concepts = domain_result.get('concepts') or sorted({
            c['name'] for a in analyses.values() for c in a.get('businessConcepts', [])
        })
        if concepts:
            lines += ["## Business Concepts", ""] + [f"- {name}" for name in concepts] + [""]
        rules = [r['description'] for a in analyses.values() for r in a.get('businessRules', [])]
        if rules:
            lines += ["## Business Rules", ""] + [f"- {rule}" for rule in rules] + [""]
        if analyses:
            lines += ["## Changed Files", ""] + [f"- {path}" for path in analyses] + [""]

        return {
            'domain': domain,
            'contextFile': f"{domain}/.context/context.md",
            'content': "\n".join(lines),
            'linesGenerated': len(lines)
        }
