"""
Caching, parallel processing, memory and timeout management for context
engineering operations.
"""

from .performance_cache import (
    CacheConfig,
    CacheEntry,
    CacheMetrics,
    WarmingStrategy,
    PerformanceCache,
    SemanticAnalysisCache,
    CrossDomainCache,
    cached_call,
)
from .timeout_manager import TimeoutConfig, TimeoutManager
from .memory_optimizer import MemoryConfig, MemoryStats, MemoryOptimizer
from .parallel_processor import ProcessorConfig, ProcessingTask, TaskResult, ParallelProcessor
from .orchestrator import (
    OrchestrationConfig,
    CachingConfig,
    ParallelProcessingConfig,
    MemoryOptimizationConfig,
    PerformanceSettings,
    AlertThresholds,
    OrchestrationMetrics,
    OrchestrationResult,
    PerformanceOrchestrator,
)

__all__ = [
    'CacheConfig',
    'CacheEntry',
    'CacheMetrics',
    'WarmingStrategy',
    'PerformanceCache',
    'SemanticAnalysisCache',
    'CrossDomainCache',
    'cached_call',
    'TimeoutConfig',
    'TimeoutManager',
    'MemoryConfig',
    'MemoryStats',
    'MemoryOptimizer',
    'ProcessorConfig',
    'ProcessingTask',
    'TaskResult',
    'ParallelProcessor',
    'OrchestrationConfig',
    'CachingConfig',
    'ParallelProcessingConfig',
    'MemoryOptimizationConfig',
    'PerformanceSettings',
    'AlertThresholds',
    'OrchestrationMetrics',
    'OrchestrationResult',
    'PerformanceOrchestrator',
]
