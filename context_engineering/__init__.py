#!/usr/bin/env python3
"""
Context Engineering Impact Core

Cross-domain impact analysis and orchestrated holistic context updates for an
MCP development-environment gateway.
"""

__version__ = "0.1.0"
__description__ = "Cross-domain impact analysis and orchestrated context updates for MCP tooling"

import logging
import sys
from typing import Optional

# Get package logger
logger = logging.getLogger(__name__)

# Version info
VERSION_INFO = tuple(map(int, __version__.split('.')))


def get_version() -> str:
    """Get the current version string."""
    return __version__


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration."""
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {level}')

    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    logger.info(f"Logging configured at {level} level")


from .exceptions import (
    ContextEngineeringError,
    ImpactAnalysisTimeoutError,
    OperationTimeoutError,
    OperationCancelledError,
    ConfigurationError,
    QueueFullError,
    TaskDependencyError,
)
from .events import EventBus
from .domain import (
    DomainAnalyzer,
    ImpactMapper,
    SemanticAnalysisService,
)
from .performance import (
    PerformanceCache,
    SemanticAnalysisCache,
    CrossDomainCache,
    ParallelProcessor,
    MemoryOptimizer,
    TimeoutManager,
    PerformanceOrchestrator,
)

__all__ = [
    'ContextEngineeringError',
    'ImpactAnalysisTimeoutError',
    'OperationTimeoutError',
    'OperationCancelledError',
    'ConfigurationError',
    'QueueFullError',
    'TaskDependencyError',
    'EventBus',
    'DomainAnalyzer',
    'ImpactMapper',
    'SemanticAnalysisService',
    'PerformanceCache',
    'SemanticAnalysisCache',
    'CrossDomainCache',
    'ParallelProcessor',
    'MemoryOptimizer',
    'TimeoutManager',
    'PerformanceOrchestrator',
    'get_version',
    'setup_logging',
    '__version__'
]
