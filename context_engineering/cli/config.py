#!/usr/bin/env python3
"""
Configuration loader for the Context Engineering Core

Reads the YAML configuration, substitutes ``${VAR}`` environment references,
validates it and maps it onto the component config dataclasses.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..exceptions import ConfigurationError
from ..performance.memory_optimizer import MB
from ..performance.orchestrator import (
    AlertThresholds,
    CachingConfig,
    MemoryOptimizationConfig,
    OrchestrationConfig,
    ParallelProcessingConfig,
    PerformanceSettings,
)
from ..performance.timeout_manager import TimeoutConfig
from .config_validator import ConfigurationValidator, validate_config_file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config' / 'context_engineering.yaml'
ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass
class ImpactAnalysisSettings:
    project_root: str = '.'
    timeout_ms: float = 15000
    domain_analysis_timeout: float = 10.0  # seconds
    max_files_per_domain: int = 20


@dataclass
class EngineConfig:
    """Everything needed to assemble the analysis services and the orchestrator."""
    orchestration: OrchestrationConfig = field(default_factory=OrchestrationConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    impact_analysis: ImpactAnalysisSettings = field(default_factory=ImpactAnalysisSettings)
    domain_patterns: Optional[Dict[str, List[str]]] = None
    cancel_on_timeout: bool = False
    log_level: str = 'INFO'
    log_file: Optional[str] = None


def substitute_env_vars(value: Any) -> Any:
    """
    Recursively substitute environment variables in configuration values.

    Supports ${VAR_NAME} syntax. Unset variables become empty strings. A value
    that is a single reference takes the YAML type of the variable, so
    ``${WORKERS}`` set to ``8`` yields the integer 8.
    """
    if isinstance(value, str):
        whole = ENV_VAR_PATTERN.fullmatch(value)
        if whole and os.getenv(whole.group(1)) is not None:
            return yaml.safe_load(os.getenv(whole.group(1)))

        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.getenv(var_name)
            if env_value is None:
                logger.warning(f"Environment variable {var_name} not set")
                env_value = ""
            value = value.replace(f"${{{var_name}}}", env_value)
        return value

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(item) for item in value]

    return value


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load configuration from ``config_path``.

    Without an explicit path the packaged default file is used when present,
    otherwise built-in defaults apply.

    Raises:
        ConfigurationError: the file is missing, unparsable or invalid
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.debug("No configuration file found, using defaults")
            return EngineConfig()
        config_path = str(DEFAULT_CONFIG_PATH)

    is_valid, file_issues = validate_config_file(config_path)
    if not is_valid:
        for issue in file_issues:
            logger.error(f"Config file validation: {issue}")
        raise ConfigurationError(f"Configuration file validation failed: {'; '.join(file_issues)}")

    with open(config_path, 'r', encoding='utf-8') as f:
        raw_config = yaml.safe_load(f) or {}

    config = substitute_env_vars(raw_config)
    engine_config = config_from_dict(config)
    logger.info(f"Configuration loaded from {config_path}")
    return engine_config


def config_from_dict(config: Dict[str, Any]) -> EngineConfig:
    """Validate a configuration mapping and build the dataclass tree from it."""
    validator = ConfigurationValidator()
    is_valid, issues = validator.validate_config(config)
    for issue in issues:
        if issue in validator.errors:
            logger.error(f"Config validation error: {issue}")
        else:
            logger.warning(f"Config validation warning: {issue}")
    if not is_valid:
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(validator.errors)}")

    caching = config.get('caching') or {}
    parallel = config.get('parallel_processing') or {}
    memory = config.get('memory_optimization') or {}
    performance = config.get('performance') or {}
    thresholds = performance.get('alert_thresholds') or {}
    impact = config.get('impact_analysis') or {}
    logging_config = config.get('logging') or {}
    domains = config.get('domains')

    orchestration = OrchestrationConfig(
        caching=CachingConfig(
            enabled=caching.get('enabled', True),
            max_cache_size=int(caching.get('max_cache_size_mb', 100) * MB),
            default_ttl=caching.get('default_ttl_seconds', 1800)
        ),
        parallel_processing=ParallelProcessingConfig(
            enabled=parallel.get('enabled', True),
            max_workers=parallel.get('max_workers', 4),
            queue_capacity=parallel.get('queue_capacity', 1000),
            retry_attempts=parallel.get('retry_attempts', 3)
        ),
        memory_optimization=MemoryOptimizationConfig(
            enabled=memory.get('enabled', True),
            max_memory_usage=int(memory.get('max_memory_mb', 500) * MB),
            gc_threshold=memory.get('gc_threshold', 0.8)
        ),
        performance=PerformanceSettings(
            enable_metrics=performance.get('enable_metrics', True),
            metrics_interval=performance.get('metrics_interval_seconds', 60),
            alert_thresholds=AlertThresholds(
                response_time=thresholds.get('response_time_ms', 30000),
                memory_usage=int(thresholds.get('memory_usage_mb', 400) * MB),
                queue_size=thresholds.get('queue_size', 500)
            )
        )
    )
    if domains:
        orchestration.known_domains = list(domains)

    timeouts = TimeoutConfig()
    for name, value in (config.get('timeouts') or {}).items():
        if name not in timeouts.to_dict():
            logger.warning(f"Ignoring unknown timeout setting: {name}")
            continue
        setattr(timeouts, name, value)

    return EngineConfig(
        orchestration=orchestration,
        timeouts=timeouts,
        impact_analysis=ImpactAnalysisSettings(
            project_root=impact.get('project_root') or '.',
            timeout_ms=impact.get('timeout_ms', 15000),
            domain_analysis_timeout=impact.get('domain_analysis_timeout_seconds', 10.0),
            max_files_per_domain=impact.get('max_files_per_domain', 20)
        ),
        domain_patterns=domains,
        cancel_on_timeout=bool((config.get('timeout_manager') or {}).get('cancel_on_timeout', False)),
        log_level=logging_config.get('level', 'INFO').upper(),
        log_file=logging_config.get('file') or None
    )
