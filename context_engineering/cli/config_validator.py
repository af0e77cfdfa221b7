"""
Configuration validation for the context engineering core.
Validates configuration before components are built so that bad values fail
fast instead of surfacing mid-request.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ConfigurationValidator:
    """Validates context engineering configuration to prevent runtime errors."""

    def __init__(self):
        self.errors = []
        self.warnings = []

    def validate_config(self, config: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate a configuration mapping.

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        self.errors = []
        self.warnings = []

        self._validate_caching(config.get('caching') or {})
        self._validate_parallel_processing(config.get('parallel_processing') or {})
        self._validate_memory_optimization(config.get('memory_optimization') or {})
        self._validate_performance(config.get('performance') or {})
        self._validate_timeouts(config.get('timeouts') or {})
        self._validate_impact_analysis(config.get('impact_analysis') or {})
        self._validate_domains(config.get('domains'))
        self._validate_logging(config.get('logging') or {})

        return len(self.errors) == 0, self.errors + self.warnings

    def _validate_flags(self, section: str, values: Dict[str, Any], flags: List[str]):
        for flag in flags:
            value = values.get(flag)
            if value is not None and not isinstance(value, bool):
                self.errors.append(f"{section}.{flag} must be boolean, got: {value}")

    def _validate_caching(self, caching: Dict[str, Any]):
        self._validate_flags('caching', caching, ['enabled'])

        max_size = caching.get('max_cache_size_mb', 100)
        if not _is_positive_number(max_size):
            self.errors.append(f"caching.max_cache_size_mb must be positive number, got: {max_size}")

        ttl = caching.get('default_ttl_seconds', 1800)
        if not _is_positive_number(ttl):
            self.errors.append(f"caching.default_ttl_seconds must be positive number, got: {ttl}")

    def _validate_parallel_processing(self, parallel: Dict[str, Any]):
        self._validate_flags('parallel_processing', parallel, ['enabled'])

        max_workers = parallel.get('max_workers', 4)
        if not _is_positive_int(max_workers):
            self.errors.append(f"parallel_processing.max_workers must be positive integer, got: {max_workers}")
        elif max_workers > (os.cpu_count() or 1) * 2:
            self.warnings.append(f"parallel_processing.max_workers ({max_workers}) exceeds 2x CPU count "
                                 f"({os.cpu_count()})")

        capacity = parallel.get('queue_capacity', 1000)
        if not _is_positive_int(capacity):
            self.errors.append(f"parallel_processing.queue_capacity must be positive integer, got: {capacity}")

        retries = parallel.get('retry_attempts', 3)
        if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
            self.errors.append(f"parallel_processing.retry_attempts must be non-negative integer, got: {retries}")

    def _validate_memory_optimization(self, memory: Dict[str, Any]):
        self._validate_flags('memory_optimization', memory, ['enabled'])

        max_memory = memory.get('max_memory_mb', 500)
        if not _is_positive_number(max_memory):
            self.errors.append(f"memory_optimization.max_memory_mb must be positive number, got: {max_memory}")

        threshold = memory.get('gc_threshold', 0.8)
        if not isinstance(threshold, (int, float)) or not (0.0 < threshold <= 1.0):
            self.errors.append(f"memory_optimization.gc_threshold must be between 0.0 and 1.0, got: {threshold}")

    def _validate_performance(self, performance: Dict[str, Any]):
        self._validate_flags('performance', performance, ['enable_metrics'])

        interval = performance.get('metrics_interval_seconds', 60)
        if not _is_positive_number(interval):
            self.errors.append(f"performance.metrics_interval_seconds must be positive number, got: {interval}")

        thresholds = performance.get('alert_thresholds') or {}
        for name in ('response_time_ms', 'memory_usage_mb', 'queue_size'):
            value = thresholds.get(name)
            if value is not None and not _is_positive_number(value):
                self.errors.append(f"performance.alert_thresholds.{name} must be positive number, got: {value}")

    def _validate_timeouts(self, timeouts: Dict[str, Any]):
        for name, value in timeouts.items():
            if not _is_positive_number(value):
                self.errors.append(f"timeouts.{name} must be positive number of milliseconds, got: {value}")
            elif value < 1000:
                self.warnings.append(f"timeouts.{name} is under one second ({value}ms)")

    def _validate_impact_analysis(self, impact: Dict[str, Any]):
        timeout = impact.get('timeout_ms', 15000)
        if not _is_positive_number(timeout):
            self.errors.append(f"impact_analysis.timeout_ms must be positive number, got: {timeout}")

        max_files = impact.get('max_files_per_domain', 20)
        if not _is_positive_int(max_files):
            self.errors.append(f"impact_analysis.max_files_per_domain must be positive integer, got: {max_files}")

        project_root = impact.get('project_root')
        if project_root and not Path(project_root).is_dir():
            self.warnings.append(f"impact_analysis.project_root does not exist: {project_root}")

    def _validate_domains(self, domains: Any):
        if domains is None:
            return
        if not isinstance(domains, dict) or not domains:
            self.errors.append("domains must be a non-empty mapping of domain name to patterns")
            return

        for name, patterns in domains.items():
            if not isinstance(patterns, list) or not patterns:
                self.errors.append(f"Domain {name} must list at least one pattern")
                continue
            for pattern in patterns:
                try:
                    re.compile(pattern)
                except (re.error, TypeError) as e:
                    self.errors.append(f"Invalid pattern for domain {name}: {pattern} ({e})")

    def _validate_logging(self, logging_config: Dict[str, Any]):
        level = logging_config.get('level', 'INFO')
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            self.errors.append(f"Invalid logging.level '{level}'. Valid: {LOG_LEVELS}")


def validate_config_file(config_path: str) -> Tuple[bool, List[str]]:
    """
    Validate configuration file syntax and basic structure.

    Returns:
        Tuple of (is_valid, list_of_issues)
    """
    issues = []
    config_file = Path(config_path)

    if not config_file.exists():
        issues.append(f"Configuration file not found: {config_path}")
        return False, issues

    if not os.access(config_file, os.R_OK):
        issues.append(f"Configuration file is not readable: {config_path}")
        return False, issues

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        issues.append(f"Invalid YAML syntax in config file: {e}")
        return False, issues
    except OSError as e:
        issues.append(f"Error reading config file: {e}")
        return False, issues

    if config is not None and not isinstance(config, dict):
        issues.append("Configuration file must contain a dictionary at root level")
        return False, issues

    return True, issues
