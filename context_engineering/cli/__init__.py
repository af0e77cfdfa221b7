#!/usr/bin/env python3
"""
CLI Interface for the Context Engineering Core

Command-line entry points plus the YAML configuration layer they share.
"""

from .main import main, cli, build_orchestrator
from .config import EngineConfig, ImpactAnalysisSettings, load_config, config_from_dict, substitute_env_vars
from .config_validator import ConfigurationValidator, validate_config_file

__all__ = [
    'main',
    'cli',
    'build_orchestrator',
    'EngineConfig',
    'ImpactAnalysisSettings',
    'load_config',
    'config_from_dict',
    'substitute_env_vars',
    'ConfigurationValidator',
    'validate_config_file',
]
