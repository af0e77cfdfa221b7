#!/usr/bin/env python3
"""
CLI for the Context Engineering Core

Usage: context-engineering [-v] <command> FILES... [options]

Every command prints a JSON document on stdout. Logs go to stderr.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import click

from .. import __version__, setup_logging
from ..domain import DomainAnalyzer, ImpactMapper, SemanticAnalysisService
from ..events import EventBus, LoggingEventHandler
from ..exceptions import ContextEngineeringError
from ..performance import PerformanceOrchestrator, TimeoutManager
from ..performance.performance_cache import json_default
from .config import EngineConfig, load_config

logger = logging.getLogger(__name__)


def build_orchestrator(config: EngineConfig,
                       project_root: Optional[str] = None,
                       timeout_ms: Optional[float] = None,
                       event_bus: Optional[EventBus] = None,
                       start_monitoring: bool = False) -> PerformanceOrchestrator:
    """Assemble the analysis services and the orchestrator from configuration."""
    impact_settings = config.impact_analysis
    semantic_service = SemanticAnalysisService()
    domain_analyzer = DomainAnalyzer(
        project_root=project_root or impact_settings.project_root,
        semantic_service=semantic_service,
        domain_patterns=config.domain_patterns,
        timeout=impact_settings.domain_analysis_timeout,
        max_files_per_domain=impact_settings.max_files_per_domain
    )
    impact_mapper = ImpactMapper(
        domain_analyzer,
        semantic_service=semantic_service,
        timeout_ms=timeout_ms or impact_settings.timeout_ms,
        project_root=project_root or impact_settings.project_root
    )
    return PerformanceOrchestrator(
        config.orchestration,
        event_bus=event_bus,
        semantic_service=semantic_service,
        impact_mapper=impact_mapper,
        timeout_manager=TimeoutManager(config.timeouts, cancel_on_timeout=config.cancel_on_timeout),
        start_monitoring=start_monitoring
    )


def _emit_json(data: Dict[str, Any]):
    click.echo(json.dumps(data, indent=2, default=json_default))


def _load(ctx: click.Context, config_path: Optional[str]) -> EngineConfig:
    try:
        config = load_config(config_path)
    except ContextEngineeringError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(2)
    if not ctx.obj.get('verbose'):
        setup_logging(config.log_level, config.log_file)
    return config


def _event_bus(ctx: click.Context) -> EventBus:
    bus = EventBus()
    if ctx.obj.get('verbose'):
        bus.subscribe('*', LoggingEventHandler(logging.DEBUG))
    return bus


async def _run(orchestrator: PerformanceOrchestrator, operation):
    try:
        return await operation(orchestrator)
    finally:
        await orchestrator.shutdown()


@click.group()
@click.version_option(version=__version__, prog_name='Context Engineering Core')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, verbose):
    """Cross-domain impact analysis and holistic context updates."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging('DEBUG' if verbose else 'WARNING')


@cli.command()
@click.argument('files', nargs=-1, required=True)
@click.option('--project-root', type=click.Path(exists=True, file_okay=False),
              help='Project directory scanned for domains (default: from config)')
@click.option('--timeout-ms', type=int, help='Impact prediction budget in milliseconds')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='Custom config file (default: packaged context_engineering.yaml)')
@click.pass_context
def impact(ctx, files, project_root, timeout_ms, config_path):
    """
    Predict the cross-domain impact of changed files.

    FILES: Changed source files
    """
    config = _load(ctx, config_path)
    orchestrator = build_orchestrator(config, project_root, timeout_ms, _event_bus(ctx))

    try:
        prediction = asyncio.run(_run(orchestrator, lambda o: o.predict_impact(list(files))))
    except ContextEngineeringError as e:
        logger.error(f"Impact prediction failed: {e}")
        _emit_json({'success': False, 'error': str(e)})
        sys.exit(1)

    _emit_json({'success': True, 'result': prediction.to_dict()})


@cli.command()
@click.argument('files', nargs=-1, required=True)
@click.option('--no-business-rules', is_flag=True, help='Leave business rules out of the result')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='Custom config file (default: packaged context_engineering.yaml)')
@click.pass_context
def semantic(ctx, files, no_business_rules, config_path):
    """
    Extract business concepts and rules from files.

    FILES: Source files to analyze
    """
    config = _load(ctx, config_path)
    orchestrator = build_orchestrator(config, event_bus=_event_bus(ctx))
    result = asyncio.run(_run(orchestrator, lambda o: o.process_semantic_analysis(
        list(files), include_business_rules=not no_business_rules)))
    _emit_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command('cross-domain')
@click.argument('files', nargs=-1, required=True)
@click.option('--domain', 'domains', multiple=True, help='Restrict analysis to this domain (repeatable)')
@click.option('--risk', is_flag=True, help='Include risk analysis')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='Custom config file (default: packaged context_engineering.yaml)')
@click.pass_context
def cross_domain(ctx, files, domains, risk, config_path):
    """
    Group changed files by domain and coordinate their analysis.

    FILES: Changed source files
    """
    config = _load(ctx, config_path)
    orchestrator = build_orchestrator(config, event_bus=_event_bus(ctx))
    result = asyncio.run(_run(orchestrator, lambda o: o.process_cross_domain_analysis(
        list(files), target_domains=list(domains) or None, include_risk_analysis=risk)))
    _emit_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument('files', nargs=-1, required=True)
@click.option('--trigger', default='manual', show_default=True,
              help='What triggered the update (git-commit, file-save, manual, ...)')
@click.option('--commit', 'commit_hash', help='Git commit hash the update belongs to')
@click.option('--timeout-ms', type=int, help='Soft budget before a timeout warning is emitted')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='Custom config file (default: packaged context_engineering.yaml)')
@click.pass_context
def holistic(ctx, files, trigger, commit_hash, timeout_ms, config_path):
    """
    Run a holistic context update across every affected domain.

    FILES: Changed source files
    """
    config = _load(ctx, config_path)
    orchestrator = build_orchestrator(config, event_bus=_event_bus(ctx))
    result = asyncio.run(_run(orchestrator, lambda o: o.process_holistic_context_update(
        list(files), trigger, git_commit_hash=commit_hash, performance_timeout=timeout_ms)))
    _emit_json(result.to_dict())
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='Custom config file (default: packaged context_engineering.yaml)')
@click.pass_context
def health(ctx, config_path):
    """Report component status and performance metrics."""
    config = _load(ctx, config_path)
    orchestrator = build_orchestrator(config, event_bus=_event_bus(ctx))
    report = asyncio.run(_run(orchestrator, lambda o: o.perform_health_check()))
    _emit_json(report)
    if not report['healthy']:
        sys.exit(1)


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    cli(args=argv, obj={})


if __name__ == "__main__":
    main()
