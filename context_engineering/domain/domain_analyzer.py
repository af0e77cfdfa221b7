#!/usr/bin/env python3
"""
Domain Analyzer

Discovers business domain boundaries from path patterns and file contents,
then detects weighted cross-domain relationships by scanning each domain's
sources for references to the other domains.
"""

import asyncio
import logging
import os
import re
import time
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Set

from .models import (
    DomainBoundary, DomainMap, CrossDomainRelationship, RelationshipType,
    SemanticAnalysisResult
)
from .semantic_analysis import SemanticAnalysisService
from ..exceptions import OperationTimeoutError

logger = logging.getLogger(__name__)


DEFAULT_DOMAIN_PATTERNS: Dict[str, List[str]] = {
    'Analysis': [r'[/\\]Analysis[/\\]', r'Analyzer', r'Indicator', r'AnalysisEngine'],
    'Data': [r'[/\\]Data[/\\]', r'Repository', r'DataProvider', r'Database'],
    'Messaging': [r'[/\\]Messaging[/\\]', r'EventPublisher', r'MessageQueue', r'DomainEvent'],
    'Infrastructure': [r'[/\\]Infrastructure[/\\]', r'Docker', r'Pipeline', r'Deployment'],
    'Services': [r'[/\\]Services[/\\]', r'Service\.\w+$', r'Worker'],
    'Console': [r'[/\\]Console[/\\]', r'Program\.cs$', r'CommandLine'],
    'Documentation': [r'[/\\]Documentation[/\\]', r'\.md$', r'README'],
}

SOURCE_EXTENSIONS = {'.cs', '.ts', '.js', '.py'}
SKIP_DIRECTORIES = {'node_modules', 'bin', 'obj', '__pycache__', 'venv', 'dist', 'build'}

RELATIONSHIP_JUSTIFICATIONS = {
    RelationshipType.DEPENDENCY: "{source} depends on {target} for core functionality",
    RelationshipType.ASSOCIATION: "{source} collaborates with {target} for business operations",
    RelationshipType.COMPOSITION: "{source} is composed of {target} components",
    RelationshipType.AGGREGATION: "{source} aggregates {target} entities",
    RelationshipType.INHERITANCE: "{source} extends {target} capabilities",
}


class DomainAnalyzer:
    """
    Builds a DomainMap for a project.

    Args:
        project_root: Directory scanned for domain files.
        semantic_service: Analyzer used to extract concepts from domain files.
        domain_patterns: Domain name to list of regexes matched against paths.
        timeout: Analysis budget in seconds.
        max_files_per_domain: Bound on files semantically analyzed per domain.
    """

    def __init__(self, project_root: str = '.',
                 semantic_service: Optional[SemanticAnalysisService] = None,
                 domain_patterns: Optional[Dict[str, List[str]]] = None,
                 timeout: float = 10.0,
                 max_files_per_domain: int = 20):
        self.project_root = os.path.abspath(project_root)
        self.semantic_service = semantic_service or SemanticAnalysisService()
        self.domain_patterns: Dict[str, List[Pattern]] = {
            name: [re.compile(p) for p in patterns]
            for name, patterns in (domain_patterns or DEFAULT_DOMAIN_PATTERNS).items()
        }
        self.timeout = timeout
        self.max_files_per_domain = max_files_per_domain
        self._project_files: Optional[List[str]] = None

        logger.info(f"Domain Analyzer initialized for project: {self.project_root} with timeout: {timeout}s")

    async def analyze_domain_map(self, changed_files: Optional[List[str]] = None) -> DomainMap:
        """Analyze domain boundaries and relationships without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.build_domain_map, list(changed_files or []))

    def build_domain_map(self, changed_files: List[str]) -> DomainMap:
        logger.info("Starting comprehensive domain analysis")
        start_time = time.time()
        self._project_files = None

        try:
            self._check_timeout(start_time, "before domain discovery")
            boundaries = self._discover_domain_boundaries(changed_files, start_time)

            self._check_timeout(start_time, "before relationship analysis")
            relationships = self._analyze_relationships(boundaries, start_time)

            isolated = self._identify_isolated_domains(boundaries, relationships)
        except Exception as e:
            logger.error(f"Domain analysis failed: {e}")
            raise

        elapsed = (time.time() - start_time) * 1000
        logger.info(f"Domain analysis completed in {elapsed:.0f}ms. "
                    f"Found {len(boundaries)} domains, {len(relationships)} relationships")

        return DomainMap(
            domains=boundaries,
            relationships=relationships,
            isolated_domains=isolated,
            analysis_timestamp=time.time()
        )

    def _check_timeout(self, start_time: float, context: str):
        elapsed = time.time() - start_time
        if elapsed > self.timeout:
            logger.error(f"Domain analysis timed out {context}")
            raise OperationTimeoutError(f"domain_analysis {context}", self.timeout * 1000, elapsed * 1000)

    # Boundary discovery

    def _discover_domain_boundaries(self, changed_files: List[str], start_time: float) -> List[DomainBoundary]:
        boundaries = []
        for domain_name, patterns in self.domain_patterns.items():
            self._check_timeout(start_time, f"during boundary analysis for {domain_name}")
            boundary = self._analyze_domain_boundary(domain_name, patterns, changed_files)
            if boundary:
                boundaries.append(boundary)

        return sorted(boundaries, key=lambda b: b.confidence, reverse=True)

    def _analyze_domain_boundary(self, domain_name: str, patterns: List[Pattern],
                                 changed_files: List[str]) -> Optional[DomainBoundary]:
        domain_files = self._find_domain_files(patterns, changed_files)
        if not domain_files:
            logger.debug(f"No files found for domain: {domain_name}")
            return None

        relevant = [f for f in domain_files
                    if Path(f).suffix.lower() in SOURCE_EXTENSIONS][:self.max_files_per_domain]
        semantic_results = []
        for file_path in relevant:
            try:
                semantic_results.append(self.semantic_service.analyze_file(file_path))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Semantic analysis failed for {file_path} in domain {domain_name}: {e}")

        concepts = list(dict.fromkeys(
            c.name for result in semantic_results for c in result.business_concepts
        ))

        return DomainBoundary(
            domain=domain_name,
            root_path=self._determine_root_path(domain_files, domain_name),
            business_concepts=concepts,
            key_interfaces=self._extract_key_interfaces(semantic_results, domain_files),
            confidence=self._calculate_domain_confidence(domain_files, semantic_results, patterns),
            sub_domains=self._identify_sub_domains(domain_files, domain_name)
        )

    def _list_project_files(self) -> List[str]:
        if self._project_files is None:
            files = []
            for dirpath, dirnames, filenames in os.walk(self.project_root):
                dirnames[:] = [d for d in dirnames
                               if not d.startswith('.') and d not in SKIP_DIRECTORIES]
                files.extend(os.path.join(dirpath, name) for name in filenames)
            self._project_files = files
        return self._project_files

    def _find_domain_files(self, patterns: List[Pattern], changed_files: List[str]) -> List[str]:
        matches = []
        for file_path in list(changed_files) + self._list_project_files():
            target = self._project_relative(file_path) or file_path
            if any(p.search(target) or p.search('/' + target) for p in patterns):
                matches.append(file_path)
        return list(dict.fromkeys(matches))

    def _project_relative(self, file_path: str) -> Optional[str]:
        """Path below the project root, or None for relative paths and files outside it."""
        if not os.path.isabs(file_path):
            return None
        inside = os.path.relpath(file_path, self.project_root)
        if inside == os.pardir or inside.startswith(os.pardir + os.sep):
            return None
        return inside

    def _determine_root_path(self, domain_files: List[str], domain_name: str) -> str:
        """
        Most common directory prefix that contains the domain name.

        Files inside the project are measured from the project root, so
        directories above it never become a domain root.
        """
        counts: Counter = Counter()
        needle = domain_name.lower()
        for file_path in domain_files:
            relative = self._project_relative(file_path)
            current = os.path.join(self.project_root, '') if relative else ''
            parts = re.split(r'[/\\]', relative or file_path)[:-1]
            for part in parts:
                current = f"{current}{part}/" if current or part else '/'
                if needle in part.lower():
                    counts[current] += 1

        if not counts:
            return os.path.join(self.project_root, domain_name) + os.sep
        return counts.most_common(1)[0][0]

    @staticmethod
    def _extract_key_interfaces(semantic_results: List[SemanticAnalysisResult],
                                domain_files: List[str]) -> List[str]:
        interfaces: Dict[str, None] = {}
        for result in semantic_results:
            for concept in result.business_concepts:
                if concept.type == 'Service' and 'Interface' in concept.name:
                    interfaces[concept.name] = None
        for file_path in domain_files:
            stem = Path(file_path).stem
            if 'Interface' in stem or (len(stem) > 1 and stem[0] == 'I' and stem[1].isupper()):
                interfaces[stem] = None
        return list(interfaces)

    @staticmethod
    def _identify_sub_domains(domain_files: List[str], domain_name: str) -> List[str]:
        sub_domains: Dict[str, None] = {}
        for file_path in domain_files:
            parts = re.split(r'[/\\]', file_path)
            for i, part in enumerate(parts[:-2]):
                if domain_name.lower() in part.lower():
                    nxt = parts[i + 1]
                    if nxt and '.' not in nxt and nxt not in ('bin', 'obj'):
                        sub_domains[nxt] = None
        return list(sub_domains)

    @staticmethod
    def _calculate_domain_confidence(domain_files: List[str],
                                     semantic_results: List[SemanticAnalysisResult],
                                     patterns: List[Pattern]) -> float:
        confidence = min(len(domain_files) / 10, 1) * 0.3
        if patterns:
            confidence += 0.2
        if semantic_results:
            per_file = [
                sum(c.confidence for c in r.business_concepts) / max(len(r.business_concepts), 1)
                for r in semantic_results
            ]
            confidence += sum(per_file) / len(per_file) * 0.3
        if any(len(re.split(r'[/\\]', os.path.dirname(f))) >= 3 for f in domain_files):
            confidence += 0.2
        return min(max(confidence, 0.0), 1.0)

    # Relationship analysis

    def _analyze_relationships(self, boundaries: List[DomainBoundary],
                               start_time: float) -> List[CrossDomainRelationship]:
        relationships = []
        for i, source in enumerate(boundaries):
            for target in boundaries[i + 1:]:
                self._check_timeout(
                    start_time, f"during relationship analysis between {source.domain} and {target.domain}"
                )
                relationship = self._analyze_relationship_between(source, target)
                if not relationship:
                    continue
                relationships.append(relationship)

                if relationship.strength > 0.6:
                    reverse = self._analyze_relationship_between(target, source)
                    if reverse and reverse.strength > 0.3:
                        relationships.append(reverse)
        return relationships

    def _analyze_relationship_between(self, source: DomainBoundary,
                                      target: DomainBoundary) -> Optional[CrossDomainRelationship]:
        evidence = self._find_cross_domain_references(source, target)
        if not evidence:
            return None

        relationship_type = self._determine_relationship_type(source, target, evidence)
        return CrossDomainRelationship(
            source_domain=source.domain,
            target_domain=target.domain,
            relationship_type=relationship_type,
            strength=self._calculate_relationship_strength(source, target, evidence),
            evidence_files=evidence,
            business_justification=RELATIONSHIP_JUSTIFICATIONS[relationship_type].format(
                source=source.domain, target=target.domain
            )
        )

    def _find_cross_domain_references(self, source: DomainBoundary, target: DomainBoundary) -> List[str]:
        evidence = []
        for file_path in self._list_project_files():
            relative = os.path.relpath(file_path, self.project_root).replace(os.sep, '/')
            if not (file_path.startswith(source.root_path) or relative.startswith(source.root_path)):
                continue
            if Path(file_path).suffix.lower() not in SOURCE_EXTENSIONS:
                continue
            try:
                content = Path(file_path).read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Error reading {file_path} while checking {source.domain} -> {target.domain}: {e}")
                continue
            if self._references_domain(content, target):
                evidence.append(file_path)
        return evidence

    @staticmethod
    def _references_domain(content: str, target: DomainBoundary) -> bool:
        name = target.domain
        if 'using' in content and name in content:
            return True
        if 'import' in content and name.lower() in content:
            return True
        return any(c in content for c in target.business_concepts) or \
            any(i in content for i in target.key_interfaces)

    @staticmethod
    def _determine_relationship_type(source: DomainBoundary, target: DomainBoundary,
                                     evidence: List[str]) -> RelationshipType:
        lowered = [f.lower() for f in evidence]
        if 'data' in target.domain.lower() or any('repository' in f or 'database' in f for f in lowered):
            return RelationshipType.DEPENDENCY
        if any('service' in f or 'handler' in f for f in lowered):
            return RelationshipType.ASSOCIATION
        if source.domain in target.domain or target.domain in source.domain:
            return RelationshipType.INHERITANCE
        return RelationshipType.DEPENDENCY

    @staticmethod
    def _calculate_relationship_strength(source: DomainBoundary, target: DomainBoundary,
                                         evidence: List[str]) -> float:
        strength = min(len(evidence) / 10, 1) * 0.4
        strength += (source.confidence + target.confidence) / 2 * 0.3
        shared: Set[str] = set(source.business_concepts) & set(target.business_concepts)
        strength += min(len(shared) / 5, 1) * 0.3
        return min(max(strength, 0.0), 1.0)

    @staticmethod
    def _identify_isolated_domains(boundaries: List[DomainBoundary],
                                   relationships: List[CrossDomainRelationship]) -> List[str]:
        connected = {r.source_domain for r in relationships} | {r.target_domain for r in relationships}
        return [b.domain for b in boundaries if b.domain not in connected]
