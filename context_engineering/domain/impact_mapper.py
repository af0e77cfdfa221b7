#!/usr/bin/env python3
"""
Impact Mapper for Cross-Domain Change Analysis

Builds an impact graph over business domains for a set of changed files,
propagates impact through domain relationships, and derives the critical
path, a priority-aware update sequence, risk factors, a confidence score and
recommendations.
"""

import logging
import os
import time
from collections import defaultdict, deque
from pathlib import Path
from typing import Dict, List, Optional, Set

from .models import (
    DomainBoundary, DomainMap, CrossDomainRelationship, RelationshipType,
    ImpactLevel, ImpactNode, ImpactEdge, ImpactGraph, PropagationType,
    UpdatePriority, PRIORITY_RANK, RiskFactor, RiskType, RiskSeverity,
    ChangeImpactPrediction, SemanticAnalysisResult
)
from .domain_analyzer import DomainAnalyzer
from .semantic_analysis import SemanticAnalysisService
from ..exceptions import ImpactAnalysisTimeoutError

logger = logging.getLogger(__name__)


DOMAIN_MAP_MAX_AGE = 5 * 60  # seconds
MAX_PROPAGATION_DEPTH = 4
SEMANTIC_EXTENSIONS = {'.cs', '.ts', '.js', '.py'}
CRITICAL_DOMAINS = {'Data', 'Analysis', 'Messaging'}

BASE_SCORES = {
    ImpactLevel.DIRECT: 0.8,
    ImpactLevel.INDIRECT: 0.5,
    ImpactLevel.CASCADE: 0.3,
}

BASE_UPDATE_TIMES = {
    ImpactLevel.DIRECT: 120,
    ImpactLevel.INDIRECT: 60,
    ImpactLevel.CASCADE: 30,
}

PROPAGATION_TYPES = {
    RelationshipType.DEPENDENCY: PropagationType.DEPENDENCY,
    RelationshipType.ASSOCIATION: PropagationType.INTERFACE,
    RelationshipType.COMPOSITION: PropagationType.DATA,
    RelationshipType.AGGREGATION: PropagationType.DATA,
    RelationshipType.INHERITANCE: PropagationType.INTERFACE,
}

BASE_DELAYS = {
    PropagationType.INTERFACE: 30,
    PropagationType.DATA: 60,
    PropagationType.EVENT: 20,
    PropagationType.DEPENDENCY: 45,
    PropagationType.CONFIGURATION: 90,
}

HIGH_COUPLING_THRESHOLD = 3.0
PERFORMANCE_THRESHOLD = 300  # seconds


def _sort_key(node: ImpactNode):
    return (-PRIORITY_RANK[node.update_priority], -node.impact_score)


class ImpactMapper:
    """
    Predicts how a change set propagates across business domains.

    Args:
        domain_analyzer: Source of the DomainMap.
        semantic_service: Analyzer for changed files within a domain.
        timeout_ms: Budget for a single prediction; exceeding it raises
            ImpactAnalysisTimeoutError.
        project_root: Used to match absolute domain roots against relative
            changed file paths.
    """

    def __init__(self, domain_analyzer: DomainAnalyzer,
                 semantic_service: Optional[SemanticAnalysisService] = None,
                 timeout_ms: float = 15000,
                 project_root: Optional[str] = None):
        self.domain_analyzer = domain_analyzer
        self.semantic_service = semantic_service or SemanticAnalysisService()
        self.timeout_ms = timeout_ms
        self.project_root = os.path.abspath(project_root) if project_root else None

        self._cached_domain_map: Optional[DomainMap] = None
        self._cache_timestamp: Optional[float] = None

        logger.info(f"Impact Mapper initialized with timeout: {timeout_ms}ms")

    async def predict_change_impact(self, changed_files: List[str]) -> ChangeImpactPrediction:
        """Predict the cross-domain impact of ``changed_files``."""
        logger.info(f"Predicting change impact for {len(changed_files)} files")
        start_time = time.time()

        try:
            self._check_timeout(start_time, "at start of impact prediction")

            domain_map = await self._get_domain_map(changed_files)
            domain_map_time = time.time()

            self._check_timeout(start_time, "before building impact graph")
            impact_graph = await self._build_impact_graph(changed_files, domain_map, start_time)
            graph_time = time.time()

            self._check_timeout(start_time, "before update sequence calculation")
            update_sequence = self.calculate_update_sequence(impact_graph)
            risk_factors = self.identify_risk_factors(impact_graph)
            confidence = self.calculate_confidence_score(impact_graph, domain_map)
            recommendations = self.generate_recommendations(impact_graph, risk_factors)
        except Exception as e:
            logger.error(f"Impact prediction failed: {e}")
            raise

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Impact prediction completed in {elapsed_ms:.0f}ms. "
                    f"Found {len(impact_graph.nodes)} affected domains")
        logger.debug(f"Performance metrics - Domain map: {(domain_map_time - start_time) * 1000:.0f}ms, "
                     f"Impact graph: {(graph_time - domain_map_time) * 1000:.0f}ms")

        return ChangeImpactPrediction(
            impact_graph=impact_graph,
            update_sequence=update_sequence,
            risk_factors=risk_factors,
            confidence_score=confidence,
            recommendations=recommendations
        )

    def clear_cache(self):
        """Drop the cached domain map."""
        self._cached_domain_map = None
        self._cache_timestamp = None
        logger.debug("Domain map cache cleared")

    async def _get_domain_map(self, changed_files: List[str]) -> DomainMap:
        if (self._cached_domain_map is not None and self._cache_timestamp is not None
                and time.time() - self._cache_timestamp < DOMAIN_MAP_MAX_AGE):
            return self._cached_domain_map

        logger.debug("Refreshing domain map")
        self._cached_domain_map = await self.domain_analyzer.analyze_domain_map(changed_files)
        self._cache_timestamp = time.time()
        return self._cached_domain_map

    # Graph construction

    def _in_domain(self, file_path: str, boundary: DomainBoundary) -> bool:
        if file_path.startswith(boundary.root_path):
            return True
        if self.project_root and not os.path.isabs(file_path):
            return os.path.join(self.project_root, file_path).startswith(boundary.root_path)
        return False

    async def _build_impact_graph(self, changed_files: List[str], domain_map: DomainMap,
                                  start_time: float) -> ImpactGraph:
        nodes: List[ImpactNode] = []
        edges: List[ImpactEdge] = []

        direct_domains = self.identify_directly_affected_domains(changed_files, domain_map)
        for domain in direct_domains:
            self._check_timeout(start_time, f"while building impact node for {domain}")
            boundary = domain_map.get_domain(domain)
            domain_files = [f for f in changed_files if self._in_domain(f, boundary)]
            nodes.append(await self._create_impact_node(
                domain, ImpactLevel.DIRECT, domain_files, boundary, 0
            ))

        self._check_timeout(start_time, "before impact propagation")
        await self._propagate_impact(direct_domains, domain_map, nodes, edges, start_time)

        return ImpactGraph(
            nodes=nodes,
            edges=edges,
            root_changes=list(changed_files),
            analysis_timestamp=time.time(),
            total_estimated_time=sum(n.estimated_update_time for n in nodes),
            critical_path=self.calculate_critical_path(nodes, edges)
        )

    def identify_directly_affected_domains(self, changed_files: List[str],
                                           domain_map: DomainMap) -> List[str]:
        affected: Dict[str, None] = {}
        for file_path in changed_files:
            for boundary in domain_map.domains:
                if self._in_domain(file_path, boundary):
                    affected[boundary.domain] = None
        return list(affected)

    async def _propagate_impact(self, frontier: List[str], domain_map: DomainMap,
                                nodes: List[ImpactNode], edges: List[ImpactEdge],
                                start_time: float):
        """Breadth-first propagation, one level per iteration, bounded in depth."""
        visited: Set[str] = {n.domain for n in nodes}
        depth = 1

        while frontier and depth <= MAX_PROPAGATION_DEPTH:
            self._check_timeout(start_time, f"during impact propagation at depth {depth}")
            next_level: List[str] = []

            for source in frontier:
                for relationship in domain_map.relationships:
                    if relationship.source_domain != source:
                        continue

                    target = relationship.target_domain
                    boundary = domain_map.get_domain(target)
                    if boundary is None:
                        logger.warning(f"Skipping relationship {source} -> {target}: "
                                       f"no domain boundary for {target}")
                        continue

                    edges.append(self.create_impact_edge(relationship, depth))

                    if target not in visited:
                        self._check_timeout(start_time, f"while building impact node for {target}")
                        level = ImpactLevel.INDIRECT if depth == 1 else ImpactLevel.CASCADE
                        nodes.append(await self._create_impact_node(target, level, [], boundary, depth))
                        visited.add(target)
                        next_level.append(target)

            frontier = next_level
            depth += 1

    async def _create_impact_node(self, domain: str, impact_level: ImpactLevel,
                                  changed_files: List[str], boundary: DomainBoundary,
                                  depth: int) -> ImpactNode:
        semantic_results = await self._analyze_semantic_changes(changed_files, boundary)
        score = self.calculate_impact_score(impact_level, len(changed_files), semantic_results,
                                            boundary, depth)
        components = self.identify_affected_components(semantic_results, boundary)

        return ImpactNode(
            domain=domain,
            impact_level=impact_level,
            impact_score=score,
            changed_files=list(changed_files),
            affected_components=components,
            propagation_depth=depth,
            estimated_update_time=self.estimate_update_time(
                impact_level, len(changed_files), len(components), len(boundary.business_concepts)
            ),
            update_priority=self.determine_update_priority(score, depth, domain)
        )

    async def _analyze_semantic_changes(self, changed_files: List[str],
                                        boundary: DomainBoundary) -> List[SemanticAnalysisResult]:
        relevant = [f for f in changed_files
                    if Path(f).suffix.lower() in SEMANTIC_EXTENSIONS and self._in_domain(f, boundary)]
        if not relevant:
            return []

        try:
            return await self.semantic_service.analyze_code_changes(relevant)
        except Exception as e:
            logger.warning(f"Semantic analysis failed for domain {boundary.domain}: {e}")
            return []

    # Scoring

    @staticmethod
    def calculate_impact_score(impact_level: ImpactLevel, changed_file_count: int,
                               semantic_results: List[SemanticAnalysisResult],
                               boundary: DomainBoundary, depth: int) -> float:
        score = BASE_SCORES[impact_level]
        score += min(changed_file_count / 10, 1) * 0.2

        if semantic_results:
            avg_complexity = sum(
                len(r.business_concepts) + len(r.business_rules) for r in semantic_results
            ) / len(semantic_results)
            score += min(avg_complexity / 10, 1) * 0.2

        score += min(len(boundary.business_concepts) / 20, 1) * 0.2
        score -= max(0, depth * 0.1)
        return min(max(score, 0.0), 1.0)

    @staticmethod
    def identify_affected_components(semantic_results: List[SemanticAnalysisResult],
                                     boundary: DomainBoundary) -> List[str]:
        components: Dict[str, None] = {}
        for result in semantic_results:
            for concept in result.business_concepts:
                components[concept.name] = None
        for name in boundary.business_concepts:
            components[name] = None
        for name in boundary.key_interfaces:
            components[name] = None
        return list(components)

    @staticmethod
    def estimate_update_time(impact_level: ImpactLevel, changed_file_count: int,
                             component_count: int, concept_count: int) -> int:
        estimated = BASE_UPDATE_TIMES[impact_level]
        estimated += changed_file_count * 15
        estimated += component_count * 10
        estimated += concept_count * 5
        return max(estimated, 10)

    @staticmethod
    def determine_update_priority(impact_score: float, depth: int, domain: str) -> UpdatePriority:
        if domain in CRITICAL_DOMAINS:
            return UpdatePriority.CRITICAL if impact_score > 0.7 else UpdatePriority.HIGH

        if impact_score > 0.8 and depth <= 1:
            return UpdatePriority.CRITICAL
        if impact_score > 0.6 and depth <= 2:
            return UpdatePriority.HIGH
        if impact_score > 0.4 or depth <= 3:
            return UpdatePriority.MEDIUM
        return UpdatePriority.LOW

    @staticmethod
    def create_impact_edge(relationship: CrossDomainRelationship, depth: int) -> ImpactEdge:
        propagation_type = PROPAGATION_TYPES[relationship.relationship_type]
        delay = BASE_DELAYS[propagation_type] * (1 + depth * 0.5)
        return ImpactEdge(
            source_domain=relationship.source_domain,
            target_domain=relationship.target_domain,
            propagation_type=propagation_type,
            strength=relationship.strength,
            bidirectional=relationship.strength > 0.7,
            propagation_delay=int(round(delay))
        )

    # Graph analysis

    @staticmethod
    def calculate_critical_path(nodes: List[ImpactNode], edges: List[ImpactEdge]) -> List[str]:
        """
        Longest path weighted by target update time, via Kahn's algorithm.

        Nodes that sit on a cycle never reach in-degree zero and are left out.
        """
        if not edges:
            return []

        node_times = {n.domain: n.estimated_update_time for n in nodes}
        in_degree = {domain: 0 for domain in node_times}
        out_edges: Dict[str, List[ImpactEdge]] = defaultdict(list)
        for edge in edges:
            in_degree[edge.target_domain] = in_degree.get(edge.target_domain, 0) + 1
            out_edges[edge.source_domain].append(edge)

        distances = dict(node_times)
        predecessors: Dict[str, str] = {}
        queue = deque(domain for domain in node_times if in_degree[domain] == 0)
        processed: List[str] = []

        while queue:
            current = queue.popleft()
            processed.append(current)
            for edge in out_edges[current]:
                target = edge.target_domain
                candidate = distances[current] + node_times.get(target, 0)
                if candidate > distances.get(target, 0):
                    distances[target] = candidate
                    predecessors[target] = current
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    queue.append(target)

        if not processed:
            return []

        end_node = max(processed, key=lambda d: distances[d])
        path = [end_node]
        while path[-1] in predecessors:
            path.append(predecessors[path[-1]])
        path.reverse()
        return path

    @staticmethod
    def calculate_update_sequence(impact_graph: ImpactGraph) -> List[str]:
        """Topological order, ties broken by priority then impact score."""
        node_map = {n.domain: n for n in impact_graph.nodes}
        in_degree = {domain: 0 for domain in node_map}
        adjacency: Dict[str, List[str]] = defaultdict(list)
        for edge in impact_graph.edges:
            if edge.source_domain in node_map and edge.target_domain in node_map:
                in_degree[edge.target_domain] += 1
                adjacency[edge.source_domain].append(edge.target_domain)

        queue = sorted((d for d, deg in in_degree.items() if deg == 0),
                       key=lambda d: _sort_key(node_map[d]))
        sequence: List[str] = []

        while queue:
            current = queue.pop(0)
            sequence.append(current)
            for neighbor in adjacency[current]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    key = _sort_key(node_map[neighbor])
                    index = next((i for i, queued in enumerate(queue)
                                  if key < _sort_key(node_map[queued])), len(queue))
                    queue.insert(index, neighbor)

        if len(sequence) < len(node_map):
            remaining = sorted((d for d in node_map if d not in sequence),
                               key=lambda d: _sort_key(node_map[d]))
            logger.warning(f"Update sequence has unresolved cyclic domains, appending: {remaining}")
            sequence.extend(remaining)

        return sequence

    def identify_risk_factors(self, impact_graph: ImpactGraph) -> List[RiskFactor]:
        risks = []

        cycle = self.detect_circular_dependencies(impact_graph)
        if cycle:
            risks.append(RiskFactor(
                type=RiskType.CIRCULAR_DEPENDENCY,
                severity=RiskSeverity.HIGH,
                description=f"Circular dependencies detected between domains: {' -> '.join(cycle)}",
                affected_domains=cycle,
                mitigation="Break circular dependencies by introducing abstractions or event-driven communication"
            ))

        coupled = self.detect_high_coupling(impact_graph)
        if coupled:
            risks.append(RiskFactor(
                type=RiskType.HIGH_COUPLING,
                severity=RiskSeverity.MEDIUM,
                description=f"High coupling detected in domains: {', '.join(coupled)}",
                affected_domains=coupled,
                mitigation="Reduce coupling by introducing interfaces and dependency injection"
            ))

        slow = self.detect_performance_risks(impact_graph)
        if slow:
            risks.append(RiskFactor(
                type=RiskType.PERFORMANCE,
                severity=RiskSeverity.MEDIUM,
                description=f"Performance risks in domains with high impact: {', '.join(slow)}",
                affected_domains=slow,
                mitigation="Consider parallel updates where possible and optimize critical path"
            ))

        rollback = self.assess_rollback_complexity(impact_graph)
        if rollback.severity != RiskSeverity.LOW:
            risks.append(rollback)

        return risks

    @staticmethod
    def detect_circular_dependencies(impact_graph: ImpactGraph) -> List[str]:
        """Return the first cycle found as ``[A, ..., A]``, or an empty list."""
        adjacency: Dict[str, List[str]] = {n.domain: [] for n in impact_graph.nodes}
        for edge in impact_graph.edges:
            adjacency.setdefault(edge.source_domain, []).append(edge.target_domain)

        visited: Set[str] = set()
        on_stack: Set[str] = set()

        def find_cycle(domain: str, path: List[str]) -> List[str]:
            if domain in on_stack:
                return path[path.index(domain):] + [domain]
            if domain in visited:
                return []

            visited.add(domain)
            on_stack.add(domain)
            path = path + [domain]
            for neighbor in adjacency.get(domain, []):
                cycle = find_cycle(neighbor, path)
                if cycle:
                    return cycle
            on_stack.discard(domain)
            return []

        for node in impact_graph.nodes:
            if node.domain not in visited:
                cycle = find_cycle(node.domain, [])
                if cycle:
                    return cycle
        return []

    @staticmethod
    def detect_high_coupling(impact_graph: ImpactGraph) -> List[str]:
        scores: Dict[str, float] = {n.domain: 0.0 for n in impact_graph.nodes}
        for edge in impact_graph.edges:
            scores[edge.source_domain] = scores.get(edge.source_domain, 0.0) + edge.strength
            scores[edge.target_domain] = scores.get(edge.target_domain, 0.0) + edge.strength
        return [domain for domain, score in scores.items() if score > HIGH_COUPLING_THRESHOLD]

    @staticmethod
    def detect_performance_risks(impact_graph: ImpactGraph) -> List[str]:
        return [n.domain for n in impact_graph.nodes if n.estimated_update_time > PERFORMANCE_THRESHOLD]

    @staticmethod
    def assess_rollback_complexity(impact_graph: ImpactGraph) -> RiskFactor:
        total_nodes = len(impact_graph.nodes)
        total_time = impact_graph.total_estimated_time
        path_length = len(impact_graph.critical_path)

        severity = RiskSeverity.LOW
        if total_nodes > 8 or total_time > 900 or path_length > 5:
            severity = RiskSeverity.HIGH
        elif total_nodes > 5 or total_time > 600 or path_length > 3:
            severity = RiskSeverity.MEDIUM

        return RiskFactor(
            type=RiskType.ROLLBACK_COMPLEXITY,
            severity=severity,
            description=f"Rollback complexity: {total_nodes} domains, "
                        f"{round(total_time / 60)} minute estimated time",
            affected_domains=[n.domain for n in impact_graph.nodes],
            mitigation="Ensure comprehensive rollback testing and consider incremental rollback strategy"
        )

    @staticmethod
    def calculate_confidence_score(impact_graph: ImpactGraph, domain_map: DomainMap) -> float:
        domains = domain_map.domains
        relationships = domain_map.relationships

        confidence = sum(d.confidence for d in domains) / max(len(domains), 1) * 0.4
        confidence += sum(r.strength for r in relationships) / max(len(relationships), 1) * 0.3
        direct = sum(1 for n in impact_graph.nodes if n.impact_level == ImpactLevel.DIRECT)
        confidence += min(direct / 3, 1) * 0.3
        return min(max(confidence, 0.0), 1.0)

    @staticmethod
    def generate_recommendations(impact_graph: ImpactGraph, risk_factors: List[RiskFactor]) -> List[str]:
        recommendations = []

        if impact_graph.critical_path:
            recommendations.append(
                f"Focus on critical path: {' -> '.join(impact_graph.critical_path)} for optimal update sequencing"
            )

        critical = [n.domain for n in impact_graph.nodes if n.update_priority == UpdatePriority.CRITICAL]
        if critical:
            recommendations.append(f"Prioritize critical domains: {', '.join(critical)}")

        if impact_graph.total_estimated_time > 600:
            recommendations.append("Consider parallel execution for independent domains to reduce total update time")

        for risk in risk_factors:
            if risk.severity in (RiskSeverity.HIGH, RiskSeverity.CRITICAL):
                recommendations.append(risk.mitigation)

        if len(impact_graph.nodes) > 5:
            recommendations.append("Create comprehensive rollback snapshots before executing updates")

        return recommendations

    def _check_timeout(self, start_time: float, context: str):
        elapsed_ms = (time.time() - start_time) * 1000
        if elapsed_ms > self.timeout_ms:
            error = ImpactAnalysisTimeoutError(elapsed_ms, self.timeout_ms, context)
            logger.error(f"Performance timeout exceeded: {error}")
            raise error

        if elapsed_ms > self.timeout_ms * 0.8:
            logger.warning(f"Impact mapping approaching timeout: {elapsed_ms:.0f}ms of "
                           f"{self.timeout_ms}ms used during {context}")
