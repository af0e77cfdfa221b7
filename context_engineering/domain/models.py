#!/usr/bin/env python3
"""
Data Models for Cross-Domain Impact Analysis

Defines the domain map, impact graph and semantic analysis records shared by
the analyzers, the impact mapper and the performance orchestrator. Every model
exposes ``to_dict()`` producing the camelCase shape the MCP tool layer emits.
"""

import time
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


class ImpactLevel(Enum):
    """How a domain came to be affected by a change set."""
    DIRECT = "direct"
    INDIRECT = "indirect"
    CASCADE = "cascade"


class PropagationType(Enum):
    """Channel through which an impact travels between domains."""
    INTERFACE = "interface"
    DATA = "data"
    EVENT = "event"
    DEPENDENCY = "dependency"
    CONFIGURATION = "configuration"


class RelationshipType(Enum):
    """Kind of cross-domain relationship found by the domain analyzer."""
    DEPENDENCY = "dependency"
    ASSOCIATION = "association"
    COMPOSITION = "composition"
    AGGREGATION = "aggregation"
    INHERITANCE = "inheritance"


class UpdatePriority(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskType(Enum):
    CIRCULAR_DEPENDENCY = "circular-dependency"
    HIGH_COUPLING = "high-coupling"
    MISSING_TESTS = "missing-tests"
    PERFORMANCE = "performance"
    ROLLBACK_COMPLEXITY = "rollback-complexity"


class RiskSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Numeric rank used for sorting by priority
PRIORITY_RANK = {
    UpdatePriority.CRITICAL: 4,
    UpdatePriority.HIGH: 3,
    UpdatePriority.MEDIUM: 2,
    UpdatePriority.LOW: 1,
}


@dataclass
class BusinessConcept:
    """A DDD building block recognised in a source file."""
    name: str
    type: str  # Entity, ValueObject, Service, Repository, Event, Command
    domain: str
    confidence: float
    context: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.type,
            'domain': self.domain,
            'confidence': self.confidence,
            'context': self.context
        }


@dataclass
class BusinessRule:
    """A guard or validation rule recognised in a source file."""
    id: str
    description: str
    domain: str
    source_location: str
    conditions: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'description': self.description,
            'domain': self.domain,
            'sourceLocation': self.source_location,
            'conditions': list(self.conditions),
            'actions': list(self.actions),
            'confidence': self.confidence
        }


@dataclass
class SemanticAnalysisResult:
    """Per-file output of the semantic analysis service."""
    file_path: str
    language: str
    business_concepts: List[BusinessConcept] = field(default_factory=list)
    business_rules: List[BusinessRule] = field(default_factory=list)
    domain_context: str = ""
    analysis_time: float = 0.0  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'filePath': self.file_path,
            'language': self.language,
            'businessConcepts': [c.to_dict() for c in self.business_concepts],
            'businessRules': [r.to_dict() for r in self.business_rules],
            'domainContext': self.domain_context,
            'analysisTime': self.analysis_time
        }


@dataclass
class DomainBoundary:
    """Immutable snapshot of one business domain for a single analysis run."""
    domain: str
    root_path: str
    business_concepts: List[str] = field(default_factory=list)
    key_interfaces: List[str] = field(default_factory=list)
    confidence: float = 0.0
    sub_domains: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domain': self.domain,
            'rootPath': self.root_path,
            'businessConcepts': list(self.business_concepts),
            'keyInterfaces': list(self.key_interfaces),
            'confidence': self.confidence,
            'subDomains': list(self.sub_domains)
        }


@dataclass
class CrossDomainRelationship:
    """Directed, weighted relationship between two domains."""
    source_domain: str
    target_domain: str
    relationship_type: RelationshipType
    strength: float
    evidence_files: List[str] = field(default_factory=list)
    business_justification: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sourceDomain': self.source_domain,
            'targetDomain': self.target_domain,
            'relationshipType': self.relationship_type.value,
            'strength': self.strength,
            'evidenceFiles': list(self.evidence_files),
            'businessJustification': self.business_justification
        }


@dataclass
class DomainMap:
    """Domain boundaries plus the relationships between them."""
    domains: List[DomainBoundary] = field(default_factory=list)
    relationships: List[CrossDomainRelationship] = field(default_factory=list)
    isolated_domains: List[str] = field(default_factory=list)
    analysis_timestamp: float = field(default_factory=time.time)

    def get_domain(self, name: str) -> Optional[DomainBoundary]:
        for boundary in self.domains:
            if boundary.domain == name:
                return boundary
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domains': [d.to_dict() for d in self.domains],
            'relationships': [r.to_dict() for r in self.relationships],
            'isolatedDomains': list(self.isolated_domains),
            'analysisTimestamp': self.analysis_timestamp
        }


@dataclass
class ImpactNode:
    """One affected domain in an impact graph."""
    domain: str
    impact_level: ImpactLevel
    impact_score: float
    changed_files: List[str] = field(default_factory=list)
    affected_components: List[str] = field(default_factory=list)
    propagation_depth: int = 0
    estimated_update_time: int = 0  # seconds
    update_priority: UpdatePriority = UpdatePriority.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            'domain': self.domain,
            'impactLevel': self.impact_level.value,
            'impactScore': self.impact_score,
            'changedFiles': list(self.changed_files),
            'affectedComponents': list(self.affected_components),
            'propagationDepth': self.propagation_depth,
            'estimatedUpdateTime': self.estimated_update_time,
            'updatePriority': self.update_priority.value
        }


@dataclass
class ImpactEdge:
    """Propagation of impact from one domain to another."""
    source_domain: str
    target_domain: str
    propagation_type: PropagationType
    strength: float
    bidirectional: bool = False
    propagation_delay: int = 0  # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sourceDomain': self.source_domain,
            'targetDomain': self.target_domain,
            'propagationType': self.propagation_type.value,
            'strength': self.strength,
            'bidirectional': self.bidirectional,
            'propagationDelay': self.propagation_delay
        }


@dataclass
class ImpactGraph:
    """Nodes and edges describing how a change set spreads across domains."""
    nodes: List[ImpactNode] = field(default_factory=list)
    edges: List[ImpactEdge] = field(default_factory=list)
    root_changes: List[str] = field(default_factory=list)
    analysis_timestamp: float = field(default_factory=time.time)
    total_estimated_time: int = 0
    critical_path: List[str] = field(default_factory=list)

    def get_node(self, domain: str) -> Optional[ImpactNode]:
        for node in self.nodes:
            if node.domain == domain:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [n.to_dict() for n in self.nodes],
            'edges': [e.to_dict() for e in self.edges],
            'rootChanges': list(self.root_changes),
            'analysisTimestamp': self.analysis_timestamp,
            'totalEstimatedTime': self.total_estimated_time,
            'criticalPath': list(self.critical_path)
        }


@dataclass
class RiskFactor:
    """A risk detected in an impact graph, with its suggested mitigation."""
    type: RiskType
    severity: RiskSeverity
    description: str
    affected_domains: List[str] = field(default_factory=list)
    mitigation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'description': self.description,
            'affectedDomains': list(self.affected_domains),
            'mitigation': self.mitigation
        }


@dataclass
class ChangeImpactPrediction:
    """Top-level output of an impact prediction."""
    impact_graph: ImpactGraph
    update_sequence: List[str] = field(default_factory=list)
    risk_factors: List[RiskFactor] = field(default_factory=list)
    confidence_score: float = 0.0
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'impactGraph': self.impact_graph.to_dict(),
            'updateSequence': list(self.update_sequence),
            'riskFactors': [r.to_dict() for r in self.risk_factors],
            'confidenceScore': self.confidence_score,
            'recommendations': list(self.recommendations)
        }
