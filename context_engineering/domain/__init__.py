"""
Domain analysis and cross-domain impact mapping.
"""

from .models import (
    BusinessConcept,
    BusinessRule,
    SemanticAnalysisResult,
    DomainBoundary,
    CrossDomainRelationship,
    DomainMap,
    ImpactLevel,
    PropagationType,
    RelationshipType,
    UpdatePriority,
    RiskType,
    RiskSeverity,
    ImpactNode,
    ImpactEdge,
    ImpactGraph,
    RiskFactor,
    ChangeImpactPrediction,
)
from .semantic_analysis import SemanticAnalysisService
from .domain_analyzer import DomainAnalyzer
from .impact_mapper import ImpactMapper

__all__ = [
    'BusinessConcept',
    'BusinessRule',
    'SemanticAnalysisResult',
    'DomainBoundary',
    'CrossDomainRelationship',
    'DomainMap',
    'ImpactLevel',
    'PropagationType',
    'RelationshipType',
    'UpdatePriority',
    'RiskType',
    'RiskSeverity',
    'ImpactNode',
    'ImpactEdge',
    'ImpactGraph',
    'RiskFactor',
    'ChangeImpactPrediction',
    'SemanticAnalysisService',
    'DomainAnalyzer',
    'ImpactMapper',
]
