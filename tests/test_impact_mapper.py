"""
Tests for ImpactMapper graph construction, scoring and risk detection.
"""

import pytest

from context_engineering.domain import (
    DomainBoundary,
    ImpactEdge,
    ImpactGraph,
    ImpactLevel,
    ImpactNode,
    PropagationType,
    RiskSeverity,
    RiskType,
    UpdatePriority,
)
from context_engineering.domain.impact_mapper import ImpactMapper
from context_engineering.exceptions import ImpactAnalysisTimeoutError


async def test_direct_change_propagates_to_dependent_domain(make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.9)])

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])
    graph = prediction.impact_graph

    assert len(graph.nodes) == 2
    assert len(graph.edges) == 1

    analysis = graph.get_node('Analysis')
    assert analysis.impact_level == ImpactLevel.DIRECT
    assert analysis.impact_score == pytest.approx(0.82)
    assert analysis.update_priority == UpdatePriority.CRITICAL
    assert analysis.changed_files == ['Analysis/foo.cs']
    assert analysis.estimated_update_time == 135

    data = graph.get_node('Data')
    assert data.impact_level == ImpactLevel.INDIRECT
    assert data.propagation_depth == 1
    assert data.impact_score == pytest.approx(0.4)
    assert data.update_priority == UpdatePriority.HIGH
    assert data.estimated_update_time == 60

    edge = graph.edges[0]
    assert edge.propagation_type == PropagationType.DEPENDENCY
    assert edge.bidirectional is True
    assert edge.propagation_delay == 68

    assert graph.critical_path == ['Analysis', 'Data']
    assert graph.total_estimated_time == 195
    assert prediction.update_sequence == ['Analysis', 'Data']
    assert 0.0 <= prediction.confidence_score <= 1.0
    assert "Focus on critical path: Analysis -> Data for optimal update sequencing" in prediction.recommendations


async def test_prediction_is_deterministic_for_a_fixed_domain_map(make_mapper, make_relationship):
    relationships = [make_relationship('Analysis', 'Data', 0.9), make_relationship('Data', 'Reports', 0.6)]
    mapper, _ = make_mapper(relationships, domains=('Analysis', 'Data', 'Reports'))
    other, _ = make_mapper(relationships, domains=('Analysis', 'Data', 'Reports'))

    def summary(prediction):
        return {
            node.domain: (node.impact_score, node.update_priority, node.estimated_update_time)
            for node in prediction.impact_graph.nodes
        }

    first = await mapper.predict_change_impact(['Analysis/foo.cs'])
    second = await mapper.predict_change_impact(['Analysis/foo.cs'])
    fresh = await other.predict_change_impact(['Analysis/foo.cs'])

    assert summary(first) == summary(second) == summary(fresh)
    assert first.update_sequence == second.update_sequence == fresh.update_sequence
    assert first.impact_graph.critical_path == fresh.impact_graph.critical_path
    assert first.confidence_score == fresh.confidence_score


async def test_repeated_strong_relationships_flag_high_coupling(make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.95) for _ in range(4)])

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])

    assert len(prediction.impact_graph.edges) == 4
    coupling = [r for r in prediction.risk_factors if r.type == RiskType.HIGH_COUPLING]
    assert len(coupling) == 1
    assert coupling[0].severity == RiskSeverity.MEDIUM
    assert set(coupling[0].affected_domains) == {'Analysis', 'Data'}


async def test_cycle_is_reported_and_sequence_still_covers_every_node(make_mapper, make_relationship):
    mapper, _ = make_mapper([
        make_relationship('Analysis', 'Data', 0.5),
        make_relationship('Data', 'Analysis', 0.5),
    ])

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])

    circular = [r for r in prediction.risk_factors if r.type == RiskType.CIRCULAR_DEPENDENCY]
    assert len(circular) == 1
    assert circular[0].severity == RiskSeverity.HIGH
    assert circular[0].affected_domains == ['Analysis', 'Data', 'Analysis']
    assert prediction.impact_graph.critical_path == []
    assert sorted(prediction.update_sequence) == ['Analysis', 'Data']
    assert prediction.update_sequence[0] == 'Analysis'
    assert circular[0].mitigation in prediction.recommendations


async def test_propagation_stops_at_depth_four(make_mapper, make_relationship):
    chain = ['Analysis', 'Data', 'Messaging', 'Infrastructure', 'Services', 'Console']
    relationships = [make_relationship(a, b, 0.5) for a, b in zip(chain, chain[1:])]
    mapper, _ = make_mapper(relationships, domains=chain)

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])
    graph = prediction.impact_graph

    assert [n.domain for n in graph.nodes] == chain[:5]
    assert graph.get_node('Console') is None
    assert max(n.propagation_depth for n in graph.nodes) == 4
    assert graph.get_node('Messaging').impact_level == ImpactLevel.CASCADE


async def test_relationship_to_unknown_domain_is_skipped(make_mapper, make_relationship):
    mapper, _ = make_mapper([
        make_relationship('Analysis', 'Reporting', 0.9),
        make_relationship('Analysis', 'Data', 0.5),
    ])

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])

    assert [n.domain for n in prediction.impact_graph.nodes] == ['Analysis', 'Data']
    assert [e.target_domain for e in prediction.impact_graph.edges] == ['Data']


async def test_files_outside_every_domain_produce_empty_prediction(make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.9)])

    prediction = await mapper.predict_change_impact(['docs/readme.md'])

    assert prediction.impact_graph.nodes == []
    assert prediction.impact_graph.critical_path == []
    assert prediction.update_sequence == []


async def test_relative_paths_resolve_against_project_root(make_mapper, make_relationship, tmp_path):
    mapper, analyzer = make_mapper([], project_root=str(tmp_path))
    analyzer.domain_map.domains[0].root_path = str(tmp_path / 'Analysis') + '/'

    prediction = await mapper.predict_change_impact(['Analysis/foo.cs'])

    assert [n.domain for n in prediction.impact_graph.nodes] == ['Analysis']


async def test_domain_map_is_reused_until_cleared(make_mapper, make_relationship):
    mapper, analyzer = make_mapper([make_relationship('Analysis', 'Data', 0.9)])

    await mapper.predict_change_impact(['Analysis/foo.cs'])
    await mapper.predict_change_impact(['Data/bar.cs'])
    assert analyzer.calls == 1

    mapper.clear_cache()
    await mapper.predict_change_impact(['Analysis/foo.cs'])
    assert analyzer.calls == 2


async def test_slow_domain_analysis_raises_timeout(make_mapper, make_relationship):
    mapper, _ = make_mapper([make_relationship('Analysis', 'Data', 0.9)], delay=0.05, timeout_ms=10)

    with pytest.raises(ImpactAnalysisTimeoutError) as exc_info:
        await mapper.predict_change_impact(['Analysis/foo.cs'])

    assert exc_info.value.timeout_ms == 10
    assert exc_info.value.elapsed_ms > 10
    assert "before building impact graph" in str(exc_info.value)


async def test_changed_source_files_raise_the_direct_score(source_tree, make_mapper):
    mapper, analyzer = make_mapper([])
    analyzer.domain_map.domains[0].root_path = str(source_tree / 'Analysis') + '/'
    changed = str(source_tree / 'Analysis' / 'TrendAnalyzer.cs')

    prediction = await mapper.predict_change_impact([changed])
    node = prediction.impact_graph.get_node('Analysis')

    # two concepts and two rules: complexity term 0.4 * 0.2
    assert node.impact_score == pytest.approx(0.8 + 0.02 + 0.08)
    assert 'TrendAnalyzer' in node.affected_components


def _node(domain, level=ImpactLevel.DIRECT, score=0.5, time=100, priority=UpdatePriority.MEDIUM):
    return ImpactNode(domain=domain, impact_level=level, impact_score=score,
                      estimated_update_time=time, update_priority=priority)


def _edge(source, target, strength=0.5):
    return ImpactEdge(source_domain=source, target_domain=target,
                      propagation_type=PropagationType.DEPENDENCY, strength=strength)


class TestScoring:

    def test_score_is_clamped(self):
        boundary = DomainBoundary(domain='Data', root_path='Data/', business_concepts=['C'] * 40)
        assert ImpactMapper.calculate_impact_score(ImpactLevel.DIRECT, 50, [], boundary, 0) == 1.0
        assert ImpactMapper.calculate_impact_score(ImpactLevel.CASCADE, 0, [], DomainBoundary('X', 'X/'), 4) == 0.0

    def test_update_time_accumulates_per_file_component_and_concept(self):
        assert ImpactMapper.estimate_update_time(ImpactLevel.CASCADE, 2, 3, 4) == 30 + 30 + 30 + 20

    @pytest.mark.parametrize('score,depth,domain,expected', [
        (0.75, 3, 'Data', UpdatePriority.CRITICAL),
        (0.65, 0, 'Messaging', UpdatePriority.HIGH),
        (0.85, 1, 'Console', UpdatePriority.CRITICAL),
        (0.7, 2, 'Console', UpdatePriority.HIGH),
        (0.3, 3, 'Console', UpdatePriority.MEDIUM),
        (0.3, 4, 'Console', UpdatePriority.LOW),
    ])
    def test_update_priority(self, score, depth, domain, expected):
        assert ImpactMapper.determine_update_priority(score, depth, domain) == expected

    def test_edge_delay_grows_with_depth(self, make_relationship):
        edge = ImpactMapper.create_impact_edge(make_relationship('Analysis', 'Data', 0.5), 2)
        assert edge.propagation_delay == 90
        assert edge.bidirectional is False


class TestGraphAnalysis:

    def test_critical_path_follows_heaviest_chain(self):
        nodes = [_node('A', time=100), _node('B', time=10), _node('C', time=300), _node('D', time=50)]
        edges = [_edge('A', 'B'), _edge('A', 'C'), _edge('B', 'D'), _edge('C', 'D')]
        assert ImpactMapper.calculate_critical_path(nodes, edges) == ['A', 'C', 'D']

    def test_critical_path_without_edges_is_empty(self):
        assert ImpactMapper.calculate_critical_path([_node('A')], []) == []

    def test_update_sequence_orders_roots_by_priority(self):
        graph = ImpactGraph(
            nodes=[
                _node('Low', priority=UpdatePriority.LOW, score=0.9),
                _node('High', priority=UpdatePriority.HIGH, score=0.2),
                _node('HighBetter', priority=UpdatePriority.HIGH, score=0.6),
                _node('Child', priority=UpdatePriority.CRITICAL),
            ],
            edges=[_edge('Low', 'Child')]
        )
        assert ImpactMapper.calculate_update_sequence(graph) == ['HighBetter', 'High', 'Low', 'Child']

    def test_slow_domains_are_performance_risks(self):
        graph = ImpactGraph(nodes=[_node('Fast', time=100), _node('Slow', time=301)])
        assert ImpactMapper.detect_performance_risks(graph) == ['Slow']

    @pytest.mark.parametrize('node_count,time,expected', [
        (2, 200, RiskSeverity.LOW),
        (6, 200, RiskSeverity.MEDIUM),
        (2, 901, RiskSeverity.HIGH),
    ])
    def test_rollback_complexity(self, node_count, time, expected):
        graph = ImpactGraph(nodes=[_node(f"D{i}") for i in range(node_count)], total_estimated_time=time)
        assert ImpactMapper.assess_rollback_complexity(graph).severity == expected

    def test_large_graphs_recommend_rollback_snapshots(self):
        graph = ImpactGraph(nodes=[_node(f"D{i}") for i in range(6)], total_estimated_time=700)
        recommendations = ImpactMapper.generate_recommendations(graph, [])
        assert "Consider parallel execution for independent domains to reduce total update time" in recommendations
        assert "Create comprehensive rollback snapshots before executing updates" in recommendations
