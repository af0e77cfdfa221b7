"""
Shared fixtures for the context engineering test suite.
"""

import asyncio
import textwrap

import pytest

from context_engineering.domain import (
    CrossDomainRelationship,
    DomainBoundary,
    DomainMap,
    ImpactMapper,
    RelationshipType,
)


class StaticDomainAnalyzer:
    """Stands in for DomainAnalyzer: serves a fixed map and counts requests."""

    def __init__(self, domain_map: DomainMap, delay: float = 0.0):
        self.domain_map = domain_map
        self.delay = delay
        self.calls = 0

    async def analyze_domain_map(self, changed_files=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.domain_map


def dependency(source, target, strength):
    return CrossDomainRelationship(
        source_domain=source,
        target_domain=target,
        relationship_type=RelationshipType.DEPENDENCY,
        strength=strength
    )


@pytest.fixture
def make_mapper():
    """Factory building an ImpactMapper over a hand-made domain map."""

    def factory(relationships, domains=('Analysis', 'Data'), delay=0.0, **kwargs):
        domain_map = DomainMap(
            domains=[DomainBoundary(domain=name, root_path=f"{name}/", confidence=0.8) for name in domains],
            relationships=list(relationships)
        )
        analyzer = StaticDomainAnalyzer(domain_map, delay=delay)
        return ImpactMapper(analyzer, **kwargs), analyzer

    return factory


@pytest.fixture
def make_relationship():
    return dependency


TREND_ANALYZER_CS = textwrap.dedent("""\
    using Project.Data;

    namespace Project.Analysis
    {
        public class TrendAnalyzer
        {
            // Business Rule: Trends need at least three price points
            public bool ValidateTrendWindow(int points)
            {
                if (points < 3) return false;
                return true;
            }
        }
    }
    """)

PRICE_REPOSITORY_CS = textwrap.dedent("""\
    using Project.Analysis;

    namespace Project.Data
    {
        public interface IPriceRepository
        {
        }

        public class PriceRepository : IPriceRepository
        {
        }
    }
    """)


def write_source_tree(root):
    """Two-domain C# project: Analysis/TrendAnalyzer.cs and Data/PriceRepository.cs."""
    (root / 'Analysis').mkdir(parents=True)
    (root / 'Data').mkdir()
    (root / 'Analysis' / 'TrendAnalyzer.cs').write_text(TREND_ANALYZER_CS, encoding='utf-8')
    (root / 'Data' / 'PriceRepository.cs').write_text(PRICE_REPOSITORY_CS, encoding='utf-8')
    return root


@pytest.fixture
def make_source_tree():
    return write_source_tree


@pytest.fixture
def source_tree(tmp_path):
    return write_source_tree(tmp_path)
