"""
Tests for SemanticAnalysisService concept and rule extraction.
"""

import textwrap

import pytest

from context_engineering.domain.semantic_analysis import (
    SemanticAnalysisService,
    detect_language,
    humanize_method_name,
)


@pytest.fixture
def service():
    return SemanticAnalysisService()


def test_csharp_file_yields_concepts_rules_and_namespace_domain(service, source_tree):
    path = str(source_tree / 'Analysis' / 'TrendAnalyzer.cs')

    result = service.analyze_file(path)

    assert result.language == 'C#'
    assert result.domain_context == 'Analysis'
    assert {c.name for c in result.business_concepts} == {'TrendAnalyzer'}
    assert {c.type for c in result.business_concepts} == {'Entity', 'ValueObject'}
    descriptions = [r.description for r in result.business_rules]
    assert descriptions == ['Trends need at least three price points', 'Validate trend window']
    assert result.business_rules[0].source_location == f"{path}:7"
    assert result.business_rules[1].actions == ['Validation', 'Business constraint enforcement']
    assert result.business_rules[0].id.endswith('-1')


def test_csharp_repository_interface(service):
    content = "namespace Shop.Data { public interface IOrderRepository { } }"
    result = service.analyze_content(content, 'OrderRepository.cs')

    [concept] = result.business_concepts
    assert concept.name == 'IOrderRepository'
    assert concept.type == 'Repository'
    assert concept.domain == 'Data'


def test_python_guards_and_validators_become_rules(service):
    content = textwrap.dedent("""\
        class OrderService:
            # Business Rule: Orders above the limit need approval
            def validate_order(self, order):
                if order.total < 0:
                    raise ValueError("negative total")
        """)

    result = service.analyze_content(content, 'src/trading/orders.py')

    assert result.language == 'Python'
    assert result.domain_context == 'Trading'
    [concept] = result.business_concepts
    assert (concept.name, concept.type) == ('OrderService', 'Service')
    rules = {r.description: r for r in result.business_rules}
    assert set(rules) == {'Orders above the limit need approval', 'Validate order', 'Guard: order.total < 0'}
    assert rules['Guard: order.total < 0'].actions == ['Raise ValueError']


def test_typescript_classes_interfaces_and_validators(service):
    content = "export class PaymentService {}\nexport interface Invoice {}\nfunction validateInvoice(i) {}\n"

    result = service.analyze_content(content, 'src/market/payment.ts')

    concepts = {c.name: c.type for c in result.business_concepts}
    assert concepts == {'PaymentService': 'Service', 'Invoice': 'Entity'}
    assert 'Validate invoice' in [r.description for r in result.business_rules]
    assert result.domain_context == 'Market'


def test_unsupported_language_has_no_semantics(service):
    result = service.analyze_content('Some notes', 'notes.txt')

    assert result.language == 'Unknown'
    assert result.business_concepts == []
    assert result.business_rules == []


async def test_batch_analysis_skips_unreadable_files(service, source_tree):
    good = str(source_tree / 'Data' / 'PriceRepository.cs')
    missing = str(source_tree / 'Data' / 'Gone.cs')

    results = await service.analyze_code_changes([missing, good])

    assert [r.file_path for r in results] == [good]


def test_analyze_file_raises_for_missing_file(service, tmp_path):
    with pytest.raises(OSError):
        service.analyze_file(str(tmp_path / 'absent.cs'))


@pytest.mark.parametrize('path,language', [
    ('a.cs', 'C#'), ('b.TS', 'TypeScript'), ('c.js', 'JavaScript'), ('d.py', 'Python'), ('e.go', 'Unknown'),
])
def test_detect_language(path, language):
    assert detect_language(path) == language


def test_humanize_method_name():
    assert humanize_method_name('CanShipOrder') == 'Can ship order'
    assert humanize_method_name('is_valid_total') == 'Is valid total'


def test_result_serializes_with_camel_case_keys(service):
    data = service.analyze_content('class Order:\n    pass\n', 'order.py').to_dict()

    assert set(data) == {'filePath', 'language', 'businessConcepts', 'businessRules', 'domainContext', 'analysisTime'}
    assert data['businessConcepts'][0]['name'] == 'Order'
