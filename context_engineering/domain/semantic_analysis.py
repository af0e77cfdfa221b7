#!/usr/bin/env python3
"""
Semantic Analysis Service

Heuristic extraction of DDD business concepts (entities, value objects,
services, repositories, events, commands) and business rules from C#,
TypeScript/JavaScript and Python source files. Extraction is regex based and
deliberately approximate.
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from collections import Counter
from typing import Dict, List, Optional, Pattern, Tuple
from abc import ABC, abstractmethod

from .models import BusinessConcept, BusinessRule, SemanticAnalysisResult

logger = logging.getLogger(__name__)


KNOWN_NAMESPACE_DOMAINS = ['Analysis', 'Data', 'Messaging', 'Trading', 'Market']
KNOWN_PATH_DOMAINS = ['analysis', 'data', 'messaging', 'trading', 'market', 'domain']

LANGUAGE_BY_EXTENSION = {
    '.cs': 'C#',
    '.ts': 'TypeScript',
    '.js': 'JavaScript',
    '.py': 'Python',
}

# Comment-style business rule markers shared by the C-family extractors
COMMENT_RULE_PATTERNS = [
    re.compile(r'//\s*Business Rule:\s*(.+)', re.IGNORECASE),
    re.compile(r'//\s*BR:\s*(.+)', re.IGNORECASE),
    re.compile(r'/\*\*?\s*Business Rule:\s*(.+?)\*/', re.IGNORECASE | re.DOTALL),
]

_IF_CONDITION = re.compile(r'if\s*\(([^)]+)\)')
_THROW_NEW = re.compile(r'throw\s+new\s+(\w+)')


def detect_language(file_path: str) -> str:
    """Map a file extension to a language name, 'Unknown' otherwise."""
    return LANGUAGE_BY_EXTENSION.get(Path(file_path).suffix.lower(), 'Unknown')


def extract_domain_from_path(file_path: str) -> str:
    for part in re.split(r'[/\\]', file_path):
        if part.lower() in KNOWN_PATH_DOMAINS:
            return part[:1].upper() + part[1:].lower()
    return 'Unknown'


def extract_domain_from_namespace(content: str) -> str:
    match = re.search(r'namespace\s+([\w.]+)', content)
    if match:
        for part in match.group(1).split('.'):
            if part in KNOWN_NAMESPACE_DOMAINS:
                return part
    return 'Unknown'


def humanize_method_name(method_name: str) -> str:
    """Turn ``ValidateOrderTotal`` into ``Validate order total``."""
    words = re.sub(r'([A-Z])', r' \1', method_name).replace('_', ' ').strip().lower()
    return words[:1].upper() + words[1:]


def infer_type_from_name(name: str) -> str:
    if name.endswith('Service'):
        return 'Service'
    if name.endswith('Repository'):
        return 'Repository'
    if name.endswith('Event'):
        return 'Event'
    if name.endswith('Command'):
        return 'Command'
    if name.endswith('VO') or name.endswith('ValueObject'):
        return 'ValueObject'
    return 'Entity'


def extract_context(content: str, position: int, radius: int = 100) -> str:
    start = max(0, position - radius)
    end = min(len(content), position + radius)
    return re.sub(r'\s+', ' ', content[start:end]).strip()


def get_line_number(content: str, position: int) -> int:
    return content.count('\n', 0, position) + 1


def extract_conditions(content: str, position: int) -> List[str]:
    window = content[max(0, position - 500):position + 500]
    return [m.group(1).strip() for m in _IF_CONDITION.finditer(window)][:3]


def extract_actions(content: str, position: int) -> List[str]:
    window = content[max(0, position - 500):position + 500]
    actions = [f"Throw {m.group(1)}" for m in _THROW_NEW.finditer(window)]
    if 'return false' in window:
        actions.append('Reject validation')
    if 'return true' in window:
        actions.append('Accept validation')
    return actions[:3]


def rule_id_prefix(file_path: str) -> str:
    return 'BR-' + re.sub(r'[^\w]', '-', file_path)


class LanguageExtractor(ABC):
    """Base class for per-language concept and rule extraction."""

    # (regex, concept type or None to infer from name, confidence)
    concept_patterns: List[Tuple[Pattern, Optional[str], float]] = []

    def extract_concepts(self, content: str, file_path: str) -> List[BusinessConcept]:
        concepts = []
        domain = self.extract_domain(content, file_path)
        for pattern, concept_type, confidence in self.concept_patterns:
            for match in pattern.finditer(content):
                name = match.group(1)
                concepts.append(BusinessConcept(
                    name=name,
                    type=concept_type or infer_type_from_name(name),
                    domain=domain,
                    confidence=confidence,
                    context=extract_context(content, match.start())
                ))
        logger.debug(f"Extracted {len(concepts)} business concepts from {file_path}")
        return concepts

    @abstractmethod
    def extract_domain(self, content: str, file_path: str) -> str:
        """Determine the domain a file's concepts belong to."""
        pass

    @abstractmethod
    def extract_rules(self, content: str, file_path: str) -> List[BusinessRule]:
        """Extract business rules from file content."""
        pass


class CSharpExtractor(LanguageExtractor):
    """DDD conventions for C# sources."""

    concept_patterns = [
        (re.compile(r'public\s+(?:partial\s+)?class\s+(\w+)\s*(?::\s*Entity)?'), 'Entity', 0.85),
        (re.compile(r'public\s+(?:sealed\s+|readonly\s+)?(?:class|struct|record)\s+(\w+)\s*(?::\s*ValueObject)?'),
         'ValueObject', 0.80),
        (re.compile(r'public\s+(?:interface|class)\s+(I?\w*Service)\s*'), 'Service', 0.85),
        (re.compile(r'public\s+interface\s+(I\w*Repository)\s*'), 'Repository', 0.90),
        (re.compile(r'public\s+(?:class|record)\s+(\w+Event)\s*'), 'Event', 0.90),
        (re.compile(r'public\s+(?:class|record)\s+(\w+Command)\s*'), 'Command', 0.90),
    ]

    validation_method = re.compile(
        r'(?:public|private|protected)\s+(?:async\s+)?(?:Task<)?bool\??>?\s+'
        r'(Validate\w+|IsValid\w+|Can\w+|Should\w+|Must\w+)\s*\([^)]*\)'
    )

    def extract_domain(self, content: str, file_path: str) -> str:
        return extract_domain_from_namespace(content)

    def extract_rules(self, content: str, file_path: str) -> List[BusinessRule]:
        rules = []
        domain = self.extract_domain(content, file_path)
        prefix = rule_id_prefix(file_path)

        for pattern in COMMENT_RULE_PATTERNS:
            for match in pattern.finditer(content):
                rules.append(BusinessRule(
                    id=f"{prefix}-{len(rules) + 1}",
                    description=match.group(1).strip(),
                    domain=domain,
                    source_location=f"{file_path}:{get_line_number(content, match.start())}",
                    conditions=extract_conditions(content, match.start()),
                    actions=extract_actions(content, match.start()),
                    confidence=0.75
                ))

        for match in self.validation_method.finditer(content):
            body_end = content.find('}', match.start())
            body = content[match.start():body_end] if body_end != -1 else ''
            rules.append(BusinessRule(
                id=f"{prefix}-{len(rules) + 1}",
                description=humanize_method_name(match.group(1)),
                domain=domain,
                source_location=f"{file_path}:{get_line_number(content, match.start())}",
                conditions=extract_conditions(body, 0) if body else [],
                actions=['Validation', 'Business constraint enforcement'],
                confidence=0.65
            ))

        logger.debug(f"Extracted {len(rules)} business rules from {file_path}")
        return rules


class TypeScriptExtractor(LanguageExtractor):
    """Conventions for TypeScript and JavaScript sources."""

    concept_patterns = [
        (re.compile(r'(?:export\s+)?class\s+(\w+)'), None, 0.70),
        (re.compile(r'(?:export\s+)?interface\s+(\w+)'), 'Entity', 0.65),
    ]

    rule_patterns = COMMENT_RULE_PATTERNS + [
        re.compile(r'(?:async\s+)?(?:function\s+)?(\w*(?:validate|isValid|can|should|must)\w*)\s*\(',
                   re.IGNORECASE),
    ]

    def extract_domain(self, content: str, file_path: str) -> str:
        return extract_domain_from_path(file_path)

    def extract_rules(self, content: str, file_path: str) -> List[BusinessRule]:
        rules = []
        domain = self.extract_domain(content, file_path)
        prefix = rule_id_prefix(file_path)
        method_pattern = self.rule_patterns[-1]

        for pattern in self.rule_patterns:
            for match in pattern.finditer(content):
                if pattern is method_pattern:
                    description = humanize_method_name(match.group(1))
                else:
                    description = match.group(1).strip()
                rules.append(BusinessRule(
                    id=f"{prefix}-{len(rules) + 1}",
                    description=description,
                    domain=domain,
                    source_location=f"{file_path}:{get_line_number(content, match.start())}",
                    confidence=0.60
                ))

        logger.debug(f"Extracted {len(rules)} business rules from {file_path}")
        return rules


class PythonExtractor(LanguageExtractor):
    """Conventions for Python sources."""

    concept_patterns = [
        (re.compile(r'^class\s+(\w+)', re.MULTILINE), None, 0.70),
    ]

    comment_rule = re.compile(r'#\s*(?:Business Rule|BR):\s*(.+)', re.IGNORECASE)
    validation_function = re.compile(
        r'def\s+((?:validate|is_valid|can|should|must)\w*)\s*\(', re.IGNORECASE
    )
    guard_raise = re.compile(r'if\s+(.+?):\s*\n\s*raise\s+(\w+)')

    def extract_domain(self, content: str, file_path: str) -> str:
        return extract_domain_from_path(file_path)

    def extract_rules(self, content: str, file_path: str) -> List[BusinessRule]:
        rules = []
        domain = self.extract_domain(content, file_path)
        prefix = rule_id_prefix(file_path)

        for match in self.comment_rule.finditer(content):
            rules.append(BusinessRule(
                id=f"{prefix}-{len(rules) + 1}",
                description=match.group(1).strip(),
                domain=domain,
                source_location=f"{file_path}:{get_line_number(content, match.start())}",
                confidence=0.75
            ))

        for match in self.validation_function.finditer(content):
            rules.append(BusinessRule(
                id=f"{prefix}-{len(rules) + 1}",
                description=humanize_method_name(match.group(1)),
                domain=domain,
                source_location=f"{file_path}:{get_line_number(content, match.start())}",
                actions=['Validation'],
                confidence=0.60
            ))

        for match in self.guard_raise.finditer(content):
            rules.append(BusinessRule(
                id=f"{prefix}-{len(rules) + 1}",
                description=f"Guard: {match.group(1).strip()}",
                domain=domain,
                source_location=f"{file_path}:{get_line_number(content, match.start())}",
                conditions=[match.group(1).strip()],
                actions=[f"Raise {match.group(2)}"],
                confidence=0.55
            ))

        logger.debug(f"Extracted {len(rules)} business rules from {file_path}")
        return rules


class SemanticAnalysisService:
    """
    Analyzes source files for business semantics.

    Files that cannot be read are logged and skipped; the batch never fails
    because of a single file.
    """

    def __init__(self, max_analysis_time: float = 15.0):
        self.max_analysis_time = max_analysis_time
        self.extractors: Dict[str, LanguageExtractor] = {
            'C#': CSharpExtractor(),
            'TypeScript': TypeScriptExtractor(),
            'JavaScript': TypeScriptExtractor(),
            'Python': PythonExtractor(),
        }

    async def analyze_code_changes(self, file_paths: List[str]) -> List[SemanticAnalysisResult]:
        """Analyze each file in turn, stopping early once the time budget is spent."""
        logger.info(f"Starting semantic analysis for {len(file_paths)} files")
        start_time = time.time()
        loop = asyncio.get_running_loop()
        results = []

        for file_path in file_paths:
            if time.time() - start_time > self.max_analysis_time:
                logger.warning(f"Semantic analysis timeout reached after analyzing {len(results)} files")
                break
            try:
                result = await loop.run_in_executor(None, self.analyze_file, file_path)
                results.append(result)
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to analyze file {file_path}: {e}")

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Semantic analysis completed in {elapsed_ms:.0f}ms for {len(results)} files")
        return results

    def analyze_file(self, file_path: str) -> SemanticAnalysisResult:
        """Analyze a single file. Raises OSError if it cannot be read."""
        start_time = time.time()
        logger.debug(f"Analyzing file: {file_path}")

        content = Path(file_path).read_text(encoding='utf-8')
        return self.analyze_content(content, file_path, start_time)

    def analyze_content(self, content: str, file_path: str,
                        start_time: Optional[float] = None) -> SemanticAnalysisResult:
        start_time = start_time or time.time()
        language = detect_language(file_path)
        extractor = self.extractors.get(language)

        concepts: List[BusinessConcept] = []
        rules: List[BusinessRule] = []
        domain_context = ''
        if extractor:
            concepts = extractor.extract_concepts(content, file_path)
            rules = extractor.extract_rules(content, file_path)
            domain_context = self.determine_domain_context(file_path, concepts)

        return SemanticAnalysisResult(
            file_path=file_path,
            language=language,
            business_concepts=concepts,
            business_rules=rules,
            domain_context=domain_context,
            analysis_time=(time.time() - start_time) * 1000
        )

    @staticmethod
    def determine_domain_context(file_path: str, concepts: List[BusinessConcept]) -> str:
        """Most common known domain among the concepts, else the path's domain."""
        domains = [c.domain for c in concepts if c.domain != 'Unknown']
        if domains:
            return Counter(domains).most_common(1)[0][0]
        return extract_domain_from_path(file_path)
