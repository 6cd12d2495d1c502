"""Language extraction strategies.

Each strategy turns raw file content into textual features, structural
features and typed relationships. Strategies differ by capability (AST,
regex, generic pattern) and are selected per file extension by
``CodeAnalyzer``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from .grammars import LanguageConfig
from .models import (
    CallRelation,
    CallType,
    CodeRelationships,
    DependencyRelation,
    DependencyType,
    ExportRelation,
    ExportType,
    ImportRelation,
    ImportType,
    InheritanceRelation,
    InheritanceType,
    StructuralFeatures,
    TextualFeatures,
)
from .text_features import split_lines, unique

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Output of a single extraction strategy."""

    textual: TextualFeatures
    structural: StructuralFeatures
    relationships: CodeRelationships
    capability: str


class ExtractionState:
    """Mutable accumulator shared by the extraction strategies."""

    def __init__(self, file_path: str, content: str, language: LanguageConfig):
        self.file_path = file_path
        self.content = content
        self.language = language
        self.lines = split_lines(content)
        self.textual = TextualFeatures()
        self.structural = StructuralFeatures()
        self.relationships = CodeRelationships(file_path=file_path)

    def line_text(self, line_number: int) -> str:
        if 1 <= line_number <= len(self.lines):
            return self.lines[line_number - 1].strip()
        return ""

    def add_identifier(self, name: str) -> None:
        if len(name) > 2 and name not in self.language.keywords:
            self.textual.identifier_names.append(name)

    def add_variable(self, name: str) -> None:
        if name and name not in self.language.keywords:
            self.textual.variable_names.append(name)

    def add_import(
        self,
        target: str,
        symbols: List[str],
        import_type: ImportType,
        line_number: int,
        dependency_type: DependencyType,
    ) -> None:
        """Record an import together with the dependency it implies."""
        self.relationships.imports.append(
            ImportRelation(
                from_=self.file_path,
                to=target,
                symbols=symbols,
                import_type=import_type,
                line_number=line_number,
                statement=self.line_text(line_number),
            )
        )
        self.add_dependency(target, dependency_type, symbols or [import_type.value])

    def add_dependency(
        self, target: str, dependency_type: DependencyType, usage: List[str]
    ) -> None:
        self.relationships.dependencies.append(
            DependencyRelation(
                from_=self.file_path, to=target, dependency_type=dependency_type, usage=usage
            )
        )

    def add_export(self, symbol: str, export_type: ExportType, line_number: int) -> None:
        self.relationships.exports.append(
            ExportRelation(
                from_=self.file_path,
                symbol=symbol,
                export_type=export_type,
                line_number=line_number,
                statement=self.line_text(line_number),
            )
        )

    def add_call(
        self,
        name: str,
        call_type: CallType,
        line_number: int,
        context: str,
        obj: Optional[str] = None,
    ) -> None:
        self.relationships.function_calls.append(
            CallRelation(
                from_=self.file_path,
                to=name,
                call_type=call_type,
                line_number=line_number,
                object=obj,
                context=context,
            )
        )

    def add_inheritance(
        self, child: str, parent: str, kind: InheritanceType, line_number: int
    ) -> None:
        self.relationships.class_inheritance.append(
            InheritanceRelation(from_=child, to=parent, type=kind, line_number=line_number)
        )

    def finish(self, capability: str) -> ExtractionResult:
        self.textual.identifier_names = unique(self.textual.identifier_names)
        self.textual.variable_names = unique(self.textual.variable_names)

        seen_exports = set()
        exports = []
        for export in self.relationships.exports:
            if export.symbol not in seen_exports:
                seen_exports.add(export.symbol)
                exports.append(export)
        self.relationships.exports = exports

        self.structural.complexity = max(1, self.structural.complexity)
        return ExtractionResult(
            textual=self.textual,
            structural=self.structural,
            relationships=self.relationships,
            capability=capability,
        )


class LanguageExtractor(ABC):
    """Base class for extraction strategies."""

    capability: str = ""

    @abstractmethod
    def extract(self, content: str, file_path: str, language: LanguageConfig) -> ExtractionResult:
        """Extract features and relationships from file content.

        Args:
            content: Raw file content
            file_path: Canonical path of the file
            language: Detected language configuration

        Returns:
            Extraction result

        Raises:
            ParseError: If this strategy cannot handle the content
        """


class ExtractorRegistry:
    """Registry of extraction strategies keyed by ``capability`` or ``capability:dialect``."""

    def __init__(self):
        self._extractors: Dict[str, LanguageExtractor] = {}

    def register(self, key: str, extractor: LanguageExtractor) -> None:
        """Register an extraction strategy.

        Args:
            key: Capability name, optionally qualified by dialect (``regex:python``)
            extractor: Strategy instance
        """
        self._extractors[key] = extractor

    def get(self, key: str) -> Optional[LanguageExtractor]:
        return self._extractors.get(key)
