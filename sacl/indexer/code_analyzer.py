"""Dispatch extraction to the strategy registered for a file's language."""

import logging
from typing import List, Optional

from ..errors import ParseError
from .ast_extractor import JavaScriptASTExtractor, PythonASTExtractor, TypeScriptASTExtractor
from .grammars import (
    CAPABILITY_AST,
    CAPABILITY_GENERIC,
    CAPABILITY_REGEX,
    LanguageConfig,
    LanguageRegistry,
    get_language_registry,
)
from .models import CodeRelationships, StructuralFeatures, TextualFeatures
from .pattern_extractors import (
    GenericPatternExtractor,
    JavaScriptRegexExtractor,
    PythonRegexExtractor,
)
from .relationship_extractors import ExtractionResult, ExtractorRegistry, LanguageExtractor

logger = logging.getLogger(__name__)


class CodeAnalyzer:
    """Extracts textual features, structural features and relationships from source files."""

    def __init__(
        self,
        languages: Optional[LanguageRegistry] = None,
        extractors: Optional[ExtractorRegistry] = None,
    ):
        """Initialize the analyzer.

        Args:
            languages: Language registry (the global one by default)
            extractors: Strategy registry; the built-in strategies are registered when omitted
        """
        self.languages = languages or get_language_registry()
        if extractors is None:
            extractors = ExtractorRegistry()
            extractors.register(f"{CAPABILITY_AST}:python", PythonASTExtractor(self.languages))
            extractors.register(f"{CAPABILITY_AST}:javascript", JavaScriptASTExtractor(self.languages))
            extractors.register(f"{CAPABILITY_AST}:typescript", TypeScriptASTExtractor(self.languages))
            extractors.register(f"{CAPABILITY_AST}:tsx", TypeScriptASTExtractor(self.languages))
            extractors.register(f"{CAPABILITY_REGEX}:python", PythonRegexExtractor())
            extractors.register(f"{CAPABILITY_REGEX}:javascript", JavaScriptRegexExtractor())
            extractors.register(CAPABILITY_GENERIC, GenericPatternExtractor())
        self.extractors = extractors

    def strategy_chain(self, language: LanguageConfig) -> List[LanguageExtractor]:
        """Strategies to try for a language, most precise first."""
        keys = []
        if language.capability == CAPABILITY_AST:
            keys.append(f"{CAPABILITY_AST}:{language.name}")
        if language.fallback:
            keys.append(f"{CAPABILITY_REGEX}:{language.fallback}")
        if language.capability == CAPABILITY_REGEX:
            keys.append(f"{CAPABILITY_REGEX}:{language.name}")
        keys.append(CAPABILITY_GENERIC)

        chain = []
        for key in keys:
            extractor = self.extractors.get(key)
            if extractor is not None and extractor not in chain:
                chain.append(extractor)
        return chain

    def extract(
        self, content: str, file_path: str, language_hint: Optional[str] = None
    ) -> ExtractionResult:
        """Extract features and relationships, falling back until a strategy succeeds.

        Never raises: when every strategy fails the result carries zero-valued features.

        Args:
            content: Raw file content
            file_path: Canonical path of the file
            language_hint: Optional language name overriding extension detection

        Returns:
            Extraction result
        """
        language = self.languages.detect_language(file_path, language_hint)

        for extractor in self.strategy_chain(language):
            try:
                result = extractor.extract(content, file_path, language)
                logger.debug(
                    f"Extracted relationships for {file_path} ({extractor.capability}): "
                    f"{len(result.relationships.imports)} imports, "
                    f"{len(result.relationships.function_calls)} calls"
                )
                return result
            except ParseError as e:
                logger.debug(f"{extractor.capability} extraction rejected {file_path}: {e}")
            except Exception as e:
                logger.warning(f"{extractor.capability} extraction failed for {file_path}: {e}")

        logger.warning(f"All extraction strategies failed for {file_path}, using empty features")
        return ExtractionResult(
            textual=TextualFeatures(),
            structural=StructuralFeatures(),
            relationships=CodeRelationships(file_path=file_path),
            capability="none",
        )

    def language_of(self, file_path: str) -> str:
        return self.languages.detect_language(file_path).name
