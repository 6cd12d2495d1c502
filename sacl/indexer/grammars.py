"""Language detection and tree-sitter grammar loading."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import tree_sitter_javascript as tsjavascript
import tree_sitter_python as tspython
import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Parser

logger = logging.getLogger(__name__)

# Extraction capabilities, in order of preference
CAPABILITY_AST = "ast"
CAPABILITY_REGEX = "regex"
CAPABILITY_GENERIC = "generic"


class LanguageConfig:
    """Configuration for a programming language."""

    def __init__(
        self,
        name: str,
        extensions: List[str],
        capability: str,
        tree_sitter_language: Optional[str] = None,
        fallback: Optional[str] = None,
        keywords: Optional[List[str]] = None,
    ):
        """Initialize language configuration.

        Args:
            name: Language name (python, javascript, etc.)
            extensions: List of file extensions
            capability: Primary extraction capability (ast, regex, generic)
            tree_sitter_language: Tree-sitter grammar identifier, for AST languages
            fallback: Name of the regex dialect used when AST parsing fails
            keywords: Reserved words never reported as identifiers
        """
        self.name = name
        self.extensions = extensions
        self.capability = capability
        self.tree_sitter_language = tree_sitter_language
        self.fallback = fallback
        self.keywords = frozenset(keywords or [])


PYTHON_KEYWORDS = [
    "and", "as", "assert", "async", "await", "break", "class", "continue", "def", "del",
    "elif", "else", "except", "finally", "for", "from", "global", "if", "import", "in",
    "is", "lambda", "nonlocal", "not", "or", "pass", "raise", "return", "try", "while",
    "with", "yield", "None", "True", "False", "self", "cls",
]

JAVASCRIPT_KEYWORDS = [
    "break", "case", "catch", "class", "const", "continue", "debugger", "default", "delete",
    "else", "export", "extends", "finally", "for", "function", "import", "instanceof", "let",
    "new", "return", "super", "switch", "this", "throw", "try", "typeof", "var", "void",
    "while", "with", "yield", "async", "await", "from", "null", "true", "false", "undefined",
]

TYPESCRIPT_KEYWORDS = JAVASCRIPT_KEYWORDS + [
    "interface", "implements", "type", "enum", "namespace", "public", "private",
    "protected", "readonly", "abstract", "declare", "keyof", "string", "number", "boolean",
    "any", "unknown", "never", "void",
]

GENERIC_KEYWORDS = [
    "if", "else", "for", "while", "switch", "case", "break", "continue", "return", "class",
    "struct", "interface", "public", "private", "protected", "static", "void", "int",
    "long", "char", "float", "double", "bool", "boolean", "string", "new", "import",
    "package", "using", "namespace", "include", "func", "fn", "let", "mut", "impl", "use",
    "pub", "const", "var", "true", "false", "null", "nil", "this", "self", "try", "catch",
    "throw", "throws", "extends", "implements", "final", "virtual", "override", "template",
]

_BUILTIN_LANGUAGES = [
    LanguageConfig(
        "python", [".py"], CAPABILITY_AST, "python", fallback="python", keywords=PYTHON_KEYWORDS
    ),
    LanguageConfig(
        "javascript",
        [".js", ".jsx", ".mjs", ".cjs"],
        CAPABILITY_AST,
        "javascript",
        fallback="javascript",
        keywords=JAVASCRIPT_KEYWORDS,
    ),
    LanguageConfig(
        "typescript", [".ts"], CAPABILITY_AST, "typescript", fallback="javascript",
        keywords=TYPESCRIPT_KEYWORDS,
    ),
    LanguageConfig(
        "tsx", [".tsx"], CAPABILITY_AST, "tsx", fallback="javascript",
        keywords=TYPESCRIPT_KEYWORDS,
    ),
    LanguageConfig("java", [".java"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
    LanguageConfig("c", [".c", ".h"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
    LanguageConfig("cpp", [".cpp", ".hpp", ".cc"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
    LanguageConfig("c_sharp", [".cs"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
    LanguageConfig("go", [".go"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
    LanguageConfig("rust", [".rs"], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS),
]

UNKNOWN_LANGUAGE = LanguageConfig("unknown", [], CAPABILITY_GENERIC, keywords=GENERIC_KEYWORDS)


class LanguageRegistry:
    """Registry of language configurations keyed by file extension."""

    LANGUAGE_MODULES = {
        "python": tspython,
        "javascript": tsjavascript,
        "typescript": tstypescript,
        "tsx": tstypescript,
    }

    # Modules that use non-standard language function names
    LANGUAGE_FUNCTION_OVERRIDES = {
        "typescript": "language_typescript",
        "tsx": "language_tsx",
    }

    def __init__(self, languages: Optional[List[LanguageConfig]] = None):
        self.languages: Dict[str, LanguageConfig] = {}
        self.extension_map: Dict[str, str] = {}
        self._parsers: Dict[str, Optional[Parser]] = {}

        for language in languages or _BUILTIN_LANGUAGES:
            self.register(language)

        logger.debug(f"Loaded {len(self.languages)} language configurations")

    def register(self, language: LanguageConfig) -> None:
        self.languages[language.name] = language
        for ext in language.extensions:
            self.extension_map[ext] = language.name

    def detect_language(self, file_path: str, language_hint: Optional[str] = None) -> LanguageConfig:
        """Detect programming language from a hint or the file extension.

        Args:
            file_path: Path to the file
            language_hint: Language name that overrides extension detection

        Returns:
            Language configuration, the generic one when nothing matches
        """
        if language_hint:
            hinted = self.languages.get(language_hint.lower())
            if hinted:
                return hinted

        extension = Path(file_path).suffix.lower()
        name = self.extension_map.get(extension)
        if name:
            return self.languages[name]

        logger.debug(f"Unknown file extension: {extension}")
        return UNKNOWN_LANGUAGE

    def get_parser(self, language: LanguageConfig) -> Optional[Parser]:
        """Get (and lazily build) a tree-sitter parser for a language.

        Returns:
            Parser, or None when the language has no usable grammar
        """
        ts_lang_name = language.tree_sitter_language
        if not ts_lang_name:
            return None
        if ts_lang_name in self._parsers:
            return self._parsers[ts_lang_name]

        parser = None
        try:
            module = self.LANGUAGE_MODULES.get(ts_lang_name)
            if not module:
                logger.warning(f"No module found for language: {ts_lang_name}")
            else:
                lang_func_name = self.LANGUAGE_FUNCTION_OVERRIDES.get(ts_lang_name, "language")
                lang_func = getattr(module, lang_func_name, None)
                if not lang_func:
                    logger.warning(f"Module {ts_lang_name} has no function '{lang_func_name}'")
                else:
                    parser = Parser()
                    parser.language = Language(lang_func())
                    logger.debug(f"Initialized parser for {ts_lang_name}")
        except Exception as e:
            logger.error(f"Error initializing language {ts_lang_name}: {e}")
            parser = None

        self._parsers[ts_lang_name] = parser
        return parser


# Global registry instance
_registry: Optional[LanguageRegistry] = None


def get_language_registry() -> LanguageRegistry:
    """Get the global language registry instance."""
    global _registry
    if _registry is None:
        _registry = LanguageRegistry()
    return _registry
