"""Heuristic textual and structural feature extraction.

These helpers work on raw text only, so they never fail on malformed
source. They back the regex and generic-pattern extractors, and take over
whenever an AST parse is rejected.
"""

import os
import re
import sys
from typing import Iterable, List, Optional

from .models import StructuralFeatures, TextualFeatures

IDENTIFIER_PATTERN = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")

_WORD_BRANCHES = re.compile(r"\b(if|elif|while|for|switch|case|catch|except)\b")
_LOGICAL_OPERATORS = re.compile(r"&&|\|\|")
_PYTHON_LOGICAL = re.compile(r"\b(and|or)\b")
_TERNARY = re.compile(r"(?<![?])\?(?![.?:])")
_FUNCTION_LINE = re.compile(
    r"^(async\s+def|def|function|async\s+function|func|fn|pub\s+fn|public|private|protected)\b"
)
_CLASS_LINE = re.compile(
    r"^((public|private|protected|abstract|final|static|export|default|pub)\s+)*"
    r"(class|interface|struct|trait)\s+\w+"
)

NODE_BUILTINS = frozenset(
    [
        "assert", "buffer", "child_process", "cluster", "crypto", "dgram", "dns", "events",
        "fs", "fs/promises", "http", "http2", "https", "net", "os", "path", "perf_hooks",
        "process", "querystring", "readline", "stream", "string_decoder", "timers", "tls",
        "tty", "url", "util", "v8", "vm", "worker_threads", "zlib",
    ]
)


def split_lines(content: str) -> List[str]:
    return content.split("\n")


def unique(items: Iterable[str]) -> List[str]:
    """Deduplicate while keeping first-occurrence order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def extract_docstrings(content: str, python_style: bool) -> List[str]:
    """Collect documentation blocks: triple-quoted strings or ``/** */`` blocks."""
    if python_style:
        pattern = re.compile(r"(\"\"\"[\s\S]*?\"\"\"|'''[\s\S]*?''')")
    else:
        pattern = re.compile(r"/\*\*[\s\S]*?\*/")
    return [match.group(0) for match in pattern.finditer(content)]


def extract_comments(content: str, python_style: bool) -> List[str]:
    """Collect line comments and non-documentation block comments."""
    comments = []
    in_block = False
    block: List[str] = []
    for line in split_lines(content):
        trimmed = line.strip()
        if in_block:
            block.append(trimmed)
            if "*/" in trimmed:
                comments.append("\n".join(block))
                block = []
                in_block = False
            continue
        if python_style and trimmed.startswith("#"):
            comments.append(trimmed)
        elif not python_style and trimmed.startswith("//"):
            comments.append(trimmed)
        elif not python_style and trimmed.startswith("/*") and not trimmed.startswith("/**"):
            if "*/" in trimmed:
                comments.append(trimmed)
            else:
                in_block = True
                block = [trimmed]
    if block:
        comments.append("\n".join(block))
    return comments


def heuristic_textual_features(
    content: str, keywords: Iterable[str], python_style: bool = False
) -> TextualFeatures:
    """Textual features from regular expressions alone."""
    keyword_set = {k.lower() for k in keywords}
    identifiers = [
        name
        for name in unique(IDENTIFIER_PATTERN.findall(content))
        if len(name) > 2 and name.lower() not in keyword_set
    ]
    variables = [name for name in identifiers if name[0].islower()]
    return TextualFeatures(
        docstrings=extract_docstrings(content, python_style),
        comments=extract_comments(content, python_style),
        identifier_names=identifiers,
        variable_names=variables,
    )


def _indent_unit(lines: List[str]) -> int:
    widths = []
    for line in lines:
        if not line.strip():
            continue
        expanded = line.replace("\t", "    ")
        width = len(expanded) - len(expanded.lstrip(" "))
        if width > 0:
            widths.append(width)
    return min(widths) if widths else 1


def heuristic_structural_features(content: str, python_style: bool = False) -> StructuralFeatures:
    """Structural features estimated from keywords and indentation."""
    lines = split_lines(content)
    unit = _indent_unit(lines)
    features = StructuralFeatures(ast_nodes=len(lines) * 2 if content else 0)

    for line in lines:
        trimmed = line.strip()
        if not trimmed:
            continue
        expanded = line.replace("\t", "    ")
        depth = (len(expanded) - len(expanded.lstrip(" "))) // unit
        features.nesting_depth = max(features.nesting_depth, depth)

        features.complexity += len(_WORD_BRANCHES.findall(trimmed))
        features.complexity += len(_LOGICAL_OPERATORS.findall(trimmed))
        if python_style:
            features.complexity += len(_PYTHON_LOGICAL.findall(trimmed))
        else:
            features.complexity += len(_TERNARY.findall(trimmed))

        if _FUNCTION_LINE.match(trimmed) and "(" in trimmed:
            features.function_count += 1
        if _CLASS_LINE.match(trimmed):
            features.class_count += 1

    return features


def resolve_relative_path(target: str, current_file: str) -> str:
    """Resolve ``./`` and ``../`` specifiers against the importing file's directory.

    Other specifiers are returned verbatim.
    """
    if target.startswith("./") or target.startswith("../"):
        return os.path.normpath(os.path.join(os.path.dirname(current_file), target))
    return target


def resolve_python_module(module: str, current_file: str) -> Optional[str]:
    """Map a relative Python module (``.mod``, ``..pkg.mod``) to an extensionless path.

    Returns:
        Canonical path for relative modules, None for absolute ones
    """
    if not module.startswith("."):
        return None
    dots = len(module) - len(module.lstrip("."))
    base = os.path.dirname(current_file)
    for _ in range(dots - 1):
        base = os.path.dirname(base)
    remainder = module[dots:]
    if not remainder:
        return os.path.normpath(base)
    return os.path.normpath(os.path.join(base, *remainder.split(".")))


def is_python_builtin(module: str) -> bool:
    return module.split(".")[0] in sys.stdlib_module_names


def is_node_builtin(module: str) -> bool:
    if module.startswith("node:"):
        return True
    return module in NODE_BUILTINS


def query_tokens(query: str) -> List[str]:
    """Lowercased word tokens of a natural-language query, duplicates removed."""
    return unique(re.findall(r"[a-z0-9_]+", query.lower()))
