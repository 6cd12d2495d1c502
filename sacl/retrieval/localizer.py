"""Localization of the code regions inside a file that answer a query."""

import re
from typing import List

from ..indexer.models import CodeRegion, CodeRepresentation

DEFINITION_PATTERN = re.compile(
    r"^\s*(def|function|class|async|public|private|protected|static|export|fn|func|interface)\s+"
)

MIN_REGION_SCORE = 0.3
MAX_REGIONS = 3
SNIPPET_LENGTH = 200


def words(query: str) -> List[str]:
    """Lowercased whitespace-separated query words."""
    return query.lower().split()


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def find_block_end(lines: List[str], start: int) -> int:
    """Index of the last line of the block opened at ``start``.

    The block ends before the first non-blank line indented no deeper than
    the definition line.
    """
    start_indent = _indent(lines[start])
    for i in range(start + 1, len(lines)):
        if not lines[i].strip():
            continue
        if _indent(lines[i]) <= start_indent:
            return i - 1
    return len(lines) - 1


def score_region(snippet: str, query: str) -> float:
    tokens = words(query)
    if not tokens:
        return 0.0
    lowered = snippet.lower()
    return sum(1 for token in tokens if token in lowered) / len(tokens)


class CodeLocalizer:
    """Finds definition blocks whose text overlaps the query."""

    def localize(self, rep: CodeRepresentation, query: str) -> List[CodeRegion]:
        """Score every definition block and keep the best ones.

        Args:
            rep: Candidate file
            query: Natural-language query

        Returns:
            Up to three regions scoring above 0.3, best first, 1-based line numbers
        """
        lines = rep.content.split("\n")
        regions = []
        for i, line in enumerate(lines):
            if not DEFINITION_PATTERN.match(line):
                continue
            end = find_block_end(lines, i)
            snippet = "\n".join(lines[i : end + 1])
            score = score_region(snippet, query)
            if score > MIN_REGION_SCORE:
                regions.append(
                    CodeRegion(
                        start_line=i + 1,
                        end_line=end + 1,
                        relevance_score=score,
                        snippet=snippet[:SNIPPET_LENGTH]
                        + ("..." if len(snippet) > SNIPPET_LENGTH else ""),
                    )
                )

        regions.sort(key=lambda region: -region.relevance_score)
        return regions[:MAX_REGIONS]
