"""Bias-aware reranking of search candidates.

Each candidate is scored on four signals:

- textual: query words present in docstrings, comments, identifiers and content
- semantic: query words (or curated synonyms) present in the functional descriptors
- functional: complexity fit plus behaviour-keyword overlap
- bias: lowers the weight of the textual signal for text-dependent files

With a graph store attached, results also carry related components, a
relationship graph snapshot and a context explanation.
"""

import logging
from typing import Dict, List, Optional

from ..graph_db.graph_store import DEFAULT_MIN_RELEVANCE, GraphStore
from ..indexer.bias_detector import bias_level
from ..indexer.models import (
    CodeRepresentation,
    ContextExplanation,
    EnhancedRetrievalResult,
    RelatedComponent,
    RelationshipGraph,
    RetrievalResult,
)
from .localizer import CodeLocalizer, words

logger = logging.getLogger(__name__)

TEXTUAL_WEIGHT = 0.2
SEMANTIC_WEIGHT = 0.5
FUNCTIONAL_WEIGHT = 0.3
BIAS_DAMPING = 0.5
SEMANTIC_BOOST = 1.2

CONTEXT_DEPTH = 2

SYNONYMS: Dict[str, List[str]] = {
    "sort": ["order", "arrange", "sequence"],
    "search": ["find", "locate", "query", "filter"],
    "transform": ["convert", "change", "modify", "map"],
    "iterate": ["loop", "traverse", "process", "each"],
    "validate": ["check", "verify", "ensure", "test"],
}

COMPLEXITY_KEYWORDS: Dict[str, int] = {
    "simple": 1, "basic": 1, "easy": 1,
    "complex": 5, "advanced": 5, "sophisticated": 5,
    "algorithm": 4, "optimize": 4, "efficient": 4,
    "recursive": 6, "dynamic": 5, "parallel": 6,
}
DEFAULT_COMPLEXITY = 3

BEHAVIOR_KEYWORDS = [
    "iteration", "recursion", "filtering", "mapping", "sorting",
    "searching", "optimization", "validation", "transformation",
]


def textual_similarity(rep: CodeRepresentation, query: str) -> float:
    tokens = words(query)
    if not tokens:
        return 0.0
    textual = rep.textual_features
    surface = " ".join(
        textual.docstrings + textual.comments + textual.identifier_names + [rep.content]
    ).lower()
    return sum(1 for token in tokens if token in surface) / len(tokens)


def _related_by_synonym(token: str, content: str) -> bool:
    for key, synonyms in SYNONYMS.items():
        if token == key and any(synonym in content for synonym in synonyms):
            return True
        if token in synonyms and key in content:
            return True
    return False


def semantic_similarity(rep: CodeRepresentation, query: str) -> float:
    """Query-word coverage of the functional signature and behaviour pattern."""
    tokens = words(query)
    if not tokens:
        return 0.0
    content = " ".join(
        [rep.semantic_features.functional_signature, rep.semantic_features.behavior_pattern]
    ).lower()
    matches = sum(
        1 for token in tokens if token in content or _related_by_synonym(token, content)
    )
    return min(1.0, matches / len(tokens) * SEMANTIC_BOOST)


def estimate_query_complexity(query: str) -> float:
    tokens = words(query)
    if not tokens:
        return float(DEFAULT_COMPLEXITY)
    scores = [COMPLEXITY_KEYWORDS.get(token, DEFAULT_COMPLEXITY) for token in tokens]
    return sum(scores) / len(scores)


def behavior_alignment(query: str, behavior_pattern: str) -> float:
    query_lower = query.lower()
    pattern_lower = behavior_pattern.lower()
    if pattern_lower and query_lower and (
        pattern_lower in query_lower or query_lower in pattern_lower
    ):
        return 1.0

    query_behaviors = [kw for kw in BEHAVIOR_KEYWORDS if kw in query_lower]
    pattern_behaviors = [kw for kw in BEHAVIOR_KEYWORDS if kw in pattern_lower]
    overlap = sum(1 for kw in query_behaviors if kw in pattern_behaviors)
    return overlap / max(len(query_behaviors), len(pattern_behaviors), 1)


def functional_similarity(rep: CodeRepresentation, query: str) -> float:
    query_complexity = estimate_query_complexity(query)
    code_complexity = rep.structural_features.complexity
    complexity_score = 1.0 - abs(query_complexity - code_complexity) / max(
        query_complexity, code_complexity, 1
    )
    behavior_score = behavior_alignment(query, rep.semantic_features.behavior_pattern)
    return complexity_score * 0.4 + behavior_score * 0.6


def combine_scores(textual: float, semantic: float, functional: float, bias: float) -> float:
    """Weighted mean of the three signals; bias shrinks the textual weight."""
    bias_adjustment = 1.0 - bias * BIAS_DAMPING
    textual_weight = TEXTUAL_WEIGHT * bias_adjustment
    total = textual_weight + SEMANTIC_WEIGHT + FUNCTIONAL_WEIGHT
    return (
        textual * textual_weight + semantic * SEMANTIC_WEIGHT + functional * FUNCTIONAL_WEIGHT
    ) / total


def ranking_explanation(
    rep: CodeRepresentation,
    query: str,
    textual: float,
    semantic: float,
    functional: float,
    final: float,
) -> str:
    bias = rep.bias_score
    return "\n".join(
        [
            "SACL Ranking Analysis:",
            f"- Query: \"{query}\"",
            f"- Textual Similarity: {textual * 100:.1f}%",
            f"- Semantic Similarity: {semantic * 100:.1f}%",
            f"- Functional Relevance: {functional * 100:.1f}%",
            f"- Bias Level: {bias_level(bias)} ({bias * 100:.1f}%)",
            f"- Final Score: {final * 100:.1f}%",
            "- Bias Adjustment: "
            + ("Applied - reduced textual weight" if bias > 0.4 else "Minimal"),
            f"- Key Features: {rep.semantic_features.behavior_pattern}",
        ]
    )


def importance(relevance: float) -> str:
    if relevance > 0.8:
        return "high"
    if relevance > 0.5:
        return "medium"
    return "low"


def context_summary(
    rep: CodeRepresentation, related: List[RelatedComponent], query: str
) -> str:
    if not related:
        return f"{rep.file_path} is a standalone component with no significant relationships detected."

    imports = sum(1 for c in related if c.relationship_type == "imports")
    calls = sum(1 for c in related if c.relationship_type == "calls")
    inheritance = sum(1 for c in related if c.relationship_type in ("extends", "implements"))
    return (
        f"{rep.file_path} has {len(related)} related components including {imports} imports, "
        f"{calls} function calls, and {inheritance} inheritance relationships. "
        f"Most relevant for \"{query}\": {related[0].relationship_description}."
    )


def dependency_chain(file_path: str, related: List[RelatedComponent]) -> List[str]:
    """The file followed by its three most relevant import/dependency targets."""
    dependencies = sorted(
        (c for c in related if c.relationship_type in ("imports", "depends_on")),
        key=lambda c: -c.relevance_score,
    )
    chain = [file_path]
    for component in dependencies:
        if len(chain) > 3:
            break
        if component.file_path not in chain:
            chain.append(component.file_path)
    return chain


def context_explanation(
    rep: CodeRepresentation, related: List[RelatedComponent], query: str
) -> ContextExplanation:
    top = related[:3]
    return ContextExplanation(
        primary_file=rep.file_path,
        context_summary=context_summary(rep, top, query),
        key_relationships=[
            {
                "type": c.relationship_type,
                "description": c.relationship_description,
                "importance": importance(c.relevance_score),
            }
            for c in top
        ],
        dependency_chain=dependency_chain(rep.file_path, related),
        suggested_files=[c.file_path for c in top],
    )


def _without_context(result: RetrievalResult) -> EnhancedRetrievalResult:
    path = result.code_snippet.file_path
    return EnhancedRetrievalResult(
        code_snippet=result.code_snippet,
        original_score=result.original_score,
        semantic_score=result.semantic_score,
        bias_adjusted_score=result.bias_adjusted_score,
        localization_regions=result.localization_regions,
        explanation=result.explanation,
        related_components=[],
        relationship_graph=RelationshipGraph(nodes=[], edges=[], primary_node=path, max_depth=0),
        context_explanation=ContextExplanation(
            primary_file=path,
            context_summary="No relationship context available",
            key_relationships=[],
            dependency_chain=[],
            suggested_files=[],
        ),
        dependency_chain=[],
    )


class SACLReranker:
    """Context-aware reranker."""

    def __init__(
        self, graph_store: Optional[GraphStore] = None, localizer: Optional[CodeLocalizer] = None
    ):
        self.graph_store = graph_store
        self.localizer = localizer or CodeLocalizer()

    def score(self, rep: CodeRepresentation, query: str) -> RetrievalResult:
        textual = textual_similarity(rep, query)
        semantic = semantic_similarity(rep, query)
        functional = functional_similarity(rep, query)
        final = combine_scores(textual, semantic, functional, rep.bias_score)
        return RetrievalResult(
            code_snippet=rep,
            original_score=textual,
            semantic_score=semantic,
            bias_adjusted_score=final,
            localization_regions=self.localizer.localize(rep, query),
            explanation=ranking_explanation(rep, query, textual, semantic, functional, final),
        )

    def rerank(
        self, candidates: List[CodeRepresentation], query: str, top_k: int = 10
    ) -> List[RetrievalResult]:
        """Score candidates and return the best ``top_k``; ties keep candidate order."""
        results = [self.score(rep, query) for rep in candidates]
        results.sort(key=lambda r: -r.bias_adjusted_score)
        logger.debug(f"Reranked {len(candidates)} candidates for '{query}'")
        return results[:top_k]

    def rerank_with_context(
        self, candidates: List[CodeRepresentation], query: str, top_k: int = 10
    ) -> List[EnhancedRetrievalResult]:
        """Rerank, then attach graph context to each surviving result."""
        basic = self.rerank(candidates, query, top_k)
        if self.graph_store is None:
            return [_without_context(result) for result in basic]

        enhanced = []
        for result in basic:
            rep = result.code_snippet
            traversal = self.graph_store.traverse_relationships(
                rep.file_path,
                max_depth=CONTEXT_DEPTH,
                min_relevance_score=DEFAULT_MIN_RELEVANCE,
            )
            related = traversal.related_components
            explanation = result.explanation
            if related:
                explanation += (
                    "\n\nRelationship Context:\n"
                    f"- Related Components: {len(related)}\n"
                    "- Key Relationships: "
                    + ", ".join(c.relationship_description for c in related[:3])
                )
            else:
                explanation += "\n\nNo relationship context available"

            enhanced.append(
                EnhancedRetrievalResult(
                    code_snippet=rep,
                    original_score=result.original_score,
                    semantic_score=result.semantic_score,
                    bias_adjusted_score=result.bias_adjusted_score,
                    localization_regions=result.localization_regions,
                    explanation=explanation,
                    related_components=related,
                    relationship_graph=traversal.relationship_graph,
                    context_explanation=context_explanation(rep, related, query),
                    dependency_chain=dependency_chain(rep.file_path, related),
                )
            )
        return enhanced
