"""Semantic augmentation of code representations.

The augmented embedding blends an embedding of the raw content with an
embedding of a synthetic, name-free description of the code (structural
metrics plus oracle-written functional descriptors). The blend leans on
the description so that sparsely documented code is not penalised for its
missing text.
"""

import logging
import re
from dataclasses import replace
from typing import List, Optional, Tuple

from ..errors import OracleError
from .completions import CompletionProvider
from .embeddings import EmbeddingProvider
from .models import CodeRepresentation, SemanticFeatures

logger = logging.getLogger(__name__)

BASE_WEIGHT = 0.3
SEMANTIC_WEIGHT = 0.7

SIGNATURE_FALLBACK = "Error analyzing function signature"
BEHAVIOR_FALLBACK = "Error analyzing behavior pattern"
EXPLANATION_FALLBACK = "Error generating semantic augmentation explanation"

FEATURE_PROMPT = """Analyze this code and extract semantic features, ignoring variable names and comments:

CODE:
{content}

Provide:
1. Functional signature: What does this code DO functionally (inputs/outputs/transformations)
2. Behavior pattern: What computational pattern does it follow (iteration, recursion, filtering, etc.)

Focus on FUNCTIONALITY, not naming or documentation."""

EXPLANATION_PROMPT = """Explain how this code's semantic understanding has been enhanced:

ORIGINAL FEATURES:
- Docstrings: {docstrings}
- Comments: {comments}
- Identifiers: {identifiers}

SEMANTIC FEATURES:
- Functional Signature: {signature}
- Behavior Pattern: {behavior}
- Bias Score: {bias:.3f}

Provide a concise explanation of how semantic augmentation improves code understanding beyond surface-level text."""

_LIST_PREFIX = re.compile(r"^[\s*#\-]*(?:\d+\.)?[\s*]*")
_LABEL = re.compile(r"^(functional signature|behavior pattern|behaviour pattern)\s*\**\s*:\s*\**\s*", re.I)


def combine_embeddings(base: List[float], semantic: List[float]) -> List[float]:
    """Pointwise ``0.3 * base + 0.7 * semantic``; missing dimensions count as zero."""
    length = max(len(base), len(semantic))
    combined = []
    for i in range(length):
        b = base[i] if i < len(base) else 0.0
        s = semantic[i] if i < len(semantic) else 0.0
        combined.append(b * BASE_WEIGHT + s * SEMANTIC_WEIGHT)
    return combined


def semantic_description(rep: CodeRepresentation, signature: str, behavior: str) -> str:
    """Name-free description of a file, used as the semantic embedding input."""
    struct = rep.structural_features
    return "\n".join(
        [
            f"Computational structure: {struct.complexity} complexity, "
            f"{struct.nesting_depth} nesting levels",
            f"Components: {struct.function_count} functions, {struct.class_count} classes",
            f"AST nodes: {struct.ast_nodes}",
            f"Code patterns: {behavior or 'unknown'}",
            f"Functional signature: {signature or 'unknown'}",
        ]
    )


def _clean_line(line: str) -> str:
    line = _LIST_PREFIX.sub("", line.strip())
    return _LABEL.sub("", line).strip().strip("*").strip()


def parse_semantic_features(response: str) -> Tuple[str, str]:
    """Pick the functional signature and behavior pattern lines out of an oracle answer."""
    lines = [line for line in response.split("\n") if line.strip()]
    signature_index = next(
        (i for i, line in enumerate(lines) if "functional" in line.lower() or "1." in line), None
    )
    behavior = next(
        (
            line for i, line in enumerate(lines)
            if i != signature_index and ("behavior" in line.lower() or "2." in line)
        ),
        None,
    )
    signature = lines[signature_index] if signature_index is not None else None
    return (
        _clean_line(signature) if signature else "Unknown function signature",
        _clean_line(behavior) if behavior else "Unknown behavior pattern",
    )


class SemanticAugmenter:
    """Enriches representations with functional descriptors and an augmented embedding."""

    def __init__(self, embedder: EmbeddingProvider, completer: CompletionProvider):
        """Initialize the augmenter.

        Args:
            embedder: Embedding port
            completer: Completion port
        """
        self.embedder = embedder
        self.completer = completer

    async def _embed(self, text: str, what: str) -> List[float]:
        try:
            return list(await self.embedder.embed(text))
        except OracleError as e:
            logger.warning(f"Error generating {what} embedding: {e}")
            return []

    async def extract_semantic_features(self, rep: CodeRepresentation) -> Tuple[str, str]:
        prompt = FEATURE_PROMPT.format(content=rep.content)
        try:
            response = await self.completer.complete(prompt)
        except OracleError as e:
            logger.warning(f"Error extracting semantic features for {rep.file_path}: {e}")
            return SIGNATURE_FALLBACK, BEHAVIOR_FALLBACK
        return parse_semantic_features(response)

    async def augment(self, rep: CodeRepresentation) -> CodeRepresentation:
        """Return a copy of the representation with semantic features and augmented embedding.

        Oracle failures degrade to placeholder descriptors and empty vectors; this never raises
        an OracleError.
        """
        signature, behavior = await self.extract_semantic_features(rep)
        base_embedding = await self._embed(rep.content, "code")
        semantic_embedding = await self._embed(
            semantic_description(rep, signature, behavior), "semantic"
        )

        return replace(
            rep,
            semantic_features=SemanticFeatures(
                embedding=semantic_embedding,
                functional_signature=signature,
                behavior_pattern=behavior,
            ),
            augmented_embedding=combine_embeddings(base_embedding, semantic_embedding),
        )

    async def embed_query(self, query: str) -> Optional[List[float]]:
        """Embed a search query, or None when the oracle is unavailable."""
        embedding = await self._embed(query, "query")
        return embedding or None

    async def explain_augmentation(
        self, original: CodeRepresentation, augmented: CodeRepresentation
    ) -> str:
        prompt = EXPLANATION_PROMPT.format(
            docstrings=len(original.textual_features.docstrings),
            comments=len(original.textual_features.comments),
            identifiers=len(original.textual_features.identifier_names),
            signature=augmented.semantic_features.functional_signature,
            behavior=augmented.semantic_features.behavior_pattern,
            bias=augmented.bias_score,
        )
        try:
            return await self.completer.complete(prompt)
        except OracleError as e:
            logger.warning(f"Error generating explanation: {e}")
            return EXPLANATION_FALLBACK
