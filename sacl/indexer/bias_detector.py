"""Textual bias detection.

A file is scored by masking its textual surface (docstrings, comments,
identifier and variable names) and comparing the structural signature of
the original with that of the masked copy. Indicators flag the specific
surface signals a naive retriever would over-weight.
"""

import logging
from dataclasses import replace
from typing import List

from .models import BiasIndicator, CodeRegion, CodeRepresentation, StructuralFeatures, TextualFeatures

logger = logging.getLogger(__name__)

MASKED_IDENTIFIER = "masked_id"
MASKED_VARIABLE = "var_x"

DOCSTRING_RATIO_THRESHOLD = 0.1
COMMENT_RATIO_THRESHOLD = 0.15
IDENTIFIER_COMPLEXITY_THRESHOLD = 0.7


def bias_level(score: float) -> str:
    if score > 0.7:
        return "High"
    if score > 0.4:
        return "Medium"
    return "Low"


def _metric_similarity(a: int, b: int) -> float:
    return 1 - abs(a - b) / max(a, b, 1)


def structural_similarity(first: StructuralFeatures, second: StructuralFeatures) -> float:
    """Average per-metric similarity over complexity, nesting, function and class counts."""
    similarities = [
        _metric_similarity(first.complexity, second.complexity),
        _metric_similarity(first.nesting_depth, second.nesting_depth),
        _metric_similarity(first.function_count, second.function_count),
        _metric_similarity(first.class_count, second.class_count),
    ]
    return sum(similarities) / len(similarities)


def identifier_complexity(identifiers: List[str]) -> float:
    """How descriptive the identifiers are: mean length and share of compound names."""
    if not identifiers:
        return 0.0
    avg_length = sum(len(name) for name in identifiers) / len(identifiers)
    descriptive = [
        name for name in identifiers
        if "_" in name or any(ch.isupper() for ch in name) or len(name) > 8
    ]
    return (avg_length / 20 + len(descriptive) / len(identifiers)) / 2


class BiasDetector:
    """Scores how much a file's retrievability depends on its textual surface."""

    def mask(self, rep: CodeRepresentation) -> CodeRepresentation:
        """Copy of the representation with its textual surface masked."""
        textual = rep.textual_features
        return replace(
            rep,
            textual_features=TextualFeatures(
                docstrings=[],
                comments=[],
                identifier_names=[MASKED_IDENTIFIER for _ in textual.identifier_names],
                variable_names=[MASKED_VARIABLE for _ in textual.variable_names],
            ),
            structural_features=replace(rep.structural_features),
        )

    def detect_bias(self, rep: CodeRepresentation) -> float:
        """Bias score in [0, 1]; higher means structure diverges more once text is masked."""
        masked = self.mask(rep)
        similarity = structural_similarity(rep.structural_features, masked.structural_features)
        score = max(0.0, min(1.0, 1.0 - similarity))
        logger.debug(f"Bias score for {rep.file_path}: {score:.3f}")
        return score

    def get_indicators(self, rep: CodeRepresentation) -> List[BiasIndicator]:
        """Discrete signals of textual over-reliance.

        Args:
            rep: Extracted code representation

        Returns:
            Indicators for docstring dependency, descriptive identifier names and
            comment over-reliance, each only when its threshold is exceeded
        """
        indicators = []
        content_length = len(rep.content)
        lines = rep.content.split("\n")
        textual = rep.textual_features

        docstring_ratio = (
            len("".join(textual.docstrings)) / content_length if content_length else 0.0
        )
        if textual.docstrings and docstring_ratio > DOCSTRING_RATIO_THRESHOLD:
            indicators.append(
                BiasIndicator(
                    type="docstring_dependency",
                    severity=min(1.0, docstring_ratio),
                    location=CodeRegion(
                        start_line=1,
                        end_line=min(10, len(lines)),
                        relevance_score=0.9,
                        snippet="\n".join(lines[:10]),
                    ),
                    description=(
                        f"High docstring dependency detected ({docstring_ratio * 100:.1f}% of code)"
                    ),
                )
            )

        complexity = identifier_complexity(textual.identifier_names)
        if complexity > IDENTIFIER_COMPLEXITY_THRESHOLD:
            indicators.append(
                BiasIndicator(
                    type="identifier_name_bias",
                    severity=min(1.0, complexity),
                    location=CodeRegion(
                        start_line=1, end_line=len(lines), relevance_score=0.8, snippet=""
                    ),
                    description="High reliance on descriptive identifier names detected",
                )
            )

        comment_ratio = len("".join(textual.comments)) / content_length if content_length else 0.0
        if comment_ratio > COMMENT_RATIO_THRESHOLD:
            comment_lines = [
                line for line in lines
                if line.strip().startswith("#") or line.strip().startswith("//")
            ]
            indicators.append(
                BiasIndicator(
                    type="comment_over_reliance",
                    severity=min(1.0, comment_ratio),
                    location=CodeRegion(
                        start_line=1,
                        end_line=len(lines),
                        relevance_score=0.7,
                        snippet="\n".join(comment_lines),
                    ),
                    description=(
                        f"Excessive reliance on comments detected ({comment_ratio * 100:.1f}% of code)"
                    ),
                )
            )

        return indicators
