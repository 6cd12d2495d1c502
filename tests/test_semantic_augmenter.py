import pytest

from sacl.indexer.models import CodeRepresentation, StructuralFeatures, TextualFeatures
from sacl.indexer.semantic_augmenter import (
    BEHAVIOR_FALLBACK,
    EXPLANATION_FALLBACK,
    SIGNATURE_FALLBACK,
    SemanticAugmenter,
    combine_embeddings,
    parse_semantic_features,
    semantic_description,
)


@pytest.fixture
def rep():
    return CodeRepresentation(
        file_path="/repo/utils/sort.js",
        content="export function sortRecords(items) { return items.slice().sort(); }",
        textual_features=TextualFeatures(identifier_names=["sortRecords", "items"]),
        structural_features=StructuralFeatures(
            ast_nodes=20, complexity=2, nesting_depth=3, function_count=1
        ),
    )


def test_parse_numbered_answer(completer):
    signature, behavior = parse_semantic_features(completer.response)

    assert signature == "takes a list of records and returns them in sorted order"
    assert behavior == "sorting with iteration over the input"


def test_parse_markdown_answer():
    response = (
        "Here is the analysis.\n"
        "**Functional signature:** maps strings to integers\n"
        "**Behavior pattern:** transformation"
    )

    assert parse_semantic_features(response) == ("maps strings to integers", "transformation")


def test_parse_unrecognised_answer():
    assert parse_semantic_features("") == ("Unknown function signature", "Unknown behavior pattern")


def test_combine_embeddings_weights_semantic_side():
    assert combine_embeddings([1.0, 1.0], [0.0, 0.0, 1.0]) == pytest.approx([0.3, 0.3, 0.7])
    assert combine_embeddings([], []) == []


def test_semantic_description_omits_names(rep):
    description = semantic_description(rep, "orders records", "sorting")

    assert "sortRecords" not in description
    assert "3 nesting levels" in description
    assert "Code patterns: sorting" in description


async def test_augment_with_oracle(rep, embedder, completer):
    augmenter = SemanticAugmenter(embedder, completer)

    augmented = await augmenter.augment(rep)

    features = augmented.semantic_features
    assert features.functional_signature.startswith("takes a list of records")
    assert features.behavior_pattern == "sorting with iteration over the input"
    assert features.embedding == embedder.vector
    assert augmented.augmented_embedding == pytest.approx(embedder.vector)
    assert embedder.calls[0] == rep.content
    assert "sortRecords" not in embedder.calls[1]
    assert rep.content in completer.prompts[0]
    assert rep.semantic_features.functional_signature == ""


async def test_augment_degrades_when_oracle_fails(rep, failing_embedder, failing_completer):
    augmenter = SemanticAugmenter(failing_embedder, failing_completer)

    augmented = await augmenter.augment(rep)

    assert augmented.semantic_features.functional_signature == SIGNATURE_FALLBACK
    assert augmented.semantic_features.behavior_pattern == BEHAVIOR_FALLBACK
    assert augmented.semantic_features.embedding == []
    assert augmented.augmented_embedding == []


async def test_embed_query(embedder, completer, failing_embedder):
    assert await SemanticAugmenter(embedder, completer).embed_query("sort") == embedder.vector
    assert await SemanticAugmenter(failing_embedder, completer).embed_query("sort") is None


async def test_explain_augmentation(rep, embedder, completer, failing_completer):
    augmenter = SemanticAugmenter(embedder, completer)
    augmented = await augmenter.augment(rep)

    assert await augmenter.explain_augmentation(rep, augmented) == completer.response
    assert "Identifiers: 2" in completer.prompts[-1]

    failing = SemanticAugmenter(embedder, failing_completer)
    assert await failing.explain_augmentation(rep, augmented) == EXPLANATION_FALLBACK
