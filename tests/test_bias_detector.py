import pytest

from sacl.indexer.bias_detector import (
    BiasDetector,
    bias_level,
    identifier_complexity,
    structural_similarity,
)
from sacl.indexer.code_analyzer import CodeAnalyzer
from sacl.indexer.models import CodeRepresentation, StructuralFeatures, TextualFeatures


def make_rep(content, textual=None, structural=None):
    return CodeRepresentation(
        file_path="/repo/sample.py",
        content=content,
        textual_features=textual or TextualFeatures(),
        structural_features=structural or StructuralFeatures(),
    )


@pytest.fixture
def detector():
    return BiasDetector()


def test_docstring_dependency_severity_matches_ratio(detector):
    docstring = '"""' + "d" * 28 + '"""'
    lines = [docstring] + ["value = 1"] * 19
    content = "\n".join(lines)
    rep = make_rep(content, TextualFeatures(docstrings=[docstring]))

    indicators = {indicator.type: indicator for indicator in detector.get_indicators(rep)}

    assert len(lines) == 20
    indicator = indicators["docstring_dependency"]
    assert indicator.severity == pytest.approx(0.15, abs=0.01)
    assert indicator.severity == pytest.approx(len(docstring) / len(content))
    assert indicator.location.start_line == 1
    assert indicator.location.end_line == 10
    assert "15.2% of code" in indicator.description


def test_small_docstring_is_not_flagged(detector):
    docstring = '"""x"""'
    content = docstring + "\n" + "\n".join(["value = compute(1)"] * 20)
    rep = make_rep(content, TextualFeatures(docstrings=[docstring]))

    assert detector.get_indicators(rep) == []


def test_descriptive_identifiers_are_flagged(detector):
    textual = TextualFeatures(identifier_names=["processUserRecords", "validate_email_address"])
    rep = make_rep("x = 1\n", textual)

    [indicator] = detector.get_indicators(rep)
    assert indicator.type == "identifier_name_bias"
    assert indicator.severity == pytest.approx(1.0)


def test_comment_over_reliance_collects_comment_lines(detector):
    content = "# sort the records by key\n# then return a copy\nx = 1\n"
    textual = TextualFeatures(comments=["# sort the records by key", "# then return a copy"])

    [indicator] = detector.get_indicators(make_rep(content, textual))
    assert indicator.type == "comment_over_reliance"
    assert indicator.location.snippet == "# sort the records by key\n# then return a copy"
    assert 0 < indicator.severity <= 1


def test_empty_content_has_no_indicators(detector):
    assert detector.get_indicators(make_rep("")) == []


def test_structural_similarity_averages_metrics():
    first = StructuralFeatures(complexity=4, nesting_depth=2, function_count=1, class_count=0)
    second = StructuralFeatures(complexity=2, nesting_depth=2, function_count=1, class_count=0)

    assert structural_similarity(first, second) == pytest.approx(0.875)
    assert structural_similarity(first, first) == pytest.approx(1.0)


def test_identifier_complexity():
    assert identifier_complexity([]) == 0.0
    assert identifier_complexity(["a", "b"]) == pytest.approx(0.025)
    assert identifier_complexity(["x" * 40]) == 1.5


@pytest.mark.parametrize(
    "score,level",
    [(0.95, "High"), (0.71, "High"), (0.7, "Medium"), (0.41, "Medium"), (0.4, "Low"), (0.0, "Low")],
)
def test_bias_level(score, level):
    assert bias_level(score) == level


def test_mask_replaces_textual_surface_only(detector):
    textual = TextualFeatures(
        docstrings=['"""doc"""'],
        comments=["# note"],
        identifier_names=["sortRecords", "items"],
        variable_names=["items"],
    )
    structural = StructuralFeatures(ast_nodes=12, complexity=3, nesting_depth=2, function_count=1)
    rep = make_rep("def sortRecords(items): ...", textual, structural)

    masked = detector.mask(rep)

    assert masked.textual_features.docstrings == []
    assert masked.textual_features.comments == []
    assert masked.textual_features.identifier_names == ["masked_id", "masked_id"]
    assert masked.textual_features.variable_names == ["var_x"]
    assert masked.structural_features == structural
    assert rep.textual_features.identifier_names == ["sortRecords", "items"]


def test_bias_score_is_bounded_for_real_files(detector, sample_repo):
    analyzer = CodeAnalyzer()
    for path in sorted(sample_repo.rglob("*.*")):
        content = path.read_text()
        result = analyzer.extract(content, str(path))
        rep = make_rep(content, result.textual, result.structural)

        assert 0.0 <= detector.detect_bias(rep) <= 1.0
