import os

import pytest

from sacl.config import SACLConfig
from sacl.errors import PathValidationError, StorageError
from sacl.graph_db.graph_store import GraphStore
from sacl.graph_db.memory_backend import InMemoryGraphBackend
from sacl.indexer.models import CodeRepresentation
from sacl.indexer.semantic_augmenter import SIGNATURE_FALLBACK
from sacl.processor import FileState, RepresentationCache, SACLProcessor


class BrokenBackend(InMemoryGraphBackend):
    def upsert_representation(self, namespace, rep):
        raise StorageError("database unavailable")


async def test_process_repository(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    stats = await processor.process_repository()

    assert stats.total_files == 3
    assert stats.files_processed == 3
    assert stats.failed_files == []
    assert stats.processing_time >= 0
    assert 0.0 <= stats.average_bias_score <= 1.0

    stored = [rep.file_path for rep in processor.graph_store.list_all()]
    assert stored == sorted(
        str(sample_repo / name) for name in ("app.js", "pkg/validate.py", "utils/sort.js")
    )
    assert all("node_modules" not in path for path in stored)
    assert set(processor.file_states.values()) == {FileState.STORED}


async def test_import_edges_resolve_to_files(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()
    app = str(sample_repo / "app.js")
    sort = str(sample_repo / "utils" / "sort.js")

    related = processor.get_related_components(app)

    assert related["primary_file"] == app
    by_path = {c.file_path: c for c in related["related_components"]}
    assert by_path[sort].relevance_score == 1.0
    assert by_path[sort].component_type == "file"
    assert "fs" in by_path

    callers = processor.get_related_components(sort, max_depth=1)["related_components"]
    assert app in {c.file_path for c in callers}


async def test_relationship_graph_uses_code_edges(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()

    result = processor.get_relationship_graph("app.js")

    edge_types = {edge.type for edge in result.relationship_graph.edges}
    assert edge_types <= {"imports", "exports", "calls", "extends", "implements"}
    assert "imports" in edge_types
    assert result.start_node == str(sample_repo / "app.js")


async def test_process_subdirectory(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    stats = await processor.process_repository(str(sample_repo / "utils"))

    assert stats.total_files == 1
    with pytest.raises(PathValidationError):
        await processor.process_repository("/etc")


async def test_query_code(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()

    results = await processor.query_code("sort records", max_results=2)

    assert len(results) == 2
    scores = [r.bias_adjusted_score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= score <= 1.0 for score in scores)
    top = results[0]
    assert top.code_snippet.file_path.endswith("sort.js")
    assert top.explanation.startswith("SACL Ranking Analysis:")


async def test_query_is_deterministic(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()

    first = await processor.query_code_with_context("sort records")
    second = await processor.query_code_with_context("sort records")

    assert [(r.code_snippet.file_path, r.bias_adjusted_score) for r in first] == [
        (r.code_snippet.file_path, r.bias_adjusted_score) for r in second
    ]
    assert first[0].context_explanation is not None


async def test_query_on_empty_store(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    assert await processor.query_code("sort") == []
    assert await processor.query_code_with_context("sort") == []


async def test_oracle_failure_degrades(make_processor, sample_repo, failing_embedder, failing_completer):
    processor = make_processor(sample_repo, embedder=failing_embedder, completer=failing_completer)

    stats = await processor.process_repository()

    assert stats.files_processed == 3
    rep = processor.graph_store.get(str(sample_repo / "utils" / "sort.js"))
    assert rep.semantic_features.functional_signature == SIGNATURE_FALLBACK
    assert rep.augmented_embedding == []

    results = await processor.query_code("sortRecords")
    assert [r.code_snippet.file_path for r in results][:1] == [rep.file_path]


async def test_update_rejects_paths_outside_repository(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()
    before = processor.get_system_stats()["representations"]

    result = await processor.update_file("/etc/passwd", "modified")

    assert result["success"] is False
    assert "outside repository" in result["message"]
    assert processor.get_system_stats()["representations"] == before
    with pytest.raises(PathValidationError):
        processor.get_related_components("../outside.js")


async def test_update_created_and_deleted(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()
    sort = sample_repo / "utils" / "sort.js"

    created = sample_repo / "utils" / "search.js"
    created.write_text("export function find(items, key) {\n  return items.filter(x => x === key);\n}\n")
    result = await processor.update_file("utils/search.js", "created")
    assert result["success"] is True
    assert "Bias score" in result["message"]
    assert result["bias_score"] == processor.graph_store.get(str(created)).bias_score
    assert processor.graph_store.get(str(created)) is not None

    os.remove(sort)
    result = await processor.update_file(str(sort), "deleted")

    assert result["success"] is True
    assert "bias_score" not in result
    assert processor.get_related_components(str(sort))["related_components"] == []
    assert str(sort) not in [r.file_path for r in processor.graph_store.search("sort records")]
    assert str(sort) not in processor.file_states


async def test_update_missing_file_fails(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    result = await processor.update_file("missing.py", "modified")

    assert result["success"] is False
    assert processor.file_states[str(sample_repo / "missing.py")] == FileState.UNPROCESSED


async def test_update_unknown_change_type(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    result = await processor.update_file("app.js", "renamed")

    assert result == {"success": False, "message": "Unknown change type: renamed"}


async def test_batch_update_keeps_input_order(make_processor, sample_repo):
    processor = make_processor(sample_repo, max_concurrent=2)
    items = [
        {"file_path": "utils/sort.js", "change_type": "modified"},
        {"file_path": "/etc/passwd", "change_type": "modified"},
        {"file_path": "app.js", "change_type": "modified"},
        {"file_path": "app.js", "change_type": "renamed"},
        {"file_path": "pkg/validate.py", "change_type": "created"},
    ]

    summary = await processor.update_files(items)

    assert [r["file_path"] for r in summary["results"]] == [item["file_path"] for item in items]
    assert [r["success"] for r in summary["results"]] == [True, False, True, False, True]
    assert summary["total_files"] == 5
    assert summary["successful_updates"] == 3
    assert summary["failed_updates"] == 2


async def test_batch_update_reports_malformed_items(make_processor, sample_repo):
    processor = make_processor(sample_repo)

    summary = await processor.update_files(
        [
            {"file_path": "app.js", "change_type": "modified"},
            {"change_type": "deleted"},
            {"file_path": "utils/sort.js"},
        ]
    )

    assert [r["success"] for r in summary["results"]] == [True, False, False]
    assert summary["results"][1] == {
        "file_path": None, "success": False, "message": "Missing file_path",
    }
    assert summary["results"][2]["message"] == "Unknown change type: "
    assert summary["successful_updates"] == 1
    assert summary["failed_updates"] == 2
    assert processor.graph_store.get(str(sample_repo / "app.js")) is not None


async def test_symlink_outside_repository_is_never_indexed(make_processor, sample_repo, tmp_path):
    secret = tmp_path / "secret.py"
    secret.write_text("API_TOKEN = \"abc\"\n")
    (sample_repo / "link.py").symlink_to(secret)
    processor = make_processor(sample_repo)

    result = await processor.update_file("link.py", "created")
    assert result["success"] is False
    assert "outside repository" in result["message"]

    stats = await processor.process_repository()
    assert stats.total_files == 3
    assert str(sample_repo / "link.py") not in [rep.file_path for rep in processor.graph_store.list_all()]


async def test_shared_external_import_does_not_relate_files(make_processor, write_repo, tmp_path):
    repo = write_repo(
        tmp_path / "service",
        {
            "a.py": "import os\n\n\ndef main():\n    return os.getcwd()\n",
            "b.py": "import os\n\n\ndef other():\n    return os.sep\n",
        },
    )
    processor = make_processor(repo)
    await processor.process_repository()
    a = str(repo / "a.py")

    related = processor.get_related_components(a)["related_components"]

    assert str(repo / "b.py") not in {c.file_path for c in related}
    assert ("os", "module") in {(c.component_name, c.component_type) for c in related}
    assert all(c.component_type != "file" for c in related if c.file_path == a)


async def test_storage_errors_propagate(sample_repo, augmenter):
    store = GraphStore(BrokenBackend(), namespace="test")
    processor = SACLProcessor(SACLConfig(repo_path=str(sample_repo)), store, augmenter)

    with pytest.raises(StorageError):
        await processor.process_repository()

    result = await processor.update_file("app.js", "modified")
    assert result["success"] is False
    assert "database unavailable" in result["message"]


async def test_bias_analysis_and_file_context(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()
    validate = str(sample_repo / "pkg" / "validate.py")

    overall = await processor.get_bias_analysis()
    assert overall["total_files"] == 3

    analysis = await processor.get_bias_analysis("pkg/validate.py")
    assert analysis["file_path"] == validate
    indicator_types = [i.type for i in analysis["file_specific"]["indicators"]]
    assert "docstring_dependency" in indicator_types

    context = await processor.get_file_context("app.js")
    assert context["found"] is True
    assert context["language"] == "javascript"
    assert context["relationship_counts"]["imports"] == 2
    assert context["context_explanation"].primary_file == str(sample_repo / "app.js")

    assert (await processor.get_file_context("nothing.js"))["found"] is False


async def test_system_stats_and_cleanup(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    await processor.process_repository()

    stats = processor.get_system_stats()
    assert stats["representations"] == 3
    assert stats["cache"] == {"size": 3, "enabled": True}
    assert stats["file_states"]["stored"] == 3
    assert stats["config"]["namespace"] == "test"

    await processor.cleanup()
    assert processor.get_system_stats()["cache"]["size"] == 0


async def test_disabled_cache(make_processor, sample_repo):
    processor = make_processor(sample_repo, cache_enabled=False)
    await processor.process_repository()

    assert len(processor.cache) == 0
    assert (await processor.get_file_context("app.js"))["found"] is True


async def test_representation_cache():
    cache = RepresentationCache()
    rep = CodeRepresentation(file_path="/w/a.py", content="x = 1")

    await cache.put(rep)
    assert await cache.get("/w/a.py") is rep
    assert len(cache) == 1

    await cache.remove("/w/a.py")
    assert await cache.get("/w/a.py") is None

    disabled = RepresentationCache(enabled=False)
    await disabled.put(rep)
    assert await disabled.get("/w/a.py") is None
    assert len(disabled) == 0
