import json

import pytest

from sacl.tools.index_tool import IndexingTool
from sacl.tools.search_tool import SearchTool


@pytest.fixture
async def tools(make_processor, sample_repo):
    processor = make_processor(sample_repo)
    index_tool = IndexingTool(processor)
    result = await index_tool.analyze_repository()
    assert result["success"] is True
    return index_tool, SearchTool(processor)


async def test_analyze_repository_reports_stats(make_processor, sample_repo):
    result = await IndexingTool(make_processor(sample_repo)).analyze_repository()

    assert result["stats"]["files_processed"] == 3
    assert result["stats"]["failed_files"] == []
    assert result["message"] == "Analyzed 3/3 files, 0 above bias threshold"


async def test_analyze_outside_repository(make_processor, sample_repo):
    result = await IndexingTool(make_processor(sample_repo)).analyze_repository("/etc")

    assert result["success"] is False
    assert "outside repository" in result["error"]


async def test_query_code_results_are_json(tools):
    _, search_tool = tools

    result = await search_tool.query_code("sort records", limit=2, include_code=False)

    assert result["success"] is True
    assert result["total_results"] == 2
    first = result["results"][0]
    assert first["rank"] == 1
    assert "code" not in first
    assert first["file"].endswith("sort.js")
    json.dumps(result)


async def test_query_with_context(tools):
    _, search_tool = tools

    result = await search_tool.query_code_with_context("sort records")

    assert result["success"] is True
    by_file = {item["file"]: item for item in result["results"]}
    app = next(item for path, item in by_file.items() if path.endswith("app.js"))
    assert app["dependency_chain"][0] == app["file"]
    assert app["context_explanation"]["primary_file"] == app["file"]
    assert "code" in app
    json.dumps(result)


async def test_relationship_tools(tools, sample_repo):
    _, search_tool = tools

    related = search_tool.get_relationships("app.js", max_depth=2)
    assert related["success"] is True
    assert related["total_related"] == len(related["related_components"])

    graph = search_tool.get_relationship_graph("app.js", ["imports"], 1)
    assert graph["success"] is True
    assert all(edge["type"] == "imports" for edge in graph["relationship_graph"]["edges"])
    assert graph["relationship_graph"]["edges"][0]["from"] == str(sample_repo / "app.js")
    json.dumps(graph)

    assert search_tool.get_relationships("/etc/passwd")["success"] is False


async def test_file_context_tool(tools):
    _, search_tool = tools

    context = await search_tool.get_file_context("pkg/validate.py")
    assert context["success"] is True
    assert context["language"] == "python"
    json.dumps(context)

    missing = await search_tool.get_file_context("pkg/missing.py")
    assert missing["success"] is False
    assert "File not analyzed" in missing["error"]


async def test_update_tools(tools, sample_repo):
    index_tool, _ = tools

    single = await index_tool.update_file("app.js", "modified")
    assert single["success"] is True
    assert single["change_type"] == "modified"
    assert 0.0 <= single["bias_score"] <= 1.0

    batch = await index_tool.update_files(
        [
            {"file_path": "app.js", "change_type": "modified"},
            {"file_path": "/etc/passwd", "change_type": "deleted"},
        ]
    )
    assert batch["success"] is True
    assert batch["successful_updates"] == 1
    assert [r["success"] for r in batch["results"]] == [True, False]

    mixed = await index_tool.update_files(
        [
            {"file_path": "app.js", "change_type": "modified"},
            {"file_path": "utils/sort.js", "change_type": "renamed"},
        ]
    )
    assert mixed["success"] is True
    assert mixed["successful_updates"] == 1
    assert mixed["failed_updates"] == 1
    assert mixed["results"][1]["message"] == "Unknown change type: renamed"


async def test_bias_and_stats_tools(tools):
    index_tool, _ = tools

    overall = await index_tool.get_bias_analysis()
    assert overall["success"] is True
    assert overall["analysis"]["average_bias_level"] == "Low"

    single = await index_tool.get_bias_analysis("pkg/validate.py")
    indicators = single["analysis"]["file_specific"]["indicators"]
    assert indicators[0]["type"] == "docstring_dependency"
    json.dumps(single)

    missing = await index_tool.get_bias_analysis("pkg/missing.py")
    assert missing["success"] is False

    stats = index_tool.get_system_stats()
    assert stats["success"] is True
    assert stats["stats"]["representations"] == 3
    json.dumps(stats)
