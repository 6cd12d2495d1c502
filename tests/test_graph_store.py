import pytest

from sacl.errors import StorageError
from sacl.indexer.models import (
    CallRelation,
    CallType,
    CodeRelationships,
    CodeRepresentation,
    DependencyRelation,
    DependencyType,
    ExportRelation,
    ExportType,
    ImportRelation,
    ImportType,
    InheritanceRelation,
    InheritanceType,
    SemanticFeatures,
)
from sacl.graph_db.graph_store import GraphStore, cosine_similarity, split_node_id


def rep_for(path, content="", bias=0.0, embedding=None, relationships=None):
    return CodeRepresentation(
        file_path=path,
        content=content,
        bias_score=bias,
        augmented_embedding=list(embedding or []),
        relationships=relationships,
    )


def chain(store, paths, relationship_type="imports", weight=None):
    details = {"weight": weight} if weight is not None else None
    for source, target in zip(paths, paths[1:]):
        store.store_relationship(source, target, relationship_type, details)


class TestTraversal:
    def test_distance_decay_and_depth_limit(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js", "/w/c.js", "/w/d.js"])

        related = graph_store.get_related_components("/w/a.js", max_depth=2, min_relevance_score=0)

        scores = {c.file_path: (c.relevance_score, c.distance) for c in related}
        assert scores == {"/w/b.js": (1.0, 1), "/w/c.js": (0.5, 2)}

    def test_custom_edge_weight(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js", "/w/c.js"], weight=0.8)

        related = graph_store.get_related_components("/w/a.js", max_depth=2, min_relevance_score=0)

        assert [(c.file_path, c.relevance_score) for c in related] == [
            ("/w/b.js", pytest.approx(0.8)),
            ("/w/c.js", pytest.approx(0.4)),
        ]

    def test_weight_override_by_type(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js"])

        [component] = graph_store.get_related_components(
            "/w/a.js", weights={"imports": 0.5}, min_relevance_score=0
        )
        assert component.relevance_score == pytest.approx(0.5)

    def test_min_relevance_filters_distant_components(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js", "/w/c.js", "/w/d.js"], "depends_on")

        related = graph_store.get_related_components("/w/a.js")

        assert [(c.file_path, c.distance) for c in related] == [("/w/b.js", 1), ("/w/c.js", 2)]
        assert related[1].relevance_score == pytest.approx(0.3)

    def test_reverse_edges(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js"])

        [component] = graph_store.get_related_components("/w/b.js")
        assert component.file_path == "/w/a.js"
        assert component.relationship_description == "a.js imports b.js"

        assert graph_store.get_related_components("/w/b.js", include_reverse=False) == []

    def test_external_modules_are_not_expanded(self, graph_store):
        graph_store.store_relationship("/w/a.py", "os", "imports")
        graph_store.store_relationship("/w/b.py", "os", "imports")
        graph_store.store_relationship("/w/a.py", "/w/a.py#main", "exports")

        related = graph_store.get_related_components("/w/a.py", min_relevance_score=0)

        assert [(c.file_path, c.component_name, c.component_type) for c in related] == [
            ("os", "os", "module"),
            ("/w/a.py", "main", "function"),
        ]

    def test_cycles_visit_each_node_once(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js", "/w/c.js", "/w/a.js"])

        result = graph_store.traverse_relationships("/w/a.js", max_depth=10)

        assert result.traversal_stats.nodes_visited == 3
        assert {c.file_path for c in result.related_components} == {"/w/b.js", "/w/c.js"}
        assert all(c.distance == 1 for c in result.related_components)

    def test_type_filter(self, graph_store):
        graph_store.store_relationship("/w/a.js", "/w/b.js", "imports")
        graph_store.store_relationship("/w/a.js", "/w/c.js", "calls")

        related = graph_store.get_related_components("/w/a.js", relationship_types=["calls"])

        assert [c.file_path for c in related] == ["/w/c.js"]

    def test_graph_snapshot(self, graph_store):
        chain(graph_store, ["/w/a.js", "/w/b.js", "/w/c.js"])

        graph = graph_store.traverse_relationships("/w/a.js", max_depth=1).relationship_graph

        assert graph.primary_node == "/w/a.js"
        assert [node.id for node in graph.nodes] == ["/w/a.js", "/w/b.js"]
        assert [(edge.from_, edge.to) for edge in graph.edges] == [("/w/a.js", "/w/b.js")]

    def test_unknown_start_node(self, graph_store):
        result = graph_store.traverse_relationships("/w/missing.js")

        assert result.related_components == []
        assert result.traversal_stats.nodes_visited == 1

    def test_unknown_relationship_type(self, graph_store):
        with pytest.raises(StorageError):
            graph_store.store_relationship("/w/a.js", "/w/b.js", "owns")


def test_store_file_relationships(graph_store):
    path = "/repo/src/app.js"
    rels = CodeRelationships(
        file_path=path,
        imports=[ImportRelation(path, "/repo/src/lib", ["helper", "Base"], ImportType.NAMED, 1)],
        exports=[ExportRelation(path, "App", ExportType.DEFAULT, 5)],
        function_calls=[
            CallRelation(path, "helper", CallType.DIRECT, 6),
            CallRelation(path, "log", CallType.METHOD, 7, object="console"),
        ],
        class_inheritance=[InheritanceRelation("App", "Base", InheritanceType.EXTENDS, 5)],
        dependencies=[
            DependencyRelation(path, "/repo/src/lib", DependencyType.LOCAL, ["helper"]),
            DependencyRelation(path, "react", DependencyType.NPM, ["default"]),
        ],
    )
    rep = rep_for(path, relationships=rels)
    graph_store.upsert(rep)

    def resolve(target):
        return target + ".js" if target.startswith("/") else target

    assert graph_store.store_file_relationships(rep, resolve) == 6
    # Storing again replaces the file's outgoing edges
    assert graph_store.store_file_relationships(rep, resolve) == 6

    stats = graph_store.get_stats()
    assert stats["edges"] == 6
    assert stats["edges_by_type"] == {
        "imports": 1, "exports": 1, "calls": 1, "extends": 1, "depends_on": 2,
    }

    related = {
        (c.file_path, c.component_name, c.relationship_type): c
        for c in graph_store.get_related_components(path, max_depth=1, min_relevance_score=0)
    }
    assert related[("/repo/src/lib.js", "lib.js", "imports")].relevance_score == 1.0
    assert related[("/repo/src/app.js", "App", "exports")].component_type == "class"
    assert related[("react", "react", "depends_on")].relevance_score == pytest.approx(0.4)


def test_delete_removes_edges_and_search_results(graph_store):
    graph_store.upsert(rep_for("/w/a.js", "sort records"))
    graph_store.upsert(rep_for("/w/b.js", "sort records quickly"))
    chain(graph_store, ["/w/a.js", "/w/b.js"])
    graph_store.store_relationship("/w/b.js", "/w/b.js#quickSort", "exports")

    assert graph_store.delete("/w/b.js") is True

    assert graph_store.get("/w/b.js") is None
    assert graph_store.get_related_components("/w/a.js") == []
    assert graph_store.get_related_components("/w/b.js") == []
    assert [rep.file_path for rep in graph_store.search("sort")] == ["/w/a.js"]
    assert graph_store.get_stats()["edges"] == 0
    assert graph_store.delete("/w/b.js") is False


class TestSearch:
    def test_lexical_ranking(self, graph_store):
        graph_store.upsert(rep_for("/w/both.js", "function sort(records) {}"))
        graph_store.upsert(rep_for("/w/one.js", "function sort(items) {}"))
        graph_store.upsert(rep_for("/w/none.js", "function noop() {}"))

        results = graph_store.search("Sort records")

        assert [rep.file_path for rep in results] == ["/w/both.js", "/w/one.js"]

    def test_semantic_half_reorders(self, graph_store):
        graph_store.upsert(rep_for("/w/a.js", "sort", embedding=[0.0, 1.0]))
        graph_store.upsert(rep_for("/w/b.js", "sort", embedding=[1.0, 0.0]))

        results = graph_store.search("sort", query_vector=[1.0, 0.0])

        assert [rep.file_path for rep in results] == ["/w/b.js", "/w/a.js"]

    def test_semantic_features_are_searchable(self, graph_store):
        rep = rep_for("/w/a.py", "def f(xs): return sorted(xs)")
        rep.semantic_features = SemanticFeatures(behavior_pattern="ordering of values")
        graph_store.upsert(rep)

        assert [r.file_path for r in graph_store.search("ordering")] == ["/w/a.py"]

    def test_limit_and_empty_store(self, graph_store):
        assert graph_store.search("anything") == []
        for name in "abc":
            graph_store.upsert(rep_for(f"/w/{name}.js", "sort"))

        assert [rep.file_path for rep in graph_store.search("sort", limit=2)] == [
            "/w/a.js",
            "/w/b.js",
        ]
        assert graph_store.search("sort", limit=0) == []


def test_namespaces_are_isolated(graph_store):
    other = GraphStore(graph_store.backend, namespace="other")
    graph_store.upsert(rep_for("/w/a.js", "sort"))

    assert other.list_all() == []
    graph_store.clear_namespace()
    assert graph_store.list_all() == []


def test_bias_metrics(graph_store):
    graph_store.upsert(rep_for("/w/high.js", bias=0.9))
    graph_store.upsert(rep_for("/w/medium.js", bias=0.5))
    graph_store.upsert(rep_for("/w/low.js", bias=0.1))

    metrics = graph_store.get_bias_metrics()

    assert metrics["total_files"] == 3
    assert metrics["average_bias"] == pytest.approx(0.5)
    assert metrics["bias_distribution"] == {"low": 1, "medium": 1, "high": 1}
    assert metrics["high_bias_files"] == [{"file_path": "/w/high.js", "bias_score": 0.9}]
    assert len(metrics["improvement_suggestions"]) == 2

    single = graph_store.get_bias_metrics("/w/high.js")
    assert single["bias_level"] == "High"
    assert graph_store.get_bias_metrics("/w/missing.js") == {}


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0
    assert cosine_similarity([], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_split_node_id():
    assert split_node_id("/a/b.py#Symbol") == ("/a/b.py", "Symbol")
    assert split_node_id("react") == ("react", None)
