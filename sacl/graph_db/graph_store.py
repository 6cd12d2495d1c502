"""Relationship graph store.

Persists code representations and typed, weighted edges between files,
symbols and external modules, and answers two kinds of questions:

- search: which files match a query, by token overlap and (when a query
  vector is available) embedding similarity;
- traversal: which components are related to a file, scored by edge weight
  decayed with distance (``weight / distance``).
"""

import logging
import math
import os
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import SACLConfig
from ..errors import StorageError
from ..indexer.bias_detector import bias_level
from ..indexer.models import (
    CodeRepresentation,
    DependencyType,
    GraphEdge,
    GraphNode,
    GraphTraversalResult,
    InheritanceType,
    RelatedComponent,
    RelationshipGraph,
    RelationshipType,
    TraversalStats,
)
from ..indexer.text_features import query_tokens
from ..vector_db.qdrant_client import RepresentationVectorIndex
from .backend import INCOMING, OUTGOING, GraphBackend
from .memory_backend import InMemoryGraphBackend
from .neo4j_client import Neo4jGraphBackend

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    RelationshipType.IMPORTS.value: 1.0,
    RelationshipType.EXPORTS.value: 0.8,
    RelationshipType.CALLS.value: 0.9,
    RelationshipType.EXTENDS.value: 0.95,
    RelationshipType.IMPLEMENTS.value: 0.9,
    RelationshipType.USES.value: 0.7,
    RelationshipType.DEPENDS_ON.value: 0.6,
}

LOCAL_DEPENDENCY_WEIGHT = 0.8
EXTERNAL_DEPENDENCY_WEIGHT = 0.4

DEFAULT_MAX_DEPTH = 3
DEFAULT_MIN_RELEVANCE = 0.3

ALL_TYPES = [t.value for t in RelationshipType]

# (forward verb, reverse verb) used in component descriptions
_VERBS = {
    "imports": ("imports", "is imported by"),
    "exports": ("exports", "is exported by"),
    "calls": ("calls", "is called by"),
    "extends": ("extends", "is extended by"),
    "implements": ("implements", "is implemented by"),
    "uses": ("uses", "is used by"),
    "depends_on": ("depends on", "is a dependency of"),
}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the shared prefix of two vectors, clamped to [0, 1]."""
    length = min(len(a), len(b))
    if length == 0:
        return 0.0
    dot = sum(a[i] * b[i] for i in range(length))
    norm_a = math.sqrt(sum(a[i] * a[i] for i in range(length)))
    norm_b = math.sqrt(sum(b[i] * b[i] for i in range(length)))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(0.0, min(1.0, dot / (norm_a * norm_b)))


def lexical_score(tokens: List[str], rep: CodeRepresentation) -> float:
    """Fraction of query tokens that occur in a representation's text surface."""
    if not tokens:
        return 0.0
    textual = rep.textual_features
    surface = " ".join(
        [rep.file_path, rep.content]
        + textual.docstrings
        + textual.comments
        + textual.identifier_names
        + [rep.semantic_features.functional_signature, rep.semantic_features.behavior_pattern]
    ).lower()
    return sum(1 for token in tokens if token in surface) / len(tokens)


def split_node_id(node_id: str) -> Tuple[str, Optional[str]]:
    """``/a/b.py#Symbol`` -> (``/a/b.py``, ``Symbol``)."""
    if "#" in node_id:
        path, _, symbol = node_id.partition("#")
        return path, symbol
    return node_id, None


def _expandable(node_id: str) -> bool:
    """Only repository files and their symbols are traversed through."""
    return os.path.isabs(split_node_id(node_id)[0])


class GraphStore:
    """Stores representations and relationship edges; owns traversal and search."""

    def __init__(
        self,
        backend: Optional[GraphBackend] = None,
        namespace: str = "default",
        vector_index: Optional[RepresentationVectorIndex] = None,
    ):
        """Initialize the store.

        Args:
            backend: Persistence engine (in-memory by default)
            namespace: Partition for this repository's data
            vector_index: Optional Qdrant index used for the semantic half of search
        """
        self.backend = backend or InMemoryGraphBackend()
        self.namespace = namespace
        self.vector_index = vector_index
        self.last_update: Optional[datetime] = None

    def _touch(self) -> None:
        self.last_update = datetime.now(timezone.utc)

    # Representations

    def upsert(self, rep: CodeRepresentation) -> None:
        self.backend.upsert_representation(self.namespace, rep)
        if self.vector_index and rep.augmented_embedding:
            self.vector_index.upsert_representation(
                self.namespace,
                rep.file_path,
                rep.augmented_embedding,
                {"bias_score": rep.bias_score, "language": rep.language},
            )
        self._touch()
        logger.debug(f"Stored representation for {rep.file_path}")

    def get(self, file_path: str) -> Optional[CodeRepresentation]:
        return self.backend.get_representation(self.namespace, file_path)

    def list_all(self) -> List[CodeRepresentation]:
        return self.backend.list_representations(self.namespace)

    def delete(self, file_path: str) -> bool:
        """Remove a representation and every edge that starts or ends at the file.

        Returns:
            True if a representation was removed
        """
        existed = self.backend.delete_representation(self.namespace, file_path)
        removed_edges = self.backend.remove_edges_touching(self.namespace, file_path)
        if self.vector_index:
            self.vector_index.delete_by_file_path(self.namespace, file_path)
        self._touch()
        logger.info(f"Deleted {file_path} ({removed_edges} edges)")
        return existed

    def clear_namespace(self) -> None:
        self.backend.clear(self.namespace)
        if self.vector_index:
            self.vector_index.clear_namespace(self.namespace)
        self._touch()

    # Edges

    def store_relationship(
        self,
        from_path: str,
        to_path: str,
        relationship_type: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> GraphEdge:
        """Store a typed edge.

        Args:
            from_path: Source node
            to_path: Target node
            relationship_type: One of the RelationshipType values
            details: Edge metadata; an explicit ``weight`` overrides the type default

        Returns:
            The stored edge
        """
        if relationship_type not in DEFAULT_WEIGHTS:
            raise StorageError(f"Unknown relationship type: {relationship_type}")
        metadata = dict(details or {})
        weight = metadata.pop("weight", None)
        edge = GraphEdge(
            from_=from_path,
            to=to_path,
            type=relationship_type,
            weight=float(weight) if weight is not None else DEFAULT_WEIGHTS[relationship_type],
            label=metadata.pop("label", relationship_type),
            metadata=metadata,
        )
        self.backend.add_edge(self.namespace, edge)
        return edge

    def store_file_relationships(
        self, rep: CodeRepresentation, resolve: Callable[[str], str] = lambda target: target
    ) -> int:
        """Replace a file's outgoing edges with those implied by its relationships.

        Args:
            rep: Representation with extracted relationships
            resolve: Maps an import target to a stored file path when possible

        Returns:
            Number of edges stored
        """
        rels = rep.relationships
        if rels is None:
            return 0

        path = rep.file_path
        self.backend.remove_outgoing_edges(self.namespace, path)
        count = 0

        # Imported symbol -> file it came from
        symbol_files: Dict[str, str] = {}
        for imp in rels.imports:
            target = resolve(imp.to)
            self.store_relationship(
                path,
                target,
                RelationshipType.IMPORTS.value,
                {
                    "symbols": imp.symbols,
                    "import_type": imp.import_type.value,
                    "line_number": imp.line_number,
                },
            )
            count += 1
            for symbol in imp.symbols:
                symbol_files[symbol] = target

        for exp in rels.exports:
            self.store_relationship(
                path,
                f"{path}#{exp.symbol}",
                RelationshipType.EXPORTS.value,
                {"export_type": exp.export_type.value, "line_number": exp.line_number},
            )
            count += 1

        # Calls are only linked when they reach into an imported file
        called: Dict[str, List[str]] = {}
        for call in rels.function_calls:
            target = symbol_files.get(call.to) or (
                symbol_files.get(call.object.split(".")[0]) if call.object else None
            )
            if target and target != path:
                called.setdefault(target, [])
                if call.to not in called[target]:
                    called[target].append(call.to)
        for target, names in called.items():
            self.store_relationship(path, target, RelationshipType.CALLS.value, {"functions": names})
            count += 1

        local_classes = {inh.from_ for inh in rels.class_inheritance}
        for inh in rels.class_inheritance:
            parent = inh.to.split(".")[0] if "." in inh.to else inh.to
            target = symbol_files.get(parent) or symbol_files.get(inh.to)
            if target is None:
                if inh.to in local_classes:
                    continue
                target = inh.to
            edge_type = (
                RelationshipType.IMPLEMENTS.value
                if inh.type == InheritanceType.IMPLEMENTS
                else RelationshipType.EXTENDS.value
            )
            self.store_relationship(
                path,
                target,
                edge_type,
                {"child": inh.from_, "parent": inh.to, "kind": inh.type.value,
                 "line_number": inh.line_number},
            )
            count += 1

        for dep in rels.dependencies:
            local = dep.dependency_type == DependencyType.LOCAL
            self.store_relationship(
                path,
                resolve(dep.to) if local else dep.to,
                RelationshipType.DEPENDS_ON.value,
                {
                    "weight": LOCAL_DEPENDENCY_WEIGHT if local else EXTERNAL_DEPENDENCY_WEIGHT,
                    "dependency_type": dep.dependency_type.value,
                    "usage": dep.usage,
                },
            )
            count += 1

        self._touch()
        logger.debug(f"Stored {count} relationship edges for {path}")
        return count

    # Traversal

    def _component(
        self, node_id: str, edge: GraphEdge, forward: bool, relevance: float, distance: int,
        origin: str,
    ) -> RelatedComponent:
        file_path, symbol = split_node_id(node_id)
        if symbol is not None:
            name = symbol
            component_type = "class" if symbol[:1].isupper() else "function"
        elif os.path.isabs(node_id) and self.get(node_id) is not None:
            name = os.path.basename(node_id)
            component_type = "file"
        elif edge.type == RelationshipType.IMPLEMENTS.value and forward:
            name = node_id
            component_type = "interface"
        elif edge.type == RelationshipType.EXTENDS.value and forward:
            name = node_id
            component_type = "class"
        elif os.path.isabs(node_id):
            name = os.path.basename(node_id)
            component_type = "file"
        else:
            name = node_id
            component_type = "module"

        verb = _VERBS[edge.type][0]
        here = os.path.basename(split_node_id(origin)[0]) or origin
        there = name if component_type != "file" else os.path.basename(node_id)
        description = f"{here} {verb} {there}" if forward else f"{there} {verb} {here}"

        return RelatedComponent(
            file_path=file_path,
            component_name=name,
            component_type=component_type,
            relationship_type=edge.type,
            relationship_description=description,
            relevance_score=relevance,
            distance=distance,
        )

    def traverse_relationships(
        self,
        file_path: str,
        relationship_types: Optional[Sequence[str]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        min_relevance_score: float = 0.0,
        weights: Optional[Dict[str, float]] = None,
        include_reverse: bool = True,
    ) -> GraphTraversalResult:
        """Breadth-first traversal from a file.

        Each node is enqueued at most once and nodes at ``max_depth`` are not
        expanded. External modules and unresolved names are reported but never
        expanded, so files sharing a third-party import are not related through it. A component's relevance is ``weight / distance`` where weight is
        the caller's override for the edge type, else the stored edge weight; when a
        node is reached along several edges the best relevance and the shortest
        distance are kept.

        Args:
            file_path: Start node
            relationship_types: Edge types to follow (all by default)
            max_depth: Maximum hop count
            min_relevance_score: Components below this score are dropped
            weights: Per-type weight overrides
            include_reverse: Also follow edges against their direction

        Returns:
            Related components, graph snapshot and traversal statistics
        """
        started = time.perf_counter()
        types = list(relationship_types or ALL_TYPES)
        weights = weights or {}
        stats = TraversalStats()

        visited = {file_path}
        components: Dict[str, RelatedComponent] = {}
        edges: Dict[Tuple[str, str, str], GraphEdge] = {}
        queue = deque([(file_path, 0)])

        directions = [OUTGOING, INCOMING] if include_reverse else [OUTGOING]
        while queue:
            node, depth = queue.popleft()
            stats.nodes_visited += 1
            if depth >= max_depth:
                continue

            for direction in directions:
                for edge, neighbour in self.backend.neighbours(
                    self.namespace, node, types, direction
                ):
                    stats.edges_traversed += 1
                    edges[(edge.from_, edge.to, edge.type)] = edge
                    if neighbour == file_path:
                        continue

                    distance = depth + 1
                    weight = weights.get(edge.type, edge.weight)
                    relevance = max(0.0, min(1.0, weight / distance))

                    existing = components.get(neighbour)
                    if existing is None or relevance > existing.relevance_score:
                        component = self._component(
                            neighbour, edge, direction == OUTGOING, relevance, distance, node
                        )
                        if existing is not None:
                            component.distance = min(component.distance, existing.distance)
                        components[neighbour] = component
                    elif distance < existing.distance:
                        existing.distance = distance

                    if neighbour not in visited and _expandable(neighbour):
                        visited.add(neighbour)
                        queue.append((neighbour, distance))
                        stats.max_depth_reached = max(stats.max_depth_reached, distance)

        related = sorted(
            (c for c in components.values() if c.relevance_score >= min_relevance_score),
            key=lambda c: (-c.relevance_score, c.distance, c.file_path, c.component_name),
        )

        nodes = [GraphNode(id=file_path, label=os.path.basename(file_path), type="file",
                           metadata={"distance": 0, "relevance_score": 1.0})]
        for node_id, component in sorted(components.items()):
            nodes.append(
                GraphNode(
                    id=node_id,
                    label=component.component_name,
                    type=component.component_type,
                    metadata={
                        "distance": component.distance,
                        "relevance_score": component.relevance_score,
                    },
                )
            )
        node_ids = {node.id for node in nodes}
        snapshot = RelationshipGraph(
            nodes=nodes,
            edges=[
                edges[key] for key in sorted(edges)
                if edges[key].from_ in node_ids and edges[key].to in node_ids
            ],
            primary_node=file_path,
            max_depth=max_depth,
        )

        stats.processing_time = (time.perf_counter() - started) * 1000
        return GraphTraversalResult(
            start_node=file_path,
            related_components=related,
            relationship_graph=snapshot,
            traversal_stats=stats,
        )

    def get_related_components(
        self,
        file_path: str,
        max_depth: int = DEFAULT_MAX_DEPTH,
        relationship_types: Optional[Sequence[str]] = None,
        min_relevance_score: float = DEFAULT_MIN_RELEVANCE,
        weights: Optional[Dict[str, float]] = None,
        include_reverse: bool = True,
    ) -> List[RelatedComponent]:
        return self.traverse_relationships(
            file_path,
            relationship_types=relationship_types,
            max_depth=max_depth,
            min_relevance_score=min_relevance_score,
            weights=weights,
            include_reverse=include_reverse,
        ).related_components

    # Search

    def _semantic_scores(
        self, query_vector: List[float], reps: List[CodeRepresentation], limit: int
    ) -> Dict[str, float]:
        if self.vector_index:
            try:
                return self.vector_index.search(query_vector, self.namespace, limit)
            except StorageError as e:
                logger.warning(f"Vector index search failed, using brute force: {e}")
        return {
            rep.file_path: cosine_similarity(query_vector, rep.augmented_embedding)
            for rep in reps
            if rep.augmented_embedding
        }

    def search(
        self, query: str, limit: int = 10, query_vector: Optional[List[float]] = None
    ) -> List[CodeRepresentation]:
        """Rank stored representations against a query.

        Lexical score is the fraction of query tokens found in a file's text
        surface. With a query vector the score is ``0.5 * lexical + 0.5 * cosine``.
        Zero-score files are dropped; ties are broken by path.
        """
        reps = self.list_all()
        if not reps or limit <= 0:
            return []

        tokens = query_tokens(query)
        semantic = (
            self._semantic_scores(query_vector, reps, max(limit, len(reps)))
            if query_vector
            else {}
        )

        scored = []
        for rep in reps:
            lexical = lexical_score(tokens, rep)
            if query_vector:
                score = 0.5 * lexical + 0.5 * semantic.get(rep.file_path, 0.0)
            else:
                score = lexical
            if score > 0:
                scored.append((score, rep))

        scored.sort(key=lambda item: (-item[0], item[1].file_path))
        logger.debug(f"Search '{query}' matched {len(scored)} of {len(reps)} files")
        return [rep for _, rep in scored[:limit]]

    # Metrics

    def get_bias_metrics(self, file_path: Optional[str] = None) -> Dict[str, Any]:
        """Bias statistics for one file or the whole namespace."""
        if file_path is not None:
            rep = self.get(file_path)
            if rep is None:
                return {}
            return {
                "file_path": rep.file_path,
                "bias_score": rep.bias_score,
                "bias_level": bias_level(rep.bias_score),
                "structural_features": {
                    "complexity": rep.structural_features.complexity,
                    "nesting_depth": rep.structural_features.nesting_depth,
                    "function_count": rep.structural_features.function_count,
                    "class_count": rep.structural_features.class_count,
                },
            }

        reps = self.list_all()
        scores = [rep.bias_score for rep in reps]
        distribution = {"low": 0, "medium": 0, "high": 0}
        for score in scores:
            if score > 0.7:
                distribution["high"] += 1
            elif score > 0.4:
                distribution["medium"] += 1
            else:
                distribution["low"] += 1

        average = sum(scores) / len(scores) if scores else 0.0
        high_bias = sorted(
            (rep for rep in reps if rep.bias_score > 0.7),
            key=lambda rep: (-rep.bias_score, rep.file_path),
        )

        suggestions = []
        if distribution["high"]:
            suggestions.append(
                f"Review {distribution['high']} high-bias files: their retrievability depends on "
                "names and comments more than on structure"
            )
        if average > 0.4:
            suggestions.append(
                "Describe functionality in queries; semantic features outweigh textual matches"
            )
        if not suggestions:
            suggestions.append("Bias levels are low; textual and structural signals agree")

        return {
            "total_files": len(reps),
            "average_bias": average,
            "high_bias_files": [
                {"file_path": rep.file_path, "bias_score": rep.bias_score}
                for rep in high_bias[:10]
            ],
            "bias_distribution": distribution,
            "improvement_suggestions": suggestions,
        }

    def get_stats(self) -> Dict[str, Any]:
        counts = self.backend.counts(self.namespace)
        edges_by_type = counts.get("edges_by_type", {})
        return {
            "namespace": self.namespace,
            "representations": counts.get("representations", 0),
            "edges": sum(edges_by_type.values()),
            "edges_by_type": edges_by_type,
            "vector_index": self.vector_index is not None,
            "last_update": self.last_update.isoformat() if self.last_update else None,
        }

    def close(self) -> None:
        self.backend.close()


def build_graph_store(cfg: SACLConfig) -> GraphStore:
    """Create the graph store with the configured backend and optional vector index."""
    if cfg.graph_backend == "neo4j":
        logger.info(f"Connecting to Neo4j at {cfg.neo4j_uri}")
        backend = Neo4jGraphBackend(cfg.neo4j_uri, cfg.neo4j_user, cfg.neo4j_password)
        backend.create_indexes()
    else:
        logger.info("Using in-memory graph backend")
        backend = InMemoryGraphBackend()

    vector_index = None
    if cfg.enable_vector_index:
        logger.info(f"Connecting to Qdrant at {cfg.qdrant_host}:{cfg.qdrant_port}")
        vector_index = RepresentationVectorIndex(
            host=cfg.qdrant_host, port=cfg.qdrant_port, vector_size=cfg.vector_size
        )

    return GraphStore(backend, namespace=cfg.namespace, vector_index=vector_index)
