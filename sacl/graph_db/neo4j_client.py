"""Neo4j backend for the code relationship graph.

Every node is a ``SACLNode`` keyed by ``(namespace, id)``. File nodes
additionally carry the serialized representation; symbol and external
module nodes only exist as edge endpoints.

Relationship types stored:
- IMPORTS, EXPORTS, CALLS, EXTENDS, IMPLEMENTS, USES, DEPENDS_ON
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from neo4j import GraphDatabase
from neo4j.exceptions import AuthError, DriverError, Neo4jError, ServiceUnavailable

from ..errors import StorageError
from ..indexer.models import CodeRepresentation, GraphEdge, RelationshipType
from .backend import INCOMING, GraphBackend

logger = logging.getLogger(__name__)

_VALID_TYPES = {t.value for t in RelationshipType}


def _rel_type(edge_type: str) -> str:
    if edge_type not in _VALID_TYPES:
        raise StorageError(f"Unknown relationship type: {edge_type}")
    return edge_type.upper()


class Neo4jGraphBackend(GraphBackend):
    """Graph persistence on a Neo4j server."""

    def __init__(self, uri: str, user: str, password: str):
        """Initialize Neo4j connection.

        Args:
            uri: Neo4j connection URI (e.g., "bolt://localhost:7687")
            user: Neo4j username
            password: Neo4j password
        """
        self.uri = uri
        self.user = user
        try:
            self.driver = GraphDatabase.driver(uri, auth=(user, password))
            logger.info(f"Connected to Neo4j at {uri}")
        except (ServiceUnavailable, AuthError, ValueError) as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise StorageError(f"Failed to connect to Neo4j: {e}") from e

    def _run(self, query: str, **params: Any) -> List[Dict[str, Any]]:
        try:
            with self.driver.session() as session:
                return [record.data() for record in session.run(query, **params)]
        except (Neo4jError, DriverError) as e:
            logger.error(f"Neo4j query failed: {e}")
            raise StorageError(f"Neo4j query failed: {e}") from e

    def close(self):
        """Close the Neo4j connection."""
        if self.driver:
            self.driver.close()
            logger.info("Neo4j connection closed")

    def verify_connectivity(self) -> bool:
        try:
            return self._run("RETURN 1 AS result")[0]["result"] == 1
        except StorageError:
            return False

    def create_indexes(self):
        """Create indexes for frequently queried properties."""
        indexes = [
            "CREATE INDEX sacl_node_key IF NOT EXISTS FOR (n:SACLNode) ON (n.namespace, n.id)",
            "CREATE INDEX sacl_node_namespace IF NOT EXISTS FOR (n:SACLNode) ON (n.namespace)",
        ]
        for index_query in indexes:
            try:
                self._run(index_query)
                logger.debug(f"Created index: {index_query}")
            except StorageError as e:
                logger.warning(f"Index creation warning: {e}")

    def upsert_representation(self, namespace: str, rep: CodeRepresentation) -> None:
        self._run(
            """
            MERGE (n:SACLNode {namespace: $namespace, id: $id})
            SET n.representation = $data,
                n.bias_score = $bias_score,
                n.last_modified = $last_modified
            """,
            namespace=namespace,
            id=rep.file_path,
            data=json.dumps(rep.to_dict()),
            bias_score=rep.bias_score,
            last_modified=rep.last_modified.isoformat(),
        )

    def get_representation(self, namespace: str, file_path: str) -> Optional[CodeRepresentation]:
        rows = self._run(
            """
            MATCH (n:SACLNode {namespace: $namespace, id: $id})
            WHERE n.representation IS NOT NULL
            RETURN n.representation AS data
            """,
            namespace=namespace,
            id=file_path,
        )
        return CodeRepresentation.from_dict(json.loads(rows[0]["data"])) if rows else None

    def list_representations(self, namespace: str) -> List[CodeRepresentation]:
        rows = self._run(
            """
            MATCH (n:SACLNode {namespace: $namespace})
            WHERE n.representation IS NOT NULL
            RETURN n.representation AS data
            ORDER BY n.id
            """,
            namespace=namespace,
        )
        return [CodeRepresentation.from_dict(json.loads(row["data"])) for row in rows]

    def delete_representation(self, namespace: str, file_path: str) -> bool:
        rows = self._run(
            """
            MATCH (n:SACLNode {namespace: $namespace, id: $id})
            WHERE n.representation IS NOT NULL
            REMOVE n.representation, n.bias_score, n.last_modified
            RETURN count(n) AS removed
            """,
            namespace=namespace,
            id=file_path,
        )
        return bool(rows and rows[0]["removed"])

    def add_edge(self, namespace: str, edge: GraphEdge) -> None:
        self._run(
            f"""
            MERGE (a:SACLNode {{namespace: $namespace, id: $source}})
            MERGE (b:SACLNode {{namespace: $namespace, id: $target}})
            MERGE (a)-[r:{_rel_type(edge.type)}]->(b)
            SET r.weight = $weight, r.label = $label, r.metadata = $metadata
            """,
            namespace=namespace,
            source=edge.from_,
            target=edge.to,
            weight=edge.weight,
            label=edge.label,
            metadata=json.dumps(edge.metadata),
        )

    def remove_outgoing_edges(self, namespace: str, node_id: str) -> int:
        rows = self._run(
            """
            MATCH (a:SACLNode {namespace: $namespace, id: $id})-[r]->()
            DELETE r
            RETURN count(r) AS removed
            """,
            namespace=namespace,
            id=node_id,
        )
        return rows[0]["removed"] if rows else 0

    def remove_edges_touching(self, namespace: str, file_path: str) -> int:
        rows = self._run(
            """
            MATCH (a:SACLNode {namespace: $namespace})-[r]-()
            WHERE a.id = $id OR a.id STARTS WITH $prefix
            DELETE r
            RETURN count(DISTINCT r) AS removed
            """,
            namespace=namespace,
            id=file_path,
            prefix=f"{file_path}#",
        )
        # Symbol nodes and bare external nodes are left dangling; drop them
        self._run(
            """
            MATCH (n:SACLNode {namespace: $namespace})
            WHERE n.representation IS NULL AND NOT (n)--()
            DELETE n
            """,
            namespace=namespace,
        )
        return rows[0]["removed"] if rows else 0

    def neighbours(
        self, namespace: str, node_id: str, types: Sequence[str], direction: str
    ) -> List[Tuple[GraphEdge, str]]:
        if not types:
            return []
        rel_types = [_rel_type(t) for t in types]
        pattern = "(a)<-[r]-(b)" if direction == INCOMING else "(a)-[r]->(b)"
        rows = self._run(
            f"""
            MATCH (a:SACLNode {{namespace: $namespace, id: $id}})
            MATCH {pattern}
            WHERE type(r) IN $types
            RETURN b.id AS neighbour, type(r) AS type, r.weight AS weight,
                   r.label AS label, r.metadata AS metadata
            ORDER BY neighbour, type
            """,
            namespace=namespace,
            id=node_id,
            types=rel_types,
        )

        result = []
        for row in rows:
            source, target = (
                (row["neighbour"], node_id) if direction == INCOMING else (node_id, row["neighbour"])
            )
            edge = GraphEdge(
                from_=source,
                to=target,
                type=row["type"].lower(),
                weight=float(row["weight"]),
                label=row["label"] or "",
                metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            )
            result.append((edge, row["neighbour"]))
        return result

    def counts(self, namespace: str) -> Dict[str, object]:
        reps = self._run(
            """
            MATCH (n:SACLNode {namespace: $namespace})
            WHERE n.representation IS NOT NULL
            RETURN count(n) AS count
            """,
            namespace=namespace,
        )
        edges = self._run(
            """
            MATCH (:SACLNode {namespace: $namespace})-[r]->()
            RETURN type(r) AS type, count(*) AS count
            """,
            namespace=namespace,
        )
        return {
            "representations": reps[0]["count"] if reps else 0,
            "edges_by_type": {row["type"].lower(): row["count"] for row in edges},
        }

    def clear(self, namespace: str) -> None:
        self._run(
            "MATCH (n:SACLNode {namespace: $namespace}) DETACH DELETE n", namespace=namespace
        )
        logger.info(f"Cleared graph data for namespace: {namespace}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
