"""Persistence interface for the relationship graph.

Backends only store and fetch; traversal, weighting and search live in
``GraphStore``. Every call is scoped to a namespace so several
repositories can share one backend.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from ..indexer.models import CodeRepresentation, GraphEdge

# Direction of an edge relative to the node being expanded
OUTGOING = "out"
INCOMING = "in"


class GraphBackend(ABC):
    """Base class for graph persistence engines."""

    @abstractmethod
    def upsert_representation(self, namespace: str, rep: CodeRepresentation) -> None:
        """Store a representation, replacing any previous one for the same path."""

    @abstractmethod
    def get_representation(self, namespace: str, file_path: str) -> Optional[CodeRepresentation]:
        pass

    @abstractmethod
    def list_representations(self, namespace: str) -> List[CodeRepresentation]:
        pass

    @abstractmethod
    def delete_representation(self, namespace: str, file_path: str) -> bool:
        """Remove a representation.

        Returns:
            True if one existed
        """

    @abstractmethod
    def add_edge(self, namespace: str, edge: GraphEdge) -> None:
        """Store an edge; an existing edge with the same endpoints and type is replaced."""

    @abstractmethod
    def remove_outgoing_edges(self, namespace: str, node_id: str) -> int:
        pass

    @abstractmethod
    def remove_edges_touching(self, namespace: str, file_path: str) -> int:
        """Remove every edge from or to a file, including its ``path#symbol`` nodes."""

    @abstractmethod
    def neighbours(
        self, namespace: str, node_id: str, types: Sequence[str], direction: str
    ) -> List[Tuple[GraphEdge, str]]:
        """Edges of the given types leaving (``out``) or entering (``in``) a node.

        Returns:
            (edge, neighbour id) pairs, ordered by neighbour id then type
        """

    @abstractmethod
    def counts(self, namespace: str) -> Dict[str, object]:
        """``{"representations": int, "edges_by_type": {type: int}}``"""

    @abstractmethod
    def clear(self, namespace: str) -> None:
        pass

    def close(self) -> None:
        pass
