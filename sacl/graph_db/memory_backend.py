"""In-process graph backend."""

import logging
from collections import defaultdict
from copy import deepcopy
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..indexer.models import CodeRepresentation, GraphEdge
from .backend import INCOMING, GraphBackend

logger = logging.getLogger(__name__)

EdgeKey = Tuple[str, str, str]  # (from, to, type)


class _Namespace:
    def __init__(self):
        self.representations: Dict[str, CodeRepresentation] = {}
        self.edges: Dict[EdgeKey, GraphEdge] = {}
        self.outgoing: Dict[str, Set[EdgeKey]] = defaultdict(set)
        self.incoming: Dict[str, Set[EdgeKey]] = defaultdict(set)

    def drop_edge(self, key: EdgeKey) -> None:
        self.edges.pop(key, None)
        self.outgoing[key[0]].discard(key)
        self.incoming[key[1]].discard(key)


class InMemoryGraphBackend(GraphBackend):
    """Dictionary-backed graph; data lives as long as the process."""

    def __init__(self):
        self._namespaces: Dict[str, _Namespace] = defaultdict(_Namespace)

    def upsert_representation(self, namespace: str, rep: CodeRepresentation) -> None:
        self._namespaces[namespace].representations[rep.file_path] = deepcopy(rep)

    def get_representation(self, namespace: str, file_path: str) -> Optional[CodeRepresentation]:
        rep = self._namespaces[namespace].representations.get(file_path)
        return deepcopy(rep) if rep is not None else None

    def list_representations(self, namespace: str) -> List[CodeRepresentation]:
        reps = self._namespaces[namespace].representations
        return [deepcopy(reps[path]) for path in sorted(reps)]

    def delete_representation(self, namespace: str, file_path: str) -> bool:
        return self._namespaces[namespace].representations.pop(file_path, None) is not None

    def add_edge(self, namespace: str, edge: GraphEdge) -> None:
        ns = self._namespaces[namespace]
        key = (edge.from_, edge.to, edge.type)
        ns.edges[key] = edge
        ns.outgoing[edge.from_].add(key)
        ns.incoming[edge.to].add(key)

    def remove_outgoing_edges(self, namespace: str, node_id: str) -> int:
        ns = self._namespaces[namespace]
        keys = list(ns.outgoing.get(node_id, ()))
        for key in keys:
            ns.drop_edge(key)
        return len(keys)

    def remove_edges_touching(self, namespace: str, file_path: str) -> int:
        ns = self._namespaces[namespace]
        prefix = f"{file_path}#"

        def touches(node: str) -> bool:
            return node == file_path or node.startswith(prefix)

        keys = [key for key in ns.edges if touches(key[0]) or touches(key[1])]
        for key in keys:
            ns.drop_edge(key)
        return len(keys)

    def neighbours(
        self, namespace: str, node_id: str, types: Sequence[str], direction: str
    ) -> List[Tuple[GraphEdge, str]]:
        ns = self._namespaces[namespace]
        index = ns.incoming if direction == INCOMING else ns.outgoing
        wanted = set(types)
        result = []
        for key in index.get(node_id, ()):
            edge = ns.edges[key]
            if edge.type not in wanted:
                continue
            neighbour = edge.from_ if direction == INCOMING else edge.to
            result.append((edge, neighbour))
        result.sort(key=lambda item: (item[1], item[0].type))
        return result

    def counts(self, namespace: str) -> Dict[str, object]:
        ns = self._namespaces[namespace]
        edges_by_type: Dict[str, int] = defaultdict(int)
        for edge in ns.edges.values():
            edges_by_type[edge.type] += 1
        return {"representations": len(ns.representations), "edges_by_type": dict(edges_by_type)}

    def clear(self, namespace: str) -> None:
        self._namespaces.pop(namespace, None)
        logger.info(f"Cleared in-memory graph for namespace: {namespace}")
