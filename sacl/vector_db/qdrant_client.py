"""Qdrant vector index over augmented code embeddings."""

import logging
from typing import Any, Dict, List, Optional

import blake3
from qdrant_client import QdrantClient
from qdrant_client.http import models
from qdrant_client.http.models import Distance, PointStruct, VectorParams

from ..errors import StorageError

logger = logging.getLogger(__name__)


def hex_to_uuid(hex_str: str) -> str:
    """Convert a hexadecimal string to a UUID format.

    Args:
        hex_str: Hexadecimal string (up to 32 characters)

    Returns:
        UUID string
    """
    hex_str = hex_str[:32].ljust(32, "0")
    return f"{hex_str[0:8]}-{hex_str[8:12]}-{hex_str[12:16]}-{hex_str[16:20]}-{hex_str[20:32]}"


def point_id(namespace: str, file_path: str) -> str:
    return hex_to_uuid(blake3.blake3(f"{namespace}:{file_path}".encode()).hexdigest())


class RepresentationVectorIndex:
    """One point per file, holding the augmented embedding of its representation."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6333,
        collection_name: str = "sacl_representations",
        vector_size: int = 768,  # Default for nomic-embed-text
        client: Optional[QdrantClient] = None,
    ):
        """Initialize the index.

        Args:
            host: Qdrant server host
            port: Qdrant server port
            collection_name: Name of the collection to use
            vector_size: Dimension of embedding vectors
            client: Pre-built client (e.g. ``QdrantClient(location=":memory:")``)
        """
        self.client = client or QdrantClient(host=host, port=port)
        self.collection_name = collection_name
        self.vector_size = vector_size
        self._ensure_collection()

    def _ensure_collection(self) -> None:
        """Create collection if it doesn't exist."""
        try:
            collection_names = [col.name for col in self.client.get_collections().collections]
            if self.collection_name not in collection_names:
                logger.info(f"Creating collection: {self.collection_name}")
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=self.vector_size, distance=Distance.COSINE),
                )
        except Exception as e:
            logger.error(f"Error ensuring collection: {e}")
            raise StorageError(f"Qdrant collection unavailable: {e}") from e

    def _namespace_filter(self, namespace: str, file_path: Optional[str] = None) -> models.Filter:
        must = [models.FieldCondition(key="namespace", match=models.MatchValue(value=namespace))]
        if file_path is not None:
            must.append(
                models.FieldCondition(key="file_path", match=models.MatchValue(value=file_path))
            )
        return models.Filter(must=must)

    def upsert_representation(
        self,
        namespace: str,
        file_path: str,
        vector: List[float],
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Insert or replace the vector for a file.

        Vectors whose dimension does not match the collection are skipped.

        Returns:
            True if a point was written
        """
        if len(vector) != self.vector_size:
            logger.warning(
                f"Skipping vector for {file_path}: dimension {len(vector)} != {self.vector_size}"
            )
            return False

        point = PointStruct(
            id=point_id(namespace, file_path),
            vector=vector,
            payload={**(payload or {}), "namespace": namespace, "file_path": file_path},
        )
        try:
            self.client.upsert(collection_name=self.collection_name, points=[point])
            return True
        except Exception as e:
            logger.error(f"Error upserting vector for {file_path}: {e}")
            raise StorageError(f"Qdrant upsert failed: {e}") from e

    def search(self, query_vector: List[float], namespace: str, limit: int = 10) -> Dict[str, float]:
        """Nearest files to a query vector.

        Returns:
            Mapping of file path to cosine similarity
        """
        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=self._namespace_filter(namespace),
                limit=limit,
                with_payload=True,
            )
        except Exception as e:
            logger.error(f"Error searching: {e}")
            raise StorageError(f"Qdrant search failed: {e}") from e

        return {point.payload.get("file_path", ""): point.score for point in response.points}

    def delete_by_file_path(self, namespace: str, file_path: str) -> None:
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=models.FilterSelector(
                    filter=self._namespace_filter(namespace, file_path)
                ),
            )
        except Exception as e:
            logger.error(f"Error deleting vector for {file_path}: {e}")
            raise StorageError(f"Qdrant delete failed: {e}") from e

    def clear_namespace(self, namespace: str) -> None:
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=models.FilterSelector(filter=self._namespace_filter(namespace)),
            )
            logger.info(f"Cleared vectors for namespace: {namespace}")
        except Exception as e:
            logger.error(f"Error clearing namespace {namespace}: {e}")
            raise StorageError(f"Qdrant clear failed: {e}") from e

    def health_check(self) -> bool:
        try:
            self.client.get_collections()
            return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False
