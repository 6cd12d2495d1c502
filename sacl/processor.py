"""SACL pipeline orchestration.

Ingestion runs each file through extraction, bias scoring, semantic
augmentation and storage:

    Unprocessed -> Extracted -> BiasScored -> Augmented -> Stored

A failed stage puts the file back to Unprocessed and is reported without
aborting a repository scan; storage failures propagate to the caller.
Querying runs graph store search followed by reranking.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .config import SACLConfig
from .errors import PathValidationError, StorageError
from .graph_db.graph_store import DEFAULT_MAX_DEPTH, GraphStore
from .indexer.bias_detector import BiasDetector
from .indexer.code_analyzer import CodeAnalyzer
from .indexer.file_discovery import FileDiscovery
from .indexer.models import (
    CodeRepresentation,
    EnhancedRetrievalResult,
    GraphTraversalResult,
    ProcessingStats,
    RetrievalResult,
)
from .indexer.semantic_augmenter import SemanticAugmenter
from .retrieval.reranker import SACLReranker, context_explanation

logger = logging.getLogger(__name__)

CHANGE_TYPES = ("created", "modified", "deleted")

GRAPH_TYPES = ["imports", "exports", "calls", "extends", "implements"]


class FileState(str, Enum):
    UNPROCESSED = "unprocessed"
    EXTRACTED = "extracted"
    BIAS_SCORED = "bias_scored"
    AUGMENTED = "augmented"
    STORED = "stored"


class RepresentationCache:
    """Processed representations by path, guarded by an asyncio lock.

    When disabled every operation is a no-op and lookups miss.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._items: Dict[str, CodeRepresentation] = {}
        self._lock = asyncio.Lock()

    async def get(self, file_path: str) -> Optional[CodeRepresentation]:
        if not self.enabled:
            return None
        async with self._lock:
            return self._items.get(file_path)

    async def put(self, rep: CodeRepresentation) -> None:
        if not self.enabled:
            return
        async with self._lock:
            self._items[rep.file_path] = rep

    async def remove(self, file_path: str) -> None:
        async with self._lock:
            self._items.pop(file_path, None)

    async def clear(self) -> None:
        async with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class SACLProcessor:
    """Orchestrates ingestion, updates and bias-aware querying for one repository."""

    def __init__(
        self,
        config: SACLConfig,
        graph_store: GraphStore,
        augmenter: SemanticAugmenter,
        analyzer: Optional[CodeAnalyzer] = None,
        bias_detector: Optional[BiasDetector] = None,
        discovery: Optional[FileDiscovery] = None,
        cache: Optional[RepresentationCache] = None,
        reranker: Optional[SACLReranker] = None,
    ):
        """Initialize the processor.

        Args:
            config: Repository and pipeline settings
            graph_store: Representation and relationship store
            augmenter: Semantic augmenter wrapping the embedding/completion ports
            analyzer: Feature and relationship extractor
            bias_detector: Bias scorer
            discovery: Source file discovery rooted at the repository
            cache: Representation cache (created from config when omitted)
            reranker: Reranker (bound to the graph store when omitted)
        """
        self.config = config
        self.graph_store = graph_store
        self.augmenter = augmenter
        self.analyzer = analyzer or CodeAnalyzer()
        self.bias_detector = bias_detector or BiasDetector()
        self.discovery = discovery or FileDiscovery(
            config.repo_path, extensions=config.source_extensions
        )
        self.cache = cache or RepresentationCache(enabled=config.cache_enabled)
        self.reranker = reranker or SACLReranker(graph_store)
        self.file_states: Dict[str, FileState] = {}

    def validate_path(self, file_path: str) -> str:
        """Canonical absolute path inside the repository.

        Raises:
            PathValidationError: If the path escapes the repository root
        """
        return self.discovery.validate_path(file_path)

    def _build_representation(self, file_path: str, content: str) -> CodeRepresentation:
        result = self.analyzer.extract(content, file_path)
        try:
            modified = datetime.fromtimestamp(os.path.getmtime(file_path), tz=timezone.utc)
        except OSError:
            modified = datetime.now(timezone.utc)
        return CodeRepresentation(
            file_path=file_path,
            content=content,
            textual_features=result.textual,
            structural_features=result.structural,
            relationships=result.relationships,
            language=self.analyzer.language_of(file_path),
            last_modified=modified,
        )

    async def process_file(self, file_path: str) -> Optional[CodeRepresentation]:
        """Run one file through the full pipeline and store it.

        Args:
            file_path: Absolute or repository-relative path

        Returns:
            The stored representation, or None if a stage failed

        Raises:
            PathValidationError: If the path escapes the repository root
            StorageError: If the graph store rejects the write
        """
        path = self.validate_path(file_path)
        self.file_states[path] = FileState.UNPROCESSED

        try:
            content = self.discovery.read_file(path)
            rep = self._build_representation(path, content)
            self.file_states[path] = FileState.EXTRACTED

            rep.bias_score = self.bias_detector.detect_bias(rep)
            self.file_states[path] = FileState.BIAS_SCORED

            rep = await self.augmenter.augment(rep)
            self.file_states[path] = FileState.AUGMENTED

            self.graph_store.upsert(rep)
            edges = self.graph_store.store_file_relationships(
                rep, self.discovery.resolve_import_target
            )
            self.file_states[path] = FileState.STORED
        except StorageError:
            self.file_states[path] = FileState.UNPROCESSED
            raise
        except Exception as e:
            self.file_states[path] = FileState.UNPROCESSED
            logger.error(f"Error processing file {path}: {e}")
            return None

        await self.cache.put(rep)
        logger.info(
            f"Processed {path}: bias {rep.bias_score:.3f}, {edges} relationship edges, "
            f"behavior: {rep.semantic_features.behavior_pattern}"
        )
        return rep

    async def process_repository(self, root: Optional[str] = None) -> ProcessingStats:
        """Process every source file under the repository (or a subdirectory of it).

        Files run on a bounded worker pool; a failing file is recorded in
        ``failed_files`` and the scan continues.

        Raises:
            PathValidationError: If ``root`` lies outside the repository
            StorageError: If the graph store fails
        """
        started = time.perf_counter()
        scan_root = self.validate_path(root) if root else self.discovery.root
        files = self.discovery.list_source_files(scan_root)
        logger.info(f"Found {len(files)} code files to process under {scan_root}")

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent))

        async def worker(path: str) -> Optional[CodeRepresentation]:
            async with semaphore:
                return await self.process_file(path)

        outcomes = await asyncio.gather(*(worker(path) for path in files), return_exceptions=True)

        stats = ProcessingStats(total_files=len(files))
        total_bias = 0.0
        for path, outcome in zip(files, outcomes):
            if isinstance(outcome, StorageError):
                raise outcome
            if isinstance(outcome, BaseException) or outcome is None:
                stats.failed_files.append(path)
                continue
            stats.files_processed += 1
            total_bias += outcome.bias_score
            if outcome.bias_score > self.config.bias_threshold:
                stats.bias_detected += 1

        stats.average_bias_score = (
            total_bias / stats.files_processed if stats.files_processed else 0.0
        )
        stats.processing_time = (time.perf_counter() - started) * 1000

        logger.info(f"Processing completed: {stats.files_processed}/{stats.total_files} files")
        logger.info(f"Average bias score: {stats.average_bias_score:.3f}")
        logger.info(f"High bias files: {stats.bias_detected}")
        return stats

    async def update_file(self, file_path: str, change_type: str) -> Dict[str, Any]:
        """Apply an explicit file change.

        Args:
            file_path: Absolute or repository-relative path
            change_type: created, modified or deleted

        Returns:
            ``{"success": bool, "message": str}`` plus ``bias_score`` when the file
            was (re)processed
        """
        try:
            path = self.validate_path(file_path)
        except PathValidationError as e:
            logger.warning(str(e))
            return {"success": False, "message": str(e)}

        if change_type not in CHANGE_TYPES:
            return {"success": False, "message": f"Unknown change type: {change_type}"}

        try:
            if change_type == "deleted":
                await self.cache.remove(path)
                self.graph_store.delete(path)
                self.file_states.pop(path, None)
                return {
                    "success": True,
                    "message": f"File {path} removed from cache and knowledge graph",
                }

            rep = await self.process_file(path)
            if rep is None:
                return {"success": False, "message": f"Failed to process file {path}"}
            return {
                "success": True,
                "message": f"File {path} processed successfully. Bias score: {rep.bias_score:.3f}",
                "bias_score": rep.bias_score,
            }
        except StorageError as e:
            logger.error(f"Failed to update file {path}: {e}")
            return {"success": False, "message": f"Error updating file: {e}"}

    async def update_files(self, files: Sequence[Dict[str, str]]) -> Dict[str, Any]:
        """Apply a batch of changes; per-item results keep the input order.

        A malformed item or a failing change is reported in that item's result
        and never aborts the rest of the batch.

        Args:
            files: Items with ``file_path`` and ``change_type``
        """
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent))

        async def worker(item: Dict[str, str]) -> Dict[str, Any]:
            file_path = item.get("file_path")
            if not file_path:
                return {"success": False, "message": "Missing file_path"}
            async with semaphore:
                try:
                    return await self.update_file(file_path, item.get("change_type", ""))
                except Exception as e:
                    logger.error(f"Error updating {file_path}: {e}")
                    return {"success": False, "message": f"Error updating file: {e}"}

        logger.info(f"Batch update: processing {len(files)} files")
        outcomes = await asyncio.gather(*(worker(item) for item in files))

        results = [
            {"file_path": item.get("file_path"), **outcome} for item, outcome in zip(files, outcomes)
        ]
        successful = sum(1 for result in results if result["success"])
        logger.info(
            f"Batch update completed: {successful} successful, {len(results) - successful} failed"
        )
        return {
            "total_files": len(files),
            "successful_updates": successful,
            "failed_updates": len(results) - successful,
            "results": results,
        }

    async def _candidates(self, query: str, limit: int) -> List[CodeRepresentation]:
        query_vector = await self.augmenter.embed_query(query)
        return self.graph_store.search(query, limit * 2, query_vector)

    async def query_code(self, query: str, max_results: Optional[int] = None) -> List[RetrievalResult]:
        limit = max_results or self.config.max_results
        candidates = await self._candidates(query, limit)
        if not candidates:
            logger.info(f"No initial results found for '{query}'")
            return []
        results = self.reranker.rerank(candidates, query, limit)
        logger.info(f"Reranked {len(candidates)} -> {len(results)} results")
        return results

    async def query_code_with_context(
        self, query: str, max_results: Optional[int] = None
    ) -> List[EnhancedRetrievalResult]:
        limit = max_results or self.config.max_results
        candidates = await self._candidates(query, limit)
        if not candidates:
            logger.info(f"No initial results found for '{query}'")
            return []
        results = self.reranker.rerank_with_context(candidates, query, limit)
        logger.info(f"Reranked {len(candidates)} -> {len(results)} results with context")
        return results

    def get_related_components(self, file_path: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
        path = self.validate_path(file_path)
        related = self.graph_store.get_related_components(path, max_depth=max_depth)
        return {
            "primary_file": path,
            "related_components": related,
            "traversal_depth": max_depth,
            "total_related": len(related),
        }

    def get_relationship_graph(
        self,
        file_path: str,
        relationship_types: Optional[Sequence[str]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> GraphTraversalResult:
        path = self.validate_path(file_path)
        return self.graph_store.traverse_relationships(
            path, relationship_types=list(relationship_types or GRAPH_TYPES), max_depth=max_depth
        )

    async def _lookup(self, path: str) -> Optional[CodeRepresentation]:
        rep = await self.cache.get(path)
        return rep if rep is not None else self.graph_store.get(path)

    async def get_bias_analysis(self, file_path: Optional[str] = None) -> Dict[str, Any]:
        if file_path is None:
            return self.graph_store.get_bias_metrics()

        path = self.validate_path(file_path)
        analysis = self.graph_store.get_bias_metrics(path)
        rep = await self._lookup(path)
        if rep is not None:
            analysis["file_specific"] = {
                "path": path,
                "bias_score": rep.bias_score,
                "indicators": self.bias_detector.get_indicators(rep),
                "semantic_features": {
                    "functional_signature": rep.semantic_features.functional_signature,
                    "behavior_pattern": rep.semantic_features.behavior_pattern,
                },
            }
        return analysis

    async def get_file_context(self, file_path: str) -> Dict[str, Any]:
        """Representation summary, related components and a context explanation for a file."""
        path = self.validate_path(file_path)
        rep = await self._lookup(path)
        if rep is None:
            return {"file_path": path, "found": False}

        related = self.graph_store.get_related_components(path, max_depth=2)
        rels = rep.relationships
        return {
            "file_path": path,
            "found": True,
            "language": rep.language,
            "bias_score": rep.bias_score,
            "structural_features": rep.structural_features,
            "semantic_features": {
                "functional_signature": rep.semantic_features.functional_signature,
                "behavior_pattern": rep.semantic_features.behavior_pattern,
            },
            "relationship_counts": {
                "imports": len(rels.imports) if rels else 0,
                "exports": len(rels.exports) if rels else 0,
                "function_calls": len(rels.function_calls) if rels else 0,
                "class_inheritance": len(rels.class_inheritance) if rels else 0,
                "dependencies": len(rels.dependencies) if rels else 0,
            },
            "related_components": related,
            "context_explanation": context_explanation(rep, related, f"context of {path}"),
        }

    def get_system_stats(self) -> Dict[str, Any]:
        states: Dict[str, int] = {state.value: 0 for state in FileState}
        for state in self.file_states.values():
            states[state.value] += 1
        return {
            **self.graph_store.get_stats(),
            "config": {
                "repo_path": self.config.repo_path,
                "namespace": self.config.namespace,
                "bias_threshold": self.config.bias_threshold,
                "cache_enabled": self.config.cache_enabled,
                "max_results": self.config.max_results,
                "max_concurrent": self.config.max_concurrent,
            },
            "cache": {"size": len(self.cache), "enabled": self.cache.enabled},
            "file_states": states,
        }

    async def cleanup(self) -> None:
        await self.cache.clear()
        self.file_states.clear()
        logger.info("SACL processor cleanup completed")
