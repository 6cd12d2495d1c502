#!/usr/bin/env python3
"""Standalone SACL runner - analyzes a repository, optionally runs a query, and exits.

Usage:
    indexer.py                 analyze SACL_REPO_PATH
    indexer.py "sort records"  analyze, then print the ranked results for the query
"""

import asyncio
import logging
import os
import sys

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    """Main runner function."""
    try:
        # Import here to avoid issues if running from different context
        from sacl.config import get_env_config
        from sacl.graph_db.graph_store import build_graph_store
        from sacl.indexer.completions import OllamaCompletions
        from sacl.indexer.embeddings import OllamaEmbeddings
        from sacl.indexer.semantic_augmenter import SemanticAugmenter
        from sacl.processor import SACLProcessor

        config = get_env_config()
        query = " ".join(sys.argv[1:]).strip()

        logger.info(f"Starting SACL analysis for repository: {config.repo_path}")
        logger.info(f"Namespace: {config.namespace}")
        logger.info(f"Graph backend: {config.graph_backend}")
        logger.info(f"Ollama: {config.ollama_host}")

        if not os.path.isdir(config.repo_path):
            logger.error(f"Repository path does not exist: {config.repo_path}")
            sys.exit(1)

        async with OllamaEmbeddings(
            host=config.ollama_host,
            model=config.embedding_model,
            cache_dir=config.cache_path,
            max_concurrent=config.max_concurrent_embeddings,
        ) as embeddings, OllamaCompletions(
            host=config.ollama_host,
            model=config.llm_model,
            max_concurrent=config.max_concurrent_embeddings,
        ) as completions:
            # Degraded semantic features are acceptable for a standalone run
            if not await embeddings.health_check():
                logger.warning("Ollama health check failed, continuing with placeholder semantics")

            graph_store = build_graph_store(config)
            processor = SACLProcessor(
                config, graph_store, SemanticAugmenter(embeddings, completions)
            )

            stats = await processor.process_repository()

            logger.info("=" * 80)
            logger.info("Analysis Complete!")
            logger.info(f"Repository: {config.repo_path}")
            logger.info(f"Files processed: {stats.files_processed}/{stats.total_files}")
            logger.info(f"Average bias score: {stats.average_bias_score:.3f}")
            logger.info(f"High bias files: {stats.bias_detected}")
            logger.info(f"Failed files: {len(stats.failed_files)}")
            logger.info(f"Processing time: {stats.processing_time:.0f} ms")
            logger.info("=" * 80)

            if query:
                results = await processor.query_code_with_context(query)
                logger.info(f"Query: {query} ({len(results)} results)")
                for rank, result in enumerate(results, 1):
                    logger.info(
                        f"{rank}. {result.code_snippet.file_path} "
                        f"score={result.bias_adjusted_score:.3f} "
                        f"bias={result.code_snippet.bias_score:.3f}"
                    )
                    for region in result.localization_regions:
                        logger.info(f"     lines {region.start_line}-{region.end_line}")

            graph_store.close()

        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal error during analysis: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
