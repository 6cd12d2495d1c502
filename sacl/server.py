"""FastMCP server for bias-aware code retrieval."""

import asyncio
import logging
from typing import Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .config import SACLConfig, configure_logging, get_env_config
from .graph_db.graph_store import GraphStore, build_graph_store
from .graph_db.neo4j_client import Neo4jGraphBackend
from .indexer.completions import OllamaCompletions
from .indexer.embeddings import OllamaEmbeddings
from .indexer.semantic_augmenter import SemanticAugmenter
from .processor import SACLProcessor
from .tools.index_tool import IndexingTool
from .tools.search_tool import SearchTool

configure_logging()

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("sacl-code-retrieval")

# Global components (initialized on startup)
config: Optional[SACLConfig] = None
embeddings: Optional[OllamaEmbeddings] = None
completions: Optional[OllamaCompletions] = None
graph_store: Optional[GraphStore] = None
processor: Optional[SACLProcessor] = None
index_tool: Optional[IndexingTool] = None
search_tool: Optional[SearchTool] = None


async def initialize_components():
    """Initialize all components on startup."""
    global config, embeddings, completions, graph_store, processor, index_tool, search_tool

    config = get_env_config()
    logger.info(f"Initializing SACL for repository: {config.repo_path}")
    logger.info(f"Namespace: {config.namespace}")

    try:
        logger.info(f"Connecting to Ollama at {config.ollama_host}")
        embeddings = OllamaEmbeddings(
            host=config.ollama_host,
            model=config.embedding_model,
            cache_dir=config.cache_path,
            max_concurrent=config.max_concurrent_embeddings,
        )
        completions = OllamaCompletions(
            host=config.ollama_host,
            model=config.llm_model,
            max_concurrent=config.max_concurrent_embeddings,
        )

        if not await embeddings.health_check():
            logger.warning(
                f"Ollama health check failed. Make sure Ollama is running and "
                f"'{config.embedding_model}' and '{config.llm_model}' are available. "
                "Semantic features will degrade to placeholders."
            )

        graph_store = build_graph_store(config)
        processor = SACLProcessor(
            config, graph_store, SemanticAugmenter(embeddings, completions)
        )
        index_tool = IndexingTool(processor)
        search_tool = SearchTool(processor)

        logger.info("All components initialized successfully!")

    except Exception as e:
        logger.error(f"Error during initialization: {e}")
        raise


@mcp.tool()
async def analyze_repository(repo_path: Optional[str] = None) -> dict:
    """Analyze a repository: extract features, score textual bias, augment semantics and store relationships.

    Args:
        repo_path: Directory inside the configured repository (the whole repository if not specified)

    Returns:
        Dictionary with processing statistics (files processed, bias detected, average bias)
    """
    if not index_tool:
        return {"success": False, "error": "Server not initialized"}

    return await index_tool.analyze_repository(repo_path)


@mcp.tool()
async def query_code(query: str, max_results: Optional[int] = None, include_code: bool = True) -> dict:
    """Search code with bias-aware reranking that favours functional relevance over naming and comments.

    Args:
        query: Natural language search query (e.g., "sort a list of records", "validate user input")
        max_results: Maximum number of results to return (default from SACL_MAX_RESULTS)
        include_code: Whether to include full file content in results

    Returns:
        Ranked results with scores, localized code regions and ranking explanations
    """
    if not search_tool:
        return {"success": False, "error": "Server not initialized"}

    return await search_tool.query_code(query, max_results, include_code)


@mcp.tool()
async def query_code_with_context(
    query: str, max_results: Optional[int] = None, include_code: bool = True
) -> dict:
    """Search code and attach relationship context (related components, dependency chain) to each result.

    Args:
        query: Natural language search query
        max_results: Maximum number of results to return
        include_code: Whether to include full file content in results

    Returns:
        Ranked results with relationship graphs and context explanations
    """
    if not search_tool:
        return {"success": False, "error": "Server not initialized"}

    return await search_tool.query_code_with_context(query, max_results, include_code)


@mcp.tool()
async def update_file(file_path: str, change_type: str) -> dict:
    """Update the index after a file was created, modified or deleted.

    Args:
        file_path: Path of the changed file (absolute or relative to the repository)
        change_type: One of "created", "modified", "deleted"

    Returns:
        Dictionary with success flag and message
    """
    if not index_tool:
        return {"success": False, "error": "Server not initialized"}

    return await index_tool.update_file(file_path, change_type)


@mcp.tool()
async def update_files(files: List[Dict[str, str]]) -> dict:
    """Apply several file changes in one batch.

    Args:
        files: List of {"file_path": ..., "change_type": "created" | "modified" | "deleted"}

    Returns:
        Per-file results in input order with success and failure counts
    """
    if not index_tool:
        return {"success": False, "error": "Server not initialized"}

    return await index_tool.update_files(files)


@mcp.tool()
def get_relationships(file_path: str, max_depth: int = 3) -> dict:
    """Find components related to a file through imports, calls, inheritance and dependencies.

    Args:
        file_path: Path of the file to start from
        max_depth: Maximum number of hops (default: 3)

    Returns:
        Related components with relevance scores and distances
    """
    if not search_tool:
        return {"success": False, "error": "Server not initialized"}

    return search_tool.get_relationships(file_path, max_depth)


@mcp.tool()
def get_relationship_graph(
    file_path: str,
    relationship_types: Optional[List[str]] = None,
    max_depth: int = 3,
) -> dict:
    """Build a relationship graph around a file.

    Args:
        file_path: Path of the file at the center of the graph
        relationship_types: Edge types to follow (imports, exports, calls, extends, implements, uses, depends_on)
        max_depth: Maximum number of hops (default: 3)

    Returns:
        Graph nodes and edges with traversal statistics
    """
    if not search_tool:
        return {"success": False, "error": "Server not initialized"}

    return search_tool.get_relationship_graph(file_path, relationship_types, max_depth)


@mcp.tool()
async def get_file_context(file_path: str) -> dict:
    """Summarize an analyzed file: features, bias, relationships and suggested related files.

    Args:
        file_path: Path of an analyzed file

    Returns:
        Dictionary with the file summary and context explanation
    """
    if not search_tool:
        return {"success": False, "error": "Server not initialized"}

    return await search_tool.get_file_context(file_path)


@mcp.tool()
async def get_bias_analysis(file_path: Optional[str] = None) -> dict:
    """Report textual bias for one file or for the whole repository.

    Args:
        file_path: Optional path of an analyzed file

    Returns:
        Bias scores, distribution, indicators and improvement suggestions
    """
    if not index_tool:
        return {"success": False, "error": "Server not initialized"}

    return await index_tool.get_bias_analysis(file_path)


@mcp.tool()
def get_system_stats() -> dict:
    """Get statistics about stored representations, relationship edges, cache and configuration.

    Returns:
        Dictionary with system statistics
    """
    if not index_tool:
        return {"success": False, "error": "Server not initialized"}

    return index_tool.get_system_stats()


@mcp.tool()
async def health_check() -> dict:
    """Check connectivity to Ollama and the configured storage backends.

    Returns:
        Dictionary with per-service health
    """
    if not processor or not embeddings or not graph_store:
        return {"success": False, "error": "Server not initialized"}

    services = {"ollama": await embeddings.health_check()}

    backend = graph_store.backend
    if isinstance(backend, Neo4jGraphBackend):
        services["neo4j"] = backend.verify_connectivity()
    if graph_store.vector_index is not None:
        services["qdrant"] = graph_store.vector_index.health_check()

    return {
        "success": True,
        "healthy": all(services.values()),
        "services": services,
        "cache": embeddings.get_cache_stats(),
    }


if __name__ == "__main__":
    logger.info("Starting SACL MCP Server...")

    # Initialize components (runs in temporary event loop)
    asyncio.run(initialize_components())

    logger.info("Server ready!")

    # Run the MCP server (blocks until shutdown)
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise
    finally:
        if graph_store is not None:
            graph_store.close()
