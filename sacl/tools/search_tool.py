"""MCP tool for bias-aware code search and relationship queries."""

import logging
from typing import List, Optional

from ..indexer.models import RetrievalResult, to_jsonable
from ..processor import SACLProcessor

logger = logging.getLogger(__name__)


def format_result(rank: int, result: RetrievalResult, include_code: bool = True) -> dict:
    rep = result.code_snippet
    formatted = {
        "rank": rank,
        "file": rep.file_path,
        "language": rep.language,
        "score": round(result.bias_adjusted_score, 4),
        "textual_score": round(result.original_score, 4),
        "semantic_score": round(result.semantic_score, 4),
        "bias_score": round(rep.bias_score, 4),
        "functional_signature": rep.semantic_features.functional_signature,
        "behavior_pattern": rep.semantic_features.behavior_pattern,
        "regions": [
            {
                "lines": f"{region.start_line}-{region.end_line}",
                "score": round(region.relevance_score, 4),
                "snippet": region.snippet,
            }
            for region in result.localization_regions
        ],
        "explanation": result.explanation,
    }
    if include_code:
        formatted["code"] = rep.content
    return formatted


class SearchTool:
    """Tool for bias-aware search and relationship exploration."""

    def __init__(self, processor: SACLProcessor):
        """Initialize search tool.

        Args:
            processor: SACL processor bound to the repository
        """
        self.processor = processor

    async def query_code(self, query: str, limit: Optional[int] = None, include_code: bool = True) -> dict:
        """Search for code using natural language queries.

        Args:
            query: Natural language search query
            limit: Maximum number of results (configured default when omitted)
            include_code: Whether to return full file content with each result

        Returns:
            Dictionary with ranked results
        """
        try:
            logger.info(f"Searching for: {query}")
            results = await self.processor.query_code(query, limit)
            formatted = [format_result(i, r, include_code) for i, r in enumerate(results, 1)]
            return {"success": True, "query": query, "total_results": len(formatted),
                    "results": formatted}
        except Exception as e:
            logger.error(f"Error during search: {e}")
            return {"success": False, "error": str(e)}

    async def query_code_with_context(
        self, query: str, limit: Optional[int] = None, include_code: bool = True
    ) -> dict:
        try:
            logger.info(f"Searching with context for: {query}")
            results = await self.processor.query_code_with_context(query, limit)
            formatted = []
            for i, result in enumerate(results, 1):
                item = format_result(i, result, include_code)
                item.update(
                    {
                        "related_components": to_jsonable(result.related_components),
                        "relationship_graph": to_jsonable(result.relationship_graph),
                        "context_explanation": to_jsonable(result.context_explanation),
                        "dependency_chain": result.dependency_chain,
                    }
                )
                formatted.append(item)
            return {"success": True, "query": query, "total_results": len(formatted),
                    "results": formatted}
        except Exception as e:
            logger.error(f"Error during context search: {e}")
            return {"success": False, "error": str(e)}

    def get_relationships(self, file_path: str, max_depth: int = 3) -> dict:
        try:
            related = self.processor.get_related_components(file_path, max_depth)
            return {"success": True, **to_jsonable(related)}
        except Exception as e:
            logger.error(f"Error getting relationships for {file_path}: {e}")
            return {"success": False, "error": str(e)}

    def get_relationship_graph(
        self,
        file_path: str,
        relationship_types: Optional[List[str]] = None,
        max_depth: int = 3,
    ) -> dict:
        try:
            traversal = self.processor.get_relationship_graph(
                file_path, relationship_types, max_depth
            )
            return {"success": True, **to_jsonable(traversal)}
        except Exception as e:
            logger.error(f"Error building relationship graph for {file_path}: {e}")
            return {"success": False, "error": str(e)}

    async def get_file_context(self, file_path: str) -> dict:
        try:
            context = await self.processor.get_file_context(file_path)
            if not context["found"]:
                return {"success": False, "error": f"File not analyzed: {context['file_path']}"}
            return {"success": True, **to_jsonable(context)}
        except Exception as e:
            logger.error(f"Error getting file context for {file_path}: {e}")
            return {"success": False, "error": str(e)}
