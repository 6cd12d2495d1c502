"""MCP tool for ingesting repositories and applying explicit file updates."""

import logging
from typing import Dict, List, Optional

from ..indexer.bias_detector import bias_level
from ..indexer.models import to_jsonable
from ..processor import SACLProcessor

logger = logging.getLogger(__name__)


class IndexingTool:
    """Tool for repository analysis, file updates and bias reporting."""

    def __init__(self, processor: SACLProcessor):
        """Initialize indexing tool.

        Args:
            processor: SACL processor bound to the repository
        """
        self.processor = processor

    async def analyze_repository(self, repo_path: Optional[str] = None) -> dict:
        """Run the full pipeline over a repository.

        Args:
            repo_path: Directory to scan (the configured repository root by default)

        Returns:
            Dictionary with processing statistics
        """
        logger.info(f"Starting repository analysis: {repo_path or self.processor.discovery.root}")
        try:
            stats = await self.processor.process_repository(repo_path)
            return {
                "success": True,
                "stats": {
                    "files_processed": stats.files_processed,
                    "total_files": stats.total_files,
                    "bias_detected": stats.bias_detected,
                    "average_bias_score": round(stats.average_bias_score, 4),
                    "processing_time_ms": round(stats.processing_time, 1),
                    "failed_files": stats.failed_files,
                },
                "message": (
                    f"Analyzed {stats.files_processed}/{stats.total_files} files, "
                    f"{stats.bias_detected} above bias threshold"
                ),
            }

        except Exception as e:
            logger.error(f"Error analyzing repository: {e}")
            return {"success": False, "error": str(e)}

    async def update_file(self, file_path: str, change_type: str) -> dict:
        try:
            result = await self.processor.update_file(file_path, change_type)
            return {"file_path": file_path, "change_type": change_type, **result}
        except Exception as e:
            logger.error(f"Error updating {file_path}: {e}")
            return {"success": False, "error": str(e)}

    async def update_files(self, files: List[Dict[str, str]]) -> dict:
        """Apply a batch of file changes.

        Args:
            files: Items with ``file_path`` and ``change_type``

        Returns:
            Dictionary with per-file results in input order; invalid items fail
            individually
        """
        try:
            summary = await self.processor.update_files(files)
            return {"success": True, **summary}
        except Exception as e:
            logger.error(f"Error during batch update: {e}")
            return {"success": False, "error": str(e)}

    async def get_bias_analysis(self, file_path: Optional[str] = None) -> dict:
        try:
            analysis = await self.processor.get_bias_analysis(file_path)
            if file_path and not analysis:
                return {"success": False, "error": f"File not analyzed: {file_path}"}
            if "average_bias" in analysis:
                analysis["average_bias_level"] = bias_level(analysis["average_bias"])
            return {"success": True, "analysis": to_jsonable(analysis)}
        except Exception as e:
            logger.error(f"Error getting bias analysis: {e}")
            return {"success": False, "error": str(e)}

    def get_system_stats(self) -> dict:
        try:
            return {"success": True, "stats": to_jsonable(self.processor.get_system_stats())}
        except Exception as e:
            logger.error(f"Error getting stats: {e}")
            return {"success": False, "error": str(e)}
