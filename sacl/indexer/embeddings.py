"""Embedding generation using Ollama for local LLM inference."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import blake3
import httpx

from ..errors import OracleError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Port for turning text into a vector."""

    async def embed(self, text: str) -> List[float]:
        ...


class OllamaClientBase:
    """Shared HTTP plumbing for the Ollama embedding and generation APIs."""

    def __init__(self, host: str, model: str, max_concurrent: int = 4, timeout: float = 60.0):
        self.host = host.rstrip("/")
        self.model = model
        self.max_concurrent = max_concurrent
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop_id: Optional[int] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create an httpx client for the current event loop.

        Returns:
            httpx.AsyncClient instance for current event loop
        """
        try:
            loop_id = id(asyncio.get_running_loop())
        except RuntimeError:
            loop_id = None

        # Clients and semaphores are bound to the loop that created them
        if self._client is None or self._client_loop_id != loop_id:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._client_loop_id = loop_id
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            logger.debug(f"Created new httpx client for event loop {loop_id}")

        return self._client

    async def _post(self, path: str, payload: Dict[str, Any], max_retries: int = 3) -> Dict[str, Any]:
        """POST to the Ollama API, retrying server errors with exponential backoff.

        Raises:
            OracleError: If the request fails after all retries or the response is unusable
        """
        client = self._get_client()
        semaphore = self._semaphore or asyncio.Semaphore(self.max_concurrent)

        async with semaphore:
            last_error: Optional[Exception] = None
            for attempt in range(max_retries):
                try:
                    response = await client.post(f"{self.host}{path}", json=payload)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    last_error = e
                    # Retry on 500 errors (server overload) with exponential backoff
                    if e.response.status_code >= 500 and attempt < max_retries - 1:
                        wait_time = 2**attempt  # 1s, 2s, 4s
                        logger.warning(
                            f"Ollama {e.response.status_code} error on {path} "
                            f"(attempt {attempt + 1}/{max_retries}), retrying in {wait_time}s..."
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    logger.error(f"Ollama API error {e.response.status_code} on {path}")
                    raise OracleError(f"Ollama API error {e.response.status_code}") from e
                except httpx.HTTPError as e:
                    logger.error(f"Ollama API error: {e}")
                    raise OracleError(f"Ollama request failed: {e}") from e
                except ValueError as e:
                    logger.error(f"Unexpected API response format: {e}")
                    raise OracleError("Ollama returned invalid JSON") from e

            raise OracleError(f"Failed after {max_retries} attempts: {last_error}")

    async def health_check(self) -> bool:
        """Check if Ollama is healthy and the model is available.

        Returns:
            True if healthy, False otherwise
        """
        try:
            client = self._get_client()
            response = await client.get(f"{self.host}/api/tags")
            response.raise_for_status()

            model_names = [m["name"] for m in response.json().get("models", [])]
            # Check for exact match or match with :latest suffix
            if self.model not in model_names and f"{self.model}:latest" not in model_names:
                logger.warning(
                    f"Model '{self.model}' not found in Ollama. Available models: {model_names}"
                )
                logger.info(f"Run: ollama pull {self.model}")
                return False

            logger.info(f"Ollama health check passed. Model '{self.model}' is available.")
            return True

        except Exception as e:
            logger.error(f"Ollama health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.warning(f"Error closing httpx client: {e}")
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class OllamaEmbeddings(OllamaClientBase):
    """Generate embeddings using Ollama's local embedding models."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        cache_dir: Optional[Path] = None,
        max_concurrent: int = 4,
        max_tokens: int = 2048,
    ):
        """Initialize Ollama embeddings client.

        Args:
            host: Ollama API host URL
            model: Name of the embedding model to use
            cache_dir: Directory for caching embeddings (None to disable)
            max_concurrent: Maximum concurrent requests to Ollama
            max_tokens: Maximum token length for model (default: 2048 for nomic-embed-text)
        """
        super().__init__(host, model, max_concurrent)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.max_tokens = max_tokens

        if self.cache_dir:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Embedding cache enabled at: {self.cache_dir}")

        logger.info(f"Initialized Ollama embeddings with model: {model} (max_tokens: {max_tokens})")

    def _get_cache_key(self, text: str) -> str:
        # Include model name to invalidate cache if model changes
        return blake3.blake3(f"{self.model}:{text}".encode()).hexdigest()

    def _get_cached_embedding(self, cache_key: str) -> Optional[List[float]]:
        if not self.cache_dir:
            return None

        cache_file = self.cache_dir / f"{cache_key}.json"
        if cache_file.exists():
            try:
                with open(cache_file, "r") as f:
                    data = json.load(f)
                logger.debug(f"Cache hit for key: {cache_key}")
                return data["embedding"]
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Error reading cache file {cache_file}: {e}")
        return None

    def _save_cached_embedding(self, cache_key: str, embedding: List[float]) -> None:
        if not self.cache_dir:
            return

        cache_file = self.cache_dir / f"{cache_key}.json"
        try:
            with open(cache_file, "w") as f:
                json.dump({"embedding": embedding}, f)
        except OSError as e:
            logger.warning(f"Error writing cache file {cache_file}: {e}")

    def _truncate_text(self, text: str) -> str:
        """Truncate text to fit within model's token limit.

        Uses a conservative estimate of 3 characters per token with a 20% buffer.
        """
        max_chars = int(self.max_tokens * 3 * 0.8)
        if len(text) > max_chars:
            logger.debug(f"Truncated text from {len(text)} to {max_chars} chars")
            return text[:max_chars]
        return text

    async def embed(self, text: str) -> List[float]:
        """Embed a single text, consulting the on-disk cache first.

        Raises:
            OracleError: If Ollama fails or returns no embedding
        """
        text = self._truncate_text(text)
        cache_key = self._get_cache_key(text)
        cached = self._get_cached_embedding(cache_key)
        if cached is not None:
            return cached

        data = await self._post("/api/embeddings", {"model": self.model, "prompt": text})
        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise OracleError("Ollama response did not contain an embedding")

        self._save_cached_embedding(cache_key, embedding)
        return embedding

    async def generate_embeddings(self, texts: List[str]) -> List[Optional[List[float]]]:
        """Embed many texts concurrently; failed items come back as None."""
        results = await asyncio.gather(*(self.embed(text) for text in texts), return_exceptions=True)

        embeddings: List[Optional[List[float]]] = []
        failed_count = 0
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                failed_count += 1
                logger.warning(f"Failed to generate embedding for text {i}: {result}")
                embeddings.append(None)
            else:
                embeddings.append(result)

        if failed_count > 0:
            logger.warning(f"{failed_count}/{len(texts)} embeddings failed")
        return embeddings

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get statistics about the embedding cache."""
        if not self.cache_dir:
            return {"enabled": False}

        cache_files = list(self.cache_dir.glob("*.json"))
        total_size = sum(f.stat().st_size for f in cache_files)
        return {
            "enabled": True,
            "cache_dir": str(self.cache_dir),
            "cached_embeddings": len(cache_files),
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }
