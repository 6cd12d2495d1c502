"""Text completion using Ollama's generate API."""

import logging
from typing import Protocol, runtime_checkable

from ..errors import OracleError
from .embeddings import OllamaClientBase

logger = logging.getLogger(__name__)


@runtime_checkable
class CompletionProvider(Protocol):
    """Port for answering a prompt with text."""

    async def complete(self, prompt: str) -> str:
        ...


class OllamaCompletions(OllamaClientBase):
    """Generate completions with a local Ollama language model."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1",
        max_concurrent: int = 4,
        temperature: float = 0.1,
        timeout: float = 120.0,
    ):
        super().__init__(host, model, max_concurrent, timeout=timeout)
        self.temperature = temperature
        logger.info(f"Initialized Ollama completions with model: {model}")

    async def complete(self, prompt: str) -> str:
        """Generate a non-streamed completion.

        Raises:
            OracleError: If Ollama fails or returns an empty response
        """
        data = await self._post(
            "/api/generate",
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": self.temperature},
            },
        )
        text = data.get("response")
        if not isinstance(text, str) or not text.strip():
            raise OracleError("Ollama returned an empty completion")
        return text

