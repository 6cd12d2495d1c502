"""Environment configuration and logging setup."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .indexer.file_discovery import DEFAULT_EXTENSIONS


@dataclass
class SACLConfig:
    repo_path: str = "/workspace"
    namespace: str = "workspace"
    bias_threshold: float = 0.5
    max_results: int = 10
    cache_enabled: bool = True
    max_concurrent: int = 4
    source_extensions: List[str] = field(default_factory=lambda: sorted(DEFAULT_EXTENSIONS))

    ollama_host: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    llm_model: str = "llama3.1"
    cache_path: Optional[Path] = None
    max_concurrent_embeddings: int = 4

    graph_backend: str = "memory"
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"

    enable_vector_index: bool = False
    qdrant_host: str = "localhost"
    qdrant_port: int = 6333
    vector_size: int = 768

    def to_dict(self) -> Dict[str, Any]:
        """Configuration for status output; the Neo4j password is not included."""
        data = asdict(self)
        data.pop("neo4j_password")
        data["cache_path"] = str(self.cache_path) if self.cache_path else None
        return data


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def get_env_config() -> SACLConfig:
    """Get configuration from environment variables."""
    repo_path = os.getenv("SACL_REPO_PATH", "/workspace")
    extensions = os.getenv("SACL_SOURCE_EXTENSIONS")
    cache_path = os.getenv("CACHE_PATH")

    return SACLConfig(
        repo_path=repo_path,
        namespace=os.getenv("SACL_NAMESPACE")
        or os.path.basename(os.path.normpath(repo_path))
        or "default",
        bias_threshold=float(os.getenv("SACL_BIAS_THRESHOLD", "0.5")),
        max_results=int(os.getenv("SACL_MAX_RESULTS", "10")),
        cache_enabled=_flag("SACL_CACHE_ENABLED", "true"),
        max_concurrent=int(os.getenv("SACL_MAX_CONCURRENT", "4")),
        source_extensions=[ext.strip() for ext in extensions.split(",") if ext.strip()]
        if extensions
        else sorted(DEFAULT_EXTENSIONS),
        ollama_host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
        llm_model=os.getenv("LLM_MODEL", "llama3.1"),
        cache_path=Path(cache_path) if cache_path else None,
        max_concurrent_embeddings=int(os.getenv("MAX_CONCURRENT_EMBEDDINGS", "4")),
        graph_backend=os.getenv("GRAPH_BACKEND", "memory").lower(),
        neo4j_uri=os.getenv("NEO4J_URI", "bolt://localhost:7687"),
        neo4j_user=os.getenv("NEO4J_USER", "neo4j"),
        neo4j_password=os.getenv("NEO4J_PASSWORD", "password"),
        enable_vector_index=_flag("ENABLE_VECTOR_INDEX", "false"),
        qdrant_host=os.getenv("QDRANT_HOST", "localhost"),
        qdrant_port=int(os.getenv("QDRANT_PORT", "6333")),
        vector_size=int(os.getenv("VECTOR_SIZE", "768")),
    )


def configure_logging(log_level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Install console and file handlers on the root logger."""
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_file = log_file or os.getenv("LOG_FILE", "/tmp/sacl-server.log")

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Console handler (stderr keeps stdio transports clean)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
