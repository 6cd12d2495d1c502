"""Shared fixtures: fake oracle providers, in-memory stores and small repositories on disk."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from sacl.config import SACLConfig
from sacl.errors import OracleError
from sacl.graph_db.graph_store import GraphStore
from sacl.graph_db.memory_backend import InMemoryGraphBackend
from sacl.indexer.semantic_augmenter import SemanticAugmenter
from sacl.processor import SACLProcessor

FIXED_VECTOR = [0.1, 0.2, 0.3, 0.4]

FEATURE_RESPONSE = (
    "1. Functional signature: takes a list of records and returns them in sorted order\n"
    "2. Behavior pattern: sorting with iteration over the input"
)


class FakeEmbedder:
    """Returns the same vector for every input and records what was embedded."""

    def __init__(self, vector: Optional[List[float]] = None):
        self.vector = list(vector or FIXED_VECTOR)
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return list(self.vector)


class FakeCompleter:
    def __init__(self, response: str = FEATURE_RESPONSE):
        self.response = response
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


class FailingEmbedder:
    async def embed(self, text: str) -> List[float]:
        raise OracleError("embedding service unavailable")


class FailingCompleter:
    async def complete(self, prompt: str) -> str:
        raise OracleError("completion service unavailable")


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def completer() -> FakeCompleter:
    return FakeCompleter()


@pytest.fixture
def augmenter(embedder, completer) -> SemanticAugmenter:
    return SemanticAugmenter(embedder, completer)


@pytest.fixture
def graph_store() -> GraphStore:
    return GraphStore(InMemoryGraphBackend(), namespace="test")


def write_files(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


SAMPLE_FILES = {
    "app.js": (
        "import { sortRecords } from './utils/sort';\n"
        "import fs from 'fs';\n"
        "\n"
        "export function main(records) {\n"
        "  const sorted = sortRecords(records);\n"
        "  return sorted;\n"
        "}\n"
    ),
    "utils/sort.js": (
        "export function sortRecords(items) {\n"
        "  const copy = items.slice();\n"
        "  for (let i = 0; i < copy.length; i++) {\n"
        "    for (let j = i + 1; j < copy.length; j++) {\n"
        "      if (copy[j].key < copy[i].key) {\n"
        "        const tmp = copy[i];\n"
        "        copy[i] = copy[j];\n"
        "        copy[j] = tmp;\n"
        "      }\n"
        "    }\n"
        "  }\n"
        "  return copy;\n"
        "}\n"
    ),
    "pkg/validate.py": (
        '"""Input validation helpers."""\n'
        "\n"
        "\n"
        "def check_email(value):\n"
        "    # very small sanity check\n"
        '    return "@" in value and "." in value\n'
    ),
    "node_modules/lib/index.js": "module.exports = function () {};\n",
}


@pytest.fixture
def write_repo():
    return write_files


@pytest.fixture
def sample_repo(tmp_path) -> Path:
    return write_files(tmp_path / "repo", SAMPLE_FILES)


@pytest.fixture
def make_processor(graph_store):
    """Build a processor over a repository with injectable oracle providers."""

    def factory(repo: Path, embedder=None, completer=None, **overrides) -> SACLProcessor:
        config = SACLConfig(repo_path=str(repo), namespace="test", **overrides)
        return SACLProcessor(
            config,
            graph_store,
            SemanticAugmenter(embedder or FakeEmbedder(), completer or FakeCompleter()),
        )

    return factory


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()


@pytest.fixture
def failing_completer() -> FailingCompleter:
    return FailingCompleter()
