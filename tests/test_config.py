import logging
from pathlib import Path

import pytest

from sacl.config import SACLConfig, configure_logging, get_env_config
from sacl.graph_db.graph_store import build_graph_store
from sacl.graph_db.memory_backend import InMemoryGraphBackend


def test_defaults(monkeypatch):
    for name in ("SACL_REPO_PATH", "SACL_NAMESPACE", "SACL_SOURCE_EXTENSIONS", "CACHE_PATH"):
        monkeypatch.delenv(name, raising=False)

    config = get_env_config()

    assert config.repo_path == "/workspace"
    assert config.namespace == "workspace"
    assert config.bias_threshold == 0.5
    assert config.cache_path is None
    assert ".py" in config.source_extensions


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("SACL_REPO_PATH", "/code/my-service/")
    monkeypatch.delenv("SACL_NAMESPACE", raising=False)
    monkeypatch.setenv("SACL_BIAS_THRESHOLD", "0.7")
    monkeypatch.setenv("SACL_MAX_RESULTS", "5")
    monkeypatch.setenv("SACL_CACHE_ENABLED", "False")
    monkeypatch.setenv("SACL_SOURCE_EXTENSIONS", ".py, .go")
    monkeypatch.setenv("CACHE_PATH", str(tmp_path))
    monkeypatch.setenv("GRAPH_BACKEND", "Memory")
    monkeypatch.setenv("ENABLE_VECTOR_INDEX", "true")

    config = get_env_config()

    assert config.namespace == "my-service"
    assert config.bias_threshold == 0.7
    assert config.max_results == 5
    assert config.cache_enabled is False
    assert config.source_extensions == [".py", ".go"]
    assert config.cache_path == Path(tmp_path)
    assert config.graph_backend == "memory"
    assert config.enable_vector_index is True


def test_to_dict_hides_password():
    data = SACLConfig(neo4j_password="secret").to_dict()

    assert "neo4j_password" not in data
    assert "secret" not in str(data)


def test_build_in_memory_store():
    store = build_graph_store(SACLConfig(namespace="svc"))

    assert isinstance(store.backend, InMemoryGraphBackend)
    assert store.namespace == "svc"
    assert store.vector_index is None


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[len(handlers):]:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_configure_logging_writes_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "sacl.log"

    configure_logging("DEBUG", str(log_file))
    logging.getLogger("sacl.test").info("indexed 3 files")

    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "sacl.test - INFO - indexed 3 files" in log_file.read_text()
