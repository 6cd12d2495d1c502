import asyncio
import json

import httpx
import pytest

from sacl.errors import OracleError
from sacl.indexer.completions import CompletionProvider, OllamaCompletions
from sacl.indexer.embeddings import EmbeddingProvider, OllamaEmbeddings


def install_transport(client, handler):
    """Point an Ollama client at a mock transport bound to the running loop."""
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client._client_loop_id = id(asyncio.get_running_loop())
    client._semaphore = asyncio.Semaphore(client.max_concurrent)


class Recorder:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


async def test_embed_posts_prompt_and_caches(tmp_path):
    recorder = Recorder(body={"embedding": [0.5, 0.25]})
    embeddings = OllamaEmbeddings(host="http://ollama:11434/", cache_dir=tmp_path / "cache")
    install_transport(embeddings, recorder)

    assert await embeddings.embed("sort records") == [0.5, 0.25]
    assert await embeddings.embed("sort records") == [0.5, 0.25]

    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert str(request.url) == "http://ollama:11434/api/embeddings"
    assert json.loads(request.content) == {"model": "nomic-embed-text", "prompt": "sort records"}
    assert embeddings.get_cache_stats()["cached_embeddings"] == 1
    await embeddings.close()


async def test_embed_without_cache():
    recorder = Recorder(body={"embedding": [1.0]})
    embeddings = OllamaEmbeddings()
    install_transport(embeddings, recorder)

    await embeddings.embed("a")
    await embeddings.embed("a")

    assert len(recorder.requests) == 2
    assert embeddings.get_cache_stats() == {"enabled": False}


async def test_embed_truncates_long_text():
    recorder = Recorder(body={"embedding": [1.0]})
    embeddings = OllamaEmbeddings(max_tokens=10)
    install_transport(embeddings, recorder)

    await embeddings.embed("x" * 100)

    assert json.loads(recorder.requests[0].content)["prompt"] == "x" * 24


@pytest.mark.parametrize(
    "status,body",
    [(404, {"error": "model not found"}), (200, {"embedding": []}), (200, {})],
)
async def test_embed_failures_raise_oracle_error(status, body):
    embeddings = OllamaEmbeddings()
    install_transport(embeddings, Recorder(status=status, body=body))

    with pytest.raises(OracleError):
        await embeddings.embed("text")


async def test_transport_errors_raise_oracle_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    embeddings = OllamaEmbeddings()
    install_transport(embeddings, refuse)

    with pytest.raises(OracleError):
        await embeddings.embed("text")


async def test_generate_embeddings_isolates_failures():
    def handler(request):
        prompt = json.loads(request.content)["prompt"]
        if prompt == "bad":
            return httpx.Response(400, json={"error": "bad input"})
        return httpx.Response(200, json={"embedding": [float(len(prompt))]})

    embeddings = OllamaEmbeddings()
    install_transport(embeddings, handler)

    assert await embeddings.generate_embeddings(["ab", "bad", "abcd"]) == [[2.0], None, [4.0]]


async def test_completion():
    recorder = Recorder(body={"response": "1. Functional signature: adds numbers"})
    completions = OllamaCompletions(model="llama3.1", temperature=0.2)
    install_transport(completions, recorder)

    assert await completions.complete("prompt") == "1. Functional signature: adds numbers"
    payload = json.loads(recorder.requests[0].content)
    assert payload["stream"] is False
    assert payload["options"] == {"temperature": 0.2}


async def test_empty_completion_raises():
    completions = OllamaCompletions()
    install_transport(completions, Recorder(body={"response": "  "}))

    with pytest.raises(OracleError):
        await completions.complete("prompt")


@pytest.mark.parametrize(
    "models,healthy",
    [
        ([{"name": "nomic-embed-text:latest"}], True),
        ([{"name": "nomic-embed-text"}], True),
        ([{"name": "llama3.1"}], False),
    ],
)
async def test_health_check(models, healthy):
    embeddings = OllamaEmbeddings()
    install_transport(embeddings, Recorder(body={"models": models}))

    assert await embeddings.health_check() is healthy


def test_clients_satisfy_ports():
    assert isinstance(OllamaEmbeddings(), EmbeddingProvider)
    assert isinstance(OllamaCompletions(), CompletionProvider)
