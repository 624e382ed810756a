"""Tests for the embedding providers."""

import json

import httpx
import numpy as np
import pytest

from doc_pal.embeddings import (
    CompatibleProvider,
    OllamaProvider,
    OpenAIProvider,
    ProviderConfig,
    check_ollama_availability,
    create_embedding_provider,
    get_model_dimension,
    has_model,
)
from doc_pal.errors import ProviderError, ProviderUnavailable


def mock_transport(handler, seen: list[httpx.Request] | None = None) -> httpx.MockTransport:
    def record(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)

    return httpx.MockTransport(record)


class TestModelDimensions:
    @pytest.mark.parametrize(
        ("model", "expected"),
        [
            ("nomic-embed-text", 768),
            ("mxbai-embed-large", 1024),
            ("all-minilm", 384),
            ("text-embedding-3-small", 1536),
            ("text-embedding-3-large", 3072),
            ("text-embedding-ada-002", 1536),
            ("unknown-model", 768),
        ],
    )
    def test_known_dimensions(self, model: str, expected: int):
        assert get_model_dimension(model) == expected

    def test_unknown_openai_model_defaults_to_1536(self):
        provider = OpenAIProvider("some-new-model", api_key="sk-test")
        assert provider.dimension == 1536


class TestOllamaProvider:
    def test_posts_one_request_per_text(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            prompt = json.loads(request.content)["prompt"]
            return httpx.Response(200, json={"embedding": [float(len(prompt)), 0.0]})

        provider = OllamaProvider(
            endpoint="http://ollama:11434/", transport=mock_transport(handler, seen)
        )
        vectors = provider.embed_batch(["a", "bbb"])

        assert [v.tolist() for v in vectors] == [[1.0, 0.0], [3.0, 0.0]]
        assert all(v.dtype == np.float32 for v in vectors)
        assert [str(r.url) for r in seen] == ["http://ollama:11434/api/embeddings"] * 2
        assert json.loads(seen[0].content) == {"model": "nomic-embed-text", "prompt": "a"}

    def test_server_error_is_unavailable(self):
        provider = OllamaProvider(
            transport=mock_transport(lambda r: httpx.Response(500, text="model not loaded"))
        )
        with pytest.raises(ProviderUnavailable, match="500"):
            provider.embed("hello")

    def test_connection_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = OllamaProvider(transport=mock_transport(handler))
        with pytest.raises(ProviderUnavailable, match="Cannot connect"):
            provider.embed("hello")

    def test_timeout_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        provider = OllamaProvider(timeout=1.5, transport=mock_transport(handler))
        with pytest.raises(ProviderUnavailable, match="timed out after 1.5s"):
            provider.embed("hello")

    def test_missing_embedding_is_provider_error(self):
        provider = OllamaProvider(transport=mock_transport(lambda r: httpx.Response(200, json={})))
        with pytest.raises(ProviderError):
            provider.embed("hello")


class TestOpenAIProvider:
    def test_sends_bearer_and_sorts_by_index(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"index": 1, "embedding": [0.0, 1.0]},
                        {"index": 0, "embedding": [1.0, 0.0]},
                    ]
                },
            )

        provider = OpenAIProvider(
            "text-embedding-3-small", api_key="sk-test", transport=mock_transport(handler, seen)
        )
        vectors = provider.embed_batch(["first", "second"])

        assert [v.tolist() for v in vectors] == [[1.0, 0.0], [0.0, 1.0]]
        request = seen[0]
        assert str(request.url) == "https://api.openai.com/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {
            "model": "text-embedding-3-small",
            "input": ["first", "second"],
        }

    def test_empty_batch_makes_no_request(self):
        seen: list[httpx.Request] = []
        provider = OpenAIProvider(
            "text-embedding-3-small",
            api_key="sk-test",
            transport=mock_transport(lambda r: httpx.Response(200, json={}), seen),
        )
        assert provider.embed_batch([]) == []
        assert seen == []

    def test_count_mismatch_is_provider_error(self):
        handler = lambda r: httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})  # noqa: E731
        provider = OpenAIProvider("m", api_key="k", transport=mock_transport(handler))
        with pytest.raises(ProviderError, match="1 embeddings for 2 inputs"):
            provider.embed_batch(["a", "b"])

    def test_unauthorized_is_unavailable(self):
        handler = lambda r: httpx.Response(401, json={"error": "bad key"})  # noqa: E731
        provider = OpenAIProvider("m", api_key="k", transport=mock_transport(handler))
        with pytest.raises(ProviderUnavailable, match="401"):
            provider.embed("hello")


class TestCompatibleProvider:
    def test_uses_custom_endpoint_without_key(self):
        seen: list[httpx.Request] = []
        handler = lambda r: httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]})  # noqa: E731
        provider = CompatibleProvider(
            "local-model", endpoint="http://localhost:1234/v1", transport=mock_transport(handler, seen)
        )

        assert provider.embed("x").tolist() == [0.5]
        assert str(seen[0].url) == "http://localhost:1234/v1/embeddings"
        assert "Authorization" not in seen[0].headers
        assert provider.dimension == 768


class TestCreateEmbeddingProvider:
    def test_ollama(self):
        provider = create_embedding_provider(ProviderConfig(type="ollama", model="all-minilm"))
        assert isinstance(provider, OllamaProvider)
        assert provider.dimension == 384
        assert provider.type == "ollama"

    def test_openai_requires_key(self):
        with pytest.raises(ProviderUnavailable, match="OPENAI_API_KEY"):
            create_embedding_provider(ProviderConfig(type="openai", model="text-embedding-3-small"))

    def test_openai_with_key(self):
        provider = create_embedding_provider(
            ProviderConfig(type="openai", model="text-embedding-3-large", api_key="sk")
        )
        assert isinstance(provider, OpenAIProvider)
        assert provider.dimension == 3072

    def test_compatible_requires_endpoint(self):
        with pytest.raises(ProviderUnavailable, match="endpoint"):
            create_embedding_provider(ProviderConfig(type="compatible", model="m"))

    def test_unknown_type(self):
        with pytest.raises(ProviderUnavailable, match="Unknown provider type"):
            create_embedding_provider(ProviderConfig(type="cohere", model="m"))

    def test_timeout_is_passed_through(self):
        provider = create_embedding_provider(
            ProviderConfig(type="ollama", model="nomic-embed-text", timeout=5.0)
        )
        assert provider.timeout == 5.0


class TestCheckOllamaAvailability:
    def test_lists_models(self):
        handler = lambda r: httpx.Response(  # noqa: E731
            200, json={"models": [{"name": "nomic-embed-text:latest"}, {"name": "llama3:8b"}]}
        )
        status = check_ollama_availability(transport=mock_transport(handler))

        assert status.available
        assert status.models == ["nomic-embed-text:latest", "llama3:8b"]

    def test_missing_model(self):
        handler = lambda r: httpx.Response(200, json={"models": [{"name": "llama3:8b"}]})  # noqa: E731
        status = check_ollama_availability(model="nomic-embed-text", transport=mock_transport(handler))

        assert not status.available
        assert "not found" in status.error

    def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        status = check_ollama_availability(transport=mock_transport(handler))
        assert not status.available
        assert "Cannot connect" in status.error

    def test_has_model_matches_tags(self):
        assert has_model(["nomic-embed-text:latest"], "nomic-embed-text")
        assert has_model(["all-minilm"], "all-minilm")
        assert not has_model(["nomic-embed-text-v2:latest"], "nomic-embed-text")
