"""HTTP embedding backends: Ollama, OpenAI and OpenAI-compatible servers."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import numpy as np

from doc_pal.embeddings.base import EmbeddingProvider, get_model_dimension
from doc_pal.errors import ProviderError, ProviderUnavailable

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_OPENAI_ENDPOINT = "https://api.openai.com/v1"
AVAILABILITY_TIMEOUT = 3.0


class HTTPEmbeddingProvider(EmbeddingProvider):
    """Shared request handling for providers that talk JSON over HTTP."""

    label = "Embedding"

    def __init__(
        self,
        model: str,
        dimension: int,
        endpoint: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(model, dimension)
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self._api_key = api_key
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return httpx.Client(
            base_url=self.endpoint,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _post(self, client: httpx.Client, path: str, payload: dict[str, Any]) -> dict:
        """POST a JSON payload and decode the JSON response.

        Raises:
            ProviderUnavailable: On timeouts, connection errors and non-2xx replies.
            ProviderError: If the reply is not a JSON object.
        """
        try:
            response = client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderUnavailable(
                f"{self.label} request to {self.endpoint} timed out after {self.timeout}s"
            ) from e
        except httpx.RequestError as e:
            raise ProviderUnavailable(f"Cannot connect to {self.endpoint}: {e}") from e

        if not response.is_success:
            raise ProviderUnavailable(
                f"{self.label} embedding failed ({response.status_code}): {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"{self.label} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{self.label} returned an unexpected response")
        return data


class OllamaProvider(HTTPEmbeddingProvider):
    """Local embeddings through Ollama's /api/embeddings endpoint."""

    type = "ollama"
    label = "Ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(
            model,
            get_model_dimension(model),
            endpoint,
            timeout=timeout,
            transport=transport,
        )

    def embed_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        # The endpoint takes one prompt per request
        vectors = []
        with self._client() as client:
            for text in texts:
                data = self._post(client, "api/embeddings", {"model": self.model, "prompt": text})
                embedding = data.get("embedding")
                if not isinstance(embedding, list):
                    raise ProviderError("Ollama response has no embedding")
                vectors.append(np.asarray(embedding, dtype=np.float32))
        return vectors


class OpenAIProvider(HTTPEmbeddingProvider):
    """Embeddings through the OpenAI /embeddings API."""

    type = "openai"
    label = "OpenAI"

    def __init__(
        self,
        model: str,
        api_key: str | None,
        endpoint: str = DEFAULT_OPENAI_ENDPOINT,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        dimension: int | None = None,
    ):
        super().__init__(
            model,
            dimension or get_model_dimension(model, default=1536),
            endpoint,
            api_key=api_key,
            timeout=timeout,
            transport=transport,
        )

    def embed_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        if not texts:
            return []

        with self._client() as client:
            data = self._post(client, "embeddings", {"model": self.model, "input": list(texts)})

        items = data.get("data")
        if not isinstance(items, list) or len(items) != len(texts):
            raise ProviderError(
                f"{self.label} returned {len(items) if isinstance(items, list) else 0} "
                f"embeddings for {len(texts)} inputs"
            )

        # Results may arrive out of order; "index" points back to the input
        try:
            items = sorted(items, key=lambda item: item["index"])
            return [np.asarray(item["embedding"], dtype=np.float32) for item in items]
        except (KeyError, TypeError) as e:
            raise ProviderError(f"{self.label} returned malformed embeddings: {e}") from e


class CompatibleProvider(OpenAIProvider):
    """Any server speaking the OpenAI embeddings wire format (LM Studio, vLLM, ...)."""

    type = "compatible"
    label = "Embedding"

    def __init__(
        self,
        model: str,
        endpoint: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(
            model,
            api_key,
            endpoint=endpoint,
            timeout=timeout,
            transport=transport,
            dimension=get_model_dimension(model),
        )


@dataclass
class OllamaStatus:
    """Result of probing an Ollama server."""

    available: bool
    models: list[str] = field(default_factory=list)
    error: str | None = None


def check_ollama_availability(
    endpoint: str = DEFAULT_OLLAMA_ENDPOINT,
    model: str | None = None,
    timeout: float = AVAILABILITY_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> OllamaStatus:
    """Check that Ollama answers and, optionally, that a model is pulled."""
    try:
        with httpx.Client(base_url=endpoint, timeout=timeout, transport=transport) as client:
            response = client.get("api/tags")
    except httpx.RequestError as e:
        return OllamaStatus(available=False, error=f"Cannot connect to Ollama: {e}")

    if not response.is_success:
        return OllamaStatus(
            available=False, error=f"Ollama responded with {response.status_code}"
        )

    try:
        models = [m["name"] for m in response.json().get("models", [])]
    except (ValueError, KeyError, TypeError, AttributeError):
        return OllamaStatus(available=False, error="Ollama returned an unexpected response")

    if model and not has_model(models, model):
        return OllamaStatus(available=False, models=models, error=f'Model "{model}" not found')

    return OllamaStatus(available=True, models=models)


def has_model(models: list[str], model: str) -> bool:
    """Match a model name with or without its tag (e.g. "nomic-embed-text:latest")."""
    return any(name == model or name.startswith(f"{model}:") for name in models)
