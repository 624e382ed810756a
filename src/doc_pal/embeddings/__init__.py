"""
Embedding providers for ai-doc-pal.

One interface (embed / embed_batch / dimension) with a class per backend,
selected by provider type.
"""

import httpx

from doc_pal.embeddings.base import (
    DEFAULT_MODELS,
    MODEL_DIMENSIONS,
    EmbeddingProvider,
    ProviderConfig,
    get_model_dimension,
)
from doc_pal.embeddings.providers import (
    DEFAULT_OLLAMA_ENDPOINT,
    CompatibleProvider,
    OllamaProvider,
    OllamaStatus,
    OpenAIProvider,
    check_ollama_availability,
    has_model,
)
from doc_pal.errors import ProviderUnavailable


def create_embedding_provider(
    config: ProviderConfig,
    transport: httpx.BaseTransport | None = None,
) -> EmbeddingProvider:
    """Build the provider for ``config.type``.

    Raises:
        ProviderUnavailable: If the type is unknown or required settings are missing.
    """
    if config.type == "ollama":
        return OllamaProvider(
            model=config.model or DEFAULT_MODELS["ollama"],
            endpoint=config.endpoint or DEFAULT_OLLAMA_ENDPOINT,
            timeout=config.timeout,
            transport=transport,
        )
    if config.type == "openai":
        if not config.api_key:
            raise ProviderUnavailable(
                "OpenAI provider requires an API key (set OPENAI_API_KEY)"
            )
        kwargs = {"endpoint": config.endpoint} if config.endpoint else {}
        return OpenAIProvider(
            model=config.model or DEFAULT_MODELS["openai"],
            api_key=config.api_key,
            timeout=config.timeout,
            transport=transport,
            **kwargs,
        )
    if config.type == "compatible":
        if not config.endpoint:
            raise ProviderUnavailable("Compatible provider requires an endpoint")
        return CompatibleProvider(
            model=config.model,
            endpoint=config.endpoint,
            api_key=config.api_key,
            timeout=config.timeout,
            transport=transport,
        )
    raise ProviderUnavailable(f"Unknown provider type: {config.type}")


__all__ = [
    "DEFAULT_MODELS",
    "MODEL_DIMENSIONS",
    "CompatibleProvider",
    "EmbeddingProvider",
    "OllamaProvider",
    "OllamaStatus",
    "OpenAIProvider",
    "ProviderConfig",
    "check_ollama_availability",
    "create_embedding_provider",
    "get_model_dimension",
    "has_model",
]
