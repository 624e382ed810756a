"""Embedding provider interface and model table."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

# Output size of known embedding models
MODEL_DIMENSIONS = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

DEFAULT_MODELS = {
    "ollama": "nomic-embed-text",
    "openai": "text-embedding-3-small",
    "compatible": "text-embedding-3-small",
}

FALLBACK_DIMENSION = 768


def get_model_dimension(model: str, default: int = FALLBACK_DIMENSION) -> int:
    """Look up a model's embedding dimension, falling back to ``default``."""
    return MODEL_DIMENSIONS.get(model, default)


@dataclass
class ProviderConfig:
    """Settings needed to build an embedding provider."""

    type: str
    model: str
    endpoint: str | None = None
    api_key: str | None = None
    timeout: float = 60.0


class EmbeddingProvider(ABC):
    """Turns text into fixed-length float32 vectors.

    ``embed_batch`` must return one vector per input, in input order.
    Backend failures raise ProviderUnavailable.
    """

    type: str = ""

    def __init__(self, model: str, dimension: int):
        self.model = model
        self.dimension = dimension

    @abstractmethod
    def embed_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Embed several texts."""

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        return self.embed_batch([text])[0]
