"""Shared fixtures: isolated environment, a fake embedding provider and sample docs."""

import hashlib
import re
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pytest

from doc_pal.embeddings import EmbeddingProvider, ProviderConfig
from doc_pal.errors import ProviderUnavailable

FAKE_DIMENSION = 16

ENV_VARS = (
    "DOCPAL_HOME",
    "DOCPAL_REQUEST_TIMEOUT",
    "DOCPAL_AUTH_TOKEN",
    "DOCPAL_LOG_LEVEL",
    "DOCPAL_DEFAULT_PROVIDER",
    "OPENAI_API_KEY",
    "OLLAMA_HOST",
)


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words embeddings, no network."""

    type = "fake"

    def __init__(self, dimension: int = FAKE_DIMENSION, fail_on: str | None = None):
        super().__init__("fake-model", dimension)
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def embed_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            if self.fail_on and self.fail_on in text:
                raise ProviderUnavailable("fake provider is down")
            vector = np.zeros(self.dimension, dtype=np.float32)
            for word in re.findall(r"\w+", text.lower()):
                slot = int(hashlib.sha256(word.encode()).hexdigest(), 16) % self.dimension
                vector[slot] += 1.0
            norm = np.linalg.norm(vector)
            vectors.append(vector / norm if norm else vector)
        return vectors


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point DOCPAL_HOME at a temporary directory and clear provider settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    monkeypatch.setenv("DOCPAL_HOME", str(home))
    return home


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def provider_factory(fake_provider):
    """Provider factory that records the settings it was asked for."""
    requested: list[ProviderConfig] = []

    def factory(config: ProviderConfig) -> EmbeddingProvider:
        requested.append(config)
        return fake_provider

    factory.requested = requested  # type: ignore[attr-defined]
    return factory


@pytest.fixture
def docs_root(tmp_path) -> Path:
    """A small documentation tree."""
    root = tmp_path / "docs"
    (root / "guides").mkdir(parents=True)
    (root / "getting-started.md").write_text(
        "# Getting Started\n\nIntro to the project.\n\n## Install\n\nRun install with pip.\n"
    )
    (root / "guides" / "deploy.mdx").write_text(
        "import Tabs from '@theme/Tabs'\n\n"
        "# Deploying\n\nShip the service to production.\n\n"
        "<Tabs>\nhidden tab content\n</Tabs>\n\n"
        "## Rollback\n\nRevert to the previous release.\n"
    )
    (root / "notes.md").write_text("Plain notes about caching and retries.\n")
    return root
