"""Base-level operations behind the CLI: init, update, list, remove and doctor.

Each function takes the process Config explicitly and opens the base's
vector store only for the duration of the call.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from doc_pal.config import PROVIDER_TYPES, BaseConfig, Config, check_base_name, now_ms
from doc_pal.embeddings import (
    DEFAULT_MODELS,
    EmbeddingProvider,
    OllamaStatus,
    ProviderConfig,
    check_ollama_availability,
    create_embedding_provider,
    has_model,
)
from doc_pal.errors import (
    BaseExists,
    DimensionMismatch,
    NothingToIndex,
    NotFound,
    ProviderUnavailable,
)
from doc_pal.indexer import IndexInfo, Indexer, IndexStats, IndexSummary, VectorStore
from doc_pal.indexer.walker import walk_docs_root

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig], EmbeddingProvider]


def provider_config_for_base(config: Config, base: BaseConfig) -> ProviderConfig:
    """Build provider settings for a registered base."""
    return ProviderConfig(
        type=base.provider,
        model=base.model,
        endpoint=config.endpoint_for(base.provider, base),
        api_key=config.api_key_for(base.provider, base),
        timeout=config.request_timeout,
    )


def make_provider(
    config: Config,
    base: BaseConfig,
    provider_factory: ProviderFactory = create_embedding_provider,
) -> EmbeddingProvider:
    """Build the provider of a base and check it matches the index dimension.

    Raises:
        ProviderUnavailable: If the provider is misconfigured.
        DimensionMismatch: If the model's dimension differs from the index's.
    """
    provider = provider_factory(provider_config_for_base(config, base))
    if provider.dimension != base.embedding_dimension:
        raise DimensionMismatch(base.embedding_dimension, provider.dimension)
    return provider


def resolve_model(config: Config, provider_type: str, model: str | None) -> str:
    """Pick the model: explicit, then the configured default for the default provider."""
    if model:
        return model
    if config.default_model and provider_type == config.default_provider:
        return config.default_model
    return DEFAULT_MODELS[provider_type]


def init_base(
    config: Config,
    docs_path: Path,
    name: str | None = None,
    provider_type: str | None = None,
    model: str | None = None,
    endpoint: str | None = None,
    description: str | None = None,
    provider_factory: ProviderFactory = create_embedding_provider,
) -> tuple[BaseConfig, IndexSummary]:
    """
    Create a new base from a docs folder and index every file in it.

    Raises:
        NotFound: If docs_path is not a directory.
        InvalidBaseName: If the name cannot be a directory under DOCPAL_HOME.
        BaseExists: If a base with that name already has a database.
        ProviderUnavailable: If the provider cannot be configured.
        NothingToIndex: If the folder has no markdown files.
    """
    docs_root = docs_path.resolve()
    if not docs_root.is_dir():
        raise NotFound(f"Directory not found: {docs_path}")

    name = check_base_name(config.home, name or docs_root.name)
    if config.base_exists(name):
        raise BaseExists(
            f'Base "{name}" already exists. Use "ai-doc-pal update" to refresh.'
        )

    provider_type = provider_type or config.default_provider
    if provider_type not in PROVIDER_TYPES:
        raise ProviderUnavailable(f"Unknown provider type: {provider_type}")
    model = resolve_model(config, provider_type, model)
    resolved_endpoint = endpoint or config.endpoint_for(provider_type)

    provider = provider_factory(
        ProviderConfig(
            type=provider_type,
            model=model,
            endpoint=resolved_endpoint,
            api_key=config.api_key_for(provider_type),
            timeout=config.request_timeout,
        )
    )

    # Refuse before creating anything on disk
    if next(walk_docs_root(docs_root), None) is None:
        raise NothingToIndex(f"No markdown files found in {docs_root}")

    logger.info("Initializing base %s", name)
    logger.info("  Provider:  %s", provider_type)
    logger.info("  Model:     %s", model)
    logger.info("  Dimension: %d", provider.dimension)

    store = VectorStore(config.db_path(name), provider.dimension)
    try:
        try:
            store.initialize()
            summary = Indexer(docs_root, store, provider).full_index()
            created = now_ms()
            store.set_index_info(
                IndexInfo(
                    name=name,
                    provider=provider_type,
                    model=model,
                    embedding_dimension=provider.dimension,
                    docs_path=str(docs_root),
                    created_at=created,
                    last_updated=created,
                )
            )
            store.verify_integrity()
        finally:
            store.close()
    except Exception:
        # A half-built base would block the next init
        config.delete_base_dir(name)
        raise

    base = BaseConfig(
        name=name,
        docs_path=str(docs_root),
        provider=provider_type,
        model=model,
        embedding_dimension=provider.dimension,
        endpoint=endpoint,
        description=(description or "").strip() or f"Documentation for {name}",
        created_at=created,
        last_updated=created,
    )
    config.registry().register_base(base)
    logger.info("Registered base %s (%s)", name, config.db_path(name))
    return base, summary


def find_base_for_path(config: Config, docs_path: Path) -> BaseConfig:
    """
    Find the base registered for a docs folder.

    Raises:
        NotFound: If no base is registered there or its database is gone.
    """
    base = config.registry().find_base_by_docs_path(docs_path)
    if base is None:
        raise NotFound(
            f"No index found for {docs_path.resolve()}. "
            'Run "ai-doc-pal init" first to create an index.'
        )
    if not config.base_exists(base.name):
        raise NotFound(f'Database for base "{base.name}" not found at {config.db_path(base.name)}')
    return base


def get_base(config: Config, name: str) -> BaseConfig:
    """
    Get a registered base by name.

    Raises:
        NotFound: If the base is not registered or has no database.
    """
    check_base_name(config.home, name)
    base = config.registry().get_base(name)
    if base is None or not config.base_exists(name):
        raise NotFound(f'Documentation base "{name}" not found.')
    return base


def update_base(
    config: Config,
    docs_path: Path,
    force: bool = False,
    provider_factory: ProviderFactory = create_embedding_provider,
) -> tuple[BaseConfig, IndexSummary]:
    """
    Re-index changed files of the base registered for docs_path.

    Raises:
        NotFound: If no base is registered for the folder.
        ProviderUnavailable: If the provider cannot be configured.
        DimensionMismatch: If the provider's dimension no longer matches the index.
    """
    base = find_base_for_path(config, docs_path)
    provider = make_provider(config, base, provider_factory)

    if force:
        logger.info("Force mode: re-embedding all files")

    with VectorStore(config.db_path(base.name), base.embedding_dimension) as store:
        summary = Indexer(Path(base.docs_path), store, provider).update(force=force)
        store.set_info("lastUpdated", str(now_ms()))
        store.verify_integrity()

    config.registry().touch_base(base.name)
    return base, summary


@dataclass
class BaseListing:
    """A registered base with its store statistics (None if unreadable)."""

    base: BaseConfig
    stats: IndexStats | None


def list_bases(config: Config) -> list[BaseListing]:
    """List registered bases with document and chunk counts."""
    listings = []
    for base in config.registry().list_bases():
        stats = None
        if config.base_exists(base.name):
            try:
                with VectorStore(config.db_path(base.name), base.embedding_dimension) as store:
                    stats = store.get_stats()
            except Exception as e:
                logger.warning("Stats unavailable for %s: %s", base.name, e)
        listings.append(BaseListing(base=base, stats=stats))
    return listings


def remove_base(config: Config, name: str) -> None:
    """
    Unregister a base and delete its database directory.

    Only a registered name or a directory holding a base database is deleted.

    Raises:
        InvalidBaseName: If the name cannot be a directory under DOCPAL_HOME.
        NotFound: If the base is neither registered nor on disk.
    """
    check_base_name(config.home, name)
    registered = config.registry().remove_base(name)
    if not registered and not config.base_exists(name):
        raise NotFound(f'Documentation base "{name}" not found.')
    config.delete_base_dir(name)
    logger.info("Removed base %s", name)


@dataclass
class DoctorReport:
    """Outcome of the environment checks."""

    ollama_endpoint: str
    ollama: OllamaStatus
    recommended_model: str
    has_recommended_model: bool
    openai_key: str | None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def run_doctor(config: Config, check: Callable[..., OllamaStatus] = check_ollama_availability) -> DoctorReport:
    """Check Ollama reachability, the recommended model and the OpenAI key."""
    recommended = DEFAULT_MODELS["ollama"]
    status = check(config.ollama_endpoint)
    problems = []

    has_recommended = has_model(status.models, recommended)
    if not status.available:
        problems.append(status.error or "Ollama not available")
    elif not has_recommended:
        problems.append(f'Recommended model "{recommended}" not found')

    return DoctorReport(
        ollama_endpoint=config.ollama_endpoint,
        ollama=status,
        recommended_model=recommended,
        has_recommended_model=has_recommended,
        openai_key=config.openai_api_key,
        problems=problems,
    )
