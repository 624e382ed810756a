"""Main entry point for the ai-doc-pal CLI and MCP server."""

import argparse
import hmac
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from fastmcp import FastMCP
from fastmcp.server.auth import AccessToken, TokenVerifier

from doc_pal import __version__
from doc_pal.commands import (
    ProviderFactory,
    get_base,
    init_base,
    list_bases,
    make_provider,
    remove_base,
    resolve_model,
    run_doctor,
    update_base,
)
from doc_pal.config import BASE_SETTING_KEYS, GLOBAL_SETTING_KEYS, BaseConfig, Config
from doc_pal.embeddings import check_ollama_availability, create_embedding_provider
from doc_pal.errors import DocPalError, NotFound, ProviderUnavailable
from doc_pal.indexer import IndexSummary, VectorStore
from doc_pal.service import QueryService
from doc_pal.tools import register_tools

logger = logging.getLogger(__name__)

SECRET_KEYS = {"openaiApiKey", "api_key"}


class StaticTokenVerifier(TokenVerifier):
    """Accepts exactly one bearer token, granting read access to the base."""

    def __init__(self, token: str):
        super().__init__()
        self._token = token.encode("utf-8")

    async def verify_token(self, token: str) -> AccessToken | None:
        if token and hmac.compare_digest(token.encode("utf-8"), self._token):
            return AccessToken(token=token, client_id="ai-doc-pal", scopes=["read"])
        logger.warning("Rejected bearer token")
        return None


def create_server(
    config: Config,
    base: BaseConfig,
    store: VectorStore,
    provider_factory: ProviderFactory = create_embedding_provider,
) -> FastMCP:
    """Create the MCP server for one documentation base.

    Args:
        config: Configuration instance with all settings.
        base: The registered base to serve.
        store: Open vector store of that base.
        provider_factory: Builds the embedding provider on first search.
    """
    mcp = FastMCP(
        name=f"ai-doc-pal:{base.name}",
        instructions=base.description or f"Documentation for {base.name}",
        auth=StaticTokenVerifier(config.auth_token) if config.auth_token else None,
    )

    service = QueryService(
        store,
        Path(base.docs_path),
        lambda: make_provider(config, base, provider_factory),
    )

    logger.info("Registering tools...")
    register_tools(mcp, service, base.name)

    logger.info("Server configured successfully")
    return mcp


def _mask(key: str, value: object) -> object:
    if key in SECRET_KEYS and value:
        return "***"
    return value


def _print_summary(summary: IndexSummary) -> None:
    print(
        f"Processed {summary.processed} files: {summary.added} added, "
        f"{summary.updated} updated, {summary.deleted} deleted, "
        f"{summary.skipped} unchanged, {summary.errors} errors "
        f"({summary.chunks} chunks)"
    )


def cmd_init(config: Config, args: argparse.Namespace) -> int:
    provider_type = args.provider or config.default_provider
    if provider_type == "ollama":
        endpoint = args.endpoint or config.ollama_endpoint
        model = resolve_model(config, provider_type, args.model)
        status = check_ollama_availability(endpoint, model)
        if not status.available:
            raise ProviderUnavailable(
                f"{status.error}. Make sure Ollama is running and run: ollama pull {model}"
            )

    base, summary = init_base(
        config,
        Path(args.path),
        name=args.name,
        provider_type=args.provider,
        model=args.model,
        endpoint=args.endpoint,
        description=args.description,
    )
    _print_summary(summary)
    print(f'Created base "{base.name}". Serve it with: ai-doc-pal serve {base.name}')
    return 0


def cmd_update(config: Config, args: argparse.Namespace) -> int:
    base, summary = update_base(config, Path(args.path), force=args.force)
    _print_summary(summary)
    print(f'Base "{base.name}" is up to date.')
    return 0


def cmd_serve(config: Config, args: argparse.Namespace) -> int:
    base = get_base(config, args.name)

    logger.info("=" * 50)
    logger.info("ai-doc-pal %s starting...", __version__)
    logger.info("  BASE:      %s", base.name)
    logger.info("  DOCS:      %s", base.docs_path)
    logger.info("  PROVIDER:  %s (%s)", base.provider, base.model)
    logger.info("  TRANSPORT: %s", args.transport)
    logger.info("  AUTH:      %s", "enabled" if config.auth_token else "disabled")
    logger.info("=" * 50)

    with VectorStore(config.db_path(base.name), base.embedding_dimension) as store:
        mcp = create_server(config, base, store)
        if args.transport == "http":
            logger.info("Starting MCP server on %s:%s...", args.host, args.port)
            mcp.run(transport="streamable-http", host=args.host, port=args.port)
        else:
            mcp.run()
    return 0


def cmd_list(config: Config, args: argparse.Namespace) -> int:
    listings = list_bases(config)
    if not listings:
        print('No documentation bases. Create one with: ai-doc-pal init <path>')
        return 0

    for listing in listings:
        base = listing.base
        if listing.stats is None:
            counts = "database missing"
        else:
            counts = f"{listing.stats.documents} files, {listing.stats.chunks} chunks"
        print(f"{base.name}  [{base.provider}/{base.model}]  {counts}")
        print(f"    {base.docs_path}")
        if base.description:
            print(f"    {base.description}")
    return 0


def cmd_remove(config: Config, args: argparse.Namespace) -> int:
    remove_base(config, args.name)
    print(f'Removed base "{args.name}".')
    return 0


def cmd_doctor(config: Config, args: argparse.Namespace) -> int:
    report = run_doctor(config)

    if report.ollama.available:
        print(f"[ok]   Ollama reachable at {report.ollama_endpoint}")
        if report.has_recommended_model:
            print(f"[ok]   Model {report.recommended_model} installed")
        else:
            print(f"[warn] Model {report.recommended_model} missing: ollama pull {report.recommended_model}")
    else:
        print(f"[warn] Ollama: {report.ollama.error}")

    if report.openai_key:
        print("[ok]   OpenAI API key configured")
    else:
        print("[info] OpenAI API key not set (only needed for the openai provider)")

    return 0 if report.ok else 1


def _split_base_key(key: str) -> tuple[str, str] | None:
    name, sep, field_name = key.rpartition(".")
    if not sep or field_name not in BASE_SETTING_KEYS:
        return None
    return name, field_name


def cmd_config(config: Config, args: argparse.Namespace) -> int:
    registry = config.registry()

    if args.get:
        base_key = _split_base_key(args.get)
        if base_key is not None:
            base = registry.get_base(base_key[0])
            if base is None:
                raise NotFound(f'Documentation base "{base_key[0]}" not found.')
            value = getattr(base, base_key[1])
        elif args.get in GLOBAL_SETTING_KEYS:
            value = registry.get_setting(args.get)
        else:
            raise NotFound(f"Unknown key: {args.get}")
        print(_mask(args.get, value) if value is not None else "")
        return 0

    if args.set:
        key, sep, value = args.set.partition("=")
        if not sep:
            raise DocPalError("Expected KEY=VALUE")
        base_key = _split_base_key(key)
        try:
            if base_key is not None:
                registry.set_base_setting(base_key[0], base_key[1], value)
            else:
                registry.set_setting(key, value)
        except KeyError as e:
            raise NotFound(f"Documentation base {e} not found.") from e
        except ValueError as e:
            raise DocPalError(str(e)) from e
        print(f"Set {key}")
        return 0

    print(f"Home: {config.home}")
    print("Global settings:")
    for key, value in sorted(registry.settings().items()):
        print(f"  {key}: {_mask(key, value)}")
    print("Bases:")
    for base in registry.list_bases():
        print(f"  {base.name}:")
        for key, value in base.to_dict().items():
            if key != "name":
                print(f"    {key}: {_mask(key, value)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ai-doc-pal",
        description="ai-doc-pal - semantic search over markdown docs for AI agents",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create and index a new documentation base")
    p.add_argument("path", nargs="?", default=".", help="Docs folder (default: current directory)")
    p.add_argument("-n", "--name", help="Base name (default: folder name)")
    p.add_argument("-p", "--provider", choices=["ollama", "openai", "compatible"])
    p.add_argument("-m", "--model", help="Embedding model")
    p.add_argument("-e", "--endpoint", help="Provider endpoint URL")
    p.add_argument("-d", "--description", help="Description shown to agents")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("update", help="Re-index changed files of a base")
    p.add_argument("path", nargs="?", default=".", help="Docs folder (default: current directory)")
    p.add_argument("-f", "--force", action="store_true", help="Re-embed every file")
    p.set_defaults(func=cmd_update)

    p = sub.add_parser("serve", help="Run the MCP server for a base")
    p.add_argument("name", help="Base name")
    p.add_argument("-t", "--transport", choices=["stdio", "http"], default="stdio")
    p.add_argument("--host", default="127.0.0.1", help="HTTP bind address")
    p.add_argument("--port", type=int, default=3000, help="HTTP port")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("list", help="List documentation bases")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("remove", help="Delete a documentation base")
    p.add_argument("name", help="Base name")
    p.set_defaults(func=cmd_remove)

    p = sub.add_parser("doctor", help="Check provider availability")
    p.set_defaults(func=cmd_doctor)

    p = sub.add_parser("config", help="Show or change settings")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--show", action="store_true", help="Show all settings (default)")
    group.add_argument("--get", metavar="KEY", help="Print one setting (NAME.KEY for a base)")
    group.add_argument("--set", metavar="KEY=VALUE", help="Change one setting (NAME.KEY for a base)")
    p.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main function - parses the command line and runs one command."""
    args = build_parser().parse_args(argv)

    try:
        config = Config.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Configure logging here to avoid side effects on import; stdout is the stdio transport
    logging.basicConfig(
        stream=sys.stderr,
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    handler: Callable[[Config, argparse.Namespace], int] = args.func
    try:
        sys.exit(handler(config, args))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        sys.exit(0)
    except DocPalError as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
