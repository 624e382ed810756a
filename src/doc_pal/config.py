"""Configuration module for ai-doc-pal.

Process settings come from environment variables with sensible defaults.
Registered documentation bases and global defaults live in a YAML registry
file under DOCPAL_HOME.
"""

import logging
import os
import shutil
import time
from dataclasses import asdict, dataclass, fields
from pathlib import Path

import yaml

from doc_pal.errors import InvalidBaseName

logger = logging.getLogger(__name__)

PROVIDER_TYPES = ("ollama", "openai", "compatible")
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
REGISTRY_FILENAME = "config.yaml"
DB_FILENAME = "db.sqlite"

# Keys accepted by `ai-doc-pal config --set`
GLOBAL_SETTING_KEYS = ("defaultProvider", "defaultModel", "ollamaEndpoint", "openaiApiKey")
BASE_SETTING_KEYS = ("description", "model", "endpoint")


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def check_base_name(home: Path, name: str) -> str:
    """Return name if it names a direct child directory of home.

    Raises:
        InvalidBaseName: For empty names, dot names, path separators or the
            registry file name.
    """
    if (
        not name
        or name in (".", "..", REGISTRY_FILENAME)
        or "/" in name
        or os.sep in name
        or (home / name).resolve().parent != home.resolve()
    ):
        raise InvalidBaseName(f"Invalid base name: {name!r}")
    return name


@dataclass
class BaseConfig:
    """A registered documentation base."""

    name: str
    docs_path: str
    provider: str
    model: str
    embedding_dimension: int
    endpoint: str | None = None
    api_key: str | None = None
    description: str | None = None
    created_at: int = 0
    last_updated: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "BaseConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


class Registry:
    """YAML-backed registry of documentation bases and global settings.

    Layout of the file::

        global:
          defaultProvider: ollama
          ollamaEndpoint: http://localhost:11434
        bases:
          my-docs:
            name: my-docs
            docs_path: /home/me/project/docs
            ...
    """

    def __init__(self, path: Path):
        self.path = path
        self._unreadable = False

    def _load(self) -> dict:
        self._unreadable = False
        if not self.path.exists():
            return {"global": {}, "bases": {}}
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable registry %s: %s", self.path, e)
            self._unreadable = True
            return {"global": {}, "bases": {}}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed registry %s", self.path)
            self._unreadable = True
            return {"global": {}, "bases": {}}
        return {
            "global": raw.get("global") or {},
            "bases": raw.get("bases") or {},
        }

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._unreadable and self.path.exists():
            # Keep the unparsable file instead of overwriting it
            backup = self.path.with_name(self.path.name + ".bak")
            self.path.replace(backup)
            logger.warning("Moved unreadable registry %s to %s", self.path, backup)
            self._unreadable = False
        self.path.write_text(
            yaml.safe_dump(data, sort_keys=True, allow_unicode=True),
            encoding="utf-8",
        )

    # Global settings

    def settings(self) -> dict:
        """Return all global settings."""
        return dict(self._load()["global"])

    def get_setting(self, key: str) -> str | None:
        value = self._load()["global"].get(key)
        return None if value is None else str(value)

    def set_setting(self, key: str, value: str) -> None:
        """Set a global setting.

        Raises:
            ValueError: If the key is unknown or the provider is invalid.
        """
        if key not in GLOBAL_SETTING_KEYS:
            raise ValueError(
                f"Unknown key: {key} (valid keys: {', '.join(GLOBAL_SETTING_KEYS)})"
            )
        if key == "defaultProvider" and value not in PROVIDER_TYPES:
            raise ValueError(
                f"Invalid provider: {value} (valid providers: {', '.join(PROVIDER_TYPES)})"
            )
        data = self._load()
        data["global"][key] = value
        self._save(data)

    # Bases

    def list_bases(self) -> list[BaseConfig]:
        return [BaseConfig.from_dict(b) for b in self._load()["bases"].values()]

    def get_base(self, name: str) -> BaseConfig | None:
        raw = self._load()["bases"].get(name)
        return BaseConfig.from_dict(raw) if raw else None

    def find_base_by_docs_path(self, docs_path: Path) -> BaseConfig | None:
        """Find the base registered for a documentation directory."""
        target = str(docs_path.resolve())
        for base in self.list_bases():
            if base.docs_path == target:
                return base
        return None

    def register_base(self, base: BaseConfig) -> None:
        """Add or replace a base.

        Raises:
            InvalidBaseName: If the name cannot be a directory under the home.
        """
        check_base_name(self.path.parent, base.name)
        data = self._load()
        data["bases"][base.name] = base.to_dict()
        self._save(data)

    def touch_base(self, name: str) -> None:
        """Update a base's last_updated timestamp."""
        data = self._load()
        if name in data["bases"]:
            data["bases"][name]["last_updated"] = now_ms()
            self._save(data)

    def set_base_setting(self, name: str, key: str, value: str) -> None:
        """Set description, model or endpoint on a registered base.

        Raises:
            KeyError: If the base is not registered.
            ValueError: If the key cannot be changed.
        """
        if key not in BASE_SETTING_KEYS:
            raise ValueError(
                f"Unknown base key: {key} (valid keys: {', '.join(BASE_SETTING_KEYS)})"
            )
        data = self._load()
        if name not in data["bases"]:
            raise KeyError(name)
        data["bases"][name][key] = value
        data["bases"][name]["last_updated"] = now_ms()
        self._save(data)

    def remove_base(self, name: str) -> bool:
        """Unregister a base. Returns False if it was not registered."""
        data = self._load()
        if data["bases"].pop(name, None) is None:
            return False
        self._save(data)
        return True


@dataclass
class Config:
    """Application configuration."""

    home: Path
    request_timeout: float
    auth_token: str | None
    log_level: str
    default_provider: str
    default_model: str | None
    ollama_endpoint: str
    openai_api_key: str | None

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables and the registry's global settings."""
        default_home = str(Path.home() / ".ai-doc-pal")
        home = Path(os.getenv("DOCPAL_HOME", default_home)).expanduser()

        timeout_str = os.getenv("DOCPAL_REQUEST_TIMEOUT", "60")
        try:
            request_timeout = float(timeout_str)
            if request_timeout <= 0:
                raise ValueError(f"Timeout must be positive, got {request_timeout}")
        except ValueError as e:
            raise ValueError(
                f"Invalid DOCPAL_REQUEST_TIMEOUT value '{timeout_str}': {e}"
            ) from e

        # Auth token - must be at least 32 bytes if set
        auth_token = os.getenv("DOCPAL_AUTH_TOKEN")
        if auth_token is not None:
            if len(auth_token) < 32:
                raise ValueError(
                    "DOCPAL_AUTH_TOKEN must be at least 32 characters for security"
                )

        log_level = os.getenv("DOCPAL_LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid DOCPAL_LOG_LEVEL value '{log_level}'")

        # Environment wins over the registry's global section
        settings = Registry(home / REGISTRY_FILENAME).settings()

        default_provider = os.getenv("DOCPAL_DEFAULT_PROVIDER") or settings.get(
            "defaultProvider", "ollama"
        )
        if default_provider not in PROVIDER_TYPES:
            raise ValueError(
                f"Invalid default provider '{default_provider}': "
                f"expected one of {', '.join(PROVIDER_TYPES)}"
            )

        ollama_endpoint = (
            os.getenv("OLLAMA_HOST")
            or settings.get("ollamaEndpoint")
            or DEFAULT_OLLAMA_ENDPOINT
        )
        if "://" not in ollama_endpoint:
            ollama_endpoint = f"http://{ollama_endpoint}"

        return cls(
            home=home,
            request_timeout=request_timeout,
            auth_token=auth_token,
            log_level=log_level,
            default_provider=default_provider,
            default_model=settings.get("defaultModel"),
            ollama_endpoint=ollama_endpoint.rstrip("/"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or settings.get("openaiApiKey"),
        )

    @property
    def registry_path(self) -> Path:
        return self.home / REGISTRY_FILENAME

    def registry(self) -> Registry:
        return Registry(self.registry_path)

    def base_dir(self, name: str) -> Path:
        return self.home / check_base_name(self.home, name)

    def db_path(self, name: str) -> Path:
        return self.base_dir(name) / DB_FILENAME

    def base_exists(self, name: str) -> bool:
        return self.db_path(name).exists()

    def delete_base_dir(self, name: str) -> None:
        base_dir = self.base_dir(name)
        if base_dir.exists():
            shutil.rmtree(base_dir)

    def api_key_for(self, provider: str, base: BaseConfig | None = None) -> str | None:
        """Resolve the API key: base record, then environment/global settings."""
        if base is not None and base.api_key:
            return base.api_key
        if provider == "openai":
            return self.openai_api_key
        return None

    def endpoint_for(self, provider: str, base: BaseConfig | None = None) -> str | None:
        """Resolve the endpoint: base record, then the configured Ollama endpoint."""
        if base is not None and base.endpoint:
            return base.endpoint
        if provider == "ollama":
            return self.ollama_endpoint
        return None
