"""Tests for config module."""

from pathlib import Path

import pytest

from doc_pal.config import BaseConfig, Config, Registry
from doc_pal.errors import InvalidBaseName


def make_base(name: str = "docs", docs_path: str = "/srv/docs", **kwargs) -> BaseConfig:
    return BaseConfig(
        name=name,
        docs_path=docs_path,
        provider="ollama",
        model="nomic-embed-text",
        embedding_dimension=768,
        **kwargs,
    )


def test_config_defaults(monkeypatch):
    """Test config loads with defaults when no env vars set."""
    monkeypatch.delenv("DOCPAL_HOME")
    config = Config.from_env()
    assert config.home == Path.home() / ".ai-doc-pal"
    assert config.request_timeout == 60.0
    assert config.auth_token is None
    assert config.log_level == "INFO"
    assert config.default_provider == "ollama"
    assert config.ollama_endpoint == "http://localhost:11434"
    assert config.openai_api_key is None


def test_config_from_env(monkeypatch, tmp_path):
    """Test config loads from environment variables."""
    monkeypatch.setenv("DOCPAL_HOME", str(tmp_path / "custom"))
    monkeypatch.setenv("DOCPAL_REQUEST_TIMEOUT", "5")
    monkeypatch.setenv("DOCPAL_LOG_LEVEL", "debug")
    monkeypatch.setenv("DOCPAL_DEFAULT_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    config = Config.from_env()
    assert config.home == tmp_path / "custom"
    assert config.request_timeout == 5.0
    assert config.log_level == "DEBUG"
    assert config.default_provider == "openai"
    assert config.openai_api_key == "sk-env"


def test_config_paths(isolated_env):
    config = Config.from_env()
    assert config.registry_path == isolated_env / "config.yaml"
    assert config.db_path("docs") == isolated_env / "docs" / "db.sqlite"
    assert not config.base_exists("docs")


def test_config_tilde_expansion(monkeypatch):
    """Test config expands tilde in paths."""
    monkeypatch.setenv("DOCPAL_HOME", "~/custom/docpal")
    config = Config.from_env()
    assert "~" not in str(config.home)
    assert config.home.is_absolute()


@pytest.mark.parametrize("value", ["not_a_number", "0", "-3"])
def test_config_invalid_timeout(monkeypatch, value):
    monkeypatch.setenv("DOCPAL_REQUEST_TIMEOUT", value)
    with pytest.raises(ValueError, match="Invalid DOCPAL_REQUEST_TIMEOUT"):
        Config.from_env()


def test_config_short_auth_token(monkeypatch):
    monkeypatch.setenv("DOCPAL_AUTH_TOKEN", "too-short")
    with pytest.raises(ValueError, match="at least 32 characters"):
        Config.from_env()


def test_config_invalid_log_level(monkeypatch):
    monkeypatch.setenv("DOCPAL_LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="DOCPAL_LOG_LEVEL"):
        Config.from_env()


def test_config_invalid_provider(monkeypatch):
    monkeypatch.setenv("DOCPAL_DEFAULT_PROVIDER", "cohere")
    with pytest.raises(ValueError, match="Invalid default provider"):
        Config.from_env()


@pytest.mark.parametrize(
    ("host", "expected"),
    [
        ("gpu-box:11434", "http://gpu-box:11434"),
        ("https://ollama.example.com/", "https://ollama.example.com"),
    ],
)
def test_config_ollama_host(monkeypatch, host, expected):
    monkeypatch.setenv("OLLAMA_HOST", host)
    assert Config.from_env().ollama_endpoint == expected


def test_config_reads_registry_globals(isolated_env):
    registry = Registry(isolated_env / "config.yaml")
    registry.set_setting("defaultProvider", "openai")
    registry.set_setting("defaultModel", "text-embedding-3-large")
    registry.set_setting("ollamaEndpoint", "http://other:11434")
    registry.set_setting("openaiApiKey", "sk-registry")

    config = Config.from_env()
    assert config.default_provider == "openai"
    assert config.default_model == "text-embedding-3-large"
    assert config.ollama_endpoint == "http://other:11434"
    assert config.openai_api_key == "sk-registry"


def test_config_env_overrides_registry(isolated_env, monkeypatch):
    Registry(isolated_env / "config.yaml").set_setting("openaiApiKey", "sk-registry")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    assert Config.from_env().openai_api_key == "sk-env"


def test_api_key_precedence(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    config = Config.from_env()

    assert config.api_key_for("openai") == "sk-env"
    assert config.api_key_for("openai", make_base(api_key="sk-base")) == "sk-base"
    assert config.api_key_for("ollama") is None


def test_endpoint_precedence():
    config = Config.from_env()

    assert config.endpoint_for("ollama") == "http://localhost:11434"
    assert config.endpoint_for("ollama", make_base(endpoint="http://b:1")) == "http://b:1"
    assert config.endpoint_for("compatible") is None


class TestRegistry:
    @pytest.fixture
    def registry(self, tmp_path) -> Registry:
        return Registry(tmp_path / "home" / "config.yaml")

    def test_empty_when_missing(self, registry: Registry):
        assert registry.list_bases() == []
        assert registry.settings() == {}

    def test_register_and_get(self, registry: Registry):
        base = make_base(description="My docs", created_at=1, last_updated=2)
        registry.register_base(base)

        assert registry.get_base("docs") == base
        assert registry.list_bases() == [base]
        assert registry.get_base("other") is None

    def test_omits_unset_fields(self, registry: Registry):
        registry.register_base(make_base())
        assert "api_key" not in registry.path.read_text()

    def test_find_by_docs_path(self, registry: Registry, tmp_path):
        docs = tmp_path / "docs"
        docs.mkdir()
        registry.register_base(make_base(docs_path=str(docs.resolve())))

        assert registry.find_base_by_docs_path(docs).name == "docs"
        assert registry.find_base_by_docs_path(tmp_path / "docs" / ".." / "docs").name == "docs"
        assert registry.find_base_by_docs_path(tmp_path) is None

    def test_touch_base(self, registry: Registry):
        registry.register_base(make_base(last_updated=1))
        registry.touch_base("docs")

        assert registry.get_base("docs").last_updated > 1

    def test_set_base_setting(self, registry: Registry):
        registry.register_base(make_base())
        registry.set_base_setting("docs", "description", "Internal API docs")

        assert registry.get_base("docs").description == "Internal API docs"

    def test_set_base_setting_errors(self, registry: Registry):
        registry.register_base(make_base())
        with pytest.raises(ValueError, match="Unknown base key"):
            registry.set_base_setting("docs", "provider", "openai")
        with pytest.raises(KeyError):
            registry.set_base_setting("missing", "model", "x")

    def test_remove_base(self, registry: Registry):
        registry.register_base(make_base())

        assert registry.remove_base("docs") is True
        assert registry.remove_base("docs") is False
        assert registry.list_bases() == []

    def test_set_setting_validation(self, registry: Registry):
        with pytest.raises(ValueError, match="Unknown key"):
            registry.set_setting("colour", "blue")
        with pytest.raises(ValueError, match="Invalid provider"):
            registry.set_setting("defaultProvider", "cohere")

        registry.set_setting("defaultProvider", "compatible")
        assert registry.get_setting("defaultProvider") == "compatible"

    def test_corrupt_file_treated_as_empty(self, registry: Registry):
        registry.path.parent.mkdir(parents=True)
        registry.path.write_text("bases: [unclosed")

        assert registry.list_bases() == []

    def test_non_mapping_file_treated_as_empty(self, registry: Registry):
        registry.path.parent.mkdir(parents=True)
        registry.path.write_text("- just\n- a list\n")

        assert registry.settings() == {}

    def test_corrupt_file_is_backed_up_before_write(self, registry: Registry):
        registry.path.parent.mkdir(parents=True)
        registry.path.write_text("bases: [unclosed")

        registry.register_base(make_base())

        backup = registry.path.with_name("config.yaml.bak")
        assert backup.read_text() == "bases: [unclosed"
        assert registry.get_base("docs") == make_base()

    def test_valid_file_is_not_backed_up(self, registry: Registry):
        registry.set_setting("defaultProvider", "openai")
        registry.register_base(make_base())

        assert not registry.path.with_name("config.yaml.bak").exists()

    @pytest.mark.parametrize("name", ["", ".", "..", "a/b", "config.yaml"])
    def test_register_rejects_invalid_names(self, registry: Registry, name):
        with pytest.raises(InvalidBaseName):
            registry.register_base(make_base(name=name))
        assert not registry.path.exists()


def test_base_dir_rejects_escaping_names(isolated_env):
    config = Config.from_env()

    assert config.base_dir("docs") == isolated_env / "docs"
    for name in ("", "..", "../docs", "/etc"):
        with pytest.raises(InvalidBaseName):
            config.base_dir(name)
