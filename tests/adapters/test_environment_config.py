"""Tests for the environment config provider."""

from pathlib import Path

import pytest

from redmine_connector.adapters.config import EnvironmentConfigProvider


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for key in EnvironmentConfigProvider.ENV_MAPPING:
        monkeypatch.delenv(key, raising=False)
    # Keep a developer's own .env out of the tests
    monkeypatch.chdir(tmp_path)


class TestLoad:
    """Tests for assembling AppConfig."""

    def test_defaults(self):
        config = EnvironmentConfigProvider().load()

        assert config.tracker.url == ""
        assert config.transport.fetch_batch_size == 100
        assert config.transport.max_retry_attempts == 3
        assert config.cache.metadata_ttl == 300.0
        assert config.cache.persistent is False
        assert config.async_.max_pool_size == 8

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("REDMINE_URL", "https://redmine.example.com/")
        monkeypatch.setenv("REDMINE_API_KEY", "abc")
        monkeypatch.setenv("REDMINE_PROJECT", "demo")
        monkeypatch.setenv("REDMINE_FETCH_BATCH_SIZE", "25")
        monkeypatch.setenv("REDMINE_TIMEOUT", "12.5")
        monkeypatch.setenv("REDMINE_CACHE_PERSISTENT", "yes")
        monkeypatch.setenv("REDMINE_POOL_SIZE", "1")

        config = EnvironmentConfigProvider().load()

        assert config.tracker.api_key == "abc"
        assert config.tracker.project_id == "demo"
        assert config.tracker.instance_key == "https://redmine.example.com"
        assert config.transport.fetch_batch_size == 25
        assert config.transport.timeout == 12.5
        assert config.cache.persistent is True
        assert config.async_.max_pool_size == 1

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text(
            "# Redmine\n"
            "REDMINE_URL=https://from-file.example.com\n"
            "REDMINE_API_KEY='quoted'\n"
            "REDMINE_CACHE_TTL=60\n"
            "UNRELATED=1\n"
        )

        provider = EnvironmentConfigProvider(env_file=env_file)
        config = provider.load()

        assert config.tracker.url == "https://from-file.example.com"
        assert config.tracker.api_key == "quoted"
        assert config.cache.metadata_ttl == 60.0
        assert provider.get("unrelated") is None

    def test_precedence(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("REDMINE_URL=https://file\nREDMINE_API_KEY=file-key\n")
        monkeypatch.setenv("REDMINE_URL", "https://env")

        provider = EnvironmentConfigProvider(
            env_file=env_file, overrides={"api_key": "override-key", "project_id": None}
        )

        assert provider.get("url") == "https://env"
        assert provider.get("REDMINE_API_KEY") == "override-key"
        assert provider.get("project-id") is None

    def test_invalid_number_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("REDMINE_MAX_RETRIES", "many")

        assert EnvironmentConfigProvider().load().transport.max_retry_attempts == 3

    def test_paths(self, monkeypatch):
        monkeypatch.setenv("REDMINE_CUSTOM_FIELDS_DIR", "/tmp/cf")

        assert EnvironmentConfigProvider().load().cache.custom_fields_dir == Path("/tmp/cf")


class TestValidate:
    """Tests for validation."""

    def test_missing_credentials(self):
        errors = EnvironmentConfigProvider().validate()

        assert any("REDMINE_URL" in e for e in errors)
        assert any("REDMINE_API_KEY" in e for e in errors)

    def test_valid(self):
        provider = EnvironmentConfigProvider(overrides={"url": "https://x", "api_key": "k"})

        assert provider.validate() == []

    def test_non_positive_sizes(self, monkeypatch):
        monkeypatch.setenv("REDMINE_POOL_SIZE", "0")
        provider = EnvironmentConfigProvider(overrides={"url": "https://x", "api_key": "k"})

        assert provider.validate() == ["REDMINE_POOL_SIZE must be a positive integer, got '0'"]
