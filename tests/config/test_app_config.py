"""Tests for the application config loader."""

import pytest

from tutorhub.config.app_config import (
    DEV_JWT_SECRET,
    AuthConfig,
    clear_config_cache,
    load_app_config,
)

ENV_VARS = (
    "TUTORHUB_DB_PATH",
    "TUTORHUB_ENV",
    "PORT",
    "FRONTEND_URL",
    "JWT_EXPIRES_MINUTES",
    "PLATFORM_FEE_RATE",
    "MAX_PAGE_SIZE",
    "JWT_SECRET",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run from an empty directory with no overrides and a clean cache."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


def _write_config(tmp_path, text):
    config_dir = tmp_path / "data" / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "app_config_v1.yaml").write_text(text, encoding="utf-8")


class TestDefaults:
    """Tests for built-in defaults."""

    def test_defaults_without_file(self):
        """Missing config file falls back to defaults."""
        config = load_app_config()
        assert config.database.path == "db/tutorhub.db"
        assert config.pagination.default_limit == 20
        assert config.pagination.max_limit == 100
        assert config.server.port == 3000
        assert config.payments.platform_fee_rate == 0.15
        assert "pdf" in config.uploads.allowed_extensions

    def test_cached(self):
        """Repeated loads return the same object until reloaded."""
        first = load_app_config()
        assert load_app_config() is first
        assert load_app_config(force_reload=True) is not first


class TestFile:
    """Tests for YAML loading."""

    def test_values_from_file(self, tmp_path):
        """File values override defaults; unspecified sections keep defaults."""
        _write_config(
            tmp_path,
            "pagination:\n  default_limit: 5\n  max_limit: 50\n"
            "uploads:\n  allowed_extensions: [PDF, md]\n",
        )
        config = load_app_config()
        assert config.pagination.default_limit == 5
        assert config.pagination.max_limit == 50
        assert config.uploads.allowed_extensions == ["pdf", "md"]
        assert config.server.port == 3000

    def test_empty_file(self, tmp_path):
        """An empty file behaves like defaults."""
        _write_config(tmp_path, "")
        assert load_app_config().auth.algorithm == "HS256"


class TestEnvOverrides:
    """Tests for environment overrides."""

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        """Environment variables are applied on top of the file."""
        _write_config(tmp_path, "server:\n  port: 8000\n")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("TUTORHUB_DB_PATH", "/tmp/other.db")
        monkeypatch.setenv("FRONTEND_URL", "https://app.example.com")
        monkeypatch.setenv("PLATFORM_FEE_RATE", "0.2")
        monkeypatch.setenv("MAX_PAGE_SIZE", "30")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        config = load_app_config()
        assert config.server.port == 9000
        assert config.database.path == "/tmp/other.db"
        assert config.server.cors_origins == ["https://app.example.com"]
        assert config.payments.platform_fee_rate == 0.2
        assert config.pagination.max_limit == 30
        assert config.server.log_level == "DEBUG"


class TestSecret:
    """Tests for the signing secret lookup."""

    def test_explicit_secret(self):
        """An explicit secret wins."""
        assert AuthConfig(secret="abc").get_secret() == "abc"

    def test_env_secret(self, monkeypatch):
        """The named environment variable is used next."""
        monkeypatch.setenv("JWT_SECRET", "from-env")
        assert AuthConfig().get_secret() == "from-env"

    def test_dev_fallback(self):
        """Without either, the development secret is used."""
        assert AuthConfig().get_secret() == DEV_JWT_SECRET
