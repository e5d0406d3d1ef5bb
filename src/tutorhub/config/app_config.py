"""Application configuration loader.

Loads centralized configuration from data/config/app_config_v1.yaml,
falling back to built-in defaults, then applies environment overrides.

Usage:
    from tutorhub.config.app_config import load_app_config

    config = load_app_config()
    secret = config.auth.get_secret()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

# Config file path (relative to project root)
CONFIG_FILE = Path("data/config/app_config_v1.yaml")

# Used only when the secret env var is unset
DEV_JWT_SECRET = "tutorhub-dev-secret-change-me"


@dataclass
class DatabaseConfig:
    """SQLite store settings."""

    path: str = "db/tutorhub.db"
    busy_timeout_seconds: float = 5.0


@dataclass
class AuthConfig:
    """Token and password hashing settings."""

    secret_env: str = "JWT_SECRET"
    algorithm: str = "HS256"
    token_ttl_minutes: int = 7 * 24 * 60
    bcrypt_rounds: int = 12
    secret: str | None = None

    def get_secret(self) -> str:
        """Get the signing secret, preferring an explicit value over the environment."""
        if self.secret:
            return self.secret
        value = os.environ.get(self.secret_env)
        if value:
            return value
        logger.warning("auth.dev_secret_in_use", env_var=self.secret_env)
        return DEV_JWT_SECRET


@dataclass
class PaginationConfig:
    """Page size limits shared by all list endpoints."""

    default_limit: int = 20
    max_limit: int = 100


@dataclass
class ServerConfig:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"


@dataclass
class PaymentsConfig:
    """Payment bookkeeping settings."""

    platform_fee_rate: float = 0.15
    currency: str = "USD"


@dataclass
class UploadsConfig:
    """Allowed document types (metadata only; files live elsewhere)."""

    allowed_extensions: list[str] = field(
        default_factory=lambda: [
            "pdf", "doc", "docx", "ppt", "pptx", "xls", "xlsx", "txt",
            "jpg", "jpeg", "png", "gif", "webp",
        ]
    )
    max_file_size_bytes: int = 10 * 1024 * 1024


@dataclass
class AppConfig:
    """Application-wide configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    uploads: UploadsConfig = field(default_factory=UploadsConfig)


# Module-level cache
_cached_config: AppConfig | None = None


def _get_defaults() -> dict[str, Any]:
    """Get default configuration values."""
    return {
        "database": {"path": "db/tutorhub.db", "busy_timeout_seconds": 5.0},
        "auth": {
            "secret_env": "JWT_SECRET",
            "algorithm": "HS256",
            "token_ttl_minutes": 7 * 24 * 60,
            "bcrypt_rounds": 12,
        },
        "pagination": {"default_limit": 20, "max_limit": 100},
        "server": {
            "host": "0.0.0.0",
            "port": 3000,
            "environment": "development",
            "cors_origins": ["http://localhost:5173"],
            "log_level": "INFO",
        },
        "payments": {"platform_fee_rate": 0.15, "currency": "USD"},
        "uploads": {},
    }


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse configuration dictionary into AppConfig object."""
    db_data = data.get("database", {})
    database = DatabaseConfig(
        path=str(db_data.get("path", "db/tutorhub.db")),
        busy_timeout_seconds=float(db_data.get("busy_timeout_seconds", 5.0)),
    )

    auth_data = data.get("auth", {})
    auth = AuthConfig(
        secret_env=auth_data.get("secret_env", "JWT_SECRET"),
        algorithm=auth_data.get("algorithm", "HS256"),
        token_ttl_minutes=int(auth_data.get("token_ttl_minutes", 7 * 24 * 60)),
        bcrypt_rounds=int(auth_data.get("bcrypt_rounds", 12)),
    )

    page_data = data.get("pagination", {})
    pagination = PaginationConfig(
        default_limit=int(page_data.get("default_limit", 20)),
        max_limit=int(page_data.get("max_limit", 100)),
    )

    server_data = data.get("server", {})
    server = ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 3000)),
        environment=server_data.get("environment", "development"),
        cors_origins=list(server_data.get("cors_origins", ["http://localhost:5173"])),
        log_level=str(server_data.get("log_level", "INFO")).upper(),
    )

    pay_data = data.get("payments", {})
    payments = PaymentsConfig(
        platform_fee_rate=float(pay_data.get("platform_fee_rate", 0.15)),
        currency=pay_data.get("currency", "USD"),
    )

    upload_data = data.get("uploads", {})
    uploads = UploadsConfig()
    if "allowed_extensions" in upload_data:
        uploads.allowed_extensions = [e.lower() for e in upload_data["allowed_extensions"]]
    if "max_file_size_bytes" in upload_data:
        uploads.max_file_size_bytes = int(upload_data["max_file_size_bytes"])

    return AppConfig(
        database=database,
        auth=auth,
        pagination=pagination,
        server=server,
        payments=payments,
        uploads=uploads,
    )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply environment variable overrides on top of file/default values."""
    env = os.environ

    if db_path := env.get("TUTORHUB_DB_PATH"):
        config.database.path = db_path
    if environment := env.get("TUTORHUB_ENV"):
        config.server.environment = environment
    if port := env.get("PORT"):
        config.server.port = int(port)
    if frontend := env.get("FRONTEND_URL"):
        config.server.cors_origins = [frontend]
    if ttl := env.get("JWT_EXPIRES_MINUTES"):
        config.auth.token_ttl_minutes = int(ttl)
    if fee := env.get("PLATFORM_FEE_RATE"):
        config.payments.platform_fee_rate = float(fee)
    if max_limit := env.get("MAX_PAGE_SIZE"):
        config.pagination.max_limit = int(max_limit)
    if log_level := env.get("LOG_LEVEL"):
        config.server.log_level = log_level.upper()

    return config


def load_app_config(force_reload: bool = False) -> AppConfig:
    """Load application config.

    Args:
        force_reload: If True, ignore cached config and reload from file.

    Returns:
        AppConfig object with all settings.
    """
    global _cached_config

    if _cached_config is not None and not force_reload:
        return _cached_config

    data: dict[str, Any]

    if CONFIG_FILE.exists():
        logger.debug("loading_app_config", source=str(CONFIG_FILE))
        data = yaml.safe_load(CONFIG_FILE.read_text(encoding="utf-8")) or {}
    else:
        logger.info("using_default_config")
        data = _get_defaults()

    _cached_config = _apply_env_overrides(_parse_config(data))
    return _cached_config


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when config is modified at runtime.
    """
    global _cached_config
    _cached_config = None
