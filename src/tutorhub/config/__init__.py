"""Configuration package for the tutoring marketplace."""

from tutorhub.config.app_config import (
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    PaginationConfig,
    PaymentsConfig,
    ServerConfig,
    UploadsConfig,
    clear_config_cache,
    load_app_config,
)

__all__ = [
    "AppConfig",
    "AuthConfig",
    "DatabaseConfig",
    "PaginationConfig",
    "PaymentsConfig",
    "ServerConfig",
    "UploadsConfig",
    "clear_config_cache",
    "load_app_config",
]
