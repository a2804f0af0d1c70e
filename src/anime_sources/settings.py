"""
Settings Management Module

Provides pydantic-based configuration management with:
- YAML configuration file loading
- Environment variable overrides (ANIME_SOURCES_*)
- Multi-environment support (development, production, test)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PREFIX = "ANIME_SOURCES_"


class ReliabilitySettings(BaseModel):
    """Retry, timeout and circuit breaker defaults for outbound calls."""

    max_attempts: int = 2
    base_delay: float = 1.0
    timeout: float = 8.0
    failure_threshold: int = 5
    reset_timeout: float = 15.0
    slow_threshold: float = 2.0


class HealthSettings(BaseModel):
    """Health monitor configuration."""

    enabled: bool = True
    interval: float = 120.0
    probe_timeout: float = 5.0
    degraded_latency: float = 3.0


class AdmissionSettings(BaseModel):
    """Global outbound concurrency ceiling."""

    max_concurrent: int = 6
    max_queue: int = 50
    queue_timeout: float = 30.0


class OrchestratorSettings(BaseModel):
    """Fallback, aggregation and enrichment tuning for the SourceManager."""

    priority: list[str] = Field(default_factory=list)
    search_all_threshold: int = 20
    filtered_pages: int = 3
    filtered_page_size: int = 20
    browse_page_size: int = 25
    random_pages: int = 3
    random_pool_size: int = 30
    lookup_ttl: float = 3600.0
    lookup_pages: int = 10
    title_cache_ttl: float = 60.0
    title_search_limit: int = 10
    title_search_sources: list[str] = Field(
        default_factory=lambda: ["HiAnimeDirect", "HiAnime"]
    )
    backup_sources: list[str] = Field(default_factory=lambda: ["HiAnimeDirect", "HiAnime"])
    isolated_sources: list[str] = Field(default_factory=lambda: ["WatchHentai"])


class CatalogSettings(BaseModel):
    """Metadata catalog (AniList) configuration."""

    enabled: bool = True
    url: str = "https://graphql.anilist.co"
    cache_ttl: float = 600.0
    timeout: float = 10.0
    genre_page_size: int = 50


class HttpSettings(BaseModel):
    """HTTP client configuration settings."""

    timeout: float = 10.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    keepalive_expiry: float = 5.0
    verify_ssl: bool = True
    follow_redirects: bool = True
    headers: dict[str, str] = Field(default_factory=dict)


class Settings(BaseSettings):
    """
    Main application settings with multi-environment support.

    Configuration hierarchy (lowest to highest precedence):
    1. Environment variables (ANIME_SOURCES_*, nested with ``__``)
    2. settings/config.yaml (base)
    3. settings/config.{environment}.yaml (environment-specific)

    Examples:
        Load settings:
        >>> settings = get_settings()
        >>> settings.reliability.timeout
        8.0

        Override from the environment:
        $ export ANIME_SOURCES_ADMISSION__MAX_CONCURRENT=10
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="allow",
    )

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False
    metrics: str = "none"

    reliability: ReliabilitySettings = Field(default_factory=ReliabilitySettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)

    sources: list[dict[str, Any]] = Field(default_factory=list)
    routes: list[dict[str, Any]] | None = None

    @classmethod
    def load_from_yaml(cls, config_path: Path | None = None) -> "Settings":
        """
        Load settings from YAML configuration file.

        Args:
            config_path: Path to config file (default: settings/config.yaml)

        Returns:
            Settings instance
        """
        if config_path is None:
            # settings.py is in src/anime_sources/, three parents up is the project root
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "settings" / "config.yaml"
        config_path = Path(config_path)

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        env = os.getenv(f"{ENV_PREFIX}ENVIRONMENT", config_data.get("environment", "development"))
        env_config_path = config_path.parent / f"config.{env}.yaml"

        if env_config_path.exists():
            with open(env_config_path) as f:
                env_config = yaml.safe_load(f) or {}
                config_data = cls._deep_merge(config_data, env_config)

        return cls(**config_data)

    @staticmethod
    def _deep_merge(base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = Settings._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def get_source_config(self, name: str) -> dict[str, Any]:
        """Get the configuration entry of one source."""
        for source in self.sources:
            if source.get("name") == name:
                return source
        return {}


@lru_cache
def get_settings(config_path: Path | None = None) -> Settings:
    """
    Get cached settings instance.

    Args:
        config_path: Optional path to config file

    Returns:
        Settings instance
    """
    return Settings.load_from_yaml(config_path)


def reload_settings() -> Settings:
    """Reload settings by clearing cache."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "ReliabilitySettings",
    "HealthSettings",
    "AdmissionSettings",
    "OrchestratorSettings",
    "CatalogSettings",
    "HttpSettings",
    "get_settings",
    "reload_settings",
]
