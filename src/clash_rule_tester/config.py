"""Clash rule tester configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from clash_rule_tester import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLASH_RULE_TESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Rule provider downloads
    fetch_timeout: float = Field(
        default=30.0,
        description="Timeout (seconds) for downloading an http rule provider",
    )
    fetch_user_agent: str = f"clash-rule-tester/{__version__}"
    fetch_max_bytes: int = Field(
        default=20 * 1024 * 1024,  # 20MB
        description="Maximum rule provider body size in bytes. Larger bodies are rejected.",
    )

    # Name resolution
    resolver: Literal["doh", "system"] = Field(
        default="doh",
        description="Name resolver: 'doh' (DNS-over-HTTPS JSON API) or 'system' (getaddrinfo)",
    )
    doh_url: str = "https://cloudflare-dns.com/dns-query"
    resolver_timeout: float = Field(
        default=5.0,
        description="Timeout (seconds) for a single name resolution",
    )

    # API Server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    metrics_enabled: bool = True

    # Logging
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are cached after first load. Use clear_settings_cache()
    to reload settings (e.g., in tests or after environment changes).
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this to force settings to be reloaded on the next get_settings() call.
    """
    get_settings.cache_clear()
