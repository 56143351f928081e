"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Remote endpoints
    api_base_url: str = "https://api.fastbreakgame.com/api"
    data_base_url: str = "https://d2jyizt5xogu23.cloudfront.net"
    manifest_path: str = "/registry"
    api_key: Optional[str] = None

    # Local persistence
    database_url: str = "sqlite:///./statcache.db"

    # Expiration policies are evaluated in this zone, not the host zone
    reference_timezone: str = "America/New_York"

    # Manifest is re-downloaded once it is older than this
    manifest_stale_hours: int = 12

    # Eviction caps (oldest write first)
    raw_cache_max_entries: int = 100
    ttl_cache_max_entries: int = 10

    # Concurrency
    sync_max_concurrent_downloads: int = 3
    revalidation_workers: int = 4

    # HTTP
    http_timeout_seconds: float = 60.0

    # Dev mode only syncs manifest entries under the "dev/" prefix
    dev_mode: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STATCACHE_"


settings = Settings()
