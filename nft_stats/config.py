"""Configuration management for the collection stats service."""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional
import json


# Mirrors of the AtomicAssets / AtomicMarket API, in order of preference
DEFAULT_ATOMIC_BASES = [
    "https://wax.api.atomicassets.io",
    "https://atomic.wax.io",
    "https://api.wax-aa.bountyblok.io",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Collection
    collection_name: str = "ssquisheyezz"
    token_symbol: str = "WAX"
    default_precision: int = 8

    # Provider hosts - JSON array or comma-separated list of base URLs
    # Example: ["https://wax.api.atomicassets.io", "https://atomic.wax.io"]
    atomic_bases: Optional[str] = None

    # Outbound request settings
    request_timeout: float = 12.0
    page_size: int = 1000
    max_pages: int = 10

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_provider_hosts(self) -> List[str]:
        """Parse and return the ordered list of provider base URLs."""
        raw = (self.atomic_bases or "").strip()
        if not raw:
            return list(DEFAULT_ATOMIC_BASES)

        if raw.startswith("["):
            try:
                hosts = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid atomic_bases JSON: {e}")
            if not isinstance(hosts, list):
                raise ValueError("atomic_bases JSON must be an array of URLs")
        else:
            hosts = raw.split(",")

        hosts = [str(h).strip().rstrip("/") for h in hosts if str(h).strip()]
        return hosts or list(DEFAULT_ATOMIC_BASES)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
