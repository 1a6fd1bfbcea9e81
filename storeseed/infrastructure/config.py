"""Application configuration.

Loads settings from environment variables (prefixed ``STORESEED_``)
with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

# Remote batch endpoints accept at most this many operations per request
REMOTE_BATCH_LIMIT = 100


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False
    api_key: str = "dev-api-key-change-in-production"

    # Remote store
    store_url: str = "http://localhost:8080"
    store_consumer_key: str = ""
    store_consumer_secret: str = ""
    store_api_namespace: str = "wc/v3"
    request_timeout: float = 30.0

    # Batching and paging
    create_batch_size: int = Field(default=50, ge=1, le=REMOTE_BATCH_LIMIT)
    delete_batch_size: int = Field(default=100, ge=1, le=REMOTE_BATCH_LIMIT)
    page_size: int = Field(default=100, ge=1, le=100)
    max_concurrency: int = Field(default=4, ge=1)

    # Ownership
    ownership_meta_key: str = "_generated_by"
    ownership_meta_value: str = "storeseed"
    brand_attribute_name: str = "Brand"
    brand_attribute_slug: str = "brand"
    manifest_path: str = "storeseed-manifest.json"
    teardown_untracked_categories: bool = False

    # Catalog
    catalog_mode: str = "small"
    catalog_seed: int = 42

    # Streaming
    heartbeat_interval_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "STORESEED_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def store_api_base(self) -> str:
        """Base URL of the store's REST API."""
        return f"{self.store_url.rstrip('/')}/wp-json/{self.store_api_namespace.strip('/')}"


settings = Settings()
