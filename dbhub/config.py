"""Application configuration using pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via:
    1. Environment variables (e.g., DATA_DIR=/my/path)
    2. .env file in the project root

    Storage paths are derived from DATA_DIR by default but can be overridden.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API settings
    api_title: str = "DBHub Content API"
    api_version: str = "0.1.0"
    debug: bool = True  # Default to True for development

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Storage paths - all derived from data_dir by default
    data_dir: Path = Path("./data")

    # These can be overridden, but default to subdirs of data_dir
    objects_dir: Path | None = None
    metadata_db_path: Path | None = None

    # Where materialized database copies are written (None = system temp dir)
    temp_dir: Path | None = None

    # Object storage
    object_store_backend: Literal["local", "s3"] = "local"
    s3_endpoint_url: str | None = None  # e.g. http://minio:9000
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_region: str = "us-east-1"
    s3_use_ssl: bool = True
    s3_connect_timeout: int = 10
    s3_read_timeout: int = 60

    # Cache (Redis)
    cache_enabled: bool = True
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: int = 5

    # Cache TTLs (seconds)
    metadata_cache_ttl: int = 120
    output_cache_ttl: int = 1800

    # Content limits
    default_max_rows: int = 10  # Anonymous users and users without a preference
    vis_max_values: int = 2500
    identifier_max_length: int = 63

    @model_validator(mode="after")
    def set_default_paths(self) -> "Settings":
        """Set default paths based on data_dir if not explicitly provided."""
        if self.objects_dir is None:
            self.objects_dir = self.data_dir / "objects"
        if self.metadata_db_path is None:
            self.metadata_db_path = self.data_dir / "metadata.duckdb"
        return self

    @property
    def storage_paths(self) -> dict[str, Path]:
        """Return all storage paths for health check validation."""
        paths = {"data_dir": self.data_dir}
        if self.object_store_backend == "local":
            paths["objects_dir"] = self.objects_dir
        return paths


# Global settings instance
settings = Settings()
