"""Environment-based configuration for SnapX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from SNAPX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPX_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 5000

    # Authentication (None = every protected route answers 401)
    auth_secret: str | None = None

    # Matching
    match_threshold: float = Field(default=0.6, gt=0.0)
    embedding_dim: int | None = Field(default=None, ge=1)

    # Embedding store
    store_backend: Literal["memory", "mongodb"] = "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "snapx"

    # Object storage
    object_storage: Literal["local", "cloudinary"] = "local"
    local_media_dir: str = "media"
    public_base_url: str = "http://localhost:5000"
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = None
    cloudinary_folder: str = "snapx"

    # Blocking I/O concurrency
    max_concurrent_io: int = Field(default=8, ge=1)

    # Upload limits
    max_upload_files: int = Field(default=20, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
