"""
Configuration and settings for the marketplace backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    project_name: str = Field(default="Gem Marketplace API")
    api_version: str = Field(default="1.0.0")
    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Database (any SQLAlchemy URL; Postgres expected in production)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible asset storage
    s3_endpoint: Optional[str] = Field(default=None, env="S3_ENDPOINT")
    s3_region: Optional[str] = Field(default=None, env="S3_REGION")
    s3_bucket: Optional[str] = Field(default=None, env="S3_BUCKET")
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )
    asset_public_base_url: Optional[str] = Field(
        default=None, env="ASSET_PUBLIC_BASE_URL"
    )

    # Shared secret used by the auth service to sign bearer tokens
    auth_secret: str = Field(default="change_me", env="AUTH_SECRET")

    # Upload limits
    max_images: int = Field(default=10, env="MAX_IMAGES")
    max_certificates: int = Field(default=5, env="MAX_CERTIFICATES")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, env="MAX_UPLOAD_BYTES")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
