"""
Dependency wiring for the FastAPI app.

Backends are built once by ``create_app`` and held on ``app.state``; handlers
receive them through these providers instead of module-level globals.
"""

from __future__ import annotations

import logging

from fastapi import Request

from gemmarket.config import Settings, get_settings
from gemmarket.db import DbClient, InMemoryDbClient, PostgresDbClient
from gemmarket.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory record store")
        return InMemoryDbClient()
    return PostgresDbClient(settings.database_url)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.s3_bucket:
        logger.info("Using in-memory asset storage")
        return InMemoryStorageClient()
    return S3StorageClient(
        bucket=settings.s3_bucket,
        region=settings.s3_region or "",
        endpoint=settings.s3_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
        public_base_url=settings.asset_public_base_url or "",
    )


def get_db_client(request: Request) -> DbClient:
    return request.app.state.db


def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()
