"""
FastAPI dependencies for database access and service construction.

Provides dependency injection for routes. HTTP clients are process-wide
singletons; repositories and services are built per request around the
request's database session.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coaching_data.core.config import SyncConfig, build_sync_config
from coaching_data.database.connection import get_async_session
from coaching_data.embeddings.client import EmbeddingClient
from coaching_data.ingestion.loaders.fireflies_loader import FirefliesLoader
from coaching_data.services.ingestion_service import IngestionService
from coaching_data.services.notification_service import (
    NotificationDispatcher,
    build_default_dispatcher,
)
from coaching_data.services.pending_service import PendingAssignmentService
from coaching_data.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for database session.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async for session in get_async_session():
        yield session


@lru_cache()
def get_sync_config() -> SyncConfig:
    """Credential list and chunking parameters, built once from settings."""
    config = build_sync_config()
    logger.info(f"Loaded {len(config.credentials)} Fireflies credential(s)")
    return config


@lru_cache()
def get_loader() -> FirefliesLoader:
    return FirefliesLoader()


@lru_cache()
def get_embedder() -> EmbeddingClient:
    return EmbeddingClient()


@lru_cache()
def get_dispatcher() -> NotificationDispatcher:
    return build_default_dispatcher()


async def get_ingestion_service(
    db: AsyncSession = Depends(get_db),
    config: SyncConfig = Depends(get_sync_config),
    loader: FirefliesLoader = Depends(get_loader),
    embedder: EmbeddingClient = Depends(get_embedder),
) -> IngestionService:
    """Ingestion service bound to the request's session, with a fresh outbox."""
    return IngestionService(db, config, loader=loader, embedder=embedder)


async def get_pending_service(
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> PendingAssignmentService:
    return PendingAssignmentService(ingestion)


async def get_webhook_service(
    ingestion: IngestionService = Depends(get_ingestion_service),
) -> WebhookService:
    return WebhookService(ingestion)
