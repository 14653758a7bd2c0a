from contextlib import asynccontextmanager
from fastapi import FastAPI
import logging

from coaching_data.core.config import settings
from coaching_data.core.logging import setup_logging
from coaching_data.core.exceptions import register_exception_handlers
from coaching_data.api.deps import get_dispatcher, get_embedder, get_loader, get_sync_config
from coaching_data.api.routes.fireflies import router as fireflies_router
from coaching_data.api.routes.webhook import router as webhook_router
from coaching_data.services.sync_scheduler import background_sync
from coaching_data.database.connection import init_db, close_db

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect to Postgres, then start polling if enabled.

    The background loop shares the process-wide Fireflies and embedding
    clients with the request handlers; those and the Slack sink are closed
    on shutdown.
    """
    config = get_sync_config()
    logger.info(f"🚀 {settings.APP_NAME} starting up ({len(config.credentials)} Fireflies credential(s))")

    try:
        await init_db()
    except Exception as e:
        logger.warning(f"⚠️ Database unavailable at startup: {e}")

    if settings.BACKGROUND_SYNC_ENABLED:
        background_sync.loader = get_loader()
        background_sync.embedder = get_embedder()
        await background_sync.start()
    else:
        logger.info("⏸️ Background sync disabled (set BACKGROUND_SYNC_ENABLED=true to enable)")

    yield

    logger.info(f"👋 {settings.APP_NAME} shutting down...")
    await background_sync.stop()

    for client in (get_loader(), get_embedder(), get_dispatcher()):
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"⚠️ Failed to close {type(client).__name__}: {e}")

    try:
        await close_db()
    except Exception as e:
        logger.warning(f"⚠️ Database close failed: {e}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Fireflies transcript ingestion and coach/client identity resolution",
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENV == "development" else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.ENV == "development" else None,
)

register_exception_handlers(app)

for router in (fireflies_router, webhook_router):
    app.include_router(router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "status": "ok",
        "background_sync": background_sync.get_status()["running"],
    }
