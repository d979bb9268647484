"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from issuemirror.api import issues, repositories, sync, webhooks
from issuemirror.cache import CacheStore
from issuemirror.config import settings
from issuemirror.models.base import init_db
from issuemirror.scheduler import SyncScheduler
from issuemirror.services.sync_guard import SyncGuard

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting IssueMirror")
    if not settings.github_webhook_secret:
        logger.error("GITHUB_WEBHOOK_SECRET is not set; all webhook deliveries will be rejected")
    init_db()
    # Shared by every request and the scheduler for the life of the process.
    app.state.cache = CacheStore(default_ttl=settings.cache_ttl_seconds)
    app.state.sync_guard = SyncGuard(cooldown_seconds=settings.sync_cooldown_seconds)
    app.state.scheduler = SyncScheduler(app.state.cache, app.state.sync_guard)
    app.state.scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping IssueMirror")
    app.state.scheduler.stop()


app = FastAPI(
    title="IssueMirror",
    description="Mirror GitHub issues and labels into a cached local store",
    version="1.0.0",
    lifespan=lifespan,
)

# Include API routers
app.include_router(repositories.router)
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(issues.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "IssueMirror"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "issuemirror.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
