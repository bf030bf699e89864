"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tasksync.api import dashboard, debug, kpi, sync, task_push, tasks, telegram, users, webhook
from tasksync.config import settings
from tasksync.models.base import init_db
from tasksync.notifications import ApiChangeNotifyMiddleware
from tasksync.scheduler import SyncScheduler
from tasksync.security import WEBHOOK_PATH, BasicAuthMiddleware
from tasksync.services.container import ServiceContainer

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
    logger.info("Starting ClickUp Task Sync Service")
    init_db()
    services = ServiceContainer(settings)
    app.state.services = services
    services.webhooks.start()
    scheduler = SyncScheduler(
        services,
        mapping_refresh_minutes=settings.mapping_refresh_minutes,
        sync_log_retention_days=settings.sync_log_retention_days,
    )
    scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping ClickUp Task Sync Service")
    scheduler.stop()
    await services.aclose()


app = FastAPI(
    title="ClickUp Task Sync Service",
    description="Synchronize tasks between the internal backend and ClickUp",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth (recommended if exposed beyond localhost/private networks)
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        allow_paths={"/health", WEBHOOK_PATH},
    )

# Chat notification of API writes (optional)
if settings.telegram_enabled:
    app.add_middleware(ApiChangeNotifyMiddleware)

# Include API routers
app.include_router(webhook.router)
app.include_router(tasks.router)
app.include_router(task_push.router)
app.include_router(debug.router)
app.include_router(users.router)
app.include_router(kpi.router)
app.include_router(sync.router)
app.include_router(dashboard.router)
app.include_router(telegram.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "ClickUp Task Sync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tasksync.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
