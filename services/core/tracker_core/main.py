"""Social Tracker Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from tracker_core.api.routes import cron as cron_routes
from tracker_core.api.routes import metrics as metrics_routes
from tracker_core.api.routes import posts as posts_routes
from tracker_core.api.routes import subscriptions as subscriptions_routes
from tracker_core.api.routes import tags as tags_routes
from tracker_core.api.routes import unsubscribe as unsubscribe_routes
from tracker_core.config import get_settings
from tracker_core.observability import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="tracker-core",
    )
    app.state.settings = settings
    yield
    # Shutdown


app = FastAPI(
    title="Social Tracker Core API",
    description="Multi-tenant subreddit tracking with tag matching and email digests",
    version="0.1.0",
    lifespan=lifespan,
)

# Include API routers
app.include_router(cron_routes.router)
app.include_router(metrics_routes.router)
app.include_router(posts_routes.router)
app.include_router(subscriptions_routes.router)
app.include_router(tags_routes.router)
app.include_router(unsubscribe_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "tracker-core"}
