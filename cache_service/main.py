from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool

from .config import settings
from .logger import configure_logging
from .redis_client import get_connection_manager
from .routers import health_router


# ---------------------------------------------------------
# Lifespan Context Manager
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.
    Connects the shared Redis client on startup and closes it on shutdown.
    """
    configure_logging(settings.log_level)

    connection_manager = get_connection_manager()
    await run_in_threadpool(connection_manager.initialize)

    yield

    await run_in_threadpool(connection_manager.shutdown)


# ---------------------------------------------------------
# FastAPI Application Configuration
# ---------------------------------------------------------
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


# ---------------------------------------------------------
# Router Registration
# ---------------------------------------------------------
app.include_router(health_router)


# ---------------------------------------------------------
# Root Endpoint
# ---------------------------------------------------------
@app.get("/")
def root():
    """
    Root endpoint to verify service status and get metadata.
    """
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "description": settings.api_description,
        "docs_url": "/docs",
    }
