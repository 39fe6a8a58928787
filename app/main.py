"""
Campaign Engine - main API
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.logging import setup_logging
from app.api.error_handlers import register_exception_handlers
from app.api.routes import campaigns, health, segments
from app.services.deps import get_vendor

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    logger.info(
        f"Starting {settings.APP_NAME} (storage={settings.STORAGE_BACKEND}, "
        f"receipts={settings.RECEIPT_TRANSPORT})"
    )
    yield
    # Let in-flight simulated receipts reach their publisher
    if get_vendor.cache_info().currsize:
        await get_vendor().drain()
    logger.info(f"Stopping {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Audience segmentation and campaign delivery",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router, tags=["Health"])
app.include_router(segments.router)
app.include_router(campaigns.router)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "status": "running",
        "docs": "/docs",
    }
