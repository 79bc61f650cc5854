"""
Proctor Monitor Service - FastAPI application
"""
import logging

from fastapi import FastAPI

from .api import router as proctor_router
from .api import _monitors
from .config import settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Proctor Monitor",
    description="Camera proctoring monitor for timed exams",
    version="1.0.0"
)

app.include_router(proctor_router)


@app.on_event("shutdown")
async def shutdown_event():
    """Release every camera and model still held"""
    for monitor in list(_monitors.values()):
        await monitor.stop()
    _monitors.clear()
    logger.info("All monitors stopped")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "delegate": settings.DELEGATE,
        "model": settings.MODEL_ASSET_PATH
    }
