import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import sys
import os

sys.path.append(os.path.dirname(__file__))

from app.core.config import settings
from app.core.storage import ensure_export_dir
from app.api import api_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# --- App Initialization ---
app = FastAPI(
    title="Photo Stitch API",
    description="Vertical image stitching with EXIF carried over from the first image",
    version="1.0.0",
)

# CORS middleware for the web client
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router)


# --- Event Handlers ---
@app.on_event("startup")
async def startup_event():
    logger.info("Starting up Photo Stitch API...")
    export_dir = ensure_export_dir()
    logger.info(f"Exporting composites to {export_dir}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Photo Stitch API...")


# --- API Endpoints ---
@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Photo Stitch API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    """Health check endpoint with export storage status."""
    status = {"status": "healthy", "storage": "unknown"}

    export_dir = settings.EXPORT_DIR
    if os.path.isdir(export_dir) and os.access(export_dir, os.W_OK):
        status["storage"] = "writable"
    else:
        status["storage"] = "not_writable"
        status["status"] = "degraded"

    return status
