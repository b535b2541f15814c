"""
DriveScore - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from drivescore.api.routes import (
    folder_router,
    logs_router,
    sample_router,
    score_router,
    trips_router,
)
from drivescore.services.repository import init_repository, get_repository


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Default data folder (can be overridden via API or environment)
DEFAULT_DATA_FOLDER = Path("./data/logs")
DATA_FOLDER_ENV = "DRIVESCORE_DATA_FOLDER"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting DriveScore backend")

    repo = get_repository()
    if repo.data_folder is None:
        data_folder = Path(os.getenv(DATA_FOLDER_ENV, str(DEFAULT_DATA_FOLDER)))
        try:
            init_repository(data_folder)
            logger.info(f"Initialized repository with folder: {data_folder}")
        except OSError as e:
            logger.error(f"Cannot use data folder {data_folder}: {e}")
            logger.info("Use POST /folder to set data folder")

    yield

    logger.info("Shutting down DriveScore backend")


app = FastAPI(
    title="DriveScore",
    description="""
    Backend API for driving telemetry analysis.

    ## Features
    - Append-only JSONL logs per channel ("sim" and "real")
    - Trip reconstruction from connection markers
    - Speeding, acceleration, braking and unsafe turning event pins
    - Combined map markers for nearby events
    - Cached safety score over the "real" channel

    ## Data Flow
    1. Set data folder via POST /folder
    2. Log samples and markers via POST /logs/{channel}
    3. List trips via GET /trips/{channel}
    4. Get event pins via GET /trips/{channel}/{id}/combined
    5. Get the safety score via GET /score
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(logs_router)
app.include_router(trips_router)
app.include_router(score_router)
app.include_router(sample_router)
app.include_router(folder_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "DriveScore",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    repo = get_repository()

    return {
        "status": "healthy",
        "data_folder": str(repo.data_folder) if repo.data_folder else None,
    }
