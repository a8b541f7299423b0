"""REST and WebSocket API for the Crescendo backend.

This module provides endpoints for:
- Creating, starting and stopping livestreams
- Validating RTMP ingest keys
- Watching a livestream with realtime chat and tips
- Inspecting artist tokens and triggering graduation
- Following token trades in real time
- System health monitoring
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings_conf
from workers.graduation_checker import run_worker
from .dependencies import graduation_manager

logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Initializing API...")
    # Database is initialized by __main__.py

    graduation_task = asyncio.create_task(
        run_worker(settings_conf['graduation_check_interval'], manager=graduation_manager)
    )
    logger.info(f"Started graduation checker (every {settings_conf['graduation_check_interval']}s)")

    yield

    # Shutdown
    logger.info("Shutting down API...")
    graduation_task.cancel()
    try:
        await graduation_task
    except asyncio.CancelledError:
        pass

# Create FastAPI app
app = FastAPI(
    title="Crescendo API",
    description="API for Crescendo livestreams and artist tokens",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {
        "name": "Crescendo API",
        "version": "1.0.0",
        "status": "running"
    }

# Import and include all routers
from .livestreams import router as livestreams_router
from .tokens import router as tokens_router
from .system import router as system_router

app.include_router(livestreams_router)
app.include_router(tokens_router)
app.include_router(system_router)
