"""System health endpoints."""

import logging
import time

import psutil
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from broadcast import ConnectionManager
from database import get_pool
from ..dependencies import get_connection_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/system",
    tags=["System"]
)

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    uptime: float
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    websocket_connections: int
    database_status: str

async def check_database() -> str:
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval('SELECT 1')
        return "connected"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return "disconnected"

@router.get("/health")
async def get_system_health(
    connections: ConnectionManager = Depends(get_connection_manager)
) -> SystemHealth:
    """Get system health status.

    Returns:
        SystemHealth object containing system metrics
    """
    try:
        cpu_percent = psutil.cpu_percent()
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('/')
        database_status = await check_database()

        healthy = cpu_percent < 80 and database_status == "connected"
        return SystemHealth(
            status="healthy" if healthy else "degraded",
            uptime=time.time() - psutil.boot_time(),
            cpu_usage=cpu_percent,
            memory_usage=memory.percent,
            disk_usage=disk.percent,
            websocket_connections=len(connections.active_connections),
            database_status=database_status
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
