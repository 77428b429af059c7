"""
System API Router - Status and engine tuning
"""

import logging
import time
import psutil
from fastapi import APIRouter, Body, Depends

from api.dependencies import get_asset_store, get_engine
from api.exceptions import InputValidationError, safe_endpoint
from core.asset_store import AssetStore
from core.raster_engine import RasterEngine
from schemas.system import EngineSettingsUpdate, EngineStatus, SystemStatus

logger = logging.getLogger(__name__)

router = APIRouter()

# Track start time
START_TIME = time.time()


@router.get("/status")
@safe_endpoint
async def get_status(
    engine: RasterEngine = Depends(get_engine),
    asset_store: AssetStore = Depends(get_asset_store),
) -> SystemStatus:
    """Get system status"""
    process = psutil.Process()
    memory_info = process.memory_info()
    virtual_memory = psutil.virtual_memory()

    return SystemStatus(
        status="healthy",
        uptime=time.time() - START_TIME,
        memory_usage={
            "process_mb": memory_info.rss / 1024 / 1024,
            "system_percent": virtual_memory.percent,
            "available_mb": virtual_memory.available / 1024 / 1024,
        },
        engine=EngineStatus(**engine.stats()),
        stored_outputs=len(asset_store.list()),
    )


@router.get("/engine")
@safe_endpoint
async def get_engine_status(engine: RasterEngine = Depends(get_engine)) -> EngineStatus:
    """Current engine tuning and cache counters"""
    return EngineStatus(**engine.stats())


@router.put("/engine")
@safe_endpoint
async def update_engine(
    update: EngineSettingsUpdate = Body(...),
    engine: RasterEngine = Depends(get_engine),
) -> EngineStatus:
    """
    Reconfigure the engine at runtime.

    The change is process-wide and applies to requests already in flight.
    """
    changes = update.changes()
    if not changes:
        raise InputValidationError("No engine settings given")
    engine.reconfigure(**changes)
    logger.info(f"Engine reconfigured: {changes}")
    return EngineStatus(**engine.stats())

