"""
Image Transform Service - Main FastAPI Application
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add parent directory to path
sys.path.append(str(Path(__file__).parent))

from api.exceptions import register_exception_handlers  # noqa: E402
from api.routers import background, images, system  # noqa: E402
from config import Settings, get_settings  # noqa: E402
from core.asset_store import AssetStore  # noqa: E402
from core.raster_engine import EngineConfig, RasterEngine  # noqa: E402
from imaging.matting import RembgMattingModel  # noqa: E402
from services.background_service import MattingService  # noqa: E402
from services.image_service import ImageService  # noqa: E402

# Get configuration
settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.system.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Suppress watchfiles debug messages
logging.getLogger("watchfiles").setLevel(logging.WARNING)


def init_state(app: FastAPI, settings: Settings, matting_model=None) -> None:
    """
    Build the engine, stores and services and attach them to app state.

    Args:
        app: Application to configure
        settings: Effective settings
        matting_model: Matting model to use instead of the rembg adapter
    """
    engine = RasterEngine(EngineConfig(**settings.engine.model_dump()))
    asset_store = AssetStore(settings.storage.output_dir)
    matting_store = AssetStore(settings.storage.matting_output_dir)

    app.state.settings = settings
    app.state.config = settings.to_dict()
    app.state.engine = engine
    app.state.asset_store = asset_store
    app.state.matting_store = matting_store
    app.state.image_service = ImageService(
        engine, asset_store, unknown_policy=settings.pipeline.unknown_operation_policy
    )
    app.state.matting_service = MattingService(
        engine,
        matting_store,
        matting_model or RembgMattingModel(),
        max_upload_mb=settings.storage.max_upload_mb,
        fetch_timeout=settings.matting.url_fetch_timeout,
        allow_private_hosts=settings.matting.allow_private_hosts,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting Image Transform Service...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.system.debug}")

    init_state(app, settings)
    logger.info(f"Engine ready: {app.state.engine.config.to_dict()}")

    yield

    logger.info("Shutting down Image Transform Service...")
    removed = app.state.engine.clear_cache()
    logger.info(f"Server shutdown complete ({removed} cached decodes released)")


# Create FastAPI app
app = FastAPI(
    title="Image Transform Service",
    description="Raster image transforms, collages, masks and background removal",
    version="1.0.0",
    lifespan=lifespan,
)

if settings.api.cors_enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Register exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(images.router, prefix="/api/images", tags=["Images"])
app.include_router(background.router, prefix="/api/bg-removal", tags=["Background Removal"])
app.include_router(system.router, prefix="/api/system", tags=["System"])


# Root endpoint
@app.get("/")
async def root():
    return {
        "name": "Image Transform Service",
        "status": "running",
        "version": "1.0.0",
        "endpoints": {
            "images": "/api/images",
            "bg_removal": "/api/bg-removal",
            "system": "/api/system",
            "docs": "/docs",
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "engine": getattr(app.state, "engine", None) is not None,
            "image_service": getattr(app.state, "image_service", None) is not None,
            "matting_service": getattr(app.state, "matting_service", None) is not None,
        },
    }


if __name__ == "__main__":
    server_config = uvicorn.Config(
        "main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.system.debug,
        log_level=settings.system.log_level.lower(),
        loop="asyncio",
    )
    server = uvicorn.Server(server_config)

    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    finally:
        logger.info("Server exiting...")
