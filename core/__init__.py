"""
Core modules for the image transform service
"""

from .asset_store import AssetStore, generate_filename
from .raster_engine import EngineConfig, RasterEngine

__all__ = [
    "AssetStore",
    "EngineConfig",
    "RasterEngine",
    "generate_filename",
]
