"""
API Routers for the image transform service
"""

from . import background, images, system

__all__ = ["images", "background", "system"]
