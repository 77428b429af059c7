"""
Text watermarks.

The text is drawn centered on a fixed-size transparent canvas which is
then composited onto the image by gravity.
"""

import logging

from core.constants import ErrorMessages, WatermarkDefaults
from core.enums import Gravity
from core.exceptions import InputValidationError
from core.image.asset import ImageAsset
from core.raster_engine import RasterEngine

logger = logging.getLogger(__name__)


class WatermarkRenderer:
    def __init__(self, engine: RasterEngine):
        self.engine = engine

    def apply(
        self,
        asset: ImageAsset,
        text: str,
        font_size: int = WatermarkDefaults.FONT_SIZE,
        font_family: str = WatermarkDefaults.FONT_FAMILY,
        color: str = WatermarkDefaults.COLOR,
        opacity: float = WatermarkDefaults.OPACITY,
        position: Gravity = Gravity(WatermarkDefaults.POSITION),
    ) -> ImageAsset:
        if not text or not text.strip():
            raise InputValidationError(ErrorMessages.WATERMARK_TEXT_REQUIRED, operation="watermark")

        stamp = self.engine.render_text(
            text.strip(),
            WatermarkDefaults.CANVAS_WIDTH,
            WatermarkDefaults.CANVAS_HEIGHT,
            font_size,
            font_family,
            color,
            opacity,
        )
        logger.debug(f"Watermark '{text}' at {Gravity(position).value}")
        return self.engine.composite(asset, stamp, gravity=position)
