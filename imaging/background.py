"""
Heuristic background removal.

Each strategy turns an image into a coverage mask (255 keep, 0 remove);
the remover then scales the source alpha by that mask. The heuristics are
cheap approximations and make no claim to production-quality matting.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Type

import cv2
import numpy as np
from pydantic import BaseModel, Field

from core.constants import BackgroundRemovalDefaults
from core.enums import BackgroundMethod
from core.exceptions import ProcessingError
from core.image.asset import ImageAsset
from core.image.converters import ensure_bgr, ensure_grayscale, parse_color
from core.raster_engine import RasterEngine

logger = logging.getLogger(__name__)


class BackgroundRemovalConfig(BaseModel):
    """
    Background removal parameters.

    Each method reads only the fields it needs:
    - threshold: threshold
    - color: color, tolerance
    - smart: edge_detection, color_threshold, blur, feather
    """

    method: BackgroundMethod = Field(
        default=BackgroundMethod.DEFAULT,
        description="Removal strategy (threshold, edge, color, default, smart)",
    )
    threshold: int = Field(
        default=BackgroundRemovalDefaults.THRESHOLD,
        ge=0,
        le=255,
        description="Luminance threshold for the threshold method",
    )
    color: str = Field(
        default=BackgroundRemovalDefaults.COLOR_KEY, description="Key color for the color method"
    )
    tolerance: float = Field(
        default=BackgroundRemovalDefaults.COLOR_TOLERANCE,
        ge=0,
        description="Max RGB distance from the key color that is removed",
    )
    edge_detection: bool = Field(
        default=BackgroundRemovalDefaults.SMART_EDGE_DETECTION,
        description="Smart method: detect edges before thresholding",
    )
    color_threshold: int = Field(
        default=BackgroundRemovalDefaults.SMART_COLOR_THRESHOLD,
        ge=0,
        le=255,
        description="Smart method threshold",
    )
    blur: float = Field(
        default=BackgroundRemovalDefaults.SMART_BLUR, ge=0, description="Smart method pre-blur sigma"
    )
    feather: float = Field(
        default=BackgroundRemovalDefaults.SMART_FEATHER,
        ge=0,
        description="Smart method mask feather sigma",
    )


def _laplacian() -> np.ndarray:
    return np.array(BackgroundRemovalDefaults.EDGE_KERNEL, dtype=np.float32)


class BackgroundStrategy(ABC):
    """Builds a coverage mask for one removal method"""

    name: str = "base"

    def __init__(self, engine: RasterEngine):
        self.engine = engine

    def grey(self, asset: ImageAsset) -> ImageAsset:
        return asset.with_pixels(ensure_grayscale(asset.pixels))

    @abstractmethod
    def build_mask(self, asset: ImageAsset, config: BackgroundRemovalConfig) -> np.ndarray:
        ...


class ThresholdStrategy(BackgroundStrategy):
    """Bright pixels are background: grey, threshold, invert"""

    name = BackgroundMethod.THRESHOLD.value

    def build_mask(self, asset, config):
        binary = self.engine.threshold(self.grey(asset), config.threshold)
        return self.engine.negate(binary).pixels


class EdgeStrategy(BackgroundStrategy):
    """Edges are background: grey, Laplacian, threshold, invert"""

    name = BackgroundMethod.EDGE.value

    def build_mask(self, asset, config):
        edges = self.engine.convolve(self.grey(asset), _laplacian())
        binary = self.engine.threshold(edges, BackgroundRemovalDefaults.EDGE_THRESHOLD)
        return self.engine.negate(binary).pixels


class ColorKeyStrategy(BackgroundStrategy):
    """Chroma key: pixels within `tolerance` RGB distance of `color` are removed"""

    name = BackgroundMethod.COLOR.value

    def build_mask(self, asset, config):
        key = parse_color(config.color, BackgroundRemovalDefaults.COLOR_KEY)
        color = ensure_bgr(asset.pixels[:, :, :3] if asset.has_alpha else asset.pixels)
        delta = color.astype(np.float32) - np.array(key[:3], dtype=np.float32)
        distance = np.sqrt(np.sum(delta * delta, axis=2))
        return np.where(distance <= config.tolerance, 0, 255).astype(np.uint8)


class DefaultStrategy(BackgroundStrategy):
    """Blurred edge mask: grey, blur(1), Laplacian, threshold(30), invert"""

    name = BackgroundMethod.DEFAULT.value

    def build_mask(self, asset, config):
        blurred = self.engine.blur(self.grey(asset), BackgroundRemovalDefaults.DEFAULT_METHOD_BLUR)
        edges = self.engine.convolve(blurred, _laplacian())
        binary = self.engine.threshold(edges, BackgroundRemovalDefaults.DEFAULT_METHOD_THRESHOLD)
        return self.engine.negate(binary).pixels


class SmartStrategy(BackgroundStrategy):
    """
    Feathered mask.

    With edge detection: grey, blur, Laplacian, threshold, feather.
    Without: grey, threshold, feather.
    """

    name = BackgroundMethod.SMART.value

    def build_mask(self, asset, config):
        work = self.grey(asset)
        if config.edge_detection:
            work = self.engine.blur(work, config.blur)
            work = self.engine.convolve(work, _laplacian())
        work = self.engine.threshold(work, config.color_threshold)
        return self.engine.blur(work, config.feather).pixels


STRATEGIES: Dict[BackgroundMethod, Type[BackgroundStrategy]] = {
    BackgroundMethod.THRESHOLD: ThresholdStrategy,
    BackgroundMethod.EDGE: EdgeStrategy,
    BackgroundMethod.COLOR: ColorKeyStrategy,
    BackgroundMethod.DEFAULT: DefaultStrategy,
    BackgroundMethod.SMART: SmartStrategy,
}


class BackgroundRemover:
    """Runs a removal strategy and applies its mask as alpha"""

    def __init__(self, engine: RasterEngine):
        self.engine = engine
        self._strategies = {method: cls(engine) for method, cls in STRATEGIES.items()}

    def build_mask(self, asset: ImageAsset, config: BackgroundRemovalConfig) -> np.ndarray:
        return self._strategies[BackgroundMethod(config.method)].build_mask(asset, config)

    def remove(self, asset: ImageAsset, config: BackgroundRemovalConfig) -> ImageAsset:
        """
        Remove the background of an image.

        Returns:
            BGRA image whose alpha is source alpha * mask / 255

        Raises:
            ProcessingError: Naming the strategy when any step fails
        """
        strategy = self._strategies[BackgroundMethod(config.method)]
        operation = f"background-removal ({strategy.name})"
        try:
            mask = strategy.build_mask(asset, config)
            result = self.engine.apply_alpha_mask(asset, mask)
        except (ProcessingError, cv2.error, ValueError) as e:
            logger.error(f"Background removal with '{strategy.name}' failed: {e}")
            raise ProcessingError(str(e), operation=operation) from e

        logger.debug(
            f"Background removed with '{strategy.name}': "
            f"{int(np.count_nonzero(mask == 0))} pixels cleared"
        )
        return result
