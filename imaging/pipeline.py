"""
Operation pipeline executor.

Applies an ordered list of OperationSpecs to one image, strictly left to
right, with each step consuming the previous step's output. Short names
("flip", "blur", ...) are resolved through NAMED_OPERATIONS before any
pixel work starts, so an unknown name never leaves a half-applied chain.
"""

import logging
from typing import Callable, Dict, List, Sequence, Union

import cv2
from pydantic import BaseModel

from core.constants import ErrorMessages
from core.enums import (
    BandBoolOperation,
    Channel,
    ChannelOpKind,
    ColorAdjustKind,
    FilterKind,
    UnknownOperationPolicy,
)
from core.exceptions import InputValidationError, ProcessingError
from core.image.asset import ImageAsset
from core.raster_engine import RasterEngine
from imaging.masks import MaskProcessor
from imaging.watermark import WatermarkRenderer
from schemas.operations import (
    NAMED_OPERATIONS,
    BorderOperation,
    ChannelOperation,
    ColorAdjustOperation,
    CompositeOperation,
    CropOperation,
    FilterOperation,
    FlipOperation,
    MaskOperation,
    ResizeOperation,
    RotateOperation,
    WatermarkOperation,
)

logger = logging.getLogger(__name__)

Step = Union[str, BaseModel]

_EXTRACT = {
    ChannelOpKind.EXTRACT_RED: Channel.RED,
    ChannelOpKind.EXTRACT_GREEN: Channel.GREEN,
    ChannelOpKind.EXTRACT_BLUE: Channel.BLUE,
    ChannelOpKind.EXTRACT_ALPHA: Channel.ALPHA,
}

_BANDBOOL = {
    ChannelOpKind.BANDBOOL_AND: BandBoolOperation.AND,
    ChannelOpKind.BANDBOOL_OR: BandBoolOperation.OR,
    ChannelOpKind.BANDBOOL_EOR: BandBoolOperation.EOR,
}


class PipelineExecutor:
    """
    Runs operation chains on the raster engine.

    Args:
        engine: Raster engine executing the primitives
        unknown_policy: FAIL rejects unknown operation names before any
            step runs; SKIP logs and drops them
    """

    def __init__(
        self,
        engine: RasterEngine,
        unknown_policy: UnknownOperationPolicy = UnknownOperationPolicy.FAIL,
    ):
        self.engine = engine
        self.unknown_policy = UnknownOperationPolicy(unknown_policy)
        self.masks = MaskProcessor(engine)
        self.watermarks = WatermarkRenderer(engine)
        self._handlers: Dict[str, Callable[[ImageAsset, BaseModel], ImageAsset]] = {
            "resize": self._resize,
            "crop": self._crop,
            "filter": self._filter,
            "composite": self._composite,
            "rotate": self._rotate,
            "flip": self._flip,
            "color-adjust": self._color_adjust,
            "channel-op": self._channel_op,
            "mask": self._mask,
            "border": self._border,
            "watermark": self._watermark,
        }

    def resolve(self, operations: Sequence[Step]) -> List[BaseModel]:
        """
        Turn names and specs into a list of specs.

        Raises:
            InputValidationError: On an empty chain, or an unknown name under
                the FAIL policy
        """
        resolved: List[BaseModel] = []
        for item in operations:
            if not isinstance(item, str):
                resolved.append(item)
                continue
            spec = NAMED_OPERATIONS.get(item.strip().lower())
            if spec is not None:
                resolved.append(spec)
            elif self.unknown_policy == UnknownOperationPolicy.FAIL:
                raise InputValidationError(
                    ErrorMessages.UNKNOWN_OPERATION.format(name=item), operation="pipeline"
                )
            else:
                logger.warning(f"Skipping unknown pipeline operation '{item}'")

        if not resolved:
            raise InputValidationError(ErrorMessages.PIPELINE_EMPTY, operation="pipeline")
        return resolved

    def apply(self, base: ImageAsset, operations: Sequence[Step]) -> ImageAsset:
        """
        Apply operations in order and return the final image.

        Raises:
            InputValidationError: If the chain cannot be resolved, or a step's
                parameters do not fit the image
            ProcessingError: Naming the failing step index and operation
        """
        steps = self.resolve(operations)
        current = base
        for index, spec in enumerate(steps):
            handler = self._handlers[spec.op]
            try:
                current = handler(current, spec)
            except InputValidationError:
                raise
            except (ProcessingError, cv2.error, ValueError) as e:
                logger.error(f"Pipeline step {index} ({spec.op}) failed: {e}")
                raise ProcessingError(
                    f"step {index} ({spec.op}): {e}", operation="pipeline"
                ) from e
        logger.debug(f"Pipeline applied {len(steps)} operations")
        return current

    # Handlers

    def _resize(self, asset: ImageAsset, spec: ResizeOperation) -> ImageAsset:
        return self.engine.resize(asset, spec.width, spec.height, spec.fit)

    def _crop(self, asset: ImageAsset, spec: CropOperation) -> ImageAsset:
        return self.engine.crop(asset, spec.left, spec.top, spec.width, spec.height)

    def _filter(self, asset: ImageAsset, spec: FilterOperation) -> ImageAsset:
        kind = spec.kind
        if kind == FilterKind.BLUR:
            return self.engine.blur(asset, spec.magnitude)
        if kind == FilterKind.SHARPEN:
            return self.engine.sharpen(asset)
        if kind == FilterKind.GREYSCALE:
            return self.engine.greyscale(asset)
        if kind == FilterKind.BRIGHTNESS:
            return self.engine.modulate(asset, spec.magnitude)
        if kind == FilterKind.CONTRAST:
            return self.engine.linear(asset, spec.magnitude, 0.0)
        if kind == FilterKind.NORMALIZE:
            return self.engine.normalize(asset)
        return self.engine.negate(asset)

    def _composite(self, asset: ImageAsset, spec: CompositeOperation) -> ImageAsset:
        overlay = self.engine.decode(spec.overlay_bytes())
        return self.engine.composite(
            asset, overlay, left=spec.left, top=spec.top, gravity=spec.gravity, blend=spec.blend
        )

    def _rotate(self, asset: ImageAsset, spec: RotateOperation) -> ImageAsset:
        return self.engine.rotate(asset, spec.angle, spec.background)

    def _flip(self, asset: ImageAsset, spec: FlipOperation) -> ImageAsset:
        return self.engine.flip(asset, spec.axis)

    def _color_adjust(self, asset: ImageAsset, spec: ColorAdjustOperation) -> ImageAsset:
        if spec.kind == ColorAdjustKind.TINT:
            return self.engine.tint(asset, spec.value)
        if spec.kind == ColorAdjustKind.GAMMA:
            return self.engine.gamma(asset, float(spec.value))
        if spec.kind == ColorAdjustKind.NEGATE:
            return self.engine.negate(asset)
        return self.engine.normalize(asset)

    def _channel_op(self, asset: ImageAsset, spec: ChannelOperation) -> ImageAsset:
        kind = spec.kind
        if kind == ChannelOpKind.REMOVE_ALPHA:
            return self.engine.remove_alpha(asset)
        if kind == ChannelOpKind.ENSURE_ALPHA:
            return self.engine.ensure_alpha(asset)
        if kind in _EXTRACT:
            return self.engine.extract_channel(asset, _EXTRACT[kind])
        return self.engine.bandbool(asset, _BANDBOOL[kind])

    def _mask(self, asset: ImageAsset, spec: MaskOperation) -> ImageAsset:
        return self.masks.apply(asset, spec.shape, spec.radius, spec.background)

    def _border(self, asset: ImageAsset, spec: BorderOperation) -> ImageAsset:
        vertical = spec.height or spec.width
        return self.engine.extend(asset, vertical, vertical, spec.width, spec.width, spec.color)

    def _watermark(self, asset: ImageAsset, spec: WatermarkOperation) -> ImageAsset:
        return self.watermarks.apply(
            asset,
            spec.text,
            font_size=spec.font_size,
            font_family=spec.font_family,
            color=spec.color,
            opacity=spec.opacity,
            position=spec.position,
        )
