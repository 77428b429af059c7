"""
Operation specifications for the pipeline executor.

OperationSpec is a closed union discriminated on `op`; each variant carries
only the parameters its kind needs. Short pipeline names such as "flip"
or "blur" map to fixed specs through NAMED_OPERATIONS.
"""

import base64
import binascii
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.constants import MaskDefaults, TransformDefaults, WatermarkDefaults
from core.enums import (
    BlendMode,
    ChannelOpKind,
    ColorAdjustKind,
    FilterKind,
    FlipAxis,
    Gravity,
    MaskShape,
    ResizeFit,
)


class _OperationBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ResizeOperation(_OperationBase):
    op: Literal["resize"] = "resize"
    width: Optional[int] = Field(default=None, gt=0, description="Target width")
    height: Optional[int] = Field(default=None, gt=0, description="Target height")
    fit: ResizeFit = Field(default=ResizeFit.FILL, description="How the image fills the box")

    @model_validator(mode="after")
    def require_dimension(self):
        if self.width is None and self.height is None:
            raise ValueError("resize requires width or height")
        return self


class CropOperation(_OperationBase):
    op: Literal["crop"] = "crop"
    left: int = Field(..., ge=0)
    top: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class FilterOperation(_OperationBase):
    """
    Single filter.

    magnitude is the blur sigma, the brightness multiplier or the contrast
    multiplier; other kinds ignore it.
    """

    op: Literal["filter"] = "filter"
    kind: FilterKind
    magnitude: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def require_magnitude(self):
        needs = (FilterKind.BLUR, FilterKind.BRIGHTNESS, FilterKind.CONTRAST)
        if self.kind in needs and self.magnitude is None:
            raise ValueError(f"filter '{self.kind.value}' requires a magnitude")
        return self


class CompositeOperation(_OperationBase):
    """Overlay an image, supplied as base64-encoded bytes"""

    op: Literal["composite"] = "composite"
    overlay: str = Field(..., description="Base64-encoded overlay image")
    left: Optional[int] = None
    top: Optional[int] = None
    gravity: Optional[Gravity] = None
    blend: BlendMode = BlendMode.OVER

    @field_validator("overlay")
    @classmethod
    def validate_overlay(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("overlay must be base64-encoded image bytes")
        return v

    def overlay_bytes(self) -> bytes:
        return base64.b64decode(self.overlay)


class RotateOperation(_OperationBase):
    op: Literal["rotate"] = "rotate"
    angle: float
    background: str = TransformDefaults.ROTATE_BACKGROUND


class FlipOperation(_OperationBase):
    op: Literal["flip"] = "flip"
    axis: FlipAxis = FlipAxis.VERTICAL


class ColorAdjustOperation(_OperationBase):
    """tint takes a color string as value, gamma a positive number"""

    op: Literal["color-adjust"] = "color-adjust"
    kind: ColorAdjustKind
    value: Optional[Union[float, str]] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_gamma(cls, data):
        if isinstance(data, dict) and data.get("kind") == ColorAdjustKind.GAMMA.value:
            value = data.get("value")
            if isinstance(value, str):
                try:
                    number = float(value)
                except ValueError:
                    # left as text; check_value rejects it
                    return data
                data = {**data, "value": number}
        return data

    @model_validator(mode="after")
    def check_value(self):
        if self.kind == ColorAdjustKind.TINT and not isinstance(self.value, str):
            raise ValueError("tint requires a color value")
        if self.kind == ColorAdjustKind.GAMMA:
            if isinstance(self.value, str) or self.value is None or self.value <= 0:
                raise ValueError("gamma requires a positive numeric value")
        return self


class ChannelOperation(_OperationBase):
    op: Literal["channel-op"] = "channel-op"
    kind: ChannelOpKind


class MaskOperation(_OperationBase):
    op: Literal["mask"] = "mask"
    shape: MaskShape
    radius: Optional[float] = Field(default=None, gt=0)
    background: str = MaskDefaults.BACKGROUND_COLOR


class BorderOperation(_OperationBase):
    op: Literal["border"] = "border"
    width: int = Field(..., ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    color: str = TransformDefaults.BORDER_COLOR


class WatermarkOperation(_OperationBase):
    op: Literal["watermark"] = "watermark"
    text: str = Field(..., min_length=1)
    font_size: int = Field(default=WatermarkDefaults.FONT_SIZE, gt=0)
    font_family: str = WatermarkDefaults.FONT_FAMILY
    color: str = WatermarkDefaults.COLOR
    opacity: float = Field(default=WatermarkDefaults.OPACITY, ge=0, le=1)
    position: Gravity = Gravity(WatermarkDefaults.POSITION)


OperationSpec = Annotated[
    Union[
        ResizeOperation,
        CropOperation,
        FilterOperation,
        CompositeOperation,
        RotateOperation,
        FlipOperation,
        ColorAdjustOperation,
        ChannelOperation,
        MaskOperation,
        BorderOperation,
        WatermarkOperation,
    ],
    Field(discriminator="op"),
]


NAMED_OPERATIONS: Dict[str, BaseModel] = {
    "greyscale": FilterOperation(kind=FilterKind.GREYSCALE),
    "negate": FilterOperation(kind=FilterKind.NEGATE),
    "normalize": FilterOperation(kind=FilterKind.NORMALIZE),
    "sharpen": FilterOperation(kind=FilterKind.SHARPEN),
    "blur": FilterOperation(kind=FilterKind.BLUR, magnitude=TransformDefaults.PIPELINE_BLUR_SIGMA),
    "flip": FlipOperation(axis=FlipAxis.VERTICAL),
    "flop": FlipOperation(axis=FlipAxis.HORIZONTAL),
}


class PipelineRequest(BaseModel):
    """Ordered operations applied left to right; names or full specs"""

    operations: List[Union[OperationSpec, str]] = Field(..., min_length=1)

    @field_validator("operations", mode="before")
    @classmethod
    def strip_names(cls, v):
        if isinstance(v, list):
            return [item.strip() if isinstance(item, str) else item for item in v]
        return v
