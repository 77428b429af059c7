"""
Image operation API models.

Form fields arrive as text; routers validate them into these models once
and services only ever see typed values.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from core.constants import CollageDefaults, MaskDefaults, TransformDefaults, WatermarkDefaults
from core.enums import (
    BandBoolOperation,
    BlendMode,
    Channel,
    Colorspace,
    FlipAxis,
    Gravity,
    MaskShape,
    OutputFormat,
)


# Responses
class OperationResponse(BaseModel):
    """Result of an operation that persisted one output file"""

    message: str
    filename: str
    download_url: str


class ImageInfo(BaseModel):
    """Decoded image metadata"""

    format: Optional[str] = None
    width: int
    height: int
    channels: int
    density: Optional[float] = None
    has_alpha: bool
    size: Optional[int] = Field(default=None, description="Upload size in bytes")


class UploadResponse(BaseModel):
    message: str
    original_info: ImageInfo


class ThumbnailsResponse(BaseModel):
    message: str
    filenames: List[str]
    download_urls: List[str]


# Requests
class ResizeParams(BaseModel):
    width: int = Field(..., gt=0, description="Target width in pixels")
    height: int = Field(..., gt=0, description="Target height in pixels")


class ConvertParams(BaseModel):
    format: OutputFormat = Field(..., description="Target encoding (jpeg, png, webp)")


class FilterParams(BaseModel):
    """Filters applied in field order: blur, sharpen, greyscale, brightness, contrast"""

    blur: Optional[float] = Field(default=None, ge=0, description="Gaussian sigma")
    sharpen: bool = False
    greyscale: bool = False
    brightness: Optional[float] = Field(default=None, ge=0, description="Lightness multiplier")
    contrast: Optional[float] = Field(default=None, ge=0, description="Linear multiplier")


class CropParams(BaseModel):
    left: int = Field(..., ge=0)
    top: int = Field(..., ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class CompositeParams(BaseModel):
    left: Optional[int] = None
    top: Optional[int] = None
    blend: BlendMode = BlendMode.OVER
    gravity: Optional[Gravity] = None


class CollageParams(BaseModel):
    columns: int = Field(..., ge=1, description="Images per row")
    spacing: int = Field(default=CollageDefaults.SPACING, ge=0, description="Gap in pixels")
    background_color: str = CollageDefaults.BACKGROUND_COLOR


class WatermarkParams(BaseModel):
    text: str = Field(..., min_length=1)
    font_size: int = Field(default=WatermarkDefaults.FONT_SIZE, gt=0)
    font_family: str = WatermarkDefaults.FONT_FAMILY
    color: str = WatermarkDefaults.COLOR
    opacity: float = Field(default=WatermarkDefaults.OPACITY, ge=0, le=1)
    position: Gravity = Gravity(WatermarkDefaults.POSITION)


class BorderParams(BaseModel):
    width: int = Field(..., ge=1, description="Left/right border in pixels")
    height: Optional[int] = Field(default=None, ge=1, description="Top/bottom border, defaults to width")
    color: str = TransformDefaults.BORDER_COLOR


class MaskParams(BaseModel):
    shape: MaskShape
    radius: Optional[float] = Field(default=None, gt=0)
    background_color: str = MaskDefaults.BACKGROUND_COLOR


class RotateParams(BaseModel):
    angle: float = Field(..., description="Clockwise rotation in degrees")
    background_color: str = TransformDefaults.ROTATE_BACKGROUND


class FlipParams(BaseModel):
    direction: FlipAxis


class TransformParams(BaseModel):
    """Rotate, then flip (vertical), then flop (horizontal)"""

    angle: Optional[float] = None
    flip: bool = False
    flop: bool = False
    background_color: str = TransformDefaults.ROTATE_BACKGROUND


class ColorAdjustParams(BaseModel):
    """Adjustments applied in order: tint, gamma, negate, normalize"""

    tint: Optional[str] = None
    gamma: Optional[float] = Field(default=None, gt=0)
    negate: bool = False
    normalize: bool = False


class ColorspaceParams(BaseModel):
    colorspace: Colorspace


class ChannelOperationParams(BaseModel):
    """Channel steps applied in order: remove alpha, ensure alpha, extract, bandbool"""

    remove_alpha: bool = False
    ensure_alpha: bool = False
    extract_channel: Optional[Channel] = None
    bandbool: Optional[BandBoolOperation] = None


class ThumbnailSize(BaseModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    suffix: str = Field(..., pattern=r"^[A-Za-z0-9_-]+$")


class ThumbnailParams(BaseModel):
    sizes: List[ThumbnailSize] = Field(..., min_length=1)
