"""
Background removal API models.

Covers the ML matting endpoints under /api/bg-removal.
"""

from typing import List, Literal

from pydantic import BaseModel, Field, HttpUrl

from core.constants import MattingDefaults
from core.enums import MattingModelSize, OutputFormat

MattingOutputFormat = Literal["image/png", "image/jpeg", "image/webp"]

_MIME_TO_FORMAT = {
    "image/png": OutputFormat.PNG,
    "image/jpeg": OutputFormat.JPEG,
    "image/webp": OutputFormat.WEBP,
}


class MattingParams(BaseModel):
    """Options for ML background removal"""

    output_format: MattingOutputFormat = MattingDefaults.OUTPUT_FORMAT
    quality: float = Field(default=MattingDefaults.QUALITY, ge=0, le=1)
    model: MattingModelSize = MattingModelSize(MattingDefaults.MODEL)

    @property
    def encoding(self) -> OutputFormat:
        return _MIME_TO_FORMAT[self.output_format]


class MattingUrlRequest(MattingParams):
    """Remove the background of an image fetched from a URL"""

    image_url: HttpUrl


class MattingResponse(BaseModel):
    success: bool = True
    filename: str
    message: str
    download_url: str


class MattingListResponse(BaseModel):
    success: bool = True
    images: List[str]
    count: int


class MattingDeleteResponse(BaseModel):
    success: bool = True
    message: str
