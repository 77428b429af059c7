"""
Schemas Package

Pydantic models for request validation and response serialization,
organized by domain:
- image: single-operation parameters and responses
- operations: OperationSpec variants for the pipeline executor
- background: ML matting requests and responses
- system: status and engine tuning
"""

from .background import (
    MattingDeleteResponse,
    MattingListResponse,
    MattingParams,
    MattingResponse,
    MattingUrlRequest,
)
from .image import (
    BorderParams,
    ChannelOperationParams,
    CollageParams,
    ColorAdjustParams,
    ColorspaceParams,
    CompositeParams,
    ConvertParams,
    CropParams,
    FilterParams,
    FlipParams,
    ImageInfo,
    MaskParams,
    OperationResponse,
    ResizeParams,
    RotateParams,
    ThumbnailParams,
    ThumbnailSize,
    ThumbnailsResponse,
    TransformParams,
    UploadResponse,
    WatermarkParams,
)
from .operations import (
    NAMED_OPERATIONS,
    BorderOperation,
    ChannelOperation,
    ColorAdjustOperation,
    CompositeOperation,
    CropOperation,
    FilterOperation,
    FlipOperation,
    MaskOperation,
    OperationSpec,
    PipelineRequest,
    ResizeOperation,
    RotateOperation,
    WatermarkOperation,
)
from .system import EngineSettingsUpdate, EngineStatus, SystemStatus

__all__ = [
    # Image operations
    "BorderParams",
    "ChannelOperationParams",
    "CollageParams",
    "ColorAdjustParams",
    "ColorspaceParams",
    "CompositeParams",
    "ConvertParams",
    "CropParams",
    "FilterParams",
    "FlipParams",
    "ImageInfo",
    "MaskParams",
    "OperationResponse",
    "ResizeParams",
    "RotateParams",
    "ThumbnailParams",
    "ThumbnailSize",
    "ThumbnailsResponse",
    "TransformParams",
    "UploadResponse",
    "WatermarkParams",
    # Pipeline
    "NAMED_OPERATIONS",
    "BorderOperation",
    "ChannelOperation",
    "ColorAdjustOperation",
    "CompositeOperation",
    "CropOperation",
    "FilterOperation",
    "FlipOperation",
    "MaskOperation",
    "OperationSpec",
    "PipelineRequest",
    "ResizeOperation",
    "RotateOperation",
    "WatermarkOperation",
    # Matting
    "MattingDeleteResponse",
    "MattingListResponse",
    "MattingParams",
    "MattingResponse",
    "MattingUrlRequest",
    # System
    "EngineSettingsUpdate",
    "EngineStatus",
    "SystemStatus",
]
