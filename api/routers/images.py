"""
Image API Router - Upload and transform operations

Every transform takes a multipart upload plus text form fields, stores one
output file and answers with its filename and download URL.
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse

from api.dependencies import (
    build_params,
    download_url,
    get_image_service,
    read_upload,
    read_uploads,
)
from api.exceptions import InputValidationError, safe_endpoint
from core.constants import ErrorMessages, ImageConstants
from imaging.background import BackgroundRemovalConfig
from schemas.image import (
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
    ThumbnailsResponse,
    TransformParams,
    UploadResponse,
    WatermarkParams,
)
from schemas.operations import PipelineRequest
from services.image_service import ImageService

logger = logging.getLogger(__name__)

router = APIRouter()


def _done(message: str, filename: str) -> OperationResponse:
    return OperationResponse(message=message, filename=filename, download_url=download_url(filename))


def parse_operations(text: Optional[str]) -> PipelineRequest:
    """
    Parse the pipeline `operations` field.

    Accepts a comma-separated list of operation names ("greyscale,flip") or a
    JSON array mixing names and full operation objects.
    """
    text = (text or "").strip()
    if text.startswith("["):
        try:
            items = json.loads(text)
        except json.JSONDecodeError as e:
            raise InputValidationError(
                f"Malformed operations JSON: {e}", operation="pipeline"
            ) from e
    else:
        items = [item.strip() for item in text.split(",") if item.strip()]
    if not items:
        raise InputValidationError(ErrorMessages.PIPELINE_EMPTY, operation="pipeline")
    return build_params(PipelineRequest, operations=items)


def parse_thumbnail_sizes(text: Optional[str]) -> ThumbnailParams:
    """Parse the thumbnails `sizes` JSON field; missing means the default sizes."""
    if not text or not text.strip():
        return ThumbnailParams(sizes=ImageConstants.DEFAULT_THUMBNAIL_SIZES)
    try:
        sizes = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputValidationError(f"Malformed sizes JSON: {e}", operation="thumbnails") from e
    return build_params(ThumbnailParams, sizes=sizes)


@router.post("/upload")
@safe_endpoint
async def upload_image(
    image: UploadFile = File(None),
    image_service: ImageService = Depends(get_image_service),
) -> UploadResponse:
    """Upload an image and report its metadata"""
    info = await image_service.info(await read_upload(image))
    return UploadResponse(message="Image uploaded successfully", original_info=info)


@router.post("/info")
@safe_endpoint
async def image_info(
    image: UploadFile = File(None),
    image_service: ImageService = Depends(get_image_service),
) -> ImageInfo:
    """Decoded metadata of an uploaded image"""
    return await image_service.info(await read_upload(image))


@router.post("/resize")
@safe_endpoint
async def resize_image(
    image: UploadFile = File(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Resize to exactly width x height, cropping to cover"""
    upload = await read_upload(image)
    params = build_params(ResizeParams, width=width, height=height)
    filename = await image_service.resize(upload, params)
    return _done("Image resized successfully", filename)


@router.post("/convert")
@safe_endpoint
async def convert_image(
    image: UploadFile = File(None),
    format: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(ConvertParams, format=format)
    filename = await image_service.convert(upload, params)
    return _done("Image converted successfully", filename)


@router.post("/filters")
@safe_endpoint
async def apply_filters(
    image: UploadFile = File(None),
    blur: Optional[str] = Form(None),
    sharpen: Optional[str] = Form(None),
    greyscale: Optional[str] = Form(None),
    brightness: Optional[str] = Form(None),
    contrast: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Apply blur, sharpen, greyscale, brightness and contrast, in that order"""
    upload = await read_upload(image)
    params = build_params(
        FilterParams,
        blur=blur,
        sharpen=sharpen,
        greyscale=greyscale,
        brightness=brightness,
        contrast=contrast,
    )
    filename = await image_service.apply_filters(upload, params)
    return _done("Filters applied successfully", filename)


@router.post("/crop")
@safe_endpoint
async def crop_image(
    image: UploadFile = File(None),
    left: Optional[str] = Form(None),
    top: Optional[str] = Form(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(CropParams, left=left, top=top, width=width, height=height)
    filename = await image_service.crop(upload, params)
    return _done("Image cropped successfully", filename)


@router.get("/download/{filename}")
@safe_endpoint
async def download_image(
    filename: str, image_service: ImageService = Depends(get_image_service)
) -> FileResponse:
    """Stream a stored output file; 404 when it does not exist"""
    path = image_service.download_path(filename)
    return FileResponse(path, filename=filename)


@router.post("/composite")
@safe_endpoint
async def composite_images(
    images: List[UploadFile] = File(None),
    left: Optional[str] = Form(None),
    top: Optional[str] = Form(None),
    blend: Optional[str] = Form(None),
    gravity: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Composite the second image over the first"""
    uploads = await read_uploads(images)
    if len(uploads) != 2:
        raise InputValidationError(ErrorMessages.COMPOSITE_COUNT, operation="composite")
    params = build_params(CompositeParams, left=left, top=top, blend=blend, gravity=gravity)
    filename = await image_service.composite(uploads[0], uploads[1], params)
    return _done("Images composited successfully", filename)


@router.post("/collage")
@safe_endpoint
async def create_collage(
    images: List[UploadFile] = File(None),
    columns: Optional[str] = Form(None),
    spacing: Optional[str] = Form(None),
    background_color: Optional[str] = Form(None, alias="backgroundColor"),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    uploads = await read_uploads(images)
    if not uploads:
        raise InputValidationError(ErrorMessages.COLLAGE_EMPTY, operation="collage")
    params = build_params(
        CollageParams,
        columns=columns,
        spacing=spacing,
        background_color=background_color,
    )
    filename = await image_service.collage(uploads, params)
    return _done("Collage created successfully", filename)


@router.post("/watermark")
@safe_endpoint
async def add_watermark(
    image: UploadFile = File(None),
    text: Optional[str] = Form(None),
    font_size: Optional[str] = Form(None, alias="fontSize"),
    font_family: Optional[str] = Form(None, alias="fontFamily"),
    color: Optional[str] = Form(None),
    opacity: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    if not text or not text.strip():
        raise InputValidationError(ErrorMessages.WATERMARK_TEXT_REQUIRED, operation="watermark")
    params = build_params(
        WatermarkParams,
        text=text,
        font_size=font_size,
        font_family=font_family,
        color=color,
        opacity=opacity,
        position=position,
    )
    filename = await image_service.watermark(upload, params)
    return _done("Watermark added successfully", filename)


@router.post("/border")
@safe_endpoint
async def add_border(
    image: UploadFile = File(None),
    width: Optional[str] = Form(None),
    height: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(BorderParams, width=width, height=height, color=color)
    filename = await image_service.border(upload, params)
    return _done("Border added successfully", filename)


@router.post("/mask")
@safe_endpoint
async def apply_mask(
    image: UploadFile = File(None),
    shape: Optional[str] = Form(None, alias="type"),
    radius: Optional[str] = Form(None),
    background_color: Optional[str] = Form(None, alias="backgroundColor"),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Mask with a circle, rounded rectangle or star; stored as PNG"""
    upload = await read_upload(image)
    params = build_params(
        MaskParams, shape=shape, radius=radius, background_color=background_color
    )
    filename = await image_service.mask(upload, params)
    return _done("Mask applied successfully", filename)


@router.post("/rotate")
@safe_endpoint
async def rotate_image(
    image: UploadFile = File(None),
    angle: Optional[str] = Form(None),
    background_color: Optional[str] = Form(None, alias="backgroundColor"),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(RotateParams, angle=angle, background_color=background_color)
    filename = await image_service.rotate(upload, params)
    return _done("Image rotated successfully", filename)


@router.post("/rotate/flip")
@safe_endpoint
async def flip_image(
    image: UploadFile = File(None),
    direction: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(FlipParams, direction=direction)
    filename = await image_service.flip(upload, params)
    return _done("Image flipped successfully", filename)


@router.post("/rotate/transform")
@safe_endpoint
async def transform_image(
    image: UploadFile = File(None),
    angle: Optional[str] = Form(None),
    flip: Optional[str] = Form(None),
    flop: Optional[str] = Form(None),
    background_color: Optional[str] = Form(None, alias="backgroundColor"),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Rotate, then flip, then flop"""
    upload = await read_upload(image)
    params = build_params(
        TransformParams, angle=angle, flip=flip, flop=flop, background_color=background_color
    )
    filename = await image_service.transform(upload, params)
    return _done("Image transformed successfully", filename)


@router.post("/color/adjust")
@safe_endpoint
async def adjust_color(
    image: UploadFile = File(None),
    tint: Optional[str] = Form(None),
    gamma: Optional[str] = Form(None),
    negate: Optional[str] = Form(None),
    normalize: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(
        ColorAdjustParams, tint=tint, gamma=gamma, negate=negate, normalize=normalize
    )
    filename = await image_service.adjust_color(upload, params)
    return _done("Color adjustments applied successfully", filename)


@router.post("/color/space")
@safe_endpoint
async def convert_colorspace(
    image: UploadFile = File(None),
    colorspace: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(ColorspaceParams, colorspace=colorspace or "srgb")
    filename = await image_service.colorspace(upload, params)
    return _done("Colorspace converted successfully", filename)


@router.post("/channel/operations")
@safe_endpoint
async def channel_operations(
    image: UploadFile = File(None),
    remove_alpha: Optional[str] = Form(None, alias="removeAlpha"),
    ensure_alpha: Optional[str] = Form(None, alias="ensureAlpha"),
    extract_channel: Optional[str] = Form(None, alias="extractChannel"),
    bandbool: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    params = build_params(
        ChannelOperationParams,
        remove_alpha=remove_alpha,
        ensure_alpha=ensure_alpha,
        extract_channel=extract_channel,
        bandbool=bandbool,
    )
    filename = await image_service.channel_operations(upload, params)
    return _done("Channel operations applied successfully", filename)


@router.post("/channel/join")
@safe_endpoint
async def join_channels(
    channels: List[UploadFile] = File(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Join 2 to 4 single-channel images into one image, in R, G, B, A order"""
    uploads = await read_uploads(channels)
    filename = await image_service.join_channels(uploads)
    return _done("Channels joined successfully", filename)


@router.post("/utility/thumbnails")
@safe_endpoint
async def create_thumbnails(
    image: UploadFile = File(None),
    sizes: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> ThumbnailsResponse:
    upload = await read_upload(image)
    params = parse_thumbnail_sizes(sizes)
    filenames = await image_service.thumbnails(upload, params.sizes)
    return ThumbnailsResponse(
        message="Thumbnails created successfully",
        filenames=filenames,
        download_urls=[download_url(name) for name in filenames],
    )


@router.post("/utility/clone")
@safe_endpoint
async def clone_image(
    image: UploadFile = File(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    filename = await image_service.clone(await read_upload(image))
    return _done("Image cloned successfully", filename)


@router.post("/utility/pipeline")
@safe_endpoint
async def run_pipeline(
    image: UploadFile = File(None),
    operations: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    """Apply an ordered chain of operations in one call"""
    upload = await read_upload(image)
    request = parse_operations(operations)
    filename = await image_service.pipeline(upload, request.operations)
    return _done("Pipeline operations applied successfully", filename)


@router.post("/background/remove")
@safe_endpoint
async def remove_background(
    image: UploadFile = File(None),
    method: Optional[str] = Form(None),
    threshold: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    tolerance: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    config = build_params(
        BackgroundRemovalConfig,
        method=method,
        threshold=threshold,
        color=color,
        tolerance=tolerance,
    )
    filename = await image_service.remove_background(upload, config)
    return _done("Background removed successfully", filename)


@router.post("/background/smart-remove")
@safe_endpoint
async def smart_remove_background(
    image: UploadFile = File(None),
    edge_detection: Optional[str] = Form(None, alias="edgeDetection"),
    color_threshold: Optional[str] = Form(None, alias="colorThreshold"),
    blur: Optional[str] = Form(None),
    feather: Optional[str] = Form(None),
    image_service: ImageService = Depends(get_image_service),
) -> OperationResponse:
    upload = await read_upload(image)
    config = build_params(
        BackgroundRemovalConfig,
        method="smart",
        edge_detection=edge_detection,
        color_threshold=color_threshold,
        blur=blur,
        feather=feather,
    )
    filename = await image_service.remove_background(upload, config, tag="smart_bg_removed")
    return _done("Smart background removal completed", filename)
