"""
Background Removal API Router - ML matting endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse

from api.dependencies import build_params, get_matting_service, read_upload
from api.exceptions import safe_endpoint
from schemas.background import (
    MattingDeleteResponse,
    MattingListResponse,
    MattingParams,
    MattingResponse,
    MattingUrlRequest,
)
from services.background_service import MattingService

logger = logging.getLogger(__name__)

router = APIRouter()


def _matting_url(filename: str) -> str:
    return f"/api/bg-removal/images/{filename}"


@router.post("/upload")
@safe_endpoint
async def remove_background_upload(
    image: UploadFile = File(None),
    output_format: Optional[str] = Form(None, alias="outputFormat"),
    quality: Optional[str] = Form(None),
    model: Optional[str] = Form(None),
    matting_service: MattingService = Depends(get_matting_service),
) -> MattingResponse:
    """Remove the background of an uploaded image with the matting model"""
    upload = await read_upload(image)
    params = build_params(MattingParams, output_format=output_format, quality=quality, model=model)
    filename = await matting_service.remove_background(upload, params)
    return MattingResponse(
        filename=filename,
        message="Background removed successfully",
        download_url=_matting_url(filename),
    )


@router.post("/url")
@safe_endpoint
async def remove_background_url(
    request: MattingUrlRequest = Body(...),
    matting_service: MattingService = Depends(get_matting_service),
) -> MattingResponse:
    """Fetch an image and remove its background"""
    filename = await matting_service.remove_background_from_url(str(request.image_url), request)
    return MattingResponse(
        filename=filename,
        message="Background removed successfully",
        download_url=_matting_url(filename),
    )


@router.get("/images")
@safe_endpoint
async def list_images(
    matting_service: MattingService = Depends(get_matting_service),
) -> MattingListResponse:
    """List stored matting results, newest first"""
    images = matting_service.list_images()
    return MattingListResponse(images=images, count=len(images))


@router.get("/images/{filename}")
@safe_endpoint
async def get_image(
    filename: str, matting_service: MattingService = Depends(get_matting_service)
) -> FileResponse:
    return FileResponse(matting_service.path(filename), filename=filename)


@router.delete("/images/{filename}")
@safe_endpoint
async def delete_image(
    filename: str, matting_service: MattingService = Depends(get_matting_service)
) -> MattingDeleteResponse:
    matting_service.delete(filename)
    logger.info(f"Deleted matting result {filename}")
    return MattingDeleteResponse(message="Image deleted successfully")
