"""
Shared FastAPI dependencies for the image transform service.
Centralizes app-state access, upload reading and form validation.
"""

import logging
from typing import List, Optional, Type, TypeVar

from fastapi import HTTPException, Request, UploadFile
from pydantic import BaseModel, ValidationError

from config import Settings, get_settings
from core.asset_store import AssetStore
from core.constants import ErrorMessages
from core.exceptions import InputValidationError
from core.raster_engine import RasterEngine
from services.background_service import MattingService
from services.image_service import ImageService, ImageUpload

logger = logging.getLogger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)


def _state(request: Request, name: str):
    try:
        return getattr(request.app.state, name)
    except AttributeError as e:
        logger.error(f"{name} not initialized in app state: {e}")
        raise HTTPException(
            status_code=500, detail=f"Internal server error: {name} not initialized"
        )


def get_settings_dep(request: Request) -> Settings:
    """Settings from app state, falling back to the cached environment settings."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_engine(request: Request) -> RasterEngine:
    """Get the shared RasterEngine instance."""
    return _state(request, "engine")


def get_asset_store(request: Request) -> AssetStore:
    """Get the output AssetStore instance."""
    return _state(request, "asset_store")


def get_image_service(request: Request) -> ImageService:
    """Get ImageService instance."""
    return _state(request, "image_service")


def get_matting_service(request: Request) -> MattingService:
    """Get MattingService instance."""
    return _state(request, "matting_service")


def build_params(params_model: Type[ParamsT], /, **fields) -> ParamsT:
    """
    Validate text form fields into a typed parameter model.

    Empty and missing fields are dropped so model defaults apply.

    Raises:
        InputValidationError: If a field cannot be parsed or is out of range
    """
    values = {k: v for k, v in fields.items() if v is not None and v != ""}
    try:
        return params_model(**values)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
        raise InputValidationError(f"Invalid parameters: {summary}", errors=errors) from e


async def read_upload(file: Optional[UploadFile]) -> ImageUpload:
    """
    Read an uploaded file into memory.

    Raises:
        InputValidationError: If no file was sent
    """
    if file is None:
        raise InputValidationError(ErrorMessages.NO_FILE)
    data = await file.read()
    return ImageUpload(data=data, filename=file.filename, content_type=file.content_type)


async def read_uploads(files: Optional[List[UploadFile]]) -> List[ImageUpload]:
    """Read several uploads, keeping their order"""
    return [await read_upload(file) for file in files or []]


def download_url(filename: str) -> str:
    return f"/api/images/download/{filename}"
