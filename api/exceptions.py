"""
FastAPI exception handlers and endpoint guard.

Exception classes live in core.exceptions and are re-exported here for
routers.
"""

import functools
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from core.exceptions import (
    AssetNotFoundError,
    ImageServiceError,
    InputValidationError,
    MattingUnavailableError,
    ProcessingError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AssetNotFoundError",
    "ImageServiceError",
    "InputValidationError",
    "MattingUnavailableError",
    "ProcessingError",
    "safe_endpoint",
    "register_exception_handlers",
]


def safe_endpoint(func):
    """
    Wrap an async endpoint so unexpected exceptions surface as ProcessingError.

    HTTPException and service errors pass through untouched; anything else is
    logged with traceback and reported as a 500 naming the endpoint.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (HTTPException, ImageServiceError):
            raise
        except Exception as e:
            logger.error(f"Unhandled error in {func.__name__}: {e}", exc_info=True)
            raise ProcessingError(str(e), operation=func.__name__) from e

    return wrapper


async def image_service_exception_handler(request: Request, exc: ImageServiceError):
    """Render service errors with a consistent JSON body"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}")
    else:
        logger.warning(f"{exc.error}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format"""
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP error", "detail": exc.detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the service exception handlers on the app"""
    app.add_exception_handler(ImageServiceError, image_service_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
