"""
Matting Service - ML background removal backed by the matting model.

Uploads and fetched URLs are validated against the allowed MIME types and
the size limit, passed to the opaque matting model, re-encoded in the
requested format and stored in the matting asset store.
"""

import asyncio
import ipaddress
import logging
import socket
from pathlib import Path
from typing import List, Optional

import httpx

from core.asset_store import AssetStore, generate_filename
from core.constants import ErrorMessages, UploadConstants
from core.enums import OutputFormat
from core.exceptions import InputValidationError, ProcessingError
from core.raster_engine import RasterEngine
from imaging.matting import MattingModel
from schemas.background import MattingParams
from services.image_service import ImageUpload

logger = logging.getLogger(__name__)

MATTING_TAG = "bg-removed"


class MattingService:
    """Service for accurate background removal and its stored results"""

    def __init__(
        self,
        engine: RasterEngine,
        store: AssetStore,
        model: MattingModel,
        max_upload_mb: int = UploadConstants.MAX_UPLOAD_SIZE_MB,
        fetch_timeout: float = 30.0,
        allow_private_hosts: bool = False,
    ):
        self.engine = engine
        self.store = store
        self.model = model
        self.max_upload_mb = max_upload_mb
        self.fetch_timeout = fetch_timeout
        self.allow_private_hosts = allow_private_hosts

    def validate(self, upload: ImageUpload) -> None:
        """
        Check an upload before it reaches the model.

        Raises:
            InputValidationError: Missing data, disallowed type or oversized file
        """
        if not upload.data:
            raise InputValidationError(ErrorMessages.NO_FILE, operation="matting")
        allowed = UploadConstants.ALLOWED_MATTING_MIME_TYPES
        content_type = (upload.content_type or "").split(";")[0].strip().lower()
        if content_type not in allowed:
            raise InputValidationError(
                ErrorMessages.INVALID_MIME_TYPE.format(allowed=", ".join(allowed)),
                operation="matting",
            )
        if upload.size > self.max_upload_mb * 1024 * 1024:
            raise InputValidationError(
                ErrorMessages.FILE_TOO_LARGE.format(max_mb=self.max_upload_mb),
                operation="matting",
            )

    async def remove_background(
        self,
        upload: ImageUpload,
        params: MattingParams,
        stem: Optional[str] = None,
    ) -> str:
        self.validate(upload)
        cutout = await asyncio.to_thread(self.model.remove_background, upload.data, params.model)
        asset = await asyncio.to_thread(self.engine.decode, cutout)

        output_format = params.encoding
        quality = None
        if output_format != OutputFormat.PNG:
            quality = int(round(params.quality * 100))
        data = await asyncio.to_thread(self.engine.encode, asset, output_format, quality)

        filename = generate_filename(
            MATTING_TAG, output_format.extension, stem or upload.filename
        )
        await asyncio.to_thread(self.store.save, filename, data)
        logger.info(f"Background removed with '{params.model.value}' model: {filename}")
        return filename

    async def fetch(self, url: str) -> ImageUpload:
        """
        Download an image for matting.

        Every request, redirects included, passes check_fetch_target first.

        Raises:
            InputValidationError: The URL or a redirect targets a disallowed host
            ProcessingError: The URL could not be fetched
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.fetch_timeout,
                follow_redirects=True,
                event_hooks={"request": [self.check_fetch_target]},
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch image from {url}: {e}")
            raise ProcessingError(f"Could not fetch {url}: {e}", operation="matting") from e

        content_type = response.headers.get("content-type", "")
        return ImageUpload(
            data=response.content, filename=Path(response.url.path).name, content_type=content_type
        )

    async def check_fetch_target(self, request: httpx.Request) -> None:
        """Reject non-HTTP schemes and hosts that resolve to non-public addresses"""
        url = request.url
        if url.scheme not in ("http", "https"):
            raise InputValidationError(
                ErrorMessages.URL_NOT_ALLOWED.format(url=url), operation="matting"
            )
        if self.allow_private_hosts:
            return
        try:
            infos = await asyncio.to_thread(
                socket.getaddrinfo, url.host, url.port, type=socket.SOCK_STREAM
            )
        except socket.gaierror as e:
            raise ProcessingError(f"Could not resolve {url.host}: {e}", operation="matting") from e
        for info in infos:
            address = ipaddress.ip_address(info[4][0].split("%")[0])
            if not address.is_global:
                logger.warning(f"Refusing to fetch {url}: {url.host} resolves to {address}")
                raise InputValidationError(
                    ErrorMessages.URL_NOT_ALLOWED.format(url=url), operation="matting"
                )

    async def remove_background_from_url(self, url: str, params: MattingParams) -> str:
        upload = await self.fetch(url)
        return await self.remove_background(upload, params, stem="url")

    def list_images(self) -> List[str]:
        return self.store.list(prefix=f"{MATTING_TAG}_")

    def path(self, filename: str) -> Path:
        return self.store.path(filename)

    def delete(self, filename: str) -> None:
        self.store.delete(filename)
