"""
Image Service - Business logic for image transform operations.

Each operation decodes the upload through the raster engine, routes the
image to the matching algorithm, encodes the result and persists it to
the asset store. CPU-bound work runs in worker threads so the event loop
stays responsive; multi-image requests decode concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from core.asset_store import AssetStore, generate_filename
from core.constants import ErrorMessages, ImageConstants, UploadConstants
from core.enums import (
    ChannelOpKind,
    ColorAdjustKind,
    Colorspace,
    FilterKind,
    FlipAxis,
    OutputFormat,
    ResizeFit,
    UnknownOperationPolicy,
)
from core.exceptions import InputValidationError
from core.image.asset import ImageAsset
from core.raster_engine import RasterEngine
from imaging.background import BackgroundRemovalConfig, BackgroundRemover
from imaging.collage import CollageBuilder
from imaging.pipeline import PipelineExecutor, Step
from schemas.image import (
    BorderParams,
    ChannelOperationParams,
    ColorAdjustParams,
    ColorspaceParams,
    CollageParams,
    CompositeParams,
    ConvertParams,
    CropParams,
    FilterParams,
    FlipParams,
    ImageInfo,
    MaskParams,
    ResizeParams,
    RotateParams,
    ThumbnailSize,
    TransformParams,
    WatermarkParams,
)
from schemas.operations import (
    BorderOperation,
    ChannelOperation,
    ColorAdjustOperation,
    CropOperation,
    FilterOperation,
    FlipOperation,
    MaskOperation,
    ResizeOperation,
    RotateOperation,
    WatermarkOperation,
)

logger = logging.getLogger(__name__)

_SOURCE_FORMATS = {
    "jpeg": OutputFormat.JPEG,
    "png": OutputFormat.PNG,
    "webp": OutputFormat.WEBP,
}


@dataclass(frozen=True)
class ImageUpload:
    """An uploaded file as received by the API"""

    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


class ImageService:
    """
    Service for single-image and multi-image transform operations.

    Every public operation returns the stored output filename; nothing is
    persisted when any step fails.
    """

    def __init__(
        self,
        engine: RasterEngine,
        store: AssetStore,
        unknown_policy: UnknownOperationPolicy = UnknownOperationPolicy.FAIL,
    ):
        self.engine = engine
        self.store = store
        self.executor = PipelineExecutor(engine, unknown_policy)
        self.collage_builder = CollageBuilder(engine)
        self.background_remover = BackgroundRemover(engine)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def decode(self, upload: ImageUpload) -> ImageAsset:
        if not upload.data:
            raise InputValidationError(ErrorMessages.EMPTY_FILE)
        return await asyncio.to_thread(self.engine.decode, upload.data)

    async def decode_all(self, uploads: Sequence[ImageUpload]) -> List[ImageAsset]:
        """Decode concurrently; results keep the order of `uploads`"""
        return list(await asyncio.gather(*(self.decode(upload) for upload in uploads)))

    async def persist(
        self,
        asset: ImageAsset,
        tag: str,
        output_format: OutputFormat,
        original_name: Optional[str] = None,
        quality: Optional[int] = None,
        compression: Optional[int] = None,
    ) -> str:
        data = await asyncio.to_thread(
            self.engine.encode, asset, output_format, quality, compression
        )
        filename = generate_filename(tag, output_format.extension, original_name)
        await asyncio.to_thread(self.store.save, filename, data)
        logger.info(f"Saved {filename} ({asset.width}x{asset.height}, {len(data)} bytes)")
        return filename

    async def run_operations(
        self,
        upload: ImageUpload,
        operations: Sequence[Step],
        tag: str,
        output_format: Optional[OutputFormat] = None,
        with_stem: bool = True,
    ) -> str:
        """
        Apply an operation chain and store the result.

        Names are resolved before decoding so invalid chains fail fast. When
        no output format is given, results with alpha are stored as PNG and
        everything else as JPEG.
        """
        steps = self.executor.resolve(operations) if operations else []
        asset = await self.decode(upload)
        if steps:
            asset = await asyncio.to_thread(self.executor.apply, asset, steps)
        if output_format is None:
            output_format = OutputFormat.PNG if asset.has_alpha else OutputFormat.JPEG
        return await self.persist(
            asset, tag, output_format, upload.filename if with_stem else None
        )

    def download_path(self, filename: str):
        return self.store.path(filename)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def info(self, upload: ImageUpload) -> ImageInfo:
        asset = await self.decode(upload)
        metadata = asset.metadata()
        metadata["size"] = upload.size
        return ImageInfo(**metadata)

    async def resize(self, upload: ImageUpload, params: ResizeParams) -> str:
        op = ResizeOperation(width=params.width, height=params.height, fit=ResizeFit.COVER)
        return await self.run_operations(upload, [op], "resized", OutputFormat.JPEG)

    async def convert(self, upload: ImageUpload, params: ConvertParams) -> str:
        asset = await self.decode(upload)
        quality = None if params.format == OutputFormat.PNG else ImageConstants.JPEG_QUALITY
        return await self.persist(asset, "converted", params.format, quality=quality)

    async def apply_filters(self, upload: ImageUpload, params: FilterParams) -> str:
        operations = []
        if params.blur:
            operations.append(FilterOperation(kind=FilterKind.BLUR, magnitude=params.blur))
        if params.sharpen:
            operations.append(FilterOperation(kind=FilterKind.SHARPEN))
        if params.greyscale:
            operations.append(FilterOperation(kind=FilterKind.GREYSCALE))
        if params.brightness is not None:
            operations.append(
                FilterOperation(kind=FilterKind.BRIGHTNESS, magnitude=params.brightness)
            )
        if params.contrast is not None:
            operations.append(FilterOperation(kind=FilterKind.CONTRAST, magnitude=params.contrast))
        return await self.run_operations(upload, operations, "filtered", OutputFormat.JPEG)

    async def crop(self, upload: ImageUpload, params: CropParams) -> str:
        op = CropOperation(**params.model_dump())
        return await self.run_operations(upload, [op], "cropped", OutputFormat.JPEG)

    async def composite(
        self, base: ImageUpload, overlay: ImageUpload, params: CompositeParams
    ) -> str:
        base_asset, overlay_asset = await self.decode_all([base, overlay])
        result = await asyncio.to_thread(
            self.engine.composite,
            base_asset,
            overlay_asset,
            params.left,
            params.top,
            params.gravity,
            params.blend,
        )
        return await self.persist(result, "composite", OutputFormat.JPEG, base.filename)

    async def collage(self, uploads: Sequence[ImageUpload], params: CollageParams) -> str:
        if not uploads:
            raise InputValidationError(ErrorMessages.COLLAGE_EMPTY, operation="collage")
        if len(uploads) > UploadConstants.MAX_COLLAGE_IMAGES:
            raise InputValidationError(
                f"At most {UploadConstants.MAX_COLLAGE_IMAGES} images per collage",
                operation="collage",
            )
        images = await self.decode_all(uploads)
        result = await asyncio.to_thread(self.collage_builder.build, images, params)
        return await self.persist(result, "collage", OutputFormat.JPEG)

    async def watermark(self, upload: ImageUpload, params: WatermarkParams) -> str:
        op = WatermarkOperation(**params.model_dump())
        return await self.run_operations(upload, [op], "watermark", OutputFormat.JPEG)

    async def border(self, upload: ImageUpload, params: BorderParams) -> str:
        op = BorderOperation(**params.model_dump())
        return await self.run_operations(upload, [op], "border", OutputFormat.JPEG)

    async def mask(self, upload: ImageUpload, params: MaskParams) -> str:
        op = MaskOperation(
            shape=params.shape, radius=params.radius, background=params.background_color
        )
        return await self.run_operations(upload, [op], "mask", OutputFormat.PNG)

    async def rotate(self, upload: ImageUpload, params: RotateParams) -> str:
        op = RotateOperation(angle=params.angle, background=params.background_color)
        return await self.run_operations(upload, [op], "rotate", OutputFormat.JPEG)

    async def flip(self, upload: ImageUpload, params: FlipParams) -> str:
        op = FlipOperation(axis=params.direction)
        return await self.run_operations(upload, [op], "rotate_flip", OutputFormat.JPEG)

    async def transform(self, upload: ImageUpload, params: TransformParams) -> str:
        operations = []
        if params.angle:
            operations.append(RotateOperation(angle=params.angle, background=params.background_color))
        if params.flip:
            operations.append(FlipOperation(axis=FlipAxis.VERTICAL))
        if params.flop:
            operations.append(FlipOperation(axis=FlipAxis.HORIZONTAL))
        return await self.run_operations(upload, operations, "rotate_transform", OutputFormat.JPEG)

    async def adjust_color(self, upload: ImageUpload, params: ColorAdjustParams) -> str:
        operations = []
        if params.tint:
            operations.append(ColorAdjustOperation(kind=ColorAdjustKind.TINT, value=params.tint))
        if params.gamma is not None:
            operations.append(ColorAdjustOperation(kind=ColorAdjustKind.GAMMA, value=params.gamma))
        if params.negate:
            operations.append(ColorAdjustOperation(kind=ColorAdjustKind.NEGATE))
        if params.normalize:
            operations.append(ColorAdjustOperation(kind=ColorAdjustKind.NORMALIZE))
        return await self.run_operations(upload, operations, "color_adjust", OutputFormat.JPEG)

    async def colorspace(self, upload: ImageUpload, params: ColorspaceParams) -> str:
        """16-bit output is stored as PNG since JPEG has no 16-bit mode"""
        asset = await self.decode(upload)
        result = await asyncio.to_thread(self.engine.to_colorspace, asset, params.colorspace)
        output_format = (
            OutputFormat.PNG if params.colorspace == Colorspace.RGB16 else OutputFormat.JPEG
        )
        return await self.persist(result, "color_space", output_format, upload.filename)

    async def channel_operations(self, upload: ImageUpload, params: ChannelOperationParams) -> str:
        operations = []
        if params.remove_alpha:
            operations.append(ChannelOperation(kind=ChannelOpKind.REMOVE_ALPHA))
        if params.ensure_alpha:
            operations.append(ChannelOperation(kind=ChannelOpKind.ENSURE_ALPHA))
        if params.extract_channel:
            kind = ChannelOpKind(f"extract-{params.extract_channel.value}")
            operations.append(ChannelOperation(kind=kind))
        if params.bandbool:
            kind = ChannelOpKind(f"bandbool-{params.bandbool.value}")
            operations.append(ChannelOperation(kind=kind))

        needs_png = params.remove_alpha or params.ensure_alpha or params.extract_channel
        output_format = OutputFormat.PNG if needs_png else OutputFormat.JPEG
        return await self.run_operations(upload, operations, "channel_ops", output_format)

    async def join_channels(self, uploads: Sequence[ImageUpload]) -> str:
        if len(uploads) < 2:
            raise InputValidationError(ErrorMessages.CHANNEL_JOIN_COUNT, operation="channel_join")
        if len(uploads) > UploadConstants.MAX_CHANNEL_IMAGES:
            raise InputValidationError(
                f"At most {UploadConstants.MAX_CHANNEL_IMAGES} channel images are allowed",
                operation="channel_join",
            )
        planes = await self.decode_all(uploads)
        result = await asyncio.to_thread(self.engine.join_channels, planes)
        return await self.persist(result, "channel_join", OutputFormat.PNG)

    async def thumbnails(self, upload: ImageUpload, sizes: Sequence[ThumbnailSize]) -> List[str]:
        """Cover-fit thumbnails sharing one timestamp, one file per size"""
        asset = await self.decode(upload)
        timestamp = int(time.time() * 1000)
        filenames = []
        for size in sizes:
            thumb = await asyncio.to_thread(
                self.engine.resize, asset, size.width, size.height, ResizeFit.COVER
            )
            data = await asyncio.to_thread(
                self.engine.encode,
                thumb,
                OutputFormat.JPEG,
                ImageConstants.THUMBNAIL_JPEG_QUALITY,
            )
            filename = generate_filename("utility_thumb", "jpg", size.suffix, timestamp=timestamp)
            await asyncio.to_thread(self.store.save, filename, data)
            filenames.append(filename)
        logger.info(f"Created {len(filenames)} thumbnails")
        return filenames

    async def clone(self, upload: ImageUpload) -> str:
        """Store a copy, keeping the source encoding where it is supported"""
        asset = await self.decode(upload)
        copy = self.engine.clone(asset)
        output_format = _SOURCE_FORMATS.get(asset.format or "", OutputFormat.PNG)
        return await self.persist(copy, "utility_clone", output_format, upload.filename)

    async def pipeline(self, upload: ImageUpload, operations: Sequence[Step]) -> str:
        if not operations:
            raise InputValidationError(ErrorMessages.PIPELINE_EMPTY, operation="pipeline")
        return await self.run_operations(upload, operations, "utility_pipeline")

    async def remove_background(
        self, upload: ImageUpload, config: BackgroundRemovalConfig, tag: str = "bg_removed"
    ) -> str:
        asset = await self.decode(upload)
        result = await asyncio.to_thread(self.background_remover.remove, asset, config)
        return await self.persist(
            result,
            tag,
            OutputFormat.PNG,
            upload.filename,
            compression=ImageConstants.PNG_COMPRESSION_MAX,
        )
