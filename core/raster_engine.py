"""
Raster engine: primitive pixel operations over OpenCV, NumPy and Pillow.

Every primitive takes ImageAsset values and returns a new ImageAsset.
OpenCV failures are wrapped in ProcessingError naming the primitive.
Process-wide tuning (decode cache, worker threads, SIMD) is passed in
an EngineConfig at construction and changed only through reconfigure().
"""

import hashlib
import logging
import math
import threading
from collections import OrderedDict
from dataclasses import asdict, dataclass, replace
from functools import wraps
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from core.constants import TransformDefaults
from core.enums import (
    BandBoolOperation,
    BlendMode,
    Channel,
    Colorspace,
    FlipAxis,
    Gravity,
    OutputFormat,
    ResizeFit,
)
from core.exceptions import InputValidationError, ProcessingError
from core.image.asset import ImageAsset
from core.image.converters import (
    BGRA,
    decode_image,
    encode_image,
    ensure_bgr,
    ensure_bgra,
    ensure_grayscale,
    merge_alpha,
    parse_color,
    split_alpha,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide engine tuning"""

    cache_enabled: bool = True
    cache_max_items: int = 32
    concurrency: int = 0  # 0 = library default thread count
    simd: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def primitive(name: str):
    """Wrap OpenCV/NumPy failures of an engine primitive in ProcessingError."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (cv2.error, ValueError, TypeError) as e:
                logger.error(f"Raster primitive '{name}' failed: {e}")
                raise ProcessingError(str(e), operation=name) from e

        return wrapper

    return decorator


# (Fa, Fb) coverage factors as functions of (source alpha, destination alpha)
_PORTER_DUFF = {
    BlendMode.CLEAR: (lambda As, Ab: 0.0, lambda As, Ab: 0.0),
    BlendMode.SOURCE: (lambda As, Ab: 1.0, lambda As, Ab: 0.0),
    BlendMode.OVER: (lambda As, Ab: 1.0, lambda As, Ab: 1.0 - As),
    BlendMode.IN: (lambda As, Ab: Ab, lambda As, Ab: 0.0),
    BlendMode.OUT: (lambda As, Ab: 1.0 - Ab, lambda As, Ab: 0.0),
    BlendMode.ATOP: (lambda As, Ab: Ab, lambda As, Ab: 1.0 - As),
    BlendMode.DEST: (lambda As, Ab: 0.0, lambda As, Ab: 1.0),
    BlendMode.DEST_OVER: (lambda As, Ab: 1.0 - Ab, lambda As, Ab: 1.0),
    BlendMode.DEST_IN: (lambda As, Ab: 0.0, lambda As, Ab: As),
    BlendMode.DEST_OUT: (lambda As, Ab: 0.0, lambda As, Ab: 1.0 - As),
    BlendMode.DEST_ATOP: (lambda As, Ab: 1.0 - Ab, lambda As, Ab: As),
    BlendMode.XOR: (lambda As, Ab: 1.0 - Ab, lambda As, Ab: 1.0 - As),
    BlendMode.ADD: (lambda As, Ab: 1.0, lambda As, Ab: 1.0),
}


def _soft_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    d = np.where(cb <= 0.25, ((16 * cb - 12) * cb + 4) * cb, np.sqrt(cb))
    return np.where(
        cs <= 0.5,
        cb - (1 - 2 * cs) * cb * (1 - cb),
        cb + (2 * cs - 1) * (d - cb),
    )


def _hard_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.where(cs <= 0.5, cb * 2 * cs, 1 - (1 - cb) * (1 - (2 * cs - 1)))


def _color_dodge(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.minimum(1.0, cb / np.maximum(1e-6, 1 - cs))
    return np.where(cb == 0, 0.0, np.where(cs >= 1, 1.0, out))


def _color_burn(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = 1 - np.minimum(1.0, (1 - cb) / np.maximum(1e-6, cs))
    return np.where(cb >= 1, 1.0, np.where(cs <= 0, 0.0, out))


# Separable blend functions B(Cb, Cs) over straight colors in [0, 1]
_SEPARABLE = {
    BlendMode.MULTIPLY: lambda cb, cs: cb * cs,
    BlendMode.SCREEN: lambda cb, cs: cb + cs - cb * cs,
    BlendMode.OVERLAY: lambda cb, cs: _hard_light(cs, cb),
    BlendMode.DARKEN: np.minimum,
    BlendMode.LIGHTEN: np.maximum,
    BlendMode.COLOR_DODGE: _color_dodge,
    BlendMode.COLOR_BURN: _color_burn,
    BlendMode.HARD_LIGHT: _hard_light,
    BlendMode.SOFT_LIGHT: _soft_light,
    BlendMode.DIFFERENCE: lambda cb, cs: np.abs(cb - cs),
    BlendMode.EXCLUSION: lambda cb, cs: cb + cs - 2 * cb * cs,
}


def gravity_offset(
    gravity: Gravity, canvas: Tuple[int, int], item: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Top-left offset that places an item of size `item` on `canvas` by gravity.

    Both sizes are (width, height); offsets may be negative when the item is
    larger than the canvas.
    """
    cw, ch = canvas
    w, h = item
    gravity = Gravity(gravity)
    x = (cw - w) // 2
    y = (ch - h) // 2
    if gravity in (Gravity.NORTHWEST, Gravity.WEST, Gravity.SOUTHWEST):
        x = 0
    elif gravity in (Gravity.NORTHEAST, Gravity.EAST, Gravity.SOUTHEAST):
        x = cw - w
    if gravity in (Gravity.NORTHWEST, Gravity.NORTH, Gravity.NORTHEAST):
        y = 0
    elif gravity in (Gravity.SOUTHWEST, Gravity.SOUTH, Gravity.SOUTHEAST):
        y = ch - h
    return x, y


def _saturate(values: np.ndarray) -> np.ndarray:
    return np.clip(values + 0.5, 0, 255).astype(np.uint8)


def _to_float_rgba(pixels: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split into straight color (H, W, 3) and alpha (H, W, 1), both in [0, 1]."""
    bgra = ensure_bgra(pixels).astype(np.float32) / 255.0
    return bgra[:, :, :3], bgra[:, :, 3:4]


class RasterEngine:
    """
    Primitive raster operations with a process-wide decode cache.

    Instances are shared across requests; all primitives are pure functions
    of their inputs. Only reconfigure() mutates engine state and it is
    serialized by a lock.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()
        self._config_lock = threading.Lock()
        self._cache: "OrderedDict[str, ImageAsset]" = OrderedDict()
        self._cache_lock = threading.Lock()
        self._cache_hits = 0
        self._cache_misses = 0
        self._apply_config(self._config)
        logger.info(f"Raster engine initialized: {self._config.to_dict()}")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    def reconfigure(self, **changes) -> EngineConfig:
        """
        Change engine tuning at runtime.

        The change is process-wide: requests already in flight observe the
        new thread count and SIMD setting for any primitive they call next.

        Args:
            **changes: EngineConfig fields to replace

        Returns:
            The new effective configuration
        """
        with self._config_lock:
            new_config = replace(self._config, **changes)
            if new_config.cache_max_items < 0 or new_config.concurrency < 0:
                raise InputValidationError(
                    "cache_max_items and concurrency must be non-negative",
                    operation="reconfigure",
                )
            self._apply_config(new_config)
            self._config = new_config
            with self._cache_lock:
                if not new_config.cache_enabled:
                    self._cache.clear()
                self._trim_cache()
        logger.info(f"Raster engine reconfigured: {new_config.to_dict()}")
        return new_config

    @staticmethod
    def _apply_config(config: EngineConfig) -> None:
        # Negative resets OpenCV to its default thread count
        cv2.setNumThreads(config.concurrency if config.concurrency > 0 else -1)
        cv2.setUseOptimized(config.simd)

    def clear_cache(self) -> int:
        """Drop all cached decodes, returning how many were removed."""
        with self._cache_lock:
            removed = len(self._cache)
            self._cache.clear()
        return removed

    def _trim_cache(self) -> None:
        while len(self._cache) > self._config.cache_max_items:
            self._cache.popitem(last=False)

    def stats(self) -> Dict[str, Any]:
        """Current tuning and cache counters"""
        with self._cache_lock:
            cache = {
                "enabled": self._config.cache_enabled,
                "items": len(self._cache),
                "max_items": self._config.cache_max_items,
                "hits": self._cache_hits,
                "misses": self._cache_misses,
            }
        return {
            "config": self._config.to_dict(),
            "cache": cache,
            "threads": cv2.getNumThreads(),
            "simd": cv2.useOptimized(),
        }

    # ------------------------------------------------------------------
    # Decode / encode
    # ------------------------------------------------------------------

    def decode(self, data: bytes) -> ImageAsset:
        """Decode bytes, reusing a cached asset for identical payloads."""
        if not self._config.cache_enabled or self._config.cache_max_items == 0:
            return decode_image(data)

        key = hashlib.sha1(data).hexdigest()
        with self._cache_lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self._cache_hits += 1
                return cached
            self._cache_misses += 1

        asset = decode_image(data)
        with self._cache_lock:
            self._cache[key] = asset
            self._trim_cache()
        return asset

    def encode(
        self,
        asset: ImageAsset,
        output_format: OutputFormat = OutputFormat.JPEG,
        quality: Optional[int] = None,
        compression: Optional[int] = None,
    ) -> bytes:
        return encode_image(asset, output_format, quality=quality, compression=compression)

    def metadata(self, asset: ImageAsset) -> Dict[str, Any]:
        return asset.metadata()

    def clone(self, asset: ImageAsset) -> ImageAsset:
        return asset.with_pixels(asset.writable_pixels())

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @primitive("resize")
    def resize(
        self,
        asset: ImageAsset,
        width: Optional[int] = None,
        height: Optional[int] = None,
        fit: ResizeFit = ResizeFit.FILL,
        without_enlargement: bool = False,
    ) -> ImageAsset:
        """
        Resize an image.

        Args:
            asset: Source image
            width: Target width (derived from aspect ratio when omitted)
            height: Target height (derived from aspect ratio when omitted)
            fit: fill stretches to the exact size, cover scales to cover then
                center-crops, inside scales to fit within the box
            without_enlargement: Never upscale

        Returns:
            Resized image
        """
        w, h = asset.size
        if not width and not height:
            return asset
        if not width:
            width = max(1, round(w * height / h))
        if not height:
            height = max(1, round(h * width / w))

        fit = ResizeFit(fit)
        if fit == ResizeFit.FILL:
            target = (width, height)
        else:
            pick = max if fit == ResizeFit.COVER else min
            scale = pick(width / w, height / h)
            if without_enlargement:
                scale = min(scale, 1.0)
            target = (max(1, round(w * scale)), max(1, round(h * scale)))

        if without_enlargement and fit == ResizeFit.FILL:
            target = (min(target[0], w), min(target[1], h))

        interpolation = cv2.INTER_AREA if target[0] * target[1] < w * h else cv2.INTER_LINEAR
        pixels = cv2.resize(asset.pixels, target, interpolation=interpolation)

        if fit == ResizeFit.COVER:
            tw, th = min(width, target[0]), min(height, target[1])
            x = (target[0] - tw) // 2
            y = (target[1] - th) // 2
            pixels = pixels[y : y + th, x : x + tw]

        return asset.with_pixels(np.ascontiguousarray(pixels))

    @primitive("crop")
    def crop(self, asset: ImageAsset, left: int, top: int, width: int, height: int) -> ImageAsset:
        if left < 0 or top < 0 or width <= 0 or height <= 0:
            raise InputValidationError("Crop region must be positive", operation="crop")
        if left + width > asset.width or top + height > asset.height:
            raise InputValidationError(
                f"Crop region {left},{top} {width}x{height} exceeds image "
                f"{asset.width}x{asset.height}",
                operation="crop",
            )
        region = asset.pixels[top : top + height, left : left + width]
        return asset.with_pixels(np.ascontiguousarray(region))

    @primitive("flip")
    def flip(self, asset: ImageAsset, axis: FlipAxis = FlipAxis.VERTICAL) -> ImageAsset:
        """Mirror an image: vertical is top-bottom, horizontal is left-right"""
        code = {FlipAxis.VERTICAL: 0, FlipAxis.HORIZONTAL: 1, FlipAxis.BOTH: -1}[FlipAxis(axis)]
        return asset.with_pixels(cv2.flip(asset.pixels, code))

    @primitive("rotate")
    def rotate(
        self,
        asset: ImageAsset,
        angle: float,
        background: str = TransformDefaults.ROTATE_BACKGROUND,
    ) -> ImageAsset:
        """
        Rotate clockwise by `angle` degrees.

        Right angles are lossless. Other angles expand the canvas to hold the
        whole rotated image and fill the uncovered corners with `background`.
        """
        angle = float(angle) % 360.0
        if angle == 0:
            return asset.with_pixels(asset.writable_pixels())

        if angle in (90.0, 180.0, 270.0):
            code = {
                90.0: cv2.ROTATE_90_CLOCKWISE,
                180.0: cv2.ROTATE_180,
                270.0: cv2.ROTATE_90_COUNTERCLOCKWISE,
            }[angle]
            return asset.with_pixels(cv2.rotate(asset.pixels, code))

        color = parse_color(background, TransformDefaults.ROTATE_BACKGROUND)
        pixels = self._prepare_for_fill(asset.pixels, color)
        w, h = asset.size
        center = (w / 2.0, h / 2.0)
        # OpenCV treats positive angles as counter-clockwise
        matrix = cv2.getRotationMatrix2D(center, -angle, 1.0)
        cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
        new_w = int(math.ceil(h * sin + w * cos))
        new_h = int(math.ceil(h * cos + w * sin))
        matrix[0, 2] += new_w / 2.0 - center[0]
        matrix[1, 2] += new_h / 2.0 - center[1]

        rotated = cv2.warpAffine(
            pixels,
            matrix,
            (new_w, new_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=self._fill_value(pixels, color),
        )
        return asset.with_pixels(rotated)

    @primitive("extend")
    def extend(
        self,
        asset: ImageAsset,
        top: int,
        bottom: int,
        left: int,
        right: int,
        color: str = TransformDefaults.BORDER_COLOR,
    ) -> ImageAsset:
        """Pad the image edges with a solid color"""
        fill = parse_color(color, TransformDefaults.BORDER_COLOR)
        pixels = self._prepare_for_fill(asset.pixels, fill)
        extended = cv2.copyMakeBorder(
            pixels,
            int(top),
            int(bottom),
            int(left),
            int(right),
            cv2.BORDER_CONSTANT,
            value=self._fill_value(pixels, fill),
        )
        return asset.with_pixels(extended)

    @staticmethod
    def _prepare_for_fill(pixels: np.ndarray, color: BGRA) -> np.ndarray:
        """Promote pixels so a fill color can be represented faithfully."""
        if color[3] < 255:
            return ensure_bgra(pixels)
        if pixels.ndim == 2 and not (color[0] == color[1] == color[2]):
            return ensure_bgr(pixels)
        return pixels

    @staticmethod
    def _fill_value(pixels: np.ndarray, color: BGRA) -> Tuple[int, ...]:
        if pixels.ndim == 2:
            return (color[0], color[0], color[0], 0)
        if pixels.shape[2] == 4:
            return tuple(color)
        return (color[0], color[1], color[2], 0)

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    @staticmethod
    def _map_color(asset: ImageAsset, func) -> ImageAsset:
        """Apply `func` to the color planes, carrying alpha through untouched."""
        color, alpha = split_alpha(asset.pixels)
        return asset.with_pixels(merge_alpha(func(color), alpha))

    @primitive("blur")
    def blur(self, asset: ImageAsset, sigma: float) -> ImageAsset:
        """Gaussian blur; a sigma of zero or less returns the image unchanged"""
        if sigma is None or sigma <= 0:
            return asset
        return asset.with_pixels(cv2.GaussianBlur(asset.pixels, (0, 0), float(sigma)))

    @primitive("sharpen")
    def sharpen(self, asset: ImageAsset, sigma: float = 1.0, amount: float = 0.5) -> ImageAsset:
        """Unsharp mask"""

        def unsharp(color):
            blurred = cv2.GaussianBlur(color, (0, 0), float(sigma))
            return cv2.addWeighted(color, 1.0 + amount, blurred, -amount, 0)

        return self._map_color(asset, unsharp)

    @primitive("convolve")
    def convolve(self, asset: ImageAsset, kernel: Sequence[Sequence[float]]) -> ImageAsset:
        weights = np.asarray(kernel, dtype=np.float32)
        if weights.ndim != 2:
            raise ValueError("Convolution kernel must be two-dimensional")
        return self._map_color(asset, lambda color: cv2.filter2D(color, -1, weights))

    @primitive("threshold")
    def threshold(self, asset: ImageAsset, value: int) -> ImageAsset:
        """Greyscale, then map pixels >= value to 255 and the rest to 0"""
        grey = ensure_grayscale(asset.pixels)
        binary = np.where(grey >= int(value), 255, 0).astype(np.uint8)
        return asset.with_pixels(binary)

    @primitive("negate")
    def negate(self, asset: ImageAsset) -> ImageAsset:
        return self._map_color(asset, cv2.bitwise_not)

    @primitive("greyscale")
    def greyscale(self, asset: ImageAsset) -> ImageAsset:
        _, alpha = split_alpha(asset.pixels)
        grey = ensure_grayscale(asset.pixels)
        if alpha is None:
            return asset.with_pixels(grey)
        return asset.with_pixels(merge_alpha(grey, alpha))

    @primitive("gamma")
    def gamma(self, asset: ImageAsset, gamma: float) -> ImageAsset:
        if gamma <= 0:
            raise InputValidationError("Gamma must be positive", operation="gamma")
        table = np.clip(
            255.0 * (np.arange(256, dtype=np.float64) / 255.0) ** (1.0 / gamma) + 0.5, 0, 255
        ).astype(np.uint8)
        return self._map_color(asset, lambda color: cv2.LUT(color, table))

    @primitive("linear")
    def linear(self, asset: ImageAsset, multiplier: float, offset: float = 0.0) -> ImageAsset:
        """Per-pixel `value * multiplier + offset`, saturated to 0-255"""
        return self._map_color(
            asset, lambda color: _saturate(color.astype(np.float32) * multiplier + offset)
        )

    @staticmethod
    def _lab(color: np.ndarray) -> np.ndarray:
        return cv2.cvtColor(ensure_bgr(color), cv2.COLOR_BGR2LAB)

    @primitive("modulate")
    def modulate(self, asset: ImageAsset, brightness: float) -> ImageAsset:
        """Scale lightness by `brightness` while keeping chroma"""

        def scale(color):
            if color.ndim == 2:
                return _saturate(color.astype(np.float32) * brightness)
            lab = self._lab(color)
            lab[:, :, 0] = _saturate(lab[:, :, 0].astype(np.float32) * brightness)
            return cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)

        return self._map_color(asset, scale)

    @primitive("tint")
    def tint(self, asset: ImageAsset, color: str) -> ImageAsset:
        """Keep lightness, replace chroma with that of `color`"""
        b, g, r, _ = parse_color(color)
        swatch = cv2.cvtColor(np.uint8([[[b, g, r]]]), cv2.COLOR_BGR2LAB)[0, 0]

        def apply(pixels):
            lab = self._lab(pixels)
            lab[:, :, 1] = swatch[1]
            lab[:, :, 2] = swatch[2]
            return cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)

        return self._map_color(asset, apply)

    @primitive("normalize")
    def normalize(
        self,
        asset: ImageAsset,
        lower: float = TransformDefaults.NORMALIZE_LOWER_PERCENTILE,
        upper: float = TransformDefaults.NORMALIZE_UPPER_PERCENTILE,
    ) -> ImageAsset:
        """Stretch lightness so the given percentiles map to 0 and 255"""

        def stretch(plane: np.ndarray) -> np.ndarray:
            lo, hi = np.percentile(plane, [lower, upper])
            if hi <= lo:
                return plane
            scaled = (plane.astype(np.float32) - lo) * (255.0 / (hi - lo))
            return np.clip(scaled + 0.5, 0, 255).astype(np.uint8)

        def apply(color):
            if color.ndim == 2:
                return stretch(color)
            lab = self._lab(color)
            lab[:, :, 0] = stretch(lab[:, :, 0])
            return cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)

        return self._map_color(asset, apply)

    @primitive("colorspace")
    def to_colorspace(self, asset: ImageAsset, colorspace: Colorspace) -> ImageAsset:
        """
        Convert to an output colorspace.

        rgb16 widens samples to 16 bits, lab stores L*a*b* samples in the
        color planes, b-w reduces to a single band and cmyk is applied when
        the asset is encoded.
        """
        colorspace = Colorspace(colorspace)
        pixels = asset.pixels
        if pixels.dtype != np.uint8:
            pixels = (pixels // 257).astype(np.uint8)

        if colorspace == Colorspace.SRGB:
            return asset.with_pixels(pixels, colorspace=colorspace.value)
        if colorspace == Colorspace.RGB16:
            wide = pixels.astype(np.uint16) * 257
            return asset.with_pixels(wide, colorspace=colorspace.value)
        if colorspace == Colorspace.CMYK:
            return asset.with_pixels(pixels, colorspace=colorspace.value)
        if colorspace == Colorspace.LAB:
            color, alpha = split_alpha(pixels)
            return asset.with_pixels(merge_alpha(self._lab(color), alpha), colorspace=colorspace.value)
        return asset.with_pixels(ensure_grayscale(pixels), colorspace=colorspace.value)

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    @primitive("remove_alpha")
    def remove_alpha(self, asset: ImageAsset) -> ImageAsset:
        color, _ = split_alpha(asset.pixels)
        return asset.with_pixels(color)

    @primitive("ensure_alpha")
    def ensure_alpha(self, asset: ImageAsset) -> ImageAsset:
        return asset.with_pixels(ensure_bgra(asset.pixels))

    @primitive("extract_channel")
    def extract_channel(self, asset: ImageAsset, channel: Channel) -> ImageAsset:
        """Single band as a greyscale image; alpha of an opaque image is all 255"""
        channel = Channel(channel)
        pixels = asset.pixels
        if channel == Channel.ALPHA:
            _, alpha = split_alpha(pixels)
            if alpha is None:
                alpha = np.full(pixels.shape[:2], 255, dtype=pixels.dtype)
            return asset.with_pixels(alpha)
        bgr = ensure_bgr(split_alpha(pixels)[0])
        index = {Channel.BLUE: 0, Channel.GREEN: 1, Channel.RED: 2}[channel]
        return asset.with_pixels(np.ascontiguousarray(bgr[:, :, index]))

    @primitive("bandbool")
    def bandbool(self, asset: ImageAsset, operation: BandBoolOperation) -> ImageAsset:
        """Reduce the color bands to one with a bitwise boolean"""
        reducer = {
            BandBoolOperation.AND: np.bitwise_and,
            BandBoolOperation.OR: np.bitwise_or,
            BandBoolOperation.EOR: np.bitwise_xor,
        }[BandBoolOperation(operation)]
        color, _ = split_alpha(asset.pixels)
        if color.ndim == 2:
            return asset.with_pixels(color)
        return asset.with_pixels(reducer.reduce(color, axis=2).astype(color.dtype))

    @primitive("join_channels")
    def join_channels(self, planes: List[ImageAsset]) -> ImageAsset:
        """
        Join single-band images in R, G, B, A order.

        Every plane is reduced to greyscale and resized to the first plane.
        Two planes give R and G with an empty blue band; four give RGBA.
        """
        if len(planes) < 2:
            raise InputValidationError(
                "At least 2 channel images are required", operation="join_channels"
            )
        first = planes[0]
        size = first.size
        bands = []
        for plane in planes[:4]:
            grey = ensure_grayscale(plane.pixels)
            if grey.dtype != np.uint8:
                grey = (grey // 257).astype(np.uint8)
            if (grey.shape[1], grey.shape[0]) != size:
                grey = cv2.resize(grey, size, interpolation=cv2.INTER_LINEAR)
            bands.append(grey)

        red, green = bands[0], bands[1]
        blue = bands[2] if len(bands) > 2 else np.zeros_like(red)
        merged = [blue, green, red]
        if len(bands) > 3:
            merged.append(bands[3])
        return first.with_pixels(cv2.merge(merged), format=None)

    # ------------------------------------------------------------------
    # Canvas and compositing
    # ------------------------------------------------------------------

    @primitive("create_canvas")
    def create_canvas(self, width: int, height: int, color: str = "#ffffff") -> ImageAsset:
        """Solid canvas; BGRA when the color is not fully opaque"""
        if width <= 0 or height <= 0:
            raise InputValidationError(
                f"Canvas size must be positive, got {width}x{height}", operation="create_canvas"
            )
        fill = parse_color(color)
        if fill[3] < 255:
            pixels = np.empty((height, width, 4), dtype=np.uint8)
            pixels[:] = fill
        else:
            pixels = np.empty((height, width, 3), dtype=np.uint8)
            pixels[:] = fill[:3]
        return ImageAsset(pixels=pixels, format=None)

    @primitive("composite")
    def composite(
        self,
        base: ImageAsset,
        overlay: ImageAsset,
        left: Optional[int] = None,
        top: Optional[int] = None,
        gravity: Optional[Gravity] = None,
        blend: BlendMode = BlendMode.OVER,
    ) -> ImageAsset:
        """
        Composite `overlay` onto `base`.

        Placement uses left/top when either is given, otherwise gravity
        (default centre). The overlay is clipped to the base. Porter-Duff
        operators are applied over the whole base, with the overlay treated
        as transparent outside its footprint; separable blend modes mix
        colors and then composite source-over.
        """
        blend = BlendMode(blend)
        W, H = base.size
        if left is not None or top is not None:
            x, y = int(left or 0), int(top or 0)
        else:
            x, y = gravity_offset(gravity or Gravity.CENTRE, (W, H), overlay.size)

        src_color = np.zeros((H, W, 3), dtype=np.float32)
        src_alpha = np.zeros((H, W, 1), dtype=np.float32)
        ov_color, ov_alpha = _to_float_rgba(overlay.pixels)

        # Clip the overlay footprint to the base
        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + overlay.width, W), min(y + overlay.height, H)
        if x1 > x0 and y1 > y0:
            sx, sy = x0 - x, y0 - y
            src_color[y0:y1, x0:x1] = ov_color[sy : sy + (y1 - y0), sx : sx + (x1 - x0)]
            src_alpha[y0:y1, x0:x1] = ov_alpha[sy : sy + (y1 - y0), sx : sx + (x1 - x0)]

        dst_color, dst_alpha = _to_float_rgba(base.pixels)

        if blend in _SEPARABLE:
            mixed = np.clip(_SEPARABLE[blend](dst_color, src_color), 0.0, 1.0)
            src_color = (1.0 - dst_alpha) * src_color + dst_alpha * mixed
            blend = BlendMode.OVER

        fa_fn, fb_fn = _PORTER_DUFF[blend]
        fa = fa_fn(src_alpha, dst_alpha)
        fb = fb_fn(src_alpha, dst_alpha)
        out_alpha = np.clip(src_alpha * fa + dst_alpha * fb, 0.0, 1.0)
        premultiplied = src_color * src_alpha * fa + dst_color * dst_alpha * fb
        with np.errstate(divide="ignore", invalid="ignore"):
            out_color = np.where(out_alpha > 0, premultiplied / np.maximum(out_alpha, 1e-6), 0.0)
        out_color = np.clip(out_color, 0.0, 1.0)

        result = np.dstack([out_color, out_alpha])
        result = np.clip(result * 255.0 + 0.5, 0, 255).astype(np.uint8)
        if not base.has_alpha and not overlay.has_alpha and np.all(result[:, :, 3] == 255):
            result = np.ascontiguousarray(result[:, :, :3])
        return base.with_pixels(result)

    @primitive("paste")
    def paste(
        self, base: ImageAsset, placements: Sequence[Tuple[ImageAsset, int, int]]
    ) -> ImageAsset:
        """
        Source-over many overlays onto one copy of `base` in a single pass.

        Each overlay only touches its own clipped footprint, so cost follows
        the pasted area rather than the canvas size.
        """
        canvas = base.pixels.copy()
        if canvas.ndim == 2:
            canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)
        H, W = canvas.shape[:2]
        canvas_alpha = canvas.shape[2] == 4

        for overlay, x, y in placements:
            x0, y0 = max(x, 0), max(y, 0)
            x1, y1 = min(x + overlay.width, W), min(y + overlay.height, H)
            if x1 <= x0 or y1 <= y0:
                continue
            src = overlay.pixels[y0 - y : y1 - y, x0 - x : x1 - x]
            if src.dtype != np.uint8:
                src = (src // 257).astype(np.uint8)
            if src.ndim == 3 and src.shape[2] == 2:
                src = np.dstack([src[:, :, 0], src[:, :, 0], src[:, :, 0], src[:, :, 1]])
            color = ensure_bgr(src)
            region = canvas[y0:y1, x0:x1]

            if not overlay.has_alpha:
                region[:, :, :3] = color
                if canvas_alpha:
                    region[:, :, 3] = 255
                continue

            src_a = src[:, :, 3:4].astype(np.float32) / 255.0
            src_c = color.astype(np.float32)
            dst_c = region[:, :, :3].astype(np.float32)
            if canvas_alpha:
                dst_a = region[:, :, 3:4].astype(np.float32) / 255.0
                out_a = src_a + dst_a * (1.0 - src_a)
                premultiplied = src_c * src_a + dst_c * dst_a * (1.0 - src_a)
                out_c = np.where(out_a > 0, premultiplied / np.maximum(out_a, 1e-6), 0.0)
                region[:, :, 3] = np.clip(out_a[:, :, 0] * 255.0 + 0.5, 0, 255).astype(np.uint8)
            else:
                out_c = src_c * src_a + dst_c * (1.0 - src_a)
            region[:, :, :3] = np.clip(out_c + 0.5, 0, 255).astype(np.uint8)

        canvas.setflags(write=False)
        return base.with_pixels(canvas)

    @primitive("apply_alpha_mask")
    def apply_alpha_mask(self, asset: ImageAsset, mask: np.ndarray) -> ImageAsset:
        """
        Keep source pixels in proportion to mask luminance.

        Output alpha is `source alpha * mask / 255`; the result is BGRA.
        """
        coverage = ensure_grayscale(mask)
        if coverage.shape[:2] != asset.pixels.shape[:2]:
            coverage = cv2.resize(coverage, asset.size, interpolation=cv2.INTER_LINEAR)
        bgra = ensure_bgra(asset.pixels)
        alpha = bgra[:, :, 3].astype(np.uint16) * coverage.astype(np.uint16)
        bgra[:, :, 3] = ((alpha + 127) // 255).astype(np.uint8)
        return asset.with_pixels(bgra)

    @primitive("render_text")
    def render_text(
        self,
        text: str,
        width: int,
        height: int,
        font_size: int,
        font_family: str,
        color: str,
        opacity: float,
    ) -> ImageAsset:
        """Draw centered text onto a transparent canvas"""
        fill = parse_color(color)
        font = self._load_font(font_family, font_size)
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(canvas)
        alpha = int(round(fill[3] * max(0.0, min(1.0, opacity))))
        draw.text(
            (width / 2, height / 2),
            text,
            font=font,
            fill=(fill[2], fill[1], fill[0], alpha),
            anchor="mm",
        )
        pixels = cv2.cvtColor(np.array(canvas), cv2.COLOR_RGBA2BGRA)
        return ImageAsset(pixels=pixels, format="png")

    @staticmethod
    def _load_font(font_family: str, font_size: int):
        try:
            return ImageFont.truetype(font_family, font_size)
        except OSError:
            logger.debug(f"Font '{font_family}' not found, using Pillow default font")
            return ImageFont.load_default(size=font_size)
