"""
Image format conversion utilities.

Handles conversions between different image representations:
- Encoded bytes (JPEG, PNG, WebP, GIF, BMP) <-> ImageAsset
- NumPy arrays (OpenCV BGR/BGRA order) <-> PIL Images (RGB/RGBA order)
- Color strings (#rgb, #rrggbb, #rrggbbaa, CSS names) -> BGRA tuples
- Channel-count normalization (grey, BGR, BGRA)
"""

import io
import logging
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageColor, UnidentifiedImageError

from core.constants import ErrorMessages, ImageConstants
from core.enums import OutputFormat
from core.exceptions import InputValidationError, ProcessingError
from core.image.asset import ImageAsset

logger = logging.getLogger(__name__)

BGRA = Tuple[int, int, int, int]


def parse_color(value: Optional[str], default: str = "#ffffff") -> BGRA:
    """
    Parse a color string into a BGRA tuple.

    Args:
        value: Hex (#rgb, #rrggbb, #rrggbbaa), CSS color name or "transparent"
        default: Color used when value is empty

    Returns:
        (blue, green, red, alpha) with components in 0-255

    Raises:
        InputValidationError: If the color cannot be parsed
    """
    text = (value or default).strip()
    if text.lower() == "transparent":
        return (0, 0, 0, 0)
    try:
        rgba = ImageColor.getcolor(text, "RGBA")
    except ValueError:
        raise InputValidationError(ErrorMessages.INVALID_COLOR.format(value=value))
    r, g, b, a = rgba
    return (b, g, r, a)


def numpy_to_pil(image: np.ndarray) -> Image.Image:
    """
    Convert NumPy array (OpenCV format) to PIL Image.

    Args:
        image: NumPy array in grey, BGR or BGRA order

    Returns:
        PIL Image in L, RGB or RGBA mode
    """
    if image.ndim == 3 and image.shape[2] == 3:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    if image.ndim == 3 and image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(image)


def pil_to_numpy(image: Image.Image) -> np.ndarray:
    """
    Convert PIL Image to NumPy array in OpenCV channel order.

    Palette, CMYK and other modes are normalized first; images carrying
    transparency come back as BGRA.
    """
    mode = image.mode
    if mode in ("I;16", "I;16B", "I;16L", "I"):
        array = np.asarray(image, dtype=np.float64)
        scale = 257.0 if array.max(initial=0) > 255 else 1.0
        return np.clip(array / scale, 0, 255).astype(np.uint8)

    if mode == "P":
        image = image.convert("RGBA" if "transparency" in image.info else "RGB")
    elif mode in ("LA", "PA", "La"):
        image = image.convert("RGBA")
    elif mode not in ("L", "RGB", "RGBA"):
        image = image.convert("RGB")

    array = np.array(image)
    if image.mode == "RGB":
        return cv2.cvtColor(array, cv2.COLOR_RGB2BGR)
    if image.mode == "RGBA":
        return cv2.cvtColor(array, cv2.COLOR_RGBA2BGRA)
    return array


def decode_image(data: bytes) -> ImageAsset:
    """
    Decode encoded image bytes into an ImageAsset.

    Raises:
        InputValidationError: If no bytes were provided
        ProcessingError: If the payload is not a decodable image
    """
    if not data:
        raise InputValidationError(ErrorMessages.EMPTY_FILE)

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            fmt = (image.format or "").lower() or None
            dpi = image.info.get("dpi")
            pixels = pil_to_numpy(image)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error(f"Failed to decode image: {e}")
        raise ProcessingError(str(e), operation="decode") from e

    density = float(dpi[0]) if dpi else None
    return ImageAsset(
        pixels=pixels,
        format="jpeg" if fmt == "jpg" else fmt,
        density=density,
        source_size=len(data),
    )


def flatten_alpha(image: np.ndarray, background: BGRA = (255, 255, 255, 255)) -> np.ndarray:
    """Blend a BGRA image onto an opaque background, returning BGR."""
    if image.ndim != 3 or image.shape[2] != 4:
        return image
    alpha = image[:, :, 3:4].astype(np.float32) / 255.0
    color = image[:, :, :3].astype(np.float32)
    bg = np.array(background[:3], dtype=np.float32).reshape(1, 1, 3)
    out = color * alpha + bg * (1.0 - alpha)
    return np.clip(out + 0.5, 0, 255).astype(np.uint8)


def encode_image(
    asset: ImageAsset,
    output_format: OutputFormat = OutputFormat.JPEG,
    quality: Optional[int] = None,
    compression: Optional[int] = None,
) -> bytes:
    """
    Encode an ImageAsset to bytes.

    JPEG output drops alpha by flattening onto white. CMYK assets are
    written through Pillow since OpenCV has no CMYK encoder.

    Args:
        asset: Image to encode
        output_format: Target encoding
        quality: JPEG/WebP quality 1-100
        compression: PNG compression level 0-9

    Returns:
        Encoded bytes
    """
    pixels = asset.pixels
    try:
        if output_format == OutputFormat.JPEG:
            quality = quality or ImageConstants.JPEG_QUALITY
            if pixels.dtype != np.uint8:
                pixels = (pixels // 257).astype(np.uint8)
            pixels = flatten_alpha(pixels)
            if asset.colorspace == "cmyk":
                buffer = io.BytesIO()
                numpy_to_pil(pixels).convert("CMYK").save(buffer, format="JPEG", quality=quality)
                return buffer.getvalue()
            params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
            ok, encoded = cv2.imencode(".jpg", pixels, params)
        elif output_format == OutputFormat.PNG:
            level = ImageConstants.PNG_COMPRESSION if compression is None else compression
            ok, encoded = cv2.imencode(".png", pixels, [cv2.IMWRITE_PNG_COMPRESSION, int(level)])
        elif output_format == OutputFormat.WEBP:
            quality = quality or ImageConstants.WEBP_QUALITY
            if pixels.dtype != np.uint8:
                pixels = (pixels // 257).astype(np.uint8)
            ok, encoded = cv2.imencode(".webp", pixels, [cv2.IMWRITE_WEBP_QUALITY, int(quality)])
        else:
            raise InputValidationError(ErrorMessages.UNSUPPORTED_FORMAT.format(format=output_format))
    except cv2.error as e:
        logger.error(f"Failed to encode image as {output_format.value}: {e}")
        raise ProcessingError(str(e), operation="encode") from e

    if not ok:
        raise ProcessingError(f"encoder rejected {output_format.value} output", operation="encode")
    return encoded.tobytes()


def ensure_bgr(image: np.ndarray) -> np.ndarray:
    """
    Ensure image is in BGR format (grey expanded, alpha dropped).

    Args:
        image: Input image (grey, BGR or BGRA)

    Returns:
        Image in BGR format
    """
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


def ensure_bgra(image: np.ndarray) -> np.ndarray:
    """Ensure image is BGRA, adding an opaque alpha channel if missing."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image.copy()


def ensure_grayscale(image: np.ndarray) -> np.ndarray:
    """
    Ensure image is grayscale (convert from BGR/BGRA if needed).

    Args:
        image: Input image (grayscale, BGR or BGRA)

    Returns:
        Grayscale image
    """
    if image.ndim == 3:
        code = cv2.COLOR_BGRA2GRAY if image.shape[2] == 4 else cv2.COLOR_BGR2GRAY
        return cv2.cvtColor(image, code)
    return image.copy()


def split_alpha(image: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Split an image into (color, alpha); alpha is None when absent."""
    if image.ndim == 3 and image.shape[2] == 4:
        return image[:, :, :3].copy(), image[:, :, 3].copy()
    return image.copy(), None


def merge_alpha(color: np.ndarray, alpha: Optional[np.ndarray]) -> np.ndarray:
    """Recombine a color image with an alpha plane (None keeps it opaque-free)."""
    if alpha is None:
        return color
    if color.ndim == 2:
        color = cv2.cvtColor(color, cv2.COLOR_GRAY2BGR)
    return np.dstack([color, alpha])
