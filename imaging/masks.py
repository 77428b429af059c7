"""
Procedural mask geometry.

A mask is generated as vector geometry sized to the target image, then
rasterized to a coverage plane (255 keep, 0 discard) sampled at pixel
centers. Applying a mask keeps source pixels under full coverage and
replaces the rest with a background color or transparency.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np

from core.constants import MaskDefaults
from core.enums import MaskShape
from core.exceptions import InputValidationError
from core.image.asset import ImageAsset
from core.image.converters import ensure_bgra, parse_color
from core.raster_engine import RasterEngine

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

# Fixed-point bits for sub-pixel polygon rasterization
_SHIFT = 4


@dataclass(frozen=True)
class Circle:
    cx: float
    cy: float
    radius: float


@dataclass(frozen=True)
class Ellipse:
    cx: float
    cy: float
    rx: float
    ry: float


@dataclass(frozen=True)
class RoundedRect:
    x: float
    y: float
    width: float
    height: float
    corner_radius: float


@dataclass(frozen=True)
class Polygon:
    vertices: Tuple[Point, ...]


Primitive = Union[Circle, Ellipse, RoundedRect, Polygon]


@dataclass(frozen=True)
class MaskGeometry:
    """Vector mask for a width x height canvas"""

    shape: MaskShape
    width: int
    height: int
    radius: float
    primitive: Primitive


def default_radius(width: int, height: int) -> float:
    return min(width, height) / 2


def star_vertices(width: int, height: int, radius: float) -> List[Point]:
    """
    Ten star vertices centered on the canvas, starting at the top.

    Even vertices lie on the outer radius, odd ones on the inner radius.
    """
    cx, cy = width / 2, height / 2
    vertices = []
    for i in range(MaskDefaults.STAR_POINTS):
        angle = i * math.pi / 5
        r = radius if i % 2 == 0 else radius * MaskDefaults.STAR_INNER_RATIO
        vertices.append(
            (cx + r * math.cos(angle - math.pi / 2), cy + r * math.sin(angle - math.pi / 2))
        )
    return vertices


def generate_mask(
    shape: MaskShape, width: int, height: int, radius: Optional[float] = None
) -> MaskGeometry:
    """
    Build mask geometry for a canvas.

    Args:
        shape: circle, rounded or star
        width: Canvas width
        height: Canvas height
        radius: Shape radius, defaults to half the shorter side. Larger
            values are allowed and simply extend past the canvas.

    Returns:
        MaskGeometry describing the shape
    """
    if width <= 0 or height <= 0:
        raise InputValidationError(f"Invalid mask size {width}x{height}", operation="mask")
    if radius is None:
        radius = default_radius(width, height)
    if radius <= 0:
        raise InputValidationError("Mask radius must be positive", operation="mask")

    shape = MaskShape(shape)
    if shape == MaskShape.CIRCLE:
        primitive: Primitive = Circle(cx=width / 2, cy=height / 2, radius=radius)
    elif shape == MaskShape.ROUNDED:
        inner_w = width - 2 * radius
        inner_h = height - 2 * radius
        if inner_w <= 0 or inner_h <= 0:
            # Inset rect collapsed: fall back to the ellipse inscribed in the canvas
            primitive = Ellipse(cx=width / 2, cy=height / 2, rx=width / 2, ry=height / 2)
        else:
            corner = min(radius, inner_w / 2, inner_h / 2)
            primitive = RoundedRect(
                x=radius, y=radius, width=inner_w, height=inner_h, corner_radius=corner
            )
    else:
        primitive = Polygon(vertices=tuple(star_vertices(width, height, radius)))

    return MaskGeometry(shape=shape, width=width, height=height, radius=radius, primitive=primitive)


def _pixel_centers(width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    xs = np.arange(width, dtype=np.float64) + 0.5
    ys = np.arange(height, dtype=np.float64) + 0.5
    return np.meshgrid(xs, ys)


def rasterize(geometry: MaskGeometry) -> np.ndarray:
    """
    Rasterize mask geometry to a uint8 coverage plane.

    A pixel is covered when its center lies inside the shape.
    """
    w, h = geometry.width, geometry.height
    shape = geometry.primitive

    if isinstance(shape, Polygon):
        coverage = np.zeros((h, w), dtype=np.uint8)
        scale = 1 << _SHIFT
        # OpenCV pixel centers sit on integer coordinates
        points = np.array(
            [[round((x - 0.5) * scale), round((y - 0.5) * scale)] for x, y in shape.vertices],
            dtype=np.int32,
        )
        cv2.fillPoly(coverage, [points], 255, lineType=cv2.LINE_8, shift=_SHIFT)
        return coverage

    px, py = _pixel_centers(w, h)
    if isinstance(shape, Circle):
        inside = (px - shape.cx) ** 2 + (py - shape.cy) ** 2 <= shape.radius**2
    elif isinstance(shape, Ellipse):
        inside = ((px - shape.cx) / shape.rx) ** 2 + ((py - shape.cy) / shape.ry) ** 2 <= 1.0
    else:
        r = shape.corner_radius
        left, top = shape.x, shape.y
        right, bottom = shape.x + shape.width, shape.y + shape.height
        in_rect = (px >= left) & (px <= right) & (py >= top) & (py <= bottom)
        # Distance to the nearest point of the rect shrunk by the corner radius
        nx = np.clip(px, left + r, right - r)
        ny = np.clip(py, top + r, bottom - r)
        inside = in_rect & ((px - nx) ** 2 + (py - ny) ** 2 <= r**2)

    return np.where(inside, 255, 0).astype(np.uint8)


class MaskProcessor:
    """Applies procedural masks to images"""

    def __init__(self, engine: RasterEngine):
        self.engine = engine

    def apply(
        self,
        asset: ImageAsset,
        shape: MaskShape,
        radius: Optional[float] = None,
        background: str = MaskDefaults.BACKGROUND_COLOR,
    ) -> ImageAsset:
        """
        Mask an image.

        Pixels outside the shape take the background color, or become fully
        transparent when the background is "transparent". The result always
        carries an alpha channel.
        """
        geometry = generate_mask(shape, asset.width, asset.height, radius)
        coverage = rasterize(geometry)
        fill = parse_color(background, MaskDefaults.BACKGROUND_COLOR)
        logger.debug(f"Applying {geometry.shape.value} mask r={geometry.radius} to {asset.size}")

        if fill[3] == 0:
            return self.engine.apply_alpha_mask(asset, coverage)

        source = ensure_bgra(asset.pixels).astype(np.float32)
        keep = (coverage.astype(np.float32) / 255.0)[:, :, np.newaxis]
        backdrop = np.array(fill, dtype=np.float32).reshape(1, 1, 4)
        mixed = source * keep + backdrop * (1.0 - keep)
        return asset.with_pixels(np.clip(mixed + 0.5, 0, 255).astype(np.uint8))
