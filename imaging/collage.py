"""
Collage grid layout and composition.

Images are placed row-major on a uniform grid. Every cell is as large as
the largest image in each dimension and images sit at their cell's
top-left corner without scaling.
"""

import logging
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from core.constants import CollageDefaults, ErrorMessages
from core.exceptions import InputValidationError
from core.image.asset import ImageAsset
from core.raster_engine import RasterEngine
from schemas.image import CollageParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    """Top-left position of image `index` on the collage canvas"""

    index: int
    x: int
    y: int


@dataclass(frozen=True)
class CollageLayout:
    columns: int
    rows: int
    cell_width: int
    cell_height: int
    spacing: int
    canvas_width: int
    canvas_height: int
    placements: Tuple[Placement, ...]


def compute_layout(
    sizes: Sequence[Tuple[int, int]],
    columns: int,
    spacing: int = CollageDefaults.SPACING,
) -> CollageLayout:
    """
    Compute the collage grid for images of the given (width, height) sizes.

    Args:
        sizes: Image sizes in input order
        columns: Images per row (>= 1)
        spacing: Gap between cells and around the border (>= 0)

    Returns:
        CollageLayout with one placement per image; trailing cells of the
        last row stay empty

    Raises:
        InputValidationError: On empty input or invalid columns/spacing
    """
    if not sizes:
        raise InputValidationError(ErrorMessages.COLLAGE_EMPTY, operation="collage")
    if columns < 1:
        raise InputValidationError("columns must be at least 1", operation="collage")
    if spacing < 0:
        raise InputValidationError("spacing must not be negative", operation="collage")

    count = len(sizes)
    rows = math.ceil(count / columns)
    cell_width = max(w for w, _ in sizes)
    cell_height = max(h for _, h in sizes)

    placements = tuple(
        Placement(
            index=k,
            x=spacing + (k % columns) * (cell_width + spacing),
            y=spacing + (k // columns) * (cell_height + spacing),
        )
        for k in range(count)
    )

    return CollageLayout(
        columns=columns,
        rows=rows,
        cell_width=cell_width,
        cell_height=cell_height,
        spacing=spacing,
        canvas_width=cell_width * columns + spacing * (columns + 1),
        canvas_height=cell_height * rows + spacing * (rows + 1),
        placements=placements,
    )


class CollageBuilder:
    """Composes images onto a background canvas following a CollageLayout"""

    def __init__(self, engine: RasterEngine):
        self.engine = engine

    def build(self, images: Sequence[ImageAsset], params: CollageParams) -> ImageAsset:
        layout = compute_layout([image.size for image in images], params.columns, params.spacing)
        logger.debug(
            f"Collage of {len(images)} images: {layout.columns}x{layout.rows} grid, "
            f"canvas {layout.canvas_width}x{layout.canvas_height}"
        )

        canvas = self.engine.create_canvas(
            layout.canvas_width, layout.canvas_height, params.background_color
        )
        return self.engine.paste(
            canvas,
            [(images[p.index], p.x, p.y) for p in layout.placements],
        )
