"""
Unit tests for collage layout and composition
"""

import tracemalloc

import numpy as np
import pytest

from core.exceptions import InputValidationError
from core.image.asset import ImageAsset
from imaging.collage import CollageBuilder, compute_layout
from schemas.image import CollageParams


class TestComputeLayout:
    """Grid arithmetic"""

    def test_seven_images_three_columns(self):
        sizes = [(100, 80)] * 7
        layout = compute_layout(sizes, columns=3, spacing=10)

        assert layout.rows == 3
        assert layout.cell_width == 100
        assert layout.cell_height == 80
        assert layout.canvas_width == 100 * 3 + 10 * 4
        assert layout.canvas_height == 80 * 3 + 10 * 4

    def test_placement_count_equals_image_count(self):
        for n in range(1, 10):
            layout = compute_layout([(10, 10)] * n, columns=4)
            assert len(layout.placements) == n
            assert [p.index for p in layout.placements] == list(range(n))

    def test_placements_are_row_major(self):
        layout = compute_layout([(50, 40)] * 5, columns=2, spacing=5)
        positions = [(p.x, p.y) for p in layout.placements]

        assert positions == [
            (5, 5),
            (60, 5),
            (5, 50),
            (60, 50),
            (5, 95),
        ]

    def test_cell_uses_largest_dimensions(self):
        layout = compute_layout([(10, 90), (70, 20), (30, 30)], columns=3, spacing=0)

        assert layout.cell_width == 70
        assert layout.cell_height == 90
        assert layout.canvas_width == 210
        assert layout.canvas_height == 90

    def test_zero_spacing_is_honored(self):
        layout = compute_layout([(20, 20)] * 4, columns=2, spacing=0)

        assert layout.canvas_width == 40
        assert layout.placements[3].x == 20
        assert layout.placements[3].y == 20

    def test_more_columns_than_images(self):
        layout = compute_layout([(10, 10)] * 2, columns=5, spacing=1)

        assert layout.rows == 1
        assert layout.canvas_width == 10 * 5 + 6

    def test_empty_input_rejected(self):
        with pytest.raises(InputValidationError):
            compute_layout([], columns=2)

    def test_invalid_columns_rejected(self):
        with pytest.raises(InputValidationError):
            compute_layout([(10, 10)], columns=0)

    def test_negative_spacing_rejected(self):
        with pytest.raises(InputValidationError):
            compute_layout([(10, 10)], columns=1, spacing=-1)


class TestCollageBuilder:
    """Composition onto the background canvas"""

    def test_images_placed_top_left_in_cells(self, engine, solid):
        big = ImageAsset(pixels=solid(20, 20, (0, 0, 255)))
        small = ImageAsset(pixels=solid(10, 10, (255, 0, 0)))
        params = CollageParams(columns=2, spacing=5, background_color="#00ff00")

        result = CollageBuilder(engine).build([big, small], params)

        assert result.size == (20 * 2 + 5 * 3, 20 + 5 * 2)
        pixels = result.pixels
        # Spacing and empty cell area take the background color
        assert tuple(pixels[0, 0]) == (0, 255, 0)
        assert tuple(pixels[5 + 15, 30 + 15]) == (0, 255, 0)
        # First image fills its cell
        assert tuple(pixels[5, 5]) == (0, 0, 255)
        # Second image sits at its cell's top-left corner, unscaled
        assert tuple(pixels[5, 30]) == (255, 0, 0)
        assert tuple(pixels[14, 39]) == (255, 0, 0)

    def test_result_is_opaque_bgr(self, engine, solid):
        images = [ImageAsset(pixels=solid(8, 8)) for _ in range(3)]
        result = CollageBuilder(engine).build(images, CollageParams(columns=3))

        assert result.channels == 3
        assert not np.any(result.pixels[10:18, 10:18] != (0, 0, 255))

    def test_alpha_image_blends_over_background(self, engine):
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[:2] = (0, 0, 255, 255)
        params = CollageParams(columns=1, spacing=2, background_color="#ffffff")

        result = CollageBuilder(engine).build([ImageAsset(pixels=pixels)], params)

        assert result.channels == 3
        assert tuple(result.pixels[2, 2]) == (0, 0, 255)
        # Transparent half shows the background
        assert tuple(result.pixels[5, 5]) == (255, 255, 255)

    def test_memory_stays_proportional_to_canvas(self, engine, solid):
        images = [ImageAsset(pixels=solid(400, 400)) for _ in range(12)]
        params = CollageParams(columns=4)

        tracemalloc.start()
        try:
            result = CollageBuilder(engine).build(images, params)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert result.size == (4 * 400 + 5 * 10, 3 * 400 + 4 * 10)
        assert peak < 5 * result.pixels.nbytes
