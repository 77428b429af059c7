"""
Unit tests for RasterEngine primitives and tuning
"""

import numpy as np
import pytest

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
from core.raster_engine import EngineConfig, RasterEngine, gravity_offset


class TestDecodeEncode:
    """Codec round trips and caching"""

    def test_decode_reports_metadata(self, engine, png_bytes):
        asset = engine.decode(png_bytes)

        assert asset.size == (160, 120)
        assert asset.format == "png"
        assert asset.channels == 3
        assert asset.source_size == len(png_bytes)

    def test_decode_empty_payload(self, engine):
        with pytest.raises(InputValidationError):
            engine.decode(b"")

    def test_decode_garbage(self, engine):
        with pytest.raises(ProcessingError) as exc_info:
            engine.decode(b"definitely not an image")

        assert exc_info.value.operation == "decode"

    def test_png_keeps_alpha(self, engine):
        pixels = np.zeros((3, 3, 4), dtype=np.uint8)
        pixels[:, :, 3] = 77
        data = engine.encode(ImageAsset(pixels=pixels), OutputFormat.PNG)
        decoded = engine.decode(data)

        assert decoded.has_alpha
        assert np.all(decoded.pixels[:, :, 3] == 77)

    def test_jpeg_flattens_alpha_onto_white(self, engine):
        pixels = np.zeros((8, 8, 4), dtype=np.uint8)
        data = engine.encode(ImageAsset(pixels=pixels), OutputFormat.JPEG)
        decoded = engine.decode(data)

        assert decoded.channels == 3
        assert decoded.pixels.min() > 240

    def test_webp_encodes(self, engine, test_asset):
        data = engine.encode(test_asset, OutputFormat.WEBP, quality=80)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WEBP"

    def test_decode_cache_hits(self, png_bytes):
        engine = RasterEngine(EngineConfig(cache_enabled=True, cache_max_items=2))
        first = engine.decode(png_bytes)
        second = engine.decode(png_bytes)

        assert first is second
        stats = engine.stats()
        assert stats["cache"]["hits"] == 1
        assert stats["cache"]["misses"] == 1


class TestEngineConfig:
    """Construction-time tuning and reconfiguration"""

    def test_reconfigure_replaces_fields(self):
        engine = RasterEngine(EngineConfig())
        config = engine.reconfigure(cache_max_items=5, simd=False)

        assert config.cache_max_items == 5
        assert config.simd is False
        assert engine.config == config
        engine.reconfigure(simd=True)

    def test_disabling_cache_clears_it(self, png_bytes):
        engine = RasterEngine(EngineConfig(cache_enabled=True))
        engine.decode(png_bytes)
        engine.reconfigure(cache_enabled=False)

        assert engine.stats()["cache"]["items"] == 0

    def test_negative_values_rejected(self):
        engine = RasterEngine(EngineConfig())

        with pytest.raises(InputValidationError):
            engine.reconfigure(concurrency=-1)

    def test_stats_shape(self, engine):
        stats = engine.stats()

        assert set(stats) == {"config", "cache", "threads", "simd"}
        assert stats["config"]["cache_enabled"] is False


class TestGeometry:
    """Resize, crop, flip, rotate, extend"""

    def test_resize_fill_exact(self, engine, test_asset):
        assert engine.resize(test_asset, 40, 40, ResizeFit.FILL).size == (40, 40)

    def test_resize_cover_crops_to_box(self, engine, test_asset):
        assert engine.resize(test_asset, 50, 50, ResizeFit.COVER).size == (50, 50)

    def test_resize_inside_keeps_aspect(self, engine, test_asset):
        assert engine.resize(test_asset, 80, 80, ResizeFit.INSIDE).size == (80, 60)

    def test_resize_single_dimension(self, engine, test_asset):
        assert engine.resize(test_asset, width=80).size == (80, 60)

    def test_crop(self, engine, test_asset):
        result = engine.crop(test_asset, 40, 30, 10, 5)

        assert result.size == (10, 5)
        assert tuple(result.pixels[0, 0]) == (255, 255, 255)

    def test_crop_out_of_bounds(self, engine, test_asset):
        with pytest.raises(InputValidationError):
            engine.crop(test_asset, 150, 0, 20, 20)

    def test_flip_axes(self, engine, test_asset):
        vertical = engine.flip(test_asset, FlipAxis.VERTICAL)
        horizontal = engine.flip(test_asset, FlipAxis.HORIZONTAL)

        assert np.array_equal(vertical.pixels, test_asset.pixels[::-1])
        assert np.array_equal(horizontal.pixels, test_asset.pixels[:, ::-1])

    def test_rotate_right_angle_swaps_dimensions(self, engine, test_asset):
        result = engine.rotate(test_asset, 90)

        assert result.size == (120, 160)
        # Clockwise: the top-left corner moves to the top-right
        assert np.array_equal(result.pixels[0, -1], test_asset.pixels[0, 0])

    def test_rotate_arbitrary_angle_expands_canvas(self, engine, solid):
        asset = ImageAsset(pixels=solid(10, 10, (0, 0, 0)))
        result = engine.rotate(asset, 45, background="#ff0000")

        assert result.width > 10 and result.height > 10
        assert tuple(result.pixels[0, 0]) == (0, 0, 255)

    def test_extend(self, engine, test_asset):
        result = engine.extend(test_asset, 1, 2, 3, 4, "#00ff00")

        assert result.size == (160 + 7, 120 + 3)
        assert tuple(result.pixels[0, 0]) == (0, 255, 0)


class TestFilters:
    """Pixel filters"""

    def test_blur_zero_is_identity(self, engine, test_asset):
        assert engine.blur(test_asset, 0) is test_asset

    def test_threshold_is_binary(self, engine, test_asset):
        result = engine.threshold(test_asset, 128)

        assert result.channels == 1
        assert set(np.unique(result.pixels)) == {0, 255}

    def test_negate(self, engine, test_asset):
        result = engine.negate(test_asset)

        assert np.array_equal(result.pixels, 255 - test_asset.pixels)

    def test_negate_keeps_alpha(self, engine):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[:, :, 3] = 100
        result = engine.negate(ImageAsset(pixels=pixels))

        assert np.all(result.pixels[:, :, :3] == 255)
        assert np.all(result.pixels[:, :, 3] == 100)

    def test_linear_saturates(self, engine, solid):
        asset = ImageAsset(pixels=solid(2, 2, (100, 200, 10)))
        result = engine.linear(asset, 2.0, 0)

        assert tuple(result.pixels[0, 0]) == (200, 255, 20)

    def test_gamma_rejects_non_positive(self, engine, test_asset):
        with pytest.raises(InputValidationError):
            engine.gamma(test_asset, 0)

    def test_gamma_one_is_identity(self, engine, test_asset):
        assert np.array_equal(engine.gamma(test_asset, 1.0).pixels, test_asset.pixels)

    def test_convolve_identity_kernel(self, engine, test_asset):
        kernel = [[0, 0, 0], [0, 1, 0], [0, 0, 0]]

        assert np.array_equal(engine.convolve(test_asset, kernel).pixels, test_asset.pixels)

    def test_greyscale_single_band(self, engine, test_asset):
        assert engine.greyscale(test_asset).channels == 1


class TestChannels:
    """Channel and colorspace primitives"""

    def test_extract_channels(self, engine, solid):
        asset = ImageAsset(pixels=solid(2, 2, (10, 20, 30)))

        assert np.all(engine.extract_channel(asset, Channel.RED).pixels == 30)
        assert np.all(engine.extract_channel(asset, Channel.GREEN).pixels == 20)
        assert np.all(engine.extract_channel(asset, Channel.BLUE).pixels == 10)
        assert np.all(engine.extract_channel(asset, Channel.ALPHA).pixels == 255)

    def test_bandbool(self, engine, solid):
        asset = ImageAsset(pixels=solid(1, 1, (0b1100, 0b1010, 0b0110)))

        assert engine.bandbool(asset, BandBoolOperation.AND).pixels[0, 0] == 0b0000
        assert engine.bandbool(asset, BandBoolOperation.OR).pixels[0, 0] == 0b1110
        assert engine.bandbool(asset, BandBoolOperation.EOR).pixels[0, 0] == 0b0000

    def test_join_two_planes(self, engine):
        red = ImageAsset(pixels=np.full((2, 2), 200, dtype=np.uint8))
        green = ImageAsset(pixels=np.full((4, 4), 100, dtype=np.uint8))
        result = engine.join_channels([red, green])

        assert result.size == (2, 2)
        assert tuple(result.pixels[0, 0]) == (0, 100, 200)

    def test_join_four_planes_has_alpha(self, engine):
        planes = [ImageAsset(pixels=np.full((2, 2), v, dtype=np.uint8)) for v in (1, 2, 3, 4)]
        result = engine.join_channels(planes)

        assert tuple(result.pixels[0, 0]) == (3, 2, 1, 4)

    def test_join_requires_two_planes(self, engine, test_asset):
        with pytest.raises(InputValidationError):
            engine.join_channels([test_asset])

    def test_rgb16_widens_samples(self, engine, solid):
        result = engine.to_colorspace(ImageAsset(pixels=solid(1, 1, (0, 1, 255))), Colorspace.RGB16)

        assert result.pixels.dtype == np.uint16
        assert tuple(result.pixels[0, 0]) == (0, 257, 65535)

    def test_bw_is_single_band(self, engine, test_asset):
        assert engine.to_colorspace(test_asset, Colorspace.BW).channels == 1

    def test_remove_and_ensure_alpha(self, engine, test_asset):
        with_alpha = engine.ensure_alpha(test_asset)

        assert with_alpha.channels == 4
        assert engine.remove_alpha(with_alpha).channels == 3


class TestComposite:
    """Porter-Duff and blend compositing"""

    def test_gravity_offsets(self):
        assert gravity_offset(Gravity.CENTRE, (10, 10), (4, 4)) == (3, 3)
        assert gravity_offset(Gravity.SOUTHEAST, (10, 10), (4, 4)) == (6, 6)
        assert gravity_offset(Gravity.NORTHWEST, (10, 10), (4, 4)) == (0, 0)

    def test_over_places_overlay(self, engine, solid):
        base = ImageAsset(pixels=solid(10, 10, (0, 0, 0)))
        overlay = ImageAsset(pixels=solid(2, 2, (255, 255, 255)))
        result = engine.composite(base, overlay, left=8, top=8)

        assert result.channels == 3
        assert tuple(result.pixels[9, 9]) == (255, 255, 255)
        assert tuple(result.pixels[7, 7]) == (0, 0, 0)

    def test_overlay_is_clipped(self, engine, solid):
        base = ImageAsset(pixels=solid(4, 4, (0, 0, 0)))
        overlay = ImageAsset(pixels=solid(4, 4, (255, 255, 255)))
        result = engine.composite(base, overlay, left=2, top=2)

        assert result.size == (4, 4)
        assert tuple(result.pixels[3, 3]) == (255, 255, 255)
        assert tuple(result.pixels[1, 1]) == (0, 0, 0)

    def test_multiply(self, engine, solid):
        base = ImageAsset(pixels=solid(2, 2, (255, 128, 0)))
        overlay = ImageAsset(pixels=solid(2, 2, (128, 128, 128)))
        result = engine.composite(base, overlay, left=0, top=0, blend=BlendMode.MULTIPLY)

        assert tuple(result.pixels[0, 0]) == (128, 64, 0)

    def test_dest_in_uses_overlay_alpha(self, engine, solid):
        base = ImageAsset(pixels=solid(2, 2, (0, 0, 255)))
        overlay_pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        overlay_pixels[0, 0, 3] = 255
        result = engine.composite(
            base, ImageAsset(pixels=overlay_pixels), left=0, top=0, blend=BlendMode.DEST_IN
        )

        assert result.pixels[0, 0, 3] == 255
        assert result.pixels[1, 1, 3] == 0

    def test_paste_places_many_overlays(self, engine, solid):
        base = ImageAsset(pixels=solid(10, 10, (0, 0, 0)))
        red = ImageAsset(pixels=solid(2, 2))
        white = ImageAsset(pixels=solid(3, 3, (255, 255, 255)))

        result = engine.paste(base, [(red, 0, 0), (white, 8, 8)])

        assert result.channels == 3
        assert tuple(result.pixels[1, 1]) == (0, 0, 255)
        assert tuple(result.pixels[9, 9]) == (255, 255, 255)
        assert tuple(result.pixels[5, 5]) == (0, 0, 0)
        # The base asset is untouched
        assert not base.pixels.any()

    def test_paste_blends_alpha_only_in_footprint(self, engine, solid):
        base = ImageAsset(pixels=solid(6, 6, (0, 0, 0)))
        overlay_pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        overlay_pixels[:] = (255, 255, 255, 128)
        overlay_pixels[1, 1, 3] = 0

        result = engine.paste(base, [(ImageAsset(pixels=overlay_pixels), 1, 1)])

        assert result.channels == 3
        assert tuple(result.pixels[1, 1]) == (128, 128, 128)
        assert tuple(result.pixels[2, 2]) == (0, 0, 0)
        assert tuple(result.pixels[0, 0]) == (0, 0, 0)

    def test_paste_onto_transparent_canvas(self, engine):
        base = engine.create_canvas(4, 4, "transparent")
        overlay = ImageAsset(pixels=np.full((2, 2), 200, dtype=np.uint8))

        result = engine.paste(base, [(overlay, 2, 2)])

        assert result.pixels[0, 0, 3] == 0
        assert tuple(result.pixels[3, 3]) == (200, 200, 200, 255)

    def test_apply_alpha_mask(self, engine, test_asset):
        mask = np.zeros((120, 160), dtype=np.uint8)
        mask[:60] = 255
        result = engine.apply_alpha_mask(test_asset, mask)

        assert result.pixels[10, 10, 3] == 255
        assert result.pixels[100, 10, 3] == 0

    def test_render_text_has_ink(self, engine):
        stamp = engine.render_text("Hi", 100, 50, 24, "no-such-font", "#ffffff", 1.0)

        assert stamp.size == (100, 50)
        assert stamp.pixels[:, :, 3].max() > 0
