"""
Unit tests for heuristic background removal
"""

import numpy as np
import pytest

from core.enums import BackgroundMethod
from core.exceptions import InputValidationError, ProcessingError
from core.image.asset import ImageAsset
from imaging.background import BackgroundRemovalConfig, BackgroundRemover


@pytest.fixture
def remover(engine):
    return BackgroundRemover(engine)


@pytest.fixture
def subject_on_white():
    """Dark square on a white background"""
    pixels = np.full((40, 40, 3), 255, dtype=np.uint8)
    pixels[10:30, 10:30] = (40, 40, 40)
    return ImageAsset(pixels=pixels, format="png")


class TestBackgroundRemover:
    """Strategy masks and alpha application"""

    def test_threshold_clears_bright_pixels(self, remover, subject_on_white):
        config = BackgroundRemovalConfig(method=BackgroundMethod.THRESHOLD, threshold=128)
        result = remover.remove(subject_on_white, config)

        assert result.channels == 4
        assert result.pixels[0, 0, 3] == 0
        assert result.pixels[20, 20, 3] == 255
        assert tuple(result.pixels[20, 20, :3]) == (40, 40, 40)

    def test_threshold_mask_is_deterministic(self, remover, subject_on_white):
        config = BackgroundRemovalConfig(method=BackgroundMethod.THRESHOLD, threshold=100)
        first = remover.build_mask(subject_on_white, config)
        second = remover.build_mask(subject_on_white, config)

        assert np.array_equal(first, second)
        assert set(np.unique(first)) == {0, 255}

    def test_color_key_removes_matching_pixels(self, remover):
        pixels = np.zeros((10, 10, 3), dtype=np.uint8)
        pixels[:, :5] = (0, 255, 0)
        pixels[:, 5:] = (5, 250, 5)
        pixels[0, 0] = (0, 0, 255)
        asset = ImageAsset(pixels=pixels)
        config = BackgroundRemovalConfig(
            method=BackgroundMethod.COLOR, color="#00ff00", tolerance=10
        )

        result = remover.remove(asset, config)

        assert result.pixels[5, 2, 3] == 0
        # Distance sqrt(5^2 + 5^2 + 5^2) ~ 8.7 is within tolerance
        assert result.pixels[5, 7, 3] == 0
        assert result.pixels[0, 0, 3] == 255

    def test_color_key_tolerance_boundary(self, remover):
        pixels = np.zeros((2, 2, 3), dtype=np.uint8)
        pixels[:] = (255, 255, 255)
        pixels[1, 1] = (255, 255, 235)
        config = BackgroundRemovalConfig(method=BackgroundMethod.COLOR, tolerance=10)

        result = remover.remove(ImageAsset(pixels=pixels), config)

        assert result.pixels[0, 0, 3] == 0
        assert result.pixels[1, 1, 3] == 255

    def test_edge_method_keeps_flat_regions(self, remover, subject_on_white):
        config = BackgroundRemovalConfig(method=BackgroundMethod.EDGE)
        result = remover.remove(subject_on_white, config)

        # Flat areas have no edge response and are kept
        assert result.pixels[0, 0, 3] == 255
        assert result.pixels[20, 20, 3] == 255
        # Bright pixels bordering the square respond to the Laplacian
        assert result.pixels[20, 9, 3] == 0

    @pytest.mark.parametrize("method", list(BackgroundMethod))
    def test_every_method_returns_alpha(self, remover, subject_on_white, method):
        result = remover.remove(subject_on_white, BackgroundRemovalConfig(method=method))

        assert result.channels == 4
        assert result.size == subject_on_white.size

    def test_existing_alpha_is_scaled(self, remover):
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[:, :, 3] = 128
        config = BackgroundRemovalConfig(method=BackgroundMethod.THRESHOLD, threshold=128)

        result = remover.remove(ImageAsset(pixels=pixels), config)

        assert np.all(result.pixels[:, :, 3] == 128)

    def test_invalid_color_rejected(self, remover, subject_on_white):
        config = BackgroundRemovalConfig(method=BackgroundMethod.COLOR, color="not-a-color")

        with pytest.raises(InputValidationError):
            remover.remove(subject_on_white, config)


@pytest.fixture
def recorded(engine, monkeypatch):
    """Record the sigma of every blur and the level of every threshold"""
    calls = {"blur": [], "threshold": [], "convolve": 0}
    blur, threshold, convolve = engine.blur, engine.threshold, engine.convolve

    def record_blur(asset, sigma):
        calls["blur"].append(sigma)
        return blur(asset, sigma)

    def record_threshold(asset, value):
        calls["threshold"].append(value)
        return threshold(asset, value)

    def record_convolve(asset, kernel):
        calls["convolve"] += 1
        return convolve(asset, kernel)

    monkeypatch.setattr(engine, "blur", record_blur)
    monkeypatch.setattr(engine, "threshold", record_threshold)
    monkeypatch.setattr(engine, "convolve", record_convolve)
    return calls


class TestSmartRemoval:
    """Feathered smart masks"""

    def test_feather_softens_mask_boundary(self, remover, subject_on_white):
        hard = BackgroundRemovalConfig(
            method=BackgroundMethod.SMART, edge_detection=False, color_threshold=128, feather=0
        )
        soft = BackgroundRemovalConfig(
            method=BackgroundMethod.SMART, edge_detection=False, color_threshold=128, feather=2
        )

        hard_mask = remover.build_mask(subject_on_white, hard)
        soft_mask = remover.build_mask(subject_on_white, soft)

        assert set(np.unique(hard_mask)) == {0, 255}
        # Pixels straddling the square's edge fall between keep and discard
        assert 0 < soft_mask[20, 10] < 255
        assert 0 < soft_mask[20, 9] < 255
        # Far from the edge the mask is unchanged
        assert soft_mask[0, 0] == 255
        assert soft_mask[20, 20] == 0

    def test_feathered_alpha_has_intermediate_values(self, remover, subject_on_white):
        config = BackgroundRemovalConfig(
            method=BackgroundMethod.SMART, edge_detection=False, color_threshold=128, feather=2
        )

        alpha = remover.remove(subject_on_white, config).pixels[:, :, 3]

        assert np.any((alpha > 0) & (alpha < 255))

    def test_without_edge_detection_skips_laplacian(
        self, engine, remover, subject_on_white, recorded
    ):
        config = BackgroundRemovalConfig(
            method=BackgroundMethod.SMART, edge_detection=False, color_threshold=128, feather=0
        )

        mask = remover.build_mask(subject_on_white, config)

        assert recorded["convolve"] == 0
        assert recorded["threshold"] == [128]
        expected = np.where(subject_on_white.pixels[:, :, 0] >= 128, 255, 0)
        assert np.array_equal(mask, expected)

    def test_with_edge_detection_runs_laplacian(self, remover, subject_on_white, recorded):
        config = BackgroundRemovalConfig(
            method=BackgroundMethod.SMART, edge_detection=True, blur=1, color_threshold=50, feather=2
        )

        mask = remover.build_mask(subject_on_white, config)

        assert recorded["convolve"] == 1
        assert recorded["blur"] == [1, 2]
        assert recorded["threshold"] == [50]
        # Flat white has no edge response
        assert mask[0, 0] == 0


class TestDefaultAndEdgeMethods:
    """Fixed blur and threshold levels"""

    def test_default_blurs_then_thresholds_at_30(self, remover, subject_on_white, recorded):
        remover.build_mask(subject_on_white, BackgroundRemovalConfig(method=BackgroundMethod.DEFAULT))

        assert recorded["blur"] == [1.0]
        assert recorded["convolve"] == 1
        assert recorded["threshold"] == [30]

    def test_edge_thresholds_at_50_without_blur(self, remover, subject_on_white, recorded):
        remover.build_mask(subject_on_white, BackgroundRemovalConfig(method=BackgroundMethod.EDGE))

        assert recorded["blur"] == []
        assert recorded["convolve"] == 1
        assert recorded["threshold"] == [50]

    def test_default_blur_suppresses_isolated_noise(self, remover):
        # A lone pixel 40 levels above a flat field
        pixels = np.full((21, 21, 3), 100, dtype=np.uint8)
        pixels[10, 10] = 140
        asset = ImageAsset(pixels=pixels)

        edge_mask = remover.build_mask(asset, BackgroundRemovalConfig(method=BackgroundMethod.EDGE))
        default_mask = remover.build_mask(
            asset, BackgroundRemovalConfig(method=BackgroundMethod.DEFAULT)
        )

        # Unblurred Laplacian response 320 clears the pixel
        assert edge_mask[10, 10] == 0
        # After blur(1) the response stays under 30
        assert np.all(default_mask == 255)


class TestRemovalFailures:
    def test_failure_names_strategy(self, engine, remover, subject_on_white, monkeypatch):
        def broken(asset, kernel):
            raise ValueError("kernel rejected")

        monkeypatch.setattr(engine, "convolve", broken)
        config = BackgroundRemovalConfig(method=BackgroundMethod.SMART)

        with pytest.raises(ProcessingError) as exc_info:
            remover.remove(subject_on_white, config)

        assert exc_info.value.operation == "background-removal (smart)"
        assert "kernel rejected" in exc_info.value.message
