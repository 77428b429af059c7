"""
Unit tests for the operation pipeline executor
"""

import base64

import numpy as np
import pytest

from core.constants import MaskDefaults
from core.enums import (
    ChannelOpKind,
    ColorAdjustKind,
    FilterKind,
    FlipAxis,
    MaskShape,
    UnknownOperationPolicy,
)
from core.exceptions import InputValidationError, ProcessingError
from core.image.asset import ImageAsset
from imaging.pipeline import PipelineExecutor
from schemas.operations import (
    BorderOperation,
    ChannelOperation,
    ColorAdjustOperation,
    CompositeOperation,
    CropOperation,
    FilterOperation,
    FlipOperation,
    MaskOperation,
    PipelineRequest,
    ResizeOperation,
    RotateOperation,
)


@pytest.fixture
def executor(engine):
    return PipelineExecutor(engine)


@pytest.fixture
def gradient():
    """Asymmetric 6x4 image so flips and rotations are distinguishable"""
    pixels = np.zeros((4, 6, 3), dtype=np.uint8)
    for y in range(4):
        for x in range(6):
            pixels[y, x] = (x * 40, y * 60, (x + y) * 20)
    return ImageAsset(pixels=pixels, format="png")


class TestPipelineOrdering:
    """Steps run left to right"""

    def test_flip_flop_equals_rotate_180(self, engine, executor, gradient):
        chained = executor.apply(gradient, ["flip", "flop"])
        rotated = engine.rotate(gradient, 180)

        assert np.array_equal(chained.pixels, rotated.pixels)

    def test_named_and_structured_operations_mix(self, executor, gradient):
        result = executor.apply(
            gradient,
            ["greyscale", ResizeOperation(width=3, height=2)],
        )

        assert result.size == (3, 2)
        assert result.channels == 1

    def test_order_matters(self, executor, gradient):
        crop_then_resize = executor.apply(
            gradient,
            [CropOperation(left=0, top=0, width=2, height=2), ResizeOperation(width=4, height=4)],
        )
        resize_then_crop = executor.apply(
            gradient,
            [ResizeOperation(width=4, height=4), CropOperation(left=0, top=0, width=2, height=2)],
        )

        assert crop_then_resize.size == (4, 4)
        assert resize_then_crop.size == (2, 2)

    def test_source_is_not_mutated(self, executor, gradient):
        before = gradient.pixels.copy()
        executor.apply(gradient, ["negate", "flip"])

        assert np.array_equal(gradient.pixels, before)

    def test_border_extends_canvas(self, executor, gradient):
        result = executor.apply(gradient, [BorderOperation(width=2, height=1, color="#ff0000")])

        assert result.size == (6 + 4, 4 + 2)
        assert tuple(result.pixels[0, 0]) == (0, 0, 255)

    def test_mask_step_adds_alpha(self, executor, gradient):
        result = executor.apply(
            gradient, [MaskOperation(shape=MaskShape.CIRCLE, background="transparent")]
        )

        assert result.has_alpha

    def test_channel_extract(self, executor, gradient):
        result = executor.apply(gradient, [ChannelOperation(kind=ChannelOpKind.EXTRACT_RED)])

        assert result.channels == 1
        assert np.array_equal(result.pixels, gradient.pixels[:, :, 2])

    def test_composite_step_decodes_overlay(self, executor, gradient, encode_png, solid):
        overlay = base64.b64encode(encode_png(solid(2, 2, (255, 255, 255)))).decode()
        result = executor.apply(gradient, [CompositeOperation(overlay=overlay, left=0, top=0)])

        assert tuple(result.pixels[0, 0]) == (255, 255, 255)
        assert tuple(result.pixels[3, 5]) == tuple(gradient.pixels[3, 5])


class TestUnknownOperations:
    """Unknown operation policy"""

    def test_fail_policy_rejects_unknown_name(self, executor, gradient):
        with pytest.raises(InputValidationError) as exc_info:
            executor.apply(gradient, ["greyscale", "sepia"])

        assert "sepia" in exc_info.value.message

    def test_fail_policy_rejects_before_running(self, engine, gradient):
        executor = PipelineExecutor(engine, UnknownOperationPolicy.FAIL)

        with pytest.raises(InputValidationError):
            executor.resolve(["flip", "unknown"])

    def test_skip_policy_drops_unknown_name(self, engine, gradient):
        executor = PipelineExecutor(engine, UnknownOperationPolicy.SKIP)
        result = executor.apply(gradient, ["sepia", "flop"])
        expected = engine.flip(gradient, FlipAxis.HORIZONTAL)

        assert np.array_equal(result.pixels, expected.pixels)

    def test_skip_policy_with_only_unknown_names(self, engine, gradient):
        executor = PipelineExecutor(engine, UnknownOperationPolicy.SKIP)

        with pytest.raises(InputValidationError):
            executor.apply(gradient, ["sepia"])

    def test_names_are_case_insensitive(self, executor, gradient):
        result = executor.apply(gradient, [" Flip ", "FLOP"])

        assert result.size == gradient.size


class TestStepFailures:
    """Failure reporting"""

    def test_out_of_bounds_crop_is_validation_error(self, executor, gradient):
        with pytest.raises(InputValidationError):
            executor.apply(gradient, [CropOperation(left=5, top=0, width=5, height=2)])

    def test_failing_step_names_index_and_operation(self, executor, gradient):
        operations = [
            FlipOperation(axis=FlipAxis.VERTICAL),
            RotateOperation(angle=45, background="#ffffff"),
            FilterOperation(kind=FilterKind.GREYSCALE),
        ]
        bad_overlay = base64.b64encode(b"not an image").decode()
        operations.append(CompositeOperation(overlay=bad_overlay))

        with pytest.raises(ProcessingError) as exc_info:
            executor.apply(gradient, operations)

        assert exc_info.value.operation == "pipeline"
        assert "step 3 (composite)" in exc_info.value.message


class TestPipelineRequest:
    """Request model"""

    def test_parses_names_and_specs(self):
        request = PipelineRequest(
            operations=["flip", {"op": "resize", "width": 10}, {"op": "filter", "kind": "blur", "magnitude": 1}]
        )

        assert request.operations[0] == "flip"
        assert isinstance(request.operations[1], ResizeOperation)
        assert isinstance(request.operations[2], FilterOperation)

    def test_empty_operations_rejected(self):
        with pytest.raises(ValueError):
            PipelineRequest(operations=[])

    def test_gamma_accepts_numeric_text(self):
        request = PipelineRequest(
            operations=[{"op": "color-adjust", "kind": "gamma", "value": "2.2"}]
        )

        assert request.operations[0].value == 2.2

    @pytest.mark.parametrize("value", ["bright", "-1", None])
    def test_gamma_rejects_non_positive_or_text(self, value):
        with pytest.raises(ValueError):
            ColorAdjustOperation(kind=ColorAdjustKind.GAMMA, value=value)

    def test_tint_keeps_color_text(self):
        step = ColorAdjustOperation(kind=ColorAdjustKind.TINT, value="#ff0000")

        assert step.value == "#ff0000"

    def test_mask_background_default(self):
        step = MaskOperation(shape=MaskShape.STAR)

        assert step.background == MaskDefaults.BACKGROUND_COLOR
