"""Tests for the resize planner."""

import pytest

from converter.conversion.models import FitMode
from converter.conversion.resize import plan_resize


class TestIdentity:
    """No requested dimensions keeps the source size."""

    @pytest.mark.parametrize("source", [(800, 600), (1, 1), (4000, 3)])
    def test_no_dimensions(self, source) -> None:
        plan = plan_resize(None, None, True, True, *source)
        assert (plan.width, plan.height) == source
        assert plan.fit_mode == FitMode.EXACT
        assert plan.is_identity

    def test_zero_and_negative_are_absent(self) -> None:
        plan = plan_resize(0, -20, False, True, 640, 480)
        assert (plan.width, plan.height) == (640, 480)
        assert plan.is_identity


class TestContain:
    """keep_aspect_ratio fits inside the requested box."""

    def test_square_downscale(self) -> None:
        plan = plan_resize(500, 500, True, True, 1000, 1000)
        assert (plan.width, plan.height) == (500, 500)
        assert plan.fit_mode == FitMode.CONTAIN_ALLOW_UPSCALE

    def test_preserves_ratio(self) -> None:
        plan = plan_resize(400, 400, True, True, 1000, 500)
        assert (plan.width, plan.height) == (400, 200)

    def test_upscale_with_both_dimensions(self) -> None:
        plan = plan_resize(2000, 2000, True, True, 1000, 500)
        assert (plan.width, plan.height) == (2000, 1000)
        assert plan.fit_mode == FitMode.CONTAIN_ALLOW_UPSCALE

    def test_upscale_forbidden_by_flag(self) -> None:
        plan = plan_resize(2000, 2000, True, False, 1000, 500)
        assert (plan.width, plan.height) == (1000, 500)
        assert plan.fit_mode == FitMode.CONTAIN_NO_UPSCALE

    def test_single_dimension_never_enlarges(self) -> None:
        plan = plan_resize(2000, None, True, True, 1000, 500)
        assert (plan.width, plan.height) == (1000, 500)
        assert plan.fit_mode == FitMode.CONTAIN_NO_UPSCALE

    def test_single_dimension_downscale(self) -> None:
        plan = plan_resize(None, 250, True, True, 1000, 500)
        assert (plan.width, plan.height) == (500, 250)

    def test_tiny_result_is_at_least_one_pixel(self) -> None:
        plan = plan_resize(1, 1, True, True, 1000, 10)
        assert (plan.width, plan.height) == (1, 1)

    @pytest.mark.parametrize("source", [(1000, 1000), (1920, 1080), (333, 777), (50, 40), (7, 3000)])
    @pytest.mark.parametrize("box", [(500, 500), (100, 300), (1280, 720), (64, 64), (999, 1)])
    def test_never_exceeds_box_or_source(self, source, box) -> None:
        plan = plan_resize(box[0], box[1], True, False, *source)
        assert plan.width <= box[0] and plan.height <= box[1]
        assert plan.width <= source[0] and plan.height <= source[1]


class TestFill:
    """Without keep_aspect_ratio the output matches the box exactly."""

    @pytest.mark.parametrize("source", [(1000, 1000), (1920, 1080), (10, 500)])
    def test_exact_box(self, source) -> None:
        plan = plan_resize(300, 200, False, False, *source)
        assert (plan.width, plan.height) == (300, 200)
        assert plan.fit_mode == FitMode.FILL

    def test_fill_enlarges(self) -> None:
        plan = plan_resize(3000, 2000, False, False, 100, 100)
        assert (plan.width, plan.height) == (3000, 2000)

    def test_missing_axis_keeps_source(self) -> None:
        plan = plan_resize(300, None, False, True, 1000, 800)
        assert (plan.width, plan.height) == (300, 800)
