"""Tests for capture error classification and output sizing."""

import pytest

from capture.interface import (
    FatalCaptureError,
    SystemEvent,
    TransientCaptureError,
    UserStoppedCapture,
    error_from_code,
    scaled_dimensions,
)


class TestScaledDimensions:

    @pytest.mark.parametrize("source, expected", [
        ((2560, 1440), (1920, 1080)),
        ((3024, 1964), (1662, 1080)),
        ((1920, 1080), (1920, 1080)),
        ((1280, 800), (1280, 800)),     # never upscaled
        ((1366, 767), (1366, 766)),     # odd height rounded down to even
    ])
    def test_scaling(self, source, expected):
        assert scaled_dimensions(*source, 1080) == expected

    def test_dimensions_are_even(self):
        for width, height in [(3001, 2001), (1111, 1999), (5, 3)]:
            out_w, out_h = scaled_dimensions(width, height, 1080)
            assert out_w % 2 == 0 and out_h % 2 == 0

    @pytest.mark.parametrize("width, height", [(0, 1080), (1920, 0), (-1, -1)])
    def test_invalid_size(self, width, height):
        with pytest.raises(ValueError):
            scaled_dimensions(width, height, 1080)


class TestErrorFromCode:

    @pytest.mark.parametrize("code", [-3808, -3817])
    def test_user_stopped(self, code):
        error = error_from_code(code)
        assert isinstance(error, UserStoppedCapture)
        assert error.code == code

    @pytest.mark.parametrize("code", [-3807, -3815, -3821])
    def test_transient(self, code):
        assert isinstance(error_from_code(code, "display gone"), TransientCaptureError)

    def test_everything_else_is_fatal(self):
        error = error_from_code(-3801, "permission denied")
        assert isinstance(error, FatalCaptureError)
        assert str(error) == "permission denied"


def test_pause_events():
    pauses = {e for e in SystemEvent if e.is_pause}
    assert pauses == {SystemEvent.WILL_SLEEP, SystemEvent.SCREEN_LOCKED, SystemEvent.SCREENSAVER_STARTED}
