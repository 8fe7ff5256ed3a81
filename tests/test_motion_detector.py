"""Tests for motion detectors on synthetic frames."""

import numpy as np
import pytest

from facemanager.capture.motion_detector import (
    ConstantMotionDetector,
    ContourMotionDetector,
    FrameDifferenceMotionDetector,
    MeanSquaredErrorMotionDetector,
    MotionMethod,
    motion_detector_factory,
    resize_to_width,
)


def blank():
    return np.zeros((300, 400, 3), dtype=np.uint8)


def with_square(x, y, size=80):
    frame = blank()
    frame[y:y + size, x:x + size] = 255
    return frame


def initialised(detector, frame):
    for _ in range(detector.num_init_frames()):
        detector.init_frame(frame)
    return detector


class TestMotionMethod:
    @pytest.mark.parametrize("name", ["diff", "DIFF", " Diff "])
    def test_case_insensitive(self, name):
        assert MotionMethod.from_string(name) is MotionMethod.DIFF

    def test_unknown(self):
        with pytest.raises(ValueError, match="bogus"):
            MotionMethod.from_string("bogus")

    @pytest.mark.parametrize("method,cls,init_frames", [
        (MotionMethod.ALWAYS, ConstantMotionDetector, 0),
        (MotionMethod.NEVER, ConstantMotionDetector, 0),
        (MotionMethod.CONTOURS, ContourMotionDetector, 1),
        (MotionMethod.MSE, MeanSquaredErrorMotionDetector, 1),
        (MotionMethod.MSE_WITH_BLUR, MeanSquaredErrorMotionDetector, 1),
        (MotionMethod.DIFF, FrameDifferenceMotionDetector, 2),
        (MotionMethod.DIFF_WITH_BLUR, FrameDifferenceMotionDetector, 2),
    ])
    def test_factory(self, method, cls, init_frames):
        detector = motion_detector_factory(method)
        assert isinstance(detector, cls)
        assert detector.num_init_frames() == init_frames


def test_constant():
    assert ConstantMotionDetector(True).detect_motion(blank())
    assert not ConstantMotionDetector(False).detect_motion(blank())


def test_resize_to_width():
    assert resize_to_width(blank(), 200).shape == (150, 200, 3)


@pytest.mark.parametrize("method", [
    MotionMethod.CONTOURS,
    MotionMethod.MSE,
    MotionMethod.MSE_WITH_BLUR,
    MotionMethod.DIFF,
    MotionMethod.DIFF_WITH_BLUR,
])
def test_still_scene_has_no_motion(method):
    detector = initialised(motion_detector_factory(method), with_square(100, 100))
    assert not detector.detect_motion(with_square(100, 100))


@pytest.mark.parametrize("method", [
    MotionMethod.CONTOURS,
    MotionMethod.MSE,
    MotionMethod.MSE_WITH_BLUR,
])
def test_new_object_is_motion(method):
    detector = initialised(motion_detector_factory(method), blank())
    assert detector.detect_motion(with_square(100, 100))


def test_frame_difference_needs_change_in_both_frames():
    detector = motion_detector_factory(MotionMethod.DIFF)
    detector.init_frame(with_square(0, 0))
    detector.init_frame(with_square(100, 100))
    # Only the newest square differs from both earlier frames
    assert detector.detect_motion(with_square(200, 100))


def test_frame_difference_without_resize():
    detector = FrameDifferenceMotionDetector(image_width=0)
    detector.init_frame(with_square(0, 0))
    detector.init_frame(with_square(100, 100))
    assert detector.detect_motion(with_square(200, 100))


def test_detect_before_init():
    with pytest.raises(RuntimeError):
        FrameDifferenceMotionDetector().detect_motion(blank())
