"""Tests for the demo driver helpers."""

from types import SimpleNamespace

import numpy as np
import pytest

import main
from facemanager.capture import MotionMethod
from facemanager.core.contracts import Person, Rectangle
from facemanager.manager import FaceManagerConfig


def test_fps_meter_tracks_min_and_max(monkeypatch):
    times = iter([0.0, 0.1, 0.2, 0.25])
    monkeypatch.setattr(main, "time", SimpleNamespace(perf_counter=lambda: next(times)))

    meter = main.FpsMeter()
    first = meter.tick()
    second = meter.tick()
    third = meter.tick()

    # First frame is bias corrected to the raw frame time
    assert first == pytest.approx(10.0)
    assert second == pytest.approx(10.0)
    assert third > second
    assert meter.min_fps == pytest.approx(10.0)
    assert meter.max_fps == pytest.approx(third)
    assert meter.mean_fps == pytest.approx(3 / 0.25)


def test_annotator_draws():
    frame = np.zeros((200, 300, 3), dtype=np.uint8)
    person = Person(
        bounding_box=Rectangle(50, 60, 99, 109),
        face_image=np.zeros((2, 2, 3), dtype=np.uint8),
        descriptor=np.zeros(4, dtype=np.float32),
        local_id=1,
    )

    main.FrameAnnotator().render(frame, [person], fps=25.0, visible_count=1, known_count=3)

    assert frame.any()
    # Box edge drawn in blue
    assert tuple(frame[80, 50]) == (255, 0, 0)


def test_dataclass_kwargs_drops_unknown():
    kwargs = main._dataclass_kwargs(
        FaceManagerConfig, {"detection_interval": 3, "bogus": 1}, "manager"
    )
    assert kwargs == {"detection_interval": 3}


def test_demo_from_config(tmp_path):
    config = tmp_path / "settings.yaml"
    config.write_text(
        "manager:\n"
        "  detection_interval: 2\n"
        "  descriptor_threshold: 1.1\n"
        "tracker:\n"
        "  learning_rate: 0.2\n"
        "motion:\n"
        "  method: mse\n"
    )

    demo = main.FaceTrackingDemo(str(config), models_dir=str(tmp_path))

    assert demo.method is MotionMethod.MSE
    assert demo.manager.detection_interval == 2
    assert demo.manager.config.descriptor_threshold == 1.1
    assert str(demo.face_detector.model_dir) == str(tmp_path)


def test_method_argument_overrides_config(tmp_path):
    config = tmp_path / "settings.yaml"
    config.write_text("motion:\n  method: mse\n")
    demo = main.FaceTrackingDemo(str(config), method="contours")
    assert demo.method is MotionMethod.CONTOURS


def test_cli_fails_without_models(tmp_path):
    code = main.main([
        str(tmp_path / "in.avi"), str(tmp_path / "out.avi"),
        "--models-dir", str(tmp_path), "--log-level", "ERROR",
    ])
    assert code == 1
