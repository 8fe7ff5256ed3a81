"""Tests for the frame-sequenced diagnostic logger."""

import numpy as np
import pytest
from loguru import logger

from facemanager.diagnostics.frame_logger import FrameLogger


@pytest.fixture
def messages():
    captured = []
    sink_id = logger.add(captured.append, level="TRACE", format="{message}")
    yield captured
    logger.remove(sink_id)


def test_level_filtering(messages):
    frame_logger = FrameLogger(level="INFO")
    frame_logger.debug("hidden")
    frame_logger.info("shown")

    assert len(messages) == 1
    assert "shown" in messages[0]
    assert frame_logger.is_enabled("WARNING")
    assert not frame_logger.is_enabled("DEBUG")


def test_disabled(messages):
    frame_logger = FrameLogger(enabled=False)
    frame_logger.error("hidden")
    assert messages == []


def test_messages_carry_frame(messages):
    frame_logger = FrameLogger()
    frame_logger.set_frame(42)
    frame_logger.debug("hello")

    record = messages[0].record
    assert record["extra"]["frame"] == 42
    assert "[00042-000] hello" in messages[0]


def test_frame_sequencing():
    frame_logger = FrameLogger()
    frame_logger.set_frame(7)
    frame_logger.seq = 3
    frame_logger.next_frame()
    assert frame_logger.frame_string() == "00008-000"


def test_image_dump(tmp_path):
    frame_logger = FrameLogger(image_dir=str(tmp_path / "debug"))
    frame_logger.set_frame(3)
    image = np.zeros((10, 10, 3), dtype=np.uint8)

    first = frame_logger.image("face-chip", image)
    second = frame_logger.image("face-chip", image)

    assert first.name == "00003-000-face-chip.png"
    assert second.name == "00003-001-face-chip.png"
    assert first.exists() and second.exists()


def test_image_dump_respects_level(tmp_path):
    frame_logger = FrameLogger(level="INFO", image_dir=str(tmp_path))
    assert frame_logger.image("step", np.zeros((4, 4), dtype=np.uint8)) is None
    assert list(tmp_path.iterdir()) == []


def test_no_image_dir():
    assert FrameLogger().image("step", np.zeros((4, 4), dtype=np.uint8)) is None


def test_level_setter():
    frame_logger = FrameLogger(level="ERROR")
    frame_logger.level = "TRACE"
    assert frame_logger.level == "TRACE"
    assert frame_logger.is_enabled("TRACE")
