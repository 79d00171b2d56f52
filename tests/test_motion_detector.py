from types import SimpleNamespace

import numpy as np
import pytest

from gridmotion.frames import GrayscaleFrame, InvalidFrameError
from gridmotion.motion_detector import MotionDetector, MotionResult, diff, status_text
from gridmotion.regions import Rect

from helpers import color_frame, gray_frame, paint


@pytest.fixture
def detector(motion_config):
    d = MotionDetector(stream_id="cam01", motion_config=motion_config)
    d.start()
    return d


@pytest.fixture
def frame_a():
    return color_frame(80, 60, value=100)


@pytest.fixture
def frame_b(frame_a):
    return paint(frame_a, 0, 0, 10, 10, 200)


def test_diff_marks_pixels_above_threshold():
    prev = GrayscaleFrame(width=3, height=1, samples=np.array([[100, 100, 100]], dtype=np.uint8))
    curr = GrayscaleFrame(width=3, height=1, samples=np.array([[130, 131, 60]], dtype=np.uint8))
    mask = diff(prev, curr, threshold=30)
    assert mask.changed.tolist() == [[False, True, True]]
    assert mask.changed_count == 2
    assert mask.total_count == 3


def test_diff_is_symmetric():
    rng = np.random.default_rng(3)
    a = GrayscaleFrame(width=20, height=10, samples=rng.integers(0, 256, (10, 20), dtype=np.uint8))
    b = GrayscaleFrame(width=20, height=10, samples=rng.integers(0, 256, (10, 20), dtype=np.uint8))
    for threshold in (0, 1, 30, 128, 254, 255):
        assert diff(a, b, threshold).changed_count == diff(b, a, threshold).changed_count


def test_diff_rejects_mismatched_frames():
    with pytest.raises(ValueError):
        diff(gray_frame(4, 4), gray_frame(4, 5))


def test_identical_frames_have_no_change():
    mask = diff(gray_frame(10, 10, 50), gray_frame(10, 10, 50))
    assert mask.changed_count == 0
    assert mask.ratio_percent == 0.0


def test_first_frame_becomes_baseline(detector, frame_a):
    assert detector.process_frame(frame_a) is None
    assert detector.baseline.size == (80, 60)


def test_single_spike_is_suppressed(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    result = detector.process_frame(frame_b)

    assert isinstance(result, MotionResult)
    assert result.motion_detected is False
    assert result.active_regions == ()
    assert result.basic_motion_detected is True
    assert result.basic_motion_ratio == pytest.approx(100 * 100 / 4800)
    assert result.motion_regions == (Rect(0, 0, 10, 10),)
    assert detector.counters == {(0, 0): 1}


def test_quiet_tick_decays_warming_cell(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    result = detector.process_frame(frame_b)

    assert result.motion_detected is False
    assert result.basic_motion_ratio == 0.0
    assert detector.counters == {}


def test_sustained_motion_becomes_active(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    result = detector.process_frame(frame_a)

    assert result.motion_detected is True
    assert result.active_regions == (Rect(0, 0, 10, 10),)
    assert result.frame_width == 80
    assert result.frame_height == 60
    assert detector.counters == {(0, 0): 2}


def test_small_noise_below_global_threshold_is_ignored(detector, frame_a):
    # 4 of 4800 pixels is under 0.2% of the frame
    noisy = paint(frame_a, 40, 30, 42, 32, 255)
    detector.process_frame(frame_a)
    for frame in (noisy, frame_a, noisy, frame_a):
        result = detector.process_frame(frame)
        assert result.basic_motion_detected is False
        assert result.motion_detected is False
    assert detector.counters == {}


def test_resolution_change_resets_history(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    assert detector.counters

    assert detector.process_frame(color_frame(40, 30)) is None
    assert detector.counters == {}
    assert detector.baseline.size == (40, 30)

    result = detector.process_frame(color_frame(40, 30))
    assert result is not None
    assert result.motion_detected is False


def test_not_watching_returns_none(motion_config, frame_a):
    detector = MotionDetector(motion_config=motion_config)
    assert detector.process_frame(frame_a) is None
    assert detector.baseline is None
    assert detector.frame_count == 0


def test_stop_clears_state_and_is_idempotent(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    detector.stop()
    detector.stop()

    assert not detector.is_watching
    assert detector.baseline is None
    assert detector.counters == {}
    assert detector.process_frame(frame_a) is None


def test_restart_begins_with_empty_history(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    detector.stop()
    detector.start()

    assert detector.process_frame(frame_a) is None
    result = detector.process_frame(frame_b)
    assert detector.counters == {(0, 0): 1}
    assert result.motion_detected is False


def test_invalid_frame_leaves_state_untouched(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    baseline = detector.baseline

    bogus = SimpleNamespace(width=0, height=10, pixels=np.zeros((10, 1, 3), dtype=np.uint8))
    with pytest.raises(InvalidFrameError):
        detector.process_frame(bogus)

    assert detector.baseline is baseline
    assert detector.counters == {(0, 0): 1}


def test_on_motion_called_only_for_motion(motion_config, frame_a, frame_b):
    seen = []
    detector = MotionDetector(motion_config=motion_config, on_motion=seen.append)
    detector.start()
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    assert seen == []

    result = detector.process_frame(frame_a)
    assert seen == [result]


def test_downscaled_detection_reports_buffer_coordinates(motion_config, frame_a, frame_b):
    motion_config.downscale = 0.5
    detector = MotionDetector(motion_config=motion_config)
    detector.start()
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    result = detector.process_frame(frame_a)

    assert (result.frame_width, result.frame_height) == (40, 30)
    assert result.active_regions == (Rect(0, 0, 5, 5),)


def test_update_config_keeps_baseline_for_threshold_changes(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    detector.update_config({"pixel_threshold": 50, "area_threshold": 0.3})

    assert detector.config.pixel_threshold == 50
    assert detector.tracker.area_threshold == 0.3
    assert detector.baseline is not None
    assert detector.counters == {(0, 0): 1}


def test_update_config_resets_on_grid_change(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    detector.update_config({"grid_x": 4})

    assert detector.baseline is None
    assert detector.counters == {}
    assert detector.is_watching


def test_update_config_rejects_unknown_and_invalid_values(detector):
    with pytest.raises(ValueError):
        detector.update_config({"sensitivity": 50})
    with pytest.raises(ValueError):
        detector.update_config({"grid_y": 0})
    assert detector.config.grid_y == 6


def test_status_text():
    quiet = MotionResult(motion_detected=False, active_regions=(), basic_motion_ratio=0.0)
    moving = MotionResult(motion_detected=True, active_regions=(Rect(0, 0, 1, 1),), basic_motion_ratio=1.0)
    assert status_text(moving, watching=False) == "Motion: Off"
    assert status_text(None, watching=True) == "Motion: No"
    assert status_text(quiet, watching=True) == "Motion: No"
    assert status_text(moving, watching=True) == "Motion: Yes"


def test_reset_clears_frame_count(detector, frame_a, frame_b):
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    assert detector.frame_count == 2

    detector.reset()

    assert detector.frame_count == 0
    assert detector.is_watching


def test_failing_on_motion_still_returns_result(motion_config, frame_a, frame_b):
    def boom(result):
        raise RuntimeError("hook failed")

    detector = MotionDetector(motion_config=motion_config, on_motion=boom)
    detector.start()
    detector.process_frame(frame_a)
    detector.process_frame(frame_b)
    result = detector.process_frame(frame_a)

    assert result.motion_detected is True
    assert detector.baseline is not None
    assert detector.counters == {(0, 0): 2}
