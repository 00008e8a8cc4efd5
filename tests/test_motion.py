import numpy as np
import pytest

from features.motion import MotionAnalyzer, motion_score, to_small_gray
from conftest import gray_frame


def test_first_frame_is_baseline():
    a = MotionAnalyzer()
    assert a.step_frame(gray_frame(10)) is None
    assert a.prev.shape == (36, 64)


def test_identical_frames_score_zero():
    a = MotionAnalyzer()
    a.step_frame(gray_frame(100))
    assert a.step_frame(gray_frame(100)) == 0.0


def test_black_to_white_scores_one():
    a = MotionAnalyzer()
    a.step_frame(gray_frame(0))
    assert a.step_frame(gray_frame(255)) == pytest.approx(1.0)


def test_uniform_change_is_proportional():
    a = MotionAnalyzer()
    a.step_frame(gray_frame(50))
    assert a.step_frame(gray_frame(127)) == pytest.approx(77 / 255)


def test_baseline_replaced_every_frame():
    a = MotionAnalyzer()
    a.step_frame(gray_frame(0))
    a.step_frame(gray_frame(200))
    # compared against 200, not the original 0
    assert a.step_frame(gray_frame(200)) == 0.0


def test_random_frames_stay_in_unit_range():
    rng = np.random.default_rng(7)
    a = MotionAnalyzer()
    a.step_frame(rng.integers(0, 256, (480, 640, 3), dtype=np.uint8))
    for _ in range(20):
        s = a.step_frame(rng.integers(0, 256, (480, 640, 3), dtype=np.uint8))
        assert 0.0 <= s <= 1.0


def test_accepts_gray_and_bgra_input():
    gray = np.full((72, 128), 30, dtype=np.uint8)
    bgra = np.full((72, 128, 4), 30, dtype=np.uint8)
    assert to_small_gray(gray).shape == (36, 64)
    assert to_small_gray(bgra).shape == (36, 64)


def test_shape_mismatch_rejected():
    with pytest.raises(ValueError):
        motion_score(np.zeros((36, 64), np.uint8), np.zeros((10, 10), np.uint8))
