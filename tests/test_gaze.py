"""
Proctor Probe - Gaze Estimator Tests
====================================
Synthetic eye geometry: each eye is 10 px wide and 10 px tall so
normalised offsets are easy to compute by hand.

  right eye: corners x=30..40, lids y=45..55, centre (35, 50)
  left eye:  corners x=60..70, lids y=45..55, centre (65, 50)
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import proctor_landmarks as lm
from proctor_config import GazeThresholds
from proctor_gaze import analyze_gaze, normalized_offset
from proctor_types import HorizontalGaze, VerticalGaze


# ─── Fixtures ─────────────────────────────────────────────────

def _make_eyes(
    right_iris=(35.0, 50.0),
    left_iris=(65.0, 50.0),
    right_lids=(45.0, 55.0),
    left_lids=(45.0, 55.0),
    right_corners=(30.0, 40.0),
    left_corners=(60.0, 70.0),
) -> np.ndarray:
    pts = np.zeros((lm.FACE_LANDMARK_COUNT, 3), dtype=np.float64)

    r_mid_x = sum(right_corners) / 2
    pts[lm.RIGHT_EYE_OUTER, :2] = (right_corners[0], 50.0)
    pts[lm.RIGHT_EYE_INNER, :2] = (right_corners[1], 50.0)
    pts[lm.RIGHT_EYE_TOP, :2] = (r_mid_x, right_lids[0])
    pts[lm.RIGHT_EYE_BOTTOM, :2] = (r_mid_x, right_lids[1])
    pts[lm.RIGHT_IRIS, :2] = right_iris

    l_mid_x = sum(left_corners) / 2
    pts[lm.LEFT_EYE_INNER, :2] = (left_corners[0], 50.0)
    pts[lm.LEFT_EYE_OUTER, :2] = (left_corners[1], 50.0)
    pts[lm.LEFT_EYE_TOP, :2] = (l_mid_x, left_lids[0])
    pts[lm.LEFT_EYE_BOTTOM, :2] = (l_mid_x, left_lids[1])
    pts[lm.LEFT_IRIS, :2] = left_iris
    return pts


# ─── Test 1: Normalised offset helper ─────────────────────────

def test_offset_midpoint_is_zero():
    assert normalized_offset(35.0, 30.0, 40.0) == 0.0


def test_offset_at_bounds_is_unit():
    assert normalized_offset(30.0, 30.0, 40.0) == -1.0
    assert normalized_offset(40.0, 30.0, 40.0) == 1.0


def test_offset_is_clamped():
    assert normalized_offset(0.0, 30.0, 40.0) == -1.0
    assert normalized_offset(99.0, 30.0, 40.0) == 1.0


def test_offset_tiny_range_is_zero():
    assert normalized_offset(5.0, 1.0, 1.0005) == 0.0


# ─── Test 2: Too few landmarks ────────────────────────────────

def test_short_input_is_unknown():
    result = analyze_gaze(np.zeros((100, 3)))
    assert result.horizontal_gaze == HorizontalGaze.UNKNOWN
    assert result.vertical_gaze == VerticalGaze.UNKNOWN
    assert result.gaze_direction == "UNKNOWN"
    assert result.is_looking_away is False
    assert result.confidence == 0.0
    assert result.details is None


def test_none_input_is_unknown():
    assert analyze_gaze(None).gaze_direction == "UNKNOWN"


@pytest.mark.parametrize("landmarks", [
    [0.5, 0.5, 0.0],
    [[0.1, 0.2], [0.3]],
    [{"x": 0.1, "y": 0.2}],
    [[0.1]] * 5,
])
def test_malformed_short_input_is_unknown(landmarks):
    result = analyze_gaze(landmarks)
    assert result.gaze_direction == "UNKNOWN"
    assert result.is_looking_away is False
    assert result.details is None


# ─── Test 3: Horizontal gaze ──────────────────────────────────

def test_iris_at_corner_midpoint_is_center():
    result = analyze_gaze(_make_eyes())
    assert result.horizontal_gaze == HorizontalGaze.CENTER
    assert result.vertical_gaze == VerticalGaze.CENTER
    assert result.gaze_direction == "CENTER"
    assert result.is_looking_away is False
    assert result.confidence == pytest.approx(1.0)


def test_iris_towards_low_x_is_left():
    result = analyze_gaze(_make_eyes(right_iris=(31.0, 50.0), left_iris=(61.0, 50.0)))
    assert result.horizontal_gaze == HorizontalGaze.LEFT
    assert result.gaze_direction == "LEFT"
    assert result.is_looking_away is True
    assert result.details["avg_h"] == pytest.approx(-0.8)


def test_iris_towards_high_x_is_right():
    result = analyze_gaze(_make_eyes(right_iris=(39.0, 50.0), left_iris=(69.0, 50.0)))
    assert result.horizontal_gaze == HorizontalGaze.RIGHT
    assert result.gaze_direction == "RIGHT"


def test_small_horizontal_offset_is_center():
    """avg offset 0.1 stays under the 0.15 threshold."""
    result = analyze_gaze(_make_eyes(right_iris=(35.5, 50.0), left_iris=(65.5, 50.0)))
    assert result.horizontal_gaze == HorizontalGaze.CENTER


# ─── Test 4: Vertical gaze ────────────────────────────────────

def test_iris_high_is_up():
    result = analyze_gaze(_make_eyes(right_iris=(35.0, 46.0), left_iris=(65.0, 46.0)))
    assert result.vertical_gaze == VerticalGaze.UP
    assert result.gaze_direction == "UP"
    assert result.details["v_valid"] is True


def test_iris_low_is_down():
    result = analyze_gaze(_make_eyes(right_iris=(35.0, 54.0), left_iris=(65.0, 54.0)))
    assert result.vertical_gaze == VerticalGaze.DOWN
    assert result.gaze_direction == "DOWN"


def test_combined_direction_lists_vertical_first():
    result = analyze_gaze(_make_eyes(right_iris=(31.0, 46.0), left_iris=(61.0, 46.0)))
    assert result.gaze_direction == "UP_LEFT"
    assert result.is_looking_away is True


def test_squinting_eye_disables_vertical():
    """Eye height / width below 0.02 makes vertical unreadable."""
    result = analyze_gaze(_make_eyes(
        right_iris=(35.0, 50.1),
        left_iris=(65.0, 46.0),
        right_lids=(49.95, 50.1),
    ))
    assert result.details["v_valid"] is False
    assert result.vertical_gaze == VerticalGaze.CENTER
    assert result.gaze_direction == "CENTER"


def test_zero_width_eye_skips_opening_check():
    """With coincident corners the opening guard is skipped, vertical still read."""
    result = analyze_gaze(_make_eyes(
        right_iris=(35.0, 46.0),
        left_iris=(65.0, 46.0),
        right_corners=(35.0, 35.0),
        left_corners=(65.0, 65.0),
    ))
    assert result.horizontal_gaze == HorizontalGaze.CENTER
    assert result.vertical_gaze == VerticalGaze.UP


def test_custom_vertical_threshold():
    eyes = _make_eyes(right_iris=(35.0, 48.0), left_iris=(65.0, 48.0))  # offset -0.4
    assert analyze_gaze(eyes).vertical_gaze == VerticalGaze.UP
    assert analyze_gaze(eyes, GazeThresholds(vertical=0.5)).vertical_gaze == VerticalGaze.CENTER


# ─── Test 5: Confidence ───────────────────────────────────────

def test_disagreeing_eyes_lower_confidence():
    result = analyze_gaze(_make_eyes(right_iris=(31.0, 50.0), left_iris=(65.0, 50.0)))
    # right -0.8, left 0.0 -> avg -0.4, diff 0.8
    assert result.horizontal_gaze == HorizontalGaze.LEFT
    assert result.confidence == pytest.approx(0.2)


def test_confidence_never_negative():
    result = analyze_gaze(_make_eyes(right_iris=(30.0, 45.0), left_iris=(70.0, 55.0)))
    assert result.confidence == 0.0


def test_missing_iris_does_not_raise():
    eyes = _make_eyes()
    eyes[lm.RIGHT_IRIS] = np.nan
    result = analyze_gaze(eyes)
    assert result.details["v_valid"] is False
    assert result.horizontal_gaze == HorizontalGaze.CENTER


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
