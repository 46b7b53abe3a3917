"""
Proctor Probe - Eye Gaze Estimator
==================================
Where is the iris inside the eye opening?

  HORIZONTAL: iris x between the inner and outer eye corners
  VERTICAL:   iris y between the upper and lower eyelid centres

Offsets are normalised to [-1, 1] (0 = centred). In image coordinates a
negative vertical offset means the iris sits higher, i.e. looking UP.

Vertical gaze is only trusted when both eyes are open enough
(height / width >= min_eye_opening); a squint or blink gives CENTER.
Confidence reflects how well the two eyes agree.
"""

from __future__ import annotations

import logging
from typing import Optional

import proctor_landmarks as lm
from proctor_config import GazeThresholds
from proctor_types import GazeEstimate, HorizontalGaze, VerticalGaze


_log = logging.getLogger("ProctorGaze")

_MIN_RANGE: float = 0.001


def normalized_offset(position: float, lower: float, upper: float) -> float:
    """Offset of position from the centre of [lower, upper], scaled to [-1, 1]."""
    span = abs(upper - lower)
    if span < _MIN_RANGE:
        return 0.0
    center = (lower + upper) / 2.0
    offset = ((position - center) / span) * 2.0
    return float(max(-1.0, min(1.0, offset)))


def _horizontal_offset(iris, inner, outer) -> float:
    if iris is None or inner is None or outer is None:
        return 0.0
    return normalized_offset(iris[0], min(inner[0], outer[0]), max(inner[0], outer[0]))


def _vertical_offset(iris, top, bottom, eye_width: float, min_opening: float) -> tuple[float, bool]:
    """Return (offset, valid). Invalid when the eye is too closed to read."""
    if iris is None or top is None or bottom is None:
        return 0.0, False
    eye_height = abs(bottom[1] - top[1])
    # A zero width skips the opening check
    if eye_width > 0 and eye_height / eye_width < min_opening:
        return 0.0, False
    offset = normalized_offset(iris[1], min(top[1], bottom[1]), max(top[1], bottom[1]))
    return offset, True


def _eye_width(inner, outer) -> float:
    inner_x = inner[0] if inner is not None else 0.0
    outer_x = outer[0] if outer is not None else 0.0
    return abs(outer_x - inner_x)


def analyze_gaze(
    landmarks,
    thresholds: Optional[GazeThresholds] = None,
) -> GazeEstimate:
    """Estimate gaze direction for one face.

    Args:
        landmarks: 478 FaceLandmarker points (iris points 468-477 required).
        thresholds: Horizontal / vertical limits and eye-opening guard.

    Returns:
        GazeEstimate. gaze_direction joins the vertical label then the
        horizontal label with "_" (e.g. "UP_LEFT"), or "CENTER".
    """
    thresholds = thresholds or GazeThresholds()
    if landmarks is None or len(landmarks) < lm.FACE_LANDMARK_COUNT:
        return GazeEstimate(
            horizontal_gaze=HorizontalGaze.UNKNOWN,
            vertical_gaze=VerticalGaze.UNKNOWN,
            gaze_direction="UNKNOWN",
            is_looking_away=False,
            confidence=0.0,
            details=None,
        )

    points = lm.as_landmark_array(landmarks)

    right_iris = lm.point(points, lm.RIGHT_IRIS)
    right_inner = lm.point(points, lm.RIGHT_EYE_INNER)
    right_outer = lm.point(points, lm.RIGHT_EYE_OUTER)
    right_top = lm.point(points, lm.RIGHT_EYE_TOP)
    right_bottom = lm.point(points, lm.RIGHT_EYE_BOTTOM)

    left_iris = lm.point(points, lm.LEFT_IRIS)
    left_inner = lm.point(points, lm.LEFT_EYE_INNER)
    left_outer = lm.point(points, lm.LEFT_EYE_OUTER)
    left_top = lm.point(points, lm.LEFT_EYE_TOP)
    left_bottom = lm.point(points, lm.LEFT_EYE_BOTTOM)

    # Horizontal
    right_h = _horizontal_offset(right_iris, right_inner, right_outer)
    left_h = _horizontal_offset(left_iris, left_inner, left_outer)
    avg_h = (right_h + left_h) / 2.0

    # Vertical (both eyes must be readable)
    right_v, right_valid = _vertical_offset(
        right_iris, right_top, right_bottom,
        _eye_width(right_inner, right_outer), thresholds.min_eye_opening,
    )
    left_v, left_valid = _vertical_offset(
        left_iris, left_top, left_bottom,
        _eye_width(left_inner, left_outer), thresholds.min_eye_opening,
    )
    vertical_valid = right_valid and left_valid
    avg_v = (right_v + left_v) / 2.0 if vertical_valid else 0.0

    horizontal = HorizontalGaze.CENTER
    if avg_h < -thresholds.horizontal:
        horizontal = HorizontalGaze.LEFT
    elif avg_h > thresholds.horizontal:
        horizontal = HorizontalGaze.RIGHT

    vertical = VerticalGaze.CENTER
    if vertical_valid:
        if avg_v < -thresholds.vertical:
            vertical = VerticalGaze.UP
        elif avg_v > thresholds.vertical:
            vertical = VerticalGaze.DOWN

    labels = []
    if vertical != VerticalGaze.CENTER:
        labels.append(vertical.value)
    if horizontal != HorizontalGaze.CENTER:
        labels.append(horizontal.value)
    direction = "_".join(labels) if labels else "CENTER"

    is_looking_away = horizontal != HorizontalGaze.CENTER or vertical != VerticalGaze.CENTER

    h_diff = abs(right_h - left_h)
    v_diff = abs(right_v - left_v) if vertical_valid else 0.0
    confidence = max(0.0, 1.0 - (h_diff + v_diff))

    details = {
        "right_h": round(right_h, 3),
        "left_h": round(left_h, 3),
        "avg_h": round(avg_h, 3),
        "right_v": round(right_v, 3),
        "left_v": round(left_v, 3),
        "avg_v": round(avg_v, 3),
        "v_valid": vertical_valid,
    }

    _log.debug(
        "H:%.3f V:%.3f%s => %s%s",
        avg_h, avg_v,
        "" if vertical_valid else "(invalid)",
        direction,
        " [AWAY]" if is_looking_away else "",
    )

    return GazeEstimate(
        horizontal_gaze=horizontal,
        vertical_gaze=vertical,
        gaze_direction=direction,
        is_looking_away=is_looking_away,
        confidence=float(confidence),
        details=details,
    )
