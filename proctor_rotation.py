"""
Proctor Probe - Head Rotation Estimator
=======================================
Coarse yaw / roll classification from FaceLandmarker landmarks.

This is a directional signal (LEFT/RIGHT/CENTER, TILTED/LEVEL),
not an angle measurement. Good enough to flag an obvious head turn.

Heuristics:
  Yaw  - ratio of nose→right-ear to nose→left-ear distance. Turning
         the head brings one ear closer to the nose in the image.
  Roll - vertical offset between the outer eye corners, as a
         fraction of the distance between them.

Degenerate geometry never raises: too few landmarks gives UNKNOWN,
a missing point or zero distance gives the neutral CENTER / LEVEL.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

import proctor_landmarks as lm
from proctor_config import RotationThresholds
from proctor_types import RotationEstimate, Roll, Yaw


def estimate_yaw(landmarks: np.ndarray, yaw_ratio: float = 0.6) -> Yaw:
    """Classify left/right head turn from ear distances."""
    nose = lm.point(landmarks, lm.NOSE_TIP)
    left_ear = lm.point(landmarks, lm.LEFT_EAR)
    right_ear = lm.point(landmarks, lm.RIGHT_EAR)
    if nose is None or left_ear is None or right_ear is None:
        return Yaw.CENTER

    left_dist = lm.distance(nose, left_ear)
    right_dist = lm.distance(nose, right_ear)
    if left_dist == 0 or right_dist == 0:
        return Yaw.CENTER

    ratio = right_dist / left_dist
    if ratio < yaw_ratio:
        return Yaw.LEFT
    if ratio > 1.0 / yaw_ratio:
        return Yaw.RIGHT
    return Yaw.CENTER


def estimate_roll(landmarks: np.ndarray, roll_tilt: float = 0.15) -> Roll:
    """Classify head tilt from the outer eye corners."""
    left_eye = lm.point(landmarks, lm.LEFT_EYE_OUTER)
    right_eye = lm.point(landmarks, lm.RIGHT_EYE_OUTER)
    if left_eye is None or right_eye is None:
        return Roll.LEVEL

    eye_dist = lm.distance(left_eye, right_eye)
    if eye_dist == 0:
        return Roll.LEVEL

    height_diff = (left_eye[1] - right_eye[1]) / eye_dist
    if height_diff > roll_tilt:
        return Roll.TILTED_RIGHT
    if height_diff < -roll_tilt:
        return Roll.TILTED_LEFT
    return Roll.LEVEL


def analyze_rotation(
    landmarks,
    thresholds: Optional[RotationThresholds] = None,
) -> RotationEstimate:
    """Estimate head rotation for one face.

    Args:
        landmarks: 478 FaceLandmarker points, (N, 2) or (N, 3).
        thresholds: Yaw ratio / roll tilt limits (defaults if None).

    Returns:
        RotationEstimate; is_rotated is True only for a yaw turn.
    """
    thresholds = thresholds or RotationThresholds()
    if landmarks is None or len(landmarks) < lm.FACE_LANDMARK_COUNT:
        return RotationEstimate(yaw=Yaw.UNKNOWN, roll=Roll.UNKNOWN, is_rotated=False)

    points = lm.as_landmark_array(landmarks)

    yaw = estimate_yaw(points, thresholds.yaw_ratio)
    roll = estimate_roll(points, thresholds.roll_tilt)
    return RotationEstimate(yaw=yaw, roll=roll, is_rotated=yaw != Yaw.CENTER)
