"""
Proctor Probe - FaceMesh Landmark Indices
=========================================
Canonical MediaPipe FaceLandmarker indices (478-point topology,
468 mesh points + 10 iris points) used by the geometry estimators.

Image coordinates: X increases to the right, Y increases downward.
"Right"/"left" refer to the subject's own eyes and ears, so the
subject's right eye appears on the left side of an unmirrored image.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


FACE_LANDMARK_COUNT: int = 478

# ── Head geometry ─────────────────────────────────────────────
NOSE_TIP: int = 1
CHIN: int = 152
RIGHT_EAR: int = 234
LEFT_EAR: int = 454

# ── Right eye ─────────────────────────────────────────────────
RIGHT_EYE_OUTER: int = 33     # towards ear
RIGHT_EYE_INNER: int = 133    # towards nose
RIGHT_EYE_TOP: int = 27       # upper eyelid centre
RIGHT_EYE_BOTTOM: int = 23    # lower eyelid centre
RIGHT_IRIS: int = 468

# ── Left eye ──────────────────────────────────────────────────
LEFT_EYE_INNER: int = 362
LEFT_EYE_OUTER: int = 263
LEFT_EYE_TOP: int = 257
LEFT_EYE_BOTTOM: int = 253
LEFT_IRIS: int = 473


def as_landmark_array(landmarks) -> np.ndarray:
    """Coerce landmarks into a float (N, 2+) array.

    Accepts an ndarray, a list of (x, y[, z]) sequences, or a list of
    objects exposing .x/.y (MediaPipe NormalizedLandmark). None or an
    empty input yields an empty (0, 2) array.
    """
    if landmarks is None:
        return np.empty((0, 2), dtype=np.float64)
    if isinstance(landmarks, np.ndarray):
        arr = landmarks.astype(np.float64, copy=False)
    elif len(landmarks) and hasattr(landmarks[0], "x"):
        arr = np.array([[lm.x, lm.y] for lm in landmarks], dtype=np.float64)
    else:
        arr = np.asarray(landmarks, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise ValueError(f"Landmarks must have shape (N, 2) or (N, 3), got {arr.shape}")
    return arr


def point(landmarks: np.ndarray, index: int) -> Optional[np.ndarray]:
    """Return the (x, y) of one landmark, or None if absent or non-finite."""
    if index >= len(landmarks):
        return None
    xy = landmarks[index, :2]
    if not np.all(np.isfinite(xy)):
        return None
    return xy


def distance(p1: Optional[np.ndarray], p2: Optional[np.ndarray]) -> float:
    """Planar Euclidean distance; 0.0 when either point is missing."""
    if p1 is None or p2 is None:
        return 0.0
    return float(np.hypot(p1[0] - p2[0], p1[1] - p2[1]))
