"""
Proctor Probe - Face Landmark Detection
=======================================
Owns ALL face landmark inference. No other module should call
MediaPipe directly.

Features:
  - MediaPipe FaceLandmarker (Tasks API, IMAGE running mode)
  - Returns ALL faces as 478x3 normalised landmark arrays, largest first
  - DetectorHandle: lazily created, shared, single-flight initialisation

A failing inference call raises; the scheduler turns that into an
ErrorEvent instead of a silent empty result.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Optional

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_python
from mediapipe.tasks.python import vision

from proctor_config import DetectorConfig
from proctor_types import FaceDetectionResult


_log = logging.getLogger("ProctorFaces")

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))


class ProctorFacePipeline:
    """MediaPipe FaceLandmarker adapter.

    Usage:
        with ProctorFacePipeline(DetectorConfig()) as faces:
            result = faces.detect(bgr_frame)
            result.count, result.landmarks[0].shape  # -> n, (478, 3)
    """

    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        config = config or DetectorConfig()
        self._max_faces = config.max_faces
        self._min_confidence = config.min_detection_confidence
        self._landmarker = None
        self._init_mediapipe(config.model_path, config.max_faces, config.min_detection_confidence)

        _log.info(
            "ProctorFacePipeline initialized - max_faces=%d min_conf=%.2f",
            self._max_faces, self._min_confidence,
        )

    # ── Initializers ──────────────────────────────────────────

    def _init_mediapipe(
        self,
        model_path: str,
        max_faces: int,
        min_confidence: float,
    ) -> None:
        """Create the FaceLandmarker from a .task bundle."""
        full_path = os.path.join(_SCRIPT_DIR, model_path)
        if not os.path.exists(full_path):
            raise FileNotFoundError(f"MediaPipe model not found: {full_path}")

        model_size_mb = os.path.getsize(full_path) / 1024 / 1024
        _log.info("MediaPipe FaceLandmarker: %.1f MB from %s", model_size_mb, full_path)

        base_options = mp_python.BaseOptions(
            model_asset_path=full_path,
            delegate=mp_python.BaseOptions.Delegate.CPU,
        )

        # IMAGE mode: each call is independent, no frame timestamps
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_faces=max_faces,
            min_face_detection_confidence=min_confidence,
            min_face_presence_confidence=min_confidence,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(options)

    # ── Public API ────────────────────────────────────────────

    def detect(self, frame: np.ndarray) -> FaceDetectionResult:
        """Detect all faces in a BGR frame.

        Args:
            frame: BGR uint8 image.

        Returns:
            FaceDetectionResult with one (478, 3) array per face,
            sorted by landmark bounding-box area (largest first).

        Raises:
            RuntimeError: the landmarker was released.
        """
        if self._landmarker is None:
            raise RuntimeError("FaceLandmarker has been released")

        # MediaPipe expects RGB input
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)
        result = self._landmarker.detect(mp_image)

        if not result or not result.face_landmarks:
            return FaceDetectionResult(landmarks=[], count=0)

        faces = [
            np.array([[p.x, p.y, p.z] for p in face_lms], dtype=np.float32)
            for face_lms in result.face_landmarks
        ]
        faces.sort(key=_landmark_area, reverse=True)
        return FaceDetectionResult(landmarks=faces, count=len(faces))

    def release(self) -> None:
        """Release detector resources."""
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        _log.info("ProctorFacePipeline released")

    # ── Context manager ───────────────────────────────────────

    def __enter__(self) -> "ProctorFacePipeline":
        return self

    def __exit__(self, *args) -> None:
        self.release()


def _landmark_area(points: np.ndarray) -> float:
    xs, ys = points[:, 0], points[:, 1]
    return float((xs.max() - xs.min()) * (ys.max() - ys.min()))


class DetectorHandle:
    """Lazily constructed, shared detector.

    The first acquire() builds the detector via the factory; concurrent
    callers wait for that one construction instead of starting their own.
    A factory failure leaves the handle empty so the next acquire()
    retries. release() is idempotent and safe before any acquire().
    """

    def __init__(self, factory: Callable[[], Any]) -> None:
        self._factory = factory
        self._detector: Any = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._detector is not None

    def acquire(self) -> Any:
        detector = self._detector
        if detector is not None:
            return detector
        with self._lock:
            if self._detector is None:
                _log.info("Initializing face detector")
                self._detector = self._factory()
            return self._detector

    def detect(self, frame: np.ndarray):
        """acquire() then detect(); may return an awaitable if the detector does."""
        return self.acquire().detect(frame)

    def release(self) -> None:
        with self._lock:
            detector, self._detector = self._detector, None
        if detector is not None:
            release = getattr(detector, "release", None)
            if release is not None:
                release()
            _log.info("Face detector released")


def mediapipe_handle(config: Optional[DetectorConfig] = None) -> DetectorHandle:
    """DetectorHandle that builds a ProctorFacePipeline on first use."""
    return DetectorHandle(lambda: ProctorFacePipeline(config))
