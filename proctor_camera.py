"""
Proctor Probe - Camera Input Module
===================================
Owns ALL camera interaction. No other file should touch
cv2.VideoCapture directly.

Features:
  - Readiness reporting (closed / opened / dimensions known)
  - Structural frame validation (shape, dtype, channel count)
  - Drop counting and health snapshot
  - Proper resource cleanup

Dark frames are NOT rejected here: low light is a signal the
flag aggregator reports, not a capture failure.
"""

from __future__ import annotations

import logging
from typing import Union

import cv2
import numpy as np


# ─── Module Logger ─────────────────────────────────────────────
_log = logging.getLogger("ProctorCamera")


# Readiness levels reported by ready_state
READY_CLOSED: int = 0
READY_OPENED: int = 1
READY_DIMENSIONS: int = 2


class CaptureError(RuntimeError):
    """Raised when a frame cannot be read or fails validation."""


class ProctorCamera:
    """Validated cv2.VideoCapture wrapper used as the scheduler's video source.

    Source interface:
      frame_size() -> (width, height), (0, 0) when unknown
      ready_state  -> 0 closed, 1 opened, 2 dimensions decoded
      read_frame() -> BGR uint8 frame, raises CaptureError
    """

    EXPECTED_CHANNELS: int = 3
    EXPECTED_DTYPE = np.uint8

    def __init__(
        self,
        source: Union[int, str] = 0,
        width: int = 320,
        height: int = 240,
        backend: int = cv2.CAP_ANY,
    ) -> None:
        """Open the capture device with a 1-frame buffer.

        Args:
            source: Camera index or video file path.
            width: Requested capture width (the driver may ignore it).
            height: Requested capture height.
            backend: OpenCV capture backend.
        """
        self._source = source
        self._cap: cv2.VideoCapture = cv2.VideoCapture(source, backend)

        # 1-frame buffer: each read returns the newest frame
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        if width and height:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self._resolution: tuple[int, int] = (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )

        self._frames_total: int = 0
        self._frames_dropped: int = 0

        _log.info(
            "ProctorCamera initialized - source=%s resolution=%s buffer=1",
            source,
            self._resolution,
        )

    # ── Public API ────────────────────────────────────────────

    @property
    def ready_state(self) -> int:
        if not self._cap.isOpened():
            return READY_CLOSED
        w, h = self._resolution
        if w <= 0 or h <= 0:
            return READY_OPENED
        return READY_DIMENSIONS

    def frame_size(self) -> tuple[int, int]:
        """Native (width, height); (0, 0) until the driver reports it."""
        return self._resolution

    def read_frame(self) -> np.ndarray:
        """Read and validate one frame.

        Returns:
            BGR uint8 frame of shape (H, W, 3).

        Raises:
            CaptureError: read failed or the frame is malformed.
        """
        self._frames_total += 1
        ret, frame = self._cap.read()

        reason = self._validate_frame(ret, frame)
        if reason is not None:
            self._frames_dropped += 1
            raise CaptureError(f"Frame rejected: {reason}")

        h, w = frame.shape[:2]
        if (w, h) != self._resolution:
            self._resolution = (w, h)
        return frame

    def get_health_status(self) -> dict:
        return {
            "connected": self._cap.isOpened(),
            "frames_total": self._frames_total,
            "frames_dropped": self._frames_dropped,
            "drop_rate_pct": (
                (self._frames_dropped / self._frames_total * 100.0)
                if self._frames_total > 0
                else 0.0
            ),
            "resolution": self._resolution,
        }

    def release(self) -> None:
        """Release camera resources and log final statistics."""
        health = self.get_health_status()
        _log.info(
            "ProctorCamera releasing - total=%d dropped=%d (%.1f%%)",
            health["frames_total"],
            health["frames_dropped"],
            health["drop_rate_pct"],
        )
        self._cap.release()

    # ── Context manager support ───────────────────────────────

    def __enter__(self) -> "ProctorCamera":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    # ── Private helpers ───────────────────────────────────────

    def _validate_frame(self, ret: bool, frame) -> str | None:
        """Return None for a usable frame, else the rejection reason."""
        if not ret:
            return "read() returned ret=False"
        if frame is None:
            return "frame is None"
        if frame.ndim != 3:
            return f"ndim={frame.ndim} (expected 3)"
        if frame.shape[2] != self.EXPECTED_CHANNELS:
            return f"channels={frame.shape[2]} (expected {self.EXPECTED_CHANNELS})"
        if frame.dtype != self.EXPECTED_DTYPE:
            return f"dtype={frame.dtype} (expected uint8)"
        if frame.shape[0] == 0 or frame.shape[1] == 0:
            return "empty frame"
        return None
