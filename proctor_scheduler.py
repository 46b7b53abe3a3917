"""
Proctor Probe - Frame Scheduler
===============================
Samples the video source at a fixed cadence and runs one analysis
cycle per tick.

Per cycle:
  capture → detector → rotation / gaze estimators → brightness → Sample

Performance constraints:
  - At most one cycle in flight; a tick that fires mid-cycle is dropped
  - Each cycle has a time budget; N consecutive overruns trip a breaker
    that disables sampling until start() is called again

Results leave the scheduler as events (AnalysisEvent, DisabledEvent,
ErrorEvent) on a bounded queue, oldest dropped when full, and are also
passed to an optional listener callback.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

import cv2
import numpy as np

from proctor_camera import READY_DIMENSIONS
from proctor_config import GazeThresholds, RotationThresholds, SchedulerConfig
from proctor_gaze import analyze_gaze
from proctor_rotation import analyze_rotation
from proctor_types import (
    AnalysisEvent,
    DisabledEvent,
    ErrorEvent,
    FaceDetectionResult,
    Sample,
    SchedulerEvent,
    SchedulerState,
)


_log = logging.getLogger("FrameScheduler")

OVERRUN_REASON = "Processing time exceeded budget"


# ===================================================================
# Brightness
# ===================================================================

def compute_brightness(frame: Optional[np.ndarray], step: int = 10) -> float:
    """Mean perceived luma of every step-th pixel of a BGR frame.

    luma = 0.299 R + 0.587 G + 0.114 B, on the 0-255 scale.
    Returns 0.0 when no pixel is sampled.
    """
    if frame is None or frame.size == 0:
        return 0.0
    pixels = frame.reshape(-1, frame.shape[-1])[::max(int(step), 1)]
    if len(pixels) == 0:
        return 0.0
    b = pixels[:, 0].astype(np.float64)
    g = pixels[:, 1].astype(np.float64)
    r = pixels[:, 2].astype(np.float64)
    return float(np.mean(0.299 * r + 0.587 * g + 0.114 * b))


# ===================================================================
# Reusable capture buffer
# ===================================================================

class FrameBuffer:
    """Single pixel buffer reused across cycles.

    Sized to the source's native dimensions, or the fallback size when
    the source reports none. Reallocated only when that size changes.
    """

    def __init__(self, fallback_size: tuple[int, int] = (320, 240)) -> None:
        self._fallback = fallback_size
        self._buffer: Optional[np.ndarray] = None

    @property
    def shape(self) -> Optional[tuple]:
        return None if self._buffer is None else self._buffer.shape

    def capture(self, frame: np.ndarray, size: tuple[int, int]) -> np.ndarray:
        """Copy (resizing if needed) frame into the buffer and return it."""
        width, height = size
        if not width or not height:
            width, height = self._fallback
        target = (int(height), int(width), frame.shape[2])

        if self._buffer is None or self._buffer.shape != target or self._buffer.dtype != frame.dtype:
            self._buffer = np.empty(target, dtype=frame.dtype)
            _log.debug("Frame buffer allocated: %dx%d", width, height)

        if frame.shape == target:
            np.copyto(self._buffer, frame)
        else:
            self._buffer[...] = cv2.resize(frame, (int(width), int(height)))
        return self._buffer

    def release(self) -> None:
        self._buffer = None


async def _resolve(awaitable):
    return await awaitable


# ===================================================================
# Scheduler
# ===================================================================

class FrameScheduler:
    """Throttled, self-disabling frame analysis loop.

    Args:
        source: Video source (frame_size(), ready_state, read_frame()).
        detector: Object with detect(frame) -> FaceDetectionResult (or an
            awaitable of one), typically a DetectorHandle. Released by cleanup().
        config: Cadence, budget and breaker settings.
        rotation: Thresholds for the rotation estimator.
        gaze: Thresholds for the gaze estimator.
        listener: Optional callable invoked with every emitted event.
        clock: Monotonic clock in seconds used to time cycles.
    """

    def __init__(
        self,
        source,
        detector,
        config: Optional[SchedulerConfig] = None,
        rotation: Optional[RotationThresholds] = None,
        gaze: Optional[GazeThresholds] = None,
        listener: Optional[Callable[[SchedulerEvent], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._detector = detector
        self._config = config or SchedulerConfig()
        self._rotation = rotation or RotationThresholds()
        self._gaze = gaze or GazeThresholds()
        self._listener = listener
        self._clock = clock

        self._buffer = FrameBuffer(
            (self._config.fallback_width, self._config.fallback_height)
        )
        self._events: queue.Queue = queue.Queue(maxsize=self._config.event_queue_size)

        self._emit_lock = threading.Lock()

        # Guarded by _lock
        self._lock = threading.Lock()
        self._is_running = False
        self._is_processing = False
        self._is_disabled = False
        self._consecutive_overruns = 0

        self._stop_event: Optional[threading.Event] = None
        self._timer_thread: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> None:
        """Begin periodic sampling. Clears a tripped breaker. No-op if running."""
        with self._lock:
            if self._is_running:
                return
            self._is_disabled = False
            self._consecutive_overruns = 0
            self._stop_event = threading.Event()
            self._timer_thread = threading.Thread(
                target=self._timer_loop,
                args=(self._stop_event,),
                name="FrameSchedulerTimer",
                daemon=True,
            )
            self._is_running = True
        self._timer_thread.start()
        _log.info("Started (%.0f ms interval)", self._config.sample_interval_ms)

    def stop(self) -> None:
        """Cancel periodic sampling. Keeps the last state. No-op if stopped."""
        with self._lock:
            if not self._is_running:
                return
            self._is_running = False
            self._stop_event.set()
            timer = self._timer_thread
            self._timer_thread = None
        if timer is not None and timer is not threading.current_thread():
            timer.join(timeout=1.0)
        _log.info("Stopped")

    def cleanup(self) -> None:
        """Stop, wait for an in-flight cycle, then release buffer and detector."""
        self.stop()
        worker = self._worker
        if worker is not None and worker.is_alive() and worker is not threading.current_thread():
            worker.join(timeout=5.0)
        self._buffer.release()
        release = getattr(self._detector, "release", None)
        if release is not None:
            release()
        _log.info("Cleaned up")

    def get_status(self) -> SchedulerState:
        with self._lock:
            return SchedulerState(
                is_running=self._is_running,
                is_processing=self._is_processing,
                is_disabled=self._is_disabled,
                consecutive_overruns=self._consecutive_overruns,
            )

    # ── Event channel ─────────────────────────────────────────

    def get_event(self, timeout: Optional[float] = None) -> Optional[SchedulerEvent]:
        """Next event, waiting up to timeout seconds. None if nothing arrived."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain_events(self) -> list[SchedulerEvent]:
        events = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    # ── Ticking ───────────────────────────────────────────────

    def tick(self) -> bool:
        """Timer entry point: start a cycle on a worker thread.

        Returns:
            False when the tick was skipped (disabled, busy, source not ready).
        """
        if not self._try_begin_cycle():
            return False
        self._worker = threading.Thread(
            target=self._run_cycle, name="FrameSchedulerCycle", daemon=True
        )
        self._worker.start()
        return True

    def process_frame(self) -> Optional[SchedulerEvent]:
        """Run one cycle synchronously on the calling thread.

        Returns:
            The emitted event, or None if the cycle was skipped.
        """
        if not self._try_begin_cycle():
            return None
        return self._run_cycle()

    def _timer_loop(self, stop_event: threading.Event) -> None:
        interval = self._config.sample_interval_ms / 1000.0
        while not stop_event.wait(interval):
            self.tick()

    def _try_begin_cycle(self) -> bool:
        with self._lock:
            if self._is_disabled or self._is_processing:
                _log.debug(
                    "Tick skipped (disabled=%s processing=%s)",
                    self._is_disabled, self._is_processing,
                )
                return False
            if self._source is None or self._source.ready_state < READY_DIMENSIONS:
                _log.debug("Tick skipped: source not ready")
                return False
            self._is_processing = True
            return True

    # ── Cycle ─────────────────────────────────────────────────

    def _run_cycle(self) -> SchedulerEvent:
        start = self._clock()
        try:
            try:
                sample = self._analyze(start)
            except Exception as exc:
                _log.error("Analysis error: %s", exc, exc_info=True)
                if self._config.reset_overruns_on_error:
                    with self._lock:
                        self._consecutive_overruns = 0
                event: SchedulerEvent = ErrorEvent(exc)
            else:
                event = self._check_budget(sample)

            # Still busy here, so events leave in cycle order
            self._emit(event)
        finally:
            with self._lock:
                self._is_processing = False
        return event

    def _analyze(self, start: float) -> Sample:
        size = self._source.frame_size()
        frame = self._buffer.capture(self._source.read_frame(), size)

        result = self._detector.detect(frame)
        if inspect.isawaitable(result):
            result = asyncio.run(_resolve(result))
        if result is None:
            result = FaceDetectionResult()

        face_count = int(result.count)
        rotation = gaze = None
        if face_count > 0:
            primary = result.landmarks[0] if result.landmarks else None
            rotation = analyze_rotation(primary, self._rotation)
            gaze = analyze_gaze(primary, self._gaze)

        brightness = compute_brightness(frame, self._config.brightness_sample_step)
        elapsed_ms = (self._clock() - start) * 1000.0

        return Sample(
            face_count=face_count,
            is_rotated=rotation.is_rotated if rotation else False,
            is_looking_away=gaze.is_looking_away if gaze else False,
            gaze_direction=gaze.gaze_direction if gaze else None,
            brightness=brightness,
            processing_time=elapsed_ms,
            rotation=rotation,
            gaze=gaze,
        )

    def _check_budget(self, sample: Sample) -> SchedulerEvent:
        limit = self._config.max_consecutive_overruns
        if sample.processing_time > self._config.processing_budget_ms:
            with self._lock:
                self._consecutive_overruns += 1
                overruns = self._consecutive_overruns
            _log.warning(
                "Overrun: %.1f ms (%d/%d)", sample.processing_time, overruns, limit
            )
            if overruns >= limit:
                return self._disable(OVERRUN_REASON)
        else:
            with self._lock:
                self._consecutive_overruns = 0
        return AnalysisEvent(sample)

    def _disable(self, reason: str) -> DisabledEvent:
        with self._lock:
            self._is_disabled = True
        self.stop()
        _log.warning("Disabled: %s", reason)
        return DisabledEvent(reason)

    def _emit(self, event: SchedulerEvent) -> None:
        with self._emit_lock:
            try:
                self._events.put_nowait(event)
            except queue.Full:
                try:
                    self._events.get_nowait()  # drop oldest
                except queue.Empty:
                    pass
                self._events.put_nowait(event)

        if self._listener is not None:
            try:
                self._listener(event)
            except Exception as exc:
                _log.error("Event listener failed: %s", exc, exc_info=True)
