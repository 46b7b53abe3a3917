"""
Proctor Probe - Shared Data Types
=================================
Dataclasses and enums passed between the scheduler, the geometry
estimators and the flag aggregator.

Events emitted by the scheduler form a closed union:
  AnalysisEvent | DisabledEvent | ErrorEvent
Exactly one of them (or none, for a skipped tick) is produced per cycle.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, asdict
from typing import Any, List, Mapping, Optional, Tuple, Union

import numpy as np


class Yaw(str, enum.Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    CENTER = "CENTER"
    UNKNOWN = "UNKNOWN"


class Roll(str, enum.Enum):
    TILTED_LEFT = "TILTED_LEFT"
    TILTED_RIGHT = "TILTED_RIGHT"
    LEVEL = "LEVEL"
    UNKNOWN = "UNKNOWN"


class HorizontalGaze(str, enum.Enum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    CENTER = "CENTER"
    UNKNOWN = "UNKNOWN"


class VerticalGaze(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"
    CENTER = "CENTER"
    UNKNOWN = "UNKNOWN"


class FlagKind(str, enum.Enum):
    FACE_OK = "FACE_OK"
    FACE_MISSING = "FACE_MISSING"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    FACE_ROTATED = "FACE_ROTATED"
    GAZE_AWAY = "GAZE_AWAY"
    LOW_LIGHT = "LOW_LIGHT"


class Severity(str, enum.Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


# ── Estimator outputs ─────────────────────────────────────────

@dataclass(frozen=True)
class RotationEstimate:
    """Coarse head orientation of one face."""
    yaw: Yaw
    roll: Roll
    is_rotated: bool


@dataclass(frozen=True)
class GazeEstimate:
    """Coarse iris-based gaze of one face."""
    horizontal_gaze: HorizontalGaze
    vertical_gaze: VerticalGaze
    gaze_direction: str           # e.g. "CENTER", "LEFT", "UP_RIGHT", "UNKNOWN"
    is_looking_away: bool
    confidence: float
    details: Optional[dict] = None


@dataclass
class FaceDetectionResult:
    """What a detector adapter returns for one frame.

    landmarks holds one (478, 2|3) array per face, largest face first.
    """
    landmarks: List[np.ndarray] = field(default_factory=list)
    count: int = 0


# ── Per-cycle sample ──────────────────────────────────────────

@dataclass(frozen=True)
class Sample:
    """One analysis cycle's worth of signals, consumed by the aggregator."""
    face_count: int
    is_rotated: bool
    is_looking_away: bool
    gaze_direction: Optional[str]
    brightness: float
    processing_time: float        # milliseconds
    rotation: Optional[RotationEstimate] = None
    gaze: Optional[GazeEstimate] = None

    def to_dict(self) -> dict:
        return asdict(self)


# ── Flag state ────────────────────────────────────────────────

@dataclass(frozen=True)
class HistoryEntry:
    timestamp: float
    flags: Tuple[FlagKind, ...]
    details: Mapping[str, Any]      # read-only view


@dataclass(frozen=True)
class FlagState:
    """Immutable snapshot of the aggregated flags.

    Every call to process_analysis() returns a fresh instance.
    """
    current_flags: Tuple[FlagKind, ...] = ()
    gaze_direction: Optional[str] = None
    face_count: int = 0
    consecutive_missing: int = 0
    last_update: Optional[float] = None
    history: Tuple[HistoryEntry, ...] = ()


# ── Scheduler state & events ──────────────────────────────────

@dataclass(frozen=True)
class SchedulerState:
    is_running: bool
    is_processing: bool
    is_disabled: bool
    consecutive_overruns: int


@dataclass(frozen=True)
class AnalysisEvent:
    sample: Sample


@dataclass(frozen=True)
class DisabledEvent:
    reason: str


@dataclass(frozen=True)
class ErrorEvent:
    cause: BaseException

    @property
    def message(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"


SchedulerEvent = Union[AnalysisEvent, DisabledEvent, ErrorEvent]


def event_to_dict(event: SchedulerEvent) -> dict[str, Any]:
    """Flatten an event into a JSON-friendly record for the audit log."""
    if isinstance(event, AnalysisEvent):
        return {"event": "analysis", **event.sample.to_dict()}
    if isinstance(event, DisabledEvent):
        return {"event": "disabled", "reason": event.reason}
    return {"event": "error", "cause": event.message}
