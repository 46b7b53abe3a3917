"""
Proctor Probe - Flag Aggregator
===============================
Turns one Sample per cycle into a small set of status flags.

Pure functions, no hidden state: every call returns a new FlagState.

Flags (priority order for the face-related flag):
  MULTIPLE_FACES - more than one face, immediately
  FACE_MISSING   - no face for N consecutive samples (debounced)
  FACE_ROTATED   - single face, head turned
  GAZE_AWAY      - single face, eyes off-centre (carries direction)
  FACE_OK        - single face, nothing wrong
LOW_LIGHT is independent and may accompany any of the above.

History keeps the last N flag changes (FIFO), not every sample.
"""

from __future__ import annotations

import math
import time
from dataclasses import replace
from types import MappingProxyType
from typing import Iterable, Optional

from proctor_config import FlagThresholds
from proctor_types import FlagKind, FlagState, HistoryEntry, Sample, Severity


_MESSAGES = {
    FlagKind.FACE_OK: "Face detected",
    FlagKind.FACE_MISSING: "Warning: Face not detected",
    FlagKind.MULTIPLE_FACES: "Error: Multiple faces detected",
    FlagKind.FACE_ROTATED: "Warning: Head turned away",
    FlagKind.LOW_LIGHT: "Warning: Low lighting",
}

_SEVERITY_RANK = {Severity.OK: 0, Severity.WARNING: 1, Severity.ERROR: 2}


def create_initial_state() -> FlagState:
    """Empty state: no flags, no history."""
    return FlagState()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def process_analysis(
    state: FlagState,
    sample: Sample,
    thresholds: Optional[FlagThresholds] = None,
    now: Optional[float] = None,
) -> FlagState:
    """Fold one sample into the flag state.

    Args:
        state: Previous snapshot (not modified).
        sample: Output of one scheduler cycle.
        thresholds: Debounce / light / history tunables.
        now: Epoch seconds for the update; time.time() if None.

    Returns:
        New FlagState.
    """
    thresholds = thresholds or FlagThresholds()
    now = time.time() if now is None else now

    flags: list[FlagKind] = []
    consecutive_missing = state.consecutive_missing
    gaze_direction: Optional[str] = None

    if sample.face_count > 1:
        flags.append(FlagKind.MULTIPLE_FACES)
        consecutive_missing = 0
    elif sample.face_count == 0:
        consecutive_missing += 1
        if consecutive_missing >= thresholds.face_missing_threshold:
            flags.append(FlagKind.FACE_MISSING)
    else:
        consecutive_missing = 0
        if sample.is_rotated:
            flags.append(FlagKind.FACE_ROTATED)
        elif sample.is_looking_away:
            flags.append(FlagKind.GAZE_AWAY)
            gaze_direction = sample.gaze_direction
        else:
            flags.append(FlagKind.FACE_OK)

    if sample.brightness < thresholds.low_light_threshold:
        flags.append(FlagKind.LOW_LIGHT)

    flags_changed = set(flags) != set(state.current_flags)
    gaze_changed = (
        thresholds.track_gaze_changes
        and FlagKind.GAZE_AWAY in flags
        and FlagKind.GAZE_AWAY in state.current_flags
        and gaze_direction != state.gaze_direction
    )

    history = state.history
    if flags_changed or gaze_changed:
        entry = HistoryEntry(
            timestamp=now,
            flags=tuple(flags),
            details=MappingProxyType({
                "face_count": sample.face_count,
                "is_rotated": sample.is_rotated,
                "is_looking_away": sample.is_looking_away,
                "gaze_direction": sample.gaze_direction,
                "brightness": _round_half_up(sample.brightness),
            }),
        )
        keep = max(thresholds.history_capacity - 1, 0)
        history = (history[-keep:] if keep else ()) + (entry,)

    return replace(
        state,
        current_flags=tuple(flags),
        gaze_direction=gaze_direction,
        face_count=sample.face_count,
        consecutive_missing=consecutive_missing,
        last_update=now,
        history=history,
    )


def get_flag_message(flag: FlagKind, gaze_direction: Optional[str] = None) -> str:
    """Human-readable text for a flag.

    GAZE_AWAY interpolates the direction, e.g. "UP_LEFT" -> "Looking up-left".
    """
    flag = FlagKind(flag)
    if flag == FlagKind.GAZE_AWAY:
        if gaze_direction:
            return f"Warning: Looking {gaze_direction.lower().replace('_', '-')}"
        return "Warning: Looking away"
    return _MESSAGES[flag]


def get_flag_severity(flag: FlagKind) -> Severity:
    flag = FlagKind(flag)
    if flag == FlagKind.FACE_OK:
        return Severity.OK
    if flag == FlagKind.MULTIPLE_FACES:
        return Severity.ERROR
    return Severity.WARNING


def worst_severity(flags: Iterable[FlagKind]) -> Severity:
    """Highest severity among flags; OK for an empty set."""
    worst = Severity.OK
    for flag in flags:
        sev = get_flag_severity(flag)
        if _SEVERITY_RANK[sev] > _SEVERITY_RANK[worst]:
            worst = sev
    return worst


def summarize_state(state: FlagState) -> dict:
    """Status-line summary: worst severity plus one message per flag."""
    return {
        "severity": worst_severity(state.current_flags),
        "messages": [
            get_flag_message(flag, state.gaze_direction) for flag in state.current_flags
        ],
        "face_count": state.face_count,
        "consecutive_missing": state.consecutive_missing,
    }
