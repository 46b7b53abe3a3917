"""
Proctor Probe - Flag Aggregator Tests
=====================================
Pure state transitions: no clock, camera or detector involved.
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import pytest

# Add project root to path
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from proctor_config import FlagThresholds
from proctor_flags import (
    create_initial_state,
    get_flag_message,
    get_flag_severity,
    process_analysis,
    summarize_state,
    worst_severity,
)
from proctor_types import FlagKind, FlagState, Sample, Severity


# ─── Fixtures ─────────────────────────────────────────────────

def _sample(
    face_count: int = 1,
    rotated: bool = False,
    away: bool = False,
    direction: str | None = None,
    brightness: float = 128.0,
) -> Sample:
    return Sample(
        face_count=face_count,
        is_rotated=rotated,
        is_looking_away=away,
        gaze_direction=direction,
        brightness=brightness,
        processing_time=12.0,
    )


def _run(samples, state: FlagState | None = None, thresholds=None):
    """Fold samples, returning every intermediate state."""
    state = state or create_initial_state()
    states = []
    for i, sample in enumerate(samples):
        state = process_analysis(state, sample, thresholds, now=float(i))
        states.append(state)
    return states


# ─── Test 1: Initial state ────────────────────────────────────

def test_initial_state_is_empty():
    state = create_initial_state()
    assert state.current_flags == ()
    assert state.consecutive_missing == 0
    assert state.last_update is None
    assert state.history == ()


# ─── Test 2: Missing-face debounce ────────────────────────────

def test_missing_face_needs_three_samples():
    """face counts [1,1,0,0,0,1]: FACE_MISSING only on the third miss."""
    states = _run([_sample(n) for n in (1, 1, 0, 0, 0, 1)])

    assert [s.current_flags for s in states] == [
        (FlagKind.FACE_OK,),
        (FlagKind.FACE_OK,),
        (),
        (),
        (FlagKind.FACE_MISSING,),
        (FlagKind.FACE_OK,),
    ]
    assert [s.consecutive_missing for s in states] == [0, 0, 1, 2, 3, 0]


def test_multiple_faces_resets_missing_streak():
    states = _run([_sample(0), _sample(0), _sample(2), _sample(0)])
    assert states[2].current_flags == (FlagKind.MULTIPLE_FACES,)
    assert states[2].consecutive_missing == 0
    assert states[3].consecutive_missing == 1
    assert FlagKind.FACE_MISSING not in states[3].current_flags


def test_custom_missing_threshold():
    states = _run([_sample(0)], thresholds=FlagThresholds(face_missing_threshold=1))
    assert states[0].current_flags == (FlagKind.FACE_MISSING,)


# ─── Test 3: Single-face priority ─────────────────────────────

def test_rotation_wins_over_gaze():
    state = _run([_sample(rotated=True, away=True, direction="LEFT")])[-1]
    assert state.current_flags == (FlagKind.FACE_ROTATED,)
    assert state.gaze_direction is None


def test_gaze_away_carries_direction():
    state = _run([_sample(away=True, direction="UP_LEFT")])[-1]
    assert state.current_flags == (FlagKind.GAZE_AWAY,)
    assert state.gaze_direction == "UP_LEFT"


def test_multiple_faces_ignores_rotation():
    state = _run([_sample(face_count=3, rotated=True)])[-1]
    assert state.current_flags == (FlagKind.MULTIPLE_FACES,)
    assert state.face_count == 3


# ─── Test 4: Lighting ─────────────────────────────────────────

def test_brightness_at_threshold_is_not_low_light():
    state = _run([_sample(brightness=50.0)])[-1]
    assert FlagKind.LOW_LIGHT not in state.current_flags


def test_dark_frame_adds_low_light():
    state = _run([_sample(brightness=49.9)])[-1]
    assert state.current_flags == (FlagKind.FACE_OK, FlagKind.LOW_LIGHT)


def test_low_light_alone_when_face_briefly_missing():
    state = _run([_sample(face_count=0, brightness=10.0)])[-1]
    assert state.current_flags == (FlagKind.LOW_LIGHT,)


# ─── Test 5: History ──────────────────────────────────────────

def test_repeated_flags_do_not_grow_history():
    states = _run([_sample()] * 5)
    assert len(states[-1].history) == 1
    assert states[-1].last_update == 4.0


def test_history_capped_fifo():
    samples = [_sample(face_count=1 if i % 2 == 0 else 2) for i in range(30)]
    state = _run(samples)[-1]

    assert len(state.history) == 20
    assert state.history[0].timestamp == 10.0
    assert state.history[-1].timestamp == 29.0
    assert state.history[-1].flags == (FlagKind.MULTIPLE_FACES,)


def test_flag_sets_compared_unordered():
    state = FlagState(current_flags=(FlagKind.LOW_LIGHT, FlagKind.FACE_OK))
    new_state = process_analysis(state, _sample(brightness=10.0), now=1.0)
    assert new_state.history == ()


def test_history_entry_details():
    state = _run([_sample(brightness=49.5, away=True, direction="DOWN")])[-1]
    entry = state.history[-1]
    assert entry.flags == (FlagKind.GAZE_AWAY, FlagKind.LOW_LIGHT)
    assert entry.details == {
        "face_count": 1,
        "is_rotated": False,
        "is_looking_away": True,
        "gaze_direction": "DOWN",
        "brightness": 50,
    }


def test_history_entry_details_are_read_only():
    entry = _run([_sample(face_count=2)])[-1].history[-1]
    with pytest.raises(TypeError):
        entry.details["face_count"] = 0
    assert entry.details["face_count"] == 2


def test_gaze_direction_change_is_recorded():
    states = _run([
        _sample(away=True, direction="LEFT"),
        _sample(away=True, direction="RIGHT"),
        _sample(away=True, direction="RIGHT"),
    ])
    assert [len(s.history) for s in states] == [1, 2, 2]
    assert states[-1].history[-1].details["gaze_direction"] == "RIGHT"


def test_gaze_direction_change_ignored_when_not_tracked():
    thresholds = FlagThresholds(track_gaze_changes=False)
    states = _run([
        _sample(away=True, direction="LEFT"),
        _sample(away=True, direction="RIGHT"),
    ], thresholds=thresholds)
    assert len(states[-1].history) == 1
    assert states[-1].gaze_direction == "RIGHT"


# ─── Test 6: Purity ───────────────────────────────────────────

def test_process_analysis_returns_new_state():
    state = create_initial_state()
    new_state = process_analysis(state, _sample(0), now=5.0)
    assert new_state is not state
    assert state.consecutive_missing == 0
    assert new_state.consecutive_missing == 1
    with pytest.raises(dataclasses.FrozenInstanceError):
        new_state.consecutive_missing = 7


# ─── Test 7: Messages & severity ──────────────────────────────

@pytest.mark.parametrize("flag,message", [
    (FlagKind.FACE_OK, "Face detected"),
    (FlagKind.FACE_MISSING, "Warning: Face not detected"),
    (FlagKind.MULTIPLE_FACES, "Error: Multiple faces detected"),
    (FlagKind.LOW_LIGHT, "Warning: Low lighting"),
    (FlagKind.FACE_ROTATED, "Warning: Head turned away"),
])
def test_flag_messages(flag, message):
    assert get_flag_message(flag) == message


def test_gaze_message_interpolates_direction():
    assert get_flag_message(FlagKind.GAZE_AWAY, "UP_LEFT") == "Warning: Looking up-left"
    assert get_flag_message(FlagKind.GAZE_AWAY, "DOWN") == "Warning: Looking down"
    assert get_flag_message(FlagKind.GAZE_AWAY) == "Warning: Looking away"


def test_flag_severity():
    assert get_flag_severity(FlagKind.FACE_OK) == Severity.OK
    assert get_flag_severity(FlagKind.MULTIPLE_FACES) == Severity.ERROR
    for flag in (FlagKind.FACE_MISSING, FlagKind.FACE_ROTATED,
                 FlagKind.GAZE_AWAY, FlagKind.LOW_LIGHT):
        assert get_flag_severity(flag) == Severity.WARNING


def test_severity_accepts_plain_strings():
    assert get_flag_severity("MULTIPLE_FACES") == Severity.ERROR


def test_summary_reports_worst_severity():
    state = _run([_sample(face_count=2, brightness=10.0)])[-1]
    summary = summarize_state(state)
    assert summary["severity"] == Severity.ERROR
    assert summary["messages"] == ["Error: Multiple faces detected", "Warning: Low lighting"]
    assert worst_severity([]) == Severity.OK


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
