"""
Proctor Probe - Configuration
=============================
Loads config.yaml into typed tunable groups.

Sections:
  scheduler  - cadence, time budget, overrun breaker
  rotation   - yaw ratio / roll tilt thresholds
  gaze       - iris offset thresholds, eye-opening guard
  flags      - missing debounce, low light, history size
  detector   - MediaPipe FaceLandmarker options
  camera     - OpenCV capture options
  logging    - console level, audit directory

Every field has a default, so a missing file or section is not an error.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Optional

import yaml


_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, "config.yaml")

_log = logging.getLogger("ProctorConfig")


def load_config(path: Optional[str] = None) -> dict:
    """Load raw configuration from config.yaml."""
    target = path or _config_path
    with open(target, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured logger for Proctor Probe modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(name)-14s %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


# ── Tunable groups ────────────────────────────────────────────

@dataclass
class SchedulerConfig:
    sample_interval_ms: float = 500.0
    processing_budget_ms: float = 200.0
    max_consecutive_overruns: int = 3
    brightness_sample_step: int = 10
    fallback_width: int = 320
    fallback_height: int = 240
    reset_overruns_on_error: bool = False
    event_queue_size: int = 32


@dataclass
class RotationThresholds:
    yaw_ratio: float = 0.6        # LEFT below, RIGHT above its inverse
    roll_tilt: float = 0.15


@dataclass
class GazeThresholds:
    horizontal: float = 0.15
    vertical: float = 0.25
    min_eye_opening: float = 0.02  # eye height / width


@dataclass
class FlagThresholds:
    face_missing_threshold: int = 3
    low_light_threshold: float = 50.0
    history_capacity: int = 20
    track_gaze_changes: bool = True


@dataclass
class DetectorConfig:
    model_path: str = "face_landmarker.task"
    max_faces: int = 4
    min_detection_confidence: float = 0.5


@dataclass
class CameraConfig:
    camera_id: int = 0
    width: int = 320
    height: int = 240


@dataclass
class LoggingConfig:
    level: str = "INFO"
    audit_dir: str = "logs"


def _build_section(cls, name: str, raw: Optional[dict]):
    """Instantiate one dataclass section, ignoring unknown keys."""
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"Config section {name!r} must be a mapping, got {type(raw).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        _log.warning("Ignoring unknown keys in [%s]: %s", name, ", ".join(unknown))
    return cls(**{k: v for k, v in raw.items() if k in known})


_SECTIONS = {
    "scheduler": SchedulerConfig,
    "rotation": RotationThresholds,
    "gaze": GazeThresholds,
    "flags": FlagThresholds,
    "detector": DetectorConfig,
    "camera": CameraConfig,
    "logging": LoggingConfig,
}


@dataclass
class ProctorConfig:
    """All tunables, grouped by the component that reads them."""
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    rotation: RotationThresholds = field(default_factory=RotationThresholds)
    gaze: GazeThresholds = field(default_factory=GazeThresholds)
    flags: FlagThresholds = field(default_factory=FlagThresholds)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, raw: dict) -> "ProctorConfig":
        unknown = sorted(set(raw) - set(_SECTIONS))
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(unknown)}")
        return cls(**{
            name: _build_section(section_cls, name, raw.get(name))
            for name, section_cls in _SECTIONS.items()
        })

    @classmethod
    def from_yaml(cls, path: Optional[str] = None) -> "ProctorConfig":
        """Load from YAML. A missing default file yields the defaults;
        a missing explicit path raises FileNotFoundError."""
        if path is None and not os.path.exists(_config_path):
            _log.info("No config.yaml found, using defaults")
            return cls()
        return cls.from_dict(load_config(path))
