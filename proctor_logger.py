"""
Proctor Probe - Structured Audit Logger
=======================================
Records every scheduler event and flag change in JSONL format
for post-session review.

Key Features:
  - JSONL (Newline Delimited JSON) format
  - Thread-safe appends (events arrive from worker threads)
  - Levels: AUDIT, WARN, ERROR, SYSTEM
  - NumPy / Enum values serialised transparently
"""

import enum
import json
import logging
import os
import sys
import threading
import time
from dataclasses import fields, is_dataclass
from types import MappingProxyType
from typing import Any, Dict, Optional

import numpy as np

from proctor_types import FlagState, SchedulerEvent, event_to_dict


_log = logging.getLogger("ProctorAudit")


class ProctorJSONEncoder(json.JSONEncoder):
    """Handles NumPy, Enum and dataclass values for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, enum.Enum):
            return obj.value
        if isinstance(obj, MappingProxyType):
            return dict(obj)
        if is_dataclass(obj) and not isinstance(obj, type):
            # Shallow; nested values come back through default()
            return {f.name: getattr(obj, f.name) for f in fields(obj)}
        return super().default(obj)


class ProctorAuditLogger:
    """
    Append-only JSONL audit trail for one proctoring session.
    """

    def __init__(self, log_dir: str = "logs", filename: str = "proctor_audit.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "session_start",
            "python_version": sys.version,
            "platform": sys.platform,
        }, level="SYSTEM")

    def log(self, data: Dict[str, Any], level: str = "AUDIT", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data,
        }

        line = json.dumps(entry, cls=ProctorJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                _log.warning("Audit log closed, dropping %s entry", entry["event"])
                return
            self._file.write(line)
            self._file.flush()

    def log_event(self, event: SchedulerEvent):
        """Record a scheduler event at the level its kind implies."""
        record = event_to_dict(event)
        level = {"analysis": "AUDIT", "disabled": "WARN", "error": "ERROR"}[record["event"]]
        self.log(record, level=level)

    def log_flags(self, state: FlagState):
        """Record the latest flag change (call when history grew)."""
        latest = state.history[-1] if state.history else None
        self.log({
            "flags": state.current_flags,
            "gaze_direction": state.gaze_direction,
            "consecutive_missing": state.consecutive_missing,
            "change": latest,
        }, level="AUDIT", event="flags_changed")

    def close(self):
        """Clean shutdown."""
        self.log({"message": "Session ended"}, level="SYSTEM", event="session_end")
        with self._lock:
            if not self._file.closed:
                self._file.close()

    def __enter__(self) -> "ProctorAuditLogger":
        return self

    def __exit__(self, *args) -> None:
        self.close()
