"""
Proctor Probe - Resource Monitor
================================
Tracks what the analysis loop costs the host process.

Features:
  - Process CPU percent and resident memory per analysis cycle
  - Cycle processing time (ms) alongside
  - Rolling window summary via get_stats()
"""

import logging
import time
from collections import deque

import psutil


_log = logging.getLogger("ProctorMonitor")


class ResourceMonitor:
    def __init__(self, history_len=60):
        self.process = psutil.Process()
        self.history_len = history_len
        self.cpu_history = deque(maxlen=history_len)
        self.mem_history = deque(maxlen=history_len)
        self.cycle_ms_history = deque(maxlen=history_len)
        self.total_cycles = 0
        self.start_time = time.time()

        # First cpu_percent() call only primes the counter
        self.process.cpu_percent(interval=None)

    def update(self, processing_time_ms: float):
        """Record metrics for one completed analysis cycle."""
        self.total_cycles += 1
        try:
            cpu_percent = self.process.cpu_percent(interval=None)  # non-blocking
            mem_mb = self.process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            _log.warning("Monitor update failed: %s", e)
            return

        self.cpu_history.append(cpu_percent)
        self.mem_history.append(mem_mb)
        self.cycle_ms_history.append(processing_time_ms)

    def get_stats(self) -> dict:
        """Return current stats summary."""
        if not self.cpu_history:
            return {"cpu_avg": 0.0, "mem_mb": 0.0, "cycle_ms_avg": 0.0, "samples": 0,
                    "cycles": self.total_cycles}

        return {
            "cpu_curr": self.cpu_history[-1],
            "cpu_avg": sum(self.cpu_history) / len(self.cpu_history),
            "mem_mb": self.mem_history[-1],
            "mem_peak": max(self.mem_history),
            "cycle_ms_avg": sum(self.cycle_ms_history) / len(self.cycle_ms_history),
            "cycle_ms_max": max(self.cycle_ms_history),
            "samples": len(self.cpu_history),
            "cycles": self.total_cycles,
            "uptime_sec": time.time() - self.start_time,
        }
