"""
Proctor Probe - Launcher
========================
Console entry point: opens the camera, runs the frame scheduler and
prints the aggregated flag status once per analysis cycle.

Usage:
  python start_proctor.py --source 0
  python start_proctor.py --source clip.mp4 --duration 30 --audit
"""

import argparse
import logging
import os
import sys
import time

# Add root
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from proctor_camera import ProctorCamera
from proctor_config import FlagThresholds, ProctorConfig, setup_logger
from proctor_face_pipeline import mediapipe_handle
from proctor_flags import create_initial_state, process_analysis, summarize_state
from proctor_logger import ProctorAuditLogger
from proctor_monitor import ResourceMonitor
from proctor_scheduler import FrameScheduler
from proctor_types import AnalysisEvent, DisabledEvent, ErrorEvent, FlagState


_LOGGER_NAMES = (
    "FrameScheduler", "ProctorCamera", "ProctorFaces", "ProctorGaze",
    "ProctorAudit", "ProctorMonitor", "ProctorConfig", "ProctorProbe",
)


def handle_event(state: FlagState, event, *, flags_config: FlagThresholds,
                 monitor=None, audit=None) -> FlagState:
    """Apply one scheduler event to the flag state and side channels.

    Returns:
        The new flag state (unchanged for disabled / error events).
    """
    if audit is not None:
        audit.log_event(event)

    if isinstance(event, AnalysisEvent):
        new_state = process_analysis(state, event.sample, flags_config)
        if monitor is not None:
            monitor.update(event.sample.processing_time)
        if audit is not None and new_state.history is not state.history:
            audit.log_flags(new_state)
        return new_state

    if isinstance(event, DisabledEvent):
        print(f"[PROCTOR] Analysis disabled: {event.reason}")
    elif isinstance(event, ErrorEvent):
        print(f"[PROCTOR] Analysis error: {event.message}")
    return state


def format_status(state: FlagState, sample=None) -> str:
    summary = summarize_state(state)
    line = f"[{summary['severity'].value.upper():7s}] " + " | ".join(summary["messages"] or ["-"])
    if sample is not None:
        line += f"  (faces={sample.face_count} light={sample.brightness:.0f} {sample.processing_time:.0f}ms)"
    return line


def main(argv=None):
    parser = argparse.ArgumentParser(description="Proctor Probe Launcher")
    parser.add_argument("--source", type=str, default=None, help="Camera ID (0, 1, etc.) or Video File Path")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--model", type=str, default=None, help="Path to face_landmarker.task")
    parser.add_argument("--duration", type=float, default=0.0, help="Stop after N seconds (0 = until Ctrl+C)")
    parser.add_argument("--audit", action="store_true", help="Write JSONL audit trail")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    config = ProctorConfig.from_yaml(args.config)
    if args.model:
        config.detector.model_path = args.model

    level = logging.DEBUG if args.verbose else getattr(logging, config.logging.level.upper(), logging.INFO)
    for name in _LOGGER_NAMES:
        setup_logger(name, level)
    log = logging.getLogger("ProctorProbe")

    source = config.camera.camera_id if args.source is None else args.source
    if isinstance(source, str) and source.isdigit():
        source = int(source)

    print("=" * 60)
    print("  Proctor Probe - Starting...")
    print(f"  Source:   {source}")
    print(f"  Interval: {config.scheduler.sample_interval_ms:.0f} ms")
    print(f"  Budget:   {config.scheduler.processing_budget_ms:.0f} ms")
    print(f"  Model:    {config.detector.model_path}")
    print("=" * 60)

    camera = None
    detector = None
    scheduler = None
    audit = ProctorAuditLogger(config.logging.audit_dir) if args.audit else None
    monitor = ResourceMonitor()
    state = create_initial_state()
    exit_code = 0

    try:
        camera = ProctorCamera(source, config.camera.width, config.camera.height)
        detector = mediapipe_handle(config.detector)
        detector.acquire()  # fail fast on a missing model
        scheduler = FrameScheduler(
            camera,
            detector,
            config.scheduler,
            rotation=config.rotation,
            gaze=config.gaze,
        )
        scheduler.start()
        print("[PROCTOR] Sampling. Press Ctrl+C to exit.")

        deadline = time.monotonic() + args.duration if args.duration > 0 else None
        while deadline is None or time.monotonic() < deadline:
            event = scheduler.get_event(timeout=0.25)
            if event is None:
                if scheduler.get_status().is_disabled:
                    break
                continue
            state = handle_event(state, event, flags_config=config.flags,
                                 monitor=monitor, audit=audit)
            if isinstance(event, AnalysisEvent):
                print(format_status(state, event.sample))
            elif isinstance(event, DisabledEvent):
                exit_code = 2
                break

    except KeyboardInterrupt:
        print("\n[PROCTOR] Interrupted by User.")
    except OSError as e:
        log.error("Startup failed: %s", e, exc_info=True)
        exit_code = 1
    finally:
        print("[PROCTOR] Cleaning up...")
        if scheduler is not None:
            scheduler.cleanup()
        elif detector is not None:
            detector.release()
        if camera is not None:
            camera.release()
        stats = monitor.get_stats()
        print(f"[PROCTOR] cycles={stats['cycles']} cpu_avg={stats['cpu_avg']:.1f}% "
              f"mem={stats['mem_mb']:.1f} MB")
        if audit is not None:
            audit.log(stats, level="SYSTEM", event="resource_summary")
            audit.close()
        print("[PROCTOR] Shutdown Complete.")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
