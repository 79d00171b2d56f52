#!/usr/bin/env python3
"""
Grid Motion Detection - Main Entry Point

This application polls snapshots from one or more video streams and reports
persistent motion per stream.

Architecture:
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         GLib Main Loop                              │
    │  - Fires one tick per watcher every MOTION_INTERVAL_MS              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
           ┌────────────────────────┼────────────────────────┐
           ▼                        ▼                        ▼
    ┌─────────────┐          ┌─────────────┐          ┌─────────────┐
    │  Watcher 1  │          │  Watcher 2  │          │  Watcher N  │
    │  (cam01)    │          │  (cam02)    │          │  (camN)     │
    └─────────────┘          └─────────────┘          └─────────────┘
           │                        │                        │
           ▼                        ▼                        ▼
    ┌─────────────┐          ┌─────────────┐          ┌─────────────┐
    │ snapshot →  │          │ snapshot →  │          │ snapshot →  │
    │ gray/scale →│          │ gray/scale →│          │ gray/scale →│
    │ diff → grid │          │ diff → grid │          │ diff → grid │
    │ → persist   │          │ → persist   │          │ → persist   │
    └─────────────┘          └─────────────┘          └─────────────┘

Configuration (via environment variables):
    MOTION_SOURCES               - Comma-separated stream URIs (required)
    MOTION_PIXEL_THRESHOLD       - Pixel change threshold 0-255 (default: 30)
    MOTION_AREA_THRESHOLD        - Minimum % of frame changed (default: 0.4)
    MOTION_CELL_MULTIPLIER       - Cell threshold = area threshold x this (default: 2.0)
    MOTION_PERSISTENCE_THRESHOLD - Consecutive ticks before a cell is active (default: 2)
    MOTION_GRID_X                - Grid cells horizontally (default: 8)
    MOTION_GRID_Y                - Grid cells vertically (default: 6)
    MOTION_DOWNSCALE             - Frame scale factor before analysis (default: 0.5)
    MOTION_INTERVAL_MS           - Milliseconds between ticks (default: 300)
    MOTION_INITIAL_DELAY_MS      - Milliseconds before the first tick (default: 1000)
    VERBOSE                      - Enable verbose logging (default: false)

Log messages:
    [MOTION] stream=<stream_id> regions=<n> ratio=<percent>%   - motion started
    [STATUS] stream=<stream_id> Motion: Yes|No|Off             - status changed

Lifecycle:
    Each watcher starts when its stream delivers the first decoded frame and
    stops ("Motion: Off") when the stream ends or the pipeline reports an error.

Usage:
    gridmotion

    # Or with environment variables:
    MOTION_SOURCES=rtsp://192.168.1.100:8554/cam01 VERBOSE=true gridmotion
"""

import signal
import sys
from typing import Dict, List, Tuple

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst, GLib

from gridmotion.config import config
from gridmotion.motion_detector import MotionDetector, MotionResult, default_motion_handler
from gridmotion.pipeline import StreamFrameSource
from gridmotion.scheduler import GLibScheduler
from gridmotion.watcher import MotionWatcher


_main_loop: GLib.MainLoop = None


def signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM by stopping the GLib main loop."""
    signal_name = signal.Signals(signum).name
    print(f"\n[INFO] Received {signal_name}, initiating graceful shutdown...", flush=True)

    if _main_loop:
        _main_loop.quit()


def print_banner():
    """Print application startup banner."""
    print("=" * 60)
    print("  Grid Motion Detection")
    print("  Persistent region-based motion watcher")
    print("=" * 60)
    print()


def print_config():
    """Print current configuration."""
    motion = config.motion
    print("[CONFIG] Current settings:")
    print(f"  Sources:          {', '.join(config.sources) or '(none)'}")
    print(f"  Motion Threshold: {motion.pixel_threshold} (pixel), {motion.area_threshold}% (area), "
          f"{motion.cell_threshold}% (cell)")
    print(f"  Grid:             {motion.grid_x}x{motion.grid_y}")
    print(f"  Persistence:      {motion.persistence_threshold} ticks")
    print(f"  Downscale:        {motion.downscale}")
    print(f"  Tick Interval:    {config.schedule.interval_ms}ms "
          f"(initial delay {config.schedule.initial_delay_ms}ms)")
    print(flush=True)


def stream_id_for(uri: str, index: int) -> str:
    """Derive a short stream identifier from a URI path."""
    path = uri.split("://", 1)[-1].split("?", 1)[0]
    name = path.rstrip("/").rsplit("/", 1)[-1]
    if not name or ":" in name:
        return f"stream{index}"
    return name


class StatusReporter:
    """Prints a line whenever a stream's motion status changes."""

    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        self._motion = False

    def __call__(self, result: MotionResult):
        if result.motion_detected and not self._motion:
            default_motion_handler(result, self.stream_id)
        if result.motion_detected != self._motion:
            status = "Yes" if result.motion_detected else "No"
            print(f"[STATUS] stream={self.stream_id} Motion: {status}", flush=True)
        self._motion = result.motion_detected

    def clear(self):
        self._motion = False


class SourceStateHandler:
    """Starts and stops a watcher as its stream connects and drops."""

    def __init__(self, watcher: MotionWatcher, reporter: StatusReporter):
        self.watcher = watcher
        self.reporter = reporter

    def __call__(self, state: str):
        self.watcher.on_source_state(state)
        self.reporter.clear()
        print(f"[STATUS] stream={self.watcher.stream_id} {self.watcher.status}", flush=True)


def build_watchers(scheduler) -> List[Tuple[StreamFrameSource, MotionWatcher]]:
    watchers = []
    seen: Dict[str, int] = {}
    for index, uri in enumerate(config.sources):
        stream_id = stream_id_for(uri, index)
        if stream_id in seen:
            stream_id = f"{stream_id}_{index}"
        seen[stream_id] = index

        source = StreamFrameSource(stream_id, uri)
        detector = MotionDetector(stream_id=stream_id, motion_config=config.motion)
        reporter = StatusReporter(stream_id)
        watcher = MotionWatcher(
            stream_id,
            source,
            detector,
            scheduler,
            interval_ms=config.schedule.interval_ms,
            initial_delay_ms=config.schedule.initial_delay_ms,
            on_result=reporter,
        )
        # Watching begins with the first decoded frame and ends with the stream
        source.on_state = SourceStateHandler(watcher, reporter)
        watchers.append((source, watcher))
    return watchers


def main():
    """Main entry point for the motion watcher."""
    global _main_loop

    print_banner()

    if not config.sources:
        print("[ERROR] No sources configured, set MOTION_SOURCES", flush=True)
        return 1

    print("[INFO] Initializing GStreamer...", flush=True)
    Gst.init(None)

    print_config()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    _main_loop = GLib.MainLoop()

    watchers = build_watchers(GLibScheduler())
    for source, watcher in watchers:
        if not source.start():
            print(f"[ERROR] stream={source.stream_id} Failed to start pipeline", flush=True)

    print("[INFO] Motion watcher running. Press Ctrl+C to stop.")
    print("-" * 60, flush=True)

    try:
        _main_loop.run()
    except KeyboardInterrupt:
        pass
    finally:
        print("\n[INFO] Shutting down...", flush=True)

        for source, watcher in watchers:
            watcher.stop()
            print(f"[STATUS] stream={watcher.stream_id} {watcher.status}", flush=True)
            source.stop()

        print("[INFO] Shutdown complete.", flush=True)

    return 0


if __name__ == "__main__":
    sys.exit(main())
