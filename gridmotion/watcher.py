"""
Motion Watcher Module.

Drives one MotionDetector from a frame source on a fixed tick interval.

Each tick runs to completion before the next is scheduled:

    timer -> source ready? -> snapshot -> process_frame -> publish -> reschedule

Capture failures and malformed frames skip the tick; the next one is
scheduled after the same interval. Stopping cancels the pending tick and
any tick that still fires afterwards becomes a no-op.
"""

import time
from typing import Any, Callable, Optional

from gridmotion.config import config
from gridmotion.frames import CaptureError, InvalidFrameError
from gridmotion.motion_detector import MotionDetector, MotionResult, status_text


# Frame source connection states
SOURCE_CONNECTED = "connected"
SOURCE_DISCONNECTED = "disconnected"
SOURCE_FAILED = "failed"


class MotionWatcher:
    """
    Scheduled snapshot polling for a single stream.

    The scheduler must provide call_later(delay_ms, callback) -> handle and
    cancel(handle). The source must provide a `ready` property and
    snapshot() -> ColorFrame, raising CaptureError on failure.

    Usage:
        watcher = MotionWatcher("cam01", source, MotionDetector("cam01"), GLibScheduler())
        watcher.start()
        # ... GLib main loop runs ticks ...
        watcher.stop()
    """

    def __init__(
        self,
        stream_id: str,
        source: Any,
        detector: MotionDetector,
        scheduler: Any,
        interval_ms: int = 300,
        initial_delay_ms: int = 1000,
        on_result: Optional[Callable[[MotionResult], None]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            stream_id: Identifier for log lines
            source: Frame source to poll
            detector: Detector owned by this watcher
            scheduler: Timer used to schedule ticks
            interval_ms: Delay between ticks
            initial_delay_ms: Delay before the first tick
            on_result: Called with every MotionResult produced
            clock: Timestamp source for results
        """
        self.stream_id = stream_id
        self.source = source
        self.detector = detector
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.initial_delay_ms = initial_delay_ms
        self.on_result = on_result
        self.clock = clock

        self._watching = False
        self._pending = None
        self._last_result: Optional[MotionResult] = None
        self._status = status_text(None, watching=False)
        self._skipped_ticks = 0

    def start(self):
        """Start watching; the first tick runs after the initial delay."""
        if self._watching:
            print(f"[WARN] stream={self.stream_id} Motion watcher already running", flush=True)
            return

        print(f"[INFO] stream={self.stream_id} Starting motion detection", flush=True)
        self.detector.start()
        self._watching = True
        self._last_result = None
        self._status = status_text(None, watching=True)
        self._schedule(self.initial_delay_ms)

    def stop(self):
        """Stop watching. Safe to call repeatedly."""
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._pending = None

        if self._watching:
            print(f"[INFO] stream={self.stream_id} Stopping motion detection", flush=True)

        self._watching = False
        self.detector.stop()
        self._last_result = None
        self._status = status_text(None, watching=False)

    def on_source_state(self, state: str):
        """
        Follow the frame source connection: watch while connected, turn
        off when the stream ends or fails.
        """
        if state == SOURCE_CONNECTED:
            if not self._watching:
                self.start()
        elif state in (SOURCE_DISCONNECTED, SOURCE_FAILED):
            if self._watching:
                print(f"[INFO] stream={self.stream_id} Source {state}, motion detection off", flush=True)
            self.stop()
        else:
            raise ValueError(f"Unknown source state: {state}")

    def _schedule(self, delay_ms: int):
        self._pending = self.scheduler.call_later(delay_ms, self._tick)

    def _tick(self):
        """Run one capture-and-analyze cycle."""
        self._pending = None
        if not self._watching:
            return

        try:
            self._run_tick()
        finally:
            # A stop() from inside a callback must not be undone here
            if self._watching and self._pending is None:
                self._schedule(self.interval_ms)

    def _run_tick(self):
        if not self.source.ready:
            if config.verbose:
                print(f"[DEBUG] stream={self.stream_id} Source not ready, rescheduling", flush=True)
            return

        try:
            frame = self.source.snapshot()
        except CaptureError as e:
            self._skipped_ticks += 1
            print(f"[WARN] stream={self.stream_id} Frame capture failed: {e}", flush=True)
            return

        try:
            result = self.detector.process_frame(frame, timestamp=self.clock())
        except InvalidFrameError as e:
            self._skipped_ticks += 1
            print(f"[WARN] stream={self.stream_id} Skipping invalid frame: {e}", flush=True)
            return

        if result is None:
            if config.verbose:
                print(f"[DEBUG] stream={self.stream_id} New baseline {self.detector.baseline.size}", flush=True)
            return

        self._last_result = result
        self._status = status_text(result, watching=True)

        if config.verbose:
            print(
                f"[DEBUG] stream={self.stream_id} basic={result.basic_motion_detected}, "
                f"persistent={result.motion_detected}, regions={len(result.motion_regions)}, "
                f"activeRegions={len(result.active_regions)}, ratio={result.basic_motion_ratio:.3f}%",
                flush=True
            )

        if self.on_result:
            try:
                self.on_result(result)
            except Exception as e:
                print(f"[WARN] stream={self.stream_id} Result callback failed: {e}", flush=True)

    @property
    def is_watching(self) -> bool:
        return self._watching

    @property
    def status(self) -> str:
        """Status display text: Motion: Yes/No/Off."""
        return self._status

    @property
    def last_result(self) -> Optional[MotionResult]:
        return self._last_result

    @property
    def skipped_ticks(self) -> int:
        """Ticks skipped because of capture or frame errors."""
        return self._skipped_ticks
