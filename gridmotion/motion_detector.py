"""
Motion Detection Module.

Implements grid-based, persistence-filtered motion detection for video
streams. Each tick compares the current snapshot with the previous one
and reports the grid cells where motion has been sustained.

Algorithm:
1. Convert frame to grayscale and downscale
2. Compare with previous frame using absolute difference
3. Apply threshold to identify changed pixels
4. Split the changed-pixel mask into a grid and measure each cell
5. Update per-cell persistence counters
6. Report motion if any cell has been active for enough consecutive ticks
"""

from dataclasses import dataclass, field
from typing import Optional, Callable, Dict, Tuple

import numpy as np

from gridmotion.config import MotionConfig
from gridmotion.frames import ColorFrame, GrayscaleFrame, preprocess
from gridmotion.regions import Cell, Rect, PersistenceTracker, aggregate, cell_rect


@dataclass(frozen=True, eq=False)
class DiffMask:
    """Changed-pixel mask between two grayscale frames of equal size."""
    width: int
    height: int
    changed: np.ndarray

    @property
    def changed_count(self) -> int:
        return int(np.count_nonzero(self.changed))

    @property
    def total_count(self) -> int:
        return self.width * self.height

    @property
    def ratio_percent(self) -> float:
        """Percentage of the whole frame that changed."""
        return (self.changed_count / self.total_count) * 100.0


@dataclass(frozen=True)
class MotionResult:
    """Outcome of a single detection tick."""
    motion_detected: bool
    active_regions: Tuple[Rect, ...]
    basic_motion_ratio: float
    basic_motion_detected: bool = False
    motion_regions: Tuple[Rect, ...] = field(default_factory=tuple)
    frame_width: int = 0
    frame_height: int = 0
    timestamp: float = 0.0


def diff(prev: GrayscaleFrame, curr: GrayscaleFrame, threshold: int = 30) -> DiffMask:
    """
    Mark pixels whose intensity changed by more than threshold.

    Raises:
        ValueError: if the frames differ in size
    """
    if prev.size != curr.size:
        raise ValueError(f"Cannot diff {prev.width}x{prev.height} against {curr.width}x{curr.height}")

    delta = np.abs(curr.samples.astype(np.int16) - prev.samples.astype(np.int16))
    return DiffMask(width=curr.width, height=curr.height, changed=delta > threshold)


def status_text(result: Optional[MotionResult], watching: bool) -> str:
    """Text for a status display."""
    if not watching:
        return "Motion: Off"
    if result is not None and result.motion_detected:
        return "Motion: Yes"
    return "Motion: No"


class MotionDetector:
    """
    Grid-based motion detector with temporal persistence.

    This class owns the state for a single video stream: the previous
    preprocessed frame and the per-cell persistence counters.

    Usage:
        detector = MotionDetector(stream_id="cam01")
        detector.start()

        # Called once per tick with a captured snapshot
        result = detector.process_frame(frame)

        detector.stop()
    """

    def __init__(
        self,
        stream_id: str = "default",
        motion_config: Optional[MotionConfig] = None,
        on_motion: Optional[Callable[[MotionResult], None]] = None
    ):
        """
        Initialize the motion detector.

        Args:
            stream_id: Identifier for the stream being monitored
            motion_config: Detection thresholds, grid and downscale (defaults from environment)
            on_motion: Callback invoked with each result that reports motion
        """
        self.stream_id = stream_id
        self.config = motion_config or MotionConfig()
        self.on_motion = on_motion
        self.tracker = self._build_tracker()

        # State
        self._previous_frame: Optional[GrayscaleFrame] = None
        self._counters: Dict[Cell, int] = {}
        self._watching: bool = False
        self._frame_count: int = 0

    def _build_tracker(self) -> PersistenceTracker:
        return PersistenceTracker(
            area_threshold=self.config.area_threshold,
            persistence_threshold=self.config.persistence_threshold,
            cell_multiplier=self.config.cell_multiplier,
        )

    def update_config(self, config: dict):
        """
        Update detector configuration dynamically.

        Changing the grid or downscale invalidates the baseline and the
        counters, so the detector state is reset.

        Args:
            config: Dictionary of MotionConfig field updates
        """
        values = dict(vars(self.config))
        unknown = set(config) - set(values)
        if unknown:
            raise ValueError(f"Unknown motion settings: {sorted(unknown)}")
        values.update(config)
        new_config = MotionConfig(**values)

        layout_changed = (
            (new_config.grid_x, new_config.grid_y, new_config.downscale)
            != (self.config.grid_x, self.config.grid_y, self.config.downscale)
        )
        self.config = new_config
        self.tracker = self._build_tracker()
        if layout_changed:
            self.reset()

    def start(self):
        """Begin watching with an empty baseline and history."""
        self.reset()
        self._watching = True

    def stop(self):
        """Stop watching and release held state. Safe to call repeatedly."""
        self._watching = False
        self.reset()

    def reset(self):
        """Drop the baseline, persistence counters and frame count (e.g. on reconnect)."""
        self._previous_frame = None
        self._counters.clear()
        self._frame_count = 0

    def process_frame(self, frame: ColorFrame, timestamp: float = 0.0) -> Optional[MotionResult]:
        """
        Process a single captured frame.

        Args:
            frame: Full-resolution colour snapshot
            timestamp: Capture time in seconds

        Returns:
            MotionResult, or None when not watching or no comparison is possible yet

        Raises:
            InvalidFrameError: if the frame is malformed; detector state is untouched
        """
        if not self._watching:
            return None

        current = preprocess(frame, self.config.downscale)
        self._frame_count += 1

        # First frame - store as baseline
        if self._previous_frame is None:
            self._previous_frame = current
            return None

        # Resolution change - new baseline with no history
        if current.size != self._previous_frame.size:
            self._counters.clear()
            self._previous_frame = current
            return None

        mask = diff(self._previous_frame, current, self.config.pixel_threshold)
        stats = aggregate(mask, self.config.grid_x, self.config.grid_y)
        basic_ratio = mask.ratio_percent
        qualified = self.tracker.update(self._counters, stats, basic_ratio)
        active = self.tracker.active_cells(self._counters)

        self._previous_frame = current

        result = MotionResult(
            motion_detected=bool(active),
            active_regions=tuple(self._rect(cell) for cell in active),
            basic_motion_ratio=basic_ratio,
            basic_motion_detected=self.tracker.basic_motion(basic_ratio),
            motion_regions=tuple(stats[cell].rect for cell in qualified),
            frame_width=current.width,
            frame_height=current.height,
            timestamp=timestamp,
        )

        if result.motion_detected and self.on_motion:
            try:
                self.on_motion(result)
            except Exception as e:
                print(f"[WARN] stream={self.stream_id} Motion callback failed: {e}", flush=True)

        return result

    def _rect(self, cell: Cell) -> Rect:
        gx, gy = cell
        return cell_rect(
            gx, gy,
            self._previous_frame.width, self._previous_frame.height,
            self.config.grid_x, self.config.grid_y,
        )

    @property
    def is_watching(self) -> bool:
        return self._watching

    @property
    def frame_count(self) -> int:
        """Frames preprocessed since the last start or reset."""
        return self._frame_count

    @property
    def counters(self) -> Dict[Cell, int]:
        """Snapshot of the persistence counters."""
        return dict(self._counters)

    @property
    def baseline(self) -> Optional[GrayscaleFrame]:
        return self._previous_frame


def default_motion_handler(result: MotionResult, stream_id: str = "default"):
    """
    Default motion handler that prints to stdout.

    Output format:
        [MOTION] stream=<stream_id> regions=<n> ratio=<percent>%
    """
    print(
        f"[MOTION] stream={stream_id} regions={len(result.active_regions)} "
        f"ratio={result.basic_motion_ratio:.2f}%",
        flush=True
    )
