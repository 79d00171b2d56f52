"""
Configuration module for grid-based motion detection.

This module centralizes all configuration parameters including:
- Pixel and area thresholds for motion detection
- Grid layout and temporal persistence
- Tick scheduling for snapshot polling
- Stream sources to watch
"""

import os
from dataclasses import dataclass, field
from typing import List


@dataclass
class MotionConfig:
    """Configuration for motion detection parameters."""

    # Grayscale difference (0-255) above which a pixel counts as "changed"
    pixel_threshold: int = field(default_factory=lambda: int(os.getenv("MOTION_PIXEL_THRESHOLD", "30")))

    # Percentage of the whole frame that must change for basic motion (0.0-100.0)
    area_threshold: float = field(default_factory=lambda: float(os.getenv("MOTION_AREA_THRESHOLD", "0.4")))

    # A single cell must change by area_threshold * cell_multiplier to count
    cell_multiplier: float = field(default_factory=lambda: float(os.getenv("MOTION_CELL_MULTIPLIER", "2.0")))

    # Consecutive qualifying ticks before a cell is reported as active
    persistence_threshold: int = field(default_factory=lambda: int(os.getenv("MOTION_PERSISTENCE_THRESHOLD", "2")))

    # Grid dimensions used for region analysis
    grid_x: int = field(default_factory=lambda: int(os.getenv("MOTION_GRID_X", "8")))
    grid_y: int = field(default_factory=lambda: int(os.getenv("MOTION_GRID_Y", "6")))

    # Scale factor applied to captured frames before analysis (0.0-1.0]
    downscale: float = field(default_factory=lambda: float(os.getenv("MOTION_DOWNSCALE", "0.5")))

    def __post_init__(self):
        if not 0 <= self.pixel_threshold <= 255:
            raise ValueError(f"pixel_threshold must be within 0-255, got {self.pixel_threshold}")
        if self.area_threshold < 0:
            raise ValueError(f"area_threshold must be non-negative, got {self.area_threshold}")
        if self.cell_multiplier <= 0:
            raise ValueError(f"cell_multiplier must be positive, got {self.cell_multiplier}")
        if self.persistence_threshold < 1:
            raise ValueError(f"persistence_threshold must be at least 1, got {self.persistence_threshold}")
        if self.grid_x < 1 or self.grid_y < 1:
            raise ValueError(f"grid must be at least 1x1, got {self.grid_x}x{self.grid_y}")
        if not 0 < self.downscale <= 1:
            raise ValueError(f"downscale must be within (0, 1], got {self.downscale}")

    @property
    def cell_threshold(self) -> float:
        """Percentage of a single grid cell that must change."""
        return self.area_threshold * self.cell_multiplier


@dataclass
class ScheduleConfig:
    """Configuration for snapshot polling."""

    # Interval between ticks in milliseconds
    interval_ms: int = field(default_factory=lambda: int(os.getenv("MOTION_INTERVAL_MS", "300")))

    # Delay before the first capture, giving the stream time to produce frames
    initial_delay_ms: int = field(default_factory=lambda: int(os.getenv("MOTION_INITIAL_DELAY_MS", "1000")))


@dataclass
class AppConfig:
    """Main application configuration."""

    motion: MotionConfig = field(default_factory=MotionConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    # Stream URIs to watch (comma-separated, e.g. rtsp://host:8554/cam01)
    sources: List[str] = field(default_factory=lambda: _parse_sources())

    # Enable verbose logging
    verbose: bool = field(default_factory=lambda: os.getenv("VERBOSE", "false").lower() == "true")


def _parse_sources() -> List[str]:
    """Parse comma-separated stream URIs from environment variable."""
    sources_env = os.getenv("MOTION_SOURCES", "")
    return [s.strip() for s in sources_env.split(",") if s.strip()]


# Global configuration instance
config = AppConfig()
