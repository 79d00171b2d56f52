"""
Region Analysis Module.

Grid aggregation and temporal persistence for the motion pipeline.

The diff mask is partitioned into a fixed grid; each cell gets a motion
ratio. A per-cell hit counter is then carried across ticks:

    Cold (absent) -> Warming (1 .. threshold-1) -> Active (>= threshold)

Cells must qualify on consecutive ticks to become active, which filters
foliage and sensor flicker that rarely repeats in the same cell.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np


Cell = Tuple[int, int]

COLD = "cold"
WARMING = "warming"
ACTIVE = "active"


@dataclass(frozen=True)
class Rect:
    """Half-open pixel rectangle [left, right) x [top, bottom)."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def scaled(self, scale_x: float, scale_y: float, offset_x: int = 0, offset_y: int = 0) -> "Rect":
        """Scale into another coordinate space, truncating toward zero."""
        return Rect(
            left=offset_x + int(self.left * scale_x),
            top=offset_y + int(self.top * scale_y),
            right=offset_x + int(self.right * scale_x),
            bottom=offset_y + int(self.bottom * scale_y),
        )


@dataclass(frozen=True)
class CellStats:
    """Motion statistics for one grid cell."""
    cell: Cell
    rect: Rect
    changed: int
    total: int
    ratio_percent: float


def _span(index: int, count: int, length: int) -> Tuple[int, int]:
    step = length // count
    start = min(index * step, length)
    if index == count - 1:
        # Last row/column absorbs the remainder
        return start, length
    return start, min((index + 1) * step, length)


def cell_rect(gx: int, gy: int, width: int, height: int, grid_x: int, grid_y: int) -> Rect:
    """Pixel rectangle covered by grid cell (gx, gy)."""
    left, right = _span(gx, grid_x, width)
    top, bottom = _span(gy, grid_y, height)
    return Rect(left, top, right, bottom)


def aggregate(mask, grid_x: int, grid_y: int) -> Dict[Cell, CellStats]:
    """
    Compute per-cell motion ratios for a diff mask.

    Args:
        mask: DiffMask (anything with width, height and a boolean `changed` array)
        grid_x: Number of cells horizontally
        grid_y: Number of cells vertically

    Returns:
        Mapping (gx, gy) -> CellStats, iterating row-major over (gy, gx)
    """
    if grid_x < 1 or grid_y < 1:
        raise ValueError(f"grid must be at least 1x1, got {grid_x}x{grid_y}")

    changed = np.asarray(mask.changed, dtype=bool)
    stats: Dict[Cell, CellStats] = {}

    for gy in range(grid_y):
        for gx in range(grid_x):
            rect = cell_rect(gx, gy, mask.width, mask.height, grid_x, grid_y)
            total = rect.area
            count = int(np.count_nonzero(changed[rect.top:rect.bottom, rect.left:rect.right])) if total else 0
            ratio = (count / total) * 100.0 if total > 0 else 0.0
            stats[(gx, gy)] = CellStats(cell=(gx, gy), rect=rect, changed=count, total=total, ratio_percent=ratio)

    return stats


def _row_major(cells) -> List[Cell]:
    return sorted(cells, key=lambda c: (c[1], c[0]))


class PersistenceTracker:
    """
    Per-cell hysteresis over consecutive ticks.

    The tracker holds only configuration; the counters themselves belong to
    the caller and are passed in on every tick.

    Usage:
        tracker = PersistenceTracker(area_threshold=0.4, persistence_threshold=2)
        counters = {}
        tracker.update(counters, aggregate(mask, 8, 6), mask.ratio_percent)
        regions = tracker.active_cells(counters)
    """

    def __init__(
        self,
        area_threshold: float,
        persistence_threshold: int = 2,
        cell_multiplier: float = 2.0
    ):
        """
        Args:
            area_threshold: Whole-frame changed percentage needed for basic motion
            persistence_threshold: Counter value at which a cell becomes active
            cell_multiplier: A cell needs area_threshold * cell_multiplier percent to qualify
        """
        if persistence_threshold < 1:
            raise ValueError(f"persistence_threshold must be at least 1, got {persistence_threshold}")
        self.area_threshold = area_threshold
        self.persistence_threshold = persistence_threshold
        self.cell_multiplier = cell_multiplier

    @property
    def cell_threshold(self) -> float:
        return self.area_threshold * self.cell_multiplier

    def basic_motion(self, basic_ratio: float) -> bool:
        return basic_ratio >= self.area_threshold

    @staticmethod
    def _decrement(counters: Dict[Cell, int], cell: Cell):
        count = counters.get(cell, 0) - 1
        if count > 0:
            counters[cell] = count
        else:
            counters.pop(cell, None)

    def update(self, counters: Dict[Cell, int], stats: Dict[Cell, CellStats], basic_ratio: float) -> List[Cell]:
        """
        Apply one tick to the counters in place.

        Returns:
            Cells that qualified for an increment this tick, row-major
        """
        if not self.basic_motion(basic_ratio):
            self.decay(counters)
            return []

        qualified = []
        for cell, cell_stats in stats.items():
            if cell_stats.ratio_percent >= self.cell_threshold:
                counters[cell] = counters.get(cell, 0) + 1
                qualified.append(cell)
            else:
                self._decrement(counters, cell)
        return _row_major(qualified)

    def decay(self, counters: Dict[Cell, int]):
        """Decrement every counter by one, pruning those that reach zero."""
        for cell in list(counters):
            self._decrement(counters, cell)

    def active_cells(self, counters: Dict[Cell, int]) -> List[Cell]:
        """Cells with persistent motion, row-major."""
        return _row_major(c for c, n in counters.items() if n >= self.persistence_threshold)

    def cell_state(self, counters: Dict[Cell, int], cell: Cell) -> str:
        count = counters.get(cell, 0)
        if count <= 0:
            return COLD
        if count >= self.persistence_threshold:
            return ACTIVE
        return WARMING
