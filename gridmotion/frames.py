"""
Frame Module.

Frame containers and the preprocessing stage of the motion pipeline.

Captured frames arrive as full-resolution RGB/RGBA buffers. Before they
can be compared they are reduced to a small grayscale buffer:
1. Average the colour channels into a single intensity (alpha ignored)
2. Area-resize to the configured downscale factor

All arithmetic is integer, so preprocessing the same frame twice yields
bit-identical output.
"""

from dataclasses import dataclass

import numpy as np


class GridMotionError(Exception):
    """Base class for motion detection errors."""


class InvalidFrameError(GridMotionError):
    """Raised for a malformed or zero-dimension frame."""


class CaptureError(GridMotionError):
    """Raised when a frame source cannot deliver a snapshot."""


@dataclass(frozen=True, eq=False)
class ColorFrame:
    """
    A full-resolution colour frame.

    pixels is a uint8 array shaped (height, width, channels) where
    channels is 3 (RGB) or 4 (RGBA).
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidFrameError(f"Invalid frame dimensions {self.width}x{self.height}")
        shape = getattr(self.pixels, "shape", None)
        if shape is None or len(shape) != 3 or shape[:2] != (self.height, self.width) or shape[2] not in (3, 4):
            raise InvalidFrameError(
                f"Pixel buffer shape {shape} does not match {self.width}x{self.height} RGB/RGBA"
            )
        if self.pixels.dtype != np.uint8:
            raise InvalidFrameError(f"Pixel buffer must be uint8, got {self.pixels.dtype}")

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int, channels: int = 4) -> "ColorFrame":
        """
        Build a frame from a raw interleaved buffer.

        Args:
            data: Raw pixel bytes (width * height * channels)
            width: Frame width in pixels
            height: Frame height in pixels
            channels: 3 for RGB, 4 for RGBA
        """
        if width <= 0 or height <= 0:
            raise InvalidFrameError(f"Invalid frame dimensions {width}x{height}")
        try:
            pixels = np.frombuffer(data, dtype=np.uint8).reshape((height, width, channels))
        except ValueError as e:
            raise InvalidFrameError(f"Buffer does not hold a {width}x{height}x{channels} frame: {e}") from e
        return cls(width=width, height=height, pixels=pixels)


@dataclass(frozen=True, eq=False)
class GrayscaleFrame:
    """
    A single-channel frame used for comparison.

    samples is a read-only uint8 array shaped (height, width); flattened
    it is the row-major sequence of intensities. A flat sequence of
    width * height values is accepted as well.
    """
    width: int
    height: int
    samples: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidFrameError(f"Invalid frame dimensions {self.width}x{self.height}")
        raw = np.asarray(self.samples)
        if raw.size and not np.issubdtype(raw.dtype, np.number):
            raise InvalidFrameError(f"Samples must be numeric, got {raw.dtype}")
        if raw.size and (raw.min() < 0 or raw.max() > 255):
            raise InvalidFrameError("Sample values must be within 0-255")

        # Flat row-major sequence
        if raw.ndim == 1 and raw.size == self.width * self.height:
            raw = raw.reshape((self.height, self.width))
        if raw.shape != (self.height, self.width):
            raise InvalidFrameError(
                f"Sample buffer shape {raw.shape} does not match {self.width}x{self.height}"
            )
        samples = np.array(raw, dtype=np.uint8, copy=True)
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)

    @property
    def size(self):
        return (self.width, self.height)

    def __eq__(self, other):
        if not isinstance(other, GrayscaleFrame):
            return NotImplemented
        return self.size == other.size and np.array_equal(self.samples, other.samples)

    __hash__ = None


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Average the R, G and B channels of an (h, w, c) array into uint8."""
    rgb = pixels[..., :3].astype(np.uint16)
    return (rgb.sum(axis=2) // 3).astype(np.uint8)


def _bin_starts(length: int, bins: int) -> np.ndarray:
    return (np.arange(bins, dtype=np.int64) * length) // bins


def area_resize(gray: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    """
    Shrink a 2D uint8 array by averaging the source pixels covered by each
    destination pixel. Only downscaling is supported.
    """
    height, width = gray.shape
    if new_width > width or new_height > height:
        raise ValueError(f"Cannot area-resize {width}x{height} up to {new_width}x{new_height}")
    if (new_width, new_height) == (width, height):
        return gray.copy()

    row_starts = _bin_starts(height, new_height)
    col_starts = _bin_starts(width, new_width)

    sums = np.add.reduceat(gray.astype(np.int64), row_starts, axis=0)
    sums = np.add.reduceat(sums, col_starts, axis=1)

    row_counts = np.diff(np.append(row_starts, height))
    col_counts = np.diff(np.append(col_starts, width))
    counts = np.outer(row_counts, col_counts)

    # Round half up
    return ((sums + counts // 2) // counts).astype(np.uint8)


def scaled_size(width: int, height: int, downscale: float):
    """Dimensions of a frame after applying the downscale factor."""
    return max(1, int(round(width * downscale))), max(1, int(round(height * downscale)))


def preprocess(frame: ColorFrame, downscale: float = 0.5) -> GrayscaleFrame:
    """
    Convert a colour frame to a downscaled grayscale frame.

    The input frame is not modified.

    Args:
        frame: Full-resolution colour frame
        downscale: Scale factor in (0, 1]

    Returns:
        GrayscaleFrame of size max(1, round(w * downscale)) x max(1, round(h * downscale))

    Raises:
        InvalidFrameError: if the frame has non-positive dimensions
    """
    if frame.width <= 0 or frame.height <= 0:
        raise InvalidFrameError(f"Invalid frame dimensions {frame.width}x{frame.height}")
    if not 0 < downscale <= 1:
        raise ValueError(f"downscale must be within (0, 1], got {downscale}")

    gray = to_grayscale(frame.pixels)
    new_width, new_height = scaled_size(frame.width, frame.height, downscale)
    samples = area_resize(gray, new_width, new_height)
    return GrayscaleFrame(width=new_width, height=new_height, samples=samples)
