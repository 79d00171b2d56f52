import numpy as np

from gridmotion.frames import ColorFrame, GrayscaleFrame


def color_frame(width, height, value=100, channels=4):
    pixels = np.full((height, width, channels), value, dtype=np.uint8)
    if channels == 4:
        pixels[..., 3] = 255
    return ColorFrame(width=width, height=height, pixels=pixels)


def gray_frame(width, height, value=100):
    return GrayscaleFrame(width=width, height=height, samples=np.full((height, width), value, dtype=np.uint8))


def paint(frame, left, top, right, bottom, value):
    """Copy of a colour frame with a rectangle set to value (RGB only)."""
    pixels = frame.pixels.copy()
    pixels[top:bottom, left:right, :3] = value
    return ColorFrame(width=frame.width, height=frame.height, pixels=pixels)
