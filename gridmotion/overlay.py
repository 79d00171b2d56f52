"""
Overlay geometry.

Maps active regions from detection-buffer coordinates into the area of a
viewport where the video is actually drawn (letterboxed or pillarboxed to
keep the source aspect ratio).
"""

from typing import Iterable, List

from gridmotion.regions import Rect


def fit_content_rect(view_width: int, view_height: int, source_width: int, source_height: int) -> Rect:
    """
    Centre a source-aspect rectangle inside the view.

    A wider view gets horizontal padding (pillarbox), a taller one
    vertical padding (letterbox). Degenerate sizes fall back to the full view.
    """
    if view_width <= 0 or view_height <= 0 or source_width <= 0 or source_height <= 0:
        return Rect(0, 0, max(0, view_width), max(0, view_height))

    # Compare aspect ratios by cross-multiplying to stay in integers
    if view_width * source_height > view_height * source_width:
        content_width = view_height * source_width // source_height
        padding = (view_width - content_width) // 2
        return Rect(padding, 0, view_width - padding, view_height)

    content_height = view_width * source_height // source_width
    padding = (view_height - content_height) // 2
    return Rect(0, padding, view_width, view_height - padding)


def scale_regions(
    regions: Iterable[Rect],
    source_width: int,
    source_height: int,
    content: Rect
) -> List[Rect]:
    """
    Scale detection-buffer rectangles into viewport coordinates.

    Args:
        regions: Rectangles in detection-buffer space
        source_width: Detection buffer width
        source_height: Detection buffer height
        content: Viewport area the video occupies

    Returns:
        Rectangles offset into the content area
    """
    if source_width <= 0 or source_height <= 0:
        return []

    scale_x = content.width / source_width
    scale_y = content.height / source_height
    return [r.scaled(scale_x, scale_y, content.left, content.top) for r in regions]
