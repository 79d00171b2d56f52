import pytest

from gridmotion.config import MotionConfig


@pytest.fixture
def motion_config():
    return MotionConfig(
        pixel_threshold=30,
        area_threshold=0.2,
        cell_multiplier=2.0,
        persistence_threshold=2,
        grid_x=8,
        grid_y=6,
        downscale=1.0,
    )
