from gridmotion.overlay import fit_content_rect, scale_regions
from gridmotion.regions import Rect


def test_pillarbox_for_wide_view():
    assert fit_content_rect(1920, 720, 640, 480) == Rect(480, 0, 1440, 720)


def test_letterbox_for_tall_view():
    assert fit_content_rect(640, 960, 640, 480) == Rect(0, 240, 640, 720)


def test_matching_aspect_fills_view():
    assert fit_content_rect(1280, 720, 320, 180) == Rect(0, 0, 1280, 720)


def test_degenerate_source_uses_full_view():
    assert fit_content_rect(800, 600, 0, 0) == Rect(0, 0, 800, 600)


def test_scale_regions_into_content_area():
    content = Rect(480, 0, 1440, 720)
    scaled = scale_regions([Rect(0, 0, 40, 40), Rect(280, 200, 320, 240)], 320, 240, content)
    assert scaled == [Rect(480, 0, 600, 120), Rect(1320, 600, 1440, 720)]


def test_scale_regions_with_empty_source():
    assert scale_regions([Rect(0, 0, 1, 1)], 0, 10, Rect(0, 0, 10, 10)) == []
