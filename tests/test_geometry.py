import pytest

from roadguard.core.geometry import clamp, iou, lerp, point_in_polygon
from roadguard.core.types import NormalizedBox, PixelBox

BOXES = [
    NormalizedBox(0.1, 0.1, 0.2, 0.1),
    NormalizedBox(0.15, 0.12, 0.2, 0.1),
    NormalizedBox(0.6, 0.6, 0.3, 0.2),
    NormalizedBox(0.0, 0.0, 1.0, 1.0),
    NormalizedBox(0.3, 0.3, 0.0, 0.1),
]


def test_iou_symmetric_and_bounded():
    for a in BOXES:
        for b in BOXES:
            v = iou(a, b)
            assert v == pytest.approx(iou(b, a))
            assert 0.0 <= v <= 1.0


def test_iou_identity():
    for b in BOXES[:4]:
        assert iou(b, b) == pytest.approx(1.0)
        assert iou(b, b) <= 1.0


def test_iou_known_value():
    a = NormalizedBox(0.0, 0.0, 0.2, 0.2)
    b = NormalizedBox(0.1, 0.0, 0.2, 0.2)
    # overlap 0.1*0.2 over union 0.04+0.04-0.02
    assert iou(a, b) == pytest.approx(0.02 / 0.06)


def test_iou_zero_area_is_zero():
    z = NormalizedBox(0.5, 0.5, 0.0, 0.0)
    assert iou(z, z) == 0.0


def test_point_in_polygon():
    square = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    assert point_in_polygon((0.5, 0.5), square)
    assert not point_in_polygon((1.5, 0.5), square)
    trapezoid = [(0.0, 1.0), (0.3, 0.4), (0.7, 0.4), (1.0, 1.0)]
    assert point_in_polygon((0.5, 0.8), trapezoid)
    assert not point_in_polygon((0.05, 0.5), trapezoid)


def test_point_in_degenerate_polygon():
    assert not point_in_polygon((0.5, 0.5), [(0.0, 0.0), (1.0, 1.0)])


def test_clamp_and_lerp():
    assert clamp(5, 0, 3) == 3
    assert clamp(-1, 0, 3) == 0
    assert clamp(0.4, 0, 1) == 0.4
    assert lerp(2.0, 4.0, 0.5) == 3.0
    assert lerp(2.0, 4.0, 0.0) == 2.0


def test_normalized_from_pixels_clamps_to_frame():
    b = NormalizedBox.from_pixels(PixelBox(-20, 10, 100, 120), 200, 100)
    assert b.x == 0.0
    assert b.y == pytest.approx(0.1)
    assert b.width == pytest.approx(0.5)
    assert b.height == pytest.approx(0.9)


def test_iou_never_exceeds_one_from_rounding():
    b = NormalizedBox(0.6, 0.6, 0.3, 0.2)
    assert iou(b, b) == 1.0
