from __future__ import annotations
from typing import Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .types import NormalizedBox

Point = Tuple[float, float]


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def iou(a: "NormalizedBox", b: "NormalizedBox") -> float:
    """Intersection over union of two x/y/width/height boxes."""
    ax1, ay1, ax2, ay2 = a.x, a.y, a.x + a.width, a.y + a.height
    bx1, by1, bx2, by2 = b.x, b.y, b.x + b.width, b.y + b.height
    iw = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    ih = max(0.0, min(ay2, by2) - max(ay1, by1))
    inter = iw * ih
    union = a.width * a.height + b.width * b.height - inter
    if union <= 0:
        return 0.0
    return min(1.0, inter / union)


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd ray casting; the last vertex connects back to the first."""
    if len(polygon) < 3:
        return False
    px, py = point
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > py) != (yj > py):
            x_cross = xi + (py - yi) * (xj - xi) / (yj - yi)
            if px < x_cross:
                inside = not inside
        j = i
    return inside
