from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
import logging

from .geometry import clamp, lerp, point_in_polygon
from .roi import SceneConstraint
from .types import NormalizedBox

log = logging.getLogger(__name__)

# fractions along the bottom edge that must touch the ground polygon
GROUND_POINTS = (0.25, 0.5, 0.75)
# boxes clamped to the frame sit on the polygon's bottom edge; test just above it
GROUND_EPS = 1e-6


@dataclass(frozen=True)
class Bounds:
    min: float
    max: float

    def __post_init__(self):
        if self.min > self.max:
            raise ValueError(f"inverted bounds [{self.min}, {self.max}]")

    def __contains__(self, v: float) -> bool:
        return self.min <= v <= self.max

    @staticmethod
    def parse(v: Any, default: "Bounds") -> "Bounds":
        if v is None:
            return default
        if isinstance(v, Mapping):
            return Bounds(float(v.get("min", default.min)), float(v.get("max", default.max)))
        lo, hi = v
        return Bounds(float(lo), float(hi))


@dataclass(frozen=True)
class BoxShape:
    """Shape limits for the target class, relative to the frame. Defaults fit cars."""
    aspect_ratio: Bounds = field(default_factory=lambda: Bounds(1.1, 4.8))
    area: Bounds = field(default_factory=lambda: Bounds(0.0025, 0.18))
    width: Bounds = field(default_factory=lambda: Bounds(0.03, 0.55))
    height: Bounds = field(default_factory=lambda: Bounds(0.02, 0.35))

    @staticmethod
    def from_dict(d: Optional[Mapping[str, Any]]) -> "BoxShape":
        d = d or {}
        base = BoxShape()
        return BoxShape(
            aspect_ratio=Bounds.parse(d.get("aspect_ratio"), base.aspect_ratio),
            area=Bounds.parse(d.get("area"), base.area),
            width=Bounds.parse(d.get("width"), base.width),
            height=Bounds.parse(d.get("height"), base.height),
        )


class BoxValidator:
    """
    Accept/reject a normalized box as a plausible on-road vehicle.

    Shape checks always apply. When a scene constraint is given, the bottom
    edge (ground contact) must sit below the horizon and inside the ground
    polygon, and the size must fit the perspective bounds at that depth.
    Rejections are only logged at DEBUG; nothing here raises for a bad box.
    """

    def __init__(self, shape: Optional[BoxShape] = None):
        self.shape = shape or BoxShape()

    def accepts(self, box: NormalizedBox, scene: Optional[SceneConstraint] = None) -> bool:
        if not self._shape_ok(box):
            log.debug("BoxValidator: rejected by shape %s", box)
            return False
        if scene is not None and not self._scene_ok(box, scene):
            log.debug("BoxValidator: rejected by scene %s", box)
            return False
        return True

    def _shape_ok(self, box: NormalizedBox) -> bool:
        w, h = box.width, box.height
        if w <= 0 or h <= 0:
            return False
        s = self.shape
        return (w / h) in s.aspect_ratio and (w * h) in s.area and w in s.width and h in s.height

    def _scene_ok(self, box: NormalizedBox, scene: SceneConstraint) -> bool:
        bottom = box.bottom
        ground_y = min(bottom, 1.0 - GROUND_EPS)
        if scene.horizon_y is not None and bottom < scene.horizon_y:
            return False

        if scene.ground_polygon is not None:
            for f in GROUND_POINTS:
                if not point_in_polygon((box.x + f * box.width, ground_y), scene.ground_polygon):
                    return False

        p = scene.perspective
        if p is not None:
            horizon = scene.horizon_y or 0.0
            t = clamp((bottom - horizon) / (1.0 - horizon), 0.0, 1.0)
            if not lerp(*p.min_height, t) <= box.height <= lerp(*p.max_height, t):
                return False
            if not lerp(*p.min_width, t) <= box.width <= lerp(*p.max_width, t):
                return False
        return True
