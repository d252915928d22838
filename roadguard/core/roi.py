from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
import logging
import numpy as np

from .geometry import Point

log = logging.getLogger(__name__)

DEFAULT_SCENE = "default"

Range = Tuple[float, float]  # (at_horizon, at_bottom)


def _ensure_points(arr: Sequence[Point]) -> Tuple[Point, ...]:
    a = np.asarray(arr, dtype=np.float64)
    if a.ndim != 2 or a.shape[1] != 2:
        raise ValueError("Expected Nx2 points")
    if a.shape[0] < 3:
        raise ValueError("Ground polygon needs at least 3 points")
    if (a < 0).any() or (a > 1).any():
        raise ValueError("Ground polygon must be normalized to [0,1]")
    return tuple((float(x), float(y)) for x, y in a)


def _range(v: Any, name: str) -> Range:
    lo_hi = tuple(float(x) for x in v)
    if len(lo_hi) != 2:
        raise ValueError(f"{name} must be [at_horizon, at_bottom]")
    return lo_hi  # type: ignore[return-value]


@dataclass(frozen=True)
class PerspectiveBounds:
    """
    Allowed box size as a function of depth. Each field is the bound at the
    horizon and at the bottom of the frame; values in between are lerped.
    """
    min_height: Range = (0.0, 0.0)
    max_height: Range = (1.0, 1.0)
    min_width: Range = (0.0, 0.0)
    max_width: Range = (1.0, 1.0)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "PerspectiveBounds":
        kw = {k: _range(d[k], k) for k in ("min_height", "max_height", "min_width", "max_width") if k in d}
        return PerspectiveBounds(**kw)


@dataclass(frozen=True)
class SceneConstraint:
    """Where a valid vehicle may sit in one camera's view. Empty = accept all."""
    horizon_y: Optional[float] = None
    ground_polygon: Optional[Tuple[Point, ...]] = None
    perspective: Optional[PerspectiveBounds] = None

    @staticmethod
    def from_dict(d: Optional[Mapping[str, Any]]) -> "SceneConstraint":
        d = d or {}
        horizon = d.get("horizon_y")
        if horizon is not None:
            horizon = float(horizon)
            if not 0.0 <= horizon < 1.0:
                raise ValueError("horizon_y must be in [0,1)")
        poly = d.get("ground_polygon")
        persp = d.get("perspective")
        return SceneConstraint(
            horizon_y=horizon,
            ground_polygon=_ensure_points(poly) if poly else None,
            perspective=PerspectiveBounds.from_dict(persp) if persp else None,
        )


class SceneConstraintProvider:
    """Resolves a scene/camera id to its constraint, falling back to a default."""

    def __init__(self, scenes: Optional[Mapping[str, SceneConstraint]] = None,
                 default: Optional[SceneConstraint] = None):
        self._scenes: Dict[str, SceneConstraint] = dict(scenes or {})
        self._default = default or self._scenes.pop(DEFAULT_SCENE, None) or SceneConstraint()

    @staticmethod
    def from_config(cfg: Optional[Mapping[str, Any]]) -> "SceneConstraintProvider":
        scenes = {str(k): SceneConstraint.from_dict(v) for k, v in (cfg or {}).items()}
        log.info("Loaded %d scene constraint(s)", len(scenes))
        return SceneConstraintProvider(scenes)

    @property
    def default(self) -> SceneConstraint:
        return self._default

    def lookup(self, scene_id: Optional[str]) -> SceneConstraint:
        if scene_id is None:
            return self._default
        scene = self._scenes.get(scene_id)
        if scene is None:
            log.debug("No scene constraint for %r; using default", scene_id)
            return self._default
        return scene
