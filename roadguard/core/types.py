from __future__ import annotations
from dataclasses import dataclass

from .geometry import clamp


@dataclass(frozen=True)
class PixelBox:
    xmin: float
    ymin: float
    xmax: float
    ymax: float


@dataclass(frozen=True)
class RawDetection:
    label: str
    confidence: float
    box: PixelBox


@dataclass(frozen=True)
class NormalizedBox:
    """Top-left corner plus size, all as fractions of the frame."""
    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @staticmethod
    def from_pixels(box: PixelBox, frame_w: int, frame_h: int) -> "NormalizedBox":
        # clamp corners to the frame before converting, so a box that spills
        # over the edge keeps only its visible part
        xmin = clamp(box.xmin, 0, frame_w); xmax = clamp(box.xmax, 0, frame_w)
        ymin = clamp(box.ymin, 0, frame_h); ymax = clamp(box.ymax, 0, frame_h)
        return NormalizedBox(
            x=xmin / frame_w,
            y=ymin / frame_h,
            width=max(0.0, xmax - xmin) / frame_w,
            height=max(0.0, ymax - ymin) / frame_h,
        )

    def scaled(self, factor: float) -> "NormalizedBox":
        return NormalizedBox(self.x * factor, self.y * factor,
                             self.width * factor, self.height * factor)


@dataclass(frozen=True)
class Candidate:
    box: NormalizedBox
    confidence: float
    label: str = ""


@dataclass
class Track:
    track_id: int
    box: NormalizedBox
    confidence: float
    label: str = ""
    hits: int = 1
    misses: int = 0
    last_seen_at: float = 0.0


@dataclass(frozen=True)
class TrackedBox:
    """A confirmed track as handed to the overlay (percent of frame by default)."""
    id: str
    tracking_id: int
    confidence: float
    x: float
    y: float
    width: float
    height: float
