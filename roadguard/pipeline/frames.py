from __future__ import annotations
from typing import Optional, Protocol
import threading
import numpy as np
import cv2


class FrameSource(Protocol):
    def is_ready(self) -> bool: ...

    def read(self) -> Optional[np.ndarray]: ...


def _has_pixels(frame: Optional[np.ndarray]) -> bool:
    return frame is not None and frame.ndim >= 2 and frame.shape[0] > 0 and frame.shape[1] > 0


class LatestFrameSource:
    """Holds the most recent BGR frame from whatever capture loop feeds it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None

    def put(self, frame: Optional[np.ndarray]) -> None:
        with self._lock:
            self._frame = frame

    def is_ready(self) -> bool:
        with self._lock:
            return _has_pixels(self._frame)

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame if _has_pixels(self._frame) else None


def cap_width(img: np.ndarray, max_width: int) -> np.ndarray:
    """Resize keeping aspect ratio if wider than max_width."""
    h, w = img.shape[:2]
    if not max_width or w <= max_width:
        return img
    s = max_width / float(w)
    return cv2.resize(img, (int(max_width), max(1, int(round(h * s)))), interpolation=cv2.INTER_AREA)
