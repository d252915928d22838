import asyncio
from typing import List

import numpy as np
import pytest

from roadguard.core.types import PixelBox, RawDetection

# label, confidence, x, y, w, h as fractions of whatever frame the detector sees
CAR = ("car", 0.95, 0.3, 0.6, 0.2, 0.1)


class ScriptedDetector:
    """Plays back one entry per call; the last entry repeats. Exceptions are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0
        self.shapes: List[tuple] = []
        self.thresholds: List[float] = []

    async def detect(self, frame, threshold):
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        self.shapes.append(frame.shape)
        self.thresholds.append(threshold)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, asyncio.Event):
            await item.wait()
            item = [CAR]
        h, w = frame.shape[:2]
        return [
            RawDetection(label, conf, PixelBox(x * w, y * h, (x + bw) * w, (y + bh) * h))
            for label, conf, x, y, bw, bh in item
        ]


async def wait_for(pred, timeout=2.0):
    async def _poll():
        while not pred():
            await asyncio.sleep(0.002)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def frame():
    return np.zeros((720, 1280, 3), dtype=np.uint8)
