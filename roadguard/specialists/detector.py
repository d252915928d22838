from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Protocol
import asyncio
import logging
import os
import numpy as np

from roadguard.core.types import PixelBox, RawDetection

log = logging.getLogger(__name__)


class Detector(Protocol):
    """Stateless per-frame object detector. Boxes are in the pixels of `frame`."""

    async def detect(self, frame: np.ndarray, threshold: float) -> List[RawDetection]: ...


class YoloDetector:
    """
    Ultralytics YOLO wrapper. Loading is blocking (weights may be downloaded),
    so construct it off the event loop; inference runs in a worker thread.
    """

    def __init__(self, weights: str = "yolov8n.pt", device: str = "cpu",
                 imgsz: int = 640, max_det: int = 100, iou: float = 0.7):
        self.weights = weights
        self.device = device
        self.imgsz = int(imgsz)
        self.max_det = int(max_det)
        self.iou = float(iou)

        # Threading: keep CPU predictable
        os.environ.setdefault("OMP_NUM_THREADS", "1")
        os.environ.setdefault("OPENBLAS_NUM_THREADS", "1")

        from ultralytics import YOLO
        self.model = YOLO(self.weights)
        self.names: Dict[int, str] = getattr(self.model, "names", {}) or {}
        # Warm-up
        self._predict(np.zeros((self.imgsz, self.imgsz, 3), dtype=np.uint8), 0.5)
        log.info("YoloDetector ready (weights=%s, device=%s, classes=%d)",
                 self.weights, self.device, len(self.names))

    def _predict(self, frame: np.ndarray, threshold: float) -> List[RawDetection]:
        results = self.model.predict(
            source=frame,
            conf=float(threshold),
            imgsz=self.imgsz,
            device=self.device,
            iou=self.iou,
            max_det=self.max_det,
            verbose=False,
        )
        out: List[RawDetection] = []
        if not results or results[0].boxes is None:
            return out
        res = results[0]
        for b, conf, cid in zip(
            res.boxes.xyxy.cpu().numpy(),
            res.boxes.conf.cpu().numpy(),
            res.boxes.cls.cpu().numpy().astype(int),
        ):
            x1, y1, x2, y2 = (float(v) for v in b)
            name = self.names.get(int(cid), str(int(cid)))
            out.append(RawDetection(name, float(conf), PixelBox(x1, y1, x2, y2)))
        return out

    async def detect(self, frame: np.ndarray, threshold: float) -> List[RawDetection]:
        dets = await asyncio.to_thread(self._predict, frame, threshold)
        log.debug("YoloDetector: %d detections", len(dets))
        return dets


DetectorFactory = Callable[[str], Detector]


class DetectorRegistry:
    """
    Lazily loaded detectors shared by every pipeline in the process, one per
    model id. Concurrent callers wait on a single load task; a caller being
    cancelled does not cancel the load. A failed load is forgotten so the
    next caller tries again.
    """

    def __init__(self, factory: Optional[DetectorFactory] = None):
        self._factory: DetectorFactory = factory or (lambda model_id: YoloDetector(model_id))
        self._detectors: Dict[str, Detector] = {}
        self._loads: Dict[str, asyncio.Task] = {}

    def loaded(self, model_id: str) -> bool:
        return model_id in self._detectors

    async def get(self, model_id: str) -> Detector:
        det = self._detectors.get(model_id)
        if det is not None:
            return det
        task = self._loads.get(model_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._load(model_id), name=f"load-{model_id}")
            task.add_done_callback(self._load_done)
            self._loads[model_id] = task
        return await asyncio.shield(task)

    async def _load(self, model_id: str) -> Detector:
        log.info("Loading detector %s", model_id)
        try:
            det = await asyncio.to_thread(self._factory, model_id)
        finally:
            self._loads.pop(model_id, None)
        self._detectors[model_id] = det
        return det

    @staticmethod
    def _load_done(task: asyncio.Task) -> None:
        # retrieve the exception even when every waiter was cancelled
        if not task.cancelled() and task.exception() is not None:
            log.warning("Detector load %s failed: %s", task.get_name(), task.exception())

    def drop(self, model_id: str) -> Any:
        return self._detectors.pop(model_id, None)
