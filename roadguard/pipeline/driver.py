# roadguard/pipeline/driver.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import asyncio
import logging
import time

from roadguard.config import PipelineConfig
from roadguard.core.nms import nms
from roadguard.core.roi import SceneConstraintProvider
from roadguard.core.tracker import StableTracker
from roadguard.core.types import Candidate, NormalizedBox, RawDetection, TrackedBox
from roadguard.core.validator import BoxValidator
from roadguard.pipeline.frames import FrameSource, cap_width
from roadguard.specialists.detector import Detector, DetectorRegistry

log = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load detection model"
TICK_FAILED = "Detection failed"


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DETECTING = "detecting"
    UPDATING = "updating"
    SCHEDULED = "scheduled"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineStatus:
    state: PipelineState
    tracks: Tuple[TrackedBox, ...]
    is_model_loading: bool
    error: Optional[str]


class _RunToken:
    """Per-enable cancellation flag; a run only touches status while not cancelled."""
    __slots__ = ("cancelled",)

    def __init__(self):
        self.cancelled = False


class DetectionPipeline:
    """
    Periodic detect -> filter -> NMS -> track loop for one video source.

    Runs as a single asyncio task: one tick at a time, the next one scheduled
    `interval_ms` after the previous finished. Load failures stop the run;
    tick failures are reported in `status.error` and the loop carries on.
    Every enable() starts with a fresh tracker.
    """

    def __init__(
        self,
        detectors: DetectorRegistry,
        frames: FrameSource,
        config: Optional[PipelineConfig] = None,
        scenes: Optional[SceneConstraintProvider] = None,
        scene_id: Optional[str] = None,
        on_update: Optional[Callable[[PipelineStatus], None]] = None,
        camera_id: str = "default",
    ):
        self.config = config or PipelineConfig()
        self.detectors = detectors
        self.frames = frames
        self.scenes = scenes or SceneConstraintProvider.from_config(self.config.scenes)
        self.scene_id = scene_id
        self.on_update = on_update
        self.camera_id = camera_id
        self.validator = BoxValidator(self.config.box)

        self._state = PipelineState.IDLE
        self._tracks: Tuple[TrackedBox, ...] = ()
        self._loading = False
        self._error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[_RunToken] = None

    # ----------------- status -----------------

    @property
    def status(self) -> PipelineStatus:
        return PipelineStatus(self._state, self._tracks, self._loading, self._error)

    @property
    def enabled(self) -> bool:
        return self._task is not None and not self._task.done()

    def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.status)
        except Exception:
            log.exception("camera=%s on_update callback failed", self.camera_id)

    # ----------------- lifecycle -----------------

    def enable(self) -> asyncio.Task:
        """Start the loop on the running event loop. No-op while already running."""
        if self.enabled:
            return self._task  # type: ignore[return-value]
        token = _RunToken()
        self._token = token
        self._error = None
        self._task = asyncio.get_running_loop().create_task(
            self._run(token), name=f"roadguard-{self.camera_id}")
        log.info("camera=%s pipeline enabled (scene=%s)", self.camera_id, self.scene_id)
        return self._task

    def disable(self) -> None:
        """Stop scheduling, discard any in-flight result and clear the tracks."""
        token, task = self._token, self._task
        self._token = self._task = None
        if token is not None:
            token.cancelled = True
        if task is not None and not task.done():
            task.cancel()
        self._tracks = ()
        self._loading = False
        self._state = PipelineState.IDLE
        log.info("camera=%s pipeline disabled", self.camera_id)
        self._notify()

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    # ----------------- loop -----------------

    async def _run(self, token: _RunToken) -> None:
        self._loading = True
        self._state = PipelineState.LOADING
        self._notify()
        model_id = self.config.detector.model
        try:
            detector = await self.detectors.get(model_id)
        except Exception as e:
            if token.cancelled:
                return
            log.exception("camera=%s failed to load detector %s", self.camera_id, model_id)
            self._error = str(e) or LOAD_FAILED
            self._loading = False
            self._state = PipelineState.ERROR
            self._notify()
            return
        if token.cancelled:
            return

        self._loading = False
        self._state = PipelineState.READY
        self._notify()
        tracker = StableTracker(self.config.tracking)

        while not token.cancelled:
            try:
                await self.tick(detector, tracker, token)
            except Exception as e:
                if token.cancelled:
                    break
                log.warning("camera=%s tick failed: %s", self.camera_id, e)
                self._error = str(e) or TICK_FAILED
                self._notify()
            if token.cancelled:
                break
            self._state = PipelineState.SCHEDULED
            await asyncio.sleep(self.config.interval_sec)

    async def tick(self, detector: Detector, tracker: StableTracker, token: _RunToken) -> bool:
        """One frame through the pipeline. Returns False when skipped or cancelled."""
        frame = self.frames.read() if self.frames.is_ready() else None
        if frame is None:
            log.debug("camera=%s frame source not ready; skipping tick", self.camera_id)
            return False

        t0 = time.perf_counter()
        small = cap_width(frame, self.config.detector.max_frame_width)
        h, w = small.shape[:2]

        self._state = PipelineState.DETECTING
        raw = await detector.detect(small, threshold=self.config.detector.confidence)
        t1 = time.perf_counter()
        if token.cancelled:
            return False

        self._state = PipelineState.UPDATING
        candidates = self.candidates(raw, w, h)
        kept = nms(candidates, self.config.nms_iou)
        tracks = tracker.update(kept)
        t2 = time.perf_counter()
        if token.cancelled:
            return False

        self._tracks = tuple(tracks)
        self._error = None
        self._notify()
        log.debug("timings camera=%s raw=%d valid=%d kept=%d shown=%d detect=%.3f update=%.3f",
                  self.camera_id, len(raw), len(candidates), len(kept), len(tracks),
                  (t1 - t0), (t2 - t1))
        return True

    def candidates(self, raw: Sequence[RawDetection], frame_w: int, frame_h: int) -> List[Candidate]:
        """Class filter, normalize, confidence floor, shape and scene validation."""
        scene = self.scenes.lookup(self.scene_id)
        threshold = self.config.detector.confidence
        out: List[Candidate] = []
        for r in raw:
            if str(r.label).lower() not in self.config.labels or r.confidence < threshold:
                continue
            box = NormalizedBox.from_pixels(r.box, frame_w, frame_h)
            if self.validator.accepts(box, scene):
                out.append(Candidate(box, r.confidence, r.label))
        return out
