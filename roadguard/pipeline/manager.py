# roadguard/pipeline/manager.py
from __future__ import annotations
from pathlib import Path
from typing import Callable, Dict, List, Optional
import logging

from roadguard.config import PipelineConfig, load_config
from roadguard.core.roi import SceneConstraintProvider
from roadguard.logging_utils import setup_logging
from roadguard.pipeline.driver import DetectionPipeline, PipelineStatus
from roadguard.pipeline.frames import FrameSource
from roadguard.specialists.detector import DetectorRegistry, YoloDetector

log = logging.getLogger(__name__)


class PipelineManager:
    """
    One DetectionPipeline per camera. All of them share a single detector
    registry (so a model is loaded once per process) and one scene table.
    """

    def __init__(self, cfg: Optional[PipelineConfig] = None,
                 registry: Optional[DetectorRegistry] = None):
        self.cfg = cfg or PipelineConfig()
        det_cfg = self.cfg.detector
        self.registry = registry or DetectorRegistry(
            lambda model_id: YoloDetector(model_id, device=det_cfg.device,
                                          imgsz=det_cfg.imgsz, max_det=det_cfg.max_det))
        self.scenes = SceneConstraintProvider.from_config(self.cfg.scenes)
        self._pipelines: Dict[str, DetectionPipeline] = {}

    @staticmethod
    def from_yaml(path: Optional[Path] = None,
                  registry: Optional[DetectorRegistry] = None) -> "PipelineManager":
        cfg = load_config(path)
        setup_logging(cfg.logging.get("level", "INFO"), cfg.logging.get("file"))
        return PipelineManager(cfg, registry)

    def cameras(self) -> List[str]:
        return list(self._pipelines)

    def enable(self, camera_id: str, frames: FrameSource, scene_id: Optional[str] = None,
               on_update: Optional[Callable[[PipelineStatus], None]] = None) -> DetectionPipeline:
        """Start (or restart) the camera's pipeline. Must run inside an event loop."""
        self.disable(camera_id)
        p = DetectionPipeline(
            self.registry, frames, self.cfg, self.scenes,
            scene_id=scene_id if scene_id is not None else camera_id,
            on_update=on_update, camera_id=camera_id,
        )
        self._pipelines[camera_id] = p
        p.enable()
        return p

    def disable(self, camera_id: str) -> None:
        p = self._pipelines.pop(camera_id, None)
        if p is not None:
            p.disable()

    def disable_all(self) -> None:
        for camera_id in list(self._pipelines):
            self.disable(camera_id)

    def status(self, camera_id: str) -> Optional[PipelineStatus]:
        p = self._pipelines.get(camera_id)
        return p.status if p is not None else None
