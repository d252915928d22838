# roadguard/config.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Optional
import os
import yaml

from roadguard.core.tracker import TrackingParams
from roadguard.core.validator import BoxShape

DEFAULT_CFG = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"
CFG_PATH = Path(os.getenv("ROADGUARD_CFG", str(DEFAULT_CFG)))


@dataclass(frozen=True)
class DetectorConfig:
    model: str = "yolov8n.pt"
    device: str = "cpu"
    imgsz: int = 640
    max_det: int = 100
    confidence: float = 0.92
    max_frame_width: int = 640

    @staticmethod
    def from_dict(d: Optional[Mapping[str, Any]]) -> "DetectorConfig":
        d = d or {}
        base = DetectorConfig()
        conf = float(d.get("confidence", base.confidence))
        if not 0.0 <= conf <= 1.0:
            raise ValueError("detector.confidence must be in [0,1]")
        return DetectorConfig(
            model=str(d.get("model", base.model)),
            device=str(d.get("device", base.device)),
            imgsz=int(d.get("imgsz", base.imgsz)),
            max_det=int(d.get("max_det", base.max_det)),
            confidence=conf,
            max_frame_width=int(d.get("max_frame_width", base.max_frame_width)),
        )


@dataclass(frozen=True)
class PipelineConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    labels: FrozenSet[str] = frozenset({"car", "automobile"})
    interval_ms: int = 350
    nms_iou: float = 0.45
    box: BoxShape = field(default_factory=BoxShape)
    tracking: TrackingParams = field(default_factory=TrackingParams)
    scenes: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 < self.nms_iou <= 1.0:
            raise ValueError("nms_iou must be in (0,1]")
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

    @property
    def interval_sec(self) -> float:
        return self.interval_ms / 1000.0

    @staticmethod
    def from_dict(cfg: Optional[Mapping[str, Any]]) -> "PipelineConfig":
        cfg = cfg or {}
        labels = cfg.get("labels") or ["car", "automobile"]
        if isinstance(labels, str):
            labels = [labels]
        interval_ms = int(cfg.get("interval_ms", 350))
        return PipelineConfig(
            detector=DetectorConfig.from_dict(cfg.get("detector")),
            labels=frozenset(str(l).lower() for l in labels),
            interval_ms=interval_ms,
            nms_iou=float(cfg.get("nms_iou", 0.45)),
            box=BoxShape.from_dict(cfg.get("box")),
            tracking=TrackingParams.from_dict(cfg.get("tracking"), str(cfg.get("id_prefix", "car"))),
            scenes=dict(cfg.get("scenes") or {}),
            logging=dict(cfg.get("logging") or {}),
        )


def load_config(path: Optional[Path] = None) -> PipelineConfig:
    with open(path or CFG_PATH, "r", encoding="utf-8") as f:
        return PipelineConfig.from_dict(yaml.safe_load(f))
