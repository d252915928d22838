from __future__ import annotations
from typing import List, Sequence
import numpy as np

from .geometry import iou
from .types import Candidate


def nms(candidates: Sequence[Candidate], iou_thr: float) -> List[Candidate]:
    """
    Greedy NMS: walk candidates by descending confidence and keep one only if
    it overlaps every kept candidate by less than iou_thr. Equal confidences
    keep their input order.
    """
    if not candidates:
        return []
    scores = np.array([c.confidence for c in candidates], dtype=np.float64)
    order = np.argsort(-scores, kind="stable")
    kept: List[Candidate] = []
    for i in order:
        c = candidates[int(i)]
        if all(iou(c.box, k.box) < iou_thr for k in kept):
            kept.append(c)
    return kept
