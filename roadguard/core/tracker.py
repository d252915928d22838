from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set
import logging
import time

from .geometry import iou
from .types import Candidate, NormalizedBox, Track, TrackedBox

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingParams:
    match_iou: float = 0.25
    min_hits: int = 3
    max_misses: int = 4
    stable_max_misses: int = 1
    alpha: float = 0.35
    output_scale: float = 100.0
    id_prefix: str = "car"

    def __post_init__(self):
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in (0,1]")
        if not 0.0 <= self.match_iou <= 1.0:
            raise ValueError("match_iou must be in [0,1]")
        if self.max_misses < 0 or self.stable_max_misses < 0:
            raise ValueError("max_misses and stable_max_misses must be >= 0")
        if self.min_hits < 1:
            raise ValueError("min_hits must be >= 1")
        if self.stable_max_misses > self.max_misses:
            raise ValueError("stable_max_misses cannot exceed max_misses")

    @staticmethod
    def from_dict(d: Optional[Mapping[str, Any]], id_prefix: str = "car") -> "TrackingParams":
        d = d or {}
        base = TrackingParams()
        return TrackingParams(
            match_iou=float(d.get("match_iou", base.match_iou)),
            min_hits=int(d.get("min_hits", base.min_hits)),
            max_misses=int(d.get("max_misses", base.max_misses)),
            stable_max_misses=int(d.get("stable_max_misses", base.stable_max_misses)),
            alpha=float(d.get("alpha", base.alpha)),
            output_scale=float(d.get("output_scale", base.output_scale)),
            id_prefix=str(d.get("id_prefix", id_prefix)),
        )


class StableTracker:
    """
    Greedy IoU tracker tuned for flicker-free overlays:
      - one-to-one greedy match of candidates to existing tracks
      - EMA smoothing of matched geometry
      - a track is shown only after min_hits matches, and hidden (not
        dropped) while it misses a few ticks; dropped after max_misses
    """

    def __init__(self, params: Optional[TrackingParams] = None,
                 clock: Callable[[], float] = time.time):
        self.params = params or TrackingParams()
        self._clock = clock
        self._next = 1
        self._tracks: Dict[int, Track] = {}

    # public API
    @property
    def tracks(self) -> List[Track]:
        return [replace(t) for t in self._tracks.values()]

    def update(self, candidates: Sequence[Candidate], now: Optional[float] = None) -> List[TrackedBox]:
        now = self._clock() if now is None else now

        # 1) every track misses unless matched below
        existing = list(self._tracks.keys())
        for tr in self._tracks.values():
            tr.misses += 1

        # 2) match or spawn
        used: Set[int] = set()
        created = 0
        for cand in candidates:
            tid = self._best_match(cand.box, existing, used)
            if tid is None:
                self._create(cand, now)
                created += 1
            else:
                used.add(tid)
                self._update(self._tracks[tid], cand, now)

        # 3) drop stale
        stale = [tid for tid, tr in self._tracks.items() if tr.misses > self.params.max_misses]
        for tid in stale:
            del self._tracks[tid]

        log.debug("StableTracker: candidates=%d matched=%d created=%d dropped=%d live=%d",
                  len(candidates), len(used), created, len(stale), len(self._tracks))
        return self.confirmed()

    def confirmed(self) -> List[TrackedBox]:
        p = self.params
        return [
            self._emit(tr) for tr in sorted(self._tracks.values(), key=lambda t: t.track_id)
            if tr.hits >= p.min_hits and tr.misses <= p.stable_max_misses
        ]

    def reset(self) -> None:
        self._tracks.clear()

    # internals
    def _best_match(self, box: NormalizedBox, existing: List[int], used: Set[int]) -> Optional[int]:
        best_id, best_iou = None, 0.0
        for tid in existing:
            if tid in used:
                continue
            score = iou(box, self._tracks[tid].box)
            if score > best_iou:
                best_id, best_iou = tid, score
        if best_id is None or best_iou < self.params.match_iou:
            return None
        return best_id

    def _smooth(self, old: NormalizedBox, new: NormalizedBox) -> NormalizedBox:
        a = self.params.alpha
        return NormalizedBox(
            x=old.x + a * (new.x - old.x),
            y=old.y + a * (new.y - old.y),
            width=old.width + a * (new.width - old.width),
            height=old.height + a * (new.height - old.height),
        )

    def _update(self, tr: Track, cand: Candidate, now: float) -> None:
        tr.box = self._smooth(tr.box, cand.box)
        tr.confidence = cand.confidence
        tr.label = cand.label or tr.label
        tr.hits += 1
        tr.misses = 0
        tr.last_seen_at = now

    def _create(self, cand: Candidate, now: float) -> None:
        tid = self._next
        self._next += 1
        self._tracks[tid] = Track(track_id=tid, box=cand.box, confidence=cand.confidence,
                                  label=cand.label, hits=1, misses=0, last_seen_at=now)

    def _emit(self, tr: Track) -> TrackedBox:
        b = tr.box.scaled(self.params.output_scale)
        return TrackedBox(
            id=f"{self.params.id_prefix}-{tr.track_id}",
            tracking_id=tr.track_id,
            confidence=tr.confidence,
            x=b.x, y=b.y, width=b.width, height=b.height,
        )
