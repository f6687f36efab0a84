"""
Aggregation of per-frame liveness results into one session verdict.

Decision rule, first match wins:
  1. live frames >= spoof frames -> live
  2. otherwise live only if the spoof frames are unsure (mean raw spoof
     confidence below the threshold) and at least `min_live_count` frames
     were live.

Rule 2 averages the raw confidence of the spoof frames, while the reported
confidence percentage uses every frame projected onto the is-live scale.
Borderline verdicts depend on that asymmetry; keep both scales as they are.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from smart_liveness.app.utils import round_half_up
from smart_liveness.models.base import FrameResult, Verdict
from smart_liveness.models.errors import InvalidFrameError


@dataclass(frozen=True)
class DecisionThresholds:
    spoof_confidence_threshold: float = 0.6
    min_live_count: int = 2

    @classmethod
    def from_config(cls, decision) -> "DecisionThresholds":
        return cls(float(decision.spoof_confidence_threshold), int(decision.min_live_count))


def validate_frames(frames: Sequence[FrameResult], required_count: Optional[int] = None):
    if not frames:
        raise InvalidFrameError("cannot aggregate an empty frame list")
    if required_count is not None and len(frames) != required_count:
        raise InvalidFrameError(f"expected {required_count} frames, got {len(frames)}")
    for i, f in enumerate(frames):
        if not isinstance(f, FrameResult):
            raise InvalidFrameError(f"frame {i} is not a FrameResult: {type(f).__name__}")


class DecisionEngine:
    def __init__(self, thresholds: Optional[DecisionThresholds] = None):
        self.thresholds = thresholds or DecisionThresholds()

    def is_live(self, frames: Sequence[FrameResult]) -> bool:
        live_count = sum(1 for f in frames if f.is_live)
        spoof_count = len(frames) - live_count
        if live_count >= spoof_count:
            return True
        # spoof_count > live_count here, so there is at least one spoof frame
        avg_spoof_confidence = float(np.mean([f.confidence for f in frames if not f.is_live]))
        return avg_spoof_confidence < self.thresholds.spoof_confidence_threshold and (
            live_count >= self.thresholds.min_live_count
        )

    def decide(self, frames: Sequence[FrameResult], required_count: Optional[int] = None) -> Verdict:
        validate_frames(frames, required_count)
        n = len(frames)
        live_count = sum(1 for f in frames if f.is_live)
        avg_confidence = float(np.mean([f.live_confidence for f in frames]))
        avg_quality = float(np.mean([f.quality_score for f in frames]))
        return Verdict(
            is_live=self.is_live(frames),
            live_percentage=round_half_up(live_count * 100.0 / n),
            confidence_percentage=round_half_up(avg_confidence * 100.0),
            quality_percentage=round_half_up(avg_quality * 100.0),
            frames=tuple(frames),
            live_count=live_count,
            spoof_count=n - live_count,
        )


def aggregate(frames: Sequence[FrameResult], required_count: Optional[int] = None,
              thresholds: Optional[DecisionThresholds] = None) -> Verdict:
    return DecisionEngine(thresholds).decide(frames, required_count)
