import asyncio
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

import numpy as np

from .errors import InvalidFrameError


class Prediction(str, Enum):
    LIVE = "Live"
    SPOOF = "Spoof"

    @classmethod
    def parse(cls, label: str) -> "Prediction":
        key = str(label).strip().lower()
        if key in ("live", "real"):
            return cls.LIVE
        if key in ("spoof", "fake"):
            return cls.SPOOF
        raise InvalidFrameError(f"unknown prediction label: {label!r}")


def _check_unit(name: str, value: float) -> float:
    v = float(value)
    if not math.isfinite(v) or v < 0.0 or v > 1.0:
        raise InvalidFrameError(f"{name} must be within [0, 1], got {value!r}")
    return v


@dataclass(frozen=True)
class FrameResult:
    prediction: Prediction
    confidence: float  # confidence of `prediction`, not of liveness
    quality_score: float

    def __post_init__(self):
        if not isinstance(self.prediction, Prediction):
            object.__setattr__(self, "prediction", Prediction.parse(self.prediction))
        object.__setattr__(self, "confidence", _check_unit("confidence", self.confidence))
        object.__setattr__(self, "quality_score", _check_unit("quality_score", self.quality_score))

    @property
    def is_live(self) -> bool:
        return self.prediction is Prediction.LIVE

    @property
    def live_confidence(self) -> float:
        """Confidence projected onto the is-live scale."""
        return self.confidence if self.is_live else 1.0 - self.confidence


@dataclass(frozen=True)
class Verdict:
    is_live: bool
    live_percentage: int
    confidence_percentage: int
    quality_percentage: int
    frames: Tuple[FrameResult, ...]
    live_count: int = 0
    spoof_count: int = 0

    @property
    def required_count(self) -> int:
        return len(self.frames)


@dataclass
class Detection:
    bbox: Tuple[int, int, int, int]  # x, y, w, h
    score: float


class FaceDetector:
    def detect(self, frame_bgr: np.ndarray) -> List[Detection]:
        raise NotImplementedError


class CaptureTrigger:
    """Produces one raw BGR image per request.

    `open` and `close` bracket one verification session; the controller
    always calls `close`, even after a failure or cancellation.
    """

    async def open(self) -> None:
        return None

    async def capture(self) -> np.ndarray:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class FrameClassifier:
    def classify_frame(self, frame_bgr: np.ndarray) -> FrameResult:
        raise NotImplementedError

    async def classify(self, frame_bgr: np.ndarray) -> FrameResult:
        # Model inference is blocking; keep it off the event loop
        return await asyncio.to_thread(self.classify_frame, frame_bgr)


class SessionReporter:
    def on_progress(self, completed: int, total: int) -> None:
        pass

    def on_failure(self, reason: Exception) -> None:
        pass

    def on_verdict(self, verdict: Verdict) -> None:
        pass
