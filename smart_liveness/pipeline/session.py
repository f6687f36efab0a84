from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from smart_liveness.models.base import FrameResult, Verdict
from smart_liveness.models.errors import InvalidFrameError


class SessionState(str, Enum):
    IDLE = "Idle"
    CAPTURING = "Capturing"
    AGGREGATING = "Aggregating"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_running(self) -> bool:
        return self in (SessionState.CAPTURING, SessionState.AGGREGATING)


@dataclass(frozen=True)
class SessionSnapshot:
    state: SessionState
    required_count: int
    results: Tuple[FrameResult, ...]
    verdict: Optional[Verdict] = None
    error: Optional[str] = None

    @property
    def completed(self) -> int:
        return len(self.results)


@dataclass
class CaptureSession:
    """Mutable per-run state. Only the controller touches it; readers get snapshots."""

    required_count: int = 6
    results: List[FrameResult] = field(default_factory=list)
    state: SessionState = SessionState.IDLE
    verdict: Optional[Verdict] = None
    error: Optional[str] = None

    def reset(self, required_count: int):
        self.required_count = int(required_count)
        self.results = []
        self.verdict = None
        self.error = None
        self.state = SessionState.CAPTURING

    def append(self, frame: FrameResult) -> int:
        if self.state is not SessionState.CAPTURING:
            raise RuntimeError(f"cannot record a frame while {self.state.value}")
        if len(self.results) >= self.required_count:
            raise InvalidFrameError("session already holds required_count results")
        self.results.append(frame)
        if len(self.results) == self.required_count:
            self.state = SessionState.AGGREGATING
        return len(self.results)

    def complete(self, verdict: Verdict):
        self.verdict = verdict
        self.state = SessionState.COMPLETED

    def fail(self, reason: Exception, cancelled: bool = False):
        self.error = str(reason) or reason.__class__.__name__
        self.state = SessionState.CANCELLED if cancelled else SessionState.FAILED

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            required_count=self.required_count,
            results=tuple(self.results),
            verdict=self.verdict,
            error=self.error,
        )
